"""
backends/memory_backend.py — 인메모리 인증 + 퀴즈 저장소

Supabase와 같은 계약을 프로세스 메모리로 구현한다.
로컬 실행(AUTH_BACKEND=memory)과 테스트에서 사용. 서버 재시작 시 데이터는 사라진다.

세션 dict 형태:
    {"access_token": str, "refresh_token": str,
     "user": {"id": str, "email": str, "user_metadata": {...}}}
저장 레코드 형태:
    {"id": str, "user_id": str, "quiz_data": dict, "created_at": str}
"""

import copy
import hashlib
import hmac
import os
import threading
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from shama_quiz.backends.auth_events import (
    AuthEventEmitter, SIGNED_IN, SIGNED_OUT, TOKEN_REFRESHED, USER_UPDATED,
)
from shama_quiz.errors import AuthError, PersistenceError

MIN_PASSWORD_LENGTH = 6
_PBKDF2_ROUNDS = 100_000


def _hash_password(password: str, salt: bytes) -> str:
    return hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, _PBKDF2_ROUNDS).hex()


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class MemoryDatabase:
    """모든 클라이언트가 공유하는 사용자 디렉토리와 레코드 테이블."""

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.users_by_email: Dict[str, Dict[str, Any]] = {}
        self.users_by_id: Dict[str, Dict[str, Any]] = {}
        self.refresh_tokens: Dict[str, str] = {}   # refresh_token → user_id
        self.records: List[Dict[str, Any]] = []
        self._seq = 0

    def next_seq(self) -> int:
        self._seq += 1
        return self._seq


class MemoryAuthClient(AuthEventEmitter):
    """브라우저 세션 하나에 대응하는 인증 클라이언트."""

    def __init__(self, db: MemoryDatabase, refresh_token: Optional[str] = None):
        super().__init__()
        self._db = db
        self._session: Optional[dict] = None
        self._pending_refresh = refresh_token

    # ── 내부 ─────────────────────────────────────────────────────────────────

    def _issue_session(self, user: Dict[str, Any]) -> dict:
        refresh = uuid.uuid4().hex
        self._db.refresh_tokens[refresh] = user["id"]
        return {
            "access_token": uuid.uuid4().hex,
            "refresh_token": refresh,
            "user": {
                "id": user["id"],
                "email": user["email"],
                "user_metadata": copy.deepcopy(user["user_metadata"]),
            },
        }

    # ── 계약 ─────────────────────────────────────────────────────────────────

    @property
    def refresh_token(self) -> Optional[str]:
        return self._session["refresh_token"] if self._session else None

    @property
    def access_token(self) -> Optional[str]:
        return self._session["access_token"] if self._session else None

    def get_session(self) -> Optional[dict]:
        """현재 세션. 없고 복원용 refresh token이 있으면 교환을 시도한다."""
        if self._session is not None:
            return copy.deepcopy(self._session)
        token, self._pending_refresh = self._pending_refresh, None
        if not token:
            return None
        with self._db.lock:
            user_id = self._db.refresh_tokens.pop(token, None)
            user = self._db.users_by_id.get(user_id) if user_id else None
            if user is None:
                raise AuthError("세션이 만료되었습니다. 다시 로그인해 주세요.")
            self._session = self._issue_session(user)
        self._emit(TOKEN_REFRESHED, copy.deepcopy(self._session))
        return copy.deepcopy(self._session)

    def sign_up(self, email: str, password: str, full_name: str = "") -> dict:
        email = (email or "").strip().lower()
        if not email:
            raise AuthError("이메일을 입력해 주세요.")
        if len(password or "") < MIN_PASSWORD_LENGTH:
            raise AuthError(f"비밀번호는 {MIN_PASSWORD_LENGTH}자 이상이어야 합니다.")

        salt = os.urandom(16)
        with self._db.lock:
            if email in self._db.users_by_email:
                raise AuthError("이미 가입된 이메일입니다.")
            user = {
                "id": uuid.uuid4().hex,
                "email": email,
                "salt": salt,
                "password_hash": _hash_password(password, salt),
                "user_metadata": {"full_name": full_name, "is_premium": False},
            }
            self._db.users_by_email[email] = user
            self._db.users_by_id[user["id"]] = user
            self._session = self._issue_session(user)
            session = copy.deepcopy(self._session)
        self._emit(SIGNED_IN, copy.deepcopy(session))
        return {"user": session["user"], "session": session}

    def sign_in_with_password(self, email: str, password: str) -> dict:
        email = (email or "").strip().lower()
        if not email or not password:
            raise AuthError("이메일과 비밀번호를 입력해 주세요.")
        with self._db.lock:
            user = self._db.users_by_email.get(email)
            if user is None or not hmac.compare_digest(
                user["password_hash"], _hash_password(password, user["salt"])
            ):
                raise AuthError("이메일 또는 비밀번호가 올바르지 않습니다.")
            self._session = self._issue_session(user)
            session = copy.deepcopy(self._session)
        self._emit(SIGNED_IN, copy.deepcopy(session))
        return session

    def sign_out(self) -> None:
        with self._db.lock:
            if self._session is not None:
                self._db.refresh_tokens.pop(self._session["refresh_token"], None)
            self._session = None
        self._emit(SIGNED_OUT, None)

    def update_user(self, data: Dict[str, Any]) -> dict:
        """user_metadata 병합 갱신."""
        if self._session is None:
            raise AuthError("로그인이 필요합니다.")
        with self._db.lock:
            user = self._db.users_by_id.get(self._session["user"]["id"])
            if user is None:
                raise AuthError("사용자를 찾을 수 없습니다.")
            user["user_metadata"].update(data)
            self._session["user"]["user_metadata"] = copy.deepcopy(user["user_metadata"])
            session = copy.deepcopy(self._session)
        self._emit(USER_UPDATED, copy.deepcopy(session))
        return session


class MemoryQuizTable:
    """quizzes 테이블. user_id 범위로만 조회한다."""

    def __init__(self, db: MemoryDatabase):
        self._db = db

    def insert(self, record: Dict[str, Any]) -> Dict[str, Any]:
        if not record.get("user_id"):
            raise PersistenceError("user_id가 없는 레코드는 저장할 수 없습니다.")
        with self._db.lock:
            row = {
                "id": uuid.uuid4().hex,
                "user_id": record["user_id"],
                "quiz_data": copy.deepcopy(record.get("quiz_data") or {}),
                "created_at": _now_iso(),
                "_seq": self._db.next_seq(),
            }
            self._db.records.append(row)
            return self._public(row)

    def select_by_user(self, user_id: str) -> List[Dict[str, Any]]:
        """해당 사용자의 레코드를 최신순으로 반환."""
        with self._db.lock:
            rows = [r for r in self._db.records if r["user_id"] == user_id]
            rows.sort(key=lambda r: (r["created_at"], r["_seq"]), reverse=True)
            return [self._public(r) for r in rows]

    @staticmethod
    def _public(row: Dict[str, Any]) -> Dict[str, Any]:
        return {k: copy.deepcopy(v) for k, v in row.items() if not k.startswith("_")}


class MemoryBackend:
    """인증 클라이언트 / 퀴즈 테이블 팩토리."""

    name = "memory"

    def __init__(self, db: Optional[MemoryDatabase] = None):
        self.db = db or MemoryDatabase()

    def auth_client(self, refresh_token: Optional[str] = None) -> MemoryAuthClient:
        return MemoryAuthClient(self.db, refresh_token=refresh_token)

    def quiz_table(self, auth_client: MemoryAuthClient) -> MemoryQuizTable:
        return MemoryQuizTable(self.db)
