"""
backends/supabase_backend.py — Supabase REST 인증 + 퀴즈 저장소

GoTrue(/auth/v1)와 PostgREST(/rest/v1)를 requests로 직접 호출한다.
MemoryBackend와 같은 계약을 따른다.

필요 테이블:
    quizzes(id, user_id, quiz_data jsonb, created_at timestamptz default now())
"""

import logging
from typing import Any, Dict, List, Optional

import requests

from shama_quiz.backends.auth_events import (
    AuthEventEmitter, SIGNED_IN, SIGNED_OUT, TOKEN_REFRESHED, USER_UPDATED,
)
from shama_quiz.errors import AuthError, PersistenceError

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT = 10


def _error_message(response: requests.Response) -> str:
    try:
        data = response.json()
        return (
            data.get("msg")
            or data.get("error_description")
            or data.get("message")
            or f"HTTP {response.status_code}"
        )
    except ValueError:
        return f"HTTP {response.status_code}"


class SupabaseAuthClient(AuthEventEmitter):
    """브라우저 세션 하나에 대응하는 GoTrue 클라이언트."""

    def __init__(
        self,
        url: str,
        anon_key: str,
        refresh_token: Optional[str] = None,
        timeout: float = _DEFAULT_TIMEOUT,
        http: Optional[requests.Session] = None,
    ):
        super().__init__()
        self._url = url.rstrip("/")
        self._anon_key = anon_key
        self._timeout = timeout
        self._http = http or requests.Session()
        self._session: Optional[dict] = None
        self._pending_refresh = refresh_token

    # ── 내부 ─────────────────────────────────────────────────────────────────

    def _headers(self, access_token: Optional[str] = None) -> Dict[str, str]:
        token = access_token or self._anon_key
        return {
            "apikey": self._anon_key,
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }

    def _post(self, path: str, payload: dict, access_token: Optional[str] = None) -> requests.Response:
        try:
            return self._http.post(
                f"{self._url}{path}",
                headers=self._headers(access_token),
                json=payload,
                timeout=self._timeout,
            )
        except requests.RequestException as e:
            logger.error(f"Supabase 인증 요청 실패 ({path}): {e}")
            raise AuthError("인증 서버에 연결할 수 없습니다.") from e

    def _accept_session(self, data: dict) -> dict:
        if not data.get("access_token") or not (data.get("user") or {}).get("id"):
            raise AuthError("로그인 토큰 정보를 읽지 못했습니다.")
        self._session = {
            "access_token": data["access_token"],
            "refresh_token": data.get("refresh_token"),
            "user": data["user"],
        }
        return dict(self._session)

    # ── 계약 ─────────────────────────────────────────────────────────────────

    @property
    def refresh_token(self) -> Optional[str]:
        return self._session.get("refresh_token") if self._session else None

    @property
    def access_token(self) -> Optional[str]:
        return self._session["access_token"] if self._session else None

    def get_session(self) -> Optional[dict]:
        if self._session is not None:
            return dict(self._session)
        token, self._pending_refresh = self._pending_refresh, None
        if not token:
            return None
        resp = self._post("/auth/v1/token?grant_type=refresh_token", {"refresh_token": token})
        if resp.status_code != 200:
            raise AuthError(_error_message(resp))
        session = self._accept_session(resp.json() or {})
        self._emit(TOKEN_REFRESHED, dict(session))
        return session

    def sign_up(self, email: str, password: str, full_name: str = "") -> dict:
        payload = {
            "email": (email or "").strip(),
            "password": password or "",
            "data": {"full_name": full_name, "is_premium": False},
        }
        resp = self._post("/auth/v1/signup", payload)
        if resp.status_code not in (200, 201):
            raise AuthError(_error_message(resp))
        data = resp.json() or {}

        # 이메일 인증이 꺼져 있으면 세션이 바로 발급된다
        if data.get("access_token"):
            session = self._accept_session(data)
            self._emit(SIGNED_IN, dict(session))
            return {"user": session["user"], "session": session}
        return {"user": data.get("user") or data, "session": None}

    def sign_in_with_password(self, email: str, password: str) -> dict:
        payload = {"email": (email or "").strip(), "password": password or ""}
        if not payload["email"] or not payload["password"]:
            raise AuthError("이메일과 비밀번호를 입력해 주세요.")
        resp = self._post("/auth/v1/token?grant_type=password", payload)
        if resp.status_code != 200:
            raise AuthError(_error_message(resp))
        session = self._accept_session(resp.json() or {})
        self._emit(SIGNED_IN, dict(session))
        return session

    def sign_out(self) -> None:
        if self._session is not None:
            resp = self._post("/auth/v1/logout", {}, access_token=self._session["access_token"])
            if resp.status_code not in (200, 204):
                # 서버 측 토큰 폐기 실패여도 로컬 세션은 정리한다
                logger.warning(f"Supabase 로그아웃 응답: {_error_message(resp)}")
        self._session = None
        self._emit(SIGNED_OUT, None)

    def update_user(self, data: Dict[str, Any]) -> dict:
        if self._session is None:
            raise AuthError("로그인이 필요합니다.")
        try:
            resp = self._http.put(
                f"{self._url}/auth/v1/user",
                headers=self._headers(self._session["access_token"]),
                json={"data": data},
                timeout=self._timeout,
            )
        except requests.RequestException as e:
            logger.error(f"Supabase 사용자 갱신 실패: {e}")
            raise AuthError("인증 서버에 연결할 수 없습니다.") from e
        if resp.status_code != 200:
            raise AuthError(_error_message(resp))
        self._session["user"] = resp.json() or self._session["user"]
        session = dict(self._session)
        self._emit(USER_UPDATED, dict(session))
        return session


class SupabaseQuizTable:
    """PostgREST quizzes 테이블. 로그인한 사용자의 access token으로 호출한다."""

    def __init__(
        self,
        url: str,
        anon_key: str,
        auth_client: SupabaseAuthClient,
        table: str = "quizzes",
        timeout: float = _DEFAULT_TIMEOUT,
        http: Optional[requests.Session] = None,
    ):
        self._endpoint = f"{url.rstrip('/')}/rest/v1/{table}"
        self._anon_key = anon_key
        self._auth = auth_client
        self._timeout = timeout
        self._http = http or requests.Session()

    def _headers(self) -> Dict[str, str]:
        token = self._auth.access_token
        if not token:
            raise PersistenceError("로그인이 필요합니다.")
        return {
            "apikey": self._anon_key,
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }

    def insert(self, record: Dict[str, Any]) -> Dict[str, Any]:
        headers = self._headers()
        headers["Prefer"] = "return=representation"
        try:
            resp = self._http.post(self._endpoint, headers=headers, json=record, timeout=self._timeout)
        except requests.RequestException as e:
            raise PersistenceError(f"퀴즈 저장 실패: {e}") from e
        if resp.status_code not in (200, 201):
            raise PersistenceError(f"퀴즈 저장 실패: {_error_message(resp)}")
        try:
            rows = resp.json() or []
        except ValueError as e:
            raise PersistenceError("퀴즈 저장 응답을 읽지 못했습니다.") from e
        row = rows[0] if isinstance(rows, list) and rows else rows
        if not isinstance(row, dict) or not row:
            raise PersistenceError("퀴즈 저장 응답이 비어 있습니다.")
        return row

    def select_by_user(self, user_id: str) -> List[Dict[str, Any]]:
        params = {"select": "*", "user_id": f"eq.{user_id}", "order": "created_at.desc"}
        try:
            resp = self._http.get(self._endpoint, headers=self._headers(), params=params, timeout=self._timeout)
        except requests.RequestException as e:
            raise PersistenceError(f"퀴즈 목록 조회 실패: {e}") from e
        if resp.status_code != 200:
            raise PersistenceError(f"퀴즈 목록 조회 실패: {_error_message(resp)}")
        try:
            rows = resp.json() or []
        except ValueError as e:
            raise PersistenceError("퀴즈 목록 응답을 읽지 못했습니다.") from e
        return rows if isinstance(rows, list) else []


class SupabaseBackend:
    """인증 클라이언트 / 퀴즈 테이블 팩토리."""

    name = "supabase"

    def __init__(self, url: str, anon_key: str, table: str = "quizzes", timeout: float = _DEFAULT_TIMEOUT):
        if not (url and anon_key):
            raise ValueError("SUPABASE_URL / SUPABASE_ANON_KEY 설정이 필요합니다.")
        self.url = url
        self.anon_key = anon_key
        self.table = table
        self.timeout = timeout

    def auth_client(self, refresh_token: Optional[str] = None) -> SupabaseAuthClient:
        return SupabaseAuthClient(self.url, self.anon_key, refresh_token=refresh_token, timeout=self.timeout)

    def quiz_table(self, auth_client: SupabaseAuthClient) -> SupabaseQuizTable:
        return SupabaseQuizTable(self.url, self.anon_key, auth_client, table=self.table, timeout=self.timeout)
