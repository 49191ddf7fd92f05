"""
services/session_tracker.py

인증 협력자(auth client)를 감싸 Session 모델로 변환하고,
인증 상태 변경 알림을 구독한다.

Public API:
  - restore_session()          : 시작 시 1회. 실패는 조용히 익명으로 처리
  - on_session_changed(cb)     : 범위 구독 (Subscription 반환)
  - sign_up / sign_in / sign_out
  - grant_entitlement()        : 현재 사용자를 premium으로 표시

grant_entitlement는 신뢰 경계다. 결제 완료 여부는 호출하는 쪽(사용자의 "결제했습니다"
확인)에 맡기며, 여기서 결제를 검증하지 않는다.
"""

import logging
from typing import Callable, Optional

from shama_quiz.backends.auth_events import Subscription
from shama_quiz.errors import AuthError, EntitlementError
from shama_quiz.models.session_state import Entitlement, Session, User

logger = logging.getLogger(__name__)

SessionCallback = Callable[[str, Session], None]


def session_from_auth(auth_session: Optional[dict], default_name: str = "") -> Session:
    """협력자 세션 dict → Session. None이면 익명."""
    if not auth_session or not (auth_session.get("user") or {}).get("id"):
        return Session.anonymous()
    user = auth_session["user"]
    metadata = user.get("user_metadata") or {}
    return Session(
        is_authenticated=True,
        user=User(
            id=str(user["id"]),
            email=user.get("email") or "",
            display_name=metadata.get("full_name") or default_name,
        ),
        entitlement=Entitlement.PREMIUM if metadata.get("is_premium") is True else Entitlement.FREE,
    )


class SessionTracker:
    def __init__(self, auth_client, default_name: str = ""):
        self._auth = auth_client
        self._default_name = default_name

    def _to_session(self, auth_session: Optional[dict]) -> Session:
        return session_from_auth(auth_session, self._default_name)

    @property
    def refresh_token(self) -> Optional[str]:
        return self._auth.refresh_token

    def restore_session(self) -> Optional[Session]:
        """저장된 세션 복원. 어떤 오류든 None(익명)으로 처리한다."""
        try:
            auth_session = self._auth.get_session()
        except Exception as e:
            logger.warning(f"세션 복원 실패, 익명으로 시작: {type(e).__name__}: {e}")
            return None
        if not auth_session:
            return None
        session = self._to_session(auth_session)
        logger.info(f"세션 복원 완료: user={session.user.id if session.user else None}")
        return session

    def on_session_changed(self, callback: SessionCallback) -> Subscription:
        """협력자의 로그인/로그아웃/토큰 갱신 알림을 Session으로 변환해 전달한다."""
        def _relay(event: str, auth_session: Optional[dict]) -> None:
            callback(event, self._to_session(auth_session))

        return self._auth.on_auth_state_change(_relay)

    def sign_up(self, email: str, password: str, name: str) -> Session:
        """
        회원가입. 협력자가 바로 세션을 발급하지 않으면(이메일 인증 대기)
        익명 Session을 반환한다.
        """
        try:
            result = self._auth.sign_up(email, password, name)
        except AuthError:
            raise
        except Exception as e:
            logger.error(f"회원가입 오류: {type(e).__name__}: {e}")
            raise AuthError("회원가입 중 오류가 발생했습니다.") from e
        return self._to_session(result.get("session"))

    def sign_in(self, email: str, password: str) -> Session:
        try:
            auth_session = self._auth.sign_in_with_password(email, password)
        except AuthError:
            raise
        except Exception as e:
            logger.error(f"로그인 오류: {type(e).__name__}: {e}")
            raise AuthError("로그인 중 오류가 발생했습니다.") from e
        return self._to_session(auth_session)

    def sign_out(self) -> None:
        try:
            self._auth.sign_out()
        except AuthError:
            raise
        except Exception as e:
            logger.error(f"로그아웃 오류: {type(e).__name__}: {e}")
            raise AuthError("로그아웃 중 오류가 발생했습니다.") from e

    def grant_entitlement(self) -> Session:
        try:
            auth_session = self._auth.update_user({"is_premium": True})
        except Exception as e:
            logger.error(f"프리미엄 활성화 실패: {type(e).__name__}: {e}")
            raise EntitlementError("활성화 중 오류가 발생했습니다.") from e
        session = self._to_session(auth_session)
        if not session.is_premium:
            raise EntitlementError("활성화 중 오류가 발생했습니다.")
        return session
