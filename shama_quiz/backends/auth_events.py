"""
backends/auth_events.py

인증 클라이언트 공용: 인증 상태 변경 구독/알림.

이벤트 이름은 Supabase GoTrue 클라이언트와 같다:
SIGNED_IN, SIGNED_OUT, TOKEN_REFRESHED, USER_UPDATED.
콜백 시그니처: callback(event: str, session: dict | None)
"""

import logging
import threading
from typing import Callable, Dict, Optional

logger = logging.getLogger(__name__)

SIGNED_IN = "SIGNED_IN"
SIGNED_OUT = "SIGNED_OUT"
TOKEN_REFRESHED = "TOKEN_REFRESHED"
USER_UPDATED = "USER_UPDATED"

AuthCallback = Callable[[str, Optional[dict]], None]


class Subscription:
    """
    구독 해제 핸들. unsubscribe()는 여러 번 호출해도 한 번만 해제한다.
    with 문으로 사용하면 블록 종료 시 해제된다.
    """

    def __init__(self, release: Callable[[], None]):
        self._release = release
        self._lock = threading.Lock()
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self) -> bool:
        """실제로 해제했으면 True, 이미 해제된 상태면 False."""
        with self._lock:
            if not self._active:
                return False
            self._active = False
        self._release()
        return True

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.unsubscribe()


class AuthEventEmitter:
    """on_auth_state_change / _emit 를 제공하는 믹스인."""

    def __init__(self) -> None:
        self._listeners: Dict[int, AuthCallback] = {}
        self._listener_seq = 0
        self._listener_lock = threading.Lock()

    def on_auth_state_change(self, callback: AuthCallback) -> Subscription:
        with self._listener_lock:
            self._listener_seq += 1
            key = self._listener_seq
            self._listeners[key] = callback

        def _release() -> None:
            with self._listener_lock:
                self._listeners.pop(key, None)

        return Subscription(_release)

    def listener_count(self) -> int:
        with self._listener_lock:
            return len(self._listeners)

    def _emit(self, event: str, session: Optional[dict]) -> None:
        with self._listener_lock:
            callbacks = list(self._listeners.values())
        for cb in callbacks:
            try:
                cb(event, session)
            except Exception as e:
                logger.error(f"인증 이벤트 콜백 오류 ({event}): {type(e).__name__}: {e}")
