"""
api/session.py — 멀티유저 인메모리 세션 (쿠키 기반)

각 사용자에게 UUID 세션 ID를 발급하고, 세션마다 AppController 하나를 둔다.
TTL 경과 시 만료되며, 만료/삭제되는 컨트롤러는 close()로 인증 구독을 해제한다.
"""

import logging
import threading
import time
import uuid
from typing import Dict, Optional

from config import SESSION_TTL
from shama_quiz.services.app_controller import AppController

logger = logging.getLogger(__name__)

_lock = threading.Lock()
_sessions: Dict[str, AppController] = {}
_timestamps: Dict[str, float] = {}


def create_session(controller: AppController) -> str:
    """컨트롤러를 등록하고 세션 ID를 반환."""
    sid = uuid.uuid4().hex
    with _lock:
        _sessions[sid] = controller
        _timestamps[sid] = time.time()
    return sid


def get_session(sid: Optional[str]) -> Optional[AppController]:
    """세션 ID로 컨트롤러를 가져옴. 만료되었거나 없으면 None."""
    if not sid:
        return None
    expired: Optional[AppController] = None
    with _lock:
        if sid not in _sessions:
            return None
        if time.time() - _timestamps[sid] > SESSION_TTL:
            expired = _sessions.pop(sid)
            del _timestamps[sid]
        else:
            _timestamps[sid] = time.time()  # 접근 시 갱신
            return _sessions[sid]
    expired.close()
    return None


def drop(sid: Optional[str]) -> bool:
    """세션 삭제. 삭제했으면 True."""
    with _lock:
        controller = _sessions.pop(sid, None) if sid else None
        _timestamps.pop(sid, None)
    if controller is None:
        return False
    controller.close()
    return True


def cleanup_expired() -> int:
    """만료된 세션을 정리. 제거된 수 반환."""
    now = time.time()
    with _lock:
        expired = [sid for sid, ts in _timestamps.items() if now - ts > SESSION_TTL]
        controllers = [_sessions.pop(sid) for sid in expired]
        for sid in expired:
            del _timestamps[sid]
    for controller in controllers:
        controller.close()
    return len(controllers)


def close_all() -> int:
    """앱 종료 시 모든 세션 해제."""
    with _lock:
        controllers = list(_sessions.values())
        _sessions.clear()
        _timestamps.clear()
    for controller in controllers:
        controller.close()
    if controllers:
        logger.info(f"세션 {len(controllers)}개 해제")
    return len(controllers)


def count() -> int:
    with _lock:
        return len(_sessions)
