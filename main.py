"""
main.py — 샴아 퀴즈 실행기 (로컬 서버 + 브라우저)

  python main.py              : 빈 포트에 서버를 띄우고 앱 창을 연다
  HEADLESS=1 python main.py   : 브라우저 없이 DEFAULT_PORT로 서버만 실행
"""

import os
import socket
import sys
import threading
import time
import logging
import traceback
import webbrowser

# ── 패키지 경로 설정 (반드시 최상단) ──────────────────────────────────────────
_BASE_DIR = os.path.dirname(os.path.abspath(__file__))
if _BASE_DIR not in sys.path:
    sys.path.insert(0, _BASE_DIR)

import config

# ── 로깅 설정 ────────────────────────────────────────────────────────────────
try:
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        handlers=[
            logging.FileHandler(config.LOG_FILE, encoding='utf-8'),
            logging.StreamHandler(sys.stdout)
        ]
    )
except PermissionError:
    # 로그 파일 점유 시 콘솔 출력만 사용
    logging.basicConfig(level=logging.INFO)

logger = logging.getLogger(__name__)

# ── 서버 및 네트워크 유틸 ───────────────────────────────────────────────────

def _find_free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind((config.DEFAULT_HOST, 0))
        return s.getsockname()[1]


def _wait_for_server(port: int, timeout: float = config.DEFAULT_TIMEOUT) -> bool:
    deadline = time.time() + timeout
    while time.time() < deadline:
        try:
            with socket.create_connection((config.DEFAULT_HOST, port), timeout=0.5):
                return True
        except OSError:
            time.sleep(0.1)
    return False


def _run_server(port: int) -> None:
    import uvicorn
    from api.app import create_app

    logger.info(f"Uvicorn 서버 시작 - Port: {port}, 인증 백엔드: {config.AUTH_BACKEND}")
    if not config.OPENAI_API_KEY:
        logger.warning("OPENAI_API_KEY가 없습니다. 퀴즈 생성 요청은 실패합니다.")
    uvicorn.run(create_app(), host=config.DEFAULT_HOST, port=port, log_level="warning")


def _start_server_thread(port: int) -> None:
    try:
        _run_server(port)
    except Exception:
        logger.error(f"서버 오류 발생:\n{traceback.format_exc()}")


def main() -> int:
    logger.info("=== Sham'a Quiz Application Started ===")
    os.chdir(config.BASE_DIR)

    if os.getenv("HEADLESS", "").strip() in ("1", "true", "yes"):
        _run_server(config.DEFAULT_PORT)
        return 0

    port = _find_free_port()
    server_thread = threading.Thread(target=_start_server_thread, args=(port,), daemon=True)
    server_thread.start()

    if not _wait_for_server(port):
        logger.error("서버 시작 제한 시간을 초과했습니다.")
        return 1

    url = f"http://{config.DEFAULT_HOST}:{port}"
    logger.info(f"서버 준비 완료. 브라우저를 엽니다: {url}")
    webbrowser.open(url)

    # 메인 스레드 유지
    try:
        while server_thread.is_alive():
            time.sleep(1)
    except KeyboardInterrupt:
        logger.info("사용자에 의해 종료되었습니다.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
