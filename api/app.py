"""
api/app.py — FastAPI 앱 인스턴스 + 세션 미들웨어 + static 파일 서빙
"""

import asyncio
import logging
import os
import threading
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from fastapi.responses import FileResponse

import config
from api.routes import router
import api.session as session
from shama_quiz.backends.memory_backend import MemoryBackend
from shama_quiz.backends.supabase_backend import SupabaseBackend
from shama_quiz.services.app_controller import AppController
from shama_quiz.services.quiz_generator import QuizGenerator

logger = logging.getLogger(__name__)

SESSION_COOKIE = "shama_session"
REFRESH_COOKIE = "shama_refresh"
REFRESH_MAX_AGE = 30 * 24 * 3600  # 30일


def build_backend(name: str = config.AUTH_BACKEND):
    """AUTH_BACKEND 설정값으로 인증/저장소 백엔드 선택."""
    if name == "supabase":
        return SupabaseBackend(
            config.SUPABASE_URL,
            config.SUPABASE_ANON_KEY,
            table=config.SUPABASE_TABLE,
            timeout=config.SUPABASE_TIMEOUT,
        )
    if name != "memory":
        logger.warning(f"알 수 없는 AUTH_BACKEND={name!r}, memory 백엔드 사용")
    return MemoryBackend()


def create_app(backend=None, generator=None) -> FastAPI:
    backend = backend or build_backend()
    generator = generator or QuizGenerator(api_key=config.OPENAI_API_KEY, model=config.MODEL_NAME)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        session.close_all()

    app = FastAPI(title="Sham'a Quiz", docs_url=None, redoc_url=None, lifespan=lifespan)
    app.state.backend = backend
    app.state.generator = generator

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    def _new_controller(refresh_token: Optional[str]) -> AppController:
        auth_client = backend.auth_client(refresh_token=refresh_token)
        controller = AppController(auth_client, backend.quiz_table(auth_client), generator)
        controller.start()
        return controller

    # 세션 미들웨어: 쿠키에서 세션 ID를 읽고, 없으면 컨트롤러를 새로 만들어 세션 복원
    @app.middleware("http")
    async def session_middleware(request: Request, call_next):
        if not request.url.path.startswith("/api/"):
            return await call_next(request)

        sid = request.cookies.get(SESSION_COOKIE)
        controller = session.get_session(sid)
        if controller is None:
            refresh_token = request.cookies.get(REFRESH_COOKIE)
            controller = await asyncio.to_thread(_new_controller, refresh_token)
            sid = session.create_session(controller)

        request.state.session_id = sid
        request.state.controller = controller
        response: Response = await call_next(request)
        response.set_cookie(
            key=SESSION_COOKIE,
            value=sid,
            httponly=True,
            samesite="lax",
            max_age=config.SESSION_TTL,
        )
        refresh_token = controller.refresh_token
        if refresh_token:
            response.set_cookie(
                key=REFRESH_COOKIE,
                value=refresh_token,
                httponly=True,
                samesite="lax",
                max_age=REFRESH_MAX_AGE,
            )
        else:
            response.delete_cookie(REFRESH_COOKIE)
        return response

    app.include_router(router)

    # static 파일 마운트
    if os.path.isdir(config.STATIC_DIR):
        app.mount("/static", StaticFiles(directory=config.STATIC_DIR), name="static")

    # 루트 → index.html
    @app.get("/")
    async def serve_index():
        index_path = os.path.join(config.STATIC_DIR, "index.html")
        if os.path.exists(index_path):
            return FileResponse(index_path)
        return {"error": "index.html not found"}

    # 만료 세션 주기적 정리 (5분마다)
    def _cleanup_loop():
        while True:
            time.sleep(300)
            removed = session.cleanup_expired()
            if removed:
                logger.info(f"만료 세션 {removed}개 정리")

    t = threading.Thread(target=_cleanup_loop, daemon=True)
    t.start()

    return app
