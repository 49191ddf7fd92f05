"""
api/routes.py — FastAPI 엔드포인트

모든 엔드포인트는 요청 세션의 AppController 상태 스냅샷을 반환한다.
외부 협력자(인증, 저장소, 생성기)를 호출하는 작업은 asyncio.to_thread로 실행.
"""

import asyncio
from typing import Optional

from fastapi import APIRouter, File, HTTPException, Request, UploadFile
from pydantic import BaseModel, ValidationError

import config
import api.session as session
from shama_quiz.errors import (
    AuthError, DraftValidationError, EntitlementError, GenerationError,
    GenerationInProgressError,
)
from shama_quiz.models.quiz_model import Difficulty, Language, SourceType
from shama_quiz.models.session_state import AuthMode
from shama_quiz.services.app_controller import AppController

router = APIRouter()

# ── Pydantic request bodies ──────────────────────────────────────────────────

class NavigateBody(BaseModel):
    target: str
    auth_mode: Optional[AuthMode] = None

class SignUpBody(BaseModel):
    name: str = ""
    email: str
    password: str

class SignInBody(BaseModel):
    email: str
    password: str

class PaymentBody(BaseModel):
    agreed_to_terms: bool = False

class DraftBody(BaseModel):
    source_type: Optional[SourceType] = None
    content: Optional[str] = None
    difficulty: Optional[Difficulty] = None
    question_count: Optional[int] = None
    language: Optional[Language] = None
    subject: Optional[str] = None
    tone: Optional[str] = None

class AnswerBody(BaseModel):
    question_id: int
    option_index: int


# ── 헬퍼 ─────────────────────────────────────────────────────────────────────

def _controller(request: Request) -> AppController:
    return request.state.controller


def _snapshot(controller: AppController) -> dict:
    return controller.snapshot()


# ── 엔드포인트 ───────────────────────────────────────────────────────────────

@router.get("/api/state")
async def get_state(request: Request):
    return _snapshot(_controller(request))


@router.post("/api/navigate")
async def navigate(request: Request, body: NavigateBody):
    controller = _controller(request)
    controller.navigate(body.target, body.auth_mode)
    return _snapshot(controller)


@router.post("/api/auth/mode")
async def toggle_auth_mode(request: Request):
    controller = _controller(request)
    controller.toggle_auth_mode()
    return _snapshot(controller)


@router.post("/api/auth/signup")
async def sign_up(request: Request, body: SignUpBody):
    controller = _controller(request)
    try:
        await asyncio.to_thread(controller.sign_up, body.name.strip(), body.email, body.password)
    except AuthError as e:
        raise HTTPException(status_code=401, detail=e.message)
    return _snapshot(controller)


@router.post("/api/auth/signin")
async def sign_in(request: Request, body: SignInBody):
    controller = _controller(request)
    try:
        await asyncio.to_thread(controller.sign_in, body.email, body.password)
    except AuthError as e:
        raise HTTPException(status_code=401, detail=e.message)
    return _snapshot(controller)


@router.post("/api/auth/signout")
async def sign_out(request: Request):
    controller = _controller(request)
    try:
        await asyncio.to_thread(controller.sign_out)
    except AuthError as e:
        raise HTTPException(status_code=503, detail=e.message)
    return _snapshot(controller)


@router.post("/api/payment/confirm")
async def confirm_payment(request: Request, body: PaymentBody):
    controller = _controller(request)
    try:
        await asyncio.to_thread(controller.confirm_payment, body.agreed_to_terms)
    except EntitlementError as e:
        status = 400 if not body.agreed_to_terms else 402
        raise HTTPException(status_code=status, detail=e.message)
    return _snapshot(controller)


@router.put("/api/draft")
async def update_draft(request: Request, body: DraftBody):
    controller = _controller(request)
    try:
        controller.update_draft(**body.model_dump(exclude_unset=True))
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=e.errors()[0].get("msg", "입력값이 올바르지 않습니다."))
    return _snapshot(controller)


@router.post("/api/draft/file")
async def upload_source_file(request: Request, file: UploadFile = File(...)):
    controller = _controller(request)
    file_bytes = await file.read()
    if len(file_bytes) > config.MAX_UPLOAD_SIZE:
        raise HTTPException(status_code=413, detail="파일이 너무 큽니다.")
    try:
        await asyncio.to_thread(controller.load_source_file, file_bytes, file.filename or "")
    except DraftValidationError as e:
        raise HTTPException(status_code=422, detail=e.message)
    return _snapshot(controller)


@router.post("/api/generate")
async def generate(request: Request):
    controller = _controller(request)
    try:
        await asyncio.to_thread(controller.generate)
    except DraftValidationError as e:
        raise HTTPException(status_code=400, detail=e.message)
    except GenerationInProgressError as e:
        raise HTTPException(status_code=409, detail=e.message)
    except GenerationError as e:
        raise HTTPException(status_code=502, detail=e.message)
    return _snapshot(controller)


@router.post("/api/quizzes/{quiz_id}/open")
async def open_saved_quiz(request: Request, quiz_id: str):
    controller = _controller(request)
    controller.open_saved_quiz(quiz_id)
    return _snapshot(controller)


@router.post("/api/answer")
async def select_answer(request: Request, body: AnswerBody):
    controller = _controller(request)
    controller.select_answer(body.question_id, body.option_index)
    return _snapshot(controller)


@router.post("/api/reveal")
async def reveal_results(request: Request):
    controller = _controller(request)
    controller.reveal_results()
    return _snapshot(controller)


@router.post("/api/error/clear")
async def clear_error(request: Request):
    controller = _controller(request)
    controller.clear_error()
    return _snapshot(controller)


@router.post("/api/reset")
async def reset_session(request: Request):
    session.drop(request.state.session_id)
    return {"ok": True}
