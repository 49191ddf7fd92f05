"""
services/view_router.py

화면 전이 상태 기계.

transition(state, event) 하나로 모든 이벤트를 처리한다.
사용자 이벤트와 인증 세션 변경 알림(SessionChanged)이 같은 함수로 들어오며,
알 수 없는 이벤트는 상태를 그대로 반환한다 (예외 없음).

전이 규칙 (우선순위 순):
  1. 세션 → 익명          : 어느 화면이든 landing, 퀴즈/본문/답안/오류 초기화
  2. 세션 → 인증          : auth·landing이면 dashboard, payment면 유지, 그 외 유지
  3. 홈으로               : 인증 시 dashboard(작업 상태 초기화), 아니면 landing
  4. 인증 화면 요청       : auth (login / signup 모드)
  5. 회원가입 완료        : payment (대시보드 전에 항상 결제 화면 경유)
  6. 생성 화면 요청       : create, 로드된 퀴즈 해제
  7. 생성 성공            : quiz, 새 퀴즈 로드 + 답안 초기화
  8. 저장된 퀴즈 선택     : quiz, 해당 퀴즈 로드 + 답안 초기화
  9. 결제 화면 요청       : payment (사용량 상한 도달 포함)
 10. 결제 건너뛰기/확인   : dashboard
"""

from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from shama_quiz.models.quiz_model import Quiz, QuizDraft
from shama_quiz.models.session_state import AppState, AuthMode, Session, View
from shama_quiz.services import quiz_session


# ── 이벤트 ───────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class SessionChanged:
    session: Session


@dataclass(frozen=True)
class GoHome:
    pass


@dataclass(frozen=True)
class OpenAuth:
    mode: AuthMode = AuthMode.LOGIN


@dataclass(frozen=True)
class ToggleAuthMode:
    pass


@dataclass(frozen=True)
class SignupCompleted:
    pass


@dataclass(frozen=True)
class OpenCreate:
    pass


@dataclass(frozen=True)
class GenerationStarted:
    pass


@dataclass(frozen=True)
class GenerationSucceeded:
    quiz: Quiz


@dataclass(frozen=True)
class GenerationFailed:
    message: str


@dataclass(frozen=True)
class GenerationAbandoned:
    pass


@dataclass(frozen=True)
class OpenSavedQuiz:
    quiz_id: str


@dataclass(frozen=True)
class OpenPayment:
    pass


@dataclass(frozen=True)
class SkipPayment:
    pass


@dataclass(frozen=True)
class PaymentConfirmed:
    session: Session


@dataclass(frozen=True)
class DraftUpdated:
    draft: QuizDraft


@dataclass(frozen=True)
class SavedQuizzesLoaded:
    quizzes: List[Quiz] = field(default_factory=list)


@dataclass(frozen=True)
class AnswerSelected:
    question_id: int
    option_index: int


@dataclass(frozen=True)
class ResultsRevealed:
    pass


@dataclass(frozen=True)
class ErrorRaised:
    message: str


@dataclass(frozen=True)
class ErrorCleared:
    pass


# ── 작업 상태 초기화 헬퍼 ─────────────────────────────────────────────────────

def _cleared_workspace() -> dict:
    return {
        "quiz": None,
        "draft": QuizDraft(),
        "user_answers": {},
        "show_results": False,
        "error": None,
    }


# ── 규칙별 핸들러 ─────────────────────────────────────────────────────────────

def _on_session_changed(state: AppState, event: SessionChanged) -> AppState:
    session = event.session
    if not session.is_authenticated:
        return state.model_copy(update={
            **_cleared_workspace(),
            "view": View.LANDING,
            "session": Session.anonymous(),
            "saved_quizzes": [],
            "initial_loading": False,
        })

    update = {"session": session, "initial_loading": False}
    if state.view in (View.AUTH, View.LANDING):
        update["view"] = View.DASHBOARD
        update["error"] = None
    return state.model_copy(update=update)


def _on_go_home(state: AppState, event: GoHome) -> AppState:
    if state.session.is_authenticated:
        return state.model_copy(update={**_cleared_workspace(), "view": View.DASHBOARD})
    return state.model_copy(update={"view": View.LANDING})


def _on_open_auth(state: AppState, event: OpenAuth) -> AppState:
    return state.model_copy(update={"view": View.AUTH, "auth_mode": event.mode, "error": None})


def _on_toggle_auth_mode(state: AppState, event: ToggleAuthMode) -> AppState:
    mode = AuthMode.SIGNUP if state.auth_mode == AuthMode.LOGIN else AuthMode.LOGIN
    return state.model_copy(update={"auth_mode": mode, "error": None})


def _on_signup_completed(state: AppState, event: SignupCompleted) -> AppState:
    return state.model_copy(update={"view": View.PAYMENT, "error": None})


def _on_open_create(state: AppState, event: OpenCreate) -> AppState:
    state = quiz_session.load_quiz(state, None)
    return state.model_copy(update={"view": View.CREATE})


def _on_generation_started(state: AppState, event: GenerationStarted) -> AppState:
    return state.model_copy(update={"is_loading": True, "error": None})


def _on_generation_succeeded(state: AppState, event: GenerationSucceeded) -> AppState:
    state = quiz_session.load_quiz(state, event.quiz)
    return state.model_copy(update={
        "view": View.QUIZ,
        "draft": QuizDraft(),
        "is_loading": False,
        "error": None,
    })


def _on_generation_failed(state: AppState, event: GenerationFailed) -> AppState:
    return state.model_copy(update={"is_loading": False, "error": event.message})


def _on_generation_abandoned(state: AppState, event: GenerationAbandoned) -> AppState:
    return state.model_copy(update={"is_loading": False})


def _on_open_saved_quiz(state: AppState, event: OpenSavedQuiz) -> AppState:
    quiz = next((q for q in state.saved_quizzes if q.id == event.quiz_id), None)
    if quiz is None:
        return state
    state = quiz_session.load_quiz(state, quiz)
    return state.model_copy(update={"view": View.QUIZ, "error": None})


def _on_open_payment(state: AppState, event: OpenPayment) -> AppState:
    return state.model_copy(update={"view": View.PAYMENT})


def _on_skip_payment(state: AppState, event: SkipPayment) -> AppState:
    return state.model_copy(update={"view": View.DASHBOARD, "error": None})


def _on_payment_confirmed(state: AppState, event: PaymentConfirmed) -> AppState:
    return state.model_copy(update={
        "view": View.DASHBOARD,
        "session": event.session,
        "error": None,
    })


def _on_draft_updated(state: AppState, event: DraftUpdated) -> AppState:
    return state.model_copy(update={"draft": event.draft})


def _on_saved_quizzes_loaded(state: AppState, event: SavedQuizzesLoaded) -> AppState:
    return state.model_copy(update={"saved_quizzes": list(event.quizzes)})


def _on_answer_selected(state: AppState, event: AnswerSelected) -> AppState:
    return quiz_session.select_answer(state, event.question_id, event.option_index)


def _on_results_revealed(state: AppState, event: ResultsRevealed) -> AppState:
    return quiz_session.reveal_results(state)


def _on_error_raised(state: AppState, event: ErrorRaised) -> AppState:
    return state.model_copy(update={"error": event.message})


def _on_error_cleared(state: AppState, event: ErrorCleared) -> AppState:
    return state.model_copy(update={"error": None})


_HANDLERS: Dict[type, Callable] = {
    SessionChanged: _on_session_changed,
    GoHome: _on_go_home,
    OpenAuth: _on_open_auth,
    ToggleAuthMode: _on_toggle_auth_mode,
    SignupCompleted: _on_signup_completed,
    OpenCreate: _on_open_create,
    GenerationStarted: _on_generation_started,
    GenerationSucceeded: _on_generation_succeeded,
    GenerationFailed: _on_generation_failed,
    GenerationAbandoned: _on_generation_abandoned,
    OpenSavedQuiz: _on_open_saved_quiz,
    OpenPayment: _on_open_payment,
    SkipPayment: _on_skip_payment,
    PaymentConfirmed: _on_payment_confirmed,
    DraftUpdated: _on_draft_updated,
    SavedQuizzesLoaded: _on_saved_quizzes_loaded,
    AnswerSelected: _on_answer_selected,
    ResultsRevealed: _on_results_revealed,
    ErrorRaised: _on_error_raised,
    ErrorCleared: _on_error_cleared,
}


# ══════════════════════════════════════════════════════════════════════════════
# Public API
# ══════════════════════════════════════════════════════════════════════════════

def transition(state: AppState, event: object) -> AppState:
    """이벤트를 적용한 새 상태를 반환한다. 알 수 없는 이벤트는 무시."""
    handler = _HANDLERS.get(type(event))
    if handler is None:
        return state
    return handler(state, event)


def quota_exceeded(state: AppState, cap: int) -> bool:
    """무료 등급이고 저장된 퀴즈 수가 상한 이상이면 True."""
    if state.session.is_premium:
        return False
    return len(state.saved_quizzes) >= cap


def quota_remaining(state: AppState, cap: int) -> Optional[int]:
    """남은 무료 생성 횟수. 프리미엄이면 None (무제한)."""
    if state.session.is_premium:
        return None
    return max(cap - len(state.saved_quizzes), 0)
