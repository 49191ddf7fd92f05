"""
services/app_controller.py

브라우저 세션 하나의 앱 상태를 소유하는 컨트롤러.

- 상태(AppState)는 이 객체만 가진다. 변경은 dispatch()를 통해서만 일어나며,
  view_router.transition으로 계산한 새 상태를 락 안에서 한 번에 교체한다.
- 사용자 이벤트와 인증 세션 변경 알림이 같은 dispatch()로 들어온다.
- 외부 협력자 호출은 락 밖에서 한다.
- start()에서 세션 구독을 얻고, close()에서 정확히 한 번 해제한다.
"""

import logging
import threading
from typing import Any, Dict, Optional

from config import (
    DEFAULT_DISPLAY_NAME, FREE_QUIZ_CAP, QUESTION_COUNT_MAX, QUESTION_COUNT_MIN,
)
from shama_quiz.backends.auth_events import Subscription, USER_UPDATED
from shama_quiz.errors import (
    AuthError, DraftValidationError, EntitlementError, PersistenceError,
)
from shama_quiz.models.quiz_model import Quiz, QuizDraft, SourceType
from shama_quiz.models.session_state import AppState, AuthMode, Session
from shama_quiz.services import view_router as router
from shama_quiz.services.generation import GenerationOrchestrator, load_saved_quizzes
from shama_quiz.services.session_tracker import SessionTracker
from shama_quiz.services.source_extractor import extract_text

logger = logging.getLogger(__name__)

# navigate() 대상 이름 → 이벤트
_NAVIGATION = {
    "home": lambda mode: router.GoHome(),
    "auth": lambda mode: router.OpenAuth(mode or AuthMode.LOGIN),
    "create": lambda mode: router.OpenCreate(),
    "payment": lambda mode: router.OpenPayment(),
    "skip_payment": lambda mode: router.SkipPayment(),
}


class AppController:
    def __init__(
        self,
        auth_client,
        quiz_table,
        generator,
        free_quiz_cap: int = FREE_QUIZ_CAP,
        count_min: int = QUESTION_COUNT_MIN,
        count_max: int = QUESTION_COUNT_MAX,
        default_name: str = DEFAULT_DISPLAY_NAME,
    ):
        self.lock = threading.RLock()
        self._state = AppState()
        self._table = quiz_table
        self._free_quiz_cap = free_quiz_cap
        self.tracker = SessionTracker(auth_client, default_name=default_name)
        self.orchestrator = GenerationOrchestrator(
            self, generator, quiz_table,
            free_quiz_cap=free_quiz_cap, count_min=count_min, count_max=count_max,
        )
        self._subscription: Optional[Subscription] = None

    # ── 상태 ─────────────────────────────────────────────────────────────────

    @property
    def state(self) -> AppState:
        with self.lock:
            return self._state

    def dispatch(self, *events: object) -> AppState:
        """이벤트들을 순서대로 적용하고 새 상태를 한 번에 반영한다."""
        with self.lock:
            state = self._state
            for event in events:
                state = router.transition(state, event)
            self._state = state
            return state

    @property
    def refresh_token(self) -> Optional[str]:
        return self.tracker.refresh_token

    # ── 수명 주기 ─────────────────────────────────────────────────────────────

    def start(self) -> AppState:
        """세션 복원 후 인증 변경 구독을 시작한다. 복원 실패는 익명 landing."""
        session = self.tracker.restore_session()
        self.dispatch(router.SessionChanged(session or Session.anonymous()))
        if session is not None:
            self.refresh_saved_quizzes()
        if self._subscription is None:
            self._subscription = self.tracker.on_session_changed(self._on_session_changed)
        return self.state

    def close(self) -> None:
        if self._subscription is not None and self._subscription.unsubscribe():
            logger.info("세션 구독 해제")

    @property
    def subscribed(self) -> bool:
        return self._subscription is not None and self._subscription.active

    def _on_session_changed(self, event_name: str, session: Session) -> None:
        logger.info(f"인증 상태 변경: {event_name} (authenticated={session.is_authenticated})")
        self.dispatch(router.SessionChanged(session))
        if session.is_authenticated and event_name != USER_UPDATED:
            self.refresh_saved_quizzes()

    def refresh_saved_quizzes(self) -> None:
        """저장 목록 재조회. 실패하면 빈 목록."""
        session = self.state.session
        if not session.is_authenticated or session.user is None:
            return
        user_id = session.user.id
        try:
            quizzes = load_saved_quizzes(self._table, user_id)
        except PersistenceError as e:
            logger.warning(f"저장 퀴즈 조회 실패, 빈 목록으로 처리: {e}")
            quizzes = []

        with self.lock:
            current = self._state.session.user
            if current is None or current.id != user_id:
                return
            self.dispatch(router.SavedQuizzesLoaded(quizzes))

    # ── 화면 이동 ─────────────────────────────────────────────────────────────

    def navigate(self, target: str, auth_mode: Optional[AuthMode] = None) -> AppState:
        """알 수 없는 대상은 무시한다."""
        factory = _NAVIGATION.get(target)
        if factory is None:
            logger.debug(f"알 수 없는 이동 대상 무시: {target!r}")
            return self.state
        return self.dispatch(factory(auth_mode))

    def toggle_auth_mode(self) -> AppState:
        return self.dispatch(router.ToggleAuthMode())

    def clear_error(self) -> AppState:
        return self.dispatch(router.ErrorCleared())

    # ── 인증 ─────────────────────────────────────────────────────────────────

    def sign_up(self, name: str, email: str, password: str) -> AppState:
        try:
            self.tracker.sign_up(email, password, name)
        except AuthError as e:
            self.dispatch(router.ErrorRaised(e.message))
            raise
        logger.info(f"회원가입 완료: {email}")
        return self.dispatch(router.SignupCompleted())

    def sign_in(self, email: str, password: str) -> AppState:
        try:
            self.tracker.sign_in(email, password)
        except AuthError as e:
            self.dispatch(router.ErrorRaised(e.message))
            raise
        return self.state

    def sign_out(self) -> AppState:
        try:
            self.tracker.sign_out()
        except AuthError as e:
            self.dispatch(router.ErrorRaised(e.message))
            raise
        return self.state

    def confirm_payment(self, agreed_to_terms: bool) -> AppState:
        """
        사용자가 "결제했습니다"를 확인하면 프리미엄으로 전환한다.
        결제 자체는 검증하지 않는다.
        """
        try:
            if not agreed_to_terms:
                raise EntitlementError("먼저 약관에 동의해 주세요.")
            if not self.state.session.is_authenticated:
                raise EntitlementError("로그인이 필요합니다.")
            session = self.tracker.grant_entitlement()
        except EntitlementError as e:
            self.dispatch(router.ErrorRaised(e.message))
            raise
        logger.info(f"프리미엄 활성화: user={session.user.id if session.user else None}")
        return self.dispatch(router.PaymentConfirmed(session))

    # ── 생성 입력 ─────────────────────────────────────────────────────────────

    def update_draft(self, **fields: Any) -> AppState:
        """전달된 draft 필드만 갱신한다 (None은 값 지우기). 잘못된 값은 pydantic ValidationError."""
        with self.lock:
            data = self._state.draft.model_dump()
            data.update(fields)
            draft = QuizDraft.model_validate(data)
            return self.dispatch(router.DraftUpdated(draft))

    def load_source_file(self, file_bytes: bytes, filename: str = "") -> AppState:
        try:
            text = extract_text(file_bytes, filename)
        except DraftValidationError as e:
            self.dispatch(router.ErrorRaised(e.message))
            raise
        return self.update_draft(content=text, source_type=SourceType.FILE)

    def generate(self) -> Optional[Quiz]:
        return self.orchestrator.generate()

    # ── 퀴즈 풀이 ─────────────────────────────────────────────────────────────

    def open_saved_quiz(self, quiz_id: str) -> AppState:
        return self.dispatch(router.OpenSavedQuiz(quiz_id))

    def select_answer(self, question_id: int, option_index: int) -> AppState:
        return self.dispatch(router.AnswerSelected(question_id, option_index))

    def reveal_results(self) -> AppState:
        return self.dispatch(router.ResultsRevealed())

    # ── 직렬화 ───────────────────────────────────────────────────────────────

    def snapshot(self) -> Dict[str, Any]:
        """API 응답용 상태 요약."""
        state = self.state
        data = state.model_dump(mode="json", exclude={"user_answers"})
        data["user_answers"] = {str(k): v for k, v in state.user_answers.items()}
        data["no_projects"] = state.session.is_authenticated and not state.saved_quizzes
        data["quota_remaining"] = router.quota_remaining(state, self._free_quiz_cap)
        return data
