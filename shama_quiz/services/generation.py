"""
services/generation.py

퀴즈 생성 오케스트레이션.

generate() 순서:
  1. draft 검증 (빈 본문 → EmptyContentError, 문항 수 범위 밖 → DraftValidationError)
  2. 무료 등급 사용량 상한 확인 → 초과 시 payment 화면, 생성 호출 없음
  3. 생성 협력자 호출 (세션당 동시에 하나만)
  4. 로그인 상태면 저장. 실패해도 생성 결과는 보여준다 (best-effort, 최대 1회)
  5. 저장 목록: 낙관적 선반영 후 전체 재조회로 정합 (id 충돌 시 서버 사본 우선)
  6. 화면 전이 (quiz)
생성 실패 시 오류 메시지 하나만 표시하고 화면과 기존 퀴즈는 그대로 둔다.
"""

import logging
from typing import List, Optional

from pydantic import ValidationError

from shama_quiz.errors import (
    DraftValidationError, EmptyContentError, GenerationError,
    GenerationInProgressError, PersistenceError,
)
from shama_quiz.models.quiz_model import Quiz, QuizDraft
from shama_quiz.services import view_router as router

logger = logging.getLogger(__name__)


def validate_draft(draft: QuizDraft, count_min: int, count_max: int) -> None:
    if not draft.content.strip():
        raise EmptyContentError("먼저 내용을 입력해 주세요.")
    if not count_min <= draft.question_count <= count_max:
        raise DraftValidationError(
            f"문항 수는 {count_min}~{count_max} 사이여야 합니다 (요청: {draft.question_count})."
        )


def load_saved_quizzes(quiz_table, user_id: str) -> List[Quiz]:
    """
    사용자의 저장 퀴즈를 최신순으로 조회한다.
    형식이 깨진 레코드는 건너뛴다. 조회 실패는 PersistenceError.
    """
    try:
        records = quiz_table.select_by_user(user_id)
    except PersistenceError:
        raise
    except Exception as e:
        raise PersistenceError(f"퀴즈 목록 조회 실패: {e}") from e

    quizzes: List[Quiz] = []
    for record in records:
        try:
            quizzes.append(Quiz.from_record(record))
        except (ValidationError, TypeError) as e:
            logger.warning(f"저장 레코드 {record.get('id')} 건너뜀: {e}")
    return quizzes


def reconcile_saved(local: List[Quiz], remote: List[Quiz]) -> List[Quiz]:
    """
    낙관적으로 앞에 붙인 로컬 목록과 서버 재조회 결과를 합친다.
    같은 id는 서버 사본을 쓰고, 서버에 아직 없는 로컬 항목은 유지한다.
    id 없는(저장되지 않은) 항목은 버린다. 결과는 created_at 내림차순.
    """
    remote_ids = {q.id for q in remote}
    pending = [q for q in local if q.id and q.id not in remote_ids]
    merged = pending + list(remote)
    merged.sort(key=lambda q: q.created_at or "", reverse=True)
    return merged


class GenerationOrchestrator:
    def __init__(
        self,
        controller,
        generator,
        quiz_table,
        free_quiz_cap: int,
        count_min: int,
        count_max: int,
    ):
        self._controller = controller
        self._generator = generator
        self._table = quiz_table
        self._cap = free_quiz_cap
        self._count_min = count_min
        self._count_max = count_max

    def generate(self) -> Optional[Quiz]:
        """
        생성 성공 시 (저장되었다면 id가 붙은) Quiz를 반환한다.
        사용량 상한으로 payment 화면으로 보낸 경우, 또는 도중에 세션이 바뀐 경우 None.
        """
        controller = self._controller

        # ── 1~3. 검증 / 상한 / 중복 요청 확인을 한 번에 ─────────────────────
        with controller.lock:
            state = controller.state
            if state.is_loading:
                raise GenerationInProgressError("이미 퀴즈를 생성하는 중입니다.")
            try:
                validate_draft(state.draft, self._count_min, self._count_max)
            except DraftValidationError as e:
                controller.dispatch(router.ErrorRaised(e.message))
                raise
            if router.quota_exceeded(state, self._cap):
                logger.info(f"무료 사용량 상한({self._cap}) 도달 → 결제 화면")
                controller.dispatch(router.OpenPayment())
                return None
            controller.dispatch(router.GenerationStarted())
            draft = state.draft
            user = state.session.user if state.session.is_authenticated else None

        try:
            return self._run(draft, user)
        finally:
            # 어떤 경로로 끝나든 is_loading을 남기지 않는다
            with controller.lock:
                if controller.state.is_loading:
                    controller.dispatch(router.GenerationAbandoned())

    def _run(self, draft: QuizDraft, user) -> Optional[Quiz]:
        controller = self._controller

        # ── 3. 외부 생성 호출 (락 밖) ──────────────────────────────────────
        try:
            quiz = self._generator.generate(draft)
        except GenerationError as e:
            controller.dispatch(router.GenerationFailed(e.message or "퀴즈 생성에 실패했습니다."))
            raise
        except Exception as e:
            logger.error(f"생성 협력자 예상치 못한 오류: {type(e).__name__}: {e}")
            controller.dispatch(router.GenerationFailed("퀴즈 생성에 실패했습니다."))
            raise GenerationError("퀴즈 생성에 실패했습니다.") from e

        # 생성 도중 로그아웃/계정 전환이 있었다면 결과를 적용하지 않는다
        if not self._same_user(user):
            logger.info("생성 중 세션이 바뀌어 결과를 버립니다.")
            controller.dispatch(router.GenerationAbandoned())
            return None

        # ── 4. best-effort 저장 ─────────────────────────────────────────────
        saved: Optional[Quiz] = None
        if user is not None:
            saved = self._persist(quiz, user.id)

        # ── 5. 저장 목록 정합 ───────────────────────────────────────────────
        events = []
        if user is not None:
            local = ([saved] if saved else []) + list(controller.state.saved_quizzes)
            try:
                remote = load_saved_quizzes(self._table, user.id)
                merged = reconcile_saved(local, remote)
            except PersistenceError as e:
                logger.warning(f"저장 목록 재조회 실패, 로컬 목록 유지: {e}")
                merged = reconcile_saved(local, [])
            events.append(router.SavedQuizzesLoaded(merged))

        # ── 6. 화면 전이 ────────────────────────────────────────────────────
        # 저장/재조회도 락 밖이므로 적용 직전에 세션을 다시 확인한다
        result = saved or quiz
        events.append(router.GenerationSucceeded(result))
        with controller.lock:
            if not self._same_user(user):
                logger.info("저장 중 세션이 바뀌어 결과를 버립니다.")
                controller.dispatch(router.GenerationAbandoned())
                return None
            controller.dispatch(*events)
        return result

    def _same_user(self, user) -> bool:
        current = self._controller.state.session
        if user is None:
            return not current.is_authenticated
        return current.is_authenticated and current.user is not None and current.user.id == user.id

    def _persist(self, quiz: Quiz, user_id: str) -> Optional[Quiz]:
        try:
            record = self._table.insert({"user_id": user_id, "quiz_data": quiz.to_record_payload()})
            saved = Quiz.from_record(record)
        except (PersistenceError, ValidationError) as e:
            logger.warning(f"퀴즈 저장 실패 (생성 결과는 유지): {e}")
            return None
        except Exception as e:
            logger.error(f"퀴즈 저장 중 예상치 못한 오류 (생성 결과는 유지): {type(e).__name__}: {e}")
            return None
        logger.info(f"퀴즈 저장 완료: id={saved.id}")
        return saved
