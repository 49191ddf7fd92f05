"""
services/quiz_session.py

현재 퀴즈 풀이 상태(답안지, 결과 공개 여부) 관리.
순수 함수로 구성. 입력 상태를 변경하지 않고 새 AppState를 반환한다.
채점(점수 계산)은 하지 않는다. 결과 공개 시 문제별 해설만 보여준다.
"""

from typing import Optional

from shama_quiz.models.quiz_model import Quiz
from shama_quiz.models.session_state import AppState


def load_quiz(state: AppState, quiz: Optional[Quiz]) -> AppState:
    """퀴즈를 교체하고 답안지와 결과 공개 여부를 초기화한다."""
    return state.model_copy(update={
        "quiz": quiz,
        "user_answers": {},
        "show_results": False,
    })


def select_answer(state: AppState, question_id: int, option_index: int) -> AppState:
    """
    답안 선택 (upsert).

    다음 경우에는 아무것도 하지 않고 상태를 그대로 반환한다:
      - 결과가 이미 공개됨 (읽기 전용 리뷰 모드)
      - 로드된 퀴즈가 없거나 question_id가 퀴즈에 없음
      - option_index가 보기 범위를 벗어남
    """
    if state.show_results or state.quiz is None:
        return state

    question = next((q for q in state.quiz.questions if q.id == question_id), None)
    if question is None:
        return state
    if not 0 <= option_index < len(question.options):
        return state

    answers = dict(state.user_answers)
    answers[question_id] = option_index
    return state.model_copy(update={"user_answers": answers})


def reveal_results(state: AppState) -> AppState:
    """결과 공개. 새 퀴즈를 로드하기 전까지 되돌릴 수 없다."""
    if state.quiz is None or state.show_results:
        return state
    return state.model_copy(update={"show_results": True})
