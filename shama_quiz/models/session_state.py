"""
models/session_state.py

브라우저 세션 하나의 앱 상태를 담는 모델.
Pydantic BaseModel 기반. 전이 함수는 model_copy(update=...)로 새 상태를 만든다.
UI 코드 없음.
"""

from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from shama_quiz.models.quiz_model import Quiz, QuizDraft


class View(str, Enum):
    LANDING = "landing"
    AUTH = "auth"
    PAYMENT = "payment"
    DASHBOARD = "dashboard"
    CREATE = "create"
    QUIZ = "quiz"
    SETTINGS = "settings"


class AuthMode(str, Enum):
    LOGIN = "login"
    SIGNUP = "signup"


class Entitlement(str, Enum):
    FREE = "free"
    PREMIUM = "premium"


class User(BaseModel):
    id: str
    email: str
    display_name: str


class Session(BaseModel):
    """인증 여부와 등급. 익명 세션은 Session.anonymous()."""

    is_authenticated: bool = False
    user: Optional[User] = None
    entitlement: Entitlement = Entitlement.FREE

    @classmethod
    def anonymous(cls) -> "Session":
        return cls()

    @property
    def is_premium(self) -> bool:
        return self.entitlement == Entitlement.PREMIUM


class AppState(BaseModel):
    """
    앱 전체 상태.

    Attributes:
        view:            현재 화면. View Router만 변경한다.
        auth_mode:       auth 화면의 로그인/회원가입 모드.
        session:         인증 세션.
        draft:           편집 중인 생성 요청.
        quiz:            현재 로드된 퀴즈.
        user_answers:    답안지. {question.id: 선택한 보기 인덱스}
        show_results:    결과 공개 여부. True이면 답안 변경 불가.
        saved_quizzes:   저장된 퀴즈 목록 (최신순).
        is_loading:      생성 진행 중 여부.
        initial_loading: 세션 복원 대기 중 여부.
        error:           사용자에게 표시할 단일 오류 메시지.
    """

    view: View = View.LANDING
    auth_mode: AuthMode = AuthMode.LOGIN
    session: Session = Field(default_factory=Session.anonymous)
    draft: QuizDraft = Field(default_factory=QuizDraft)
    quiz: Optional[Quiz] = None
    user_answers: Dict[int, int] = Field(default_factory=dict)
    show_results: bool = False
    saved_quizzes: List[Quiz] = Field(default_factory=list)
    is_loading: bool = False
    initial_loading: bool = True
    error: Optional[str] = None
