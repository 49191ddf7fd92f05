import pytest

import api.session as api_session
from shama_quiz.backends.memory_backend import MemoryBackend
from shama_quiz.errors import PersistenceError
from shama_quiz.models.quiz_model import Question, Quiz
from shama_quiz.services.app_controller import AppController


def make_quiz(count: int = 5, title: str = "광합성 기초", quiz_id=None, created_at=None) -> Quiz:
    return Quiz(
        id=quiz_id,
        title=title,
        description="빛 에너지가 화학 에너지로 바뀌는 과정",
        gap_analysis="명반응과 암반응의 구분이 흔한 혼동 지점이다.",
        next_level_preview="C4 식물의 탄소 고정을 비교해 보라.",
        questions=[
            Question(
                id=i,
                prompt=f"질문 {i}",
                options=["A", "B", "C", "D"],
                correct_option_index=i % 4,
                explanation=f"해설 {i}",
            )
            for i in range(1, count + 1)
        ],
        created_at=created_at,
    )


class FakeGenerator:
    """생성 호출을 기록하고 정해진 퀴즈나 오류를 돌려준다."""

    def __init__(self, quiz=None, error=None):
        self.calls = []
        self.quiz = quiz
        self.error = error

    def generate(self, draft):
        self.calls.append(draft)
        if self.error is not None:
            raise self.error
        return self.quiz or make_quiz(draft.question_count)


class BrokenQuizTable:
    """insert / select 실패를 흉내 내는 래퍼."""

    def __init__(self, inner, fail_insert=False, fail_select=False):
        self.inner = inner
        self.fail_insert = fail_insert
        self.fail_select = fail_select

    def insert(self, record):
        if self.fail_insert:
            raise PersistenceError("insert down")
        return self.inner.insert(record)

    def select_by_user(self, user_id):
        if self.fail_select:
            raise PersistenceError("select down")
        return self.inner.select_by_user(user_id)


def seed_quizzes(backend: MemoryBackend, user_id: str, count: int) -> None:
    table = backend.quiz_table(None)
    for i in range(count):
        table.insert({"user_id": user_id, "quiz_data": make_quiz(3, title=f"저장 {i}").to_record_payload()})


@pytest.fixture
def backend():
    return MemoryBackend()


@pytest.fixture
def generator():
    return FakeGenerator()


@pytest.fixture
def make_controller(backend, generator):
    created = []

    def _make(refresh_token=None, quiz_table=None, gen=None):
        auth = backend.auth_client(refresh_token=refresh_token)
        table = quiz_table or backend.quiz_table(auth)
        controller = AppController(auth, table, gen or generator, free_quiz_cap=2)
        controller.start()
        created.append(controller)
        return controller

    yield _make
    for controller in created:
        controller.close()


@pytest.fixture
def signed_in(make_controller, backend):
    """가입 후 결제를 건너뛰고 dashboard에 있는 무료 사용자. saved 개수만큼 저장 퀴즈를 만든다."""

    def _make(saved=0, email="user@x.com", **kwargs):
        controller = make_controller(**kwargs)
        controller.sign_up("사용자", email, "secret123")
        controller.navigate("skip_payment")
        if saved:
            seed_quizzes(backend, controller.state.session.user.id, saved)
            controller.refresh_saved_quizzes()
        return controller

    return _make


@pytest.fixture(autouse=True)
def _clear_api_sessions():
    yield
    api_session.close_all()
