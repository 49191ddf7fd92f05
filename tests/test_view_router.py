import random

import pytest

from shama_quiz.models.quiz_model import QuizDraft
from shama_quiz.models.session_state import (
    AppState, AuthMode, Entitlement, Session, User, View,
)
from shama_quiz.services import view_router as router
from tests.conftest import make_quiz


def _session(premium=False, user_id="u1"):
    return Session(
        is_authenticated=True,
        user=User(id=user_id, email="a@b.c", display_name="가"),
        entitlement=Entitlement.PREMIUM if premium else Entitlement.FREE,
    )


def _state(view=View.LANDING, authenticated=False, **kwargs):
    session = _session() if authenticated else Session.anonymous()
    return AppState(view=view, session=session, initial_loading=False, **kwargs)


# ── 세션 변경 ────────────────────────────────────────────────────────────────

@pytest.mark.parametrize("view", list(View))
def test_anonymous_session_always_lands_and_clears(view):
    quiz = make_quiz(2, quiz_id="q1")
    state = _state(
        view, authenticated=True, quiz=quiz, user_answers={1: 0}, show_results=True,
        saved_quizzes=[quiz], error="old", draft=QuizDraft(content="본문"),
    )
    state = router.transition(state, router.SessionChanged(Session.anonymous()))

    assert state.view == View.LANDING
    assert state.quiz is None
    assert state.user_answers == {}
    assert state.show_results is False
    assert state.saved_quizzes == []
    assert state.draft.content == ""
    assert state.error is None
    assert not state.session.is_authenticated


@pytest.mark.parametrize("view", [View.LANDING, View.AUTH])
def test_authenticated_session_moves_entry_views_to_dashboard(view):
    state = AppState(view=view, error="로그인 실패")
    state = router.transition(state, router.SessionChanged(_session()))
    assert state.view == View.DASHBOARD
    assert state.error is None
    assert state.initial_loading is False


@pytest.mark.parametrize("view", [View.PAYMENT, View.CREATE, View.QUIZ, View.DASHBOARD])
def test_authenticated_session_keeps_other_views(view):
    state = _state(view, authenticated=True)
    state = router.transition(state, router.SessionChanged(_session(premium=True)))
    assert state.view == view
    assert state.session.is_premium


# ── 사용자 이벤트 ────────────────────────────────────────────────────────────

def test_go_home_authenticated_resets_workspace():
    state = _state(
        View.QUIZ, authenticated=True, quiz=make_quiz(2),
        user_answers={1: 2}, show_results=True, draft=QuizDraft(content="x"),
    )
    state = router.transition(state, router.GoHome())
    assert state.view == View.DASHBOARD
    assert state.quiz is None
    assert state.user_answers == {}
    assert state.show_results is False
    assert state.draft.content == ""


def test_go_home_anonymous_goes_to_landing():
    state = router.transition(_state(View.AUTH), router.GoHome())
    assert state.view == View.LANDING


def test_open_auth_sets_mode_and_toggle_flips_it():
    state = router.transition(_state(), router.OpenAuth(AuthMode.SIGNUP))
    assert state.view == View.AUTH
    assert state.auth_mode == AuthMode.SIGNUP

    state = router.transition(state, router.ToggleAuthMode())
    assert state.auth_mode == AuthMode.LOGIN
    assert state.view == View.AUTH


def test_signup_completed_routes_to_payment():
    state = _state(View.DASHBOARD, authenticated=True)
    assert router.transition(state, router.SignupCompleted()).view == View.PAYMENT


def test_open_create_unloads_quiz():
    state = _state(View.QUIZ, authenticated=True, quiz=make_quiz(2), user_answers={1: 1})
    state = router.transition(state, router.OpenCreate())
    assert state.view == View.CREATE
    assert state.quiz is None
    assert state.user_answers == {}


def test_generation_succeeded_loads_quiz_and_resets_draft():
    state = _state(View.CREATE, authenticated=True, draft=QuizDraft(content="본문"))
    state = router.transition(state, router.GenerationStarted())
    assert state.is_loading

    quiz = make_quiz(3)
    state = router.transition(state, router.GenerationSucceeded(quiz))
    assert state.view == View.QUIZ
    assert state.quiz == quiz
    assert state.user_answers == {}
    assert state.show_results is False
    assert state.is_loading is False
    assert state.draft.content == ""


def test_generation_failed_keeps_view_and_quiz():
    quiz = make_quiz(2)
    state = _state(View.CREATE, authenticated=True, quiz=quiz, is_loading=True)
    state = router.transition(state, router.GenerationFailed("실패"))
    assert state.view == View.CREATE
    assert state.quiz == quiz
    assert state.error == "실패"
    assert state.is_loading is False


def test_open_saved_quiz_loads_matching_entry():
    saved = [make_quiz(2, title="A", quiz_id="a"), make_quiz(3, title="B", quiz_id="b")]
    state = _state(View.DASHBOARD, authenticated=True, saved_quizzes=saved, user_answers={9: 9})
    state = router.transition(state, router.OpenSavedQuiz("b"))
    assert state.view == View.QUIZ
    assert state.quiz.title == "B"
    assert state.user_answers == {}


def test_open_saved_quiz_unknown_id_is_noop():
    state = _state(View.DASHBOARD, authenticated=True, saved_quizzes=[make_quiz(1, quiz_id="a")])
    assert router.transition(state, router.OpenSavedQuiz("zzz")) is state


def test_payment_exits_to_dashboard():
    state = _state(View.PAYMENT, authenticated=True)
    assert router.transition(state, router.SkipPayment()).view == View.DASHBOARD

    confirmed = router.transition(state, router.PaymentConfirmed(_session(premium=True)))
    assert confirmed.view == View.DASHBOARD
    assert confirmed.session.is_premium


def test_unknown_event_returns_same_state():
    state = _state(View.CREATE, authenticated=True)
    assert router.transition(state, object()) is state
    assert router.transition(state, "go-somewhere") is state


def test_settings_view_is_never_entered():
    events = [
        router.GoHome(), router.OpenAuth(), router.SignupCompleted(), router.OpenCreate(),
        router.OpenPayment(), router.SkipPayment(), router.SessionChanged(_session()),
    ]
    for event in events:
        assert router.transition(_state(authenticated=True), event).view != View.SETTINGS


def test_random_event_sequences_always_end_in_a_view():
    rng = random.Random(1234)
    saved = [make_quiz(2, quiz_id="s1")]
    factories = [
        lambda: router.SessionChanged(_session()),
        lambda: router.SessionChanged(Session.anonymous()),
        lambda: router.GoHome(),
        lambda: router.OpenAuth(rng.choice(list(AuthMode))),
        lambda: router.ToggleAuthMode(),
        lambda: router.SignupCompleted(),
        lambda: router.OpenCreate(),
        lambda: router.GenerationStarted(),
        lambda: router.GenerationSucceeded(make_quiz(2)),
        lambda: router.GenerationFailed("x"),
        lambda: router.OpenSavedQuiz("s1"),
        lambda: router.OpenPayment(),
        lambda: router.SkipPayment(),
        lambda: router.SavedQuizzesLoaded(saved),
        lambda: router.AnswerSelected(1, rng.randint(-1, 4)),
        lambda: router.ResultsRevealed(),
        lambda: object(),
    ]
    state = AppState()
    for _ in range(500):
        state = router.transition(state, rng.choice(factories)())
        assert isinstance(state.view, View)
        for qid, idx in state.user_answers.items():
            assert state.quiz is not None and qid in state.quiz.question_ids()
            assert 0 <= idx < 4


# ── 사용량 상한 ──────────────────────────────────────────────────────────────

def test_quota_for_free_and_premium():
    saved = [make_quiz(1, quiz_id=str(i)) for i in range(2)]
    free = _state(View.DASHBOARD, authenticated=True, saved_quizzes=saved[:1])
    assert not router.quota_exceeded(free, 2)
    assert router.quota_remaining(free, 2) == 1

    full = free.model_copy(update={"saved_quizzes": saved})
    assert router.quota_exceeded(full, 2)
    assert router.quota_remaining(full, 2) == 0

    premium = full.model_copy(update={"session": _session(premium=True)})
    assert not router.quota_exceeded(premium, 2)
    assert router.quota_remaining(premium, 2) is None
