import pytest

from shama_quiz.backends.auth_events import SIGNED_IN, SIGNED_OUT, TOKEN_REFRESHED
from shama_quiz.errors import AuthError, EntitlementError
from shama_quiz.models.session_state import Entitlement
from shama_quiz.services.session_tracker import SessionTracker, session_from_auth


class ExplodingAuthClient:
    refresh_token = None

    def get_session(self):
        raise ConnectionError("network unreachable")

    def sign_in_with_password(self, email, password):
        raise ConnectionError("network unreachable")

    def update_user(self, data):
        raise RuntimeError("boom")


def test_session_from_auth_maps_metadata():
    session = session_from_auth({
        "user": {"id": "u1", "email": "a@b.c", "user_metadata": {"full_name": "나래", "is_premium": True}},
    })
    assert session.is_authenticated
    assert session.user.display_name == "나래"
    assert session.entitlement == Entitlement.PREMIUM


def test_session_from_auth_defaults():
    session = session_from_auth({"user": {"id": "u1", "email": "a@b.c"}}, default_name="손님")
    assert session.user.display_name == "손님"
    assert session.entitlement == Entitlement.FREE

    # 문자열 "true"는 premium이 아니다
    truthy = session_from_auth({"user": {"id": "u1", "user_metadata": {"is_premium": "true"}}})
    assert truthy.entitlement == Entitlement.FREE

    assert not session_from_auth(None).is_authenticated
    assert not session_from_auth({"user": {}}).is_authenticated


def test_restore_without_stored_session_is_none(backend):
    tracker = SessionTracker(backend.auth_client())
    assert tracker.restore_session() is None


def test_restore_failure_is_swallowed():
    assert SessionTracker(ExplodingAuthClient()).restore_session() is None


def test_restore_with_invalid_refresh_token_is_none(backend):
    tracker = SessionTracker(backend.auth_client(refresh_token="stale"))
    assert tracker.restore_session() is None


def test_restore_exchanges_refresh_token(backend):
    first = SessionTracker(backend.auth_client())
    first.sign_up("a@b.c", "secret123", "나래")
    token = first.refresh_token

    second = SessionTracker(backend.auth_client(refresh_token=token))
    session = second.restore_session()
    assert session.is_authenticated
    assert session.user.email == "a@b.c"
    assert second.refresh_token and second.refresh_token != token


def test_subscription_relays_sessions_and_releases_once(backend):
    auth = backend.auth_client()
    tracker = SessionTracker(auth)
    seen = []
    sub = tracker.on_session_changed(lambda event, session: seen.append((event, session.is_authenticated)))
    assert auth.listener_count() == 1

    tracker.sign_up("a@b.c", "secret123", "나래")
    tracker.sign_out()
    assert seen == [(SIGNED_IN, True), (SIGNED_OUT, False)]

    assert sub.unsubscribe() is True
    assert sub.unsubscribe() is False
    assert auth.listener_count() == 0

    tracker.sign_in("a@b.c", "secret123")
    assert len(seen) == 2


def test_subscription_context_manager(backend):
    auth = backend.auth_client()
    with SessionTracker(auth).on_session_changed(lambda e, s: None) as sub:
        assert sub.active
    assert not sub.active
    assert auth.listener_count() == 0


def test_restore_emits_token_refreshed_to_existing_subscribers(backend):
    first = SessionTracker(backend.auth_client())
    first.sign_up("a@b.c", "secret123", "")
    auth = backend.auth_client(refresh_token=first.refresh_token)
    tracker = SessionTracker(auth)
    seen = []
    tracker.on_session_changed(lambda event, session: seen.append(event))
    tracker.restore_session()
    assert seen == [TOKEN_REFRESHED]


def test_sign_in_wraps_unexpected_errors():
    with pytest.raises(AuthError):
        SessionTracker(ExplodingAuthClient()).sign_in("a@b.c", "pw")


def test_sign_in_wrong_password(backend):
    tracker = SessionTracker(backend.auth_client())
    tracker.sign_up("a@b.c", "secret123", "")
    tracker.sign_out()
    with pytest.raises(AuthError):
        tracker.sign_in("a@b.c", "wrong-password")


def test_grant_entitlement(backend):
    tracker = SessionTracker(backend.auth_client())
    tracker.sign_up("a@b.c", "secret123", "")
    session = tracker.grant_entitlement()
    assert session.is_premium

    # 다시 로그인해도 유지된다
    tracker.sign_out()
    assert tracker.sign_in("a@b.c", "secret123").is_premium


def test_grant_entitlement_failure():
    with pytest.raises(EntitlementError):
        SessionTracker(ExplodingAuthClient()).grant_entitlement()


def test_grant_entitlement_requires_sign_in(backend):
    with pytest.raises(EntitlementError):
        SessionTracker(backend.auth_client()).grant_entitlement()
