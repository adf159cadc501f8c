"""Tests for the in-process identity provider."""
import pytest

from notesync.identity import IdentityProvider, LocalIdentityProvider, User


def test_starts_signed_out():
    assert LocalIdentityProvider().current_user() is None


def test_sign_in_and_out_notify_subscribers():
    identity = LocalIdentityProvider()
    events = []
    identity.on_auth_change(events.append)

    user = identity.sign_in("user-1", "a@example.com")
    identity.sign_out()

    assert user == User(id="user-1", email="a@example.com")
    assert events == [user, None]
    assert identity.current_user() is None


def test_sign_out_when_signed_out_is_silent():
    identity = LocalIdentityProvider()
    events = []
    identity.on_auth_change(events.append)
    identity.sign_out()
    assert events == []


def test_unsubscribe():
    identity = LocalIdentityProvider()
    events = []
    unsubscribe = identity.on_auth_change(events.append)
    unsubscribe()
    unsubscribe()
    identity.sign_in("user-1")
    assert events == []


def test_empty_user_id_is_rejected():
    with pytest.raises(ValueError):
        LocalIdentityProvider().sign_in("")


def test_base_provider_is_abstract():
    provider = IdentityProvider()
    with pytest.raises(NotImplementedError):
        provider.current_user()
    with pytest.raises(NotImplementedError):
        provider.on_auth_change(lambda user: None)
