"""Tests for state/nonce correlation."""

import pytest

from proconnect_rp.auth import csrf
from proconnect_rp.auth.errors import (
    CorrelationError,
    MissingPendingLoginError,
    NonceMismatchError,
    StateMismatchError,
    TokenValidationError,
)
from proconnect_rp.auth.models import Session


def test_begin_generates_distinct_high_entropy_values():
    first, second = csrf.begin(), csrf.begin()

    assert first.state != second.state
    assert first.nonce != second.nonce
    assert first.state != first.nonce
    # 32 bytes of randomness, base64url encoded
    assert len(first.state) >= 43
    assert len(first.nonce) >= 43
    assert first.code_verifier is None


def test_begin_records_policy_and_claims():
    pending = csrf.begin({"id_token": {"amr": {"essential": True}}}, "force-2fa", pkce=True)

    assert pending.policy == "force-2fa"
    assert pending.requested_claims == {"id_token": {"amr": {"essential": True}}}
    assert pending.code_verifier


def test_verify_accepts_matching_state():
    pending = csrf.begin()

    assert csrf.verify(pending.state, pending) is pending


@pytest.mark.parametrize("returned", ["wrong", "", None])
def test_verify_rejects_other_states(returned):
    with pytest.raises(StateMismatchError):
        csrf.verify(returned, csrf.begin())


def test_verify_without_pending_login():
    with pytest.raises(MissingPendingLoginError):
        csrf.verify("anything", None)


def test_state_is_single_use():
    session = Session()
    pending = csrf.begin()
    session.begin(pending)

    csrf.verify(pending.state, session.take_pending_login())

    with pytest.raises(MissingPendingLoginError):
        csrf.verify(pending.state, session.take_pending_login())


def test_new_login_invalidates_previous_state():
    session = Session()
    first = csrf.begin()
    session.begin(first)
    session.begin(csrf.begin())

    with pytest.raises(StateMismatchError):
        csrf.verify(first.state, session.take_pending_login())


def test_verify_nonce():
    pending = csrf.begin()
    csrf.verify_nonce(pending.nonce, pending)

    with pytest.raises(NonceMismatchError) as exc_info:
        csrf.verify_nonce("replayed", pending)
    assert isinstance(exc_info.value, CorrelationError)
    assert isinstance(exc_info.value, TokenValidationError)

    with pytest.raises(NonceMismatchError):
        csrf.verify_nonce(None, pending)
