import asyncio
from typing import Any, Dict, Optional

import pytest
import streamlit as st
from unittest.mock import patch

from use_cases.auth_errors import (
    InvalidCodeError,
    InvalidCredentialsError,
    NoActiveSessionError,
    UserAlreadyExistsError,
)
from use_cases.auth_session_manager import AuthSessionManager
from use_cases.identity_provider import (
    AuthResult,
    IdentityProvider,
    MfaChallenge,
    MfaEnrollment,
    MfaVerification,
)
from use_cases.session_models import AuthenticatedUser, MfaFactor, Session
from use_cases.session_store import SessionEvent, SessionStore

VALID_CODE = "123456"
PASSWORD = "correct-horse"


def make_user(user_id="u1", email="user@example.com", role="user", factors=()):
    factors = tuple(factors)
    return AuthenticatedUser(
        id=user_id,
        email=email,
        role=role,
        display_name=email.split("@")[0],
        mfa_enabled=any(f.is_verified for f in factors),
        factors=factors,
    )


def make_session(user=None, aal="aal1", token="access-1", expires_at=None):
    return Session(
        access_token=token,
        refresh_token="refresh-1",
        user=user or make_user(),
        expires_at=expires_at,
        aal=aal,
    )


class FakeIdentityProvider(IdentityProvider):
    """
    In-memory provider.

    ``gates`` maps an operation name to an ``asyncio.Event`` the call waits
    on before answering; ``errors`` maps an operation name to an exception
    raised once by the next call.
    """

    def __init__(self, emit_events=True):
        self.emit_events = emit_events
        self.session: Optional[Session] = None
        self.listeners = []
        self.users = {"user@example.com": (PASSWORD, make_user())}
        self.factors: Dict[str, MfaFactor] = {}
        self.challenges: Dict[str, str] = {}
        self.metadata: Dict[str, Any] = {}
        self.calls = []
        self.verify_calls = []
        self.reset_requests = []
        self.gates: Dict[str, asyncio.Event] = {}
        self.errors: Dict[str, BaseException] = {}
        self.session_on_sign_up = True
        self._factor_seq = 0
        self._challenge_seq = 0

    # --- test helpers ---

    def push(self, event, session):
        self.session = None if event == SessionEvent.SIGNED_OUT else session
        for listener in list(self.listeners):
            listener(event, self.session)

    def _emit(self, event, session):
        if self.emit_events:
            self.push(event, session)
        else:
            self.session = None if event == SessionEvent.SIGNED_OUT else session

    def add_verified_factor(self, factor_id="f-verified"):
        self.factors[factor_id] = MfaFactor(id=factor_id, factor_type="totp", status="verified")
        return factor_id

    async def _enter(self, name):
        self.calls.append(name)
        gate = self.gates.get(name)
        if gate is not None:
            await gate.wait()
        error = self.errors.pop(name, None)
        if error is not None:
            raise error

    def _require_session(self):
        if self.session is None:
            raise NoActiveSessionError()
        return self.session

    # --- contract ---

    def on_auth_state_change(self, listener):
        self.listeners.append(listener)
        return lambda: self.listeners.remove(listener)

    async def sign_in(self, email, password):
        await self._enter("sign_in")
        record = self.users.get(email)
        if record is None or record[0] != password:
            raise InvalidCredentialsError()
        session = make_session(record[1])
        self._emit(SessionEvent.SIGNED_IN, session)
        return AuthResult(user=session.user, session=session)

    async def sign_up(self, email, password, profile=None):
        await self._enter("sign_up")
        if email in self.users:
            raise UserAlreadyExistsError()
        user = make_user(user_id=f"u{len(self.users) + 1}", email=email)
        self.users[email] = (password, user)
        if not self.session_on_sign_up:
            return AuthResult(user=user, session=None)
        session = make_session(user)
        self._emit(SessionEvent.SIGNED_IN, session)
        return AuthResult(user=user, session=session)

    async def sign_out(self):
        await self._enter("sign_out")
        self._emit(SessionEvent.SIGNED_OUT, None)

    async def get_session(self):
        snapshot = self.session
        await self._enter("get_session")
        return snapshot

    async def get_current_user(self):
        await self._enter("get_current_user")
        return self.session.user if self.session else None

    async def reset_password_request(self, email):
        await self._enter("reset_password_request")
        self.reset_requests.append(email)

    async def update_password(self, new_password):
        await self._enter("update_password")
        self._require_session()

    async def update_user_metadata(self, metadata):
        await self._enter("update_user_metadata")
        session = self._require_session()
        self.metadata.update(metadata)
        return session.user

    async def mfa_enroll(self):
        await self._enter("mfa_enroll")
        self._require_session()
        for factor_id in [f.id for f in self.factors.values() if not f.is_verified]:
            del self.factors[factor_id]
        self._factor_seq += 1
        factor_id = f"f{self._factor_seq}"
        self.factors[factor_id] = MfaFactor(id=factor_id, factor_type="totp", status="unverified")
        return MfaEnrollment(
            factor_id=factor_id,
            qr_code=f"data:image/svg+xml;utf-8,<svg>{factor_id}</svg>",
            secret=f"JBSWY3DPEHPK3PX{self._factor_seq}",
        )

    async def mfa_challenge(self, factor_id):
        await self._enter("mfa_challenge")
        self._require_session()
        self._challenge_seq += 1
        challenge_id = f"c{self._challenge_seq}"
        self.challenges[challenge_id] = factor_id
        return MfaChallenge(challenge_id=challenge_id)

    async def mfa_verify(self, factor_id, challenge_id, code):
        await self._enter("mfa_verify")
        self.verify_calls.append((factor_id, challenge_id, code))
        # Challenges are single-use.
        if self.challenges.pop(challenge_id, None) != factor_id:
            raise InvalidCodeError("Challenge expired")
        if code != VALID_CODE:
            raise InvalidCodeError()
        self.factors[factor_id] = MfaFactor(id=factor_id, factor_type="totp", status="verified")
        session = self._require_session()
        self._emit(SessionEvent.MFA_CHALLENGE_VERIFIED, make_session(session.user, aal="aal2", token="access-2"))
        return MfaVerification(verified=True)

    async def mfa_list_factors(self):
        await self._enter("mfa_list_factors")
        self._require_session()
        return tuple(self.factors.values())

    async def mfa_unenroll(self, factor_id):
        await self._enter("mfa_unenroll")
        self._require_session()
        self.factors.pop(factor_id, None)

    async def mfa_assurance_level(self):
        await self._enter("mfa_assurance_level")
        if self.session is None:
            return None, None
        next_level = "aal2" if any(f.is_verified for f in self.factors.values()) else "aal1"
        return self.session.aal, next_level


@pytest.fixture
def provider():
    return FakeIdentityProvider()


@pytest.fixture
def store():
    return SessionStore()


@pytest.fixture
def manager(provider, store):
    return AuthSessionManager(provider, store)


@pytest.fixture
def signed_in_manager(manager):
    asyncio.run(manager.sign_in("user@example.com", PASSWORD))
    return manager


class FakeSessionState(dict):
    """``st.session_state`` stand-in; bare-mode Streamlit keeps no state between accesses."""

    def __getattr__(self, key):
        try:
            return self[key]
        except KeyError as e:
            raise AttributeError(key) from e

    def __setattr__(self, key, value):
        self[key] = value


@pytest.fixture
def session_state():
    state = FakeSessionState()
    with patch.object(st, "session_state", state):
        yield state
