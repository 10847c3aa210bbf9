"""
TOTP enrollment state machine.

The enrollment surface is modelled as a pure ``transition(state, event)``
function over ``MfaEnrollmentState`` plus ``MfaEnrollmentMachine``, which
drives the provider round-trips and feeds their outcomes back as events.

Phases::

    IDLE                   --Open-----------> LOADING
    LOADING                --EnrollOk-------> READY_FOR_VERIFICATION
    LOADING                --EnrollFail-----> IDLE (+error)
    READY_FOR_VERIFICATION --CodeInput------> READY_FOR_VERIFICATION
    READY_FOR_VERIFICATION --VerifyStart----> VERIFYING
    VERIFYING              --VerifyOk-------> SUCCESS
    VERIFYING              --VerifyFail-----> READY_FOR_VERIFICATION (+error, code cleared)
    (any)                  --ResetRequested-> RESETTING
    RESETTING              --ResetDone------> LOADING
    RESETTING              --ResetFail------> previous factor state (+error)
    (any)                  --Close----------> IDLE (everything cleared)

Events that do not apply to the current phase leave the state untouched,
except ``VerifyStart`` whose preconditions are a caller contract and raise
``MfaTransitionError``.
"""

import logging
import re
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, Optional, Union

from use_cases.auth_errors import AuthError, InvalidCodeError
from use_cases.identity_provider import IdentityProvider

log = logging.getLogger(__name__)

DEFAULT_CODE_LENGTH = 6
DEFAULT_ENROLL_ERROR = "Failed to start MFA enrollment"
DEFAULT_VERIFY_ERROR = "Invalid verification code"
DEFAULT_RESET_ERROR = "Failed to reset MFA"

_NON_DIGITS = re.compile(r"\D")


def normalize_code(raw: str, length: int = DEFAULT_CODE_LENGTH) -> str:
    """Strip everything but digits, then clamp to ``length``."""
    return _NON_DIGITS.sub("", raw or "")[:length]


class MfaTransitionError(ValueError):
    pass


class MfaPhase(str, Enum):
    IDLE = "IDLE"
    LOADING = "LOADING"
    READY_FOR_VERIFICATION = "READY_FOR_VERIFICATION"
    VERIFYING = "VERIFYING"
    SUCCESS = "SUCCESS"
    RESETTING = "RESETTING"


@dataclass(frozen=True)
class MfaEnrollmentState:
    factor_id: Optional[str] = None
    qr_code: Optional[str] = None
    secret: Optional[str] = None
    verify_code: str = ""
    phase: MfaPhase = MfaPhase.IDLE
    error: Optional[str] = None
    code_length: int = DEFAULT_CODE_LENGTH

    @property
    def can_verify(self) -> bool:
        return (
            self.phase == MfaPhase.READY_FOR_VERIFICATION
            and self.factor_id is not None
            and len(self.verify_code) == self.code_length
        )

    @property
    def is_busy(self) -> bool:
        return self.phase in (MfaPhase.LOADING, MfaPhase.VERIFYING, MfaPhase.RESETTING)

    @property
    def input_disabled(self) -> bool:
        return self.phase == MfaPhase.VERIFYING


@dataclass(frozen=True)
class Open:
    pass


@dataclass(frozen=True)
class EnrollOk:
    factor_id: str
    qr_code: str
    secret: str


@dataclass(frozen=True)
class EnrollFail:
    error: str


@dataclass(frozen=True)
class CodeInput:
    raw: str


@dataclass(frozen=True)
class VerifyStart:
    pass


@dataclass(frozen=True)
class VerifyOk:
    pass


@dataclass(frozen=True)
class VerifyFail:
    error: str


@dataclass(frozen=True)
class ResetRequested:
    pass


@dataclass(frozen=True)
class ResetDone:
    pass


@dataclass(frozen=True)
class ResetFail:
    error: str


@dataclass(frozen=True)
class Close:
    pass


MfaEvent = Union[
    Open, EnrollOk, EnrollFail, CodeInput, VerifyStart, VerifyOk, VerifyFail,
    ResetRequested, ResetDone, ResetFail, Close,
]


def _cleared(state: MfaEnrollmentState, phase: MfaPhase) -> MfaEnrollmentState:
    return MfaEnrollmentState(phase=phase, code_length=state.code_length)


def transition(state: MfaEnrollmentState, event: MfaEvent) -> MfaEnrollmentState:
    phase = state.phase

    if isinstance(event, Close):
        return _cleared(state, MfaPhase.IDLE)

    if isinstance(event, Open):
        return _cleared(state, MfaPhase.LOADING)

    if isinstance(event, ResetRequested):
        return replace(state, phase=MfaPhase.RESETTING, error=None)

    if isinstance(event, ResetDone):
        if phase != MfaPhase.RESETTING:
            return state
        return _cleared(state, MfaPhase.LOADING)

    if isinstance(event, ResetFail):
        if phase != MfaPhase.RESETTING:
            return state
        # Factor fields were never touched by the reset attempt.
        back_to = MfaPhase.READY_FOR_VERIFICATION if state.factor_id else MfaPhase.IDLE
        return replace(state, phase=back_to, error=event.error)

    if isinstance(event, EnrollOk):
        if phase != MfaPhase.LOADING:
            return state
        return replace(
            state,
            phase=MfaPhase.READY_FOR_VERIFICATION,
            factor_id=event.factor_id,
            qr_code=event.qr_code,
            secret=event.secret,
            error=None,
        )

    if isinstance(event, EnrollFail):
        if phase != MfaPhase.LOADING:
            return state
        return replace(state, phase=MfaPhase.IDLE, error=event.error)

    if isinstance(event, CodeInput):
        if phase != MfaPhase.READY_FOR_VERIFICATION:
            return state
        return replace(state, verify_code=normalize_code(event.raw, state.code_length))

    if isinstance(event, VerifyStart):
        if not state.can_verify:
            raise MfaTransitionError(
                f"verify requires a {state.code_length}-digit code and a factor in "
                f"{MfaPhase.READY_FOR_VERIFICATION.value}, got phase={phase.value} "
                f"code_len={len(state.verify_code)} factor={state.factor_id!r}"
            )
        return replace(state, phase=MfaPhase.VERIFYING, error=None)

    if isinstance(event, VerifyOk):
        if phase != MfaPhase.VERIFYING:
            return state
        return replace(state, phase=MfaPhase.SUCCESS, error=None)

    if isinstance(event, VerifyFail):
        if phase != MfaPhase.VERIFYING:
            return state
        return replace(state, phase=MfaPhase.READY_FOR_VERIFICATION, error=event.error, verify_code="")

    raise TypeError(f"Unknown MFA event: {event!r}")


def _error_message(error: Exception, default: str) -> str:
    if isinstance(error, AuthError):
        return error.message or default
    return str(error) or default


class MfaEnrollmentMachine:
    """
    Drives one enrollment surface.

    Each open/reset/close starts a new generation; provider results that
    come back for an older generation are dropped instead of being applied
    to a state that has since been cleared.
    """

    def __init__(
        self,
        provider: IdentityProvider,
        on_success: Optional[Callable[[], None]] = None,
        on_close: Optional[Callable[[], None]] = None,
        code_length: int = DEFAULT_CODE_LENGTH,
    ):
        self.provider = provider
        self.on_success = on_success
        self.on_close = on_close
        self.state = MfaEnrollmentState(code_length=code_length)
        self._generation = 0

    def dispatch(self, event: MfaEvent) -> MfaEnrollmentState:
        self.state = transition(self.state, event)
        return self.state

    def _is_stale(self, generation: int, step: str) -> bool:
        if generation != self._generation:
            log.debug("Discarding stale MFA %s result (generation %s, now %s)", step, generation, self._generation)
            return True
        return False

    async def open(self) -> MfaEnrollmentState:
        self._generation += 1
        self.dispatch(Open())
        await self._enroll(self._generation)
        return self.state

    async def _enroll(self, generation: int) -> None:
        try:
            enrollment = await self.provider.mfa_enroll()
            if not enrollment.factor_id:
                raise AuthError("Invalid enrollment data received")
        except Exception as e:
            if self._is_stale(generation, "enroll"):
                return
            message = _error_message(e, DEFAULT_ENROLL_ERROR)
            log.error(f"MFA enrollment failed: {message}")
            self.dispatch(EnrollFail(message))
            return

        if self._is_stale(generation, "enroll"):
            return
        log.info(f"MFA factor allocated: {enrollment.factor_id}")
        self.dispatch(EnrollOk(enrollment.factor_id, enrollment.qr_code, enrollment.secret))

    def input_code(self, raw: str) -> MfaEnrollmentState:
        return self.dispatch(CodeInput(raw))

    async def verify(self) -> MfaEnrollmentState:
        self.dispatch(VerifyStart())
        generation = self._generation
        factor_id = self.state.factor_id
        code = self.state.verify_code

        try:
            # Challenges are single-use: request a new one for every attempt.
            challenge = await self.provider.mfa_challenge(factor_id)
            if self._is_stale(generation, "challenge"):
                return self.state
            result = await self.provider.mfa_verify(factor_id, challenge.challenge_id, code)
            if not result.verified:
                raise InvalidCodeError()
        except Exception as e:
            if self._is_stale(generation, "verify"):
                return self.state
            message = _error_message(e, DEFAULT_VERIFY_ERROR)
            log.warning(f"MFA verification failed: {message}")
            self.dispatch(VerifyFail(message))
            return self.state

        if self._is_stale(generation, "verify"):
            return self.state
        self.dispatch(VerifyOk())
        log.info(f"MFA factor verified: {factor_id}")
        if self.on_success is not None:
            self.on_success()
        return self.state

    async def reset(self) -> MfaEnrollmentState:
        self._generation += 1
        generation = self._generation
        self.dispatch(ResetRequested())
        try:
            try:
                await self.provider.mfa_reset()
            except Exception as e:
                if self._is_stale(generation, "reset"):
                    return self.state
                message = _error_message(e, DEFAULT_RESET_ERROR)
                log.error(f"MFA reset failed: {message}")
                self.dispatch(ResetFail(message))
                return self.state

            if self._is_stale(generation, "reset"):
                return self.state
            self.dispatch(ResetDone())
            await self._enroll(generation)
        finally:
            if generation == self._generation and self.state.phase == MfaPhase.RESETTING:
                self.dispatch(ResetFail(DEFAULT_RESET_ERROR))
        return self.state

    def close(self) -> MfaEnrollmentState:
        self._generation += 1
        self.dispatch(Close())
        if self.on_close is not None:
            self.on_close()
        return self.state
