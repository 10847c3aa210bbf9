"""Password + second-factor login orchestration (application layer)."""

import logging
from dataclasses import dataclass
from typing import Literal, Optional, Tuple

from use_cases.auth_errors import AuthError, InvalidCodeError
from use_cases.auth_session_manager import AuthSessionManager
from use_cases.identity_provider import IdentityProvider
from use_cases.mfa_enrollment import DEFAULT_CODE_LENGTH, normalize_code
from use_cases.session_models import MfaFactor

log = logging.getLogger(__name__)

LoginStepName = Literal["LOGIN", "ENROLL", "VERIFY", "DONE"]


@dataclass(frozen=True)
class LoginStep:
    step: LoginStepName
    factor_id: Optional[str] = None


@dataclass(frozen=True)
class MfaStatus:
    requires_enrollment: bool
    requires_challenge: bool
    current_level: Optional[str] = None
    next_level: Optional[str] = None
    factor_id: Optional[str] = None
    factors: Tuple[MfaFactor, ...] = ()

    @property
    def unverified_factors(self) -> Tuple[MfaFactor, ...]:
        return tuple(f for f in self.factors if not f.is_verified)


NO_SESSION_STATUS = MfaStatus(requires_enrollment=False, requires_challenge=False)


async def check_mfa_status(provider: IdentityProvider) -> MfaStatus:
    """Derive what the signed-in user still owes before reaching aal2."""
    if await provider.get_session() is None:
        return NO_SESSION_STATUS

    current_level, next_level = await provider.mfa_assurance_level()
    factors = tuple(f for f in await provider.mfa_list_factors() if f.factor_type == "totp")
    verified = next((f for f in factors if f.is_verified), None)

    return MfaStatus(
        requires_enrollment=verified is None,
        requires_challenge=verified is not None and current_level != "aal2",
        current_level=current_level,
        next_level=next_level,
        factor_id=verified.id if verified else None,
        factors=factors,
    )


async def start_login(manager: AuthSessionManager, email: str, password: str) -> LoginStep:
    """Sign in with a password and report which MFA step comes next."""
    await manager.sign_in(email.strip(), password)

    status = await check_mfa_status(manager.provider)
    if status.requires_enrollment:
        log.info("Signed-in user has no verified factor, enrollment required")
        return LoginStep(step="ENROLL")
    if status.requires_challenge:
        return LoginStep(step="VERIFY", factor_id=status.factor_id)
    return LoginStep(step="DONE")


async def after_enrollment(provider: IdentityProvider) -> LoginStep:
    status = await check_mfa_status(provider)
    if status.factor_id is None:
        raise AuthError("No MFA factor after enrollment")
    if status.requires_challenge:
        return LoginStep(step="VERIFY", factor_id=status.factor_id)
    return LoginStep(step="DONE")


async def verify_login_code(
    provider: IdentityProvider,
    factor_id: str,
    code: str,
    code_length: int = DEFAULT_CODE_LENGTH,
) -> LoginStep:
    """Verify a login code against a freshly issued challenge."""
    code = normalize_code(code, code_length)
    if len(code) != code_length:
        raise InvalidCodeError(f"Enter a {code_length}-digit code")

    challenge = await provider.mfa_challenge(factor_id)
    result = await provider.mfa_verify(factor_id, challenge.challenge_id, code)
    if not result.verified:
        raise InvalidCodeError()
    log.info(f"MFA login challenge verified for factor {factor_id}")
    return LoginStep(step="DONE", factor_id=factor_id)
