"""Contract for the remote identity provider consumed by the auth use cases."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple

from use_cases.session_models import AuthenticatedUser, MfaFactor, Session
from use_cases.session_store import SessionListener


@dataclass(frozen=True)
class AuthResult:
    user: AuthenticatedUser
    session: Optional[Session]


@dataclass(frozen=True)
class MfaEnrollment:
    factor_id: str
    qr_code: str
    secret: str
    uri: Optional[str] = None


@dataclass(frozen=True)
class MfaChallenge:
    challenge_id: str
    expires_at: Optional[int] = None


@dataclass(frozen=True)
class MfaVerification:
    verified: bool


class IdentityProvider(ABC):
    """
    Every operation may raise an ``AuthError`` subclass. Implementations own
    the session tokens and push every session change through the listeners
    registered with ``on_auth_state_change``.
    """

    @abstractmethod
    def on_auth_state_change(self, listener: SessionListener) -> Callable[[], None]:
        ...

    @abstractmethod
    async def sign_in(self, email: str, password: str) -> AuthResult:
        ...

    @abstractmethod
    async def sign_up(self, email: str, password: str, profile: Optional[Dict[str, Any]] = None) -> AuthResult:
        ...

    @abstractmethod
    async def sign_out(self) -> None:
        ...

    @abstractmethod
    async def get_session(self) -> Optional[Session]:
        ...

    @abstractmethod
    async def get_current_user(self) -> Optional[AuthenticatedUser]:
        ...

    @abstractmethod
    async def reset_password_request(self, email: str) -> None:
        ...

    @abstractmethod
    async def update_password(self, new_password: str) -> None:
        ...

    @abstractmethod
    async def update_user_metadata(self, metadata: Dict[str, Any]) -> AuthenticatedUser:
        ...

    @abstractmethod
    async def mfa_enroll(self) -> MfaEnrollment:
        ...

    @abstractmethod
    async def mfa_challenge(self, factor_id: str) -> MfaChallenge:
        ...

    @abstractmethod
    async def mfa_verify(self, factor_id: str, challenge_id: str, code: str) -> MfaVerification:
        ...

    @abstractmethod
    async def mfa_list_factors(self) -> Tuple[MfaFactor, ...]:
        ...

    @abstractmethod
    async def mfa_unenroll(self, factor_id: str) -> None:
        ...

    @abstractmethod
    async def mfa_assurance_level(self) -> Tuple[Optional[str], Optional[str]]:
        """Return ``(current_level, next_level)`` for the active session."""

    async def mfa_reset(self) -> None:
        """Revoke every factor so the next enrollment starts clean."""
        factors = await self.mfa_list_factors()
        for factor in factors:
            await self.mfa_unenroll(factor.id)
        if factors:
            await self.update_user_metadata({"isMfaEnabled": False})

    async def has_mfa_enrolled(self) -> bool:
        if await self.get_session() is None:
            return False
        factors = await self.mfa_list_factors()
        return any(f.is_verified and f.factor_type == "totp" for f in factors)
