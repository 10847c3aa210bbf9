"""Session DTOs shared across application layers."""

import base64
import json
from dataclasses import dataclass
from typing import Any, Dict, Literal, Optional, Tuple

Role = Literal["admin", "user"]
AuthStatusKind = Literal["UNKNOWN", "AUTHENTICATED", "UNAUTHENTICATED"]
AssuranceLevel = Literal["aal1", "aal2"]


@dataclass(frozen=True)
class MfaFactor:
    id: str
    factor_type: str
    status: str
    friendly_name: Optional[str] = None

    @property
    def is_verified(self) -> bool:
        return self.status == "verified"


@dataclass(frozen=True)
class AuthenticatedUser:
    id: str
    email: str
    role: Role
    display_name: str
    mfa_enabled: bool = False
    factors: Tuple[MfaFactor, ...] = ()


@dataclass(frozen=True)
class Session:
    access_token: str
    refresh_token: str
    user: AuthenticatedUser
    expires_at: Optional[int] = None
    token_type: str = "bearer"
    aal: Optional[AssuranceLevel] = None


@dataclass(frozen=True)
class AuthStatus:
    """Projection consumed by the access gate and navigation chrome."""

    kind: AuthStatusKind
    user: Optional[AuthenticatedUser] = None
    session: Optional[Session] = None

    @classmethod
    def unknown(cls) -> "AuthStatus":
        return cls(kind="UNKNOWN")

    @classmethod
    def unauthenticated(cls) -> "AuthStatus":
        return cls(kind="UNAUTHENTICATED")

    @classmethod
    def authenticated(cls, session: Session) -> "AuthStatus":
        return cls(kind="AUTHENTICATED", user=session.user, session=session)

    @property
    def is_known(self) -> bool:
        return self.kind != "UNKNOWN"


def is_admin(user: AuthenticatedUser) -> bool:
    return user.role == "admin"


def has_verified_factor(user: AuthenticatedUser) -> bool:
    return any(f.is_verified for f in user.factors)


def factors_from_payload(raw_factors: Any) -> Tuple[MfaFactor, ...]:
    factors = []
    for raw in raw_factors or []:
        factors.append(
            MfaFactor(
                id=raw["id"],
                factor_type=raw.get("factor_type", "totp"),
                status=raw.get("status", "unverified"),
                friendly_name=raw.get("friendly_name"),
            )
        )
    return tuple(factors)


def user_from_payload(payload: Dict[str, Any]) -> AuthenticatedUser:
    """Build an ``AuthenticatedUser`` from a provider user object.

    Role and display name live in the user metadata the way the admin
    tooling writes them; anything unexpected falls back to a plain user.
    """
    metadata = payload.get("user_metadata") or {}
    app_metadata = payload.get("app_metadata") or {}
    role = app_metadata.get("role") or metadata.get("role")
    if role not in ("admin", "user"):
        role = "user"
    email = payload.get("email") or ""
    display_name = (
        metadata.get("full_name")
        or metadata.get("display_name")
        or metadata.get("name")
        or email.split("@")[0]
    )
    factors = factors_from_payload(payload.get("factors"))
    mfa_enabled = bool(metadata.get("isMfaEnabled")) or any(f.is_verified for f in factors)
    return AuthenticatedUser(
        id=str(payload["id"]),
        email=email,
        role=role,
        display_name=display_name,
        mfa_enabled=mfa_enabled,
        factors=factors,
    )


def _decode_jwt_claims(token: str) -> Dict[str, Any]:
    # Claims are only read for display/gating; the provider verifies signatures.
    try:
        payload = token.split(".")[1]
        pad = "=" * (-len(payload) % 4)
        return json.loads(base64.urlsafe_b64decode(payload + pad).decode("utf-8"))
    except (IndexError, ValueError):
        return {}


def session_from_payload(payload: Dict[str, Any], user: Optional[AuthenticatedUser] = None) -> Session:
    access_token = payload["access_token"]
    claims = _decode_jwt_claims(access_token)
    expires_at = payload.get("expires_at") or claims.get("exp")
    aal = claims.get("aal")
    return Session(
        access_token=access_token,
        refresh_token=payload.get("refresh_token", ""),
        user=user or user_from_payload(payload["user"]),
        expires_at=int(expires_at) if expires_at is not None else None,
        token_type=payload.get("token_type", "bearer"),
        aal=aal if aal in ("aal1", "aal2") else None,
    )
