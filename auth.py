import os
import logging

import streamlit as st

from infrastructure.identity.gotrue_provider import GoTrueIdentityProvider
from use_cases.auth_errors import (
    AuthError,
    AuthErrorKind,
    EmailUnconfirmedError,
    InvalidCodeError,
    InvalidCredentialsError,
    NoActiveSessionError,
    TransportError,
    UserAlreadyExistsError,
    WeakPasswordError,
)
from use_cases.mfa_enrollment import DEFAULT_CODE_LENGTH

log = logging.getLogger(__name__)

DEFAULT_MFA_ISSUER = "IT Analyst"
DEFAULT_REQUEST_TIMEOUT = 10

__all__ = [
    "AuthError",
    "AuthErrorKind",
    "EmailUnconfirmedError",
    "InvalidCodeError",
    "InvalidCredentialsError",
    "NoActiveSessionError",
    "TransportError",
    "UserAlreadyExistsError",
    "WeakPasswordError",
    "build_identity_provider",
    "get_mfa_code_length",
    "get_secret",
    "is_provider_configured",
    "is_mfa_required",
]


def get_secret(key):
    try:
        value = st.secrets.get(key)
    except FileNotFoundError:
        value = None
    if value is None:
        value = os.getenv(key)
    return value


def is_provider_configured() -> bool:
    return bool(get_secret("SUPABASE_URL") and get_secret("SUPABASE_ANON_KEY"))


def get_mfa_code_length() -> int:
    raw = get_secret("MFA_CODE_LENGTH")
    if raw is None:
        return DEFAULT_CODE_LENGTH
    try:
        length = int(raw)
    except (TypeError, ValueError):
        log.warning(f"Ignoring invalid MFA_CODE_LENGTH={raw!r}, using {DEFAULT_CODE_LENGTH}")
        return DEFAULT_CODE_LENGTH
    return length if length > 0 else DEFAULT_CODE_LENGTH


def is_mfa_required() -> bool:
    return str(get_secret("REQUIRE_MFA") or "true").lower() == "true"


def build_identity_provider() -> GoTrueIdentityProvider:
    """Create a provider client for one browser session."""
    url = get_secret("SUPABASE_URL")
    anon_key = get_secret("SUPABASE_ANON_KEY")
    if not url or not anon_key:
        raise RuntimeError("SUPABASE_URL and SUPABASE_ANON_KEY must be configured")

    timeout = get_secret("AUTH_REQUEST_TIMEOUT") or DEFAULT_REQUEST_TIMEOUT
    return GoTrueIdentityProvider(
        url,
        anon_key,
        issuer=get_secret("MFA_ISSUER") or DEFAULT_MFA_ISSUER,
        timeout=float(timeout),
    )
