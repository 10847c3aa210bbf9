"""Application layer contracts for orchestrating high-level flows."""

from .auth_errors import AuthError, AuthErrorKind
from .auth_flow import AuthFlowResult, AuthFlowStatus, ensure_authenticated_session, resolve_post_login_target
from .auth_session_manager import AuthSessionManager
from .identity_provider import AuthResult, IdentityProvider, MfaChallenge, MfaEnrollment, MfaVerification
from .mfa_enrollment import MfaEnrollmentMachine, MfaEnrollmentState, MfaPhase, normalize_code, transition
from .session_models import AuthenticatedUser, AuthStatus, MfaFactor, Role, Session, is_admin
from .session_store import UNKNOWN, SessionEvent, SessionStore

__all__ = [
    "AuthError",
    "AuthErrorKind",
    "AuthFlowResult",
    "AuthFlowStatus",
    "AuthResult",
    "AuthSessionManager",
    "AuthStatus",
    "AuthenticatedUser",
    "IdentityProvider",
    "MfaChallenge",
    "MfaEnrollment",
    "MfaEnrollmentMachine",
    "MfaEnrollmentState",
    "MfaFactor",
    "MfaPhase",
    "MfaVerification",
    "Role",
    "Session",
    "SessionEvent",
    "SessionStore",
    "UNKNOWN",
    "ensure_authenticated_session",
    "is_admin",
    "normalize_code",
    "resolve_post_login_target",
    "transition",
]
