"""Access gate for protected pages (application layer)."""

from dataclasses import dataclass
from typing import Literal, Optional
from urllib.parse import quote, unquote, urlsplit

from use_cases import rbac_policy
from use_cases.auth_session_manager import AuthSessionManager

AuthFlowStatus = Literal["CHECKING", "REDIRECT", "FORBIDDEN", "CONTINUE"]

LOGIN_PATH = "/login"


@dataclass(frozen=True)
class AuthFlowResult:
    """Result contract for auth gate orchestration."""

    status: AuthFlowStatus
    reason: str
    user_id: Optional[str] = None
    redirect_to: Optional[str] = None
    replace: bool = False


def build_login_redirect(requested_path: str, login_path: str = LOGIN_PATH) -> str:
    if not requested_path or requested_path == login_path:
        return login_path
    return f"{login_path}?next={quote(requested_path, safe='/')}"


def resolve_post_login_target(next_param: Optional[str], default: str = "/") -> str:
    """Return the preserved location, refusing anything that leaves the site."""
    if not next_param:
        return default
    target = unquote(next_param)
    parts = urlsplit(target)
    if parts.scheme or parts.netloc or not target.startswith("/") or target.startswith("//"):
        return default
    return target


def ensure_authenticated_session(
    manager: AuthSessionManager,
    requested_path: str,
    login_path: str = LOGIN_PATH,
    require_mfa: bool = False,
    required_action: Optional[str] = None,
) -> AuthFlowResult:
    """Decide whether a protected page renders, waits, or redirects."""
    status = manager.status()

    if status.kind == "UNKNOWN":
        return AuthFlowResult(status="CHECKING", reason="session_check_pending")

    if status.kind == "UNAUTHENTICATED" or status.user is None:
        return AuthFlowResult(
            status="REDIRECT",
            reason="auth_required",
            redirect_to=build_login_redirect(requested_path, login_path),
            replace=True,
        )

    if require_mfa and (status.session is None or status.session.aal != "aal2"):
        return AuthFlowResult(
            status="REDIRECT",
            reason="mfa_required",
            user_id=status.user.id,
            redirect_to=build_login_redirect(requested_path, login_path),
            replace=True,
        )

    if required_action is not None and not rbac_policy.enforce(status.user, required_action):
        return AuthFlowResult(status="FORBIDDEN", reason="insufficient_rights", user_id=status.user.id)

    return AuthFlowResult(status="CONTINUE", reason="authenticated", user_id=status.user.id)
