"""MFA settings panel use cases."""

import logging
from dataclasses import dataclass

from use_cases.auth_errors import AuthError
from use_cases.auth_session_manager import AuthSessionManager

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class MfaSettingsState:
    enabled: bool


async def load_mfa_settings(manager: AuthSessionManager) -> MfaSettingsState:
    if manager.current_user is None:
        return MfaSettingsState(enabled=False)
    return MfaSettingsState(enabled=await manager.provider.has_mfa_enrolled())


async def reset_mfa_and_sign_out(manager: AuthSessionManager) -> None:
    """Revoke every factor, then end the session so MFA is set up again on next login."""
    try:
        await manager.provider.mfa_reset()
    except AuthError as e:
        log.error(f"MFA reset from settings failed: {e.message}")
        raise
    log.info("MFA factors revoked, signing out")
    await manager.sign_out()
