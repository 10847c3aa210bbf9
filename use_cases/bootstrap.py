"""Startup orchestration for application bootstrap."""

import logging
from dataclasses import dataclass
from typing import Literal, Tuple

import auth
from utils import session_manager

log = logging.getLogger(__name__)

StartupStatus = Literal["CONTINUE", "STOP"]


@dataclass(frozen=True)
class StartupResult:
    """Result contract for startup/bootstrap orchestration."""

    status: StartupStatus
    planned_steps: Tuple[str, ...]
    reason: str = ""


def run_startup() -> StartupResult:
    """Check configuration and wire the auth objects for this browser session."""
    executed_steps = []

    if not auth.is_provider_configured():
        log.error("Identity provider is not configured (SUPABASE_URL / SUPABASE_ANON_KEY)")
        return StartupResult(
            status="STOP",
            planned_steps=tuple(executed_steps),
            reason="identity_provider_not_configured",
        )
    executed_steps.append("check_provider_config")

    session_manager.init_session_state()
    executed_steps.append("init_session_state")

    session_manager.get_auth_manager()
    executed_steps.append("init_auth_manager")

    return StartupResult(status="CONTINUE", planned_steps=tuple(executed_steps))
