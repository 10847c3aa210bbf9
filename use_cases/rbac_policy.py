"""Centralized Role-Based Access Control logic."""

import logging
from typing import Optional

from use_cases.session_models import AuthenticatedUser

log = logging.getLogger(__name__)

USER_ACTIONS = frozenset({"VIEW_REPORTS", "MANAGE_MFA"})


def enforce(user: Optional[AuthenticatedUser], action: str) -> bool:
    """
    Evaluates if the user is authorized to perform the action.
    Returns True if authorized, False otherwise.
    """
    authorized = False

    if user is not None:
        # Admins get overarching rights to everything
        if user.role == "admin":
            authorized = True
        elif user.role == "user" and action in USER_ACTIONS:
            authorized = True

    if not authorized:
        log.warning(
            "RBAC denied action=%s user=%s role=%s",
            action,
            user.id if user else None,
            user.role if user else None,
        )

    return authorized
