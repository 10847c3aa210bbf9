import asyncio
import logging
from urllib.parse import parse_qsl, urlsplit

import streamlit as st

import auth
from use_cases.auth_session_manager import AuthSessionManager
from use_cases.session_store import SessionStore

log = logging.getLogger(__name__)

"""
SESSION STATE CONTRACT

This module owns the per-browser-session auth objects in st.session_state.

Keys:

identity_provider: IdentityProvider | None
    provider client holding this browser session's tokens
    default: None
    owner: utils/session_manager

session_store: SessionStore | None
    current session cache, written only by auth_manager
    default: None
    owner: utils/session_manager

auth_manager: AuthSessionManager | None
    sign-in/sign-up/sign-out orchestration and AuthStatus projection
    default: None
    owner: utils/session_manager

login_step: str
    "LOGIN" | "ENROLL" | "VERIFY" step of the login screen
    default: "LOGIN"
    owner: views/login_view

login_factor_id: str | None
    verified factor awaiting a login challenge
    default: None
    owner: views/login_view

mfa_machine: MfaEnrollmentMachine | None
    state machine of the open enrollment surface
    default: None
    owner: views/mfa_view

mfa_outcome: str | None
    "SUCCESS" or "CLOSED" once the enrollment surface finished
    default: None
    owner: views/mfa_view

settings_enrolling: bool
    enrollment surface opened from the settings page
    default: False
    owner: views/mfa_view
"""

SESSION_DEFAULTS = {
    "identity_provider": None,
    "session_store": None,
    "auth_manager": None,
    "login_step": "LOGIN",
    "login_factor_id": None,
    "mfa_machine": None,
    "mfa_outcome": None,
    "settings_enrolling": False,
}


def init_session_state():
    for key, default in SESSION_DEFAULTS.items():
        if key not in st.session_state:
            st.session_state[key] = default


def run_async(coro):
    """Drive a coroutine to completion from the Streamlit script thread."""
    return asyncio.run(coro)


def get_auth_manager() -> AuthSessionManager:
    if st.session_state.get("auth_manager") is None:
        provider = auth.build_identity_provider()
        store = SessionStore()
        st.session_state.identity_provider = provider
        st.session_state.session_store = store
        st.session_state.auth_manager = AuthSessionManager(provider, store)
        log.debug("Auth manager created for new browser session")
    return st.session_state.auth_manager


def check_and_restore_session() -> None:
    manager = get_auth_manager()
    if manager.status().kind == "UNKNOWN":
        status = run_async(manager.initialize())
        log.info(f"Initial session check resolved: {status.kind}")


def navigate(target: str):
    """Replace the current location with ``target`` (path + optional query)."""
    parts = urlsplit(target)
    params = dict(parse_qsl(parts.query))
    params["page"] = parts.path.strip("/")
    st.query_params.from_dict(params)
    st.rerun()


def reset_login_state():
    st.session_state.login_step = "LOGIN"
    st.session_state.login_factor_id = None


def logout():
    manager = get_auth_manager()
    try:
        run_async(manager.sign_out())
    except auth.AuthError as e:
        st.warning(f"Signed out locally, provider reported: {e.message}")
    reset_login_state()
    st.session_state.mfa_machine = None
    st.rerun()
