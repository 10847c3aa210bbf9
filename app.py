import streamlit as st

from infrastructure.observability import setup_observability
setup_observability()

import logging

import sentry_sdk

import auth
import ui
from use_cases import auth_flow, bootstrap
from utils import session_manager
from views import login_view, mfa_view

log = logging.getLogger(__name__)

# --- НАСТРОЙКИ СТРАНИЦЫ ---
st.set_page_config(page_title="IT Analyst: Sign in", layout="centered", initial_sidebar_state="expanded")

# Health Check (Basic load-balancer heartbeat)
if st.query_params.get("health") == "1":
    st.write({"status": "ok"})
    st.stop()

ui.setup_style()

# --- STARTUP ORCHESTRATION ---
startup_result = bootstrap.run_startup()
if startup_result.status == "STOP":
    st.error("Authentication is not configured. Set SUPABASE_URL and SUPABASE_ANON_KEY.")
    st.stop()

manager = session_manager.get_auth_manager()
require_mfa = auth.is_mfa_required()

page = st.query_params.get("page", "").strip("/")

# --- LOGIN PAGE ---
if page == "login":
    session_manager.check_and_restore_session()
    status = manager.status()
    mfa_ok = not require_mfa or (status.session is not None and status.session.aal == "aal2")
    if status.kind == "AUTHENTICATED" and mfa_ok and st.session_state.login_step == "LOGIN":
        session_manager.navigate(auth_flow.resolve_post_login_target(st.query_params.get("next")))
    login_view.render_auth_screen(manager, st.query_params.get("next"))
    st.stop()

# --- PROTECTED PAGES ---
PAGES = {
    "": ("🏠 Home", "VIEW_REPORTS"),
    "settings": ("🔐 Security", "MANAGE_MFA"),
}
if page not in PAGES:
    page = ""

gate = auth_flow.ensure_authenticated_session(
    manager,
    "/" + page,
    require_mfa=require_mfa,
    required_action=PAGES[page][1],
)

if gate.status == "CHECKING":
    overlay = ui.show_loading_overlay()
    session_manager.check_and_restore_session()
    overlay.empty()
    st.rerun()

if gate.status == "REDIRECT":
    if gate.reason == "mfa_required":
        # A session below aal2 must not linger outside the login screen.
        log.info(f"Session for {gate.user_id} lacks aal2, signing out before redirect")
        try:
            session_manager.run_async(manager.sign_out())
        except auth.AuthError as e:
            log.warning(f"Sign-out before MFA redirect failed: {e.message}")
        session_manager.reset_login_state()
    session_manager.navigate(gate.redirect_to)

if gate.status == "FORBIDDEN":
    st.error("You do not have permission to view this page.")
    st.stop()

user = manager.current_user

# Build Sentry Context
if sentry_sdk.is_initialized():
    sentry_sdk.set_user({"id": user.id, "role": user.role})
    sentry_sdk.set_tag("app.page", page or "home")

# --- SIDEBAR ---
with st.sidebar:
    st.caption(f"Signed in as **{user.display_name}**")
    for target, (label, _action) in PAGES.items():
        if st.button(label, key=f"nav_{target or 'home'}", use_container_width=True, disabled=target == page):
            session_manager.navigate("/" + target)
    st.divider()
    if st.button("Sign out", key="logout_btn", type="secondary"):
        session_manager.logout()

# --- ТЕЛО СТРАНИЦЫ ---
if page == "settings":
    mfa_view.render_mfa_settings(manager)
else:
    st.title(f"👋 Welcome, {user.display_name}")
    st.write("Your session is protected with two-factor authentication." if user.mfa_enabled else
             "Two-factor authentication is not set up yet.")
    if not user.mfa_enabled and st.button("Set up two-factor authentication", type="primary"):
        session_manager.navigate("/settings")
