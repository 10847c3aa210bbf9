import logging

import streamlit as st

import auth
from use_cases import login_flow
from use_cases.auth_flow import resolve_post_login_target
from utils import session_manager
from views import mfa_view

log = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8


def _finish_login(next_param):
    st.success("Login successful!")
    session_manager.reset_login_state()
    session_manager.navigate(resolve_post_login_target(next_param))


def _apply_step(step, next_param):
    if step.step == "DONE":
        _finish_login(next_param)
    st.session_state.login_step = step.step
    st.session_state.login_factor_id = step.factor_id
    st.rerun()


def reset_to_login(manager):
    mfa_view.discard_enrollment_machine()
    session_manager.reset_login_state()
    try:
        session_manager.run_async(manager.sign_out())
    except auth.AuthError as e:
        log.warning(f"Sign-out while leaving the MFA step failed: {e.message}")
    st.rerun()


def _render_login_tab(manager, next_param):
    with st.form("login_form", clear_on_submit=False):
        email = st.text_input("Email address", placeholder="you@example.com")
        password = st.text_input("Password", type="password")
        submitted = st.form_submit_button("Sign in", type="primary")
        if submitted:
            try:
                with st.spinner("Signing in..."):
                    step = session_manager.run_async(login_flow.start_login(manager, email, password))
            except auth.AuthError as e:
                st.error(e.message)
                return
            _apply_step(step, next_param)


def _render_register_tab(manager):
    with st.form("register_form", clear_on_submit=True):
        full_name = st.text_input("Full name *")
        email = st.text_input("Email *")
        password = st.text_input("Password *", type="password")
        password_confirm = st.text_input("Confirm password *", type="password")
        submitted = st.form_submit_button("Create account")
        if submitted:
            if not all([full_name.strip(), email.strip(), password, password_confirm]):
                st.error("Fill in all required fields.")
            elif password != password_confirm:
                st.error("Passwords do not match.")
            elif len(password) < MIN_PASSWORD_LENGTH:
                st.error(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")
            else:
                try:
                    result = session_manager.run_async(
                        manager.sign_up(email.strip(), password, {"full_name": full_name.strip()})
                    )
                except auth.AuthError as e:
                    st.error(e.message)
                    return
                if result.session is None:
                    st.success("Account created. Check your email to confirm it, then sign in.")
                else:
                    st.success("Account created. You can continue to set up two-factor authentication.")
                    st.session_state.login_step = "ENROLL"
                    st.rerun()


def _render_reset_tab(manager):
    with st.form("reset_password_form", clear_on_submit=True):
        email = st.text_input("Email address")
        submitted = st.form_submit_button("Send reset link")
        if submitted:
            if not email.strip():
                st.error("Enter your email address.")
                return
            try:
                session_manager.run_async(manager.reset_password(email.strip()))
            except auth.AuthError as e:
                st.error(e.message)
                return
            st.success("If that address is registered, a reset link is on its way.")


def _render_enroll_step(manager, next_param):
    outcome = mfa_view.render_enrollment_surface(manager.provider)
    if outcome is None:
        return
    mfa_view.discard_enrollment_machine()
    if outcome == "CLOSED":
        reset_to_login(manager)
        return

    st.toast("MFA enrolled! Now verify to continue.", icon="✅")
    try:
        step = session_manager.run_async(login_flow.after_enrollment(manager.provider))
    except auth.AuthError as e:
        log.error(f"Post-enrollment check failed: {e.message}")
        st.error("MFA enrolled successfully! Please login again to verify.")
        reset_to_login(manager)
        return
    _apply_step(step, next_param)


def _render_verify_step(manager, next_param):
    st.subheader("🔐 Two-Factor Authentication")
    code_length = auth.get_mfa_code_length()
    with st.form("mfa_verify_form", clear_on_submit=True):
        code = st.text_input(
            f"Enter the {code_length}-digit code from your authenticator app",
            max_chars=code_length,
            placeholder="0" * code_length,
        )
        submitted = st.form_submit_button("Verify", type="primary")
        if submitted:
            try:
                with st.spinner("Verifying..."):
                    step = session_manager.run_async(
                        login_flow.verify_login_code(
                            manager.provider,
                            st.session_state.login_factor_id,
                            code,
                            code_length=code_length,
                        )
                    )
            except auth.AuthError as e:
                log.info(f"Login MFA verification failed: {e.kind.value}")
                st.error(e.message if e.kind == auth.AuthErrorKind.TRANSPORT else "Invalid code. Try again.")
                return
            _apply_step(step, next_param)

    if st.button("Back to login", key="mfa_back_btn"):
        reset_to_login(manager)


def render_auth_screen(manager, next_param=None):
    st.title("🔐 Sign in to your account")
    st.caption("IT Support Report Management System")

    step = st.session_state.get("login_step", "LOGIN")
    if step == "ENROLL":
        _render_enroll_step(manager, next_param)
        return
    if step == "VERIFY" and st.session_state.get("login_factor_id"):
        _render_verify_step(manager, next_param)
        return

    tab_login, tab_register, tab_reset = st.tabs(["Sign in", "Register", "Forgot password"])
    with tab_login:
        _render_login_tab(manager, next_param)
    with tab_register:
        _render_register_tab(manager)
    with tab_reset:
        _render_reset_tab(manager)
