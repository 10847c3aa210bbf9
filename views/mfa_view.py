import streamlit as st

import auth
import ui
from use_cases import mfa_settings
from use_cases.mfa_enrollment import MfaEnrollmentMachine, MfaPhase
from utils import session_manager

CODE_INPUT_KEY = "mfa_code_input"


def _record_outcome(outcome):
    # A close that follows a verified factor keeps the SUCCESS outcome.
    if st.session_state.get("mfa_outcome") == "SUCCESS":
        return
    st.session_state.mfa_outcome = outcome


def get_enrollment_machine(provider) -> MfaEnrollmentMachine:
    machine = st.session_state.get("mfa_machine")
    if machine is None:
        machine = MfaEnrollmentMachine(
            provider,
            on_success=lambda: _record_outcome("SUCCESS"),
            on_close=lambda: _record_outcome("CLOSED"),
            code_length=auth.get_mfa_code_length(),
        )
        st.session_state.mfa_machine = machine
        st.session_state.mfa_outcome = None
        st.session_state[CODE_INPUT_KEY] = ""
    return machine


def discard_enrollment_machine():
    st.session_state.mfa_machine = None
    st.session_state.mfa_outcome = None
    st.session_state.pop(CODE_INPUT_KEY, None)


def _on_code_change():
    machine = st.session_state.get("mfa_machine")
    if machine is None:
        return
    state = machine.input_code(st.session_state.get(CODE_INPUT_KEY, ""))
    st.session_state[CODE_INPUT_KEY] = state.verify_code


def render_enrollment_surface(provider):
    """
    Render the TOTP enrollment surface.

    Returns "SUCCESS" once the new factor is verified, "CLOSED" after the
    user cancels, otherwise None while the surface stays open.
    """
    machine = get_enrollment_machine(provider)

    outcome = st.session_state.get("mfa_outcome")
    if outcome is not None:
        return outcome

    if machine.state.phase == MfaPhase.IDLE and machine.state.error is None:
        with st.spinner("Setting up MFA..."):
            session_manager.run_async(machine.open())

    state = machine.state

    col_title, col_reset = st.columns([4, 1])
    col_title.subheader("Set Up Two-Factor Authentication")
    if not state.is_busy and col_reset.button("Reset MFA", key="mfa_reset_btn", type="secondary"):
        with st.spinner("Resetting MFA..."):
            session_manager.run_async(machine.reset())
        st.rerun()

    if state.phase == MfaPhase.IDLE:
        # Enrollment could not start; offer a retry instead of an empty form.
        st.error(state.error or "Failed to start MFA enrollment")
        c_retry, c_cancel = st.columns(2)
        if c_retry.button("Try again", key="mfa_retry_btn", type="primary"):
            with st.spinner("Setting up MFA..."):
                session_manager.run_async(machine.open())
            st.rerun()
        if c_cancel.button("Cancel", key="mfa_cancel_idle_btn"):
            machine.close()
            st.rerun()
        return None

    if state.qr_code:
        ui.render_qr_code(state.qr_code)
    if state.secret:
        st.caption("Can't scan? Enter this code manually:")
        ui.render_secret(state.secret)

    # Keep the widget mirroring the normalized code (it is cleared after a failed verify).
    if st.session_state.get(CODE_INPUT_KEY) != state.verify_code:
        st.session_state[CODE_INPUT_KEY] = state.verify_code

    st.text_input(
        f"Enter the {state.code_length}-digit code from your authenticator app",
        key=CODE_INPUT_KEY,
        max_chars=state.code_length,
        placeholder="0" * state.code_length,
        disabled=state.input_disabled,
        on_change=_on_code_change,
    )

    if state.error:
        st.error(state.error)

    with st.expander("Instructions", expanded=False):
        st.markdown(
            "1. Open your authenticator app (Google Authenticator, Authy, etc.)\n"
            "2. Scan the QR code or enter the code manually\n"
            f"3. Enter the {state.code_length}-digit code shown in your app\n"
            "4. Click \"Verify and Enable\" to complete setup"
        )

    c_verify, c_cancel = st.columns(2)
    if c_verify.button("Verify and Enable", key="mfa_verify_btn", type="primary", disabled=not state.can_verify):
        with st.spinner("Verifying..."):
            session_manager.run_async(machine.verify())
        if st.session_state.get("mfa_outcome") == "SUCCESS":
            machine.close()
        st.rerun()
    if c_cancel.button("Cancel", key="mfa_cancel_btn", disabled=state.is_busy):
        machine.close()
        st.rerun()

    return None


def render_mfa_settings(manager):
    st.header("Two-Factor Authentication Settings")

    if st.session_state.get("settings_enrolling"):
        outcome = render_enrollment_surface(manager.provider)
        if outcome is None:
            return
        if outcome == "SUCCESS":
            st.toast("MFA has been enabled for your account.", icon="✅")
        discard_enrollment_machine()
        st.session_state.settings_enrolling = False
        st.rerun()

    try:
        with st.spinner("Checking MFA status..."):
            settings = session_manager.run_async(mfa_settings.load_mfa_settings(manager))
    except auth.AuthError as e:
        st.error(f"Could not load MFA status: {e.message}")
        return

    c_label, c_badge = st.columns([3, 1])
    c_label.markdown("**MFA Status**")
    c_label.caption("Enabled and active" if settings.enabled else "Not configured")
    c_badge.markdown("🟢 Active" if settings.enabled else "🔴 Required")

    if settings.enabled:
        st.divider()
        st.caption(
            "If you need to reconfigure your MFA settings (e.g., lost your device or authenticator app), "
            "you can reset them below. You will be logged out and need to set up MFA again on your next login."
        )
        confirmed = st.checkbox("I understand I will be signed out", key="mfa_reset_confirm")
        if st.button("Reset MFA Settings", type="primary", disabled=not confirmed):
            try:
                with st.spinner("Resetting..."):
                    session_manager.run_async(mfa_settings.reset_mfa_and_sign_out(manager))
            except auth.AuthError as e:
                st.error(e.message or "Failed to reset MFA")
                return
            session_manager.reset_login_state()
            st.success("MFA has been reset. Please sign in again.")
            session_manager.navigate("/login")
    else:
        st.warning(
            "Two-factor authentication is required for your account. "
            "You will be prompted to set it up on your next login or when accessing protected features."
        )
        if st.button("Set up now", type="primary"):
            st.session_state.settings_enrolling = True
            st.rerun()
