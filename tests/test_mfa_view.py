import asyncio
from unittest.mock import patch

from use_cases.mfa_enrollment import MfaPhase
from views import mfa_view


@patch("auth.get_mfa_code_length", return_value=6)
def test_enrollment_machine_is_reused_and_reports_outcome(_mock_length, provider, session_state):
    machine = mfa_view.get_enrollment_machine(provider)

    assert mfa_view.get_enrollment_machine(provider) is machine
    assert session_state.mfa_outcome is None

    machine.close()
    assert session_state.mfa_outcome == "CLOSED"

    mfa_view.discard_enrollment_machine()
    assert session_state.mfa_machine is None
    assert mfa_view.CODE_INPUT_KEY not in session_state


@patch("auth.get_mfa_code_length", return_value=6)
def test_code_change_writes_back_normalized_code(_mock_length, signed_in_manager, session_state):
    machine = mfa_view.get_enrollment_machine(signed_in_manager.provider)
    asyncio.run(machine.open())
    assert machine.state.phase == MfaPhase.READY_FOR_VERIFICATION

    session_state[mfa_view.CODE_INPUT_KEY] = "12a34b56"
    mfa_view._on_code_change()

    assert machine.state.verify_code == "123456"
    assert session_state[mfa_view.CODE_INPUT_KEY] == "123456"


@patch("auth.get_mfa_code_length", return_value=6)
def test_close_after_success_keeps_success_outcome(_mock_length, signed_in_manager, session_state):
    machine = mfa_view.get_enrollment_machine(signed_in_manager.provider)
    asyncio.run(machine.open())
    machine.input_code("123456")
    asyncio.run(machine.verify())
    assert session_state.mfa_outcome == "SUCCESS"

    machine.close()

    assert session_state.mfa_outcome == "SUCCESS"
    assert machine.state.phase == MfaPhase.IDLE
