import asyncio

import pytest

from conftest import PASSWORD, VALID_CODE
from use_cases import login_flow
from use_cases.auth_errors import AuthError, InvalidCodeError, InvalidCredentialsError


def test_check_mfa_status_without_session(provider):
    assert asyncio.run(login_flow.check_mfa_status(provider)) == login_flow.NO_SESSION_STATUS


def test_login_without_factor_requires_enrollment(manager):
    step = asyncio.run(login_flow.start_login(manager, "  user@example.com ", PASSWORD))
    assert step == login_flow.LoginStep(step="ENROLL")
    assert manager.status().kind == "AUTHENTICATED"


def test_login_with_factor_requires_challenge(provider, manager):
    provider.add_verified_factor("f9")
    step = asyncio.run(login_flow.start_login(manager, "user@example.com", PASSWORD))
    assert step == login_flow.LoginStep(step="VERIFY", factor_id="f9")


def test_login_rejects_bad_password(manager):
    with pytest.raises(InvalidCredentialsError):
        asyncio.run(login_flow.start_login(manager, "user@example.com", "nope"))


def test_verify_login_code_reaches_aal2(provider, manager):
    provider.add_verified_factor("f9")
    asyncio.run(login_flow.start_login(manager, "user@example.com", PASSWORD))

    step = asyncio.run(login_flow.verify_login_code(provider, "f9", "123-456"))

    assert step.step == "DONE"
    assert provider.verify_calls == [("f9", "c1", VALID_CODE)]
    assert manager.status().session.aal == "aal2"
    status = asyncio.run(login_flow.check_mfa_status(provider))
    assert status.requires_challenge is False
    assert status.requires_enrollment is False


def test_incomplete_code_never_reaches_provider(provider, signed_in_manager):
    with pytest.raises(InvalidCodeError) as exc_info:
        asyncio.run(login_flow.verify_login_code(provider, "f9", "12 34"))
    assert exc_info.value.message == "Enter a 6-digit code"
    assert "mfa_challenge" not in provider.calls


def test_wrong_login_code_uses_new_challenge_each_time(provider, signed_in_manager):
    provider.add_verified_factor("f9")
    with pytest.raises(InvalidCodeError):
        asyncio.run(login_flow.verify_login_code(provider, "f9", "000000"))
    asyncio.run(login_flow.verify_login_code(provider, "f9", VALID_CODE))
    assert [c for _, c, _ in provider.verify_calls] == ["c1", "c2"]


def test_after_enrollment_moves_to_challenge(provider, signed_in_manager):
    provider.add_verified_factor("f1")
    step = asyncio.run(login_flow.after_enrollment(provider))
    assert step == login_flow.LoginStep(step="VERIFY", factor_id="f1")


def test_after_enrollment_without_factor_fails(provider, signed_in_manager):
    with pytest.raises(AuthError):
        asyncio.run(login_flow.after_enrollment(provider))


def test_unverified_factors_are_reported(provider, signed_in_manager):
    asyncio.run(provider.mfa_enroll())
    status = asyncio.run(login_flow.check_mfa_status(provider))
    assert status.requires_enrollment is True
    assert [f.id for f in status.unverified_factors] == ["f1"]
