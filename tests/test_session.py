from unittest.mock import patch

from conftest import PASSWORD, FakeIdentityProvider
from utils import session_manager


def test_init_session_state(session_state):
    session_manager.init_session_state()
    assert session_state.auth_manager is None
    assert session_state.login_step == "LOGIN"
    assert session_state.login_factor_id is None
    assert session_state.mfa_machine is None
    assert session_state.settings_enrolling is False


def test_init_session_state_keeps_existing_values(session_state):
    session_state.login_step = "VERIFY"
    session_manager.init_session_state()
    assert session_state.login_step == "VERIFY"


@patch("auth.build_identity_provider")
def test_get_auth_manager_is_per_session(mock_build, session_state):
    session_manager.init_session_state()
    mock_build.return_value = FakeIdentityProvider()

    manager = session_manager.get_auth_manager()

    assert session_manager.get_auth_manager() is manager
    assert session_state.identity_provider is mock_build.return_value
    assert session_state.session_store is manager.store
    mock_build.assert_called_once()


@patch("auth.build_identity_provider")
def test_check_and_restore_session_resolves_unknown(mock_build, session_state):
    session_manager.init_session_state()
    mock_build.return_value = FakeIdentityProvider()

    session_manager.check_and_restore_session()

    assert session_manager.get_auth_manager().status().kind == "UNAUTHENTICATED"


@patch("utils.session_manager.st")
def test_navigate_sets_page_and_query(mock_st):
    session_manager.navigate("/settings?tab=mfa")
    mock_st.query_params.from_dict.assert_called_once_with({"tab": "mfa", "page": "settings"})
    mock_st.rerun.assert_called_once()


@patch("streamlit.rerun")
@patch("auth.build_identity_provider")
def test_logout(mock_build, mock_rerun, session_state):
    session_manager.init_session_state()
    mock_build.return_value = FakeIdentityProvider()
    manager = session_manager.get_auth_manager()
    session_manager.run_async(manager.sign_in("user@example.com", PASSWORD))
    session_state.login_step = "VERIFY"
    session_state.login_factor_id = "f1"

    session_manager.logout()

    assert manager.status().kind == "UNAUTHENTICATED"
    assert session_state.login_step == "LOGIN"
    assert session_state.login_factor_id is None
    mock_rerun.assert_called_once()
