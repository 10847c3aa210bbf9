import base64
import json

from use_cases.session_models import (
    AuthStatus,
    has_verified_factor,
    is_admin,
    session_from_payload,
    user_from_payload,
)


def _jwt(claims):
    def encode(part):
        return base64.urlsafe_b64encode(json.dumps(part).encode()).decode().rstrip("=")
    return f"{encode({'alg': 'HS256'})}.{encode(claims)}.signature"


USER_PAYLOAD = {
    "id": "3f1c",
    "email": "ann@example.com",
    "user_metadata": {"full_name": "Ann Analyst"},
    "app_metadata": {"role": "admin"},
    "factors": [
        {"id": "f1", "factor_type": "totp", "status": "verified", "friendly_name": "Phone"},
    ],
}


def test_user_from_payload_reads_metadata():
    user = user_from_payload(USER_PAYLOAD)
    assert user.id == "3f1c"
    assert user.role == "admin"
    assert user.display_name == "Ann Analyst"
    assert user.mfa_enabled is True
    assert user.factors[0].is_verified
    assert is_admin(user)
    assert has_verified_factor(user)


def test_user_from_payload_defaults():
    user = user_from_payload({"id": 7, "email": "bob@example.com", "user_metadata": {"role": "root"}})
    assert user.id == "7"
    assert user.role == "user"
    assert user.display_name == "bob"
    assert user.mfa_enabled is False
    assert user.factors == ()


def test_user_from_payload_mfa_flag_in_metadata():
    user = user_from_payload({"id": "u", "email": "c@example.com", "user_metadata": {"isMfaEnabled": True}})
    assert user.mfa_enabled is True
    assert not has_verified_factor(user)


def test_session_from_payload_decodes_claims():
    token = _jwt({"sub": "3f1c", "aal": "aal2", "exp": 1900000000})
    session = session_from_payload({"access_token": token, "refresh_token": "r1", "user": USER_PAYLOAD})
    assert session.aal == "aal2"
    assert session.expires_at == 1900000000
    assert session.refresh_token == "r1"
    assert session.user.email == "ann@example.com"


def test_session_from_payload_tolerates_opaque_token():
    session = session_from_payload({"access_token": "opaque", "expires_at": 100, "user": USER_PAYLOAD})
    assert session.aal is None
    assert session.expires_at == 100
    assert session.token_type == "bearer"


def test_auth_status_projection():
    session = session_from_payload({"access_token": "opaque", "user": USER_PAYLOAD})
    assert AuthStatus.unknown().is_known is False
    assert AuthStatus.unauthenticated().user is None
    status = AuthStatus.authenticated(session)
    assert status.kind == "AUTHENTICATED"
    assert status.user == session.user
