import asyncio
import logging
import threading
import time
from typing import Any, Callable, Dict, List, Optional, Tuple

import requests

from use_cases.auth_errors import AuthErrorKind, AuthError, NoActiveSessionError, error_for
from use_cases.identity_provider import (
    AuthResult,
    IdentityProvider,
    MfaChallenge,
    MfaEnrollment,
    MfaVerification,
)
from use_cases.session_models import (
    AuthenticatedUser,
    MfaFactor,
    Session,
    factors_from_payload,
    session_from_payload,
    user_from_payload,
)
from use_cases.session_store import SessionEvent, SessionListener

log = logging.getLogger(__name__)

ERROR_CODE_KINDS = {
    "invalid_credentials": AuthErrorKind.INVALID_CREDENTIALS,
    "email_not_confirmed": AuthErrorKind.EMAIL_UNCONFIRMED,
    "user_already_exists": AuthErrorKind.ALREADY_REGISTERED,
    "email_exists": AuthErrorKind.ALREADY_REGISTERED,
    "weak_password": AuthErrorKind.WEAK_PASSWORD,
    "mfa_verification_failed": AuthErrorKind.INVALID_CODE,
    "mfa_challenge_expired": AuthErrorKind.INVALID_CODE,
    "session_not_found": AuthErrorKind.NO_ACTIVE_SESSION,
    "session_expired": AuthErrorKind.NO_ACTIVE_SESSION,
    "refresh_token_not_found": AuthErrorKind.NO_ACTIVE_SESSION,
    "no_authorization": AuthErrorKind.NO_ACTIVE_SESSION,
    "bad_jwt": AuthErrorKind.NO_ACTIVE_SESSION,
}

# Older GoTrue releases only send a human readable message.
MESSAGE_KINDS = [
    ("email not confirmed", AuthErrorKind.EMAIL_UNCONFIRMED),
    ("invalid login credentials", AuthErrorKind.INVALID_CREDENTIALS),
    ("already registered", AuthErrorKind.ALREADY_REGISTERED),
    ("password should be", AuthErrorKind.WEAK_PASSWORD),
    ("invalid totp code", AuthErrorKind.INVALID_CODE),
    ("challenge", AuthErrorKind.INVALID_CODE),
    ("session not found", AuthErrorKind.NO_ACTIVE_SESSION),
]


def map_error_response(status_code: int, payload: Dict[str, Any]) -> AuthError:
    """Translate a GoTrue error body into the auth error taxonomy."""
    code = payload.get("error_code") or payload.get("error")
    if not isinstance(code, str):
        code = None
    message = (
        payload.get("msg")
        or payload.get("error_description")
        or payload.get("message")
        or (payload.get("error") if isinstance(payload.get("error"), str) else None)
        or f"Identity provider error: HTTP {status_code}"
    )

    kind = ERROR_CODE_KINDS.get(code) if code else None
    if kind is None:
        lowered = message.lower()
        for needle, candidate in MESSAGE_KINDS:
            if needle in lowered:
                kind = candidate
                break
    if kind is None:
        kind = AuthErrorKind.TRANSPORT
    return error_for(kind, message, status=status_code)


class GoTrueIdentityProvider(IdentityProvider):
    """
    Supabase Auth (GoTrue) REST client.

    Tokens are kept in memory for the lifetime of this object only. Every
    change of the held session is pushed to the registered listeners in
    the order it happens.
    """

    def __init__(
        self,
        url: str,
        anon_key: str,
        issuer: str = "IT Analyst",
        timeout: float = 10,
        refresh_margin: int = 60,
    ):
        self.base_url = url.rstrip("/") + "/auth/v1"
        self.anon_key = anon_key
        self.issuer = issuer
        self.timeout = timeout
        self.refresh_margin = refresh_margin
        self._session: Optional[Session] = None
        self._listeners: List[SessionListener] = []
        self._lock = threading.RLock()

    # --- push channel ---

    def on_auth_state_change(self, listener: SessionListener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _set_session(self, event: SessionEvent, session: Optional[Session]) -> None:
        with self._lock:
            self._session = session
            for listener in list(self._listeners):
                try:
                    listener(event, session)
                except Exception:
                    log.exception("Auth state listener failed on %s", event.value)

    # --- HTTP ---

    def _headers(self, authorized: bool) -> Dict[str, str]:
        token = self.anon_key
        if authorized:
            if self._session is None:
                raise NoActiveSessionError()
            token = self._session.access_token
        return {
            "apikey": self.anon_key,
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }

    def _request(
        self,
        method: str,
        path: str,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, str]] = None,
        authorized: bool = False,
    ) -> Dict[str, Any]:
        headers = self._headers(authorized)
        try:
            resp = requests.request(
                method,
                f"{self.base_url}{path}",
                headers=headers,
                json=json,
                params=params,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            log.error(f"❌ Identity provider unreachable ({method} {path}): {e}")
            raise error_for(AuthErrorKind.TRANSPORT, f"Identity provider unreachable: {e}") from e

        if resp.status_code >= 400:
            try:
                payload = resp.json()
            except ValueError:
                payload = {"msg": resp.text}
            error = map_error_response(resp.status_code, payload if isinstance(payload, dict) else {})
            log.warning(f"Identity provider rejected {method} {path}: HTTP {resp.status_code} {error.kind.value}")
            raise error

        if resp.status_code == 204 or not resp.content:
            return {}
        try:
            payload = resp.json()
        except ValueError as e:
            log.error(f"❌ Identity provider sent a non-JSON body ({method} {path}): HTTP {resp.status_code}")
            raise error_for(AuthErrorKind.TRANSPORT, "Identity provider returned an unreadable response") from e
        if not isinstance(payload, dict):
            raise error_for(AuthErrorKind.TRANSPORT, "Identity provider returned an unexpected response")
        return payload

    @staticmethod
    def _build(builder: Callable[..., Any], payload: Dict[str, Any]) -> Any:
        try:
            return builder(payload)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            log.error(f"❌ Identity provider response is missing fields: {e!r}")
            raise error_for(AuthErrorKind.TRANSPORT, "Identity provider returned an incomplete response") from e

    # --- session ---

    def _sign_in(self, email: str, password: str) -> AuthResult:
        payload = self._request(
            "POST", "/token", params={"grant_type": "password"}, json={"email": email, "password": password}
        )
        session = self._build(session_from_payload, payload)
        self._set_session(SessionEvent.SIGNED_IN, session)
        return AuthResult(user=session.user, session=session)

    def _sign_up(self, email: str, password: str, profile: Dict[str, Any]) -> AuthResult:
        payload = self._request("POST", "/signup", json={"email": email, "password": password, "data": profile})
        if payload.get("access_token"):
            session = self._build(session_from_payload, payload)
            self._set_session(SessionEvent.SIGNED_IN, session)
            return AuthResult(user=session.user, session=session)
        # Email confirmation pending: the body is the bare user object.
        user_payload = payload.get("user") or payload
        return AuthResult(user=self._build(user_from_payload, user_payload), session=None)

    def _sign_out(self) -> None:
        if self._session is None:
            self._set_session(SessionEvent.SIGNED_OUT, None)
            return
        try:
            self._request("POST", "/logout", params={"scope": "local"}, authorized=True)
        finally:
            self._set_session(SessionEvent.SIGNED_OUT, None)

    def _refresh(self) -> Optional[Session]:
        current = self._session
        if current is None:
            return None
        try:
            payload = self._request(
                "POST", "/token", params={"grant_type": "refresh_token"}, json={"refresh_token": current.refresh_token}
            )
        except AuthError as e:
            if e.kind == AuthErrorKind.TRANSPORT:
                raise
            log.info(f"Session refresh rejected ({e.kind.value}), signing out locally")
            self._set_session(SessionEvent.SIGNED_OUT, None)
            return None
        session = self._build(session_from_payload, payload)
        self._set_session(SessionEvent.TOKEN_REFRESHED, session)
        return session

    def _get_session(self) -> Optional[Session]:
        session = self._session
        if session is None:
            return None
        if session.expires_at is not None and session.expires_at - time.time() < self.refresh_margin:
            return self._refresh()
        return session

    def _get_current_user(self) -> Optional[AuthenticatedUser]:
        if self._session is None:
            return None
        return self._build(user_from_payload, self._request("GET", "/user", authorized=True))

    def _update_user(self, body: Dict[str, Any]) -> AuthenticatedUser:
        user = self._build(user_from_payload, self._request("PUT", "/user", json=body, authorized=True))
        session = self._session
        if session is not None:
            self._set_session(
                SessionEvent.USER_UPDATED,
                Session(
                    access_token=session.access_token,
                    refresh_token=session.refresh_token,
                    user=user,
                    expires_at=session.expires_at,
                    token_type=session.token_type,
                    aal=session.aal,
                ),
            )
        return user

    def _reset_password_request(self, email: str) -> None:
        self._request("POST", "/recover", json={"email": email})

    # --- MFA ---

    def _list_factors(self) -> Tuple[MfaFactor, ...]:
        payload = self._request("GET", "/user", authorized=True)
        return self._build(lambda p: factors_from_payload(p.get("factors")), payload)

    def _unenroll(self, factor_id: str) -> None:
        self._request("DELETE", f"/factors/{factor_id}", authorized=True)

    def _enroll(self) -> MfaEnrollment:
        # A provider keeps at most one pending factor usable; drop leftovers first.
        for factor in self._list_factors():
            if factor.factor_type == "totp" and not factor.is_verified:
                log.info(f"Removing unverified factor {factor.id} before enrollment")
                self._unenroll(factor.id)

        friendly_name = f"Authenticator-{int(time.time() * 1000):x}"
        payload = self._request(
            "POST",
            "/factors",
            json={"factor_type": "totp", "issuer": self.issuer, "friendly_name": friendly_name},
            authorized=True,
        )
        totp = payload.get("totp") or {}
        return MfaEnrollment(
            factor_id=payload.get("id", ""),
            qr_code=totp.get("qr_code", ""),
            secret=totp.get("secret", ""),
            uri=totp.get("uri"),
        )

    def _challenge(self, factor_id: str) -> MfaChallenge:
        payload = self._request("POST", f"/factors/{factor_id}/challenge", authorized=True)
        return self._build(lambda p: MfaChallenge(challenge_id=p["id"], expires_at=p.get("expires_at")), payload)

    def _verify(self, factor_id: str, challenge_id: str, code: str) -> MfaVerification:
        payload = self._request(
            "POST",
            f"/factors/{factor_id}/verify",
            json={"challenge_id": challenge_id, "code": code},
            authorized=True,
        )
        if payload.get("access_token"):
            self._set_session(SessionEvent.MFA_CHALLENGE_VERIFIED, self._build(session_from_payload, payload))
        try:
            self._update_user({"data": {"isMfaEnabled": True}})
        except AuthError as e:
            log.error(f"Could not flag MFA as enabled in user metadata: {e.message}")
        return MfaVerification(verified=True)

    def _assurance_level(self) -> Tuple[Optional[str], Optional[str]]:
        session = self._session
        if session is None:
            return None, None
        has_verified = any(f.is_verified for f in self._list_factors())
        return session.aal, ("aal2" if has_verified else "aal1")

    # --- async contract ---

    async def sign_in(self, email: str, password: str) -> AuthResult:
        return await asyncio.to_thread(self._sign_in, email, password)

    async def sign_up(self, email: str, password: str, profile: Optional[Dict[str, Any]] = None) -> AuthResult:
        return await asyncio.to_thread(self._sign_up, email, password, profile or {})

    async def sign_out(self) -> None:
        await asyncio.to_thread(self._sign_out)

    async def get_session(self) -> Optional[Session]:
        return await asyncio.to_thread(self._get_session)

    async def get_current_user(self) -> Optional[AuthenticatedUser]:
        return await asyncio.to_thread(self._get_current_user)

    async def reset_password_request(self, email: str) -> None:
        await asyncio.to_thread(self._reset_password_request, email)

    async def update_password(self, new_password: str) -> None:
        await asyncio.to_thread(self._update_user, {"password": new_password})

    async def update_user_metadata(self, metadata: Dict[str, Any]) -> AuthenticatedUser:
        return await asyncio.to_thread(self._update_user, {"data": metadata})

    async def mfa_enroll(self) -> MfaEnrollment:
        return await asyncio.to_thread(self._enroll)

    async def mfa_challenge(self, factor_id: str) -> MfaChallenge:
        return await asyncio.to_thread(self._challenge, factor_id)

    async def mfa_verify(self, factor_id: str, challenge_id: str, code: str) -> MfaVerification:
        return await asyncio.to_thread(self._verify, factor_id, challenge_id, code)

    async def mfa_list_factors(self) -> Tuple[MfaFactor, ...]:
        return await asyncio.to_thread(self._list_factors)

    async def mfa_unenroll(self, factor_id: str) -> None:
        await asyncio.to_thread(self._unenroll, factor_id)

    async def mfa_assurance_level(self) -> Tuple[Optional[str], Optional[str]]:
        return await asyncio.to_thread(self._assurance_level)
