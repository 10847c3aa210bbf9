"""Authentication session orchestration (application layer)."""

import logging
from typing import Any, Dict, Optional

from use_cases.auth_errors import AuthError, NoActiveSessionError
from use_cases.identity_provider import AuthResult, IdentityProvider
from use_cases.session_models import AuthenticatedUser, AuthStatus, Session
from use_cases.session_store import SessionEvent, SessionStore

log = logging.getLogger(__name__)


class AuthSessionManager:
    """
    Sole writer of the SessionStore.

    Provider pushes are forwarded to the store as they arrive. Results of
    explicit calls are written only when no push landed while the call was
    in flight, so the latest pushed session always wins and the explicit
    result can never roll it back.
    """

    def __init__(self, provider: IdentityProvider, store: SessionStore):
        self.provider = provider
        self.store = store
        self._loading = not store.is_known
        self._unsubscribe_store = store.on_change(self._on_store_change)
        self._unsubscribe_provider = provider.on_auth_state_change(self._on_provider_event)

    @property
    def loading(self) -> bool:
        return self._loading

    def _on_store_change(self, event: SessionEvent, session: Optional[Session]) -> None:
        self._loading = False

    def _on_provider_event(self, event: SessionEvent, session: Optional[Session]) -> None:
        self.store.apply(event, session)

    def _apply_if_unchanged(self, started_at: int, event: SessionEvent, session: Optional[Session]) -> None:
        if self.store.version != started_at:
            log.debug("Skipping %s result: store advanced during the call", event.value)
            return
        self.store.apply(event, session)

    def status(self) -> AuthStatus:
        if self._loading:
            return AuthStatus.unknown()
        current = self.store.get_current()
        if isinstance(current, Session):
            return AuthStatus.authenticated(current)
        return AuthStatus.unauthenticated()

    @property
    def current_user(self) -> Optional[AuthenticatedUser]:
        return self.status().user

    async def initialize(self) -> AuthStatus:
        """Run the first session check; only settles an UNKNOWN store."""
        started_at = self.store.version
        try:
            session = await self.provider.get_session()
        except AuthError as e:
            log.error(f"Initial session check failed: {e.message}")
            session = None
        if not self.store.is_known:
            self._apply_if_unchanged(started_at, SessionEvent.INITIAL_SESSION, session)
        return self.status()

    async def sign_in(self, email: str, password: str) -> AuthResult:
        started_at = self.store.version
        try:
            result = await self.provider.sign_in(email, password)
        except AuthError as e:
            log.warning(f"Sign-in failed: {e.kind.value}")
            raise
        self._apply_if_unchanged(started_at, SessionEvent.SIGNED_IN, result.session)
        log.info(f"User signed in: {result.user.id}")
        return result

    async def sign_up(self, email: str, password: str, profile: Optional[Dict[str, Any]] = None) -> AuthResult:
        started_at = self.store.version
        try:
            result = await self.provider.sign_up(email, password, profile or {})
        except AuthError as e:
            log.warning(f"Sign-up failed: {e.kind.value}")
            raise
        if result.session is not None:
            self._apply_if_unchanged(started_at, SessionEvent.SIGNED_IN, result.session)
        else:
            log.info(f"Sign-up pending email confirmation: {result.user.id}")
        return result

    async def sign_out(self) -> None:
        started_at = self.store.version
        try:
            await self.provider.sign_out()
        except NoActiveSessionError:
            log.info("Sign-out with no active session, treating as signed out")
        except AuthError as e:
            log.error(f"Sign-out failed: {e.message}")
            raise
        self._apply_if_unchanged(started_at, SessionEvent.SIGNED_OUT, None)

    async def reset_password(self, email: str) -> None:
        try:
            await self.provider.reset_password_request(email)
        except AuthError as e:
            log.error(f"Password reset request failed: {e.message}")
            raise

    async def update_password(self, new_password: str) -> None:
        try:
            await self.provider.update_password(new_password)
        except AuthError as e:
            log.error(f"Password update failed: {e.message}")
            raise

    def close(self) -> None:
        self._unsubscribe_provider()
        self._unsubscribe_store()
