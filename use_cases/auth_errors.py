"""Error taxonomy shared by the identity provider boundary and the use cases."""

from enum import Enum
from typing import Optional


class AuthErrorKind(str, Enum):
    INVALID_CREDENTIALS = "InvalidCredentials"
    EMAIL_UNCONFIRMED = "EmailUnconfirmed"
    ALREADY_REGISTERED = "AlreadyRegistered"
    WEAK_PASSWORD = "WeakPassword"
    INVALID_CODE = "InvalidCode"
    NO_ACTIVE_SESSION = "NoActiveSession"
    TRANSPORT = "Transport"


DEFAULT_MESSAGES = {
    AuthErrorKind.INVALID_CREDENTIALS: "Invalid email or password",
    AuthErrorKind.EMAIL_UNCONFIRMED: "Email not confirmed",
    AuthErrorKind.ALREADY_REGISTERED: "User already registered",
    AuthErrorKind.WEAK_PASSWORD: "Password is too weak",
    AuthErrorKind.INVALID_CODE: "Invalid verification code",
    AuthErrorKind.NO_ACTIVE_SESSION: "No active session",
    AuthErrorKind.TRANSPORT: "Network error, please try again",
}


class AuthError(Exception):
    """Provider failure surfaced as ``{kind, message}``."""

    kind = AuthErrorKind.TRANSPORT

    def __init__(self, message: Optional[str] = None, status: Optional[int] = None):
        self.message = message or DEFAULT_MESSAGES[self.kind]
        self.status = status
        super().__init__(self.message)

    def as_dict(self) -> dict:
        return {"kind": self.kind.value, "message": self.message}


class InvalidCredentialsError(AuthError):
    kind = AuthErrorKind.INVALID_CREDENTIALS


class EmailUnconfirmedError(AuthError):
    kind = AuthErrorKind.EMAIL_UNCONFIRMED


class UserAlreadyExistsError(AuthError):
    kind = AuthErrorKind.ALREADY_REGISTERED


class WeakPasswordError(AuthError):
    kind = AuthErrorKind.WEAK_PASSWORD


class InvalidCodeError(AuthError):
    kind = AuthErrorKind.INVALID_CODE


class NoActiveSessionError(AuthError):
    kind = AuthErrorKind.NO_ACTIVE_SESSION


class TransportError(AuthError):
    kind = AuthErrorKind.TRANSPORT


ERROR_TYPES = {
    cls.kind: cls
    for cls in (
        InvalidCredentialsError,
        EmailUnconfirmedError,
        UserAlreadyExistsError,
        WeakPasswordError,
        InvalidCodeError,
        NoActiveSessionError,
        TransportError,
    )
}


def error_for(kind: AuthErrorKind, message: Optional[str] = None, status: Optional[int] = None) -> AuthError:
    return ERROR_TYPES[kind](message, status=status)
