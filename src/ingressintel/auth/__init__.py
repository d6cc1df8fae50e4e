"""Authentication layer: cookie jar, interfaces and credential storage."""

from ingressintel.auth.cookies import CookieJar
from ingressintel.auth.interfaces import (
    AuthMode,
    AuthState,
    CookiesOnly,
    Credentials,
    LoginFlow,
    LoginResult,
)

__all__ = [
    "AuthMode",
    "AuthState",
    "CookieJar",
    "CookiesOnly",
    "Credentials",
    "LoginFlow",
    "LoginResult",
]
