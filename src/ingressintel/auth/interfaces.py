"""Abstract interfaces for the authentication layer.

This module defines the authentication mode a client is built with, the
states a session moves through, and the contract any login strategy must
implement.  It is intentionally free of Intel-specific details so that the
Facebook login can be swapped for another identity provider without
touching the session state machine.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum

from ingressintel.auth.cookies import CookieJar


# ----------------------
# Authentication mode
# ----------------------


@dataclass(frozen=True)
class Credentials:
    """Identity-provider credentials used to log in automatically.

    Attributes:
        email: Login email of the identity-provider account.
        password: Account password.  Never shown by ``repr``.
    """

    email: str
    password: str = field(repr=False)


@dataclass(frozen=True)
class CookiesOnly:
    """No credentials: the injected cookies are the only source of truth.

    When the service stops accepting them, the session cannot recover on
    its own and the caller must inject fresh cookies.
    """


AuthMode = Credentials | CookiesOnly


# ----------------------
# Session state
# ----------------------


class AuthState(str, Enum):
    """Lifecycle states of a :class:`~ingressintel.providers.intel.session.Session`."""

    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    EXPIRED = "expired"


@dataclass
class LoginResult:
    """Everything a successful login or bootstrap produces.

    The session commits these values in a single step, so other callers
    never observe a half-updated jar.

    Attributes:
        cookies: The merged cookie jar after the exchange.
        csrf_token: Value to send in the ``X-CSRFToken`` header.
        api_version: Dashboard build identifier every API body must carry.
    """

    cookies: CookieJar
    csrf_token: str
    api_version: str


# ----------------------
# Login strategy
# ----------------------


class LoginFlow(ABC):
    """Abstract base class for identity-provider login strategies.

    Implementations perform the whole handshake against a private copy of
    the cookie jar and return the result; they must never mutate the
    session themselves.

    Example usage::

        flow = FacebookLoginFlow(transport, Credentials(email, password))
        client = IntelClient(transport, login_flow=flow, mode=flow.credentials)
    """

    @abstractmethod
    async def login(self, jar: CookieJar) -> LoginResult:
        """Log in and return the resulting cookies and tokens.

        Args:
            jar: The cookies currently held by the session.  Implementations
                work on a copy and may reuse cookies already present.

        Returns:
            A :class:`LoginResult` ready to be committed by the session.

        Raises:
            InvalidCredentialsError: If the identity provider rejects the
                credentials.
            ChallengeRequiredError: If the identity provider asks for a
                verification step.
            LoginNetworkError: If the transport fails during the exchange.
        """
