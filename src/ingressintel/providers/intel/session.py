"""Authenticated session state for the Intel client.

A :class:`Session` owns the cookie jar, the CSRF token and the dashboard
API version, and moves through the states of
:class:`~ingressintel.auth.interfaces.AuthState`::

    UNAUTHENTICATED ──ensure──▶ AUTHENTICATING ──ok──▶ AUTHENTICATED
          ▲                         │                      │
          └─────────fail/cancel─────┘                auth failure
                                    ▲                      ▼
                                    └──────ensure────── EXPIRED

Only one login runs at a time.  Callers that arrive while it is in flight
wait on the lock and then reuse its outcome; they never start a second
login, since repeated identity-provider logins are what trigger anti-bot
blocks.

The jar is never edited in place once published: every change builds a new
:class:`~ingressintel.auth.cookies.CookieJar` and swaps the reference, so a
request that already read it sees either the old or the new jar in full.
"""

import asyncio
import logging
from dataclasses import dataclass

import httpx

from ingressintel.auth.cookies import CookieJar
from ingressintel.auth.interfaces import (
    AuthMode,
    AuthState,
    CookiesOnly,
    Credentials,
    LoginFlow,
    LoginResult,
)
from ingressintel.core.exceptions import (
    IntelError,
    SessionExpiredNoCredentialsError,
    TokenNotFoundError,
)
from ingressintel.providers.intel.csrf import (
    CsrfTokenExtractor,
    extract_api_version,
    find_login_url,
)
from ingressintel.providers.intel.login import (
    FacebookLoginFlow,
    raise_for_status,
    read_landing_page,
)
from ingressintel.providers.intel.transport import INTEL_URL, send

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionSnapshot:
    """Immutable view of an authenticated session for one request attempt.

    Attributes:
        cookie_header: Serialised ``Cookie`` header value.
        csrf_token: Value for the ``X-CSRFToken`` header.
        api_version: Dashboard build id sent as ``"v"``.
        generation: Number of the authentication that produced this view.
    """

    cookie_header: str
    csrf_token: str
    api_version: str
    generation: int


class Session:
    """Holder of the cookies and tokens of one Intel identity.

    Args:
        transport: The client used for the landing page and the login.
        mode: :class:`Credentials` to log in automatically, or
            :class:`CookiesOnly` when injected cookies are the only source.
        login_flow: Strategy used in credentials mode.  Defaults to
            :class:`FacebookLoginFlow`.
        extractor: CSRF extraction strategy for the landing page.
        intel_url: Landing page of the service.
    """

    def __init__(
        self,
        transport: httpx.AsyncClient,
        mode: AuthMode,
        login_flow: LoginFlow | None = None,
        extractor: CsrfTokenExtractor | None = None,
        intel_url: str = INTEL_URL,
    ):
        self._transport = transport
        self._mode = mode
        self._extractor = extractor or CsrfTokenExtractor()
        self._intel_url = intel_url
        if login_flow is None and isinstance(mode, Credentials):
            login_flow = FacebookLoginFlow(
                transport, mode, extractor=self._extractor, intel_url=intel_url
            )
        self._login_flow = login_flow

        self._lock = asyncio.Lock()
        self._jar = CookieJar()
        self._csrf_token: str | None = None
        self._api_version: str | None = None
        self._state = AuthState.UNAUTHENTICATED
        self._generation = 0
        self._finished_attempts = 0
        self._last_error: IntelError | None = None

    # -------------------------
    # Accessors
    # -------------------------

    @property
    def state(self) -> AuthState:
        return self._state

    @property
    def mode(self) -> AuthMode:
        return self._mode

    @property
    def cookies(self) -> CookieJar:
        """A copy of the current jar."""
        return self._jar.copy()

    @property
    def csrf_token(self) -> str | None:
        return self._csrf_token

    @property
    def api_version(self) -> str | None:
        return self._api_version

    # -------------------------
    # Cookie mutation
    # -------------------------

    def add_cookie(self, name: str, value: str) -> None:
        """Inject a cookie.

        An expired cookie-only session goes back to ``UNAUTHENTICATED`` so
        the fresh cookies get a chance.
        """
        jar = self._jar.copy()
        jar.add(name, value)
        self._jar = jar
        if self._state is AuthState.EXPIRED and isinstance(self._mode, CookiesOnly):
            self._state = AuthState.UNAUTHENTICATED

    def absorb(self, response: httpx.Response) -> None:
        """Merge cookies set by an API response into the jar."""
        if not response.cookies:
            return
        jar = self._jar.copy()
        jar.update_from_response(response)
        self._jar = jar

    # -------------------------
    # State machine
    # -------------------------

    async def ensure_authenticated(self) -> SessionSnapshot:
        """Return a snapshot of an authenticated session, logging in if needed.

        Returns:
            A :class:`SessionSnapshot` for the next request attempt.

        Raises:
            SessionExpiredNoCredentialsError: The session is expired (or the
                injected cookies were rejected) and there are no
                credentials to log in again.
            AuthError: The login failed; see the concrete subclasses.
            ParseError: The landing page could not be read.
            NetworkError: The transport failed during a cookie-only
                bootstrap.
        """
        if self._is_ready():
            return self._snapshot()

        seen_attempts = self._finished_attempts
        async with self._lock:
            if self._is_ready():
                return self._snapshot()
            if self._finished_attempts != seen_attempts and self._last_error is not None:
                # An attempt finished while we were waiting and it failed.
                raise self._last_error
            if self._state is AuthState.EXPIRED and isinstance(self._mode, CookiesOnly):
                raise SessionExpiredNoCredentialsError(
                    "Intel session expired and no credentials are configured; "
                    "inject fresh cookies"
                )

            self._generation += 1
            self._last_error = None
            self._state = AuthState.AUTHENTICATING
            logger.info("authenticating (attempt %d)", self._generation)
            try:
                result = await self._authenticate()
            except IntelError as e:
                self._last_error = e
                logger.warning("authentication failed: %s", e)
                raise
            else:
                self._commit(result)
            finally:
                self._finished_attempts += 1
                if self._state is AuthState.AUTHENTICATING:
                    self._state = AuthState.UNAUTHENTICATED
            return self._snapshot()

    def invalidate(self, generation: int | None = None) -> None:
        """Mark the session ``EXPIRED`` and drop the CSRF token.

        Args:
            generation: When given, only invalidate if the session is still
                on that authentication.  A failure observed on an older
                snapshot is ignored, because another caller has already
                logged in again.
        """
        if generation is not None and generation != self._generation:
            return
        if self._state is AuthState.AUTHENTICATING:
            return
        logger.info("session expired")
        self._state = AuthState.EXPIRED
        self._csrf_token = None

    # -------------------------
    # Internal helpers
    # -------------------------

    def _is_ready(self) -> bool:
        return (
            self._state is AuthState.AUTHENTICATED
            and self._csrf_token is not None
            and self._api_version is not None
        )

    def _snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            cookie_header=self._jar.to_header_string(),
            csrf_token=self._csrf_token,
            api_version=self._api_version,
            generation=self._generation,
        )

    def _commit(self, result: LoginResult) -> None:
        jar = self._jar.copy()
        jar.merge(result.cookies)
        self._jar = jar
        self._csrf_token = result.csrf_token
        self._api_version = result.api_version
        self._state = AuthState.AUTHENTICATED
        logger.info("authenticated, API version %s", result.api_version)

    async def _authenticate(self) -> LoginResult:
        if isinstance(self._mode, Credentials):
            return await self._login_flow.login(self._jar)
        return await self._bootstrap()

    async def _bootstrap(self) -> LoginResult:
        """Read the token and API version with the injected cookies only."""
        working = self._jar.copy()
        landing = await send(self._transport, "GET", self._intel_url, working)
        raise_for_status(landing)
        html = landing.text
        try:
            extract_api_version(html)
        except TokenNotFoundError:
            if find_login_url(html, "https://"):
                raise SessionExpiredNoCredentialsError(
                    "Intel rejected the injected cookies and no credentials "
                    "are configured"
                ) from None
            raise
        return read_landing_page(html, working, self._extractor)
