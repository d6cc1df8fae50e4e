"""Intel map client built on the authenticated request pipeline."""

from typing import Any

import httpx

from ingressintel.auth.cookies import CookieJar
from ingressintel.auth.interfaces import (
    AuthMode,
    AuthState,
    CookiesOnly,
    Credentials,
    LoginFlow,
)
from ingressintel.core.exceptions import InvalidRequestError
from ingressintel.core.interfaces import IntelProvider
from ingressintel.providers.intel.csrf import CsrfTokenExtractor
from ingressintel.providers.intel.pipeline import (
    AuthenticatedRequestPipeline,
    ResponseClassifier,
)
from ingressintel.providers.intel.session import Session
from ingressintel.providers.intel.transport import INTEL_URL, build_transport


class IntelClient(IntelProvider):
    """Client for the Ingress Intel map's private web API.

    Authentication is selected at construction time.  With an email and
    password the client logs in through Facebook on first use and again
    whenever the session expires.  Without them it runs on injected
    cookies only::

        async with IntelClient() as intel:
            for name, value in browser_cookies.items():
                intel.add_cookie(name, value)
            details = await intel.get_portal_details(guid)

    Args:
        transport: An ``httpx.AsyncClient`` to send requests with.  When
            ``None``, one is created and closed by :meth:`aclose`.
        email: Facebook account email.
        password: Facebook account password.
        mode: Explicit authentication mode; overrides ``email``/``password``.
        login_flow: Login strategy used in credentials mode.
        classifier: Strategy that detects expired sessions.
        extractor: Strategy that reads the CSRF token from Intel markup.
        base_url: Intel landing page.

    Raises:
        ValueError: If only one of ``email`` and ``password`` is given.
    """

    def __init__(
        self,
        transport: httpx.AsyncClient | None = None,
        email: str | None = None,
        password: str | None = None,
        *,
        mode: AuthMode | None = None,
        login_flow: LoginFlow | None = None,
        classifier: ResponseClassifier | None = None,
        extractor: CsrfTokenExtractor | None = None,
        base_url: str = INTEL_URL,
    ):
        if mode is None:
            if (email is None) != (password is None):
                raise ValueError("email and password must be given together")
            mode = (
                Credentials(email=email, password=password)
                if email is not None
                else CookiesOnly()
            )

        self._owns_transport = transport is None
        self._transport = transport or build_transport()
        self.session = Session(
            self._transport,
            mode,
            login_flow=login_flow,
            extractor=extractor,
            intel_url=base_url,
        )
        self._pipeline = AuthenticatedRequestPipeline(
            self._transport, self.session, classifier=classifier, base_url=base_url
        )

    # -------------------------
    # Session
    # -------------------------

    def add_cookie(self, name: str, value: str) -> None:
        """Add a cookie to the session's jar, overwriting any previous value."""
        self.session.add_cookie(name, value)

    def add_cookies(self, jar: CookieJar) -> None:
        """Add every cookie of ``jar`` in order."""
        for name, value in jar.items():
            self.session.add_cookie(name, value)

    @property
    def cookies(self) -> CookieJar:
        """A copy of the session's current cookies, e.g. to persist them."""
        return self.session.cookies

    @property
    def state(self) -> AuthState:
        return self.session.state

    async def login(self) -> None:
        """Authenticate now instead of on the first API call."""
        await self.session.ensure_authenticated()

    # -------------------------
    # Endpoints
    # -------------------------

    async def get_portal_details(self, portal_id: str) -> dict[str, Any]:
        """Return the raw ``getPortalDetails`` answer for a portal.

        Args:
            portal_id: The portal GUID.

        Returns:
            The decoded JSON body.

        Raises:
            InvalidRequestError: If ``portal_id`` is empty.
        """
        if not portal_id or not portal_id.strip():
            raise InvalidRequestError("portal_id must not be empty")
        return await self._pipeline.call("getPortalDetails", {"guid": portal_id})

    async def get_entities(self, tile_keys: list[str]) -> dict[str, Any]:
        """Return the raw ``getEntities`` answer for a set of map tiles.

        Args:
            tile_keys: Tile key strings, e.g. ``"15_17102_11448_0_8_100"``.

        Returns:
            The decoded JSON body.

        Raises:
            InvalidRequestError: If the list is empty or holds an empty key.
        """
        keys = [str(k) for k in tile_keys]
        if not keys or any(not k.strip() for k in keys):
            raise InvalidRequestError("tile_keys must be a non-empty list of keys")
        return await self._pipeline.call("getEntities", {"tileKeys": keys})

    # -------------------------
    # Lifecycle
    # -------------------------

    async def aclose(self) -> None:
        """Close the transport if this client created it."""
        if self._owns_transport:
            await self._transport.aclose()

    async def __aenter__(self) -> "IntelClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()
