"""Facebook login flow for the Intel map.

Intel has no API keys.  A session is obtained the way a browser gets one:

1. log in to Facebook with the account email and password, unless stored
   Intel or Facebook session cookies are still accepted;
2. open Intel and follow its "Sign in with Facebook" OAuth link, which
   bounces back to Intel with ``csrftoken``/``sessionid`` set;
3. read the CSRF token and dashboard API version from the landing page.

Credentials are never logged; only URLs and cookie names are.
"""

import logging
from urllib.parse import urljoin

import httpx
from bs4 import BeautifulSoup

from ingressintel.auth.cookies import CookieJar
from ingressintel.auth.interfaces import Credentials, LoginFlow, LoginResult
from ingressintel.core.exceptions import (
    ChallengeRequiredError,
    InvalidCredentialsError,
    LoginNetworkError,
    MalformedResponseError,
    NetworkError,
    ProviderError,
    TokenNotFoundError,
)
from ingressintel.providers.intel.csrf import (
    CsrfTokenExtractor,
    extract_api_version,
    find_login_url,
)
from ingressintel.providers.intel.transport import INTEL_URL, send

logger = logging.getLogger(__name__)

FACEBOOK_URL = "https://www.facebook.com/"
CSRF_COOKIE = "csrftoken"

_FACEBOOK_LOGIN_PAGE = "https://www.facebook.com/?_fb_noscript=1"
_FACEBOOK_LOGIN_FORM = {"data-testid": "royal_login_form"}
# Facebook's session cookies; ``c_user`` only appears after a real login.
_IDENTITY_COOKIE = "c_user"
_IDENTITY_COOKIES = ("c_user", "xs")
_CHALLENGE_URL_MARKERS = ("/checkpoint", "two_step_verification", "captcha")
_CHALLENGE_INPUTS = ("approvals_code", "captcha_response")


def raise_for_status(response: httpx.Response) -> None:
    """Raise :class:`ProviderError` for a 4xx/5xx response."""
    if response.status_code >= 400:
        raise ProviderError(
            f"unsuccessful response from {response.url}: "
            f"{response.status_code}",
            status_code=response.status_code,
        )


def read_landing_page(
    html: str, jar: CookieJar, extractor: CsrfTokenExtractor
) -> LoginResult:
    """Build a :class:`LoginResult` from the Intel dashboard markup.

    The CSRF token is taken from the markup first; Intel also sets it as the
    ``csrftoken`` cookie, which is used when the markup does not carry it.

    Raises:
        TokenNotFoundError: If the API version or the CSRF token is missing.
    """
    api_version = extract_api_version(html)
    try:
        token = extractor.extract(html)
    except TokenNotFoundError:
        token = jar.get(CSRF_COOKIE)
        if not token:
            raise
    return LoginResult(cookies=jar, csrf_token=token, api_version=api_version)


def _is_dashboard(html: str) -> bool:
    try:
        extract_api_version(html)
    except TokenNotFoundError:
        return False
    return True


def _is_challenge(response: httpx.Response) -> bool:
    """Tell a verification step from a plain login failure.

    Only the final URL and the form controls of the page are looked at,
    never script or body text.
    """
    url = str(response.url).lower()
    if any(marker in url for marker in _CHALLENGE_URL_MARKERS):
        return True
    soup = BeautifulSoup(response.text, "html.parser")
    if soup.find("input", attrs={"name": list(_CHALLENGE_INPUTS)}) is not None:
        return True
    checkpoint = soup.find("form", action=lambda a: bool(a) and "/checkpoint" in a)
    return checkpoint is not None


class FacebookLoginFlow(LoginFlow):
    """Log in to Intel through Facebook.

    Intel session cookies (``csrftoken``) or Facebook identity cookies
    (``c_user``) already present in the jar are tried first, so a jar
    restored from disk skips the Facebook form entirely.  When they are no
    longer accepted the form login is performed once.

    Args:
        transport: The client used to reach Facebook and Intel.
        credentials: Facebook account email and password.
        extractor: Strategy used to read the CSRF token from Intel markup.
        intel_url: Landing page of the service.
    """

    def __init__(
        self,
        transport: httpx.AsyncClient,
        credentials: Credentials,
        extractor: CsrfTokenExtractor | None = None,
        intel_url: str = INTEL_URL,
    ):
        self._transport = transport
        self.credentials = credentials
        self._extractor = extractor or CsrfTokenExtractor()
        self._intel_url = intel_url

    # -------------------------
    # LoginFlow interface
    # -------------------------

    async def login(self, jar: CookieJar) -> LoginResult:
        """Run the handshake on a copy of ``jar``.

        Returns:
            The merged jar, CSRF token and API version.

        Raises:
            InvalidCredentialsError: Facebook rejected the credentials.
            ChallengeRequiredError: Facebook asked for a verification step,
                or did not hand the session back to Intel.
            MalformedResponseError: A page did not have the expected form
                or link.
            LoginNetworkError: The transport failed mid-sequence.
        """
        try:
            return await self._login(jar.copy())
        except LoginNetworkError:
            raise
        except NetworkError as e:
            raise LoginNetworkError(f"network failure during login: {e}") from e

    # -------------------------
    # Internal helpers
    # -------------------------

    async def _login(self, working: CookieJar) -> LoginResult:
        reused_identity = _IDENTITY_COOKIE in working
        result = None
        # Stored Intel or Facebook cookies get one try before the form.
        if reused_identity or CSRF_COOKIE in working:
            result = await self._enter_intel(working)

        if result is None:
            if reused_identity:
                logger.info("stored Facebook cookies rejected, logging in again")
                working = CookieJar(
                    (name, value)
                    for name, value in working.items()
                    if name not in _IDENTITY_COOKIES
                )
            await self._identity_login(working)
            result = await self._enter_intel(working)

        if result is None:
            raise ChallengeRequiredError(
                "Facebook did not hand the session back to Intel"
            )
        logger.info("logged in to Intel, cookies: %s", list(result.cookies))
        return result

    async def _identity_login(self, working: CookieJar) -> None:
        """Submit the Facebook login form; ``working`` gains ``c_user``."""
        page = await send(self._transport, "GET", _FACEBOOK_LOGIN_PAGE, working)
        raise_for_status(page)

        soup = BeautifulSoup(page.text, "html.parser")
        form = soup.find("form", attrs=_FACEBOOK_LOGIN_FORM)
        if form is None or not form.get("action"):
            raise MalformedResponseError("Facebook login form not found")

        fields: dict[str, str] = {}
        for field in form.find_all("input"):
            name = field.get("name")
            if name:
                fields[str(name)] = str(field.get("value", ""))
        fields["email"] = self.credentials.email
        fields["pass"] = self.credentials.password

        url = urljoin(FACEBOOK_URL, str(form["action"]))
        logger.debug("submitting Facebook login form to %s", url)
        response = await send(
            self._transport,
            "POST",
            url,
            working,
            headers={"Referer": FACEBOOK_URL, "Origin": FACEBOOK_URL.rstrip("/")},
            data=fields,
        )

        if _IDENTITY_COOKIE in working:
            return
        if _is_challenge(response):
            raise ChallengeRequiredError(
                "Facebook requires a verification step; log in with a "
                "browser and inject the cookies instead"
            )
        raise InvalidCredentialsError("Facebook login failed")

    async def _enter_intel(self, working: CookieJar) -> LoginResult | None:
        """Follow Intel's Facebook OAuth link back to the dashboard.

        Returns:
            The login result, or ``None`` when the chain did not end on the
            Intel dashboard.
        """
        landing = await send(self._transport, "GET", self._intel_url, working)
        raise_for_status(landing)
        if _is_dashboard(landing.text):
            return read_landing_page(landing.text, working, self._extractor)

        oauth_url = find_login_url(landing.text, FACEBOOK_URL)
        if oauth_url is None:
            raise MalformedResponseError("Intel's Facebook login URL not found")

        response = await send(self._transport, "GET", oauth_url, working)
        raise_for_status(response)
        if not _is_dashboard(response.text):
            return None
        return read_landing_page(response.text, working, self._extractor)
