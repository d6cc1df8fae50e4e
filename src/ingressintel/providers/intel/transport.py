"""HTTP plumbing shared by the login flow, the session and the pipeline.

Cookies are managed by :class:`~ingressintel.auth.cookies.CookieJar`, not by
httpx: every hop carries an explicit ``Cookie`` header built from the jar,
and every ``Set-Cookie`` is merged back into it.  Redirects are therefore
followed by hand, so cookies set on intermediate hops of the OAuth chain are
never lost.
"""

import logging
from urllib.parse import urljoin

import httpx

from ingressintel.auth.cookies import CookieJar
from ingressintel.core.exceptions import (
    ConnectionFailedError,
    ProviderError,
    RequestTimeoutError,
)

logger = logging.getLogger(__name__)

USER_AGENT = (
    "Mozilla/5.0 (X11; Ubuntu; Linux x86_64; rv:78.0) "
    "Gecko/20100101 Firefox/78.0"
)
INTEL_URL = "https://intel.ingress.com/"
DEFAULT_TIMEOUT = 30.0
MAX_REDIRECTS = 10


def build_transport(timeout: float = DEFAULT_TIMEOUT) -> httpx.AsyncClient:
    """Create an ``httpx.AsyncClient`` with the defaults Intel expects.

    Args:
        timeout: Per-request timeout in seconds.

    Returns:
        A client that does not follow redirects on its own.
    """
    return httpx.AsyncClient(
        timeout=httpx.Timeout(timeout),
        follow_redirects=False,
        headers={"User-Agent": USER_AGENT},
    )


async def send(
    transport: httpx.AsyncClient,
    method: str,
    url: str,
    jar: CookieJar,
    *,
    headers: dict[str, str] | None = None,
    data: dict[str, str] | None = None,
    json: dict | None = None,
    follow_redirects: bool = True,
) -> httpx.Response:
    """Send a request with the jar's cookies and collect the ones set back.

    ``jar`` is mutated in place, so callers that must not publish partial
    state pass a copy.

    Args:
        transport: The client used to reach the network.
        method: HTTP method of the first hop.
        url: Absolute URL of the first hop.
        jar: Cookies to send; updated with every ``Set-Cookie`` received.
        headers: Extra headers for every hop.
        data: Form fields, sent form-encoded.
        json: JSON body.
        follow_redirects: Follow 3xx responses up to :data:`MAX_REDIRECTS`
            hops.  301/302/303 turn into a body-less GET.

    Returns:
        The last response received.  Non-2xx statuses are not raised here.

    Raises:
        RequestTimeoutError: If a hop exceeds the transport timeout.
        ConnectionFailedError: On any other transport failure.
        ProviderError: If the redirect chain is longer than allowed.
    """
    hop_headers = {"User-Agent": USER_AGENT}
    if headers:
        hop_headers.update(headers)

    for _ in range(MAX_REDIRECTS + 1):
        request_headers = dict(hop_headers)
        cookie_header = jar.to_header_string()
        if cookie_header:
            request_headers["Cookie"] = cookie_header
        request = transport.build_request(
            method, url, headers=request_headers, data=data, json=json
        )
        try:
            response = await transport.send(request, follow_redirects=False)
        except httpx.TimeoutException as e:
            raise RequestTimeoutError(f"timed out waiting for {url}") from e
        except httpx.TransportError as e:
            raise ConnectionFailedError(
                f"error receiving response from {url}: {e}"
            ) from e

        jar.update_from_response(response)
        logger.debug("%s %s -> %s", method, url, response.status_code)

        if not (follow_redirects and response.is_redirect):
            return response

        url = urljoin(str(response.url), response.headers["Location"])
        if response.status_code not in (307, 308):
            method, data, json = "GET", None, None

    raise ProviderError(f"too many redirects, last hop was {url}")
