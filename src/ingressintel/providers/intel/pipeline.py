"""Authenticated request pipeline for the Intel ``/r/`` endpoints.

Every call goes through the same steps: make sure the session is
authenticated, POST the JSON body with the session's cookies and CSRF
header, and classify the answer.  An answer that looks like an expired
session triggers exactly one re-authentication and one retry; anything
else is returned or raised as is.
"""

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol
from urllib.parse import urljoin

import httpx

from ingressintel.auth.cookies import CookieJar
from ingressintel.core.exceptions import (
    MalformedResponseError,
    PersistentAuthFailureError,
    ProviderError,
)
from ingressintel.providers.intel.session import Session, SessionSnapshot
from ingressintel.providers.intel.transport import INTEL_URL, send

logger = logging.getLogger(__name__)

_LOGIN_MARKERS = ("facebook.com", "accounts.google.com", "/login", "/signin")


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------


class ResponseKind(str, Enum):
    """Outcome of classifying an API response."""

    SUCCESS = "success"
    AUTH_FAILURE = "auth_failure"


@dataclass
class Classification:
    """A classified response.

    Attributes:
        kind: Whether the call succeeded or the session looks expired.
        payload: The parsed JSON body on success, ``None`` otherwise.
        reason: Short description of why an auth failure was detected.
    """

    kind: ResponseKind
    payload: Any = None
    reason: str = ""


class ResponseClassifier(Protocol):
    """Anything that can tell a good answer from an expired session.

    Implementations return a :class:`Classification` for success and auth
    failure, and raise for every other kind of failure.
    """

    def classify(self, response: httpx.Response) -> Classification:
        ...


class DefaultResponseClassifier:
    """Detect session expiry the ways Intel has been seen to signal it.

    The exact signature is undocumented and has changed upstream, so every
    rule is configurable.

    Args:
        auth_failure_statuses: Status codes that always mean "log in again".
        login_markers: Substrings of a redirect ``Location`` that point to
            a login page.
        landing_url: Redirects back to this page also count as expiry.
        expected_key: Top-level key a successful JSON body must contain.
            ``None`` disables the check.
    """

    def __init__(
        self,
        auth_failure_statuses: tuple[int, ...] = (401, 403),
        login_markers: tuple[str, ...] = _LOGIN_MARKERS,
        landing_url: str = INTEL_URL,
        expected_key: str | None = "result",
    ):
        self.auth_failure_statuses = auth_failure_statuses
        self.login_markers = login_markers
        self.landing_url = landing_url
        self.expected_key = expected_key

    def classify(self, response: httpx.Response) -> Classification:
        """Classify ``response``.

        Raises:
            ProviderError: For non-auth HTTP errors.
            MalformedResponseError: For a 2xx body that is not JSON.
        """
        status = response.status_code
        if status in self.auth_failure_statuses:
            return _auth_failure(f"HTTP {status}")

        if response.is_redirect:
            location = urljoin(str(response.url), response.headers["Location"])
            if location.rstrip("/") == self.landing_url.rstrip("/") or any(
                marker in location for marker in self.login_markers
            ):
                return _auth_failure(f"redirect to {location}")
            raise ProviderError(
                f"unexpected redirect from {response.url} to {location}",
                status_code=status,
            )

        if not response.is_success:
            raise ProviderError(
                f"unsuccessful response from {response.url}: {status}",
                status_code=status,
            )

        if "text/html" in response.headers.get("Content-Type", ""):
            return _auth_failure("HTML page instead of JSON")

        try:
            payload = response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise MalformedResponseError(
                f"error deserializing response from {response.url}: {e}"
            ) from e

        if self.expected_key is not None and (
            not isinstance(payload, dict) or self.expected_key not in payload
        ):
            return _auth_failure(f"no {self.expected_key!r} in response")
        return Classification(ResponseKind.SUCCESS, payload=payload)


def _auth_failure(reason: str) -> Classification:
    return Classification(ResponseKind.AUTH_FAILURE, reason=reason)


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------


class AuthenticatedRequestPipeline:
    """Send Intel API calls on behalf of a :class:`Session`.

    Args:
        transport: The client used to reach Intel.
        session: The session providing cookies and tokens.
        classifier: Strategy used to detect expired sessions.
        base_url: Root URL; endpoints live under ``<base_url>r/``.
    """

    def __init__(
        self,
        transport: httpx.AsyncClient,
        session: Session,
        classifier: ResponseClassifier | None = None,
        base_url: str = INTEL_URL,
    ):
        self._transport = transport
        self._session = session
        self._classifier = classifier or DefaultResponseClassifier(
            landing_url=base_url
        )
        self._base_url = base_url

    async def call(self, endpoint: str, payload: dict) -> Any:
        """POST ``payload`` to ``endpoint`` and return the parsed JSON.

        Args:
            endpoint: Endpoint name, e.g. ``"getPortalDetails"``.
            payload: JSON body; the API version is added as ``"v"``.

        Returns:
            The decoded JSON body.

        Raises:
            PersistentAuthFailureError: The call was rejected again after
                one re-authentication.
            AuthError: Authentication could not be (re-)established.
            ProviderError: Non-auth HTTP error; not retried.
            MalformedResponseError: Unreadable body; not retried.
            NetworkError: Transport failure; not retried.
        """
        for attempt in range(2):
            snapshot = await self._session.ensure_authenticated()
            response = await self._post(endpoint, payload, snapshot)
            result = self._classifier.classify(response)
            if result.kind is ResponseKind.SUCCESS:
                self._session.absorb(response)
                return result.payload

            logger.info(
                "%s: session rejected (%s) on attempt %d",
                endpoint,
                result.reason,
                attempt + 1,
            )
            self._session.invalidate(snapshot.generation)

        raise PersistentAuthFailureError(
            f"{endpoint} still rejected after re-authentication"
        )

    async def _post(
        self, endpoint: str, payload: dict, snapshot: SessionSnapshot
    ) -> httpx.Response:
        # A throwaway jar: cookies set by the response reach the session
        # through absorb(), and only on success.
        jar = CookieJar.from_header_string(snapshot.cookie_header)
        return await send(
            self._transport,
            "POST",
            urljoin(self._base_url, f"r/{endpoint}"),
            jar,
            headers={
                "Referer": self._base_url,
                "Origin": self._base_url.rstrip("/"),
                "X-CSRFToken": snapshot.csrf_token,
            },
            json={**payload, "v": snapshot.api_version},
            follow_redirects=False,
        )
