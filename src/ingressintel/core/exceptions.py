"""Domain exceptions for the ingressintel library."""


class IntelError(Exception):
    """Base class for all ingressintel library exceptions."""


# ----------------------
# Authentication
# ----------------------


class AuthError(IntelError):
    """Raised when an authenticated session cannot be obtained or kept."""


class InvalidCredentialsError(AuthError):
    """Raised when the identity provider rejects the email/password pair."""


class ChallengeRequiredError(AuthError):
    """Raised when the identity provider answers with a verification page.

    Checkpoints, captchas and two-factor prompts all land here.  They cannot
    be solved by the library; the caller has to log in through a browser and
    inject the resulting cookies instead.
    """


class SessionExpiredNoCredentialsError(AuthError):
    """Raised when a cookie-only session expires.

    Without credentials there is no way to log in again automatically.  The
    caller must supply fresh cookies with ``add_cookie``.
    """


class PersistentAuthFailureError(AuthError):
    """Raised when a call is still rejected after one re-authentication."""


# ----------------------
# Network
# ----------------------


class NetworkError(IntelError):
    """Raised when the transport fails before a response is received."""


class ConnectionFailedError(NetworkError):
    """Raised when a connection cannot be established or is dropped."""


class RequestTimeoutError(NetworkError):
    """Raised when a request exceeds the transport timeout."""


class LoginNetworkError(AuthError, NetworkError):
    """Raised when the transport fails in the middle of the login flow."""


# ----------------------
# Parsing
# ----------------------


class ParseError(IntelError):
    """Raised when a response cannot be interpreted."""


class TokenNotFoundError(ParseError):
    """Raised when a page does not carry the expected token marker."""


class MalformedResponseError(ParseError):
    """Raised when a response body does not have the expected shape."""


# ----------------------
# Other
# ----------------------


class ProviderError(IntelError):
    """Raised when the service answers with a non-auth HTTP error.

    Attributes:
        status_code: The HTTP status code of the failed response.
    """

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class InvalidRequestError(IntelError, ValueError):
    """Raised when a call is rejected before any network traffic."""
