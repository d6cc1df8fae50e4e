"""Persistent storage and resolution of Intel credentials.

Two sources are handled here:

* ``cookies.json``: browser cookies for intel.ingress.com (``csrftoken``,
  ``sessionid`` and friends).  Written by ``auth setup``.
* Environment variables: ``INTEL_EMAIL``/``INTEL_PASSWORD`` for the
  Facebook login and ``INTEL_COOKIES`` for a ``name=value; ...`` cookie
  string.

The cookies file is stored under ``~/.config/ingressintel/`` with
permissions restricted to the owner (0o600).  Saving and restoring cookies
is a convenience for embedders; the session itself never touches disk.
"""

import json
import os
from pathlib import Path

from ingressintel.auth.cookies import CookieJar
from ingressintel.auth.interfaces import AuthMode, CookiesOnly, Credentials

_CONFIG_DIR = Path.home() / ".config" / "ingressintel"
_COOKIES_FILE = _CONFIG_DIR / "cookies.json"

_ENV_EMAIL = "INTEL_EMAIL"
_ENV_PASSWORD = "INTEL_PASSWORD"
_ENV_COOKIES = "INTEL_COOKIES"


# ---------------------------------------------------------------------------
# Cookie file
# ---------------------------------------------------------------------------


def save(jar: CookieJar) -> None:
    """Persist a cookie jar to the config file.

    Creates the config directory if it does not already exist and restricts
    file permissions to the owner only.

    Args:
        jar: The cookies to store.  Order is preserved.
    """
    _CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    _COOKIES_FILE.write_text(
        json.dumps({"cookies": jar.to_dict()}, indent=2),
        encoding="utf-8",
    )
    _COOKIES_FILE.chmod(0o600)


def load() -> CookieJar:
    """Load cookies from the config file.

    Returns:
        The stored :class:`CookieJar`, or an empty jar if no file exists or
        it cannot be parsed.
    """
    if not _COOKIES_FILE.exists():
        return CookieJar()
    try:
        data = json.loads(_COOKIES_FILE.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError):
        return CookieJar()
    cookies = data.get("cookies") if isinstance(data, dict) else None
    if not isinstance(cookies, dict):
        return CookieJar()
    return CookieJar({str(k): str(v) for k, v in cookies.items()})


def clear() -> bool:
    """Remove the cookies file.

    Returns:
        ``True`` if the file was deleted, ``False`` if it did not exist.
    """
    if _COOKIES_FILE.exists():
        _COOKIES_FILE.unlink()
        return True
    return False


def credentials_path() -> Path:
    """Return the path to the cookies file."""
    return _COOKIES_FILE


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------


def resolve_mode() -> AuthMode:
    """Return the authentication mode configured in the environment.

    Returns:
        :class:`Credentials` when both ``INTEL_EMAIL`` and
        ``INTEL_PASSWORD`` are set, :class:`CookiesOnly` otherwise.
    """
    email = os.getenv(_ENV_EMAIL)
    password = os.getenv(_ENV_PASSWORD)
    if email and password:
        return Credentials(email=email, password=password)
    return CookiesOnly()


def resolve_cookies() -> CookieJar:
    """Resolve cookies from all available sources.

    Resolution order (later sources overwrite earlier ones):

    1. Cookies stored in ``~/.config/ingressintel/cookies.json``.
    2. The ``INTEL_COOKIES`` environment variable.

    Returns:
        The merged :class:`CookieJar`; empty when nothing is configured.
    """
    jar = load()
    header = os.getenv(_ENV_COOKIES)
    if header:
        jar.merge(CookieJar.from_header_string(header))
    return jar


def credential_source() -> str:
    """Return a human-readable description of where cookies came from.

    Useful for the ``auth status`` CLI command.
    """
    if os.getenv(_ENV_COOKIES):
        return "environment variables"
    return str(credentials_path())
