"""Token extraction from Intel page markup.

Everything here is a pure function of the HTML it is given.  The markup is
owned by the service and changes without notice, so the matching strategy
lives behind :class:`CsrfTokenExtractor` and can be replaced without
touching the session.
"""

import re

from bs4 import BeautifulSoup

from ingressintel.core.exceptions import TokenNotFoundError

_API_VERSION = re.compile(r"/jsc/gen_dashboard_(\w+)\.js")

_DEFAULT_SCRIPT_PATTERNS = (
    re.compile(r"""\bcsrf_?token\s*=\s*["']([^"']+)["']""", re.IGNORECASE),
    re.compile(r"""["']csrf_?token["']\s*:\s*["']([^"']+)["']""", re.IGNORECASE),
)


class CsrfTokenExtractor:
    """Locate the CSRF token embedded in a page.

    Strategies, first hit wins:

    1. ``<meta name="csrf-token" content="...">``
    2. ``<input name="csrfmiddlewaretoken" value="...">``
    3. An inline ``<script>`` assignment matched by one of
       ``script_patterns`` (group 1 is the token).

    Args:
        meta_name: ``name`` attribute of the meta tag to look for.
        input_name: ``name`` attribute of the hidden form field.
        script_patterns: Compiled regexes tried against each inline script.
    """

    def __init__(
        self,
        meta_name: str = "csrf-token",
        input_name: str = "csrfmiddlewaretoken",
        script_patterns: tuple[re.Pattern, ...] = _DEFAULT_SCRIPT_PATTERNS,
    ):
        self.meta_name = meta_name
        self.input_name = input_name
        self.script_patterns = script_patterns

    def extract(self, html: str) -> str:
        """Return the first CSRF token found in ``html``.

        Raises:
            TokenNotFoundError: If no strategy matches.
        """
        soup = BeautifulSoup(html or "", "html.parser")

        meta = soup.find("meta", attrs={"name": self.meta_name})
        if meta and meta.get("content"):
            return str(meta["content"])

        field = soup.find("input", attrs={"name": self.input_name})
        if field and field.get("value"):
            return str(field["value"])

        for script in soup.find_all("script"):
            text = script.string or ""
            for pattern in self.script_patterns:
                m = pattern.search(text)
                if m:
                    return m.group(1)

        raise TokenNotFoundError("CSRF token not found in page markup")

    def __call__(self, html: str) -> str:
        return self.extract(html)


def extract_api_version(html: str) -> str:
    """Return the dashboard build id from ``gen_dashboard_<id>.js``.

    Every Intel API body carries this value as ``"v"``.

    Raises:
        TokenNotFoundError: If the dashboard script is not referenced.
    """
    m = _API_VERSION.search(html or "")
    if m is None:
        raise TokenNotFoundError("Intel API version not found in page markup")
    return m.group(1)


def find_login_url(html: str, prefix: str) -> str | None:
    """Return the first link in ``html`` whose ``href`` starts with ``prefix``.

    The logged-out Intel landing page links to the identity providers' OAuth
    dialogs; this is how the login flow finds the Facebook one.
    """
    soup = BeautifulSoup(html or "", "html.parser")
    for a in soup.find_all("a", href=True):
        href = str(a["href"])
        if href.startswith(prefix):
            return href
    return None
