"""Ordered cookie storage shared by the login flow and the session."""

from collections.abc import Iterable, Iterator, Mapping

import httpx


class CookieJar:
    """Ordered mapping of cookie name to value.

    A later :meth:`add` with an existing name overwrites the value in place,
    so the header keeps the position of the first insertion.  Nothing is ever
    dropped except by overwrite.

    Unlike :class:`httpx.Cookies` the jar ignores domains and paths: every
    cookie it holds is sent with every request it is attached to.
    """

    def __init__(
        self,
        cookies: Mapping[str, str] | Iterable[tuple[str, str]] | None = None,
    ):
        self._cookies: dict[str, str] = {}
        if cookies is not None:
            items = cookies.items() if isinstance(cookies, Mapping) else cookies
            for name, value in items:
                self.add(name, value)

    @classmethod
    def from_header_string(cls, header: str) -> "CookieJar":
        """Build a jar from a ``Cookie`` header value.

        Args:
            header: A string such as ``"csrftoken=abc; sessionid=xyz"``.
                Fragments without ``=`` are skipped.

        Returns:
            A new :class:`CookieJar` holding the parsed cookies in order.
        """
        jar = cls()
        for fragment in header.split(";"):
            name, sep, value = fragment.strip().partition("=")
            if sep and name:
                jar.add(name, value)
        return jar

    def add(self, name: str, value: str) -> None:
        """Insert a cookie or overwrite the value of an existing one."""
        self._cookies[name] = value

    def merge(self, other: "CookieJar") -> None:
        """Overwrite matching names with ``other``'s values, append the rest."""
        for name, value in other.items():
            self.add(name, value)

    def update_from_response(self, response: httpx.Response) -> None:
        """Absorb every cookie set by ``response``.

        Args:
            response: An httpx response whose ``Set-Cookie`` headers should
                be merged into the jar.
        """
        for cookie in response.cookies.jar:
            if cookie.value is not None:
                self.add(cookie.name, cookie.value)

    def get(self, name: str, default: str | None = None) -> str | None:
        return self._cookies.get(name, default)

    def items(self):
        return self._cookies.items()

    def copy(self) -> "CookieJar":
        return CookieJar(self._cookies)

    def to_dict(self) -> dict[str, str]:
        return dict(self._cookies)

    def to_header_string(self) -> str:
        """Serialise the jar as a ``Cookie`` header value.

        Returns:
            ``"name=value; name2=value2"`` in insertion order, or an empty
            string when the jar is empty.
        """
        return "; ".join(f"{name}={value}" for name, value in self._cookies.items())

    def __contains__(self, name: object) -> bool:
        return name in self._cookies

    def __iter__(self) -> Iterator[str]:
        return iter(self._cookies)

    def __len__(self) -> int:
        return len(self._cookies)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CookieJar):
            return NotImplemented
        return list(self._cookies.items()) == list(other._cookies.items())

    def __repr__(self) -> str:
        # Values are session secrets; only names are shown.
        return f"CookieJar({list(self._cookies)})"
