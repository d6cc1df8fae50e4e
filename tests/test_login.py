"""Tests for the Facebook login flow against a simulated Facebook and Intel."""

from urllib.parse import parse_qs

import httpx
import pytest

from conftest import DASHBOARD_HTML, LOGGED_OUT_HTML
from ingressintel.auth.cookies import CookieJar
from ingressintel.auth.interfaces import Credentials
from ingressintel.core.exceptions import (
    AuthError,
    ChallengeRequiredError,
    InvalidCredentialsError,
    LoginNetworkError,
    MalformedResponseError,
    NetworkError,
)
from ingressintel.providers.intel.login import FacebookLoginFlow

LOGIN_FORM_HTML = """
<html><body>
<form method="post" data-testid="royal_login_form"
      action="/login/device-based/regular/login/?login_attempt=1&amp;lwv=110">
  <input type="hidden" name="lsd" value="AVq1">
  <input type="hidden" name="jazoest" value="2941">
  <input type="text" name="email">
  <input type="password" name="pass">
  <button type="submit" name="login">Log in</button>
</form>
</body></html>
"""

NO_FORM_HTML = "<html><body><p>Facebook</p></body></html>"

WRONG_PASSWORD_HTML = (
    "<html><body><div>The password that you've entered is incorrect."
    "</div></body></html>"
)


class FakeSites:
    """Request handler standing in for www.facebook.com and intel.ingress.com."""

    def __init__(
        self,
        password="hunter2",
        challenge=False,
        form_html=LOGIN_FORM_HTML,
        failure_html=WRONG_PASSWORD_HTML,
    ):
        self.password = password
        self.challenge = challenge
        self.form_html = form_html
        self.failure_html = failure_html
        self.hosts: list[str] = []
        self.form_pages = 0
        self.submitted: dict[str, list[str]] = {}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        cookies = CookieJar.from_header_string(request.headers.get("cookie", ""))
        self.hosts.append(request.url.host)
        url = request.url
        if url.host == "www.facebook.com":
            return self._facebook(request, cookies)
        if url.host == "intel.ingress.com":
            return self._intel(request, cookies)
        return httpx.Response(404)

    def _facebook(self, request, cookies):
        url = request.url
        if request.method == "GET" and url.path == "/":
            if "_fb_noscript" in url.params:
                self.form_pages += 1
                return httpx.Response(
                    200,
                    headers=[("Set-Cookie", "datr=d1; Path=/")],
                    html=self.form_html,
                )
            return httpx.Response(200, html="<html>News Feed</html>")

        if request.method == "POST" and url.path == "/login/device-based/regular/login/":
            self.submitted = parse_qs(request.content.decode())
            if self.challenge:
                return httpx.Response(
                    302, headers={"Location": "/checkpoint/?next=%2F"}
                )
            if self.submitted.get("pass") != [self.password]:
                return httpx.Response(200, html=self.failure_html)
            return httpx.Response(
                302,
                headers=[
                    ("Location", "https://www.facebook.com/"),
                    ("Set-Cookie", "c_user=1000; Path=/"),
                    ("Set-Cookie", "xs=fresh; Path=/"),
                ],
            )

        if url.path.startswith("/checkpoint"):
            return httpx.Response(200, html="<html>Security check</html>")

        if url.path == "/v3.2/dialog/oauth":
            if cookies.get("c_user") == "1000":
                return httpx.Response(
                    302, headers={"Location": "https://intel.ingress.com/?code=abc"}
                )
            return httpx.Response(200, html="<html>Log in to continue</html>")

        return httpx.Response(404)

    def _intel(self, request, cookies):
        if request.url.params.get("code") == "abc":
            return httpx.Response(
                302,
                headers=[
                    ("Location", "/"),
                    ("Set-Cookie", "csrftoken=csrf-cookie; Path=/"),
                    ("Set-Cookie", "sessionid=sess; Path=/"),
                ],
            )
        if cookies.get("sessionid") == "sess":
            return httpx.Response(200, html=DASHBOARD_HTML)
        return httpx.Response(200, html=LOGGED_OUT_HTML)


@pytest.fixture()
def credentials():
    return Credentials(email="agent@example.com", password="hunter2")


class TestFacebookLoginFlow:
    @pytest.mark.asyncio
    async def test_successful_login(self, make_transport, credentials):
        sites = FakeSites()
        flow = FacebookLoginFlow(make_transport(sites), credentials)

        result = await flow.login(CookieJar())

        assert result.csrf_token == "tok-from-markup"
        assert result.api_version == "0b6ea1c5d9e2"
        for name in ("datr", "c_user", "xs", "csrftoken", "sessionid"):
            assert name in result.cookies
        assert sites.submitted["email"] == ["agent@example.com"]
        assert sites.submitted["lsd"] == ["AVq1"]

    @pytest.mark.asyncio
    async def test_input_jar_is_not_modified(self, make_transport, credentials):
        jar = CookieJar({"ingress.intelmap.zoom": "15"})
        flow = FacebookLoginFlow(make_transport(FakeSites()), credentials)

        result = await flow.login(jar)

        assert jar.to_dict() == {"ingress.intelmap.zoom": "15"}
        assert result.cookies.get("ingress.intelmap.zoom") == "15"

    @pytest.mark.asyncio
    async def test_stored_identity_skips_form(self, make_transport, credentials):
        sites = FakeSites()
        flow = FacebookLoginFlow(make_transport(sites), credentials)

        result = await flow.login(CookieJar({"c_user": "1000", "xs": "stored"}))

        assert sites.form_pages == 0
        assert result.cookies.get("xs") == "stored"

    @pytest.mark.asyncio
    async def test_stale_identity_logs_in_again(self, make_transport, credentials):
        sites = FakeSites()
        flow = FacebookLoginFlow(make_transport(sites), credentials)

        result = await flow.login(CookieJar({"c_user": "999", "xs": "stale"}))

        assert sites.form_pages == 1
        assert result.cookies.get("c_user") == "1000"
        assert result.cookies.get("xs") == "fresh"

    @pytest.mark.asyncio
    async def test_stored_intel_session_skips_facebook(self, make_transport, credentials):
        sites = FakeSites()
        flow = FacebookLoginFlow(make_transport(sites), credentials)

        result = await flow.login(CookieJar({"csrftoken": "csrf-cookie", "sessionid": "sess"}))

        assert sites.hosts == ["intel.ingress.com"]
        assert result.csrf_token == "tok-from-markup"
        assert "c_user" not in result.cookies

    @pytest.mark.asyncio
    async def test_stale_intel_session_logs_in(self, make_transport, credentials):
        sites = FakeSites()
        flow = FacebookLoginFlow(make_transport(sites), credentials)

        result = await flow.login(CookieJar({"csrftoken": "old", "sessionid": "expired"}))

        assert sites.form_pages == 1
        assert result.cookies.get("sessionid") == "sess"
        assert result.cookies.get("c_user") == "1000"

    @pytest.mark.asyncio
    async def test_captcha_script_is_not_a_challenge(self, make_transport, credentials):
        page = (
            "<html><body><div>The password that you've entered is incorrect.</div>"
            "<script>window.__captchaConfig = {enabled: false};</script>"
            "</body></html>"
        )
        sites = FakeSites(password="other", failure_html=page)
        flow = FacebookLoginFlow(make_transport(sites), credentials)

        with pytest.raises(InvalidCredentialsError):
            await flow.login(CookieJar())

    @pytest.mark.asyncio
    async def test_approvals_code_form_is_a_challenge(self, make_transport, credentials):
        page = (
            '<html><body><form method="post" action="/login/approvals">'
            '<input type="text" name="approvals_code"></form></body></html>'
        )
        sites = FakeSites(password="other", failure_html=page)
        flow = FacebookLoginFlow(make_transport(sites), credentials)

        with pytest.raises(ChallengeRequiredError):
            await flow.login(CookieJar())

    @pytest.mark.asyncio
    async def test_wrong_password(self, make_transport, credentials):
        sites = FakeSites(password="other")
        flow = FacebookLoginFlow(make_transport(sites), credentials)

        with pytest.raises(InvalidCredentialsError):
            await flow.login(CookieJar())

    @pytest.mark.asyncio
    async def test_checkpoint_is_a_challenge(self, make_transport, credentials):
        sites = FakeSites(challenge=True)
        flow = FacebookLoginFlow(make_transport(sites), credentials)

        with pytest.raises(ChallengeRequiredError):
            await flow.login(CookieJar())

    @pytest.mark.asyncio
    async def test_missing_form(self, make_transport, credentials):
        sites = FakeSites(form_html=NO_FORM_HTML)
        flow = FacebookLoginFlow(make_transport(sites), credentials)

        with pytest.raises(MalformedResponseError):
            await flow.login(CookieJar())

    @pytest.mark.asyncio
    async def test_network_failure_is_a_login_error(self, make_transport, credentials):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        flow = FacebookLoginFlow(make_transport(handler), credentials)

        with pytest.raises(LoginNetworkError) as exc_info:
            await flow.login(CookieJar())

        assert isinstance(exc_info.value, AuthError)
        assert isinstance(exc_info.value, NetworkError)

    def test_password_not_in_repr(self, credentials):
        assert "hunter2" not in repr(credentials)
