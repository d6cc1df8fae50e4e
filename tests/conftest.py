"""Shared fixtures: Intel/Facebook page fixtures and a mocked transport."""

import httpx
import pytest

DASHBOARD_HTML = """
<!DOCTYPE html>
<html>
<head>
<meta name="csrf-token" content="tok-from-markup">
<title>Ingress Intel Map</title>
<script type="text/javascript" src="/jsc/gen_dashboard_0b6ea1c5d9e2.js"></script>
</head>
<body><div id="dashboard_container"></div></body>
</html>
"""

DASHBOARD_HTML_NO_TOKEN = """
<html><head>
<script type="text/javascript" src="/jsc/gen_dashboard_0b6ea1c5d9e2.js"></script>
</head><body></body></html>
"""

LOGGED_OUT_HTML = """
<html><body>
<div class="login">
<a href="https://accounts.google.com/o/oauth2/auth?client_id=1">Sign in with Google</a>
<a href="https://www.facebook.com/v3.2/dialog/oauth?client_id=449856365443419&amp;redirect_uri=https%3A%2F%2Fintel.ingress.com%2F">Sign in with Facebook</a>
</div>
</body></html>
"""


@pytest.fixture()
def dashboard_html():
    return DASHBOARD_HTML


@pytest.fixture()
def dashboard_html_no_token():
    return DASHBOARD_HTML_NO_TOKEN


@pytest.fixture()
def logged_out_html():
    return LOGGED_OUT_HTML


@pytest.fixture()
def make_transport():
    """Return a factory building an AsyncClient around a request handler.

    The handler may be a plain function or a coroutine function; every
    request it sees is recorded on ``client.requests``.
    """

    def _make(handler):
        requests: list[httpx.Request] = []

        async def _record(request: httpx.Request):
            requests.append(request)
            response = handler(request)
            if not isinstance(response, httpx.Response):
                response = await response
            return response

        client = httpx.AsyncClient(transport=httpx.MockTransport(_record))
        client.requests = requests
        return client

    return _make
