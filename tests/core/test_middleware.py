import asyncio
import logging

from oidc_token_proxy.core.middleware import ProxyMiddleware
from oidc_token_proxy.core.proxy import ProxyHandler
from oidc_token_proxy.core.transformers import AccessTokenToIdTokenTransformer
from tests.constants import TestConstants
from tests.factories import MockBackend


def _scope(path: str, method: str = "POST") -> dict:
    return {
        "type": "http",
        "http_version": "1.1",
        "method": method,
        "scheme": "http",
        "server": ("proxy.local", 8080),
        "path": path,
        "root_path": "",
        "query_string": b"",
        "headers": [(b"content-type", b"application/x-www-form-urlencoded")],
    }


async def _receive():
    return {"type": "http.request", "body": TestConstants.TOKEN_REQUEST_BODY, "more_body": False}


class RecordingApp:
    """Downstream ASGI app recording the paths it was asked to serve."""

    def __init__(self):
        self.paths = []

    async def __call__(self, scope, receive, send):
        self.paths.append(scope.get("path"))


def _middleware(backend: MockBackend, app=None) -> ProxyMiddleware:
    handler = ProxyHandler(
        TestConstants.TOKEN_ENDPOINT,
        AccessTokenToIdTokenTransformer(),
        transport=backend.transport,
    )
    return ProxyMiddleware(app or RecordingApp(), handlers={"/token": handler})


def test_proxied_path_is_sent_as_raw_asgi_messages():
    backend = MockBackend()
    sent = []

    async def send(message):
        sent.append(message)

    asyncio.run(_middleware(backend)(_scope("/token"), _receive, send))

    start, body = sent
    assert start["type"] == "http.response.start"
    assert start["status"] == 200
    assert (b"content-type", b"application/json") in start["headers"]
    assert (b"content-length", str(len(TestConstants.TRANSFORMED_TOKEN_RESPONSE_BODY)).encode()) in start["headers"]
    assert body == {
        "type": "http.response.body",
        "body": TestConstants.TRANSFORMED_TOKEN_RESPONSE_BODY,
        "more_body": False,
    }


def test_other_paths_fall_through():
    backend = MockBackend()
    app = RecordingApp()

    async def send(message):
        raise AssertionError("middleware must not respond for unproxied paths")

    middleware = _middleware(backend, app)
    asyncio.run(middleware(_scope("/health", method="GET"), _receive, send))
    asyncio.run(middleware(_scope("/token/extra"), _receive, send))

    assert app.paths == ["/health", "/token/extra"]
    assert backend.call_count == 0


def test_lifespan_scope_is_passed_through():
    app = RecordingApp()

    asyncio.run(_middleware(MockBackend(), app)({"type": "lifespan"}, _receive, None))

    assert app.paths == [None]


def test_write_failure_is_logged_only(caplog):
    backend = MockBackend()

    async def send(message):
        if message["type"] == "http.response.body":
            raise OSError("broken pipe")

    with caplog.at_level(logging.ERROR, logger="oidc_token_proxy.core.middleware"):
        asyncio.run(_middleware(backend)(_scope("/token"), _receive, send))

    assert "Failure sending response to client for /token: broken pipe" in caplog.text
    assert backend.call_count == 1
