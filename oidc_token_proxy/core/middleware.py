import logging
from typing import Dict, Any

from starlette.requests import Request as StarletteRequest

from oidc_token_proxy.core.proxy import ProxyHandler
from oidc_token_proxy.models.schemas import ProxyResponse

logger = logging.getLogger(__name__)


class ProxyMiddleware:
    """
    Middleware dispatching proxied paths to their ProxyHandler.
    Requests for any other path are passed on to the wrapped application.
    """

    def __init__(self, app, handlers: Dict[str, ProxyHandler]):
        self.app = app
        self.handlers = dict(handlers)
        logger.debug("ProxyMiddleware initialized for paths: %s", ", ".join(sorted(self.handlers)) or "<none>")

    async def _send_proxy_response(self, send, response: ProxyResponse) -> None:
        """Send the proxied response back to the client."""
        headers = [(b'content-length', str(len(response.body)).encode())]
        if response.content_type is not None:
            headers.append((b'content-type', response.content_type.encode('latin-1')))
        headers.extend(
            (k.lower().encode('latin-1'), v.encode('latin-1'))
            for k, v in response.headers.items()
        )

        await send({
            'type': 'http.response.start',
            'status': response.status_code,
            'headers': headers
        })

        await send({
            'type': 'http.response.body',
            'body': response.body,
            'more_body': False
        })

    async def __call__(self, scope: Dict[str, Any], receive, send) -> None:
        """Main middleware entry point."""
        if scope["type"] != "http":
            return await self.app(scope, receive, send)

        handler = self.handlers.get(scope["path"])
        if handler is None:
            return await self.app(scope, receive, send)

        request = StarletteRequest(scope, receive=receive)
        response = await handler.handle(request)

        try:
            await self._send_proxy_response(send, response)
        except OSError as e:
            # Part of the response may already be on the wire
            logger.error("Failure sending response to client for %s: %s", scope["path"], e)
