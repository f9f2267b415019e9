import json
import logging
from typing import List, Optional, Tuple

import httpx
from starlette.requests import ClientDisconnect, Request

from oidc_token_proxy.core.constants import JSON_CONTENT_TYPE, NON_FORWARDED_HEADERS
from oidc_token_proxy.core.transformers import BodyTransformer, IdentityTransformer, TransformError
from oidc_token_proxy.models.schemas import ProxyResponse

logger = logging.getLogger(__name__)


class RequestBodyTooLarge(Exception):
    """Raised when the inbound body exceeds the configured limit."""


class ProxyHandler:
    """
    Forwards POST requests to a single backend endpoint.

    The inbound body and headers are sent to the backend unchanged. Responses
    outside the 2xx range are relayed as received; successful responses are
    passed through the configured body transformer first.
    """

    def __init__(
        self,
        backend_url: str,
        transformer: Optional[BodyTransformer] = None,
        *,
        debug: bool = False,
        timeout: Optional[float] = None,
        http2: bool = False,
        max_body_bytes: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.backend_url = backend_url
        self.transformer = transformer or IdentityTransformer()
        self.debug = debug
        self.timeout = timeout
        self.http2 = http2
        self.max_body_bytes = max_body_bytes
        self._transport = transport

    def _create_http_client(self) -> httpx.AsyncClient:
        """Create a client for a single exchange; nothing is shared between requests."""
        return httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout),
            http2=self.http2,
            follow_redirects=False,
            transport=self._transport,
        )

    @staticmethod
    def _error_response(status_code: int, message: str, headers: Optional[dict] = None) -> ProxyResponse:
        """Build a standardized error response."""
        return ProxyResponse(
            status_code=status_code,
            body=json.dumps({"detail": message}).encode(),
            content_type=JSON_CONTENT_TYPE,
            headers=headers or {},
        )

    async def _read_body(self, request: Request) -> bytes:
        """Read the complete inbound body, enforcing max_body_bytes if set."""
        chunks = []
        size = 0
        async for chunk in request.stream():
            size += len(chunk)
            if self.max_body_bytes is not None and size > self.max_body_bytes:
                raise RequestBodyTooLarge(f"request body exceeds {self.max_body_bytes} bytes")
            chunks.append(chunk)
        return b"".join(chunks)

    @staticmethod
    def _forwarded_headers(request: Request) -> List[Tuple[bytes, bytes]]:
        return [
            (key, value)
            for key, value in request.headers.raw
            if key.lower() not in NON_FORWARDED_HEADERS
        ]

    @staticmethod
    def _raw_content_type(response: httpx.Response) -> str:
        # latin-1 maps every byte to one code point, so encoding it again restores the wire bytes
        for key, value in response.headers.raw:
            if key.lower() == b"content-type":
                return value.decode("latin-1")
        return ""

    def _dump_backend_response(self, response: httpx.Response, body: bytes) -> None:
        logger.debug("Debug enabled. Dumping response from backend %s:", self.backend_url)
        logger.debug("Headers:")
        for key in response.headers.keys():
            logger.debug("%s: %s", key, ",".join(response.headers.get_list(key)))
        logger.debug("Body:")
        logger.debug("%s", body.decode(errors="replace"))

    async def handle(self, request: Request) -> ProxyResponse:
        """
        Proxy one inbound request to the backend.

        Args:
            request: The inbound request

        Returns:
            ProxyResponse: The response to relay to the caller
        """
        if request.method != "POST":
            return self._error_response(405, "Invalid request method", headers={"Allow": "POST"})

        try:
            body = await self._read_body(request)
        except RequestBodyTooLarge as e:
            logger.warning("Rejecting request to %s: %s", request.url.path, e)
            return self._error_response(413, "Request body too large")
        except ClientDisconnect:
            logger.warning("Client disconnected while sending request body to %s", request.url.path)
            return self._error_response(500, "Error reading request body")

        async with self._create_http_client() as client:
            try:
                backend_request = client.build_request(
                    "POST",
                    self.backend_url,
                    headers=self._forwarded_headers(request),
                    content=body,
                )
            except httpx.InvalidURL as e:
                logger.error("Invalid backend URL '%s': %s", self.backend_url, e)
                return self._error_response(500, "Error creating outbound request")

            logger.debug("Proxying %s -> %s (%d bytes)", request.url.path, self.backend_url, len(body))

            try:
                backend_response = await client.send(backend_request, stream=True)
            except httpx.TransportError as e:
                logger.error("Connection error while proxying to %s: %s", self.backend_url, e)
                return self._error_response(500, f"Error connecting to backend: {e}")

            try:
                backend_body = await backend_response.aread()
            except httpx.HTTPError as e:
                logger.error("Error reading response from %s: %s", self.backend_url, e)
                return self._error_response(500, f"Error reading response from backend: {e}")
            finally:
                await backend_response.aclose()

        content_type = self._raw_content_type(backend_response)

        if not backend_response.is_success:
            logger.debug(
                "Backend %s returned %d, relaying response unchanged",
                self.backend_url,
                backend_response.status_code,
            )
            return ProxyResponse(
                status_code=backend_response.status_code,
                body=backend_body,
                content_type=content_type,
            )

        if self.debug:
            self._dump_backend_response(backend_response, backend_body)

        try:
            response_body = self.transformer.transform(backend_body)
        except TransformError as e:
            logger.error("Body transformer '%s' failed for %s: %s", self.transformer.name, self.backend_url, e)
            return self._error_response(500, f"Error processing response body transformer: {e}")

        return ProxyResponse(
            status_code=backend_response.status_code,
            body=response_body,
            content_type=content_type,
        )
