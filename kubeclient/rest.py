"""aiohttp-based request executor talking to a real API server."""

import asyncio
import json
import logging
import ssl
from typing import Any, Optional

import aiohttp
from pydantic import ValidationError

from kubeclient.config import ClientConfig
from kubeclient.errors import ApiError, Timeout, TransportFailure, error_from_status
from kubeclient.meta import Status
from kubeclient.request import Request

logger = logging.getLogger(__name__)

_REASONS = {
    400: "BadRequest",
    401: "Unauthorized",
    403: "Forbidden",
    404: "NotFound",
    405: "MethodNotAllowed",
    409: "Conflict",
    410: "Gone",
    415: "UnsupportedMediaType",
    422: "Invalid",
    429: "TooManyRequests",
    500: "InternalError",
    503: "ServiceUnavailable",
    504: "Timeout",
}


def status_from_response(code: int, body: bytes) -> Status:
    """Decode the ``Status`` of a failed reply, synthesizing one if the body is not a Status."""
    try:
        raw = json.loads(body)
        if isinstance(raw, dict) and raw.get("kind") == "Status":
            status = Status.model_validate(raw)
            if status.code is None:
                status.code = code
            return status
    except (ValueError, ValidationError):
        pass
    text = body.decode(errors="replace").strip() or f"HTTP {code}"
    return Status.failure(code, _REASONS.get(code, "Unknown"), text[:500])


class ResponseStream:
    """Line stream over a streaming aiohttp response."""

    def __init__(self, response: aiohttp.ClientResponse, description: str, has_deadline: bool):
        self._response = response
        self._description = description
        self._has_deadline = has_deadline
        self._closed = False

    def __aiter__(self) -> "ResponseStream":
        return self

    async def __anext__(self) -> bytes:
        if self._closed:
            raise StopAsyncIteration
        try:
            line = await self._response.content.readline()
        except asyncio.TimeoutError as e:
            await self.close()
            if self._has_deadline:
                # The requested watch window is over.
                raise StopAsyncIteration
            raise Timeout(f"{self._description}: read timed out") from e
        except aiohttp.ClientError as e:
            if self._closed:
                raise StopAsyncIteration
            await self.close()
            raise TransportFailure(f"{self._description}: {e}") from e
        if not line:
            await self.close()
            raise StopAsyncIteration
        return line

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        # close() drops the connection instead of draining it back to the pool.
        self._response.close()


class RESTExecutor:
    """Async executor over an ``aiohttp.ClientSession``."""

    def __init__(self, config: Optional[ClientConfig] = None):
        self.config = config or ClientConfig()
        self._session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self) -> "RESTExecutor":
        await self.connect()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def connect(self) -> None:
        """Open the HTTP session."""
        if not self.config.host:
            raise TransportFailure("no API server host configured")
        kwargs: dict[str, Any] = {}
        if self.config.request_timeout is not None:
            kwargs["timeout"] = aiohttp.ClientTimeout(total=self.config.request_timeout)
        self._session = aiohttp.ClientSession(
            headers=self._get_headers(),
            connector=aiohttp.TCPConnector(ssl=self._ssl_context()),
            **kwargs,
        )
        logger.debug(f"Connected to {self.config.host}")

    async def close(self) -> None:
        """Close session."""
        if self._session:
            await self._session.close()
            self._session = None

    def _get_headers(self) -> dict[str, str]:
        headers = {
            "Accept": "application/json",
            "User-Agent": self.config.user_agent,
        }
        if self.config.token:
            headers["Authorization"] = f"Bearer {self.config.token}"
        return headers

    def _ssl_context(self) -> Any:
        if not self.config.host.startswith("https"):
            return True
        if not self.config.verify_ssl:
            return False
        context = ssl.create_default_context(cafile=self.config.ca_file, cadata=self.config.ca_data)
        if self.config.cert_file:
            context.load_cert_chain(self.config.cert_file, self.config.key_file)
        return context

    def _url(self, request: Request) -> str:
        return self.config.host.rstrip("/") + request.url_path

    def _kwargs(self, request: Request, streaming: bool = False) -> dict[str, Any]:
        kwargs: dict[str, Any] = {"params": list(request.params)}
        if request.body is not None:
            kwargs["data"] = request.body
            kwargs["headers"] = {"Content-Type": request.content_type}
        if request.timeout is not None:
            kwargs["timeout"] = aiohttp.ClientTimeout(total=request.timeout)
        elif streaming:
            # Watches without a deadline stay open until closed.
            kwargs["timeout"] = aiohttp.ClientTimeout(total=None)
        return kwargs

    def _require_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            raise TransportFailure("executor is not connected")
        return self._session

    async def execute(self, request: Request) -> bytes:
        session = self._require_session()
        description = request.describe()
        try:
            async with session.request(
                request.verb.value, self._url(request), **self._kwargs(request)
            ) as resp:
                body = await resp.read()
                if resp.status >= 400:
                    raise error_from_status(status_from_response(resp.status, body))
                return body
        except ApiError:
            raise
        except asyncio.TimeoutError as e:
            logger.warning(f"{description} timed out")
            raise Timeout(f"{description}: deadline exceeded") from e
        except aiohttp.ClientError as e:
            logger.warning(f"{description} failed: {e}")
            raise TransportFailure(f"{description}: {e}") from e

    async def stream(self, request: Request) -> ResponseStream:
        session = self._require_session()
        description = request.describe()
        try:
            resp = await session.request(
                request.verb.value, self._url(request), **self._kwargs(request, streaming=True)
            )
        except asyncio.TimeoutError as e:
            raise Timeout(f"{description}: deadline exceeded") from e
        except aiohttp.ClientError as e:
            logger.warning(f"{description} failed: {e}")
            raise TransportFailure(f"{description}: {e}") from e

        if resp.status >= 400:
            try:
                body = await resp.read()
            finally:
                resp.release()
            raise error_from_status(status_from_response(resp.status, body))
        logger.debug(f"Opened stream {description}")
        return ResponseStream(resp, description, request.timeout is not None)
