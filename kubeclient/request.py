"""
The generic request shape and the executor contract it is handed to.

An executor takes a fully shaped ``Request`` and either returns the raw
response body or opens a line stream (for watches). Executors raise the
exceptions from ``kubeclient.errors``; the typed client passes them through.
"""

from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterator, Optional, Protocol, runtime_checkable


class Verb(str, Enum):
    """HTTP verbs used by the client."""
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"


JSON_CONTENT_TYPE = "application/json"


@dataclass(frozen=True)
class Request:
    """One call against the API server."""

    verb: Verb
    path: str
    name: Optional[str] = None
    subresources: tuple[str, ...] = ()
    params: tuple[tuple[str, str], ...] = ()
    timeout: Optional[float] = None
    body: Optional[bytes] = None
    content_type: str = JSON_CONTENT_TYPE

    @property
    def url_path(self) -> str:
        """Collection path plus the name and sub-resource segments."""
        segments = [self.path.rstrip("/")]
        if self.name is not None:
            segments.append(self.name)
        segments.extend(self.subresources)
        return "/".join(segments)

    def param(self, key: str) -> Optional[str]:
        """First value for ``key``, if any."""
        for k, v in self.params:
            if k == key:
                return v
        return None

    def param_list(self, key: str) -> list[str]:
        return [v for k, v in self.params if k == key]

    def describe(self) -> str:
        return f"{self.verb.value} {self.url_path}"


@runtime_checkable
class EventStream(Protocol):
    """A long-lived response delivering one raw event per line."""

    def __aiter__(self) -> AsyncIterator[bytes]:
        ...

    async def close(self) -> None:
        """Release the underlying connection. Safe to call twice."""
        ...


@runtime_checkable
class RequestExecutor(Protocol):
    """Transport collaborator consumed by ``ResourceClient``."""

    async def execute(self, request: Request) -> bytes:
        """Perform ``request`` and return the raw response body."""
        ...

    async def stream(self, request: Request) -> EventStream:
        """Perform ``request`` and return its response as a line stream."""
        ...


@dataclass
class RecordedCall:
    """A request as seen by an executor, kept for inspection in tests."""

    request: Request
    streamed: bool = False
