"""
Watch streams.

A ``Watch`` is a lazy, non-restartable async iterator of change events over
an ``EventStream``. It is closed deterministically: on ``close()``, on leaving
an ``async with`` block, on the terminal event, or when the consuming task is
cancelled mid-read.
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Generic, Optional, TypeVar

from pydantic import ValidationError

from kubeclient.errors import ApiError, DecodeFailure, error_from_status
from kubeclient.meta import Status
from kubeclient.request import EventStream

logger = logging.getLogger(__name__)

T = TypeVar("T")


class EventType(str, Enum):
    """Watch event types."""
    ADDED = "ADDED"
    MODIFIED = "MODIFIED"
    DELETED = "DELETED"
    BOOKMARK = "BOOKMARK"
    ERROR = "ERROR"


@dataclass
class WatchEvent(Generic[T]):
    """One change notification."""

    type: EventType
    object: Optional[T] = None
    error: Optional[ApiError] = None
    resource_version: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.type == EventType.ERROR


class Watch(Generic[T]):
    """Typed view over a raw watch stream."""

    def __init__(
        self,
        stream: EventStream,
        decode: Callable[[dict[str, Any]], T],
        resource: str = "",
    ):
        self._stream = stream
        self._lines = stream.__aiter__()
        self._decode = decode
        self._resource = resource
        self._closed = False
        self._done = False

    @property
    def closed(self) -> bool:
        return self._closed

    def __aiter__(self) -> "Watch[T]":
        return self

    async def __anext__(self) -> WatchEvent[T]:
        while True:
            if self._closed or self._done:
                raise StopAsyncIteration
            try:
                line = await self._lines.__anext__()
            except StopAsyncIteration:
                await self.close()
                raise
            except asyncio.CancelledError:
                await self.close()
                raise
            except ApiError as e:
                if self._closed:
                    raise StopAsyncIteration
                # Transport failure mid-stream ends the watch with an ERROR event.
                logger.warning(f"Watch on {self._resource} failed: {e}")
                self._done = True
                await self.close()
                return WatchEvent(type=EventType.ERROR, error=e)

            if not line.strip():
                continue
            try:
                event = self._decode_event(line)
            except DecodeFailure:
                await self.close()
                raise
            if event.is_terminal:
                self._done = True
                await self.close()
            return event

    def _decode_event(self, line: bytes) -> WatchEvent[T]:
        try:
            raw = json.loads(line)
            event_type = EventType(raw["type"])
            obj = raw.get("object") or {}
            if not isinstance(obj, dict):
                raise TypeError("event object is not a mapping")
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise DecodeFailure(
                f"malformed watch event: {line[:200]!r}", operation="watch"
            ) from e

        if event_type == EventType.ERROR:
            try:
                status = Status.model_validate(obj)
            except ValidationError as e:
                raise DecodeFailure("malformed watch error status", operation="watch") from e
            return WatchEvent(
                type=event_type,
                error=error_from_status(status, operation="watch"),
            )

        if event_type == EventType.BOOKMARK:
            metadata = obj.get("metadata") or {}
            return WatchEvent(
                type=event_type,
                resource_version=metadata.get("resourceVersion"),
            )

        decoded = self._decode(obj)
        resource_version = (obj.get("metadata") or {}).get("resourceVersion")
        return WatchEvent(type=event_type, object=decoded, resource_version=resource_version)

    async def close(self) -> None:
        """Stop the watch and release its connection."""
        if self._closed:
            return
        self._closed = True
        logger.debug(f"Closing watch on {self._resource}")
        await self._stream.close()

    async def __aenter__(self) -> "Watch[T]":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()
