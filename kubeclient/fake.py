"""
In-memory request executor.

``FakeExecutor`` answers ``Request`` objects the way the API server would for
the resource kinds registered with it: it keeps the canonical records, assigns
server fields, applies kind defaults, validates against the kind's model,
enforces resourceVersion concurrency and the status sub-resource split, and
fans change events out to open watches.

Reactors let a test intercept any call before the store sees it, e.g. to
inject a transport failure or a per-item error during DeleteCollection.

Example:
    >>> fake = FakeExecutor([MESH_KIND])
    >>> fake.prepend_reactor(Verb.DELETE, lambda req: _raise(Forbidden("no")))
    >>> meshes = ResourceClient(fake, MESH_KIND)
"""

import asyncio
import copy
import json
import logging
import re
import time
from collections import deque
from datetime import datetime, timezone
from typing import Any, Callable, Optional, Union
from uuid import uuid4

from pydantic import ValidationError

from kubeclient.errors import ApiError, error_from_status
from kubeclient.meta import Status, StatusCause, StatusDetails
from kubeclient.options import PatchType, is_dry_run
from kubeclient.patch import PatchError, UnsupportedPatch, apply_patch
from kubeclient.request import RecordedCall, Request, Verb
from kubeclient.resource import STATUS_SUBRESOURCE, ResourceKind
from kubeclient.selectors import matches, parse_field_selector, parse_label_selector

logger = logging.getLogger(__name__)

Reactor = Callable[[Request], Optional[bytes]]

# Server-owned metadata that clients cannot overwrite.
_SERVER_FIELDS = ("uid", "creationTimestamp", "generation", "deletionTimestamp")


def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _fail(code: int, reason: str, message: str, **kwargs: Any) -> ApiError:
    return error_from_status(Status.failure(code, reason, message, **kwargs))


def _dump(obj: Any) -> bytes:
    return json.dumps(obj, separators=(",", ":")).encode()


class FakeStream:
    """Line stream for one open watch."""

    def __init__(
        self,
        owner: "FakeExecutor",
        key: tuple[str, str],
        namespace: Optional[str],
        label_selector: Optional[str],
        field_selector: Optional[str],
        timeout: Optional[float],
    ):
        self._owner = owner
        self.key = key
        self.namespace = namespace
        self.label_selector = label_selector
        self.field_selector = field_selector
        self._queue: asyncio.Queue = asyncio.Queue()
        self._deadline = time.monotonic() + timeout if timeout is not None else None
        self.closed = False

    def wants(self, key: tuple[str, str], obj: dict[str, Any]) -> bool:
        if self.closed or key != self.key:
            return False
        namespace = (obj.get("metadata") or {}).get("namespace")
        if self.namespace and namespace != self.namespace:
            return False
        return matches(obj, self.label_selector, self.field_selector)

    def push(self, item: Union[bytes, BaseException]) -> None:
        if not self.closed:
            self._queue.put_nowait(item)

    def __aiter__(self) -> "FakeStream":
        return self

    async def __anext__(self) -> bytes:
        if self.closed:
            raise StopAsyncIteration
        try:
            if self._deadline is None:
                item = await self._queue.get()
            else:
                remaining = self._deadline - time.monotonic()
                if remaining <= 0:
                    raise asyncio.TimeoutError
                item = await asyncio.wait_for(self._queue.get(), remaining)
        except asyncio.TimeoutError:
            # The server ends a watch quietly once timeoutSeconds elapse.
            await self.close()
            raise StopAsyncIteration
        if item is None:
            raise StopAsyncIteration
        if isinstance(item, BaseException):
            raise item
        return item

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._owner._unsubscribe(self)
        self._queue.put_nowait(None)


class CannedStream:
    """Fixed event stream answered by a reactor."""

    def __init__(self, body: bytes):
        self._lines = iter(body.splitlines())
        self.closed = False

    def __aiter__(self) -> "CannedStream":
        return self

    async def __anext__(self) -> bytes:
        if self.closed:
            raise StopAsyncIteration
        try:
            return next(self._lines)
        except StopIteration:
            self.closed = True
            raise StopAsyncIteration

    async def close(self) -> None:
        self.closed = True


class FakeExecutor:
    """API server emulation over a dict store."""

    def __init__(self, kinds: Optional[list[ResourceKind]] = None, history_limit: int = 1000):
        self._kinds: dict[tuple[str, str], ResourceKind] = {}
        self._objects: dict[tuple[str, str], dict[tuple[str, str], dict[str, Any]]] = {}
        # Watches can replay from any resourceVersion newer than the compaction point.
        self._history: deque[tuple[int, tuple[str, str], str, dict[str, Any]]] = deque(maxlen=history_limit)
        self._compacted = 0
        self._watchers: list[FakeStream] = []
        self._reactors: list[tuple[Union[Verb, str], Reactor]] = []
        self._resource_version = 0
        self.calls: list[RecordedCall] = []
        for kind in kinds or []:
            self.register(kind)

    def register(self, kind: ResourceKind) -> None:
        key = (kind.api_version, kind.plural)
        self._kinds[key] = kind
        self._objects.setdefault(key, {})

    def prepend_reactor(self, verb: Union[Verb, str], reactor: Reactor) -> None:
        """
        Run ``reactor`` before the store for ``verb`` ("*" for any verb).

        A reactor returns response bytes to answer the call, ``None`` to let
        it through, or raises an ``ApiError``. Bytes returned for a watch are
        served as the whole event stream, one event per line.
        """
        self._reactors.insert(0, (verb, reactor))

    @property
    def open_watches(self) -> int:
        return len(self._watchers)

    @property
    def resource_version(self) -> str:
        return str(self._resource_version)

    def objects(self, kind: ResourceKind) -> list[dict[str, Any]]:
        """Stored records of ``kind``, for assertions."""
        store = self._objects.get((kind.api_version, kind.plural), {})
        return [copy.deepcopy(store[k]) for k in sorted(store)]

    def break_watches(self, error: ApiError) -> None:
        """Fail every open watch with ``error``, as a dropped connection would."""
        for stream in list(self._watchers):
            stream.push(error)

    # -- executor contract --------------------------------------------------

    async def execute(self, request: Request) -> bytes:
        self.calls.append(RecordedCall(request))
        answer = self._react(request)
        if answer is not None:
            return answer
        kind, namespace = self._resolve(request)
        verb = request.verb
        if verb == Verb.GET:
            if request.name is not None:
                return self._get(kind, namespace, request)
            return self._list(kind, namespace, request)
        if verb == Verb.POST:
            return self._create(kind, namespace, request)
        if verb == Verb.PUT:
            if request.subresources == (STATUS_SUBRESOURCE,):
                return self._update_status(kind, namespace, request)
            return self._update(kind, namespace, request)
        if verb == Verb.PATCH:
            return self._patch(kind, namespace, request)
        if verb == Verb.DELETE:
            if request.name is not None:
                return self._delete(kind, namespace, request)
            return self._delete_collection(kind, namespace, request)
        raise _fail(405, "MethodNotAllowed", f"verb {verb} is not supported")

    async def stream(self, request: Request) -> Union[FakeStream, CannedStream]:
        self.calls.append(RecordedCall(request, streamed=True))
        answer = self._react(request)
        if answer is not None:
            return CannedStream(answer)
        kind, namespace = self._resolve(request)
        key = (kind.api_version, kind.plural)
        try:
            parse_label_selector(request.param("labelSelector"))
            parse_field_selector(request.param("fieldSelector"))
        except ValueError as e:
            raise _fail(400, "BadRequest", str(e)) from e
        stream = FakeStream(
            self,
            key,
            namespace,
            request.param("labelSelector"),
            request.param("fieldSelector"),
            request.timeout,
        )
        since = request.param("resourceVersion")
        if since in (None, "", "0"):
            for obj in self._select(kind, namespace, request):
                stream.push(_dump({"type": "ADDED", "object": obj}))
        else:
            if not since.isdigit():
                raise _fail(400, "BadRequest", f"invalid resourceVersion {since!r}")
            if int(since) < self._compacted:
                raise _fail(
                    410,
                    "Expired",
                    f"too old resource version: {since} ({self._compacted})",
                )
            for version, event_key, event_type, obj in self._history:
                if version > int(since) and stream.wants(event_key, obj):
                    stream.push(_dump({"type": event_type, "object": obj}))
        if request.param("allowWatchBookmarks") == "true":
            bookmark = {
                "apiVersion": kind.api_version,
                "kind": kind.kind,
                "metadata": {"resourceVersion": self.resource_version},
            }
            stream.push(_dump({"type": "BOOKMARK", "object": bookmark}))
        self._watchers.append(stream)
        logger.debug(f"Opened watch on {kind.plural} ({self.open_watches} open)")
        return stream

    # -- plumbing -------------------------------------------------------------

    def _react(self, request: Request) -> Optional[bytes]:
        for verb, reactor in self._reactors:
            if verb == "*" or verb == request.verb:
                answer = reactor(request)
                if answer is not None:
                    return answer
        return None

    def _resolve(self, request: Request) -> tuple[ResourceKind, Optional[str]]:
        for kind in self._kinds.values():
            if kind.namespaced:
                prefix = kind.collection_path("NS").split("/namespaces/")[0]
                pattern = rf"^{re.escape(prefix)}/namespaces/([^/]+)/{re.escape(kind.plural)}$"
                match = re.match(pattern, request.path)
                if match:
                    return kind, match.group(1)
            elif request.path == kind.collection_path():
                return kind, None
        raise _fail(404, "NotFound", f"the server could not find the requested resource ({request.path})")

    def _store(self, kind: ResourceKind) -> dict[tuple[str, str], dict[str, Any]]:
        return self._objects[(kind.api_version, kind.plural)]

    def _lookup(self, kind: ResourceKind, namespace: Optional[str], name: str) -> dict[str, Any]:
        obj = self._store(kind).get((namespace or "", name))
        if obj is None:
            raise _fail(
                404,
                "NotFound",
                f'{kind.plural}.{kind.group} "{name}" not found',
                name=name,
                kind=kind.plural,
            )
        return obj

    def _next_version(self) -> str:
        self._resource_version += 1
        return str(self._resource_version)

    def _notify(self, kind: ResourceKind, event_type: str, obj: dict[str, Any]) -> None:
        key = (kind.api_version, kind.plural)
        version = int(obj["metadata"]["resourceVersion"])
        if len(self._history) == self._history.maxlen:
            self._compacted = self._history[0][0]
        self._history.append((version, key, event_type, copy.deepcopy(obj)))
        line = _dump({"type": event_type, "object": obj})
        for stream in self._watchers:
            if stream.wants(key, obj):
                stream.push(line)

    def _unsubscribe(self, stream: FakeStream) -> None:
        if stream in self._watchers:
            self._watchers.remove(stream)
            logger.debug(f"Closed watch ({self.open_watches} open)")

    def _body(self, kind: ResourceKind, request: Request) -> dict[str, Any]:
        try:
            body = json.loads(request.body or b"")
        except ValueError as e:
            raise _fail(400, "BadRequest", f"malformed request body: {e}") from e
        if not isinstance(body, dict):
            raise _fail(400, "BadRequest", "request body must be a JSON object")
        api_version, kind_name = body.get("apiVersion"), body.get("kind")
        if api_version != kind.api_version or kind_name != kind.kind:
            raise _fail(
                400,
                "BadRequest",
                f"expected {kind.api_version}/{kind.kind}, got {api_version}/{kind_name}",
            )
        body.setdefault("metadata", {})
        return body

    def _validate(self, kind: ResourceKind, obj: dict[str, Any]) -> dict[str, Any]:
        """Round-trip through the kind's model; failures become 422 Invalid."""
        try:
            model = kind.model.model_validate(obj)
        except ValidationError as e:
            name = obj["metadata"].get("name")
            causes = [
                StatusCause(
                    reason="FieldValueInvalid",
                    message=err["msg"],
                    field=".".join(str(part) for part in err["loc"]),
                )
                for err in e.errors()
            ]
            summary = "; ".join(f"{c.field}: {c.message}" for c in causes)
            raise _fail(
                422,
                "Invalid",
                f'{kind.kind}.{kind.group} "{name}" is invalid: {summary}',
                name=name,
                kind=kind.kind,
                causes=causes,
            ) from e
        return model.model_dump(mode="json", by_alias=True, exclude_none=True)

    def _select(self, kind: ResourceKind, namespace: Optional[str], request: Request) -> list[dict[str, Any]]:
        label_selector = request.param("labelSelector")
        field_selector = request.param("fieldSelector")
        try:
            parse_label_selector(label_selector)
            parse_field_selector(field_selector)
            items = []
            for (ns, _), obj in sorted(self._store(kind).items()):
                if namespace and ns != namespace:
                    continue
                if matches(obj, label_selector, field_selector):
                    items.append(copy.deepcopy(obj))
        except ValueError as e:
            raise _fail(400, "BadRequest", str(e)) from e
        return items

    def _check_version(self, kind: ResourceKind, existing: dict[str, Any], body: dict[str, Any], required: bool) -> None:
        wanted = body["metadata"].get("resourceVersion")
        name = existing["metadata"]["name"]
        if not wanted:
            if required:
                raise _fail(
                    422,
                    "Invalid",
                    f'{kind.kind}.{kind.group} "{name}" is invalid: '
                    "metadata.resourceVersion: Invalid value: 0x0: must be specified for an update",
                    name=name,
                    kind=kind.kind,
                )
            return
        if wanted != existing["metadata"]["resourceVersion"]:
            raise _fail(
                409,
                "Conflict",
                f'Operation cannot be fulfilled on {kind.plural}.{kind.group} "{name}": '
                "the object has been modified; please apply your changes to the latest version and try again",
                name=name,
                kind=kind.plural,
            )

    def _commit(
        self,
        kind: ResourceKind,
        namespace: Optional[str],
        obj: dict[str, Any],
        event_type: str,
        dry_run: bool,
    ) -> bytes:
        obj = self._validate(kind, obj)
        if not dry_run:
            obj["metadata"]["resourceVersion"] = self._next_version()
            self._store(kind)[(namespace or "", obj["metadata"]["name"])] = obj
            self._notify(kind, event_type, obj)
        return _dump(obj)

    # -- verbs ----------------------------------------------------------------

    def _get(self, kind: ResourceKind, namespace: Optional[str], request: Request) -> bytes:
        return _dump(self._lookup(kind, namespace, request.name))

    def _list(self, kind: ResourceKind, namespace: Optional[str], request: Request) -> bytes:
        items = self._select(kind, namespace, request)
        token = request.param("continue")
        if token:
            items = [i for i in items if i["metadata"]["name"] > token]
        metadata: dict[str, Any] = {"resourceVersion": self.resource_version}
        limit = request.param("limit")
        if limit and 0 < int(limit) < len(items):
            metadata["remainingItemCount"] = len(items) - int(limit)
            items = items[: int(limit)]
            metadata["continue"] = items[-1]["metadata"]["name"]
        return _dump({
            "apiVersion": kind.api_version,
            "kind": kind.list_kind,
            "metadata": metadata,
            "items": items,
        })

    def _create(self, kind: ResourceKind, namespace: Optional[str], request: Request) -> bytes:
        obj = self._body(kind, request)
        metadata = obj["metadata"]
        if not metadata.get("name") and metadata.get("generateName"):
            metadata["name"] = metadata["generateName"] + uuid4().hex[:5]
        name = metadata.get("name")
        if not name:
            raise _fail(
                422,
                "Invalid",
                f"{kind.kind}.{kind.group} is invalid: metadata.name: Required value: name or generateName is required",
                kind=kind.kind,
                causes=[StatusCause(reason="FieldValueRequired", message="Required value", field="metadata.name")],
            )
        if kind.namespaced:
            metadata["namespace"] = namespace
        else:
            metadata.pop("namespace", None)
        if (namespace or "", name) in self._store(kind):
            raise _fail(
                409,
                "AlreadyExists",
                f'{kind.plural}.{kind.group} "{name}" already exists',
                name=name,
                kind=kind.plural,
            )
        if STATUS_SUBRESOURCE in kind.subresources:
            obj.pop("status", None)
        if kind.defaulter is not None:
            kind.defaulter(obj)
        metadata.pop("deletionTimestamp", None)
        metadata.update(uid=str(uuid4()), creationTimestamp=_now(), generation=1)
        metadata.pop("resourceVersion", None)
        dry_run = is_dry_run(request.param_list("dryRun"))
        return self._commit(kind, namespace, obj, "ADDED", dry_run)

    def _update(self, kind: ResourceKind, namespace: Optional[str], request: Request) -> bytes:
        body = self._body(kind, request)
        if body["metadata"].get("name", request.name) != request.name:
            raise _fail(400, "BadRequest", "the name of the object does not match the name on the URL")
        existing = self._lookup(kind, namespace, request.name)
        self._check_version(kind, existing, body, required=True)
        obj = copy.deepcopy(body)
        obj["metadata"]["name"] = request.name
        for key in _SERVER_FIELDS:
            if key in existing["metadata"]:
                obj["metadata"][key] = existing["metadata"][key]
            else:
                obj["metadata"].pop(key, None)
        if kind.namespaced:
            obj["metadata"]["namespace"] = namespace
        if STATUS_SUBRESOURCE in kind.subresources:
            if "status" in existing:
                obj["status"] = copy.deepcopy(existing["status"])
            else:
                obj.pop("status", None)
        if obj.get("spec") != existing.get("spec"):
            obj["metadata"]["generation"] = existing["metadata"].get("generation", 0) + 1
        dry_run = is_dry_run(request.param_list("dryRun"))
        return self._commit(kind, namespace, obj, "MODIFIED", dry_run)

    def _update_status(self, kind: ResourceKind, namespace: Optional[str], request: Request) -> bytes:
        if STATUS_SUBRESOURCE not in kind.subresources:
            raise _fail(404, "NotFound", f"{kind.plural} has no status sub-resource")
        body = self._body(kind, request)
        existing = self._lookup(kind, namespace, request.name)
        self._check_version(kind, existing, body, required=True)
        obj = copy.deepcopy(existing)
        if body.get("status") is None:
            obj.pop("status", None)
        else:
            obj["status"] = body["status"]
        dry_run = is_dry_run(request.param_list("dryRun"))
        return self._commit(kind, namespace, obj, "MODIFIED", dry_run)

    def _patch(self, kind: ResourceKind, namespace: Optional[str], request: Request) -> bytes:
        if request.subresources not in ((), (STATUS_SUBRESOURCE,)) or (
            request.subresources and STATUS_SUBRESOURCE not in kind.subresources
        ):
            raise _fail(404, "NotFound", f"{kind.plural} has no sub-resource {'/'.join(request.subresources)}")
        existing = self._lookup(kind, namespace, request.name)
        try:
            patched = apply_patch(existing, PatchType(request.content_type), request.body or b"")
        except UnsupportedPatch as e:
            raise _fail(415, "UnsupportedMediaType", str(e)) from e
        except PatchError as e:
            raise _fail(400, "BadRequest", str(e)) from e
        except ValueError as e:
            raise _fail(415, "UnsupportedMediaType", f"unknown patch type {request.content_type}") from e
        if not isinstance(patched.get("metadata"), dict):
            raise _fail(400, "BadRequest", "patch removed the object metadata")
        self._check_version(kind, existing, patched, required=False)

        if request.subresources:
            obj = copy.deepcopy(existing)
            if patched.get("status") is None:
                obj.pop("status", None)
            else:
                obj["status"] = patched["status"]
        else:
            obj = patched
            for key in _SERVER_FIELDS + ("name", "namespace"):
                if key in existing["metadata"]:
                    obj["metadata"][key] = existing["metadata"][key]
            if STATUS_SUBRESOURCE in kind.subresources:
                if "status" in existing:
                    obj["status"] = copy.deepcopy(existing["status"])
                else:
                    obj.pop("status", None)
            if obj.get("spec") != existing.get("spec"):
                obj["metadata"]["generation"] = existing["metadata"].get("generation", 0) + 1
        dry_run = is_dry_run(request.param_list("dryRun"))
        return self._commit(kind, namespace, obj, "MODIFIED", dry_run)

    def _delete_options(self, request: Request) -> dict[str, Any]:
        if not request.body:
            return {}
        try:
            options = json.loads(request.body)
        except ValueError as e:
            raise _fail(400, "BadRequest", f"malformed delete options: {e}") from e
        return options if isinstance(options, dict) else {}

    def _remove(self, kind: ResourceKind, namespace: Optional[str], name: str, options: dict[str, Any]) -> dict[str, Any]:
        existing = self._lookup(kind, namespace, name)
        preconditions = options.get("preconditions") or {}
        for key in ("uid", "resourceVersion"):
            wanted = preconditions.get(key)
            actual = existing["metadata"].get(key)
            if wanted and wanted != actual:
                raise _fail(
                    409,
                    "Conflict",
                    f"Precondition failed: {key} in precondition: {wanted}, {key} in object meta: {actual}",
                    name=name,
                    kind=kind.plural,
                )
        if is_dry_run(options.get("dryRun")):
            return existing
        obj = copy.deepcopy(existing)
        del self._store(kind)[(namespace or "", name)]
        obj["metadata"]["resourceVersion"] = self._next_version()
        self._notify(kind, "DELETED", obj)
        return obj

    def _delete(self, kind: ResourceKind, namespace: Optional[str], request: Request) -> bytes:
        self._remove(kind, namespace, request.name, self._delete_options(request))
        status = Status(
            status="Success",
            details=StatusDetails(name=request.name, group=kind.group, kind=kind.plural),
        )
        return _dump(status.to_wire())

    def _delete_collection(self, kind: ResourceKind, namespace: Optional[str], request: Request) -> bytes:
        options = self._delete_options(request)
        causes = []
        for obj in self._select(kind, namespace, request):
            name = obj["metadata"]["name"]
            item_request = Request(
                verb=Verb.DELETE,
                path=request.path,
                name=name,
                body=request.body,
            )
            try:
                if self._react(item_request) is None:
                    self._remove(kind, namespace, name, options)
            except ApiError as e:
                causes.append(StatusCause(reason=e.reason or e.kind.value, message=e.message, field=name))
        if causes:
            raise _fail(
                500,
                "InternalError",
                f"{len(causes)} of the selected {kind.plural} could not be deleted",
                kind=kind.plural,
                causes=causes,
            )
        return _dump(Status(status="Success").to_wire())
