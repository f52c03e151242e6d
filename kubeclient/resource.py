"""
Generic typed resource client.

One ``ResourceClient`` serves any resource kind: the kind's model, list model,
path segment and scope come from a ``ResourceKind`` description. Each method
shapes one ``Request``, hands it to the bound executor and decodes the reply
strictly into the typed model.

Example:
    >>> meshes = ResourceClient(executor, MESH_KIND)
    >>> mesh = await meshes.get("default")
    >>> async with await meshes.watch(ListOptions(label_selector="env=prod")) as w:
    ...     async for event in w:
    ...         print(event.type, event.object.metadata.name)
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Generic, Optional, Sequence, TypeVar, Union

from pydantic import BaseModel, ValidationError

from kubeclient.errors import ApiError, DecodeFailure, ServerError, error_from_status
from kubeclient.options import (
    CreateOptions,
    DeleteOptions,
    GetOptions,
    ListOptions,
    Options,
    PatchOptions,
    PatchType,
    UpdateOptions,
    timeout_of,
)
from kubeclient.request import JSON_CONTENT_TYPE, Request, RequestExecutor, Verb
from kubeclient.watch import Watch

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)
L = TypeVar("L", bound=BaseModel)

STATUS_SUBRESOURCE = "status"


@dataclass(frozen=True)
class ResourceKind(Generic[T, L]):
    """Static description of one resource kind."""

    group: str
    version: str
    kind: str
    plural: str
    model: type[T]
    list_model: type[L]
    namespaced: bool = False
    subresources: tuple[str, ...] = ()
    defaulter: Optional[Callable[[dict[str, Any]], None]] = None

    @property
    def api_version(self) -> str:
        return f"{self.group}/{self.version}" if self.group else self.version

    @property
    def list_kind(self) -> str:
        return f"{self.kind}List"

    def collection_path(self, namespace: Optional[str] = None) -> str:
        """URL path of the collection, e.g. ``/apis/<group>/<version>/<plural>``."""
        prefix = f"/apis/{self.group}/{self.version}" if self.group else f"/api/{self.version}"
        if self.namespaced:
            if not namespace:
                raise ValueError(f"{self.kind} is namespaced; a namespace is required")
            return f"{prefix}/namespaces/{namespace}/{self.plural}"
        if namespace:
            raise ValueError(f"{self.kind} is cluster-scoped; namespace {namespace!r} not allowed")
        return f"{prefix}/{self.plural}"

    def decode(
        self,
        data: Union[bytes, dict[str, Any]],
        operation: Optional[str] = None,
        name: Optional[str] = None,
    ) -> T:
        """Decode one object; shape or kind mismatches raise ``DecodeFailure``."""
        obj = _validate(self.model, data, operation, name)
        self._check_type(obj, self.kind, operation, name)
        return obj

    def decode_list(self, data: bytes, operation: Optional[str] = None) -> L:
        result = _validate(self.list_model, data, operation, None)
        self._check_type(result, self.list_kind, operation, None)
        return result

    def _check_type(self, obj: BaseModel, kind: str, operation, name) -> None:
        got_kind = getattr(obj, "kind", kind)
        got_version = getattr(obj, "api_version", self.api_version)
        if got_kind != kind or got_version != self.api_version:
            raise DecodeFailure(
                f"expected {self.api_version}/{kind}, got {got_version}/{got_kind}",
                operation=operation,
                name=name,
            )


def _validate(model: type[BaseModel], data, operation, name):
    try:
        if isinstance(data, (bytes, bytearray, str)):
            return model.model_validate_json(data)
        return model.model_validate(data)
    except ValidationError as e:
        raise DecodeFailure(
            f"cannot decode {model.__name__}: {e.error_count()} error(s)",
            operation=operation,
            name=name,
        ) from e


def encode(obj: Union[BaseModel, dict[str, Any]]) -> bytes:
    """Canonical JSON body for an object."""
    if isinstance(obj, BaseModel):
        obj = obj.model_dump(mode="json", by_alias=True, exclude_none=True)
    return json.dumps(obj, separators=(",", ":")).encode()


class ResourceClient(Generic[T, L]):
    """CRUD, watch and patch for a single resource kind and scope."""

    def __init__(
        self,
        executor: RequestExecutor,
        kind: ResourceKind[T, L],
        namespace: Optional[str] = None,
    ):
        self.executor = executor
        self.kind = kind
        self.namespace = namespace
        self.path = kind.collection_path(namespace)

    def _request(
        self,
        verb: Verb,
        name: Optional[str] = None,
        subresources: Sequence[str] = (),
        options: Optional[Options] = None,
        timeout: Optional[float] = None,
        body: Optional[bytes] = None,
        content_type: str = JSON_CONTENT_TYPE,
    ) -> Request:
        if isinstance(subresources, str):
            raise TypeError(f"subresources must be a sequence of path segments, not {subresources!r}")
        return Request(
            verb=verb,
            path=self.path,
            name=name,
            subresources=tuple(subresources),
            params=tuple(options.to_query()) if options is not None else (),
            timeout=timeout,
            body=body,
            content_type=content_type,
        )

    async def _execute(self, request: Request, operation: str, name: Optional[str] = None) -> bytes:
        logger.debug(f"{request.describe()} ({operation})")
        try:
            return await self.executor.execute(request)
        except ApiError as e:
            _annotate(e, operation, name)
            raise

    async def get(self, name: str, options: Optional[GetOptions] = None) -> T:
        """Fetch the object called ``name``."""
        _check_name(name, "get")
        options = options or GetOptions()
        data = await self._execute(
            self._request(Verb.GET, name=name, options=options), "get", name
        )
        return self.kind.decode(data, "get", name)

    async def list(self, options: Optional[ListOptions] = None) -> L:
        """List objects matching the label/field selectors in ``options``."""
        options = options or ListOptions()
        request = self._request(Verb.GET, options=options, timeout=timeout_of(options))
        data = await self._execute(request, "list")
        return self.kind.decode_list(data, "list")

    async def watch(self, options: Optional[ListOptions] = None) -> Watch[T]:
        """
        Open a watch over the collection.

        The caller's options are copied before the watch flag is forced, so
        the same ``ListOptions`` can be reused for a List call.
        """
        options = (options or ListOptions()).model_copy(update={"watch": True})
        request = self._request(Verb.GET, options=options, timeout=timeout_of(options))
        logger.debug(f"{request.describe()} (watch)")
        try:
            stream = await self.executor.stream(request)
        except ApiError as e:
            _annotate(e, "watch", None)
            raise
        return Watch(
            stream,
            lambda raw: self.kind.decode(raw, "watch"),
            resource=self.kind.plural,
        )

    async def create(self, obj: T, options: Optional[CreateOptions] = None) -> T:
        """Create ``obj``; returns the server's representation."""
        options = options or CreateOptions()
        name = _name_of(obj)
        request = self._request(Verb.POST, options=options, body=encode(obj))
        data = await self._execute(request, "create", name)
        return self.kind.decode(data, "create", name)

    async def update(self, obj: T, options: Optional[UpdateOptions] = None) -> T:
        """Replace ``obj``; its resourceVersion guards against lost updates."""
        options = options or UpdateOptions()
        name = _require_name(obj, "update")
        request = self._request(Verb.PUT, name=name, options=options, body=encode(obj))
        data = await self._execute(request, "update", name)
        return self.kind.decode(data, "update", name)

    async def update_status(self, obj: T, options: Optional[UpdateOptions] = None) -> T:
        """Replace only the status sub-resource of ``obj``."""
        if STATUS_SUBRESOURCE not in self.kind.subresources:
            raise ValueError(f"{self.kind.kind} has no status sub-resource")
        options = options or UpdateOptions()
        name = _require_name(obj, "update_status")
        request = self._request(
            Verb.PUT,
            name=name,
            subresources=(STATUS_SUBRESOURCE,),
            options=options,
            body=encode(obj),
        )
        data = await self._execute(request, "update_status", name)
        return self.kind.decode(data, "update_status", name)

    async def delete(self, name: str, options: Optional[DeleteOptions] = None) -> None:
        """Delete the object called ``name``."""
        _check_name(name, "delete")
        options = options or DeleteOptions()
        request = self._request(Verb.DELETE, name=name, body=encode(options))
        await self._execute(request, "delete", name)

    async def delete_collection(
        self,
        options: Optional[DeleteOptions] = None,
        list_options: Optional[ListOptions] = None,
    ) -> None:
        """
        Delete every object selected by ``list_options``.

        Per-item failures are raised together as an ``AggregateError``;
        failures of the request itself keep their own kind.
        """
        options = options or DeleteOptions()
        list_options = list_options or ListOptions()
        request = self._request(
            Verb.DELETE,
            options=list_options,
            timeout=timeout_of(list_options),
            body=encode(options),
        )
        try:
            await self._execute(request, "delete_collection")
        except ServerError as e:
            if e.status is not None and e.causes:
                raise error_from_status(e.status, operation="delete_collection") from e
            raise

    async def patch(
        self,
        name: str,
        patch_type: PatchType,
        data: Union[bytes, str],
        options: Optional[PatchOptions] = None,
        subresources: Sequence[str] = (),
    ) -> T:
        """Apply a raw patch to ``name`` or to one of its sub-resources."""
        _check_name(name, "patch")
        options = options or PatchOptions()
        if isinstance(data, str):
            data = data.encode()
        request = self._request(
            Verb.PATCH,
            name=name,
            subresources=subresources,
            options=options,
            body=data,
            content_type=PatchType(patch_type).value,
        )
        result = await self._execute(request, "patch", name)
        return self.kind.decode(result, "patch", name)


def _annotate(error: ApiError, operation: str, name: Optional[str]) -> None:
    if error.operation is None:
        error.operation = operation
    if error.name is None:
        error.name = name


def _name_of(obj: BaseModel) -> Optional[str]:
    metadata = getattr(obj, "metadata", None)
    return getattr(metadata, "name", None)


def _check_name(name: str, operation: str) -> None:
    if not name or not isinstance(name, str):
        raise ValueError(f"{operation}: resource name may not be empty")
    if "/" in name:
        raise ValueError(f"{operation}: resource name may not contain '/': {name!r}")


def _require_name(obj: BaseModel, operation: str) -> str:
    name = _name_of(obj)
    if not name:
        raise ValueError(f"{operation} requires metadata.name")
    return name
