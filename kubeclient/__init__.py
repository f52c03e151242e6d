"""Generic typed resource client for Kubernetes-style API servers."""

from kubeclient.config import ClientConfig, ConfigError
from kubeclient.errors import (
    AggregateError,
    AlreadyExists,
    ApiError,
    Conflict,
    DecodeFailure,
    ErrorKind,
    Forbidden,
    Invalid,
    NotFound,
    ServerError,
    Timeout,
    TransportFailure,
    Unauthorized,
)
from kubeclient.fake import FakeExecutor
from kubeclient.meta import ListMeta, ObjectMeta, Status
from kubeclient.options import (
    CreateOptions,
    DeleteOptions,
    GetOptions,
    ListOptions,
    PatchOptions,
    PatchType,
    Preconditions,
    UpdateOptions,
)
from kubeclient.request import Request, RequestExecutor, Verb
from kubeclient.resource import ResourceClient, ResourceKind
from kubeclient.rest import RESTExecutor
from kubeclient.watch import EventType, Watch, WatchEvent

__all__ = [
    "AggregateError",
    "AlreadyExists",
    "ApiError",
    "ClientConfig",
    "ConfigError",
    "Conflict",
    "CreateOptions",
    "DecodeFailure",
    "DeleteOptions",
    "ErrorKind",
    "EventType",
    "FakeExecutor",
    "Forbidden",
    "GetOptions",
    "Invalid",
    "ListMeta",
    "ListOptions",
    "NotFound",
    "ObjectMeta",
    "PatchOptions",
    "PatchType",
    "Preconditions",
    "RESTExecutor",
    "Request",
    "RequestExecutor",
    "ResourceClient",
    "ResourceKind",
    "ServerError",
    "Status",
    "Timeout",
    "TransportFailure",
    "Unauthorized",
    "UpdateOptions",
    "Verb",
    "Watch",
    "WatchEvent",
]
