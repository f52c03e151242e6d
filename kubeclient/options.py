"""
Request options and their query-parameter encoding.

Options are threaded verbatim into the request: every set field becomes a
query parameter under its wire name, unset fields are left out.
"""

from enum import Enum
from typing import Any, Optional, Union

from pydantic import Field

from kubeclient.meta import KubeModel


DRY_RUN_ALL = "All"


class PatchType(str, Enum):
    """Patch encodings; the value is the request content type."""
    JSON = "application/json-patch+json"
    MERGE = "application/merge-patch+json"
    STRATEGIC_MERGE = "application/strategic-merge-patch+json"
    APPLY = "application/apply-patch+yaml"


class Options(KubeModel):
    """Base for option objects encoded as query parameters."""

    def to_query(self) -> list[tuple[str, str]]:
        """Encode set fields as ordered ``(key, value)`` pairs."""
        query: list[tuple[str, str]] = []
        for key, value in self.model_dump(by_alias=True, exclude_none=True).items():
            if isinstance(value, list):
                query.extend((key, _encode(v)) for v in value)
            else:
                query.append((key, _encode(value)))
        return query


def _encode(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Enum):
        return str(value.value)
    return str(value)


class GetOptions(Options):
    resource_version: Optional[str] = None


class ListOptions(Options):
    """Selectors and paging for List, Watch and DeleteCollection."""

    label_selector: Optional[str] = None
    field_selector: Optional[str] = None
    watch: Optional[bool] = None
    allow_watch_bookmarks: Optional[bool] = None
    resource_version: Optional[str] = None
    resource_version_match: Optional[str] = None
    timeout_seconds: Optional[int] = Field(default=None, ge=0)
    limit: Optional[int] = Field(default=None, ge=0)
    continue_: Optional[str] = Field(default=None, alias="continue")


class CreateOptions(Options):
    dry_run: Optional[list[str]] = None
    field_manager: Optional[str] = None
    field_validation: Optional[str] = None


class UpdateOptions(Options):
    dry_run: Optional[list[str]] = None
    field_manager: Optional[str] = None
    field_validation: Optional[str] = None


class PatchOptions(Options):
    dry_run: Optional[list[str]] = None
    force: Optional[bool] = None
    field_manager: Optional[str] = None
    field_validation: Optional[str] = None


class Preconditions(KubeModel):
    uid: Optional[str] = None
    resource_version: Optional[str] = None


class DeleteOptions(Options):
    """Sent as the request body of Delete and DeleteCollection."""

    api_version: str = "v1"
    kind: str = "DeleteOptions"
    grace_period_seconds: Optional[int] = Field(default=None, ge=0)
    preconditions: Optional[Preconditions] = None
    propagation_policy: Optional[str] = None
    dry_run: Optional[list[str]] = None


def timeout_of(options: Optional[Union[ListOptions, Options]]) -> Optional[float]:
    """
    Request deadline in seconds for ``options``.

    ``None`` means no explicit deadline (defer to the transport default);
    it is never turned into zero. An explicit ``timeoutSeconds: 0`` is
    forwarded to the server but sets no client-side deadline.
    """
    seconds = getattr(options, "timeout_seconds", None)
    if not seconds:
        return None
    return float(seconds)


def is_dry_run(dry_run: Optional[list[str]]) -> bool:
    return bool(dry_run) and DRY_RUN_ALL in dry_run
