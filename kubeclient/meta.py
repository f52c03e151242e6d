"""
Object metadata shared by every resource kind.

These models mirror the ``meta/v1`` wire shapes: camelCase keys on the wire,
snake_case attributes in Python, absent optionals omitted when encoded.
"""

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class KubeModel(BaseModel):
    """Base for wire models: camelCase aliases, populate by either name."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        validate_assignment=True,
    )

    def to_wire(self) -> dict[str, Any]:
        """Encode to the canonical JSON-compatible structure."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ObjectMeta(KubeModel):
    """Standard object metadata. Unknown server keys are kept."""

    model_config = ConfigDict(extra="allow")

    name: Optional[str] = None
    generate_name: Optional[str] = None
    namespace: Optional[str] = None
    uid: Optional[str] = None
    resource_version: Optional[str] = None
    generation: Optional[int] = None
    creation_timestamp: Optional[datetime] = None
    deletion_timestamp: Optional[datetime] = None
    labels: Optional[dict[str, str]] = None
    annotations: Optional[dict[str, str]] = None


class ListMeta(KubeModel):
    """Metadata of a list response."""

    model_config = ConfigDict(extra="allow")

    resource_version: Optional[str] = None
    continue_: Optional[str] = Field(default=None, alias="continue")
    remaining_item_count: Optional[int] = None


class StatusCause(KubeModel):
    reason: Optional[str] = None
    message: Optional[str] = None
    field: Optional[str] = None


class StatusDetails(KubeModel):
    model_config = ConfigDict(extra="allow")

    name: Optional[str] = None
    group: Optional[str] = None
    kind: Optional[str] = None
    uid: Optional[str] = None
    causes: list[StatusCause] = Field(default_factory=list)
    retry_after_seconds: Optional[int] = None


class Status(KubeModel):
    """Server reply describing the outcome of a failed (or bodiless) call."""

    model_config = ConfigDict(extra="allow")

    api_version: str = "v1"
    kind: str = "Status"
    status: Optional[str] = None
    message: Optional[str] = None
    reason: Optional[str] = None
    details: Optional[StatusDetails] = None
    code: Optional[int] = None

    @classmethod
    def failure(
        cls,
        code: int,
        reason: str,
        message: str,
        name: Optional[str] = None,
        kind: Optional[str] = None,
        causes: Optional[list[StatusCause]] = None,
    ) -> "Status":
        """Build a failure status the way the API server reports one."""
        details = None
        if name is not None or kind is not None or causes:
            details = StatusDetails(name=name, kind=kind, causes=causes or [])
        return cls(
            status="Failure",
            message=message,
            reason=reason,
            details=details,
            code=code,
        )
