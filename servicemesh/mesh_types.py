"""
Mesh resource schema (gateway.networking.k8s.io/v1alpha2).

A Mesh is cluster-scoped. ``spec.controllerName`` names the controller that
owns the object; that controller alone writes ``status``.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import ConfigDict, Field, field_validator

from kubeclient.meta import EPOCH, KubeModel, ListMeta, ObjectMeta


GROUP = "gateway.networking.k8s.io"
VERSION = "v1alpha2"
API_VERSION = f"{GROUP}/{VERSION}"

MAX_CONDITIONS = 8
MAX_DESCRIPTION_LENGTH = 64

CONTROLLER_NAME_PATTERN = (
    r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?(\.[a-z0-9]([-a-z0-9]*[a-z0-9])?)*"
    r"/[A-Za-z0-9/._~%!$&'()*+,;=:-]+$"
)
GROUP_PATTERN = r"^$|^[a-z0-9]([-a-z0-9]*[a-z0-9])?(\.[a-z0-9]([-a-z0-9]*[a-z0-9])?)*$"
KIND_PATTERN = r"^[a-zA-Z]([-a-zA-Z0-9]*[a-zA-Z0-9])?$"
NAMESPACE_PATTERN = r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?$"
CONDITION_TYPE_PATTERN = (
    r"^([a-z0-9]([-a-z0-9]*[a-z0-9])?(\.[a-z0-9]([-a-z0-9]*[a-z0-9])?)*/)?"
    r"(([A-Za-z0-9][-A-Za-z0-9_.]*)?[A-Za-z0-9])$"
)
CONDITION_REASON_PATTERN = r"^[A-Za-z]([A-Za-z0-9_,:]*[A-Za-z0-9_])?$"


class ConditionStatus(str, Enum):
    TRUE = "True"
    FALSE = "False"
    UNKNOWN = "Unknown"


class MeshConditionType(str, Enum):
    """Condition types published on a Mesh."""
    ACCEPTED = "Accepted"


class MeshConditionReason(str, Enum):
    """Reasons explaining a Mesh condition."""
    ACCEPTED = "Accepted"
    INVALID_PARAMETERS = "InvalidParameters"
    WAITING = "Waiting"


WAITING_MESSAGE = "Waiting for controller"


class Condition(KubeModel):
    """One observed aspect of the resource's reconciliation state."""

    model_config = ConfigDict(extra="forbid")

    type: str = Field(..., min_length=1, max_length=316, pattern=CONDITION_TYPE_PATTERN)
    status: ConditionStatus
    observed_generation: Optional[int] = Field(default=None, ge=0)
    last_transition_time: datetime
    reason: str = Field(..., min_length=1, max_length=1024, pattern=CONDITION_REASON_PATTERN)
    message: str = Field(default="", max_length=32768)


def default_conditions() -> list[Condition]:
    """The single condition a new Mesh starts with."""
    return [
        Condition(
            type=MeshConditionType.ACCEPTED.value,
            status=ConditionStatus.UNKNOWN,
            reason=MeshConditionReason.WAITING.value,
            message=WAITING_MESSAGE,
            last_transition_time=EPOCH,
        )
    ]


class ParametersReference(KubeModel):
    """Reference to an object holding controller-specific parameters."""

    model_config = ConfigDict(extra="forbid")

    group: str = Field(default="", max_length=253, pattern=GROUP_PATTERN)
    kind: str = Field(..., min_length=1, max_length=63, pattern=KIND_PATTERN)
    name: str = Field(..., min_length=1, max_length=253)
    namespace: Optional[str] = Field(
        default=None, min_length=1, max_length=63, pattern=NAMESPACE_PATTERN
    )


class MeshSpec(KubeModel):
    """Desired state of a Mesh."""

    model_config = ConfigDict(extra="forbid")

    controller_name: str = Field(
        ..., min_length=1, max_length=253, pattern=CONTROLLER_NAME_PATTERN
    )
    parameters_ref: Optional[ParametersReference] = None
    description: Optional[str] = Field(default=None, max_length=MAX_DESCRIPTION_LENGTH)


class MeshStatus(KubeModel):
    """Observed state of a Mesh, written by its controller."""

    model_config = ConfigDict(extra="forbid")

    conditions: list[Condition] = Field(
        default_factory=default_conditions, max_length=MAX_CONDITIONS
    )

    @field_validator("conditions")
    @classmethod
    def unique_condition_types(cls, v: list[Condition]) -> list[Condition]:
        """Conditions are a list-map keyed by ``type``."""
        seen = set()
        for condition in v:
            if condition.type in seen:
                raise ValueError(f"duplicate condition type {condition.type!r}")
            seen.add(condition.type)
        return v


class Mesh(KubeModel):
    """Cluster-scoped service mesh configuration."""

    model_config = ConfigDict(extra="forbid")

    api_version: str = API_VERSION
    kind: str = "Mesh"
    metadata: ObjectMeta = Field(default_factory=ObjectMeta)
    spec: MeshSpec
    status: Optional[MeshStatus] = None

    @classmethod
    def new(
        cls,
        name: str,
        controller_name: str,
        description: Optional[str] = None,
        parameters_ref: Optional[ParametersReference] = None,
        labels: Optional[dict[str, str]] = None,
    ) -> "Mesh":
        """Build a Mesh ready to be submitted with Create."""
        return cls(
            metadata=ObjectMeta(name=name, labels=labels),
            spec=MeshSpec(
                controller_name=controller_name,
                description=description,
                parameters_ref=parameters_ref,
            ),
        )

    @property
    def name(self) -> Optional[str]:
        return self.metadata.name


class MeshList(KubeModel):
    """A List response of Meshes."""

    model_config = ConfigDict(extra="forbid")

    api_version: str = API_VERSION
    kind: str = "MeshList"
    metadata: ListMeta = Field(default_factory=ListMeta)
    items: list[Mesh] = Field(default_factory=list)

    @field_validator("items", mode="before")
    @classmethod
    def null_items(cls, v: Any) -> Any:
        return [] if v is None else v

    def names(self) -> list[str]:
        return [item.metadata.name for item in self.items]


def default_mesh(obj: dict[str, Any]) -> None:
    """
    Server-side defaulting for a Mesh in wire form.

    A Mesh created without a status (or without conditions) gets the single
    Accepted/Unknown/Waiting condition.
    """
    status = obj.get("status")
    if not isinstance(status, dict):
        status = {}
        obj["status"] = status
    if not status.get("conditions"):
        status["conditions"] = [c.to_wire() for c in default_conditions()]
