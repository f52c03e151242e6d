"""
Mesh status conditions.

The Accepted condition moves between three states:

- PENDING:  Accepted=Unknown, reason Waiting (initial, set by defaulting)
- READY:    Accepted=True, reason Accepted
- REJECTED: Accepted=False, reason InvalidParameters (parametersRef unresolved)

Only the controller named by ``spec.controllerName`` calls the ``mark_*``
helpers. The resource client never touches conditions.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from servicemesh.mesh_types import (
    MAX_CONDITIONS,
    WAITING_MESSAGE,
    Condition,
    ConditionStatus,
    Mesh,
    MeshConditionReason,
    MeshConditionType,
    MeshStatus,
)


class MeshState(Enum):
    """Lifecycle state derived from the Accepted condition."""
    PENDING = "pending"
    READY = "ready"
    REJECTED = "rejected"


def find_condition(conditions: list[Condition], condition_type: str) -> Optional[Condition]:
    """Return the condition of ``condition_type``, if present."""
    for condition in conditions:
        if condition.type == condition_type:
            return condition
    return None


def set_condition(conditions: list[Condition], new: Condition) -> bool:
    """
    Insert or update ``new`` in place, keyed by type.

    An existing record keeps its position; its ``lastTransitionTime`` only
    moves when the status changes. Returns True if anything changed.
    """
    existing = find_condition(conditions, new.type)
    if existing is None:
        if len(conditions) >= MAX_CONDITIONS:
            raise ValueError(f"cannot add condition {new.type!r}: at most {MAX_CONDITIONS} conditions")
        conditions.append(new)
        return True

    changed = False
    if existing.status != new.status:
        existing.status = new.status
        existing.last_transition_time = new.last_transition_time
        changed = True
    for attr in ("reason", "message", "observed_generation"):
        value = getattr(new, attr)
        if getattr(existing, attr) != value:
            setattr(existing, attr, value)
            changed = True
    return changed


def remove_condition(conditions: list[Condition], condition_type: str) -> bool:
    """Drop the condition of ``condition_type``; True if one was removed."""
    for i, condition in enumerate(conditions):
        if condition.type == condition_type:
            del conditions[i]
            return True
    return False


def is_condition_true(conditions: list[Condition], condition_type: str) -> bool:
    condition = find_condition(conditions, condition_type)
    return condition is not None and condition.status == ConditionStatus.TRUE


def is_condition_false(conditions: list[Condition], condition_type: str) -> bool:
    condition = find_condition(conditions, condition_type)
    return condition is not None and condition.status == ConditionStatus.FALSE


def mesh_state(mesh: Mesh) -> MeshState:
    """Where ``mesh`` is in its Accepted lifecycle."""
    conditions = mesh.status.conditions if mesh.status else []
    accepted = find_condition(conditions, MeshConditionType.ACCEPTED.value)
    if accepted is None or accepted.status == ConditionStatus.UNKNOWN:
        return MeshState.PENDING
    if accepted.status == ConditionStatus.TRUE:
        return MeshState.READY
    return MeshState.REJECTED


def _mark(
    mesh: Mesh,
    status: ConditionStatus,
    reason: MeshConditionReason,
    message: str,
    now: Optional[datetime],
) -> bool:
    if mesh.status is None:
        mesh.status = MeshStatus(conditions=[])
    condition = Condition(
        type=MeshConditionType.ACCEPTED.value,
        status=status,
        reason=reason.value,
        message=message,
        observed_generation=mesh.metadata.generation,
        last_transition_time=now or datetime.now(timezone.utc).replace(microsecond=0),
    )
    return set_condition(mesh.status.conditions, condition)


def mark_accepted(mesh: Mesh, message: str = "Mesh accepted", now: Optional[datetime] = None) -> bool:
    """Controller side: the Mesh was accepted."""
    return _mark(mesh, ConditionStatus.TRUE, MeshConditionReason.ACCEPTED, message, now)


def mark_invalid_parameters(mesh: Mesh, message: str, now: Optional[datetime] = None) -> bool:
    """Controller side: ``parametersRef`` could not be resolved."""
    return _mark(mesh, ConditionStatus.FALSE, MeshConditionReason.INVALID_PARAMETERS, message, now)


def mark_waiting(mesh: Mesh, message: str = WAITING_MESSAGE, now: Optional[datetime] = None) -> bool:
    """Controller side: back to waiting, e.g. after a respec."""
    return _mark(mesh, ConditionStatus.UNKNOWN, MeshConditionReason.WAITING, message, now)

