"""YAML manifests and table columns for Mesh objects."""

from datetime import datetime, timezone
from typing import Optional

import yaml
from pydantic import ValidationError

from servicemesh.conditions import find_condition
from servicemesh.mesh_types import API_VERSION, Mesh, MeshConditionType


PRINTER_COLUMNS = ("Controller", "Accepted", "Age", "Description")


class ManifestError(ValueError):
    """Raised when a manifest is not a valid Mesh."""
    pass


def load_meshes(text: str) -> list[Mesh]:
    """Parse one or more YAML documents into Meshes. Empty documents are skipped."""
    meshes = []
    try:
        documents = list(yaml.safe_load_all(text))
    except yaml.YAMLError as e:
        raise ManifestError(f"invalid YAML: {e}") from e
    for index, document in enumerate(documents):
        if document is None:
            continue
        if not isinstance(document, dict):
            raise ManifestError(f"document {index} is not a mapping")
        kind = document.get("kind")
        api_version = document.get("apiVersion")
        if kind != "Mesh" or api_version != API_VERSION:
            raise ManifestError(f"document {index} is {api_version}/{kind}, expected {API_VERSION}/Mesh")
        try:
            meshes.append(Mesh.model_validate(document))
        except ValidationError as e:
            raise ManifestError(f"document {index} is not a valid Mesh: {e}") from e
    return meshes


def dump_mesh(mesh: Mesh) -> str:
    """Render ``mesh`` as a YAML manifest."""
    return yaml.safe_dump(mesh.to_wire(), sort_keys=False)


def dump_meshes(meshes: list[Mesh]) -> str:
    return yaml.safe_dump_all([m.to_wire() for m in meshes], sort_keys=False)


def human_age(created: Optional[datetime], now: Optional[datetime] = None) -> str:
    """Short age string in the style of kubectl (``45s``, ``12m``, ``5h``, ``3d``)."""
    if created is None:
        return "<unknown>"
    now = now or datetime.now(timezone.utc)
    seconds = max(0, int((now - created).total_seconds()))
    if seconds < 120:
        return f"{seconds}s"
    minutes = seconds // 60
    if minutes < 120:
        return f"{minutes}m"
    hours = minutes // 60
    if hours < 48:
        return f"{hours}h"
    return f"{hours // 24}d"


def printer_columns(mesh: Mesh, now: Optional[datetime] = None) -> dict[str, str]:
    """The columns ``kubectl get meshes -o wide`` shows."""
    conditions = mesh.status.conditions if mesh.status else []
    accepted = find_condition(conditions, MeshConditionType.ACCEPTED.value)
    return {
        "Controller": mesh.spec.controller_name,
        "Accepted": accepted.status.value if accepted else "",
        "Age": human_age(mesh.metadata.creation_timestamp, now),
        "Description": mesh.spec.description or "",
    }


def format_table(meshes: list[Mesh], now: Optional[datetime] = None) -> str:
    """Render meshes as an aligned text table, NAME first."""
    header = ("NAME",) + tuple(c.upper() for c in PRINTER_COLUMNS)
    rows = [header]
    for mesh in meshes:
        columns = printer_columns(mesh, now)
        rows.append((mesh.metadata.name or "",) + tuple(columns[c] for c in PRINTER_COLUMNS))
    widths = [max(len(row[i]) for row in rows) for i in range(len(header))]
    return "\n".join(
        "   ".join(cell.ljust(width) for cell, width in zip(row, widths)).rstrip()
        for row in rows
    )
