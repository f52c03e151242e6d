"""Mesh resource (gateway.networking.k8s.io/v1alpha2) and its typed client."""

from servicemesh.client import MESH_KIND, GatewayV1alpha2Client, MeshClient, meshes
from servicemesh.conditions import (
    MeshState,
    find_condition,
    is_condition_false,
    is_condition_true,
    mark_accepted,
    mark_invalid_parameters,
    mark_waiting,
    mesh_state,
    remove_condition,
    set_condition,
)
from servicemesh.manifests import (
    ManifestError,
    dump_mesh,
    dump_meshes,
    format_table,
    load_meshes,
    printer_columns,
)
from servicemesh.mesh_types import (
    API_VERSION,
    Condition,
    ConditionStatus,
    Mesh,
    MeshConditionReason,
    MeshConditionType,
    MeshList,
    MeshSpec,
    MeshStatus,
    ParametersReference,
    default_conditions,
)

__all__ = [
    "API_VERSION",
    "Condition",
    "ConditionStatus",
    "GatewayV1alpha2Client",
    "MESH_KIND",
    "ManifestError",
    "Mesh",
    "MeshClient",
    "MeshConditionReason",
    "MeshConditionType",
    "MeshList",
    "MeshSpec",
    "MeshState",
    "MeshStatus",
    "ParametersReference",
    "default_conditions",
    "dump_mesh",
    "dump_meshes",
    "find_condition",
    "format_table",
    "is_condition_false",
    "is_condition_true",
    "load_meshes",
    "mark_accepted",
    "mark_invalid_parameters",
    "mark_waiting",
    "mesh_state",
    "meshes",
    "printer_columns",
    "remove_condition",
    "set_condition",
]
