from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from servicemesh.mesh_types import (
    Condition,
    ConditionStatus,
    Mesh,
    MeshList,
    MeshSpec,
    MeshStatus,
    ParametersReference,
    default_conditions,
    default_mesh,
)


def _condition(condition_type: str, status: str = "True") -> Condition:
    return Condition(
        type=condition_type,
        status=status,
        reason="Accepted",
        message="",
        last_transition_time=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )


def test_new_mesh_encodes_camel_case_and_omits_unset_fields():
    mesh = Mesh.new("default", "example.io/ctrl", description="prod mesh")

    assert mesh.to_wire() == {
        "apiVersion": "gateway.networking.k8s.io/v1alpha2",
        "kind": "Mesh",
        "metadata": {"name": "default"},
        "spec": {"controllerName": "example.io/ctrl", "description": "prod mesh"},
    }


def test_decodes_wire_form():
    mesh = Mesh.model_validate({
        "apiVersion": "gateway.networking.k8s.io/v1alpha2",
        "kind": "Mesh",
        "metadata": {"name": "m", "resourceVersion": "7", "managedFields": []},
        "spec": {
            "controllerName": "example.io/ctrl",
            "parametersRef": {"group": "", "kind": "ConfigMap", "name": "params", "namespace": "mesh-system"},
        },
    })

    assert mesh.metadata.resource_version == "7"
    assert mesh.spec.parameters_ref.kind == "ConfigMap"
    assert mesh.status is None
    # unknown metadata survives a round trip
    assert mesh.to_wire()["metadata"]["managedFields"] == []


def test_description_is_limited_to_64_characters():
    MeshSpec(controller_name="example.io/ctrl", description="x" * 64)
    with pytest.raises(ValidationError):
        MeshSpec(controller_name="example.io/ctrl", description="x" * 65)


@pytest.mark.parametrize("name", ["", "ctrl", "Example.io/ctrl", "example.io/"])
def test_controller_name_must_be_domain_prefixed_path(name):
    with pytest.raises(ValidationError):
        MeshSpec(controller_name=name)


def test_unknown_spec_fields_are_rejected():
    with pytest.raises(ValidationError):
        MeshSpec.model_validate({"controllerName": "example.io/ctrl", "replicas": 3})


def test_parameters_ref_namespace_must_be_a_dns_label():
    with pytest.raises(ValidationError):
        ParametersReference(kind="ConfigMap", name="p", namespace="Not_Valid")


def test_default_conditions_match_the_waiting_state():
    [condition] = default_conditions()

    assert condition.to_wire() == {
        "type": "Accepted",
        "status": "Unknown",
        "lastTransitionTime": "1970-01-01T00:00:00Z",
        "reason": "Waiting",
        "message": "Waiting for controller",
    }


def test_status_defaults_to_waiting_condition():
    assert [c.reason for c in MeshStatus().conditions] == ["Waiting"]


def test_duplicate_condition_types_are_rejected():
    with pytest.raises(ValidationError, match="duplicate condition type"):
        MeshStatus(conditions=[_condition("Accepted"), _condition("Accepted", "False")])


def test_at_most_eight_conditions():
    MeshStatus(conditions=[_condition(f"Type{i}") for i in range(8)])
    with pytest.raises(ValidationError):
        MeshStatus(conditions=[_condition(f"Type{i}") for i in range(9)])


def test_condition_reason_format_is_enforced():
    with pytest.raises(ValidationError):
        Condition(
            type="Accepted",
            status=ConditionStatus.TRUE,
            reason="not a reason",
            last_transition_time=datetime(2024, 1, 1, tzinfo=timezone.utc),
        )


def test_default_mesh_fills_missing_status():
    obj = {"spec": {"controllerName": "example.io/ctrl"}}
    default_mesh(obj)
    assert obj["status"]["conditions"][0]["reason"] == "Waiting"


def test_default_mesh_keeps_explicit_conditions():
    explicit = _condition("Accepted").to_wire()
    obj = {"status": {"conditions": [explicit]}}
    default_mesh(obj)
    assert obj["status"]["conditions"] == [explicit]


def test_mesh_list_accepts_null_items():
    result = MeshList.model_validate({
        "apiVersion": "gateway.networking.k8s.io/v1alpha2",
        "kind": "MeshList",
        "metadata": {"resourceVersion": "3"},
        "items": None,
    })
    assert result.items == []
    assert result.metadata.resource_version == "3"
