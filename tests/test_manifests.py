from datetime import datetime, timedelta, timezone

import pytest
import yaml

from conftest import make_mesh
from servicemesh.conditions import mark_accepted
from servicemesh.manifests import (
    ManifestError,
    dump_mesh,
    dump_meshes,
    format_table,
    human_age,
    load_meshes,
    printer_columns,
)

MANIFEST = """
apiVersion: gateway.networking.k8s.io/v1alpha2
kind: Mesh
metadata:
  name: default
  labels:
    env: prod
spec:
  controllerName: example.io/mesh-controller
  description: production mesh
  parametersRef:
    kind: ConfigMap
    name: mesh-params
    namespace: mesh-system
---
---
apiVersion: gateway.networking.k8s.io/v1alpha2
kind: Mesh
metadata:
  name: canary
spec:
  controllerName: example.io/mesh-controller
"""

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def test_load_multi_document_manifest():
    meshes = load_meshes(MANIFEST)

    assert [m.metadata.name for m in meshes] == ["default", "canary"]
    assert meshes[0].spec.parameters_ref.namespace == "mesh-system"
    assert meshes[0].metadata.labels == {"env": "prod"}
    assert meshes[1].status is None


def test_dump_round_trips():
    mesh = make_mesh(description="prod", labels={"env": "prod"})
    assert load_meshes(dump_mesh(mesh)) == [mesh]


def test_dump_uses_wire_keys_in_field_order():
    document = yaml.safe_load(dump_mesh(make_mesh()))
    assert list(document) == ["apiVersion", "kind", "metadata", "spec"]
    assert document["spec"] == {"controllerName": "example.io/ctrl"}


def test_dump_meshes():
    text = dump_meshes([make_mesh("a"), make_mesh("b")])
    assert [m.metadata.name for m in load_meshes(text)] == ["a", "b"]


@pytest.mark.parametrize("text", [
    "apiVersion: v1\nkind: ConfigMap\nmetadata: {name: x}\n",
    "apiVersion: gateway.networking.k8s.io/v1beta1\nkind: Mesh\nspec: {controllerName: example.io/c}\n",
    "- just\n- a list\n",
    "apiVersion: gateway.networking.k8s.io/v1alpha2\nkind: Mesh\nspec: {}\n",
    "kind: [unclosed\n",
])
def test_rejected_manifests(text):
    with pytest.raises(ManifestError):
        load_meshes(text)


def test_empty_manifest():
    assert load_meshes("") == []


@pytest.mark.parametrize("delta, expected", [
    (timedelta(seconds=45), "45s"),
    (timedelta(minutes=5), "5m"),
    (timedelta(hours=5), "5h"),
    (timedelta(days=3), "3d"),
    (timedelta(seconds=-10), "0s"),
])
def test_human_age(delta, expected):
    assert human_age(NOW - delta, NOW) == expected


def test_human_age_unknown():
    assert human_age(None, NOW) == "<unknown>"


def test_printer_columns():
    mesh = make_mesh(description="prod")
    mesh.metadata.creation_timestamp = NOW - timedelta(hours=3)
    mark_accepted(mesh, now=NOW)

    assert printer_columns(mesh, NOW) == {
        "Controller": "example.io/ctrl",
        "Accepted": "True",
        "Age": "3h",
        "Description": "prod",
    }


def test_printer_columns_before_status():
    columns = printer_columns(make_mesh(), NOW)
    assert columns["Accepted"] == ""
    assert columns["Age"] == "<unknown>"


def test_format_table():
    table = format_table([make_mesh("default", description="prod"), make_mesh("b")], NOW)

    lines = table.splitlines()
    assert lines[0].split() == ["NAME", "CONTROLLER", "ACCEPTED", "AGE", "DESCRIPTION"]
    assert lines[1].split() == ["default", "example.io/ctrl", "<unknown>", "prod"]
    assert lines[1].index("example.io/ctrl") == lines[0].index("CONTROLLER")
