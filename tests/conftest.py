"""Shared fixtures: an in-memory API server with Meshes and a namespaced kind."""

from typing import Optional

import pytest
from pydantic import ConfigDict, Field

from kubeclient.fake import FakeExecutor
from kubeclient.meta import KubeModel, ListMeta, ObjectMeta
from kubeclient.resource import ResourceClient, ResourceKind
from servicemesh import MESH_KIND, Mesh, meshes


class ConfigMap(KubeModel):
    """Minimal core/v1 ConfigMap, used to exercise namespaced kinds."""

    model_config = ConfigDict(extra="forbid")

    api_version: str = "v1"
    kind: str = "ConfigMap"
    metadata: ObjectMeta = Field(default_factory=ObjectMeta)
    data: Optional[dict[str, str]] = None


class ConfigMapList(KubeModel):
    api_version: str = "v1"
    kind: str = "ConfigMapList"
    metadata: ListMeta = Field(default_factory=ListMeta)
    items: list[ConfigMap] = Field(default_factory=list)


CONFIGMAP_KIND = ResourceKind(
    group="",
    version="v1",
    kind="ConfigMap",
    plural="configmaps",
    model=ConfigMap,
    list_model=ConfigMapList,
    namespaced=True,
)


@pytest.fixture
def fake() -> FakeExecutor:
    return FakeExecutor([MESH_KIND, CONFIGMAP_KIND])


@pytest.fixture
def client(fake):
    return meshes(fake)


@pytest.fixture
def configmaps(fake):
    return ResourceClient(fake, CONFIGMAP_KIND, namespace="mesh-system")


def make_mesh(name: str = "default", **kwargs) -> Mesh:
    kwargs.setdefault("controller_name", "example.io/ctrl")
    return Mesh.new(name, **kwargs)
