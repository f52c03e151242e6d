"""Typed client binding for Mesh resources."""

from kubeclient.request import RequestExecutor
from kubeclient.resource import STATUS_SUBRESOURCE, ResourceClient, ResourceKind
from servicemesh.mesh_types import GROUP, VERSION, Mesh, MeshList, default_mesh


MESH_KIND: ResourceKind[Mesh, MeshList] = ResourceKind(
    group=GROUP,
    version=VERSION,
    kind="Mesh",
    plural="meshes",
    model=Mesh,
    list_model=MeshList,
    namespaced=False,
    subresources=(STATUS_SUBRESOURCE,),
    defaulter=default_mesh,
)

MeshClient = ResourceClient[Mesh, MeshList]


def meshes(executor: RequestExecutor) -> MeshClient:
    """Client for the cluster-scoped ``meshes`` collection."""
    return ResourceClient(executor, MESH_KIND)


class GatewayV1alpha2Client:
    """Group-version client handing out per-kind clients over one executor."""

    def __init__(self, executor: RequestExecutor):
        self.executor = executor

    def meshes(self) -> MeshClient:
        return meshes(self.executor)
