"""
Kubernetes access for inspectr.

Reads the pods of every namespace and flattens them into one
WorkloadContainer per container.  Also resolves the project and cluster
names the groups are keyed by.
"""

import asyncio
from typing import List, Optional

import httpx
import structlog
from kubernetes import client, config
from kubernetes.client.rest import ApiException

from .config import settings
from .models import WorkloadContainer

logger = structlog.get_logger(__name__)

UNKNOWN = "UNK"


class SnapshotFetchError(Exception):
    """The cluster's pod list could not be retrieved."""


class K8sClient:
    """Read-only client for the pod snapshot."""

    def __init__(self, core_v1=None):
        self._core_v1 = core_v1

    def _load_config(self):
        try:
            if settings.kubeconfig_path:
                config.load_kube_config(settings.kubeconfig_path)
            else:
                config.load_incluster_config()
        except config.ConfigException:
            logger.warning("Failed to load in-cluster config, trying kubeconfig")
            config.load_kube_config()

    @property
    def core_v1(self):
        if self._core_v1 is None:
            self._load_config()
            self._core_v1 = client.CoreV1Api()
        return self._core_v1

    async def list_workload_containers(self) -> List[WorkloadContainer]:
        """List every container of every pod in the cluster.

        Raises:
            SnapshotFetchError: if the API cannot be configured or queried.
        """
        try:
            pods = await asyncio.to_thread(self.core_v1.list_pod_for_all_namespaces)
        except ApiException as e:
            logger.error("Failed to list pods", status=e.status, error=str(e))
            raise SnapshotFetchError(f"pod list failed: {e.reason}") from e
        except Exception as e:
            logger.error("Failed to reach Kubernetes API", error=str(e))
            raise SnapshotFetchError(str(e)) from e

        containers = []
        for pod in pods.items:
            for c in pod.spec.containers or []:
                containers.append(
                    WorkloadContainer(
                        namespace=pod.metadata.namespace,
                        phase=pod.status.phase if pod.status else "",
                        pod_name=pod.metadata.name,
                        container_name=c.name,
                        image=c.image or "",
                    )
                )
        logger.debug("snapshot_fetched", pods=len(pods.items), containers=len(containers))
        return containers


async def compute_metadata(path: str) -> str:
    """Query the compute metadata server, returning "UNK" on any error."""
    try:
        async with httpx.AsyncClient(timeout=5) as http:
            resp = await http.get(
                f"{settings.metadata_url.rstrip('/')}/{path}",
                headers={"Metadata-Flavor": "Google"},
            )
            resp.raise_for_status()
            return resp.text
    except httpx.HTTPError as exc:
        logger.debug("compute_metadata_unavailable", path=path, error=str(exc))
        return UNKNOWN


async def project_name() -> str:
    """Name of the project inspectr runs in."""
    return settings.project_name or await compute_metadata("project/project-id")


async def cluster_name() -> str:
    """Name of the cluster inspectr runs in."""
    return settings.cluster_name or await compute_metadata("instance/attributes/cluster-name")


_k8s_client: Optional[K8sClient] = None


def get_k8s_client() -> K8sClient:
    """Get or create K8s client singleton."""
    global _k8s_client
    if _k8s_client is None:
        _k8s_client = K8sClient()
    return _k8s_client
