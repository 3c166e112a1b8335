"""
Data types shared across the inspectr pipeline.
"""

from dataclasses import dataclass, field
from typing import Collection, Dict, Iterable, List, Optional

KEY_SEPARATOR = ":"


@dataclass(frozen=True)
class WorkloadContainer:
    """One container of one pod, as seen in a cluster snapshot."""

    namespace: str
    phase: str
    pod_name: str
    container_name: str
    image: str  # full reference, e.g. "eversc/inspectr:v0.0.1-alpha"


@dataclass(frozen=True)
class GroupKey:
    """Identity of a workload group, tracked across poll cycles."""

    project: str
    cluster: str
    image: str
    pod: str
    container: str

    @classmethod
    def parse(cls, key: str) -> "GroupKey":
        project, cluster, image, pod, container = key.split(KEY_SEPARATOR)[:5]
        return cls(project, cluster, image, pod, container)

    def __str__(self) -> str:
        return KEY_SEPARATOR.join(
            [self.project, self.cluster, self.image, self.pod, self.container]
        )


@dataclass
class ResultGroup:
    """Workloads of a group that share the same namespace and version."""

    name: str  # image name
    namespace: str
    version: str
    quantity: int = 1
    upgrades: List[str] = field(default_factory=list)

    @property
    def registry_entry(self) -> str:
        """The "version|namespace" string kept in the announcement cache."""
        return f"{self.version}|{self.namespace}"

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "namespace": self.namespace,
            "quantity": self.quantity,
            "version": self.version,
            "upgrades": list(self.upgrades),
        }


def image_from_uri(image_uri: str) -> str:
    """'eversc/inspectr' from 'eversc/inspectr:v0.0.1-alpha'."""
    return image_uri.split(":")[0]


def version_from_uri(image_uri: str) -> Optional[str]:
    """'v0.0.1-alpha' from 'eversc/inspectr:v0.0.1-alpha', None when untagged."""
    parts = image_uri.split(":")
    if len(parts) < 2:
        return None
    return parts[1]


def pod_template_name(pod_name: str) -> str:
    """Drop the replica-set hash and random suffix from a pod name.

    Assumes pods are suffixed by two "-" separated strings, e.g.
    ``banana-3229788801-zl7bq`` -> ``banana``.
    """
    return "-".join(pod_name.split("-")[:-2])


def add_result(results: List[ResultGroup], result: ResultGroup) -> None:
    """Bump the quantity of a matching entry, or append a new one."""
    for existing in results:
        if existing.namespace == result.namespace and existing.version == result.version:
            existing.quantity += 1
            return
    results.append(result)


def group_workloads(
    containers: Iterable[WorkloadContainer],
    project: str,
    cluster: str,
    ignore_namespaces: Collection[str],
    allowed_phases: Collection[str],
) -> Dict[str, List[ResultGroup]]:
    """Aggregate a snapshot into group key -> result entries.

    Containers in ignored namespaces, pods outside the allowed phases and
    images without a tag are skipped.
    """
    groups: Dict[str, List[ResultGroup]] = {}
    for c in containers:
        if c.namespace in ignore_namespaces:
            continue
        if c.phase not in allowed_phases:
            continue
        version = version_from_uri(c.image)
        if version is None:
            continue

        image = image_from_uri(c.image)
        key = str(
            GroupKey(project, cluster, image, pod_template_name(c.pod_name), c.container_name)
        )
        add_result(
            groups.setdefault(key, []),
            ResultGroup(name=image, namespace=c.namespace, version=version),
        )
    return groups
