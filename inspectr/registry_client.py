"""
Registry tag listing for inspectr.

Each registry wire format gets its own TagSource; all of them normalize to
a flat list of tag names in the order the registry returned them.  Only a
single, unpaginated listing call is made per repository.
"""

from dataclasses import dataclass
from typing import Any, List, Optional

import httpx
import structlog

from .config import settings

logger = structlog.get_logger(__name__)


class RegistryFetchError(Exception):
    """Tags for a repository could not be retrieved this cycle."""

    def __init__(self, repository: str, reason: str):
        super().__init__(f"{repository}: {reason}")
        self.repository = repository
        self.reason = reason


@dataclass(frozen=True)
class UpgradeCandidate:
    """An available tag, as listed by a registry."""

    name: str


class TagSource:
    """Base class for registry tag listings."""

    source_name = "base"

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = timeout if timeout is not None else settings.registry_timeout

    def tags_url(self, repository: str) -> str:
        raise NotImplementedError

    def decode(self, data: Any) -> List[str]:
        raise NotImplementedError

    async def fetch_tags(self, repository: str) -> List[UpgradeCandidate]:
        """List the tags available for ``repository``.

        Raises:
            RegistryFetchError: on transport errors, non-200 responses or
                bodies that do not match the expected JSON envelope.
        """
        url = self.tags_url(repository)
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.get(url)
        except httpx.HTTPError as exc:
            raise RegistryFetchError(repository, str(exc)) from exc

        if resp.status_code != 200:
            logger.warning(
                "registry_bad_status",
                source=self.source_name,
                status=resp.status_code,
                url=url,
            )
            raise RegistryFetchError(repository, f"bad status code {resp.status_code}")

        try:
            names = self.decode(resp.json())
        except (ValueError, TypeError, KeyError, AttributeError) as exc:
            raise RegistryFetchError(repository, f"undecodable response: {exc}") from exc

        logger.debug("registry_tags_fetched", source=self.source_name, repository=repository, count=len(names))
        return [UpgradeCandidate(name) for name in names]


class DockerHubTagSource(TagSource):
    """Docker Hub v1 listing: a JSON array of ``{"layer": ..., "name": ...}``."""

    source_name = "dockerhub"

    def __init__(self, base_url: Optional[str] = None, timeout: Optional[float] = None):
        super().__init__(timeout)
        self.base_url = (base_url or settings.docker_hub_url).rstrip("/")

    def tags_url(self, repository: str) -> str:
        return f"{self.base_url}/v1/repositories/{repository}/tags"

    def decode(self, data: Any) -> List[str]:
        return [str(item["name"]) for item in data]


class V2TagSource(TagSource):
    """Registry v2 ``tags/list`` listing: ``{"name": ..., "tags": [...]}``."""

    def __init__(self, host: str, timeout: Optional[float] = None):
        super().__init__(timeout)
        self.host = host
        self.source_name = host.split(".")[0]

    def tags_url(self, repository: str) -> str:
        registry, _, path = repository.partition("/")
        if path and registry.endswith(self.host):
            # regional or vendor subdomains, e.g. eu.gcr.io
            return f"https://{registry}/v2/{path}/tags/list"
        return f"https://{self.host}/v2/{repository}/tags/list"

    def decode(self, data: Any) -> List[str]:
        return [str(tag) for tag in (data.get("tags") or [])]


class GcrTagSource(V2TagSource):
    """GCR listing; same envelope plus ``child`` and ``manifest``, both unused."""

    def __init__(self, timeout: Optional[float] = None):
        super().__init__("gcr.io", timeout)


def tag_source_for(repository: str) -> TagSource:
    """Pick the TagSource for a repository by host substring."""
    if "gcr.io" in repository:
        return GcrTagSource()
    if "quay.io" in repository:
        return V2TagSource("quay.io")
    if "zalan.do" in repository:
        return V2TagSource("zalan.do")
    return DockerHubTagSource()
