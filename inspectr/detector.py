"""
Upgrade detection for inspectr.

For every workload group, lists the tags of the group's image and keeps
those that are strict upgrades over each deployed version.
"""

from dataclasses import replace
from typing import Callable, Collection, Dict, List, Mapping, Optional

import structlog

from .config import settings
from .metrics import inspectr_registry_fetch_failures_total
from .models import GroupKey, ResultGroup
from .registry_client import RegistryFetchError, TagSource, tag_source_for
from .versions import upgrade_candidates

logger = structlog.get_logger(__name__)


class DetectionError(Exception):
    """Detection could not run for the cycle as a whole."""


class UpgradeDetector:
    """Attaches available upgrade tags to workload groups."""

    def __init__(
        self,
        ignore_tags: Optional[Collection[str]] = None,
        ignore_images: Optional[Mapping[str, Collection[str]]] = None,
        tag_source_factory: Callable[[str], TagSource] = tag_source_for,
    ):
        self.ignore_tags = frozenset(
            settings.ignore_tags if ignore_tags is None else ignore_tags
        )
        self.ignore_images = dict(
            settings.ignore_images if ignore_images is None else ignore_images
        )
        self._tag_source_factory = tag_source_factory

    async def detect(
        self, results_by_group: Mapping[str, List[ResultGroup]]
    ) -> Dict[str, List[ResultGroup]]:
        """Return only the groups with at least one upgrade available.

        Input entries are left untouched; the output holds copies with their
        ``upgrades`` filled in.  A registry failure for one group is logged
        and that group is skipped.

        Raises:
            DetectionError: if something other than a registry fetch fails.
        """
        upgrades: Dict[str, List[ResultGroup]] = {}
        for key, results in results_by_group.items():
            try:
                repository = GroupKey.parse(key).image
                source = self._tag_source_factory(repository)
                try:
                    candidates = await source.fetch_tags(repository)
                except RegistryFetchError as exc:
                    inspectr_registry_fetch_failures_total.labels(source=source.source_name).inc()
                    logger.warning("registry_fetch_failed", key=key, repository=repository, error=str(exc))
                    continue

                tags = [c.name for c in candidates]
                ignored = self.ignore_images.get(repository, ())
                upgraded: List[ResultGroup] = []
                for result in results:
                    found = upgrade_candidates(result.version, tags, self.ignore_tags, ignored)
                    if found:
                        upgraded.append(replace(result, upgrades=list(result.upgrades) + found))
            except Exception as exc:
                raise DetectionError(f"detection failed for {key}: {exc}") from exc

            if upgraded:
                upgrades[key] = upgraded

        logger.info("detection_complete", groups=len(results_by_group), with_upgrades=len(upgrades))
        return upgrades
