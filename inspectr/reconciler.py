"""
Notification reconciliation for inspectr.

Keeps track of which (version, namespace) pairs have already been
announced for each workload group, so that between alert windows only
newly appearing upgrade opportunities are reported.  The cache lives for
the process lifetime and is rebuilt wholesale on every in-window cycle.
"""

from typing import Dict, Iterable, List, Mapping, Optional, Set

import structlog

from .models import ResultGroup

logger = structlog.get_logger(__name__)


class RegisteredImageCache:
    """Group key -> set of announced "version|namespace" strings."""

    def __init__(self):
        self._entries: Dict[str, Set[str]] = {}

    def get(self, key: str) -> Optional[Set[str]]:
        return self._entries.get(key)

    def register(self, key: str, results: Iterable[ResultGroup]) -> None:
        """Add the results' pairs to ``key``; existing pairs are kept."""
        self._entries.setdefault(key, set()).update(r.registry_entry for r in results)

    def replace(self, upgrades: Mapping[str, List[ResultGroup]]) -> None:
        """Forget everything and hold exactly the pairs in ``upgrades``."""
        self._entries = {
            key: {r.registry_entry for r in results} for key, results in upgrades.items()
        }

    def snapshot(self) -> Dict[str, Set[str]]:
        return {key: set(entries) for key, entries in self._entries.items()}

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)


def reconcile(
    detected: Mapping[str, List[ResultGroup]],
    cache: RegisteredImageCache,
    within_window: bool,
) -> Dict[str, List[ResultGroup]]:
    """Filter ``detected`` down to what should be announced, updating ``cache``.

    Inside the alert window everything is announced and the cache is
    replaced.  Outside it, groups unknown to the cache are announced in
    full; known groups only announce entries whose pair is not cached yet,
    and groups left with nothing to announce are dropped.
    """
    if within_window:
        cache.replace(detected)
        logger.info("registered_images_replaced", groups=len(detected))
        return dict(detected)

    filtered: Dict[str, List[ResultGroup]] = {}
    for key, results in detected.items():
        registered = cache.get(key)
        if registered is None:
            filtered[key] = list(results)
            cache.register(key, results)
            continue

        fresh = [r for r in results if r.registry_entry not in registered]
        if fresh:
            filtered[key] = fresh
            cache.register(key, fresh)

    if filtered:
        logger.info("new_upgrades_found", groups=len(filtered))
    return filtered
