"""
Poll loop for inspectr.

One cycle: snapshot the cluster, detect upgrades, filter out what has
already been announced, notify, then sleep.  Cycles run one after the
other on a single task; failures degrade to "sleep and retry".
"""

import asyncio
import time
from datetime import datetime, tzinfo
from typing import Any, Callable, Dict, List, Optional, Tuple

import structlog

from .config import settings
from .detector import DetectionError, UpgradeDetector
from .jira_client import JiraReporter, get_jira_reporter
from .k8s_client import (
    UNKNOWN,
    K8sClient,
    SnapshotFetchError,
    cluster_name,
    get_k8s_client,
    project_name,
)
from .metrics import (
    inspectr_cycle_duration_seconds,
    inspectr_cycles_total,
    inspectr_upgrades_total,
)
from .models import ResultGroup, group_workloads
from .notifier import output_results
from .reconciler import RegisteredImageCache, reconcile
from .schedule import AlertSchedule, is_within_window, load_timezone, next_sleep_seconds

logger = structlog.get_logger(__name__)


class InspectrMonitor:
    """Owns the registered image cache and drives the poll cycles."""

    def __init__(
        self,
        k8s: Optional[K8sClient] = None,
        detector: Optional[UpgradeDetector] = None,
        jira: Optional[JiraReporter] = None,
        schedule: Optional[AlertSchedule] = None,
        tz: Optional[tzinfo] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._k8s = k8s or get_k8s_client()
        self._detector = detector or UpgradeDetector()
        self._jira = jira
        self._schedule = schedule or AlertSchedule.parse(settings.schedule)
        self._tz = tz or load_timezone(settings.timezone)
        self._clock = clock or (lambda: datetime.now(self._tz))

        self.cache = RegisteredImageCache()
        self._identity: Optional[Tuple[str, str]] = None

        self._running = False
        self._task: Optional[asyncio.Task] = None

        # Tracking for the status endpoint
        self._cycles: int = 0
        self._last_cycle: float = 0.0
        self._last_result: str = "pending"
        self._last_sleep: int = 0
        self._last_upgrades: Dict[str, List[ResultGroup]] = {}

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self):
        self._running = True
        self._task = asyncio.create_task(self.run_forever())
        logger.info("InspectrMonitor started", schedule=settings.schedule or "1000")

    async def stop(self):
        self._running = False
        if self._task:
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
            self._task = None
        logger.info("InspectrMonitor stopped")

    async def run_forever(self):
        """Run cycles until stopped, sleeping as each cycle dictates."""
        while self._running:
            try:
                sleep = await self.run_cycle()
                await asyncio.sleep(sleep)
            except asyncio.CancelledError:
                break
            except Exception as exc:
                logger.error("poll loop error", error=str(exc))
                await asyncio.sleep(settings.fallback_sleep_seconds)

    # ------------------------------------------------------------------
    # Cycle
    # ------------------------------------------------------------------

    def within_window(self) -> bool:
        return is_within_window(
            self._schedule, self._clock(), settings.alert_window_seconds
        )

    async def _cluster_identity(self) -> Tuple[str, str]:
        if self._identity is not None:
            return self._identity
        identity = (await project_name(), await cluster_name())
        # retried next cycle while the metadata server is unreachable
        if UNKNOWN not in identity:
            self._identity = identity
        return identity

    async def run_cycle(self) -> int:
        """Run one cycle and return the number of seconds to sleep."""
        start = time.perf_counter()
        self._cycles += 1
        self._last_cycle = time.time()
        try:
            containers = await self._k8s.list_workload_containers()
            within_window = self.within_window()
            project, cluster = await self._cluster_identity()
            groups = group_workloads(
                containers,
                project,
                cluster,
                settings.ignore_namespaces,
                settings.allowed_pod_phases,
            )
            detected = await self._detector.detect(groups)
        except (SnapshotFetchError, DetectionError) as exc:
            sleep = settings.fallback_sleep_seconds
            inspectr_cycles_total.labels(result="failure").inc()
            inspectr_cycle_duration_seconds.observe(time.perf_counter() - start)
            logger.error("cycle_failed", error=str(exc), sleep=sleep)
            self._last_result = "failure"
            self._last_sleep = sleep
            return sleep

        inspectr_upgrades_total.set(len(detected))
        self._last_upgrades = detected

        announce = reconcile(detected, self.cache, within_window)
        await output_results(announce, within_window)
        if self._jira and announce:
            await self._jira.report(announce)

        sleep = next_sleep_seconds(within_window)
        inspectr_cycles_total.labels(result="success").inc()
        inspectr_cycle_duration_seconds.observe(time.perf_counter() - start)
        logger.info(
            "cycle_complete",
            groups=len(groups),
            detected=len(detected),
            announced=len(announce),
            within_window=within_window,
            sleep=sleep,
        )
        self._last_result = "success"
        self._last_sleep = sleep
        return sleep

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def get_status(self) -> Dict[str, Any]:
        return {
            "running": self._running,
            "cycles": self._cycles,
            "last_cycle": self._last_cycle,
            "last_result": self._last_result,
            "next_sleep_seconds": self._last_sleep,
            "groups_with_upgrades": len(self._last_upgrades),
            "registered_groups": len(self.cache),
        }

    def get_upgrades(self) -> Dict[str, List[dict]]:
        return {
            key: [r.to_dict() for r in results]
            for key, results in self._last_upgrades.items()
        }


_monitor: Optional[InspectrMonitor] = None


def get_monitor() -> InspectrMonitor:
    """Get or create the monitor singleton."""
    global _monitor
    if _monitor is None:
        _monitor = InspectrMonitor(jira=get_jira_reporter())
    return _monitor
