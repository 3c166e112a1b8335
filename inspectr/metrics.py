"""
Prometheus metrics for inspectr.
"""

from prometheus_client import Counter, Gauge, Histogram, Info, generate_latest
from fastapi.responses import Response

# =============================================================================
# METRICS DEFINITIONS
# =============================================================================

inspectr_upgrades_total = Gauge(
    "inspectr_upgrades_total",
    "Number of image upgrades currently available.",
)

inspectr_cycles_total = Counter(
    "inspectr_cycles_total",
    "Total poll cycles executed",
    ["result"],
)

inspectr_cycle_duration_seconds = Histogram(
    "inspectr_cycle_duration_seconds",
    "Duration of poll cycles in seconds",
)

inspectr_registry_fetch_failures_total = Counter(
    "inspectr_registry_fetch_failures_total",
    "Registry tag listings that failed",
    ["source"],
)

inspectr_notifications_total = Counter(
    "inspectr_notifications_total",
    "Notifications sent by channel",
    ["channel", "result"],
)

inspectr_info = Info(
    "inspectr",
    "inspectr instance metadata",
)


# =============================================================================
# RESPONSE HELPER
# =============================================================================

def get_metrics_response() -> Response:
    """Return Prometheus metrics in text exposition format."""
    return Response(
        content=generate_latest(),
        media_type="text/plain; version=0.0.4; charset=utf-8",
    )
