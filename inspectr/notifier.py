"""
Slack notification for inspectr.

All sends are fire-and-forget: errors are logged, never raised to the
poll loop.
"""

from typing import List, Mapping, Optional

import httpx
import structlog

from .config import settings
from .metrics import inspectr_notifications_total
from .models import GroupKey, ResultGroup

logger = structlog.get_logger(__name__)

SLACK_HOOKS_URL = "https://hooks.slack.com/services/"
MAX_LISTED = 5
CODE_SEP = "```"


class NotifierError(Exception):
    """A chat notification could not be delivered."""


def capped_string(values: List[str], limit: int = MAX_LISTED) -> str:
    """Comma-join up to ``limit`` values, then " + N more" for the rest."""
    text = ", ".join(values[:limit])
    extra = len(values) - limit
    if extra > 0:
        text += f" + {extra} more"
    return text


def format_upgrades(upgrades: Mapping[str, List[ResultGroup]]) -> str:
    """Render one code block per workload group."""
    blocks = []
    for key, results in upgrades.items():
        k = GroupKey.parse(key)
        lines = [
            f"project: {k.project}",
            f"cluster: {k.cluster}",
            f"image: {k.image}",
            f"namespaces: {capped_string([r.namespace for r in results])}",
            f"current-versions: {capped_string([r.version for r in results])}",
            f"new-versions: {capped_string([u for r in results for u in r.upgrades])}",
        ]
        blocks.append(CODE_SEP + "\n".join(lines) + CODE_SEP + "\n")
    return "".join(blocks)


def _webhook_url(webhook_id: str) -> str:
    if webhook_id.startswith("https://"):
        return webhook_id
    return SLACK_HOOKS_URL + webhook_id


async def post_to_slack(text: str) -> None:
    """Post ``text`` to the configured webhook.

    Raises:
        NotifierError: if the webhook call fails.
    """
    payload = {"text": text, "username": settings.slack_username}
    try:
        async with httpx.AsyncClient(timeout=settings.notification_timeout) as client:
            resp = await client.post(_webhook_url(settings.slack_webhook_id), json=payload)
            resp.raise_for_status()
    except httpx.HTTPError as exc:
        raise NotifierError(str(exc)) from exc


async def send_slack(text: str) -> bool:
    """Post a message to Slack via webhook."""
    if not settings.slack_webhook_id:
        logger.info(
            "not outputting to slack as the webhook id is empty, "
            "have you set INSPECTR_SLACK_WEBHOOK_ID?"
        )
        return False

    try:
        await post_to_slack(text)
    except NotifierError as exc:
        inspectr_notifications_total.labels(channel="slack", result="failure").inc()
        logger.error("slack_notification_failed", error=str(exc))
        return False

    inspectr_notifications_total.labels(channel="slack", result="success").inc()
    logger.info("slack_notification_sent")
    return True


async def output_results(
    upgrades: Mapping[str, List[ResultGroup]], within_window: bool
) -> Optional[bool]:
    """Send results when there are any, or always inside the alert window.

    Returns None when nothing was sent, else the outcome of the send.
    """
    if not upgrades and not within_window:
        return None
    logger.info("latest_results", groups=list(upgrades.keys()), within_window=within_window)
    return await send_slack(format_upgrades(upgrades))

