"""
JIRA reporting for inspectr.

Keeps one open issue per workload group.  The issue is created the first
time a group shows upgrades; later upgrades for the group are added as
comments unless the issue already mentions them.  Uses the JIRA REST API
v2 over httpx with basic authentication.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

import httpx
import structlog

from .config import settings
from .models import GroupKey, ResultGroup
from .notifier import send_slack

logger = structlog.get_logger(__name__)

DEFAULT_TIMEOUT = 15.0
PARAMS_USAGE = (
    "user|pass|project|issueType|otherFieldKey:otherFieldValue,otherFieldKey:otherFieldValue..."
)


class IssueTrackerError(Exception):
    """A JIRA call failed."""


@dataclass
class JiraParams:
    user: str
    password: str
    project: str
    issue_type: str
    other_fields: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def parse(cls, params: str) -> Optional["JiraParams"]:
        """Parse ``user|pass|project|issueType[|k:v,k:v]``.

        Returns None when JIRA reporting is not (fully) configured.
        """
        if not params:
            return None
        parts = params.split("|")
        if len(parts) < 4:
            logger.error("JIRA params specified but not enough params found", usage=PARAMS_USAGE)
            return None

        other: Dict[str, str] = {}
        if len(parts) > 4 and parts[4]:
            for pair in parts[4].split(","):
                kv = pair.split(":")
                if len(kv) == 2:
                    other[kv[0]] = kv[1]
        return cls(parts[0], parts[1], parts[2], parts[3], other)


# =============================================================================
# TEXT HELPERS
# =============================================================================


def summary_from_key(key: str) -> str:
    k = GroupKey.parse(key)
    return (
        f"inspectr upgrade (image): {k.image} (project): {k.project} "
        f"(cluster): {k.cluster} (pod): {k.pod} (container): {k.container}"
    )


def upgrades_string(result: ResultGroup) -> str:
    return "Upgrades: " + ", ".join(result.upgrades)


def comment_from_result(result: ResultGroup) -> str:
    return (
        "new version discovered:\n"
        "{code}"
        f"Name: {result.name}\n"
        f"Namespace: {result.namespace}\n"
        f"Quantity: {result.quantity}\n"
        f"{upgrades_string(result)}\n"
        f"Version: {result.version}\n"
        "{code}"
    )


def infra_details(key: str) -> str:
    k = GroupKey.parse(key)
    return (
        f"project: {k.project}\n"
        f"image: {k.image}\n"
        f"cluster: {k.cluster}\n"
        f"pod: {k.pod}\n"
        f"container: {k.container}\n\n"
    )


def result_mentioned(texts: List[str], result: ResultGroup) -> bool:
    """True if any description/comment already describes ``result``."""
    upgrades = upgrades_string(result)
    return any(
        f"Namespace: {result.namespace}" in text
        and f"Name: {result.name}" in text
        and upgrades in text
        for text in texts
    )


# =============================================================================
# CLIENT
# =============================================================================


class JiraReporter:
    """Creates or comments on one JIRA issue per workload group."""

    def __init__(self, base_url: str, params: JiraParams, timeout: float = DEFAULT_TIMEOUT):
        self.base_url = base_url.rstrip("/")
        self.params = params
        self.timeout = timeout

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            auth=(self.params.user, self.params.password),
            headers={"Accept": "application/json"},
            timeout=self.timeout,
        )

    def browse_url(self, issue_key: str) -> str:
        return f"{self.base_url}/browse/{issue_key}"

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        try:
            async with self._client() as client:
                resp = await client.request(method, path, **kwargs)
                resp.raise_for_status()
                return resp.json()
        except httpx.HTTPStatusError as exc:
            raise IssueTrackerError(
                f"{method} {path} returned {exc.response.status_code}: {exc.response.text}"
            ) from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise IssueTrackerError(f"{method} {path} failed: {exc}") from exc

    async def search_open_issues(self, summary: str) -> List[str]:
        """Keys of open issues in the project whose summary matches."""
        jql = (
            f'summary ~ "{summary}" AND project = {self.params.project} '
            "AND statusCategory != Done"
        )
        data = await self._request(
            "GET", "/rest/api/2/search", params={"jql": jql, "fields": "summary"}
        )
        return [issue["key"] for issue in data.get("issues", []) if "key" in issue]

    async def issue_texts(self, issue_key: str) -> List[str]:
        """Description plus every comment body of an issue."""
        data = await self._request(
            "GET",
            f"/rest/api/2/issue/{issue_key}",
            params={"fields": "description,comment"},
        )
        fields = data.get("fields") or {}
        texts = [fields.get("description") or ""]
        comments = (fields.get("comment") or {}).get("comments") or []
        texts.extend(c.get("body") or "" for c in comments if c)
        return texts

    async def add_comment(self, issue_key: str, result: ResultGroup) -> None:
        await self._request(
            "POST",
            f"/rest/api/2/issue/{issue_key}/comment",
            json={"body": comment_from_result(result)},
        )
        logger.info("jira_comment_added", issue=issue_key, namespace=result.namespace)
        await send_slack(f"just commented on {self.browse_url(issue_key)}")

    async def _field_ids(self) -> Dict[str, Dict[str, Any]]:
        """Map field display names to their id and schema."""
        fields = await self._request("GET", "/rest/api/2/field")
        return {f["name"]: f for f in fields if "name" in f}

    async def create_issue(self, key: str, results: List[ResultGroup], summary: str) -> str:
        """Create an issue describing every result of the group."""
        description = infra_details(key) + "".join(comment_from_result(r) for r in results)
        fields: Dict[str, Any] = {
            "project": {"key": self.params.project},
            "issuetype": {"name": self.params.issue_type},
            "summary": summary,
            "description": description,
        }
        if self.params.other_fields:
            known = await self._field_ids()
            for name, value in self.params.other_fields.items():
                meta = known.get(name)
                if meta is None:
                    logger.warning("jira_field_unknown", field=name)
                    continue
                schema_type = (meta.get("schema") or {}).get("type")
                fields[meta["id"]] = {"value": value} if schema_type == "option" else value

        data = await self._request("POST", "/rest/api/2/issue", json={"fields": fields})
        issue_key = data.get("key")
        if not issue_key:
            raise IssueTrackerError(f"issue created for {key} but no key returned")
        logger.info("jira_issue_created", issue=issue_key, group=key)
        await send_slack(f"just created {self.browse_url(issue_key)}")
        return issue_key

    async def report_group(self, key: str, results: List[ResultGroup]) -> None:
        """Create or comment on the group's issue.

        Raises:
            IssueTrackerError: on failed calls or unexpected response bodies.
        """
        try:
            await self._report_group(key, results)
        except (KeyError, TypeError, AttributeError) as exc:
            raise IssueTrackerError(f"unexpected JIRA response for {key}: {exc!r}") from exc

    async def _report_group(self, key: str, results: List[ResultGroup]) -> None:
        summary = summary_from_key(key)
        issues = await self.search_open_issues(summary)
        if not issues:
            await self.create_issue(key, results, summary)
        elif len(issues) == 1:
            texts = await self.issue_texts(issues[0])
            for result in results:
                if not result_mentioned(texts, result):
                    await self.add_comment(issues[0], result)
                    texts.append(comment_from_result(result))
        else:
            logger.warning("jira_multiple_issues_found", group=key, issues=issues)

    async def report(self, upgrades: Mapping[str, List[ResultGroup]]) -> int:
        """Report every group; a failing group does not stop the others.

        Returns:
            Number of groups that failed.
        """
        failures = 0
        for key, results in upgrades.items():
            try:
                await self.report_group(key, results)
            except IssueTrackerError as exc:
                failures += 1
                logger.error("jira_report_failed", group=key, error=str(exc))
        return failures


def get_jira_reporter() -> Optional[JiraReporter]:
    """Build a reporter from settings, or None if JIRA is not configured."""
    params = JiraParams.parse(settings.jira_params)
    if params is None or not settings.jira_url:
        return None
    return JiraReporter(settings.jira_url, params)
