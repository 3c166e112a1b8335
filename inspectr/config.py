"""
Configuration for inspectr.
"""

from pydantic_settings import BaseSettings
from typing import Dict, List, Optional


class Settings(BaseSettings):
    """Application settings from environment variables."""

    # Server (health + metrics)
    host: str = "0.0.0.0"
    port: int = 8080
    debug: bool = False
    log_level: str = "info"

    # Kubernetes
    # Uses in-cluster config by default
    kubeconfig_path: Optional[str] = None

    # Cluster identity, resolved from the compute metadata server when unset
    project_name: Optional[str] = None
    cluster_name: Optional[str] = None
    metadata_url: str = "http://metadata/computeMetadata/v1"

    # Workload filtering
    ignore_namespaces: List[str] = ["kube-system"]
    allowed_pod_phases: List[str] = ["Running"]

    # Tags that are never an upgrade, whatever the image
    ignore_tags: List[str] = ["latest"]

    # Per-image tags to skip, e.g. known-bad releases
    ignore_images: Dict[str, List[str]] = {
        "gcr.io/google_containers/nginx-ingress-controller": ["0.61", "0.62"],
    }

    # Registries
    docker_hub_url: str = "https://registry.hub.docker.com"
    registry_timeout: float = 30.0

    # Alert schedule, "HHMM" (daily) or "DAY|HHMM" (weekly)
    schedule: str = ""
    timezone: str = ""
    alert_window_seconds: int = 300

    # Sleep after a cycle that could not complete
    fallback_sleep_seconds: int = 300

    # Notification - Slack
    slack_webhook_id: Optional[str] = None
    slack_username: str = "inspectr"
    notification_timeout: float = 10.0

    # JIRA - "user|pass|project|issueType|otherFieldKey:otherFieldValue,..."
    jira_url: Optional[str] = None
    jira_params: str = ""

    class Config:
        env_prefix = "INSPECTR_"


settings = Settings()
