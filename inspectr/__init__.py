"""
inspectr - container image upgrade watcher for Kubernetes.

Polls the cluster for running workloads, checks each image's registry for
newer tags, and reports new upgrade opportunities to Slack and JIRA.
"""

__version__ = "0.4.0"
