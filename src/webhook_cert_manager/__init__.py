"""Webhook certificate manager package."""

from .config import ClusterContext, ManagerConfig  # noqa: F401
from .kube import CertManagerAPI  # noqa: F401
from .operations.sync import SyncResult, WebhookConfigurationSync  # noqa: F401

__all__ = [
    "ClusterContext",
    "ManagerConfig",
    "CertManagerAPI",
    "SyncResult",
    "WebhookConfigurationSync",
]
