"""Configuration models and helpers for the webhook cert manager."""
from __future__ import annotations

from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field


class ClusterContext(BaseModel):
    """Connection context used to reach the Kubernetes API."""

    kubeconfig: Optional[str] = None
    context: Optional[str] = None
    verify_ssl: bool = True
    in_cluster: bool = False


class ProvisionerConfig(BaseModel):
    """Settings for the built-in self-signed certificate provisioner."""

    key_size: int = Field(default=2048, ge=1024)
    validity_days: int = Field(default=365, gt=0)
    organization: str = "webhook-cert-manager"


class ManagerConfig(BaseModel):
    """Top-level configuration for syncing webhook certificates."""

    context: ClusterContext = Field(default_factory=ClusterContext)
    provisioner: ProvisionerConfig = Field(default_factory=ProvisionerConfig)
    # Off by default: stored certificates are accepted as-is.
    verify_certs: bool = False
    only_annotated: bool = True

    @classmethod
    def from_file(cls, path: str | Path) -> "ManagerConfig":
        document_path = Path(path)
        data = yaml.safe_load(document_path.read_text())
        if data is None:
            return cls()
        if not isinstance(data, dict):
            raise ValueError("Configuration file must contain a mapping at the top level.")
        return cls.model_validate(data)
