"""Low-level Kubernetes client helpers for the webhook cert manager."""
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Iterator, List, Optional

from kubernetes import client, config, watch
from kubernetes.client import ApiException

from .config import ClusterContext
from .resources.element import WebhookConfiguration, WebhookType

_LOG = logging.getLogger(__name__)


class CertManagerAPI:
    """Wrapper around the Kubernetes clients used to sync webhook certificates."""

    def __init__(self, context: ClusterContext) -> None:
        self.context = context
        if context.in_cluster:
            config.load_incluster_config()
            api_client = client.ApiClient()
        else:
            api_client = config.new_client_from_config(
                config_file=context.kubeconfig,
                context=context.context,
            )
        api_client.configuration.verify_ssl = context.verify_ssl
        self.api_client = api_client
        self.core_v1 = client.CoreV1Api(api_client)
        self.admission_v1 = client.AdmissionregistrationV1Api(api_client)

    def get_secret(self, namespace: str, name: str) -> Optional[client.V1Secret]:
        """Return the secret or ``None`` when it does not exist."""

        try:
            return self.core_v1.read_namespaced_secret(name=name, namespace=namespace)
        except ApiException as exc:
            if exc.status == 404:
                _LOG.debug("Secret %s/%s not found", namespace, name)
                return None
            raise

    def create_secret(self, secret: client.V1Secret) -> client.V1Secret:
        namespace = secret.metadata.namespace
        _LOG.debug("Creating Secret %s/%s", namespace, secret.metadata.name)
        return self.core_v1.create_namespaced_secret(namespace=namespace, body=secret)

    def replace_secret(self, secret: client.V1Secret) -> client.V1Secret:
        namespace = secret.metadata.namespace
        name = secret.metadata.name
        _LOG.debug("Replacing Secret %s/%s", namespace, name)
        return self.core_v1.replace_namespaced_secret(name=name, namespace=namespace, body=secret)

    def read_webhook_configuration(self, kind: WebhookType, name: str) -> WebhookConfiguration:
        return self._admission_method("read", kind)(name=name)

    def list_webhook_configurations(self, kind: WebhookType) -> List[WebhookConfiguration]:
        result = self._admission_method("list", kind)()
        return list(result.items or [])

    def replace_webhook_configuration(
        self,
        kind: WebhookType,
        name: str,
        body: WebhookConfiguration,
    ) -> WebhookConfiguration:
        _LOG.debug("Replacing %s webhook configuration %s", kind.value, name)
        return self._admission_method("replace", kind)(name=name, body=body)

    def watch_webhook_configurations(
        self,
        kind: WebhookType,
        timeout_seconds: Optional[int] = None,
    ) -> Iterator[Dict[str, Any]]:
        """Stream watch events (``{"type": ..., "object": ...}``) for one kind."""

        stream_kwargs: Dict[str, Any] = {}
        if timeout_seconds is not None:
            stream_kwargs["timeout_seconds"] = timeout_seconds
        watcher = watch.Watch()
        try:
            yield from watcher.stream(self._admission_method("list", kind), **stream_kwargs)
        finally:
            watcher.stop()

    def _admission_method(self, verb: str, kind: WebhookType) -> Callable[..., Any]:
        return getattr(self.admission_v1, f"{verb}_{kind.value}_webhook_configuration")
