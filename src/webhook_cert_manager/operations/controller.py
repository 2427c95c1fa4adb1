"""Reconcile webhook configurations by name, in bulk, or from watch events."""
from __future__ import annotations

import itertools
import logging
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from kubernetes.client import ApiException
from urllib3.exceptions import ProtocolError

from ..config import ManagerConfig
from ..kube import CertManagerAPI
from ..provisioner import self_signed_provisioner_factory
from ..resources.element import WebhookType
from .certs import SecretCertsHandlerFactory, accept_all_certs, has_cert_annotations, verify_x509_certs
from .sync import SyncResult, WebhookConfigurationSync

_LOG = logging.getLogger(__name__)

ALL_KINDS: Tuple[WebhookType, ...] = (WebhookType.MUTATING, WebhookType.VALIDATING)


class WebhookConfigurationController:
    """Drives :class:`WebhookConfigurationSync` for configurations in the cluster.

    Passes run one at a time, so a configuration is never synced concurrently
    by the same controller.
    """

    def __init__(
        self,
        api: CertManagerAPI,
        syncer: WebhookConfigurationSync,
        only_annotated: bool = True,
    ) -> None:
        self.api = api
        self.syncer = syncer
        self.only_annotated = only_annotated

    def reconcile(self, kind: WebhookType, name: str) -> Optional[SyncResult]:
        """Fetch the named configuration and sync it; returns None if it is gone."""

        try:
            webhook_configuration = self.api.read_webhook_configuration(kind, name)
        except ApiException as exc:
            if exc.status == 404:
                _LOG.debug("%s webhook configuration %s no longer exists", kind.value, name)
                return None
            raise
        return self.syncer.sync(webhook_configuration)

    def sync_all(
        self, kinds: Sequence[WebhookType] = ALL_KINDS
    ) -> Tuple[List[SyncResult], Dict[str, Exception]]:
        """Sync every configuration of ``kinds``.

        Configurations are independent: a failure is recorded under
        ``"<kind>/<name>"`` and the remaining configurations are still synced.
        """

        results: List[SyncResult] = []
        failures: Dict[str, Exception] = {}
        for kind in kinds:
            for webhook_configuration in self.api.list_webhook_configurations(kind):
                name = webhook_configuration.metadata.name
                if self.only_annotated and not has_cert_annotations(webhook_configuration):
                    _LOG.debug("Ignoring %s webhook configuration %s without cert annotations", kind.value, name)
                    continue
                try:
                    results.append(self.syncer.sync(webhook_configuration))
                except Exception as exc:
                    _LOG.error("Failed to sync %s webhook configuration %s: %s", kind.value, name, exc)
                    failures[f"{kind.value}/{name}"] = exc
        return results, failures

    def watch(
        self,
        kinds: Sequence[WebhookType] = ALL_KINDS,
        timeout_seconds: int = 60,
        rounds: Optional[int] = None,
    ) -> None:
        """Reconcile configurations as watch events arrive.

        Kinds are watched in turn, each stream for ``timeout_seconds``. ``rounds``
        bounds the number of passes over ``kinds``; None watches forever. A failed
        pass is logged and retried on the next event for that configuration. A
        stream that fails, such as on 410 Gone, is logged and the next stream is
        opened.
        """

        for _ in self._rounds(rounds):
            for kind in kinds:
                try:
                    for event in self.api.watch_webhook_configurations(kind, timeout_seconds=timeout_seconds):
                        self._handle_event(kind, event)
                except (ApiException, ProtocolError) as exc:
                    _LOG.warning("Watch of %s webhook configurations ended: %s", kind.value, exc)

    def _handle_event(self, kind: WebhookType, event: Dict[str, object]) -> None:
        if event.get("type") not in ("ADDED", "MODIFIED"):
            return
        obj = event.get("object")
        name = obj.metadata.name
        if self.only_annotated and not has_cert_annotations(obj):
            return
        try:
            result = self.reconcile(kind, name)
        except Exception:
            _LOG.exception("Failed to sync %s webhook configuration %s", kind.value, name)
            return
        if result is not None and result.changed:
            _LOG.info("Synced %s webhook configuration %s", kind.value, name)

    @staticmethod
    def _rounds(rounds: Optional[int]) -> Iterable[int]:
        return itertools.count() if rounds is None else range(rounds)


def build_controller(manager_config: ManagerConfig, api: Optional[CertManagerAPI] = None) -> WebhookConfigurationController:
    """Wire the API, certificate handler factory and sync pass from configuration."""

    api = api or CertManagerAPI(manager_config.context)
    factory = SecretCertsHandlerFactory(
        api=api,
        get_cert_provisioner=self_signed_provisioner_factory(manager_config.provisioner),
        validator=verify_x509_certs if manager_config.verify_certs else accept_all_certs,
    )
    return WebhookConfigurationController(
        api=api,
        syncer=WebhookConfigurationSync(api, factory),
        only_annotated=manager_config.only_annotated,
    )
