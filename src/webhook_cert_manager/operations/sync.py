"""Sync the certificates and CA bundles of a webhook configuration."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from ..errors import SecretNotFoundError
from ..kube import CertManagerAPI
from ..resources.element import Webhook, WebhookType, new_webhook_element
from ..utils import b64decode_value, b64encode_value
from .certs import CertsHandler, SecretCertsHandlerFactory
from .client import new_webhook_client

_LOG = logging.getLogger(__name__)


@dataclass
class SyncResult:
    """Outcome of one sync pass over a webhook configuration."""

    name: Optional[str]
    kind: WebhookType
    changed: bool
    synced_webhooks: List[str] = field(default_factory=list)


class WebhookConfigurationSync:
    """Provisions certificates for annotated webhooks and injects their CA.

    One call to :meth:`sync` is a single pass over one configuration. The first
    error aborts the pass and nothing is written to the configuration, while
    secrets written for earlier webhooks are kept. Running the pass again picks
    those secrets up through :meth:`CertsHandler.read` and finishes the CA
    injection, so callers retry a failed pass as a whole.
    """

    def __init__(self, api: CertManagerAPI, certs_handler_factory: SecretCertsHandlerFactory) -> None:
        self.api = api
        self.certs_handler_factory = certs_handler_factory

    def sync(self, webhook_configuration: object) -> SyncResult:
        certs_handler = self.certs_handler_factory.new(webhook_configuration)
        webhook_client = new_webhook_client(self.api, webhook_configuration)

        webhook_config = new_webhook_element(webhook_configuration)
        cloned = webhook_config.deep_copy()
        synced: List[str] = []
        for webhook in cloned.webhooks:
            if sync_secret_with_webhook(webhook, certs_handler):
                synced.append(webhook.name)

        result = SyncResult(name=webhook_config.name, kind=webhook_config.kind, changed=False, synced_webhooks=synced)
        if webhook_config.deep_equal(cloned):
            _LOG.debug("%s webhook configuration %s is up to date", webhook_config.kind.value, webhook_config.name)
            return result

        webhook_client.update(cloned)
        result.changed = True
        return result


def sync_secret_with_webhook(webhook: Webhook, certs_handler: CertsHandler) -> bool:
    """Ensure valid certificates exist for ``webhook`` and its CA bundle trusts them.

    Modifies ``webhook`` in place. Returns False when the webhook is skipped.
    """

    webhook_name = webhook.name
    if certs_handler.skip(webhook_name):
        _LOG.debug("Skipping webhook %s without secret annotation", webhook_name)
        return False

    try:
        certs = certs_handler.read(webhook_name)
    except SecretNotFoundError:
        certs = certs_handler.write(webhook_name)

    # Recreate the certificates if they are invalid.
    if not certs_handler.is_valid(webhook_name, certs):
        _LOG.info("Rotating invalid certificates for webhook %s", webhook_name)
        certs = certs_handler.write(webhook_name)

    ca_bundle = b64decode_value(webhook.client_config.ca_bundle)
    if certs.ca_cert not in ca_bundle:
        _LOG.debug("Adding CA certificate to the CA bundle of webhook %s", webhook_name)
        webhook.client_config.ca_bundle = b64encode_value(ca_bundle + certs.ca_cert)
    return True
