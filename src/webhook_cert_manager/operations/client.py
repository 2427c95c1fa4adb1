"""Persist updated webhook configurations back to the cluster."""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from ..kube import CertManagerAPI
from ..resources.element import WebhookConfigElement, WebhookType, new_webhook_element

_LOG = logging.getLogger(__name__)


class WebhookClient(ABC):
    """Replaces a webhook configuration of one kind."""

    kind: WebhookType

    def __init__(self, api: CertManagerAPI) -> None:
        self.api = api

    @abstractmethod
    def update(self, element: WebhookConfigElement) -> None:
        ...


class MutatingWebhookClient(WebhookClient):
    kind = WebhookType.MUTATING

    def update(self, element: WebhookConfigElement) -> None:
        body = element.get_mutating_webhook_config()
        _LOG.info("Updating mutating webhook configuration %s", body.metadata.name)
        self.api.replace_webhook_configuration(self.kind, body.metadata.name, body)


class ValidatingWebhookClient(WebhookClient):
    kind = WebhookType.VALIDATING

    def update(self, element: WebhookConfigElement) -> None:
        body = element.get_validating_webhook_config()
        _LOG.info("Updating validating webhook configuration %s", body.metadata.name)
        self.api.replace_webhook_configuration(self.kind, body.metadata.name, body)


_CLIENTS = {
    WebhookType.MUTATING: MutatingWebhookClient,
    WebhookType.VALIDATING: ValidatingWebhookClient,
}


def new_webhook_client(api: CertManagerAPI, webhook_configuration: object) -> WebhookClient:
    """Return the client for the kind of ``webhook_configuration``."""

    kind = new_webhook_element(webhook_configuration).kind
    return _CLIENTS[kind](api)
