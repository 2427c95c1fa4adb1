"""Uniform view over mutating and validating webhook configurations."""
from __future__ import annotations

import copy
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from kubernetes import client

from ..errors import UnsupportedTypeError, WrongVariantError

WebhookConfiguration = Union[
    client.V1MutatingWebhookConfiguration,
    client.V1ValidatingWebhookConfiguration,
]
Webhook = Union[client.V1MutatingWebhook, client.V1ValidatingWebhook]


class WebhookType(str, Enum):
    MUTATING = "mutating"
    VALIDATING = "validating"


class WebhookConfigElement(ABC):
    """Wraps one webhook configuration so the sync logic is written only once.

    The wrapped object is held by reference: mutating the list returned by
    :attr:`webhooks` mutates the configuration itself. Use :meth:`deep_copy`
    to obtain an independent element before editing.
    """

    kind: WebhookType

    def __init__(self, webhook_configuration: WebhookConfiguration) -> None:
        self.webhook_configuration = webhook_configuration

    @property
    def metadata(self) -> Optional[client.V1ObjectMeta]:
        return self.webhook_configuration.metadata

    @property
    def name(self) -> Optional[str]:
        return self.metadata.name if self.metadata else None

    @property
    def annotations(self) -> Optional[Dict[str, str]]:
        return self.metadata.annotations if self.metadata else None

    @property
    def webhooks(self) -> List[Webhook]:
        return self.webhook_configuration.webhooks or []

    def deep_copy(self) -> "WebhookConfigElement":
        return type(self)(copy.deepcopy(self.webhook_configuration))

    def deep_equal(self, other: "WebhookConfigElement") -> bool:
        """Compare whole configurations; elements of different kinds are never equal."""

        if other.kind is not self.kind:
            return False
        return self.to_dict() == other.to_dict()

    def to_dict(self) -> Dict[str, Any]:
        return self.webhook_configuration.to_dict()

    @abstractmethod
    def get_mutating_webhook_config(self) -> client.V1MutatingWebhookConfiguration:
        ...

    @abstractmethod
    def get_validating_webhook_config(self) -> client.V1ValidatingWebhookConfiguration:
        ...

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name!r}>"


class MutatingWebhookElement(WebhookConfigElement):
    kind = WebhookType.MUTATING

    def get_mutating_webhook_config(self) -> client.V1MutatingWebhookConfiguration:
        return self.webhook_configuration

    def get_validating_webhook_config(self) -> client.V1ValidatingWebhookConfiguration:
        raise WrongVariantError(
            f"mutating webhook configuration {self.name!r} is not a validating webhook configuration"
        )


class ValidatingWebhookElement(WebhookConfigElement):
    kind = WebhookType.VALIDATING

    def get_mutating_webhook_config(self) -> client.V1MutatingWebhookConfiguration:
        raise WrongVariantError(
            f"validating webhook configuration {self.name!r} is not a mutating webhook configuration"
        )

    def get_validating_webhook_config(self) -> client.V1ValidatingWebhookConfiguration:
        return self.webhook_configuration


def new_webhook_element(webhook_configuration: object) -> WebhookConfigElement:
    """Wrap ``webhook_configuration`` in the element matching its kind."""

    if isinstance(webhook_configuration, client.V1MutatingWebhookConfiguration):
        return MutatingWebhookElement(webhook_configuration)
    if isinstance(webhook_configuration, client.V1ValidatingWebhookConfiguration):
        return ValidatingWebhookElement(webhook_configuration)
    raise UnsupportedTypeError(webhook_configuration)
