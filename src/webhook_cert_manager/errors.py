"""Exceptions raised while syncing webhook certificates."""
from __future__ import annotations


class CertManagerError(Exception):
    """Base class for all webhook cert manager errors."""


class UnsupportedTypeError(CertManagerError):
    """The object is neither a mutating nor a validating webhook configuration."""

    def __init__(self, obj: object) -> None:
        super().__init__(
            f"unsupported type: {type(obj).__name__}, only V1MutatingWebhookConfiguration "
            "and V1ValidatingWebhookConfiguration are supported"
        )
        self.obj = obj


class WrongVariantError(CertManagerError):
    """A webhook configuration element was downcast to the other kind."""


class AmbiguousClientConfigError(CertManagerError):
    """A webhook client config sets both or neither of ``service`` and ``url``."""


class SecretNotFoundError(CertManagerError):
    """The secret referenced by a webhook annotation does not exist yet."""

    def __init__(self, namespace: str, name: str) -> None:
        super().__init__(f"secret {namespace}/{name} not found")
        self.namespace = namespace
        self.name = name


class MalformedSecretError(CertManagerError):
    """A secret exists but lacks one of the required certificate keys."""


class WebhookNotInPolicyError(CertManagerError):
    """No secret annotation exists for the requested webhook name."""

    def __init__(self, webhook_name: str) -> None:
        super().__init__(f"failed to find the secret name by the webhook name: {webhook_name!r}")
        self.webhook_name = webhook_name


class InvalidAnnotationError(CertManagerError):
    """A secret annotation value is not in ``<namespace>/<name>`` form."""
