"""Reading, provisioning and validating the certificates of annotated webhooks."""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Callable, Dict, Mapping, Optional
from urllib.parse import urlparse

from cryptography import x509
from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.x509.oid import NameOID
from kubernetes import client

from ..errors import (
    AmbiguousClientConfigError,
    CertManagerError,
    SecretNotFoundError,
    WebhookNotInPolicyError,
)
from ..kube import CertManagerAPI
from ..provisioner import GetCertProvisioner, service_to_common_name
from ..resources.element import Webhook, WebhookConfigElement, new_webhook_element
from ..resources.secret import CertMaterial, SecretRef, certs_to_secret, secret_to_certs

_LOG = logging.getLogger(__name__)

# Annotation format:
#   secret.certprovisioner.kubernetes.io/<webhook-name>: <secret-namespace>/<secret-name>
SECRET_CERT_INJECTION_ANNOTATION_KEY_PREFIX = "secret.certprovisioner.kubernetes.io/"

CertValidator = Callable[[CertMaterial, Webhook], bool]


def client_config_to_common_name(client_config: client.AdmissionregistrationV1WebhookClientConfig) -> str:
    """Derive the certificate common name from a webhook client config.

    For a URL only the hostname is used; the port is dropped on purpose since a
    DNS or IP SAN cannot carry one.
    """

    if client_config.service is not None and client_config.url is not None:
        raise AmbiguousClientConfigError(
            "service and url can't be set at the same time in a webhook client config"
        )
    if client_config.service is None and client_config.url is None:
        raise AmbiguousClientConfigError("one of service and url needs to be set in a webhook client config")
    if client_config.service is not None:
        return service_to_common_name(client_config.service.namespace, client_config.service.name)
    host = urlparse(client_config.url).hostname
    if not host:
        raise AmbiguousClientConfigError(f"webhook url {client_config.url!r} has no host")
    return host


def parse_secret_annotations(annotations: Mapping[str, str]) -> Dict[str, str]:
    """Map webhook names to the raw ``<namespace>/<name>`` values of the cert injection annotations.

    Values are parsed with :meth:`SecretRef.parse` only when a webhook's secret
    is used, so a malformed annotation for a webhook the configuration no longer
    contains does not block the others.
    """

    webhook_to_secret: Dict[str, str] = {}
    for key, value in annotations.items():
        if key.startswith(SECRET_CERT_INJECTION_ANNOTATION_KEY_PREFIX):
            webhook_name = key[len(SECRET_CERT_INJECTION_ANNOTATION_KEY_PREFIX):]
            webhook_to_secret[webhook_name] = value
    return webhook_to_secret


def has_cert_annotations(webhook_configuration: object) -> bool:
    metadata = getattr(webhook_configuration, "metadata", None)
    annotations = metadata.annotations if metadata is not None else None
    return any(
        key.startswith(SECRET_CERT_INJECTION_ANNOTATION_KEY_PREFIX) for key in annotations or {}
    )


def accept_all_certs(certs: CertMaterial, webhook: Webhook) -> bool:
    """Default validity policy: stored certificates are always accepted."""

    return True


def verify_x509_certs(certs: CertMaterial, webhook: Webhook) -> bool:
    """Check that the key matches the cert, the CA signed the cert, and the cert names the webhook host."""

    try:
        ca_cert = x509.load_pem_x509_certificate(certs.ca_cert)
        cert = x509.load_pem_x509_certificate(certs.cert)
        key = serialization.load_pem_private_key(certs.key, password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
        _LOG.info("Stored certificates for webhook %s cannot be parsed: %s", webhook.name, exc)
        return False

    spki = serialization.PublicFormat.SubjectPublicKeyInfo
    if key.public_key().public_bytes(serialization.Encoding.DER, spki) != cert.public_key().public_bytes(
        serialization.Encoding.DER, spki
    ):
        _LOG.info("Private key does not match certificate for webhook %s", webhook.name)
        return False

    try:
        cert.verify_directly_issued_by(ca_cert)
    except (ValueError, TypeError, InvalidSignature):
        _LOG.info("Certificate for webhook %s is not signed by the stored CA", webhook.name)
        return False

    common_name = client_config_to_common_name(webhook.client_config)
    try:
        san = cert.extensions.get_extension_for_class(x509.SubjectAlternativeName).value
        names = san.get_values_for_type(x509.DNSName)
        names += [str(address) for address in san.get_values_for_type(x509.IPAddress)]
    except x509.ExtensionNotFound:
        names = [str(attr.value) for attr in cert.subject.get_attributes_for_oid(NameOID.COMMON_NAME)]
    if common_name not in names:
        _LOG.info("Certificate for webhook %s does not cover %s", webhook.name, common_name)
        return False
    return True


class CertsHandler(ABC):
    """Per-configuration access to the certificates of its webhooks."""

    @abstractmethod
    def skip(self, webhook_name: str) -> bool:
        """Return True when the webhook has no certificate policy."""

    @abstractmethod
    def read(self, webhook_name: str) -> CertMaterial:
        """Return the stored certificates, raising SecretNotFoundError when absent."""

    @abstractmethod
    def write(self, webhook_name: str) -> CertMaterial:
        """Provision new certificates, store them and return them."""

    @abstractmethod
    def is_valid(self, webhook_name: str, certs: CertMaterial) -> bool:
        ...


class NoopCertsHandler(CertsHandler):
    """Handler for configurations without annotations: every webhook is skipped."""

    def skip(self, webhook_name: str) -> bool:
        return True

    def read(self, webhook_name: str) -> CertMaterial:
        raise WebhookNotInPolicyError(webhook_name)

    def write(self, webhook_name: str) -> CertMaterial:
        raise WebhookNotInPolicyError(webhook_name)

    def is_valid(self, webhook_name: str, certs: CertMaterial) -> bool:
        return True


class SecretCertsHandler(CertsHandler):
    """Stores each webhook's certificates in the secret named by its annotation."""

    def __init__(
        self,
        api: CertManagerAPI,
        webhook_config: WebhookConfigElement,
        webhook_to_secret: Dict[str, str],
        get_cert_provisioner: GetCertProvisioner,
        validator: CertValidator = accept_all_certs,
    ) -> None:
        self.api = api
        self.webhook_config = webhook_config
        self.webhook_to_secret = webhook_to_secret
        self.webhook_map: Dict[str, Webhook] = {webhook.name: webhook for webhook in webhook_config.webhooks}
        self.get_cert_provisioner = get_cert_provisioner
        self.validator = validator

    def skip(self, webhook_name: str) -> bool:
        return webhook_name not in self.webhook_to_secret

    def read(self, webhook_name: str) -> CertMaterial:
        ref = self._secret_ref(webhook_name)
        secret = self.api.get_secret(ref.namespace, ref.name)
        if secret is None:
            raise SecretNotFoundError(ref.namespace, ref.name)
        return secret_to_certs(secret)

    def write(self, webhook_name: str) -> CertMaterial:
        ref = self._secret_ref(webhook_name)
        common_name = client_config_to_common_name(self._webhook(webhook_name).client_config)
        provisioner = self.get_cert_provisioner(common_name)
        certs = provisioner.provision_serving_cert()

        existing = self.api.get_secret(ref.namespace, ref.name)
        secret = certs_to_secret(certs, ref, existing)
        if existing is None:
            self.api.create_secret(secret)
            _LOG.info("Created Secret %s with certificates for webhook %s (%s)", ref, webhook_name, common_name)
        else:
            self.api.replace_secret(secret)
            _LOG.info("Updated Secret %s with certificates for webhook %s (%s)", ref, webhook_name, common_name)
        return certs

    def is_valid(self, webhook_name: str, certs: CertMaterial) -> bool:
        return self.validator(certs, self._webhook(webhook_name))

    def _secret_ref(self, webhook_name: str) -> SecretRef:
        value = self.webhook_to_secret.get(webhook_name)
        if value is None:
            raise WebhookNotInPolicyError(webhook_name)
        return SecretRef.parse(value)

    def _webhook(self, webhook_name: str) -> Webhook:
        webhook = self.webhook_map.get(webhook_name)
        if webhook is None:
            raise CertManagerError(
                f"webhook {webhook_name!r} not found in {self.webhook_config.kind.value} "
                f"webhook configuration {self.webhook_config.name!r}"
            )
        return webhook


class SecretCertsHandlerFactory:
    """Builds a :class:`CertsHandler` from a webhook configuration's annotations."""

    def __init__(
        self,
        api: CertManagerAPI,
        get_cert_provisioner: GetCertProvisioner,
        validator: Optional[CertValidator] = None,
    ) -> None:
        self.api = api
        self.get_cert_provisioner = get_cert_provisioner
        self.validator = validator or accept_all_certs

    def new(self, webhook_configuration: object) -> CertsHandler:
        element = new_webhook_element(webhook_configuration)
        annotations = element.annotations
        if annotations is None:
            return NoopCertsHandler()
        return SecretCertsHandler(
            api=self.api,
            webhook_config=element,
            webhook_to_secret=parse_secret_annotations(annotations),
            get_cert_provisioner=self.get_cert_provisioner,
            validator=self.validator,
        )
