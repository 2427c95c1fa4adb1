"""Secret layout used to store webhook serving certificates."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional

from kubernetes import client

from ..errors import InvalidAnnotationError, MalformedSecretError
from ..utils import b64decode_value, b64encode_value

CA_CERT_NAME = "ca-cert.pem"
SERVER_CERT_NAME = "cert.pem"
SERVER_KEY_NAME = "key.pem"
REQUIRED_KEYS = (CA_CERT_NAME, SERVER_CERT_NAME, SERVER_KEY_NAME)

MANAGED_BY_LABEL = "app.kubernetes.io/managed-by"
MANAGED_BY_VALUE = "webhook-cert-manager"


@dataclass(frozen=True)
class CertMaterial:
    """PEM encoded CA certificate, serving certificate and private key."""

    ca_cert: bytes
    cert: bytes
    key: bytes


@dataclass(frozen=True)
class SecretRef:
    """Namespace and name of the secret holding a webhook's certificates."""

    namespace: str
    name: str

    @classmethod
    def parse(cls, value: str) -> "SecretRef":
        parts = value.strip().split("/")
        if len(parts) != 2 or not all(parts):
            raise InvalidAnnotationError(
                f"expected <namespace>/<name> in secret annotation, got {value!r}"
            )
        return cls(namespace=parts[0], name=parts[1])

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"


def secret_to_certs(secret: client.V1Secret) -> CertMaterial:
    data: Dict[str, str] = secret.data or {}
    for key in REQUIRED_KEYS:
        if key not in data:
            raise MalformedSecretError(
                f"failed to find required key {key!r} in secret "
                f"{secret.metadata.namespace}/{secret.metadata.name}"
            )
    return CertMaterial(
        ca_cert=b64decode_value(data[CA_CERT_NAME]),
        cert=b64decode_value(data[SERVER_CERT_NAME]),
        key=b64decode_value(data[SERVER_KEY_NAME]),
    )


def certs_to_data(certs: CertMaterial) -> Dict[str, str]:
    return {
        CA_CERT_NAME: b64encode_value(certs.ca_cert),
        SERVER_CERT_NAME: b64encode_value(certs.cert),
        SERVER_KEY_NAME: b64encode_value(certs.key),
    }


def certs_to_secret(
    certs: CertMaterial,
    ref: SecretRef,
    existing: Optional[client.V1Secret] = None,
) -> client.V1Secret:
    """Build the secret body for ``certs``.

    When ``existing`` is given its metadata (including ``resourceVersion``) is
    kept so the result can be used for an in-place replace.
    """

    if existing is not None:
        metadata = existing.metadata
    else:
        metadata = client.V1ObjectMeta(
            name=ref.name,
            namespace=ref.namespace,
            labels={MANAGED_BY_LABEL: MANAGED_BY_VALUE},
        )
    return client.V1Secret(
        api_version="v1",
        kind="Secret",
        metadata=metadata,
        type=existing.type if existing is not None and existing.type else "Opaque",
        data=certs_to_data(certs),
    )
