"""Certificate provisioners used to issue webhook serving certificates."""
from __future__ import annotations

import datetime
import ipaddress
import logging
from typing import Callable, List, Protocol

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

from .config import ProvisionerConfig
from .resources.secret import CertMaterial

_LOG = logging.getLogger(__name__)


class CertProvisioner(Protocol):
    """Issues a CA certificate plus a serving certificate and key signed by it."""

    def provision_serving_cert(self) -> CertMaterial:
        ...


GetCertProvisioner = Callable[[str], CertProvisioner]


def service_to_common_name(service_namespace: str, service_name: str) -> str:
    """Return the in-cluster DNS name the API server uses to reach a service."""

    return f"{service_name}.{service_namespace}.svc"


def _subject_alt_names(common_name: str) -> List[x509.GeneralName]:
    try:
        address = ipaddress.ip_address(common_name)
    except ValueError:
        return [x509.DNSName(common_name)]
    return [x509.IPAddress(address)]


class SelfSignedCertProvisioner:
    """Creates a fresh self-signed CA on every call and signs a serving cert with it."""

    def __init__(
        self,
        common_name: str,
        key_size: int = 2048,
        validity_days: int = 365,
        organization: str = "webhook-cert-manager",
    ) -> None:
        self.common_name = common_name
        self.key_size = key_size
        self.validity_days = validity_days
        self.organization = organization

    def _generate_key(self) -> rsa.RSAPrivateKey:
        return rsa.generate_private_key(public_exponent=65537, key_size=self.key_size)

    def provision_serving_cert(self) -> CertMaterial:
        now = datetime.datetime.now(datetime.timezone.utc)
        not_before = now - datetime.timedelta(minutes=5)
        not_after = now + datetime.timedelta(days=self.validity_days)

        ca_key = self._generate_key()
        ca_name = x509.Name(
            [
                x509.NameAttribute(NameOID.ORGANIZATION_NAME, self.organization),
                x509.NameAttribute(NameOID.COMMON_NAME, f"webhook-cert-ca@{int(now.timestamp())}"),
            ]
        )
        ca_cert = (
            x509.CertificateBuilder()
            .subject_name(ca_name)
            .issuer_name(ca_name)
            .public_key(ca_key.public_key())
            .serial_number(x509.random_serial_number())
            .not_valid_before(not_before)
            .not_valid_after(not_after)
            .add_extension(x509.BasicConstraints(ca=True, path_length=0), critical=True)
            .add_extension(
                x509.KeyUsage(
                    digital_signature=True,
                    content_commitment=False,
                    key_encipherment=False,
                    data_encipherment=False,
                    key_agreement=False,
                    key_cert_sign=True,
                    crl_sign=True,
                    encipher_only=False,
                    decipher_only=False,
                ),
                critical=True,
            )
            .sign(private_key=ca_key, algorithm=hashes.SHA256())
        )

        key = self._generate_key()
        cert = (
            x509.CertificateBuilder()
            .subject_name(
                x509.Name(
                    [
                        x509.NameAttribute(NameOID.ORGANIZATION_NAME, self.organization),
                        x509.NameAttribute(NameOID.COMMON_NAME, self.common_name),
                    ]
                )
            )
            .issuer_name(ca_cert.subject)
            .public_key(key.public_key())
            .serial_number(x509.random_serial_number())
            .not_valid_before(not_before)
            .not_valid_after(not_after)
            .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
            .add_extension(
                x509.ExtendedKeyUsage([ExtendedKeyUsageOID.SERVER_AUTH]), critical=False
            )
            .add_extension(
                x509.SubjectAlternativeName(_subject_alt_names(self.common_name)), critical=False
            )
            .sign(private_key=ca_key, algorithm=hashes.SHA256())
        )

        _LOG.debug("Provisioned self-signed serving certificate for %s", self.common_name)
        return CertMaterial(
            ca_cert=ca_cert.public_bytes(serialization.Encoding.PEM),
            cert=cert.public_bytes(serialization.Encoding.PEM),
            key=key.private_bytes(
                serialization.Encoding.PEM,
                serialization.PrivateFormat.PKCS8,
                serialization.NoEncryption(),
            ),
        )


def self_signed_provisioner_factory(config: ProvisionerConfig) -> GetCertProvisioner:
    """Return a ``common_name -> provisioner`` callable bound to ``config``."""

    def get_cert_provisioner(common_name: str) -> CertProvisioner:
        return SelfSignedCertProvisioner(
            common_name,
            key_size=config.key_size,
            validity_days=config.validity_days,
            organization=config.organization,
        )

    return get_cert_provisioner
