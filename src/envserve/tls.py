"""TLS material for the HTTPS listener.

Certificates either come from PEM files supplied on the command line or are
generated on the fly as a self-signed pair for local development.
"""
from __future__ import annotations

import ipaddress
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Protocol, cast

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID

CIPHERS = ":".join(
    [
        "ECDHE-RSA-AES128-SHA256",
        "DHE-RSA-AES128-SHA256",
        "AES128-GCM-SHA256",
        "HIGH",
        "!MD5",
        "!aNULL",
    ]
)
SELF_SIGNED_DAYS = 360
SELF_SIGNED_KEY_SIZE = 2048


class TLSConfigurationError(RuntimeError):
    """Raised when TLS material cannot be resolved."""


class PublicKeyProtocol(Protocol):
    """Protocol covering public keys exposing ``public_bytes``."""

    def public_bytes(
        self,
        *,
        encoding: serialization.Encoding,
        format: serialization.PublicFormat,
    ) -> bytes:
        """Return the public key bytes in the requested encoding/format."""


class PrivateKeyProtocol(Protocol):
    """Protocol for private keys that can provide a matching public key."""

    def public_key(self) -> PublicKeyProtocol:
        """Return the associated public key object."""


@dataclass(frozen=True)
class TLSMaterial:
    """PEM-encoded certificate, private key and optional CA bundle."""

    cert: str
    key: str
    ca: str | None = None
    source: str = "files"

    def describe(self) -> dict[str, object]:
        """Return a serialisable summary of the certificate."""
        certificate = x509.load_pem_x509_certificate(self.cert.encode("ascii"))
        common_names = certificate.subject.get_attributes_for_oid(NameOID.COMMON_NAME)
        return {
            "source": self.source,
            "subject": str(common_names[0].value) if common_names else None,
            "serial": certificate.serial_number,
            "not_valid_after": certificate.not_valid_after_utc.isoformat(),
            "ca": self.ca is not None,
        }


def generate_self_signed(
    common_name: str = "localhost",
    *,
    days: int = SELF_SIGNED_DAYS,
    now: datetime | None = None,
) -> TLSMaterial:
    """Generate a self-signed certificate/key pair valid for *days*."""
    now = now or datetime.now(UTC)
    key = rsa.generate_private_key(public_exponent=65537, key_size=SELF_SIGNED_KEY_SIZE)
    subject = issuer = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    alt_names = x509.SubjectAlternativeName(
        [
            x509.DNSName(common_name),
            x509.DNSName("localhost"),
            x509.IPAddress(ipaddress.ip_address("127.0.0.1")),
        ]
    )
    cert = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(issuer)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(minutes=5))
        .not_valid_after(now + timedelta(days=days))
        .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
        .add_extension(alt_names, critical=False)
        .sign(key, hashes.SHA256())
    )
    cert_pem = cert.public_bytes(serialization.Encoding.PEM).decode("ascii")
    key_pem = key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("ascii")
    return TLSMaterial(cert=cert_pem, key=key_pem, source="self-signed")


def load_tls_material(
    cert_path: Path,
    key_path: Path,
    ca_path: Path | None = None,
) -> TLSMaterial:
    """Read and sanity-check PEM files for the HTTPS listener."""
    cert_pem = _read_pem(cert_path, "certificate")
    key_pem = _read_pem(key_path, "key")
    ca_pem = _read_pem(ca_path, "CA bundle") if ca_path is not None else None

    try:
        certificate = x509.load_pem_x509_certificate(cert_pem.encode("ascii"))
    except ValueError as exc:
        raise TLSConfigurationError(f"Failed to parse certificate {cert_path}: {exc}") from exc
    try:
        private_key = serialization.load_pem_private_key(key_pem.encode("ascii"), password=None)
    except (TypeError, ValueError) as exc:
        raise TLSConfigurationError(f"Failed to parse private key {key_path}: {exc}") from exc

    if not _public_keys_match(certificate, cast(PrivateKeyProtocol, private_key)):
        raise TLSConfigurationError(
            f"Certificate {cert_path} does not match the provided key {key_path}."
        )
    return TLSMaterial(cert=cert_pem, key=key_pem, ca=ca_pem)


def resolve_tls_material(
    *,
    self_signed: bool,
    cert_path: Path | None,
    key_path: Path | None,
    ca_path: Path | None = None,
) -> TLSMaterial:
    """Return TLS material for the listener, generating it when requested."""
    if self_signed:
        material = generate_self_signed()
        if ca_path is None:
            return material
        return TLSMaterial(
            cert=material.cert,
            key=material.key,
            ca=_read_pem(ca_path, "CA bundle"),
            source=material.source,
        )
    if cert_path is None or key_path is None:
        raise TLSConfigurationError("For HTTPS server must be provided at least key and cert.")
    return load_tls_material(cert_path, key_path, ca_path)


def _read_pem(path: Path, label: str) -> str:
    try:
        return path.read_text(encoding="ascii")
    except (OSError, UnicodeDecodeError) as exc:
        raise TLSConfigurationError(f"Unable to read {label} {path}: {exc}") from exc


def _public_keys_match(cert: x509.Certificate, private_key: PrivateKeyProtocol) -> bool:
    cert_bytes = cert.public_key().public_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    key_bytes = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    return cert_bytes == key_bytes


__all__ = [
    "CIPHERS",
    "TLSConfigurationError",
    "TLSMaterial",
    "generate_self_signed",
    "load_tls_material",
    "resolve_tls_material",
]
