"""Data models for certificates, chains and keys."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional, Tuple, Union

from cryptography import x509
from cryptography.hazmat.primitives.asymmetric import ec, ed25519, rsa


@dataclass(frozen=True)
class CertificateInfo:
    """A decoded certificate and the fields the chain logic works on."""

    subject: str  # RFC 4514, used as identity
    issuer: str
    serial_number: str
    subject_serial_number: str  # serialNumber attribute of the subject DN
    common_name: str
    is_ca: bool
    der: bytes = field(repr=False)
    not_before: datetime
    not_after: datetime
    public_key_algorithm: str
    fingerprint_sha256: str
    ca_issuers_urls: Tuple[str, ...] = ()  # AIA CA Issuers URLs
    san_dns_names: Tuple[str, ...] = ()
    san_ip_addresses: Tuple[str, ...] = ()
    x509_cert: Optional[x509.Certificate] = field(default=None, repr=False, compare=False)

    @property
    def is_self_signed(self) -> bool:
        return self.subject == self.issuer


@dataclass
class CertTree:
    """A chain split into its leaf, intermediates and roots."""

    certificate: CertificateInfo
    intermediates: List[CertificateInfo] = field(default_factory=list)
    roots: List[CertificateInfo] = field(default_factory=list)


class KeyAlgorithm(str, Enum):
    """Supported private key families."""

    RSA = "RSA"
    ECDSA = "ECDSA"
    ED25519 = "Ed25519"


PrivateKeyTypes = Union[rsa.RSAPrivateKey, ec.EllipticCurvePrivateKey, ed25519.Ed25519PrivateKey]

# PEM block type per algorithm, matching what OpenSSL writes for each
PEM_BLOCK_TYPES = {
    KeyAlgorithm.RSA: "RSA PRIVATE KEY",
    KeyAlgorithm.ECDSA: "EC PRIVATE KEY",
    KeyAlgorithm.ED25519: "PRIVATE KEY",
}


@dataclass(frozen=True)
class PrivateKeyInfo:
    """A decoded private key tagged with its algorithm."""

    algorithm: KeyAlgorithm
    key: PrivateKeyTypes = field(repr=False)

    @property
    def pem_type(self) -> str:
        return PEM_BLOCK_TYPES[self.algorithm]
