"""Certificate parsing into CertificateInfo."""

import hashlib
import logging
import warnings
from typing import List, Union

from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import dsa, ec, ed448, ed25519, rsa
from cryptography.x509.oid import AuthorityInformationAccessOID, NameOID

from certchain.models import CertificateInfo

logger = logging.getLogger(__name__)


def load_der_certificate(cert_der: bytes) -> x509.Certificate:
    """
    Load a DER certificate while suppressing CryptographyDeprecationWarning
    about non-positive serial numbers.
    """
    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        return x509.load_der_x509_certificate(cert_der)


def parse_certificate(cert: Union[bytes, x509.Certificate]) -> CertificateInfo:
    """
    Parse a certificate into a CertificateInfo.

    Args:
        cert: DER encoded certificate or an already loaded x509.Certificate

    Returns:
        CertificateInfo

    Raises:
        ValueError: If the DER data is not a certificate
    """
    if isinstance(cert, (bytes, bytearray)):
        cert = load_der_certificate(bytes(cert))

    cert_der = cert.public_bytes(serialization.Encoding.DER)

    return CertificateInfo(
        subject=cert.subject.rfc4514_string(),
        issuer=cert.issuer.rfc4514_string(),
        serial_number=str(cert.serial_number),
        subject_serial_number=_first_attribute(cert.subject, NameOID.SERIAL_NUMBER),
        common_name=_first_attribute(cert.subject, NameOID.COMMON_NAME),
        is_ca=_is_ca(cert),
        der=cert_der,
        not_before=cert.not_valid_before_utc,
        not_after=cert.not_valid_after_utc,
        public_key_algorithm=_public_key_algorithm(cert),
        fingerprint_sha256=hashlib.sha256(cert_der).hexdigest(),
        ca_issuers_urls=tuple(_ca_issuers_urls(cert)),
        san_dns_names=tuple(_san_values(cert, x509.DNSName)),
        san_ip_addresses=tuple(str(ip) for ip in _san_values(cert, x509.IPAddress)),
        x509_cert=cert,
    )


def _first_attribute(name: x509.Name, oid: x509.ObjectIdentifier) -> str:
    attributes = name.get_attributes_for_oid(oid)
    if not attributes:
        return ""
    value = attributes[0].value
    return value if isinstance(value, str) else value.decode("utf-8", errors="replace")


def _is_ca(cert: x509.Certificate) -> bool:
    try:
        return cert.extensions.get_extension_for_class(x509.BasicConstraints).value.ca
    except x509.ExtensionNotFound:
        return False


def _ca_issuers_urls(cert: x509.Certificate) -> List[str]:
    try:
        aia = cert.extensions.get_extension_for_class(x509.AuthorityInformationAccess).value
    except x509.ExtensionNotFound:
        return []

    urls: List[str] = []
    for description in aia:
        if description.access_method != AuthorityInformationAccessOID.CA_ISSUERS:
            continue
        if isinstance(description.access_location, x509.UniformResourceIdentifier):
            urls.append(description.access_location.value)
    return urls


def _san_values(cert: x509.Certificate, general_name_type: type) -> list:
    try:
        san = cert.extensions.get_extension_for_class(x509.SubjectAlternativeName).value
    except x509.ExtensionNotFound:
        return []
    return list(san.get_values_for_type(general_name_type))


def _public_key_algorithm(cert: x509.Certificate) -> str:
    try:
        public_key = cert.public_key()
    except (ValueError, UnsupportedAlgorithm) as e:
        logger.debug(f"Could not load public key of '{cert.subject.rfc4514_string()}': {e}")
        return "unknown"

    if isinstance(public_key, rsa.RSAPublicKey):
        return f"RSA-{public_key.key_size}"
    if isinstance(public_key, ec.EllipticCurvePublicKey):
        return f"ECDSA-{public_key.curve.name}"
    if isinstance(public_key, ed25519.Ed25519PublicKey):
        return "Ed25519"
    if isinstance(public_key, ed448.Ed448PublicKey):
        return "Ed448"
    if isinstance(public_key, dsa.DSAPublicKey):
        return f"DSA-{public_key.key_size}"
    return type(public_key).__name__
