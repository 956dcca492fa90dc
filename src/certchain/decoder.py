"""Decoding and encoding of certificate and private key containers.

Certificates are accepted as PEM, DER, PKCS#7 (PEM or DER) and PKCS#12.
Private keys are accepted as unencrypted PEM, encrypted PKCS#8 PEM and
PKCS#12. Each format is a probe; probes run in order and the first one that
yields a result wins.
"""

import logging
import warnings
from pathlib import Path
from typing import Callable, List, Optional, Tuple, Union

from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, ed25519, rsa
from cryptography.hazmat.primitives.serialization import pkcs7, pkcs12

from certchain.certificate import load_der_certificate, parse_certificate
from certchain.exceptions import DecodeError, NoCertificatesError, UnsupportedKeyError
from certchain.models import CertificateInfo, KeyAlgorithm, PrivateKeyInfo

logger = logging.getLogger(__name__)

ERROR_SEPARATOR = "   >>   "

PEM_MARKER = b"-----BEGIN"


def _password_bytes(password: str) -> Optional[bytes]:
    return password.encode("utf-8") if password else None


def _decode_pem(data: bytes, password: str) -> List[x509.Certificate]:
    if PEM_MARKER not in data:
        raise DecodeError("not valid PEM data")
    try:
        return x509.load_pem_x509_certificates(data)
    except ValueError as e:
        raise DecodeError(f"PEM: {e}") from e


def _split_der_sequences(data: bytes) -> List[bytes]:
    """Split concatenated DER data into its top-level SEQUENCE elements."""
    blocks: List[bytes] = []
    offset = 0
    while offset < len(data):
        if data[offset] != 0x30 or offset + 2 > len(data):
            raise DecodeError(f"DER: no SEQUENCE at offset {offset}")
        length = data[offset + 1]
        header = 2
        if length & 0x80:
            size = length & 0x7F
            if size == 0 or size > 4 or offset + 2 + size > len(data):
                raise DecodeError(f"DER: invalid length at offset {offset}")
            length = int.from_bytes(data[offset + 2:offset + 2 + size], "big")
            header += size
        end = offset + header + length
        if end > len(data):
            raise DecodeError(f"DER: truncated element at offset {offset}")
        blocks.append(data[offset:end])
        offset = end
    return blocks


def _decode_der(data: bytes, password: str) -> List[x509.Certificate]:
    try:
        return [x509.load_der_x509_certificate(block) for block in _split_der_sequences(data)]
    except ValueError as e:
        raise DecodeError(f"DER: {e}") from e


def _decode_pkcs7_pem(data: bytes, password: str) -> List[x509.Certificate]:
    if PEM_MARKER not in data:
        raise DecodeError("not valid PKCS7 PEM data")
    try:
        return pkcs7.load_pem_pkcs7_certificates(data)
    except (ValueError, UnsupportedAlgorithm) as e:
        raise DecodeError(f"PKCS7 PEM: {e}") from e


def _decode_pkcs7_der(data: bytes, password: str) -> List[x509.Certificate]:
    try:
        return pkcs7.load_der_pkcs7_certificates(data)
    except (ValueError, UnsupportedAlgorithm) as e:
        raise DecodeError(f"PKCS7 DER: {e}") from e


def _decode_pkcs12(data: bytes, password: str) -> List[x509.Certificate]:
    try:
        _, cert, additional = pkcs12.load_key_and_certificates(data, _password_bytes(password))
    except ValueError as e:
        raise DecodeError(f"PKCS12: {e}") from e
    certs = [cert] if cert is not None else []
    certs.extend(additional)
    return certs


CertificateProbe = Callable[[bytes, str], List[x509.Certificate]]

CERTIFICATE_PROBES: List[Tuple[str, CertificateProbe]] = [
    ("PEM", _decode_pem),
    ("DER", _decode_der),
    ("PKCS7 PEM", _decode_pkcs7_pem),
    ("PKCS7 DER", _decode_pkcs7_der),
    ("PKCS12", _decode_pkcs12),
]


def decode_cert_bytes(data: bytes, password: str = "") -> List[CertificateInfo]:
    """
    Decode certificates from DER or PEM encoded PKCS1, PKCS7 or PKCS12 data.

    Args:
        data: Raw container bytes (file contents, HTTP response body, ...)
        password: Password, only used for PKCS12

    Returns:
        Certificates in container order

    Raises:
        NoCertificatesError: If the data is empty or holds no certificates
        DecodeError: If no probe could parse the data
    """
    if not data:
        raise NoCertificatesError("no certificates found")

    reasons: List[str] = []
    empty_hits = 0
    for name, probe in CERTIFICATE_PROBES:
        try:
            with warnings.catch_warnings():
                warnings.simplefilter("ignore")
                certs = probe(data, password)
        except DecodeError as e:
            reasons.append(str(e))
            continue

        if not certs:
            empty_hits += 1
            reasons.append(f"{name}: no certificates found")
            continue

        logger.debug(f"Decoded {len(certs)} certificate(s) as {name}")
        return [parse_certificate(cert) for cert in certs]

    if empty_hits:
        raise NoCertificatesError(ERROR_SEPARATOR.join(reasons))
    raise DecodeError(ERROR_SEPARATOR.join(reasons))


def decode_cert_file(path: Union[str, Path], password: str = "") -> List[CertificateInfo]:
    """Read a file and decode the certificates it holds."""
    try:
        data = Path(path).read_bytes()
    except OSError as e:
        raise DecodeError(f"cannot read {path}: {e}") from e
    return decode_cert_bytes(data, password)


def _key_info(key: object) -> PrivateKeyInfo:
    if isinstance(key, rsa.RSAPrivateKey):
        return PrivateKeyInfo(KeyAlgorithm.RSA, key)
    if isinstance(key, ec.EllipticCurvePrivateKey):
        return PrivateKeyInfo(KeyAlgorithm.ECDSA, key)
    if isinstance(key, ed25519.Ed25519PrivateKey):
        return PrivateKeyInfo(KeyAlgorithm.ED25519, key)
    raise UnsupportedKeyError(f"unknown algorithm of private key: {type(key).__name__}")


def _decode_key_pem(data: bytes, password: str) -> PrivateKeyInfo:
    if PEM_MARKER not in data:
        raise DecodeError("not a PEM key")
    if b"ENCRYPTED" in data:
        raise DecodeError("encrypted key")
    try:
        key = serialization.load_pem_private_key(data, password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise DecodeError(f"failed to decode private key: {e}") from e
    return _key_info(key)


def _decode_key_encrypted_pem(data: bytes, password: str) -> PrivateKeyInfo:
    if PEM_MARKER not in data:
        raise DecodeError("not a PEM key")
    if b"ENCRYPTED" not in data:
        raise DecodeError("unencrypted key")
    try:
        key = serialization.load_pem_private_key(data, password=_password_bytes(password))
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise DecodeError(f"failed to decrypt private key: {e}") from e
    return _key_info(key)


def _decode_key_pkcs12(data: bytes, password: str) -> PrivateKeyInfo:
    try:
        key, _, _ = pkcs12.load_key_and_certificates(data, _password_bytes(password))
    except ValueError as e:
        raise DecodeError(f"PKCS12: {e}") from e
    if key is None:
        raise DecodeError("PKCS12: no private key found")
    return _key_info(key)


KEY_PROBES: List[Tuple[str, Callable[[bytes, str], PrivateKeyInfo]]] = [
    ("PEM", _decode_key_pem),
    ("encrypted PKCS8 PEM", _decode_key_encrypted_pem),
    ("PKCS12", _decode_key_pkcs12),
]


def decode_key_bytes(data: bytes, password: str = "") -> PrivateKeyInfo:
    """
    Decode a private key from PEM (optionally encrypted PKCS8) or PKCS12 data.

    Raises:
        UnsupportedKeyError: If the key is neither RSA, ECDSA nor Ed25519
        DecodeError: If no probe could decode a key
    """
    reasons: List[str] = []
    for name, probe in KEY_PROBES:
        try:
            key_info = probe(data, password)
        except UnsupportedKeyError:
            raise
        except DecodeError as e:
            reasons.append(str(e))
            continue
        logger.debug(f"Decoded {key_info.algorithm.value} private key as {name}")
        return key_info

    raise DecodeError(ERROR_SEPARATOR.join(reasons))


def decode_key_file(path: Union[str, Path], password: str = "") -> PrivateKeyInfo:
    """Read a file and decode the private key it holds."""
    try:
        data = Path(path).read_bytes()
    except OSError as e:
        raise DecodeError(f"cannot read {path}: {e}") from e
    return decode_key_bytes(data, password)


def encode_cert_as_pem(cert: CertificateInfo) -> bytes:
    """Encode a certificate as a PEM CERTIFICATE block."""
    if cert is None:
        raise ValueError("no certificate found")
    x509_cert = cert.x509_cert or load_der_certificate(cert.der)
    return x509_cert.public_bytes(serialization.Encoding.PEM)


_KEY_FORMATS = {
    KeyAlgorithm.RSA: serialization.PrivateFormat.TraditionalOpenSSL,
    KeyAlgorithm.ECDSA: serialization.PrivateFormat.TraditionalOpenSSL,
    KeyAlgorithm.ED25519: serialization.PrivateFormat.PKCS8,
}


def encode_key_as_pem(key: PrivateKeyInfo) -> bytes:
    """Encode a private key as an unencrypted PEM block of its own type."""
    if key is None:
        raise ValueError("no key found")
    return key.key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=_KEY_FORMATS[key.algorithm],
        encryption_algorithm=serialization.NoEncryption(),
    )
