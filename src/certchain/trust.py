"""Trust verification of a certificate tree."""

import ipaddress
import logging
import os
import re
import sys
from typing import List, Optional, Tuple

import certifi
from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.x509.verification import (
    ExtensionPolicy,
    PolicyBuilder,
    Store,
    VerificationError,
)

from certchain.certificate import load_der_certificate
from certchain.models import CertificateInfo, CertTree

logger = logging.getLogger(__name__)

SYSTEM_CA_BUNDLES = [
    "/etc/ssl/certs/ca-certificates.crt",  # Debian, Ubuntu, Alpine
    "/etc/pki/tls/certs/ca-bundle.crt",  # Fedora, RHEL
    "/etc/ssl/cert.pem",  # macOS, OpenBSD
]


def _x509(cert: CertificateInfo) -> x509.Certificate:
    return cert.x509_cert or load_der_certificate(cert.der)


def _split_pem_certificates(data: bytes) -> List[bytes]:
    """Split PEM data into individual certificate blocks."""
    pattern = rb"-----BEGIN CERTIFICATE-----(.*?)-----END CERTIFICATE-----"
    matches = re.findall(pattern, data, re.DOTALL)
    return [
        b"-----BEGIN CERTIFICATE-----" + match + b"-----END CERTIFICATE-----\n"
        for match in matches
    ]


def _load_pem_bundle(path: str) -> List[x509.Certificate]:
    with open(path, "rb") as f:
        data = f.read()

    certs: List[x509.Certificate] = []
    for cert_pem in _split_pem_certificates(data):
        try:
            certs.append(x509.load_pem_x509_certificate(cert_pem))
        except ValueError as e:
            logger.debug(f"Skipping unparsable certificate in {path}: {e}")
    return certs


def load_default_trust_store() -> List[x509.Certificate]:
    """
    Load the default trust anchors: the certifi bundle plus the first system
    CA bundle found on this platform.
    """
    trust_store_certs: List[x509.Certificate] = []
    seen: set[bytes] = set()

    bundles = [certifi.where()]
    if sys.platform != "win32":
        for path in SYSTEM_CA_BUNDLES:
            if os.path.exists(path):
                bundles.append(path)
                break

    for path in bundles:
        try:
            certs = _load_pem_bundle(path)
        except OSError as e:
            logger.warning(f"Could not read CA bundle {path}: {e}")
            continue
        for cert in certs:
            fingerprint = cert.fingerprint(hashes.SHA256())
            if fingerprint in seen:
                continue
            seen.add(fingerprint)
            trust_store_certs.append(cert)
        logger.debug(f"Loaded {len(certs)} certificate(s) from {path}")

    return trust_store_certs


def _server_name(hostname: str) -> x509.GeneralName:
    try:
        return x509.IPAddress(ipaddress.ip_address(hostname))
    except ValueError:
        return x509.DNSName(hostname)


def verify_chain(tree: CertTree, hostname: Optional[str] = None) -> Tuple[bool, str]:
    """
    Verify the leaf of a CertTree against its roots and intermediates.

    When the tree has no roots the default trust store is used instead.

    Args:
        tree: Tree to verify
        hostname: Name the leaf must be valid for. Without it only the path
            is checked: any end-entity certificate, CA or not, with or
            without SAN, is accepted as long as it chains to an anchor

    Returns:
        Tuple of (verified, reason); reason is empty on success
    """
    if tree.roots:
        anchors = [_x509(cert) for cert in tree.roots]
        logger.debug(f"Verifying against {len(anchors)} supplied root(s)")
    else:
        anchors = load_default_trust_store()
        logger.debug(f"Verifying against {len(anchors)} root(s) from the default trust store")

    if not anchors:
        return False, "no trust anchors available"

    intermediates = [_x509(cert) for cert in tree.intermediates]
    leaf = _x509(tree.certificate)
    builder = PolicyBuilder().store(Store(anchors))

    try:
        if hostname:
            verifier = builder.build_server_verifier(_server_name(hostname))
        else:
            verifier = builder.extension_policies(
                ca_policy=ExtensionPolicy.webpki_defaults_ca(),
                ee_policy=ExtensionPolicy.permit_all(),
            ).build_client_verifier()
        verifier.verify(leaf, intermediates)
    except (VerificationError, ValueError) as e:
        reason = str(e) or type(e).__name__
        logger.info(f"Chain verification failed for '{tree.certificate.subject}': {reason}")
        return False, reason

    logger.info(f"Chain verified for '{tree.certificate.subject}'")
    return True, ""
