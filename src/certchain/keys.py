"""Private key and certificate correspondence."""

import logging
import ssl
import tempfile
from pathlib import Path

from certchain.decoder import encode_cert_as_pem, encode_key_as_pem
from certchain.models import CertificateInfo, PrivateKeyInfo

logger = logging.getLogger(__name__)


def verify_cert_and_key(cert: CertificateInfo, key: PrivateKeyInfo) -> bool:
    """
    Check that a private key belongs to a certificate.

    The pair is loaded into a TLS context the same way a server would load
    it; OpenSSL rejects the pair when the key does not match the
    certificate's public key. This works for RSA, ECDSA and Ed25519 alike.
    """
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)

    with tempfile.TemporaryDirectory(prefix="certchain-") as tmp:
        cert_path = Path(tmp) / "cert.pem"
        key_path = Path(tmp) / "key.pem"
        cert_path.write_bytes(encode_cert_as_pem(cert))
        key_path.touch(mode=0o600)
        key_path.write_bytes(encode_key_as_pem(key))

        try:
            context.load_cert_chain(certfile=str(cert_path), keyfile=str(key_path))
        except ssl.SSLError as e:
            logger.debug(f"Key does not match certificate '{cert.subject}': {e}")
            return False

    logger.debug(f"{key.algorithm.value} key matches certificate '{cert.subject}'")
    return True
