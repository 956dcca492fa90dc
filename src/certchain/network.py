"""Retrieval of certificates from remote hosts and CA Issuers URLs."""

import logging
import re
import socket
import ssl
import subprocess
from typing import List, Optional, Tuple

import httpx

from certchain.certificate import parse_certificate
from certchain.decoder import decode_cert_bytes
from certchain.exceptions import (
    CertificateVerificationWarning,
    DecodeError,
    IssuerFetchError,
    NoCertificatesError,
    RetrievalError,
)
from certchain.http_client import create_http_client
from certchain.models import CertificateInfo

logger = logging.getLogger(__name__)

DEFAULT_PORT = 443

_ADDR_RE = re.compile(r"^(?:\[(?P<ipv6>[^\[\]]+)\]|(?P<host>[^:\[\]]+))(?::(?P<port>\d+))?$")


def parse_addr(addr: str) -> Tuple[str, int]:
    """
    Split "host:port" into its parts. IPv6 literals must be bracketed when a
    port is given; the port defaults to 443.
    """
    if addr.count(":") > 1 and not addr.startswith("["):
        return addr, DEFAULT_PORT  # bare IPv6 literal
    match = _ADDR_RE.match(addr.strip())
    if not match:
        raise ValueError(f"Invalid address: {addr}")
    port = int(match.group("port")) if match.group("port") else DEFAULT_PORT
    return match.group("ipv6") or match.group("host"), port


def _extract_chain_via_openssl(host: str, port: int, timeout: float) -> List[bytes]:
    """
    Extract the presented certificate chain with `openssl s_client`.
    This is a fallback for interpreters without SSLSocket.get_unverified_chain().

    Returns:
        DER encoded certificates in server order, empty on failure
    """
    openssl_cmd = [
        "openssl", "s_client",
        "-connect", f"{host}:{port}",
        "-servername", host,
        "-showcerts",
    ]

    try:
        result = subprocess.run(
            openssl_cmd,
            input=b"Q\n",
            capture_output=True,
            timeout=(timeout + 2) if timeout else None,
            check=False,
        )
    except subprocess.TimeoutExpired:
        logger.debug("OpenSSL command timed out")
        return []
    except FileNotFoundError:
        logger.debug("OpenSSL command not found")
        return []

    if not result.stdout:
        return []

    try:
        certs = decode_cert_bytes(result.stdout)
    except DecodeError as e:
        logger.debug(f"Error parsing certificates from OpenSSL output: {e}")
        return []

    logger.debug(f"Extracted {len(certs)} certificate(s) via OpenSSL")
    return [cert.der for cert in certs]


def _handshake(host: str, port: int, timeout: float, verify: bool) -> List[bytes]:
    """Connect, handshake and return the peer's certificates in server order."""
    context = ssl.create_default_context()
    if not verify:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE

    sock_timeout = timeout if timeout else None
    with socket.create_connection((host, port), timeout=sock_timeout) as sock:
        logger.debug(f"TCP connection established to {host}:{port}")
        with context.wrap_socket(sock, server_hostname=host) as ssl_sock:
            logger.debug(f"TLS handshake completed ({ssl_sock.version()})")

            if hasattr(ssl_sock, "get_unverified_chain"):
                chain = ssl_sock.get_unverified_chain() or []
                return [bytes(cert) for cert in chain]

            leaf_der = ssl_sock.getpeercert(binary_form=True)

    if not leaf_der:
        return []

    logger.info("get_unverified_chain() not available, extracting chain via OpenSSL...")
    presented = _extract_chain_via_openssl(host, port, timeout)
    if presented and presented[0] == leaf_der:
        return presented
    if presented:
        logger.warning("Certificate from OpenSSL differs from the handshake leaf, ignoring its chain")
    return [leaf_der]


def retrieve_certs_from_addr(
    addr: str,
    timeout: float = 10.0,
) -> Tuple[List[CertificateInfo], Optional[CertificateVerificationWarning]]:
    """
    Retrieve the certificates presented by a remote TLS server.

    A verified handshake is tried first. If certificate verification fails
    the handshake is repeated without verification so the chain can still be
    inspected, and the verification error is returned as a warning.

    Args:
        addr: Address as host:port
        timeout: Timeout in seconds for the TCP connect and the TLS
            handshake, 0 disables it

    Returns:
        Tuple of (certificates with the server's own first, warning or None)

    Raises:
        RetrievalError: If connecting or the handshake fails
        NoCertificatesError: If the server presented no certificates
    """
    host, port = parse_addr(addr)
    logger.debug(f"Connecting to {host}:{port} (timeout={timeout}s)")

    warning: Optional[CertificateVerificationWarning] = None
    try:
        try:
            chain_der = _handshake(host, port, timeout, verify=True)
        except ssl.SSLCertVerificationError as e:
            reason = getattr(e, "verify_message", None) or e
            warning = CertificateVerificationWarning(f"certificate verification failed: {reason}")
            logger.warning(f"{warning}; retrying without verification to obtain the chain")
            chain_der = _handshake(host, port, timeout, verify=False)
    except socket.timeout as e:
        raise RetrievalError(f"Connection timeout after {timeout}s to {host}:{port}") from e
    except ssl.SSLError as e:
        raise RetrievalError(f"TLS handshake with {host}:{port} failed: {e}") from e
    except OSError as e:
        raise RetrievalError(f"Connection to {host}:{port} failed: {e}") from e

    if not chain_der:
        raise NoCertificatesError("no certificates found")

    certs = [parse_certificate(cert_der) for cert_der in chain_der]
    logger.info(f"Received {len(certs)} certificate(s) from {host}:{port}")
    return certs, warning


def _fetch_issuer(client: httpx.Client, url: str) -> CertificateInfo:
    """Fetch a CA Issuers URL and return the first certificate it holds."""
    try:
        response = client.get(
            url,
            headers={"Accept": "application/pkix-cert,application/x-x509-ca-cert,*/*"},
        )
    except httpx.TimeoutException as e:
        raise IssuerFetchError(url, "timeout") from e
    except httpx.HTTPError as e:
        raise IssuerFetchError(url, f"request error: {e}") from e

    if response.status_code != 200:
        raise IssuerFetchError(url, f"HTTP {response.status_code}")

    try:
        certs = decode_cert_bytes(response.content)
    except DecodeError as e:
        raise IssuerFetchError(url, f"could not decode certificate: {e}") from e
    return certs[0]


def retrieve_chain_from_issuer_urls(
    cert: CertificateInfo,
    timeout: float = 10.0,
    max_hops: int = 16,
    proxy: Optional[str] = None,
) -> Tuple[List[CertificateInfo], Optional[IssuerFetchError]]:
    """
    Retrieve the chain of a certificate by following CA Issuers URLs.

    For every certificate the URLs are tried in order; the first one that
    yields a certificate is followed and the others are ignored. A fetched
    certificate whose subject was already visited is rejected.

    Args:
        cert: Certificate to start from
        timeout: HTTP timeout in seconds, 0 disables it
        max_hops: Maximum number of certificates to fetch
        proxy: Optional proxy URL

    Returns:
        Tuple of (chain starting with cert, last fetch error or None). The
        error is reset when a later URL succeeds.
    """
    chain: List[CertificateInfo] = [cert]
    visited = {cert.subject}
    last_error: Optional[IssuerFetchError] = None
    current = cert

    with create_http_client(proxy=proxy, timeout=timeout) as client:
        while True:
            if len(chain) - 1 >= max_hops:
                if current.ca_issuers_urls:
                    logger.warning(f"Stopped following CA Issuers URLs after {max_hops} hop(s)")
                break

            next_cert: Optional[CertificateInfo] = None
            for url in current.ca_issuers_urls:
                logger.debug(f"Fetching issuer of '{current.subject}' from {url}")
                try:
                    fetched = _fetch_issuer(client, url)
                except IssuerFetchError as e:
                    logger.warning(f"Could not fetch issuer certificate: {e}")
                    last_error = e
                    continue

                if fetched.subject in visited:
                    logger.debug(f"Certificate '{fetched.subject}' from {url} already in chain, ignoring")
                    continue

                last_error = None
                next_cert = fetched
                break

            if next_cert is None:
                break

            chain.append(next_cert)
            visited.add(next_cert.subject)
            current = next_cert

    logger.info(f"Retrieved {len(chain) - 1} certificate(s) via CA Issuers URLs")
    return chain, last_error
