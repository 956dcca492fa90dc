"""CLI entry point using Typer."""

import logging
import sys
from pathlib import Path
from typing import List, Optional, Tuple
from urllib.parse import urlparse

import typer
from rich.console import Console

from certchain.chain import find_leaf, sort_certs, split_certs_as_tree
from certchain.decoder import decode_cert_file, decode_key_file
from certchain.exceptions import CertChainError
from certchain.keys import verify_cert_and_key
from certchain.models import CertificateInfo
from certchain.network import (
    parse_addr,
    retrieve_certs_from_addr,
    retrieve_chain_from_issuer_urls,
)
from certchain.reporter import (
    generate_json_report,
    generate_text_report,
    generate_tree_report,
    set_color_output,
)
from certchain.trust import verify_chain

app = typer.Typer(help="Certificate chain reconstruction and verification")

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(levelname)s: %(message)s",
)

logger = logging.getLogger(__name__)


def _setup(verbose: bool, color: bool) -> Console:
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)
        logging.getLogger("certchain").setLevel(logging.DEBUG)
    set_color_output(color)
    return Console(highlight=False, no_color=not color, markup=color)


def _to_addr(location: str) -> str:
    """Turn a URL or host[:port] into host:port."""
    if location.startswith("http://") or location.startswith("https://"):
        parsed = urlparse(location)
        port = parsed.port or 443
        host = parsed.hostname or location
        return f"[{host}]:{port}" if ":" in host else f"{host}:{port}"
    return location


def load_location(
    location: str,
    password: str = "",
    timeout: float = 10.0,
    remote_chain: bool = False,
) -> Tuple[List[CertificateInfo], Optional[str], Optional[str]]:
    """
    Load certificates from a file or a remote host.

    Returns:
        Tuple of (certificates, handshake warning, hostname for remote locations)
    """
    warning: Optional[str] = None
    hostname: Optional[str] = None

    if Path(location).exists():
        certs = decode_cert_file(location, password)
    else:
        addr = _to_addr(location)
        hostname, _ = parse_addr(addr)
        certs, verification_warning = retrieve_certs_from_addr(addr, timeout)
        if verification_warning:
            warning = str(verification_warning)

    if remote_chain and certs:
        chain, last_error = retrieve_chain_from_issuer_urls(certs[0], timeout)
        if last_error:
            logger.warning(f"Chain retrieval via CA Issuers URLs incomplete: {last_error}")
        certs = certs + chain[1:]

    return certs, warning, hostname


@app.command()
def skim(
    locations: List[str] = typer.Argument(..., help="Certificate files, host:port or https:// URLs"),
    remote_chain: bool = typer.Option(False, "--remote-chain", "-r", help="Complete the chain via CA Issuers URLs"),
    sort: bool = typer.Option(False, "--sort", "-s", help="Sort from leaf to root"),
    reverse: bool = typer.Option(False, "--reverse", help="Sort from root to leaf"),
    leaf_only: bool = typer.Option(False, "--leaf", "-l", help="Only show the leaf certificate"),
    password: str = typer.Option("", "--password", "-p", help="Password for PKCS12 files"),
    timeout: float = typer.Option(10.0, "--timeout", "-t", help="Timeout in seconds (0 disables it)"),
    json_output: bool = typer.Option(False, "--json", "-j", help="JSON output"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
    color: bool = typer.Option(True, "--color/--no-color", help="Enable/disable colored output"),
):
    """
    Show the certificates of files or remote hosts.
    """
    console = _setup(verbose, color)

    for location in locations:
        try:
            certs, warning, _ = load_location(location, password, timeout, remote_chain)
            if leaf_only:
                certs = [find_leaf(certs)]
            elif sort or reverse:
                certs = sort_certs(certs, reverse=reverse)
        except (CertChainError, ValueError) as e:
            logger.error(f"{location}: {e}")
            sys.exit(2)

        if warning:
            logger.warning(f"{location}: {warning}")

        if json_output:
            print(generate_json_report(certs, warning=warning))
        else:
            console.print(generate_text_report(certs, title=location))

    sys.exit(0)


@app.command("verify-chain")
def verify_chain_command(
    location: str = typer.Argument(..., help="Certificate file, host:port or https:// URL"),
    roots: Optional[List[Path]] = typer.Option(None, "--root", help="Root CA file(s); the default trust store is used if none"),
    inters: Optional[List[Path]] = typer.Option(None, "--inter", help="Intermediate CA file(s)"),
    remote_chain: bool = typer.Option(False, "--remote-chain", "-r", help="Complete the chain via CA Issuers URLs"),
    password: str = typer.Option("", "--password", "-p", help="Password for PKCS12 files"),
    timeout: float = typer.Option(10.0, "--timeout", "-t", help="Timeout in seconds (0 disables it)"),
    json_output: bool = typer.Option(False, "--json", "-j", help="JSON output"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
    color: bool = typer.Option(True, "--color/--no-color", help="Enable/disable colored output"),
):
    """
    Verify the chain of a certificate against roots or the default trust store.
    """
    console = _setup(verbose, color)

    try:
        certs, warning, hostname = load_location(location, password, timeout, remote_chain)
        for path in inters or []:
            certs.extend(decode_cert_file(path, password))
        root_certs: List[CertificateInfo] = []
        for path in roots or []:
            root_certs.extend(decode_cert_file(path, password))
    except (CertChainError, ValueError) as e:
        logger.error(f"{location}: {e}")
        sys.exit(2)

    tree = split_certs_as_tree(sort_certs(certs))
    if tree is None:
        logger.error(f"{location}: no certificates found")
        sys.exit(2)

    # explicitly supplied roots are trust anchors even when not self-signed
    root_subjects = {cert.subject for cert in root_certs}
    tree.intermediates = [cert for cert in tree.intermediates if cert.subject not in root_subjects]
    known = {cert.subject for cert in tree.roots}
    for cert in sort_certs(root_certs):
        if cert.subject not in known:
            tree.roots.append(cert)
            known.add(cert.subject)

    verified, reason = verify_chain(tree, hostname=hostname)

    if json_output:
        chain = [tree.certificate] + tree.intermediates + tree.roots
        print(generate_json_report(chain, warning=warning, verification={"verified": verified, "reason": reason}))
    else:
        console.print(generate_tree_report(tree))
        if verified:
            console.print("certificate is valid for this chain", style="green")
        else:
            console.print(f"certificate can not be verified: {reason}", style="red", markup=False)

    sys.exit(0 if verified else 1)


@app.command("verify-key")
def verify_key_command(
    cert_file: Path = typer.Argument(..., help="Certificate file"),
    key_file: Path = typer.Argument(..., help="Private key file (PEM, encrypted PKCS8 or PKCS12)"),
    password: str = typer.Option("", "--password", "-p", help="Password for encrypted keys and PKCS12 files"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
    color: bool = typer.Option(True, "--color/--no-color", help="Enable/disable colored output"),
):
    """
    Check that a private key belongs to a certificate.
    """
    console = _setup(verbose, color)

    try:
        certs = decode_cert_file(cert_file, password)
        key = decode_key_file(key_file, password)
    except (CertChainError, ValueError) as e:
        logger.error(str(e))
        sys.exit(2)

    cert = certs[0]
    if verify_cert_and_key(cert, key):
        console.print(f"certificate and {key.algorithm.value} key match", style="green")
        sys.exit(0)

    console.print(f"certificate and {key.algorithm.value} key do not match", style="red")
    sys.exit(1)


if __name__ == "__main__":
    app()
