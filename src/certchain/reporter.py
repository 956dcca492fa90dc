"""Report generation (text and JSON)."""

import json
import logging
from typing import Any, Dict, List, Optional, Sequence

from rich.markup import escape

from certchain.chain import is_root_ca
from certchain.models import CertificateInfo, CertTree

logger = logging.getLogger(__name__)

# Global flag for colored output
_use_color = True


def set_color_output(enabled: bool) -> None:
    """Enable or disable colored output."""
    global _use_color
    _use_color = enabled


def _style(text: str, style: str) -> str:
    if not _use_color:
        return text
    return f"[{style}]{escape(text)}[/{style}]"


def _plain(text: str) -> str:
    return escape(text) if _use_color else text


def _cert_type(cert: CertificateInfo) -> str:
    if is_root_ca(cert):
        return "Root CA"
    if cert.is_ca:
        return "Intermediate CA"
    return "Leaf"


def _cert_lines(cert: CertificateInfo, index: Optional[int] = None) -> List[str]:
    prefix = f"[{index}] " if index is not None else ""
    lines = [
        _style(f"{prefix}{cert.common_name or cert.subject}", "bold") + f" ({_cert_type(cert)})",
        _plain(f"  Subject:     {cert.subject}"),
        _plain(f"  Issuer:      {cert.issuer}"),
        f"  Serial:      {cert.serial_number}",
        f"  Valid:       {cert.not_before:%Y-%m-%d} - {cert.not_after:%Y-%m-%d}",
        f"  Public key:  {cert.public_key_algorithm}",
        f"  SHA-256:     {cert.fingerprint_sha256}",
    ]
    if cert.san_dns_names or cert.san_ip_addresses:
        lines.append(_plain(f"  SAN:         {', '.join(cert.san_dns_names + cert.san_ip_addresses)}"))
    for url in cert.ca_issuers_urls:
        lines.append(_plain(f"  CA Issuers:  {url}"))
    return lines


def generate_text_report(certs: Sequence[CertificateInfo], title: str = "Certificates") -> str:
    """
    Generate a human-readable listing of certificates.

    Args:
        certs: Certificates in the order to print them
        title: Heading of the report

    Returns:
        Formatted text report (rich markup when colors are enabled)
    """
    lines = ["=" * 70, title, "=" * 70]
    for index, cert in enumerate(certs):
        lines.extend(_cert_lines(cert, index))
        lines.append("")
    lines.append(f"{len(certs)} certificate(s)")
    return "\n".join(lines)


def generate_tree_report(tree: CertTree) -> str:
    """Generate a text report of a leaf, its intermediates and roots."""
    lines = ["=" * 70, "Certificate Tree", "=" * 70, "Certificate:"]
    lines.extend("  " + line for line in _cert_lines(tree.certificate))

    lines.append("Intermediates:" if tree.intermediates else "Intermediates: none")
    for cert in tree.intermediates:
        lines.extend("  " + line for line in _cert_lines(cert))

    lines.append("Roots:" if tree.roots else "Roots: none (default trust store)")
    for cert in tree.roots:
        lines.extend("  " + line for line in _cert_lines(cert))
    return "\n".join(lines)


def _cert_dict(cert: CertificateInfo) -> Dict[str, Any]:
    return {
        "subject": cert.subject,
        "issuer": cert.issuer,
        "serial_number": cert.serial_number,
        "common_name": cert.common_name,
        "type": _cert_type(cert),
        "is_ca": cert.is_ca,
        "not_before": cert.not_before.isoformat(),
        "not_after": cert.not_after.isoformat(),
        "public_key_algorithm": cert.public_key_algorithm,
        "fingerprint_sha256": cert.fingerprint_sha256,
        "san_dns_names": cert.san_dns_names,
        "san_ip_addresses": cert.san_ip_addresses,
        "ca_issuers_urls": cert.ca_issuers_urls,
    }


def generate_json_report(
    certs: Sequence[CertificateInfo],
    warning: Optional[str] = None,
    verification: Optional[Dict[str, Any]] = None,
) -> str:
    """Generate a JSON report of certificates and, optionally, a verification result."""
    report: Dict[str, Any] = {"certificates": [_cert_dict(cert) for cert in certs]}
    if warning:
        report["warning"] = warning
    if verification is not None:
        report["verification"] = verification
    return json.dumps(report, indent=2, ensure_ascii=False)
