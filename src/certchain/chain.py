"""Certificate chain reconstruction.

Certificates are identified by their Subject-DN string. A chain is built by
following each certificate's Issuer-DN to the certificate carrying that name
as subject, until a self-signed certificate or an unknown issuer is reached.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Set, Tuple

from certchain.exceptions import LeafNotFoundError, MultipleLeavesError
from certchain.models import CertificateInfo, CertTree

logger = logging.getLogger(__name__)


@dataclass
class CertificateRegistry:
    """Lookup structures over a flat list of certificates."""

    by_subject: Dict[str, CertificateInfo] = field(default_factory=dict)
    issuer_of: Dict[str, str] = field(default_factory=dict)
    leaf_subjects: Set[str] = field(default_factory=set)
    order: List[str] = field(default_factory=list)  # subjects in first-seen order


def build_registry(certs: Sequence[CertificateInfo]) -> CertificateRegistry:
    """
    Index certificates by subject. The first certificate seen for a subject
    wins; later certificates with the same subject are dropped.
    """
    registry = CertificateRegistry()
    for cert in certs:
        if cert.subject in registry.by_subject:
            logger.debug(f"Dropping duplicate certificate for subject '{cert.subject}'")
            continue
        registry.by_subject[cert.subject] = cert
        registry.issuer_of[cert.subject] = cert.issuer
        if not cert.is_ca:
            registry.leaf_subjects.add(cert.subject)
        registry.order.append(cert.subject)
    return registry


def _follow_issuers(
    start: str, registry: CertificateRegistry, skip: Set[str]
) -> List[str]:
    """Walk issuer links from start, marking every reached subject in skip."""
    chain = [start]
    visited = {start}
    current = start
    issuer = registry.issuer_of[current]
    skip.add(issuer)

    while issuer != current and issuer in registry.by_subject:
        if issuer in visited:
            logger.warning(f"Issuer loop detected at '{issuer}', stopping chain of '{start}'")
            break
        chain.append(issuer)
        visited.add(issuer)
        skip.add(issuer)
        current = issuer
        issuer = registry.issuer_of[current]

    if issuer != current and issuer not in registry.by_subject:
        logger.debug(f"Issuer '{issuer}' of '{current}' not found, chain of '{start}' is incomplete")
    return chain


def sort_certs_as_chains(
    certs: Sequence[CertificateInfo], reverse: bool = False
) -> Tuple[Dict[str, List[CertificateInfo]], Dict[str, CertificateInfo], List[str]]:
    """
    Group certificates into chains, leaf to root (or root to leaf when reverse).

    Args:
        certs: Certificates in any order, duplicates allowed
        reverse: Order every chain root first

    Returns:
        Tuple of (chains keyed by the subject that starts them,
        certificates keyed by subject, chain start subjects in discovery order)
    """
    registry = build_registry(certs)

    chains: Dict[str, List[str]] = {}
    order: List[str] = []
    skip: Set[str] = set()
    for subject in registry.order:
        if subject in skip:
            continue

        chain = _follow_issuers(subject, registry, skip)
        # a chain started earlier from one of our issuers is part of this one
        for absorbed in chain[1:]:
            if absorbed in chains:
                del chains[absorbed]
                order.remove(absorbed)
        chains[subject] = chain
        order.append(subject)

    chains_as_certs: Dict[str, List[CertificateInfo]] = {}
    for start in order:
        ordered = [registry.by_subject[subject] for subject in chains[start]]
        if reverse:
            ordered.reverse()
        chains_as_certs[start] = ordered

    logger.debug(f"Found {len(order)} chain(s) in {len(registry.order)} certificate(s)")
    return chains_as_certs, registry.by_subject, order


def sort_certs(certs: Sequence[CertificateInfo], reverse: bool = False) -> List[CertificateInfo]:
    """
    Order certificates from leaf to root, or root to leaf when reverse is set.

    Chains that start at a leaf come before chains that start at a CA. Every
    subject appears once; the first occurrence is kept.
    """
    chains, by_subject, order = sort_certs_as_chains(certs, reverse)

    from_leaves: List[CertificateInfo] = []
    no_leaves: List[CertificateInfo] = []
    for start in order:
        if not by_subject[start].is_ca:
            from_leaves.extend(chains[start])
        else:
            no_leaves.extend(chains[start])

    ordered: List[CertificateInfo] = []
    seen: Set[str] = set()
    for cert in from_leaves + no_leaves:
        if cert.subject in seen:
            continue
        ordered.append(cert)
        seen.add(cert.subject)
    return ordered


def is_root_ca(cert: CertificateInfo) -> bool:
    """A root CA is a CA certificate whose subject equals its issuer."""
    return cert.is_ca and cert.subject == cert.issuer


def find_leaf(certs: Sequence[CertificateInfo]) -> CertificateInfo:
    """
    Find the leaf certificate, the one farthest from the root CA.

    Raises:
        LeafNotFoundError: If no certificate is a non-CA certificate
        MultipleLeavesError: If several distinct non-CA certificates exist
    """
    candidates: Set[Tuple[str, str]] = set()
    found: Optional[CertificateInfo] = None
    for cert in certs:
        if cert.is_ca:
            continue
        found = cert
        candidates.add((cert.subject, cert.subject_serial_number))

    if not candidates:
        raise LeafNotFoundError("no leaf found")
    if len(candidates) > 1:
        raise MultipleLeavesError(f"more than one leaf found ({len(candidates)})")
    return found


def split_certs_as_tree(certs: Sequence[CertificateInfo]) -> Optional[CertTree]:
    """
    Split an ordered chain into a CertTree. The first certificate is the leaf;
    the rest are roots when self-signed CAs and intermediates otherwise.
    """
    if not certs:
        return None

    roots: List[CertificateInfo] = []
    intermediates: List[CertificateInfo] = []
    for cert in certs[1:]:
        if is_root_ca(cert):
            roots.append(cert)
        else:
            intermediates.append(cert)

    return CertTree(certificate=certs[0], intermediates=intermediates, roots=roots)
