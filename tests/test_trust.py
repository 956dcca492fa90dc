"""Tests for trust verification of certificate trees."""

from unittest.mock import patch

from cryptography.hazmat.primitives import serialization

from certchain.certificate import parse_certificate
from certchain.models import CertTree
from certchain.trust import _split_pem_certificates, load_default_trust_store, verify_chain


def _tree(proper_chain, roots=None):
    return CertTree(
        certificate=proper_chain["leaf"],
        intermediates=[proper_chain["intermediate"]],
        roots=[proper_chain["root"]] if roots is None else roots,
    )


def test_verify_chain_with_supplied_root(proper_chain):
    verified, reason = verify_chain(_tree(proper_chain))

    assert verified
    assert reason == ""


def test_verify_chain_with_hostname(proper_chain):
    verified, _ = verify_chain(_tree(proper_chain), hostname="myserver.example.com")

    assert verified


def test_verify_chain_hostname_mismatch(proper_chain):
    verified, reason = verify_chain(_tree(proper_chain), hostname="other.example.com")

    assert not verified
    assert reason


def test_verify_chain_unrelated_root(proper_chain, cert_factory):
    other_root = parse_certificate(cert_factory("Unrelated Root CA", ca=True)[0])

    verified, reason = verify_chain(_tree(proper_chain, roots=[other_root]))

    assert not verified
    assert reason


def test_verify_chain_missing_intermediate(proper_chain):
    tree = CertTree(certificate=proper_chain["leaf"], roots=[proper_chain["root"]])

    verified, reason = verify_chain(tree)

    assert not verified
    assert reason


@patch("certchain.trust.load_default_trust_store")
def test_verify_chain_uses_default_store(mock_store, proper_chain):
    """Without roots the default trust store provides the anchors."""
    mock_store.return_value = [proper_chain["root"].x509_cert]

    verified, _ = verify_chain(_tree(proper_chain, roots=[]))

    assert verified
    mock_store.assert_called_once()


@patch("certchain.trust.load_default_trust_store")
def test_verify_chain_private_root_not_in_default_store(mock_store, proper_chain, cert_factory):
    mock_store.return_value = [cert_factory("Public Root CA", ca=True)[0]]

    verified, reason = verify_chain(_tree(proper_chain, roots=[]))

    assert not verified
    assert reason


@patch("certchain.trust.load_default_trust_store")
def test_verify_chain_empty_default_store(mock_store, proper_chain):
    mock_store.return_value = []

    verified, reason = verify_chain(_tree(proper_chain, roots=[]))

    assert not verified
    assert reason == "no trust anchors available"


def test_split_pem_certificates(proper_chain):
    bundle = b"# comment\n" + b"\n".join(
        proper_chain[name].x509_cert.public_bytes(serialization.Encoding.PEM)
        for name in ("root", "intermediate")
    )

    blocks = _split_pem_certificates(bundle)

    assert len(blocks) == 2
    assert all(block.startswith(b"-----BEGIN CERTIFICATE-----") for block in blocks)


def test_load_default_trust_store_dedups(tmp_path, proper_chain):
    pem = proper_chain["root"].x509_cert.public_bytes(serialization.Encoding.PEM)
    bundle = tmp_path / "bundle.pem"
    bundle.write_bytes(pem + pem)

    with patch("certchain.trust.certifi.where", return_value=str(bundle)), \
            patch("certchain.trust.SYSTEM_CA_BUNDLES", [str(bundle)]):
        anchors = load_default_trust_store()

    assert len(anchors) == 1
    assert anchors[0].subject == proper_chain["root"].x509_cert.subject


def test_verify_chain_wildcard_san_without_hostname(proper_chain, cert_factory):
    """A wildcard first SAN is not used as a server name."""
    intermediate = (proper_chain["intermediate"].x509_cert, proper_chain["intermediate_key"])
    leaf = parse_certificate(
        cert_factory("wildcard.example.com", issuer=intermediate, dns_names=["*.example.com", "example.com"])[0]
    )
    tree = CertTree(certificate=leaf, intermediates=[proper_chain["intermediate"]], roots=[proper_chain["root"]])

    assert verify_chain(tree) == (True, "")


def test_verify_chain_leaf_without_san(proper_chain, cert_factory):
    """A serverAuth leaf without SAN chains without any name check."""
    intermediate = (proper_chain["intermediate"].x509_cert, proper_chain["intermediate_key"])
    leaf = parse_certificate(cert_factory("nosan.example.com", issuer=intermediate)[0])
    tree = CertTree(certificate=leaf, intermediates=[proper_chain["intermediate"]], roots=[proper_chain["root"]])

    assert leaf.san_dns_names == ()
    assert verify_chain(tree) == (True, "")


def test_verify_chain_ca_as_certificate(proper_chain):
    """An intermediate CA verified on its own chains to its root."""
    tree = CertTree(certificate=proper_chain["intermediate"], roots=[proper_chain["root"]])

    assert verify_chain(tree) == (True, "")


def test_verify_chain_ca_as_certificate_wrong_root(proper_chain, cert_factory):
    other_root = parse_certificate(cert_factory("Unrelated Root CA", ca=True)[0])
    tree = CertTree(certificate=proper_chain["intermediate"], roots=[other_root])

    verified, reason = verify_chain(tree)

    assert not verified
    assert reason
