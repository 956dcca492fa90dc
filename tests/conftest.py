"""Shared fixtures: certificates built with cryptography's CertificateBuilder."""

import random
from datetime import datetime, timedelta, timezone

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec, ed25519, rsa
from cryptography.x509.oid import AuthorityInformationAccessOID, ExtendedKeyUsageOID, NameOID

from certchain.certificate import parse_certificate


def _generate_key(key_type: str):
    if key_type == "rsa":
        return rsa.generate_private_key(public_exponent=65537, key_size=2048)
    if key_type == "p256":
        return ec.generate_private_key(ec.SECP256R1())
    if key_type == "p384":
        return ec.generate_private_key(ec.SECP384R1())
    if key_type == "ed25519":
        return ed25519.Ed25519PrivateKey.generate()
    raise ValueError(key_type)


def build_cert(
    common_name,
    issuer=None,
    ca=False,
    key=None,
    key_type="p256",
    dns_names=None,
    ca_issuers_urls=None,
    issuer_name=None,
    basic_constraints=True,
):
    """
    Build a certificate.

    Args:
        issuer: (x509.Certificate, private key) of the signer; None for self-signed
        issuer_name: Override the issuer DN without a real signer (signs with own key)

    Returns:
        Tuple of (x509.Certificate, private key)
    """
    key = key or _generate_key(key_type)
    subject = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])

    if issuer is not None:
        issuer_cert, signing_key = issuer
        issuer_dn = issuer_cert.subject
    else:
        signing_key = key
        issuer_dn = subject
    if issuer_name is not None:
        issuer_dn = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, issuer_name)])

    now = datetime.now(timezone.utc)
    builder = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(issuer_dn)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(days=1))
        .not_valid_after(now + timedelta(days=365))
        .add_extension(x509.SubjectKeyIdentifier.from_public_key(key.public_key()), critical=False)
        .add_extension(
            x509.AuthorityKeyIdentifier.from_issuer_public_key(signing_key.public_key()),
            critical=False,
        )
    )

    if basic_constraints:
        builder = builder.add_extension(x509.BasicConstraints(ca=ca, path_length=None), critical=True)

    if ca:
        builder = builder.add_extension(
            x509.KeyUsage(
                digital_signature=True,
                content_commitment=False,
                key_encipherment=False,
                data_encipherment=False,
                key_agreement=False,
                key_cert_sign=True,
                crl_sign=True,
                encipher_only=False,
                decipher_only=False,
            ),
            critical=True,
        )
    else:
        builder = builder.add_extension(
            x509.KeyUsage(
                digital_signature=True,
                content_commitment=False,
                key_encipherment=False,
                data_encipherment=False,
                key_agreement=False,
                key_cert_sign=False,
                crl_sign=False,
                encipher_only=False,
                decipher_only=False,
            ),
            critical=True,
        )
        builder = builder.add_extension(
            x509.ExtendedKeyUsage([ExtendedKeyUsageOID.SERVER_AUTH]), critical=False
        )

    if dns_names:
        builder = builder.add_extension(
            x509.SubjectAlternativeName([x509.DNSName(name) for name in dns_names]),
            critical=False,
        )

    if ca_issuers_urls:
        builder = builder.add_extension(
            x509.AuthorityInformationAccess(
                [
                    x509.AccessDescription(
                        AuthorityInformationAccessOID.CA_ISSUERS,
                        x509.UniformResourceIdentifier(url),
                    )
                    for url in ca_issuers_urls
                ]
            ),
            critical=False,
        )

    algorithm = None if isinstance(signing_key, ed25519.Ed25519PrivateKey) else hashes.SHA256()
    return builder.sign(signing_key, algorithm), key


@pytest.fixture
def cert_factory():
    """Build certificates; see build_cert."""
    return build_cert


@pytest.fixture
def proper_chain():
    """Root CA -> Intermediate CA -> leaf, with valid signatures."""
    root = build_cert("Example Root CA", ca=True)
    intermediate = build_cert("Example Intermediate CA", issuer=root, ca=True)
    leaf = build_cert("myserver.example.com", issuer=intermediate, dns_names=["myserver.example.com"])
    return {
        "root": parse_certificate(root[0]),
        "root_key": root[1],
        "intermediate": parse_certificate(intermediate[0]),
        "intermediate_key": intermediate[1],
        "leaf": parse_certificate(leaf[0]),
        "leaf_key": leaf[1],
    }


@pytest.fixture
def long_chain():
    """
    A 7 certificate chain (root, 5 intermediates, leaf) in leaf-to-root
    order and a shuffled copy of it.
    """
    root = build_cert("Exporl Root CA", ca=True)
    signer = root
    intermediates = []
    for level in range(1, 6):
        signer = build_cert(f"Exporl Intermediate CA {level}", issuer=signer, ca=True)
        intermediates.append(signer)
    leaf = build_cert("www.exporl.example", issuer=signer, dns_names=["www.exporl.example"])

    ordered = [parse_certificate(c) for c, _ in [leaf] + list(reversed(intermediates)) + [root]]
    shuffled = list(ordered)
    random.Random(1234).shuffle(shuffled)
    if shuffled == ordered:
        shuffled.reverse()
    return {"ordered": ordered, "shuffled": shuffled}
