"""Tests for private key / certificate matching."""

import pytest

from certchain.certificate import parse_certificate
from certchain.decoder import _key_info
from certchain.keys import verify_cert_and_key
from certchain.models import KeyAlgorithm


@pytest.mark.parametrize(
    "key_type,algorithm",
    [
        ("rsa", KeyAlgorithm.RSA),
        ("p256", KeyAlgorithm.ECDSA),
        ("p384", KeyAlgorithm.ECDSA),
        ("ed25519", KeyAlgorithm.ED25519),
    ],
)
def test_matching_key(cert_factory, key_type, algorithm):
    cert, key = cert_factory("keytest.example.com", key_type=key_type)
    key_info = _key_info(key)

    assert key_info.algorithm == algorithm
    assert verify_cert_and_key(parse_certificate(cert), key_info)


@pytest.mark.parametrize("key_type", ["rsa", "p256", "p384", "ed25519"])
def test_mismatching_key_same_algorithm(cert_factory, key_type):
    cert, _ = cert_factory("keytest.example.com", key_type=key_type)
    _, other_key = cert_factory("other.example.com", key_type=key_type)

    assert not verify_cert_and_key(parse_certificate(cert), _key_info(other_key))


def test_mismatching_key_other_algorithm(cert_factory):
    cert, _ = cert_factory("keytest.example.com", key_type="rsa")
    _, ec_key = cert_factory("other.example.com", key_type="p256")

    assert not verify_cert_and_key(parse_certificate(cert), _key_info(ec_key))


def test_chain_certificates_match_their_keys(proper_chain):
    for name in ("root", "intermediate", "leaf"):
        assert verify_cert_and_key(proper_chain[name], _key_info(proper_chain[f"{name}_key"]))

    assert not verify_cert_and_key(proper_chain["leaf"], _key_info(proper_chain["root_key"]))
