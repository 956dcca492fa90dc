"""Exceptions raised by certchain."""


class CertChainError(Exception):
    """Base class for all certchain errors."""


class DecodeError(CertChainError):
    """Data could not be decoded as a certificate or key container."""


class NoCertificatesError(DecodeError):
    """The container was readable but held no certificates."""


class UnsupportedKeyError(DecodeError):
    """Private key uses an algorithm we cannot handle."""


class LeafDetectionError(CertChainError):
    """A set of certificates does not contain exactly one leaf."""


class LeafNotFoundError(LeafDetectionError):
    """No non-CA certificate in the set."""


class MultipleLeavesError(LeafDetectionError):
    """More than one non-CA certificate in the set."""


class RetrievalError(CertChainError):
    """Connecting to or handshaking with a remote host failed."""


class IssuerFetchError(CertChainError):
    """Fetching or decoding a certificate from a CA Issuers URL failed."""

    def __init__(self, url: str, message: str):
        super().__init__(f"{url}: {message}")
        self.url = url


class CertificateVerificationWarning(UserWarning):
    """Handshake succeeded only with certificate verification disabled."""
