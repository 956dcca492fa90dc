"""Certificate chain reconstruction and verification."""

__version__ = "0.1.0"
