"""Alice-side client for the secp256k1 OT based multiplication-to-addition protocol."""

__version__ = "0.1.0"
