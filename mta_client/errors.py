"""Exception hierarchy for the MTA client.

Cryptographic errors are raised by the curve, masking and OT layers and are
caught at the COT batch boundary, where they become ``success=False``
results. Protocol errors reject the run handed to the caller.
"""

from __future__ import annotations


class MTAError(Exception):
    """Base class for every error raised by this package."""


class CryptoError(MTAError):
    """Failure in point arithmetic, key derivation or OT encryption."""


class InvalidPointEncoding(CryptoError):
    """Raised when bytes do not decode to a secp256k1 point."""


class PointAtInfinity(InvalidPointEncoding):
    """Raised when an operation lands on the identity, which has no SEC1 encoding."""


class InvalidPeerPoint(CryptoError):
    """Raised when the peer's OT point is not on the curve."""


class InvalidKeyMaterial(CryptoError):
    """Raised when key material is neither a 65-byte point nor a 32-byte secret."""


class OTEncryptionFailed(CryptoError):
    """Raised when an OT leg cannot derive its branch keys or encrypt."""


class BatchReuseError(MTAError):
    """Raised when a COT batch is initialized a second time."""


class ProtocolError(MTAError):
    """Failure of a protocol run; fatal to the run."""


class MalformedFrame(ProtocolError):
    """Raised on an oversized length prefix or an undecodable payload."""


class PeerReportedFailure(ProtocolError):
    """Raised when the peer's own success flag is false."""


class PrematureDisconnect(ProtocolError):
    """Raised when the connection closes before the protocol completes."""


class ResponsePreparationFailed(ProtocolError):
    """Raised when Alice cannot build her response to the peer setup."""
