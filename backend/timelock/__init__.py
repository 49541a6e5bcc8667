"""
Time-locked message registry.

Creators store a title, an encrypted payload and an encrypted recipient
handle behind an unlock timestamp; once it passes, the creator may grant
decryption access to exactly one address, once.
"""

from .clock import ManualClock, SystemClock
from .events import EventLog
from .registry import (
    AlreadyGranted,
    InvalidProof,
    InvalidUnlockTime,
    MessageRegistry,
    NotFound,
    RegistryError,
    TooEarly,
    Unauthorized,
)
from .verifier import Ed25519ProofVerifier, ProofVerifier, TrustingVerifier, VerificationContext

__all__ = [
    "ManualClock",
    "SystemClock",
    "EventLog",
    "MessageRegistry",
    "RegistryError",
    "InvalidUnlockTime",
    "InvalidProof",
    "NotFound",
    "Unauthorized",
    "TooEarly",
    "AlreadyGranted",
    "ProofVerifier",
    "TrustingVerifier",
    "Ed25519ProofVerifier",
    "VerificationContext",
]

__version__ = "1.0.0"
