# Proof checks for encrypted recipient handles.
from dataclasses import dataclass
from typing import Protocol

from nacl.exceptions import BadSignatureError
from nacl.signing import VerifyKey

from .models import hex_to_bytes


@dataclass(frozen=True)
class VerificationContext:
    registry_address: str
    creator: str

    def to_bytes(self) -> bytes:
        return hex_to_bytes(self.registry_address) + hex_to_bytes(self.creator)


class ProofVerifier(Protocol):
    def verify(self, handle: bytes, proof: bytes, context: VerificationContext) -> bool: ...


class TrustingVerifier:
    """Accepts every (handle, proof) pair; validity is the encryption service's contract."""

    def verify(self, handle: bytes, proof: bytes, context: VerificationContext) -> bool:
        return True


class Ed25519ProofVerifier:
    """
    The proof is the encryption service's Ed25519 signature over
    registry_address || creator || handle (addresses as 20 raw bytes).
    """

    def __init__(self, service_key: bytes):
        self._key = VerifyKey(service_key)

    @staticmethod
    def signing_input(handle: bytes, context: VerificationContext) -> bytes:
        return context.to_bytes() + handle

    def verify(self, handle: bytes, proof: bytes, context: VerificationContext) -> bool:
        try:
            self._key.verify(self.signing_input(handle, context), proof)
        except (BadSignatureError, ValueError):
            return False
        return True
