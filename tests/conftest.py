import os

import pytest
from fastapi.testclient import TestClient
from nacl.encoding import RawEncoder
from nacl.hash import blake2b
from nacl.signing import SigningKey

from timelock import ManualClock, MessageRegistry
from timelock.config import Settings
from timelock.main import create_app
from timelock.models import ZERO_ADDRESS, hex_to_bytes
from timelock.security import address_from_public_key, sign_compact
from timelock.verifier import Ed25519ProofVerifier, VerificationContext

START = 1_700_000_000
REGISTRY_ADDRESS = "0x" + "ab" * 20


class Account:
    """A signer with its derived registry identity."""

    def __init__(self):
        self.key = SigningKey.generate()
        self.address = address_from_public_key(bytes(self.key.verify_key))

    def headers(self, act: str, **claims):
        return {"Authorization": f"Bearer {sign_compact(self.key, act, **claims)}"}


class FakeEncryptionService:
    """Produces an opaque 32-byte handle plus an Ed25519 proof bound to the caller."""

    def __init__(self, registry_address: str = ZERO_ADDRESS):
        self.key = SigningKey.generate()
        self.registry_address = registry_address

    @property
    def public_key(self) -> bytes:
        return bytes(self.key.verify_key)

    def encrypt_recipient(self, caller: str, plaintext_address: str):
        handle = blake2b(os.urandom(16) + hex_to_bytes(plaintext_address), digest_size=32, encoder=RawEncoder)
        ctx = VerificationContext(registry_address=self.registry_address, creator=caller)
        proof = self.key.sign(Ed25519ProofVerifier.signing_input(handle, ctx)).signature
        return handle, proof


@pytest.fixture
def clock():
    return ManualClock(START)


@pytest.fixture
def registry(clock):
    return MessageRegistry(clock=clock, registry_address=REGISTRY_ADDRESS)


@pytest.fixture
def creator():
    return Account()


@pytest.fixture
def recipient():
    return Account()


@pytest.fixture
def stranger():
    return Account()


@pytest.fixture
def encryption():
    return FakeEncryptionService(REGISTRY_ADDRESS)


@pytest.fixture
def settings():
    return Settings(registry_address=REGISTRY_ADDRESS, protocol_id=7)


@pytest.fixture
def app(settings, clock):
    return create_app(settings=settings, clock=clock)


@pytest.fixture
def client(app):
    return TestClient(app)
