import pytest

from timelock import Ed25519ProofVerifier, InvalidProof, InvalidUnlockTime, ManualClock, MessageRegistry, TrustingVerifier
from timelock.verifier import VerificationContext

from conftest import REGISTRY_ADDRESS


def test_trusting_verifier_accepts_anything():
    ctx = VerificationContext(registry_address=REGISTRY_ADDRESS, creator="0x" + "11" * 20)
    assert TrustingVerifier().verify(b"\x00" * 32, b"", ctx)


def test_ed25519_verifier_binds_creator_and_registry(encryption, creator, recipient, stranger):
    verifier = Ed25519ProofVerifier(encryption.public_key)
    handle, proof = encryption.encrypt_recipient(creator.address, recipient.address)

    ok = VerificationContext(registry_address=REGISTRY_ADDRESS, creator=creator.address)
    assert verifier.verify(handle, proof, ok)

    other_caller = VerificationContext(registry_address=REGISTRY_ADDRESS, creator=stranger.address)
    assert not verifier.verify(handle, proof, other_caller)

    other_registry = VerificationContext(registry_address="0x" + "cd" * 20, creator=creator.address)
    assert not verifier.verify(handle, proof, other_registry)

    assert not verifier.verify(bytes(32), proof, ok)
    assert not verifier.verify(handle, b"short", ok)


def test_registry_rejects_bad_proof_without_state_change(encryption, creator, recipient, stranger):
    clock = ManualClock(1_000)
    registry = MessageRegistry(
        clock=clock,
        verifier=Ed25519ProofVerifier(encryption.public_key),
        registry_address=REGISTRY_ADDRESS,
    )
    # proof was issued to another caller
    handle, proof = encryption.encrypt_recipient(stranger.address, recipient.address)
    with pytest.raises(InvalidProof):
        registry.create(creator.address, "t", b"x", handle, proof, clock.now() + 60)
    assert registry.message_count() == 0
    assert len(registry.events) == 0

    handle, proof = encryption.encrypt_recipient(creator.address, recipient.address)
    assert registry.create(creator.address, "t", b"x", handle, proof, clock.now() + 60) == 0


def test_unlock_time_checked_before_proof(encryption, creator):
    clock = ManualClock(1_000)
    registry = MessageRegistry(clock=clock, verifier=Ed25519ProofVerifier(encryption.public_key))
    with pytest.raises(InvalidUnlockTime):
        registry.create(creator.address, "t", b"x", bytes(32), b"bogus", clock.now())
