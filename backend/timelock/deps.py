import base64

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from .config import Settings
from .registry import MessageRegistry
from .verifier import Ed25519ProofVerifier, TrustingVerifier


def setup_cors(app: FastAPI, origins):
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


def build_verifier(settings: Settings):
    if settings.proof_verifier == "trust":
        return TrustingVerifier()
    if settings.proof_verifier == "ed25519":
        if not settings.encryption_service_key:
            raise ValueError("TIMELOCK_ENCRYPTION_SERVICE_KEY is required for the ed25519 verifier")
        return Ed25519ProofVerifier(base64.b64decode(settings.encryption_service_key))
    raise ValueError(f"Unknown proof verifier: {settings.proof_verifier}")


def build_registry(settings: Settings, clock=None, verifier=None) -> MessageRegistry:
    return MessageRegistry(
        clock=clock,
        verifier=verifier or build_verifier(settings),
        registry_address=settings.registry_address,
        protocol_id=settings.protocol_id,
    )


def get_registry(request: Request) -> MessageRegistry:
    return request.app.state.registry
