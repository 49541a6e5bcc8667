import os
from dataclasses import dataclass, field
from typing import List, Optional

from .models import ZERO_ADDRESS, normalize_address

DEFAULT_ORIGINS = "http://localhost:5173,http://127.0.0.1:5173"


@dataclass
class Settings:
    registry_address: str = ZERO_ADDRESS
    protocol_id: int = 1
    cors_origins: List[str] = field(default_factory=lambda: DEFAULT_ORIGINS.split(","))
    jws_leeway: int = 60
    jti_ttl: int = 600
    proof_verifier: str = "trust"  # trust | ed25519
    encryption_service_key: Optional[str] = None  # base64 Ed25519 public key
    log_level: str = "INFO"
    log_file: Optional[str] = None

    @classmethod
    def from_env(cls) -> "Settings":
        origins = os.getenv("TIMELOCK_CORS_ORIGINS", DEFAULT_ORIGINS)
        return cls(
            registry_address=normalize_address(os.getenv("TIMELOCK_REGISTRY_ADDRESS", ZERO_ADDRESS)),
            protocol_id=int(os.getenv("TIMELOCK_PROTOCOL_ID", "1")),
            cors_origins=[o.strip() for o in origins.split(",") if o.strip()],
            jws_leeway=int(os.getenv("TIMELOCK_JWS_LEEWAY", "60")),
            jti_ttl=int(os.getenv("TIMELOCK_JTI_TTL", "600")),
            proof_verifier=os.getenv("TIMELOCK_PROOF_VERIFIER", "trust").lower(),
            encryption_service_key=os.getenv("TIMELOCK_ENCRYPTION_SERVICE_KEY") or None,
            log_level=os.getenv("TIMELOCK_LOG_LEVEL", "INFO").upper(),
            log_file=os.getenv("TIMELOCK_LOG_FILE") or None,
        )
