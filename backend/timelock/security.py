import base64, json, threading, time, uuid
from typing import Tuple, Dict, Any, Optional
from fastapi import HTTPException

from nacl.encoding import HexEncoder
from nacl.exceptions import BadSignatureError
from nacl.hash import blake2b
from nacl.signing import SigningKey, VerifyKey

# ---- base64url helpers ----
def b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")

def b64url_decode_to_bytes(s: str) -> bytes:
    pad = '=' * (-len(s) % 4)
    return base64.urlsafe_b64decode(s + pad)

def parse_jws_compact(jws: str) -> Tuple[Dict[str, Any], Dict[str, Any], bytes, bytes]:
    try:
        header_b64, payload_b64, sig_b64 = jws.split(".")
        header = json.loads(b64url_decode_to_bytes(header_b64))
        payload_bytes = b64url_decode_to_bytes(payload_b64)
        payload = json.loads(payload_bytes)
        sig = b64url_decode_to_bytes(sig_b64)
        signing_input = (header_b64 + "." + payload_b64).encode("ascii")
        return header, payload, sig, signing_input
    except Exception:
        raise HTTPException(status_code=400, detail="Invalid JWS format")

# ---- caller identity ----
def address_from_public_key(pub: bytes) -> str:
    """0x + BLAKE2b-160 of the raw Ed25519 verify key."""
    return "0x" + blake2b(pub, digest_size=20, encoder=HexEncoder).decode("ascii")

def sign_compact(signing_key: SigningKey, act: str, ttl: int = 300, now: Optional[int] = None,
                 jti: Optional[str] = None, **claims) -> str:
    """Client-side counterpart of the checks below: mint an EdDSA compact JWS."""
    now = int(time.time()) if now is None else now
    pub = bytes(signing_key.verify_key)
    header = {"alg": "EdDSA", "typ": "JWT", "kid": base64.b64encode(pub).decode("ascii")}
    payload = {
        "sub": address_from_public_key(pub),
        "act": act,
        "iat": now,
        "exp": now + ttl,
        "jti": jti or uuid.uuid4().hex,
        **claims,
    }
    signing_input = (
        b64url_encode(json.dumps(header, separators=(",", ":")).encode("utf-8"))
        + "."
        + b64url_encode(json.dumps(payload, separators=(",", ":")).encode("utf-8"))
    )
    sig = signing_key.sign(signing_input.encode("ascii")).signature
    return signing_input + "." + b64url_encode(sig)

# ---- anti-replay cache (in-memory) ----
class ReplayCache:
    def __init__(self, ttl_sec: int = 600):
        self.ttl_sec = ttl_sec
        self._seen: Dict[str, int] = {}  # jti -> exp_ts
        self._lock = threading.Lock()

    def check(self, jti: str, now: int, exp: int):
        if not jti:
            raise HTTPException(status_code=400, detail="Missing jti")
        with self._lock:
            # sweep
            for k, v in list(self._seen.items()):
                if v < now:
                    self._seen.pop(k, None)
            if jti in self._seen:
                raise HTTPException(status_code=401, detail="Replay detected")
            self._seen[jti] = max(exp, now + self.ttl_sec)

def verify_times(iat: int, exp: int, leeway: int = 60, now: Optional[int] = None) -> int:
    now = int(time.time()) if now is None else now
    if not iat or not exp:
        raise HTTPException(status_code=400, detail="Missing iat/exp")
    if iat > now + leeway:
        raise HTTPException(status_code=401, detail="iat in the future")
    if exp < now - leeway:
        raise HTTPException(status_code=401, detail="Token expired")
    return now


def _b64_any_to_bytes(s: str) -> bytes:
    s = s.strip()
    # try standard base64 first
    try:
        return base64.b64decode(s, validate=True)
    except Exception:
        pass
    # try urlsafe base64 (add padding if missing)
    try:
        pad = '=' * (-len(s) % 4)
        return base64.urlsafe_b64decode(s + pad)
    except Exception:
        raise HTTPException(status_code=400, detail="Bad key encoding")


def verify_eddsa_with_pub_b64(pub_b64_std_or_url: str, signing_input: bytes, signature: bytes) -> bytes:
    pub_bytes = _b64_any_to_bytes(pub_b64_std_or_url)
    try:
        VerifyKey(pub_bytes).verify(signing_input, signature)
    except BadSignatureError:
        raise HTTPException(status_code=401, detail="Bad JWS signature")
    except ValueError:
        raise HTTPException(status_code=400, detail="Bad public key")
    return pub_bytes

# ---- Authorization: Bearer <compact> ----
def extract_bearer(authorization: str) -> str:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=401, detail="Missing Bearer token")
    return authorization.split(" ", 1)[1].strip()
