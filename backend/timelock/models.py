import re
from typing import Literal, Optional, Union

from pydantic import BaseModel, Field, field_serializer, field_validator

HANDLE_SIZE = 32
ZERO_ADDRESS = "0x" + "00" * 20

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")
_HEX_RE = re.compile(r"^0x(?:[0-9a-fA-F]{2})*$")


# ---------- Identities / hex ----------
def normalize_address(value: str) -> str:
    value = (value or "").strip()
    if not _ADDRESS_RE.match(value):
        raise ValueError(f"invalid address: {value!r}")
    return value.lower()


def is_hex(value: str) -> bool:
    return bool(_HEX_RE.match(value))


def hex_to_bytes(value: str) -> bytes:
    value = value.strip()
    if not is_hex(value):
        raise ValueError("expected 0x-prefixed hex")
    return bytes.fromhex(value[2:])


def bytes_to_hex(data: bytes) -> str:
    return "0x" + data.hex()


def decode_payload(value: str) -> bytes:
    """Hex strings are taken verbatim, anything else as UTF-8 text."""
    if is_hex(value.strip()):
        return hex_to_bytes(value)
    return value.encode("utf-8")


# ---------- Records ----------
class MessageRecord(BaseModel):
    id: int
    creator: str
    title: str
    encrypted_content: bytes
    encrypted_recipient: bytes
    created_at: int
    unlock_timestamp: int
    access_granted: bool = False
    granted_recipient: Optional[str] = None


class MessageSnapshot(MessageRecord):
    unlock_reached: bool

    @field_serializer("encrypted_content", "encrypted_recipient", when_used="json")
    def serialize_bytes(self, value: bytes) -> str:
        return bytes_to_hex(value)


# ---------- Events ----------
class MessageCreated(BaseModel):
    name: Literal["MessageCreated"] = "MessageCreated"
    message_id: int
    creator: str
    unlock_timestamp: int
    created_at: int


class DecryptionAllowed(BaseModel):
    name: Literal["DecryptionAllowed"] = "DecryptionAllowed"
    message_id: int
    recipient: str


RegistryEvent = Union[MessageCreated, DecryptionAllowed]


class EventEnvelope(BaseModel):
    seq: int
    event: RegistryEvent = Field(discriminator="name")


# ---------- API ----------
class CreateMessageIn(BaseModel):
    title: str = ""
    encrypted_content: bytes  # 0x-hex or utf-8 text
    encrypted_recipient: bytes  # 0x-hex, 32 bytes
    input_proof: bytes  # 0x-hex
    unlock_timestamp: int = Field(ge=0)

    @field_validator("encrypted_content", mode="before")
    @classmethod
    def parse_content(cls, v):
        if isinstance(v, str):
            return decode_payload(v)
        return v

    @field_validator("encrypted_recipient", "input_proof", mode="before")
    @classmethod
    def parse_hex(cls, v):
        if isinstance(v, str):
            return hex_to_bytes(v)
        return v

    @field_validator("encrypted_recipient")
    @classmethod
    def check_handle_size(cls, v: bytes) -> bytes:
        if len(v) != HANDLE_SIZE:
            raise ValueError(f"encrypted_recipient must be {HANDLE_SIZE} bytes")
        return v


class CreateMessageOut(BaseModel):
    id: int


class AllowIn(BaseModel):
    recipient: str

    @field_validator("recipient")
    @classmethod
    def check_address(cls, v: str) -> str:
        return normalize_address(v)


class AllowOut(BaseModel):
    allowed: bool = True


class AccessOut(BaseModel):
    message_id: int
    address: str
    can_decrypt: bool


class HealthOut(BaseModel):
    status: str
    ts: str
    protocol_id: int
    message_count: int


class ErrorOut(BaseModel):
    detail: str
    code: str
