import threading
from typing import Dict, List, Optional

from .clock import SystemClock
from .events import EventLog
from .logger import get_logger
from .models import (
    HANDLE_SIZE,
    ZERO_ADDRESS,
    DecryptionAllowed,
    MessageCreated,
    MessageRecord,
    MessageSnapshot,
    normalize_address,
)
from .verifier import TrustingVerifier, VerificationContext

log = get_logger("timelock.registry")


# ---------- Errors ----------
class RegistryError(Exception):
    code = "registry_error"
    message = "Registry error"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.message)


class InvalidUnlockTime(RegistryError):
    code = "invalid_unlock_time"
    message = "Unlock time must be in the future"


class InvalidProof(RegistryError):
    code = "invalid_proof"
    message = "Invalid encrypted recipient proof"


class NotFound(RegistryError):
    code = "not_found"
    message = "Message does not exist"

    def __init__(self, message_id: int):
        self.message_id = message_id
        super().__init__(f"{self.message}: {message_id}")


class Unauthorized(RegistryError):
    code = "unauthorized"
    message = "Only creator can allow"


class TooEarly(RegistryError):
    code = "too_early"
    message = "Unlock time not reached"


class AlreadyGranted(RegistryError):
    code = "already_granted"
    message = "Already allowed"


# ---------- Registry ----------
class MessageRegistry:
    """
    Time-locked message registry.

    Records are append-only; the only mutation is the one-time grant of
    decryption access by the creator once the unlock time has passed.
    Every call runs under a single lock, so calls are applied one at a time
    and observers see events in mutation order.
    """

    def __init__(
        self,
        clock=None,
        verifier=None,
        events: Optional[EventLog] = None,
        registry_address: str = ZERO_ADDRESS,
        protocol_id: int = 1,
    ):
        self._records: List[MessageRecord] = []
        self._by_creator: Dict[str, List[int]] = {}
        self._lock = threading.RLock()
        self.clock = clock or SystemClock()
        self.verifier = verifier or TrustingVerifier()
        self.events = events if events is not None else EventLog()
        self.registry_address = normalize_address(registry_address)
        self._protocol_id = protocol_id

    # Writes
    def create(
        self,
        sender: str,
        title: str,
        encrypted_content: bytes,
        encrypted_recipient: bytes,
        proof: bytes,
        unlock_timestamp: int,
    ) -> int:
        creator = normalize_address(sender)
        if len(encrypted_recipient) != HANDLE_SIZE:
            raise ValueError(f"encrypted recipient handle must be {HANDLE_SIZE} bytes")

        with self._lock:
            now = self.clock.now()
            if unlock_timestamp <= now:
                self._reject("create", InvalidUnlockTime(), creator=creator, unlock=unlock_timestamp, now=now)

            ctx = VerificationContext(registry_address=self.registry_address, creator=creator)
            if not self.verifier.verify(bytes(encrypted_recipient), bytes(proof), ctx):
                self._reject("create", InvalidProof(), creator=creator)

            message_id = len(self._records)
            rec = MessageRecord(
                id=message_id,
                creator=creator,
                title=title,
                encrypted_content=bytes(encrypted_content),
                encrypted_recipient=bytes(encrypted_recipient),
                created_at=now,
                unlock_timestamp=unlock_timestamp,
            )
            self._records.append(rec)
            self._by_creator.setdefault(creator, []).append(message_id)

            log.info(f"[CREATE] id={message_id} creator={creator} unlock={unlock_timestamp}")
            self.events.append(
                MessageCreated(
                    message_id=message_id,
                    creator=creator,
                    unlock_timestamp=unlock_timestamp,
                    created_at=now,
                )
            )
            return message_id

    def allow(self, sender: str, message_id: int, recipient: str) -> None:
        caller = normalize_address(sender)
        recipient = normalize_address(recipient)

        with self._lock:
            rec = self._get(message_id)
            if caller != rec.creator:
                self._reject("allow", Unauthorized(), id=message_id, caller=caller)
            now = self.clock.now()
            if now < rec.unlock_timestamp:
                self._reject("allow", TooEarly(), id=message_id, unlock=rec.unlock_timestamp, now=now)
            if rec.access_granted:
                self._reject("allow", AlreadyGranted(), id=message_id)

            rec.access_granted = True
            rec.granted_recipient = recipient

            log.info(f"[ALLOW] id={message_id} recipient={recipient}")
            self.events.append(DecryptionAllowed(message_id=message_id, recipient=recipient))

    # Reads
    def get_message(self, message_id: int) -> MessageSnapshot:
        with self._lock:
            rec = self._get(message_id)
            return self._snapshot(rec, self.clock.now())

    def get_message_ids_by_creator(self, creator: str) -> List[int]:
        with self._lock:
            return list(self._by_creator.get(normalize_address(creator), []))

    def get_messages_by_creator(self, creator: str) -> List[MessageSnapshot]:
        with self._lock:
            now = self.clock.now()
            ids = self._by_creator.get(normalize_address(creator), [])
            return [self._snapshot(self._records[i], now) for i in ids]

    def can_decrypt(self, message_id: int, identity: str) -> bool:
        identity = normalize_address(identity)
        with self._lock:
            rec = self._get(message_id)
            return rec.access_granted and rec.granted_recipient == identity

    def message_count(self) -> int:
        with self._lock:
            return len(self._records)

    def protocol_id(self) -> int:
        return self._protocol_id

    # Internals
    def _get(self, message_id: int) -> MessageRecord:
        if not isinstance(message_id, int) or message_id < 0 or message_id >= len(self._records):
            log.warning(f"[REJECT] code={NotFound.code} id={message_id}")
            raise NotFound(message_id)
        return self._records[message_id]

    @staticmethod
    def _snapshot(rec: MessageRecord, now: int) -> MessageSnapshot:
        return MessageSnapshot(**rec.model_dump(), unlock_reached=now >= rec.unlock_timestamp)

    @staticmethod
    def _reject(op: str, err: RegistryError, **ctx):
        detail = " ".join(f"{k}={v}" for k, v in ctx.items())
        log.warning(f"[REJECT] op={op} code={err.code} {detail}")
        raise err
