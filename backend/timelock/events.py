import threading
from typing import Callable, List

from .logger import get_logger
from .models import EventEnvelope, RegistryEvent

log = get_logger("timelock.events")

Listener = Callable[[EventEnvelope], None]


class EventLog:
    """Append-only history of registry events, numbered from 0."""

    def __init__(self):
        self._entries: List[EventEnvelope] = []
        self._listeners: List[Listener] = []
        self._lock = threading.RLock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def subscribe(self, listener: Listener) -> None:
        with self._lock:
            self._listeners.append(listener)

    def unsubscribe(self, listener: Listener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def append(self, event: RegistryEvent) -> EventEnvelope:
        with self._lock:
            entry = EventEnvelope(seq=len(self._entries), event=event)
            self._entries.append(entry)
            listeners = list(self._listeners)
        for listener in listeners:
            # observers never fail the mutation that produced the event
            try:
                listener(entry)
            except Exception:
                log.exception(f"[EVENT] listener failed seq={entry.seq} name={entry.event.name}")
        return entry

    def since(self, seq: int = 0) -> List[EventEnvelope]:
        with self._lock:
            return list(self._entries[max(seq, 0):])
