import pytest

from timelock import EventLog, ManualClock
from timelock.models import DecryptionAllowed, EventEnvelope, MessageCreated


def test_event_log_numbers_and_replays():
    log = EventLog()
    log.append(MessageCreated(message_id=0, creator="0x" + "11" * 20, unlock_timestamp=20, created_at=10))
    log.append(DecryptionAllowed(message_id=0, recipient="0x" + "22" * 20))

    assert len(log) == 2
    assert [e.seq for e in log.since(0)] == [0, 1]
    assert [e.event.name for e in log.since(1)] == ["DecryptionAllowed"]
    assert log.since(5) == []


def test_event_log_listeners():
    log = EventLog()
    seen = []
    log.subscribe(seen.append)
    log.append(DecryptionAllowed(message_id=3, recipient="0x" + "22" * 20))
    log.unsubscribe(seen.append)
    log.append(DecryptionAllowed(message_id=4, recipient="0x" + "22" * 20))

    assert len(seen) == 1
    assert seen[0].seq == 0 and seen[0].event.message_id == 3


def test_envelope_json_discriminates():
    entry = EventEnvelope(seq=1, event=DecryptionAllowed(message_id=2, recipient="0x" + "22" * 20))
    data = entry.model_dump(mode="json")
    assert data == {
        "seq": 1,
        "event": {"name": "DecryptionAllowed", "message_id": 2, "recipient": "0x" + "22" * 20},
    }
    assert EventEnvelope.model_validate(data) == entry


def test_manual_clock_only_moves_forward():
    clock = ManualClock(100)
    assert clock.increase(5) == 105
    assert clock.increase_to(200) == 200
    with pytest.raises(ValueError):
        clock.increase_to(150)
    with pytest.raises(ValueError):
        clock.increase(-1)
    assert clock.now() == 200
