from __future__ import annotations

from datetime import datetime, timezone
from types import SimpleNamespace

import pytest

from netverdict.events.classifier import EventKind
from netverdict.events.models import (
    ConnectionEvent,
    RawLogEntry,
    connection_from_entry,
    decode_direction,
    protocol_name,
)
from netverdict.events.sources import MemoryAuditLog, entry_from_event_record


pytestmark = pytest.mark.unit


def test_projection_decodes_blocked_outbound_connection(entry_factory) -> None:
    """Source fields are the local endpoint and destination fields the remote one."""
    event = connection_from_entry(entry_factory(7, instance_id=5157), 3, lookup_services=False)
    assert event is not None
    assert event.ordinal == 3
    assert event.kind is EventKind.BLOCKED
    assert event.label == "Block: connection"
    assert event.pid == 4321
    assert event.file_name == "tool.exe"
    assert event.direction == "Out"
    assert event.protocol == 6
    assert event.protocol_name == "TCP"
    assert (event.local_address, event.local_port) == ("192.168.1.20", "50123")
    assert (event.remote_address, event.remote_port) == ("10.0.0.5", "443")
    assert event.filter_id == 68123


def test_projection_prefers_recorded_service_name(entry_factory) -> None:
    event = connection_from_entry(entry_factory(1, ServiceName="Dnscache"), 1, lookup_services=False)
    assert event is not None
    assert event.service_name == "Dnscache"


def test_app_listen_block_is_not_projected(entry_factory) -> None:
    assert connection_from_entry(entry_factory(1, instance_id=5031), 1) is None


def test_listen_events_default_to_inbound(entry_factory) -> None:
    event = connection_from_entry(entry_factory(1, instance_id=5154, direction=""), 1, lookup_services=False)
    assert event is not None
    assert event.direction == "In"


def test_direction_and_protocol_helpers() -> None:
    assert decode_direction("%%14592") == "In"
    assert decode_direction("%%14593") == "Out"
    assert decode_direction("%%99999") == ""
    assert protocol_name(17) == "UDP"
    assert protocol_name(-1) == "Any"
    assert protocol_name(200) == "200"


def test_placeholder_has_shape_but_no_content() -> None:
    row = ConnectionEvent.placeholder(12)
    assert row.is_placeholder
    assert row.ordinal == 12
    assert row.kind is EventKind.UNKNOWN
    assert row.path == ""


def test_naive_timestamps_are_treated_as_utc() -> None:
    entry = RawLogEntry(instance_id=5156, timestamp=datetime(2024, 1, 1, 8, 0, 0))
    assert entry.timestamp.tzinfo is timezone.utc
    assert entry.get_field("Missing", default="-") == "-"


def test_memory_log_reads_newest_first(entry_factory) -> None:
    log = MemoryAuditLog([entry_factory(1), entry_factory(2), entry_factory(3)])
    assert len(log) == 3
    assert log.entry_from_newest(0).record_number == 3
    assert log.entry_from_newest(2).record_number == 1
    with pytest.raises(IndexError):
        log.entry_from_newest(3)


def test_memory_log_notifies_append_listeners(entry_factory) -> None:
    log = MemoryAuditLog()
    seen: list[int | None] = []
    log.add_append_listener(lambda entry: seen.append(entry.record_number))
    log.append(entry_factory(9))
    assert seen == [9]
    assert log.listener_count == 1


def test_event_record_conversion_names_inserts() -> None:
    record = SimpleNamespace(
        EventID=5156,
        StringInserts=["4", "System", "%%14592", "0.0.0.0", "445", "10.1.1.1", "50000", "6", "66", "%%14610", "44", "S-1-0-0", "S-1-0-0", "extra"],
        TimeGenerated=datetime(2024, 2, 2, 10, 0, 0, tzinfo=timezone.utc),
        RecordNumber=501,
    )
    entry = entry_from_event_record(record)
    assert entry.instance_id == 5156
    assert entry.record_number == 501
    assert entry.get_field("Application") == "System"
    assert entry.get_field("DestPort") == "50000"
    assert entry.get_field("Insert13") == "extra"
    assert entry.timestamp == datetime(2024, 2, 2, 10, 0, 0, tzinfo=timezone.utc)
