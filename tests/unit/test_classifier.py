from __future__ import annotations

import pytest

from netverdict.events.classifier import (
    EventKind,
    classify,
    event_label,
    is_allowed,
    is_firewall_event,
    is_firewall_event_simple,
    is_known_event,
)


pytestmark = pytest.mark.unit


@pytest.mark.parametrize(
    ("instance_id", "label", "kind"),
    [
        (5156, "Allow: connection", EventKind.ALLOWED),
        (5157, "Block: connection", EventKind.BLOCKED),
        (5152, "Block: packet (WFP)", EventKind.DROPPED),
        (5031, "Block: app connection", EventKind.BLOCKED),
        (5150, "Block: packet", EventKind.BLOCKED),
        (5151, "Block: packet (other FW)", EventKind.BLOCKED),
        (5154, "Allow: listen", EventKind.LISTEN_ALLOWED),
        (5155, "Block: listen", EventKind.LISTEN_BLOCKED),
    ],
)
def test_known_events_have_labels_and_kinds(instance_id: int, label: str, kind: EventKind) -> None:
    assert event_label(instance_id) == label
    assert classify(instance_id) is kind
    assert is_known_event(instance_id)


def test_every_id_gets_a_label() -> None:
    """Classification is total: unknown ids get a readable placeholder label."""
    for instance_id in range(0, 6000):
        assert event_label(instance_id)
    assert event_label(4624) == "[UNKNOWN] eventId: 4624"
    assert classify(5158) is EventKind.UNKNOWN


def test_only_connection_allowed_counts_as_allowed() -> None:
    assert is_allowed(5156)
    assert not any(is_allowed(instance_id) for instance_id in (5154, 5157, 5152, 5031, 0))


def test_firewall_event_sets() -> None:
    assert {i for i in range(5000, 5200) if is_firewall_event_simple(i)} == {5152, 5156, 5157}
    assert is_firewall_event(5154)
    assert not is_firewall_event(5031)
    assert not is_firewall_event(4624)


def test_predicates_accept_entries(entry_factory) -> None:
    entry = entry_factory(1, instance_id=5156)
    assert is_firewall_event(entry)
    assert is_firewall_event_simple(entry)


def test_kind_polarity() -> None:
    assert EventKind.LISTEN_ALLOWED.is_allow
    assert EventKind.DROPPED.is_block
    assert not EventKind.UNKNOWN.is_allow and not EventKind.UNKNOWN.is_block
