"""Classification of Windows Filtering Platform audit event ids.

See "Audit Filtering Platform Connection" in the Windows security auditing
documentation for the meaning of each id.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

EVENT_CONNECTION_ALLOWED = 5156
EVENT_CONNECTION_BLOCKED = 5157
EVENT_PACKET_DROPPED = 5152
EVENT_APP_LISTEN_BLOCKED = 5031
EVENT_PACKET_BLOCKED = 5150
EVENT_PACKET_BLOCKED_OTHER_PROVIDER = 5151
EVENT_LISTEN_ALLOWED = 5154
EVENT_LISTEN_BLOCKED = 5155
# Bind events are documented but not classified.
EVENT_BIND_ALLOWED = 5158
EVENT_BIND_BLOCKED = 5159


class EventKind(str, Enum):
    ALLOWED = "allowed"
    BLOCKED = "blocked"
    DROPPED = "dropped"
    LISTEN_ALLOWED = "listen_allowed"
    LISTEN_BLOCKED = "listen_blocked"
    UNKNOWN = "unknown"

    @property
    def is_allow(self) -> bool:
        return self in {EventKind.ALLOWED, EventKind.LISTEN_ALLOWED}

    @property
    def is_block(self) -> bool:
        return self in {EventKind.BLOCKED, EventKind.DROPPED, EventKind.LISTEN_BLOCKED}


_KINDS: dict[int, EventKind] = {
    EVENT_CONNECTION_ALLOWED: EventKind.ALLOWED,
    EVENT_CONNECTION_BLOCKED: EventKind.BLOCKED,
    EVENT_PACKET_DROPPED: EventKind.DROPPED,
    EVENT_APP_LISTEN_BLOCKED: EventKind.BLOCKED,
    EVENT_PACKET_BLOCKED: EventKind.BLOCKED,
    EVENT_PACKET_BLOCKED_OTHER_PROVIDER: EventKind.BLOCKED,
    EVENT_LISTEN_ALLOWED: EventKind.LISTEN_ALLOWED,
    EVENT_LISTEN_BLOCKED: EventKind.LISTEN_BLOCKED,
}

_LABELS: dict[int, str] = {
    EVENT_CONNECTION_BLOCKED: "Block: connection",
    EVENT_PACKET_DROPPED: "Block: packet (WFP)",
    EVENT_APP_LISTEN_BLOCKED: "Block: app connection",
    EVENT_PACKET_BLOCKED: "Block: packet",
    EVENT_PACKET_BLOCKED_OTHER_PROVIDER: "Block: packet (other FW)",
    EVENT_LISTEN_ALLOWED: "Allow: listen",
    EVENT_LISTEN_BLOCKED: "Block: listen",
    EVENT_CONNECTION_ALLOWED: "Allow: connection",
}

SIMPLE_FIREWALL_EVENTS = frozenset({EVENT_CONNECTION_ALLOWED, EVENT_CONNECTION_BLOCKED, EVENT_PACKET_DROPPED})
# 5031 records cannot be parsed into a connection, so they stay out of the full set.
FIREWALL_EVENTS = frozenset(_KINDS) - {EVENT_APP_LISTEN_BLOCKED}


def _instance_id(entry_or_id: Any) -> int:
    if isinstance(entry_or_id, int):
        return entry_or_id
    return int(getattr(entry_or_id, "instance_id"))


def classify(instance_id: int) -> EventKind:
    return _KINDS.get(instance_id, EventKind.UNKNOWN)


def event_label(instance_id: int) -> str:
    return _LABELS.get(instance_id, f"[UNKNOWN] eventId: {instance_id}")


def is_known_event(instance_id: int) -> bool:
    return instance_id in _KINDS


def is_firewall_event_simple(entry_or_id: Any) -> bool:
    """High-volume subset: allowed, blocked and dropped connections."""
    return _instance_id(entry_or_id) in SIMPLE_FIREWALL_EVENTS


def is_firewall_event(entry_or_id: Any) -> bool:
    """Every classified id except the unparsable app-listen block."""
    return _instance_id(entry_or_id) in FIREWALL_EVENTS


def is_allowed(instance_id: int) -> bool:
    return instance_id == EVENT_CONNECTION_ALLOWED
