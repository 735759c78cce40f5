"""Events package: audit log sources, classification and paging."""

from .classifier import (
    EventKind,
    classify,
    event_label,
    is_allowed,
    is_firewall_event,
    is_firewall_event_simple,
    is_known_event,
)
from .filters import build_entry_filter, combine, tcp_only, text_filter
from .models import ConnectionEvent, RawLogEntry, connection_from_entry
from .paging import Page, PagedEventSource
from .sources import AuditLog, MemoryAuditLog, WindowsSecurityLog

__all__ = [
    "EventKind",
    "classify",
    "event_label",
    "is_allowed",
    "is_firewall_event",
    "is_firewall_event_simple",
    "is_known_event",
    "build_entry_filter",
    "combine",
    "tcp_only",
    "text_filter",
    "ConnectionEvent",
    "RawLogEntry",
    "connection_from_entry",
    "Page",
    "PagedEventSource",
    "AuditLog",
    "MemoryAuditLog",
    "WindowsSecurityLog",
]
