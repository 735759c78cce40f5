"""NetVerdict: explain Windows Firewall allow and block audit events."""

from .analytics import Explanation, explain_event
from .config import Settings, configure_logging
from .events import ConnectionEvent, MemoryAuditLog, PagedEventSource, RawLogEntry, connection_from_entry
from .firewall import (
    FILTER_NOT_FOUND,
    CustomRuleRequest,
    FilterStateResolver,
    FirewallRule,
    find_matching_rules,
    get_current_profile,
)
from .system import CommandRunner, resolve_path

__version__ = "0.1.0"

__all__ = [
    "Explanation",
    "explain_event",
    "Settings",
    "configure_logging",
    "ConnectionEvent",
    "MemoryAuditLog",
    "PagedEventSource",
    "RawLogEntry",
    "connection_from_entry",
    "FILTER_NOT_FOUND",
    "CustomRuleRequest",
    "FilterStateResolver",
    "FirewallRule",
    "find_matching_rules",
    "get_current_profile",
    "CommandRunner",
    "resolve_path",
]
