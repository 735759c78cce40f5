"""Audit log records and their projection into connection events."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
import logging
import ntpath
import platform
import time
from types import MappingProxyType
from typing import Any, Mapping

import psutil

from ..system.paths import resolve_path
from .classifier import EVENT_APP_LISTEN_BLOCKED, EventKind, classify, event_label

logger = logging.getLogger(__name__)

DIRECTION_INBOUND_TOKEN = "%%14592"
DIRECTION_OUTBOUND_TOKEN = "%%14593"

PROTOCOL_NAMES: dict[int, str] = {
    1: "ICMP",
    2: "IGMP",
    6: "TCP",
    17: "UDP",
    41: "IPv6",
    47: "GRE",
    58: "ICMPv6",
    113: "PGM",
}

SERVICE_CACHE_TTL_SECONDS = 60

_SERVICE_CACHE: dict[str, Any] = {"expires_at": 0.0, "value": {}}


@dataclass(frozen=True, slots=True)
class RawLogEntry:
    """One immutable record read from the audit log."""

    instance_id: int
    timestamp: datetime
    fields: Mapping[str, str] = field(default_factory=dict)
    record_number: int | None = None

    def __post_init__(self) -> None:
        if self.timestamp.tzinfo is None:
            object.__setattr__(self, "timestamp", self.timestamp.replace(tzinfo=timezone.utc))
        object.__setattr__(self, "fields", MappingProxyType(dict(self.fields)))

    def get_field(self, *names: str, default: str = "") -> str:
        """Return the first present field among ``names`` (EventData spelling varies by id)."""
        for name in names:
            value = self.fields.get(name)
            if value is not None:
                return str(value)
        return default


@dataclass(frozen=True, slots=True)
class ConnectionEvent:
    """Semantic view of a firewall audit record."""

    ordinal: int
    instance_id: int
    timestamp: datetime
    kind: EventKind
    label: str
    pid: int | None = None
    path: str = ""
    file_name: str = ""
    service_name: str = ""
    protocol: int = -1
    protocol_name: str = ""
    direction: str = ""
    local_address: str = ""
    local_port: str = ""
    remote_address: str = ""
    remote_port: str = ""
    filter_id: int | None = None
    layer_name: str = ""
    package_id: str = ""
    owner: str = ""
    profile: int | None = None
    is_placeholder: bool = False

    @classmethod
    def placeholder(cls, index: int) -> "ConnectionEvent":
        """Contentless row with the same shape, used while a page loads."""
        return cls(
            ordinal=index,
            instance_id=0,
            timestamp=datetime.fromtimestamp(0, tz=timezone.utc),
            kind=EventKind.UNKNOWN,
            label="",
            is_placeholder=True,
        )


def _to_int(value: str | None) -> int | None:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None


def decode_direction(value: str) -> str:
    """Translate the audit direction token into ``In``/``Out``."""
    clean = value.strip()
    if clean == DIRECTION_OUTBOUND_TOKEN or clean.lower() in {"out", "outbound"}:
        return "Out"
    if clean == DIRECTION_INBOUND_TOKEN or clean.lower() in {"in", "inbound"}:
        return "In"
    return ""


def protocol_name(protocol: int) -> str:
    if protocol < 0:
        return "Any"
    return PROTOCOL_NAMES.get(protocol, str(protocol))


def services_by_pid(ttl_seconds: int = SERVICE_CACHE_TTL_SECONDS) -> dict[int, list[str]]:
    """Map running service pids to their service names (Windows only, cached)."""
    if _SERVICE_CACHE["expires_at"] > time.time():
        return _SERVICE_CACHE["value"]

    mapping: dict[int, list[str]] = {}
    if platform.system().lower() == "windows" and hasattr(psutil, "win_service_iter"):
        try:
            for service in psutil.win_service_iter():
                try:
                    pid = service.pid()
                except (psutil.NoSuchProcess, psutil.AccessDenied):
                    continue
                if pid:
                    mapping.setdefault(int(pid), []).append(service.name())
        except (OSError, psutil.Error) as exc:
            logger.warning(f"Unable to enumerate services: {exc}")

    _SERVICE_CACHE["value"] = mapping
    _SERVICE_CACHE["expires_at"] = time.time() + ttl_seconds
    return mapping


def clear_service_cache() -> None:
    _SERVICE_CACHE["value"] = {}
    _SERVICE_CACHE["expires_at"] = 0.0


def connection_from_entry(
    entry: RawLogEntry,
    ordinal: int,
    *,
    lookup_services: bool = True,
) -> ConnectionEvent | None:
    """Project a raw record into a :class:`ConnectionEvent`.

    Returns ``None`` for records that carry no connection (the app-listen
    block). The local side is the event's source endpoint and the remote
    side its destination, for both directions.
    """
    if entry.instance_id == EVENT_APP_LISTEN_BLOCKED:
        return None

    pid = _to_int(entry.get_field("ProcessID", "ProcessId"))
    raw_path = entry.get_field("Application")
    path = resolve_path(raw_path) or ""
    protocol = _to_int(entry.get_field("Protocol"))
    protocol = -1 if protocol is None else protocol

    service_name = entry.get_field("ServiceName")
    if not service_name and pid and lookup_services:
        service_name = ",".join(services_by_pid().get(pid, []))

    kind = classify(entry.instance_id)
    direction = decode_direction(entry.get_field("Direction"))
    if not direction and kind in {EventKind.LISTEN_ALLOWED, EventKind.LISTEN_BLOCKED}:
        direction = "In"

    return ConnectionEvent(
        ordinal=ordinal,
        instance_id=entry.instance_id,
        timestamp=entry.timestamp,
        kind=kind,
        label=event_label(entry.instance_id),
        pid=pid,
        path=path,
        file_name=ntpath.basename(path) if path else "",
        service_name=service_name,
        protocol=protocol,
        protocol_name=protocol_name(protocol),
        direction=direction,
        local_address=entry.get_field("SourceAddress"),
        local_port=entry.get_field("SourcePort"),
        remote_address=entry.get_field("DestAddress"),
        remote_port=entry.get_field("DestPort"),
        filter_id=_to_int(entry.get_field("FilterRTID")),
        layer_name=entry.get_field("LayerName"),
        package_id=entry.get_field("PackageId"),
        owner=entry.get_field("UserSid"),
        profile=_to_int(entry.get_field("Profile")),
    )
