"""Audit log sources: an in-memory log and the Windows Security event log."""

from __future__ import annotations

from datetime import datetime, timezone
import logging
import threading
from typing import Any, Callable, Iterable, Protocol

from .models import RawLogEntry

logger = logging.getLogger(__name__)

AppendListener = Callable[[RawLogEntry], None]

# EventData insertion-string order per event id.
_CONNECTION_FIELDS = (
    "ProcessID",
    "Application",
    "Direction",
    "SourceAddress",
    "SourcePort",
    "DestAddress",
    "DestPort",
    "Protocol",
    "FilterRTID",
    "LayerName",
    "LayerRTID",
    "RemoteUserID",
    "RemoteMachineID",
)
_PACKET_FIELDS = (
    "ProcessId",
    "Application",
    "Direction",
    "SourceAddress",
    "SourcePort",
    "DestAddress",
    "DestPort",
    "Protocol",
    "FilterRTID",
    "LayerName",
    "LayerRTID",
)
_LISTEN_FIELDS = (
    "ProcessId",
    "Application",
    "SourceAddress",
    "SourcePort",
    "Protocol",
    "FilterRTID",
    "LayerName",
    "LayerRTID",
)
FIELD_LAYOUTS: dict[int, tuple[str, ...]] = {
    5156: _CONNECTION_FIELDS,
    5157: _CONNECTION_FIELDS,
    5150: _PACKET_FIELDS,
    5151: _PACKET_FIELDS,
    5152: _PACKET_FIELDS,
    5154: _LISTEN_FIELDS,
    5155: _LISTEN_FIELDS,
}


class AuditLog(Protocol):
    """Append-only log read newest-first by ordinal index."""

    def __len__(self) -> int: ...

    def entry_from_newest(self, index: int) -> RawLogEntry:
        """Return the entry ``index`` positions back from the newest; raise ``IndexError`` when absent."""
        ...

    def add_append_listener(self, listener: AppendListener) -> None: ...

    def remove_append_listener(self, listener: AppendListener) -> None: ...


class MemoryAuditLog:
    """Thread-safe in-memory audit log, used for replays and tests."""

    def __init__(self, entries: Iterable[RawLogEntry] = ()) -> None:
        self._entries: list[RawLogEntry] = list(entries)
        self._listeners: list[AppendListener] = []
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def entry_from_newest(self, index: int) -> RawLogEntry:
        with self._lock:
            if index < 0 or index >= len(self._entries):
                raise IndexError(index)
            return self._entries[-(index + 1)]

    def append(self, entry: RawLogEntry) -> None:
        """Append ``entry`` and notify listeners on the calling thread."""
        with self._lock:
            self._entries.append(entry)
            listeners = list(self._listeners)
        for listener in listeners:
            listener(entry)

    def extend(self, entries: Iterable[RawLogEntry]) -> None:
        for entry in entries:
            self.append(entry)

    def add_append_listener(self, listener: AppendListener) -> None:
        with self._lock:
            self._listeners.append(listener)

    def remove_append_listener(self, listener: AppendListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    @property
    def listener_count(self) -> int:
        with self._lock:
            return len(self._listeners)


def entry_from_event_record(record: Any) -> RawLogEntry:
    """Convert a pywin32 ``PyEventLogRecord`` into a :class:`RawLogEntry`."""
    instance_id = int(record.EventID) & 0xFFFF
    inserts = [str(value) for value in (record.StringInserts or ())]
    names = FIELD_LAYOUTS.get(instance_id, ())
    fields = {name: value for name, value in zip(names, inserts)}
    for position, value in enumerate(inserts[len(names):], start=len(names)):
        fields[f"Insert{position}"] = value

    generated = record.TimeGenerated
    timestamp = datetime.fromtimestamp(generated.timestamp(), tz=timezone.utc)
    return RawLogEntry(
        instance_id=instance_id,
        timestamp=timestamp,
        fields=fields,
        record_number=int(record.RecordNumber),
    )


class WindowsSecurityLog:
    """Windows event log accessed through pywin32 with change notifications.

    Random access uses record numbers: the newest record is
    ``oldest + total - 1``. While at least one listener is attached a watcher
    thread waits on ``NotifyChangeEventLog`` and forwards new records.
    """

    def __init__(self, log_name: str = "Security", *, server: str | None = None, poll_interval_ms: int = 1000) -> None:
        import pywintypes  # type: ignore[import-not-found]
        import win32evtlog  # type: ignore[import-not-found]

        self._evtlog = win32evtlog
        self._win_error = pywintypes.error
        self.log_name = log_name
        self.poll_interval_ms = poll_interval_ms
        self._handle = win32evtlog.OpenEventLog(server, log_name)
        self._lock = threading.RLock()
        self._listeners: list[AppendListener] = []
        self._watcher: threading.Thread | None = None
        self._watcher_stop: threading.Event | None = None
        self._last_seen = self._newest_record_number()

    def __len__(self) -> int:
        with self._lock:
            return int(self._evtlog.GetNumberOfEventLogRecords(self._handle))

    def _newest_record_number(self) -> int:
        with self._lock:
            oldest = int(self._evtlog.GetOldestEventLogRecord(self._handle))
            total = int(self._evtlog.GetNumberOfEventLogRecords(self._handle))
        return oldest + total - 1

    def _read_record(self, record_number: int, *, backwards: bool) -> list[Any]:
        direction = self._evtlog.EVENTLOG_BACKWARDS_READ if backwards else self._evtlog.EVENTLOG_FORWARDS_READ
        with self._lock:
            return list(self._evtlog.ReadEventLog(self._handle, self._evtlog.EVENTLOG_SEEK_READ | direction, record_number) or [])

    def entry_from_newest(self, index: int) -> RawLogEntry:
        with self._lock:
            oldest = int(self._evtlog.GetOldestEventLogRecord(self._handle))
            total = int(self._evtlog.GetNumberOfEventLogRecords(self._handle))
            if index < 0 or index >= total:
                raise IndexError(index)
            records = self._read_record(oldest + total - 1 - index, backwards=True)
        if not records:
            raise IndexError(index)
        return entry_from_event_record(records[0])

    def add_append_listener(self, listener: AppendListener) -> None:
        with self._lock:
            self._listeners.append(listener)
            if self._watcher is None:
                stop = threading.Event()
                self._watcher = threading.Thread(
                    target=self._watch,
                    args=(stop,),
                    daemon=True,
                    name="security-log-watcher",
                )
                self._watcher_stop = stop
                self._watcher.start()

    def remove_append_listener(self, listener: AppendListener) -> None:
        """Detach ``listener``; the watcher thread stops with the last one."""
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)
            if self._listeners:
                return
            watcher, stop = self._watcher, self._watcher_stop
            self._watcher = None
            self._watcher_stop = None
        self._stop_watcher(watcher, stop)

    @property
    def is_watching(self) -> bool:
        with self._lock:
            return self._watcher is not None

    def _stop_watcher(self, watcher: threading.Thread | None, stop: threading.Event | None) -> None:
        if stop is not None:
            stop.set()
        if watcher is not None and watcher is not threading.current_thread():
            watcher.join(timeout=self.poll_interval_ms / 1000 * 2)

    def _watch(self, stop: threading.Event) -> None:
        import win32event  # type: ignore[import-not-found]

        signal = win32event.CreateEvent(None, False, False, None)
        self._evtlog.NotifyChangeEventLog(self._handle, signal)
        while not stop.is_set():
            if win32event.WaitForSingleObject(signal, self.poll_interval_ms) == win32event.WAIT_OBJECT_0:
                self._dispatch_new_records(stop)

    def _dispatch_new_records(self, stop: threading.Event) -> None:
        newest = self._newest_record_number()
        while self._last_seen < newest and not stop.is_set():
            try:
                records = self._read_record(self._last_seen + 1, backwards=False)
            except self._win_error as exc:
                logger.warning(f"Failed reading new {self.log_name} records: {exc}")
                return
            if not records:
                return
            for record in records:
                self._last_seen = max(self._last_seen, int(record.RecordNumber))
                entry = entry_from_event_record(record)
                with self._lock:
                    listeners = list(self._listeners)
                for listener in listeners:
                    listener(entry)

    def close(self) -> None:
        with self._lock:
            watcher, stop = self._watcher, self._watcher_stop
            self._watcher = None
            self._watcher_stop = None
            self._listeners.clear()
        self._stop_watcher(watcher, stop)
        with self._lock:
            self._evtlog.CloseEventLog(self._handle)
