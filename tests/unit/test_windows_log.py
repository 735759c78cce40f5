from __future__ import annotations

import sys
import threading
import time
import types
from typing import Iterator

import pytest

from netverdict.events.sources import WindowsSecurityLog


pytestmark = pytest.mark.unit

WATCHER_NAME = "security-log-watcher"


@pytest.fixture
def empty_event_log(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Install stand-ins for the pywin32 modules backed by an empty log."""
    evtlog = types.ModuleType("win32evtlog")
    evtlog.OpenEventLog = lambda server, name: "handle"
    evtlog.GetOldestEventLogRecord = lambda handle: 1
    evtlog.GetNumberOfEventLogRecords = lambda handle: 0
    evtlog.NotifyChangeEventLog = lambda handle, signal: None
    evtlog.CloseEventLog = lambda handle: None

    event = types.ModuleType("win32event")
    event.WAIT_OBJECT_0 = 0
    event.WAIT_TIMEOUT = 258
    event.CreateEvent = lambda *args: "signal"

    def _wait(signal: str, timeout_ms: int) -> int:
        time.sleep(timeout_ms / 1000)
        return event.WAIT_TIMEOUT

    event.WaitForSingleObject = _wait

    wintypes = types.ModuleType("pywintypes")
    wintypes.error = type("error", (Exception,), {})

    monkeypatch.setitem(sys.modules, "win32evtlog", evtlog)
    monkeypatch.setitem(sys.modules, "win32event", event)
    monkeypatch.setitem(sys.modules, "pywintypes", wintypes)
    yield


def _watchers() -> list[threading.Thread]:
    return [thread for thread in threading.enumerate() if thread.name == WATCHER_NAME]


def _noop(entry: object) -> None:
    return None


def _other(entry: object) -> None:
    return None


def test_watcher_stops_with_the_last_listener(empty_event_log: None) -> None:
    """The change watcher only runs while someone is listening."""
    log = WindowsSecurityLog(poll_interval_ms=20)
    try:
        log.add_append_listener(_noop)
        log.add_append_listener(_other)
        assert log.is_watching
        running = _watchers()
        assert len(running) == 1

        log.remove_append_listener(_noop)
        assert log.is_watching

        log.remove_append_listener(_other)
        assert not log.is_watching
        running[0].join(timeout=2.0)
        assert not running[0].is_alive()
    finally:
        log.close()


def test_watcher_restarts_and_close_stops_it(empty_event_log: None) -> None:
    log = WindowsSecurityLog(poll_interval_ms=20)
    log.add_append_listener(_noop)
    log.remove_append_listener(_noop)
    log.add_append_listener(_noop)
    assert log.is_watching
    running = _watchers()
    assert running

    log.close()
    assert not log.is_watching
    for thread in running:
        thread.join(timeout=2.0)
        assert not thread.is_alive()
