"""Paged, filterable, append-aware view over an audit log."""

from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
import logging
import queue
import threading
from typing import Any, Callable, Generic, TypeVar

from ..config import DEFAULT_PAGE_SIZE
from .models import RawLogEntry
from .sources import AuditLog

logger = logging.getLogger(__name__)

T = TypeVar("T")

EntryPredicate = Callable[[RawLogEntry], bool]
CountsCallback = Callable[[int, int], None]

_STOP = object()


@dataclass(slots=True)
class Page(Generic[T]):
    """A window of rows starting at ``offset``."""

    offset: int
    count: int
    loaded_at: datetime
    items: list[T] = field(default_factory=list)


@dataclass(slots=True)
class _ResetCounters:
    done: threading.Event = field(default_factory=threading.Event)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class PagedEventSource(Generic[T]):
    """Virtualized paging over an audit log consumed newest-first.

    Pages are produced by scanning raw entries from a start position toward
    older entries, keeping those accepted by ``filter_predicate`` and
    projecting them with ``projection(entry, ordinal)``. The raw position
    that follows each full page is remembered under the next presented
    offset so that sequential paging does not rescan from the top.

    Entries appended after the last reset are not shown; they shift raw
    positions instead and are reported through ``new_entries_count`` and
    ``new_matching_entries_count``. Those counters are owned by a single
    consumer thread fed by the log's append notifications.
    """

    def __init__(
        self,
        log: AuditLog,
        projection: Callable[[RawLogEntry, int], T | None],
        placeholder_factory: Callable[[int], T],
        *,
        filter_predicate: EntryPredicate | None = None,
        page_size: int = DEFAULT_PAGE_SIZE,
        max_workers: int = 2,
        on_counts_changed: CountsCallback | None = None,
    ) -> None:
        self._log = log
        self._projection = projection
        self._placeholder_factory = placeholder_factory
        self._filter_predicate = filter_predicate
        self.page_size = page_size
        self.on_counts_changed = on_counts_changed

        self._filtered_offsets: dict[int, int] = {}
        self._state_lock = threading.Lock()
        self._first_load = True
        self._listening = False
        self._paused = False
        self._closed = False
        self._first_seen = _now()
        self._new_entries = 0
        self._new_matching_entries = 0

        self._cancel = threading.Event()
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="event-page")
        self._channel: queue.Queue[Any] = queue.Queue()
        self._consumer = threading.Thread(
            target=self._consume_appends,
            daemon=True,
            name="event-append-consumer",
        )
        self._consumer.start()

    # -- public state -------------------------------------------------

    @property
    def filter_predicate(self) -> EntryPredicate | None:
        return self._filter_predicate

    @filter_predicate.setter
    def filter_predicate(self, predicate: EntryPredicate | None) -> None:
        self._filter_predicate = predicate
        self.reset()

    @property
    def new_entries_count(self) -> int:
        return self._new_entries

    @property
    def new_matching_entries_count(self) -> int:
        return self._new_matching_entries

    @property
    def is_closed(self) -> bool:
        return self._closed

    def filtered_offsets(self) -> dict[int, int]:
        """Snapshot of the presented offset -> raw position map."""
        return dict(self._filtered_offsets)

    def get_count(self) -> int:
        """Raw, unfiltered size of the underlying log."""
        return len(self._log)

    def index_of(self, item: T) -> int:
        """Reverse lookup of a filtered position is not maintained; always 0."""
        return 0

    # -- paging -------------------------------------------------------

    def get_page(self, offset: int, count: int, use_placeholder: bool = False) -> Page[T]:
        """Scan synchronously for one page, or build placeholder rows without touching the log.

        The first call after construction or :meth:`reset` waits (up to five
        seconds) for the append consumer to zero the counters, so call this
        off the UI thread or use :meth:`get_page_async`.
        """
        if offset < 0 or count < 0:
            raise ValueError("offset and count must be non-negative")

        if self._ensure_listening():
            # Anything appended before the first load is part of the view.
            self._reset_counters()
        page: Page[T] = Page(offset=offset, count=count, loaded_at=_now())
        if use_placeholder:
            page.items = [self._placeholder_factory(offset + index) for index in range(count)]
            return page

        offsets = self._filtered_offsets
        position = offsets.get(offset, offset)
        page.items = self._scan(offsets, offset, position, count)
        return page

    def get_page_async(self, offset: int, count: int, use_placeholder: bool = False) -> Future[Page[T]]:
        """Run :meth:`get_page` on the background pool.

        Requests made after (or racing with) :meth:`close` resolve to an
        empty page rather than raising.
        """
        if self._closed:
            return self._completed(self._empty_page(offset, count))
        try:
            return self._executor.submit(self._page_task, offset, count, use_placeholder)
        except RuntimeError:
            return self._completed(self._empty_page(offset, count))

    def _page_task(self, offset: int, count: int, use_placeholder: bool) -> Page[T]:
        if self._cancel.is_set():
            return self._empty_page(offset, count)
        return self.get_page(offset, count, use_placeholder)

    def _scan(self, offsets: dict[int, int], offset: int, position: int, count: int) -> list[T]:
        items: list[T] = []
        if count == 0:
            return items

        shift = self._new_entries
        raw = position
        matches = 0
        while matches < count:
            if self._cancel.is_set() or raw + shift >= len(self._log):
                break
            try:
                entry = self._log.entry_from_newest(raw + shift)
            except IndexError:
                raw += 1
                continue
            raw += 1

            if not self._passes(entry):
                continue
            matches += 1
            if matches == count:
                offsets.setdefault(offset + count, raw)

            try:
                item = self._projection(entry, offset + matches)
            except (AttributeError, KeyError, TypeError, ValueError) as exc:
                logger.warning(f"Projection failed for entry {entry.record_number}: {exc}")
                continue
            if item is not None:
                items.append(item)
        return items

    def _passes(self, entry: RawLogEntry) -> bool:
        predicate = self._filter_predicate
        if predicate is None:
            return True
        try:
            return bool(predicate(entry))
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            logger.warning(f"Skipping malformed entry {getattr(entry, 'record_number', None)}: {exc}")
            return False

    @staticmethod
    def _empty_page(offset: int, count: int) -> Page[T]:
        return Page(offset=offset, count=count, loaded_at=_now(), items=[])

    @staticmethod
    def _completed(page: Page[T]) -> Future[Page[T]]:
        future: Future[Page[T]] = Future()
        future.set_result(page)
        return future

    # -- reset and new-entry tracking ---------------------------------

    def reset(self, count: int = 0) -> None:
        """Forget cached offsets and new-entry counts; call whenever the filter changes."""
        with self._state_lock:
            self._filtered_offsets = {}
            self._first_seen = _now()
            self._first_load = True
        self._reset_counters()

    def _reset_counters(self) -> None:
        if self._closed or threading.current_thread() is self._consumer:
            self._new_entries = 0
            self._new_matching_entries = 0
            return
        message = _ResetCounters()
        self._channel.put(message)
        if not message.done.wait(timeout=5.0):
            logger.warning("Append consumer did not acknowledge counter reset")

    def _ensure_listening(self) -> bool:
        """Attach the append listener once and stamp the first-load time."""
        with self._state_lock:
            if not self._first_load or self._closed:
                return False
            self._first_load = False
            self._first_seen = _now()
            if not self._listening:
                self._log.add_append_listener(self._on_append)
                self._listening = True
        return True

    def _on_append(self, entry: RawLogEntry) -> None:
        if not self._closed and not self._paused:
            self._channel.put(entry)

    def _consume_appends(self) -> None:
        while True:
            message = self._channel.get()
            try:
                if message is _STOP:
                    return
                if isinstance(message, _ResetCounters):
                    self._new_entries = 0
                    self._new_matching_entries = 0
                    message.done.set()
                    continue
                self._count_new_entry(message)
            finally:
                self._channel.task_done()

    def _count_new_entry(self, entry: RawLogEntry) -> None:
        if entry.timestamp <= self._first_seen:
            return

        self._new_entries += 1
        if self._passes(entry):
            self._new_matching_entries += 1

        callback = self.on_counts_changed
        if callback is not None:
            try:
                callback(self._new_entries, self._new_matching_entries)
            except Exception:  # noqa: BLE001
                logger.exception("New-entry callback failed")

    def pause_notifications(self) -> None:
        self._paused = True

    def resume_notifications(self) -> None:
        self._paused = False

    # -- lifecycle ----------------------------------------------------

    def close(self) -> None:
        with self._state_lock:
            if self._closed:
                return
            self._closed = True
            listening = self._listening
            self._listening = False

        self._cancel.set()
        if listening:
            self._log.remove_append_listener(self._on_append)
        self._executor.shutdown(wait=False)
        self._channel.put(_STOP)
        self._consumer.join(timeout=1.0)

    def __enter__(self) -> "PagedEventSource[T]":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
