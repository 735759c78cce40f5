"""Entry predicates that can be combined into a paged source filter."""

from __future__ import annotations

import ntpath
from typing import Callable

from .classifier import is_firewall_event
from .models import RawLogEntry

EntryPredicate = Callable[[RawLogEntry], bool]

TCP_PROTOCOL = "6"


def tcp_only(entry: RawLogEntry) -> bool:
    return entry.get_field("Protocol").strip() == TCP_PROTOCOL


def text_filter(text: str) -> EntryPredicate:
    """Match remote address prefix, or file/service name substrings (case-insensitive).

    Host names are deliberately not consulted, as that would trigger DNS
    resolution for every scanned entry.
    """
    needle = text.strip()
    folded = needle.casefold()

    def _predicate(entry: RawLogEntry) -> bool:
        if not needle:
            return True
        if entry.get_field("DestAddress").startswith(needle):
            return True
        file_name = ntpath.basename(entry.get_field("Application"))
        if folded in file_name.casefold():
            return True
        return folded in entry.get_field("ServiceName").casefold()

    return _predicate


def combine(*predicates: EntryPredicate | None) -> EntryPredicate:
    """Logical AND of the given predicates, ignoring ``None``."""
    active = [predicate for predicate in predicates if predicate is not None]

    def _predicate(entry: RawLogEntry) -> bool:
        return all(predicate(entry) for predicate in active)

    return _predicate


def build_entry_filter(*, tcp: bool = False, text: str = "", firewall_only: bool = True) -> EntryPredicate:
    """Compose the usual events-view filter from its switches."""
    return combine(
        is_firewall_event if firewall_only else None,
        tcp_only if tcp else None,
        text_filter(text) if text.strip() else None,
    )
