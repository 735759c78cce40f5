"""Resolution of WFP filter ids and keys to readable filter names via netsh."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
import logging
import threading
from typing import NamedTuple

from lxml import etree

from ..config import Settings
from ..system.commands import CommandRunner

logger = logging.getLogger(__name__)

FILTERS_ARGS = ("wfp", "show", "filters", "file=-")
STATE_ARGS = ("wfp", "show", "state", "file=-")

# The filters dump nests items under the first child of the root element;
# the state dump keeps them under each layer.
_FILTERS_BY_ID = etree.XPath("*[1]/item[filterId=$id]")
_FILTERS_BY_KEY = etree.XPath("*[1]/item[filterKey=$key]")
_STATE_BY_ID = etree.XPath("//layers//filters/item[filterId=$id]")
_STATE_BY_KEY = etree.XPath("//layers//filters/item[filterKey=$key]")


class FilterSource(str, Enum):
    FILTERS = "filters"
    WFP_STATE = "wfp_state"


@dataclass(frozen=True, slots=True)
class FilterResult:
    filter_id: int
    name: str
    description: str = ""
    found_in: FilterSource | None = None
    has_errors: bool = False


FILTER_NOT_FOUND = FilterResult(filter_id=0, name="No filter found", has_errors=True)


class _Snapshot(NamedTuple):
    filters: etree._Element | None
    state: etree._Element | None
    loaded_at: datetime | None


def _xml_parser() -> etree.XMLParser:
    return etree.XMLParser(
        resolve_entities=False,
        no_network=True,
        load_dtd=False,
        huge_tree=True,
        encoding="utf-8",
    )


def parse_document(text: str) -> etree._Element | None:
    """Parse netsh XML output without resolving entities or touching the network."""
    if not text.strip():
        return None
    try:
        return etree.fromstring(text.encode("utf-8"), _xml_parser())
    except etree.XMLSyntaxError as exc:
        logger.error(f"Unable to parse netsh XML output: {exc}")
        return None


def _child_text(node: etree._Element, *path: str) -> str:
    current = node
    for tag in path:
        current = current.find(tag)
        if current is None:
            raise AttributeError(f"missing <{tag}> under <{node.tag}>")
    return current.text or ""


class FilterStateResolver:
    """Map filter ids or keys reported in audit events to filter display data.

    Both netsh dumps are loaded lazily on the first lookup and then reused
    until :meth:`refresh` is called.
    """

    def __init__(
        self,
        runner: CommandRunner | None = None,
        netsh_path: str | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._settings = settings or Settings()
        self._runner = runner or CommandRunner(self._settings.command_idle_timeout)
        self._netsh_path = netsh_path or self._settings.resolved_netsh_path()
        self._lock = threading.Lock()
        self._loaded = False
        self._snapshot = _Snapshot(None, None, None)

    @property
    def loaded_at(self) -> datetime | None:
        return self._snapshot.loaded_at

    @property
    def is_loaded(self) -> bool:
        return self._loaded

    def refresh(self) -> bool:
        """Reload both documents; True when both loaded."""
        with self._lock:
            return self._load()

    def _ensure_loaded(self) -> None:
        if self._loaded:
            return
        with self._lock:
            if not self._loaded:
                self._load()

    def _load(self) -> bool:
        with ThreadPoolExecutor(max_workers=2, thread_name_prefix="wfp-load") as pool:
            filters_future = pool.submit(self._load_document, FILTERS_ARGS)
            state_future = pool.submit(self._load_document, STATE_ARGS)
            filters, state = filters_future.result(), state_future.result()

        self._snapshot = _Snapshot(filters, state, datetime.now(timezone.utc))
        self._loaded = True
        logger.info(
            f"WFP documents loaded (filters={'yes' if filters is not None else 'no'}, "
            f"state={'yes' if state is not None else 'no'})"
        )
        return filters is not None and state is not None

    def _load_document(self, args: tuple[str, ...]) -> etree._Element | None:
        result = self._runner.run(self._netsh_path, args)
        if result.exit_code != 0:
            logger.info(
                f"netsh error: exitCode={result.exit_code}\n"
                f"output: {result.output_excerpt(self._settings.output_excerpt_chars)}\n"
                f"error: {result.stderr}"
            )
            return None
        return parse_document(result.stdout)

    # -- lookups ------------------------------------------------------

    def resolve(self, filter_id: int | str, refresh: bool = False) -> FilterResult:
        """Look up by ``filterId`` for ints and digit strings, by ``filterKey`` otherwise."""
        if isinstance(filter_id, int) or str(filter_id).strip().isdigit():
            return self.find_by_id(int(filter_id), refresh=refresh)
        return self.find_by_key(str(filter_id), refresh=refresh)

    def find_by_id(self, filter_id: int, refresh: bool = False) -> FilterResult:
        if refresh:
            self.refresh()
        else:
            self._ensure_loaded()
        snapshot = self._snapshot
        if snapshot.filters is None:
            return FILTER_NOT_FOUND

        found = self._lookup(snapshot.filters, _FILTERS_BY_ID, FilterSource.FILTERS, id=filter_id)
        if found is None and snapshot.state is not None:
            found = self._lookup(snapshot.state, _STATE_BY_ID, FilterSource.WFP_STATE, id=filter_id)
        return found or FILTER_NOT_FOUND

    def find_by_key(self, filter_key: str, refresh: bool = False) -> FilterResult:
        if refresh:
            self.refresh()
        else:
            self._ensure_loaded()
        snapshot = self._snapshot
        if snapshot.filters is None:
            return FILTER_NOT_FOUND

        found = self._lookup(snapshot.filters, _FILTERS_BY_KEY, FilterSource.FILTERS, key=filter_key)
        if found is None and snapshot.state is not None:
            found = self._lookup(snapshot.state, _STATE_BY_KEY, FilterSource.WFP_STATE, key=filter_key)
        return found or FILTER_NOT_FOUND

    @staticmethod
    def _lookup(
        document: etree._Element,
        query: etree.XPath,
        source: FilterSource,
        **variables: object,
    ) -> FilterResult | None:
        try:
            nodes = query(document, **variables)
            if not nodes:
                return None
            item = nodes[0]
            return FilterResult(
                filter_id=int(_child_text(item, "filterId")),
                name=_child_text(item, "displayData", "name"),
                description=_child_text(item, "displayData", "description"),
                found_in=source,
            )
        except (etree.XPathError, AttributeError, ValueError) as exc:
            logger.error(f"Filter lookup in {source.value} failed: {exc}")
            return None
