from __future__ import annotations

import logging

import pytest

from netverdict.firewall.filters import FILTER_NOT_FOUND, FilterSource, FilterStateResolver, parse_document
from netverdict.system.commands import CommandResult
from tests.support.fakes import ScriptedRunner, ok


pytestmark = pytest.mark.unit

FILTERS_XML = """<?xml version="1.0" encoding="utf-8"?>
<wfpdiag>
  <filters>
    <item>
      <filterKey>{4b153735-1049-4480-aab4-d1b9bdc03710}</filterKey>
      <displayData>
        <name>Allow DNS</name>
        <description>Outbound port 53</description>
      </displayData>
      <filterId>68123</filterId>
    </item>
    <item>
      <filterKey>{broken}</filterKey>
      <filterId>70000</filterId>
    </item>
  </filters>
</wfpdiag>
"""

STATE_XML = """<?xml version="1.0" encoding="utf-8"?>
<wfpstate>
  <layers>
    <item>
      <layer><layerKey>FWPM_LAYER_ALE_AUTH_CONNECT_V4</layerKey></layer>
      <filters>
        <item>
          <filterKey>{8d0c6a2e-0000-4000-9000-000000000001}</filterKey>
          <displayData>
            <name>Third-party block</name>
            <description>Added by another provider</description>
          </displayData>
          <filterId>90001</filterId>
        </item>
      </filters>
    </item>
  </layers>
</wfpstate>
"""


def _resolver(filters: CommandResult | None = None, state: CommandResult | None = None) -> tuple[FilterStateResolver, ScriptedRunner]:
    runner = ScriptedRunner({"filters": filters or ok(FILTERS_XML), "state": state or ok(STATE_XML)})
    return FilterStateResolver(runner=runner, netsh_path="netsh"), runner  # type: ignore[arg-type]


def test_filter_found_by_id_in_filters_document() -> None:
    resolver, _ = _resolver()
    result = resolver.resolve(68123)
    assert result.name == "Allow DNS"
    assert result.description == "Outbound port 53"
    assert result.filter_id == 68123
    assert result.found_in is FilterSource.FILTERS
    assert not result.has_errors


def test_lookup_by_key_and_digit_string() -> None:
    resolver, _ = _resolver()
    assert resolver.resolve("{4b153735-1049-4480-aab4-d1b9bdc03710}").filter_id == 68123
    assert resolver.resolve("68123").name == "Allow DNS"


def test_state_document_is_the_fallback() -> None:
    """Filters added by other providers are only present in the WFP state dump."""
    resolver, _ = _resolver()
    by_id = resolver.find_by_id(90001)
    assert by_id.name == "Third-party block"
    assert by_id.found_in is FilterSource.WFP_STATE
    by_key = resolver.find_by_key("{8d0c6a2e-0000-4000-9000-000000000001}")
    assert by_key.filter_id == 90001


def test_unknown_filter_returns_sentinel() -> None:
    resolver, _ = _resolver()
    assert resolver.resolve(1) is FILTER_NOT_FOUND
    assert resolver.resolve("it's not a key") is FILTER_NOT_FOUND
    assert FILTER_NOT_FOUND.filter_id == 0
    assert FILTER_NOT_FOUND.name == "No filter found"
    assert FILTER_NOT_FOUND.has_errors


def test_malformed_item_is_a_logged_miss(caplog: pytest.LogCaptureFixture) -> None:
    resolver, _ = _resolver()
    with caplog.at_level(logging.ERROR, logger="netverdict.firewall.filters"):
        assert resolver.find_by_id(70000) is FILTER_NOT_FOUND
    assert any("Filter lookup" in record.getMessage() for record in caplog.records)


def test_documents_load_once_until_refreshed() -> None:
    """Both dumps are fetched lazily once; refresh forces a reload."""
    resolver, runner = _resolver()
    assert resolver.loaded_at is None
    resolver.resolve(68123)
    resolver.resolve(90001)
    assert len(runner.calls) == 2
    assert {args for _, args in runner.calls} == {
        ("wfp", "show", "filters", "file=-"),
        ("wfp", "show", "state", "file=-"),
    }
    assert resolver.loaded_at is not None

    assert resolver.refresh() is True
    assert len(runner.calls) == 4
    resolver.resolve(68123, refresh=True)
    assert len(runner.calls) == 6


def test_failed_filters_dump_yields_sentinel(caplog: pytest.LogCaptureFixture) -> None:
    """Without the filters document nothing is resolved, even from the state dump."""
    failure = CommandResult(exit_code=1, stdout="x" * 500, stderr="The service has not been started.\n")
    resolver, _ = _resolver(filters=failure)
    with caplog.at_level(logging.INFO, logger="netverdict.firewall.filters"):
        assert resolver.resolve(90001) is FILTER_NOT_FOUND
    assert resolver.refresh() is False
    messages = "\n".join(record.getMessage() for record in caplog.records)
    assert "netsh error: exitCode=1" in messages
    assert "x" * 300 + "..." in messages
    assert "The service has not been started." in messages


def test_unparsable_output_yields_sentinel() -> None:
    resolver, _ = _resolver(filters=ok("<wfpdiag><filters>"))
    assert resolver.resolve(68123) is FILTER_NOT_FOUND


def test_entities_are_not_expanded() -> None:
    document = parse_document(
        '<?xml version="1.0"?><!DOCTYPE r [<!ENTITY e "expanded">]><r><v>&e;</v></r>'
    )
    assert document is not None
    assert document.findtext("v") != "expanded"
