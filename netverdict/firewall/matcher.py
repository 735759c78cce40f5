"""Evaluation of firewall rules against observed connection attempts."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any, Iterable, Iterator

from ..system.paths import resolve_path
from .rules import ANY_PROTOCOLS, PROFILE_ALL, FirewallRule

logger = logging.getLogger(__name__)

WILDCARD = "*"
HOST_MASK_SUFFIX = "/255.255.255.255"
RANGE_MARKER = "-"


@dataclass(frozen=True, slots=True)
class ConnectionAttempt:
    """The attributes of a connection that rules are evaluated against.

    :class:`netverdict.events.ConnectionEvent` exposes the same attribute
    names and can be passed wherever an attempt is expected.
    """

    path: str = ""
    service_name: str = ""
    protocol: int = -1
    local_port: str = ""
    remote_address: str = ""
    remote_port: str = ""
    package_id: str = ""
    owner: str = ""


def check_rule_addresses(rule_addresses: str | None, checked_address: str) -> bool:
    """Exact-token address test; keywords such as ``LocalSubnet`` are not expanded."""
    if not rule_addresses or rule_addresses == WILDCARD:
        return True
    if "/" not in checked_address:
        checked_address += HOST_MASK_SUFFIX
    return any(token == checked_address for token in rule_addresses.split(","))


def _parse_port(value: str) -> int | None:
    try:
        return int(value)
    except ValueError:
        return None


def _within_own_range(checked_port: str) -> bool:
    """Range test of the checked value against its own endpoints.

    The value has to carry a range marker and parse as a single port number
    at the same time, so ranged values like ``"135-139"`` never pass and are
    matched by token equality alone. Rule-side ranges are not expanded.
    """
    if RANGE_MARKER not in checked_port:
        return False
    checked_value = _parse_port(checked_port)
    if checked_value is None:
        return False
    low, _, high = checked_port.partition(RANGE_MARKER)
    low_value, high_value = _parse_port(low), _parse_port(high)
    if low_value is None or high_value is None:
        return False
    return low_value >= checked_value >= high_value


def check_rule_ports(rule_ports: str | None, checked_port: str) -> bool:
    """Exact-token port test; keywords such as ``RPC`` are not expanded."""
    if not rule_ports or rule_ports == WILDCARD:
        return True
    for token in rule_ports.split(","):
        if token == checked_port:
            return True
        if _within_own_range(checked_port):
            return True
    return False


def _service_matches(rule_service: str, observed_service: str) -> bool:
    if not rule_service:
        return True
    if rule_service == WILDCARD and observed_service:
        return True
    return rule_service.casefold() == (observed_service or "").casefold()


def _path_matches(rule_path: str, observed_path: str) -> tuple[bool, str, str]:
    resolved_rule = resolve_path(rule_path) or ""
    resolved_observed = resolve_path(observed_path) or ""
    if not resolved_rule:
        return True, resolved_rule, resolved_observed
    return resolved_rule.casefold() == resolved_observed.casefold(), resolved_rule, resolved_observed


def _profile_matches(rule_profiles: int, current_profile: int) -> bool:
    return (rule_profiles & current_profile) != 0 or (rule_profiles & PROFILE_ALL) == PROFILE_ALL


def _checks(rule: FirewallRule, connection: Any, current_profile: int, strict: bool) -> Iterator[tuple[str, object, object, bool]]:
    """Yield ``(name, rule value, observed value, passed)`` in evaluation order."""
    yield "enabled", rule.enabled, True, bool(rule.enabled)
    yield "profile", rule.profiles, current_profile, _profile_matches(rule.profiles, current_profile)

    passed, rule_path, observed_path = _path_matches(rule.application_name, getattr(connection, "path", ""))
    yield "path", rule_path, observed_path, passed

    remote_address = getattr(connection, "remote_address", "") or ("" if strict else WILDCARD)
    remote_port = getattr(connection, "remote_port", "") or ("" if strict else WILDCARD)
    yield "remote address", rule.remote_addresses, remote_address, check_rule_addresses(rule.remote_addresses, remote_address)
    yield "remote port", rule.remote_ports, remote_port, check_rule_ports(rule.remote_ports, remote_port)
    if strict:
        local_port = getattr(connection, "local_port", "")
        yield "local port", rule.local_ports, local_port, check_rule_ports(rule.local_ports, local_port)

    service = getattr(connection, "service_name", "")
    yield "service", rule.service_name, service, _service_matches(rule.service_name, service)

    if strict:
        protocol = getattr(connection, "protocol", -1)
        yield "protocol", rule.protocol, protocol, rule.protocol in ANY_PROTOCOLS or rule.protocol == protocol

    package_id = getattr(connection, "package_id", "")
    yield "package", rule.package_id, package_id, not rule.package_id or rule.package_id == package_id

    if strict:
        owner = getattr(connection, "owner", "")
        yield "owner", rule.local_user_owner, owner, not rule.local_user_owner or rule.local_user_owner == owner


def _evaluate(
    rule: FirewallRule,
    connection: Any,
    current_profile: int,
    *,
    strict: bool,
    log: logging.Logger | None,
) -> bool:
    sink = log or logger
    trace: list[tuple[str, object, object, bool]] = []
    for name, rule_value, observed, passed in _checks(rule, connection, current_profile, strict):
        if not passed:
            return False
        trace.append((name, rule_value, observed, passed))

    if sink.isEnabledFor(logging.DEBUG):
        sink.debug(f"Found enabled {rule.describe()}")
        for name, rule_value, observed, passed in trace:
            sink.debug(f"\t{name}: {rule_value} <--> {observed} : {passed}")
    return True


def matches(
    rule: FirewallRule,
    connection: Any,
    current_profile: int,
    *,
    log: logging.Logger | None = None,
) -> bool:
    """Full rule test including protocol, local port and owner."""
    return _evaluate(rule, connection, current_profile, strict=True, log=log)


def matches_event(
    rule: FirewallRule,
    connection: Any,
    current_profile: int,
    *,
    log: logging.Logger | None = None,
) -> bool:
    """Relaxed rule test for audited traffic.

    Audit records do not reliably carry protocol, local port or owner, so
    those dimensions are skipped; missing remote endpoints count as ``*``.
    """
    return _evaluate(rule, connection, current_profile, strict=False, log=log)


def find_matching_rules(
    rules: Iterable[FirewallRule],
    connection: Any,
    current_profile: int,
    *,
    strict: bool = False,
) -> list[FirewallRule]:
    """Return every rule that matches, skipping rules that fail to evaluate."""
    matched: list[FirewallRule] = []
    check = matches if strict else matches_event
    for rule in rules:
        try:
            if check(rule, connection, current_profile):
                matched.append(rule)
        except (AttributeError, TypeError, ValueError) as exc:
            logger.warning(f"Skipping rule {getattr(rule, 'name', '?')!r}: {exc}")
    return matched
