"""Explanations of why an audited connection was allowed or blocked."""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Iterable

from ..events.models import ConnectionEvent
from ..firewall.filters import FilterResult, FilterStateResolver
from ..firewall.matcher import find_matching_rules
from ..firewall.rules import FirewallRule, RuleAction, RuleDirection

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Explanation:
    event: ConnectionEvent
    rules: list[FirewallRule] = field(default_factory=list)
    filter_result: FilterResult | None = None
    summary: str = ""


def _action_agrees(rule: FirewallRule, event: ConnectionEvent) -> bool:
    if event.kind.is_allow:
        return rule.action is RuleAction.ALLOW
    if event.kind.is_block:
        return rule.action is RuleAction.BLOCK
    return False


def _direction_agrees(rule: FirewallRule, event: ConnectionEvent) -> bool:
    if rule.direction is RuleDirection.BOTH or not event.direction:
        return True
    return rule.direction.value.casefold() == event.direction.casefold()


def _subject(event: ConnectionEvent) -> str:
    subject = event.file_name or event.service_name or "Unknown application"
    if event.remote_address:
        target = event.remote_address + (f":{event.remote_port}" if event.remote_port else "")
        return f"{subject} -> {target}"
    return subject


def explain_event(
    event: ConnectionEvent,
    rules: Iterable[FirewallRule],
    resolver: FilterStateResolver | None,
    current_profile: int,
) -> Explanation:
    """Find the rules, or failing that the WFP filter, that account for ``event``."""
    candidates = [rule for rule in rules if _action_agrees(rule, event) and _direction_agrees(rule, event)]
    matched = find_matching_rules(candidates, event, current_profile)
    verdict = event.label or event.kind.value

    if matched:
        names = ", ".join(f"'{rule.name}'" for rule in matched)
        noun = "rule" if len(matched) == 1 else "rules"
        summary = f"{_subject(event)} ({verdict}) matched {noun} {names}."
        return Explanation(event=event, rules=matched, summary=summary)

    if resolver is not None and event.filter_id:
        result = resolver.resolve(event.filter_id)
        if not result.has_errors:
            summary = f"{_subject(event)} ({verdict}) was decided by WFP filter {result.filter_id} '{result.name}'."
        else:
            summary = f"{_subject(event)} ({verdict}): no rule matched and filter {event.filter_id} was not found."
        return Explanation(event=event, filter_result=result, summary=summary)

    logger.debug(f"No explanation for event {event.ordinal} ({event.instance_id})")
    return Explanation(event=event, summary=f"{_subject(event)} ({verdict}): no matching rule found.")
