"""Firewall package: rule model, rule matching, profiles and WFP filter lookup."""

from .filters import FILTER_NOT_FOUND, FilterResult, FilterSource, FilterStateResolver
from .matcher import (
    ConnectionAttempt,
    check_rule_addresses,
    check_rule_ports,
    find_matching_rules,
    matches,
    matches_event,
)
from .profiles import get_current_profile, parse_current_profile
from .rules import (
    PROFILE_ALL,
    PROFILE_DOMAIN,
    PROFILE_PRIVATE,
    PROFILE_PUBLIC,
    PROTOCOL_ANY,
    CustomRuleRequest,
    FirewallRule,
    RuleAction,
    RuleDirection,
    profiles_text,
)

__all__ = [
    "FILTER_NOT_FOUND",
    "FilterResult",
    "FilterSource",
    "FilterStateResolver",
    "ConnectionAttempt",
    "check_rule_addresses",
    "check_rule_ports",
    "find_matching_rules",
    "matches",
    "matches_event",
    "get_current_profile",
    "parse_current_profile",
    "PROFILE_ALL",
    "PROFILE_DOMAIN",
    "PROFILE_PRIVATE",
    "PROFILE_PUBLIC",
    "PROTOCOL_ANY",
    "CustomRuleRequest",
    "FirewallRule",
    "RuleAction",
    "RuleDirection",
    "profiles_text",
]
