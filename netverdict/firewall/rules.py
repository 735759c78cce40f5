"""Firewall rule model and rule-creation requests."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import ntpath

PROFILE_DOMAIN = 0x1
PROFILE_PRIVATE = 0x2
PROFILE_PUBLIC = 0x4
PROFILE_ALL = 0x7FFFFFFF

PROTOCOL_ANY = -1
# NET_FW_IP_PROTOCOL_ANY, as reported by the platform rule store.
PROTOCOL_ANY_PLATFORM = 256
ANY_PROTOCOLS = frozenset({PROTOCOL_ANY, PROTOCOL_ANY_PLATFORM})

_PROFILE_NAMES = (
    (PROFILE_DOMAIN, "Domain"),
    (PROFILE_PRIVATE, "Private"),
    (PROFILE_PUBLIC, "Public"),
)


class RuleAction(str, Enum):
    ALLOW = "Allow"
    BLOCK = "Block"


class RuleDirection(str, Enum):
    IN = "In"
    OUT = "Out"
    BOTH = "Both"


def profiles_text(profiles: int) -> str:
    """Readable profile list, e.g. ``"Domain, Private"`` or ``"All"``."""
    if profiles == PROFILE_ALL:
        return "All"
    return ", ".join(name for flag, name in _PROFILE_NAMES if profiles & flag)


@dataclass(frozen=True, slots=True)
class FirewallRule:
    """Read-only view of a platform firewall rule."""

    name: str
    description: str = ""
    enabled: bool = True
    action: RuleAction = RuleAction.ALLOW
    direction: RuleDirection = RuleDirection.OUT
    profiles: int = PROFILE_ALL
    protocol: int = PROTOCOL_ANY
    local_ports: str = ""
    remote_ports: str = ""
    local_addresses: str = ""
    remote_addresses: str = ""
    service_name: str = ""
    application_name: str = ""
    package_id: str = ""
    local_user_owner: str = ""
    grouping: str = ""

    @property
    def profiles_text(self) -> str:
        return profiles_text(self.profiles)

    @property
    def action_text(self) -> str:
        return self.action.value

    @property
    def direction_text(self) -> str:
        return self.direction.value

    @property
    def application_short_name(self) -> str:
        return ntpath.basename(self.application_name) if self.application_name else ""

    def describe(self) -> str:
        return f"{self.action_text} {self.direction_text} rule '{self.name}'"


@dataclass(frozen=True, slots=True)
class CustomRuleRequest:
    """Rule-creation request handed to the rule store for persistence.

    Created rules are always outbound and enabled, on all interface types.
    The rule name is suffixed with the scope it was created for.
    """

    name: str
    action: RuleAction
    profiles: int
    application_name: str | None = None
    package_id: str | None = None
    local_user_owner: str | None = None
    service_name: str | None = None
    protocol: int = PROTOCOL_ANY
    remote_addresses: str | None = None
    remote_ports: str | None = None
    local_ports: str | None = None
    direction: RuleDirection = RuleDirection.OUT
    enabled: bool = True
    interface_types: str = "All"

    @classmethod
    def create(
        cls,
        rule_name: str,
        *,
        action: RuleAction | str,
        profiles: int,
        path: str | None = None,
        package_id: str | None = None,
        local_user_owner: str | None = None,
        service: str | None = None,
        protocol: int = PROTOCOL_ANY,
        target: str | None = None,
        target_port: str | None = None,
        local_port: str | None = None,
    ) -> "CustomRuleRequest":
        clean_action = RuleAction(action.value if isinstance(action, RuleAction) else str(action).strip().capitalize())
        application = path if path and path.strip() else None
        name = rule_name
        if application is None:
            name += " [ANY_PATH] "
        if local_port:
            name += f" [L:{local_port}]"
        if target:
            name += f" [T:{target}]"
        if target_port:
            name += f" [R:{target_port}]"

        return cls(
            name=name,
            action=clean_action,
            profiles=profiles,
            application_name=application,
            package_id=package_id or None,
            local_user_owner=local_user_owner or None,
            service_name=service or None,
            protocol=protocol,
            remote_addresses=target or None,
            remote_ports=target_port or None,
            local_ports=local_port or None,
        )

    def as_rule(self) -> FirewallRule:
        """The rule this request would create, for matching before it is persisted."""
        return FirewallRule(
            name=self.name,
            enabled=self.enabled,
            action=self.action,
            direction=self.direction,
            profiles=self.profiles,
            protocol=self.protocol,
            local_ports=self.local_ports or "",
            remote_ports=self.remote_ports or "",
            remote_addresses=self.remote_addresses or "",
            service_name=self.service_name or "",
            application_name=self.application_name or "",
            package_id=self.package_id or "",
            local_user_owner=self.local_user_owner or "",
        )

    def netsh_command(self, netsh_path: str = "netsh") -> list[str]:
        """Equivalent ``netsh advfirewall`` invocation, or ``[]`` for package rules netsh cannot express."""
        if self.package_id:
            return []

        command = [
            netsh_path,
            "advfirewall",
            "firewall",
            "add",
            "rule",
            f"name={self.name}",
            f"dir={self.direction.value.lower()}",
            f"action={self.action.value.lower()}",
            f"enable={'yes' if self.enabled else 'no'}",
            f"profile={_netsh_profiles(self.profiles)}",
            f"interfacetype={self.interface_types.lower()}",
        ]
        if self.application_name:
            command.append(f"program={self.application_name}")
        if self.service_name:
            command.append(f"service={self.service_name}")
        if self.protocol not in ANY_PROTOCOLS:
            command.append(f"protocol={self.protocol}")
        if self.local_ports:
            command.append(f"localport={self.local_ports}")
        if self.remote_addresses:
            command.append(f"remoteip={self.remote_addresses}")
        if self.remote_ports:
            command.append(f"remoteport={self.remote_ports}")
        return command


def _netsh_profiles(profiles: int) -> str:
    if profiles == PROFILE_ALL:
        return "any"
    names = [name.lower() for flag, name in _PROFILE_NAMES if profiles & flag]
    return ",".join(names) or "any"
