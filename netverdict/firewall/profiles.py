"""Active firewall profile detection through ``netsh advfirewall``."""

from __future__ import annotations

import logging
import re

from ..config import default_netsh_path
from ..system.commands import CommandRunner, default_runner
from .rules import PROFILE_ALL, PROFILE_DOMAIN, PROFILE_PRIVATE, PROFILE_PUBLIC

logger = logging.getLogger(__name__)

_PROFILE_FLAGS = {
    "domain": PROFILE_DOMAIN,
    "private": PROFILE_PRIVATE,
    "public": PROFILE_PUBLIC,
}

_HEADER = re.compile(r"^(\w+)\s+Profile Settings:\s*$", flags=re.IGNORECASE)


def parse_current_profile(raw_output: str) -> int:
    """OR together the profiles whose settings headers appear; 0 if none do."""
    profiles = 0
    for line in raw_output.splitlines():
        match = _HEADER.match(line.strip())
        if match:
            profiles |= _PROFILE_FLAGS.get(match.group(1).lower(), 0)
    return profiles


def get_current_profile(runner: CommandRunner | None = None, netsh_path: str | None = None) -> int:
    active_runner = runner or default_runner()
    result = active_runner.run(netsh_path or default_netsh_path(), ["advfirewall", "show", "currentprofile"])
    if not result.success:
        logger.warning(f"Unable to query current firewall profile (exit {result.exit_code}): {result.stderr.strip()}")
        return PROFILE_ALL

    profiles = parse_current_profile(result.stdout)
    if not profiles:
        logger.warning("No firewall profile header found in netsh output")
        return PROFILE_ALL
    return profiles
