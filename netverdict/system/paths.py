"""Path normalization for comparing audited application paths with rule paths."""

from __future__ import annotations

from functools import lru_cache
import logging
import os
import platform
import re

import psutil

logger = logging.getLogger(__name__)

DEVICE_PREFIX = "\\device\\"
_ENV_TOKEN = re.compile(r"%([^%\\/]+)%")


def _lookup_env(name: str) -> str | None:
    value = os.environ.get(name)
    if value is not None:
        return value
    lowered = name.lower()
    for key, candidate in os.environ.items():
        if key.lower() == lowered:
            return candidate
    return None


def expand_env_tokens(path: str) -> str:
    """Expand ``%VAR%`` tokens, leaving unknown variables untouched."""

    def _replace(match: re.Match[str]) -> str:
        value = _lookup_env(match.group(1))
        return value if value is not None else match.group(0)

    return _ENV_TOKEN.sub(_replace, path)


@lru_cache(maxsize=1)
def dos_device_map() -> dict[str, str]:
    """Map lowercase NT device names (``\\device\\harddiskvolume3``) to drive letters."""
    if platform.system().lower() != "windows":
        return {}

    import ctypes

    mapping: dict[str, str] = {}
    buffer = ctypes.create_unicode_buffer(1024)
    try:
        partitions = psutil.disk_partitions(all=True)
    except OSError as exc:
        logger.warning(f"Unable to enumerate volumes for device path mapping: {exc}")
        return mapping

    for partition in partitions:
        drive = partition.mountpoint.rstrip("\\")
        if len(drive) != 2 or drive[1] != ":":
            continue
        if ctypes.windll.kernel32.QueryDosDeviceW(drive, buffer, len(buffer)):  # type: ignore[attr-defined]
            mapping[buffer.value.lower()] = drive
    return mapping


def resolve_path(path: str | None, *, device_map: dict[str, str] | None = None) -> str | None:
    """Return a canonical form of ``path`` suitable for equality checks.

    NT device paths from audit records are mapped back to drive letters,
    ``%VAR%`` tokens from rule definitions are expanded and, when the path
    exists locally, symlinks and junctions are followed. Anything that cannot
    be resolved is returned unchanged.
    """
    if path is None or not path.strip():
        return path

    candidate = expand_env_tokens(path.strip())
    lowered = candidate.lower()
    if lowered.startswith(DEVICE_PREFIX):
        devices = dos_device_map() if device_map is None else device_map
        for device, drive in devices.items():
            if lowered == device or lowered.startswith(device + "\\"):
                candidate = drive + candidate[len(device):]
                break

    if os.path.lexists(candidate):
        try:
            candidate = os.path.realpath(candidate)
        except (OSError, ValueError) as exc:
            logger.debug(f"Could not canonicalize {candidate!r}: {exc}")
    return candidate


def paths_equal(left: str | None, right: str | None) -> bool:
    """Case-insensitive comparison of two resolved paths."""
    resolved_left = resolve_path(left) or ""
    resolved_right = resolve_path(right) or ""
    return resolved_left.casefold() == resolved_right.casefold()
