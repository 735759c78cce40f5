"""System helpers: external command execution and path normalization."""

from .commands import NOT_COMPLETED, CommandResult, CommandRunner, default_runner, run_command
from .paths import dos_device_map, expand_env_tokens, paths_equal, resolve_path

__all__ = [
    "NOT_COMPLETED",
    "CommandResult",
    "CommandRunner",
    "default_runner",
    "run_command",
    "dos_device_map",
    "expand_env_tokens",
    "paths_equal",
    "resolve_path",
]
