"""Runtime settings and logging setup for NetVerdict."""

from __future__ import annotations

from dataclasses import dataclass
import logging
import os
import platform

DEFAULT_PAGE_SIZE = 20
DEFAULT_COMMAND_IDLE_TIMEOUT_SECONDS = 10.0
DEFAULT_OUTPUT_EXCERPT_CHARS = 300
DEFAULT_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

_ENV_PREFIX = "NETVERDICT_"


def default_netsh_path() -> str:
    """Return the netsh executable location for the active OS."""
    if platform.system().lower() == "windows":
        system_root = os.environ.get("SystemRoot", r"C:\Windows")
        return os.path.join(system_root, "System32", "netsh.exe")
    return "netsh"


@dataclass(frozen=True, slots=True)
class Settings:
    """Caller-supplied knobs; nothing here is persisted."""

    page_size: int = DEFAULT_PAGE_SIZE
    command_idle_timeout: float = DEFAULT_COMMAND_IDLE_TIMEOUT_SECONDS
    output_excerpt_chars: int = DEFAULT_OUTPUT_EXCERPT_CHARS
    netsh_path: str = ""
    log_level: str = "INFO"

    def resolved_netsh_path(self) -> str:
        return self.netsh_path or default_netsh_path()

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> "Settings":
        """Build settings from ``NETVERDICT_*`` variables, ignoring malformed values."""
        env = os.environ if environ is None else environ
        defaults = cls()

        def _read(name: str, cast, fallback):  # type: ignore[no-untyped-def]
            raw = env.get(_ENV_PREFIX + name)
            if raw is None or not str(raw).strip():
                return fallback
            try:
                return cast(str(raw).strip())
            except ValueError:
                logging.getLogger(__name__).warning(f"Ignoring invalid {_ENV_PREFIX}{name}={raw!r}")
                return fallback

        return cls(
            page_size=max(1, _read("PAGE_SIZE", int, defaults.page_size)),
            command_idle_timeout=max(0.1, _read("COMMAND_TIMEOUT", float, defaults.command_idle_timeout)),
            output_excerpt_chars=max(0, _read("OUTPUT_EXCERPT", int, defaults.output_excerpt_chars)),
            netsh_path=_read("NETSH_PATH", str, defaults.netsh_path),
            log_level=_read("LOG_LEVEL", str.upper, defaults.log_level),
        )


def configure_logging(level: str | int = "INFO", *, fmt: str = DEFAULT_LOG_FORMAT) -> logging.Logger:
    """Attach a stream handler to the package logger when the host has none."""
    logger = logging.getLogger("netverdict")
    logger.setLevel(level)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(fmt))
        logger.addHandler(handler)
    return logger
