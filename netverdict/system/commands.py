"""External command execution with output capture and an idle-based timeout."""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
import subprocess
import tempfile
import threading
from typing import Any, Callable, Iterable, Sequence

from ..config import DEFAULT_COMMAND_IDLE_TIMEOUT_SECONDS

logger = logging.getLogger(__name__)

NOT_COMPLETED = -1


@dataclass(slots=True)
class CommandResult:
    """Captured outcome of a single command invocation."""

    command: list[str] = field(default_factory=list)
    exit_code: int = NOT_COMPLETED
    stdout: str = ""
    stderr: str = ""
    line_count: int = 0
    timed_out: bool = False

    @property
    def success(self) -> bool:
        return self.exit_code == 0

    @property
    def command_line(self) -> str:
        return " ".join(self.command)

    def output_excerpt(self, limit: int) -> str:
        """Return at most ``limit`` characters of stdout, marking truncation."""
        if len(self.stdout) <= limit:
            return self.stdout
        return self.stdout[:limit] + "..."


def _pump(stream: Any, sink: list[str], activity: threading.Event) -> None:
    """Drain ``stream`` line by line, flagging activity for the wait loop."""
    if stream is None:
        return
    try:
        for line in iter(stream.readline, ""):
            sink.append(line)
            activity.set()
    except (OSError, ValueError) as exc:
        # The pipe is torn down when a hung process gets killed.
        logger.debug(f"Output pipe closed while reading: {exc}")
    finally:
        close = getattr(stream, "close", None)
        if close is not None:
            try:
                close()
            except OSError:
                pass


def _platform_popen_kwargs() -> dict[str, Any]:
    flags = getattr(subprocess, "CREATE_NO_WINDOW", 0)
    return {"creationflags": flags} if flags else {}


class CommandRunner:
    """Run executables, capturing stdout and stderr.

    The wait loop re-arms every time new output arrives, so a slow command
    that keeps printing is never killed. A command that stays silent for a
    whole ``idle_timeout`` window while still running is force-killed and a
    descriptive line is appended to its captured error stream.
    """

    def __init__(
        self,
        idle_timeout: float = DEFAULT_COMMAND_IDLE_TIMEOUT_SECONDS,
        *,
        popen: Callable[..., Any] = subprocess.Popen,
    ) -> None:
        self.idle_timeout = idle_timeout
        self._popen = popen

    def run(
        self,
        executable: str,
        args: Iterable[str] = (),
        working_dir: str | None = None,
    ) -> CommandResult:
        command = [executable, *args]
        command_line = " ".join(command)
        stdout_lines: list[str] = []
        stderr_lines: list[str] = []
        activity = threading.Event()

        try:
            process = self._popen(
                command,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                cwd=working_dir or tempfile.gettempdir(),
                text=True,
                encoding="utf-8",
                errors="replace",
                **_platform_popen_kwargs(),
            )
        except (OSError, ValueError) as exc:
            logger.error(f"Unable to launch command: {command_line}: {exc}")
            return CommandResult(command=command, stderr=f"{exc}\n")

        readers = [
            threading.Thread(
                target=_pump,
                args=(process.stdout, stdout_lines, activity),
                daemon=True,
                name="command-stdout",
            ),
            threading.Thread(
                target=_pump,
                args=(process.stderr, stderr_lines, activity),
                daemon=True,
                name="command-stderr",
            ),
        ]
        for reader in readers:
            reader.start()

        exit_code = NOT_COMPLETED
        timed_out = False
        read_since_last = True
        while read_since_last:
            activity.clear()
            try:
                exit_code = process.wait(timeout=self.idle_timeout)
                break
            except subprocess.TimeoutExpired:
                read_since_last = activity.is_set()
        else:
            timed_out = True
            self._kill(process)

        for reader in readers:
            reader.join(timeout=self.idle_timeout)

        stderr_text = "".join(list(stderr_lines))
        if timed_out:
            message = (
                f"Process didn't respond after {self.idle_timeout:g}s, killing it now. "
                f"Command: {command_line}"
            )
            logger.error(message)
            stderr_text += message + "\n"

        captured = list(stdout_lines)
        return CommandResult(
            command=command,
            exit_code=exit_code,
            stdout="".join(captured),
            stderr=stderr_text,
            line_count=len(captured),
            timed_out=timed_out,
        )

    def _kill(self, process: Any) -> None:
        try:
            process.kill()
        except OSError as exc:
            logger.warning(f"Failed to kill process {getattr(process, 'pid', '?')}: {exc}")
            return
        try:
            process.wait(timeout=self.idle_timeout)
        except subprocess.TimeoutExpired:
            logger.warning(f"Process {getattr(process, 'pid', '?')} still running after kill")


_DEFAULT_RUNNER: CommandRunner | None = None


def default_runner() -> CommandRunner:
    """Return the shared runner used when callers do not inject one."""
    global _DEFAULT_RUNNER
    if _DEFAULT_RUNNER is None:
        _DEFAULT_RUNNER = CommandRunner()
    return _DEFAULT_RUNNER


def run_command(executable: str, args: Sequence[str] = (), working_dir: str | None = None) -> CommandResult:
    """Convenience wrapper around :meth:`CommandRunner.run` on the shared runner."""
    return default_runner().run(executable, args, working_dir)
