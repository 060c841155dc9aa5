"""
Shell execution against the sandbox.

This is NOT a security boundary. Commands chosen by the model run verbatim
with the privileges of this process; isolation is whatever the surrounding
container or host provides.
"""
import logging
import os
import platform
import signal
import subprocess
import time
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from .text import clip_text

LOGGER = logging.getLogger(__name__)

SHELL_PREFIXES: Dict[str, List[str]] = {
    "bash": ["bash", "-c"],
    "sh": ["sh", "-c"],
    "powershell": ["powershell", "-NoProfile", "-NonInteractive", "-ExecutionPolicy", "Bypass", "-Command"],
    "pwsh": ["pwsh", "-NoProfile", "-NonInteractive", "-Command"],
}


@dataclass(frozen=True)
class CommandOutcome:
    stdout: str
    stderr: str
    exit_code: Optional[int]
    timed_out: bool = False
    elapsed_seconds: float = 0.0

    @property
    def launched(self) -> bool:
        return self.exit_code is not None or self.timed_out


def detect_shell(preferred: Optional[str] = None) -> Tuple[str, List[str]]:
    if preferred:
        name = preferred.strip().lower()
        if name not in SHELL_PREFIXES:
            raise ValueError(f"Unsupported shell: {preferred}")
        return name, list(SHELL_PREFIXES[name])
    if "windows" in platform.system().lower():
        return "powershell", list(SHELL_PREFIXES["powershell"])
    return "bash", list(SHELL_PREFIXES["bash"])


def _decode(payload) -> str:
    if payload is None:
        return ""
    if isinstance(payload, str):
        return payload
    return payload.decode("utf-8", errors="replace")


class CommandRunner:
    """Runs each command exactly once; no retries, no inspection of its content."""

    def __init__(
            self,
            shell_prefix: Optional[List[str]] = None,
            *,
            workdir: Optional[str] = None,
            timeout_seconds: Optional[float] = None,
            max_output_chars: int = 0,
            extra_env: Optional[Dict[str, str]] = None,
    ):
        self.shell_prefix = list(shell_prefix) if shell_prefix else detect_shell()[1]
        self.workdir = workdir
        self.timeout_seconds = timeout_seconds
        self.max_output_chars = max_output_chars
        self.extra_env = dict(extra_env or {})
        # On POSIX each command gets its own process group so a timeout can
        # take down subshells and background jobs along with the shell.
        self.use_process_group = hasattr(os, "killpg")

    def _env(self) -> Dict[str, str]:
        env = os.environ.copy()
        env.update(self.extra_env)
        return env

    def _kill(self, proc: subprocess.Popen) -> None:
        if self.use_process_group:
            try:
                os.killpg(proc.pid, signal.SIGKILL)
            except ProcessLookupError:
                # group already gone
                pass
        else:
            proc.kill()

    def execute(self, command_text: str) -> CommandOutcome:
        cwd = self.workdir or os.getcwd()
        LOGGER.debug("executing command in %s: %r", cwd, command_text)
        start = time.monotonic()
        try:
            proc = subprocess.Popen(
                self.shell_prefix + [command_text],
                cwd=cwd,
                env=self._env(),
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                start_new_session=self.use_process_group,
            )
        except OSError as e:
            LOGGER.warning("failed to launch command: %s", e)
            return CommandOutcome(
                stdout="",
                stderr=f"failed to launch {self.shell_prefix[0]!r}: {e}",
                exit_code=None,
                elapsed_seconds=round(time.monotonic() - start, 3),
            )

        try:
            stdout, stderr = proc.communicate(timeout=self.timeout_seconds)
        except subprocess.TimeoutExpired:
            self._kill(proc)
            stdout, stderr = proc.communicate()
            elapsed = time.monotonic() - start
            LOGGER.warning("command timed out after %ss", self.timeout_seconds)
            stderr_text = _decode(stderr)
            notice = f"command timed out after {self.timeout_seconds} seconds and was terminated"
            return CommandOutcome(
                stdout=clip_text(_decode(stdout), self.max_output_chars),
                stderr=clip_text(f"{stderr_text}\n{notice}" if stderr_text else notice, self.max_output_chars),
                exit_code=None,
                timed_out=True,
                elapsed_seconds=round(elapsed, 3),
            )
        except KeyboardInterrupt:
            self._kill(proc)
            proc.wait()
            raise

        elapsed = time.monotonic() - start
        LOGGER.debug("command exited with %s after %.3fs", proc.returncode, elapsed)
        return CommandOutcome(
            stdout=clip_text(_decode(stdout), self.max_output_chars),
            stderr=clip_text(_decode(stderr), self.max_output_chars),
            exit_code=proc.returncode,
            elapsed_seconds=round(elapsed, 3),
        )
