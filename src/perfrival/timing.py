"""Timing capture for command benchmarks.

Measures wall-clock time and the CPU time of child processes for one
command execution.  Used by :class:`perfrival.engine.CommandEngine`.
"""

from __future__ import annotations

import logging
import os
import resource
import signal
import subprocess
import sys
import time
from dataclasses import dataclass
from pathlib import Path

log = logging.getLogger("perfrival")


@dataclass
class TimedResult:
    """Result of a timed subprocess execution."""

    wall_time_s: float
    user_time_s: float
    sys_time_s: float
    peak_rss_mb: float
    exit_code: int
    stdout: str
    stderr: str
    timed_out: bool = False

    @property
    def cpu_time_s(self) -> float:
        """Total CPU time (user + system)."""
        return self.user_time_s + self.sys_time_s

    @property
    def ok(self) -> bool:
        return not self.timed_out and self.exit_code == 0


def run_timed(
    command: str | list[str],
    *,
    cwd: str | Path | None = None,
    env: dict[str, str] | None = None,
    timeout: float = 600,
) -> TimedResult:
    """Execute a command and capture timing and resource usage.

    Args:
        command: Shell command string or argument list.
        cwd: Working directory for the subprocess.
        env: Extra environment variables layered over ``os.environ``.
        timeout: Maximum execution time in seconds.  The whole process
            group is killed when it expires.
    """
    run_env = dict(os.environ)
    if env:
        run_env.update(env)

    pre_rusage = resource.getrusage(resource.RUSAGE_CHILDREN)
    wall_start = time.perf_counter()

    timed_out = False
    proc = subprocess.Popen(
        command,
        shell=isinstance(command, str),
        cwd=str(cwd) if cwd else None,
        env=run_env,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
        start_new_session=True,
    )
    try:
        stdout, stderr = proc.communicate(timeout=timeout)
        exit_code = proc.returncode
    except subprocess.TimeoutExpired:
        timed_out = True
        _kill_process_group(proc.pid)
        try:
            stdout, stderr = proc.communicate(timeout=5)
        except subprocess.TimeoutExpired:
            proc.kill()
            stdout, stderr = proc.communicate()
        exit_code = -1

    wall_time = time.perf_counter() - wall_start
    post_rusage = resource.getrusage(resource.RUSAGE_CHILDREN)

    # ru_maxrss is KB on Linux, bytes on macOS.
    divisor = 1024 * 1024 if sys.platform == "darwin" else 1024

    return TimedResult(
        wall_time_s=wall_time,
        user_time_s=max(post_rusage.ru_utime - pre_rusage.ru_utime, 0.0),
        sys_time_s=max(post_rusage.ru_stime - pre_rusage.ru_stime, 0.0),
        peak_rss_mb=post_rusage.ru_maxrss / divisor,
        exit_code=exit_code,
        stdout=stdout,
        stderr=stderr,
        timed_out=timed_out,
    )


def _kill_process_group(pid: int) -> None:
    """Attempt to kill the entire process group on timeout."""
    try:
        os.killpg(os.getpgid(pid), signal.SIGKILL)
    except (ProcessLookupError, PermissionError, OSError) as exc:
        log.debug("Could not kill process group of %d: %s", pid, exc)
