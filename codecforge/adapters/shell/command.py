"""
Command runner — the SINGLE PLACE where build subprocesses are started.

Every configure, make, cmake, meson, git, file, pkg-config, readelf and
compiler invocation goes through ``CommandRunner.run``. The runner:

- starts each command in its own process group so a timeout kills the
  whole tree (make spawns compilers, compilers spawn assemblers)
- appends raw output to the target's log file instead of returning it
  unframed to the caller
- applies the isolated environment built by ``isolated_env``
"""

from __future__ import annotations

import logging
import os
import shlex
import signal
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path

from codecforge.core.models.platform import PlatformDescriptor

logger = logging.getLogger(__name__)

# How much output a result keeps in memory (the log keeps everything)
_TAIL_CHARS = 4000


@dataclass
class CommandResult:
    """Outcome of one subprocess invocation."""

    cmd: list[str]
    returncode: int | None
    output: str = ""
    elapsed_ms: int = 0
    timed_out: bool = False
    error: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0 and not self.timed_out and not self.error

    @property
    def command_line(self) -> str:
        return shlex.join(self.cmd)

    def describe(self) -> str:
        """One-line failure summary for receipts and diagnostics."""
        if self.error:
            return f"{self.command_line} could not start: {self.error}"
        if self.timed_out:
            return f"{self.command_line} timed out after {self.elapsed_ms / 1000:.1f}s"
        return f"{self.command_line} exited with code {self.returncode}"


def isolated_env(
    platform: PlatformDescriptor,
    prefix: Path,
    base: dict[str, str] | None = None,
) -> dict[str, str]:
    """Environment for a build inside the isolated prefix.

    ``PKG_CONFIG_LIBDIR`` replaces pkg-config's default search path with
    the prefix's directory, and ``PKG_CONFIG_PATH`` is removed so nothing
    can append system directories back.
    """
    env = dict(os.environ if base is None else base)
    env.pop("PKG_CONFIG_PATH", None)
    env.pop("PKG_CONFIG_SYSROOT_DIR", None)
    env["PKG_CONFIG_LIBDIR"] = str(platform.search_dir(prefix))

    env["CC"] = platform.c_compiler
    env["CXX"] = platform.cxx_compiler
    env["AR"] = platform.archiver
    env["CFLAGS"] = " ".join([*platform.cflags, f"-I{prefix / 'include'}"])
    env["CXXFLAGS"] = env["CFLAGS"]
    env["LDFLAGS"] = " ".join([*platform.ldflags, f"-L{prefix / 'lib'}"])
    env["PATH"] = os.pathsep.join([str(prefix / "bin"), env.get("PATH", "")])
    return env


class CommandRunner:
    """Run commands with a fixed environment, timeout and log file.

    Args:
        env: Full environment for every command (default: inherit).
        log_path: File that receives raw output, appended per call.
        timeout: Default per-command timeout in seconds.
        deadline: ``time.monotonic()`` value after which no command may
            run. One build target shares one deadline across all its
            commands, so configure, build and install together stay
            within the target's time limit.
    """

    def __init__(
        self,
        env: dict[str, str] | None = None,
        log_path: Path | None = None,
        timeout: float = 3600.0,
        deadline: float | None = None,
    ):
        self.env = env
        self.log_path = log_path
        self.timeout = timeout
        self.deadline = deadline

    @classmethod
    def for_target(
        cls,
        env: dict[str, str],
        log_path: Path,
        time_limit: float,
    ) -> CommandRunner:
        """Runner whose commands share one ``time_limit`` from now."""
        return cls(env=env, log_path=log_path, timeout=time_limit, deadline=time.monotonic() + time_limit)

    def remaining(self) -> float | None:
        """Seconds left before the deadline (None without one)."""
        if self.deadline is None:
            return None
        return self.deadline - time.monotonic()

    def run(
        self,
        cmd: list[str],
        *,
        cwd: Path | None = None,
        timeout: float | None = None,
        env_overrides: dict[str, str] | None = None,
        keep_output: bool = False,
    ) -> CommandResult:
        """Run ``cmd`` to completion, or kill its process group on timeout.

        Never raises: a missing executable, a non-zero exit and a timeout
        all come back as a failed CommandResult. The result keeps only
        the tail of the output unless ``keep_output`` is set; callers that
        parse the output (``ar t``, ``readelf``) must set it.
        """
        timeout = timeout or self.timeout
        remaining = self.remaining()
        if remaining is not None:
            if remaining <= 0:
                result = CommandResult(
                    cmd=cmd, returncode=None, timed_out=True, error="the target's time limit is used up",
                )
                self._log(result, cwd)
                return result
            timeout = min(timeout, remaining)
        env = dict(self.env) if self.env is not None else dict(os.environ)
        if env_overrides:
            env.update(env_overrides)

        logger.debug("Executing: %s (cwd=%s)", shlex.join(cmd), cwd)
        start = time.monotonic()

        try:
            proc = subprocess.Popen(
                cmd,
                cwd=cwd,
                env=env,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                stdin=subprocess.DEVNULL,
                text=True,
                errors="replace",
                start_new_session=True,
            )
        except OSError as e:
            result = CommandResult(cmd=cmd, returncode=None, error=str(e))
            self._log(result, cwd)
            return result

        timed_out = False
        try:
            output, _ = proc.communicate(timeout=timeout)
        except subprocess.TimeoutExpired:
            timed_out = True
            _kill_group(proc)
            output, _ = proc.communicate()

        result = CommandResult(
            cmd=cmd,
            returncode=proc.returncode,
            output=output or "",
            elapsed_ms=int((time.monotonic() - start) * 1000),
            timed_out=timed_out,
        )
        self._log(result, cwd)
        if not result.ok:
            logger.debug("Command failed: %s", result.describe())
        if not keep_output:
            # Full output lives in the log file
            result.output = result.output[-_TAIL_CHARS:]
        return result

    def _log(self, result: CommandResult, cwd: Path | None) -> None:
        if self.log_path is None:
            return
        self.log_path.parent.mkdir(parents=True, exist_ok=True)
        with self.log_path.open("a", encoding="utf-8") as f:
            f.write(f"$ {result.command_line}")
            if cwd is not None:
                f.write(f"    # cwd={cwd}")
            f.write("\n")
            if result.output:
                f.write(result.output)
                if not result.output.endswith("\n"):
                    f.write("\n")
            if not result.ok:
                f.write(f"# {result.describe()}\n")


def _kill_group(proc: subprocess.Popen) -> None:
    """SIGKILL the whole process group started for ``proc``."""
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except ProcessLookupError:
        pass
    except OSError as e:
        logger.warning("Could not kill process group %d: %s", proc.pid, e)
        proc.kill()
