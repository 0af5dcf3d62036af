"""Toolchain invocation for pipeline stages.

Every stage talks to its compiler, linter or test runner through a
``ToolRunner``.  The contract is {exit code, combined log, optional
artifact path}; exit code 0 means success.
"""

from __future__ import annotations

import logging
import os
import subprocess
import threading
import time
from pathlib import Path
from typing import Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict

from forgematrix.models.results import PipelineStage

logger = logging.getLogger(__name__)

EXIT_NOT_FOUND = 127
EXIT_TIMEOUT = 124


class ToolchainCancelled(RuntimeError):
    """Raised when an invocation is attempted or interrupted after cancel()."""


class ToolInvocation(BaseModel):
    """One external tool call for one stage on one platform."""

    model_config = ConfigDict(frozen=True)

    stage: PipelineStage
    platform_id: str
    argv: tuple[str, ...]
    cwd: Path
    env: dict[str, str] = {}
    out_dir: Path | None = None
    dependency: str | None = None

    @property
    def command_str(self) -> str:
        return " ".join(self.argv)


class ToolResult(BaseModel):
    """What an external tool returned."""

    model_config = ConfigDict(frozen=True)

    exit_code: int
    log: str = ""
    artifact_path: Path | None = None
    duration_s: float = 0.0

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


@runtime_checkable
class ToolRunner(Protocol):
    """Protocol for toolchain backends.

    ``run`` blocks until the tool exits.  ``cancel`` aborts every in-flight
    invocation and makes later ``run`` calls raise ``ToolchainCancelled``.
    """

    def run(self, invocation: ToolInvocation) -> ToolResult:
        ...

    def cancel(self) -> None:
        ...


class SubprocessRunner:
    """Runs invocations as child processes.

    Parameters
    ----------
    timeout_seconds:
        Wall-clock limit per invocation; the process is killed on expiry.
    """

    def __init__(self, timeout_seconds: float = 3600) -> None:
        self._timeout = timeout_seconds
        self._lock = threading.Lock()
        self._live: set[subprocess.Popen[str]] = set()
        self._cancelled = threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def run(self, invocation: ToolInvocation) -> ToolResult:
        if self._cancelled.is_set():
            raise ToolchainCancelled(
                f"Run cancelled before {invocation.stage.value} on {invocation.platform_id}"
            )

        env = os.environ.copy()
        env.update(invocation.env)
        logger.debug(
            "[%s/%s] $ %s",
            invocation.platform_id,
            invocation.stage.value,
            invocation.command_str,
        )

        started = time.monotonic()
        try:
            proc = subprocess.Popen(
                list(invocation.argv),
                cwd=str(invocation.cwd),
                env=env,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
            )
        except FileNotFoundError as exc:
            return ToolResult(
                exit_code=EXIT_NOT_FOUND,
                log=f"Executable not found: {exc.filename or invocation.argv[0]}\n",
            )

        with self._lock:
            self._live.add(proc)
            # cancel() may have snapshotted _live before this process existed.
            if self._cancelled.is_set():
                proc.terminate()
        try:
            try:
                log, _ = proc.communicate(timeout=self._timeout)
                exit_code = proc.returncode
            except subprocess.TimeoutExpired:
                proc.kill()
                log, _ = proc.communicate()
                log = (log or "") + f"\nTimed out after {self._timeout}s\n"
                exit_code = EXIT_TIMEOUT
        finally:
            with self._lock:
                self._live.discard(proc)

        if self._cancelled.is_set():
            raise ToolchainCancelled(
                f"{invocation.stage.value} on {invocation.platform_id} was cancelled"
            )

        artifact = invocation.out_dir if invocation.out_dir and invocation.out_dir.exists() else None
        return ToolResult(
            exit_code=exit_code,
            log=log or "",
            artifact_path=artifact,
            duration_s=time.monotonic() - started,
        )

    def cancel(self) -> None:
        """Terminate every live child process and refuse new ones."""
        self._cancelled.set()
        with self._lock:
            live = list(self._live)
        for proc in live:
            if proc.poll() is None:
                logger.warning("Terminating pid %d", proc.pid)
                proc.terminate()
        for proc in live:
            try:
                proc.wait(timeout=5)
            except subprocess.TimeoutExpired:
                proc.kill()
