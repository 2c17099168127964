"""Subprocess runner interface for ffmpeg/ffprobe invocations."""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from typing import Protocol

from briefcast.errors import MediaToolError

logger = logging.getLogger(__name__)

TIMEOUT_EXIT_CODE = 124
MISSING_BINARY_EXIT_CODE = 127


@dataclass(slots=True)
class ProcessResult:
    """Exit status and captured output of one subprocess run."""

    exit_code: int
    stdout: str
    stderr: str
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.exit_code == 0 and not self.timed_out


class ProcessRunner(Protocol):
    """Runs an argument list (never through a shell) with a wall-clock timeout."""

    def run(self, args: list[str], *, timeout_seconds: float) -> ProcessResult:
        """Run ``args`` and return its result."""


class SubprocessRunner:
    """``subprocess`` based runner; kills the child when the timeout expires."""

    def run(self, args: list[str], *, timeout_seconds: float) -> ProcessResult:
        try:
            process = subprocess.Popen(  # noqa: S603
                args,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                stdin=subprocess.DEVNULL,
                text=True,
            )
        except FileNotFoundError:
            return ProcessResult(
                exit_code=MISSING_BINARY_EXIT_CODE,
                stdout="",
                stderr=f"{args[0]}: command not found",
            )

        try:
            stdout, stderr = process.communicate(timeout=timeout_seconds)
        except subprocess.TimeoutExpired:
            _terminate_process(process)
            stdout, stderr = process.communicate()
            logger.warning("%s timed out after %.0fs", args[0], timeout_seconds)
            return ProcessResult(
                exit_code=TIMEOUT_EXIT_CODE,
                stdout=stdout or "",
                stderr=stderr or "",
                timed_out=True,
            )
        return ProcessResult(exit_code=process.returncode, stdout=stdout, stderr=stderr)


def run_checked(
    runner: ProcessRunner,
    args: list[str],
    *,
    timeout_seconds: float,
    label: str,
) -> ProcessResult:
    """Run and raise :class:`MediaToolError` unless the process succeeded."""

    result = runner.run(args, timeout_seconds=timeout_seconds)
    if result.timed_out:
        raise MediaToolError(
            f"{label} timed out after {timeout_seconds:.0f}s",
            exit_code=result.exit_code,
            stderr=result.stderr,
        )
    if result.exit_code != 0:
        logger.debug("%s stderr: %s", label, result.stderr[-2000:])
        raise MediaToolError(
            f"{label} failed with exit code {result.exit_code}",
            exit_code=result.exit_code,
            stderr=result.stderr,
        )
    return result


def _terminate_process(process: subprocess.Popen[str]) -> None:
    try:
        process.terminate()
    except OSError:
        return
    try:
        process.wait(timeout=2)
    except subprocess.TimeoutExpired:
        try:
            process.kill()
        except OSError:
            return
        process.wait(timeout=2)
