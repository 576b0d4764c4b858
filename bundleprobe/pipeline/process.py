# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
External process execution.

Every command the pipeline launches (apt-get, the toolchain installer,
cargo, the helper binary) goes through CommandRunner.run. It runs the
process to completion, captures everything, and returns a CommandResult.
Deciding what a non-zero exit means is the caller's job.

Never shell=True: commands are argv lists built from config values.
Tests swap in a scripted runner with the same `run` signature.
"""

import subprocess
import time
from pathlib import Path
from typing import Mapping, Optional, Sequence

from bundleprobe.logging.logger import get_logger
from bundleprobe.pipeline.models import CommandResult

logger = get_logger(__name__)

# Conventional shell statuses for "command not found" and "timed out".
EXIT_NOT_FOUND = 127
EXIT_TIMEOUT = 124


class CommandRunner:
    """Runs argv lists with subprocess and captures their output."""

    def run(
        self,
        argv: Sequence[str],
        env: Optional[Mapping[str, str]] = None,
        cwd: Optional[Path] = None,
        timeout_seconds: Optional[int] = None,
    ) -> CommandResult:
        """
        Run one command to completion.

        A missing executable and a timeout are reported as results (127 and
        124) rather than raised, so every step handles failure the same way.
        """
        command = tuple(str(part) for part in argv)
        start = time.monotonic()
        logger.debug(
            "Running command",
            extra={"argv": list(command), "cwd": str(cwd) if cwd else None},
        )

        try:
            completed = subprocess.run(
                list(command),
                capture_output=True,
                text=True,
                timeout=timeout_seconds,
                cwd=str(cwd) if cwd else None,
                env=dict(env) if env is not None else None,
                stdin=subprocess.DEVNULL,
            )
        except FileNotFoundError:
            elapsed = time.monotonic() - start
            logger.error("Executable not found", extra={"executable": command[0]})
            return CommandResult(
                argv=command,
                exit_code=EXIT_NOT_FOUND,
                stdout="",
                stderr=f"{command[0]}: executable not found",
                elapsed_seconds=elapsed,
            )
        except subprocess.TimeoutExpired as err:
            elapsed = time.monotonic() - start
            logger.warning(
                "Command timed out",
                extra={"argv": list(command), "timeout_seconds": timeout_seconds},
            )
            return CommandResult(
                argv=command,
                exit_code=EXIT_TIMEOUT,
                stdout=_as_text(err.stdout),
                stderr=_as_text(err.stderr) + f"\ntimed out after {timeout_seconds}s",
                elapsed_seconds=elapsed,
            )

        elapsed = time.monotonic() - start
        logger.debug(
            "Command finished",
            extra={
                "argv": list(command),
                "exit_code": completed.returncode,
                "elapsed_seconds": round(elapsed, 3),
            },
        )
        return CommandResult(
            argv=command,
            exit_code=completed.returncode,
            stdout=completed.stdout,
            stderr=completed.stderr,
            elapsed_seconds=elapsed,
        )


def _as_text(data: bytes | str | None) -> str:
    # TimeoutExpired carries bytes even when text=True was requested.
    if data is None:
        return ""
    if isinstance(data, bytes):
        return data.decode("utf-8", errors="replace")
    return data
