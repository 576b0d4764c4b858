# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Error taxonomy for the provisioning pipeline.

Each error class belongs to exactly one step. None of them are recovered
locally: the orchestrator catches PipelineError, records which step failed
along with the underlying tool's output, and stops.

exit_code is the external tool's exit status when the failure came from a
process that exited non-zero. Otherwise it is the class default from the
CLI exit-code table.
"""

from typing import Optional

from bundleprobe.cli.exit_codes import RUNTIME_ERROR, VALIDATION_ERROR
from bundleprobe.pipeline.models import SetupResult

STEP_ENVIRONMENT = "environment"
STEP_TOOLCHAIN = "toolchain"
STEP_PACKAGE = "package"
STEP_SETUP = "setup"


class PipelineError(Exception):
    """Base for all step failures."""

    step: str = "pipeline"
    default_exit_code: int = RUNTIME_ERROR

    def __init__(self, message: str, output: str = "", exit_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.output = output
        self.exit_code = self.default_exit_code if exit_code is None else exit_code

    def __str__(self) -> str:
        return f"[{self.step}] {self.message}"


class EnvironmentSetupError(PipelineError):
    """Base image mismatch, package index failure, or a missing system package."""

    step = STEP_ENVIRONMENT


class ToolchainInstallError(PipelineError):
    """Untrusted transport, download failure, checksum mismatch, or installer failure."""

    step = STEP_TOOLCHAIN


class ExtractionError(PipelineError):
    """
    The helper archive could not be unpacked safely, or it did not contain
    exactly one directory matching the expected pattern.
    """

    step = STEP_PACKAGE
    default_exit_code = VALIDATION_ERROR


class PackageInstallError(PipelineError):
    """The toolchain's package manager failed to install the helper."""

    step = STEP_PACKAGE


class SetupInvocationError(PipelineError):
    """
    The helper's setup subcommand could not be run or exited non-zero.

    setup_result is set when the helper ran, so the report keeps its verdict.
    """

    step = STEP_SETUP

    def __init__(
        self,
        message: str,
        output: str = "",
        exit_code: Optional[int] = None,
        setup_result: Optional[SetupResult] = None,
    ) -> None:
        super().__init__(message, output=output, exit_code=exit_code)
        self.setup_result = setup_result
