# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Data types passed between pipeline steps.

Each step returns one immutable value that the next step takes as input:

    PreparedEnvironment -> ToolchainEnv -> InstalledPackage -> SetupResult

ToolchainEnv is what replaces "export PATH=~/.cargo/bin:$PATH". The search
path lives in the value and gets handed to each subprocess, so the process
environment of bundleprobe itself is never touched.
"""

import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Mapping, Optional


class PipelineState(str, Enum):
    """Pipeline states. SETUP_COMPLETE and FAILED are terminal."""

    INIT = "Init"
    ENVIRONMENT_READY = "EnvironmentReady"
    TOOLCHAIN_READY = "ToolchainReady"
    PACKAGE_INSTALLED = "PackageInstalled"
    SETUP_COMPLETE = "SetupComplete"
    FAILED = "Failed"

    @property
    def is_terminal(self) -> bool:
        return self in (PipelineState.SETUP_COMPLETE, PipelineState.FAILED)


@dataclass(frozen=True)
class Archive:
    """A compressed bundle on disk. directory_pattern is set for archives that get extracted."""

    path: Path
    directory_pattern: Optional[str] = None

    @property
    def name(self) -> str:
        return self.path.name


@dataclass(frozen=True)
class CommandResult:
    """Everything captured from one external process."""

    argv: tuple[str, ...]
    exit_code: int
    stdout: str
    stderr: str
    elapsed_seconds: float

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0

    @property
    def output(self) -> str:
        """stdout followed by stderr, for error reports."""
        if self.stdout and self.stderr:
            joiner = "" if self.stdout.endswith("\n") else "\n"
            return f"{self.stdout}{joiner}{self.stderr}"
        return self.stdout or self.stderr


@dataclass(frozen=True)
class PreparedEnvironment:
    """Output of the environment builder."""

    base_image: str
    detected_image: Optional[str]
    system_packages: tuple[str, ...]
    variables: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))


@dataclass(frozen=True)
class ToolchainEnv:
    """The installed toolchain, as explicit state for every later step."""

    home: Path
    rustup_home: Path
    toolchain: str
    search_path: tuple[str, ...]
    variables: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))

    @property
    def bin_dir(self) -> Path:
        return self.home / "bin"

    def executable(self, name: str) -> Path:
        return self.bin_dir / name

    def as_environ(self) -> dict[str, str]:
        """The environment mapping handed to subprocesses of later steps."""
        environ = dict(self.variables)
        environ["PATH"] = os.pathsep.join(self.search_path)
        environ["CARGO_HOME"] = str(self.home)
        environ["RUSTUP_HOME"] = str(self.rustup_home)
        return environ


@dataclass(frozen=True)
class InstalledPackage:
    """Result of installing the helper package."""

    binary_name: str
    install_path: Path
    source_dir: Path
    version: Optional[str] = None


@dataclass(frozen=True)
class SetupResult:
    """Outcome of the bundle setup invocation."""

    passed: bool
    exit_code: int
    stdout: str
    stderr: str

    @property
    def output(self) -> str:
        if self.stdout and self.stderr:
            joiner = "" if self.stdout.endswith("\n") else "\n"
            return f"{self.stdout}{joiner}{self.stderr}"
        return self.stdout or self.stderr


@dataclass(frozen=True)
class StepRecord:
    """One finished (or failed) step in the report."""

    step: str
    succeeded: bool
    elapsed_seconds: float
    detail: str = ""


@dataclass(frozen=True)
class ArchiveDigest:
    """SHA256 of one input archive, recorded under its role (helper or bundle)."""

    file: str
    sha256: str


@dataclass(frozen=True)
class PipelineReport:
    """Final outcome of a pipeline run."""

    state: PipelineState
    exit_code: int
    steps: tuple[StepRecord, ...] = ()
    failed_step: Optional[str] = None
    error: Optional[str] = None
    output: str = ""
    setup_result: Optional[SetupResult] = None
    archive_digests: Mapping[str, ArchiveDigest] = field(
        default_factory=lambda: MappingProxyType({})
    )

    @property
    def succeeded(self) -> bool:
        return self.state is PipelineState.SETUP_COMPLETE
