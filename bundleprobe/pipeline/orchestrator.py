# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
The provisioning pipeline: four steps in a fixed order, fail-fast.

    Init -> EnvironmentReady -> ToolchainReady -> PackageInstalled -> SetupComplete
      \\________________________________________________________________-> Failed

Each step's output value is the next step's input, so a step cannot run
without its predecessor having succeeded. The first PipelineError stops
the run: the failing step, its message and the underlying tool's output
go into the report, and the report's exit code becomes the run's exit code.
"""

import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Mapping, Optional, TypeVar

import httpx

from bundleprobe.cli.exit_codes import SUCCESS
from bundleprobe.config.schema import BundleProbeConfig
from bundleprobe.logging.logger import get_logger
from bundleprobe.pipeline.errors import (
    STEP_ENVIRONMENT,
    STEP_PACKAGE,
    STEP_SETUP,
    STEP_TOOLCHAIN,
    PipelineError,
    SetupInvocationError,
)
from bundleprobe.pipeline.models import (
    Archive,
    ArchiveDigest,
    PipelineReport,
    PipelineState,
    SetupResult,
    StepRecord,
)
from bundleprobe.pipeline.process import CommandRunner
from bundleprobe.provision.environment.builder import (
    availability_command,
    build_environment,
    update_command,
)
from bundleprobe.provision.environment.builder import install_command as apt_install_command
from bundleprobe.provision.package.installer import (
    extraction_directory,
    install_command,
    install_package,
)
from bundleprobe.provision.setup.runner import run_bundle_setup, setup_command
from bundleprobe.provision.toolchain.installer import (
    INSTALLER_FILENAME,
    install_toolchain,
    installer_command,
)
from bundleprobe.utils.hashing import compute_sha256
from bundleprobe.utils.paths import expand_path

logger = get_logger(__name__)

T = TypeVar("T")

_NEXT_STATE: dict[PipelineState, PipelineState] = {
    PipelineState.INIT: PipelineState.ENVIRONMENT_READY,
    PipelineState.ENVIRONMENT_READY: PipelineState.TOOLCHAIN_READY,
    PipelineState.TOOLCHAIN_READY: PipelineState.PACKAGE_INSTALLED,
    PipelineState.PACKAGE_INSTALLED: PipelineState.SETUP_COMPLETE,
}


@dataclass(frozen=True)
class PipelineInputs:
    """The caller-provided files: two archives, optional test assets, a work directory."""

    helper_archive: Archive
    bundle_archive: Archive
    work_dir: Path
    assets_dir: Optional[Path] = None


@dataclass(frozen=True)
class PlannedStep:
    """A step as it would run, for `plan` and --dry-run."""

    step: str
    description: str
    commands: tuple[str, ...]


def resolve_inputs(
    config: BundleProbeConfig,
    helper_archive: Optional[str] = None,
    bundle_archive: Optional[str] = None,
    assets_dir: Optional[str] = None,
    work_dir: Optional[str] = None,
) -> PipelineInputs:
    """Combine config values with command-line overrides. Overrides win."""
    assets = assets_dir if assets_dir is not None else config.setup.assets_directory
    return PipelineInputs(
        helper_archive=Archive(
            path=expand_path(helper_archive or config.package.archive),
            directory_pattern=config.package.directory_pattern,
        ),
        bundle_archive=Archive(path=expand_path(bundle_archive or config.setup.bundle_archive)),
        work_dir=expand_path(work_dir or config.global_config.work_directory),
        assets_dir=expand_path(assets) if assets is not None else None,
    )


def _digest_archives(inputs: PipelineInputs) -> dict[str, ArchiveDigest]:
    digests: dict[str, ArchiveDigest] = {}
    for role, archive in (("helper", inputs.helper_archive), ("bundle", inputs.bundle_archive)):
        if archive.path.is_file():
            digests[role] = ArchiveDigest(
                file=str(archive.path), sha256=compute_sha256(archive.path)
            )
    return digests


class ProvisioningPipeline:
    """
    Runs the four provisioning steps once.

    Usage:
        pipeline = ProvisioningPipeline(config, inputs)
        report = pipeline.run()
        sys.exit(report.exit_code)

    runner, http_client and base_environ exist so tests can replace the
    outside world; production code leaves them as None.
    """

    def __init__(
        self,
        config: BundleProbeConfig,
        inputs: PipelineInputs,
        runner: Optional[CommandRunner] = None,
        http_client: Optional[httpx.Client] = None,
        base_environ: Optional[Mapping[str, str]] = None,
    ) -> None:
        self._config = config
        self._inputs = inputs
        self._runner = runner or CommandRunner()
        self._http_client = http_client
        self._base_environ = base_environ
        self._state = PipelineState.INIT
        self._records: list[StepRecord] = []

    @property
    def state(self) -> PipelineState:
        return self._state

    def _advance(self, target: PipelineState) -> None:
        if target is not PipelineState.FAILED and _NEXT_STATE.get(self._state) is not target:
            raise RuntimeError(f"Illegal pipeline transition {self._state.value} -> {target.value}")
        logger.debug(
            "Pipeline state change",
            extra={"from_state": self._state.value, "to_state": target.value},
        )
        self._state = target

    def _step(self, name: str, action: Callable[[], T], target: PipelineState) -> T:
        logger.info("Step started", extra={"step": name})
        start = time.monotonic()
        try:
            value = action()
        except PipelineError as err:
            self._records.append(
                StepRecord(
                    step=name,
                    succeeded=False,
                    elapsed_seconds=time.monotonic() - start,
                    detail=err.message,
                )
            )
            raise
        elapsed = time.monotonic() - start
        self._records.append(StepRecord(step=name, succeeded=True, elapsed_seconds=elapsed))
        self._advance(target)
        logger.info(
            "Step finished",
            extra={"step": name, "state": target.value, "elapsed_seconds": round(elapsed, 3)},
        )
        return value

    def run(self) -> PipelineReport:
        """
        Execute every step in order and return the report.

        PipelineError never escapes: it becomes a Failed report. Anything
        else is a bug and propagates.
        """
        if self._state is not PipelineState.INIT:
            raise RuntimeError("A pipeline instance runs only once")

        cfg = self._config
        inputs = self._inputs
        work_dir = inputs.work_dir
        work_dir.mkdir(parents=True, exist_ok=True)
        digests = _digest_archives(inputs)
        setup_result: Optional[SetupResult] = None

        logger.info(
            "Pipeline started",
            extra={
                "helper_archive": str(inputs.helper_archive.path),
                "bundle_archive": str(inputs.bundle_archive.path),
                "work_dir": str(work_dir),
            },
        )

        try:
            environment = self._step(
                STEP_ENVIRONMENT,
                lambda: build_environment(cfg.environment, self._runner, self._base_environ),
                PipelineState.ENVIRONMENT_READY,
            )
            toolchain = self._step(
                STEP_TOOLCHAIN,
                lambda: install_toolchain(
                    cfg.toolchain, environment, self._runner, work_dir, self._http_client
                ),
                PipelineState.TOOLCHAIN_READY,
            )
            package = self._step(
                STEP_PACKAGE,
                lambda: install_package(
                    cfg.package, inputs.helper_archive, toolchain, self._runner, work_dir
                ),
                PipelineState.PACKAGE_INSTALLED,
            )
            setup_result = self._step(
                STEP_SETUP,
                lambda: run_bundle_setup(
                    cfg.setup,
                    inputs.bundle_archive,
                    package,
                    toolchain,
                    self._runner,
                    work_dir,
                    inputs.assets_dir,
                ),
                PipelineState.SETUP_COMPLETE,
            )
        except PipelineError as err:
            self._advance(PipelineState.FAILED)
            if isinstance(err, SetupInvocationError):
                setup_result = err.setup_result
            logger.error(
                "Pipeline failed",
                extra={
                    "step": err.step,
                    "error_type": type(err).__name__,
                    "error": err.message,
                    "exit_code": err.exit_code,
                    "output": err.output,
                },
            )
            return PipelineReport(
                state=PipelineState.FAILED,
                exit_code=err.exit_code,
                steps=tuple(self._records),
                failed_step=err.step,
                error=f"{type(err).__name__}: {err.message}",
                output=err.output,
                setup_result=setup_result,
                archive_digests=digests,
            )

        logger.info("Pipeline complete", extra={"state": self._state.value})
        return PipelineReport(
            state=PipelineState.SETUP_COMPLETE,
            exit_code=SUCCESS,
            steps=tuple(self._records),
            output=setup_result.output,
            setup_result=setup_result,
            archive_digests=digests,
        )

    def plan(self) -> list[PlannedStep]:
        """Describe every step and its commands without running anything."""
        cfg = self._config
        inputs = self._inputs
        cargo_bin = expand_path(cfg.toolchain.home) / "bin"
        packages = list(cfg.environment.system_packages)

        env_commands: list[list[str]] = []
        if cfg.environment.install_system_packages and packages:
            env_commands.append(update_command())
            env_commands.extend(availability_command(p) for p in packages)
            env_commands.append(apt_install_command(packages))

        source_dir = extraction_directory(inputs.work_dir, inputs.helper_archive) / (
            inputs.helper_archive.directory_pattern or cfg.package.directory_pattern
        )

        return [
            PlannedStep(
                step=STEP_ENVIRONMENT,
                description=f"Prepare {cfg.environment.base_image} with {len(packages)} system packages",
                commands=tuple(" ".join(c) for c in env_commands),
            ),
            PlannedStep(
                step=STEP_TOOLCHAIN,
                description=f"Fetch {cfg.toolchain.installer_url} and install {cfg.toolchain.default_toolchain}",
                commands=(
                    " ".join(
                        installer_command(inputs.work_dir / INSTALLER_FILENAME, cfg.toolchain)
                    ),
                    f"{cargo_bin / 'cargo'} --version",
                ),
            ),
            PlannedStep(
                step=STEP_PACKAGE,
                description=f"Extract {inputs.helper_archive.name} and install {cfg.package.binary_name}",
                commands=(" ".join(install_command(cargo_bin / "cargo", source_dir, cfg.package)),),
            ),
            PlannedStep(
                step=STEP_SETUP,
                description=f"Run setup against {inputs.bundle_archive.name}",
                commands=(
                    " ".join(
                        setup_command(
                            cargo_bin / cfg.package.binary_name,
                            inputs.bundle_archive.path,
                            cfg.setup,
                        )
                    ),
                ),
            ),
        ]
