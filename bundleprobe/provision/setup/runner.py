# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Bundle setup runner: the last pipeline step.

Runs `<helper> setup --use-local-bundle <bundle>` so the helper installs
from the bundle under test instead of downloading a published release. The
helper's exit code is the verdict: zero passes, anything else is raised
with the exit code and output exactly as the helper produced them.
"""

import shutil
from pathlib import Path
from typing import Optional

from bundleprobe.config.schema import SetupConfig
from bundleprobe.logging.logger import get_logger
from bundleprobe.pipeline.errors import SetupInvocationError
from bundleprobe.pipeline.models import Archive, InstalledPackage, SetupResult, ToolchainEnv
from bundleprobe.pipeline.process import CommandRunner

logger = get_logger(__name__)


def setup_command(binary: Path | str, bundle: Path | str, config: SetupConfig) -> list[str]:
    return [str(binary), *config.subcommand, config.local_bundle_flag, str(bundle)]


def stage_assets(assets_dir: Path, work_dir: Path) -> Path:
    """
    Copy the test-asset directory into the work directory, unchanged.

    If the directory already sits at its staged location nothing is copied.

    Raises:
        SetupInvocationError: If the directory doesn't exist, contains the
            work directory, or can't be copied.
    """
    if not assets_dir.is_dir():
        raise SetupInvocationError(f"Test asset directory not found: {assets_dir}")

    target = work_dir / assets_dir.name
    source = assets_dir.resolve()
    if target.resolve() == source:
        logger.info("Test assets already in place", extra={"target": str(target)})
        return target
    if work_dir.resolve().is_relative_to(source):
        raise SetupInvocationError(
            f"Work directory {work_dir} lies inside the test asset directory {assets_dir}"
        )

    try:
        shutil.copytree(assets_dir, target, dirs_exist_ok=True)
    except (OSError, shutil.Error) as err:
        raise SetupInvocationError(f"Cannot copy test assets: {err}") from err

    logger.info("Test assets staged", extra={"source": str(assets_dir), "target": str(target)})
    return target



def run_bundle_setup(
    config: SetupConfig,
    bundle: Archive,
    package: InstalledPackage,
    toolchain: ToolchainEnv,
    runner: CommandRunner,
    work_dir: Path,
    assets_dir: Optional[Path] = None,
) -> SetupResult:
    """
    Invoke the helper's setup against the local bundle.

    Raises:
        SetupInvocationError: Missing bundle or assets, or a non-zero exit
            from the helper (exit code and output carried unchanged).
    """
    if assets_dir is not None:
        stage_assets(assets_dir, work_dir)

    if not bundle.path.is_file():
        raise SetupInvocationError(f"Bundle archive not found: {bundle.path}")

    argv = setup_command(package.install_path, bundle.path.resolve(), config)
    logger.info("Running bundle setup", extra={"argv": argv})

    result = runner.run(
        argv,
        env=toolchain.as_environ(),
        cwd=work_dir,
        timeout_seconds=config.timeout_seconds,
    )
    setup_result = SetupResult(
        passed=result.succeeded,
        exit_code=result.exit_code,
        stdout=result.stdout,
        stderr=result.stderr,
    )
    if not setup_result.passed:
        raise SetupInvocationError(
            f"{package.binary_name} setup exited with {result.exit_code}",
            output=result.output,
            exit_code=result.exit_code,
            setup_result=setup_result,
        )

    logger.info("Bundle setup passed", extra={"bundle": bundle.name})
    return setup_result
