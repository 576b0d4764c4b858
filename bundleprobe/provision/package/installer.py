# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Package installer: the third pipeline step.

Extracts the helper archive into a fresh directory, resolves the single
versioned source directory inside it, and installs it with
`cargo install --path`. The binary lands in the toolchain's bin directory.
"""

from pathlib import Path

from bundleprobe.config.schema import PackageConfig
from bundleprobe.logging.logger import get_logger
from bundleprobe.pipeline.errors import PackageInstallError
from bundleprobe.pipeline.models import Archive, InstalledPackage, ToolchainEnv
from bundleprobe.pipeline.process import CommandRunner
from bundleprobe.provision.package.extraction import extract_archive, resolve_single_match
from bundleprobe.utils.filesystem import reset_directory

logger = get_logger(__name__)

EXTRACT_DIRNAME = "extract"


def install_command(cargo: Path | str, source_dir: Path | str, config: PackageConfig) -> list[str]:
    return [str(cargo), "install", "--path", str(source_dir), *config.install_args]


def extraction_directory(work_dir: Path, archive: Archive) -> Path:
    return work_dir / EXTRACT_DIRNAME / archive.path.name


def install_package(
    config: PackageConfig,
    archive: Archive,
    toolchain: ToolchainEnv,
    runner: CommandRunner,
    work_dir: Path,
) -> InstalledPackage:
    """
    Install the helper package from its source archive.

    Raises:
        ExtractionError: Unsafe/unreadable archive, or not exactly one
            directory matching the pattern. Nothing is installed in that case.
        PackageInstallError: `cargo install` failed.
    """
    pattern = archive.directory_pattern or config.directory_pattern
    destination = reset_directory(extraction_directory(work_dir, archive))

    extract_archive(archive.path, destination)
    resolved = resolve_single_match(destination, pattern)

    logger.info(
        "Installing package",
        extra={"source_dir": str(resolved.path), "version": resolved.version},
    )
    result = runner.run(
        install_command(toolchain.executable("cargo"), resolved.path, config),
        env=toolchain.as_environ(),
        cwd=work_dir,
        timeout_seconds=config.timeout_seconds,
    )
    if not result.succeeded:
        raise PackageInstallError(
            f"cargo install failed for {resolved.path.name}",
            output=result.output,
            exit_code=result.exit_code,
        )

    package = InstalledPackage(
        binary_name=config.binary_name,
        install_path=toolchain.executable(config.binary_name),
        source_dir=resolved.path,
        version=resolved.version,
    )
    logger.info(
        "Package installed",
        extra={"binary": package.binary_name, "install_path": str(package.install_path)},
    )
    return package
