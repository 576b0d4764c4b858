# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Environment builder: the first pipeline step.

Brings the OS environment into the state the rest of the pipeline expects:
  1. Detect the OS from /etc/os-release and compare it to the base image
  2. Refresh the package index
  3. Check every system package is available, before installing any
  4. Install them, non-interactively

Any failure raises EnvironmentSetupError. There is no retry: a package
missing from the index will still be missing a second later.
"""

import os
from typing import Mapping, Optional

from bundleprobe.config.schema import EnvironmentConfig
from bundleprobe.logging.logger import get_logger
from bundleprobe.pipeline.errors import EnvironmentSetupError
from bundleprobe.pipeline.models import PreparedEnvironment
from bundleprobe.pipeline.process import CommandRunner
from bundleprobe.utils.filesystem import safe_read
from bundleprobe.utils.paths import expand_path

logger = get_logger(__name__)

NON_INTERACTIVE_VARIABLES: dict[str, str] = {
    "DEBIAN_FRONTEND": "noninteractive",
    "DEBCONF_NONINTERACTIVE_SEEN": "true",
}


def parse_os_release(content: str) -> dict[str, str]:
    """Parse os-release KEY=value lines, stripping optional quotes."""
    fields: dict[str, str] = {}
    for line in content.splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, _, value = line.partition("=")
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
            value = value[1:-1]
        fields[key.strip()] = value
    return fields


def detect_base_image(os_release_path: str) -> Optional[str]:
    """
    Return the running OS as '<ID>:<VERSION_ID>', e.g. 'ubuntu:18.04'.

    None when the file is missing or lacks an ID.
    """
    try:
        content = safe_read(expand_path(os_release_path))
    except OSError:
        return None

    fields = parse_os_release(content)
    os_id = fields.get("ID")
    if not os_id:
        return None
    version = fields.get("VERSION_ID")
    return f"{os_id}:{version}" if version else os_id


def build_variables(
    config: EnvironmentConfig,
    base_environ: Optional[Mapping[str, str]] = None,
) -> dict[str, str]:
    """The caller's environment with the non-interactive flags layered on top."""
    variables = dict(os.environ if base_environ is None else base_environ)
    if config.non_interactive:
        variables.update(NON_INTERACTIVE_VARIABLES)
    return variables


def update_command() -> list[str]:
    return ["apt-get", "update"]


def availability_command(package: str) -> list[str]:
    return ["apt-cache", "show", package]


def install_command(packages: list[str]) -> list[str]:
    return ["apt-get", "install", "-y", "--no-install-recommends", *packages]


def _check_base_image(config: EnvironmentConfig, detected: Optional[str]) -> None:
    if detected == config.base_image:
        logger.info("Base image matches", extra={"base_image": config.base_image})
        return

    if config.enforce_base_image:
        raise EnvironmentSetupError(
            f"Expected base image {config.base_image}, detected {detected or 'unknown'}"
        )
    logger.warning(
        "Base image differs from expected",
        extra={"expected": config.base_image, "detected": detected},
    )


def build_environment(
    config: EnvironmentConfig,
    runner: CommandRunner,
    base_environ: Optional[Mapping[str, str]] = None,
) -> PreparedEnvironment:
    """
    Prepare the OS environment and return its description.

    Args:
        config: Environment section of the config.
        runner: Runs the package manager commands.
        base_environ: Environment to start from; defaults to os.environ.

    Raises:
        EnvironmentSetupError: On base image mismatch (when enforced), a
            failed index refresh, unavailable packages, or a failed install.
    """
    variables = build_variables(config, base_environ)
    detected = detect_base_image(config.os_release_path)
    _check_base_image(config, detected)

    packages = list(config.system_packages)

    if not config.install_system_packages:
        logger.info(
            "System package installation disabled, assuming a provisioned image",
            extra={"packages": packages},
        )
    elif packages:
        timeout = config.timeout_seconds

        result = runner.run(update_command(), env=variables, timeout_seconds=timeout)
        if not result.succeeded:
            raise EnvironmentSetupError(
                "Package index refresh failed",
                output=result.output,
                exit_code=result.exit_code,
            )

        missing: list[str] = []
        details: list[str] = []
        for package in packages:
            probe = runner.run(
                availability_command(package), env=variables, timeout_seconds=timeout
            )
            if not probe.succeeded or not probe.stdout.strip():
                missing.append(package)
                details.append(probe.output)

        if missing:
            logger.error("System packages unavailable", extra={"missing": missing})
            raise EnvironmentSetupError(
                f"System packages unavailable in the package index: {', '.join(missing)}",
                output="\n".join(d for d in details if d),
            )

        result = runner.run(install_command(packages), env=variables, timeout_seconds=timeout)
        if not result.succeeded:
            raise EnvironmentSetupError(
                "System package installation failed",
                output=result.output,
                exit_code=result.exit_code,
            )

        logger.info("System packages installed", extra={"packages": packages})

    return PreparedEnvironment(
        base_image=config.base_image,
        detected_image=detected,
        system_packages=tuple(packages),
        variables=variables,
    )
