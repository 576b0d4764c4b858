# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Subcommand handlers for the bundleprobe CLI.

Each function here corresponds to one subcommand and returns its exit code.
Diagnostics go through the structured logger; only `plan` and `dockerfile`
write plain text to stdout, because their output is the product.
"""

import argparse
import logging
import sys
from pathlib import Path

from bundleprobe.cli.exit_codes import CONFIG_ERROR, RUNTIME_ERROR, SUCCESS
from bundleprobe.config.exceptions import ConfigError
from bundleprobe.config.loader import default_config, load_config
from bundleprobe.config.schema import BundleProbeConfig
from bundleprobe.logging.logger import get_logger
from bundleprobe.runtime.bootstrap import bootstrap

# Signal-terminated children report -N; shells report 128 + N.
_SIGNAL_EXIT_BASE = 128


def _apply_overrides(config: BundleProbeConfig, args: argparse.Namespace) -> BundleProbeConfig:
    """Fold --log-level and --work-dir into the (frozen) config by copying it."""
    updates: dict[str, str] = {}
    if getattr(args, "log_level", None):
        updates["log_level"] = args.log_level
    if getattr(args, "work_dir", None):
        updates["work_directory"] = args.work_dir
    if not updates:
        return config
    global_config = config.global_config.model_copy(update=updates)
    return config.model_copy(update={"global_config": global_config})


def _load_config(
    args: argparse.Namespace,
    command_name: str,
) -> tuple[int, BundleProbeConfig | None, logging.Logger]:
    """
    Load the config (or the default one) and apply command-line overrides.

    Returns a tuple of (exit_code, config, logger). If exit_code is not
    SUCCESS, the caller should return it immediately.
    """
    logger = get_logger(f"bundleprobe.cli.{command_name}", log_level=args.log_level or "INFO")

    if args.config is None:
        logger.debug("No config provided, using defaults", extra={"command": command_name})
        config = default_config()
    else:
        try:
            config = load_config(Path(args.config))
        except ConfigError as err:
            logger.error(
                "Configuration error",
                extra={"command": command_name, "error": str(err)},
            )
            return CONFIG_ERROR, None, logger

    return SUCCESS, _apply_overrides(config, args), logger


def _normalize_exit_code(code: int) -> int:
    if code < 0:
        return _SIGNAL_EXIT_BASE - code
    return code


def handle_run(args: argparse.Namespace) -> int:
    """Run the provisioning pipeline and exit with its result."""
    exit_code, config, logger = _load_config(args, "run")
    if exit_code != SUCCESS or config is None:
        return exit_code

    try:
        from bundleprobe.pipeline.orchestrator import ProvisioningPipeline, resolve_inputs

        bootstrap(config.global_config)
        inputs = resolve_inputs(
            config,
            helper_archive=args.helper_archive,
            bundle_archive=args.bundle_archive,
            assets_dir=args.assets_dir,
        )
        pipeline = ProvisioningPipeline(config, inputs)

        if args.dry_run:
            for planned in pipeline.plan():
                logger.info(
                    "Dry run, planned step",
                    extra={
                        "step": planned.step,
                        "description": planned.description,
                        "commands": list(planned.commands),
                    },
                )
            return SUCCESS

        report = pipeline.run()

        if args.report is not None:
            from bundleprobe.pipeline.report import write_report

            write_report(report, Path(args.report))

        logger.info(
            "Run finished",
            extra={
                "state": report.state.value,
                "exit_code": report.exit_code,
                "failed_step": report.failed_step,
            },
        )
        return _normalize_exit_code(report.exit_code)

    except Exception as err:
        logger.error("Run failed", extra={"error": str(err)}, exc_info=True)
        return RUNTIME_ERROR


def handle_plan(args: argparse.Namespace) -> int:
    """Print the ordered steps and their commands without running anything."""
    exit_code, config, logger = _load_config(args, "plan")
    if exit_code != SUCCESS or config is None:
        return exit_code

    from bundleprobe.pipeline.orchestrator import ProvisioningPipeline, resolve_inputs

    inputs = resolve_inputs(
        config,
        helper_archive=args.helper_archive,
        bundle_archive=args.bundle_archive,
        assets_dir=args.assets_dir,
    )
    steps = ProvisioningPipeline(config, inputs).plan()

    lines: list[str] = []
    for index, planned in enumerate(steps, start=1):
        lines.append(f"{index}. [{planned.step}] {planned.description}")
        lines.extend(f"     $ {command}" for command in planned.commands)
    sys.stdout.write("\n".join(lines) + "\n")
    return SUCCESS


def handle_dockerfile(args: argparse.Namespace) -> int:
    """Render the equivalent container recipe."""
    exit_code, config, logger = _load_config(args, "dockerfile")
    if exit_code != SUCCESS or config is None:
        return exit_code

    from bundleprobe.provision.dockerfile.renderer import render_dockerfile

    content = render_dockerfile(config)
    if args.output is None:
        sys.stdout.write(content)
        return SUCCESS

    try:
        from bundleprobe.utils.filesystem import atomic_write

        atomic_write(Path(args.output), content)
    except OSError as err:
        logger.error("Cannot write Dockerfile", extra={"path": args.output, "error": str(err)})
        return RUNTIME_ERROR

    logger.info("Dockerfile written", extra={"path": args.output})
    return SUCCESS


def handle_info(args: argparse.Namespace) -> int:
    """Display environment and configuration information."""
    exit_code, config, logger = _load_config(args, "info")
    if exit_code != SUCCESS or config is None:
        return exit_code

    from bundleprobe import __version__
    from bundleprobe.provision.environment.builder import detect_base_image
    from bundleprobe.runtime.environment import get_system_info, locate_host_tools

    system_info = get_system_info()

    logger.info(
        "System information",
        extra={
            "bundleprobe_version": __version__,
            "python_version": system_info.python_version,
            "platform": system_info.platform,
            "architecture": system_info.architecture,
            "hostname": system_info.hostname,
            "detected_base_image": detect_base_image(config.environment.os_release_path),
            "expected_base_image": config.environment.base_image,
            "host_tools": locate_host_tools(),
            "config": args.config,
        },
    )
    return SUCCESS
