# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Runtime bootstrap for bundleprobe.

The one-time setup before any pipeline step runs:
  1. Validate the interpreter version
  2. Apply the configured log level and log file to every logger
  3. Make sure the work directory exists

Every command that touches the pipeline goes through this first.
"""

from pathlib import Path

from bundleprobe.config.schema import GlobalConfig
from bundleprobe.logging.logger import configure_logging, get_logger
from bundleprobe.runtime.environment import check_minimum_python, get_system_info
from bundleprobe.utils.paths import ensure_directory, expand_path


def bootstrap(config: GlobalConfig) -> Path:
    """
    Run the bootstrap sequence and return the (created) work directory.

    Args:
        config: The validated global configuration.
    """
    check_minimum_python()

    log_file = None
    if config.log_file is not None:
        log_file = expand_path(config.log_file)

    configure_logging(config.log_level, log_file)
    logger = get_logger("bundleprobe.runtime", log_level=config.log_level, log_file=log_file)

    work_dir = ensure_directory(expand_path(config.work_directory))

    system_info = get_system_info()
    logger.info(
        "bundleprobe bootstrap complete",
        extra={
            "project": config.project_name,
            "work_directory": str(work_dir),
            "python_version": system_info.python_version,
            "platform": system_info.platform,
            "architecture": system_info.architecture,
        },
    )
    return work_dir
