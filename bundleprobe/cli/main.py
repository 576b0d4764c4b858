# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
CLI entrypoint for bundleprobe.

A single root command; every operation is a subcommand. No interactive
prompts, ever: this runs inside container builds and CI jobs.

The global options (--config, --log-level, --dry-run) are inherited by every
subcommand through argparse's parent parser mechanism.

Usage:
    bundleprobe <subcommand> [options]
    bundleprobe run --config bundleprobe.yaml
    bundleprobe run --helper-archive kani-verifier.crate \\
        --bundle-archive kani-0.39.0-x86_64-unknown-linux-gnu.tar.gz
    bundleprobe plan
    bundleprobe dockerfile --output Dockerfile
"""

import argparse
import sys

from bundleprobe.cli.commands import handle_dockerfile, handle_info, handle_plan, handle_run
from bundleprobe.cli.exit_codes import USER_ERROR


def _build_global_parser() -> argparse.ArgumentParser:
    """
    Build the parent parser with global options.

    add_help=False so the help flags don't collide between the parent and
    the subcommand parsers.
    """
    parent = argparse.ArgumentParser(add_help=False)
    parent.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to YAML configuration file.",
    )
    parent.add_argument(
        "--log-level",
        type=str,
        default=None,
        dest="log_level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Set the logging verbosity level (overrides the config).",
    )
    parent.add_argument(
        "--dry-run",
        action="store_true",
        default=False,
        dest="dry_run",
        help="Log the planned steps without executing them.",
    )
    return parent


def _add_input_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--helper-archive",
        type=str,
        default=None,
        dest="helper_archive",
        help="Source archive of the helper package (overrides package.archive).",
    )
    parser.add_argument(
        "--bundle-archive",
        type=str,
        default=None,
        dest="bundle_archive",
        help="Release bundle under test (overrides setup.bundle_archive).",
    )
    parser.add_argument(
        "--assets-dir",
        type=str,
        default=None,
        dest="assets_dir",
        help="Test asset directory copied into the work directory.",
    )
    parser.add_argument(
        "--work-dir",
        type=str,
        default=None,
        dest="work_dir",
        help="Scratch directory (overrides global.work_directory).",
    )


def _register_subcommands(
    subparsers: argparse._SubParsersAction,  # type: ignore[type-arg]
    parent: argparse.ArgumentParser,
) -> None:
    """Register all subcommands with their handler functions."""
    commands = [
        ("run", "Provision, install and run the bundle setup.", handle_run),
        ("plan", "Show the steps and commands a run would execute.", handle_plan),
        ("dockerfile", "Render the equivalent container recipe.", handle_dockerfile),
        ("info", "Display environment and config info.", handle_info),
    ]

    for name, help_text, handler in commands:
        parser = subparsers.add_parser(name, parents=[parent], help=help_text)
        parser.set_defaults(func=handler, work_dir=None)

    for name in ("run", "plan"):
        _add_input_options(subparsers.choices[name])

    subparsers.choices["run"].add_argument(
        "--report",
        type=str,
        default=None,
        help="Write a JSON run report to this path.",
    )
    subparsers.choices["dockerfile"].add_argument(
        "--output",
        type=str,
        default=None,
        help="Write the Dockerfile here instead of stdout.",
    )


def main() -> None:
    """
    Main CLI entrypoint, referenced from pyproject.toml's [project.scripts].

    If no subcommand is given, show help and exit with USER_ERROR.
    """
    parent = _build_global_parser()

    root_parser = argparse.ArgumentParser(
        prog="bundleprobe",
        description="Release-bundle smoke testing in a clean environment.",
        parents=[parent],
    )
    subparsers = root_parser.add_subparsers(dest="command")
    _register_subcommands(subparsers, parent)

    args = root_parser.parse_args()

    if not hasattr(args, "func") or args.func is None:
        root_parser.print_help()
        sys.exit(USER_ERROR)

    exit_code = args.func(args)
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
