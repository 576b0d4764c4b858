# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Render the pipeline as a container recipe.

Produces a Dockerfile that performs the same four steps as `bundleprobe run`
inside a fresh image, built from the same config. The command lines come
from the same builders the pipeline uses, so the two never drift apart.

Inside the recipe the shell resolves the versioned source directory with a
glob; the container build has no other way to do it.
"""

import shlex
from pathlib import Path, PurePosixPath

from bundleprobe.config.schema import VERSION_PLACEHOLDER, BundleProbeConfig
from bundleprobe.provision.environment.builder import (
    NON_INTERACTIVE_VARIABLES,
    install_command as apt_install_command,
    update_command,
)
from bundleprobe.provision.package.installer import EXTRACT_DIRNAME, install_command
from bundleprobe.provision.setup.runner import setup_command
from bundleprobe.provision.toolchain.installer import INSTALLER_FILENAME, installer_command

CONTAINER_HOME = "/root"


def _container_path(raw: str) -> str:
    if raw == "~" or raw.startswith("~/"):
        return CONTAINER_HOME + raw[1:]
    return raw


def _join(argv: list[str]) -> str:
    return " ".join(shlex.quote(part) for part in argv)


def _run(*commands: str) -> str:
    return "RUN " + " && \\\n    ".join(commands)


def render_dockerfile(config: BundleProbeConfig) -> str:
    """Return the Dockerfile text for the given config."""
    env_cfg = config.environment
    tc_cfg = config.toolchain
    pkg_cfg = config.package
    setup_cfg = config.setup

    work_dir = PurePosixPath(_container_path(config.global_config.work_directory))
    cargo_home = PurePosixPath(_container_path(tc_cfg.home))
    rustup_home = PurePosixPath(_container_path(tc_cfg.rustup_home))
    script = work_dir / INSTALLER_FILENAME
    helper_name = Path(pkg_cfg.archive).name
    bundle_name = Path(setup_cfg.bundle_archive).name

    lines: list[str] = [f"FROM {env_cfg.base_image}", ""]

    if env_cfg.non_interactive:
        pairs = [f"{key}={value}" for key, value in NON_INTERACTIVE_VARIABLES.items()]
        lines.append("ENV " + " \\\n    ".join(pairs))
        lines.append("")

    if env_cfg.install_system_packages and env_cfg.system_packages:
        lines.append(
            _run(
                _join(update_command()),
                _join(apt_install_command(list(env_cfg.system_packages))),
                "rm -rf /var/lib/apt/lists/*",
            )
        )
        lines.append("")

    lines.append(f"ENV CARGO_HOME={cargo_home} RUSTUP_HOME={rustup_home}")
    fetch = [
        f"mkdir -p {shlex.quote(str(work_dir))}",
        "curl --proto '=https' --tlsv1.2 -sSf "
        f"{shlex.quote(tc_cfg.installer_url)} -o {shlex.quote(str(script))}",
    ]
    if tc_cfg.installer_sha256 is not None:
        fetch.append(
            f"echo {shlex.quote(tc_cfg.installer_sha256.lower() + '  ' + str(script))}"
            " | sha256sum -c -"
        )
    fetch.append(_join(installer_command(Path(str(script)), tc_cfg)))
    lines.append(_run(*fetch))
    lines.append(f'ENV PATH="{cargo_home}/bin:${{PATH}}"')
    lines.append("")

    lines.append(f"WORKDIR {work_dir}")
    if setup_cfg.assets_directory is not None:
        assets = Path(setup_cfg.assets_directory).name
        lines.append(f"COPY ./{assets} ./{assets}")
    lines.append(f"COPY ./{bundle_name} ./")
    lines.append(f"COPY ./{helper_name} ./")

    extract_dir = f"{EXTRACT_DIRNAME}/{helper_name}"
    source_glob = pkg_cfg.directory_pattern.replace(VERSION_PLACEHOLDER, "*")
    install_argv = install_command("cargo", "__SOURCE__", pkg_cfg)
    install_line = _join(install_argv).replace(
        "__SOURCE__", f"{shlex.quote(extract_dir)}/{source_glob}"
    )
    lines.append(
        _run(
            f"mkdir -p {shlex.quote(extract_dir)}",
            f"tar -xzf ./{shlex.quote(helper_name)} -C {shlex.quote(extract_dir)}",
            install_line,
        )
    )
    lines.append(_run(_join(setup_command(pkg_cfg.binary_name, f"./{bundle_name}", setup_cfg))))

    return "\n".join(lines) + "\n"
