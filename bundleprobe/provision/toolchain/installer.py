# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Toolchain installer: the second pipeline step.

Fetches the installer script (rustup-init.sh by default) and runs it
non-interactively into a configured home directory:
  1. Refuse anything but an https:// URL, before touching the network
  2. Download with TLS verification on; every redirect hop must be https too
  3. Check the SHA256 pin if one is configured (or required)
  4. Write the script to the work directory and run it with `sh`
  5. Confirm `cargo --version` works through the new search path

The result is a ToolchainEnv value. Nothing here changes os.environ; later
steps receive the search path explicitly.
"""

import os
from pathlib import Path
from typing import Optional

import httpx

from bundleprobe.config.schema import ToolchainConfig
from bundleprobe.logging.logger import get_logger
from bundleprobe.pipeline.errors import ToolchainInstallError
from bundleprobe.pipeline.models import PreparedEnvironment, ToolchainEnv
from bundleprobe.pipeline.process import CommandRunner
from bundleprobe.utils.filesystem import atomic_write_bytes
from bundleprobe.utils.hashing import compute_sha256_bytes, digests_match
from bundleprobe.utils.paths import expand_path

logger = get_logger(__name__)

INSTALLER_FILENAME = "toolchain-installer.sh"
TRUSTED_SCHEME = "https"
MAX_REDIRECTS = 10


def _require_https(url: httpx.URL, what: str) -> None:
    if url.scheme != TRUSTED_SCHEME:
        raise ToolchainInstallError(
            f"Refusing to fetch {what} over untrusted transport '{url.scheme}': {url}"
        )


def _get_following_https_redirects(client: httpx.Client, url: httpx.URL) -> httpx.Response:
    """
    GET url, following redirects one hop at a time.

    Every hop is checked before it is requested, so a chain that passes
    through plain http is refused even if it ends on https.
    """
    response = client.send(client.build_request("GET", url), follow_redirects=False)
    hops = 0
    while response.is_redirect:
        next_request = response.next_request
        if next_request is None:
            break
        _require_https(next_request.url, "installer redirect target")
        hops += 1
        if hops > MAX_REDIRECTS:
            raise ToolchainInstallError(
                f"Installer download exceeded {MAX_REDIRECTS} redirects: {url}"
            )
        response = client.send(next_request, follow_redirects=False)
    return response


def fetch_installer(
    config: ToolchainConfig,
    client: Optional[httpx.Client] = None,
) -> bytes:
    """
    Download the installer script and check its integrity.

    Args:
        config: Toolchain section of the config.
        client: Optional pre-built client (tests pass one with a mock transport).

    Returns:
        The script contents.

    Raises:
        ToolchainInstallError: Non-https URL or redirect hop, too many
            redirects, transport failure, non-2xx status, missing required
            checksum, or checksum mismatch.
    """
    try:
        url = httpx.URL(config.installer_url)
    except httpx.InvalidURL as err:
        raise ToolchainInstallError(f"Invalid installer URL: {config.installer_url}") from err
    _require_https(url, "installer")

    if config.installer_sha256 is None and config.require_checksum:
        raise ToolchainInstallError(
            "Installer checksum is required but toolchain.installer_sha256 is not set"
        )

    owns_client = client is None
    if client is None:
        client = httpx.Client(verify=True, timeout=config.download_timeout_seconds)

    try:
        response = _get_following_https_redirects(client, url)
        response.raise_for_status()
        payload = response.content
    except httpx.HTTPStatusError as err:
        raise ToolchainInstallError(
            f"Installer download failed with HTTP {err.response.status_code}",
            output=err.response.text,
        ) from err
    except httpx.HTTPError as err:
        raise ToolchainInstallError(f"Installer download failed: {err}") from err
    finally:
        if owns_client:
            client.close()

    digest = compute_sha256_bytes(payload)
    if config.installer_sha256 is None:
        logger.warning(
            "Installer checksum not configured, running an unpinned script",
            extra={"url": str(url), "sha256": digest},
        )
    elif not digests_match(digest, config.installer_sha256):
        raise ToolchainInstallError(
            f"Installer checksum mismatch: expected {config.installer_sha256.lower()}, got {digest}"
        )
    else:
        logger.info("Installer checksum verified", extra={"sha256": digest})

    logger.info("Installer downloaded", extra={"url": str(url), "bytes": len(payload)})
    return payload


def installer_command(script_path: Path, config: ToolchainConfig) -> list[str]:
    """argv that runs the installer non-interactively with a pinned toolchain."""
    return [
        "sh",
        str(script_path),
        "-y",
        "--no-modify-path",
        "--profile",
        config.profile,
        "--default-toolchain",
        config.default_toolchain,
    ]


def make_toolchain_env(
    config: ToolchainConfig,
    environment: PreparedEnvironment,
) -> ToolchainEnv:
    """Build the ToolchainEnv: the toolchain bin directory ahead of the caller's PATH."""
    home = expand_path(config.home)
    inherited = environment.variables.get("PATH", "")
    bin_dir = str(home / "bin")
    search_path = [bin_dir]
    search_path.extend(
        part for part in inherited.split(os.pathsep) if part and part != bin_dir
    )
    return ToolchainEnv(
        home=home,
        rustup_home=expand_path(config.rustup_home),
        toolchain=config.default_toolchain,
        search_path=tuple(search_path),
        variables=dict(environment.variables),
    )


def install_toolchain(
    config: ToolchainConfig,
    environment: PreparedEnvironment,
    runner: CommandRunner,
    work_dir: Path,
    client: Optional[httpx.Client] = None,
) -> ToolchainEnv:
    """
    Fetch, verify and run the toolchain installer.

    Raises:
        ToolchainInstallError: On any download, integrity, install, or
            verification failure.
    """
    payload = fetch_installer(config, client=client)

    script_path = work_dir / INSTALLER_FILENAME
    try:
        atomic_write_bytes(script_path, payload)
    except OSError as err:
        raise ToolchainInstallError(f"Cannot write installer script: {err}") from err

    toolchain = make_toolchain_env(config, environment)
    installer_env = toolchain.as_environ()
    installer_env["RUSTUP_INIT_SKIP_PATH_CHECK"] = "yes"

    result = runner.run(
        installer_command(script_path, config),
        env=installer_env,
        cwd=work_dir,
        timeout_seconds=config.timeout_seconds,
    )
    if not result.succeeded:
        raise ToolchainInstallError(
            "Toolchain installer failed",
            output=result.output,
            exit_code=result.exit_code,
        )

    probe = runner.run(
        [str(toolchain.executable("cargo")), "--version"],
        env=toolchain.as_environ(),
        timeout_seconds=config.timeout_seconds,
    )
    if not probe.succeeded:
        raise ToolchainInstallError(
            "Toolchain installed but cargo is not usable",
            output=probe.output,
            exit_code=probe.exit_code,
        )

    logger.info(
        "Toolchain ready",
        extra={
            "toolchain": config.default_toolchain,
            "bin_dir": str(toolchain.bin_dir),
            "cargo_version": probe.stdout.strip(),
        },
    )
    return toolchain
