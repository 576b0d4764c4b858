# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Type-safe configuration schemas for bundleprobe.

One frozen pydantic model per pipeline step, plus the global section. The
defaults describe the reference scenario: an Ubuntu 18.04 image, rustup as
the toolchain installer, the kani-verifier crate as the helper package and
a kani release tarball as the bundle under test.

The models use pydantic v2's ConfigDict with:
  - frozen=True: immutability after construction
  - extra="forbid": unknown fields cause immediate failure
  - validate_default=True: even defaults get type-checked
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

VERSION_PLACEHOLDER = "{version}"


class GlobalConfig(BaseModel):
    """Cross-cutting settings: identity, logging, and the scratch directory."""

    model_config = ConfigDict(frozen=True, extra="forbid", validate_default=True)

    config_version: str = Field(
        description="Schema version for compatibility tracking, e.g. '1.0.0'"
    )
    project_name: str = Field(
        default="bundleprobe", description="Human-readable identifier for this run"
    )
    log_level: str = Field(
        default="INFO",
        description="One of DEBUG, INFO, WARNING, ERROR, CRITICAL",
    )
    log_file: Optional[str] = Field(
        default=None,
        description="Optional path for file-based log output",
    )
    work_directory: str = Field(
        default="/tmp/bundleprobe",
        description="Scratch directory for the installer script, extraction and test assets",
    )


class EnvironmentConfig(BaseModel):
    """What the environment builder needs: the base image and its system packages."""

    model_config = ConfigDict(frozen=True, extra="forbid", validate_default=True)

    base_image: str = Field(
        default="ubuntu:18.04",
        description="Expected base OS image, as '<id>:<version>' from /etc/os-release",
    )
    system_packages: list[str] = Field(
        default_factory=lambda: ["python3", "python3-pip", "curl", "ctags"],
        description="System packages that must be available and installed",
    )
    non_interactive: bool = Field(
        default=True,
        description="Suppress package manager prompts for every later step",
    )
    install_system_packages: bool = Field(
        default=True,
        description="Refresh the package index and install packages; off for pre-built images",
    )
    enforce_base_image: bool = Field(
        default=False,
        description="Fail instead of warn when the detected OS differs from base_image",
    )
    os_release_path: str = Field(
        default="/etc/os-release",
        description="Where to read the OS identity from",
    )
    timeout_seconds: Optional[int] = Field(
        default=None,
        ge=1,
        description="Per-command timeout; None waits for completion",
    )


class ToolchainConfig(BaseModel):
    """
    Where the toolchain installer comes from and how it is pinned.

    The installer is only ever fetched over HTTPS. Setting installer_sha256
    pins the exact script; require_checksum makes the pin mandatory.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", validate_default=True)

    installer_url: str = Field(
        default="https://sh.rustup.rs",
        description="HTTPS URL of the installer script",
    )
    installer_sha256: Optional[str] = Field(
        default=None,
        pattern=r"^[0-9a-fA-F]{64}$",
        description="Expected SHA256 of the installer script",
    )
    require_checksum: bool = Field(
        default=False,
        description="Refuse to run an installer without a configured checksum",
    )
    default_toolchain: str = Field(
        default="stable",
        description="Toolchain the installer pins as default, e.g. 'stable' or '1.70.0'",
    )
    profile: str = Field(default="minimal", description="Installer profile")
    home: str = Field(
        default="~/.cargo",
        description="Toolchain home (CARGO_HOME); binaries land in <home>/bin",
    )
    rustup_home: str = Field(default="~/.rustup", description="RUSTUP_HOME")
    download_timeout_seconds: float = Field(
        default=60.0,
        gt=0,
        description="HTTP timeout for fetching the installer script",
    )
    timeout_seconds: Optional[int] = Field(default=None, ge=1)


class PackageConfig(BaseModel):
    """The helper package: which archive, which directory inside it, which binary."""

    model_config = ConfigDict(frozen=True, extra="forbid", validate_default=True)

    archive: str = Field(
        default="kani-verifier.crate",
        description="Source archive of the helper package (gzip tarball)",
    )
    directory_pattern: str = Field(
        default="kani-verifier-{version}",
        description="Name of the extracted directory; {version} matches the unknown version",
    )
    binary_name: str = Field(
        default="cargo-kani",
        description="Executable the install produces in the toolchain bin directory",
    )
    install_args: list[str] = Field(
        default_factory=list,
        description="Extra arguments appended to `cargo install --path <dir>`",
    )
    timeout_seconds: Optional[int] = Field(default=None, ge=1)

    @field_validator("directory_pattern")
    @classmethod
    def _single_version_placeholder(cls, value: str) -> str:
        if value.count(VERSION_PLACEHOLDER) > 1:
            raise ValueError(f"directory_pattern may contain {VERSION_PLACEHOLDER} at most once")
        if "/" in value or value in {"", ".", ".."}:
            raise ValueError("directory_pattern must be a single directory name")
        return value


class SetupConfig(BaseModel):
    """How the installed helper is pointed at the bundle under test."""

    model_config = ConfigDict(frozen=True, extra="forbid", validate_default=True)

    bundle_archive: str = Field(
        default="kani-0.39.0-x86_64-unknown-linux-gnu.tar.gz",
        description="The release bundle under test",
    )
    subcommand: list[str] = Field(
        default_factory=lambda: ["setup"],
        description="Arguments that select the helper's setup subcommand",
    )
    local_bundle_flag: str = Field(
        default="--use-local-bundle",
        description="Option telling the helper to use the local bundle instead of fetching",
    )
    assets_directory: Optional[str] = Field(
        default=None,
        description="Directory copied verbatim into the work directory before setup",
    )
    timeout_seconds: Optional[int] = Field(default=None, ge=1)


class BundleProbeConfig(BaseModel):
    """
    Top-level config container.

    Only `global:` is required in YAML. Every step section falls back to the
    reference-scenario defaults when absent.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", validate_default=True)

    global_config: GlobalConfig = Field(alias="global")
    environment: EnvironmentConfig = Field(default_factory=EnvironmentConfig)
    toolchain: ToolchainConfig = Field(default_factory=ToolchainConfig)
    package: PackageConfig = Field(default_factory=PackageConfig)
    setup: SetupConfig = Field(default_factory=SetupConfig)
