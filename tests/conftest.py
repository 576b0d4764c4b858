# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Shared pytest fixtures for bundleprobe tests.

Nothing in the test suite touches the real package manager, the network, or
a real toolchain. External processes go through ScriptedRunner, the installer
download through httpx.MockTransport, and the archives are tiny tarballs
built on the fly.
"""

import io
import tarfile
import textwrap
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Mapping, Optional, Sequence

import httpx
import pytest

from bundleprobe.config.schema import BundleProbeConfig
from bundleprobe.pipeline.models import CommandResult
from bundleprobe.pipeline.orchestrator import PipelineInputs, resolve_inputs

INSTALLER_SCRIPT = b"#!/bin/sh\necho installing toolchain\n"

OS_RELEASE_UBUNTU_1804 = textwrap.dedent("""\
    NAME="Ubuntu"
    VERSION="18.04.6 LTS (Bionic Beaver)"
    ID=ubuntu
    ID_LIKE=debian
    VERSION_ID="18.04"
""")


@dataclass
class RecordedCall:
    argv: tuple[str, ...]
    env: Optional[dict[str, str]]
    cwd: Optional[Path]


@dataclass
class _Rule:
    needle: str
    exit_code: int
    stdout: str
    stderr: str


class ScriptedRunner:
    """
    Stand-in for CommandRunner.

    Every call is recorded. The response is picked by the most recently
    registered rule whose needle appears in the joined argv; without a
    matching rule the command succeeds with stdout "ok".
    """

    def __init__(self) -> None:
        self.calls: list[RecordedCall] = []
        self._rules: list[_Rule] = []

    def respond(self, needle: str, exit_code: int = 0, stdout: str = "", stderr: str = "") -> None:
        self._rules.append(_Rule(needle, exit_code, stdout, stderr))

    def run(
        self,
        argv: Sequence[str],
        env: Optional[Mapping[str, str]] = None,
        cwd: Optional[Path] = None,
        timeout_seconds: Optional[int] = None,
    ) -> CommandResult:
        command = tuple(str(part) for part in argv)
        self.calls.append(RecordedCall(command, dict(env) if env is not None else None, cwd))
        joined = " ".join(command)
        for rule in reversed(self._rules):
            if rule.needle in joined:
                return CommandResult(command, rule.exit_code, rule.stdout, rule.stderr, 0.0)
        return CommandResult(command, 0, "ok", "", 0.0)

    @property
    def commands(self) -> list[str]:
        return [" ".join(call.argv) for call in self.calls]

    def ran(self, needle: str) -> bool:
        return any(needle in command for command in self.commands)


def make_tarball(path: Path, files: Mapping[str, bytes], directories: Sequence[str] = ()) -> Path:
    """Write a gzipped tarball with the given directories and files."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with tarfile.open(path, "w:gz") as tar:
        for name in directories:
            info = tarfile.TarInfo(name)
            info.type = tarfile.DIRTYPE
            info.mode = 0o755
            tar.addfile(info)
        for name, data in files.items():
            info = tarfile.TarInfo(name)
            info.size = len(data)
            info.mode = 0o644
            tar.addfile(info, io.BytesIO(data))
    return path


def installer_transport(
    body: bytes = INSTALLER_SCRIPT, status_code: int = 200
) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code, content=body)

    return httpx.MockTransport(handler)


@dataclass
class Scenario:
    """Everything a pipeline test needs, rooted in tmp_path."""

    root: Path
    config_data: dict[str, Any] = field(default_factory=dict)

    @property
    def config(self) -> BundleProbeConfig:
        return BundleProbeConfig.model_validate(self.config_data)

    @property
    def inputs(self) -> PipelineInputs:
        return resolve_inputs(self.config)

    @property
    def helper_archive(self) -> Path:
        return Path(self.config_data["package"]["archive"])

    @property
    def bundle_archive(self) -> Path:
        return Path(self.config_data["setup"]["bundle_archive"])

    @property
    def work_dir(self) -> Path:
        return Path(self.config_data["global"]["work_directory"])

    @property
    def cargo_home(self) -> Path:
        return Path(self.config_data["toolchain"]["home"])


@pytest.fixture()
def runner() -> ScriptedRunner:
    return ScriptedRunner()


@pytest.fixture()
def runner_factory() -> Callable[[], ScriptedRunner]:
    """For tests that need a fresh runner per pipeline run."""
    return ScriptedRunner


@pytest.fixture()
def tarball_factory() -> Callable[..., Path]:
    return make_tarball


@pytest.fixture()
def http_client() -> httpx.Client:
    client = httpx.Client(transport=installer_transport())
    yield client  # type: ignore[misc]
    client.close()


@pytest.fixture()
def scenario(tmp_path: Path) -> Scenario:
    """
    The reference scenario: ubuntu:18.04, python3/pip/curl/ctags,
    kani-verifier.crate holding kani-verifier-0.39.0/, and the kani 0.39.0
    release bundle.
    """
    inputs_dir = tmp_path / "inputs"
    inputs_dir.mkdir()

    os_release = tmp_path / "os-release"
    os_release.write_text(OS_RELEASE_UBUNTU_1804, encoding="utf-8")

    helper = make_tarball(
        inputs_dir / "kani-verifier.crate",
        {
            "kani-verifier-0.39.0/Cargo.toml": b'[package]\nname = "kani-verifier"\n',
            "kani-verifier-0.39.0/src/main.rs": b"fn main() {}\n",
        },
        directories=["kani-verifier-0.39.0"],
    )
    bundle = make_tarball(
        inputs_dir / "kani-0.39.0-x86_64-unknown-linux-gnu.tar.gz",
        {"kani-0.39.0/bin/kani-driver": b"binary"},
    )
    assets = inputs_dir / "tests"
    (assets / "cargo-ui").mkdir(parents=True)
    (assets / "cargo-ui" / "main.rs").write_text("fn main() {}\n", encoding="utf-8")

    config_data: dict[str, Any] = {
        "global": {
            "config_version": "1.0.0",
            "project_name": "bundleprobe-test",
            "log_level": "DEBUG",
            "work_directory": str(tmp_path / "work"),
        },
        "environment": {
            "base_image": "ubuntu:18.04",
            "system_packages": ["python3", "pip", "curl", "ctags"],
            "os_release_path": str(os_release),
        },
        "toolchain": {
            "installer_url": "https://sh.rustup.rs",
            "home": str(tmp_path / "cargo"),
            "rustup_home": str(tmp_path / "rustup"),
        },
        "package": {
            "archive": str(helper),
            "directory_pattern": "kani-verifier-{version}",
            "binary_name": "cargo-kani",
        },
        "setup": {
            "bundle_archive": str(bundle),
            "assets_directory": str(assets),
        },
    }
    return Scenario(root=tmp_path, config_data=config_data)


@pytest.fixture()
def tmp_config_file(tmp_path: Path) -> Path:
    """The smallest config that passes schema validation."""
    config_content = textwrap.dedent("""\
        global:
          config_version: "1.0.0"
          project_name: "bundleprobe-test"
          log_level: "DEBUG"
    """)
    config_file = tmp_path / "test_config.yaml"
    config_file.write_text(config_content, encoding="utf-8")
    return config_file


@pytest.fixture()
def invalid_config_file(tmp_path: Path) -> Path:
    """Valid YAML that fails schema validation (missing config_version)."""
    config_content = textwrap.dedent("""\
        global:
          project_name: "bundleprobe-test"
    """)
    config_file = tmp_path / "invalid_config.yaml"
    config_file.write_text(config_content, encoding="utf-8")
    return config_file


@pytest.fixture()
def broken_yaml_file(tmp_path: Path) -> Path:
    """A file that isn't valid YAML at all."""
    config_file = tmp_path / "broken.yaml"
    config_file.write_text("{{not: yaml: at: all:::", encoding="utf-8")
    return config_file
