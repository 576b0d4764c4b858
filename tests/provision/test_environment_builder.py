# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Tests for the environment builder.
"""

from pathlib import Path

import pytest

from bundleprobe.config.schema import EnvironmentConfig
from bundleprobe.pipeline.errors import EnvironmentSetupError
from bundleprobe.provision.environment.builder import (
    build_environment,
    build_variables,
    detect_base_image,
    parse_os_release,
)


@pytest.fixture()
def os_release(tmp_path: Path) -> Path:
    path = tmp_path / "os-release"
    path.write_text('ID=ubuntu\nVERSION_ID="18.04"\nPRETTY_NAME="Ubuntu 18.04.6 LTS"\n')
    return path


def _config(os_release: Path, **overrides) -> EnvironmentConfig:  # type: ignore[no-untyped-def]
    values = {
        "system_packages": ["python3", "pip", "curl", "ctags"],
        "os_release_path": str(os_release),
    }
    values.update(overrides)
    return EnvironmentConfig(**values)


class TestOsRelease:
    def test_parses_quoted_and_bare_values(self) -> None:
        fields = parse_os_release('# comment\nID=debian\nVERSION_ID="12"\nNAME=\'Debian\'\n\n')
        assert fields == {"ID": "debian", "VERSION_ID": "12", "NAME": "Debian"}

    def test_detects_id_and_version(self, os_release: Path) -> None:
        assert detect_base_image(str(os_release)) == "ubuntu:18.04"

    def test_missing_file_gives_none(self, tmp_path: Path) -> None:
        assert detect_base_image(str(tmp_path / "nope")) is None

    def test_rolling_release_without_version(self, tmp_path: Path) -> None:
        path = tmp_path / "os-release"
        path.write_text("ID=arch\n")
        assert detect_base_image(str(path)) == "arch"


class TestVariables:
    def test_non_interactive_flags_added(self, os_release: Path) -> None:
        variables = build_variables(_config(os_release), {"PATH": "/bin"})
        assert variables["DEBIAN_FRONTEND"] == "noninteractive"
        assert variables["DEBCONF_NONINTERACTIVE_SEEN"] == "true"
        assert variables["PATH"] == "/bin"

    def test_interactive_mode_leaves_environment_alone(self, os_release: Path) -> None:
        variables = build_variables(_config(os_release, non_interactive=False), {"PATH": "/bin"})
        assert variables == {"PATH": "/bin"}


class TestBuildEnvironment:
    def test_installs_all_packages_after_checks(self, os_release: Path, runner) -> None:  # type: ignore[no-untyped-def]
        prepared = build_environment(_config(os_release), runner, {"PATH": "/bin"})

        assert runner.commands[0] == "apt-get update"
        assert runner.commands[1:5] == [
            "apt-cache show python3",
            "apt-cache show pip",
            "apt-cache show curl",
            "apt-cache show ctags",
        ]
        assert runner.commands[-1] == (
            "apt-get install -y --no-install-recommends python3 pip curl ctags"
        )
        assert prepared.detected_image == "ubuntu:18.04"
        assert prepared.system_packages == ("python3", "pip", "curl", "ctags")
        assert all(
            call.env is not None and call.env["DEBIAN_FRONTEND"] == "noninteractive"
            for call in runner.calls
        )

    def test_missing_package_fails_before_install(self, os_release: Path, runner) -> None:  # type: ignore[no-untyped-def]
        runner.respond("apt-cache show ctags", exit_code=100, stderr="E: No packages found")

        with pytest.raises(EnvironmentSetupError, match="ctags") as excinfo:
            build_environment(_config(os_release), runner, {})

        assert "No packages found" in excinfo.value.output
        assert excinfo.value.step == "environment"
        assert not runner.ran("apt-get install")

    def test_all_missing_packages_are_named(self, os_release: Path, runner) -> None:  # type: ignore[no-untyped-def]
        runner.respond("apt-cache show pip", exit_code=100)
        runner.respond("apt-cache show ctags", exit_code=100)

        with pytest.raises(EnvironmentSetupError) as excinfo:
            build_environment(_config(os_release), runner, {})

        assert "pip, ctags" in excinfo.value.message

    def test_empty_show_output_counts_as_missing(self, os_release: Path, runner) -> None:  # type: ignore[no-untyped-def]
        runner.respond("apt-cache show curl", exit_code=0, stdout="")
        with pytest.raises(EnvironmentSetupError, match="curl"):
            build_environment(_config(os_release), runner, {})

    def test_index_refresh_failure_carries_exit_code(self, os_release: Path, runner) -> None:  # type: ignore[no-untyped-def]
        runner.respond("apt-get update", exit_code=100, stderr="Temporary failure resolving")
        with pytest.raises(EnvironmentSetupError) as excinfo:
            build_environment(_config(os_release), runner, {})

        assert excinfo.value.exit_code == 100
        assert len(runner.calls) == 1

    def test_install_failure_carries_exit_code(self, os_release: Path, runner) -> None:  # type: ignore[no-untyped-def]
        runner.respond("apt-get install", exit_code=100, stderr="dpkg was interrupted")
        with pytest.raises(EnvironmentSetupError) as excinfo:
            build_environment(_config(os_release), runner, {})

        assert excinfo.value.exit_code == 100
        assert "dpkg was interrupted" in excinfo.value.output

    def test_skip_install_runs_nothing(self, os_release: Path, runner) -> None:  # type: ignore[no-untyped-def]
        prepared = build_environment(
            _config(os_release, install_system_packages=False), runner, {}
        )
        assert runner.calls == []
        assert prepared.system_packages == ("python3", "pip", "curl", "ctags")

    def test_base_image_mismatch_warns_by_default(self, os_release: Path, runner) -> None:  # type: ignore[no-untyped-def]
        prepared = build_environment(_config(os_release, base_image="debian:12"), runner, {})
        assert prepared.base_image == "debian:12"
        assert prepared.detected_image == "ubuntu:18.04"

    def test_base_image_mismatch_enforced(self, os_release: Path, runner) -> None:  # type: ignore[no-untyped-def]
        config = _config(os_release, base_image="debian:12", enforce_base_image=True)
        with pytest.raises(EnvironmentSetupError, match="debian:12"):
            build_environment(config, runner, {})
        assert runner.calls == []
