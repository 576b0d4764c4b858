# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Tests for the config loader.

Covered:
  1. Valid YAML loads into a frozen config with reference-scenario defaults
  2. Missing required fields, unknown fields and wrong types raise
     ConfigValidationError
  3. Broken YAML, missing files and directories raise ConfigLoadError
  4. The shipped reference config loads
"""

import textwrap
from pathlib import Path

import pytest

from bundleprobe.config.exceptions import ConfigLoadError, ConfigValidationError
from bundleprobe.config.loader import default_config, load_config

REPO_ROOT = Path(__file__).resolve().parents[2]


class TestLoadValidConfig:
    def test_loads_minimal_valid_config(self, tmp_config_file: Path) -> None:
        config = load_config(tmp_config_file)
        assert config.global_config.project_name == "bundleprobe-test"
        assert config.global_config.log_level == "DEBUG"
        assert config.global_config.config_version == "1.0.0"

    def test_step_sections_default_to_reference_scenario(self, tmp_config_file: Path) -> None:
        config = load_config(tmp_config_file)
        assert config.environment.base_image == "ubuntu:18.04"
        assert "ctags" in config.environment.system_packages
        assert config.toolchain.installer_url == "https://sh.rustup.rs"
        assert config.package.directory_pattern == "kani-verifier-{version}"
        assert config.setup.local_bundle_flag == "--use-local-bundle"

    def test_loads_all_sections(self, tmp_path: Path) -> None:
        content = textwrap.dedent("""\
            global:
              config_version: "1.0.0"
              work_directory: "/srv/probe"
            environment:
              base_image: "debian:12"
              system_packages: ["curl"]
            toolchain:
              default_toolchain: "1.70.0"
              require_checksum: true
              installer_sha256: "0123456789abcdef0123456789abcdef0123456789abcdef0123456789abcdef"
            package:
              archive: "helper.crate"
              directory_pattern: "helper-{version}"
              binary_name: "cargo-helper"
              install_args: ["--locked"]
            setup:
              bundle_archive: "bundle.tar.gz"
              assets_directory: "tests"
              timeout_seconds: 600
        """)
        config_file = tmp_path / "full.yaml"
        config_file.write_text(content, encoding="utf-8")

        config = load_config(config_file)
        assert config.global_config.work_directory == "/srv/probe"
        assert config.environment.system_packages == ["curl"]
        assert config.toolchain.require_checksum is True
        assert config.package.install_args == ["--locked"]
        assert config.setup.timeout_seconds == 600

    def test_reference_config_file_loads(self) -> None:
        config = load_config(REPO_ROOT / "configs" / "kani-ubuntu-18.04.yaml")
        assert config.package.binary_name == "cargo-kani"
        assert config.setup.bundle_archive.endswith("kani-0.39.0-x86_64-unknown-linux-gnu.tar.gz")

    def test_default_config_matches_empty_sections(self, tmp_config_file: Path) -> None:
        loaded = load_config(tmp_config_file)
        assert default_config().package == loaded.package
        assert default_config().toolchain == loaded.toolchain


class TestLoadInvalidConfig:
    def test_missing_required_field_raises_validation_error(
        self, invalid_config_file: Path
    ) -> None:
        with pytest.raises(ConfigValidationError):
            load_config(invalid_config_file)

    def test_unknown_field_raises_validation_error(self, tmp_path: Path) -> None:
        content = textwrap.dedent("""\
            global:
              config_version: "1.0.0"
            toolchain:
              installer: "https://example.com"
        """)
        config_file = tmp_path / "unknown_field.yaml"
        config_file.write_text(content, encoding="utf-8")

        with pytest.raises(ConfigValidationError):
            load_config(config_file)

    def test_wrong_type_raises_validation_error(self, tmp_path: Path) -> None:
        content = textwrap.dedent("""\
            global:
              config_version: "1.0.0"
            environment:
              system_packages: "curl ctags"
        """)
        config_file = tmp_path / "wrong_type.yaml"
        config_file.write_text(content, encoding="utf-8")

        with pytest.raises(ConfigValidationError):
            load_config(config_file)

    def test_broken_yaml_raises_load_error(self, broken_yaml_file: Path) -> None:
        with pytest.raises(ConfigLoadError):
            load_config(broken_yaml_file)

    def test_non_mapping_yaml_raises_load_error(self, tmp_path: Path) -> None:
        config_file = tmp_path / "list.yaml"
        config_file.write_text("- just\n- a list\n", encoding="utf-8")
        with pytest.raises(ConfigLoadError):
            load_config(config_file)

    def test_nonexistent_file_raises_load_error(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigLoadError):
            load_config(tmp_path / "does_not_exist.yaml")

    def test_directory_path_raises_load_error(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigLoadError):
            load_config(tmp_path)


class TestConfigImmutability:
    def test_cannot_mutate_frozen_config(self, tmp_config_file: Path) -> None:
        config = load_config(tmp_config_file)
        with pytest.raises(Exception):
            config.global_config.work_directory = "/elsewhere"  # type: ignore[misc]

    def test_cannot_mutate_step_section(self, tmp_config_file: Path) -> None:
        config = load_config(tmp_config_file)
        with pytest.raises(Exception):
            config.toolchain.installer_url = "http://evil.example"  # type: ignore[misc]
