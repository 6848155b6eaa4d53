"""
Tests for switchboard.core.config
===================================

These tests verify that the configuration system works correctly:
    - Default values are sensible and complete
    - Environment variables override defaults (including nested fields)
    - YAML files are parsed, auto-detected and validated
    - Malformed files raise ConfigurationError with a specific code
"""

import pytest
import yaml

from switchboard.core.config import (
    ClientConfig,
    RouterConfig,
    SwitchboardConfig,
    get_default_config,
    load_config,
)
from switchboard.core.enums import DuplicatePolicy
from switchboard.core.exceptions import ConfigurationError


# =============================================================================
# Test: Default Configuration
# =============================================================================
class TestDefaultConfig:
    """Tests for default configuration values."""

    def test_default_config_creates_successfully(self) -> None:
        """SwitchboardConfig() should work with no arguments."""
        config = SwitchboardConfig()
        assert config.log_level == "INFO"
        assert config.log_format == "console"

    def test_no_deployment_environment_setting(self) -> None:
        assert "environment" not in SwitchboardConfig.model_fields

    def test_default_source_is_background(self) -> None:
        assert SwitchboardConfig().source_id == "background"

    def test_default_request_timeout(self) -> None:
        assert SwitchboardConfig().client.request_timeout_seconds == 30.0

    def test_default_router_settings(self) -> None:
        """Overwrite is the default duplicate policy; AUTH_ types are public."""
        router = SwitchboardConfig().router
        assert router.duplicate_policy == DuplicatePolicy.OVERWRITE
        assert router.public_message_prefixes == ["AUTH_"]

    def test_default_max_handler_retries(self) -> None:
        assert SwitchboardConfig().max_handler_retries == 3

    def test_get_default_config(self) -> None:
        assert isinstance(get_default_config(), SwitchboardConfig)


# =============================================================================
# Test: Validation
# =============================================================================
class TestConfigValidation:
    """Invalid values are rejected by pydantic."""

    def test_timeout_must_be_positive(self) -> None:
        with pytest.raises(ValueError):
            ClientConfig(request_timeout_seconds=0)

    def test_timeout_may_be_disabled(self) -> None:
        assert ClientConfig(request_timeout_seconds=None).request_timeout_seconds is None

    def test_unknown_duplicate_policy_rejected(self) -> None:
        with pytest.raises(ValueError):
            RouterConfig(duplicate_policy="merge")

    def test_duplicate_policy_from_string(self) -> None:
        assert RouterConfig(duplicate_policy="reject").duplicate_policy is DuplicatePolicy.REJECT

    def test_retries_upper_bound(self) -> None:
        with pytest.raises(ValueError):
            SwitchboardConfig(max_handler_retries=11)

    def test_empty_source_rejected(self) -> None:
        with pytest.raises(ValueError):
            SwitchboardConfig(source_id="")


# =============================================================================
# Test: Environment Variables
# =============================================================================
class TestEnvironmentOverrides:
    """SWITCHBOARD_* environment variables override defaults."""

    def test_top_level_env_var(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SWITCHBOARD_SOURCE_ID", "side-panel")
        assert SwitchboardConfig().source_id == "side-panel"

    def test_env_var_is_case_insensitive(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("switchboard_log_level", "DEBUG")
        assert SwitchboardConfig().log_level == "DEBUG"

    def test_nested_env_var(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """The '__' delimiter reaches into nested models."""
        monkeypatch.setenv("SWITCHBOARD_CLIENT__REQUEST_TIMEOUT_SECONDS", "5")
        monkeypatch.setenv("SWITCHBOARD_ROUTER__DUPLICATE_POLICY", "reject")
        config = SwitchboardConfig()
        assert config.client.request_timeout_seconds == 5.0
        assert config.router.duplicate_policy is DuplicatePolicy.REJECT

    def test_explicit_argument_beats_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SWITCHBOARD_SOURCE_ID", "side-panel")
        assert SwitchboardConfig(source_id="popup").source_id == "popup"


# =============================================================================
# Test: YAML Loading
# =============================================================================
class TestLoadConfig:
    """Tests for load_config() with YAML files."""

    def test_load_yaml_file(self, tmp_path) -> None:
        path = tmp_path / "switchboard.yaml"
        path.write_text(
            yaml.safe_dump(
                {
                    "source_id": "popup",
                    "log_format": "json",
                    "client": {"request_timeout_seconds": 7.5},
                    "router": {"duplicate_policy": "reject"},
                }
            )
        )

        config = load_config(str(path))

        assert config.source_id == "popup"
        assert config.log_format == "json"
        assert config.client.request_timeout_seconds == 7.5
        assert config.router.duplicate_policy is DuplicatePolicy.REJECT

    def test_empty_yaml_gives_defaults(self, tmp_path) -> None:
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_config(str(path)).source_id == "background"

    def test_auto_detects_file_in_cwd(self, tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
        (tmp_path / "switchboard.yaml").write_text("source_id: side-panel\n")
        monkeypatch.chdir(tmp_path)
        assert load_config().source_id == "side-panel"

    def test_no_file_uses_defaults(self, tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.chdir(tmp_path)
        assert load_config().source_id == "background"

    def test_yaml_value_beats_env(self, tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
        """File values are passed as constructor arguments."""
        monkeypatch.setenv("SWITCHBOARD_SOURCE_ID", "from-env")
        path = tmp_path / "switchboard.yaml"
        path.write_text("source_id: from-file\n")
        assert load_config(str(path)).source_id == "from-file"

    def test_env_fills_fields_missing_from_yaml(
        self, tmp_path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("SWITCHBOARD_LOG_LEVEL", "WARNING")
        path = tmp_path / "switchboard.yaml"
        path.write_text("source_id: popup\n")
        config = load_config(str(path))
        assert config.log_level == "WARNING"
        assert config.source_id == "popup"

    def test_missing_explicit_path_raises(self, tmp_path) -> None:
        with pytest.raises(FileNotFoundError):
            load_config(str(tmp_path / "nope.yaml"))

    def test_malformed_yaml_raises(self, tmp_path) -> None:
        path = tmp_path / "bad.yaml"
        path.write_text("client: [unclosed\n")
        with pytest.raises(ConfigurationError) as exc_info:
            load_config(str(path))
        assert exc_info.value.error_code == "INVALID_YAML"
        assert exc_info.value.details["path"] == str(path)

    def test_non_mapping_yaml_raises(self, tmp_path) -> None:
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigurationError) as exc_info:
            load_config(str(path))
        assert exc_info.value.error_code == "INVALID_CONFIG_SHAPE"
        assert exc_info.value.details["type"] == "list"

    def test_invalid_value_raises(self, tmp_path) -> None:
        path = tmp_path / "invalid.yaml"
        path.write_text("client:\n  request_timeout_seconds: -1\n")
        with pytest.raises(ConfigurationError) as exc_info:
            load_config(str(path))
        assert exc_info.value.error_code == "INVALID_CONFIG_VALUE"
        assert exc_info.value.details["errors"]
