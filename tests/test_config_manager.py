"""
Unit tests for configuration loading and the preference store.
"""

import pytest
import yaml

from config_manager import DEFAULT_CONFIG, PreferenceStore, get_section, load_config, save_config
from exceptions import ConfigError


class TestLoadConfig:
    """Test load_config."""

    def test_missing_file_returns_defaults(self, tmp_path):
        config = load_config(tmp_path / "absent.yaml")
        assert config == DEFAULT_CONFIG
        config["budget"]["forecast_mode"] = "changed"
        assert DEFAULT_CONFIG["budget"]["forecast_mode"] == "planned_only"

    def test_user_values_merge_into_defaults(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(yaml.dump({"budget": {"warning_threshold_months": 3}, "extra": {"a": 1}}))
        config = load_config(path)
        assert config["budget"]["warning_threshold_months"] == 3
        assert config["budget"]["forecast_mode"] == "planned_only"
        assert config["extra"] == {"a": 1}

    def test_empty_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("")
        assert load_config(path) == DEFAULT_CONFIG

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("budget: [unclosed")
        with pytest.raises(ConfigError) as exc_info:
            load_config(path)
        assert exc_info.value.original_error is not None

    def test_non_mapping(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("- just\n- a list\n")
        with pytest.raises(ConfigError):
            load_config(path)


class TestSaveConfig:
    """Test save_config."""

    def test_preserves_existing_keys(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(yaml.dump({"logging": {"level": "DEBUG"}, "budget": {"month_end_offset": 2}}))
        save_config({"budget": {"warning_threshold_months": 4}}, path)
        saved = yaml.safe_load(path.read_text())
        assert saved["logging"]["level"] == "DEBUG"
        assert saved["budget"] == {"month_end_offset": 2, "warning_threshold_months": 4}

    def test_creates_file(self, tmp_path):
        path = tmp_path / "new.yaml"
        save_config({"debts": {"default_method": "snowball"}}, path)
        assert load_config(path)["debts"]["default_method"] == "snowball"

    def test_unwritable_path(self, tmp_path):
        with pytest.raises(ConfigError):
            save_config({"a": 1}, tmp_path / "missing_dir" / "config.yaml")


class TestGetSection:
    """Test get_section."""

    def test_falls_back_to_defaults(self):
        assert get_section({}, "rebalance")["bill_window_days"] == 7

    def test_rejects_non_mapping(self):
        with pytest.raises(ConfigError):
            get_section({"budget": "oops"}, "budget")


class TestPreferenceStore:
    """Test the explicit preference store."""

    def test_lazy_initialization(self, tmp_path):
        store = PreferenceStore(tmp_path / "config.yaml")
        assert store.get("budget")["warning_threshold_months"] == 6
        assert store.get("missing", "fallback") == "fallback"

    def test_set_shadows_config(self, tmp_path):
        store = PreferenceStore(tmp_path / "config.yaml")
        store.initialize({"theme": "light"})
        store.set("theme", "dark")
        assert store.get("theme") == "dark"
        assert not (tmp_path / "config.yaml").exists()

    def test_initialize_keeps_set_values(self, tmp_path):
        store = PreferenceStore(tmp_path / "config.yaml")
        store.set("theme", "dark")
        store.initialize({"theme": "light"})
        assert store.get("theme") == "dark"

    def test_save_to_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        store = PreferenceStore(path)
        store.set("theme", "dark", save_to_file=True)
        assert yaml.safe_load(path.read_text()) == {"theme": "dark"}

    def test_reset_reloads(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(yaml.dump({"theme": "light"}))
        store = PreferenceStore(path)
        store.set("theme", "dark")
        store.reset()
        assert store.get("theme") == "light"
