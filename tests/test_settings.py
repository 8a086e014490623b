"""Tests for configuration loading and validation."""

import pytest

from config.settings import ConfigManager


def test_defaults_without_file():
    config = ConfigManager()
    assert config.get_providers() == ["aws", "google"]
    assert config.get_plugin_ids() == []
    assert config.get_region_allow_list() is None
    assert config.get("max_region_workers") == 8
    assert config.get("plugin_timeout_seconds") is None
    assert config.get_output_settings().show_passing is True


def test_load_yaml_file(tmp_path):
    cache_file = tmp_path / "cache.json"
    cache_file.write_text("{}")
    config_file = tmp_path / "config.yaml"
    config_file.write_text(
        f"cache_file: {cache_file}\n"
        "providers: [google]\n"
        "plugins: [google.sql.db_restorable]\n"
        "regions: [us-central1]\n"
        "plugin_timeout_seconds: 30\n"
        "plugin_settings:\n  threshold: 5\n"
        "output_settings:\n  json_output_file: out/results.json\n"
    )
    config = ConfigManager(str(config_file))
    assert config.get_cache_file() == str(cache_file)
    assert config.get_providers() == ["google"]
    assert config.get_plugin_ids() == ["google.sql.db_restorable"]
    assert config.get_region_allow_list() == ["us-central1"]
    assert config.get("plugin_timeout_seconds") == 30
    assert config.get_plugin_settings() == {"threshold": 5}
    assert config.get_output_settings().json_output_file == "out/results.json"


def test_empty_yaml_file_uses_defaults(tmp_path):
    config_file = tmp_path / "config.yaml"
    config_file.write_text("")
    assert ConfigManager(str(config_file)).get_providers() == ["aws", "google"]


def test_overrides_take_precedence(tmp_path):
    config_file = tmp_path / "config.yaml"
    config_file.write_text("plugins: [a.b.c]\n")
    config = ConfigManager(str(config_file), overrides={"plugins": ["x.y.z"]})
    assert config.get_plugin_ids() == ["x.y.z"]


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        ConfigManager(str(tmp_path / "missing.yaml"))


@pytest.mark.parametrize("overrides", [
    {"max_region_workers": 0},
    {"max_concurrent_plugins": 0},
    {"plugin_timeout_seconds": 0},
    {"providers": ["azure"]},
    {"cache_file": "/definitely/not/here.json"},
])
def test_invalid_values_raise_value_error(overrides):
    with pytest.raises(ValueError):
        ConfigManager(overrides=overrides)
