from __future__ import annotations

import json

import pytest

from campaign_store.config import DEFAULT_INDEX_FIELDS, StoreSettings, load_settings
from campaign_store.core.exceptions import ConfigError


def test_defaults_without_file_or_env():
    settings = load_settings(environ={})

    assert settings == StoreSettings()
    assert settings.change_log_capacity == 100
    assert settings.filter_warning_ms == 50.0
    assert settings.index_fields == DEFAULT_INDEX_FIELDS


def test_json_file_is_read(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text(
        json.dumps(
            {
                "store": {"change_log_capacity": 10, "index_fields": ["region"], "auto_index": True},
                "fields": {"channel": "categorical"},
            }
        )
    )

    settings = load_settings(path, environ={})

    assert settings.change_log_capacity == 10
    assert settings.index_fields == ["region"]
    assert settings.auto_index is True
    assert settings.fields == {"channel": "categorical"}


def test_config_path_from_env(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({"store": {"chunk_size": 7}}))

    assert load_settings(environ={"CAMPAIGN_STORE_CONFIG": str(path)}).chunk_size == 7


def test_env_overrides_win_over_file(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({"store": {"filter_warning_ms": 10}}))

    settings = load_settings(
        path,
        environ={
            "CAMPAIGN_STORE_FILTER_WARNING_MS": "25.5",
            "CAMPAIGN_STORE_INDEX_FIELDS": "region, status,,",
            "CAMPAIGN_STORE_AUTO_INDEX": "1",
        },
    )

    assert settings.filter_warning_ms == 25.5
    assert settings.index_fields == ["region", "status"]
    assert settings.auto_index is True


def test_missing_file_raises(tmp_path):
    with pytest.raises(ConfigError):
        load_settings(tmp_path / "nope.json", environ={})


def test_invalid_json_raises(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text("{not json")

    with pytest.raises(ConfigError):
        load_settings(path, environ={})


def test_memo_cache_size_from_file_and_env(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({"store": {"memo_cache_size": 50}}))

    assert load_settings(path, environ={}).memo_cache_size == 50
    assert load_settings(path, environ={"CAMPAIGN_STORE_MEMO_CACHE_SIZE": "9"}).memo_cache_size == 9
    with pytest.raises(ConfigError):
        StoreSettings(memo_cache_size=0)


def test_invalid_values_raise():
    with pytest.raises(ConfigError):
        StoreSettings(change_log_capacity=0)
    with pytest.raises(ConfigError):
        StoreSettings.from_dict({"store": {"chunk_size": "lots"}})
    with pytest.raises(ConfigError):
        load_settings(environ={"CAMPAIGN_STORE_CHUNK_SIZE": "x"})
