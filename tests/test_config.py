from __future__ import annotations

import json
import logging

from request_toolkit.core.config import (
    CONFIG_ENV_VAR,
    DEFAULT_MAX_JSON_BYTES,
    DEFAULT_MAX_UPLOAD_BYTES,
    ToolkitConfig,
)


def test_defaults():
    config = ToolkitConfig()
    assert config.max_upload_bytes == DEFAULT_MAX_UPLOAD_BYTES == 1024**3
    assert config.max_json_bytes == DEFAULT_MAX_JSON_BYTES == 1024**2
    assert config.allowed_content_types == []
    assert config.allow_unknown_json_fields is False


def test_non_positive_limits_fall_back_to_defaults():
    config = ToolkitConfig(max_upload_bytes=0, max_json_bytes=-5)
    assert config.max_upload_bytes == DEFAULT_MAX_UPLOAD_BYTES
    assert config.max_json_bytes == DEFAULT_MAX_JSON_BYTES


def test_effective_limits_after_mutation():
    config = ToolkitConfig()
    config.max_upload_bytes = 0
    config.max_json_bytes = 0
    assert config.effective_upload_limit() == DEFAULT_MAX_UPLOAD_BYTES
    assert config.effective_json_limit() == DEFAULT_MAX_JSON_BYTES


def test_allows_content_type():
    assert ToolkitConfig().allows_content_type("anything/at-all")
    config = ToolkitConfig(allowed_content_types=["Image/PNG", "image/jpeg"])
    assert config.allows_content_type("image/png")
    assert not config.allows_content_type("image/gif")


def test_load_without_path_uses_defaults(monkeypatch):
    monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
    assert ToolkitConfig.load() == ToolkitConfig()


def test_load_from_env_path(tmp_path, monkeypatch):
    path = tmp_path / "toolkit.json"
    path.write_text(json.dumps({"max_json_bytes": 2048, "allowed_content_types": ["image/png"]}), encoding="utf-8")
    monkeypatch.setenv(CONFIG_ENV_VAR, str(path))

    config = ToolkitConfig.load()

    assert config.max_json_bytes == 2048
    assert config.allowed_content_types == ["image/png"]
    assert config.max_upload_bytes == DEFAULT_MAX_UPLOAD_BYTES


def test_load_missing_file(tmp_path):
    assert ToolkitConfig.load(tmp_path / "absent.json") == ToolkitConfig()


def test_load_directory_path(tmp_path):
    assert ToolkitConfig.load(tmp_path) == ToolkitConfig()


def test_load_corrupt_json(tmp_path, caplog):
    path = tmp_path / "toolkit.json"
    path.write_text("{not json", encoding="utf-8")
    with caplog.at_level(logging.WARNING, logger="request-toolkit.config"):
        assert ToolkitConfig.load(path) == ToolkitConfig()
    assert "Corrupt config JSON" in caplog.text


def test_load_invalid_schema(tmp_path, caplog):
    path = tmp_path / "toolkit.json"
    path.write_text(json.dumps({"allow_unknown_json_fields": {"nested": True}}), encoding="utf-8")
    with caplog.at_level(logging.WARNING, logger="request-toolkit.config"):
        assert ToolkitConfig.load(path) == ToolkitConfig()
    assert "Invalid config schema" in caplog.text


def test_load_empty_file(tmp_path):
    path = tmp_path / "toolkit.json"
    path.write_text("", encoding="utf-8")
    assert ToolkitConfig.load(path) == ToolkitConfig()
