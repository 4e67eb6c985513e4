"""
Unit tests for backchannel/core/config.py.
"""

import json

import pytest
from pydantic import ValidationError

from backchannel.core.config import (
    CACHE_BACKEND_ENV_VAR,
    CONFIG_FILE_NAME,
    DATA_ROOT_ENV_VAR,
    get_data_dir,
    load_config,
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    monkeypatch.delenv(CACHE_BACKEND_ENV_VAR, raising=False)


class TestDataDir:

    def test_env_var_wins(self, tmp_path, monkeypatch):
        target = tmp_path / "custom"
        monkeypatch.setenv(DATA_ROOT_ENV_VAR, str(target))
        assert get_data_dir() == target
        assert target.is_dir()


class TestLoadConfig:

    def test_defaults_written_back(self, tmp_path):
        config = load_config(tmp_path)
        assert config.cache_backend == "file"
        written = json.loads((tmp_path / CONFIG_FILE_NAME).read_text())
        assert written["cache_file_name"] == "local_storage.json"
        assert "seed_file" in written

    def test_file_values_merged_with_defaults(self, tmp_path):
        (tmp_path / CONFIG_FILE_NAME).write_text(json.dumps({"seed_file": "stores.yaml"}))
        config = load_config(tmp_path)
        assert config.seed_file == "stores.yaml"
        assert config.log_level == "INFO"

    def test_invalid_file_falls_back_to_defaults(self, tmp_path):
        (tmp_path / CONFIG_FILE_NAME).write_text("{nope")
        assert load_config(tmp_path).cache_backend == "file"

    def test_env_overrides_cache_backend(self, tmp_path, monkeypatch):
        monkeypatch.setenv(CACHE_BACKEND_ENV_VAR, "memory")
        assert load_config(tmp_path).cache_backend == "memory"

    def test_unknown_cache_backend_rejected(self, tmp_path, monkeypatch):
        monkeypatch.setenv(CACHE_BACKEND_ENV_VAR, "redis")
        with pytest.raises(ValidationError):
            load_config(tmp_path)
