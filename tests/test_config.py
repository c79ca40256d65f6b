"""Tests for config.py - defaults, validation and source merging."""

import os
import tempfile
from pathlib import Path

import pytest

from keystone_indexer.config import IndexerConfig, load_config
from keystone_indexer.exceptions import ConfigurationError, InvalidConfigError


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """No KEYSTONE_* variables and no project config file in the cwd."""
    for key in list(os.environ):
        if key.startswith("KEYSTONE_"):
            monkeypatch.delenv(key)
    monkeypatch.chdir(tmp_path)
    return tmp_path


class TestDefaults:
    def test_defaults(self):
        config = IndexerConfig()
        assert config.poll_interval == 5.0
        assert config.page_size == 1000
        assert config.fetch_attempts == 3
        assert (config.backoff_base, config.backoff_multiplier, config.backoff_max) == (
            1.0,
            2.0,
            10.0,
        )
        assert config.contract_id is None
        assert config.expiring_window_seconds == 24 * 3600

    def test_frozen(self):
        config = IndexerConfig()
        with pytest.raises(AttributeError):
            config.poll_interval = 1.0


class TestValidation:
    @pytest.mark.parametrize(
        "key,value",
        [
            ("rpc_url", "localhost:8000"),
            ("page_size", 0),
            ("page_size", 10001),
            ("poll_interval", 0),
            ("fetch_attempts", 0),
            ("backoff_multiplier", 0.5),
            ("backoff_max", 0.5),
            ("expiring_window_hours", 0),
            ("db_path", ""),
            ("verbosity", "loud"),
        ],
    )
    def test_invalid_values(self, key, value):
        with pytest.raises(InvalidConfigError) as exc_info:
            IndexerConfig(**{key: value})
        assert exc_info.value.key == key
        assert str(exc_info.value).startswith("[KI400]")


class TestLoadConfig:
    def test_overrides(self, clean_env):
        config = load_config(poll_interval=2.0, contract_id=None)
        assert config.poll_interval == 2.0
        assert config.contract_id is None

    def test_verbose_flag(self, clean_env):
        assert load_config(verbose=True).verbosity == "verbose"
        assert load_config(quiet=True).verbosity == "quiet"
        assert load_config(verbose=False).verbosity == "normal"

    def test_project_file(self, clean_env):
        (clean_env / "keystone-indexer.toml").write_text('page_size = 50\ndb_path = "x.db"\n')
        config = load_config()
        assert config.page_size == 50
        assert config.db_path == "x.db"

    def test_indexer_table(self, clean_env):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "custom.toml"
            path.write_text('[indexer]\nrpc_url = "https://rpc.example/soroban"\n')
            assert load_config(config_file=path).rpc_url == "https://rpc.example/soroban"

    def test_priority(self, clean_env, monkeypatch):
        (clean_env / "keystone-indexer.toml").write_text("page_size = 50\npoll_interval = 3.0\n")
        explicit = clean_env / "explicit.toml"
        explicit.write_text("page_size = 60\n")
        monkeypatch.setenv("KEYSTONE_PAGE_SIZE", "70")

        config = load_config(config_file=explicit)
        assert config.page_size == 70
        assert config.poll_interval == 3.0

        assert load_config(config_file=explicit, page_size=80).page_size == 80

    def test_env_types(self, clean_env, monkeypatch):
        monkeypatch.setenv("KEYSTONE_POLL_INTERVAL", "0.5")
        monkeypatch.setenv("KEYSTONE_CONTRACT_ID", "CABC")
        config = load_config()
        assert config.poll_interval == 0.5
        assert config.contract_id == "CABC"

    def test_bad_env_value(self, clean_env, monkeypatch):
        monkeypatch.setenv("KEYSTONE_PAGE_SIZE", "lots")
        with pytest.raises(InvalidConfigError):
            load_config()

    def test_missing_file(self, clean_env):
        with pytest.raises(ConfigurationError):
            load_config(config_file=clean_env / "missing.toml")

    def test_invalid_toml(self, clean_env):
        path = clean_env / "broken.toml"
        path.write_text("page_size = \n")
        with pytest.raises(ConfigurationError):
            load_config(config_file=path)

    def test_unknown_key(self, clean_env):
        (clean_env / "keystone-indexer.toml").write_text("pool_interval = 3\n")
        with pytest.raises(ConfigurationError, match="pool_interval"):
            load_config()
