"""
Tests for VaultConfig: validation, JSON round trip, env overrides.
"""

import json
import os
import stat
from pathlib import Path

import pytest

from replivault.core.config import (
    DEFAULT_CONFIG_PATH,
    ENV_CONFIG_PATH,
    ENV_REMOTE_TOKEN,
    LocalStorageConfig,
    RemoteStorageConfig,
    VaultConfig,
    resolve_config_path,
)
from replivault.core.errors import ConfigError, SerializationFailure


def _remote(**overrides):
    values = {"enabled": True, "owner": "octo", "repo": "secrets", "token": "t0ken"}
    values.update(overrides)
    return RemoteStorageConfig(**values)


# ===================================================================
# Validation
# ===================================================================

class TestValidate:
    def test_defaults_valid(self):
        config = VaultConfig()
        config.validate()
        assert config.enabled_targets() == ["local"]

    def test_no_backend(self):
        config = VaultConfig(local=LocalStorageConfig(enabled=False))
        with pytest.raises(ConfigError, match="at least one"):
            config.validate()

    def test_remote_only(self):
        config = VaultConfig(local=LocalStorageConfig(enabled=False), remote=_remote())
        config.validate()
        assert config.enabled_targets() == ["remote"]

    @pytest.mark.parametrize("field", ["owner", "repo", "token"])
    def test_incomplete_remote(self, field):
        config = VaultConfig(remote=_remote(**{field: ""}))
        with pytest.raises(ConfigError, match=field):
            config.validate()

    def test_disabled_remote_not_checked(self):
        VaultConfig(remote=RemoteStorageConfig(enabled=False)).validate()

    def test_empty_local_path(self):
        with pytest.raises(ConfigError, match="path"):
            VaultConfig(local=LocalStorageConfig(data_path="")).validate()

    def test_bad_timeout(self):
        with pytest.raises(ConfigError, match="timeout"):
            VaultConfig(remote=_remote(timeout_seconds=0)).validate()

    def test_bad_password_length(self):
        with pytest.raises(ConfigError):
            VaultConfig().with_settings(default_password_length=0).validate()


# ===================================================================
# Serialization
# ===================================================================

class TestSerialization:
    def test_round_trip(self, tmp_path):
        config = VaultConfig(
            local=LocalStorageConfig(data_path=tmp_path / "v.json"),
            remote=_remote(branch="vault", author_name="Ann", author_email="ann@example.com"),
        ).with_settings(default_password_length=24)
        path = config.save(tmp_path / "config.json")
        assert VaultConfig.load(path) == config

    def test_with_settings_copies(self):
        config = VaultConfig()
        changed = config.with_settings(master_passphrase_hash="$argon2id$x")
        assert config.settings.master_passphrase_hash is None
        assert changed.settings.master_passphrase_hash == "$argon2id$x"

    @pytest.mark.skipif(os.name != "posix", reason="POSIX permissions")
    def test_save_owner_only(self, tmp_path):
        path = VaultConfig().save(tmp_path / "config.json")
        assert stat.S_IMODE(path.stat().st_mode) == 0o600
        assert not (tmp_path / "config.json.tmp").exists()

    def test_missing_file_gives_defaults(self, tmp_path):
        assert VaultConfig.load(tmp_path / "absent.json") == VaultConfig()

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("{", encoding="utf-8")
        with pytest.raises(SerializationFailure):
            VaultConfig.load(path)

    def test_invalid_utf8(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_bytes(b"\xff\xfe{}")
        with pytest.raises(SerializationFailure, match="UTF-8"):
            VaultConfig.load(path)

    def test_unknown_key(self):
        with pytest.raises(SerializationFailure):
            VaultConfig.from_dict({"local": {"enabled": True, "colour": "red"}})

    def test_expands_user_in_data_path(self):
        config = VaultConfig.from_dict({"local": {"data_path": "~/vault.json"}})
        assert config.local.data_path == Path.home() / "vault.json"

    def test_repr_hides_token(self):
        assert "t0ken" not in repr(_remote())


# ===================================================================
# Environment
# ===================================================================

class TestEnvironment:
    def test_config_path_from_env(self, tmp_path, monkeypatch):
        monkeypatch.setenv(ENV_CONFIG_PATH, str(tmp_path / "c.json"))
        assert resolve_config_path() == tmp_path / "c.json"

    def test_default_config_path(self):
        assert resolve_config_path() == DEFAULT_CONFIG_PATH

    def test_token_override(self, tmp_path, monkeypatch):
        path = VaultConfig(remote=_remote(token="from-file")).save(tmp_path / "config.json")
        monkeypatch.setenv(ENV_REMOTE_TOKEN, "from-env")
        assert VaultConfig.load(path).remote.token == "from-env"

    def test_env_token_not_written_back(self, tmp_path, monkeypatch):
        monkeypatch.setenv(ENV_REMOTE_TOKEN, "from-env")
        path = VaultConfig(remote=_remote(token="from-env")).save(tmp_path / "config.json")
        assert json.loads(path.read_text(encoding="utf-8"))["remote"]["token"] == ""
