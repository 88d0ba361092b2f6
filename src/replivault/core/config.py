# Core - Vault Configuration
#
# JSON config file describing which backends are enabled and how to reach
# them, plus vault settings. The remote token may be kept out of the file
# and supplied through the environment (or a .env file) instead:
#
#   REPLIVAULT_CONFIG        - config file path (default ~/.replivault/config.json)
#   REPLIVAULT_REMOTE_TOKEN  - overrides remote.token

import json
import logging
import os
from dataclasses import asdict, dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from dotenv import load_dotenv

from .errors import ConfigError, IOFailure, SerializationFailure

logger = logging.getLogger(__name__)

CONFIG_VERSION = "1.0.0"
APP_DIR = Path.home() / ".replivault"
DEFAULT_CONFIG_PATH = APP_DIR / "config.json"
DEFAULT_DATA_PATH = APP_DIR / "vault.json"

ENV_CONFIG_PATH = "REPLIVAULT_CONFIG"
ENV_REMOTE_TOKEN = "REPLIVAULT_REMOTE_TOKEN"


@dataclass
class LocalStorageConfig:
    enabled: bool = True
    data_path: Path = DEFAULT_DATA_PATH


@dataclass
class RemoteStorageConfig:
    enabled: bool = False
    owner: str = ""
    repo: str = ""
    branch: str = "main"
    token: str = ""
    file_path: str = "vault.json"
    base_url: str = "https://api.github.com"
    timeout_seconds: float = 15.0
    max_retries: int = 3
    author_name: Optional[str] = None
    author_email: Optional[str] = None

    def __repr__(self) -> str:
        # Never echo the token
        return (
            f"RemoteStorageConfig(enabled={self.enabled}, owner={self.owner!r}, "
            f"repo={self.repo!r}, branch={self.branch!r}, file_path={self.file_path!r})"
        )


@dataclass
class Settings:
    default_password_length: int = 16
    master_passphrase_hash: Optional[str] = None
    kdf_time_cost: int = 3
    kdf_memory_cost: int = 65536  # KiB
    kdf_parallelism: int = 4


@dataclass
class VaultConfig:
    """Complete vault configuration. Treat instances as values: copy, don't mutate shared ones."""

    local: LocalStorageConfig = field(default_factory=LocalStorageConfig)
    remote: Optional[RemoteStorageConfig] = None
    settings: Settings = field(default_factory=Settings)
    version: str = CONFIG_VERSION

    def enabled_targets(self) -> List[str]:
        targets = []
        if self.local.enabled:
            targets.append("local")
        if self.remote is not None and self.remote.enabled:
            targets.append("remote")
        return targets

    def validate(self) -> None:
        """
        Raises:
            ConfigError: If no backend is enabled or an enabled one is incomplete.
        """
        if not self.enabled_targets():
            raise ConfigError("at least one storage backend must be enabled")
        if self.local.enabled and not str(self.local.data_path).strip():
            raise ConfigError("local storage path cannot be empty")
        remote = self.remote
        if remote is not None and remote.enabled:
            missing = [name for name in ("owner", "repo", "token") if not getattr(remote, name)]
            if missing:
                raise ConfigError(f"remote storage configuration is incomplete: missing {', '.join(missing)}")
            if remote.timeout_seconds <= 0:
                raise ConfigError("remote timeout_seconds must be positive")
        if self.settings.default_password_length < 1:
            raise ConfigError("default_password_length must be at least 1")

    def with_settings(self, **changes: Any) -> "VaultConfig":
        """Return a copy with some settings replaced."""
        return replace(self, settings=replace(self.settings, **changes))

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["local"]["data_path"] = str(self.local.data_path)
        remote = data.get("remote")
        if remote and remote["token"] and remote["token"] == os.getenv(ENV_REMOTE_TOKEN):
            # Supplied by the environment; keep it out of the file
            remote["token"] = ""
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VaultConfig":
        if not isinstance(data, dict):
            raise SerializationFailure("config must be a JSON object")
        try:
            local_data = dict(data.get("local") or {})
            if "data_path" in local_data:
                local_data["data_path"] = Path(local_data["data_path"]).expanduser()
            remote_data = data.get("remote")
            return cls(
                local=LocalStorageConfig(**local_data),
                remote=RemoteStorageConfig(**remote_data) if remote_data else None,
                settings=Settings(**(data.get("settings") or {})),
                version=data.get("version", CONFIG_VERSION),
            )
        except TypeError as exc:
            raise SerializationFailure(f"invalid config: {exc}") from exc

    @classmethod
    def load(cls, path: Optional[Union[str, Path]] = None) -> "VaultConfig":
        """Load config from ``path`` (missing file -> defaults), then apply env overrides."""
        load_dotenv()
        config_path = resolve_config_path(path)

        if config_path.exists():
            try:
                raw = json.loads(config_path.read_text(encoding="utf-8"))
            except UnicodeDecodeError as exc:
                raise SerializationFailure(f"config {config_path} is not valid UTF-8: {exc}") from exc
            except OSError as exc:
                raise IOFailure(f"cannot read config {config_path}: {exc}") from exc
            except json.JSONDecodeError as exc:
                raise SerializationFailure(f"config {config_path} is not valid JSON: {exc}") from exc
            config = cls.from_dict(raw)
            logger.info("Loaded config from %s", config_path)
        else:
            logger.info("No config at %s; using defaults", config_path)
            config = cls()

        token = os.getenv(ENV_REMOTE_TOKEN)
        if token and config.remote is not None:
            config.remote.token = token
        return config

    def save(self, path: Optional[Union[str, Path]] = None) -> Path:
        """Write config atomically with owner-only permissions."""
        config_path = resolve_config_path(path)
        tmp_path = config_path.with_name(config_path.name + ".tmp")
        try:
            config_path.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(self.to_dict(), f, indent=2)
            os.replace(tmp_path, config_path)
        except OSError as exc:
            if tmp_path.exists():
                tmp_path.unlink()
            raise IOFailure(f"cannot write config {config_path}: {exc}") from exc
        return config_path


def resolve_config_path(path: Optional[Union[str, Path]] = None) -> Path:
    if path is not None:
        return Path(path).expanduser()
    env_path = os.getenv(ENV_CONFIG_PATH)
    if env_path:
        return Path(env_path).expanduser()
    return DEFAULT_CONFIG_PATH
