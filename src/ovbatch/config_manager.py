"""Configuration management module.

This module handles persistent configuration storage using TOML format.
Stores connection defaults (engine URL, user), the concurrency limit, the
remote call timeout and the infrastructure names new VMs are attached to.

Security:
- Config file permissions: 0600 (owner read/write only)
- Passwords are never stored in the config file
"""

import logging
import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any

try:
    import tomli  # type: ignore[import]
except ImportError:
    # Python 3.11+ ships the same parser as tomllib
    import tomllib as tomli  # type: ignore[import,no-redef]

import tomlkit

logger = logging.getLogger(__name__)


class ConfigError(Exception):
    """Raised when configuration operations fail."""

    pass


@dataclass
class OvbatchConfig:
    """ovbatch configuration data."""

    url: str | None = None
    username: str | None = None
    insecure: bool = True
    concurrency: int = 5
    request_timeout: float = 120.0  # seconds per engine API call
    storage_domain: str = "my_storage_domain"
    vnic_profile: str = "my_network"
    disk_interface: str = "virtio"
    nic_interface: str = "virtio"
    disk_format: str = "cow"
    sparse: bool = True

    def __post_init__(self) -> None:
        if self.concurrency < 1:
            raise ConfigError(f"concurrency must be a positive integer, got {self.concurrency}")
        if self.request_timeout <= 0:
            raise ConfigError(f"request_timeout must be positive, got {self.request_timeout}")

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary, excluding None values."""
        data = asdict(self)
        # Filter out None values as TOML doesn't support them
        return {k: v for k, v in data.items() if v is not None}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "OvbatchConfig":
        """Create from dictionary, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            logger.warning(f"Ignoring unknown config keys: {', '.join(sorted(unknown))}")
        return cls(**{k: v for k, v in data.items() if k in known})


def _coerce(key: str, value: str) -> Any:
    """Convert a string from the command line to the field's type."""
    defaults = OvbatchConfig()
    if key not in {f.name for f in fields(OvbatchConfig)}:
        raise ConfigError(f"Unknown config key: {key}")

    current = getattr(defaults, key)
    if isinstance(current, bool):
        lowered = value.strip().lower()
        if lowered in ("true", "yes", "1", "on"):
            return True
        if lowered in ("false", "no", "0", "off"):
            return False
        raise ConfigError(f"{key} must be true or false, got {value!r}")
    if isinstance(current, int):
        try:
            return int(value)
        except ValueError as e:
            raise ConfigError(f"{key} must be an integer, got {value!r}") from e
    if isinstance(current, float):
        try:
            return float(value)
        except ValueError as e:
            raise ConfigError(f"{key} must be a number, got {value!r}") from e
    return value


class ConfigManager:
    """Manage ovbatch configuration file.

    Configuration is stored at ~/.ovbatch/config.toml with secure permissions.
    """

    DEFAULT_CONFIG_DIR = Path.home() / ".ovbatch"
    DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.toml"

    @classmethod
    def get_config_path(cls, custom_path: str | None = None) -> Path:
        """Get configuration file path.

        Args:
            custom_path: Custom config file path (optional)

        Returns:
            Path to config file

        Raises:
            ConfigError: If a custom path was given and does not exist
        """
        if custom_path:
            path = Path(custom_path).expanduser().resolve()
            if not path.exists():
                raise ConfigError(f"Config file not found: {path}")
            return path

        return cls.DEFAULT_CONFIG_FILE

    @classmethod
    def load_config(cls, custom_path: str | None = None) -> OvbatchConfig:
        """Load configuration from file.

        Args:
            custom_path: Custom config file path (optional)

        Returns:
            OvbatchConfig object (defaults if no file exists)

        Raises:
            ConfigError: If loading fails
        """
        config_path = cls.get_config_path(custom_path)

        if not config_path.exists():
            logger.debug("Config file not found, using defaults")
            return OvbatchConfig()

        try:
            mode = config_path.stat().st_mode & 0o777
            if mode & 0o077:  # Check if group/other have any permissions
                logger.warning(
                    f"Config file has insecure permissions: {oct(mode)}. Fixing to 0600..."
                )
                os.chmod(config_path, 0o600)

            with open(config_path, "rb") as f:
                data = tomli.load(f)

            logger.debug(f"Loaded config from: {config_path}")
            return OvbatchConfig.from_dict(data)

        except ConfigError:
            raise
        except Exception as e:
            raise ConfigError(f"Failed to load config: {e}") from e

    @classmethod
    def save_config(cls, config: OvbatchConfig, custom_path: str | None = None) -> Path:
        """Save configuration to file.

        Existing comments and formatting are preserved (tomlkit). The file
        is written to a temporary path and renamed into place.

        Returns:
            Path the config was written to

        Raises:
            ConfigError: If saving fails
        """
        temp_path: Path | None = None
        try:
            if custom_path:
                config_path = Path(custom_path).expanduser().resolve()
                config_path.parent.mkdir(parents=True, exist_ok=True)
            else:
                cls.DEFAULT_CONFIG_DIR.mkdir(parents=True, exist_ok=True)
                os.chmod(cls.DEFAULT_CONFIG_DIR, 0o700)
                config_path = cls.DEFAULT_CONFIG_FILE

            temp_path = config_path.with_suffix(".tmp")

            if config_path.exists():
                with open(config_path) as f:
                    doc = tomlkit.load(f)
            else:
                doc = tomlkit.document()
            for key, value in config.to_dict().items():
                doc[key] = value

            with open(temp_path, "w") as f:
                tomlkit.dump(doc, f)

            os.chmod(temp_path, 0o600)
            temp_path.replace(config_path)

            logger.debug(f"Saved config to: {config_path}")
            return config_path

        except Exception as e:
            if temp_path and temp_path.exists():
                temp_path.unlink()
            raise ConfigError(f"Failed to save config: {e}") from e

    @classmethod
    def update_config(cls, key: str, value: str, custom_path: str | None = None) -> OvbatchConfig:
        """Set one key from its string form and save.

        Raises:
            ConfigError: If the key is unknown or the value invalid
        """
        if key == "password":
            raise ConfigError("Passwords are not stored in the config file; use OVBATCH_PASSWORD")

        if custom_path and not Path(custom_path).expanduser().exists():
            # set may create a new custom file
            config = OvbatchConfig()
        else:
            config = cls.load_config(custom_path)

        data = asdict(config)
        data[key] = _coerce(key, value)
        updated = OvbatchConfig(**data)
        cls.save_config(updated, custom_path)
        return updated


__all__ = ["ConfigError", "ConfigManager", "OvbatchConfig"]
