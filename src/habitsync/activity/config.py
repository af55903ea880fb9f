"""Activity subsystem configuration with file and environment loading."""

import json
import logging
import os
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Union

from .exceptions import ConfigurationError, ValidationError

logger = logging.getLogger(__name__)


def default_config_paths():
    """Locations searched for a configuration file, in priority order."""
    return [
        Path.cwd() / "habitsync.json",
        Path.home() / ".habitsync" / "config.json",
        Path.home() / ".config" / "habitsync" / "config.json",
    ]


@dataclass
class ActivityConfig:
    """Configuration for the activity store, Authority access, and sync."""

    # Local store settings
    store_path: str = "~/.habitsync/activity.db"
    storage_key: str = "activities:v1"
    store_timeout: float = 30.0

    # Authority settings
    authority_url: Optional[str] = None
    ledger_path: str = "~/.habitsync/ledger.db"
    request_timeout: float = 10.0
    list_limit: int = 2000

    # Sync settings
    max_retries: int = 2
    retry_delay: float = 0.5
    retry_backoff: float = 2.0
    rate_limit_delay: float = 0.0
    progress_reporter: str = "logging"

    # Logging settings
    log_level: str = "INFO"

    def __post_init__(self):
        """Post-initialization validation."""
        self.validate()

    @property
    def store_file(self) -> Path:
        return Path(self.store_path).expanduser()

    @property
    def ledger_file(self) -> Path:
        return Path(self.ledger_path).expanduser()

    @property
    def ledger_url(self) -> str:
        """SQLAlchemy URL of the local reference Authority."""
        return f"sqlite:///{self.ledger_file}"

    def validate(self) -> None:
        """Validate configuration settings."""
        errors = []

        if not self.store_path:
            errors.append("store_path cannot be empty")

        if not self.storage_key:
            errors.append("storage_key cannot be empty")

        if self.store_timeout <= 0 or self.store_timeout > 300:
            errors.append("store_timeout must be between 0 and 300 seconds")

        if self.authority_url is not None and not self.authority_url.startswith(("http://", "https://")):
            errors.append("authority_url must be an http(s) URL")

        if self.request_timeout <= 0 or self.request_timeout > 300:
            errors.append("request_timeout must be between 0 and 300 seconds")

        if self.list_limit < 1 or self.list_limit > 10000:
            errors.append("list_limit must be between 1 and 10000")

        if self.max_retries < 1 or self.max_retries > 10:
            errors.append("max_retries must be between 1 and 10")

        if self.retry_delay < 0 or self.retry_delay > 300:
            errors.append("retry_delay must be between 0 and 300 seconds")

        if self.retry_backoff < 1:
            errors.append("retry_backoff must be at least 1")

        if self.rate_limit_delay < 0 or self.rate_limit_delay > 60:
            errors.append("rate_limit_delay must be between 0 and 60 seconds")

        valid_reporters = ['logging', 'tqdm', 'silent']
        if self.progress_reporter not in valid_reporters:
            errors.append(f"progress_reporter must be one of {valid_reporters}")

        valid_log_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if self.log_level.upper() not in valid_log_levels:
            errors.append(f"log_level must be one of {valid_log_levels}")

        if errors:
            raise ValidationError(f"Configuration validation failed: {'; '.join(errors)}")

    @classmethod
    def from_file(cls, config_path: Optional[Union[str, Path]] = None) -> "ActivityConfig":
        """Load configuration from a JSON file, searching default locations if none given."""
        if config_path is None:
            for path in default_config_paths():
                if path.exists():
                    config_path = path
                    break
            else:
                logger.info("No configuration file found, using defaults")
                return cls()

        config_path = Path(config_path)
        if not config_path.exists():
            raise ConfigurationError(f"Configuration file not found: {config_path}", config_file=str(config_path))

        return cls._load_from_json(config_path)

    @classmethod
    def _load_from_json(cls, config_path: Path) -> "ActivityConfig":
        """Load configuration from JSON file."""
        try:
            with open(config_path, encoding='utf-8') as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON in configuration file: {e}", config_file=str(config_path))
        except OSError as e:
            raise ConfigurationError(f"Failed to read configuration file: {e}", config_file=str(config_path))

        if not isinstance(data, dict):
            raise ConfigurationError("Configuration file must contain a JSON object", config_file=str(config_path))

        # Filter only valid fields
        valid_fields = {field.name for field in cls.__dataclass_fields__.values()}
        filtered_data = {k: v for k, v in data.items() if k in valid_fields}

        logger.info(f"Loaded configuration from {config_path}")
        return cls(**filtered_data)

    @classmethod
    def environment_overrides(cls) -> Dict[str, Any]:
        """Collect typed field values from HABITSYNC_* environment variables."""
        env_mapping = {
            'HABITSYNC_STORE_PATH': 'store_path',
            'HABITSYNC_STORAGE_KEY': 'storage_key',
            'HABITSYNC_STORE_TIMEOUT': 'store_timeout',
            'HABITSYNC_AUTHORITY_URL': 'authority_url',
            'HABITSYNC_LEDGER_PATH': 'ledger_path',
            'HABITSYNC_REQUEST_TIMEOUT': 'request_timeout',
            'HABITSYNC_LIST_LIMIT': 'list_limit',
            'HABITSYNC_MAX_RETRIES': 'max_retries',
            'HABITSYNC_RETRY_DELAY': 'retry_delay',
            'HABITSYNC_RETRY_BACKOFF': 'retry_backoff',
            'HABITSYNC_RATE_LIMIT_DELAY': 'rate_limit_delay',
            'HABITSYNC_PROGRESS': 'progress_reporter',
            'HABITSYNC_LOG_LEVEL': 'log_level',
        }
        converters = {int: int, float: float, 'int': int, 'float': float}

        updates = {}
        for env_var, config_key in env_mapping.items():
            value = os.getenv(env_var)
            if value is None:
                continue
            field_type = cls.__dataclass_fields__[config_key].type
            convert = converters.get(field_type)
            try:
                updates[config_key] = convert(value) if convert else value
            except (ValueError, TypeError) as e:
                logger.warning(f"Invalid value for {env_var}: {value}, error: {e}")
        return updates

    @classmethod
    def from_environment(cls) -> "ActivityConfig":
        """Load configuration from environment variables over defaults."""
        updates = cls.environment_overrides()
        if updates:
            logger.info(f"Updated configuration from environment variables: {list(updates.keys())}")
        return cls(**updates)

    def update(self, **kwargs) -> "ActivityConfig":
        """Create a new configuration with updated values."""
        current_data = asdict(self)
        current_data.update(kwargs)
        return self.__class__(**current_data)

    def save_to_file(self, config_path: Union[str, Path]) -> None:
        """Save configuration to file."""
        config_path = Path(config_path)

        try:
            config_path.parent.mkdir(parents=True, exist_ok=True)
            with open(config_path, 'w', encoding='utf-8') as f:
                json.dump(asdict(self), f, indent=2, sort_keys=True)
            logger.info(f"Configuration saved to {config_path}")
        except OSError as e:
            raise ConfigurationError(f"Failed to save configuration to {config_path}: {e}", config_file=str(config_path))

    def apply_logging_config(self) -> None:
        """Apply logging configuration."""
        logging.basicConfig(
            level=getattr(logging, self.log_level.upper()),
            format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

    def get_summary(self) -> str:
        """Get a human-readable configuration summary."""
        lines = [
            "Activity Configuration Summary:",
            f"  Local store: {self.store_file} (key {self.storage_key})",
            f"  Authority: {self.authority_url or f'local ledger {self.ledger_file}'}",
            f"  Sync: {self.max_retries} attempts, {self.retry_delay}s delay x{self.retry_backoff}",
            f"  List limit: {self.list_limit}",
            f"  Logging: {self.log_level}",
        ]
        return "\n".join(lines)


class ConfigManager:
    """Configuration manager with file and environment support."""

    def __init__(self):
        self._config: Optional[ActivityConfig] = None

    def get_config(self, config_path: Optional[Union[str, Path]] = None,
                   use_environment: bool = True) -> ActivityConfig:
        """Get configuration with priority: environment > file > defaults."""
        if self._config is not None:
            return self._config

        try:
            config = ActivityConfig.from_file(config_path)
            if use_environment:
                env_updates = ActivityConfig.environment_overrides()
                if env_updates:
                    config = config.update(**env_updates)
        except (ConfigurationError, ValidationError) as e:
            logger.error(f"Failed to load configuration: {e}")
            # Fallback to defaults
            config = ActivityConfig()

        self._config = config
        return config

    def reload_config(self, config_path: Optional[Union[str, Path]] = None) -> ActivityConfig:
        """Reload configuration, discarding cached version."""
        self._config = None
        return self.get_config(config_path)


# Global configuration manager instance
config_manager = ConfigManager()
