"""Configuration loading for telegram-logger."""

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

DEFAULT_STATE_DIR = Path.home() / ".telegram-logger"
DEFAULT_CONFIG_PATH = DEFAULT_STATE_DIR / "config.yaml"

# field name -> environment variable
ENV_VARS = {
    "bot_token": "TELEGRAM_LOGGER_BOT_TOKEN",
    "chat_id": "TELEGRAM_LOGGER_CHAT_ID",
    "project_name": "TELEGRAM_LOGGER_PROJECT_NAME",
    "environment": "TELEGRAM_LOGGER_ENVIRONMENT",
    "notify_environments": "TELEGRAM_LOGGER_NOTIFY_ENVIRONMENTS",
    "level": "TELEGRAM_LOGGER_LEVEL",
    "throttle": "TELEGRAM_LOGGER_THROTTLE",
    "log_path": "TELEGRAM_LOGGER_LOG_PATH",
    "monitor_levels": "TELEGRAM_LOGGER_MONITOR_LEVELS",
    "position_storage": "TELEGRAM_LOGGER_POSITION_STORAGE",
    "state_dir": "TELEGRAM_LOGGER_STATE_DIR",
    "api_base": "TELEGRAM_LOGGER_API_BASE",
}


def split_list(value: str | list[str] | tuple[str, ...]) -> list[str]:
    """Split a comma-separated string into trimmed, non-empty items."""
    items = value.split(",") if isinstance(value, str) else value
    return [str(item).strip() for item in items if str(item).strip()]


@dataclass
class Config:
    """Application configuration."""

    bot_token: str = ""
    chat_id: str = ""
    project_name: str = "Laravel"
    environment: str = "production"
    notify_environments: list[str] = field(default_factory=lambda: ["production", "staging"])
    level: str = "error"  # Minimum level for the embedded handler
    throttle: int = 60  # Seconds; 0 disables
    log_path: Path = Path("storage/logs/laravel.log")
    monitor_levels: list[str] = field(
        default_factory=lambda: ["ERROR", "CRITICAL", "ALERT", "EMERGENCY"]
    )
    position_storage: str = "cache"  # "cache" or "file"
    state_dir: Path = DEFAULT_STATE_DIR
    api_base: str = "https://api.telegram.org"

    @property
    def cache_path(self) -> Path:
        """SQLite cache holding throttle markers and cached positions."""
        return self.state_dir / "cache.db"

    @property
    def position_file(self) -> Path:
        """JSON position file used when position_storage is 'file'."""
        return self.state_dir / "telegram-logger-position.json"

    @property
    def fallback_log_path(self) -> Path:
        """Where the embedded handler records its own failures."""
        return self.state_dir / "telegram-logger-errors.log"

    def update(self, values: dict[str, Any]) -> None:
        """Apply raw values (from YAML or env), coercing them to field types."""
        known = {f.name for f in fields(self)}
        for name, value in values.items():
            if name not in known or value is None:
                continue

            if name in ("notify_environments", "monitor_levels"):
                value = split_list(value)
            elif name == "throttle":
                value = int(value)
            elif name in ("log_path", "state_dir"):
                value = Path(value).expanduser()
            else:
                value = str(value)

            setattr(self, name, value)

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from environment variables."""
        config = cls()

        # Framework-wide names as fallbacks
        fallbacks = {"project_name": "APP_NAME", "environment": "APP_ENV"}
        config.update(
            {name: os.environ[var] for name, var in fallbacks.items() if var in os.environ}
        )
        config.update(
            {name: os.environ[var] for name, var in ENV_VARS.items() if var in os.environ}
        )

        return config

    @classmethod
    def from_file(cls, path: Path) -> "Config":
        """Load configuration from YAML file, with env var overrides."""
        config = cls()

        if path.exists():
            with open(path) as f:
                data = yaml.safe_load(f)

            if data and "telegram" in data:
                tg = data["telegram"] or {}
                config.update(
                    {
                        "bot_token": tg.get("bot_token"),
                        "chat_id": tg.get("chat_id"),
                        "api_base": tg.get("api_base"),
                    }
                )

            if data and "monitor" in data:
                mon = data["monitor"] or {}
                config.update(
                    {
                        "log_path": mon.get("log_path"),
                        "monitor_levels": mon.get("levels"),
                        "position_storage": mon.get("position_storage"),
                    }
                )

            if data:
                config.update(
                    {
                        name: data.get(name)
                        for name in (
                            "project_name",
                            "environment",
                            "notify_environments",
                            "level",
                            "throttle",
                            "state_dir",
                        )
                    }
                )

        env = cls.from_env()
        defaults = cls()
        for f in fields(cls):
            # Only values actually set in the environment override the file
            if f.name in ENV_VARS and ENV_VARS[f.name] in os.environ:
                setattr(config, f.name, getattr(env, f.name))
            elif f.name in ("project_name", "environment") and getattr(config, f.name) == getattr(
                defaults, f.name
            ):
                setattr(config, f.name, getattr(env, f.name))

        return config
