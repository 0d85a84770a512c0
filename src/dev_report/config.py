"""Configuration loading."""

import os
from pathlib import Path
from typing import Optional

from dev_report.errors import ValidationError
from dev_report.models import AppConfig

CONFIG_ENV = "DEV_REPORT_CONFIG"


def default_config_path() -> Path:
    base = os.environ.get("XDG_CONFIG_HOME") or str(Path.home() / ".config")
    return Path(base) / "dev-report" / "config.json"


def load_config(path: Optional[Path] = None) -> AppConfig:
    """Load the app config, falling back to defaults when no file exists.

    Environment variables override the generation backend settings so
    secrets can live in ``.env`` instead of the config file.
    """
    path = path or Path(os.environ.get(CONFIG_ENV) or default_config_path())
    if path.is_file():
        try:
            config = AppConfig.model_validate_json(path.read_text(encoding="utf-8"))
        except ValueError as exc:
            raise ValidationError(f"Invalid config file {path}: {exc}") from exc
    else:
        config = AppConfig()
    return apply_env_overrides(config)


def apply_env_overrides(config: AppConfig) -> AppConfig:
    api_key = os.environ.get("DEV_REPORT_API_KEY") or os.environ.get("OPENAI_API_KEY")
    overrides = {
        "api_key": api_key,
        "base_url": os.environ.get("DEV_REPORT_BASE_URL"),
        "model": os.environ.get("DEV_REPORT_MODEL"),
    }
    update = {k: v for k, v in overrides.items() if v}
    if not update:
        return config
    return config.model_copy(update={"llm": config.llm.model_copy(update=update)})
