"""
Comic Strip — Settings.

Defaults, overridden by config/comic.yaml, overridden by environment
variables (.env is loaded first).
"""

import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Optional

import yaml
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

CONFIG_PATH = Path(__file__).parent.parent / "config" / "comic.yaml"

MINIMAX_IMAGE_URL = "https://api.minimax.io/v1/image_generation"


@dataclass
class ComicSettings:
    """Runtime knobs for the comic service."""

    # Text generation (Anthropic)
    anthropic_api_key: str = ""
    text_model: str = "claude-sonnet-4-20250514"
    text_max_tokens: int = 2048

    # Image generation (MiniMax)
    minimax_api_key: str = ""
    image_api_url: str = MINIMAX_IMAGE_URL
    image_model: str = "image-01"
    image_width: int = 512
    image_height: int = 512
    image_timeout: float = 120.0
    image_max_attempts: int = 3
    image_base_delay: float = 1.0
    image_max_delay: float = 10.0

    # Request ledger
    retention_hours: float = 2.0
    sweep_interval_hours: float = 2.0
    recent_limit: int = 10

    # HTTP server
    host: str = "0.0.0.0"
    port: int = 3003


# Environment variable → settings field
ENV_OVERRIDES = {
    "ANTHROPIC_API_KEY": "anthropic_api_key",
    "MINIMAX_API_KEY": "minimax_api_key",
    "COMIC_TEXT_MODEL": "text_model",
    "COMIC_IMAGE_MODEL": "image_model",
    "PORT": "port",
}


def _load_yaml(path: Path) -> dict:
    if not path.exists():
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            config = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.error(f"Failed to load comic config {path}: {e}")
        return {}
    if not isinstance(config, dict):
        logger.error(f"Comic config {path} is not a mapping, ignoring")
        return {}
    return config


def _coerce(settings: ComicSettings, name: str, value):
    """Cast a raw config/env value to the type of the field's default."""
    default = getattr(settings, name)
    try:
        if isinstance(default, bool):
            return str(value).lower() in ("1", "true", "yes")
        return type(default)(value)
    except (TypeError, ValueError):
        logger.warning(f"Ignoring invalid value for {name}: {value!r}")
        return default


def load_settings(config_path: Optional[str] = None) -> ComicSettings:
    """Build settings from .env, the YAML file, and the environment."""
    load_dotenv()

    settings = ComicSettings()
    known = {f.name for f in fields(ComicSettings)}

    path = Path(config_path or os.environ.get("COMIC_CONFIG", "") or CONFIG_PATH)
    for key, value in _load_yaml(path).items():
        if key not in known:
            logger.warning(f"Unknown comic config key: {key}")
            continue
        setattr(settings, key, _coerce(settings, key, value))

    for env_name, field_name in ENV_OVERRIDES.items():
        value = os.environ.get(env_name)
        if value:
            setattr(settings, field_name, _coerce(settings, field_name, value))

    return settings
