"""
Configuration Management
"""

import json
import os
from pathlib import Path
from typing import Any, Dict, Optional

from startale_lotto.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_CONFIG_FILE = Path("config") / "lotto.conf"

# ENV prefix -> config section
_ENV_SECTIONS = {
    "BLOCKCHAIN_": "blockchain",
    "WALLET_": "wallet",
    "LOTTO_": "lotto",
    "PRICE_": "price",
    "SERVER_": "server",
}


def load_config(config_file: Optional[str] = None) -> Dict[str, Any]:
    """Load configuration from the JSON config file and environment variables"""
    config: Dict[str, Any] = {}

    path = Path(config_file or os.getenv("LOTTO_CONFIG_FILE") or DEFAULT_CONFIG_FILE)
    if path.exists():
        try:
            with open(path, "r", encoding="utf-8") as f:
                config.update(json.load(f))
            logger.info("Loaded configuration from %s", path)
        except (OSError, ValueError) as e:
            logger.error("Error loading config file %s: %s", path, e)
    else:
        logger.warning("Config file %s not found. Will only use environment variables.", path)

    config = _apply_env_overrides(config, os.environ)

    # never echo the wallet key
    redacted = {k: v for k, v in config.items() if k != "wallet"}
    logger.debug("Configuration after applying environment overrides: %s", json.dumps(redacted, indent=2, default=str))

    return config


def _apply_env_overrides(config: Dict[str, Any], environ) -> Dict[str, Any]:
    """Apply environment variable overrides to configuration"""
    for key, value in environ.items():
        for prefix, section in _ENV_SECTIONS.items():
            if key.startswith(prefix):
                name = key[len(prefix):].lower()
                if name == "config_file":
                    break
                config.setdefault(section, {})[name] = value
                break

    return config


def save_config(config: Dict[str, Any], config_file: Optional[str] = None) -> None:
    """Save configuration to file"""
    path = Path(config_file) if config_file else DEFAULT_CONFIG_FILE

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(config, f, indent=2)
        logger.info("Configuration saved to %s", path)
    except OSError as e:
        logger.error("Error saving configuration: %s", e)


def get_config_value(config: Dict[str, Any], key_path: str, default=None):
    """Get configuration value by dot-separated key path"""
    value: Any = config

    try:
        for key in key_path.split("."):
            value = value[key]
        return value
    except (KeyError, TypeError):
        return default
