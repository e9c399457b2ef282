"""Configuration loader for Monitra."""

import os
import re
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv

DEFAULT_LOCATIONS = [
    "config.yaml",
    "config.yml",
    "../config.yaml",
    "../config.yml",
    "/app/config.yaml",
]


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """Load configuration from YAML file.

    Args:
        config_path: Path to config file. If None, uses default locations.

    Returns:
        Dictionary with configuration values.
    """
    # Load environment variables first
    load_dotenv()

    if config_path is None:
        for loc in DEFAULT_LOCATIONS:
            if Path(loc).exists():
                config_path = loc
                break

    if config_path is None or not Path(config_path).exists():
        raise FileNotFoundError("Configuration file not found. Please provide config.yaml")

    with open(config_path, "r", encoding="utf-8") as f:
        config = yaml.safe_load(f) or {}

    return _substitute_env_vars(config)


def _substitute_env_vars(obj: Any) -> Any:
    """Recursively substitute environment variables in config.

    Supports syntax: ${VAR_NAME} or ${VAR_NAME:default_value}
    """
    if isinstance(obj, dict):
        return {k: _substitute_env_vars(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_substitute_env_vars(item) for item in obj]
    elif isinstance(obj, str):
        return _substitute_env_string(obj)
    else:
        return obj


def _substitute_env_string(value: str) -> str:
    """Substitute environment variables in a string."""
    pattern = r'\$\{([^}]+)\}'

    def replace(match):
        var_expr = match.group(1)
        if ':' in var_expr:
            var_name, default = var_expr.split(':', 1)
            return os.getenv(var_name, default)
        else:
            return os.getenv(var_expr, match.group(0))

    return re.sub(pattern, replace, value)


def get_fetcher_config(config: Dict[str, Any]) -> Dict[str, Any]:
    """Get page fetcher configuration."""
    return config.get("fetcher", {}) or {}


def get_llm_config(config: Dict[str, Any]) -> Dict[str, Any]:
    """Get language model configuration."""
    return config.get("llm", {}) or {}


def get_extraction_config(config: Dict[str, Any]) -> Dict[str, Any]:
    """Get extraction tuning values."""
    return config.get("extraction", {}) or {}


def get_currency_config(config: Dict[str, Any]) -> Dict[str, Any]:
    """Get currency normalizer configuration."""
    return config.get("currency", {}) or {}


def get_storage_config(config: Dict[str, Any]) -> Dict[str, Any]:
    """Get storage configuration."""
    return config.get("storage", {}) or {}


def ensure_directories(config: Dict[str, Any]):
    """Ensure all required directories exist."""
    storage = get_storage_config(config)

    # SQLite directory
    sqlite_path = storage.get("sqlite", {}).get("database_path", "data/monitra.db")
    Path(sqlite_path).parent.mkdir(parents=True, exist_ok=True)

    # Log directory
    log_path = config.get("logging", {}).get("file", "data/logs/monitra.log")
    Path(log_path).parent.mkdir(parents=True, exist_ok=True)
