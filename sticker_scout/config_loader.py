"""Configuration loader for Sticker Scout."""

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
]

_ENV_PATTERN = re.compile(r"\$\{([^}]+)\}")


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """Load configuration from YAML file.

    Args:
        config_path: Path to config file. If None, uses default locations.

    Returns:
        Dictionary with configuration values.
    """
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
    def replace(match):
        var_expr = match.group(1)
        if ":" in var_expr:
            var_name, default = var_expr.split(":", 1)
            return os.getenv(var_name, default)
        return os.getenv(var_expr, match.group(0))

    return _ENV_PATTERN.sub(replace, value)


def _section(config: Dict[str, Any], name: str) -> Dict[str, Any]:
    value = (config or {}).get(name, {})
    return value if isinstance(value, dict) else {}


def get_target_config(config: Dict[str, Any]) -> Dict[str, Any]:
    """Get target page identification hints."""
    return _section(config, "target")


def get_filters_config(config: Dict[str, Any]) -> Dict[str, Any]:
    return _section(config, "filters")


def get_profit_config(config: Dict[str, Any]) -> Dict[str, Any]:
    return _section(config, "profit")


def get_scroll_config(config: Dict[str, Any]) -> Dict[str, Any]:
    """Get DOM scroll tuning."""
    return _section(config, "scroll")


def get_output_config(config: Dict[str, Any]) -> Dict[str, Any]:
    return _section(config, "output")


def get_browser_config(config: Dict[str, Any]) -> Dict[str, Any]:
    return _section(config, "browser")


def get_selectors(config: Dict[str, Any]) -> Dict[str, Any]:
    """Get CSS selectors for the trade page."""
    return _section(config, "selectors")


def get_fetch_config(config: Dict[str, Any]) -> Dict[str, Any]:
    """Get endpoint discovery and pagination settings."""
    return _section(config, "fetch")


def get_politeness_config(config: Dict[str, Any]) -> Dict[str, Any]:
    """Get pacing, halt and error budget settings."""
    return _section(config, "politeness")


def get_scan_config(config: Dict[str, Any]) -> Dict[str, Any]:
    return _section(config, "scan")


def ensure_directories(config: Dict[str, Any]):
    """Ensure output and log directories exist."""
    output_dir = get_output_config(config).get("dir", "out")
    Path(output_dir).mkdir(parents=True, exist_ok=True)

    log_path = _section(config, "logging").get("file", "out/logs/scout.log")
    Path(log_path).parent.mkdir(parents=True, exist_ok=True)
