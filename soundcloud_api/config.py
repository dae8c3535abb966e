import json
import os
from typing import Any, Callable, Dict, Optional

from .retry import RetryEvent, RetryPolicy
from .token_manager import DEFAULT_TOKEN_CACHE_PATH

CONFIG_PATH = "config.json"

# Default configuration values
DEFAULT_CONFIG = {
    # OAuth app credentials (only needed by callers that fetch tokens themselves)
    "soundcloud_client_id": "",
    "soundcloud_client_secret": "",
    "soundcloud_redirect_uri": "",

    # Retry behavior for 429 / 5xx responses
    "soundcloud_max_retries": 3,
    "soundcloud_retry_base_delay_ms": 1000,

    # Transport
    "soundcloud_timeout": 30.0,

    # Token caching
    "soundcloud_cache_tokens": False,
    "soundcloud_token_cache_path": DEFAULT_TOKEN_CACHE_PATH,
}

# Validation rules for config fields
CONFIG_SCHEMA = {
    "soundcloud_client_id": {"type": str, "required": False},
    "soundcloud_client_secret": {"type": str, "required": False},
    "soundcloud_redirect_uri": {"type": str, "required": False},
    "soundcloud_max_retries": {"type": int, "required": True, "min": 0, "max": 10},
    "soundcloud_retry_base_delay_ms": {"type": int, "required": True, "min": 0, "max": 60000},
    "soundcloud_timeout": {"type": (int, float), "required": False, "min": 1, "max": 300},
    "soundcloud_cache_tokens": {"type": bool, "required": False},
    "soundcloud_token_cache_path": {"type": str, "required": False},
}


def with_defaults(config: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Return a copy of ``config`` with defaults applied for missing fields."""
    merged = dict(DEFAULT_CONFIG)
    merged.update(config or {})
    return merged


def load_config(path: str = CONFIG_PATH) -> Dict[str, Any]:
    """Load configuration from a JSON file, applying defaults for missing fields."""
    if not os.path.exists(path):
        raise FileNotFoundError(f"Config file {path} not found.")

    with open(path, "r", encoding="utf-8") as f:
        config = json.load(f)

    return with_defaults(config)


def validate_config(config: Dict[str, Any]) -> tuple[bool, list[str]]:
    """
    Validate configuration against schema.
    Returns (is_valid, list_of_errors).
    """
    errors = []

    for key, rules in CONFIG_SCHEMA.items():
        if rules.get("required", False) and key not in config:
            errors.append(f"Missing required field: {key}")
            continue

        if key not in config:
            continue

        value = config[key]

        # bool is an int subclass; don't let True pass as a retry count
        expected_type = rules.get("type")
        if expected_type and (
            not isinstance(value, expected_type)
            or (isinstance(value, bool) and expected_type is not bool)
        ):
            type_names = expected_type.__name__ if not isinstance(expected_type, tuple) else "/".join(t.__name__ for t in expected_type)
            errors.append(f"Field '{key}' must be {type_names}, got {type(value).__name__}")
            continue

        if isinstance(value, (int, float)) and not isinstance(value, bool):
            if "min" in rules and value < rules["min"]:
                errors.append(f"Field '{key}' must be >= {rules['min']}, got {value}")
            if "max" in rules and value > rules["max"]:
                errors.append(f"Field '{key}' must be <= {rules['max']}, got {value}")

    return len(errors) == 0, errors


def retry_policy_from_config(
    config: Dict[str, Any],
    on_debug: Optional[Callable[[RetryEvent], None]] = None,
) -> RetryPolicy:
    config = with_defaults(config)
    return RetryPolicy(
        max_retries=int(config["soundcloud_max_retries"]),
        retry_base_delay_ms=int(config["soundcloud_retry_base_delay_ms"]),
        on_debug=on_debug,
    )
