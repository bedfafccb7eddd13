import contextlib
import json
import os
from typing import Any, Dict, List

APP_NAME = "spotmerge"
__version__ = "0.1.0"
USER_AGENT = f"{APP_NAME}/{__version__}"

CONFIG_ENV_VAR = "SPOTMERGE_CONFIG"

# Default configuration values
DEFAULT_CONFIG = {
    # Spotify OAuth (Authorization Code + PKCE)
    "spotify_client_id": "",
    "spotify_redirect_uri": "http://localhost:8888/callback",
    "spotify_scopes": [
        "playlist-read-private",
        "playlist-read-collaborative",
        "playlist-modify-private",
        "playlist-modify-public",
    ],
    "spotify_tls_cert_file": "",
    "spotify_tls_key_file": "",

    # Token cache; empty means token.json next to config.json
    "token_cache_path": "",
    "token_refresh_leeway": 60,

    # Web API behavior
    "http_timeout": 30,
    "login_timeout": 120,
    "rate_limit_max_retries": 5,
    "write_batch_size": 100,
    "verify_attempts": 3,
    "verify_delay": 0.2,

    # Menu display limits (0 = no limit)
    "default_playlist_limit": 50,
    "default_track_limit": 100,
}

# Validation rules for config fields
CONFIG_SCHEMA = {
    "spotify_client_id": {"type": str, "required": False},
    "spotify_redirect_uri": {"type": str, "required": True},
    "spotify_scopes": {"type": list, "required": False, "element_type": str},
    "spotify_tls_cert_file": {"type": str, "required": False},
    "spotify_tls_key_file": {"type": str, "required": False},
    "token_cache_path": {"type": str, "required": False},
    "token_refresh_leeway": {"type": (int, float), "required": False, "min": 0, "max": 3600},
    "http_timeout": {"type": (int, float), "required": False, "min": 1, "max": 300},
    "login_timeout": {"type": (int, float), "required": False, "min": 10, "max": 3600},
    "rate_limit_max_retries": {"type": int, "required": False, "min": 0, "max": 20},
    "write_batch_size": {"type": int, "required": False, "min": 1, "max": 100},
    "verify_attempts": {"type": int, "required": False, "min": 1, "max": 10},
    "verify_delay": {"type": (int, float), "required": False, "min": 0, "max": 10},
    "default_playlist_limit": {"type": int, "required": False, "min": 0, "max": 10000},
    "default_track_limit": {"type": int, "required": False, "min": 0, "max": 100000},
}

# Environment variables that override file values
ENV_OVERRIDES = {
    "SPOTIFY_CLIENT_ID": "spotify_client_id",
    "SPOTIFY_REDIRECT_URI": "spotify_redirect_uri",
    "SPOTIFY_SCOPES": "spotify_scopes",
    "SPOTIFY_TLS_CERT_FILE": "spotify_tls_cert_file",
    "SPOTIFY_TLS_KEY_FILE": "spotify_tls_key_file",
}


def config_dir() -> str:
    xdg = os.environ.get("XDG_CONFIG_HOME", "").strip()
    base = xdg or os.path.join(os.path.expanduser("~"), ".config")
    return os.path.join(base, APP_NAME)


def config_path() -> str:
    """Path of config.json ($SPOTMERGE_CONFIG wins over the XDG location)."""
    override = os.environ.get(CONFIG_ENV_VAR, "").strip()
    return override or os.path.join(config_dir(), "config.json")


def token_cache_path(config: Dict[str, Any]) -> str:
    path = str(config.get("token_cache_path") or "").strip()
    return path or os.path.join(os.path.dirname(config_path()), "token.json")


def split_scopes(value: str) -> List[str]:
    return [s for s in value.replace(",", " ").split() if s]


def _apply_env_overrides(config: Dict[str, Any]) -> None:
    for env_name, key in ENV_OVERRIDES.items():
        value = os.environ.get(env_name, "").strip()
        if not value:
            continue
        config[key] = split_scopes(value) if key == "spotify_scopes" else value


def _normalize(config: Dict[str, Any]) -> None:
    for key in ("spotify_client_id", "spotify_redirect_uri", "spotify_tls_cert_file", "spotify_tls_key_file"):
        if isinstance(config.get(key), str):
            config[key] = config[key].strip()

    if not config.get("spotify_redirect_uri"):
        config["spotify_redirect_uri"] = DEFAULT_CONFIG["spotify_redirect_uri"]
    if not config.get("spotify_scopes"):
        config["spotify_scopes"] = list(DEFAULT_CONFIG["spotify_scopes"])


def _load_file() -> Dict[str, Any]:
    path = config_path()
    if not os.path.exists(path):
        return {}
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a JSON object.")
    return data


def load_config() -> Dict[str, Any]:
    """Load configuration from file, applying defaults, env overrides and normalization.

    A missing file is not an error: the defaults describe an unconfigured install.
    """
    config = _load_file()

    # Apply defaults for missing fields
    for key, value in DEFAULT_CONFIG.items():
        if key not in config:
            config[key] = list(value) if isinstance(value, list) else value

    _apply_env_overrides(config)
    _normalize(config)
    return config


def save_config(config: Dict[str, Any]) -> str:
    """Save configuration atomically with private permissions. Returns the path written."""
    path = config_path()
    tmp = path + ".tmp"
    try:
        os.makedirs(os.path.dirname(path), mode=0o700, exist_ok=True)
        fd = os.open(tmp, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(config, f, indent=2)
        os.replace(tmp, path)
    except OSError as e:
        with contextlib.suppress(OSError):
            os.remove(tmp)
        raise IOError(f"Failed to save config: {e}") from e
    return path


def is_configured(config: Dict[str, Any]) -> bool:
    return bool(str(config.get("spotify_client_id") or "").strip())


def validate_config(config: Dict[str, Any]) -> tuple[bool, list[str]]:
    """
    Validate configuration against schema.
    Returns (is_valid, list_of_errors).
    """
    errors = []

    for key, rules in CONFIG_SCHEMA.items():
        # Check required fields
        if rules.get("required", False) and key not in config:
            errors.append(f"Missing required field: {key}")
            continue

        if key not in config:
            continue

        value = config[key]

        # Type check (bool is an int subclass; never accept it for numbers)
        expected_type = rules.get("type")
        wrong_bool = isinstance(value, bool) and expected_type is not bool
        if expected_type and (wrong_bool or not isinstance(value, expected_type)):
            type_names = expected_type.__name__ if not isinstance(expected_type, tuple) else "/".join(t.__name__ for t in expected_type)
            errors.append(f"Field '{key}' must be {type_names}, got {type(value).__name__}")
            continue

        # List element type check (when schema uses: {"type": list, "element_type": ...})
        if isinstance(value, list) and "element_type" in rules:
            elem_type = rules["element_type"]
            bad_elems = [v for v in value if not isinstance(v, elem_type)]
            if bad_elems:
                errors.append(
                    f"Field '{key}' must be a list of {elem_type.__name__}, got invalid elements: {bad_elems}"
                )
                continue

        # Range check for numeric values
        if isinstance(value, (int, float)):
            if "min" in rules and value < rules["min"]:
                errors.append(f"Field '{key}' must be >= {rules['min']}, got {value}")
            if "max" in rules and value > rules["max"]:
                errors.append(f"Field '{key}' must be <= {rules['max']}, got {value}")

    redirect = str(config.get("spotify_redirect_uri") or "")
    if redirect and not redirect.lower().startswith(("http://", "https://")):
        errors.append("Field 'spotify_redirect_uri' must start with http:// or https://")
    if redirect.lower().startswith("https://") and not (
        config.get("spotify_tls_cert_file") and config.get("spotify_tls_key_file")
    ):
        errors.append("An https redirect requires spotify_tls_cert_file and spotify_tls_key_file")

    return len(errors) == 0, errors


def update_config(key: str, value: Any) -> tuple[bool, str]:
    """
    Update a single config field with validation.
    Returns (success, message).
    """
    config = load_config()

    # Check if key is valid
    if key not in CONFIG_SCHEMA:
        return False, f"Unknown config key: {key}"

    # Create temporary config with new value
    test_config = config.copy()
    test_config[key] = value

    # Validate the change
    is_valid, errors = validate_config(test_config)
    if not is_valid:
        return False, f"Validation failed: {', '.join(errors)}"

    # Save only what the file held plus the change, so env overrides are not persisted
    stored = _load_file()
    stored[key] = value
    save_config(stored)

    return True, f"Updated '{key}' to '{value}'"


def reset_to_defaults() -> tuple[bool, str]:
    """Reset configuration to default values."""
    try:
        save_config(dict(DEFAULT_CONFIG))
        return True, "Configuration reset to defaults"
    except IOError as e:
        return False, f"Failed to reset config: {e}"


def get_config_value(key: str, default: Any = None) -> Any:
    """Get a single config value with optional default."""
    try:
        config = load_config()
    except (OSError, ValueError):
        return default
    return config.get(key, default)
