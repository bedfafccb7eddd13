import questionary
from config import (
    load_config, validate_config, update_config, reset_to_defaults,
    config_path, split_scopes, CONFIG_SCHEMA
)
from utils.logger import log_info, log_error, log_success


def config_menu(config: dict) -> dict:
    """
    Display the configuration menu and handle user selections.
    Returns the potentially updated config dict.
    """
    while True:
        choice = questionary.select(
            "⚙️ Config Menu — What would you like to do?",
            choices=[
                "View current config",
                "Update a setting",
                "Reset to defaults",
                "Validate configuration",
                "Back"
            ]
        ).ask()

        if choice == "View current config":
            view_config(config)

        elif choice == "Update a setting":
            config = update_setting_menu(config)

        elif choice == "Reset to defaults":
            config = reset_config_menu(config)

        elif choice == "Validate configuration":
            validate_config_menu(config)

        elif choice == "Back" or choice is None:
            break

    return config


def view_config(config: dict):
    """Display the current configuration in a readable format."""
    print("\n" + "=" * 50)
    print("📋 Current Configuration")
    print("=" * 50)
    print(f"File: {config_path()}")

    categories = {
        "Spotify OAuth": [
            "spotify_client_id", "spotify_redirect_uri", "spotify_scopes",
            "spotify_tls_cert_file", "spotify_tls_key_file",
        ],
        "Token Cache": ["token_cache_path", "token_refresh_leeway"],
        "Web API": [
            "http_timeout", "login_timeout", "rate_limit_max_retries",
            "write_batch_size", "verify_attempts", "verify_delay",
        ],
        "Display": ["default_playlist_limit", "default_track_limit"],
    }

    for category, keys in categories.items():
        print(f"\n{category}:")
        for key in keys:
            if key in config:
                value = config[key]
                if isinstance(value, list):
                    value = " ".join(str(v) for v in value)
                if value == "":
                    value = "(not set)"
                print(f"  {key}: {value}")

    print("\n" + "=" * 50)
    input("\nPress Enter to continue...")


def update_setting_menu(config: dict) -> dict:
    """Menu to update individual settings."""
    editable_keys = list(CONFIG_SCHEMA.keys())
    editable_keys.append("Back")

    key = questionary.select(
        "Select setting to update:",
        choices=editable_keys
    ).ask()

    if key == "Back" or key is None:
        return config

    schema = CONFIG_SCHEMA.get(key, {})
    current_value = config.get(key, "Not set")

    print(f"\nCurrent value: {current_value}")

    if schema.get("type") in [int, (int, float)]:
        min_val = schema.get("min", 0)
        max_val = schema.get("max", 9999)
        new_value_str = questionary.text(
            f"Enter new value for {key} ({min_val}-{max_val}):",
            default=str(current_value) if current_value != "Not set" else ""
        ).ask()

        try:
            if schema.get("type") == int:
                new_value = int(new_value_str)
            else:
                new_value = float(new_value_str)
        except (TypeError, ValueError):
            log_error("Invalid number format")
            return config

    elif schema.get("type") == list:
        new_value_str = questionary.text(
            f"Enter new values for {key} (space or comma separated):",
            default=" ".join(current_value) if isinstance(current_value, list) else ""
        ).ask()
        new_value = split_scopes(new_value_str or "")

    else:
        new_value = questionary.text(
            f"Enter new value for {key}:",
            default=str(current_value) if current_value != "Not set" else ""
        ).ask()
        new_value = (new_value or "").strip()

    try:
        success, message = update_config(key, new_value)
    except IOError as e:
        log_error(str(e))
        return config

    if success:
        log_success(message)
        config[key] = new_value
    else:
        log_error(message)

    return config


def reset_config_menu(config: dict) -> dict:
    """Menu to reset configuration to defaults."""
    confirm = questionary.confirm(
        "⚠️ Reset all settings to defaults? This cannot be undone.",
        default=False
    ).ask()

    if confirm:
        success, message = reset_to_defaults()

        if success:
            log_success(message)
            config = load_config()
        else:
            log_error(message)

    return config


def validate_config_menu(config: dict):
    """Validate the current configuration and show any errors."""
    is_valid, errors = validate_config(config)

    print("\n" + "=" * 50)
    print("🔍 Configuration Validation")
    print("=" * 50)

    if is_valid:
        log_success("Configuration is valid! ✓")
    else:
        log_error("Configuration has errors:")
        for error in errors:
            print(f"  ✗ {error}")

    if not config.get("spotify_client_id"):
        log_info("spotify_client_id is empty; login will not work until it is set.")

    print("=" * 50)
    input("\nPress Enter to continue...")
