import json
import sys

from config import load_config, validate_config
from menus.auth_menu import auth_menu
from menus.config_menu import config_menu
from menus.main_menu import main_menu
from menus.playlists_menu import playlists_menu
from utils.logger import setup_logging, log_info, log_error, log_warning


def run():
    setup_logging()

    try:
        config = load_config()
    except json.JSONDecodeError as e:
        log_error(f"Config file contains invalid JSON: {e}")
        sys.exit(1)
    except (OSError, ValueError) as e:
        log_error(f"Error loading config: {e}")
        sys.exit(1)

    is_valid, errors = validate_config(config)
    if not is_valid:
        for error in errors:
            log_warning(f"Config: {error}")

    while True:
        choice = main_menu()

        # Login Menu
        if choice == "Login Menu":
            auth_menu(config)

        # Playlists Menu
        elif choice == "Playlists Menu":
            playlists_menu(config)

        # Config Menu
        elif choice == "Config Menu":
            config = config_menu(config)

        # Exit (or Ctrl-C in a prompt)
        elif choice == "Exit" or choice is None:
            log_info("Exiting program...")
            break

        else:
            log_error("Invalid choice.")


if __name__ == "__main__":
    run()
