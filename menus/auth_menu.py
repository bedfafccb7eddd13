import asyncio
import time

import questionary

from config import is_configured
from menus.common import build_oauth_config, build_token_store, describe_error
from spotify_web import SpotifyError, TokenStoreError, login_pkce
from utils.logger import log_error, log_info, log_success, log_warning


def spotify_app_setup_instructions(*, redirect_uri: str = "http://localhost:8888/callback") -> str:
    """Return user-facing setup instructions for creating a Spotify Developer app."""

    redirect_uri = str(redirect_uri or "").strip() or "http://localhost:8888/callback"
    return (
        "Spotify app setup:\n"
        "1) Go to https://developer.spotify.com/dashboard\n"
        "2) Create an app (or select an existing app)\n"
        f"3) Add this Redirect URI in the app settings: {redirect_uri}\n"
        "4) Copy the Client ID into the config (Config Menu > Update a setting > spotify_client_id)\n"
        "   or export SPOTIFY_CLIENT_ID\n\n"
        "Notes:\n"
        "- Authorization Code + PKCE is used, so no client secret is required.\n"
        "- Redirect URI must match *exactly* what you configure in the Spotify dashboard.\n"
        "- Use port 0 (e.g. http://127.0.0.1:0/callback) to pick a free port; only works if Spotify accepts it.\n"
    )


def token_status(config: dict) -> str:
    try:
        token = build_token_store(config).load()
    except TokenStoreError as e:
        return f"Token status unavailable: {e}"
    if token.is_zero():
        return "Not logged in."
    expired = token.expired()
    exp_str = time.strftime("%Y-%m-%d %H:%M:%S", time.localtime(float(token.expires_at)))
    return f"Logged in | Expired: {'YES' if expired else 'NO'} | Expires at: {exp_str}"


def login(config: dict) -> None:
    """Run the PKCE flow with a local callback listener and save the token."""
    if not is_configured(config):
        log_warning("spotify_client_id is not set.")
        log_info(spotify_app_setup_instructions(redirect_uri=config.get("spotify_redirect_uri")))
        return

    def show_url(url: str) -> None:
        log_info("Opening your browser to log in. If nothing happens, open this URL:")
        log_info(url)

    timeout = float(config.get("login_timeout", 120))
    try:
        result = asyncio.run(
            asyncio.wait_for(
                login_pkce(build_oauth_config(config), on_authorize_url=show_url),
                timeout=timeout,
            )
        )
    except asyncio.TimeoutError:
        log_error(f"Login timed out after {int(timeout)}s.")
        return
    except SpotifyError as e:
        log_error(f"Login failed: {describe_error(e)}")
        return

    store = build_token_store(config)
    try:
        store.save(result.token)
    except TokenStoreError as e:
        log_error(f"Could not save token: {e}")
        return

    log_success("Logged in successfully.")
    log_info(f"Token cache: {store.cache_path}")


def logout(config: dict) -> None:
    try:
        removed = build_token_store(config).clear()
    except TokenStoreError as e:
        log_error(f"Failed to clear token cache: {e}")
        return
    if removed:
        log_success("Cleared cached Spotify token.")
    else:
        log_warning("No cached token to clear.")


def auth_menu(config: dict) -> None:
    while True:
        log_info("")
        log_info("Spotify status: " + token_status(config))

        choice = questionary.select(
            "🔐 Login Menu — What would you like to do?",
            choices=[
                "Login with Spotify (OAuth PKCE)",
                "Spotify app setup help",
                "Log out (clear cached token)",
                "Back",
            ],
        ).ask()

        if choice == "Login with Spotify (OAuth PKCE)":
            login(config)

        elif choice == "Spotify app setup help":
            log_info(spotify_app_setup_instructions(redirect_uri=config.get("spotify_redirect_uri")))

        elif choice == "Log out (clear cached token)":
            logout(config)

        elif choice == "Back" or choice is None:
            break
