import questionary


def main_menu() -> str:
    """Show the top-level menu and return the selected entry."""
    return questionary.select(
        "🎧 spotmerge — What would you like to do?",
        choices=[
            "Login Menu",
            "Playlists Menu",
            "Config Menu",
            "Exit",
        ],
    ).ask()
