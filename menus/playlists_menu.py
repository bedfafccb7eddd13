from typing import List

import questionary

from menus.common import build_service, describe_error, run_with_client
from playlists import MergeOptions, NoPlaylistsMatchedError, PermissionDeniedError
from playlists.helpers import (
    filter_playlists_by_name,
    format_playlist_row,
    format_track_row,
    normalize_playlist_id,
    normalize_track_uri,
)
from spotify_web import SpotifyError
from utils.logger import log_error, log_info, log_success, log_warning

MAX_MISSING_SHOWN = 10


def _ask_int(message: str, default: int) -> int:
    raw = questionary.text(message, default=str(default)).ask()
    try:
        return max(0, int((raw or "").strip() or default))
    except ValueError:
        log_warning(f"Not a number: {raw!r}; using {default}")
        return default


def list_playlists(config: dict) -> None:
    text = (questionary.text("Filter by name (leave empty for all):").ask() or "").strip()
    limit = _ask_int("Max playlists to show (0 = no limit):", int(config.get("default_playlist_limit", 50)))

    # Fetch everything when filtering so the filter sees all names.
    fetch_max = 0 if text else limit
    playlists = run_with_client(config, lambda c: c.list_current_user_playlists(fetch_max))

    shown = filter_playlists_by_name(playlists, text)
    if limit > 0:
        shown = shown[:limit]
    if not shown:
        log_info("No playlists found.")
        return
    for p in shown:
        print(format_playlist_row(p))


def show_tracks(config: dict) -> None:
    playlist_id = normalize_playlist_id(questionary.text("Playlist id, URI or URL:").ask() or "")
    limit = _ask_int("Max tracks to show (0 = no limit):", int(config.get("default_track_limit", 100)))
    uris_only = questionary.confirm("Only print track URIs?", default=False).ask()

    tracks = run_with_client(config, lambda c: c.list_playlist_tracks(playlist_id, limit))
    for t in tracks:
        print(t.uri if uris_only else format_track_row(t))


def create_playlist(config: dict) -> None:
    name = (questionary.text("Playlist name:").ask() or "").strip()
    description = questionary.text("Description (optional):").ask() or ""
    public = bool(questionary.confirm("Make playlist public?", default=False).ask())

    created = run_with_client(config, lambda c: c.create_playlist(name, description, public))
    log_success(f"Created playlist {created.id}\t{created.name}")


def add_tracks(config: dict) -> None:
    playlist_id = normalize_playlist_id(questionary.text("Playlist id, URI or URL:").ask() or "")
    raw = questionary.text("Track ids, URIs or URLs (space or comma separated):").ask() or ""
    uris = [normalize_track_uri(v) for v in raw.replace(",", " ").split()]

    snapshot = run_with_client(config, lambda c: c.add_tracks_to_playlist(playlist_id, uris))
    log_success(f"Added {len(uris)} track(s). Snapshot: {snapshot}")


def _delete_sources(config: dict, ids: List[str]) -> None:
    try:
        run_with_client(config, lambda c: build_service(c, config).delete_playlists(ids))
    except PermissionDeniedError as e:
        log_error(f"{e}. You can only delete playlists you own.")
        return
    log_success(f"Deleted {len(ids)} source playlist(s).")


def merge_playlists(config: dict) -> None:
    pattern = (questionary.text("Regex pattern to match playlist names:").ask() or "").strip()

    try:
        matched = run_with_client(config, lambda c: build_service(c, config).find_playlists_by_pattern(pattern))
    except NoPlaylistsMatchedError:
        log_warning(f"No playlists matched pattern {pattern!r}.")
        return

    log_info(f"Matched {len(matched)} playlist(s):")
    for p in matched:
        print(format_playlist_row(p))

    name = (questionary.text("Name of the new merged playlist:").ask() or "").strip()
    description = questionary.text("Description (optional):").ask() or ""
    public = bool(questionary.confirm("Make the new playlist public?", default=False).ask())
    dedupe = bool(questionary.confirm("Remove duplicate tracks?", default=True).ask())
    dry_run = bool(questionary.confirm("Dry run (show what would be merged, change nothing)?", default=False).ask())

    if dry_run:
        total = sum(p.tracks_total for p in matched)
        log_info(f"Dry run: would merge {len(matched)} playlist(s) ({total} tracks) into {name!r}. No changes made.")
        return
    if not questionary.confirm("Proceed with merge?", default=False).ask():
        log_info("Cancelled.")
        return

    source_ids = [p.id for p in matched if p.id]
    options = MergeOptions(deduplicate=dedupe, public=public, description=description)

    log_info("Merging...")
    result = run_with_client(config, lambda c: build_service(c, config).merge_playlists(source_ids, name, options))

    log_success(f"Created playlist: {result.new_playlist_id}")
    log_info(f"Tracks added: {result.track_count} (duplicates removed: {result.duplicates_removed})")
    if not result.verified:
        log_error(f"Verification: FAILED (missing {len(result.missing_uris)} track(s))")
        for uri in result.missing_uris[:MAX_MISSING_SHOWN]:
            log_error(f"- {uri}")
        log_warning("Source playlists were left untouched.")
        return

    log_success("Verification: OK")
    if questionary.confirm("Delete the source playlists?", default=False).ask():
        _delete_sources(config, source_ids)


def delete_playlists(config: dict) -> None:
    raw = questionary.text("Playlist ids, URIs or URLs to delete (space or comma separated):").ask() or ""
    ids = [normalize_playlist_id(v) for v in raw.replace(",", " ").split()]
    if not ids:
        log_warning("No playlists given.")
        return
    if not questionary.confirm(f"Delete {len(ids)} playlist(s)? This cannot be undone.", default=False).ask():
        return
    _delete_sources(config, ids)


def playlists_menu(config: dict) -> None:
    """Displays the Playlists menu and runs the selected operation."""
    actions = {
        "List my playlists": list_playlists,
        "Show playlist tracks": show_tracks,
        "Create a playlist": create_playlist,
        "Add tracks to a playlist": add_tracks,
        "Merge playlists matching a pattern": merge_playlists,
        "Delete playlists": delete_playlists,
    }

    while True:
        choice = questionary.select(
            "🎵 Playlists Menu — What would you like to do?",
            choices=list(actions) + ["Back"],
        ).ask()

        if choice == "Back" or choice is None:
            break

        try:
            actions[choice](config)
        except SpotifyError as e:
            log_error(describe_error(e))
