import re
import urllib.parse
from typing import Iterable, List

from spotify_web.errors import InvalidInputError
from spotify_web.models import Artist, Playlist, Track

_OPEN_TRACK_URL_RE = re.compile(r"^https?://open\.spotify\.com/track/([A-Za-z0-9]+)(?:\?.*)?$", re.IGNORECASE)
_OPEN_PLAYLIST_URL_RE = re.compile(r"^https?://open\.spotify\.com/playlist/([A-Za-z0-9]+)(?:\?.*)?$", re.IGNORECASE)
_PLAYLIST_URI_RE = re.compile(r"^spotify:playlist:([A-Za-z0-9]+)$", re.IGNORECASE)


def _looks_like_url(value: str) -> bool:
    return bool(urllib.parse.urlsplit(value).scheme)


def normalize_track_uri(value: str) -> str:
    """Turn a track id, spotify:track: URI or open.spotify.com URL into a track URI."""

    value = (value or "").strip()
    if not value:
        raise InvalidInputError("empty track value")
    if value.lower().startswith("spotify:track:"):
        return value
    m = _OPEN_TRACK_URL_RE.match(value)
    if m:
        return f"spotify:track:{m.group(1)}"
    if _looks_like_url(value):
        raise InvalidInputError(f"unsupported track url: {value}")
    return f"spotify:track:{value}"


def normalize_playlist_id(value: str) -> str:
    """Turn a playlist id, spotify:playlist: URI or open.spotify.com URL into a playlist id."""

    value = (value or "").strip()
    if not value:
        raise InvalidInputError("empty playlist id")
    m = _PLAYLIST_URI_RE.match(value) or _OPEN_PLAYLIST_URL_RE.match(value)
    if m:
        return m.group(1)
    if _looks_like_url(value):
        raise InvalidInputError(f"unsupported playlist url: {value}")
    return value


def join_artist_names(artists: Iterable[Artist]) -> str:
    return ", ".join(a.name for a in artists if a.name)


def filter_playlists_by_name(playlists: List[Playlist], text: str) -> List[Playlist]:
    """Case-insensitive substring filter; an empty filter keeps everything."""

    want = (text or "").strip().lower()
    if not want:
        return list(playlists)
    return [p for p in playlists if want in p.name.lower()]


def truncate(value: str, max_len: int) -> str:
    if max_len <= 0:
        return ""
    if len(value) <= max_len:
        return value
    if max_len <= 3:
        return value[:max_len]
    return value[: max_len - 3] + "..."


def format_playlist_row(p: Playlist) -> str:
    return f"{p.id}\t{p.name}\t{p.tracks_total}\t{p.owner.id}"


def format_track_row(t: Track) -> str:
    return f"{t.uri}\t{t.name}\t{join_artist_names(t.artists)}"
