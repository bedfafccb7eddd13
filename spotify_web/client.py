import asyncio
import json
import logging
import urllib.parse
from typing import Any, Dict, List, Optional

import httpx

from .errors import InvalidInputError, NetworkError, SpotifyError, decode_api_error
from .models import Playlist, Track, User
from .paging import Page, collect_paged
from .token_manager import TokenManager

logger = logging.getLogger(__name__)

SPOTIFY_API_BASE_URL = "https://api.spotify.com/v1"

DEFAULT_HTTP_TIMEOUT = 30.0
DEFAULT_RATE_LIMIT_RETRIES = 5
DEFAULT_WRITE_BATCH_SIZE = 100

PLAYLISTS_PAGE_SIZE = 50
TRACKS_PAGE_SIZE = 100

BACKOFF_BASE = 0.25
BACKOFF_CAP = 5.0


def retry_after_seconds(header_value: Optional[str], attempt: int) -> float:
    """Seconds to wait before retrying a 429.

    Uses Retry-After when it is a non-negative integer, otherwise
    250ms * 2**attempt capped at 5s.
    """

    if header_value:
        try:
            secs = int(header_value.strip())
        except ValueError:
            secs = -1
        if secs >= 0:
            return float(secs)

    return min(BACKOFF_BASE * (2 ** attempt), BACKOFF_CAP)


def _path_segment(value: str) -> str:
    return urllib.parse.quote(value, safe="")


def _require_id(playlist_id: str) -> str:
    playlist_id = (playlist_id or "").strip()
    if not playlist_id:
        raise InvalidInputError("playlist id is required")
    return playlist_id


def _clean_uris(uris: List[str]) -> List[str]:
    clean = [str(u).strip() for u in (uris or [])]
    clean = [u for u in clean if u]
    if not clean:
        raise InvalidInputError("at least one track uri is required")
    return clean


class SpotifyClient:
    """Spotify Web API client built on httpx.AsyncClient.

    Each instance owns its HTTP connection pool, token manager and base URL.

    Retry behavior per logical call:
    - 401: one forced token refresh, then one retry
    - 429: up to `max_rate_limit_retries` retries honoring Retry-After
    - anything else non-2xx: APIError carrying status + provider message
    """

    def __init__(
        self,
        token_manager: TokenManager,
        *,
        base_url: str = SPOTIFY_API_BASE_URL,
        user_agent: str = "",
        timeout: float = DEFAULT_HTTP_TIMEOUT,
        max_rate_limit_retries: int = DEFAULT_RATE_LIMIT_RETRIES,
        write_batch_size: int = DEFAULT_WRITE_BATCH_SIZE,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not base_url:
            raise ValueError("base_url is required")
        if write_batch_size <= 0:
            raise ValueError("write_batch_size must be > 0")

        self.token_manager = token_manager
        self.base_url = base_url
        self.user_agent = user_agent
        self.max_rate_limit_retries = int(max_rate_limit_retries)
        self.write_batch_size = int(write_batch_size)
        self._http = httpx.AsyncClient(base_url=base_url, timeout=timeout, transport=transport)

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> "SpotifyClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    # -----------------
    # HTTP pipeline
    # -----------------

    async def request_json(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json_body: Optional[Any] = None,
    ) -> Optional[Any]:
        """Send an authenticated request and return the decoded JSON body.

        Returns None for a 2xx response with an empty body.
        """

        content = None
        if json_body is not None:
            content = json.dumps(json_body).encode("utf-8")

        refreshed = False
        rate_retries = 0
        while True:
            access_token = await self.token_manager.access_token()

            headers = {
                "Authorization": f"Bearer {access_token}",
                "Accept": "application/json",
            }
            if self.user_agent:
                headers["User-Agent"] = self.user_agent
            if content is not None:
                headers["Content-Type"] = "application/json"

            try:
                resp = await self._http.request(
                    method.upper(), path, params=params, content=content, headers=headers
                )
            except httpx.HTTPError as e:
                raise NetworkError(f"{method.upper()} {path}: {e}") from e

            status = resp.status_code
            body = resp.content

            if status == 401 and not refreshed:
                refreshed = True
                logger.debug("401 from %s %s; forcing token refresh", method.upper(), path)
                try:
                    await self.token_manager.force_refresh()
                except SpotifyError as e:
                    raise decode_api_error(body, status) from e
                continue

            if status == 429 and rate_retries < self.max_rate_limit_retries:
                wait = retry_after_seconds(resp.headers.get("Retry-After"), rate_retries)
                rate_retries += 1
                logger.debug(
                    "429 from %s %s; retry %d/%d in %.2fs",
                    method.upper(), path, rate_retries, self.max_rate_limit_retries, wait,
                )
                await asyncio.sleep(wait)
                continue

            if status < 200 or status >= 300:
                raise decode_api_error(body, status)

            if not body:
                return None
            try:
                return resp.json()
            except ValueError as e:
                raise SpotifyError(f"{method.upper()} {path}: response was not JSON (status {status})") from e

    # -----------------
    # Endpoints
    # -----------------

    async def get_me(self) -> User:
        return User.from_dict(await self.request_json("GET", "/me"))

    async def list_current_user_playlists(self, max_items: int = 0) -> List[Playlist]:
        async def fetch(limit: int, offset: int) -> Page[Playlist]:
            payload = await self.request_json("GET", "/me/playlists", params={"limit": limit, "offset": offset})
            return Page.from_spotify(payload or {}, Playlist.from_dict)

        return await collect_paged(fetch, page_size=PLAYLISTS_PAGE_SIZE, max_items=max_items)

    async def list_playlist_tracks(self, playlist_id: str, max_items: int = 0) -> List[Track]:
        playlist_id = _require_id(playlist_id)
        endpoint = f"/playlists/{_path_segment(playlist_id)}/tracks"

        async def fetch(limit: int, offset: int) -> Page[Optional[Track]]:
            payload = await self.request_json("GET", endpoint, params={"limit": limit, "offset": offset})
            return Page.from_spotify(payload or {}, lambda item: Track.from_dict((item or {}).get("track")))

        items = await collect_paged(fetch, page_size=TRACKS_PAGE_SIZE, max_items=max_items)
        # Removed or local tracks come back as null; skip them.
        return [t for t in items if t is not None]

    async def get_playlist(self, playlist_id: str) -> Playlist:
        playlist_id = _require_id(playlist_id)
        return Playlist.from_dict(await self.request_json("GET", f"/playlists/{_path_segment(playlist_id)}"))

    async def create_playlist(self, name: str, description: str = "", public: bool = False) -> Playlist:
        name = (name or "").strip()
        if not name:
            raise InvalidInputError("name is required")

        # /me/playlists avoids user-id mismatch errors.
        payload = await self.request_json(
            "POST",
            "/me/playlists",
            json_body={"name": name, "public": bool(public), "description": description or ""},
        )
        return Playlist.from_dict(payload)

    async def add_tracks_to_playlist(self, playlist_id: str, uris: List[str]) -> str:
        """Add URIs in sequential chunks; returns the snapshot id of the last chunk."""

        playlist_id = _require_id(playlist_id)
        clean = _clean_uris(uris)

        endpoint = f"/playlists/{_path_segment(playlist_id)}/tracks"
        snapshot_id = ""
        for i in range(0, len(clean), self.write_batch_size):
            batch = clean[i : i + self.write_batch_size]
            payload = await self.request_json("POST", endpoint, json_body={"uris": batch})
            snapshot_id = str((payload or {}).get("snapshot_id") or "")
        return snapshot_id

    async def remove_tracks_from_playlist(self, playlist_id: str, uris: List[str]) -> str:
        playlist_id = _require_id(playlist_id)
        clean = _clean_uris(uris)

        payload = await self.request_json(
            "DELETE",
            f"/playlists/{_path_segment(playlist_id)}/tracks",
            json_body={"tracks": [{"uri": u} for u in clean]},
        )
        return str((payload or {}).get("snapshot_id") or "")

    async def delete_playlist(self, playlist_id: str) -> None:
        """Unfollow a playlist. For playlists the user owns this deletes it."""

        playlist_id = _require_id(playlist_id)
        await self.request_json("DELETE", f"/playlists/{_path_segment(playlist_id)}/followers")
