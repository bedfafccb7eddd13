import asyncio
import logging
import re
from typing import List, Optional, Protocol, Sequence, Tuple

from spotify_web.errors import APIError, AuthError, InvalidInputError, SpotifyError
from spotify_web.models import Playlist, Track, User

from .models import MergeOptions, MergeResult, VerificationResult

logger = logging.getLogger(__name__)

DEFAULT_VERIFY_ATTEMPTS = 3
DEFAULT_VERIFY_DELAY = 0.2


class NoPlaylistsMatchedError(SpotifyError):
    """No playlist name matched the pattern."""


class PermissionDeniedError(SpotifyError):
    """Spotify answered 403 when deleting a playlist."""


class PlaylistError(SpotifyError):
    """A playlist operation step failed; the message names the step."""


class PlaylistClient(Protocol):
    """The Spotify operations the playlist service and menus rely on."""

    async def get_me(self) -> User: ...

    async def list_current_user_playlists(self, max_items: int = 0) -> List[Playlist]: ...

    async def list_playlist_tracks(self, playlist_id: str, max_items: int = 0) -> List[Track]: ...

    async def create_playlist(self, name: str, description: str = "", public: bool = False) -> Playlist: ...

    async def add_tracks_to_playlist(self, playlist_id: str, uris: List[str]) -> str: ...

    async def get_playlist(self, playlist_id: str) -> Playlist: ...

    async def delete_playlist(self, playlist_id: str) -> None: ...


def deduplicate(uris: Sequence[str]) -> Tuple[List[str], int]:
    """Drop repeated URIs (exact match), keeping first occurrences in order."""

    seen = set()
    out: List[str] = []
    dupes = 0
    for uri in uris:
        uri = (uri or "").strip()
        if not uri:
            continue
        if uri in seen:
            dupes += 1
            continue
        seen.add(uri)
        out.append(uri)
    return out, dupes


class PlaylistService:
    """Bulk playlist operations on top of a PlaylistClient.

    Assumes a single merge in flight per destination playlist.
    """

    def __init__(
        self,
        client: PlaylistClient,
        *,
        verify_attempts: int = DEFAULT_VERIFY_ATTEMPTS,
        verify_delay: float = DEFAULT_VERIFY_DELAY,
    ):
        self.client = client
        self.verify_attempts = max(1, int(verify_attempts))
        self.verify_delay = float(verify_delay)

    async def find_playlists_by_pattern(self, pattern: str) -> List[Playlist]:
        pattern = (pattern or "").strip()
        if not pattern:
            raise InvalidInputError("pattern is required")
        try:
            regex = re.compile(pattern)
        except re.error as e:
            raise InvalidInputError(f"invalid pattern: {e}") from e

        try:
            playlists = await self.client.list_current_user_playlists(0)
        except AuthError:
            raise
        except SpotifyError as e:
            raise PlaylistError(f"list playlists: {e}") from e

        matched = [p for p in playlists if regex.search(p.name)]
        if not matched:
            raise NoPlaylistsMatchedError(f"no playlists matched pattern {pattern!r}")
        return matched

    async def merge_playlists(
        self,
        source_ids: Sequence[str],
        target_name: str,
        options: Optional[MergeOptions] = None,
    ) -> MergeResult:
        """Merge source playlists into a newly created one.

        A failed verification is reported through MergeResult.verified, not raised.
        """

        options = options or MergeOptions()
        target_name = (target_name or "").strip()
        if not target_name:
            raise InvalidInputError("target name is required")
        ids = [str(i).strip() for i in (source_ids or []) if str(i).strip()]
        if not ids:
            raise InvalidInputError("at least one source playlist is required")

        # Read everything before creating anything so a bad source fails cleanly.
        uris: List[str] = []
        for playlist_id in ids:
            try:
                tracks = await self.client.list_playlist_tracks(playlist_id, 0)
            except AuthError:
                raise
            except SpotifyError as e:
                raise PlaylistError(f"list tracks for {playlist_id}: {e}") from e
            uris.extend(t.uri for t in tracks if t.uri)

        duplicates_removed = 0
        if options.deduplicate:
            uris, duplicates_removed = deduplicate(uris)

        try:
            created = await self.client.create_playlist(target_name, options.description, options.public)
        except AuthError:
            raise
        except SpotifyError as e:
            raise PlaylistError(f"create playlist: {e}") from e

        if uris:
            try:
                await self.client.add_tracks_to_playlist(created.id, uris)
            except SpotifyError as e:
                await self._rollback(created.id)
                if isinstance(e, AuthError):
                    raise
                raise PlaylistError(f"add tracks: {e}") from e

        try:
            verification = await self.verify_playlist_contents(created.id, uris)
        except SpotifyError as e:
            await self._rollback(created.id)
            if isinstance(e, AuthError):
                raise
            raise PlaylistError(f"verify playlist: {e}") from e

        return MergeResult(
            new_playlist_id=created.id,
            track_count=len(uris),
            duplicates_removed=duplicates_removed,
            verified=verification.ok,
            missing_uris=verification.missing_uris,
        )

    async def verify_playlist_contents(self, playlist_id: str, expected_uris: Sequence[str]) -> VerificationResult:
        """Check that every expected URI is present, retrying for eventual consistency."""

        playlist_id = (playlist_id or "").strip()
        if not playlist_id:
            raise InvalidInputError("playlist id is required")

        expected, _ = deduplicate(expected_uris or [])
        if not expected:
            return VerificationResult(ok=True)

        missing: List[str] = []
        for attempt in range(self.verify_attempts):
            tracks = await self.client.list_playlist_tracks(playlist_id, 0)
            seen = {t.uri for t in tracks if t.uri}
            missing = [u for u in expected if u not in seen]
            if not missing:
                return VerificationResult(ok=True)
            if attempt < self.verify_attempts - 1:
                await asyncio.sleep(self.verify_delay)

        return VerificationResult(ok=False, missing_uris=missing)

    async def delete_playlists(self, playlist_ids: Sequence[str]) -> None:
        """Delete (unfollow) playlists in order, stopping at the first failure."""

        for playlist_id in playlist_ids or []:
            playlist_id = (playlist_id or "").strip()
            if not playlist_id:
                continue
            try:
                await self.client.delete_playlist(playlist_id)
            except APIError as e:
                if e.status == 403:
                    raise PermissionDeniedError(f"delete playlist {playlist_id}: permission denied") from e
                raise PlaylistError(f"delete playlist {playlist_id}: {e}") from e
            except AuthError:
                raise
            except SpotifyError as e:
                raise PlaylistError(f"delete playlist {playlist_id}: {e}") from e

    async def _rollback(self, playlist_id: str) -> None:
        try:
            await self.client.delete_playlist(playlist_id)
        except SpotifyError as e:
            # Best effort; the original failure is what the caller needs to see.
            logger.warning("rollback: could not delete playlist %s: %s", playlist_id, e)
