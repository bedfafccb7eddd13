import asyncio
import sys
import time
import unittest
from pathlib import Path
from typing import Dict, List

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from playlists import (
    MergeOptions,
    NoPlaylistsMatchedError,
    PermissionDeniedError,
    PlaylistError,
    PlaylistService,
    deduplicate,
)
from spotify_web.errors import APIError, InvalidInputError, NotLoggedInError
from spotify_web.models import Playlist, Track, User


class FakePlaylistClient:
    """In-memory stand-in for SpotifyClient that records every call."""

    def __init__(self, playlists: Dict[str, List[str]] = None, names: Dict[str, str] = None):
        self.tracks: Dict[str, List[str]] = {k: list(v) for k, v in (playlists or {}).items()}
        self.names: Dict[str, str] = dict(names or {k: k for k in self.tracks})
        self.calls = []
        self.created = 0
        self.drop_on_add = set()
        self.fail_add = None
        self.fail_list = {}
        self.fail_delete = {}

    async def get_me(self) -> User:
        return User(id="me")

    async def list_current_user_playlists(self, max_items: int = 0) -> List[Playlist]:
        self.calls.append(("list_playlists", max_items))
        return [
            Playlist(id=pid, name=self.names.get(pid, pid), owner=User(id="me"), tracks_total=len(t))
            for pid, t in self.tracks.items()
        ]

    async def list_playlist_tracks(self, playlist_id: str, max_items: int = 0) -> List[Track]:
        self.calls.append(("list_tracks", playlist_id))
        if playlist_id in self.fail_list:
            raise self.fail_list[playlist_id]
        return [Track(uri=u) for u in self.tracks[playlist_id]]

    async def create_playlist(self, name: str, description: str = "", public: bool = False) -> Playlist:
        self.created += 1
        pid = f"new{self.created}"
        self.calls.append(("create", name, description, public))
        self.tracks[pid] = []
        self.names[pid] = name
        return Playlist(id=pid, name=name, description=description, public=public)

    async def add_tracks_to_playlist(self, playlist_id: str, uris: List[str]) -> str:
        self.calls.append(("add", playlist_id, list(uris)))
        if self.fail_add is not None:
            raise self.fail_add
        self.tracks[playlist_id].extend(u for u in uris if u not in self.drop_on_add)
        return "snap"

    async def get_playlist(self, playlist_id: str) -> Playlist:
        return Playlist(id=playlist_id, name=self.names.get(playlist_id, ""))

    async def delete_playlist(self, playlist_id: str) -> None:
        self.calls.append(("delete", playlist_id))
        if playlist_id in self.fail_delete:
            raise self.fail_delete[playlist_id]
        self.tracks.pop(playlist_id, None)

    def calls_named(self, name: str):
        return [c for c in self.calls if c[0] == name]


class TestDeduplicate(unittest.TestCase):
    def test_keeps_first_occurrences_in_order(self):
        self.assertEqual(deduplicate(["A", "B", "A", "C", "B"]), (["A", "B", "C"], 2))

    def test_blank_entries_are_dropped_not_counted(self):
        self.assertEqual(deduplicate(["A", " ", "", "A"]), (["A"], 1))

    def test_match_is_exact(self):
        self.assertEqual(deduplicate(["spotify:track:a", "spotify:track:A"]), (["spotify:track:a", "spotify:track:A"], 0))


class TestFindPlaylists(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.client = FakePlaylistClient(
            {"p1": [], "p2": [], "p3": []},
            names={"p1": "Gym 2023", "p2": "Chill", "p3": "gym 2024"},
        )
        self.service = PlaylistService(self.client)

    async def test_regex_is_case_sensitive_search(self):
        matched = await self.service.find_playlists_by_pattern("Gym")
        self.assertEqual([p.id for p in matched], ["p1"])

    async def test_inline_flags_allow_case_insensitive(self):
        matched = await self.service.find_playlists_by_pattern(r"(?i)^gym \d+$")
        self.assertEqual([p.id for p in matched], ["p1", "p3"])
        self.assertEqual(self.client.calls_named("list_playlists"), [("list_playlists", 0)])

    async def test_no_match(self):
        with self.assertRaises(NoPlaylistsMatchedError):
            await self.service.find_playlists_by_pattern("Jazz")

    async def test_bad_pattern(self):
        with self.assertRaises(InvalidInputError):
            await self.service.find_playlists_by_pattern("([")
        with self.assertRaises(InvalidInputError):
            await self.service.find_playlists_by_pattern("   ")
        self.assertEqual(self.client.calls, [])


class TestMergePlaylists(unittest.IsolatedAsyncioTestCase):
    def make_service(self, client):
        return PlaylistService(client, verify_attempts=3, verify_delay=0)

    async def test_merge_with_dedup(self):
        client = FakePlaylistClient({"a": ["1", "2", "1"], "b": ["2", "3"]})
        service = self.make_service(client)

        result = await service.merge_playlists(["a", "b"], "Merged", MergeOptions(deduplicate=True, description="d"))

        self.assertEqual(result.new_playlist_id, "new1")
        self.assertEqual(result.track_count, 3)
        self.assertEqual(result.duplicates_removed, 2)
        self.assertTrue(result.verified)
        self.assertEqual(result.missing_uris, [])
        self.assertEqual(client.calls_named("add"), [("add", "new1", ["1", "2", "3"])])
        self.assertEqual(client.calls_named("create"), [("create", "Merged", "d", False)])

    async def test_merge_without_dedup_keeps_repeats(self):
        client = FakePlaylistClient({"a": ["1", "2", "1"], "b": ["2", "3"]})
        result = await self.make_service(client).merge_playlists(["a", "b"], "Merged")

        self.assertEqual(result.track_count, 5)
        self.assertEqual(result.duplicates_removed, 0)
        self.assertEqual(client.calls_named("add")[0][2], ["1", "2", "1", "2", "3"])
        self.assertTrue(result.verified)

    async def test_missing_track_is_reported_not_raised(self):
        client = FakePlaylistClient({"a": ["1", "2", "3"]})
        client.drop_on_add = {"2"}

        result = await self.make_service(client).merge_playlists(["a"], "Merged", MergeOptions(deduplicate=True))

        self.assertFalse(result.verified)
        self.assertEqual(result.missing_uris, ["2"])
        # Verification retried before giving up; nothing rolled back
        self.assertEqual(len([c for c in client.calls_named("list_tracks") if c[1] == "new1"]), 3)
        self.assertEqual(client.calls_named("delete"), [])

    async def test_sources_read_before_create(self):
        client = FakePlaylistClient({"a": ["1"]})
        client.fail_list["b"] = APIError(404, "Not found.")
        client.tracks["b"] = []

        with self.assertRaises(PlaylistError) as ctx:
            await self.make_service(client).merge_playlists(["a", "b"], "Merged")

        self.assertIn("list tracks for b", str(ctx.exception))
        self.assertEqual(client.calls_named("create"), [])

    async def test_add_failure_rolls_back(self):
        client = FakePlaylistClient({"a": ["1", "2"]})
        client.fail_add = APIError(500, "boom")

        with self.assertRaises(PlaylistError) as ctx:
            await self.make_service(client).merge_playlists(["a"], "Merged")

        self.assertIn("add tracks", str(ctx.exception))
        self.assertIsInstance(ctx.exception.__cause__, APIError)
        self.assertEqual(client.calls_named("delete"), [("delete", "new1")])

    async def test_verify_failure_rolls_back(self):
        client = FakePlaylistClient({"a": ["1"]})
        client.fail_list["new1"] = APIError(502)

        with self.assertRaises(PlaylistError) as ctx:
            await self.make_service(client).merge_playlists(["a"], "Merged")

        self.assertIn("verify playlist", str(ctx.exception))
        self.assertEqual(client.calls_named("delete"), [("delete", "new1")])

    async def test_rollback_failure_keeps_original_error(self):
        client = FakePlaylistClient({"a": ["1"]})
        client.fail_add = APIError(500, "boom")
        client.fail_delete["new1"] = APIError(500, "also boom")

        with self.assertRaises(PlaylistError) as ctx:
            await self.make_service(client).merge_playlists(["a"], "Merged")
        self.assertIn("boom", str(ctx.exception))
        self.assertNotIn("also boom", str(ctx.exception))

    async def test_auth_errors_pass_through_after_rollback(self):
        client = FakePlaylistClient({"a": ["1"]})
        client.fail_add = NotLoggedInError("not logged in")

        with self.assertRaises(NotLoggedInError):
            await self.make_service(client).merge_playlists(["a"], "Merged")
        self.assertEqual(client.calls_named("delete"), [("delete", "new1")])

    async def test_empty_sources_create_empty_playlist(self):
        client = FakePlaylistClient({"a": []})

        result = await self.make_service(client).merge_playlists(["a"], "Merged")

        self.assertTrue(result.verified)
        self.assertEqual(result.track_count, 0)
        self.assertEqual(client.calls_named("add"), [])

    async def test_input_validation(self):
        service = self.make_service(FakePlaylistClient({"a": ["1"]}))
        with self.assertRaises(InvalidInputError):
            await service.merge_playlists([], "Merged")
        with self.assertRaises(InvalidInputError):
            await service.merge_playlists(["a"], "  ")


class TestVerify(unittest.IsolatedAsyncioTestCase):
    async def test_missing_keeps_expected_order(self):
        client = FakePlaylistClient({"p": ["2"]})
        service = PlaylistService(client, verify_attempts=1, verify_delay=0)

        result = await service.verify_playlist_contents("p", ["3", "2", "1", "3"])

        self.assertFalse(result.ok)
        self.assertEqual(result.missing_uris, ["3", "1"])

    async def test_empty_expectation_is_ok_without_reads(self):
        client = FakePlaylistClient({"p": []})
        result = await PlaylistService(client).verify_playlist_contents("p", [])
        self.assertTrue(result.ok)
        self.assertEqual(client.calls, [])

    async def test_eventually_consistent_read_succeeds(self):
        client = FakePlaylistClient({"p": []})
        original = client.list_playlist_tracks

        async def late_list(playlist_id, max_items=0):
            if len(client.calls_named("list_tracks")) == 1:
                client.tracks["p"] = ["1"]
            return await original(playlist_id, max_items)

        client.list_playlist_tracks = late_list
        result = await PlaylistService(client, verify_attempts=3, verify_delay=0).verify_playlist_contents("p", ["1"])

        self.assertTrue(result.ok)
        self.assertEqual(len(client.calls_named("list_tracks")), 2)

    async def test_retry_pause_is_cancellable(self):
        client = FakePlaylistClient({"p": []})
        service = PlaylistService(client, verify_attempts=3, verify_delay=30)

        started = time.monotonic()
        with self.assertRaises(asyncio.TimeoutError):
            await asyncio.wait_for(service.verify_playlist_contents("p", ["1"]), 0.2)

        self.assertLess(time.monotonic() - started, 2)
        self.assertEqual(len(client.calls_named("list_tracks")), 1)


class TestDeletePlaylists(unittest.IsolatedAsyncioTestCase):
    async def test_deletes_in_order(self):
        client = FakePlaylistClient({"a": [], "b": []})
        await PlaylistService(client).delete_playlists(["a", "b"])
        self.assertEqual(client.calls_named("delete"), [("delete", "a"), ("delete", "b")])

    async def test_forbidden_is_permission_denied(self):
        client = FakePlaylistClient({"a": [], "b": [], "c": []})
        client.fail_delete["b"] = APIError(403, "Forbidden")

        with self.assertRaises(PermissionDeniedError) as ctx:
            await PlaylistService(client).delete_playlists(["a", "b", "c"])

        self.assertEqual(str(ctx.exception), "delete playlist b: permission denied")
        self.assertEqual(client.calls_named("delete"), [("delete", "a"), ("delete", "b")])

    async def test_other_errors_name_the_playlist(self):
        client = FakePlaylistClient({"a": []})
        client.fail_delete["a"] = APIError(500)

        with self.assertRaises(PlaylistError) as ctx:
            await PlaylistService(client).delete_playlists(["a"])
        self.assertIn("delete playlist a", str(ctx.exception))


if __name__ == "__main__":
    unittest.main()
