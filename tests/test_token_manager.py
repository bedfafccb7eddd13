import asyncio
import json
import os
import stat
import sys
import tempfile
import threading
import time
import unittest
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from spotify_web.errors import NotLoggedInError, RefreshUnavailableError, TokenExchangeError, TokenStoreError
from spotify_web.token_manager import FileTokenStore, MemoryTokenStore, Token, TokenManager


def _token(access: str = "at", expires_in: float = 3600, refresh: str = "rt") -> Token:
    return Token(access_token=access, expires_at=time.time() + expires_in, refresh_token=refresh)


class _Refresher:
    """Async refresher that hands out at1, at2, ... and counts calls."""

    def __init__(self, *, delay: float = 0.0, refresh_token: str = "", error: Exception = None):
        self.calls = []
        self.delay = delay
        self.refresh_token = refresh_token
        self.error = error

    async def __call__(self, refresh_token: str) -> Token:
        self.calls.append(refresh_token)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return Token(
            access_token=f"at{len(self.calls)}",
            expires_at=time.time() + 3600,
            refresh_token=self.refresh_token,
        )


class TestToken(unittest.TestCase):
    def test_expired_uses_leeway(self):
        now = 1000.0
        token = Token(access_token="at", expires_at=now + 30)
        self.assertFalse(token.expired(0, now=now))
        self.assertTrue(token.expired(60, now=now))
        self.assertTrue(token.expired(30, now=now))

    def test_zero_token_is_expired(self):
        self.assertTrue(Token().is_zero())
        self.assertTrue(Token().expired())

    def test_from_spotify_token_response(self):
        token = Token.from_spotify_token_response(
            {"access_token": "at", "token_type": "Bearer", "expires_in": 3600, "scope": "a b"}, now=100.0
        )
        self.assertEqual(token.expires_at, 3700.0)
        self.assertEqual(token.scope, "a b")
        self.assertEqual(token.refresh_token, "")


class TestFileTokenStore(unittest.TestCase):
    def test_missing_file_loads_zero_token(self):
        with tempfile.TemporaryDirectory() as td:
            store = FileTokenStore(os.path.join(td, "token.json"))
            self.assertTrue(store.load().is_zero())
            self.assertFalse(store.clear())

    def test_roundtrip_with_private_permissions(self):
        with tempfile.TemporaryDirectory() as td:
            path = os.path.join(td, "nested", "token.json")
            store = FileTokenStore(path)
            token = Token(access_token="at", token_type="Bearer", expires_at=9999999999.0, refresh_token="rt", scope="s")
            store.save(token)

            self.assertEqual(store.load(), token)
            self.assertEqual(stat.S_IMODE(os.stat(path).st_mode), 0o600)
            self.assertFalse(os.path.exists(path + ".tmp"))

            self.assertTrue(store.clear())
            self.assertTrue(store.load().is_zero())

    def test_failed_write_leaves_no_temp_file(self):
        with tempfile.TemporaryDirectory() as td:
            # A non-empty directory where the cache file should go makes os.replace fail.
            path = os.path.join(td, "token.json")
            os.makedirs(os.path.join(path, "occupied"))
            store = FileTokenStore(path)

            with self.assertRaises(TokenStoreError):
                store.save(Token(access_token="at", expires_at=9999999999.0))

            self.assertFalse(os.path.exists(path + ".tmp"))

    def test_corrupt_file_raises(self):
        with tempfile.TemporaryDirectory() as td:
            path = os.path.join(td, "token.json")
            with open(path, "w", encoding="utf-8") as f:
                f.write("{not json")
            with self.assertRaises(TokenStoreError):
                FileTokenStore(path).load()

            with open(path, "w", encoding="utf-8") as f:
                json.dump(["not", "an", "object"], f)
            with self.assertRaises(TokenStoreError):
                FileTokenStore(path).load()


class TestTokenManager(unittest.IsolatedAsyncioTestCase):
    async def test_zero_token_is_not_logged_in(self):
        refresher = _Refresher()
        manager = TokenManager(MemoryTokenStore(), refresher=refresher)
        with self.assertRaises(NotLoggedInError):
            await manager.access_token()
        self.assertEqual(refresher.calls, [])

    async def test_valid_token_without_leeway_is_not_refreshed(self):
        store = MemoryTokenStore(_token(expires_in=30))
        refresher = _Refresher()
        manager = TokenManager(store, leeway=0, refresher=refresher)

        self.assertEqual(await manager.access_token(), "at")
        self.assertEqual(refresher.calls, [])
        self.assertEqual(store.saves, 0)

    async def test_token_inside_leeway_is_refreshed_and_persisted(self):
        store = MemoryTokenStore(_token(expires_in=30))
        refresher = _Refresher()
        manager = TokenManager(store, leeway=60, refresher=refresher)

        self.assertEqual(await manager.access_token(), "at1")
        self.assertEqual(refresher.calls, ["rt"])
        self.assertEqual(store.saves, 1)
        self.assertEqual(store.token.access_token, "at1")
        # Refresh token carried over when the provider does not rotate it
        self.assertEqual(store.token.refresh_token, "rt")

    async def test_rotated_refresh_token_is_persisted(self):
        store = MemoryTokenStore(_token(expires_in=-1))
        manager = TokenManager(store, refresher=_Refresher(refresh_token="rt2"))
        await manager.access_token()
        self.assertEqual(store.token.refresh_token, "rt2")

    async def test_expired_without_refresh_token(self):
        manager = TokenManager(MemoryTokenStore(_token(expires_in=-1, refresh="")), refresher=_Refresher())
        with self.assertRaises(RefreshUnavailableError):
            await manager.access_token()

    async def test_expired_without_refresher(self):
        manager = TokenManager(MemoryTokenStore(_token(expires_in=-1)))
        with self.assertRaises(RefreshUnavailableError):
            await manager.access_token()

    async def test_concurrent_callers_share_one_refresh(self):
        store = MemoryTokenStore(_token(expires_in=-1))
        refresher = _Refresher(delay=0.05)
        manager = TokenManager(store, refresher=refresher)

        tokens = await asyncio.gather(*(manager.access_token() for _ in range(5)))

        self.assertEqual(len(refresher.calls), 1)
        self.assertEqual(set(tokens), {"at1"})
        self.assertEqual(store.saves, 1)

    async def test_force_refresh_ignores_expiry(self):
        store = MemoryTokenStore(_token(expires_in=3600))
        refresher = _Refresher()
        manager = TokenManager(store, refresher=refresher)

        self.assertEqual(await manager.force_refresh(), "at1")
        self.assertEqual(await manager.access_token(), "at1")
        self.assertEqual(len(refresher.calls), 1)

    async def test_store_io_runs_off_the_event_loop(self):
        loop_thread = threading.get_ident()

        class RecordingStore(MemoryTokenStore):
            def __init__(self, token):
                super().__init__(token)
                self.threads = []

            def load(self):
                self.threads.append(threading.get_ident())
                return super().load()

            def save(self, token):
                self.threads.append(threading.get_ident())
                super().save(token)

        store = RecordingStore(_token(expires_in=-1))
        manager = TokenManager(store, refresher=_Refresher())

        self.assertEqual(await manager.access_token(), "at1")

        self.assertEqual(len(store.threads), 2)
        self.assertNotIn(loop_thread, store.threads)

    async def test_failed_refresh_leaves_store_untouched(self):
        original = _token(expires_in=-1)
        store = MemoryTokenStore(original)
        manager = TokenManager(store, refresher=_Refresher(error=TokenExchangeError("token refresh failed: invalid_grant ()")))

        with self.assertRaises(TokenExchangeError):
            await manager.access_token()
        self.assertEqual(store.saves, 0)
        self.assertEqual(store.token, original)


if __name__ == "__main__":
    unittest.main()
