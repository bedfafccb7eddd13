import asyncio
import contextlib
import json
import os
import time
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol

from .errors import NotLoggedInError, RefreshUnavailableError, TokenStoreError


DEFAULT_TOKEN_REFRESH_LEEWAY = 60.0


@dataclass(frozen=True)
class Token:
    """Canonical token payload owned by TokenManager.

    An empty access_token is the "zero" token and means "not authenticated".
    """

    access_token: str = ""
    token_type: str = "Bearer"
    expires_at: float = 0.0
    refresh_token: str = ""
    scope: str = ""

    @staticmethod
    def from_spotify_token_response(payload: Dict[str, Any], *, now: Optional[float] = None) -> "Token":
        """Convert a Spotify token endpoint response into a Token.

        Spotify returns:
        - access_token
        - token_type
        - expires_in (seconds)
        - refresh_token (optional on refresh)
        - scope (space-delimited string)
        """

        now_ts = float(time.time() if now is None else now)
        try:
            expires_in = float(payload.get("expires_in") or 0)
        except (TypeError, ValueError):
            expires_in = 0.0

        return Token(
            access_token=str(payload.get("access_token") or ""),
            token_type=str(payload.get("token_type") or "Bearer"),
            expires_at=now_ts + expires_in,
            refresh_token=str(payload.get("refresh_token") or ""),
            scope=str(payload.get("scope") or ""),
        )

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "Token":
        return Token(
            access_token=str(data.get("access_token") or ""),
            token_type=str(data.get("token_type") or "Bearer"),
            expires_at=float(data.get("expires_at") or 0),
            refresh_token=str(data.get("refresh_token") or ""),
            scope=str(data.get("scope") or ""),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "access_token": self.access_token,
            "token_type": self.token_type,
            "scope": self.scope,
            "expires_at": self.expires_at,
            "refresh_token": self.refresh_token,
        }

    def is_zero(self) -> bool:
        return not self.access_token

    def expired(self, leeway: float = 0.0, *, now: Optional[float] = None) -> bool:
        if self.is_zero():
            return True
        now_ts = time.time() if now is None else now
        return float(self.expires_at) - now_ts <= float(leeway)


class TokenStore(Protocol):
    def load(self) -> Token:
        """Return the persisted token, or a zero Token when nothing is stored."""

    def save(self, token: Token) -> None:
        ...


class FileTokenStore:
    """JSON file token cache (private permissions, atomic replace)."""

    def __init__(self, cache_path: str):
        self.cache_path = cache_path

    def load(self) -> Token:
        if not os.path.exists(self.cache_path):
            return Token()

        try:
            with open(self.cache_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except OSError as e:
            raise TokenStoreError(f"read token cache: {e}") from e
        except ValueError as e:
            raise TokenStoreError(f"parse token cache: {e}") from e

        if not isinstance(data, dict):
            raise TokenStoreError(f"parse token cache: expected an object in {self.cache_path}")

        try:
            return Token.from_dict(data)
        except (TypeError, ValueError) as e:
            raise TokenStoreError(f"parse token cache: {e}") from e

    def save(self, token: Token) -> None:
        directory = os.path.dirname(self.cache_path)
        tmp = self.cache_path + ".tmp"
        try:
            if directory:
                os.makedirs(directory, mode=0o700, exist_ok=True)
            fd = os.open(tmp, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(token.to_dict(), f, indent=2)
            os.replace(tmp, self.cache_path)
        except OSError as e:
            with contextlib.suppress(OSError):
                os.remove(tmp)
            raise TokenStoreError(f"write token cache: {e}") from e

    def clear(self) -> bool:
        """Remove the cached token. Returns False when there was nothing to remove."""
        if not os.path.exists(self.cache_path):
            return False
        try:
            os.remove(self.cache_path)
        except OSError as e:
            raise TokenStoreError(f"remove token cache: {e}") from e
        return True


class MemoryTokenStore:
    def __init__(self, token: Optional[Token] = None):
        self.token = token or Token()
        self.saves = 0

    def load(self) -> Token:
        return self.token

    def save(self, token: Token) -> None:
        self.token = token
        self.saves += 1


Refresher = Callable[[str], Awaitable[Token]]


class TokenManager:
    """Single source of truth for the access token to use right now.

    Every operation runs "load, check expiry, maybe refresh, persist" under one
    lock, so concurrent callers wait for an in-flight refresh instead of
    starting their own (Spotify may rotate the refresh token on each use).
    """

    def __init__(
        self,
        store: TokenStore,
        *,
        leeway: float = DEFAULT_TOKEN_REFRESH_LEEWAY,
        refresher: Optional[Refresher] = None,
    ):
        self.store = store
        self.leeway = float(leeway)
        self.refresher = refresher
        self._lock = asyncio.Lock()

    async def access_token(self) -> str:
        async with self._lock:
            token = await self._load_logged_in()
            if not token.expired(self.leeway):
                return token.access_token

            if not token.refresh_token:
                raise RefreshUnavailableError(
                    "access token expired and no refresh token present; log in again"
                )
            return await self._refresh(token)

    async def force_refresh(self) -> str:
        """Refresh regardless of expiry. Used to recover after a 401."""
        async with self._lock:
            token = await self._load_logged_in()
            if not token.refresh_token:
                raise RefreshUnavailableError("missing refresh token; log in again")
            return await self._refresh(token)

    async def _load_logged_in(self) -> Token:
        # Store I/O is blocking; keep it off the event loop.
        token = await asyncio.to_thread(self.store.load)
        if token.is_zero():
            raise NotLoggedInError("not logged in (missing token); log in first")
        return token

    async def _refresh(self, token: Token) -> str:
        if self.refresher is None:
            raise RefreshUnavailableError("access token needs a refresh but no refresher is configured")

        refreshed = await self.refresher(token.refresh_token)
        if not refreshed.refresh_token:
            refreshed = replace(refreshed, refresh_token=token.refresh_token)
        await asyncio.to_thread(self.store.save, refreshed)
        return refreshed.access_token
