"""Spotify Web API access layer (OAuth PKCE, token lifecycle, resilient requests).

Everything network-bound is a coroutine on httpx.AsyncClient; bound waits
with ``asyncio.wait_for`` and cancel with the usual task cancellation.
"""

from .auth import OAuthClient, build_authorize_url, new_pkce, random_url_safe
from .client import SpotifyClient
from .errors import (
    APIError,
    AuthError,
    AuthorizationDeniedError,
    ConfigError,
    InvalidInputError,
    NetworkError,
    NotLoggedInError,
    RefreshUnavailableError,
    SpotifyError,
    TokenExchangeError,
    TokenStoreError,
)
from .login import LoginResult, OAuthConfig, login_pkce, open_in_browser
from .models import Artist, Playlist, Track, User
from .token_manager import FileTokenStore, MemoryTokenStore, Token, TokenManager

__all__ = [
    "APIError",
    "Artist",
    "AuthError",
    "AuthorizationDeniedError",
    "ConfigError",
    "FileTokenStore",
    "InvalidInputError",
    "LoginResult",
    "MemoryTokenStore",
    "NetworkError",
    "NotLoggedInError",
    "OAuthClient",
    "OAuthConfig",
    "Playlist",
    "RefreshUnavailableError",
    "SpotifyClient",
    "SpotifyError",
    "Token",
    "TokenExchangeError",
    "TokenManager",
    "TokenStoreError",
    "Track",
    "User",
    "build_authorize_url",
    "login_pkce",
    "new_pkce",
    "open_in_browser",
    "random_url_safe",
]
