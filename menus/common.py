import asyncio
from typing import Any, Awaitable, Callable, Dict, TypeVar

from config import USER_AGENT, token_cache_path
from playlists import PlaylistService
from spotify_web import (
    AuthError,
    FileTokenStore,
    NotLoggedInError,
    OAuthClient,
    OAuthConfig,
    SpotifyClient,
    TokenManager,
)

T = TypeVar("T")


def build_token_store(config: Dict[str, Any]) -> FileTokenStore:
    return FileTokenStore(token_cache_path(config))


def build_oauth_config(config: Dict[str, Any]) -> OAuthConfig:
    return OAuthConfig(
        client_id=str(config.get("spotify_client_id") or ""),
        redirect_uri=str(config.get("spotify_redirect_uri") or ""),
        scopes=list(config.get("spotify_scopes") or []),
        user_agent=USER_AGENT,
        tls_cert_file=str(config.get("spotify_tls_cert_file") or ""),
        tls_key_file=str(config.get("spotify_tls_key_file") or ""),
    )


def build_client(config: Dict[str, Any]) -> SpotifyClient:
    oauth = OAuthClient(
        str(config.get("spotify_client_id") or ""),
        user_agent=USER_AGENT,
        timeout=float(config.get("http_timeout", 30)),
    )
    tokens = TokenManager(
        build_token_store(config),
        leeway=float(config.get("token_refresh_leeway", 60)),
        refresher=oauth.refresh,
    )
    return SpotifyClient(
        tokens,
        user_agent=USER_AGENT,
        timeout=float(config.get("http_timeout", 30)),
        max_rate_limit_retries=int(config.get("rate_limit_max_retries", 5)),
        write_batch_size=int(config.get("write_batch_size", 100)),
    )


def build_service(client: SpotifyClient, config: Dict[str, Any]) -> PlaylistService:
    return PlaylistService(
        client,
        verify_attempts=int(config.get("verify_attempts", 3)),
        verify_delay=float(config.get("verify_delay", 0.2)),
    )


def run_with_client(config: Dict[str, Any], action: Callable[[SpotifyClient], Awaitable[T]]) -> T:
    """Run `action` on a fresh client inside its own event loop, closing the client afterwards."""

    async def _main() -> T:
        async with build_client(config) as client:
            return await action(client)

    return asyncio.run(_main())


def describe_error(error: Exception) -> str:
    if isinstance(error, NotLoggedInError):
        return "Not logged in. Use 'Login with Spotify' first."
    if isinstance(error, AuthError):
        return f"{error} (try logging in again)"
    return str(error)
