import json
from typing import Any, Optional


class SpotifyError(Exception):
    """Base class for every error raised by spotify_web and playlists."""


class ConfigError(SpotifyError):
    """Invalid or incomplete OAuth configuration (never retried)."""


class InvalidInputError(SpotifyError, ValueError):
    """Caller supplied a blank name, an empty id list, a bad pattern, etc."""


class TokenStoreError(SpotifyError):
    """The persisted token could not be read or written."""


class AuthError(SpotifyError):
    """Authentication problem; callers usually respond by starting a fresh login."""


class NotLoggedInError(AuthError):
    pass


class RefreshUnavailableError(AuthError):
    """Token is expired (or rejected) and cannot be refreshed."""


class TokenExchangeError(AuthError):
    pass


class AuthorizationDeniedError(AuthError):
    """Provider redirected back with an error instead of a code."""


class APIError(SpotifyError):
    """Non-2xx response from the Web API."""

    def __init__(self, status: int, message: str = ""):
        self.status = int(status)
        self.message = message or ""
        super().__init__(str(self))

    def __str__(self) -> str:
        if not self.message:
            return f"spotify api error: http {self.status}"
        return f"spotify api error: http {self.status}: {self.message}"

    def __repr__(self) -> str:
        return f"APIError(status={self.status!r}, message={self.message!r})"


def decode_api_error(body: bytes, fallback_status: int) -> APIError:
    """Build an APIError from a `{"error": {"status", "message"}}` envelope.

    Falls back to the bare HTTP status when the body is empty or not an envelope.
    """

    payload: Optional[Any] = None
    if body:
        try:
            payload = json.loads(body)
        except (ValueError, UnicodeDecodeError):
            payload = None

    env = payload.get("error") if isinstance(payload, dict) else None
    if isinstance(env, dict):
        status = env.get("status") or 0
        message = env.get("message") or ""
        if status or message:
            try:
                status = int(status)
            except (TypeError, ValueError):
                status = 0
            return APIError(status or fallback_status, str(message))

    return APIError(fallback_status)


class NetworkError(SpotifyError):
    """The HTTP exchange itself failed (DNS, connect, read timeout, ...)."""
