import base64
import hashlib
import logging
import secrets
import urllib.parse
from dataclasses import dataclass, replace
from typing import Any, Dict, Iterable, Optional

import httpx

from .errors import TokenExchangeError
from .token_manager import Token

logger = logging.getLogger(__name__)

SPOTIFY_AUTHORIZE_URL = "https://accounts.spotify.com/authorize"
SPOTIFY_TOKEN_URL = "https://accounts.spotify.com/api/token"

PKCE_VERIFIER_BYTES = 64
STATE_BYTES = 24


def _base64url_no_pad(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def random_url_safe(n: int) -> str:
    """Return n cryptographically random bytes, base64url encoded without padding."""

    return _base64url_no_pad(secrets.token_bytes(n))


def code_challenge_from_verifier(verifier: str) -> str:
    """Compute PKCE S256 code_challenge from the encoded code_verifier string."""

    digest = hashlib.sha256((verifier or "").encode("ascii")).digest()
    return _base64url_no_pad(digest)


@dataclass(frozen=True)
class PKCEPair:
    verifier: str
    challenge: str


def new_pkce() -> PKCEPair:
    verifier = random_url_safe(PKCE_VERIFIER_BYTES)
    return PKCEPair(verifier=verifier, challenge=code_challenge_from_verifier(verifier))


def build_authorize_url(
    *,
    client_id: str,
    redirect_uri: str,
    state: str,
    code_challenge: str,
    scopes: Optional[Iterable[str]] = None,
    authorize_url: str = SPOTIFY_AUTHORIZE_URL,
) -> str:
    params: Dict[str, str] = {
        "client_id": client_id,
        "response_type": "code",
        "redirect_uri": redirect_uri,
        "state": state,
        "code_challenge_method": "S256",
        "code_challenge": code_challenge,
    }
    scope_str = " ".join(str(s).strip() for s in (scopes or []) if str(s).strip())
    if scope_str:
        params["scope"] = scope_str

    return f"{authorize_url}?{urllib.parse.urlencode(params, quote_via=urllib.parse.quote)}"


class OAuthClient:
    """Token endpoint calls for the Authorization Code + PKCE grant."""

    def __init__(
        self,
        client_id: str,
        *,
        user_agent: str = "",
        token_url: str = SPOTIFY_TOKEN_URL,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.client_id = client_id
        self.user_agent = user_agent
        self.token_url = token_url
        self.timeout = timeout
        self._transport = transport

    async def exchange_code(self, *, redirect_uri: str, code: str, code_verifier: str) -> Token:
        payload = await self._post_form(
            {
                "client_id": self.client_id,
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": redirect_uri,
                "code_verifier": code_verifier,
            },
            action="token exchange",
        )
        return Token.from_spotify_token_response(payload)

    async def refresh(self, refresh_token: str) -> Token:
        if not refresh_token:
            raise TokenExchangeError("missing refresh token")

        payload = await self._post_form(
            {
                "client_id": self.client_id,
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
            },
            action="token refresh",
        )
        token = Token.from_spotify_token_response(payload)

        # Spotify does not always rotate the refresh token; keep the one we sent.
        if not token.refresh_token:
            token = replace(token, refresh_token=refresh_token)
        return token

    async def _post_form(self, form: Dict[str, Any], *, action: str) -> Dict[str, Any]:
        headers = {"Content-Type": "application/x-www-form-urlencoded"}
        if self.user_agent:
            headers["User-Agent"] = self.user_agent

        logger.debug("POST %s (%s)", self.token_url, form.get("grant_type"))
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=False,
                transport=self._transport,
            ) as client:
                resp = await client.post(self.token_url, data=form, headers=headers)
        except httpx.HTTPError as e:
            raise TokenExchangeError(f"{action} failed: {e}") from e

        if resp.status_code < 200 or resp.status_code >= 300:
            raise TokenExchangeError(self._describe_failure(action, resp))

        try:
            payload = resp.json()
        except ValueError as e:
            raise TokenExchangeError(f"decode {action} response: {e}") from e

        if not isinstance(payload, dict):
            raise TokenExchangeError(f"decode {action} response: expected an object")
        if not payload.get("access_token"):
            raise TokenExchangeError(f"missing access_token in {action} response")

        return payload

    @staticmethod
    def _describe_failure(action: str, resp: httpx.Response) -> str:
        try:
            body = resp.json()
        except ValueError:
            body = None

        if isinstance(body, dict) and body.get("error"):
            return f"{action} failed: {body.get('error')} ({body.get('error_description') or ''})"
        return f"{action} failed: http {resp.status_code}"
