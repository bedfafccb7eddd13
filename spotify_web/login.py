import urllib.parse
import webbrowser
from dataclasses import dataclass, field
from typing import Callable, List, Optional

import httpx

from .auth import STATE_BYTES, OAuthClient, build_authorize_url, new_pkce, random_url_safe
from .callback_server import CallbackServer
from .errors import ConfigError
from .token_manager import Token


@dataclass
class OAuthConfig:
    client_id: str
    redirect_uri: str
    scopes: List[str] = field(default_factory=list)
    user_agent: str = ""
    tls_cert_file: str = ""
    tls_key_file: str = ""


@dataclass(frozen=True)
class LoginResult:
    token: Token
    redirect_uri: str
    authorize_url: str
    browser_opened: bool


def open_in_browser(url: str) -> bool:
    """Ask the desktop to open `url`. Returns False instead of raising when it cannot."""
    try:
        return bool(webbrowser.open(url))
    except webbrowser.Error:
        return False


def _host_as_written(redirect: urllib.parse.SplitResult) -> str:
    """Host part of the redirect netloc with its original spelling (`.hostname` lowercases)."""
    host = redirect.netloc.rpartition("@")[2]
    if host.startswith("["):
        return host[1 : host.find("]")]
    return host.partition(":")[0]


def _format_netloc(hostname: str, port: int) -> str:
    if ":" in hostname:
        hostname = f"[{hostname}]"
    return f"{hostname}:{port}"


def parse_redirect_uri(cfg: OAuthConfig) -> urllib.parse.SplitResult:
    """Validate the OAuth config and return the parsed redirect URI."""

    if not (cfg.client_id or "").strip():
        raise ConfigError("client id is required")
    if not (cfg.redirect_uri or "").strip():
        raise ConfigError("redirect uri is required")

    redirect = urllib.parse.urlsplit(cfg.redirect_uri.strip())
    if redirect.scheme not in ("http", "https"):
        raise ConfigError(f"redirect uri scheme must be http or https (got {redirect.scheme!r})")
    if not redirect.hostname:
        raise ConfigError(f"redirect uri must include host (got {cfg.redirect_uri!r})")
    try:
        redirect.port
    except ValueError as e:
        raise ConfigError(f"invalid redirect uri port: {e}") from e
    if redirect.scheme == "https" and (not cfg.tls_cert_file or not cfg.tls_key_file):
        raise ConfigError("https redirect requires SPOTIFY_TLS_CERT_FILE and SPOTIFY_TLS_KEY_FILE")
    return redirect


async def login_pkce(
    cfg: OAuthConfig,
    *,
    open_browser: Callable[[str], bool] = open_in_browser,
    on_authorize_url: Optional[Callable[[str], None]] = None,
    oauth_client: Optional[OAuthClient] = None,
    token_transport: Optional[httpx.AsyncBaseTransport] = None,
) -> LoginResult:
    """Run the Authorization Code + PKCE browser flow and return the new token.

    Wrap the call in ``asyncio.wait_for`` to bound how long we wait for the
    user. The local callback listener is closed on every exit path.
    """

    redirect = parse_redirect_uri(cfg)

    pkce = new_pkce()
    state = random_url_safe(STATE_BYTES)

    port = redirect.port
    if port is None:
        port = 443 if redirect.scheme == "https" else 80

    with CallbackServer(
        redirect.hostname,
        port,
        redirect.path or "/",
        state,
        tls_cert_file=cfg.tls_cert_file,
        tls_key_file=cfg.tls_key_file,
        use_tls=redirect.scheme == "https",
    ) as server:
        redirect_uri = cfg.redirect_uri.strip()
        if port == 0:
            # Keep the configured hostname so it still matches a registered redirect.
            redirect_uri = urllib.parse.urlunsplit(
                redirect._replace(netloc=_format_netloc(_host_as_written(redirect), server.port))
            )

        authorize_url = build_authorize_url(
            client_id=cfg.client_id.strip(),
            redirect_uri=redirect_uri,
            state=state,
            code_challenge=pkce.challenge,
            scopes=cfg.scopes,
        )
        if on_authorize_url is not None:
            on_authorize_url(authorize_url)
        browser_opened = bool(open_browser(authorize_url))

        code = await server.wait_for_code()

    oauth = oauth_client or OAuthClient(
        cfg.client_id.strip(), user_agent=cfg.user_agent, transport=token_transport
    )
    token = await oauth.exchange_code(redirect_uri=redirect_uri, code=code, code_verifier=pkce.verifier)
    return LoginResult(
        token=token,
        redirect_uri=redirect_uri,
        authorize_url=authorize_url,
        browser_opened=browser_opened,
    )
