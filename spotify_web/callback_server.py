import asyncio
import logging
import ssl
import threading
import urllib.parse
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Optional, Tuple

from .errors import AuthorizationDeniedError, ConfigError

logger = logging.getLogger(__name__)

LOGIN_COMPLETE_MESSAGE = "Login complete. You can close this window."
SHUTDOWN_TIMEOUT = 2.0
HANDSHAKE_TIMEOUT = 10.0
REQUEST_TIMEOUT = 10.0


class _CallbackHandler(BaseHTTPRequestHandler):
    server: "_ReceiverHTTPServer"
    timeout = REQUEST_TIMEOUT

    def do_GET(self) -> None:
        receiver = self.server.receiver
        parsed = urllib.parse.urlsplit(self.path)
        if receiver.callback_path != "/" and parsed.path != receiver.callback_path:
            self._reply(404, "not found")
            return

        query = urllib.parse.parse_qs(parsed.query)

        def first(key: str) -> str:
            values = query.get(key) or [""]
            return values[0]

        if first("state") != receiver.expected_state:
            self._reply(400, "invalid state")
            return

        error = first("error")
        if error:
            self._reply(400, f"spotify auth error: {error}")
            receiver.deliver_error(AuthorizationDeniedError(f"spotify auth error: {error}"))
            return

        code = first("code")
        if not code:
            self._reply(400, "missing code")
            return

        self._reply(200, LOGIN_COMPLETE_MESSAGE)
        receiver.deliver_code(code)

    def _reply(self, status: int, message: str) -> None:
        body = message.encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "text/plain; charset=utf-8")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, format: str, *args) -> None:
        logger.debug("callback %s - %s", self.address_string(), format % args)


class _ReceiverHTTPServer(ThreadingHTTPServer):
    daemon_threads = True

    def __init__(self, address: Tuple[str, int], receiver: "CallbackServer"):
        self.receiver = receiver
        super().__init__(address, _CallbackHandler)

    def finish_request(self, request, client_address) -> None:
        # TLS handshakes run here, in the per-connection thread, never in the accept loop.
        if isinstance(request, ssl.SSLSocket):
            request.settimeout(HANDSHAKE_TIMEOUT)
            try:
                request.do_handshake()
            except OSError as e:
                logger.debug("callback TLS handshake with %s failed: %s", client_address, e)
                return
        super().finish_request(request, client_address)


class CallbackServer:
    """Short-lived listener that captures one OAuth redirect.

    Listening -> {code received | error received | cancelled/timed out} -> closed.
    Only the first result is kept; later browser requests (retries, favicon
    fetches) are answered but their results are dropped.

    Use as a context manager so the listener is shut down on every exit path::

        with CallbackServer("localhost", 8888, "/callback", state) as server:
            code = await server.wait_for_code()
    """

    def __init__(
        self,
        host: str,
        port: int,
        callback_path: str,
        expected_state: str,
        *,
        tls_cert_file: str = "",
        tls_key_file: str = "",
        use_tls: bool = False,
    ):
        if use_tls and (not tls_cert_file or not tls_key_file):
            raise ConfigError("https redirect requires a TLS certificate and key file")

        self.host = host
        self.requested_port = int(port)
        self.callback_path = callback_path or "/"
        self.expected_state = expected_state
        self.tls_cert_file = tls_cert_file
        self.tls_key_file = tls_key_file
        self.use_tls = use_tls

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._result: Optional[asyncio.Future] = None
        self._server: Optional[_ReceiverHTTPServer] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def port(self) -> int:
        """The bound port (the OS-assigned one when 0 was requested)."""
        if self._server is None:
            return self.requested_port
        return int(self._server.server_address[1])

    def start(self) -> None:
        """Bind and start serving. Must be called from the event loop that will wait for the result."""

        self._loop = asyncio.get_running_loop()
        self._result = self._loop.create_future()

        try:
            server = _ReceiverHTTPServer((self.host, self.requested_port), self)
        except OSError as e:
            raise ConfigError(f"listen {self.host}:{self.requested_port}: {e}") from e

        if self.use_tls:
            try:
                context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
                context.load_cert_chain(self.tls_cert_file, self.tls_key_file)
                server.socket = context.wrap_socket(
                    server.socket, server_side=True, do_handshake_on_connect=False
                )
            except (OSError, ssl.SSLError) as e:
                server.server_close()
                raise ConfigError(f"load TLS certificate: {e}") from e

        self._server = server
        self._thread = threading.Thread(
            target=server.serve_forever,
            kwargs={"poll_interval": 0.1},
            name="oauth-callback",
            daemon=True,
        )
        self._thread.start()
        logger.debug("callback server listening on %s:%d%s", self.host, self.port, self.callback_path)

    def close(self) -> None:
        if self._server is None:
            return
        server, self._server = self._server, None
        # shutdown() has no timeout of its own.
        stopper = threading.Thread(target=server.shutdown, name="oauth-callback-shutdown", daemon=True)
        stopper.start()
        stopper.join(timeout=SHUTDOWN_TIMEOUT)
        if stopper.is_alive():
            logger.warning("callback server did not stop within %.1fs; closing its socket", SHUTDOWN_TIMEOUT)
        server.server_close()
        if self._thread is not None:
            self._thread.join(timeout=SHUTDOWN_TIMEOUT)
            self._thread = None
        if self._result is not None and not self._result.done():
            self._result.cancel()

    def __enter__(self) -> "CallbackServer":
        self.start()
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    async def wait_for_code(self) -> str:
        """Block until the redirect arrives. Raises AuthorizationDeniedError if the provider reported one."""
        if self._result is None:
            raise RuntimeError("callback server is not started")
        return await self._result

    # Called from the HTTP server threads.

    def deliver_code(self, code: str) -> None:
        self._deliver(code, None)

    def deliver_error(self, error: Exception) -> None:
        self._deliver(None, error)

    def _deliver(self, code: Optional[str], error: Optional[Exception]) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        try:
            loop.call_soon_threadsafe(self._settle, code, error)
        except RuntimeError:
            # Loop closed between the check and the call; nobody is waiting.
            return

    def _settle(self, code: Optional[str], error: Optional[Exception]) -> None:
        result = self._result
        if result is None or result.done():
            return
        if error is not None:
            result.set_exception(error)
        else:
            result.set_result(code)
