"""Local HTTP listener that receives the browser sign-in token.

:class:`AuthCallbackServer` drives the interactive sign-in:

1. :meth:`~AuthCallbackServer.authenticate` takes a fresh lifetime from a
   :class:`~tether.reactive.SequentialLifetimes`, which terminates any
   previous attempt and frees its port first.
2. A :class:`PendingServer` binds ``http://<host>:<port>`` and serves a
   single route, ``GET <path>?token=...``.
3. The system browser is opened at the remote sign-in page with the local
   callback URL as its return target.
4. The first request carrying a token forwards it to
   :meth:`LoginModel.sign_in <tether.auth.login.LoginModel.sign_in>`,
   answers with a success page and terminates the attempt's lifetime,
   which stops the listener.

A request without the token parameter answers 400 and leaves the listener
open. Requests are served on daemon threads, and stopping the listener
gives in-flight requests a short grace period to finish.
"""

from __future__ import annotations

import html
import logging
import threading
import webbrowser
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Callable, Optional
from urllib.parse import parse_qs, urlparse

from tether.auth.login import LoginModel
from tether.exceptions import BrowserLaunchError, MissingTokenError, PortBindError
from tether.models import CallbackConfig
from tether.reactive.lifetime import Lifetime, SequentialLifetimes

logger = logging.getLogger(__name__)

SUCCESS_MESSAGE = (
    "Authorization successful! Now you can close this page and return to the application."
)


def extract_token(query: str, parameter: str = "token") -> str:
    """Return the first non-empty *parameter* value of a query string.

    Raises:
        MissingTokenError: If the parameter is absent or empty.
    """
    values = parse_qs(query).get(parameter)
    if not values or not values[0]:
        raise MissingTokenError(f"Query parameter '{parameter}' not found in callback")
    return values[0]


class _CallbackHandler(BaseHTTPRequestHandler):
    server: _CallbackHTTPServer

    def do_GET(self) -> None:
        parsed = urlparse(self.path)
        if parsed.path != self.server.route_path:
            self._respond(404, "Not found.")
            return

        try:
            token = extract_token(parsed.query, self.server.token_parameter)
        except MissingTokenError as exc:
            self._respond(exc.http_status, f"Sign-in failed: {exc}")
            return

        if not self.server.claim():
            self._respond(410, "This sign-in link has already been used.")
            return

        try:
            self.server.on_token(token)
        except Exception as exc:
            logger.exception("Forwarding the sign-in token failed")
            self.server.release_claim()
            self._respond(500, f"Sign-in failed: {exc}")
            return

        self._respond(200, SUCCESS_MESSAGE)
        self.server.mark_completed()

    def _respond(self, status: int, message: str) -> None:
        body = f"<html><body><h2>{html.escape(message)}</h2></body></html>".encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "text/html; charset=utf-8")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, format: str, *args: Any) -> None:
        logger.debug("Callback request from %s: %s", self.address_string(), format % args)


class _CallbackHTTPServer(ThreadingHTTPServer):
    """Threading server that reports completion after the response is closed.

    ``block_on_close`` is off because completion terminates the lifetime
    from a request thread, and closing the server there must not join that
    same thread. Draining is done with :meth:`wait_idle` instead.
    """

    daemon_threads = True
    block_on_close = False

    def __init__(
        self,
        address: tuple[str, int],
        route_path: str,
        token_parameter: str,
        on_token: Callable[[str], None],
        on_complete: Callable[[], None],
    ) -> None:
        super().__init__(address, _CallbackHandler)
        self.route_path = route_path
        self.token_parameter = token_parameter
        self.on_token = on_token
        self._on_complete = on_complete
        self._cond = threading.Condition()
        self._active = 0
        self._claimed = False
        self._completed = False
        self._completion_reported = False

    @property
    def completed(self) -> bool:
        return self._completed

    def claim(self) -> bool:
        """Reserve the single sign-in this listener accepts."""
        with self._cond:
            if self._claimed:
                return False
            self._claimed = True
            return True

    def release_claim(self) -> None:
        with self._cond:
            self._claimed = False

    def mark_completed(self) -> None:
        with self._cond:
            self._completed = True

    def process_request_thread(self, request: Any, client_address: Any) -> None:
        with self._cond:
            self._active += 1
        try:
            super().process_request_thread(request, client_address)
        finally:
            with self._cond:
                self._active -= 1
                report = self._completed and not self._completion_reported
                if report:
                    self._completion_reported = True
                self._cond.notify_all()
            if report:
                self._on_complete()

    def wait_idle(self, timeout: float) -> bool:
        """Wait up to *timeout* seconds for in-flight requests to finish."""
        with self._cond:
            return self._cond.wait_for(lambda: self._active == 0, timeout)


class PendingServer:
    """A bound callback listener and the lifetime that owns it.

    Created by :meth:`AuthCallbackServer.authenticate`. The listener stops
    when :attr:`lifetime` terminates, which happens after a successful
    sign-in, on a newer :meth:`~AuthCallbackServer.authenticate` call, on
    :meth:`~AuthCallbackServer.cancel`, or when a parent lifetime ends.
    """

    def __init__(
        self,
        lifetime: Lifetime,
        server: _CallbackHTTPServer,
        public_host: str,
        shutdown_grace: float,
        shutdown_timeout: float,
    ) -> None:
        self.lifetime = lifetime
        self.login_url: Optional[str] = None
        self._server = server
        self._public_host = public_host
        self._shutdown_grace = shutdown_grace
        self._shutdown_timeout = shutdown_timeout
        self._thread = threading.Thread(
            target=server.serve_forever,
            kwargs={"poll_interval": 0.1},
            name=f"tether-callback-{self.port}",
            daemon=True,
        )

    @property
    def port(self) -> int:
        """The bound port (resolved when the configured port is 0)."""
        return self._server.server_address[1]

    @property
    def callback_url(self) -> str:
        return f"http://{self._public_host}:{self.port}{self._server.route_path}"

    @property
    def is_listening(self) -> bool:
        return self.lifetime.is_alive

    @property
    def succeeded(self) -> bool:
        """``True`` once a token was received and forwarded."""
        return self._server.completed

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the listener stopped; ``False`` on timeout."""
        return self.lifetime.wait(timeout)

    def start(self) -> None:
        self._thread.start()
        self.lifetime.add(self.stop)
        logger.debug("Callback listener bound at %s", self.callback_url)

    def stop(self) -> None:
        """Stop accepting, drain in-flight requests, close the socket."""
        self._server.shutdown()
        if not self._server.wait_idle(self._shutdown_grace):
            logger.debug("Callback requests still in flight after %.2fs", self._shutdown_grace)
        self._server.server_close()
        if self._thread is not threading.current_thread():
            self._thread.join(self._shutdown_timeout)
        logger.debug("Callback listener on port %d stopped", self.port)


class AuthCallbackServer:
    """Run browser sign-in attempts, one listener at a time.

    Args:
        login: Receives the token through ``sign_in(token, "")`` and builds
            the browser URL.
        lifetime: Parent of every attempt's lifetime.
        config: Listener settings.
        open_browser: Callable opening a URL; returns ``False`` when no
            browser could be launched. Defaults to :func:`webbrowser.open`.
    """

    def __init__(
        self,
        login: LoginModel,
        lifetime: Lifetime,
        config: Optional[CallbackConfig] = None,
        open_browser: Callable[[str], bool] = webbrowser.open,
    ) -> None:
        self._login = login
        self._config = config or CallbackConfig()
        self._open_browser = open_browser
        self._sequence = SequentialLifetimes(lifetime, name="auth")
        self._pending: Optional[PendingServer] = None

    @property
    def pending(self) -> Optional[PendingServer]:
        """The listener of the current attempt, if it is still bound."""
        pending = self._pending
        if pending is not None and pending.is_listening:
            return pending
        return None

    def authenticate(self, launch_browser: bool = True) -> PendingServer:
        """Start a sign-in attempt, superseding any pending one.

        Args:
            launch_browser: Open the system browser. When ``False`` the
                caller presents :attr:`PendingServer.login_url` itself.

        Returns:
            The bound :class:`PendingServer`.

        Raises:
            PortBindError: If the listener cannot bind. The attempt's
                lifetime is already terminated.
            BrowserLaunchError: If the browser cannot be opened. The
                listener stays bound so the URL can be opened by hand.
        """
        lifetime = self._sequence.next()
        pending = self._bind(lifetime)
        self._pending = pending
        pending.login_url = self._login.login_url(pending.callback_url)

        if launch_browser:
            logger.info("Opening browser at %s", pending.login_url)
            try:
                opened = self._open_browser(pending.login_url)
            except (webbrowser.Error, OSError) as exc:
                raise BrowserLaunchError(f"Could not open a browser: {exc}", pending.login_url) from exc
            if not opened:
                raise BrowserLaunchError("No browser could be launched", pending.login_url)
        return pending

    def cancel(self) -> None:
        """Terminate the pending attempt, if any."""
        self._sequence.terminate_current()

    def _bind(self, lifetime: Lifetime) -> PendingServer:
        cfg = self._config
        try:
            server = _CallbackHTTPServer(
                (cfg.host, cfg.port),
                route_path=cfg.path,
                token_parameter=cfg.token_parameter,
                on_token=self._forward_token,
                on_complete=lifetime.terminate,
            )
        except OSError as exc:
            lifetime.terminate()
            raise PortBindError(f"Cannot listen on {cfg.host}:{cfg.port}: {exc}") from exc

        pending = PendingServer(
            lifetime,
            server,
            public_host=cfg.public_host,
            shutdown_grace=cfg.shutdown_grace,
            shutdown_timeout=cfg.shutdown_timeout,
        )
        pending.start()
        return pending

    def _forward_token(self, token: str) -> None:
        self._login.sign_in(token, "")
