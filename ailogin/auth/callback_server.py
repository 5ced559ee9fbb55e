"""Ephemeral localhost HTTP server for OAuth2 redirect capture.

Binds a provider-preferred or OS-assigned port, serves exactly one
authorization redirect, runs the code exchange while the browser
request is held open, then shuts down. Uses stdlib ``http.server`` on
a daemon thread; results are handed back to the asyncio loop that
started the flow.
"""

# pylint: disable=logging-too-many-args

# pylint: disable=C0103

from __future__ import annotations

import asyncio
import concurrent.futures
import errno
import html
import logging
import threading

from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import TYPE_CHECKING, Any
from urllib.parse import parse_qs, urlparse

from ..exceptions import (
    AuthFlowTimeout,
    InvalidStateError,
    NoAuthorizationCodeError,
    PortBindError,
    ProviderDeniedAuthorization,
)
from ..log import redact_query
from ..types import FlowState


if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable


logger = logging.getLogger("ailogin.auth")

_ADDR_IN_USE = {errno.EADDRINUSE, getattr(errno, "WSAEADDRINUSE", errno.EADDRINUSE)}

_PAGE_STYLE = """
  body { font-family: -apple-system, BlinkMacSystemFont, "Segoe UI", Roboto, sans-serif;
         display: flex; align-items: center; justify-content: center;
         height: 100vh; margin: 0; background: #f0f2f5; color: #1a1a2e; }
  .card { text-align: center; padding: 2rem 3rem; background: white;
          border-radius: 12px; box-shadow: 0 2px 12px rgba(0,0,0,.08); }
  h1 { font-size: 1.5rem; margin-bottom: 0.5rem; }
  h1.error { color: #cc0000; }
  p { color: #666; }
"""

_PAGE_TEMPLATE = """<!DOCTYPE html>
<html>
<head><title>{title}</title>
<style>{style}</style></head>
<body><div class="card">
  <h1{h1_class}>{heading}</h1>
  <p>{detail}</p>
</div></body></html>"""


def _render_page(title: str, heading: str, detail: str, *, error: bool = False) -> str:
    return _PAGE_TEMPLATE.format(
        title=title,
        style=_PAGE_STYLE,
        h1_class=' class="error"' if error else "",
        heading=heading,
        detail=html.escape(detail, quote=True),
    )


SUCCESS_PAGE = _render_page(
    "Authentication Complete",
    "&#x2705; Authentication Complete",
    "You can close this window and return to the application.",
)

ALREADY_HANDLED_PAGE = _render_page(
    "Already Handled",
    "Sign-in already handled",
    "This sign-in request has already been processed. You can close this window.",
)


class OAuthCallbackServer:
    """Single-shot localhost HTTP server capturing one OAuth2 redirect.

    Parameters
    ----------
    expected_state : str
        The ``state`` sent in the authorization URL.
    on_code : callable
        ``async (code) -> result`` run on ``loop`` while the browser
        request waits; its result resolves the flow.
    loop : asyncio.AbstractEventLoop
        Loop that owns the flow and runs ``on_code``.
    callback_path : str
        Only this path is served; anything else gets 404.
    host : str
        Bind address (default ``"127.0.0.1"``).
    exchange_timeout : float
        Upper bound in seconds for ``on_code``.
    success_redirect : callable, optional
        ``(result) -> url or None``; a URL turns the success page into a 302.
    error_redirect_url : str, optional
        302 target used when ``on_code`` fails.
    provider : str, optional
        Provider id, for error context and logs.
    flow_id : str, optional
        Flow id, for error context and logs.
    """

    def __init__(
        self,
        expected_state: str,
        on_code: Callable[[str], Awaitable[Any]],
        loop: asyncio.AbstractEventLoop,
        callback_path: str = "/callback",
        host: str = "127.0.0.1",
        exchange_timeout: float = 30.0,
        success_redirect: Callable[[Any], str | None] | None = None,
        error_redirect_url: str | None = None,
        provider: str | None = None,
        flow_id: str | None = None,
    ) -> None:
        """Initialize the callback server."""
        self._expected_state = expected_state
        self._on_code = on_code
        self._loop = loop
        self._callback_path = callback_path
        self._host = host
        self._exchange_timeout = exchange_timeout
        self._success_redirect = success_redirect
        self._error_redirect_url = error_redirect_url
        self._provider = provider
        self._flow_id = flow_id

        self._server: HTTPServer | None = None
        self._thread: threading.Thread | None = None
        self._actual_port = 0
        self._flow_state = FlowState.LISTENING
        self._state_lock = threading.Lock()
        self._close_lock = threading.Lock()
        self._outcome: asyncio.Future[Any] = loop.create_future()

    @property
    def port(self) -> int:
        """The bound port (``0`` before ``start``)."""
        return self._actual_port

    @property
    def redirect_uri(self) -> str:
        """Get the redirect URI for this callback server.

        Returns
        -------
        str
            The full redirect URI (e.g. ``http://localhost:54321/callback``).
        """
        return f"http://localhost:{self._actual_port}{self._callback_path}"

    @property
    def flow_state(self) -> FlowState:
        """Current state of the flow served by this listener."""
        return self._flow_state

    @property
    def is_closed(self) -> bool:
        """Whether the listening socket has been released."""
        return self._server is None

    def _transition(self, expected: FlowState, new: FlowState) -> bool:
        """Move from ``expected`` to ``new``; return False if another path got there first."""
        with self._state_lock:
            if self._flow_state is not expected:
                return False
            self._flow_state = new
            return True

    def _settle(self, result: Any = None, error: BaseException | None = None) -> None:
        """Deliver the outcome to the owning loop (thread-safe)."""

        def _apply() -> None:
            if self._outcome.done():
                return
            if error is not None:
                self._outcome.set_exception(error)
            else:
                self._outcome.set_result(result)

        self._loop.call_soon_threadsafe(_apply)

    def _handle_callback(self, params: dict[str, list[str]]) -> tuple[int, dict[str, str], str]:
        """Process the callback query; returns (status, headers, body)."""
        if not self._transition(FlowState.LISTENING, FlowState.RECEIVED):
            return 200, {}, ALREADY_HANDLED_PAGE

        def first(name: str) -> str | None:
            return params.get(name, [None])[0]

        error = first("error")
        if error:
            exc: Exception = ProviderDeniedAuthorization(
                error,
                first("error_description"),
                provider=self._provider,
                flow_id=self._flow_id,
            )
            return self._reject(exc, 400)

        if first("state") != self._expected_state:
            exc = InvalidStateError(
                "Invalid OAuth state (possible CSRF attack)",
                provider=self._provider,
                flow_id=self._flow_id,
            )
            return self._reject(exc, 400)

        code = first("code")
        if not code:
            exc = NoAuthorizationCodeError(
                "No authorization code in callback",
                provider=self._provider,
                flow_id=self._flow_id,
            )
            return self._reject(exc, 400)

        future = asyncio.run_coroutine_threadsafe(self._on_code(code), self._loop)
        try:
            result = future.result(timeout=self._exchange_timeout)
        except concurrent.futures.TimeoutError:
            future.cancel()
            exc = AuthFlowTimeout(
                f"Token exchange timed out after {self._exchange_timeout:g}s",
                timeout=self._exchange_timeout,
                provider=self._provider,
                flow_id=self._flow_id,
            )
            return self._reject(exc, 504, redirect=self._error_redirect_url)
        except concurrent.futures.CancelledError:
            exc = AuthFlowTimeout(
                "Token exchange was cancelled",
                timeout=self._exchange_timeout,
                provider=self._provider,
                flow_id=self._flow_id,
            )
            return self._reject(exc, 500, redirect=self._error_redirect_url)
        except Exception as err:  # noqa: BLE001
            return self._reject(err, 500, redirect=self._error_redirect_url)

        self._transition(FlowState.RECEIVED, FlowState.RESOLVED)
        self._settle(result=result)

        location = self._success_redirect(result) if self._success_redirect else None
        if location:
            return 302, {"Location": location}, ""
        return 200, {}, SUCCESS_PAGE

    def _reject(
        self, exc: Exception, status: int, redirect: str | None = None
    ) -> tuple[int, dict[str, str], str]:
        """Fail the flow with ``exc`` and build the browser response."""
        self._transition(FlowState.RECEIVED, FlowState.REJECTED)
        self._settle(error=exc)
        logger.info("OAuth callback rejected for %s: %s", self._provider, exc)
        if redirect:
            return 302, {"Location": redirect}, ""
        message = getattr(exc, "message", None) or str(exc)
        page = _render_page(
            "Authentication Error", "&#x274C; Authentication Failed", message, error=True
        )
        return status, {}, page

    def start(self, preferred_port: int | None = None) -> int:
        """Bind the listener and start serving on a daemon thread.

        Parameters
        ----------
        preferred_port : int, optional
            Port to try first. If it is already in use an ephemeral
            port is bound instead. ``None`` always binds an ephemeral port.

        Returns
        -------
        int
            The bound port.

        Raises
        ------
        PortBindError
            If no port could be bound.
        """
        server_ref = self

        class _CallbackHandler(BaseHTTPRequestHandler):
            """HTTP request handler for OAuth2 callbacks."""

            def do_GET(self) -> None:
                """Handle GET requests."""
                parsed = urlparse(self.path)
                if parsed.path != server_ref._callback_path:  # noqa: SLF001
                    self.send_error(404)
                    return

                status, headers, body = server_ref._handle_callback(  # noqa: SLF001
                    parse_qs(parsed.query)
                )
                self._respond(status, headers, body)

                if server_ref.flow_state in (FlowState.RESOLVED, FlowState.REJECTED):
                    # shutdown() from the serving thread would deadlock
                    threading.Thread(target=server_ref.close, daemon=True).start()

            def _respond(self, status: int, headers: dict[str, str], body: str) -> None:
                """Send a response with security headers."""
                encoded = body.encode("utf-8")
                self.send_response(status)
                for name, value in headers.items():
                    self.send_header(name, value)
                if encoded:
                    self.send_header("Content-Type", "text/html; charset=utf-8")
                self.send_header("Content-Length", str(len(encoded)))
                self.send_header("Cache-Control", "no-store")
                self.send_header(
                    "Content-Security-Policy",
                    "default-src 'none'; style-src 'unsafe-inline'",
                )
                self.send_header("X-Content-Type-Options", "nosniff")
                self.end_headers()
                if encoded:
                    self.wfile.write(encoded)

            def log_message(self, *args: Any) -> None:
                """Redirect HTTP server logging to the ailogin logger."""
                if args:
                    logger.debug("OAuth callback server: %s", redact_query(args[0] % args[1:]))

        self._server = self._bind(_CallbackHandler, preferred_port or 0)
        self._actual_port = self._server.server_address[1]

        self._thread = threading.Thread(
            target=self._server.serve_forever,
            kwargs={"poll_interval": 0.1},
            daemon=True,
        )
        self._thread.start()

        logger.debug("OAuth callback server started on %s", self.redirect_uri)
        return self._actual_port

    def _bind(self, handler: type[BaseHTTPRequestHandler], port: int) -> HTTPServer:
        """Bind ``port``, falling back to an ephemeral port when it is taken."""
        try:
            return HTTPServer((self._host, port), handler)
        except OSError as exc:
            if port and exc.errno in _ADDR_IN_USE:
                logger.info("Callback port %d in use, using an ephemeral port", port)
                return self._bind(handler, 0)
            msg = f"Could not bind callback listener on {self._host}:{port}: {exc}"
            raise PortBindError(msg, port=port, provider=self._provider) from exc

    async def wait(self, timeout: float = 300.0) -> Any:
        """Wait for the flow outcome.

        Parameters
        ----------
        timeout : float
            Seconds to wait for the browser redirect (default 300).

        Returns
        -------
        Any
            The value returned by ``on_code``.

        Raises
        ------
        AuthFlowTimeout
            If no callback arrived in time.
        AuthenticationError
            If the callback carried an error, a bad state, or no code,
            or if ``on_code`` failed.
        """
        try:
            return await asyncio.wait_for(asyncio.shield(self._outcome), timeout)
        except asyncio.TimeoutError:
            if self._transition(FlowState.LISTENING, FlowState.REJECTED):
                msg = f"Authorization timed out after {timeout:g}s"
                raise AuthFlowTimeout(
                    msg, timeout=timeout, provider=self._provider, flow_id=self._flow_id
                ) from None
        # A redirect arrived just as the timer fired; its exchange is bounded separately
        return await self._outcome

    def close(self) -> None:
        """Shut down the server and release the socket. Safe to call repeatedly."""
        with self._close_lock:
            server, self._server = self._server, None
            if server is None:
                return
            server.shutdown()
            server.server_close()
            thread, self._thread = self._thread, None
            if thread is not None and thread is not threading.current_thread():
                thread.join(timeout=5)
            logger.debug("OAuth callback server on port %d closed", self._actual_port)
