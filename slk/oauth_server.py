import hmac
import html
import http.server
import queue
import socketserver
import ssl
import threading
import urllib.parse
from typing import Callable, Optional

from .constants import OAUTH_CALLBACK_HOST, OAUTH_CALLBACK_PORT, OAUTH_CALLBACK_TIMEOUT
from .utils import CallbackTimeout, ListenerBindFailure, LoginError, ProviderDenied, StateMismatch, printDebug

# Seconds a client gets to finish the TLS handshake and send its request.
HANDSHAKE_TIMEOUT = 10

# Listener states.
IDLE = 'idle'
LISTENING = 'listening'
REQUEST_RECEIVED = 'request_received'
TIMED_OUT = 'timed_out'
CLOSED = 'closed'


class CallbackResult:
    """Parsed outcome of the one accepted OAuth redirect."""

    def __init__(self, code: Optional[str] = None, state: Optional[str] = None,
                 error: Optional[str] = None, error_description: Optional[str] = None):
        self.code = code
        self.state = state
        self.error = error
        self.error_description = error_description

    def __repr__(self):
        if self.error:
            return f"CallbackResult(error={self.error!r})"
        return "CallbackResult(code=<redacted>)"


def _render_page(title: str, message: str, detail: Optional[str] = None, is_error: bool = False) -> bytes:
    color = '#E24A4A' if is_error else '#2EB67D'
    icon = '&#10005;' if is_error else '&#10003;'
    detail_html = ''
    if detail:
        detail_html = f'<div class="detail">{html.escape(detail)}</div>'
    page = f"""<!DOCTYPE html>
<html>
<head>
    <meta charset="UTF-8">
    <title>slk - {html.escape(title)}</title>
    <style>
        body {{
            font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', sans-serif;
            background: #1A1D21;
            color: #ffffff;
            display: flex;
            align-items: center;
            justify-content: center;
            min-height: 100vh;
            margin: 0;
        }}
        .container {{
            text-align: center;
            max-width: 480px;
            width: 90%;
        }}
        .icon {{
            font-size: 48px;
            color: {color};
        }}
        .detail {{
            margin: 16px 0;
            padding: 12px 20px;
            border: 1px solid {color};
            border-radius: 8px;
            font-family: 'Courier New', monospace;
        }}
        .hint {{
            color: rgba(255, 255, 255, 0.6);
        }}
    </style>
</head>
<body>
    <div class="container">
        <div class="icon">{icon}</div>
        <h1>{html.escape(title)}</h1>
        <p>{html.escape(message)}</p>
        {detail_html}
        <p class="hint">You can close this browser tab and return to your terminal.</p>
    </div>
</body>
</html>
"""
    return page.encode('utf-8')


class OAuthCallbackHandler(http.server.BaseHTTPRequestHandler):
    """Handler for the Slack OAuth redirect."""

    def do_GET(self):
        """Handle GET request from the OAuth provider redirect."""
        parsed = urllib.parse.urlparse(self.path)

        if parsed.path == '/favicon.ico':
            # Browsers ask for this on their own; it is not the callback.
            self.send_response(204)
            self.end_headers()
            return

        params = urllib.parse.parse_qs(parsed.query)
        received_state = params.get('state', [''])[0]

        # Validate CSRF state parameter before looking at anything else.
        if not received_state or not hmac.compare_digest(received_state.encode('utf-8'),
                                                         self.server.expected_state.encode('utf-8')):
            self.send_page(400, _render_page(
                "Authentication Failed",
                "This sign-in link is not valid for the current login attempt.",
                "Run 'slk login' to try again.",
                is_error=True
            ))
            if received_state:
                reason = "Invalid state parameter in OAuth callback - possible CSRF attack."
            else:
                reason = "Missing state parameter in OAuth callback - possible CSRF attack."
            self.server.deliver(StateMismatch(f"{reason} Please run 'slk login' again."))
            return

        if 'error' in params:
            error = params['error'][0]
            error_description = params.get('error_description', [None])[0]
            self.send_page(200, _render_page(
                "Authentication Failed",
                "Slack did not authorize this login.",
                error_description or error,
                is_error=True
            ))
            message = f"Slack denied the authorization request: {error}"
            if error_description:
                message += f" - {error_description}"
            self.server.deliver(ProviderDenied(message, error=error, error_description=error_description))
            return

        code = params.get('code', [''])[0]
        if not code:
            self.send_page(400, _render_page(
                "Authentication Failed",
                "The callback did not include an authorization code.",
                is_error=True
            ))
            self.server.deliver(ProviderDenied(
                "No 'code' parameter in OAuth callback. Authorization may have been denied.",
                error='missing_code'
            ))
            return

        self.send_page(200, _render_page(
            "Authentication Successful",
            "slk received the authorization from Slack and is finishing the login."
        ))
        self.server.deliver(CallbackResult(code=code, state=received_state))

    def send_page(self, status: int, body: bytes):
        self.send_response(status)
        self.send_header('Content-Type', 'text/html; charset=utf-8')
        self.send_header('Content-Length', str(len(body)))
        self.send_header('Connection', 'close')
        self.end_headers()
        self.wfile.write(body)
        self.wfile.flush()

    def log_message(self, format, *args):
        """Route access logs to the debug function instead of stderr."""
        printDebug("oauth callback: " + (format % args), self.server.print_debug_fn)


class _TLSCallbackServer(socketserver.TCPServer):
    """TCPServer terminating TLS on each accepted connection."""

    allow_reuse_address = True

    def __init__(self, server_address, handler, ssl_context: ssl.SSLContext,
                 expected_state: str, deliver: Callable, print_debug_fn=None):
        self.ssl_context = ssl_context
        self.expected_state = expected_state
        self.deliver = deliver
        self.print_debug_fn = print_debug_fn
        super().__init__(server_address, handler)

    def get_request(self):
        sock, addr = self.socket.accept()
        sock.settimeout(HANDSHAKE_TIMEOUT)
        try:
            return self.ssl_context.wrap_socket(sock, server_side=True), addr
        except OSError as e:
            # Typically the browser refusing the self-signed certificate
            # before the user accepted it. The slot stays open.
            printDebug(f"TLS handshake with {addr[0]} failed: {str(e)}", self.print_debug_fn)
            sock.close()
            raise

    def handle_error(self, request, client_address):
        printDebug(f"error handling callback request from {client_address[0]}", self.print_debug_fn)


class OAuthCallbackServer:
    """Local HTTPS server accepting exactly one OAuth callback."""

    def __init__(self, expected_state: str, ssl_context: ssl.SSLContext,
                 host: str = OAUTH_CALLBACK_HOST, port: int = OAUTH_CALLBACK_PORT,
                 timeout: float = OAUTH_CALLBACK_TIMEOUT, print_debug_fn=None):
        """
        Initialize OAuth callback server.

        Args:
            expected_state: The state value generated for this login attempt
            ssl_context: Server-side TLS context holding the ephemeral certificate
            host: Loopback address to bind
            port: Port registered in the Slack app's redirect URI
            timeout: Maximum time to wait for callback (seconds)
            print_debug_fn: Optional callback receiving debug messages
        """
        self.expected_state = expected_state
        self.ssl_context = ssl_context
        self.host = host
        self.port = port
        self.timeout = timeout
        self.print_debug_fn = print_debug_fn
        self.state = IDLE
        self.server = None
        self.server_thread = None
        self.callback_queue = queue.Queue(maxsize=1)
        self._stopped = threading.Event()
        self._resolved = threading.Event()

    def start(self) -> int:
        """
        Bind the port and start accepting connections.

        The socket is listening once this returns, so the authorization URL
        can be shown right away.

        Returns:
            The port number the server is listening on

        Raises:
            ListenerBindFailure: If the port cannot be bound
        """
        try:
            self.server = _TLSCallbackServer(
                (self.host, self.port),
                OAuthCallbackHandler,
                self.ssl_context,
                self.expected_state,
                self._deliver,
                self.print_debug_fn
            )
        except OSError as e:
            raise ListenerBindFailure(
                f"Could not listen on {self.host}:{self.port} ({str(e)}).\n"
                f"Port {self.port} is probably in use. Close the application using it "
                f"(check with: lsof -i :{self.port}) and run 'slk login' again.",
                port=self.port
            )

        # Check for shutdown twice a second.
        self.server.timeout = 0.5
        self.port = self.server.server_address[1]
        self.state = LISTENING

        self.server_thread = threading.Thread(target=self._run_server, args=(self.server,))
        self.server_thread.daemon = True
        self.server_thread.start()

        printDebug(f"oauth callback server listening on {self.host}:{self.port}", self.print_debug_fn)
        return self.port

    def _deliver(self, result):
        # The first result resolves the listener, whether or not it was consumed yet.
        if self._resolved.is_set():
            printDebug("ignoring extra OAuth callback", self.print_debug_fn)
            return
        self._resolved.set()
        self.callback_queue.put_nowait(result)

    def _run_server(self, server):
        """Serve until one request resolves or the server is stopped."""
        while not self._stopped.is_set() and not self._resolved.is_set():
            try:
                server.handle_request()
            except (OSError, ValueError):
                # Listening socket closed by stop().
                break
        server.server_close()

    def wait_for_callback(self) -> CallbackResult:
        """
        Block until the callback arrives or the timeout elapses.

        Returns:
            The CallbackResult carrying the authorization code

        Raises:
            CallbackTimeout: If no callback arrived in time
            StateMismatch: If the callback state was missing or wrong
            ProviderDenied: If Slack redirected back with an error
        """
        try:
            result = self.callback_queue.get(timeout=self.timeout)
        except queue.Empty:
            self.state = TIMED_OUT
            raise CallbackTimeout(
                f"No OAuth callback received within {int(self.timeout)} seconds. "
                "Run 'slk login' again to retry."
            )

        self.state = REQUEST_RECEIVED
        if isinstance(result, LoginError):
            raise result
        return result

    def stop(self):
        """Stop the server and close the listening socket. Safe to call twice."""
        self._stopped.set()
        server = self.server
        self.server = None
        if self.server_thread is not None and self.server_thread.is_alive():
            self.server_thread.join(timeout=2)
        if server is not None:
            server.server_close()
        self.state = CLOSED
