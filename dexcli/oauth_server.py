import http.server
import socket
import sys
import traceback
import urllib.parse
from typing import Callable, Dict, Optional, Tuple

from rich.markup import escape

from . import __version__
from .constants import CALLBACK_PATH, FAVICON_PATH, LOGIN_PATH
from .lifecycle import ExitScheduler
from .pages import errorPage, successPage
from .signin_flow import AlreadyCompleted, FlowConfig, MalformedRequest, MethodNotImplemented, UnexpectedFailure
from .signin_flow import resolve_exchange
from .term_utils import prettyFormatDict, printStatus
from .utils import DexCliException, POST


def listen_address(redirect_uri: str) -> Tuple[str, int]:
    """
    Derive the address to bind from the redirect URI registered with the provider.

    Args:
        redirect_uri: e.g. http://127.0.0.1:5555/callback

    Returns:
        Tuple of (host, port)

    Raises:
        DexCliException: If the URI cannot be served by the local server
    """
    parsed = urllib.parse.urlparse(redirect_uri)
    if parsed.scheme != 'http':
        raise DexCliException(f"redirect URI must use plain http to be served locally: {redirect_uri}")
    if not parsed.hostname:
        raise DexCliException(f"redirect URI has no host: {redirect_uri}")
    if parsed.path != CALLBACK_PATH:
        raise DexCliException(f"redirect URI path must be {CALLBACK_PATH}: {redirect_uri}")
    try:
        port = parsed.port or 80
    except ValueError:
        raise DexCliException(f"redirect URI has an invalid port: {redirect_uri}")
    return parsed.hostname, port


class CallbackHandler(http.server.BaseHTTPRequestHandler):
    """Routes requests of the local sign-in server."""

    server_version = 'dexcli/' + __version__

    def _route(self):
        parsed = urllib.parse.urlparse(self.path)

        if parsed.path == LOGIN_PATH:
            self.handle_login()
        elif parsed.path == CALLBACK_PATH:
            self.handle_callback(parsed)
        elif parsed.path == FAVICON_PATH:
            # Browser noise
            self._send(200, b'')
        else:
            self.server.print_debug("called unknown URL: %s" % (self.path,))
            self._send(404, b'')
            printStatus(f"[bold red]unexpected request for {escape(parsed.path)}, is the redirect URI right?[/bold red]")
            self.server.scheduler.exit_now(1)

    do_GET = _route
    do_POST = _route
    do_PUT = _route
    do_PATCH = _route
    do_DELETE = _route
    do_HEAD = _route
    do_OPTIONS = _route

    def handle_login(self):
        """Send the browser to the provider's consent page."""
        url = self.server.flow.oauth2_config.auth_code_url(self.server.flow.state)
        self.send_response(307)
        self.send_header('Location', url)
        self.send_header('Content-Length', '0')
        self.end_headers()

    def handle_callback(self, parsed: urllib.parse.ParseResult):
        """Decide the sign-in outcome, answer the browser and schedule the exit."""
        if self.server.outcome is not None or self.server.scheduler.exit_code is not None:
            # One callback per run: a reload must not exchange or print a second token.
            self.server.print_debug("ignoring callback, outcome already decided")
            self._send(200, errorPage(AlreadyCompleted().message), 'text/html; charset=utf-8')
            return

        try:
            form = self._read_form(parsed)
        except ValueError as e:
            outcome = MalformedRequest(str(e))
        else:
            try:
                outcome = resolve_exchange(self.server.flow, self.command, form, self.server.print_debug)
            except Exception as e:
                self.server.print_debug(traceback.format_exc())
                outcome = UnexpectedFailure(e)
        self.server.outcome = outcome

        if isinstance(outcome, (MethodNotImplemented, MalformedRequest)):
            self._send(outcome.status, (outcome.message + '\n').encode('utf-8'), 'text/plain; charset=utf-8')
        elif outcome.success:
            self._send(200, successPage(), 'text/html; charset=utf-8')
        else:
            self._send(outcome.status, errorPage(outcome.message), 'text/html; charset=utf-8')

        if outcome.success:
            sys.stdout.write(prettyFormatDict(outcome.payload) + '\n')
            sys.stdout.flush()
            printStatus("[bold green]Login successful[/bold green]")
        else:
            printStatus(f"[bold red]Login failed:[/bold red] {escape(outcome.message)}")

        self.server.scheduler.schedule(outcome.exit_code)

    def _read_form(self, parsed: urllib.parse.ParseResult) -> Dict[str, str]:
        values = urllib.parse.parse_qs(parsed.query, keep_blank_values=True)

        if self.command == POST:
            raw_length = self.headers.get('Content-Length') or '0'
            try:
                length = int(raw_length)
            except ValueError:
                raise ValueError("invalid Content-Length: %r" % (raw_length,))
            body = self.rfile.read(length).decode('utf-8', errors='replace') if length > 0 else ''
            content_type = self.headers.get('Content-Type', '')
            if content_type.startswith('application/x-www-form-urlencoded'):
                # Body values take precedence over the query string.
                values.update(urllib.parse.parse_qs(body, keep_blank_values=True))

        return {k: v[0] for k, v in values.items() if v}

    def _send(self, status: int, body: bytes, content_type: str = 'text/plain; charset=utf-8'):
        self.send_response(status)
        self.send_header('Content-Type', content_type)
        self.send_header('Content-Length', str(len(body)))
        self.end_headers()
        if body and self.command != 'HEAD':
            self.wfile.write(body)
        self.wfile.flush()

    def log_message(self, format, *args):
        """Route access logs to the debug output."""
        self.server.print_debug("%s - %s" % (self.address_string(), format % args))


class CallbackServer(http.server.HTTPServer):
    """Local HTTP server completing one browser sign-in."""

    def __init__(self, host: str, port: int, flow: FlowConfig,
                 scheduler: Optional[ExitScheduler] = None,
                 print_debug: Optional[Callable[[str], None]] = None):
        """
        Bind the sign-in server.

        Args:
            host: Interface to bind, taken from the redirect URI
            port: Port to bind, 0 picks a free one
            flow: The sign-in parameters
            scheduler: Process exit controller
            print_debug: Debug message callback
        """
        self.host = host
        self.flow = flow
        self.scheduler = scheduler or ExitScheduler()
        self.print_debug = print_debug or (lambda msg: None)
        self.outcome = None
        if ':' in host:
            self.address_family = socket.AF_INET6
        super().__init__((host, port), CallbackHandler)

    @property
    def base_uri(self) -> str:
        host = self.host if ':' not in self.host else '[%s]' % (self.host,)
        return f"http://{host}:{self.server_port}"

    @property
    def login_url(self) -> str:
        return self.base_uri + LOGIN_PATH
