# auth_broker.py

import logging
import threading
import webbrowser
from concurrent.futures import FIRST_COMPLETED, Future, wait
from http.server import BaseHTTPRequestHandler, HTTPServer
from urllib.parse import parse_qs, urlparse

from config import (
    AUTHORIZATION_TIMEOUT_SECONDS,
    CALLBACK_HOST,
    CALLBACK_PATH,
    CALLBACK_PORT,
    LISTENER_SHUTDOWN_GRACE_SECONDS,
)
from errors import AuthorizationError

logger = logging.getLogger(__name__)

# Broker states. A broker moves forward only:
# new -> listening -> (code_received | error_received | timed_out) -> shutting_down -> done
NEW = 'new'
LISTENING = 'listening'
CODE_RECEIVED = 'code_received'
ERROR_RECEIVED = 'error_received'
TIMED_OUT = 'timed_out'
SHUTTING_DOWN = 'shutting_down'
DONE = 'done'

SUCCESS_PAGE = """<html>
<head><title>Authorization Successful</title></head>
<body>
<h1>Authorization Successful!</h1>
<p>You can close this window and return to the application.</p>
</body>
</html>
"""

FAILURE_PAGE = """<html>
<head><title>Authorization Failed</title></head>
<body>
<h1>Authorization Failed</h1>
<p>{reason}</p>
</body>
</html>
"""


class _CallbackHandler(BaseHTTPRequestHandler):
    """Answers the OAuth redirect and hands its query parameters to the broker."""

    # Socket timeout for a single request.
    timeout = 10

    def do_GET(self):
        url = urlparse(self.path)
        broker = self.server.broker
        if url.path != broker.callback_path:
            self.send_error(404, "Not Found")
            return

        error = broker.handle_callback(parse_qs(url.query))
        if error is None:
            self._respond(200, SUCCESS_PAGE)
        else:
            self._respond(400, FAILURE_PAGE.format(reason=error))

    def _respond(self, status, page):
        body = page.encode('utf-8')
        self.send_response(status)
        self.send_header('Content-Type', 'text/html; charset=utf-8')
        self.send_header('Content-Length', str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, format, *args):
        logger.debug("Callback listener: " + format, *args)


class AuthBroker:
    """
    Runs a one-shot local listener that captures an OAuth authorization code.

    The listener serves from a background thread while the caller blocks on
    whichever comes first: a code arriving on the callback path, an error
    arriving on the callback path, or the timeout. The listener is shut down
    exactly once whatever the outcome. One broker serves one attempt.
    """

    def __init__(self, host=CALLBACK_HOST, port=CALLBACK_PORT, callback_path=CALLBACK_PATH,
                 timeout=AUTHORIZATION_TIMEOUT_SECONDS, shutdown_grace=LISTENER_SHUTDOWN_GRACE_SECONDS,
                 open_browser=webbrowser.open, expected_state=None):
        """
        Args:
            host (str): Interface the listener binds to.
            port (int): Listener port; 0 picks a free port.
            callback_path (str): Path the OAuth provider redirects to.
            timeout (float): Seconds to wait for the redirect.
            shutdown_grace (float): Seconds allowed for the listener to stop.
            open_browser (callable): Called with the authorization URL; failures are not fatal.
            expected_state (str, optional): When set, callbacks must carry this `state` value.
        """
        self.host = host
        self.port = port
        self.callback_path = callback_path
        self.timeout = timeout
        self.shutdown_grace = shutdown_grace
        self.open_browser = open_browser
        self.expected_state = expected_state

        self.state = NEW
        self._server = None
        self._thread = None
        self._shutdown_called = False
        self._signal_lock = threading.Lock()
        self._code_future = Future()
        self._error_future = Future()

    @property
    def redirect_uri(self):
        port = self._server.server_address[1] if self._server is not None else self.port
        return f"http://{self.host}:{port}{self.callback_path}"

    @property
    def listener_closed(self):
        """True once the listening socket has been closed."""
        return self._server is not None and self._server.socket.fileno() == -1

    def handle_callback(self, params):
        """
        Interprets the query parameters of a callback request.

        Args:
            params (dict): Parsed query string, as returned by `parse_qs`.

        Returns:
            str: None if a code was accepted, otherwise the reason it was rejected.
        """
        error = params.get('error', [''])[0]
        code = params.get('code', [''])[0]
        state = params.get('state', [''])[0]

        if error:
            description = params.get('error_description', [''])[0]
            reason = f"{error}: {description}" if description else error
        elif self.expected_state is not None and state != self.expected_state:
            reason = "state mismatch in callback"
        elif not code:
            reason = "no authorization code in callback"
        else:
            self._signal(self._code_future, code)
            return None

        self._signal(self._error_future, reason)
        return reason

    def _signal(self, future, value):
        # Each signal is single-slot: later callbacks of the same kind are dropped.
        with self._signal_lock:
            if not future.done():
                future.set_result(value)

    def obtain_authorization_code(self, authorization_url):
        """
        Shows the authorization URL and waits for the browser to come back.

        Args:
            authorization_url (str): URL the operator must visit.

        Returns:
            str: The authorization code.
        Raises:
            AuthorizationError: On an error callback, a timeout, or if the listener cannot start.
            RuntimeError: If this broker was already used.
        """
        if self.state != NEW:
            raise RuntimeError("AuthBroker instances serve a single authorization attempt")

        self._start()
        try:
            print("Opening browser for authorization...")
            print(f"If browser doesn't open automatically, go to: {authorization_url}")
            self._launch_browser(authorization_url)

            done, _ = wait([self._code_future, self._error_future],
                           timeout=self.timeout, return_when=FIRST_COMPLETED)
            if self._code_future in done:
                self.state = CODE_RECEIVED
                logger.info("Authorization code received")
                return self._code_future.result()
            if self._error_future in done:
                self.state = ERROR_RECEIVED
                raise AuthorizationError(f"Authorization error: {self._error_future.result()}")
            self.state = TIMED_OUT
            raise AuthorizationError(
                f"Authorization timeout: no response received within {self.timeout} seconds")
        finally:
            self._shutdown()

    def _start(self):
        try:
            self._server = HTTPServer((self.host, self.port), _CallbackHandler)
        except OSError as e:
            self.state = DONE
            raise AuthorizationError(f"Unable to start local server on port {self.port}: {e}") from e
        self._server.broker = self
        self._thread = threading.Thread(target=self._server.serve_forever,
                                        name='oauth-callback-listener', daemon=True)
        self._thread.start()
        self.state = LISTENING
        logger.debug("Callback listener ready at %s", self.redirect_uri)

    def _launch_browser(self, url):
        try:
            opened = self.open_browser(url)
        except Exception as e:
            logger.warning("Could not automatically open a browser: %s", e)
            logger.warning("Please manually open: %s", url)
            return
        if opened is False:
            logger.warning("No browser available; please manually open: %s", url)

    def _shutdown(self):
        if self._server is None or self._shutdown_called:
            return
        self._shutdown_called = True
        self.state = SHUTTING_DOWN

        # shutdown() waits for serve_forever() to return; bound that wait.
        stopper = threading.Thread(target=self._server.shutdown,
                                   name='oauth-callback-shutdown', daemon=True)
        stopper.start()
        stopper.join(self.shutdown_grace)
        if stopper.is_alive():
            logger.warning("Callback listener did not stop within %s seconds", self.shutdown_grace)
        self._server.server_close()
        self.state = DONE
        logger.debug("Callback listener closed")
