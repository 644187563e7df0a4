"""
Slack OAuth v2 authorization-code login for the slk CLI.

The flow starts a one-shot HTTPS listener on 127.0.0.1 with a throwaway
self-signed certificate, sends the user to Slack's consent page with a
one-time state value, and exchanges the code Slack redirects back with for a
user token, which is then stored in the credentials file.
"""

import secrets
import sys
import urllib.parse
import webbrowser
from typing import Callable, Dict, Iterable, Optional

import requests
from termcolor import colored

from . import __version__
from .constants import DEFAULT_USER_SCOPES, OAUTH_CALLBACK_HOST, OAUTH_CALLBACK_PORT, OAUTH_CALLBACK_TIMEOUT
from .constants import OAUTH_TOKEN_EXCHANGE_TIMEOUT, SLACK_AUTHORIZE_URL, SLACK_TOKEN_URL
from .credentials import Credential, loadClientConfig, saveCredential
from .oauth_cert import EphemeralCertificate
from .oauth_server import OAuthCallbackServer
from .user_agent_utils import build_user_agent
from .utils import RandomSourceFailure, TokenExchangeMalformedResponse, TokenExchangeProviderError
from .utils import TokenExchangeTransportFailure, printDebug


def generate_state() -> str:
    """
    Generate the one-time OAuth state value.

    Returns:
        URL-safe random string carrying 32 bytes of entropy

    Raises:
        RandomSourceFailure: If the OS random source is unavailable
    """
    try:
        return secrets.token_urlsafe(32)
    except (OSError, NotImplementedError) as e:
        raise RandomSourceFailure(f"Failed to read from the system random source: {str(e)}")


def redirect_uri_for(host: str, port: int) -> str:
    return f'https://{host}:{port}'


class LoginSession:
    """Everything one login attempt needs to build the URL and redeem the code."""

    def __init__(self, state: str, redirect_uri: str, client_id: str, client_secret: str,
                 requested_scopes: Iterable[str] = DEFAULT_USER_SCOPES):
        self.state = state
        self.redirect_uri = redirect_uri
        self.client_id = client_id
        self.client_secret = client_secret
        # Keep the caller's order, drop duplicates.
        self.requested_scopes = tuple(dict.fromkeys(requested_scopes))

    def __repr__(self):
        return f"LoginSession(redirect_uri={self.redirect_uri!r}, client_id={self.client_id!r})"


def build_authorization_url(session: LoginSession, authorize_url: str = SLACK_AUTHORIZE_URL) -> str:
    """
    Build the Slack consent page URL for a login session.

    Slack takes user token scopes comma-separated in "user_scope".
    """
    params = {
        'client_id': session.client_id,
        'user_scope': ','.join(session.requested_scopes),
        'redirect_uri': session.redirect_uri,
        'state': session.state,
        'response_type': 'code',
    }
    return f"{authorize_url}?{urllib.parse.urlencode(params)}"


def exchange_code(session: LoginSession, code: str, token_url: str = SLACK_TOKEN_URL,
                  timeout: float = OAUTH_TOKEN_EXCHANGE_TIMEOUT) -> Credential:
    """
    Exchange an authorization code for a user token.

    Codes are single-use and short-lived, so this is never retried.

    Args:
        session: The login session the code was issued for
        code: Authorization code from the callback
        token_url: Slack's oauth.v2.access endpoint
        timeout: Request timeout in seconds

    Returns:
        The obtained Credential

    Raises:
        TokenExchangeTransportFailure: If the endpoint could not be reached
        TokenExchangeProviderError: If Slack rejected the exchange
        TokenExchangeMalformedResponse: If the response could not be understood
    """
    payload = {
        'client_id': session.client_id,
        'client_secret': session.client_secret,
        'code': code,
        'redirect_uri': session.redirect_uri,
        'grant_type': 'authorization_code',
    }

    try:
        response = requests.post(
            token_url,
            data=payload,
            headers={'User-Agent': build_user_agent('slk-py', __version__)},
            timeout=timeout
        )
    except requests.exceptions.RequestException as e:
        raise TokenExchangeTransportFailure(f"Failed to reach Slack token endpoint: {str(e)}")

    try:
        data = response.json()
    except ValueError:
        raise TokenExchangeMalformedResponse(
            f"Slack token endpoint returned a non-JSON response (HTTP {response.status_code})"
        )

    if not isinstance(data, dict):
        raise TokenExchangeMalformedResponse("Slack token endpoint returned an unexpected response")

    if data.get('ok') is not True:
        error = data.get('error', 'unknown_error')
        raise TokenExchangeProviderError(f"oauth.v2.access failed: {error}", error=error)

    return _credential_from_response(data)


def _credential_from_response(data: Dict) -> Credential:
    # User tokens live under authed_user, bot tokens at the top level.
    authed_user = data.get('authed_user')
    if not isinstance(authed_user, dict):
        authed_user = {}

    token = authed_user.get('access_token') or data.get('access_token')
    if not isinstance(token, str) or not token:
        raise TokenExchangeMalformedResponse("missing authed_user.access_token in response")

    team = data.get('team')
    return Credential(
        token,
        token_type=authed_user.get('token_type') or data.get('token_type') or 'user',
        scope=authed_user.get('scope') or data.get('scope') or '',
        user_id=authed_user.get('id'),
        team=team.get('name') if isinstance(team, dict) else None
    )


def _open_browser(url: str) -> bool:
    try:
        return webbrowser.open(url)
    except webbrowser.Error:
        return False


class SlackOAuthFlow:
    """Runs one Slack OAuth login attempt."""

    def __init__(self, client_id: str, client_secret: str,
                 scopes: Iterable[str] = DEFAULT_USER_SCOPES,
                 host: str = OAUTH_CALLBACK_HOST,
                 port: int = OAUTH_CALLBACK_PORT,
                 timeout: float = OAUTH_CALLBACK_TIMEOUT,
                 authorize_url: str = SLACK_AUTHORIZE_URL,
                 token_url: str = SLACK_TOKEN_URL,
                 state_factory: Callable[[], str] = generate_state,
                 open_browser: Callable[[str], bool] = _open_browser,
                 print_debug_fn: Optional[Callable[[str], None]] = None):
        """
        Initialize the login flow.

        Args:
            client_id: Slack app client ID
            client_secret: Slack app client secret
            scopes: User token scopes to request
            host: Loopback address of the redirect URI
            port: Port of the redirect URI, must match the Slack app settings
            timeout: Seconds to wait for the browser to come back
            authorize_url: Slack authorization endpoint
            token_url: Slack token endpoint
            state_factory: Produces the one-time state value
            open_browser: Best-effort browser launcher, returns False on failure
            print_debug_fn: Optional callback receiving debug messages
        """
        self.client_id = client_id
        self.client_secret = client_secret
        self.scopes = tuple(scopes)
        self.host = host
        self.port = port
        self.timeout = timeout
        self.authorize_url = authorize_url
        self.token_url = token_url
        self.state_factory = state_factory
        self.open_browser = open_browser
        self.print_debug_fn = print_debug_fn
        self.callback_server = None

    @property
    def redirect_uri(self) -> str:
        return redirect_uri_for(self.host, self.port)

    def start_auth_flow(self, no_browser: bool = False) -> Credential:
        """
        Run the login and return the obtained credential without storing it.

        Args:
            no_browser: If True, print URL instead of opening browser

        Returns:
            The obtained Credential

        Raises:
            LoginError: On any failure of the flow
        """
        session = LoginSession(
            self.state_factory(),
            self.redirect_uri,
            self.client_id,
            self.client_secret,
            self.scopes
        )

        cert = EphemeralCertificate(self.host)
        try:
            self.callback_server = OAuthCallbackServer(
                session.state,
                cert.ssl_context(),
                host=self.host,
                port=self.port,
                timeout=self.timeout,
                print_debug_fn=self.print_debug_fn
            )
            # Listen before the URL is shown; the user can be back within seconds.
            self.callback_server.start()
            try:
                auth_url = build_authorization_url(session, self.authorize_url)
                self._present(auth_url, cert, no_browser)
                result = self.callback_server.wait_for_callback()
            finally:
                # Always stop the server
                self.callback_server.stop()
        finally:
            cert.discard()

        printDebug("oauth callback accepted, exchanging code", self.print_debug_fn)
        return exchange_code(session, result.code, self.token_url)

    def _present(self, auth_url: str, cert: EphemeralCertificate, no_browser: bool):
        print("slk uses a self-signed certificate for its local callback on %s." % (self.redirect_uri,))
        print("When the browser warns about it, verify this SHA-256 fingerprint, then choose to proceed:")
        print("  %s" % (colored(cert.fingerprint(), 'yellow'),))

        opened = False
        if not no_browser:
            print("Opening browser for authorization...")
            opened = self.open_browser(auth_url)
        if not opened:
            print("\nPlease visit this URL to authorize slk:\n%s\n" % (auth_url,))
        print(colored("Waiting for authorization...", 'cyan'))
        sys.stdout.flush()


def perform_login(no_browser: bool = False,
                  credentials_path: Optional[str] = None,
                  client_config_path: Optional[str] = None,
                  **flow_kwargs) -> str:
    """
    Perform the Slack OAuth login and save the credential.

    Args:
        no_browser: Don't open browser automatically
        credentials_path: Where to store the credential, defaults to the config directory
        client_config_path: Where to read client_id / client_secret from
        flow_kwargs: Extra arguments for SlackOAuthFlow

    Returns:
        Path the credential was stored to

    Raises:
        SlkException: If configuration is missing or any login step fails
    """
    client_id, client_secret = loadClientConfig(client_config_path)
    flow = SlackOAuthFlow(client_id, client_secret, **flow_kwargs)
    credential = flow.start_auth_flow(no_browser=no_browser)

    # Only reached after a fully successful exchange.
    return saveCredential(credential, credentials_path)
