from datetime import datetime, timezone
from typing import Callable, Optional


class SlkException ( Exception ):
    '''Exception type used for various errors in the slk SDK.'''

    def __init__(self, message, code=None):
        """
        Initialize the exception with a message and an optional status code.

        Args:
            message (str): The error message.
            code (int, optional): An optional status code returned by the API. Defaults to None.
        """
        super().__init__(message)
        self.code = code


class LoginError ( SlkException ):
    '''Base class for every failure of the "slk login" flow.

    The category is the short label shown to the user by the CLI.
    '''
    category = 'login failed'


class RandomSourceFailure ( LoginError ):
    category = 'random source failure'


class CertificateGenerationFailure ( LoginError ):
    category = 'certificate generation failed'


class ListenerBindFailure ( LoginError ):
    category = 'listener bind failed'

    def __init__(self, message, port=None):
        super().__init__(message)
        self.port = port


class CallbackTimeout ( LoginError ):
    category = 'timeout'


class StateMismatch ( LoginError ):
    category = 'state mismatch'


class ProviderDenied ( LoginError ):
    category = 'provider denied'

    def __init__(self, message, error=None, error_description=None):
        super().__init__(message)
        self.error = error
        self.error_description = error_description


class TokenExchangeError ( LoginError ):
    category = 'token exchange failed'


class TokenExchangeTransportFailure ( TokenExchangeError ):
    pass


class TokenExchangeProviderError ( TokenExchangeError ):

    def __init__(self, message, error=None):
        super().__init__(message)
        self.error = error


class TokenExchangeMalformedResponse ( TokenExchangeError ):
    pass


class CredentialPersistFailure ( LoginError ):
    category = 'credential persist failed'


class NotLoggedIn ( SlkException ):
    '''No token in the environment and no stored credential.'''
    pass


class CredentialStoreError ( SlkException ):
    pass


class ConfigError ( SlkException ):
    pass


class SlackApiError ( SlkException ):
    '''Slack answered a Web API call with "ok": false.'''

    def __init__(self, message, error=None, needed=None, provided=None):
        super().__init__(message)
        self.error = error
        self.needed = needed
        self.provided = provided


class UrlParseError ( SlkException ):
    pass


# Default function to call with debug messages.
DEFAULT_PRINT_DEBUG_FN: Optional[Callable[[str], None]] = None

def set_default_print_debug_fn( fn: Optional[Callable[[str], None]] = None ):
    """
    Set a default function to call with debug messages.

    Args:
        fn (function): the function to call with debug messages.
    """
    global DEFAULT_PRINT_DEBUG_FN
    DEFAULT_PRINT_DEBUG_FN = fn

def printDebug( msg, fn = None ):
    '''Send a timestamped debug message to fn, or the default debug function if set.'''
    fn = fn or DEFAULT_PRINT_DEBUG_FN
    if fn is None:
        return
    time_string = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%SZ")
    fn( f"{time_string}: {msg}" )
