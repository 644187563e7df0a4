"""slk, read Slack conversations from the terminal"""

__version__ = "0.3.0"
__author__ = "slk contributors"
__author_email__ = "slk@users.noreply.github.com"
__license__ = "Apache v2"
__copyright__ = "Copyright (c) 2026 slk contributors"

from .SlackApi import SlackApi
from .credentials import Credential, resolveToken
from .oauth import SlackOAuthFlow, perform_login
from .utils import SlkException, LoginError, set_default_print_debug_fn
