import os

# Directory name under the user's configuration directory.
CONFIG_DIR_NAME = 'slk'
CREDENTIALS_FILE_NAME = 'credentials.json'
CLIENT_CONFIG_FILE_NAME = 'config.json'

# When set, used directly as the access token by every non-login command.
TOKEN_ENV_VAR = 'SLACK_TOKEN'

# Slack app credentials, override config.json when both are set.
CLIENT_ID_ENV_VAR = 'SLK_CLIENT_ID'
CLIENT_SECRET_ENV_VAR = 'SLK_CLIENT_SECRET'

# Slack OAuth v2 endpoints.
SLACK_AUTHORIZE_URL = 'https://slack.com/oauth/v2/authorize'
SLACK_TOKEN_URL = 'https://slack.com/api/oauth.v2.access'
SLACK_API_ROOT = 'https://slack.com/api'

# The redirect URI registered with the Slack app must match these exactly.
OAUTH_CALLBACK_HOST = '127.0.0.1'
OAUTH_CALLBACK_PORT = 9876

# OAuth-related constants
OAUTH_CALLBACK_TIMEOUT = 300  # 5 minutes
OAUTH_CERT_VALIDITY = 3600  # 1 hour, covers the callback timeout
OAUTH_TOKEN_EXCHANGE_TIMEOUT = 30
HTTP_TIMEOUT = 30

# User token scopes requested at login.
DEFAULT_USER_SCOPES = (
    'channels:history',
    'channels:read',
    'groups:history',
    'groups:read',
    'mpim:read',
    'im:read',
    'users:read',
)


def getConfigDir():
    '''Directory holding slk's configuration and credentials.

    Honors XDG_CONFIG_HOME, otherwise ~/.config.
    '''
    base = os.environ.get( 'XDG_CONFIG_HOME', '' )
    if not base:
        base = os.path.join( os.path.expanduser( '~' ), '.config' )
    return os.path.join( base, CONFIG_DIR_NAME )
