from typing import Callable, Dict, List, Optional

import requests

from . import __version__
from .constants import HTTP_TIMEOUT, SLACK_API_ROOT
from .credentials import resolveToken
from .messages import SlackConversation, SlackMessage, checkOk, extractConversations, extractMessages, resolveUserName
from .user_agent_utils import build_user_agent
from .utils import SlkException, printDebug


def _build_user_agent():
    return build_user_agent( 'slk-py', __version__ )


class SlackApi( object ):
    '''Minimal Slack Web API client for reading conversations.'''

    def __init__( self, token: Optional[str] = None, print_debug_fn: Optional[Callable[[str], None]] = None, timeout: float = HTTP_TIMEOUT, root_url: str = SLACK_API_ROOT ):
        '''Create a client.

        Args:
            token (str): Slack user token, resolved from SLACK_TOKEN or the stored credential if unset.
            print_debug_fn (function(message)): a callback function that will receive detailed debug messages.
            timeout (float): per-request timeout in seconds.
            root_url (str): Web API root, overridable for tests.
        '''
        if token is None:
            token = resolveToken()
        self._token = token
        self._debug = print_debug_fn
        self._timeout = timeout
        self._root_url = root_url.rstrip( '/' )

    def _apiCall( self, method: str, params: Dict[str, str] ) -> Dict:
        url = '%s/%s' % ( self._root_url, method )
        printDebug( 'GET %s %s' % ( url, params ), self._debug )
        try:
            response = requests.get( url,
                                     params = params,
                                     headers = {
                                         'Authorization' : 'Bearer %s' % ( self._token, ),
                                         'User-Agent' : _build_user_agent(),
                                     },
                                     timeout = self._timeout )
        except requests.exceptions.RequestException as e:
            raise SlkException( 'Failed to call %s: %s' % ( method, e ) )

        try:
            data = response.json()
        except ValueError:
            raise SlkException( '%s returned a non-JSON response (HTTP %s)' % ( method, response.status_code ), code = response.status_code )
        printDebug( '%s -> HTTP %s ok=%s' % ( method, response.status_code, data.get( 'ok', None ) if isinstance( data, dict ) else None ), self._debug )
        return data

    def listConversations( self ) -> List[SlackConversation]:
        '''List the conversations visible to the token.'''
        data = self._apiCall( 'conversations.list', { 'types' : 'public_channel,private_channel,mpim,im' } )
        return extractConversations( data )

    def getHistory( self, channelId: str ) -> List[SlackMessage]:
        '''Most recent messages of a conversation.'''
        data = self._apiCall( 'conversations.history', { 'channel' : channelId } )
        return extractMessages( data )

    def getThread( self, channelId: str, ts: str ) -> List[SlackMessage]:
        '''Parent message and replies of a thread.'''
        data = self._apiCall( 'conversations.replies', { 'channel' : channelId, 'ts' : ts } )
        return extractMessages( data )

    def getUserName( self, userId: str ) -> str:
        data = self._apiCall( 'users.info', { 'user' : userId } )
        return resolveUserName( data )

    def resolveUserNames( self, messages: List[SlackMessage] ) -> Dict[str, str]:
        '''Map each distinct user ID ("U...") among the messages to its display name.'''
        names = {}
        for userId in sorted( set( m.user for m in messages if m.user.startswith( 'U' ) ) ):
            names[ userId ] = self.getUserName( userId )
        return names

    def checkAuth( self ) -> Dict:
        '''Call auth.test, returning the identity the token belongs to.'''
        data = self._apiCall( 'auth.test', {} )
        checkOk( data )
        return data
