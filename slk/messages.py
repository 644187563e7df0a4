from datetime import datetime, timezone

from .utils import SlackApiError, SlkException, UrlParseError


class SlackMessage( object ):
    '''A single message from a channel history or thread.'''

    def __init__( self, user, text, ts ):
        self.user = user
        self.text = text
        self.ts = ts

    def __eq__( self, other ):
        return isinstance( other, SlackMessage ) and ( self.user, self.text, self.ts ) == ( other.user, other.text, other.ts )

    def __repr__( self ):
        return 'SlackMessage(user=%r, text=%r, ts=%r)' % ( self.user, self.text, self.ts )


class SlackConversation( object ):
    '''A channel, private group, DM or multi-party DM.'''

    def __init__( self, id, name ):
        self.id = id
        self.name = name

    def __eq__( self, other ):
        return isinstance( other, SlackConversation ) and ( self.id, self.name ) == ( other.id, other.name )

    def __repr__( self ):
        return 'SlackConversation(id=%r, name=%r)' % ( self.id, self.name )


def checkOk( response ):
    '''Raise a SlackApiError if a Web API response reports a failure.

    Args:
        response (dict): decoded JSON response.
    '''
    if not isinstance( response, dict ) or not isinstance( response.get( 'ok', None ), bool ):
        raise SlkException( "missing 'ok' field in response" )
    if response[ 'ok' ]:
        return

    error = response.get( 'error', None ) or 'unknown error'
    needed = response.get( 'needed', None )
    provided = response.get( 'provided', None )
    msg = 'Slack API error: %s' % ( error, )
    if needed:
        msg += '\n  needed scope: %s' % ( needed, )
    if provided:
        msg += '\n  provided scopes: %s' % ( provided, )
    raise SlackApiError( msg, error = error, needed = needed, provided = provided )

def extractMessages( response ):
    '''Messages from a conversations.history or conversations.replies response.

    Bot messages have no "user", so fall back to "username" then "bot_id".
    '''
    checkOk( response )
    messages = response.get( 'messages', None )
    if not isinstance( messages, list ):
        raise SlkException( "missing 'messages' array in response" )

    result = []
    for msg in messages:
        if not isinstance( msg, dict ):
            raise SlkException( "unexpected message entry: %r" % ( msg, ) )
        user = msg.get( 'user', None ) or msg.get( 'username', None ) or msg.get( 'bot_id', None ) or 'unknown'
        result.append( SlackMessage( user, msg.get( 'text', '' ) or '', msg.get( 'ts', '0' ) or '0' ) )
    return result

def extractConversations( response ):
    '''Conversations from a conversations.list response.'''
    checkOk( response )
    channels = response.get( 'channels', None )
    if not isinstance( channels, list ):
        raise SlkException( "missing 'channels' array in response" )
    if not all( isinstance( ch, dict ) for ch in channels ):
        raise SlkException( 'unexpected conversation entry in response' )
    return [ SlackConversation( ch.get( 'id', '' ), ch.get( 'name', '' ) or '' ) for ch in channels ]

def resolveUserName( response ):
    '''Best display name from a users.info response.

    Order: profile.display_name, real_name, name.
    '''
    checkOk( response )
    user = response.get( 'user', None )
    if not isinstance( user, dict ):
        raise SlkException( "missing 'user' field in response" )

    profile = user.get( 'profile', None ) or {}
    for name in ( profile.get( 'display_name', None ), user.get( 'real_name', None ), user.get( 'name', None ) ):
        if isinstance( name, str ) and name:
            return name
    raise SlkException( 'no user name found in response' )

def formatTimestamp( ts ):
    '''Format a Slack "ts" ("1770689887.565249") as "YYYY-MM-DD HH:MM:SS" in UTC.

    Unparseable values format as the epoch.
    '''
    try:
        secs = int( ts.split( '.' )[ 0 ] )
    except ( ValueError, AttributeError ):
        secs = 0
    return datetime.fromtimestamp( secs, tz = timezone.utc ).strftime( '%Y-%m-%d %H:%M:%S' )

def formatMessages( messages, userNames ):
    '''One line per message: "<time> <author> <text>".

    Authors found in userNames are shown as "@name", others by raw ID.
    '''
    lines = []
    for m in messages:
        display = '@%s' % ( userNames[ m.user ], ) if m.user in userNames else m.user
        lines.append( '%s %s %s' % ( formatTimestamp( m.ts ), display, m.text ) )
    return '\n'.join( lines )

def parseSlackUrl( url ):
    '''Extract the channel ID and thread ts from a Slack message link.

    Example:
        https://myteam.slack.com/archives/C081VT5GLQH/p1770689887565249
        -> ( "C081VT5GLQH", "1770689887.565249" )
    '''
    segments = url.split( '/' )
    if 'archives' not in segments:
        raise UrlParseError( "URL must contain '/archives/'" )
    pos = segments.index( 'archives' )

    if len( segments ) <= pos + 1 or not segments[ pos + 1 ]:
        raise UrlParseError( 'missing channel ID after /archives/' )
    channelId = segments[ pos + 1 ]

    if len( segments ) <= pos + 2 or not segments[ pos + 2 ]:
        raise UrlParseError( 'missing timestamp after channel ID' )
    return ( channelId, _convertTimestamp( segments[ pos + 2 ] ) )

def _convertTimestamp( raw ):
    # Link timestamps drop the dot: p + 10 digits of seconds + microseconds.
    raw = raw.split( '?' )[ 0 ]
    if not raw.startswith( 'p' ):
        raise UrlParseError( "timestamp must start with 'p'" )
    digits = raw[ 1 : ]
    if len( digits ) <= 10:
        raise UrlParseError( 'timestamp too short' )
    return '%s.%s' % ( digits[ : 10 ], digits[ 10 : ] )
