import json
import os
import stat
import tempfile
import time
from typing import Optional, Tuple

from .constants import CLIENT_CONFIG_FILE_NAME, CLIENT_ID_ENV_VAR, CLIENT_SECRET_ENV_VAR
from .constants import CREDENTIALS_FILE_NAME, TOKEN_ENV_VAR, getConfigDir
from .utils import ConfigError, CredentialPersistFailure, CredentialStoreError, NotLoggedIn


class Credential( object ):
    '''Slack user token obtained by "slk login".'''

    def __init__( self, access_token, token_type = 'user', scope = '', obtained_at = None, user_id = None, team = None ):
        self.access_token = access_token
        self.token_type = token_type
        self.scope = scope
        self.obtained_at = int( time.time() ) if obtained_at is None else obtained_at
        self.user_id = user_id
        self.team = team

    def toDict( self ):
        d = {
            'access_token' : self.access_token,
            'token_type' : self.token_type,
            'scope' : self.scope,
            'obtained_at' : self.obtained_at,
        }
        if self.user_id is not None:
            d[ 'user_id' ] = self.user_id
        if self.team is not None:
            d[ 'team' ] = self.team
        return d

    @classmethod
    def fromDict( cls, data ):
        return cls( data[ 'access_token' ],
                    token_type = data.get( 'token_type', 'user' ),
                    scope = data.get( 'scope', '' ),
                    obtained_at = data.get( 'obtained_at', 0 ),
                    user_id = data.get( 'user_id', None ),
                    team = data.get( 'team', None ) )

    def __repr__( self ):
        return 'Credential(token_type=%r, scope=%r, obtained_at=%r)' % ( self.token_type, self.scope, self.obtained_at )


def credentialsPath():
    '''Default location of the stored credential.'''
    return os.path.join( getConfigDir(), CREDENTIALS_FILE_NAME )

def clientConfigPath():
    '''Default location of the Slack app's client_id / client_secret.'''
    return os.path.join( getConfigDir(), CLIENT_CONFIG_FILE_NAME )

def saveCredential( credential, path = None ):
    '''Securely write the credential to disk, replacing any previous one.

    Args:
        credential (Credential): the credential to store.
        path (str): optional file path, defaults to credentialsPath().

    Returns:
        the path the credential was written to.

    Raises:
        CredentialPersistFailure: if the file could not be written.
    '''
    path = path or credentialsPath()
    content = ( json.dumps( credential.toDict(), indent = 2 ) + '\n' ).encode()

    parent = os.path.dirname( os.path.abspath( path ) )
    try:
        os.makedirs( parent, mode = 0o700, exist_ok = True )
    except OSError as e:
        raise CredentialPersistFailure( 'Failed to create directory %s: %s' % ( parent, e ) )

    # For security reasons we first write it to a temporary file in the same
    # directory, chmod it and then rename it into place. Readers never see a
    # partially written file and the token is never world readable.
    try:
        fd, tmp_path = tempfile.mkstemp( dir = parent, prefix = '.credentials-', suffix = '.tmp' )
    except OSError as e:
        raise CredentialPersistFailure( 'Failed to create temporary file in %s: %s' % ( parent, e ) )

    try:
        try:
            os.chmod( tmp_path, stat.S_IWUSR | stat.S_IRUSR )  # 0o600
            os.write( fd, content )
            os.fsync( fd )
        finally:
            os.close( fd )

        # Rename is atomic on POSIX and replaces the destination on Windows too.
        os.replace( tmp_path, path )
    except OSError as e:
        raise CredentialPersistFailure( 'Failed to write credentials to %s: %s' % ( path, e ) )
    finally:
        if os.path.isfile( tmp_path ):
            os.unlink( tmp_path )

    return path

def loadCredential( path = None ):
    '''Load the stored credential.

    Raises:
        NotLoggedIn: if there is no credential file.
        CredentialStoreError: if the file exists but cannot be used.
    '''
    path = path or credentialsPath()
    try:
        with open( path, 'rb' ) as f:
            data = json.loads( f.read() )
    except FileNotFoundError:
        raise NotLoggedIn( 'No Slack token found. Set %s or run: slk login' % ( TOKEN_ENV_VAR, ) )
    except ( OSError, ValueError ) as e:
        raise CredentialStoreError( 'Failed to read credentials from %s: %s' % ( path, e ) )

    if not isinstance( data, dict ) or not data.get( 'access_token' ):
        raise CredentialStoreError( 'Credentials file %s has no access_token, run: slk login' % ( path, ) )
    return Credential.fromDict( data )

def resolveToken( path = None ):
    '''Token to use for Slack API calls.

    Tokens are acquired in the following order:
    1- SLACK_TOKEN environment variable, if non-empty.
    2- The credential stored by "slk login".
    '''
    token = os.environ.get( TOKEN_ENV_VAR, '' )
    if token:
        return token
    return loadCredential( path ).access_token

def loadClientConfig( path = None ) -> Tuple[ str, str ]:
    '''Slack app client_id and client_secret used by "slk login".

    SLK_CLIENT_ID / SLK_CLIENT_SECRET take precedence when both are set,
    otherwise they are read from config.json in the config directory.

    Raises:
        ConfigError: if neither source provides them.
    '''
    clientId = os.environ.get( CLIENT_ID_ENV_VAR, '' )
    clientSecret = os.environ.get( CLIENT_SECRET_ENV_VAR, '' )
    if clientId and clientSecret:
        return ( clientId, clientSecret )

    path = path or clientConfigPath()
    try:
        with open( path, 'rb' ) as f:
            conf = json.loads( f.read() )
    except FileNotFoundError:
        raise ConfigError( 'client_id and client_secret are required. Set %s/%s or create %s' % ( CLIENT_ID_ENV_VAR, CLIENT_SECRET_ENV_VAR, path ) )
    except ( OSError, ValueError ) as e:
        raise ConfigError( 'Failed to read %s: %s' % ( path, e ) )

    if not isinstance( conf, dict ):
        raise ConfigError( '%s must contain a JSON object' % ( path, ) )

    clientId = _requireString( conf, 'client_id', path )
    clientSecret = _requireString( conf, 'client_secret', path )
    return ( clientId, clientSecret )

def _requireString( conf, key, path ) -> str:
    value: Optional[ str ] = conf.get( key, None )
    if not isinstance( value, str ) or not value:
        raise ConfigError( "missing '%s' in %s" % ( key, path ) )
    return value
