import sys
import traceback

from termcolor import colored

from .utils import LoginError, SlkException, set_default_print_debug_fn


def cli(args):
    """
    Command line interface for slk.

    Args:
        args (list): list of CLI arguments to parse.
    """
    import argparse
    from tabulate import tabulate

    parser = argparse.ArgumentParser( prog = 'slk' )
    parser.add_argument( 'action',
                         type = str,
                         help = 'action, currently supported "login" (authorize slk with Slack and store the token), "list" (list conversations), "history" (recent messages of a conversation), "thread" (messages of a thread), "who" (identity of the token in use), "version"' )

    # Everything after the action name is passed to the action argument parser.
    # For example: slk thread C081VT5GLQH 1770689887.565249 -> ["C081VT5GLQH", "1770689887.565249"]
    rootArgs = args[ 1: 2 ]
    actionArgs = args[ 2: ]
    args = parser.parse_args( rootArgs )

    action = args.action.lower()
    if action == 'version':
        from . import __version__
        print( "slk version %s" % ( __version__, ) )
    elif action == 'login':
        parser = argparse.ArgumentParser( prog = 'slk login' )
        parser.add_argument( '--no-browser',
                             action = 'store_true',
                             help = 'print URL instead of opening browser' )
        login_args = parser.parse_args( actionArgs )

        from .oauth import perform_login
        try:
            path = perform_login( no_browser = login_args.no_browser )
        except KeyboardInterrupt:
            print( "\n\nLogin cancelled by user.", file = sys.stderr )
            sys.exit( 1 )
        except LoginError as e:
            print( colored( "Login failed (%s):" % ( e.category, ), 'red' ), e, file = sys.stderr )
            sys.exit( 1 )
        print( "Token saved to %s" % ( path, ) )
    elif action == 'list':
        from .SlackApi import SlackApi
        conversations = SlackApi().listConversations()
        print( tabulate( [ ( c.id, c.name ) for c in conversations ], headers = [ 'ID', 'NAME' ], tablefmt = 'plain' ) )
    elif action == 'history':
        parser = argparse.ArgumentParser( prog = 'slk history' )
        parser.add_argument( 'channel_id',
                             type = str,
                             help = 'conversation ID, as shown by "slk list".' )
        args = parser.parse_args( actionArgs )

        from .SlackApi import SlackApi
        from .messages import formatMessages
        api = SlackApi()
        messages = api.getHistory( args.channel_id )
        print( formatMessages( messages, api.resolveUserNames( messages ) ) )
    elif action == 'thread':
        parser = argparse.ArgumentParser( prog = 'slk thread' )
        parser.add_argument( 'target',
                             type = str,
                             help = 'conversation ID, or a Slack message link.' )
        parser.add_argument( 'ts',
                             type = str,
                             nargs = '?',
                             default = None,
                             help = 'thread timestamp, required when target is a conversation ID.' )
        args = parser.parse_args( actionArgs )

        from .SlackApi import SlackApi
        from .messages import formatMessages, parseSlackUrl
        if args.target.startswith( 'http' ):
            channelId, ts = parseSlackUrl( args.target )
        elif args.ts is None:
            parser.error( 'thread timestamp is required: slk thread <channel-id> <thread-ts>' )
        else:
            channelId, ts = args.target, args.ts
        api = SlackApi()
        messages = api.getThread( channelId, ts )
        print( formatMessages( messages, api.resolveUserNames( messages ) ) )
    elif action in ( 'who', 'whoami' ):
        from .SlackApi import SlackApi
        identity = SlackApi().checkAuth()
        print( "USER: %s (%s)" % ( identity.get( 'user', '' ), identity.get( 'user_id', '' ) ) )
        print( "TEAM: %s (%s)" % ( identity.get( 'team', '' ), identity.get( 'team_id', '' ) ) )
    else:
        raise SlkException( 'invalid action: %s' % ( action, ) )

def main():
    args = sys.argv

    # Parsing itself may fail, so look for the flag by hand.
    debug_mode = False
    if "--debug" in args:
        debug_mode = True
        args.remove( "--debug" )
        set_default_print_debug_fn( lambda x: print( x, file = sys.stderr ) )

    try:
        cli( args )
    except SlkException as e:
        print( "Error:", e, file = sys.stderr )

        if debug_mode:
            print( traceback.format_exc(), file = sys.stderr )

        return 1
    return 0

if __name__ == "__main__":
    sys.exit( main() )
