import sys
import traceback

from .utils import DexCliException

# Command groups of the administration API, not served by this CLI.
UNAVAILABLE_GROUPS = {
    'connector': ( 'list', 'create', 'delete', 'update' ),
    'client': ( 'list', 'create', 'delete', 'update' ),
    'password': ( 'list', 'create', 'delete', 'update' ),
}


def cli(args):
    """
    Command line interface for dexcli.

    Args:
        args (list): list of CLI arguments to parse, including the program name.
    """
    import argparse

    parser = argparse.ArgumentParser( prog = 'dexcli', description = 'a Command Line Interface for Dex' )
    parser.add_argument( 'action',
                         type = str,
                         help = 'action to perform, currently supported "signin" (performs a sign-in using a browser), "version" (print the version), "connector", "client" and "password" (administration, not available yet)' )

    # Hack around a bit so that we can pass the help
    # to the proper sub-command line.
    rootArgs = args[ 1: 2 ]

    # Everything after the command name and the action name that is passed
    # to the action argument parser.
    # For example: dexcli signin --no-browser -> ["--no-browser"]
    actionArgs = args[ 2: ]
    args = parser.parse_args( rootArgs )
    action = args.action.lower()

    if action == 'version':
        from . import __version__
        print( "dexcli version %s" % ( __version__, ) )
    elif action == 'signin':
        from .config import resolveSigninSettings
        from .signin import signin
        from .utils import stderrDebug

        parser = argparse.ArgumentParser( prog = 'dexcli signin',
                                          description = 'Performs a sign-in using a browser. On success the token response (or the user info) is printed as JSON on stdout.' )
        parser.add_argument( '--issuer',
                             type = str,
                             default = None,
                             help = 'URL of the OpenID Connect issuer (default: http://127.0.0.1:5556/dex)' )
        parser.add_argument( '--client-id',
                             type = str,
                             default = None,
                             dest = 'client_id',
                             help = 'OAuth2 client ID (default: example-app)' )
        parser.add_argument( '--client-secret',
                             type = str,
                             default = None,
                             dest = 'client_secret',
                             help = 'OAuth2 client secret' )
        parser.add_argument( '--redirect-uri',
                             type = str,
                             default = None,
                             dest = 'redirect_uri',
                             help = 'redirect URI registered for the client, the local server binds its host and port (default: http://127.0.0.1:5555/callback)' )
        parser.add_argument( '--scope',
                             type = str,
                             action = 'append',
                             default = None,
                             dest = 'scopes',
                             help = 'scope to request, can be repeated (default: openid profile email offline_access)' )
        parser.add_argument( '--userinfo',
                             action = 'store_true',
                             default = None,
                             help = 'fetch the user info instead of verifying the ID token' )
        parser.add_argument( '--no-browser',
                             action = 'store_true',
                             default = False,
                             dest = 'no_browser',
                             help = 'print the login URL instead of opening a browser' )
        parser.add_argument( '--environment', '--env',
                             type = str,
                             default = None,
                             help = 'named configuration environment to use (default: $DEXCLI_CURRENT_ENV or "default")' )
        parser.add_argument( '--debug',
                             action = 'store_true',
                             default = False,
                             help = 'print debug messages to stderr' )
        signinArgs = parser.parse_args( actionArgs )

        settings = resolveSigninSettings( {
            'issuer': signinArgs.issuer,
            'client_id': signinArgs.client_id,
            'client_secret': signinArgs.client_secret,
            'redirect_uri': signinArgs.redirect_uri,
            'scopes': signinArgs.scopes,
            'userinfo': signinArgs.userinfo,
        }, environment = signinArgs.environment )

        signin( settings,
                no_browser = signinArgs.no_browser,
                print_debug_fn = stderrDebug if signinArgs.debug else None )
    elif action in UNAVAILABLE_GROUPS:
        parser = argparse.ArgumentParser( prog = 'dexcli %s' % ( action, ) )
        parser.add_argument( 'subcommand',
                             type = str,
                             choices = UNAVAILABLE_GROUPS[ action ],
                             help = 'command not available' )
        parser.parse_known_args( actionArgs )
        print( "command not available", file = sys.stderr )
        sys.exit( 1 )
    else:
        raise DexCliException( 'invalid action: %s' % ( action, ) )


def main():
    args = sys.argv

    try:
        cli( args )
    except DexCliException as e:
        print( "Error:", e, file = sys.stderr )

        if "--debug" in args:
            print( traceback.format_exc(), file = sys.stderr )

        return 1

    return 0

if __name__ == "__main__":
    sys.exit( main() )
