"""
Browser based sign-in against a Dex (or any OpenID Connect) provider.

1. Discover the provider endpoints from the issuer
2. Bind a local server on the host and port of the registered redirect URI
3. Send the user's browser to the local /login page, which redirects to the provider
4. The provider redirects back to /callback, where the code is exchanged and the
   ID token verified (or user info fetched)
5. The credential is printed as JSON on stdout and the process exits, 0 on success

The process never returns from a sign-in on its own: the callback handler decides
the exit code and terminates it.
"""

import sys
import webbrowser
from typing import Any, Callable, Dict, Optional

import requests
from rich.markup import escape

from .lifecycle import ExitScheduler
from .oauth_server import CallbackServer, listen_address
from .oidc import Provider
from .signin_flow import FlowConfig
from .term_utils import printStatus
from .utils import DexCliException, makeDebugPrinter, newState


def newSigninServer( settings: Dict[str, Any],
                     print_debug_fn: Optional[Callable[[str], None]] = None,
                     scheduler: Optional[ExitScheduler] = None,
                     session: Optional[requests.Session] = None ) -> CallbackServer:
    """
    Discover the provider and bind the local sign-in server.

    Args:
        settings: Resolved sign-in settings, see config.resolveSigninSettings
        print_debug_fn: Debug message callback
        scheduler: Process exit controller
        session: HTTP session used to reach the provider

    Returns:
        The bound server, not yet serving

    Raises:
        DexCliException: If the redirect URI is unusable, discovery fails or the port is taken
    """
    debug = makeDebugPrinter( print_debug_fn )

    host, port = listen_address( settings[ 'redirect_uri' ] )

    debug( "discovering provider at %s" % ( settings[ 'issuer' ], ) )
    provider = Provider.discover( settings[ 'issuer' ], session = session )
    debug( "authorization endpoint: %s" % ( provider.authorization_endpoint, ) )
    debug( "token endpoint: %s" % ( provider.token_endpoint, ) )

    flow = FlowConfig(
        state = newState(),
        oauth2_config = provider.oauth2_config(
            client_id = settings[ 'client_id' ],
            client_secret = settings[ 'client_secret' ],
            redirect_uri = settings[ 'redirect_uri' ],
            scopes = settings[ 'scopes' ],
        ),
        provider = provider,
        id_token_verifier = provider.verifier( settings[ 'client_id' ] ),
        userinfo = settings[ 'userinfo' ],
    )

    try:
        return CallbackServer( host, port, flow, scheduler = scheduler, print_debug = debug )
    except OSError as e:
        raise DexCliException(
            "cannot listen on %s:%s: %s\n"
            "The port comes from the redirect URI, make sure no other sign-in is running on it." % ( host, port, e )
        )


def signin( settings: Dict[str, Any],
            no_browser: bool = False,
            print_debug_fn: Optional[Callable[[str], None]] = None,
            scheduler: Optional[ExitScheduler] = None ) -> None:
    """
    Perform a browser sign-in and serve until the callback decides the outcome.

    Args:
        settings: Resolved sign-in settings
        no_browser: Print the login URL instead of opening a browser
        print_debug_fn: Debug message callback
        scheduler: Process exit controller
    """
    server = newSigninServer( settings, print_debug_fn = print_debug_fn, scheduler = scheduler )
    login_url = server.login_url

    try:
        printStatus( "Sign-in server listening on %s" % ( server.base_uri, ) )
        if settings.get( 'userinfo' ):
            printStatus( "User info will be fetched instead of verifying the ID token." )

        if no_browser:
            printStatus( "\nPlease visit this URL to sign in:\n%s\n" % ( escape( login_url ), ) )
        else:
            printStatus( "Opening browser for authentication..." )
            if not webbrowser.open( login_url ):
                printStatus( "\nCould not open browser. Please visit this URL:\n%s\n" % ( escape( login_url ), ) )

        printStatus( "Waiting for authentication..." )
        server.serve_forever()
    except KeyboardInterrupt:
        printStatus( "\n\nSign-in cancelled by user." )
        sys.exit( 1 )
    finally:
        server.server_close()
