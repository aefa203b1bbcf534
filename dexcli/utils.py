import secrets
import sys
from datetime import datetime, timezone
from typing import Callable, Optional


class DexCliException ( Exception ):
    '''Exception type used for various errors in dexcli.'''

    def __init__(self, message, code=None):
        """
        Initialize the exception with a message and an optional status code.

        Args:
            message (str): The error message.
            code (int, optional): An optional HTTP status code returned by the provider. Defaults to None.
        """
        super().__init__(message)
        self.code = code


GET = 'GET'
POST = 'POST'


def newState( nBytes: int = 24 ) -> str:
    '''Generate an unguessable anti-forgery token for a sign-in attempt.

    Args:
        nBytes (int): number of random bytes backing the token.

    Returns:
        url-safe token string.
    '''
    return secrets.token_urlsafe( nBytes )


def stderrDebug( msg: str ) -> None:
    sys.stderr.write( "%s\n" % ( msg, ) )
    sys.stderr.flush()


def makeDebugPrinter( fn: Optional[Callable[[str], None]] ) -> Callable[[str], None]:
    '''Wrap a debug callback so every message is prefixed with a UTC timestamp.

    Args:
        fn (function): the function receiving debug messages, or None to discard them.

    Returns:
        a callable accepting a message.
    '''
    def _printDebug( msg ):
        if fn is not None:
            time_string = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%SZ")
            fn( f"{time_string}: {msg}" )
    return _printDebug
