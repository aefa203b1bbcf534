import os
import sys
import threading
from typing import Callable, Optional

from .constants import EXIT_DELAY


def _flushStdio():
    for stream in ( sys.stdout, sys.stderr ):
        try:
            stream.flush()
        except ( OSError, ValueError ):
            # Closed or broken pipe, nothing left to deliver.
            pass


class ExitScheduler( object ):
    '''Terminates the process shortly after a sign-in outcome is decided.

    The exit runs on a detached daemon timer so the request handler can return and
    the rendered page is flushed to the browser before the listener goes away. Only
    the first request to exit is honored.
    '''

    def __init__( self, delay: float = EXIT_DELAY, exit_fn: Optional[Callable[[int], None]] = None ):
        '''Create a scheduler.

        Args:
            delay (float): seconds to wait before exiting.
            exit_fn (function): called with the exit code, defaults to os._exit since
                the exit happens off the main thread where sys.exit would only end the timer.
        '''
        self.delay = delay
        self._exit_fn = exit_fn if exit_fn is not None else os._exit
        self._lock = threading.Lock()
        self._timer = None
        self.exit_code = None
        self.exited = threading.Event()

    def schedule( self, code: int ) -> bool:
        '''Exit with the given code after the delay, without blocking the caller.

        Args:
            code (int): process exit code.

        Returns:
            True if this call decided the exit code, False if an exit was already requested.
        '''
        with self._lock:
            if self.exit_code is not None:
                return False
            self.exit_code = code
            self._timer = threading.Timer( self.delay, self._exit, args = ( code, ) )
            self._timer.daemon = True
            self._timer.start()
        return True

    def exit_now( self, code: int ) -> bool:
        '''Exit immediately, used for requests that indicate a broken setup.'''
        with self._lock:
            if self.exit_code is not None:
                return False
            self.exit_code = code
        self._exit( code )
        return True

    def cancel( self ) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    def _exit( self, code ):
        _flushStdio()
        self.exited.set()
        self._exit_fn( code )
