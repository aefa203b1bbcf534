import os
from typing import Any, Dict, Mapping, Optional

import yaml

from .constants import CONFIG_FILE_PATH, CONFIG_FILE_ENV_VAR, CURRENT_ENV_VAR, SETTINGS_ENV_PREFIX
from .constants import DEFAULT_ISSUER, DEFAULT_CLIENT_ID, DEFAULT_CLIENT_SECRET, DEFAULT_REDIRECT_URI, DEFAULT_SCOPES
from .utils import DexCliException

SIGNIN_SETTINGS = ( 'issuer', 'client_id', 'client_secret', 'redirect_uri', 'scopes', 'userinfo' )

_DEFAULTS = {
    'issuer': DEFAULT_ISSUER,
    'client_id': DEFAULT_CLIENT_ID,
    'client_secret': DEFAULT_CLIENT_SECRET,
    'redirect_uri': DEFAULT_REDIRECT_URI,
    'scopes': list( DEFAULT_SCOPES ),
    'userinfo': False,
}

_TRUE_VALUES = ( '1', 'true', 'yes', 'on' )
_FALSE_VALUES = ( '', '0', 'false', 'no', 'off' )


def configFilePath() -> str:
    return os.environ.get( CONFIG_FILE_ENV_VAR ) or CONFIG_FILE_PATH


def loadConfig( path: Optional[str] = None ) -> Dict[str, Any]:
    """
    Load the configuration file.

    Args:
        path (str): file to read, defaults to $DEXCLI_CONFIG or ~/.dexcli.

    Returns:
        dict: the parsed configuration, empty if the file does not exist.
    """
    path = path or configFilePath()
    try:
        with open( path, 'rb' ) as f:
            conf = yaml.safe_load( f.read() )
    except FileNotFoundError:
        return {}
    except yaml.YAMLError as e:
        raise DexCliException( "invalid configuration file %s: %s" % ( path, e ) )

    # Handle scenario where a file is empty
    conf = conf or {}
    if not isinstance( conf, dict ):
        raise DexCliException( "invalid configuration file %s: expected a mapping at the top level" % ( path, ) )
    return conf


def _parseBool( name, value ):
    if isinstance( value, bool ):
        return value
    lowered = str( value ).strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise DexCliException( "invalid boolean for %s: %r" % ( name, value ) )


def _parseScopes( value ):
    if isinstance( value, str ):
        value = value.replace( ',', ' ' ).split()
    if not isinstance( value, ( list, tuple ) ):
        raise DexCliException( "invalid scopes: %r" % ( value, ) )
    return [ str( s ) for s in value if str( s ) != '' ]


def _profile( conf, section, where ):
    profile = conf.get( section ) or {}
    if not isinstance( profile, dict ):
        raise DexCliException( "invalid configuration: %s must be a mapping" % ( where, ) )
    return profile


def _fromEnviron( environ: Mapping[str, str] ) -> Dict[str, str]:
    out = {}
    for k in SIGNIN_SETTINGS:
        envName = SETTINGS_ENV_PREFIX + k.upper()
        if envName in environ:
            out[ k ] = environ[ envName ]
    return out


def resolveSigninSettings( overrides: Optional[Dict[str, Any]] = None,
                           environment: Optional[str] = None,
                           conf: Optional[Dict[str, Any]] = None,
                           environ: Optional[Mapping[str, str]] = None ) -> Dict[str, Any]:
    """
    Resolve the sign-in settings.

    Each setting is taken from the first source defining it, in order: command line
    overrides, DEXCLI_<SETTING> environment variables, the selected environment
    profile, the default "signin" profile of the configuration file, built-in defaults.

    Args:
        overrides (dict): values given on the command line, None meaning unset.
        environment (str): named profile under "env", defaults to $DEXCLI_CURRENT_ENV.
        conf (dict): already loaded configuration, loaded from disk if None.
        environ (dict): environment variables, defaults to os.environ.

    Returns:
        dict: a value for every name in SIGNIN_SETTINGS.
    """
    environ = os.environ if environ is None else environ
    conf = loadConfig() if conf is None else conf
    environment = environment or environ.get( CURRENT_ENV_VAR ) or 'default'

    # Lowest precedence first.
    layers = [ _DEFAULTS, _profile( conf, 'signin', 'signin' ) ]
    if environment != 'default':
        envs = conf.get( 'env' ) or {}
        if environment not in envs:
            raise DexCliException( "unknown environment: %s" % ( environment, ) )
        layers.append( _profile( envs[ environment ] or {}, 'signin', 'env.%s.signin' % ( environment, ) ) )
    layers.append( _fromEnviron( environ ) )
    layers.append( overrides or {} )

    settings = {}
    for layer in layers:
        for k in SIGNIN_SETTINGS:
            if layer.get( k ) is not None:
                settings[ k ] = layer[ k ]

    settings[ 'scopes' ] = _parseScopes( settings[ 'scopes' ] )
    settings[ 'userinfo' ] = _parseBool( 'userinfo', settings[ 'userinfo' ] )
    for k in ( 'issuer', 'client_id', 'client_secret', 'redirect_uri' ):
        settings[ k ] = str( settings[ k ] )
    return settings
