import os

# Path to the configuration file. Can be overriden for tests.
CONFIG_FILE_PATH = os.path.expanduser( '~/.dexcli' )

# Environment variable pointing to an alternate configuration file.
CONFIG_FILE_ENV_VAR = 'DEXCLI_CONFIG'

# Environment variable selecting a named profile from the configuration file.
CURRENT_ENV_VAR = 'DEXCLI_CURRENT_ENV'

# Prefix of the environment variables overriding individual sign-in settings,
# for example DEXCLI_CLIENT_SECRET.
SETTINGS_ENV_PREFIX = 'DEXCLI_'

# Defaults match the Dex example-app registration shipped with the Dex dev config.
DEFAULT_ISSUER = 'http://127.0.0.1:5556/dex'
DEFAULT_CLIENT_ID = 'example-app'
DEFAULT_CLIENT_SECRET = 'ZXhhbXBsZS1hcHAtc2VjcmV0'
DEFAULT_REDIRECT_URI = 'http://127.0.0.1:5555/callback'
DEFAULT_SCOPES = ( 'openid', 'profile', 'email', 'offline_access' )

# Paths served by the local sign-in server.
LOGIN_PATH = '/login'
CALLBACK_PATH = '/callback'
FAVICON_PATH = '/favicon.ico'

# Delay before the process exits once the sign-in outcome is decided, so the
# rendered page reaches the browser before the listener disappears.
EXIT_DELAY = 0.3

# Timeout for calls to the identity provider (seconds).
HTTP_TIMEOUT = 10
