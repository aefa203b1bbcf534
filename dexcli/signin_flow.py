"""
Decision logic of the browser sign-in callback.

resolve_exchange() turns one callback request into exactly one outcome. It knows
nothing about sockets: the HTTP adapter in oauth_server renders the outcome and
asks the lifecycle controller to exit with the outcome's code.

GET /callback carries the provider's authorization response (code leg), POST
/callback carries a refresh token submitted from a form (refresh leg). Both end
in the same identity resolution: user info when enabled, ID token verification
otherwise. A failed exchange ends the flow before any identity resolution.
"""

import hmac
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, NamedTuple, Optional

from .oidc import IDTokenVerifier, OAuth2Config, Provider, Token
from .utils import DexCliException, GET, POST


class FlowConfig(NamedTuple):
    """Parameters of one sign-in attempt, fixed for the lifetime of the process."""
    state: str
    oauth2_config: OAuth2Config
    provider: Optional[Provider]
    id_token_verifier: IDTokenVerifier
    userinfo: bool = False


class ExchangeOutcome(object):
    """Terminal result of a callback request."""

    success = False
    status = 200
    exit_code = 1

    def __init__(self, message: str):
        self.message = message

    def __repr__(self):
        return '%s(%r)' % (self.__class__.__name__, self.message)


class AuthorizationError(ExchangeOutcome):
    """The provider redirected back with an error instead of a code."""


class MissingCode(ExchangeOutcome):
    def __init__(self, form: Dict[str, str]):
        super().__init__("no code in request: %r" % (form,))


class MissingRefreshToken(ExchangeOutcome):
    def __init__(self, form: Dict[str, str]):
        super().__init__("no refresh_token in request: %r" % (form,))


class StateMismatch(ExchangeOutcome):
    def __init__(self):
        super().__init__("state mismatch")


class ExchangeFailure(ExchangeOutcome):
    def __init__(self, cause: Exception):
        super().__init__("failed to get token: %s" % (cause,))
        self.cause = cause


class MissingIDToken(ExchangeOutcome):
    def __init__(self):
        super().__init__("no id_token in token response")


class TokenVerificationFailure(ExchangeOutcome):
    def __init__(self, cause: Exception):
        super().__init__("failed to verify ID token: %s" % (cause,))
        self.cause = cause


class UserInfoFailure(ExchangeOutcome):
    status = 500

    def __init__(self, cause: Exception):
        super().__init__("failed to fetch user info: %s" % (cause,))
        self.cause = cause


class MethodNotImplemented(ExchangeOutcome):
    status = 400

    def __init__(self, method: str):
        super().__init__("method not implemented: %s" % (method,))
        self.method = method


class MalformedRequest(ExchangeOutcome):
    status = 400

    def __init__(self, reason: str):
        super().__init__("malformed request: %s" % (reason,))


class UnexpectedFailure(ExchangeOutcome):
    """Anything resolve_exchange() did not turn into an outcome itself."""
    status = 500

    def __init__(self, cause: Exception):
        super().__init__("internal error: %s" % (cause,))
        self.cause = cause


class AlreadyCompleted(ExchangeOutcome):
    def __init__(self):
        super().__init__("sign-in already completed")


class Success(ExchangeOutcome):
    success = True
    exit_code = 0

    def __init__(self, token: Token, payload: dict):
        super().__init__("login successful")
        self.token = token
        # What gets printed on stdout: the token response, or the user info claims.
        self.payload = payload


def resolve_exchange(flow: FlowConfig, method: str, form: Dict[str, str],
                     print_debug: Optional[Callable[[str], None]] = None) -> ExchangeOutcome:
    """
    Decide the outcome of a callback request.

    Args:
        flow: The sign-in parameters
        method: HTTP method of the request
        form: First value of each request parameter (query, plus body for POST)
        print_debug: Optional debug message callback

    Returns:
        The outcome; never raises for provider or token errors
    """
    debug = print_debug or (lambda msg: None)

    if method == GET:
        error = form.get('error', '')
        if error:
            return AuthorizationError("%s: %s" % (error, form.get('error_description', '')))

        code = form.get('code', '')
        if not code:
            return MissingCode(form)

        if not hmac.compare_digest(form.get('state', '').encode('utf-8'), flow.state.encode('utf-8')):
            return StateMismatch()

        debug("exchanging authorization code at %s" % (flow.oauth2_config.token_endpoint,))
        try:
            token = flow.oauth2_config.exchange(code)
        except DexCliException as e:
            return ExchangeFailure(e)
    elif method == POST:
        refresh = form.get('refresh_token', '')
        if not refresh:
            return MissingRefreshToken(form)

        # An already expired token with only the refresh token set makes the
        # token source go straight to the refresh grant.
        stale = Token(refresh_token=refresh, expiry=datetime.now(timezone.utc) - timedelta(hours=1))
        debug("refreshing token at %s" % (flow.oauth2_config.token_endpoint,))
        try:
            token = flow.oauth2_config.token_source(stale).token()
        except DexCliException as e:
            return ExchangeFailure(e)
    else:
        return MethodNotImplemented(method)

    return _resolve_identity(flow, token, debug)


def _resolve_identity(flow: FlowConfig, token: Token, debug: Callable[[str], None]) -> ExchangeOutcome:
    if flow.userinfo:
        debug("fetching user info")
        try:
            info = flow.provider.userinfo(flow.oauth2_config.token_source(token))
        except DexCliException as e:
            return UserInfoFailure(e)
        return Success(token, info)

    raw_id_token = token.extra('id_token')
    if not isinstance(raw_id_token, str) or not raw_id_token:
        return MissingIDToken()

    debug("verifying ID token")
    try:
        flow.id_token_verifier.verify(raw_id_token)
    except DexCliException as e:
        return TokenVerificationFailure(e)

    return Success(token, token.to_dict())
