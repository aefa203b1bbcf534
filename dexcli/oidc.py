"""
OpenID Connect and OAuth2 client pieces used by the sign-in flow.

- Provider discovery from the issuer's well-known document
- OAuth2 client configuration: authorization URL, code exchange and refresh
- ID token verification against the provider's JWKS
- User info lookup

Signature checking itself is delegated to PyJWT (backed by cryptography).
"""

import urllib.parse
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, Optional, Sequence

import jwt
import requests

from . import __version__
from .constants import HTTP_TIMEOUT
from .utils import DexCliException

USER_AGENT = 'dexcli/%s' % ( __version__, )

# A token this close to its expiry is treated as expired.
EXPIRY_DELTA = timedelta( seconds = 10 )


class OAuth2Error(DexCliException):
    """Token endpoint errors."""
    pass


class OIDCError(DexCliException):
    """Discovery and user info errors."""
    pass


class TokenVerificationError(DexCliException):
    """ID token signature or claims errors."""
    pass


class Token(object):
    """An OAuth2 token along with the raw token endpoint response."""

    def __init__(self, access_token: str = '', token_type: str = '', refresh_token: str = '',
                 expiry: Optional[datetime] = None, raw: Optional[dict] = None):
        self.access_token = access_token
        self.token_type = token_type
        self.refresh_token = refresh_token
        self.expiry = expiry
        self._raw = raw or {}

    @classmethod
    def from_response(cls, data: dict, now: Optional[datetime] = None) -> 'Token':
        """
        Build a token from a decoded token endpoint response.

        Raises:
            OAuth2Error: If the response carries no access token
        """
        access_token = data.get('access_token')
        if not access_token:
            raise OAuth2Error("oauth2: server response missing access_token")

        expiry = None
        expires_in = data.get('expires_in')
        if expires_in not in (None, '', 0, '0'):
            try:
                expiry = (now or datetime.now(timezone.utc)) + timedelta(seconds=int(expires_in))
            except (TypeError, ValueError):
                raise OAuth2Error("oauth2: invalid expires_in in token response: %r" % (expires_in,))

        return cls(
            access_token=access_token,
            token_type=data.get('token_type', ''),
            refresh_token=data.get('refresh_token', ''),
            expiry=expiry,
            raw=data,
        )

    def extra(self, key: str):
        """Return a field of the raw token response, like 'id_token'."""
        return self._raw.get(key)

    def expired(self, now: Optional[datetime] = None) -> bool:
        if self.expiry is None:
            return False
        return self.expiry - EXPIRY_DELTA < (now or datetime.now(timezone.utc))

    def valid(self, now: Optional[datetime] = None) -> bool:
        return bool(self.access_token) and not self.expired(now)

    def authorization_header(self) -> str:
        token_type = self.token_type or 'Bearer'
        # Some providers answer "bearer", the header wants the canonical casing.
        if token_type.lower() == 'bearer':
            token_type = 'Bearer'
        return '%s %s' % (token_type, self.access_token)

    def to_dict(self) -> Dict[str, str]:
        """JSON view of the token, including the raw ID token when present."""
        out = {
            'access_token': self.access_token,
            'token_type': self.token_type,
        }
        if self.refresh_token:
            out['refresh_token'] = self.refresh_token
        if self.expiry is not None:
            out['expiry'] = self.expiry.isoformat()
        id_token = self.extra('id_token')
        if isinstance(id_token, str):
            out['id_token'] = id_token
        return out


class TokenSource(object):
    """Returns the held token while valid, refreshing it through the config otherwise."""

    def __init__(self, config: 'OAuth2Config', token: Optional[Token]):
        self._config = config
        self._token = token

    def token(self) -> Token:
        if self._token is not None and self._token.valid():
            return self._token

        refresh_token = self._token.refresh_token if self._token is not None else ''
        if not refresh_token:
            raise OAuth2Error("oauth2: token expired and refresh token is not set")

        new_token = self._config.refresh(refresh_token)
        if not new_token.refresh_token:
            # Providers may omit the refresh token when it is unchanged.
            new_token.refresh_token = refresh_token
        self._token = new_token
        return new_token


class OAuth2Config(object):
    """OAuth2 client settings and the token endpoint operations."""

    def __init__(self, client_id: str, client_secret: str, authorization_endpoint: str,
                 token_endpoint: str, redirect_uri: str = '', scopes: Iterable[str] = (),
                 session: Optional[requests.Session] = None):
        self.client_id = client_id
        self.client_secret = client_secret
        self.authorization_endpoint = authorization_endpoint
        self.token_endpoint = token_endpoint
        self.redirect_uri = redirect_uri
        self.scopes = tuple(scopes)
        self._session = session or requests.Session()

    def auth_code_url(self, state: str) -> str:
        """
        Build the URL of the provider's consent page.

        Args:
            state: Anti-forgery token echoed back on the callback

        Returns:
            The authorization endpoint with the request parameters appended
        """
        params = [('client_id', self.client_id)]
        if self.redirect_uri:
            params.append(('redirect_uri', self.redirect_uri))
        params.append(('response_type', 'code'))
        if self.scopes:
            params.append(('scope', ' '.join(self.scopes)))
        if state:
            params.append(('state', state))

        sep = '&' if '?' in self.authorization_endpoint else '?'
        return self.authorization_endpoint + sep + urllib.parse.urlencode(params)

    def exchange(self, code: str) -> Token:
        """
        Redeem an authorization code at the token endpoint.

        Raises:
            OAuth2Error: If the token endpoint rejects the code or is unreachable
        """
        data = {
            'grant_type': 'authorization_code',
            'code': code,
        }
        if self.redirect_uri:
            data['redirect_uri'] = self.redirect_uri
        return self._retrieve_token(data)

    def refresh(self, refresh_token: str) -> Token:
        """
        Redeem a refresh token at the token endpoint.

        Raises:
            OAuth2Error: If the token endpoint rejects the refresh token or is unreachable
        """
        return self._retrieve_token({
            'grant_type': 'refresh_token',
            'refresh_token': refresh_token,
        })

    def token_source(self, token: Optional[Token]) -> TokenSource:
        return TokenSource(self, token)

    def _retrieve_token(self, data: Dict[str, str]) -> Token:
        # Client credentials are form-escaped before basic auth, per RFC 6749 section 2.3.1.
        auth = (urllib.parse.quote_plus(self.client_id), urllib.parse.quote_plus(self.client_secret))
        headers = {
            'Accept': 'application/json',
            'User-Agent': USER_AGENT,
        }

        try:
            response = self._session.post(self.token_endpoint, data=data, auth=auth,
                                          headers=headers, timeout=HTTP_TIMEOUT)
        except requests.exceptions.RequestException as e:
            raise OAuth2Error(f"oauth2: cannot fetch token: {str(e)}")

        if not 200 <= response.status_code < 300:
            raise OAuth2Error(
                f"oauth2: cannot fetch token: {response.status_code} {response.reason}\nResponse: {response.text}",
                code=response.status_code
            )

        content_type = response.headers.get('Content-Type', '')
        if content_type.startswith(('application/x-www-form-urlencoded', 'text/plain')):
            body = {k: v[0] for k, v in urllib.parse.parse_qs(response.text).items()}
        else:
            try:
                body = response.json()
            except ValueError:
                raise OAuth2Error(f"oauth2: cannot parse token response: {response.text}")

        if not isinstance(body, dict):
            raise OAuth2Error(f"oauth2: cannot parse token response: {response.text}")

        return Token.from_response(body)


class IDTokenVerifier(object):
    """Checks an ID token's signature against the provider keys and its standard claims."""

    def __init__(self, issuer: str, client_id: str, jwks_uri: str,
                 algorithms: Sequence[str] = ('RS256',), jwks_client: Optional[jwt.PyJWKClient] = None,
                 leeway: int = 0):
        self.issuer = issuer
        self.client_id = client_id
        self.algorithms = list(algorithms)
        self.leeway = leeway
        self._jwks_client = jwks_client or jwt.PyJWKClient(
            jwks_uri,
            headers={'User-Agent': USER_AGENT},
            timeout=HTTP_TIMEOUT,
        )

    def verify(self, raw_id_token: str) -> dict:
        """
        Verify a raw ID token.

        Args:
            raw_id_token: The compact serialized JWT

        Returns:
            The validated claims

        Raises:
            TokenVerificationError: If the signature or any claim is invalid
        """
        try:
            signing_key = self._jwks_client.get_signing_key_from_jwt(raw_id_token)
            return jwt.decode(
                raw_id_token,
                signing_key.key,
                algorithms=self.algorithms,
                audience=self.client_id,
                issuer=self.issuer,
                leeway=self.leeway,
                options={'require': ['iss', 'sub', 'aud', 'exp', 'iat']},
            )
        except jwt.PyJWTError as e:
            raise TokenVerificationError(f"oidc: {str(e)}")


class Provider(object):
    """Provider metadata from OpenID Connect discovery."""

    WELL_KNOWN_PATH = '/.well-known/openid-configuration'

    def __init__(self, issuer: str, authorization_endpoint: str, token_endpoint: str,
                 jwks_uri: str, userinfo_endpoint: Optional[str] = None,
                 algorithms: Optional[Sequence[str]] = None,
                 session: Optional[requests.Session] = None):
        self.issuer = issuer
        self.authorization_endpoint = authorization_endpoint
        self.token_endpoint = token_endpoint
        self.jwks_uri = jwks_uri
        self.userinfo_endpoint = userinfo_endpoint
        self.algorithms = list(algorithms) if algorithms else ['RS256']
        self._session = session or requests.Session()

    @classmethod
    def discover(cls, issuer: str, session: Optional[requests.Session] = None) -> 'Provider':
        """
        Fetch the issuer's discovery document.

        Raises:
            OIDCError: If the document cannot be fetched or does not match the issuer
        """
        session = session or requests.Session()
        url = issuer.rstrip('/') + cls.WELL_KNOWN_PATH

        try:
            response = session.get(url, headers={'User-Agent': USER_AGENT}, timeout=HTTP_TIMEOUT)
        except requests.exceptions.RequestException as e:
            raise OIDCError(f"oidc: failed to fetch provider metadata from {url}: {str(e)}")

        if response.status_code != 200:
            raise OIDCError(f"oidc: {response.status_code} {response.reason}: {response.text}",
                            code=response.status_code)

        try:
            data = response.json()
        except ValueError:
            raise OIDCError(f"oidc: failed to decode provider discovery object from {url}")

        if data.get('issuer', '').rstrip('/') != issuer.rstrip('/'):
            raise OIDCError(
                f"oidc: issuer did not match the issuer returned by provider, expected {issuer!r} got {data.get('issuer')!r}"
            )

        missing = [k for k in ('authorization_endpoint', 'token_endpoint', 'jwks_uri') if not data.get(k)]
        if missing:
            raise OIDCError(f"oidc: provider metadata is missing {', '.join(missing)}")

        return cls(
            issuer=data['issuer'],
            authorization_endpoint=data['authorization_endpoint'],
            token_endpoint=data['token_endpoint'],
            jwks_uri=data['jwks_uri'],
            userinfo_endpoint=data.get('userinfo_endpoint'),
            algorithms=data.get('id_token_signing_alg_values_supported'),
            session=session,
        )

    def oauth2_config(self, client_id: str, client_secret: str, redirect_uri: str,
                      scopes: Iterable[str]) -> OAuth2Config:
        return OAuth2Config(
            client_id=client_id,
            client_secret=client_secret,
            authorization_endpoint=self.authorization_endpoint,
            token_endpoint=self.token_endpoint,
            redirect_uri=redirect_uri,
            scopes=scopes,
            session=self._session,
        )

    def verifier(self, client_id: str) -> IDTokenVerifier:
        return IDTokenVerifier(self.issuer, client_id, self.jwks_uri, algorithms=self.algorithms)

    def userinfo(self, token_source: TokenSource) -> dict:
        """
        Fetch the user info claims for the token held by the source.

        Raises:
            OIDCError: If the provider has no user info endpoint or the call fails
            OAuth2Error: If the token source cannot produce a token
        """
        if not self.userinfo_endpoint:
            raise OIDCError("oidc: user info endpoint is not supported by this provider")

        token = token_source.token()
        headers = {
            'Authorization': token.authorization_header(),
            'Accept': 'application/json',
            'User-Agent': USER_AGENT,
        }

        try:
            response = self._session.get(self.userinfo_endpoint, headers=headers, timeout=HTTP_TIMEOUT)
        except requests.exceptions.RequestException as e:
            raise OIDCError(f"oidc: failed to get user info: {str(e)}")

        if response.status_code != 200:
            raise OIDCError(f"oidc: {response.status_code} {response.reason}: {response.text}",
                            code=response.status_code)

        try:
            claims = response.json()
        except ValueError:
            raise OIDCError("oidc: failed to decode user info claims")

        if not isinstance(claims, dict):
            raise OIDCError("oidc: user info response is not a JSON object")
        return claims
