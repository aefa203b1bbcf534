import time
import urllib.parse
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import jwt
import pytest
import requests
from cryptography.hazmat.primitives.asymmetric import rsa

from dexcli.oidc import (
    IDTokenVerifier,
    OAuth2Config,
    OAuth2Error,
    OIDCError,
    Provider,
    Token,
    TokenVerificationError,
)

from conftest import fake_response

ISSUER = 'http://dex.test/dex'

DISCOVERY = {
    'issuer': ISSUER,
    'authorization_endpoint': ISSUER + '/auth',
    'token_endpoint': ISSUER + '/token',
    'jwks_uri': ISSUER + '/keys',
    'userinfo_endpoint': ISSUER + '/userinfo',
    'id_token_signing_alg_values_supported': ['RS256'],
}


def _config(session=None, **kwargs):
    params = dict(
        client_id='example-app',
        client_secret='ZXhhbXBsZS1hcHAtc2VjcmV0',
        authorization_endpoint=ISSUER + '/auth',
        token_endpoint=ISSUER + '/token',
        redirect_uri='http://127.0.0.1:5555/callback',
        scopes=('openid', 'profile', 'email'),
        session=session or MagicMock(),
    )
    params.update(kwargs)
    return OAuth2Config(**params)


# -------------------------------
# OAuth2Config
# -------------------------------

def test_auth_code_url():
    url = _config().auth_code_url('st4te')

    parsed = urllib.parse.urlparse(url)
    assert url.startswith(ISSUER + '/auth?')
    assert [k for k, _ in urllib.parse.parse_qsl(parsed.query)] == [
        'client_id', 'redirect_uri', 'response_type', 'scope', 'state',
    ]
    query = dict(urllib.parse.parse_qsl(parsed.query))
    assert query['client_id'] == 'example-app'
    assert query['redirect_uri'] == 'http://127.0.0.1:5555/callback'
    assert query['response_type'] == 'code'
    assert query['scope'] == 'openid profile email'
    assert query['state'] == 'st4te'


def test_auth_code_url_keeps_existing_query():
    url = _config(authorization_endpoint=ISSUER + '/auth?connector_id=ldap').auth_code_url('s')
    assert url.startswith(ISSUER + '/auth?connector_id=ldap&client_id=example-app')


def test_exchange_success():
    session = MagicMock()
    session.post.return_value = fake_response(body={
        'access_token': 'access-123',
        'token_type': 'bearer',
        'refresh_token': 'refresh-456',
        'expires_in': 3600,
        'id_token': 'raw.id.token',
    })

    token = _config(session).exchange('the-code')

    assert token.access_token == 'access-123'
    assert token.refresh_token == 'refresh-456'
    assert token.extra('id_token') == 'raw.id.token'
    assert token.valid()

    args, kwargs = session.post.call_args
    assert args[0] == ISSUER + '/token'
    assert kwargs['data'] == {
        'grant_type': 'authorization_code',
        'code': 'the-code',
        'redirect_uri': 'http://127.0.0.1:5555/callback',
    }
    assert kwargs['auth'] == ('example-app', 'ZXhhbXBsZS1hcHAtc2VjcmV0')
    assert kwargs['headers']['Accept'] == 'application/json'
    assert kwargs['headers']['User-Agent'].startswith('dexcli/')
    assert kwargs['timeout'] == 10


def test_exchange_escapes_client_credentials():
    session = MagicMock()
    session.post.return_value = fake_response(body={'access_token': 'a'})

    _config(session, client_id='my app', client_secret='s3cr:t/+').exchange('c')

    assert session.post.call_args[1]['auth'] == ('my+app', 's3cr%3At%2F%2B')


def test_exchange_error_response():
    session = MagicMock()
    session.post.return_value = fake_response(status_code=400, body={'error': 'invalid_grant'})

    with pytest.raises(OAuth2Error) as exc_info:
        _config(session).exchange('used-code')

    assert exc_info.value.code == 400
    assert str(exc_info.value).startswith('oauth2: cannot fetch token: 400 Bad Request')
    assert 'invalid_grant' in str(exc_info.value)


def test_exchange_network_error():
    session = MagicMock()
    session.post.side_effect = requests.exceptions.ConnectionError('connection refused')

    with pytest.raises(OAuth2Error, match='oauth2: cannot fetch token: connection refused'):
        _config(session).exchange('c')


def test_exchange_missing_access_token():
    session = MagicMock()
    session.post.return_value = fake_response(body={'token_type': 'bearer'})

    with pytest.raises(OAuth2Error, match='missing access_token'):
        _config(session).exchange('c')


@pytest.mark.parametrize('body', [[], 'access_token', 42])
def test_exchange_response_not_an_object(body):
    session = MagicMock()
    session.post.return_value = fake_response(body=body)

    with pytest.raises(OAuth2Error, match='cannot parse token response'):
        _config(session).exchange('c')


def test_exchange_null_response():
    session = MagicMock()
    response = fake_response(text='null')
    response.json.side_effect = None
    response.json.return_value = None
    session.post.return_value = response

    with pytest.raises(OAuth2Error, match='cannot parse token response: null'):
        _config(session).exchange('c')


def test_exchange_form_encoded_response():
    session = MagicMock()
    session.post.return_value = fake_response(
        content_type='application/x-www-form-urlencoded; charset=utf-8',
        text='access_token=form-access&token_type=bearer&expires_in=60',
    )

    token = _config(session).exchange('c')

    assert token.access_token == 'form-access'
    assert token.expiry is not None


# -------------------------------
# Token and TokenSource
# -------------------------------

def test_token_expiry():
    now = datetime(2026, 1, 1, tzinfo=timezone.utc)
    token = Token.from_response({'access_token': 'a', 'expires_in': 60}, now=now)

    assert token.expiry == now + timedelta(seconds=60)
    assert not token.expired(now)
    # Tokens about to expire count as expired.
    assert token.expired(now + timedelta(seconds=55))
    assert Token(access_token='a').valid()
    assert not Token(access_token='').valid()


def test_token_to_dict():
    now = datetime(2026, 1, 1, tzinfo=timezone.utc)
    token = Token.from_response({
        'access_token': 'a',
        'token_type': 'bearer',
        'refresh_token': 'r',
        'expires_in': 60,
        'id_token': 'raw.id.token',
    }, now=now)

    assert token.to_dict() == {
        'access_token': 'a',
        'token_type': 'bearer',
        'refresh_token': 'r',
        'expiry': '2026-01-01T00:01:00+00:00',
        'id_token': 'raw.id.token',
    }
    assert Token(access_token='a').to_dict() == {'access_token': 'a', 'token_type': ''}


def test_authorization_header():
    assert Token(access_token='a', token_type='bearer').authorization_header() == 'Bearer a'
    assert Token(access_token='a').authorization_header() == 'Bearer a'
    assert Token(access_token='a', token_type='MAC').authorization_header() == 'MAC a'


def test_token_source_returns_valid_token_without_refresh():
    session = MagicMock()
    token = Token(access_token='still-good')

    assert _config(session).token_source(token).token() is token
    session.post.assert_not_called()


def test_token_source_refreshes_expired_token():
    session = MagicMock()
    session.post.return_value = fake_response(body={'access_token': 'new', 'expires_in': 3600})
    stale = Token(refresh_token='r1', expiry=datetime.now(timezone.utc) - timedelta(hours=1))
    source = _config(session).token_source(stale)

    token = source.token()

    assert token.access_token == 'new'
    assert token.refresh_token == 'r1'
    assert session.post.call_args[1]['data'] == {'grant_type': 'refresh_token', 'refresh_token': 'r1'}
    # The refreshed token is cached.
    assert source.token() is token
    assert session.post.call_count == 1


def test_token_source_without_refresh_token():
    stale = Token(access_token='old', expiry=datetime.now(timezone.utc) - timedelta(hours=1))

    with pytest.raises(OAuth2Error, match='refresh token is not set'):
        _config().token_source(stale).token()


# -------------------------------
# Provider
# -------------------------------

def test_discover():
    session = MagicMock()
    session.get.return_value = fake_response(body=DISCOVERY)

    provider = Provider.discover(ISSUER + '/', session=session)

    assert session.get.call_args[0][0] == ISSUER + '/.well-known/openid-configuration'
    assert provider.issuer == ISSUER
    assert provider.authorization_endpoint == ISSUER + '/auth'
    assert provider.token_endpoint == ISSUER + '/token'
    assert provider.jwks_uri == ISSUER + '/keys'
    assert provider.userinfo_endpoint == ISSUER + '/userinfo'
    assert provider.algorithms == ['RS256']

    config = provider.oauth2_config('example-app', 'secret', 'http://127.0.0.1:5555/callback', ['openid'])
    assert config.token_endpoint == ISSUER + '/token'
    assert config.scopes == ('openid',)


def test_discover_issuer_mismatch():
    session = MagicMock()
    session.get.return_value = fake_response(body=dict(DISCOVERY, issuer='http://evil.test/dex'))

    with pytest.raises(OIDCError, match='issuer did not match'):
        Provider.discover(ISSUER, session=session)


def test_discover_missing_endpoint():
    session = MagicMock()
    body = dict(DISCOVERY)
    del body['jwks_uri']
    session.get.return_value = fake_response(body=body)

    with pytest.raises(OIDCError, match='missing jwks_uri'):
        Provider.discover(ISSUER, session=session)


def test_discover_not_found():
    session = MagicMock()
    session.get.return_value = fake_response(status_code=404, text='404 page not found')

    with pytest.raises(OIDCError) as exc_info:
        Provider.discover(ISSUER, session=session)
    assert exc_info.value.code == 404


def test_discover_unreachable():
    session = MagicMock()
    session.get.side_effect = requests.exceptions.ConnectionError('connection refused')

    with pytest.raises(OIDCError, match='failed to fetch provider metadata'):
        Provider.discover(ISSUER, session=session)


def _provider(session):
    return Provider(ISSUER, ISSUER + '/auth', ISSUER + '/token', ISSUER + '/keys',
                    userinfo_endpoint=ISSUER + '/userinfo', session=session)


def test_userinfo():
    session = MagicMock()
    session.get.return_value = fake_response(body={'sub': 'user', 'email': 'jane@example.com'})
    provider = _provider(session)
    source = _config(session).token_source(Token(access_token='access-123', token_type='bearer'))

    claims = provider.userinfo(source)

    assert claims == {'sub': 'user', 'email': 'jane@example.com'}
    args, kwargs = session.get.call_args
    assert args[0] == ISSUER + '/userinfo'
    assert kwargs['headers']['Authorization'] == 'Bearer access-123'


def test_userinfo_rejected():
    session = MagicMock()
    session.get.return_value = fake_response(status_code=401, text='unauthorized')
    source = _config(session).token_source(Token(access_token='a'))

    with pytest.raises(OIDCError) as exc_info:
        _provider(session).userinfo(source)
    assert exc_info.value.code == 401


def test_userinfo_not_supported():
    provider = Provider(ISSUER, ISSUER + '/auth', ISSUER + '/token', ISSUER + '/keys', session=MagicMock())

    with pytest.raises(OIDCError, match='not supported'):
        provider.userinfo(_config().token_source(Token(access_token='a')))


# -------------------------------
# IDTokenVerifier
# -------------------------------

@pytest.fixture(scope='module')
def rsa_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture
def jwks_client(rsa_key):
    client = MagicMock()
    client.get_signing_key_from_jwt.return_value = MagicMock(key=rsa_key.public_key())
    return client


def _id_token(key, **overrides):
    now = int(time.time())
    claims = {
        'iss': ISSUER,
        'sub': 'CiQwOGE4Njg0Yi1kYjg4LTRiNzMtOTBhOS0zY2QxNjYxZjU0NjYSBWxvY2Fs',
        'aud': 'example-app',
        'exp': now + 3600,
        'iat': now,
        'email': 'jane@example.com',
    }
    claims.update(overrides)
    return jwt.encode(claims, key, algorithm='RS256', headers={'kid': 'k1'})


def test_verify_id_token(rsa_key, jwks_client):
    verifier = IDTokenVerifier(ISSUER, 'example-app', ISSUER + '/keys', jwks_client=jwks_client)
    raw = _id_token(rsa_key)

    claims = verifier.verify(raw)

    assert claims['email'] == 'jane@example.com'
    jwks_client.get_signing_key_from_jwt.assert_called_once_with(raw)


@pytest.mark.parametrize('overrides, message', [
    ({'aud': 'another-app'}, 'audience'),
    ({'iss': 'http://evil.test/dex'}, 'issuer'),
    ({'exp': int(time.time()) - 60}, 'expired'),
])
def test_verify_id_token_bad_claims(rsa_key, jwks_client, overrides, message):
    verifier = IDTokenVerifier(ISSUER, 'example-app', ISSUER + '/keys', jwks_client=jwks_client)

    with pytest.raises(TokenVerificationError) as exc_info:
        verifier.verify(_id_token(rsa_key, **overrides))
    assert str(exc_info.value).startswith('oidc: ')
    assert message in str(exc_info.value).lower()


def test_verify_id_token_wrong_key(jwks_client):
    other_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    verifier = IDTokenVerifier(ISSUER, 'example-app', ISSUER + '/keys', jwks_client=jwks_client)

    with pytest.raises(TokenVerificationError, match='Signature verification failed'):
        verifier.verify(_id_token(other_key))


def test_verify_garbage(jwks_client):
    jwks_client.get_signing_key_from_jwt.side_effect = jwt.exceptions.DecodeError('Invalid token type')
    verifier = IDTokenVerifier(ISSUER, 'example-app', ISSUER + '/keys', jwks_client=jwks_client)

    with pytest.raises(TokenVerificationError):
        verifier.verify('not-a-jwt')
