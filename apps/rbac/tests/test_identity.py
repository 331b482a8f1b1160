"""
Tests for session credential extraction and identity resolution.
"""
import uuid
from datetime import datetime, timedelta, timezone

import jwt
import pytest
from django.conf import settings
from django.test import RequestFactory

from apps.core.exceptions import MalformedCredential
from apps.rbac.identity import ANONYMOUS, Identity, IdentityResolver, credential_from_request


SECRET = 'test-signing-key-Zx81Lq0Pw5Ms3Vb7Nc2'


def make_token(payload=None, secret=SECRET, **claims):
    data = {
        'user_id': str(uuid.uuid4()),
        'email': 'jan@example.com',
        'exp': datetime.now(timezone.utc) + timedelta(hours=1),
    }
    data.update(claims)
    if payload is not None:
        data = payload
    return jwt.encode(data, secret, algorithm='HS256')


@pytest.fixture
def resolver():
    return IdentityResolver(secret_key=SECRET, algorithm='HS256')


class TestIdentityResolver:

    def test_valid_token(self, resolver):
        user_id = uuid.uuid4()
        identity = resolver.resolve(make_token(user_id=str(user_id)))

        assert identity == Identity(user_id=user_id, email='jan@example.com')
        assert not identity.is_anonymous

    @pytest.mark.parametrize('credential', [None, ''])
    def test_missing_credential_is_anonymous(self, resolver, credential):
        assert resolver.resolve(credential) is ANONYMOUS

    def test_expired_token_is_anonymous(self, resolver):
        token = make_token(exp=datetime.now(timezone.utc) - timedelta(minutes=1))
        assert resolver.resolve(token) is ANONYMOUS

    def test_wrong_signature_is_malformed(self, resolver):
        token = make_token(secret='another-signing-key-Qw93Er5Ty7Ui1Op')

        with pytest.raises(MalformedCredential) as exc_info:
            resolver.resolve(token)
        assert exc_info.value.details['error'] == 'InvalidSignatureError'

    def test_garbage_is_malformed(self, resolver):
        with pytest.raises(MalformedCredential):
            resolver.resolve('not.a.token')

    def test_missing_user_id_is_malformed(self, resolver):
        token = make_token(payload={'exp': datetime.now(timezone.utc) + timedelta(hours=1)})
        with pytest.raises(MalformedCredential):
            resolver.resolve(token)

    def test_missing_exp_is_malformed(self, resolver):
        token = make_token(payload={'user_id': str(uuid.uuid4())})
        with pytest.raises(MalformedCredential):
            resolver.resolve(token)

    def test_non_uuid_user_id_is_malformed(self, resolver):
        with pytest.raises(MalformedCredential) as exc_info:
            resolver.resolve(make_token(user_id='42'))
        assert exc_info.value.details['error'] == 'InvalidUserId'

    def test_unsigned_token_is_malformed(self, resolver):
        token = jwt.encode(
            {'user_id': str(uuid.uuid4()), 'exp': datetime.now(timezone.utc) + timedelta(hours=1)},
            None,
            algorithm='none',
        )
        with pytest.raises(MalformedCredential):
            resolver.resolve(token)

    def test_defaults_from_settings(self):
        resolver = IdentityResolver()

        assert resolver.secret_key == settings.JWT_SECRET_KEY
        assert resolver.algorithm == settings.JWT_ALGORITHM


class TestAnonymous:

    def test_sentinel(self):
        assert ANONYMOUS.is_anonymous
        assert ANONYMOUS.user_id is None
        assert not ANONYMOUS


class TestCredentialFromRequest:

    def test_cookie(self):
        request = RequestFactory().get('/')
        request.COOKIES[settings.SESSION_COOKIE_NAME] = 'cookie-token'
        assert credential_from_request(request) == 'cookie-token'

    def test_bearer_header(self):
        request = RequestFactory().get('/', HTTP_AUTHORIZATION='Bearer header-token')
        assert credential_from_request(request) == 'header-token'

    def test_cookie_wins_over_header(self):
        request = RequestFactory().get('/', HTTP_AUTHORIZATION='Bearer header-token')
        request.COOKIES[settings.SESSION_COOKIE_NAME] = 'cookie-token'
        assert credential_from_request(request) == 'cookie-token'

    @pytest.mark.parametrize('header', ['', 'Basic abc', 'Bearer', 'Bearer   '])
    def test_no_credential(self, header):
        request = RequestFactory().get('/', HTTP_AUTHORIZATION=header)
        assert credential_from_request(request) is None
