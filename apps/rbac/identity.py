"""
Identity resolution from session credentials.

A credential is the signed session token carried in the session cookie or
an ``Authorization: Bearer`` header. Resolution never touches the database:
whether the identity still has a usable account is decided by the profile
store.
"""
import logging
import uuid
from dataclasses import dataclass
from typing import Optional, Union

from django.conf import settings
import jwt

from apps.core.exceptions import MalformedCredential

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Identity:
    """An authenticated principal."""

    user_id: uuid.UUID
    email: str = ''

    is_anonymous = False


class AnonymousIdentity:
    """Sentinel for requests without a usable credential."""

    is_anonymous = True
    user_id = None
    email = ''

    def __repr__(self):
        return 'ANONYMOUS'

    def __bool__(self):
        return False


ANONYMOUS = AnonymousIdentity()


def credential_from_request(request) -> Optional[str]:
    """
    Extract the session credential from a request.

    The session cookie wins over the Authorization header.
    """
    cookie_name = getattr(settings, 'SESSION_COOKIE_NAME', 'langmap_session')
    token = request.COOKIES.get(cookie_name)
    if token:
        return token

    auth_header = request.META.get('HTTP_AUTHORIZATION', '')
    scheme, _, value = auth_header.partition(' ')
    if scheme.lower() == 'bearer' and value.strip():
        return value.strip()

    return None


class IdentityResolver:
    """
    Resolve a credential to an Identity.

    - missing or empty credential -> ANONYMOUS
    - expired token -> ANONYMOUS (normal logged-out state)
    - malformed token, bad signature, missing or invalid user_id claim
      -> MalformedCredential
    """

    def __init__(self, secret_key: str = None, algorithm: str = None):
        self.secret_key = secret_key or settings.JWT_SECRET_KEY
        self.algorithm = algorithm or getattr(settings, 'JWT_ALGORITHM', 'HS256')

    def resolve(self, credential: Optional[str]) -> Union[Identity, AnonymousIdentity]:
        if not credential:
            return ANONYMOUS

        try:
            payload = jwt.decode(
                credential,
                self.secret_key,
                algorithms=[self.algorithm],
                options={'require': ['exp', 'user_id']},
            )
        except jwt.ExpiredSignatureError:
            logger.debug("Expired session token treated as anonymous")
            return ANONYMOUS
        except jwt.InvalidTokenError as e:
            raise MalformedCredential(
                'Session token failed validation',
                details={'error': e.__class__.__name__},
            )

        try:
            user_id = uuid.UUID(str(payload['user_id']))
        except ValueError:
            raise MalformedCredential(
                'Session token carries an invalid user_id',
                details={'error': 'InvalidUserId'},
            )

        return Identity(user_id=user_id, email=payload.get('email', ''))
