"""
Authentication REST API views.

Implements endpoints for:
- Login (sets the session cookie)
- Logout (clears it)
- Current user: identity, global role and city memberships
- Invitation acceptance (creates the account and signs it in)
"""
import logging

from django.conf import settings
from django.utils.decorators import method_decorator
from django_ratelimit.decorators import ratelimit
from django_ratelimit.exceptions import Ratelimited
from drf_spectacular.utils import extend_schema, OpenApiExample
from drf_spectacular.types import OpenApiTypes
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.core.exceptions import (
    AuthenticationError, NotFound, PermissionDeniedError, ValidationError,
)
from apps.core.logging import SecurityLogger
from apps.core.validators import validate_locale
from apps.rbac.gate import build_gate
from apps.rbac.identity import credential_from_request
from apps.rbac.models import CityMembership, User
from apps.rbac.roles import dashboard_path
from apps.rbac.serializers import (
    CityMembershipSerializer, InvitationAcceptSerializer, LoginSerializer, UserSerializer,
)
from apps.rbac.services import AuthService, InvitationService

logger = logging.getLogger(__name__)


def _require_locale(locale):
    try:
        return validate_locale(locale)
    except ValidationError:
        raise NotFound('Unknown locale')


def _set_session_cookie(response, token):
    response.set_cookie(
        settings.SESSION_COOKIE_NAME,
        token,
        max_age=int(getattr(settings, 'JWT_EXPIRATION_HOURS', 24)) * 3600,
        httponly=True,
        secure=settings.SESSION_COOKIE_SECURE,
        samesite='Lax',
    )


@extend_schema(
    tags=['Authentication'],
    summary='Login',
    description='''
Authenticate with email and password.

Sets the HttpOnly session cookie and also returns the session token for
clients that send `Authorization: Bearer <token>`. The response carries the
landing page for the user's role.

**Rate limit**: 5 requests/minute per IP
    ''',
    request=LoginSerializer,
    responses={
        200: OpenApiTypes.OBJECT,
        400: OpenApiTypes.OBJECT,
        401: OpenApiTypes.OBJECT,
        429: OpenApiTypes.OBJECT,
    },
    examples=[
        OpenApiExample(
            'Login Request',
            value={'email': 'operator@example.com', 'password': 'SecurePass123!'},
            request_only=True
        ),
        OpenApiExample(
            'Success Response',
            value={
                'user': {
                    'id': '123e4567-e89b-12d3-a456-426614174000',
                    'email': 'operator@example.com',
                    'full_name': 'Jan Jansen',
                    'role': 'operator',
                    'is_active': True,
                    'last_login_at': '2025-01-01T12:00:00Z',
                },
                'redirect_to': '/nl/operator/',
                'token': 'eyJhbGciOiJIUzI1NiIsInR5cCI6IkpXVCJ9...',
            },
            response_only=True
        ),
    ]
)
@method_decorator(ratelimit(key='ip', rate='5/m', method='POST', block=False), name='dispatch')
class LoginView(APIView):
    """
    POST /{locale}/login

    No authentication required.
    Rate limited to 5 requests per minute per IP address.
    """
    authentication_classes = []
    permission_classes = []

    def post(self, request, locale):
        locale = _require_locale(locale)

        if getattr(request, 'limited', False):
            raise Ratelimited()

        serializer = LoginSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = AuthService.login(
            email=serializer.validated_data['email'],
            password=serializer.validated_data['password'],
            request=request,
        )

        if not result:
            SecurityLogger.log_failed_login(
                email=serializer.validated_data['email'],
                ip_address=request.META.get('REMOTE_ADDR', 'unknown'),
                user_agent=request.META.get('HTTP_USER_AGENT', 'unknown'),
                reason='Invalid credentials'
            )
            raise AuthenticationError('Invalid email or password')

        user = result['user']
        response = Response(
            {
                'user': UserSerializer(user).data,
                'redirect_to': dashboard_path(result['profile'].role, locale),
                'token': result['token'],
            },
            status=status.HTTP_200_OK
        )
        _set_session_cookie(response, result['token'])
        return response


@extend_schema(
    tags=['Authentication'],
    summary='Logout',
    description='Clear the session cookie.',
    request=None,
    responses={200: OpenApiTypes.OBJECT},
)
class LogoutView(APIView):
    """
    POST /{locale}/logout
    """
    authentication_classes = []
    permission_classes = []

    def post(self, request, locale):
        _require_locale(locale)
        response = Response({'message': 'Logged out'}, status=status.HTTP_200_OK)
        response.delete_cookie(settings.SESSION_COOKIE_NAME, samesite='Lax')
        return response


@extend_schema(
    tags=['Authentication'],
    summary='Current user',
    description='Identity, global role and city memberships of the caller.',
    responses={
        200: OpenApiTypes.OBJECT,
        401: OpenApiTypes.OBJECT,
        403: OpenApiTypes.OBJECT,
    },
)
class MeView(APIView):
    """
    GET /{locale}/me
    """
    authentication_classes = []
    permission_classes = []

    def get(self, request, locale):
        locale = _require_locale(locale)

        decision = build_gate(request).authenticate(credential_from_request(request))
        if not decision.allowed:
            raise decision.error()

        user = User.objects.select_related('profile').filter(id=decision.identity.user_id).first()
        if user is None:
            raise PermissionDeniedError()

        memberships = CityMembership.objects.for_user(user).select_related('granted_by')
        return Response({
            'user': UserSerializer(user).data,
            'redirect_to': dashboard_path(decision.role, locale),
            'memberships': [
                dict(CityMembershipSerializer(m).data, city=m.city.slug)
                for m in memberships
            ],
        })


@extend_schema(
    tags=['Authentication'],
    summary='Accept an invitation',
    description='''
Create the invited account with a password of your choice and join the
city. Signs the new account in like a login does.

**Rate limit**: 5 requests/minute per IP
    ''',
    request=InvitationAcceptSerializer,
    responses={201: OpenApiTypes.OBJECT, 400: OpenApiTypes.OBJECT, 429: OpenApiTypes.OBJECT},
)
@method_decorator(ratelimit(key='ip', rate='5/m', method='POST', block=False), name='dispatch')
class InvitationAcceptView(APIView):
    """
    POST /{locale}/invitations/accept

    No authentication required; the token is the credential.
    """
    authentication_classes = []
    permission_classes = []

    def post(self, request, locale):
        locale = _require_locale(locale)

        if getattr(request, 'limited', False):
            raise Ratelimited()

        serializer = InvitationAcceptSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        user = InvitationService.accept(request=request, **serializer.validated_data)
        if user is None:
            SecurityLogger.log_event(
                'invalid_invitation_token',
                level='warning',
                ip_address=request.META.get('REMOTE_ADDR', 'unknown'),
                request_id=getattr(request, 'request_id', None),
            )
            raise ValidationError(
                'This invitation is invalid or has expired',
                details={'token': 'invalid'}
            )

        token = AuthService.issue_token(user)
        response = Response(
            {
                'user': UserSerializer(user).data,
                'redirect_to': dashboard_path(user.profile.role, locale),
                'token': token,
            },
            status=status.HTTP_201_CREATED
        )
        _set_session_cookie(response, token)
        return response
