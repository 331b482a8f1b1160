"""
RBAC REST API views.

Implements endpoints for:
- Landing pages for each area
- City member management (admin area): list, grant, change role, revoke
- City audit log (admin area)
- Invitations of new accounts (admin area)
- Account management (superuser area): list users, change global role
  or activation
"""
import logging

from drf_spectacular.utils import extend_schema, extend_schema_view, OpenApiExample, OpenApiParameter
from drf_spectacular.types import OpenApiTypes
from rest_framework import serializers, status
from rest_framework.pagination import PageNumberPagination
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.core.exceptions import NotFound, ValidationError
from apps.core.sanitization import sanitize_text
from apps.core.validators import validate_uuid
from apps.rbac.models import AuditLog, CityMembership, Invitation, User, UserProfile
from apps.rbac.permissions import AccessArea, HasCityAccess
from apps.rbac.roles import MembershipRole, Role, is_superuser
from apps.rbac.serializers import (
    AccountUpdateSerializer, CityMembershipSerializer, InvitationCreateSerializer,
    InvitationSerializer, MembershipGrantSerializer, MembershipUpdateSerializer, UserSerializer,
)
from apps.rbac.services import InvitationService, RBACService

logger = logging.getLogger(__name__)


class StandardResultsSetPagination(PageNumberPagination):
    """Standard pagination for list endpoints."""
    page_size = 50
    page_size_query_param = 'page_size'
    max_page_size = 100


class AuditLogSerializer(serializers.ModelSerializer):
    user_email = serializers.SerializerMethodField()

    class Meta:
        model = AuditLog
        fields = ['id', 'action', 'user_email', 'target_type', 'target_id', 'diff', 'created_at']
        read_only_fields = fields

    def get_user_email(self, obj):
        return obj.user.email if obj.user else None


def acting_user(request):
    """The User behind the request's identity."""
    return User.objects.get(id=request.identity.user_id)


def scoped_city(request):
    """The City of the request's scope."""
    from apps.cities.models import City

    return City.objects.get(id=request.city_scope.city_id)


def _member_user(user_id):
    user = User.objects.filter(id=validate_uuid(user_id, 'user_id')).first()
    if user is None:
        raise NotFound('User not found')
    return user


# ===== LANDING PAGES =====

def _city_entry(city, role, locale, dashboard):
    return {
        'slug': city.slug,
        'name': city.name_for(locale),
        'status': city.status,
        'role': role,
        'dashboard': dashboard,
    }


def _landing_cities(request, roles=None):
    """Cities the caller can open, with the role they hold there."""
    from apps.cities.models import City

    cities = City.objects.prefetch_related('translations').order_by('slug')
    if is_superuser(request.access_decision.role):
        return [(city, Role.SUPERUSER.value) for city in cities]

    memberships = CityMembership.objects.for_user(acting_user(request)).prefetch_related(
        'city__translations'
    ).order_by('city__slug')
    if roles is not None:
        memberships = memberships.filter(role__in=roles)
    return [(m.city, m.role) for m in memberships]


@extend_schema(
    tags=['Dashboards'],
    summary='Operator landing page',
    description='Cities the caller holds a membership for. Superusers see every city.',
    responses={200: OpenApiTypes.OBJECT},
)
class OperatorLandingView(APIView):
    """
    GET /{locale}/operator/
    """
    access_area = AccessArea.ACCOUNT
    permission_classes = [HasCityAccess]

    def get(self, request, locale):
        cities = [
            _city_entry(city, role, locale, f'/{locale}/operator/{city.slug}/')
            for city, role in _landing_cities(request)
        ]
        return Response({'count': len(cities), 'cities': cities})


@extend_schema(
    tags=['Dashboards'],
    summary='Admin landing page',
    description='Cities the caller administers. Superusers see every city.',
    responses={200: OpenApiTypes.OBJECT},
)
class AdminLandingView(APIView):
    """
    GET /{locale}/admin/
    """
    access_area = AccessArea.ACCOUNT
    permission_classes = [HasCityAccess]

    def get(self, request, locale):
        cities = [
            _city_entry(city, role, locale, f'/{locale}/admin/{city.slug}/members/')
            for city, role in _landing_cities(request, roles=[MembershipRole.ADMIN])
        ]
        return Response({'count': len(cities), 'cities': cities})


@extend_schema(
    tags=['Dashboards'],
    summary='Superuser landing page',
    responses={200: OpenApiTypes.OBJECT},
)
class SuperuserLandingView(APIView):
    """
    GET /{locale}/superuser/
    """
    access_area = AccessArea.SUPERUSER
    permission_classes = [HasCityAccess]

    def get(self, request, locale):
        from apps.cities.models import City

        return Response({
            'cities': City.objects.count(),
            'active_cities': City.objects.active().count(),
            'users': User.objects.count(),
            'inactive_users': UserProfile.objects.filter(is_active=False).count(),
            'links': {
                'cities': f'/{locale}/superuser/cities/',
                'users': f'/{locale}/superuser/users/',
            },
        })


# ===== ADMIN AREA: CITY MEMBERS =====

@extend_schema_view(
    get=extend_schema(
        tags=['Admin - Members'],
        summary='List city members',
        responses={200: CityMembershipSerializer(many=True)},
    ),
    post=extend_schema(
        tags=['Admin - Members'],
        summary='Grant city access',
        description='''
Grant a city role (`viewer`, `operator` or `admin`) to an existing user,
identified by email. Granting to an existing member changes their role.

**Required role**: admin of the city (or superuser)
        ''',
        request=MembershipGrantSerializer,
        responses={201: CityMembershipSerializer, 400: OpenApiTypes.OBJECT},
        examples=[
            OpenApiExample(
                'Grant Request',
                value={'email': 'editor@example.com', 'role': 'operator'},
                request_only=True
            ),
        ]
    ),
)
class MemberListView(APIView):
    """
    GET/POST /{locale}/admin/{city}/members/
    """
    access_area = AccessArea.ADMIN
    permission_classes = [HasCityAccess]

    def get(self, request, locale, city):
        memberships = CityMembership.objects.for_city(
            request.city_scope.city_id
        ).order_by('user__email')

        serializer = CityMembershipSerializer(memberships, many=True)
        return Response({
            'count': len(serializer.data),
            'members': serializer.data,
        })

    def post(self, request, locale, city):
        serializer = MembershipGrantSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        user = User.objects.by_email(serializer.validated_data['email'])
        if user is None:
            raise ValidationError(
                'No account exists for this email',
                details={'email': 'unknown'}
            )

        membership = RBACService.grant_membership(
            city=scoped_city(request),
            user=user,
            role=serializer.validated_data['role'],
            granted_by=acting_user(request),
            request=request,
        )
        return Response(CityMembershipSerializer(membership).data, status=status.HTTP_201_CREATED)


@extend_schema_view(
    patch=extend_schema(
        tags=['Admin - Members'],
        summary='Change a member role',
        request=MembershipUpdateSerializer,
        responses={200: CityMembershipSerializer, 404: OpenApiTypes.OBJECT},
    ),
    delete=extend_schema(
        tags=['Admin - Members'],
        summary='Revoke city access',
        responses={204: None, 404: OpenApiTypes.OBJECT},
    ),
)
class MemberDetailView(APIView):
    """
    PATCH/DELETE /{locale}/admin/{city}/members/{user_id}/
    """
    access_area = AccessArea.ADMIN
    permission_classes = [HasCityAccess]

    def patch(self, request, locale, city, user_id):
        user = _member_user(user_id)
        city_obj = scoped_city(request)
        if CityMembership.objects.get_membership(city_obj, user) is None:
            raise NotFound('Membership not found')

        serializer = MembershipUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        membership = RBACService.grant_membership(
            city=city_obj,
            user=user,
            role=serializer.validated_data['role'],
            granted_by=acting_user(request),
            request=request,
        )
        return Response(CityMembershipSerializer(membership).data)

    def delete(self, request, locale, city, user_id):
        user = _member_user(user_id)
        revoked = RBACService.revoke_membership(
            city=scoped_city(request),
            user=user,
            revoked_by=acting_user(request),
            request=request,
        )
        if not revoked:
            raise NotFound('Membership not found')
        return Response(status=status.HTTP_204_NO_CONTENT)


@extend_schema(
    tags=['Admin - Audit'],
    summary='City audit log',
    parameters=[
        OpenApiParameter('action', OpenApiTypes.STR, description='Only entries with this action'),
    ],
    responses={200: AuditLogSerializer(many=True)},
)
class AuditLogListView(APIView):
    """
    GET /{locale}/admin/{city}/audit-logs/
    """
    access_area = AccessArea.ADMIN
    permission_classes = [HasCityAccess]

    def get(self, request, locale, city):
        logs = AuditLog.objects.for_city(request.city_scope.city_id)
        action = request.query_params.get('action')
        if action:
            logs = logs.by_action(sanitize_text(action, max_length=100))

        paginator = StandardResultsSetPagination()
        page = paginator.paginate_queryset(logs, request, view=self)
        return paginator.get_paginated_response(AuditLogSerializer(page, many=True).data)


# ===== ADMIN AREA: INVITATIONS =====

@extend_schema_view(
    get=extend_schema(
        tags=['Admin - Invitations'],
        summary='List city invitations',
        responses={200: InvitationSerializer(many=True)},
    ),
    post=extend_schema(
        tags=['Admin - Invitations'],
        summary='Invite a new account',
        description='''
Invite someone without an account to join the city as `operator` or
`admin`. The response carries the single-use token for the acceptance
link; it is not shown again. Invitations expire after 7 days.

**Required role**: admin of the city (or superuser)
        ''',
        request=InvitationCreateSerializer,
        responses={201: OpenApiTypes.OBJECT, 400: OpenApiTypes.OBJECT},
        examples=[
            OpenApiExample(
                'Invite Request',
                value={'email': 'new@example.com', 'full_name': 'Sanne de Vries', 'role': 'operator'},
                request_only=True
            ),
        ]
    ),
)
class InvitationListView(APIView):
    """
    GET/POST /{locale}/admin/{city}/invitations/
    """
    access_area = AccessArea.ADMIN
    permission_classes = [HasCityAccess]

    def get(self, request, locale, city):
        invitations = Invitation.objects.for_city(request.city_scope.city_id)
        status_filter = request.query_params.get('status')
        if status_filter == 'pending':
            invitations = invitations.filter(pk__in=Invitation.objects.pending().values('pk'))

        paginator = StandardResultsSetPagination()
        page = paginator.paginate_queryset(invitations, request, view=self)
        return paginator.get_paginated_response(InvitationSerializer(page, many=True).data)

    def post(self, request, locale, city):
        serializer = InvitationCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        invitation = InvitationService.invite(
            city=scoped_city(request),
            invited_by=acting_user(request),
            request=request,
            **serializer.validated_data,
        )
        return Response(
            dict(InvitationSerializer(invitation).data, token=invitation.token),
            status=status.HTTP_201_CREATED,
        )


@extend_schema(
    tags=['Admin - Invitations'],
    summary='Revoke an invitation',
    responses={200: InvitationSerializer, 400: OpenApiTypes.OBJECT, 404: OpenApiTypes.OBJECT},
)
class InvitationDetailView(APIView):
    """
    DELETE /{locale}/admin/{city}/invitations/{invitation_id}/
    """
    access_area = AccessArea.ADMIN
    permission_classes = [HasCityAccess]

    def delete(self, request, locale, city, invitation_id):
        invitation = Invitation.objects.for_city(request.city_scope.city_id).filter(
            id=validate_uuid(invitation_id, 'invitation_id')
        ).first()
        if invitation is None:
            raise NotFound('Invitation not found')

        invitation = InvitationService.revoke(invitation, revoked_by=acting_user(request), request=request)
        return Response(InvitationSerializer(invitation).data)


# ===== SUPERUSER AREA: ACCOUNTS =====


@extend_schema(
    tags=['Superuser - Accounts'],
    summary='List user accounts',
    responses={200: UserSerializer(many=True)},
)
class UserListView(APIView):
    """
    GET /{locale}/superuser/users/
    """
    access_area = AccessArea.SUPERUSER
    permission_classes = [HasCityAccess]

    def get(self, request, locale):
        users = User.objects.select_related('profile').order_by('email')

        paginator = StandardResultsSetPagination()
        page = paginator.paginate_queryset(users, request, view=self)
        return paginator.get_paginated_response(UserSerializer(page, many=True).data)


@extend_schema(
    tags=['Superuser - Accounts'],
    summary='Change global role or activation',
    description='''
Change a user's global role (`viewer`, `operator`, `admin`, `superuser`)
and/or deactivate the account. Takes effect on the user's next request.
You cannot change your own account.
    ''',
    request=AccountUpdateSerializer,
    responses={200: UserSerializer, 400: OpenApiTypes.OBJECT, 404: OpenApiTypes.OBJECT},
    examples=[
        OpenApiExample('Deactivate', value={'is_active': False}, request_only=True),
        OpenApiExample('Promote', value={'role': 'superuser'}, request_only=True),
    ]
)
class UserAccountView(APIView):
    """
    PATCH /{locale}/superuser/users/{user_id}/
    """
    access_area = AccessArea.SUPERUSER
    permission_classes = [HasCityAccess]

    def patch(self, request, locale, user_id):
        user = _member_user(user_id)

        serializer = AccountUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        changed_by = acting_user(request)

        if 'role' in serializer.validated_data:
            RBACService.change_role(
                user, serializer.validated_data['role'], changed_by=changed_by, request=request
            )
        if 'is_active' in serializer.validated_data:
            RBACService.set_active(
                user, serializer.validated_data['is_active'], changed_by=changed_by, request=request
            )

        user = User.objects.select_related('profile').get(id=user.id)
        return Response(UserSerializer(user).data)
