"""
RBAC serializers for REST API endpoints.

Provides serialization for:
- Authentication (login)
- Users and their global profile
- City memberships (admin member management)
- Account updates (superuser role/activation changes)
- Invitations (admin invites, public acceptance)
"""
from django.contrib.auth.password_validation import validate_password
from rest_framework import serializers

from apps.core.sanitization import sanitize_email, sanitize_text
from apps.rbac.models import INVITATION_ROLES, CityMembership, Invitation, User, UserProfile
from apps.rbac.roles import Role, MembershipRole


# ===== AUTHENTICATION SERIALIZERS =====

class LoginSerializer(serializers.Serializer):
    """Serializer for user login."""

    email = serializers.EmailField(required=True)
    password = serializers.CharField(
        required=True,
        write_only=True,
        style={'input_type': 'password'}
    )

    def validate_email(self, value):
        """Normalize email to lowercase."""
        return value.lower()


# ===== USER SERIALIZERS =====

class UserSerializer(serializers.ModelSerializer):
    """Serializer for a user with their global role."""

    role = serializers.SerializerMethodField()
    is_active = serializers.SerializerMethodField()

    class Meta:
        model = User
        fields = ['id', 'email', 'full_name', 'role', 'is_active', 'last_login_at']
        read_only_fields = fields

    def _profile(self, obj):
        try:
            return obj.profile
        except UserProfile.DoesNotExist:
            return None

    def get_role(self, obj):
        profile = self._profile(obj)
        return profile.role if profile else None

    def get_is_active(self, obj):
        profile = self._profile(obj)
        return bool(profile and profile.is_active)


class AccountUpdateSerializer(serializers.Serializer):
    """Serializer for changing a user's global role or activation."""

    role = serializers.ChoiceField(choices=Role.choices, required=False)
    is_active = serializers.BooleanField(required=False)

    def validate(self, attrs):
        if not attrs:
            raise serializers.ValidationError("Provide role and/or is_active.")
        return attrs


# ===== MEMBERSHIP SERIALIZERS =====

class CityMembershipSerializer(serializers.ModelSerializer):
    """Serializer for a city membership."""

    user_id = serializers.UUIDField(source='user.id', read_only=True)
    email = serializers.EmailField(source='user.email', read_only=True)
    full_name = serializers.CharField(source='user.full_name', read_only=True)
    granted_by = serializers.SerializerMethodField()

    class Meta:
        model = CityMembership
        fields = ['user_id', 'email', 'full_name', 'role', 'granted_by', 'granted_at']
        read_only_fields = fields

    def get_granted_by(self, obj):
        return obj.granted_by.email if obj.granted_by else None


class MembershipGrantSerializer(serializers.Serializer):
    """Serializer for granting a city role to a user identified by email."""

    email = serializers.EmailField(required=True)
    role = serializers.ChoiceField(choices=MembershipRole.choices, default=MembershipRole.VIEWER)

    def validate_email(self, value):
        email = sanitize_email(value)
        if not email:
            raise serializers.ValidationError("Please enter a valid email address.")
        return email


class MembershipUpdateSerializer(serializers.Serializer):
    """Serializer for changing the role of an existing membership."""

    role = serializers.ChoiceField(choices=MembershipRole.choices, required=True)


# ===== INVITATION SERIALIZERS =====

class InvitationSerializer(serializers.ModelSerializer):
    """An invitation as listed to city admins. The token is never listed."""

    invited_by = serializers.SerializerMethodField()
    status = serializers.CharField(read_only=True)

    class Meta:
        model = Invitation
        fields = [
            'id', 'email', 'full_name', 'role', 'status', 'invited_by',
            'expires_at', 'accepted_at', 'revoked_at', 'created_at',
        ]
        read_only_fields = fields

    def get_invited_by(self, obj):
        return obj.invited_by.email if obj.invited_by else None


class InvitationCreateSerializer(serializers.Serializer):
    email = serializers.EmailField(required=True)
    full_name = serializers.CharField(max_length=255, required=False, allow_blank=True, default='')
    role = serializers.ChoiceField(
        choices=[(role.value, role.label) for role in INVITATION_ROLES],
        default=MembershipRole.OPERATOR,
    )

    def validate_email(self, value):
        email = sanitize_email(value)
        if not email:
            raise serializers.ValidationError("Please enter a valid email address.")
        return email

    def validate_full_name(self, value):
        return sanitize_text(value)


class InvitationAcceptSerializer(serializers.Serializer):
    """Serializer for accepting an invitation and choosing a password."""

    token = serializers.CharField(max_length=255)
    password = serializers.CharField(write_only=True, style={'input_type': 'password'})
    full_name = serializers.CharField(max_length=255, required=False, allow_blank=True, default='')

    def validate_password(self, value):
        validate_password(value)
        return value

    def validate_full_name(self, value):
        return sanitize_text(value)
