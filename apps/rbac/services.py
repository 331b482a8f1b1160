"""
RBAC and Authentication services.

Implements:
- RBACService: global role and activation changes, city membership grants
  and revocations, each recorded in the audit log
- AuthService: session token issuance and password login
- InvitationService: invitations of new accounts into a city
"""
import logging
from datetime import timedelta
from typing import Optional, Dict, Any

from django.conf import settings
from django.db import transaction
from django.utils import timezone
import jwt

from apps.core.exceptions import ValidationError
from apps.rbac.models import INVITATION_ROLES, AuditLog, CityMembership, Invitation, User, UserProfile
from apps.rbac.roles import MembershipRole, is_valid_role

logger = logging.getLogger(__name__)


class RBACService:
    """
    Service for RBAC mutations.

    Nothing is cached: the authorization gate reads profiles and memberships
    fresh on every request, so a committed change applies to the next request.
    """

    @classmethod
    @transaction.atomic
    def change_role(cls, user: User, role: str, changed_by: Optional[User] = None,
                    request=None) -> UserProfile:
        """
        Change the global role of a user.

        Raises:
            ValidationError: unknown role, or a user changing their own role
        """
        if not is_valid_role(role):
            raise ValidationError(f"Unknown role '{role}'", details={'role': role})
        cls._reject_self_change(user, changed_by)

        profile, _ = UserProfile.objects.select_for_update().get_or_create(user=user)
        previous = profile.role
        if previous == role:
            return profile

        profile.role = role
        profile.save(update_fields=['role', 'updated_at'])

        AuditLog.log_action(
            action='role_changed',
            user=changed_by,
            target_type='UserProfile',
            target_id=profile.id,
            diff={'role': {'before': previous, 'after': role}},
            metadata={'target_user_email': user.email},
            request=request,
        )
        logger.info(
            f"Global role changed: {previous} -> {role}",
            extra={'target_user_id': str(user.id)}
        )
        return profile

    @classmethod
    @transaction.atomic
    def set_active(cls, user: User, is_active: bool, changed_by: Optional[User] = None,
                   request=None) -> UserProfile:
        """Activate or deactivate an account. Deactivated accounts are denied everything."""
        cls._reject_self_change(user, changed_by)

        profile, _ = UserProfile.objects.select_for_update().get_or_create(user=user)
        previous = profile.is_active
        if previous == is_active:
            return profile

        profile.is_active = is_active
        profile.save(update_fields=['is_active', 'updated_at'])

        AuditLog.log_action(
            action='account_activated' if is_active else 'account_deactivated',
            user=changed_by,
            target_type='UserProfile',
            target_id=profile.id,
            diff={'is_active': {'before': previous, 'after': is_active}},
            metadata={'target_user_email': user.email},
            request=request,
        )
        return profile

    @classmethod
    @transaction.atomic
    def grant_membership(cls, city, user: User, role: str, granted_by: Optional[User] = None,
                         request=None) -> CityMembership:
        """
        Grant a user a role on a city, or change the role of an existing membership.

        Raises:
            ValidationError: role is not a city role
        """
        if role not in MembershipRole.values:
            raise ValidationError(f"Unknown city role '{role}'", details={'role': role})

        membership = CityMembership.objects.select_for_update().filter(city=city, user=user).first()
        if membership is None:
            membership = CityMembership.objects.create(
                city=city, user=user, role=role, granted_by=granted_by
            )
            action = 'membership_granted'
            diff = {'role': {'before': None, 'after': role}}
        elif membership.role != role:
            diff = {'role': {'before': membership.role, 'after': role}}
            membership.role = role
            membership.granted_by = granted_by
            membership.granted_at = timezone.now()
            membership.save(update_fields=['role', 'granted_by', 'granted_at', 'updated_at'])
            action = 'membership_role_changed'
        else:
            return membership

        AuditLog.log_action(
            action=action,
            user=granted_by,
            city=city,
            target_type='CityMembership',
            target_id=membership.id,
            diff=diff,
            metadata={'target_user_email': user.email, 'city_slug': city.slug},
            request=request,
        )
        return membership

    @classmethod
    @transaction.atomic
    def revoke_membership(cls, city, user: User, revoked_by: Optional[User] = None,
                          request=None) -> bool:
        """
        Remove a user's membership of a city.

        Returns:
            True if a membership was removed, False if there was none
        """
        membership = CityMembership.objects.filter(city=city, user=user).first()
        if membership is None:
            return False

        membership_id = membership.id
        role = membership.role
        membership.delete()

        AuditLog.log_action(
            action='membership_revoked',
            user=revoked_by,
            city=city,
            target_type='CityMembership',
            target_id=membership_id,
            diff={'role': {'before': role, 'after': None}},
            metadata={'target_user_email': user.email, 'city_slug': city.slug},
            request=request,
        )
        return True

    @staticmethod
    def _reject_self_change(user, changed_by):
        if changed_by is not None and changed_by.pk == user.pk:
            raise ValidationError('You cannot change your own role or activation')


class AuthService:
    """
    Service for authentication operations: session tokens and password login.
    """

    @classmethod
    def issue_token(cls, user: User) -> str:
        """
        Generate a signed session token for a user.

        Args:
            user: User instance

        Returns:
            JWT token string
        """
        now = timezone.now()
        payload = {
            'user_id': str(user.id),
            'email': user.email,
            'exp': now + timedelta(hours=getattr(settings, 'JWT_EXPIRATION_HOURS', 24)),
            'iat': now,
        }

        return jwt.encode(
            payload,
            settings.JWT_SECRET_KEY,
            algorithm=getattr(settings, 'JWT_ALGORITHM', 'HS256')
        )

    @classmethod
    def login(cls, email: str, password: str, request=None) -> Optional[Dict[str, Any]]:
        """
        Authenticate a user by email and password.

        Accounts without a profile, or with a deactivated one, cannot log in.

        Returns:
            Dict with user, profile and token, or None if authentication failed
        """
        user = User.objects.by_email(email)
        if user is None or not user.check_password(password):
            return None

        profile = UserProfile.objects.filter(user=user).first()
        if profile is None or not profile.is_active:
            logger.info(
                "Login refused for account without active profile",
                extra={'user_id': str(user.id)}
            )
            return None

        user.update_last_login()
        token = cls.issue_token(user)

        AuditLog.log_action(
            action='user_login',
            user=user,
            target_type='User',
            target_id=user.id,
            metadata={'email': user.email},
            request=request,
        )

        return {
            'user': user,
            'profile': profile,
            'token': token,
        }


class InvitationService:
    """
    Service for inviting new accounts into a city.

    Only people without an account are invited; existing users are granted
    access directly through RBACService.grant_membership.
    """

    @classmethod
    @transaction.atomic
    def invite(cls, city, email: str, role: str, full_name: str = '',
               invited_by: Optional[User] = None, request=None) -> Invitation:
        """
        Create an invitation to join a city.

        Raises:
            ValidationError: role cannot be invited, an account already
                exists for the email, or a pending invitation does
        """
        if role not in INVITATION_ROLES:
            raise ValidationError(f"Role '{role}' cannot be invited", details={'role': role})

        email = User.objects.normalize_email(email)
        if User.objects.by_email(email) is not None:
            raise ValidationError('A user with this email already exists', details={'email': 'exists'})
        if Invitation.objects.pending().filter(city=city, email=email).exists():
            raise ValidationError(
                'A pending invitation already exists for this email',
                details={'email': 'pending'}
            )

        invitation = Invitation.create_invitation(
            city=city, email=email, role=role, full_name=full_name, invited_by=invited_by,
        )

        AuditLog.log_action(
            action='invitation_created',
            user=invited_by,
            city=city,
            target_type='Invitation',
            target_id=invitation.id,
            diff={'role': {'before': None, 'after': role}},
            metadata={'email': email, 'city_slug': city.slug},
            request=request,
        )
        return invitation

    @classmethod
    @transaction.atomic
    def accept(cls, token: str, password: str, full_name: str = '', request=None) -> Optional[User]:
        """
        Accept an invitation: create the account and its city membership.

        The invited role becomes both the global role and the city role.

        Returns:
            The new User, or None if the token is unknown, expired, revoked
            or already used
        """
        invitation = Invitation.objects.get_pending(token)
        if invitation is None:
            return None

        if User.objects.by_email(invitation.email) is not None:
            raise ValidationError('A user with this email already exists', details={'email': 'exists'})

        user = User.objects.create_user(
            email=invitation.email,
            password=password,
            role=invitation.role,
            full_name=full_name or invitation.full_name,
        )
        CityMembership.objects.create(
            city=invitation.city,
            user=user,
            role=invitation.role,
            granted_by=invitation.invited_by,
        )

        invitation.accepted_at = timezone.now()
        invitation.save(update_fields=['accepted_at', 'updated_at'])

        AuditLog.log_action(
            action='invitation_accepted',
            user=user,
            city=invitation.city,
            target_type='Invitation',
            target_id=invitation.id,
            diff={'role': {'before': None, 'after': invitation.role}},
            metadata={'email': user.email, 'city_slug': invitation.city.slug},
            request=request,
        )
        logger.info(
            "Invitation accepted",
            extra={'user_id': str(user.id), 'city_slug': invitation.city.slug}
        )
        return user

    @classmethod
    def revoke(cls, invitation: Invitation, revoked_by: Optional[User] = None, request=None) -> Invitation:
        """
        Revoke a pending invitation.

        Raises:
            ValidationError: the invitation is no longer pending
        """
        if invitation.status != 'pending':
            raise ValidationError(
                f'Only pending invitations can be revoked (this one is {invitation.status})',
                details={'status': invitation.status}
            )

        invitation.revoked_at = timezone.now()
        invitation.save(update_fields=['revoked_at', 'updated_at'])

        AuditLog.log_action(
            action='invitation_revoked',
            user=revoked_by,
            city=invitation.city,
            target_type='Invitation',
            target_id=invitation.id,
            metadata={'email': invitation.email, 'city_slug': invitation.city.slug},
            request=request,
        )
        return invitation
