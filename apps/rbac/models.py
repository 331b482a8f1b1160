"""
RBAC models for multi-city access control.

Implements:
- Global User identity (can work across multiple cities)
- UserProfile holding the global role and activation flag
- CityMembership linking a user to a city with a per-city role
- AuditLog (audit trail for privileged mutations)
- Invitation (single-use token inviting a new account into a city)
"""
import logging
import secrets
from datetime import timedelta

from django.db import models
from django.contrib.auth.hashers import make_password, check_password
from django.utils import timezone

from apps.core.models import BaseModel
from apps.rbac.roles import Role, MembershipRole

logger = logging.getLogger(__name__)


class UserManager(models.Manager):
    """
    Manager for User queries.
    """

    def by_email(self, email):
        """Find user by email."""
        return self.filter(email=self.normalize_email(email)).first()

    def create_user(self, email, password=None, role=Role.VIEWER, is_active=True, **extra_fields):
        """
        Create a new user with hashed password and a profile row.
        """
        if not email:
            raise ValueError('Email address is required')

        user = self.model(email=self.normalize_email(email), **extra_fields)
        user.set_password(password)
        user.save(using=self._db)

        UserProfile.objects.create(user=user, role=role, is_active=is_active)
        return user

    def create_superuser(self, email, password=None, **extra_fields):
        """Create a user holding the global superuser role."""
        return self.create_user(email, password, role=Role.SUPERUSER, **extra_fields)

    @staticmethod
    def normalize_email(email):
        """Emails are stored and compared lower-cased."""
        return (email or '').strip().lower()


class User(BaseModel):
    """
    Global user identity - can belong to multiple cities.

    Authentication happens at the User level, authorization at the
    UserProfile (global role) and CityMembership (per-city role) level.
    Users are never deleted here; they are deactivated through their profile.
    """

    email = models.EmailField(
        unique=True,
        db_index=True,
        help_text="User email address (unique globally)"
    )
    password_hash = models.CharField(
        max_length=255,
        help_text="Hashed password",
    )
    full_name = models.CharField(
        max_length=255,
        blank=True,
        help_text="Display name"
    )
    last_login_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Last login timestamp"
    )

    objects = UserManager()

    class Meta:
        db_table = 'users'
        ordering = ['email']

    def __str__(self):
        return self.email

    def set_password(self, raw_password):
        """Hash and store password; an empty password yields an unusable hash."""
        self.password_hash = make_password(raw_password or None)

    def check_password(self, raw_password):
        return check_password(raw_password, self.password_hash)

    def update_last_login(self):
        self.last_login_at = timezone.now()
        self.save(update_fields=['last_login_at', 'updated_at'])

    @property
    def is_authenticated(self):
        return True

    @property
    def is_anonymous(self):
        return False


class UserProfile(BaseModel):
    """
    Global role and activation state for a user.

    A user without a profile row has no privileges at all.
    Mutated only by admin/superuser actions.
    """

    user = models.OneToOneField(
        User,
        on_delete=models.CASCADE,
        related_name='profile',
    )
    role = models.CharField(
        max_length=20,
        choices=Role.choices,
        default=Role.VIEWER,
        db_index=True,
        help_text="Global role; only superuser has effect outside memberships"
    )
    is_active = models.BooleanField(
        default=True,
        db_index=True,
        help_text="Inactive accounts are denied everything"
    )

    class Meta:
        db_table = 'user_profiles'

    def __str__(self):
        return f"{self.user.email} ({self.role}{'' if self.is_active else ', inactive'})"


class CityMembershipManager(models.Manager):
    """Manager for CityMembership queries."""

    def for_city(self, city_id):
        return self.filter(city_id=city_id).select_related('user', 'granted_by')

    def for_user(self, user):
        return self.filter(user=user).select_related('city')

    def get_membership(self, city, user):
        return self.filter(city=city, user=user).first()


class CityMembership(BaseModel):
    """
    Links a User to a City with a per-city role.

    Absence of a row for (user, city) means no city-scoped access,
    regardless of the global role, except for superusers.
    """

    city = models.ForeignKey(
        'cities.City',
        on_delete=models.CASCADE,
        related_name='memberships',
    )
    user = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='city_memberships',
    )
    role = models.CharField(
        max_length=20,
        choices=MembershipRole.choices,
        default=MembershipRole.VIEWER,
    )
    granted_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='granted_memberships',
    )
    granted_at = models.DateTimeField(default=timezone.now)

    objects = CityMembershipManager()

    class Meta:
        db_table = 'city_memberships'
        ordering = ['granted_at']
        constraints = [
            models.UniqueConstraint(fields=['city', 'user'], name='unique_city_membership'),
        ]

    def __str__(self):
        return f"{self.user.email} @ {self.city.slug} ({self.role})"


class AuditLogQuerySet(models.QuerySet):
    """QuerySet for AuditLog queries."""

    def for_city(self, city_id):
        return self.filter(city_id=city_id).select_related('user')

    def by_action(self, action):
        return self.filter(action=action)


class AuditLog(BaseModel):
    """
    Audit trail for privileged mutations: role and activation changes,
    membership grants and revocations, city creation, logins.
    """

    city = models.ForeignKey(
        'cities.City',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='audit_logs',
        help_text="City this action belongs to (null for platform-level)"
    )
    user = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='audit_logs',
        help_text="User who performed the action"
    )
    action = models.CharField(max_length=100, db_index=True)
    target_type = models.CharField(max_length=50, db_index=True)
    target_id = models.UUIDField(null=True, blank=True, db_index=True)
    diff = models.JSONField(default=dict, blank=True)
    metadata = models.JSONField(default=dict, blank=True)
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    user_agent = models.TextField(blank=True)
    request_id = models.CharField(max_length=64, blank=True)

    objects = AuditLogQuerySet.as_manager()

    class Meta:
        db_table = 'audit_logs'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['city', 'created_at']),
            models.Index(fields=['action', 'created_at']),
        ]

    def __str__(self):
        user_str = self.user.email if self.user else 'System'
        city_str = self.city.slug if self.city else 'Platform'
        return f"{city_str} - {user_str} - {self.action}"

    @classmethod
    def log_action(cls, action, user=None, city=None, target_type='', target_id=None,
                   diff=None, metadata=None, request=None):
        """
        Convenience method to create an audit log entry.

        Args:
            action: Action being performed (e.g. 'membership_granted')
            user: User performing the action
            city: City context
            target_type: Type of target entity
            target_id: ID of target entity
            diff: Before/after changes
            metadata: Additional context
            request: Django request (for IP, user agent, request ID)
        """
        ip_address = None
        user_agent = ''
        request_id = ''
        if request is not None:
            ip_address = request.META.get('REMOTE_ADDR') or None
            user_agent = request.META.get('HTTP_USER_AGENT', '')
            request_id = getattr(request, 'request_id', '') or ''

        return cls.objects.create(
            action=action,
            user=user,
            city=city,
            target_type=target_type,
            target_id=target_id,
            diff=diff or {},
            metadata=metadata or {},
            ip_address=ip_address,
            user_agent=user_agent,
            request_id=request_id,
        )


INVITATION_ROLES = (MembershipRole.OPERATOR, MembershipRole.ADMIN)


class InvitationManager(models.Manager):
    """Manager for Invitation queries."""

    def pending(self):
        """Invitations that can still be accepted."""
        return self.filter(
            accepted_at__isnull=True,
            revoked_at__isnull=True,
            expires_at__gt=timezone.now(),
        )

    def for_city(self, city_id):
        return self.filter(city_id=city_id).select_related('invited_by')

    def get_pending(self, token):
        """Lock and return a pending invitation by token. Call inside a transaction."""
        return self.pending().select_for_update(of=('self',)).select_related('city').filter(
            token=token
        ).first()


class Invitation(BaseModel):
    """
    Invitation for a new account to join one city with a role.

    Invitations expire after INVITATION_TTL and can be accepted once.
    Accepting creates the account and its membership.
    """

    INVITATION_TTL = timedelta(days=7)

    city = models.ForeignKey(
        'cities.City',
        on_delete=models.CASCADE,
        related_name='invitations',
    )
    email = models.EmailField(db_index=True)
    full_name = models.CharField(max_length=255, blank=True)
    role = models.CharField(max_length=20, choices=MembershipRole.choices)
    token = models.CharField(
        max_length=255,
        unique=True,
        db_index=True,
        help_text="Unique invitation token"
    )
    invited_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='invitations_sent',
    )
    expires_at = models.DateTimeField(db_index=True)
    accepted_at = models.DateTimeField(null=True, blank=True)
    revoked_at = models.DateTimeField(null=True, blank=True)

    objects = InvitationManager()

    class Meta:
        db_table = 'invitations'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['city', 'email']),
        ]

    def __str__(self):
        return f"Invitation for {self.email} @ {self.city.slug} ({self.role})"

    @property
    def status(self):
        if self.accepted_at:
            return 'accepted'
        if self.revoked_at:
            return 'revoked'
        if self.expires_at <= timezone.now():
            return 'expired'
        return 'pending'

    @classmethod
    def create_invitation(cls, city, email, role, full_name='', invited_by=None):
        """Create an invitation with a fresh token, valid for INVITATION_TTL."""
        return cls.objects.create(
            city=city,
            email=email,
            role=role,
            full_name=full_name,
            token=secrets.token_urlsafe(32),
            invited_by=invited_by,
            expires_at=timezone.now() + cls.INVITATION_TTL,
        )
