"""
Tests for RBACService and AuthService.
"""
from datetime import timedelta

import jwt
import pytest
from django.conf import settings
from django.utils import timezone

from apps.core.exceptions import ValidationError
from apps.rbac.models import AuditLog, CityMembership, User, UserProfile
from apps.rbac.services import AuthService, RBACService


@pytest.mark.django_db
class TestChangeRole:

    def test_change_role(self, make_user, superuser):
        user = make_user(role='viewer')

        profile = RBACService.change_role(user, 'admin', changed_by=superuser)

        assert profile.role == 'admin'
        entry = AuditLog.objects.get(action='role_changed')
        assert entry.user == superuser
        assert entry.diff == {'role': {'before': 'viewer', 'after': 'admin'}}

    def test_unknown_role(self, make_user):
        with pytest.raises(ValidationError):
            RBACService.change_role(make_user(), 'owner')

    def test_cannot_change_own_role(self, superuser):
        with pytest.raises(ValidationError):
            RBACService.change_role(superuser, 'viewer', changed_by=superuser)

        assert UserProfile.objects.get(user=superuser).role == 'superuser'

    def test_noop_is_not_audited(self, make_user):
        user = make_user(role='viewer')

        RBACService.change_role(user, 'viewer')

        assert not AuditLog.objects.filter(action='role_changed').exists()

    def test_creates_missing_profile(self, make_user):
        user = make_user()
        UserProfile.objects.filter(user=user).delete()

        profile = RBACService.change_role(user, 'operator')

        assert profile.role == 'operator'
        assert profile.is_active


@pytest.mark.django_db
class TestSetActive:

    def test_deactivate(self, make_user, superuser):
        user = make_user()

        profile = RBACService.set_active(user, False, changed_by=superuser)

        assert not profile.is_active
        assert AuditLog.objects.filter(action='account_deactivated').exists()

    def test_reactivate(self, make_user):
        user = make_user(is_active=False)

        assert RBACService.set_active(user, True).is_active
        assert AuditLog.objects.filter(action='account_activated').exists()

    def test_cannot_deactivate_self(self, superuser):
        with pytest.raises(ValidationError):
            RBACService.set_active(superuser, False, changed_by=superuser)


@pytest.mark.django_db
class TestMemberships:

    def test_grant(self, city, make_user, superuser):
        user = make_user()

        membership = RBACService.grant_membership(city, user, 'operator', granted_by=superuser)

        assert membership.role == 'operator'
        assert membership.granted_by == superuser
        entry = AuditLog.objects.get(action='membership_granted')
        assert entry.city == city
        assert entry.metadata['city_slug'] == 'amsterdam'

    def test_grant_existing_changes_role(self, city, make_user, grant):
        user = make_user()
        grant(user, city, 'viewer')

        membership = RBACService.grant_membership(city, user, 'admin')

        assert membership.role == 'admin'
        assert CityMembership.objects.filter(city=city, user=user).count() == 1
        entry = AuditLog.objects.get(action='membership_role_changed')
        assert entry.diff == {'role': {'before': 'viewer', 'after': 'admin'}}

    def test_grant_same_role_is_noop(self, city, make_user, grant):
        user = make_user()
        grant(user, city, 'viewer')

        RBACService.grant_membership(city, user, 'viewer')

        assert not AuditLog.objects.exists()

    def test_superuser_is_not_a_city_role(self, city, make_user):
        with pytest.raises(ValidationError):
            RBACService.grant_membership(city, make_user(), 'superuser')

    def test_revoke(self, city, make_user, grant):
        user = make_user()
        grant(user, city, 'operator')

        assert RBACService.revoke_membership(city, user) is True
        assert not CityMembership.objects.filter(city=city, user=user).exists()
        assert AuditLog.objects.filter(action='membership_revoked', city=city).exists()

    def test_revoke_missing(self, city, make_user):
        assert RBACService.revoke_membership(city, make_user()) is False

    def test_revoke_is_per_city(self, city, other_city, make_user, grant):
        user = make_user()
        grant(user, city, 'operator')
        grant(user, other_city, 'operator')

        RBACService.revoke_membership(city, user)

        assert CityMembership.objects.filter(user=user, city=other_city).exists()


@pytest.mark.django_db
class TestAuthService:

    def test_issue_token(self, make_user):
        user = make_user(email='jan@example.com')

        token = AuthService.issue_token(user)
        payload = jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])

        assert payload['user_id'] == str(user.id)
        assert payload['email'] == 'jan@example.com'
        expected = timezone.now() + timedelta(hours=settings.JWT_EXPIRATION_HOURS)
        assert abs(payload['exp'] - expected.timestamp()) < 60

    def test_token_not_signed_with_secret_key(self, make_user):
        token = AuthService.issue_token(make_user())

        with pytest.raises(jwt.InvalidSignatureError):
            jwt.decode(token, settings.SECRET_KEY, algorithms=['HS256'])

    def test_login(self, make_user):
        user = make_user(email='jan@example.com', role='operator')

        result = AuthService.login('jan@example.com', 'SecurePass123!')

        assert result['user'] == user
        assert result['profile'].role == 'operator'
        assert result['token']

    @pytest.mark.parametrize('email,password', [
        ('jan@example.com', 'wrong'),
        ('nobody@example.com', 'SecurePass123!'),
    ])
    def test_login_failure(self, make_user, email, password):
        make_user(email='jan@example.com')

        assert AuthService.login(email, password) is None

    def test_login_refuses_inactive(self, make_user):
        make_user(email='jan@example.com', is_active=False)

        assert AuthService.login('jan@example.com', 'SecurePass123!') is None
        assert not AuditLog.objects.filter(action='user_login').exists()


@pytest.mark.django_db
class TestUserModel:

    def test_create_user_creates_profile(self):
        user = User.objects.create_user(email='  Jan@Example.COM ', password='SecurePass123!')

        assert user.email == 'jan@example.com'
        assert user.profile.role == 'viewer'
        assert user.profile.is_active

    def test_password_is_hashed(self):
        user = User.objects.create_user(email='jan@example.com', password='SecurePass123!')

        assert user.password_hash != 'SecurePass123!'
        assert user.check_password('SecurePass123!')
        assert not user.check_password('wrong')

    def test_no_password_is_unusable(self):
        user = User.objects.create_user(email='jan@example.com')

        assert not user.check_password('')

    def test_create_superuser(self):
        user = User.objects.create_superuser(email='root@example.com', password='x')

        assert user.profile.role == 'superuser'

    def test_email_required(self):
        with pytest.raises(ValueError):
            User.objects.create_user(email='')

    def test_by_email(self, make_user):
        user = make_user(email='jan@example.com')

        assert User.objects.by_email('JAN@example.com') == user
        assert User.objects.by_email('nobody@example.com') is None

    def test_membership_unique_per_city(self, city, make_user, grant):
        from django.db import IntegrityError, transaction

        user = make_user()
        grant(user, city, 'viewer')

        with pytest.raises(IntegrityError), transaction.atomic():
            grant(user, city, 'admin')
