"""
Tests for the create_langmap_user and grant_city_access management commands.
"""
from io import StringIO

import pytest
from django.core.management import CommandError, call_command

from apps.rbac.models import CityMembership, User


@pytest.mark.django_db
class TestCreateLangmapUser:

    def test_creates_user_with_profile(self):
        out = StringIO()
        call_command(
            'create_langmap_user',
            '--email=Jan@Example.com',
            '--password=SecurePass123!',
            '--role=superuser',
            '--full-name=Jan Jansen',
            stdout=out,
        )

        user = User.objects.get(email='jan@example.com')
        assert user.full_name == 'Jan Jansen'
        assert user.profile.role == 'superuser'
        assert user.check_password('SecurePass123!')
        assert 'Created user jan@example.com' in out.getvalue()

    def test_default_role_is_viewer(self):
        call_command('create_langmap_user', '--email=jan@example.com', '--password=x', stdout=StringIO())

        assert User.objects.get(email='jan@example.com').profile.role == 'viewer'

    def test_duplicate(self, make_user):
        make_user(email='jan@example.com')

        with pytest.raises(CommandError, match='already exists'):
            call_command('create_langmap_user', '--email=jan@example.com', '--password=x')

    def test_invalid_email(self):
        with pytest.raises(CommandError, match='Invalid email'):
            call_command('create_langmap_user', '--email=not-an-email', '--password=x')


@pytest.mark.django_db
class TestGrantCityAccess:

    def test_grants_membership(self, city, make_user):
        user = make_user(email='jan@example.com')
        out = StringIO()

        call_command(
            'grant_city_access', '--email=jan@example.com', '--city=amsterdam', '--role=admin', stdout=out
        )

        assert CityMembership.objects.get(user=user, city=city).role == 'admin'
        assert 'jan@example.com is admin of amsterdam' in out.getvalue()

    def test_updates_existing_membership(self, city, make_user, grant):
        user = make_user(email='jan@example.com')
        grant(user, city, 'viewer')

        call_command(
            'grant_city_access', '--email=jan@example.com', '--city=amsterdam', '--role=operator',
            stdout=StringIO(),
        )

        assert CityMembership.objects.get(user=user, city=city).role == 'operator'

    def test_malformed_slug(self, make_user):
        make_user(email='jan@example.com')

        with pytest.raises(CommandError):
            call_command('grant_city_access', '--email=jan@example.com', '--city=Amsterdam!')

    def test_unknown_city(self, make_user):
        make_user(email='jan@example.com')

        with pytest.raises(CommandError, match='City not found'):
            call_command('grant_city_access', '--email=jan@example.com', '--city=gotham')

    def test_unknown_user(self, city):
        with pytest.raises(CommandError, match='User not found'):
            call_command('grant_city_access', '--email=ghost@example.com', '--city=amsterdam')
