"""
Tests for the area landing pages that login sends users to.
"""
import pytest
from rest_framework import status
from rest_framework.test import APIClient


@pytest.mark.django_db
class TestOperatorLanding:
    """Test GET /{locale}/operator/."""

    def test_lists_own_memberships(self, city, other_city, draft_city, make_user, grant, auth_client):
        user = make_user(email='jan@example.com')
        grant(user, city, 'operator')
        grant(user, draft_city, 'viewer')

        response = auth_client(user).get('/nl/operator/')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['count'] == 2
        assert [(c['slug'], c['role']) for c in response.data['cities']] == [
            ('amsterdam', 'operator'), ('utrecht', 'viewer'),
        ]
        assert response.data['cities'][0]['dashboard'] == '/nl/operator/amsterdam/'

    def test_no_memberships(self, city, make_user, auth_client):
        response = auth_client(make_user(email='jan@example.com')).get('/en/operator/')

        assert response.status_code == status.HTTP_200_OK
        assert response.data == {'count': 0, 'cities': []}

    def test_superuser_sees_every_city(self, city, other_city, superuser, auth_client):
        response = auth_client(superuser).get('/en/operator/')

        assert {(c['slug'], c['role']) for c in response.data['cities']} == {
            ('amsterdam', 'superuser'), ('rotterdam', 'superuser'),
        }

    def test_localized_names(self, city, member, auth_client):
        response = auth_client(member('viewer')).get('/fr/operator/')

        assert response.data['cities'][0]['name'] == 'Amsterdam'

    def test_anonymous_redirected_to_login(self, db):
        response = APIClient().get('/en/operator/')

        assert response.status_code == status.HTTP_302_FOUND
        assert response['Location'] == '/en/login?next=%2Fen%2Foperator%2F'

    def test_inactive_account_forbidden(self, city, make_user, grant, auth_client):
        user = make_user(email='jan@example.com', is_active=False)
        grant(user, city, 'operator')

        response = auth_client(user).get('/en/operator/')

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.json()['error']['code'] == 'FORBIDDEN'

    def test_unknown_locale(self, city, member, auth_client):
        response = auth_client(member('viewer')).get('/de/operator/')

        assert response.status_code == status.HTTP_404_NOT_FOUND


@pytest.mark.django_db
class TestAdminLanding:
    """Test GET /{locale}/admin/."""

    def test_lists_administered_cities_only(self, city, other_city, make_user, grant, auth_client):
        user = make_user(email='jan@example.com', role='admin')
        grant(user, city, 'admin')
        grant(user, other_city, 'operator')

        response = auth_client(user).get('/en/admin/')

        assert response.status_code == status.HTTP_200_OK
        assert [c['slug'] for c in response.data['cities']] == ['amsterdam']
        assert response.data['cities'][0]['dashboard'] == '/en/admin/amsterdam/members/'

    def test_superuser_sees_every_city(self, city, other_city, superuser, auth_client):
        response = auth_client(superuser).get('/en/admin/')

        assert response.data['count'] == 2


@pytest.mark.django_db
class TestSuperuserLanding:
    """Test GET /{locale}/superuser/."""

    def test_counts(self, city, draft_city, superuser, make_user, auth_client):
        make_user(email='gone@example.com', is_active=False)

        response = auth_client(superuser).get('/en/superuser/')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['cities'] == 2
        assert response.data['active_cities'] == 1
        assert response.data['users'] == 2
        assert response.data['inactive_users'] == 1
        assert response.data['links']['users'] == '/en/superuser/users/'

    def test_city_admin_forbidden(self, city, member, auth_client):
        response = auth_client(member('admin')).get('/en/superuser/')

        assert response.status_code == status.HTTP_403_FORBIDDEN
