"""
Tests for the admin member management and superuser account endpoints.
"""
import uuid

import pytest
from rest_framework import status

from apps.rbac.models import AuditLog, CityMembership, UserProfile


@pytest.mark.django_db
class TestMemberList:
    """Test GET/POST /{locale}/admin/{city}/members/."""

    def test_list_members_of_city_only(self, city, other_city, member, make_user, grant, auth_client):
        admin = member('admin')
        member('operator')
        outsider = make_user(email='rotterdammer@example.com')
        grant(outsider, other_city, 'admin')

        response = auth_client(admin).get('/en/admin/amsterdam/members/')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['count'] == 2
        emails = {m['email'] for m in response.data['members']}
        assert emails == {'admin@example.com', 'operator@example.com'}

    def test_grant_membership(self, city, member, make_user, auth_client):
        admin = member('admin')
        make_user(email='new@example.com')

        response = auth_client(admin).post(
            '/en/admin/amsterdam/members/', {'email': 'New@Example.com', 'role': 'operator'}, format='json'
        )

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data['role'] == 'operator'
        assert response.data['granted_by'] == 'admin@example.com'
        membership = CityMembership.objects.get(user__email='new@example.com')
        assert membership.city == city
        assert AuditLog.objects.filter(action='membership_granted', user=admin).exists()

    def test_grant_unknown_email(self, city, member, auth_client):
        response = auth_client(member('admin')).post(
            '/en/admin/amsterdam/members/', {'email': 'ghost@example.com'}, format='json'
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data['error']['details'] == {'email': 'unknown'}

    def test_grant_superuser_role_rejected(self, city, member, make_user, auth_client):
        make_user(email='new@example.com')

        response = auth_client(member('admin')).post(
            '/en/admin/amsterdam/members/', {'email': 'new@example.com', 'role': 'superuser'}, format='json'
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_grant_goes_to_path_city_only(self, city, other_city, member, make_user, auth_client):
        make_user(email='new@example.com')

        auth_client(member('admin')).post(
            '/en/admin/amsterdam/members/',
            {'email': 'new@example.com', 'role': 'viewer', 'city': 'rotterdam'},
            format='json',
        )

        assert not CityMembership.objects.filter(city=other_city).exists()


@pytest.mark.django_db
class TestMemberDetail:

    def test_change_role(self, city, member, auth_client):
        admin = member('admin')
        viewer = member('viewer')

        response = auth_client(admin).patch(
            f'/en/admin/amsterdam/members/{viewer.id}/', {'role': 'operator'}, format='json'
        )

        assert response.status_code == status.HTTP_200_OK
        assert CityMembership.objects.get(user=viewer, city=city).role == 'operator'

    def test_change_role_of_non_member(self, city, other_city, member, make_user, grant, auth_client):
        outsider = make_user(email='rotterdammer@example.com')
        grant(outsider, other_city, 'viewer')

        response = auth_client(member('admin')).patch(
            f'/en/admin/amsterdam/members/{outsider.id}/', {'role': 'admin'}, format='json'
        )

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert not CityMembership.objects.filter(user=outsider, city=city).exists()

    def test_revoke(self, city, member, auth_client):
        admin = member('admin')
        operator = member('operator')

        response = auth_client(admin).delete(f'/en/admin/amsterdam/members/{operator.id}/')

        assert response.status_code == status.HTTP_204_NO_CONTENT
        assert not CityMembership.objects.filter(user=operator).exists()

    def test_revoked_member_loses_access(self, city, member, auth_client):
        admin = member('admin')
        operator = member('operator')
        operator_client = auth_client(operator)
        assert operator_client.get('/en/operator/amsterdam/').status_code == 200

        auth_client(admin).delete(f'/en/admin/amsterdam/members/{operator.id}/')

        assert operator_client.get('/en/operator/amsterdam/').status_code == 403

    def test_revoke_missing(self, city, member, auth_client):
        response = auth_client(member('admin')).delete(f'/en/admin/amsterdam/members/{uuid.uuid4()}/')

        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_invalid_user_id(self, city, member, auth_client):
        response = auth_client(member('admin')).delete('/en/admin/amsterdam/members/42/')

        assert response.status_code == status.HTTP_400_BAD_REQUEST


@pytest.mark.django_db
class TestAuditLogList:

    def test_lists_city_entries_only(self, city, other_city, member, make_user, superuser, auth_client):
        from apps.rbac.services import RBACService

        admin = member('admin')
        RBACService.grant_membership(city, make_user(email='a@example.com'), 'viewer', granted_by=admin)
        RBACService.grant_membership(other_city, make_user(email='b@example.com'), 'viewer')

        response = auth_client(admin).get('/en/admin/amsterdam/audit-logs/')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['count'] == 1
        assert response.data['results'][0]['action'] == 'membership_granted'
        assert response.data['results'][0]['user_email'] == 'admin@example.com'

    def test_filter_by_action(self, city, member, make_user, auth_client):
        from apps.rbac.services import RBACService

        admin = member('admin')
        jan = make_user(email='jan@example.com')
        RBACService.grant_membership(city, jan, 'viewer', granted_by=admin)
        RBACService.revoke_membership(city, jan, revoked_by=admin)

        response = auth_client(admin).get('/en/admin/amsterdam/audit-logs/', {'action': 'membership_revoked'})

        assert response.status_code == status.HTTP_200_OK
        assert response.data['count'] == 1
        assert response.data['results'][0]['action'] == 'membership_revoked'

    def test_unknown_action_filter_is_empty(self, city, member, auth_client):
        response = auth_client(member('admin')).get(
            '/en/admin/amsterdam/audit-logs/', {'action': 'nothing_like_this'}
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.data['count'] == 0


@pytest.mark.django_db
class TestAccounts:
    """Test the superuser account endpoints."""

    def test_list_users(self, superuser, make_user, auth_client):
        make_user(email='jan@example.com')

        response = auth_client(superuser).get('/en/superuser/users/')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['count'] == 2

    def test_change_global_role(self, superuser, make_user, auth_client):
        user = make_user(email='jan@example.com')

        response = auth_client(superuser).patch(
            f'/en/superuser/users/{user.id}/', {'role': 'superuser'}, format='json'
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.data['role'] == 'superuser'

    def test_deactivate(self, superuser, make_user, auth_client):
        user = make_user(email='jan@example.com')

        response = auth_client(superuser).patch(
            f'/en/superuser/users/{user.id}/', {'is_active': False}, format='json'
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.data['is_active'] is False
        assert not UserProfile.objects.get(user=user).is_active

    def test_cannot_change_self(self, superuser, auth_client):
        response = auth_client(superuser).patch(
            f'/en/superuser/users/{superuser.id}/', {'role': 'viewer'}, format='json'
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_empty_payload(self, superuser, make_user, auth_client):
        user = make_user(email='jan@example.com')

        response = auth_client(superuser).patch(f'/en/superuser/users/{user.id}/', {}, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_unknown_user(self, superuser, auth_client):
        response = auth_client(superuser).patch(
            f'/en/superuser/users/{uuid.uuid4()}/', {'role': 'admin'}, format='json'
        )

        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_non_superuser_forbidden(self, city, member, auth_client):
        response = auth_client(member('admin')).get('/en/superuser/users/')

        assert response.status_code == status.HTTP_403_FORBIDDEN
