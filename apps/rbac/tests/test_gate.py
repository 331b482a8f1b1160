"""
Tests for the authorization gate.

The gate runs against in-memory stores injected through its constructor, so
no database is involved.
"""
import uuid

import pytest
from unittest.mock import patch

from apps.core.exceptions import (
    AuthenticationError, CityNotFound, InactiveAccount, InsufficientRole, MalformedCredential,
    NoCityAccess, PermissionDeniedError, UpstreamFailure, ValidationError,
)
from apps.rbac.gate import AuthorizationGate, Decision, DenyReason, build_gate
from apps.rbac.identity import ANONYMOUS, Identity
from apps.rbac.roles import Action
from apps.rbac.stores import (
    CityRecord, CityStore, DatabaseCityStore, DatabaseMembershipStore, DatabaseProfileStore,
    MembershipRecord, MembershipStore, ProfileRecord, ProfileStore,
)


AMSTERDAM = CityRecord(id=uuid.uuid4(), slug='amsterdam', status='active')
ROTTERDAM = CityRecord(id=uuid.uuid4(), slug='rotterdam', status='active')
UTRECHT = CityRecord(id=uuid.uuid4(), slug='utrecht', status='draft')


class FakeResolver:
    """Treats the credential as the user id; 'tampered' raises."""

    def resolve(self, credential):
        if credential == 'tampered':
            raise MalformedCredential('bad signature', details={'error': 'InvalidSignatureError'})
        if not credential:
            return ANONYMOUS
        return Identity(user_id=credential)


class FakeProfileStore(ProfileStore):

    def __init__(self, profiles=None):
        self.profiles = dict(profiles or {})
        self.calls = []

    def get_profile(self, user_id):
        self.calls.append(user_id)
        return self.profiles.get(user_id)


class FakeMembershipStore(MembershipStore):

    def __init__(self, memberships=None):
        self.memberships = dict(memberships or {})
        self.calls = []

    def get_membership(self, user_id, city_id):
        self.calls.append((user_id, city_id))
        return self.memberships.get((user_id, city_id))


class FakeCityStore(CityStore):

    def __init__(self, cities=(AMSTERDAM, ROTTERDAM, UTRECHT)):
        self.cities = {city.slug: city for city in cities}
        self.calls = []

    def get_city(self, slug):
        self.calls.append(slug)
        return self.cities.get(slug)


class FailingMembershipStore(MembershipStore):

    def get_membership(self, user_id, city_id):
        raise UpstreamFailure('membership store unavailable', details={'store': 'membership'})


VIEWER = uuid.uuid4()
OPERATOR = uuid.uuid4()
ADMIN = uuid.uuid4()
SUPERUSER = uuid.uuid4()
INACTIVE = uuid.uuid4()
NO_PROFILE = uuid.uuid4()


@pytest.fixture
def profiles():
    return FakeProfileStore({
        VIEWER: ProfileRecord(role='viewer', is_active=True),
        OPERATOR: ProfileRecord(role='viewer', is_active=True),
        ADMIN: ProfileRecord(role='admin', is_active=True),
        SUPERUSER: ProfileRecord(role='superuser', is_active=True),
        INACTIVE: ProfileRecord(role='admin', is_active=False),
    })


@pytest.fixture
def memberships():
    return FakeMembershipStore({
        (VIEWER, AMSTERDAM.id): MembershipRecord(role='viewer'),
        (OPERATOR, AMSTERDAM.id): MembershipRecord(role='operator'),
        (ADMIN, AMSTERDAM.id): MembershipRecord(role='admin'),
        (INACTIVE, AMSTERDAM.id): MembershipRecord(role='admin'),
        (NO_PROFILE, AMSTERDAM.id): MembershipRecord(role='admin'),
    })


@pytest.fixture
def cities():
    return FakeCityStore()


@pytest.fixture
def gate(profiles, memberships, cities):
    return AuthorizationGate(
        identity_resolver=FakeResolver(),
        profile_store=profiles,
        membership_store=memberships,
        city_store=cities,
    )


class TestUnknownAccounts:
    """Accounts without an active profile are denied everything."""

    @pytest.mark.parametrize('slug', ['amsterdam', 'rotterdam'])
    @pytest.mark.parametrize('action', [
        Action.VIEW_CONTENT, Action.MANAGE_CONTENT, Action.DELETE_CONTENT, Action.MANAGE_MEMBERS,
    ])
    def test_no_profile_is_denied(self, gate, slug, action):
        decision = gate.authorize(NO_PROFILE, slug, action)

        assert not decision.allowed
        assert decision.reason == DenyReason.INACTIVE_OR_UNKNOWN_ACCOUNT
        assert decision.scope is None

    def test_membership_does_not_rescue_missing_profile(self, gate, memberships):
        gate.authorize(NO_PROFILE, 'amsterdam', Action.VIEW_CONTENT)

        assert memberships.calls == []

    def test_inactive_profile_is_denied(self, gate):
        decision = gate.authorize(INACTIVE, 'amsterdam', Action.VIEW_CONTENT)

        assert decision.reason == DenyReason.INACTIVE_OR_UNKNOWN_ACCOUNT


class TestSuperuser:

    @pytest.mark.parametrize('slug', ['amsterdam', 'rotterdam', 'utrecht'])
    @pytest.mark.parametrize('action', [
        Action.VIEW_CONTENT, Action.MANAGE_CONTENT, Action.DELETE_CONTENT,
        Action.MANAGE_MEMBERS, Action.MANAGE_SETTINGS,
    ])
    def test_allowed_everywhere_without_membership(self, gate, memberships, slug, action):
        decision = gate.authorize(SUPERUSER, slug, action)

        assert decision.allowed
        assert decision.role == 'superuser'
        assert decision.scope.city_slug == slug
        assert not decision.scope.read_only
        assert memberships.calls == []

    @pytest.mark.parametrize('action', [Action.CREATE_CITY, Action.MANAGE_ACCOUNTS])
    def test_global_actions(self, gate, action):
        decision = gate.authorize_global(SUPERUSER, action)

        assert decision.allowed
        assert decision.city is None
        assert decision.scope is None


class TestCityMembership:

    def test_admin_of_one_city_has_no_access_to_another(self, gate):
        assert gate.authorize(ADMIN, 'amsterdam', Action.MANAGE_MEMBERS).allowed

        decision = gate.authorize(ADMIN, 'rotterdam', Action.VIEW_CONTENT)

        assert not decision.allowed
        assert decision.reason == DenyReason.NO_CITY_ACCESS
        assert decision.scope is None

    def test_global_admin_role_does_not_grant_city_access(self, gate):
        decision = gate.authorize(ADMIN, 'rotterdam', Action.MANAGE_CONTENT)

        assert decision.reason == DenyReason.NO_CITY_ACCESS

    def test_membership_role_is_effective_role(self, gate):
        decision = gate.authorize(OPERATOR, 'amsterdam', Action.MANAGE_CONTENT)

        assert decision.allowed
        assert decision.role == 'operator'
        assert decision.scope.city_id == AMSTERDAM.id

    @pytest.mark.parametrize('user_id,action,allowed', [
        (VIEWER, Action.VIEW_CONTENT, True),
        (VIEWER, Action.MANAGE_CONTENT, False),
        (OPERATOR, Action.MANAGE_CONTENT, True),
        (OPERATOR, Action.DELETE_CONTENT, False),
        (OPERATOR, Action.MANAGE_MEMBERS, False),
        (ADMIN, Action.DELETE_CONTENT, True),
        (ADMIN, Action.MANAGE_SETTINGS, True),
    ])
    def test_role_ordering(self, gate, user_id, action, allowed):
        decision = gate.authorize(user_id, 'amsterdam', action)

        assert decision.allowed is allowed
        if not allowed:
            assert decision.reason == DenyReason.INSUFFICIENT_ROLE

    def test_viewer_scope_is_read_only(self, gate):
        assert gate.authorize(VIEWER, 'amsterdam', Action.VIEW_CONTENT).scope.read_only
        assert not gate.authorize(OPERATOR, 'amsterdam', Action.VIEW_CONTENT).scope.read_only

    def test_insufficient_role_keeps_role_on_decision(self, gate):
        decision = gate.authorize(VIEWER, 'amsterdam', Action.MANAGE_CONTENT)

        assert decision.role == 'viewer'
        assert decision.scope is None

    @pytest.mark.parametrize('user_id', [VIEWER, OPERATOR, ADMIN])
    def test_city_admins_cannot_run_global_actions(self, gate, user_id):
        decision = gate.authorize_global(user_id, Action.CREATE_CITY)

        assert not decision.allowed
        assert decision.reason == DenyReason.INSUFFICIENT_ROLE

    def test_global_actions_need_no_city(self, gate):
        with pytest.raises(ValueError):
            gate.authorize_global(SUPERUSER, Action.VIEW_CONTENT)


class TestIdempotence:

    @pytest.mark.parametrize('user_id,slug,action', [
        (VIEWER, 'amsterdam', Action.VIEW_CONTENT),
        (VIEWER, 'amsterdam', Action.MANAGE_CONTENT),
        (ADMIN, 'rotterdam', Action.VIEW_CONTENT),
        (SUPERUSER, 'rotterdam', Action.MANAGE_MEMBERS),
        (NO_PROFILE, 'amsterdam', Action.VIEW_CONTENT),
        (None, 'amsterdam', Action.VIEW_CONTENT),
        (None, 'amsterdam', Action.VIEW_MAP),
    ])
    def test_same_inputs_same_decision(self, gate, user_id, slug, action):
        first = gate.authorize(user_id, slug, action)
        second = gate.authorize(user_id, slug, action)

        assert first == second
        assert first.scope == second.scope


class TestFreshReads:

    def test_revoked_membership_denies_next_call(self, gate, memberships):
        assert gate.authorize(OPERATOR, 'amsterdam', Action.MANAGE_CONTENT).allowed

        del memberships.memberships[(OPERATOR, AMSTERDAM.id)]

        decision = gate.authorize(OPERATOR, 'amsterdam', Action.MANAGE_CONTENT)
        assert decision.reason == DenyReason.NO_CITY_ACCESS

    def test_deactivated_profile_denies_next_call(self, gate, profiles):
        assert gate.authorize(ADMIN, 'amsterdam', Action.VIEW_CONTENT).allowed

        profiles.profiles[ADMIN] = ProfileRecord(role='admin', is_active=False)

        decision = gate.authorize(ADMIN, 'amsterdam', Action.VIEW_CONTENT)
        assert decision.reason == DenyReason.INACTIVE_OR_UNKNOWN_ACCOUNT

    def test_every_call_reads_the_stores(self, gate, profiles, memberships):
        gate.authorize(VIEWER, 'amsterdam', Action.VIEW_CONTENT)
        gate.authorize(VIEWER, 'amsterdam', Action.VIEW_CONTENT)

        assert len(profiles.calls) == 2
        assert len(memberships.calls) == 2


class TestUnauthenticated:

    @pytest.mark.parametrize('credential', [None, ''])
    def test_anonymous(self, gate, profiles, credential):
        decision = gate.authorize(credential, 'amsterdam', Action.VIEW_CONTENT)

        assert not decision.allowed
        assert decision.reason == DenyReason.UNAUTHENTICATED
        assert decision.identity is ANONYMOUS
        assert profiles.calls == []

    def test_tampered_credential_is_logged_and_unauthenticated(self, gate):
        with patch('apps.rbac.gate.SecurityLogger.log_tampered_credential') as log:
            decision = gate.authorize('tampered', 'amsterdam', Action.VIEW_CONTENT)

        assert decision.reason == DenyReason.UNAUTHENTICATED
        log.assert_called_once()
        assert log.call_args.kwargs['detail'] == 'InvalidSignatureError'

    def test_unauthenticated_checked_before_city(self, gate, cities):
        decision = gate.authorize(None, 'gotham', Action.VIEW_CONTENT)

        assert decision.reason == DenyReason.UNAUTHENTICATED
        assert cities.calls == []


class TestCityResolution:

    def test_unknown_city(self, gate):
        with pytest.raises(CityNotFound):
            gate.authorize(VIEWER, 'gotham', Action.VIEW_CONTENT)

    def test_malformed_slug_never_reaches_stores(self, gate, profiles, memberships, cities):
        with pytest.raises(ValidationError):
            gate.authorize(ADMIN, 'Amsterdam!', Action.VIEW_CONTENT)

        assert profiles.calls == []
        assert memberships.calls == []
        assert cities.calls == []


class TestPublicMap:

    def test_anonymous_allowed_on_active_city(self, gate, profiles):
        decision = gate.authorize(None, 'amsterdam', Action.VIEW_MAP)

        assert decision.allowed
        assert decision.role is None
        assert decision.scope.read_only
        assert profiles.calls == []

    def test_draft_city_is_not_found(self, gate):
        with pytest.raises(CityNotFound):
            gate.authorize(None, 'utrecht', Action.VIEW_MAP)


class TestUpstreamFailure:

    def test_store_failure_propagates(self, profiles, cities):
        gate = AuthorizationGate(
            identity_resolver=FakeResolver(),
            profile_store=profiles,
            membership_store=FailingMembershipStore(),
            city_store=cities,
        )

        with patch('apps.rbac.gate.SecurityLogger.log_upstream_failure') as log:
            with pytest.raises(UpstreamFailure):
                gate.authorize(VIEWER, 'amsterdam', Action.VIEW_CONTENT)

        assert log.call_args.kwargs['store'] == 'membership'


class TestAuthenticate:

    def test_returns_global_role(self, gate):
        decision = gate.authenticate(ADMIN)

        assert decision.allowed
        assert decision.role == 'admin'
        assert decision.scope is None

    def test_unknown_account(self, gate):
        assert gate.authenticate(NO_PROFILE).reason == DenyReason.INACTIVE_OR_UNKNOWN_ACCOUNT

    def test_anonymous(self, gate):
        assert gate.authenticate(None).reason == DenyReason.UNAUTHENTICATED


class TestDecision:

    def test_deny(self):
        decision = Decision.deny(DenyReason.NO_CITY_ACCESS)

        assert not decision.allowed
        assert decision.identity is ANONYMOUS
        assert decision.scope is None

    def test_deny_reason_values(self):
        assert {reason.value for reason in DenyReason} == {
            'unauthenticated', 'inactive_or_unknown_account', 'no_city_access', 'insufficient_role',
        }

    @pytest.mark.parametrize('reason,error', [
        (DenyReason.UNAUTHENTICATED, AuthenticationError),
        (DenyReason.INACTIVE_OR_UNKNOWN_ACCOUNT, InactiveAccount),
        (DenyReason.NO_CITY_ACCESS, NoCityAccess),
        (DenyReason.INSUFFICIENT_ROLE, InsufficientRole),
    ])
    def test_error_matches_reason(self, reason, error):
        assert Decision.deny(reason).error is error

    def test_allowed_decision_has_no_error(self):
        assert Decision(allowed=True).error is None

    def test_city_errors_share_the_generic_body(self):
        for error in (InactiveAccount, NoCityAccess, InsufficientRole):
            assert error.code == 'FORBIDDEN'
            assert error.public_message == PermissionDeniedError.public_message


class TestBuildGate:

    def test_uses_configured_collaborators(self):
        gate = build_gate()

        assert isinstance(gate.profile_store, DatabaseProfileStore)
        assert isinstance(gate.membership_store, DatabaseMembershipStore)
        assert isinstance(gate.city_store, DatabaseCityStore)

    def test_instances_are_per_call(self):
        assert build_gate().membership_store is not build_gate().membership_store

    def test_collaborators_are_configurable(self, settings):
        settings.LANGMAP_MEMBERSHIP_STORE = 'apps.rbac.stores.DatabaseProfileStore'

        assert isinstance(build_gate().membership_store, DatabaseProfileStore)
