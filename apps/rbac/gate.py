"""
Authorization gate.

Single decision point combining identity, global role, city membership and
the action's minimum role. Every collaborator is injected so the gate can be
exercised with in-memory stores; build_gate() wires the configured defaults.

Decision order for a city-scoped action:
    0. public actions: only the city must exist and be active
    1. identity       -> Deny(unauthenticated)
    2. profile        -> Deny(inactive_or_unknown_account)
    3. city           -> CityNotFound
    4. superuser      -> Allow
    5. membership     -> Deny(no_city_access)
    6. role ordering  -> Deny(insufficient_role) or Allow
"""
import enum
import logging
from dataclasses import dataclass, field
from typing import Optional

from django.conf import settings
from django.utils.module_loading import import_string

from apps.core.exceptions import (
    AuthenticationError, CityNotFound, InactiveAccount, InsufficientRole, MalformedCredential,
    NoCityAccess, UpstreamFailure,
)
from apps.core.logging import SecurityLogger
from apps.core.validators import validate_city_slug
from apps.rbac.identity import ANONYMOUS, IdentityResolver
from apps.rbac.roles import (
    Action, Role, GLOBAL_ACTIONS, PUBLIC_ACTIONS, is_superuser, role_satisfies,
)
from apps.rbac.stores import (
    CityRecord, DatabaseCityStore, DatabaseMembershipStore, DatabaseProfileStore,
)

logger = logging.getLogger(__name__)


class DenyReason(str, enum.Enum):
    UNAUTHENTICATED = 'unauthenticated'
    INACTIVE_OR_UNKNOWN_ACCOUNT = 'inactive_or_unknown_account'
    NO_CITY_ACCESS = 'no_city_access'
    INSUFFICIENT_ROLE = 'insufficient_role'


DENY_ERRORS = {
    DenyReason.UNAUTHENTICATED: AuthenticationError,
    DenyReason.INACTIVE_OR_UNKNOWN_ACCOUNT: InactiveAccount,
    DenyReason.NO_CITY_ACCESS: NoCityAccess,
    DenyReason.INSUFFICIENT_ROLE: InsufficientRole,
}


@dataclass(frozen=True)
class Decision:
    """
    Outcome of an authorization check.

    ``role`` is the effective role the decision was made with (the
    membership role, or ``superuser``). ``scope`` is only set when access to
    a city was allowed.
    """

    allowed: bool
    reason: Optional[DenyReason] = None
    identity: object = ANONYMOUS
    role: Optional[str] = None
    city: Optional[CityRecord] = None
    scope: object = field(default=None, compare=False, repr=False)

    @classmethod
    def deny(cls, reason, identity=ANONYMOUS, role=None, city=None):
        return cls(allowed=False, reason=reason, identity=identity, role=role, city=city)

    @property
    def error(self):
        """Exception class for the deny reason; None when allowed."""
        return DENY_ERRORS.get(self.reason)


class AuthorizationGate:
    """
    Decide whether a credential may perform an action on a city.

    Args:
        identity_resolver: object with ``resolve(credential)``
        profile_store: ProfileStore
        membership_store: MembershipStore
        city_store: CityStore
        log_context: request metadata (path, ip_address, request_id)
            added to security events
    """

    def __init__(self, identity_resolver=None, profile_store=None,
                 membership_store=None, city_store=None, log_context=None):
        self.identity_resolver = identity_resolver or IdentityResolver()
        self.profile_store = profile_store or DatabaseProfileStore()
        self.membership_store = membership_store or DatabaseMembershipStore()
        self.city_store = city_store or DatabaseCityStore()
        self.log_context = log_context or {}

    def authorize(self, credential, city_slug: str, action: str) -> Decision:
        action = Action(action)
        city_slug = validate_city_slug(city_slug)

        if action in PUBLIC_ACTIONS:
            city = self._resolve_city(city_slug)
            if city.status != 'active':
                raise CityNotFound(f"City '{city_slug}' is not published")
            return self._allow(ANONYMOUS, None, city, read_only=True)

        identity = self._resolve_identity(credential)
        if identity.is_anonymous:
            return self._deny(DenyReason.UNAUTHENTICATED, action, city_slug)

        profile = self._call(self.profile_store.get_profile, identity.user_id, store='profile')
        if profile is None or not profile.is_active:
            return self._deny(DenyReason.INACTIVE_OR_UNKNOWN_ACCOUNT, action, city_slug, identity)

        city = self._resolve_city(city_slug)

        if is_superuser(profile.role):
            return self._allow(identity, Role.SUPERUSER.value, city)

        membership = self._call(
            self.membership_store.get_membership, identity.user_id, city.id, store='membership'
        )
        if membership is None:
            return self._deny(DenyReason.NO_CITY_ACCESS, action, city_slug, identity, city=city)

        if not role_satisfies(membership.role, action):
            return self._deny(
                DenyReason.INSUFFICIENT_ROLE, action, city_slug, identity,
                role=membership.role, city=city,
            )

        return self._allow(identity, membership.role, city)

    def authenticate(self, credential) -> Decision:
        """
        Identity and profile checks only, for endpoints about the caller
        themselves. The decision's role is the global role.
        """
        identity = self._resolve_identity(credential)
        if identity.is_anonymous:
            return Decision.deny(DenyReason.UNAUTHENTICATED)

        profile = self._call(self.profile_store.get_profile, identity.user_id, store='profile')
        if profile is None or not profile.is_active:
            return Decision.deny(DenyReason.INACTIVE_OR_UNKNOWN_ACCOUNT, identity=identity)

        return Decision(allowed=True, identity=identity, role=profile.role)

    def authorize_global(self, credential, action: str) -> Decision:
        """Authorize a city-less action. Only superusers hold these."""
        action = Action(action)
        if action not in GLOBAL_ACTIONS:
            raise ValueError(f"Action '{action.value}' requires a city")

        identity = self._resolve_identity(credential)
        if identity.is_anonymous:
            return self._deny(DenyReason.UNAUTHENTICATED, action)

        profile = self._call(self.profile_store.get_profile, identity.user_id, store='profile')
        if profile is None or not profile.is_active:
            return self._deny(DenyReason.INACTIVE_OR_UNKNOWN_ACCOUNT, action, identity=identity)

        if not is_superuser(profile.role):
            return self._deny(DenyReason.INSUFFICIENT_ROLE, action, identity=identity, role=profile.role)

        return Decision(allowed=True, identity=identity, role=Role.SUPERUSER.value)

    def _resolve_identity(self, credential):
        try:
            return self.identity_resolver.resolve(credential)
        except MalformedCredential as e:
            SecurityLogger.log_tampered_credential(
                detail=e.details.get('error', e.message),
                ip_address=self.log_context.get('ip_address'),
                path=self.log_context.get('path'),
                request_id=self.log_context.get('request_id'),
            )
            return ANONYMOUS

    def _resolve_city(self, city_slug):
        city = self._call(self.city_store.get_city, city_slug, store='city')
        if city is None:
            raise CityNotFound(f"City '{city_slug}' not found")
        return city

    def _call(self, lookup, *args, store):
        try:
            return lookup(*args)
        except UpstreamFailure as e:
            SecurityLogger.log_upstream_failure(
                store=store,
                error=e.message,
                request_id=self.log_context.get('request_id'),
            )
            raise

    def _allow(self, identity, role, city, read_only=None):
        from apps.cities.scoping import _issue_scope

        if read_only is None:
            read_only = not role_satisfies(role, Action.MANAGE_CONTENT)
        scope = _issue_scope(city=city, role=role, read_only=read_only)
        return Decision(allowed=True, identity=identity, role=role, city=city, scope=scope)

    def _deny(self, reason, action, city_slug=None, identity=ANONYMOUS, role=None, city=None):
        SecurityLogger.log_access_denied(
            reason=reason.value,
            action=action.value,
            user_id=str(identity.user_id) if identity.user_id else None,
            city_slug=city_slug,
            path=self.log_context.get('path'),
            ip_address=self.log_context.get('ip_address'),
            request_id=self.log_context.get('request_id'),
        )
        return Decision.deny(reason, identity=identity, role=role, city=city)


def build_gate(request=None) -> AuthorizationGate:
    """
    Build a gate from the configured collaborators.

    Collaborators are instantiated per call; nothing is shared between
    requests.
    """
    log_context = {}
    if request is not None:
        log_context = {
            'path': request.path,
            'ip_address': request.META.get('REMOTE_ADDR'),
            'request_id': getattr(request, 'request_id', None),
        }

    return AuthorizationGate(
        identity_resolver=import_string(settings.LANGMAP_IDENTITY_RESOLVER)(),
        profile_store=import_string(settings.LANGMAP_PROFILE_STORE)(),
        membership_store=import_string(settings.LANGMAP_MEMBERSHIP_STORE)(),
        city_store=import_string(settings.LANGMAP_CITY_STORE)(),
        log_context=log_context,
    )
