"""
Role, membership and city lookups used by the authorization gate.

Every call is a fresh read from the database: there is no cache of any
kind, so a committed role or membership change is visible to the very next
lookup. A database error is never interpreted as "no access"; it surfaces as
UpstreamFailure so the caller fails closed with a distinct error.
"""
import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from django.db import DatabaseError

from apps.core.exceptions import UpstreamFailure
from apps.rbac.models import UserProfile, CityMembership

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProfileRecord:
    role: str
    is_active: bool


@dataclass(frozen=True)
class MembershipRecord:
    role: str


@dataclass(frozen=True)
class CityRecord:
    id: uuid.UUID
    slug: str
    status: str


class ProfileStore(ABC):
    """Looks up the global role and activation flag of a user."""

    @abstractmethod
    def get_profile(self, user_id) -> Optional[ProfileRecord]:
        """Return the profile for user_id, or None when no profile row exists."""


class MembershipStore(ABC):
    """Looks up the per-city role of a user."""

    @abstractmethod
    def get_membership(self, user_id, city_id) -> Optional[MembershipRecord]:
        """Return the membership for (user_id, city_id), or None."""


class CityStore(ABC):
    """Resolves a city slug to a city."""

    @abstractmethod
    def get_city(self, slug: str) -> Optional[CityRecord]:
        """Return the city with this slug, or None."""


def _read(store: str, query):
    try:
        return query()
    except DatabaseError as e:
        logger.error(
            f"{store} store read failed",
            extra={'store': store, 'error': str(e)},
            exc_info=True,
        )
        raise UpstreamFailure(f'{store} store unavailable', details={'store': store})


class DatabaseProfileStore(ProfileStore):

    def get_profile(self, user_id) -> Optional[ProfileRecord]:
        row = _read(
            'profile',
            lambda: UserProfile.objects.filter(user_id=user_id).values('role', 'is_active').first(),
        )
        if row is None:
            return None
        return ProfileRecord(role=row['role'], is_active=row['is_active'])


class DatabaseMembershipStore(MembershipStore):

    def get_membership(self, user_id, city_id) -> Optional[MembershipRecord]:
        row = _read(
            'membership',
            lambda: CityMembership.objects.filter(
                user_id=user_id, city_id=city_id
            ).values('role').first(),
        )
        if row is None:
            return None
        return MembershipRecord(role=row['role'])


class DatabaseCityStore(CityStore):

    def get_city(self, slug: str) -> Optional[CityRecord]:
        from apps.cities.models import City

        row = _read(
            'city',
            lambda: City.objects.filter(slug=slug).values('id', 'slug', 'status').first(),
        )
        if row is None:
            return None
        return CityRecord(id=row['id'], slug=row['slug'], status=row['status'])
