"""
City-scoped data access.

A CityScope is the only handle through which views read and write
city-owned content. It is issued by the authorization gate after an allowed
decision and cannot be constructed directly, so holding one proves the
request was authorized for exactly that city.
"""
import logging
import uuid
from typing import Optional

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import IntegrityError, models, transaction

from apps.core.exceptions import NotFound, PermissionDeniedError, ValidationError
from apps.core.validators import validate_uuid
from apps.cities.models import CityOwnedModel

logger = logging.getLogger(__name__)

_ISSUE_TOKEN = object()


class CityScope:
    """
    Data accessor bound to one city.

    Attributes:
        city_id: UUID of the city every query is filtered by
        city_slug: slug of that city
        role: effective role of the decision (None for public access)
        read_only: write methods raise PermissionDeniedError when set
    """

    def __init__(self, token, city_id: uuid.UUID, city_slug: str,
                 role: Optional[str] = None, read_only: bool = True):
        if token is not _ISSUE_TOKEN:
            raise TypeError('CityScope is issued by the authorization gate only')
        self.city_id = city_id
        self.city_slug = city_slug
        self.role = role
        self.read_only = read_only

    def __repr__(self):
        mode = 'ro' if self.read_only else 'rw'
        return f"<CityScope {self.city_slug} role={self.role} {mode}>"

    def __eq__(self, other):
        if not isinstance(other, CityScope):
            return NotImplemented
        return (self.city_id, self.role, self.read_only) == (other.city_id, other.role, other.read_only)

    def __hash__(self):
        return hash((self.city_id, self.role, self.read_only))

    def queryset(self, model):
        """All rows of model belonging to this city."""
        _check_model(model)
        return model.objects.for_scope(self)

    def get(self, model, pk):
        """
        Fetch one row of this city.

        Raises:
            ValidationError: pk is not a UUID (no query is issued)
            NotFound: no such row in this city
        """
        pk = validate_uuid(pk)
        instance = self.queryset(model).filter(pk=pk).first()
        if instance is None:
            raise NotFound(f'{model.__name__} not found')
        return instance

    def create(self, model, **fields):
        """Create a row stamped with this city."""
        self._require_write()
        _check_model(model)
        self._reject_city_change(fields)

        instance = model(city_id=self.city_id, **fields)
        self._check_relations(instance)
        self._save(instance)

        logger.info(
            f"{model.__name__} created",
            extra={'city_slug': self.city_slug, 'target_id': str(instance.id)}
        )
        return instance

    def update(self, instance, **fields):
        """Update a row of this city. The city itself cannot be changed."""
        self._require_write()
        self._check_owned(instance)
        self._reject_city_change(fields)

        for name, value in fields.items():
            setattr(instance, name, value)
        self._check_relations(instance)
        self._save(instance)
        return instance

    def delete(self, instance):
        self._require_write()
        self._check_owned(instance)

        instance_id = instance.id
        instance.delete()
        logger.info(
            f"{instance.__class__.__name__} deleted",
            extra={'city_slug': self.city_slug, 'target_id': str(instance_id)}
        )

    @staticmethod
    def _save(instance):
        _check_unique(instance)
        try:
            with transaction.atomic():
                instance.save()
        except IntegrityError as e:
            logger.warning(
                f"{instance.__class__.__name__} rejected by the database",
                extra={'error': str(e)}
            )
            raise ValidationError(f'{instance.__class__.__name__} could not be saved')

    def _require_write(self):
        if self.read_only:
            raise PermissionDeniedError('Scope is read-only')

    def _check_owned(self, instance):
        _check_model(type(instance))
        if instance.city_id != self.city_id:
            # Same response as a missing row; other cities' rows are invisible.
            raise NotFound(f'{instance.__class__.__name__} not found')

    @staticmethod
    def _reject_city_change(fields):
        if 'city' in fields or 'city_id' in fields:
            raise ValidationError('City cannot be set or changed', details={'city': 'immutable'})

    def _check_relations(self, instance):
        for field in instance.city_owned_relations():
            related_id = getattr(instance, field.attname)
            if related_id is None:
                continue
            same_city = field.related_model.objects.filter(
                pk=related_id, city_id=self.city_id
            ).exists()
            if not same_city:
                raise ValidationError(
                    f'{field.name} does not belong to this city',
                    details={field.name: 'not found'}
                )


def _check_unique(instance):
    """
    Report a unique constraint the row would violate, naming its fields.

    Checked before saving so a duplicate is a 400 on the offending fields
    rather than an integrity error.
    """
    model = type(instance)
    for constraint in model._meta.constraints:
        if not isinstance(constraint, models.UniqueConstraint):
            continue
        try:
            constraint.validate(model, instance)
        except DjangoValidationError:
            fields = [name for name in constraint.fields if name != 'city']
            raise ValidationError(
                f'{model.__name__} already exists in this city',
                details={name: 'duplicate' for name in fields}
            )


def _check_model(model):
    if not (isinstance(model, type) and issubclass(model, CityOwnedModel)):
        raise TypeError(f'{model!r} is not city-owned content')


def _issue_scope(city, role=None, read_only=True) -> CityScope:
    """Issue a scope for an allowed decision. Called by the authorization gate."""
    return CityScope(_ISSUE_TOKEN, city.id, city.slug, role=role, read_only=read_only)
