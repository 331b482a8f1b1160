"""
City services.

Implements:
- CityService: city creation (superuser only) and settings updates (city admins)
- ContentService: content writes together with their per-locale translations
  and, for languages, their taxonomy values
"""
import logging
from collections import Counter
from typing import Dict, List, Optional

from django.db import transaction

from apps.core.exceptions import ValidationError
from apps.cities.models import City, CityTranslation, Language, TaxonomyType, TaxonomyValue
from apps.rbac.models import AuditLog

logger = logging.getLogger(__name__)


class CityService:
    """Service for city lifecycle operations."""

    @classmethod
    @transaction.atomic
    def create_city(cls, slug: str, names: Dict[str, str], center_lat: float, center_lng: float,
                    country: str = '', default_zoom: int = 12, status: str = 'draft',
                    descriptions: Optional[Dict[str, str]] = None,
                    created_by=None, request=None) -> City:
        """
        Create a city with one translation row per named locale.

        Args:
            slug: validated city slug
            names: locale -> city name
            descriptions: locale -> description (optional)
            created_by: User performing the action
            request: Django request (for audit metadata)
        """
        descriptions = descriptions or {}
        city = City.objects.create(
            slug=slug,
            country=country,
            center_lat=center_lat,
            center_lng=center_lng,
            default_zoom=default_zoom,
            status=status,
        )
        CityTranslation.objects.bulk_create([
            CityTranslation(
                city=city,
                locale_code=locale,
                name=name,
                description=descriptions.get(locale, ''),
            )
            for locale, name in names.items()
        ])

        AuditLog.log_action(
            action='city_created',
            user=created_by,
            city=city,
            target_type='City',
            target_id=city.id,
            diff={'slug': slug, 'status': status},
            request=request,
        )
        logger.info(f"City created: {slug}", extra={'city_slug': slug})
        return city

    @classmethod
    @transaction.atomic
    def update_settings(cls, city: City, changes: dict, updated_by=None, request=None) -> City:
        """
        Apply a partial settings update to a city.

        Names and descriptions are merged per locale. A description can only
        be added for a locale that already has a name or gets one in the
        same update.

        Raises:
            ValidationError: description for a locale without a name
        """
        changes = dict(changes)
        names = changes.pop('names', None) or {}
        descriptions = changes.pop('descriptions', None) or {}

        diff = {}
        for field, value in changes.items():
            before = getattr(city, field)
            if before != value:
                diff[field] = {'before': before, 'after': value}
                setattr(city, field, value)
        if diff:
            city.save(update_fields=[*diff, 'updated_at'])

        translations = {t.locale_code: t for t in CityTranslation.objects.filter(city=city)}
        for locale in sorted(set(names) | set(descriptions)):
            translation = translations.get(locale)
            if translation is None:
                if locale not in names:
                    raise ValidationError(
                        f"Add a {locale} name before its description",
                        details={'descriptions': locale}
                    )
                translation = CityTranslation(city=city, locale_code=locale)
            if locale in names:
                translation.name = names[locale]
            if locale in descriptions:
                translation.description = descriptions[locale]
            translation.save()

        if names:
            diff['names'] = sorted(names)
        if descriptions:
            diff['descriptions'] = sorted(descriptions)

        if diff:
            AuditLog.log_action(
                action='city_settings_updated',
                user=updated_by,
                city=city,
                target_type='City',
                target_id=city.id,
                diff=diff,
                request=request,
            )
        return city


class ContentService:
    """
    Writes of city-owned content through a CityScope.

    Models declaring ``translated_fields`` (payload key -> translation
    column) get their per-locale rows written in the same transaction.
    Locales missing from the payload keep their existing translation.
    """

    @classmethod
    @transaction.atomic
    def save(cls, scope, model, data: dict, instance=None):
        data = dict(data)
        translated = {
            column: data.pop(key)
            for key, column in getattr(model, 'translated_fields', {}).items()
            if key in data
        }
        taxonomy_value_ids = data.pop('taxonomy_value_ids', None)

        if instance is None:
            instance = scope.create(model, **data)
            created = True
        else:
            instance = scope.update(instance, **data)
            created = False

        cls._save_translations(instance, translated)
        if model is Language and (created or taxonomy_value_ids is not None):
            cls._assign_taxonomy_values(scope, instance, taxonomy_value_ids or [])
        return instance

    @staticmethod
    def _save_translations(instance, translated):
        rows: Dict[str, dict] = {}
        for column, values in translated.items():
            for locale, value in (values or {}).items():
                rows.setdefault(locale, {})[column] = value
        if not rows:
            return

        descriptor = type(instance).translations
        translation_model = descriptor.rel.related_model
        owner = descriptor.field.name
        for locale, defaults in rows.items():
            translation_model.objects.update_or_create(
                **{owner: instance},
                locale_code=locale,
                defaults=defaults,
            )

    @staticmethod
    def _assign_taxonomy_values(scope, language: Language, value_ids: List):
        """
        Replace the taxonomy values of a language.

        Raises:
            ValidationError: a value of another city, several values of a
                single-value type, or a required type left without a value
        """
        value_ids = set(value_ids)
        values = list(
            scope.queryset(TaxonomyValue).filter(pk__in=value_ids).select_related('taxonomy_type')
        )
        if len(values) != len(value_ids):
            raise ValidationError(
                'taxonomy value does not belong to this city',
                details={'taxonomy_value_ids': 'not found'}
            )

        per_type = Counter(value.taxonomy_type for value in values)
        for taxonomy_type, count in per_type.items():
            if count > 1 and not taxonomy_type.allow_multiple:
                raise ValidationError(
                    f"Only one value of '{taxonomy_type.slug}' can be assigned",
                    details={'taxonomy_value_ids': taxonomy_type.slug}
                )

        missing = scope.queryset(TaxonomyType).filter(is_required=True).exclude(
            pk__in=[t.pk for t in per_type]
        ).values_list('slug', flat=True)
        missing = sorted(missing)
        if missing:
            raise ValidationError(
                f"A value is required for: {', '.join(missing)}",
                details={'taxonomy_value_ids': missing}
            )

        language.taxonomy_values.set(values)

