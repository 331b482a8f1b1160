"""
Input validation for path parameters and request payloads.

Every identifier that comes from a URL or request body passes through
these checks before it is used in a query.
"""
import re
import uuid
from typing import Optional

from apps.core.exceptions import ValidationError
from apps.core.locales import SUPPORTED_LOCALES


CITY_SLUG_PATTERN = re.compile(r'[a-z0-9-]+')
CITY_SLUG_MIN_LENGTH = 2
CITY_SLUG_MAX_LENGTH = 50

ISO_639_3_PATTERN = re.compile(r'[a-z]{3}')

TAXONOMY_SLUG_PATTERN = re.compile(r'[a-z0-9_-]+')
TAXONOMY_SLUG_MAX_LENGTH = 100


def validate_city_slug(slug) -> str:
    """
    Validate city slug format.

    City slugs contain only lowercase letters, numbers and hyphens and are
    2-50 characters long. Uppercase letters or symbols (``Amsterdam!``) are
    rejected rather than normalized.

    Raises:
        ValidationError: If the slug is malformed
    """
    if not slug or not isinstance(slug, str):
        raise ValidationError('City slug is required')

    if not CITY_SLUG_PATTERN.fullmatch(slug):
        raise ValidationError(
            'City slug must contain only lowercase letters, numbers, and hyphens',
            details={'city_slug': slug[:CITY_SLUG_MAX_LENGTH]}
        )

    if len(slug) < CITY_SLUG_MIN_LENGTH:
        raise ValidationError(f'City slug must be at least {CITY_SLUG_MIN_LENGTH} characters long')

    if len(slug) > CITY_SLUG_MAX_LENGTH:
        raise ValidationError(f'City slug must be no more than {CITY_SLUG_MAX_LENGTH} characters long')

    return slug


def validate_locale(locale) -> str:
    """Validate that locale is one of the supported locale codes."""
    if locale not in SUPPORTED_LOCALES:
        raise ValidationError('Unsupported locale', details={'locale': str(locale)[:10]})
    return locale


def validate_uuid(value, field: str = 'id') -> uuid.UUID:
    """
    Parse a UUID identifier.

    Raises:
        ValidationError: If value is not a canonical UUID
    """
    if isinstance(value, uuid.UUID):
        return value

    if not value or not isinstance(value, str):
        raise ValidationError(f'{field} is required')

    try:
        return uuid.UUID(value.strip())
    except ValueError:
        raise ValidationError(f'Invalid {field}', details={field: 'must be a UUID'})


def validate_iso_639_3(code: Optional[str]) -> Optional[str]:
    """Validate an optional ISO 639-3 language code (three lowercase letters)."""
    if code in (None, ''):
        return None

    if not ISO_639_3_PATTERN.fullmatch(code):
        raise ValidationError(
            'ISO 639-3 code must be exactly three lowercase letters',
            details={'iso_639_3_code': code[:10]}
        )
    return code



def validate_taxonomy_slug(slug) -> str:
    """Validate a taxonomy value slug used as a map filter."""
    if not slug or not isinstance(slug, str) or len(slug) > TAXONOMY_SLUG_MAX_LENGTH:
        raise ValidationError('Invalid taxonomy value', details={'taxonomyValue': 'invalid length'})

    if not TAXONOMY_SLUG_PATTERN.fullmatch(slug):
        raise ValidationError(
            'Taxonomy value must contain only lowercase letters, numbers, hyphens and underscores',
            details={'taxonomyValue': 'invalid format'}
        )
    return slug
