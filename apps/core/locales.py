"""
Locale constants.

All locale-aware code uses these constants instead of hardcoded strings.
"""
from django.db import models


class Locale(models.TextChoices):
    ENGLISH = 'en', 'English'
    DUTCH = 'nl', 'Dutch'
    FRENCH = 'fr', 'French'


DEFAULT_LOCALE = Locale.ENGLISH.value

SUPPORTED_LOCALES = tuple(Locale.values)
