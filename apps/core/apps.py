import logging

from django.apps import AppConfig
from django.conf import settings
from django.core.exceptions import ImproperlyConfigured
from django.utils.module_loading import import_string

logger = logging.getLogger(__name__)

GATE_COLLABORATOR_SETTINGS = (
    'LANGMAP_IDENTITY_RESOLVER',
    'LANGMAP_PROFILE_STORE',
    'LANGMAP_MEMBERSHIP_STORE',
    'LANGMAP_CITY_STORE',
)


class CoreConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'apps.core'
    verbose_name = 'Core'

    def ready(self):
        """Fail at startup rather than on the first authorized request."""
        self._validate_secret_key()
        self._validate_gate_collaborators()

    @staticmethod
    def _validate_secret_key():
        secret_key = getattr(settings, 'SECRET_KEY', None)
        if not secret_key:
            raise ImproperlyConfigured("SECRET_KEY must be set in environment variables.")

        if settings.DEBUG or getattr(settings, 'TESTING', False):
            return

        if secret_key.startswith(settings.DEV_KEY_PREFIX) or 'insecure' in secret_key.lower():
            raise ImproperlyConfigured(
                "SECRET_KEY is a development value. Generate a strong key with: "
                "python -c \"import secrets; print(secrets.token_urlsafe(50))\""
            )

        if not settings.SESSION_COOKIE_SECURE:
            logger.warning("SESSION_COOKIE_SECURE is off; the session cookie will be sent over plain HTTP.")

    @staticmethod
    def _validate_gate_collaborators():
        for name in GATE_COLLABORATOR_SETTINGS:
            path = getattr(settings, name, None)
            try:
                import_string(path)
            except (ImportError, TypeError, ValueError) as e:
                raise ImproperlyConfigured(f"{name}={path!r} cannot be imported: {e}")
