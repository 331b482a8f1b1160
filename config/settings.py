"""
Django settings for the Language Map platform.
"""
import os
import sys
from pathlib import Path
import environ
import sentry_sdk
from sentry_sdk.integrations.django import DjangoIntegration

# Build paths inside the project
BASE_DIR = Path(__file__).resolve().parent.parent

# Initialize environment variables
env = environ.Env(
    DEBUG=(bool, False),
    TESTING=(bool, False),
    ALLOWED_HOSTS=(list, ['localhost', '127.0.0.1']),
    DB_CONN_MAX_AGE=(int, 600),
    DB_STATEMENT_TIMEOUT_MS=(int, 5000),
    RATE_LIMIT_ENABLED=(bool, True),
    JSON_LOGS=(bool, False),
    LOG_LEVEL=(str, 'INFO'),
)

# Read .env file if it exists
environ.Env.read_env(os.path.join(BASE_DIR, '.env'))

# SECURITY WARNING: keep the secret key used in production secret!
# The development default is refused at startup unless DEBUG or TESTING is set.
SECRET_KEY = env('SECRET_KEY', default='dev-only-langmap-secret-key-7Hq2mZp9')

# SECURITY WARNING: don't run with debug turned on in production!
DEBUG = env('DEBUG')
TESTING = env('TESTING') or 'pytest' in sys.modules

DEV_KEY_PREFIX = 'dev-only-'

if SECRET_KEY.startswith(DEV_KEY_PREFIX) and not (DEBUG or TESTING):
    raise environ.ImproperlyConfigured(
        "SECRET_KEY must be set in production. "
        "Generate one with: python -c \"import secrets; print(secrets.token_urlsafe(50))\""
    )

ALLOWED_HOSTS = env('ALLOWED_HOSTS')

USE_X_FORWARDED_HOST = True
SECURE_PROXY_SSL_HEADER = ('HTTP_X_FORWARDED_PROTO', 'https')

# Application definition
INSTALLED_APPS = [
    'django.contrib.auth',
    'django.contrib.contenttypes',

    # Third-party apps
    'rest_framework',
    'drf_spectacular',
    'django_ratelimit',

    # Language Map apps
    'apps.core',
    'apps.rbac',
    'apps.cities',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',

    # Custom middleware
    'apps.core.middleware.RequestIDMiddleware',
    'apps.rbac.middleware.CityAccessMiddleware',
]

ROOT_URLCONF = 'config.urls'

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [],
        'APP_DIRS': True,
        'OPTIONS': {
            'context_processors': [
                'django.template.context_processors.debug',
                'django.template.context_processors.request',
            ],
        },
    },
]

WSGI_APPLICATION = 'config.wsgi.application'

# Database
DATABASES = {
    'default': env.db('DATABASE_URL', default=f"sqlite:///{BASE_DIR / 'db.sqlite3'}"),
}
DATABASES['default']['CONN_MAX_AGE'] = env('DB_CONN_MAX_AGE')

# Slow role/membership lookups must fail (and deny) rather than hang
DB_STATEMENT_TIMEOUT_MS = env('DB_STATEMENT_TIMEOUT_MS')

if 'postgresql' in DATABASES['default']['ENGINE']:
    DATABASES['default']['OPTIONS'] = {
        'connect_timeout': 10,
        'options': f'-c statement_timeout={DB_STATEMENT_TIMEOUT_MS}',
    }

# Password hashing (used by apps.rbac.models.User)
AUTH_PASSWORD_VALIDATORS = [
    {
        'NAME': 'django.contrib.auth.password_validation.MinimumLengthValidator',
    },
    {
        'NAME': 'django.contrib.auth.password_validation.CommonPasswordValidator',
    },
]

# Internationalization
LANGUAGE_CODE = 'en'
LANGUAGES = [
    ('en', 'English'),
    ('nl', 'Dutch'),
    ('fr', 'French'),
]
TIME_ZONE = 'Europe/Amsterdam'
USE_I18N = True
USE_TZ = True

STATIC_URL = 'static/'

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

# REST Framework
# Authentication is handled by CityAccessMiddleware and the authorization
# gate; DRF itself never authenticates.
REST_FRAMEWORK = {
    'DEFAULT_SCHEMA_CLASS': 'drf_spectacular.openapi.AutoSchema',
    'DEFAULT_PAGINATION_CLASS': 'rest_framework.pagination.PageNumberPagination',
    'PAGE_SIZE': 50,
    'DEFAULT_RENDERER_CLASSES': [
        'rest_framework.renderers.JSONRenderer',
    ],
    'DEFAULT_PARSER_CLASSES': [
        'rest_framework.parsers.JSONParser',
    ],
    'DEFAULT_AUTHENTICATION_CLASSES': [],
    'DEFAULT_PERMISSION_CLASSES': [],
    'UNAUTHENTICATED_USER': None,
    'EXCEPTION_HANDLER': 'apps.core.exceptions.custom_exception_handler',
}

# DRF Spectacular (OpenAPI)
SPECTACULAR_SETTINGS = {
    'TITLE': 'Language Map API',
    'DESCRIPTION': '''
Multi-city, multilingual language map.

## Authentication

`POST /{locale}/login` sets an HttpOnly session cookie and also returns the
session token, which may be sent as `Authorization: Bearer <token>`.

## Authorization

Every city-scoped request passes a single authorization gate:

| Action | Minimum role |
|--------|--------------|
| `view_map` | public |
| `view_content` | viewer |
| `manage_content` | operator |
| `delete_content` | admin |
| `manage_members` | admin |
| `manage_settings` | admin |
| `create_city` | superuser |
| `manage_accounts` | superuser |

City roles are granted per city (`viewer < operator < admin`). Superusers
have access to every city. Unauthenticated requests are redirected to the
login page; every other denial is a `403` with one generic body.
    ''',
    'VERSION': '1.0.0',
    'SERVE_INCLUDE_SCHEMA': False,
    'COMPONENT_SPLIT_REQUEST': True,
    'SECURITY': [
        {
            'SessionCookie': []
        },
        {
            'BearerAuth': []
        }
    ],
    'APPEND_COMPONENTS': {
        'securitySchemes': {
            'SessionCookie': {
                'type': 'apiKey',
                'in': 'cookie',
                'name': 'langmap_session',
            },
            'BearerAuth': {
                'type': 'http',
                'scheme': 'bearer',
                'bearerFormat': 'JWT',
            },
        }
    },
    'TAGS': [
        {'name': 'Authentication', 'description': 'Login, logout and the current user'},
        {'name': 'Dashboards', 'description': 'Landing pages of the operator, admin and superuser areas'},
        {'name': 'Operator - Dashboard', 'description': 'City overview'},
        {'name': 'Operator - Languages', 'description': 'Languages and their localized names'},
        {'name': 'Operator - Language Families', 'description': 'Language families'},
        {'name': 'Operator - Districts', 'description': 'City districts'},
        {'name': 'Operator - Neighborhoods', 'description': 'City neighborhoods'},
        {'name': 'Operator - Language Points', 'description': 'Language locations on the map'},
        {'name': 'Operator - Taxonomies', 'description': 'Taxonomy types and values classifying languages'},
        {'name': 'Operator - Descriptions', 'description': 'Language descriptions per locale'},
        {'name': 'Admin - Members', 'description': 'City membership management'},
        {'name': 'Admin - Audit', 'description': 'City audit log'},
        {'name': 'Admin - Invitations', 'description': 'Invitations of new accounts'},
        {'name': 'Admin - Settings', 'description': 'City map settings and translations'},
        {'name': 'Superuser - Cities', 'description': 'City creation'},
        {'name': 'Superuser - Accounts', 'description': 'Global roles and account activation'},
        {'name': 'Public Map', 'description': 'Public GeoJSON export'},
        {'name': 'Operations', 'description': 'Health check'},
    ],
}

# ============================================================================
# SECURITY SETTINGS
# ============================================================================

SESSION_COOKIE_NAME = env('SESSION_COOKIE_NAME', default='langmap_session')

if not DEBUG and not TESTING:
    SECURE_SSL_REDIRECT = True

    SECURE_HSTS_SECONDS = 31536000  # 1 year
    SECURE_HSTS_INCLUDE_SUBDOMAINS = True
    SECURE_HSTS_PRELOAD = True

    SESSION_COOKIE_SECURE = True
else:
    SECURE_SSL_REDIRECT = False
    SECURE_HSTS_SECONDS = 0
    SESSION_COOKIE_SECURE = False

SECURE_CONTENT_TYPE_NOSNIFF = True
X_FRAME_OPTIONS = 'DENY'

# Cache (rate limit counters); use rediscache:// in production
CACHES = {
    'default': env.cache('CACHE_URL', default='locmemcache://langmap'),
}

# Rate Limiting
RATE_LIMIT_ENABLED = env('RATE_LIMIT_ENABLED')

RATELIMIT_USE_CACHE = 'default'
RATELIMIT_ENABLE = RATE_LIMIT_ENABLED

# Use custom view for rate limit responses (returns 429 instead of 403)
RATELIMIT_VIEW = 'apps.core.exceptions.ratelimit_view'

# The local-memory cache is per process; production sets CACHE_URL to Redis
SILENCED_SYSTEM_CHECKS = ['django_ratelimit.E003', 'django_ratelimit.W001']

# Logging Configuration
LOG_LEVEL = env('LOG_LEVEL')
JSON_LOGS = env('JSON_LOGS')

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'json': {
            '()': 'apps.core.logging.JSONFormatter',
        },
        'verbose': {
            '()': 'apps.core.logging.SanitizingFormatter',
            'format': '{levelname} {asctime} {module} {process:d} {thread:d} {message}',
            'style': '{',
        },
        'simple': {
            '()': 'apps.core.logging.SanitizingFormatter',
            'format': '{levelname} {message}',
            'style': '{',
        },
    },
    'filters': {
        'request_context': {
            '()': 'apps.core.logging.RequestContextFilter',
        },
    },
    'handlers': {
        'console': {
            'level': LOG_LEVEL,
            'class': 'logging.StreamHandler',
            'formatter': 'json' if JSON_LOGS else 'verbose',
            'filters': ['request_context'],
        },
    },
    'root': {
        'handlers': ['console'],
        'level': LOG_LEVEL,
    },
    'loggers': {
        'django': {
            'handlers': ['console'],
            'level': 'INFO',
            'propagate': False,
        },
        'django.request': {
            'handlers': ['console'],
            'level': 'ERROR',
            'propagate': False,
        },
        'apps': {
            'handlers': ['console'],
            'level': LOG_LEVEL,
            'propagate': False,
        },
        'security': {
            'handlers': ['console'],
            'level': 'INFO',
            'propagate': False,
        },
    },
}

# Sentry Configuration
SENTRY_DSN = env('SENTRY_DSN', default=None)
SENTRY_ENVIRONMENT = env('SENTRY_ENVIRONMENT', default='development')
SENTRY_RELEASE = env('SENTRY_RELEASE', default=None)

if SENTRY_DSN:
    sentry_sdk.init(
        dsn=SENTRY_DSN,
        integrations=[
            DjangoIntegration(),
        ],
        environment=SENTRY_ENVIRONMENT,
        release=SENTRY_RELEASE,
        traces_sample_rate=0.1 if not DEBUG else 1.0,
        send_default_pii=False,
        before_send=lambda event, hint: event if not DEBUG else None,
        attach_stacktrace=True,
        max_breadcrumbs=50,
    )

# JWT Session Tokens
# SECURITY: JWT_SECRET_KEY must differ from SECRET_KEY
JWT_SECRET_KEY = env('JWT_SECRET_KEY', default='dev-only-jwt-Vb8kR3nXw5tLc2QyPz7fJm4s')

if JWT_SECRET_KEY.startswith(DEV_KEY_PREFIX) and not (DEBUG or TESTING):
    raise environ.ImproperlyConfigured("JWT_SECRET_KEY must be set in production.")

# Validate JWT_SECRET_KEY length (must be at least 32 characters)
if len(JWT_SECRET_KEY) < 32:
    raise environ.ImproperlyConfigured(
        "JWT_SECRET_KEY must be at least 32 characters long for security. "
        "Current length: {}. Generate a strong key with: "
        "python -c \"import secrets; print(secrets.token_urlsafe(32))\"".format(len(JWT_SECRET_KEY))
    )

# Validate JWT_SECRET_KEY is different from SECRET_KEY
if JWT_SECRET_KEY == SECRET_KEY:
    raise environ.ImproperlyConfigured(
        "JWT_SECRET_KEY must be different from SECRET_KEY for security. "
        "Generate a separate JWT key with: "
        "python -c \"import secrets; print(secrets.token_urlsafe(32))\""
    )


def _validate_jwt_key_entropy(key: str) -> None:
    """
    Validate that JWT_SECRET_KEY has sufficient entropy.

    Checks:
    - At least 16 unique characters
    - Not a simple repeating pattern
    """
    unique_chars = len(set(key))

    if unique_chars < 16:
        raise environ.ImproperlyConfigured(
            f"JWT_SECRET_KEY has insufficient entropy. "
            f"Found only {unique_chars} unique characters, need at least 16. "
            f"Generate a strong key with: "
            f"python -c \"import secrets; print(secrets.token_urlsafe(32))\""
        )

    pattern = key[:2]
    if key == pattern * (len(key) // len(pattern)) + pattern[:len(key) % len(pattern)]:
        raise environ.ImproperlyConfigured(
            "JWT_SECRET_KEY is a simple repeating pattern. "
            "Generate a strong key with: "
            "python -c \"import secrets; print(secrets.token_urlsafe(32))\""
        )


_validate_jwt_key_entropy(JWT_SECRET_KEY)

JWT_ALGORITHM = env('JWT_ALGORITHM', default='HS256')
JWT_EXPIRATION_HOURS = env.int('JWT_EXPIRATION_HOURS', default=24)

# Authorization gate collaborators (instantiated per request)
LANGMAP_IDENTITY_RESOLVER = env(
    'LANGMAP_IDENTITY_RESOLVER', default='apps.rbac.identity.IdentityResolver'
)
LANGMAP_PROFILE_STORE = env(
    'LANGMAP_PROFILE_STORE', default='apps.rbac.stores.DatabaseProfileStore'
)
LANGMAP_MEMBERSHIP_STORE = env(
    'LANGMAP_MEMBERSHIP_STORE', default='apps.rbac.stores.DatabaseMembershipStore'
)
LANGMAP_CITY_STORE = env(
    'LANGMAP_CITY_STORE', default='apps.rbac.stores.DatabaseCityStore'
)
