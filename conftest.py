"""
Pytest configuration and fixtures.
"""
import pytest
from django.conf import settings
import django
from django.core.management import call_command


def pytest_configure(config):
    """Configure Django settings for tests."""
    settings.DATABASES['default'] = {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': ':memory:',
        'ATOMIC_REQUESTS': False,
    }
    django.setup()


@pytest.fixture(scope='session')
def django_db_setup(django_db_setup, django_db_blocker):
    """Set up test database with migrations."""
    with django_db_blocker.unblock():
        call_command('migrate', '--run-syncdb', verbosity=0)


@pytest.fixture(autouse=True)
def clear_rate_limits():
    """Rate limit counters live in the cache; start every test with a fresh one."""
    from django.core.cache import cache
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def api_client():
    """Return DRF API client."""
    from rest_framework.test import APIClient
    return APIClient()


def _create_city(slug, names, status='active'):
    from apps.cities.models import City, CityTranslation

    city = City.objects.create(
        slug=slug,
        country='Netherlands',
        center_lat=52.37,
        center_lng=4.89,
        status=status,
    )
    for locale, name in names.items():
        CityTranslation.objects.create(city=city, locale_code=locale, name=name)
    return city


@pytest.fixture
def city(db):
    """Create the Amsterdam test city."""
    return _create_city('amsterdam', {'en': 'Amsterdam', 'nl': 'Amsterdam', 'fr': 'Amsterdam'})


@pytest.fixture
def other_city(db):
    """Create another test city for isolation tests."""
    return _create_city('rotterdam', {'en': 'Rotterdam', 'nl': 'Rotterdam'})


@pytest.fixture
def draft_city(db):
    """Create a city that is not published yet."""
    return _create_city('utrecht', {'en': 'Utrecht'}, status='draft')


@pytest.fixture
def make_user(db):
    """Factory creating users with a profile."""
    from apps.rbac.models import User

    def _make_user(email='user@example.com', password='SecurePass123!', role='viewer',
                   is_active=True, **extra):
        return User.objects.create_user(
            email=email, password=password, role=role, is_active=is_active, **extra
        )

    return _make_user


@pytest.fixture
def superuser(make_user):
    return make_user(email='root@example.com', role='superuser', full_name='Root')


@pytest.fixture
def grant(db):
    """Factory creating a city membership."""
    from apps.rbac.models import CityMembership

    def _grant(user, city, role='viewer'):
        return CityMembership.objects.create(user=user, city=city, role=role)

    return _grant


@pytest.fixture
def member(make_user, grant, city):
    """Factory creating a user holding a role on the Amsterdam city."""
    def _member(role, email=None):
        user = make_user(email=email or f'{role}@example.com')
        grant(user, city, role)
        return user

    return _member


@pytest.fixture
def token_for():
    """Issue a session token for a user."""
    from apps.rbac.services import AuthService
    return AuthService.issue_token


@pytest.fixture
def auth_client(token_for):
    """Factory returning an API client authenticated as a user."""
    from rest_framework.test import APIClient

    def _auth_client(user):
        client = APIClient()
        client.credentials(HTTP_AUTHORIZATION=f'Bearer {token_for(user)}')
        return client

    return _auth_client
