"""
Management command to grant a user a role on a city.

Creates the CityMembership, or changes its role when it already exists.
"""
from django.core.management.base import BaseCommand, CommandError

from apps.cities.models import City
from apps.core.exceptions import ValidationError
from apps.core.validators import validate_city_slug
from apps.rbac.models import User
from apps.rbac.roles import MembershipRole
from apps.rbac.services import RBACService


class Command(BaseCommand):
    help = 'Grant a user a viewer, operator or admin role on a city'

    def add_arguments(self, parser):
        parser.add_argument(
            '--email',
            type=str,
            required=True,
            help='User email address',
        )
        parser.add_argument(
            '--city',
            type=str,
            required=True,
            help='City slug',
        )
        parser.add_argument(
            '--role',
            type=str,
            choices=MembershipRole.values,
            default=MembershipRole.OPERATOR.value,
            help='City role (default: operator)',
        )

    def handle(self, *args, **options):
        try:
            slug = validate_city_slug(options['city'])
        except ValidationError as e:
            raise CommandError(e.message)

        city = City.objects.by_slug(slug)
        if not city:
            raise CommandError(f'City not found: {slug}')

        user = User.objects.by_email(options['email'])
        if not user:
            raise CommandError(
                f"User not found: {options['email']}\n"
                f"Run: python manage.py create_langmap_user --email={options['email']} --password=<password>"
            )

        membership = RBACService.grant_membership(city=city, user=user, role=options['role'])

        self.stdout.write(
            self.style.SUCCESS(f'✓ {user.email} is {membership.role} of {city.slug}')
        )
