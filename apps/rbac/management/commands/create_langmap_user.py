"""
Management command to create a user account with a global role.

Creates the User and its UserProfile. City access is granted separately
with grant_city_access.
"""
from django.core.management.base import BaseCommand, CommandError

from apps.core.sanitization import sanitize_email
from apps.rbac.models import User
from apps.rbac.roles import Role


class Command(BaseCommand):
    help = 'Create a Language Map user with a global role'

    def add_arguments(self, parser):
        parser.add_argument(
            '--email',
            type=str,
            required=True,
            help='User email address',
        )
        parser.add_argument(
            '--password',
            type=str,
            required=True,
            help='Initial password',
        )
        parser.add_argument(
            '--role',
            type=str,
            choices=Role.values,
            default=Role.VIEWER.value,
            help='Global role (default: viewer)',
        )
        parser.add_argument(
            '--full-name',
            type=str,
            default='',
            help='Display name',
        )

    def handle(self, *args, **options):
        email = sanitize_email(options['email'])
        if not email:
            raise CommandError(f"Invalid email address: {options['email']}")

        if User.objects.by_email(email):
            raise CommandError(f'User already exists: {email}')

        user = User.objects.create_user(
            email=email,
            password=options['password'],
            role=options['role'],
            full_name=options['full_name'],
        )

        self.stdout.write(
            self.style.SUCCESS(f"✓ Created user {user.email} with role {options['role']}")
        )
