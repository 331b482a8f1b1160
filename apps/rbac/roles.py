"""
Roles, actions and the fixed role ordering.

Role hierarchy (per city):
- viewer (1)   -> read a city's content
- operator (2) -> manage a city's content (languages, points, districts)
- admin (3)    -> manage a city's members and settings

superuser is a global role outside the per-city ordering: it bypasses city
membership entirely and is the only role allowed to run city-less actions.
"""
from typing import Optional

from django.db import models


class Role(models.TextChoices):
    VIEWER = 'viewer', 'Viewer'
    OPERATOR = 'operator', 'Operator'
    ADMIN = 'admin', 'Administrator'
    SUPERUSER = 'superuser', 'Superuser'


class MembershipRole(models.TextChoices):
    """Roles that can be granted on a single city."""
    VIEWER = 'viewer', 'Viewer'
    OPERATOR = 'operator', 'Operator'
    ADMIN = 'admin', 'Administrator'


class Action(models.TextChoices):
    VIEW_MAP = 'view_map', 'View public map'
    VIEW_CONTENT = 'view_content', 'View city content'
    MANAGE_CONTENT = 'manage_content', 'Manage city content'
    DELETE_CONTENT = 'delete_content', 'Delete city content'
    MANAGE_MEMBERS = 'manage_members', 'Manage city members'
    MANAGE_SETTINGS = 'manage_settings', 'Manage city settings'
    CREATE_CITY = 'create_city', 'Create cities'
    MANAGE_ACCOUNTS = 'manage_accounts', 'Manage user accounts'


ROLE_LEVEL = {
    Role.VIEWER: 1,
    Role.OPERATOR: 2,
    Role.ADMIN: 3,
}

# None means the action is public (no identity required).
ACTION_MIN_ROLE = {
    Action.VIEW_MAP: None,
    Action.VIEW_CONTENT: Role.VIEWER,
    Action.MANAGE_CONTENT: Role.OPERATOR,
    Action.DELETE_CONTENT: Role.ADMIN,
    Action.MANAGE_MEMBERS: Role.ADMIN,
    Action.MANAGE_SETTINGS: Role.ADMIN,
    Action.CREATE_CITY: Role.SUPERUSER,
    Action.MANAGE_ACCOUNTS: Role.SUPERUSER,
}

PUBLIC_ACTIONS = frozenset(action for action, role in ACTION_MIN_ROLE.items() if role is None)
GLOBAL_ACTIONS = frozenset(
    action for action, role in ACTION_MIN_ROLE.items() if role == Role.SUPERUSER
)


def is_valid_role(role) -> bool:
    return role in Role.values


def is_superuser(role) -> bool:
    return role == Role.SUPERUSER


def role_satisfies(role: Optional[str], action: str) -> bool:
    """
    Check whether an effective role may perform an action.

    Superuser satisfies every action. Unknown roles satisfy nothing.
    """
    if is_superuser(role):
        return True

    required = ACTION_MIN_ROLE[Action(action)]
    if required is None:
        return True
    if required == Role.SUPERUSER or role not in ROLE_LEVEL:
        return False

    return ROLE_LEVEL[Role(role)] >= ROLE_LEVEL[required]


def dashboard_path(role: Optional[str], locale: str) -> str:
    """Landing page for a role after login."""
    if is_superuser(role):
        return f'/{locale}/superuser/'
    if role == Role.ADMIN:
        return f'/{locale}/admin/'
    if is_valid_role(role):
        return f'/{locale}/operator/'
    return f'/{locale}/me'
