"""
DRF permission classes and decorators for city access enforcement.

This module provides:
- action_for: the action a request performs on a view (per HTTP method)
- HasCityAccess: DRF permission class re-checking the gate's decision
- @requires_actions: Decorator to declare per-method actions on views
"""
import logging

from rest_framework.permissions import BasePermission, SAFE_METHODS

from apps.core.exceptions import InsufficientRole
from apps.rbac.roles import Action, is_superuser, role_satisfies

logger = logging.getLogger(__name__)


class AccessArea:
    PUBLIC = 'public'
    OPERATOR = 'operator'
    ADMIN = 'admin'
    SUPERUSER = 'superuser'
    ACCOUNT = 'account'

    CITY_AREAS = (PUBLIC, OPERATOR, ADMIN)


def action_for(view_cls, method: str) -> Action:
    """
    Resolve the action for a request method on a view class.

    Views may declare ``required_actions = {'DELETE': Action.DELETE_CONTENT}``;
    anything not declared falls back to the area default:

    - public: view_map
    - operator: safe methods view_content, others manage_content
    - admin: manage_members
    - superuser: manage_accounts
    """
    method = method.upper()
    declared = getattr(view_cls, 'required_actions', None) or {}
    if method in declared:
        return Action(declared[method])

    area = getattr(view_cls, 'access_area', None)
    if area == AccessArea.PUBLIC:
        return Action.VIEW_MAP
    if area == AccessArea.ADMIN:
        return Action.MANAGE_MEMBERS
    if area == AccessArea.SUPERUSER:
        return Action.MANAGE_ACCOUNTS
    if method in SAFE_METHODS:
        return Action.VIEW_CONTENT
    return Action.MANAGE_CONTENT


class HasCityAccess(BasePermission):
    """
    Re-check the decision attached by CityAccessMiddleware.

    Fails closed when the middleware did not run. A denied decision is
    raised as its deny exception and a role below the view's action as
    InsufficientRole. No store is queried here.

    Usage in views:
        class LanguageListView(APIView):
            access_area = 'operator'
            permission_classes = [HasCityAccess]
    """

    def has_permission(self, request, view):
        decision = getattr(request, 'access_decision', None)
        if decision is None:
            logger.warning(
                "Permission denied: no access decision on request",
                extra={
                    'view': view.__class__.__name__,
                    'method': request.method,
                    'path': request.path,
                    'request_id': getattr(request, 'request_id', None),
                }
            )
            return False

        if not decision.allowed:
            raise decision.error()

        if getattr(view, 'access_area', None) == AccessArea.ACCOUNT:
            return True

        action = action_for(type(view), request.method)

        if decision.city is None:
            if not is_superuser(decision.role):
                raise InsufficientRole(f"Role {decision.role} cannot {action.value}")
            return True

        if not role_satisfies(decision.role, action):
            logger.warning(
                f"Permission denied: role {decision.role} cannot {action.value}",
                extra={
                    'view': view.__class__.__name__,
                    'method': request.method,
                    'city_slug': decision.city.slug,
                    'request_id': getattr(request, 'request_id', None),
                }
            )
            raise InsufficientRole(f"Role {decision.role} cannot {action.value}")

        return True


    def has_object_permission(self, request, view, obj):
        """Verify the object belongs to the request's city."""
        scope = getattr(request, 'city_scope', None)
        if scope is None:
            return False

        object_city_id = getattr(obj, 'city_id', None)
        if object_city_id is None:
            return True

        if object_city_id != scope.city_id:
            logger.warning(
                "Object permission denied: object belongs to different city",
                extra={
                    'object_type': obj.__class__.__name__,
                    'object_id': str(getattr(obj, 'id', '')),
                    'city_slug': scope.city_slug,
                    'request_id': getattr(request, 'request_id', None),
                }
            )
            return False

        return True


def requires_actions(**method_actions):
    """
    Decorator to declare per-method actions on a view class.

    Usage:
        @requires_actions(DELETE=Action.DELETE_CONTENT)
        class LanguageDetailView(APIView):
            access_area = 'operator'
    """
    def decorator(view_cls):
        declared = dict(getattr(view_cls, 'required_actions', None) or {})
        declared.update({method.upper(): Action(action) for method, action in method_actions.items()})
        view_cls.required_actions = declared
        return view_cls

    return decorator
