"""
City access middleware.

Runs the authorization gate once per request for every view that declares
an ``access_area`` and turns denials into responses. Views in the account
area (landing pages) only need an active signed-in account:

- unauthenticated          -> 302 to /{locale}/login?next=<path>
- any other deny reason    -> 403 with one generic body
- bad locale / city slug   -> 404 (before any store is queried)
- unknown or unpublished city -> 404
- store unavailable        -> 503
"""
import logging
from urllib.parse import urlencode

from django.http import HttpResponseRedirect, JsonResponse
from django.utils.deprecation import MiddlewareMixin

from apps.core.exceptions import (
    NotFound, UpstreamFailure, ValidationError, error_payload,
)
from apps.core.logging import set_request_context
from apps.core.validators import validate_city_slug, validate_locale
from apps.rbac.gate import DenyReason, build_gate
from apps.rbac.identity import ANONYMOUS, credential_from_request
from apps.rbac.permissions import AccessArea, action_for

logger = logging.getLogger(__name__)


class CityAccessMiddleware(MiddlewareMixin):
    """
    Attach ``request.identity``, ``request.access_decision`` and
    ``request.city_scope`` for views with an ``access_area``.

    Views without ``access_area`` (health, schema, login) are left alone.
    """

    def process_request(self, request):
        request.identity = ANONYMOUS
        request.access_decision = None
        request.city_scope = None

    def process_view(self, request, view_func, view_args, view_kwargs):
        view_cls = getattr(view_func, 'cls', None) or getattr(view_func, 'view_class', None)
        area = getattr(view_cls, 'access_area', None)
        if area is None:
            return None

        request_id = getattr(request, 'request_id', None)
        locale = view_kwargs.get('locale')
        city_slug = view_kwargs.get('city')

        try:
            validate_locale(locale)
            if area in AccessArea.CITY_AREAS:
                validate_city_slug(city_slug)
        except ValidationError as e:
            logger.info(
                "Rejected malformed path parameter",
                extra={'path': request.path, 'error': e.message, 'request_id': request_id}
            )
            return self._error_response(NotFound, request_id)

        action = action_for(view_cls, request.method)
        gate = build_gate(request)
        credential = credential_from_request(request)

        try:
            if area in AccessArea.CITY_AREAS:
                set_request_context(city_slug=city_slug)
                decision = gate.authorize(credential, city_slug, action)
            elif area == AccessArea.ACCOUNT:
                decision = gate.authenticate(credential)
            else:
                decision = gate.authorize_global(credential, action)
        except NotFound:
            return self._error_response(NotFound, request_id)
        except UpstreamFailure:
            return self._error_response(UpstreamFailure, request_id)

        request.identity = decision.identity
        request.access_decision = decision

        if not decision.allowed:
            if decision.reason == DenyReason.UNAUTHENTICATED:
                return self._login_redirect(request, locale)
            return self._error_response(decision.error, request_id)

        request.city_scope = decision.scope

        logger.debug(
            f"Access granted: {action.value} as {decision.role}",
            extra={'city_slug': city_slug, 'request_id': request_id}
        )
        return None

    @staticmethod
    def _login_redirect(request, locale):
        query = urlencode({'next': request.get_full_path()})
        return HttpResponseRedirect(f'/{locale}/login?{query}')

    @staticmethod
    def _error_response(exc_class, request_id):
        return JsonResponse(
            error_payload(exc_class.code, exc_class.public_message, request_id),
            status=exc_class.status_code,
        )
