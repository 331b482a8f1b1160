"""
Exception taxonomy and DRF exception handling.
"""
import logging
from rest_framework.views import exception_handler
from rest_framework.response import Response
from rest_framework import status
from django_ratelimit.exceptions import Ratelimited
from django.http import JsonResponse

logger = logging.getLogger(__name__)


LOGIN_RETRY_AFTER = 60


class LangMapException(Exception):
    """Base exception for Language Map errors."""

    status_code = 500
    code = 'INTERNAL_ERROR'
    public_message = 'An unexpected error occurred'

    def __init__(self, message=None, details=None):
        self.message = message or self.public_message
        self.details = details or {}
        super().__init__(self.message)


class AuthenticationError(LangMapException):
    """Raised when a request carries no valid identity."""
    status_code = 401
    code = 'UNAUTHENTICATED'
    public_message = 'Authentication required'


class MalformedCredential(AuthenticationError):
    """
    Raised when a session credential is structurally invalid or fails its
    signature check. Distinct from an absent or expired credential.
    """
    code = 'MALFORMED_CREDENTIAL'


class PermissionDeniedError(LangMapException):
    """Raised when an identity lacks access. Base for all authorization denials."""
    status_code = 403
    code = 'FORBIDDEN'
    public_message = 'You do not have access to this resource'


class InactiveAccount(PermissionDeniedError):
    """Account has no profile or has been deactivated."""
    pass


class NoCityAccess(PermissionDeniedError):
    """Account has no membership for the requested city."""
    pass


class InsufficientRole(PermissionDeniedError):
    """Membership role is below the action's minimum role."""
    pass


class NotFound(LangMapException):
    """Raised when an entity cannot be resolved."""
    status_code = 404
    code = 'NOT_FOUND'
    public_message = 'Not found'


class CityNotFound(NotFound):
    """Raised when a city slug does not resolve to a city."""
    pass


class ValidationError(LangMapException):
    """Raised when input validation fails before any query is issued."""
    status_code = 400
    code = 'VALIDATION_ERROR'
    public_message = 'Invalid input'


class UpstreamFailure(LangMapException):
    """
    Raised when the role, membership or city store cannot be read.
    Always treated as a deny; details stay in the server log.
    """
    status_code = 503
    code = 'SERVICE_UNAVAILABLE'
    public_message = 'The service is temporarily unavailable'


def error_payload(code, message, request_id=None, details=None):
    """Build the standard error envelope used by every error response."""
    payload = {
        'error': {
            'code': code,
            'message': message,
        }
    }
    if details:
        payload['error']['details'] = details
    if request_id:
        payload['request_id'] = request_id
    return payload


def _rate_limited_response(request, response_class):
    from apps.core.logging import SecurityLogger

    ip_address = request.META.get('REMOTE_ADDR', 'unknown') if request else 'unknown'
    SecurityLogger.log_rate_limit_exceeded(
        endpoint=request.path if request else 'unknown',
        ip_address=ip_address,
        limit='Rate limit exceeded'
    )

    response = response_class(
        error_payload(
            'RATE_LIMIT_EXCEEDED',
            'Rate limit exceeded. Please try again later.',
            request_id=getattr(request, 'request_id', None),
        ),
        status=status.HTTP_429_TOO_MANY_REQUESTS
    )
    response['Retry-After'] = str(LOGIN_RETRY_AFTER)
    return response


def ratelimit_view(request, exception):
    """
    Custom view for django-ratelimit to return 429 instead of 403.
    """
    return _rate_limited_response(request, JsonResponse)


def custom_exception_handler(exc, context):
    """
    Custom exception handler that logs errors and returns consistent format.

    Authorization failures all collapse into the same generic 403 body;
    the distinguishing reason is only written to the security log.
    """
    request = context.get('request')
    request_id = getattr(request, 'request_id', None) if request else None

    if isinstance(exc, Ratelimited):
        return _rate_limited_response(request, Response)

    if isinstance(exc, LangMapException):
        log_level = logging.ERROR if exc.status_code >= 500 else logging.INFO
        logger.log(
            log_level,
            f"API Exception: {exc.__class__.__name__}",
            extra={
                'exception': exc.message,
                'request_id': request_id,
                'path': request.path if request else None,
                'method': request.method if request else None,
            },
            exc_info=exc.status_code >= 500,
        )

        if isinstance(exc, PermissionDeniedError):
            body = error_payload(PermissionDeniedError.code, PermissionDeniedError.public_message, request_id)
        elif isinstance(exc, ValidationError):
            body = error_payload(exc.code, exc.message, request_id, exc.details)
        else:
            body = error_payload(exc.code, exc.public_message, request_id)

        return Response(body, status=exc.status_code)

    response = exception_handler(exc, context)

    if response is None:
        logger.error(
            f"API Exception: {exc.__class__.__name__}",
            extra={
                'exception': str(exc),
                'request_id': request_id,
                'path': request.path if request else None,
                'method': request.method if request else None,
            },
            exc_info=True
        )
        return Response(
            error_payload('INTERNAL_ERROR', 'An unexpected error occurred', request_id),
            status=status.HTTP_500_INTERNAL_SERVER_ERROR
        )

    if response.status_code >= 500:
        logger.error(
            f"API Exception: {exc.__class__.__name__}",
            extra={'request_id': request_id, 'path': request.path if request else None},
            exc_info=True
        )

    if isinstance(response.data, dict) and 'error' not in response.data:
        code = getattr(exc, 'default_code', 'error')
        if response.status_code == status.HTTP_400_BAD_REQUEST:
            response.data = error_payload(
                'VALIDATION_ERROR', 'Invalid input', request_id, details=response.data
            )
        else:
            response.data = error_payload(
                str(code).upper(), str(response.data.get('detail', '')), request_id
            )
    elif request_id and isinstance(response.data, dict):
        response.data['request_id'] = request_id

    return response
