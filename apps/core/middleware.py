"""
Request ID middleware.
"""
import re
import uuid

from django.utils.deprecation import MiddlewareMixin

from apps.core.logging import clear_request_context, set_request_context

REQUEST_ID_MAX_LENGTH = 64
REQUEST_ID_PATTERN = re.compile(r'[A-Za-z0-9._:-]+')


class RequestIDMiddleware(MiddlewareMixin):
    """
    Attach ``request.request_id`` for log correlation and echo it back in
    ``X-Request-ID``.

    An incoming ``X-Request-ID`` from a proxy is kept (truncated) when it is
    made of safe characters; anything else is replaced by a fresh UUID so the
    header cannot inject into log lines.
    """

    def process_request(self, request):
        incoming = request.META.get('HTTP_X_REQUEST_ID', '')[:REQUEST_ID_MAX_LENGTH]
        request.request_id = incoming if REQUEST_ID_PATTERN.fullmatch(incoming) else str(uuid.uuid4())
        set_request_context(request_id=request.request_id)

    def process_response(self, request, response):
        request_id = getattr(request, 'request_id', None)
        if request_id:
            response['X-Request-ID'] = request_id
        clear_request_context()
        return response
