"""
Operational endpoints.
"""
import logging

from django.core.cache import cache
from django.db import DatabaseError, connection
from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import extend_schema
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

logger = logging.getLogger(__name__)

HEALTH_CACHE_KEY = 'langmap:health'


def _check_database():
    with connection.cursor() as cursor:
        cursor.execute("SELECT 1")


def _check_cache():
    # Login rate limiting counts attempts in this cache.
    cache.set(HEALTH_CACHE_KEY, 'ok', timeout=5)
    if cache.get(HEALTH_CACHE_KEY) != 'ok':
        raise ConnectionError('cache round trip failed')


class HealthCheckView(APIView):
    """
    GET /health

    Reports the database (identity, roles, memberships and content) and the
    cache backing the login rate limit. 503 when either is unreachable.
    """
    authentication_classes = []
    permission_classes = []

    CHECKS = (
        ('database', _check_database, DatabaseError),
        ('cache', _check_cache, Exception),
    )

    @extend_schema(
        tags=['Operations'],
        summary="Health check",
        responses={200: OpenApiTypes.OBJECT, 503: OpenApiTypes.OBJECT},
    )
    def get(self, request):
        report = {'status': 'healthy'}

        for name, check, errors in self.CHECKS:
            try:
                check()
                report[name] = 'healthy'
            except errors as e:
                logger.error(f"Health check failed: {name}", extra={'error': str(e)}, exc_info=True)
                report[name] = 'unhealthy'
                report['status'] = 'unhealthy'

        code = status.HTTP_200_OK if report['status'] == 'healthy' else status.HTTP_503_SERVICE_UNAVAILABLE
        return Response(report, status=code)
