"""
URL configuration for Language Map.

Every page lives under a locale prefix (en, nl, fr); CityAccessMiddleware
answers 404 for any other prefix before a view runs.
"""
from django.urls import path, include
from drf_spectacular.views import SpectacularAPIView, SpectacularSwaggerView

urlpatterns = [
    # API Documentation
    path('schema/', SpectacularAPIView.as_view(), name='schema'),
    path('schema/swagger/', SpectacularSwaggerView.as_view(url_name='schema'), name='swagger-ui'),

    # Health check
    path('', include('apps.core.urls')),

    # Public map
    path('api/<str:locale>/', include('apps.cities.urls_public')),

    # Authentication endpoints
    path('<str:locale>/', include('apps.rbac.urls_auth')),  # login, logout, me

    # Admin and superuser areas (members, audit log, accounts)
    path('<str:locale>/', include('apps.rbac.urls')),

    # Operator area and city creation
    path('<str:locale>/', include('apps.cities.urls')),
]
