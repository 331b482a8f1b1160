"""
City API URLs, mounted under /{locale}/.

Provides endpoints for:
- Operator area: dashboard and city content CRUD
- Admin area: city settings
- Superuser area: cities
"""
from django.urls import path
from apps.cities.views import (
    OperatorDashboardView,
    LanguageFamilyListView,
    LanguageFamilyDetailView,
    LanguageListView,
    LanguageDetailView,
    DistrictListView,
    DistrictDetailView,
    NeighborhoodListView,
    NeighborhoodDetailView,
    LanguagePointListView,
    LanguagePointDetailView,
    TaxonomyTypeListView,
    TaxonomyTypeDetailView,
    TaxonomyValueListView,
    TaxonomyValueDetailView,
    DescriptionListView,
    DescriptionDetailView,
    CitySettingsView,
    CityListView,
)

app_name = 'cities'

urlpatterns = [
    # Operator area
    path('operator/<str:city>/', OperatorDashboardView.as_view(), name='dashboard'),
    path('operator/<str:city>/language-families/', LanguageFamilyListView.as_view(), name='language-family-list'),
    path('operator/<str:city>/language-families/<str:pk>/', LanguageFamilyDetailView.as_view(), name='language-family-detail'),
    path('operator/<str:city>/languages/', LanguageListView.as_view(), name='language-list'),
    path('operator/<str:city>/languages/<str:pk>/', LanguageDetailView.as_view(), name='language-detail'),
    path('operator/<str:city>/districts/', DistrictListView.as_view(), name='district-list'),
    path('operator/<str:city>/districts/<str:pk>/', DistrictDetailView.as_view(), name='district-detail'),
    path('operator/<str:city>/neighborhoods/', NeighborhoodListView.as_view(), name='neighborhood-list'),
    path('operator/<str:city>/neighborhoods/<str:pk>/', NeighborhoodDetailView.as_view(), name='neighborhood-detail'),
    path('operator/<str:city>/language-points/', LanguagePointListView.as_view(), name='language-point-list'),
    path('operator/<str:city>/language-points/<str:pk>/', LanguagePointDetailView.as_view(), name='language-point-detail'),
    path('operator/<str:city>/taxonomy-types/', TaxonomyTypeListView.as_view(), name='taxonomy-type-list'),
    path('operator/<str:city>/taxonomy-types/<str:pk>/', TaxonomyTypeDetailView.as_view(), name='taxonomy-type-detail'),
    path('operator/<str:city>/taxonomy-values/', TaxonomyValueListView.as_view(), name='taxonomy-value-list'),
    path('operator/<str:city>/taxonomy-values/<str:pk>/', TaxonomyValueDetailView.as_view(), name='taxonomy-value-detail'),
    path('operator/<str:city>/descriptions/', DescriptionListView.as_view(), name='description-list'),
    path('operator/<str:city>/descriptions/<str:pk>/', DescriptionDetailView.as_view(), name='description-detail'),

    # Admin area
    path('admin/<str:city>/settings/', CitySettingsView.as_view(), name='city-settings'),

    # Superuser area
    path('superuser/cities/', CityListView.as_view(), name='city-list'),
]
