"""
City REST API views.

Implements endpoints for:
- Operator area: city dashboard and CRUD on city-owned content
- Admin area: city settings
- Superuser area: city listing and creation
- Public map: GeoJSON export of language points

Every read and write goes through ``request.city_scope``; the city slug in
the URL is only ever looked at by CityAccessMiddleware.
"""
import logging

from drf_spectacular.utils import extend_schema, extend_schema_view, OpenApiParameter
from drf_spectacular.types import OpenApiTypes
from rest_framework import status
from rest_framework.pagination import PageNumberPagination
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.core.exceptions import ValidationError
from apps.core.sanitization import sanitize_uuid
from apps.core.validators import validate_taxonomy_slug, validate_uuid
from apps.cities.models import (
    City, Description, District, Language, LanguageFamily, LanguagePoint, Neighborhood,
    TaxonomyType, TaxonomyValue,
)
from apps.cities.serializers import (
    CityCreateSerializer, CitySerializer, CitySettingsSerializer, DescriptionSerializer,
    DistrictSerializer, LanguageFamilySerializer, LanguagePointSerializer, LanguageSerializer,
    NeighborhoodSerializer, TaxonomyTypeSerializer, TaxonomyValueSerializer,
)
from apps.cities.services import CityService, ContentService
from apps.rbac.permissions import AccessArea, HasCityAccess, requires_actions
from apps.rbac.roles import Action
from apps.rbac.views import acting_user, scoped_city

logger = logging.getLogger(__name__)


class StandardResultsSetPagination(PageNumberPagination):
    """Standard pagination for list endpoints."""
    page_size = 50
    page_size_query_param = 'page_size'
    max_page_size = 200


def _content_schema(tag, serializer_class):
    return extend_schema_view(
        get=extend_schema(tags=[tag], responses={200: serializer_class}),
        post=extend_schema(tags=[tag], request=serializer_class, responses={201: serializer_class}),
        patch=extend_schema(tags=[tag], request=serializer_class, responses={200: serializer_class}),
        delete=extend_schema(tags=[tag], responses={204: None}),
    )


# ===== OPERATOR AREA =====

class CityContentListView(APIView):
    """
    Base view for a collection of city-owned content.

    GET lists the scope's rows, POST creates one in the scope's city.
    """
    access_area = AccessArea.OPERATOR
    permission_classes = [HasCityAccess]
    model = None
    serializer_class = None

    def get_queryset(self):
        return self.request.city_scope.queryset(self.model)

    def perform_create(self, data):
        return ContentService.save(self.request.city_scope, self.model, data)

    def get(self, request, locale, city):
        paginator = StandardResultsSetPagination()
        page = paginator.paginate_queryset(self.get_queryset(), request, view=self)
        return paginator.get_paginated_response(self.serializer_class(page, many=True).data)

    def post(self, request, locale, city):
        serializer = self.serializer_class(data=request.data)
        serializer.is_valid(raise_exception=True)
        instance = self.perform_create(serializer.validated_data)
        return Response(self.serializer_class(instance).data, status=status.HTTP_201_CREATED)


@requires_actions(DELETE=Action.DELETE_CONTENT)
class CityContentDetailView(APIView):
    """
    Base view for one row of city-owned content.

    Rows of other cities answer 404, exactly like missing rows.
    Deleting requires the admin role.
    """
    access_area = AccessArea.OPERATOR
    permission_classes = [HasCityAccess]
    model = None
    serializer_class = None

    def get_object(self, pk):
        instance = self.request.city_scope.get(self.model, pk)
        self.check_object_permissions(self.request, instance)
        return instance

    def perform_update(self, instance, data):
        return ContentService.save(self.request.city_scope, self.model, data, instance=instance)

    def get(self, request, locale, city, pk):
        return Response(self.serializer_class(self.get_object(pk)).data)

    def patch(self, request, locale, city, pk):
        instance = self.get_object(pk)
        serializer = self.serializer_class(instance, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        instance = self.perform_update(instance, serializer.validated_data)
        return Response(self.serializer_class(instance).data)

    def delete(self, request, locale, city, pk):
        request.city_scope.delete(self.get_object(pk))
        return Response(status=status.HTTP_204_NO_CONTENT)


@_content_schema('Operator - Language Families', LanguageFamilySerializer)
class LanguageFamilyListView(CityContentListView):
    model = LanguageFamily
    serializer_class = LanguageFamilySerializer


@_content_schema('Operator - Language Families', LanguageFamilySerializer)
class LanguageFamilyDetailView(CityContentDetailView):
    model = LanguageFamily
    serializer_class = LanguageFamilySerializer


@_content_schema('Operator - Languages', LanguageSerializer)
class LanguageListView(CityContentListView):
    model = Language
    serializer_class = LanguageSerializer

    def get_queryset(self):
        return super().get_queryset().prefetch_related('translations', 'taxonomy_values')


@_content_schema('Operator - Languages', LanguageSerializer)
class LanguageDetailView(CityContentDetailView):
    model = Language
    serializer_class = LanguageSerializer


@_content_schema('Operator - Districts', DistrictSerializer)
class DistrictListView(CityContentListView):
    model = District
    serializer_class = DistrictSerializer


@_content_schema('Operator - Districts', DistrictSerializer)
class DistrictDetailView(CityContentDetailView):
    model = District
    serializer_class = DistrictSerializer


@_content_schema('Operator - Neighborhoods', NeighborhoodSerializer)
class NeighborhoodListView(CityContentListView):
    model = Neighborhood
    serializer_class = NeighborhoodSerializer


@_content_schema('Operator - Neighborhoods', NeighborhoodSerializer)
class NeighborhoodDetailView(CityContentDetailView):
    model = Neighborhood
    serializer_class = NeighborhoodSerializer


@_content_schema('Operator - Language Points', LanguagePointSerializer)
class LanguagePointListView(CityContentListView):
    model = LanguagePoint
    serializer_class = LanguagePointSerializer

    def get_queryset(self):
        queryset = super().get_queryset()
        language = self.request.query_params.get('language')
        if language is not None:
            queryset = queryset.filter(language_id=_language_filter(language))
        return queryset


@_content_schema('Operator - Language Points', LanguagePointSerializer)
class LanguagePointDetailView(CityContentDetailView):
    model = LanguagePoint
    serializer_class = LanguagePointSerializer


@_content_schema('Operator - Taxonomies', TaxonomyTypeSerializer)
class TaxonomyTypeListView(CityContentListView):
    model = TaxonomyType
    serializer_class = TaxonomyTypeSerializer

    def get_queryset(self):
        return super().get_queryset().prefetch_related('translations')


@_content_schema('Operator - Taxonomies', TaxonomyTypeSerializer)
class TaxonomyTypeDetailView(CityContentDetailView):
    model = TaxonomyType
    serializer_class = TaxonomyTypeSerializer


@_content_schema('Operator - Taxonomies', TaxonomyValueSerializer)
class TaxonomyValueListView(CityContentListView):
    model = TaxonomyValue
    serializer_class = TaxonomyValueSerializer

    def get_queryset(self):
        queryset = super().get_queryset().prefetch_related('translations')
        taxonomy_type = self.request.query_params.get('taxonomy_type')
        if taxonomy_type is not None:
            queryset = queryset.filter(taxonomy_type_id=validate_uuid(taxonomy_type, 'taxonomy_type'))
        return queryset


@_content_schema('Operator - Taxonomies', TaxonomyValueSerializer)
class TaxonomyValueDetailView(CityContentDetailView):
    model = TaxonomyValue
    serializer_class = TaxonomyValueSerializer


@_content_schema('Operator - Descriptions', DescriptionSerializer)
class DescriptionListView(CityContentListView):
    model = Description
    serializer_class = DescriptionSerializer

    def get_queryset(self):
        queryset = super().get_queryset().prefetch_related('translations')
        language = self.request.query_params.get('language')
        if language is not None:
            queryset = queryset.filter(language_id=_language_filter(language))
        return queryset


@_content_schema('Operator - Descriptions', DescriptionSerializer)
class DescriptionDetailView(CityContentDetailView):
    model = Description
    serializer_class = DescriptionSerializer


@extend_schema(
    tags=['Operator - Dashboard'],
    summary='City dashboard',
    description='Content counts for the city and the caller\'s effective role.',
    responses={200: OpenApiTypes.OBJECT},
)
class OperatorDashboardView(APIView):
    """
    GET /{locale}/operator/{city}/
    """
    access_area = AccessArea.OPERATOR
    permission_classes = [HasCityAccess]

    def get(self, request, locale, city):
        scope = request.city_scope
        return Response({
            'city': scope.city_slug,
            'role': scope.role,
            'read_only': scope.read_only,
            'counts': {
                'language_families': scope.queryset(LanguageFamily).count(),
                'languages': scope.queryset(Language).count(),
                'districts': scope.queryset(District).count(),
                'neighborhoods': scope.queryset(Neighborhood).count(),
                'language_points': scope.queryset(LanguagePoint).count(),
                'taxonomy_types': scope.queryset(TaxonomyType).count(),
                'descriptions': scope.queryset(Description).count(),
            },
        })


# ===== ADMIN AREA =====

@extend_schema_view(
    get=extend_schema(
        tags=['Admin - Settings'],
        summary='City settings',
        responses={200: CitySerializer},
    ),
    patch=extend_schema(
        tags=['Admin - Settings'],
        summary='Update city settings',
        description='''
Change the map center, default zoom, country, and the per-locale names and
descriptions of the city. Slug and status cannot be changed here.

**Required role**: admin of the city (or superuser)
        ''',
        request=CitySettingsSerializer,
        responses={200: CitySerializer, 400: OpenApiTypes.OBJECT},
    ),
)
@requires_actions(GET=Action.MANAGE_SETTINGS, PATCH=Action.MANAGE_SETTINGS)
class CitySettingsView(APIView):
    """
    GET/PATCH /{locale}/admin/{city}/settings/
    """
    access_area = AccessArea.ADMIN
    permission_classes = [HasCityAccess]

    def get(self, request, locale, city):
        return Response(CitySerializer(scoped_city(request)).data)

    def patch(self, request, locale, city):
        serializer = CitySettingsSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        city_obj = CityService.update_settings(
            scoped_city(request),
            serializer.validated_data,
            updated_by=acting_user(request),
            request=request,
        )
        return Response(CitySerializer(city_obj).data)


# ===== SUPERUSER AREA =====


@extend_schema_view(
    get=extend_schema(
        tags=['Superuser - Cities'],
        summary='List cities',
        responses={200: CitySerializer(many=True)},
    ),
    post=extend_schema(
        tags=['Superuser - Cities'],
        summary='Create a city',
        description='''
Create a city with names (and optional descriptions) per locale.
An English name is required. New cities default to `draft` and are not
served on the public map until `active`.
        ''',
        request=CityCreateSerializer,
        responses={201: CitySerializer, 400: OpenApiTypes.OBJECT},
    ),
)
@requires_actions(GET=Action.CREATE_CITY, POST=Action.CREATE_CITY)
class CityListView(APIView):
    """
    GET/POST /{locale}/superuser/cities/
    """
    access_area = AccessArea.SUPERUSER
    permission_classes = [HasCityAccess]

    def get(self, request, locale):
        cities = City.objects.prefetch_related('translations')
        return Response({
            'count': cities.count(),
            'cities': CitySerializer(cities, many=True).data,
        })

    def post(self, request, locale):
        serializer = CityCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        city = CityService.create_city(
            created_by=acting_user(request),
            request=request,
            **serializer.validated_data,
        )
        return Response(CitySerializer(city).data, status=status.HTTP_201_CREATED)


# ===== PUBLIC MAP =====

def _language_filter(value):
    language_id = sanitize_uuid(value)
    if language_id is None:
        raise ValidationError('Invalid language filter', details={'language': 'must be a UUID'})
    return language_id


@extend_schema(
    tags=['Public Map'],
    summary='Language points as GeoJSON',
    description='''
Language points of an active city as a GeoJSON FeatureCollection, with
language names in the requested locale (falling back to English, then the
endonym) and the taxonomy values that style each marker.

**No authentication required.**
    ''',
    parameters=[
        OpenApiParameter(
            name='language',
            type=OpenApiTypes.UUID,
            location=OpenApiParameter.QUERY,
            description='Only points of this language',
            required=False,
        ),
        OpenApiParameter(
            name='taxonomyValue',
            type=OpenApiTypes.STR,
            location=OpenApiParameter.QUERY,
            description='Only points of languages carrying this taxonomy value slug',
            required=False,
        ),
    ],
    responses={200: OpenApiTypes.OBJECT, 400: OpenApiTypes.OBJECT, 404: OpenApiTypes.OBJECT},
)
class GeoJSONView(APIView):
    """
    GET /api/{locale}/{city}/geojson
    """
    access_area = AccessArea.PUBLIC
    authentication_classes = []
    permission_classes = [HasCityAccess]

    CACHE_CONTROL = 'public, max-age=300, stale-while-revalidate=600'

    def get(self, request, locale, city):
        scope = request.city_scope
        points = scope.queryset(LanguagePoint).select_related('language').prefetch_related(
            'language__translations', 'language__taxonomy_values__taxonomy_type'
        ).order_by('created_at')

        language = request.query_params.get('language')
        if language is not None:
            points = points.filter(language_id=_language_filter(language))

        taxonomy_value = request.query_params.get('taxonomyValue')
        if taxonomy_value is not None:
            points = points.filter(
                language__taxonomy_values__slug=validate_taxonomy_slug(taxonomy_value)
            ).distinct()

        features = [
            {
                'type': 'Feature',
                'geometry': {
                    'type': 'Point',
                    'coordinates': [point.longitude, point.latitude],
                },
                'properties': {
                    'id': str(point.id),
                    'languageId': str(point.language_id),
                    'languageName': point.language.name_for(locale),
                    'endonym': point.language.endonym,
                    'postalCode': point.postal_code or None,
                    'communityName': point.community_name or None,
                    'taxonomies': [
                        {
                            'typeSlug': value.taxonomy_type.slug,
                            'valueSlug': value.slug,
                            'color': value.color_hex,
                            'iconName': value.icon_name or None,
                            'iconSize': value.icon_size_multiplier,
                        }
                        for value in point.language.taxonomy_values.all()
                    ],
                },
            }
            for point in points
        ]

        response = Response({'type': 'FeatureCollection', 'features': features})
        response['Cache-Control'] = self.CACHE_CONTROL
        return response
