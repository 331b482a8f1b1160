"""
Serializers for cities and city-owned content.

Serializers validate and sanitize input only; writes go through the
request's CityScope so the city is never taken from the payload.
"""
import re

from rest_framework import serializers

from apps.core.exceptions import ValidationError
from apps.core.locales import SUPPORTED_LOCALES
from apps.core.sanitization import (
    VALIDATION_LIMITS, sanitize_description, sanitize_slug, sanitize_text,
)
from apps.core.validators import validate_city_slug, validate_iso_639_3
from apps.cities.models import (
    City, CityStatus, Description, District, Language, LanguageFamily, LanguagePoint,
    Neighborhood, TaxonomyType, TaxonomyValue,
)

COLOR_HEX_PATTERN = re.compile(r'#[0-9A-Fa-f]{6}')


def _required_text(value, field, max_length=VALIDATION_LIMITS['NAME_MAX_LENGTH']):
    text = sanitize_text(value, max_length)
    if not text:
        raise serializers.ValidationError(f"{field} cannot be empty.")
    return text


def _required_slug(value):
    slug = sanitize_slug(value)
    if not slug:
        raise serializers.ValidationError("Slug must contain letters or numbers.")
    return slug


class LocalizedNamesField(serializers.DictField):
    """``{"en": ..., "nl": ..., "fr": ...}``; unknown locales are rejected."""

    child = serializers.CharField(max_length=VALIDATION_LIMITS['NAME_MAX_LENGTH'])

    def to_internal_value(self, data):
        names = super().to_internal_value(data)
        unknown = set(names) - set(SUPPORTED_LOCALES)
        if unknown:
            raise serializers.ValidationError(f"Unsupported locales: {', '.join(sorted(unknown))}")
        return {locale: sanitize_text(name) for locale, name in names.items() if sanitize_text(name)}


class TranslatedFieldsMixin:
    """Adds the model's per-locale translation columns on read."""

    def to_representation(self, instance):
        data = super().to_representation(instance)
        translations = list(instance.translations.all())
        for key, column in type(instance).translated_fields.items():
            data[key] = {t.locale_code: getattr(t, column) for t in translations if getattr(t, column)}
        return data


# ===== CONTENT SERIALIZERS =====


class LanguageFamilySerializer(serializers.ModelSerializer):

    class Meta:
        model = LanguageFamily
        fields = ['id', 'slug', 'name', 'created_at', 'updated_at']
        read_only_fields = ['id', 'created_at', 'updated_at']

    def validate_slug(self, value):
        return _required_slug(value)

    def validate_name(self, value):
        return _required_text(value, 'Name')


class LanguageSerializer(TranslatedFieldsMixin, serializers.ModelSerializer):
    """
    Language with its per-locale display names and taxonomy values.

    ``names`` is written to LanguageTranslation rows; on read it contains
    every stored locale. ``taxonomy_value_ids`` replaces the assigned
    values when given.
    """

    family_id = serializers.UUIDField(required=False, allow_null=True)
    names = LocalizedNamesField(required=False)
    taxonomy_value_ids = serializers.ListField(child=serializers.UUIDField(), required=False)

    class Meta:
        model = Language
        fields = [
            'id', 'endonym', 'iso_639_3_code', 'speaker_count', 'family_id',
            'names', 'taxonomy_value_ids', 'created_at', 'updated_at',
        ]
        read_only_fields = ['id', 'created_at', 'updated_at']

    def validate_endonym(self, value):
        return _required_text(value, 'Endonym', VALIDATION_LIMITS['ENDONYM_MAX_LENGTH'])

    def validate_iso_639_3_code(self, value):
        try:
            return validate_iso_639_3(value)
        except ValidationError as e:
            raise serializers.ValidationError(e.message)

    def to_representation(self, instance):
        data = super().to_representation(instance)
        data['taxonomy_value_ids'] = [str(value.pk) for value in instance.taxonomy_values.all()]
        return data


class DistrictSerializer(serializers.ModelSerializer):

    class Meta:
        model = District
        fields = ['id', 'slug', 'name', 'created_at', 'updated_at']
        read_only_fields = ['id', 'created_at', 'updated_at']

    def validate_slug(self, value):
        return _required_slug(value)

    def validate_name(self, value):
        return _required_text(value, 'Name')


class NeighborhoodSerializer(serializers.ModelSerializer):
    district_id = serializers.UUIDField()

    class Meta:
        model = Neighborhood
        fields = ['id', 'district_id', 'slug', 'name', 'created_at', 'updated_at']
        read_only_fields = ['id', 'created_at', 'updated_at']

    def validate_slug(self, value):
        return _required_slug(value)

    def validate_name(self, value):
        return _required_text(value, 'Name')


class LanguagePointSerializer(serializers.ModelSerializer):
    language_id = serializers.UUIDField()
    neighborhood_id = serializers.UUIDField(required=False, allow_null=True)
    latitude = serializers.FloatField(min_value=-90, max_value=90)
    longitude = serializers.FloatField(min_value=-180, max_value=180)

    class Meta:
        model = LanguagePoint
        fields = [
            'id', 'language_id', 'neighborhood_id', 'latitude', 'longitude',
            'postal_code', 'community_name', 'created_at', 'updated_at',
        ]
        read_only_fields = ['id', 'created_at', 'updated_at']

    def validate_postal_code(self, value):
        return sanitize_text(value, 20)

    def validate_community_name(self, value):
        return sanitize_text(value)


class TaxonomyTypeSerializer(TranslatedFieldsMixin, serializers.ModelSerializer):
    names = LocalizedNamesField(required=False)
    descriptions = serializers.DictField(child=serializers.CharField(allow_blank=True), required=False)

    class Meta:
        model = TaxonomyType
        fields = [
            'id', 'slug', 'is_required', 'allow_multiple', 'use_for_map_styling',
            'use_for_filtering', 'display_order', 'names', 'descriptions',
            'created_at', 'updated_at',
        ]
        read_only_fields = ['id', 'created_at', 'updated_at']

    def validate_slug(self, value):
        return _required_slug(value)

    def validate_descriptions(self, value):
        return _localized_descriptions(value)


class TaxonomyValueSerializer(TranslatedFieldsMixin, serializers.ModelSerializer):
    taxonomy_type_id = serializers.UUIDField()
    icon_size_multiplier = serializers.FloatField(min_value=0.5, max_value=3.0, required=False)
    names = LocalizedNamesField(required=False)

    class Meta:
        model = TaxonomyValue
        fields = [
            'id', 'taxonomy_type_id', 'slug', 'color_hex', 'icon_name',
            'icon_size_multiplier', 'display_order', 'names', 'created_at', 'updated_at',
        ]
        read_only_fields = ['id', 'created_at', 'updated_at']

    def validate_slug(self, value):
        return _required_slug(value)

    def validate_color_hex(self, value):
        if not COLOR_HEX_PATTERN.fullmatch(value):
            raise serializers.ValidationError("Color must be a hex color such as #FFA500.")
        return value.upper()

    def validate_icon_name(self, value):
        return sanitize_text(value, 50)


class DescriptionSerializer(TranslatedFieldsMixin, serializers.ModelSerializer):
    """A language description with its text per locale."""

    language_id = serializers.UUIDField()
    neighborhood_id = serializers.UUIDField(required=False, allow_null=True)
    texts = serializers.DictField(child=serializers.CharField(), required=False)

    class Meta:
        model = Description
        fields = [
            'id', 'language_id', 'neighborhood_id', 'is_ai_generated', 'texts',
            'created_at', 'updated_at',
        ]
        read_only_fields = ['id', 'created_at', 'updated_at']

    def validate_texts(self, value):
        texts = _localized_descriptions(value)
        empty = sorted(locale for locale, text in texts.items() if not text)
        if empty:
            raise serializers.ValidationError(f"Text cannot be empty: {', '.join(empty)}")
        return texts


# ===== CITY SERIALIZERS =====


def _localized_descriptions(value):
    unknown = set(value) - set(SUPPORTED_LOCALES)
    if unknown:
        raise serializers.ValidationError(f"Unsupported locales: {', '.join(sorted(unknown))}")
    return {locale: sanitize_description(text) for locale, text in value.items()}


class CitySerializer(serializers.ModelSerializer):
    """City with names and descriptions per locale."""

    names = serializers.SerializerMethodField()
    descriptions = serializers.SerializerMethodField()

    class Meta:
        model = City
        fields = [
            'id', 'slug', 'country', 'center_lat', 'center_lng', 'default_zoom',
            'status', 'names', 'descriptions', 'created_at',
        ]
        read_only_fields = fields

    def get_names(self, obj):
        return {t.locale_code: t.name for t in obj.translations.all()}

    def get_descriptions(self, obj):
        return {t.locale_code: t.description for t in obj.translations.all() if t.description}


class CityCreateSerializer(serializers.Serializer):
    """Serializer for creating a city with its translations."""

    slug = serializers.CharField(max_length=50)
    country = serializers.CharField(max_length=100, required=False, allow_blank=True, default='')
    center_lat = serializers.FloatField(min_value=-90, max_value=90)
    center_lng = serializers.FloatField(min_value=-180, max_value=180)
    default_zoom = serializers.IntegerField(min_value=1, max_value=22, default=12)
    status = serializers.ChoiceField(choices=CityStatus.choices, default=CityStatus.DRAFT)
    names = LocalizedNamesField()
    descriptions = serializers.DictField(child=serializers.CharField(allow_blank=True), required=False)

    def validate_slug(self, value):
        try:
            slug = validate_city_slug(value)
        except ValidationError as e:
            raise serializers.ValidationError(e.message)
        if City.objects.filter(slug=slug).exists():
            raise serializers.ValidationError("A city with this slug already exists.")
        return slug

    def validate_country(self, value):
        return sanitize_text(value, 100)

    def validate_names(self, value):
        if 'en' not in value:
            raise serializers.ValidationError("An English name is required.")
        return value

    def validate_descriptions(self, value):
        return _localized_descriptions(value)


class CitySettingsSerializer(serializers.Serializer):
    """
    Partial update of a city's map settings and translations.

    Slug and status are not editable here; publishing a city is a
    superuser operation.
    """

    country = serializers.CharField(max_length=100, required=False, allow_blank=True)
    center_lat = serializers.FloatField(min_value=-90, max_value=90, required=False)
    center_lng = serializers.FloatField(min_value=-180, max_value=180, required=False)
    default_zoom = serializers.IntegerField(min_value=1, max_value=22, required=False)
    names = LocalizedNamesField(required=False)
    descriptions = serializers.DictField(child=serializers.CharField(allow_blank=True), required=False)

    def validate_country(self, value):
        return sanitize_text(value, 100)

    def validate_descriptions(self, value):
        return _localized_descriptions(value)

    def validate(self, attrs):
        if not attrs:
            raise serializers.ValidationError("Nothing to update.")
        return attrs
