"""
City and city-owned content models.

Implements:
- City with per-locale translations (en/nl/fr)
- CityOwnedModel: abstract base for every row that belongs to exactly one city
- Language families, languages (with per-locale names), districts,
  neighborhoods and language points
- Taxonomy types and values classifying languages, and per-language
  descriptions, each with per-locale translations
"""
from django.core.validators import MinValueValidator, MaxValueValidator
from django.db import models

from apps.core.exceptions import ValidationError
from apps.core.locales import Locale, DEFAULT_LOCALE
from apps.core.models import BaseModel


class CityStatus(models.TextChoices):
    DRAFT = 'draft', 'Draft'
    ACTIVE = 'active', 'Active'


class CityManager(models.Manager):
    """Manager for City queries."""

    def active(self):
        """Cities published on the public map."""
        return self.filter(status=CityStatus.ACTIVE)

    def by_slug(self, slug):
        return self.filter(slug=slug).first()


class City(BaseModel):
    """
    A city with its own map, content and team.

    Cities start as drafts; only active cities are served on the public map.
    """

    slug = models.SlugField(
        max_length=50,
        unique=True,
        db_index=True,
        help_text="URL identifier (lowercase letters, numbers, hyphens)"
    )
    country = models.CharField(max_length=100, blank=True)
    center_lat = models.FloatField(
        validators=[MinValueValidator(-90), MaxValueValidator(90)],
        default=0,
    )
    center_lng = models.FloatField(
        validators=[MinValueValidator(-180), MaxValueValidator(180)],
        default=0,
    )
    default_zoom = models.PositiveSmallIntegerField(default=12)
    status = models.CharField(
        max_length=20,
        choices=CityStatus.choices,
        default=CityStatus.DRAFT,
        db_index=True,
    )

    objects = CityManager()

    class Meta:
        db_table = 'cities'
        ordering = ['slug']
        verbose_name_plural = 'cities'

    def __str__(self):
        return self.slug

    def name_for(self, locale=DEFAULT_LOCALE):
        """Localized name, falling back to English and then the slug."""
        names = {t.locale_code: t.name for t in self.translations.all()}
        return names.get(locale) or names.get(DEFAULT_LOCALE) or self.slug


class CityTranslation(BaseModel):
    """Per-locale name and description of a city."""

    city = models.ForeignKey(City, on_delete=models.CASCADE, related_name='translations')
    locale_code = models.CharField(max_length=2, choices=Locale.choices)
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True)

    class Meta:
        db_table = 'city_translations'
        ordering = ['locale_code']
        constraints = [
            models.UniqueConstraint(fields=['city', 'locale_code'], name='unique_city_translation'),
        ]

    def __str__(self):
        return f"{self.city.slug} [{self.locale_code}] {self.name}"


class CityOwnedQuerySet(models.QuerySet):
    """QuerySet for city-owned rows."""

    def for_scope(self, scope):
        """
        Rows of the scope's city.

        Only accepts a CityScope issued by the authorization gate; raw city
        slugs or ids are refused.
        """
        from apps.cities.scoping import CityScope

        if not isinstance(scope, CityScope):
            raise TypeError('for_scope() requires a CityScope')
        return self.filter(city_id=scope.city_id)


class CityOwnedModel(BaseModel):
    """
    Abstract base for content that belongs to exactly one city.

    The city of a saved row can never change.
    """

    city = models.ForeignKey(City, on_delete=models.CASCADE)

    objects = CityOwnedQuerySet.as_manager()

    class Meta:
        abstract = True

    @classmethod
    def from_db(cls, db, field_names, values):
        instance = super().from_db(db, field_names, values)
        instance._loaded_city_id = instance.__dict__.get('city_id')
        return instance

    @classmethod
    def city_owned_relations(cls):
        """Foreign keys (other than city) pointing at other city-owned models."""
        return [
            field for field in cls._meta.concrete_fields
            if field.is_relation
            and field.name != 'city'
            and issubclass(field.related_model, CityOwnedModel)
        ]

    def save(self, *args, **kwargs):
        loaded_city_id = getattr(self, '_loaded_city_id', None)
        if loaded_city_id is not None and self.city_id != loaded_city_id:
            raise ValidationError(
                'The city of an existing record cannot be changed',
                details={'city': 'immutable'}
            )
        super().save(*args, **kwargs)
        self._loaded_city_id = self.city_id


class LanguageFamily(CityOwnedModel):
    slug = models.SlugField(max_length=100)
    name = models.CharField(max_length=255)

    class Meta:
        db_table = 'language_families'
        ordering = ['name']
        verbose_name_plural = 'language families'
        constraints = [
            models.UniqueConstraint(fields=['city', 'slug'], name='unique_family_slug_per_city'),
        ]

    def __str__(self):
        return self.name


class Language(CityOwnedModel):
    """
    A language spoken in a city.

    The endonym is the name in the language itself; per-locale display names
    live in LanguageTranslation.
    """

    endonym = models.CharField(max_length=255)
    iso_639_3_code = models.CharField(max_length=3, null=True, blank=True, db_index=True)
    speaker_count = models.PositiveIntegerField(null=True, blank=True)
    family = models.ForeignKey(
        LanguageFamily,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='languages',
    )
    taxonomy_values = models.ManyToManyField(
        'TaxonomyValue',
        through='LanguageTaxonomy',
        related_name='languages',
        blank=True,
    )

    translated_fields = {'names': 'name'}


    class Meta:
        db_table = 'languages'
        ordering = ['endonym']
        indexes = [
            models.Index(fields=['city', 'endonym']),
        ]

    def __str__(self):
        return self.endonym

    def name_for(self, locale=DEFAULT_LOCALE):
        """Localized name, falling back to English and then the endonym."""
        names = {t.locale_code: t.name for t in self.translations.all()}
        return names.get(locale) or names.get(DEFAULT_LOCALE) or self.endonym


class LanguageTranslation(BaseModel):
    """Per-locale display name of a language."""

    language = models.ForeignKey(Language, on_delete=models.CASCADE, related_name='translations')
    locale_code = models.CharField(max_length=2, choices=Locale.choices)
    name = models.CharField(max_length=255)

    class Meta:
        db_table = 'language_translations'
        ordering = ['locale_code']
        constraints = [
            models.UniqueConstraint(
                fields=['language', 'locale_code'], name='unique_language_translation'
            ),
        ]

    def __str__(self):
        return f"{self.language.endonym} [{self.locale_code}] {self.name}"


class District(CityOwnedModel):
    slug = models.SlugField(max_length=100)
    name = models.CharField(max_length=255)

    class Meta:
        db_table = 'districts'
        ordering = ['name']
        constraints = [
            models.UniqueConstraint(fields=['city', 'slug'], name='unique_district_slug_per_city'),
        ]

    def __str__(self):
        return self.name


class Neighborhood(CityOwnedModel):
    district = models.ForeignKey(District, on_delete=models.CASCADE, related_name='neighborhoods')
    slug = models.SlugField(max_length=100)
    name = models.CharField(max_length=255)

    class Meta:
        db_table = 'neighborhoods'
        ordering = ['name']
        constraints = [
            models.UniqueConstraint(fields=['city', 'slug'], name='unique_neighborhood_slug_per_city'),
        ]

    def __str__(self):
        return self.name


class LanguagePoint(CityOwnedModel):
    """A location where a language community is present."""

    language = models.ForeignKey(Language, on_delete=models.CASCADE, related_name='points')
    neighborhood = models.ForeignKey(
        Neighborhood,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='language_points',
    )
    latitude = models.FloatField(validators=[MinValueValidator(-90), MaxValueValidator(90)])
    longitude = models.FloatField(validators=[MinValueValidator(-180), MaxValueValidator(180)])
    postal_code = models.CharField(max_length=20, blank=True)
    community_name = models.CharField(max_length=255, blank=True)

    class Meta:
        db_table = 'language_points'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['city', 'language']),
        ]

    def __str__(self):
        return f"{self.language.endonym} @ {self.latitude},{self.longitude}"


class TaxonomyType(CityOwnedModel):
    """
    A way of classifying the languages of a city (for example by community
    size or by status).

    Types flagged ``use_for_map_styling`` drive marker colors and icons;
    ``use_for_filtering`` types are offered as map filters.
    """

    slug = models.SlugField(max_length=100)
    is_required = models.BooleanField(default=False)
    allow_multiple = models.BooleanField(default=False)
    use_for_map_styling = models.BooleanField(default=False)
    use_for_filtering = models.BooleanField(default=True)
    display_order = models.PositiveIntegerField(default=0)

    translated_fields = {'names': 'name', 'descriptions': 'description'}

    class Meta:
        db_table = 'taxonomy_types'
        ordering = ['display_order', 'slug']
        constraints = [
            models.UniqueConstraint(fields=['city', 'slug'], name='unique_taxonomy_type_slug_per_city'),
        ]

    def __str__(self):
        return self.slug


class TaxonomyTypeTranslation(BaseModel):
    taxonomy_type = models.ForeignKey(TaxonomyType, on_delete=models.CASCADE, related_name='translations')
    locale_code = models.CharField(max_length=2, choices=Locale.choices)
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True)

    class Meta:
        db_table = 'taxonomy_type_translations'
        ordering = ['locale_code']
        constraints = [
            models.UniqueConstraint(
                fields=['taxonomy_type', 'locale_code'], name='unique_taxonomy_type_translation'
            ),
        ]


class TaxonomyValue(CityOwnedModel):
    """One value of a taxonomy type, with its map styling."""

    taxonomy_type = models.ForeignKey(TaxonomyType, on_delete=models.CASCADE, related_name='values')
    slug = models.SlugField(max_length=100)
    color_hex = models.CharField(max_length=7, default='#CCCCCC')
    icon_name = models.CharField(max_length=50, blank=True)
    icon_size_multiplier = models.FloatField(
        default=1.0,
        validators=[MinValueValidator(0.5), MaxValueValidator(3.0)],
    )
    display_order = models.PositiveIntegerField(default=0)

    translated_fields = {'names': 'name'}

    class Meta:
        db_table = 'taxonomy_values'
        ordering = ['display_order', 'slug']
        constraints = [
            models.UniqueConstraint(fields=['taxonomy_type', 'slug'], name='unique_taxonomy_value_slug_per_type'),
        ]

    def __str__(self):
        return f"{self.taxonomy_type.slug}:{self.slug}"

    def name_for(self, locale=DEFAULT_LOCALE):
        names = {t.locale_code: t.name for t in self.translations.all()}
        return names.get(locale) or names.get(DEFAULT_LOCALE) or self.slug


class TaxonomyValueTranslation(BaseModel):
    taxonomy_value = models.ForeignKey(TaxonomyValue, on_delete=models.CASCADE, related_name='translations')
    locale_code = models.CharField(max_length=2, choices=Locale.choices)
    name = models.CharField(max_length=255)

    class Meta:
        db_table = 'taxonomy_value_translations'
        ordering = ['locale_code']
        constraints = [
            models.UniqueConstraint(
                fields=['taxonomy_value', 'locale_code'], name='unique_taxonomy_value_translation'
            ),
        ]


class LanguageTaxonomy(BaseModel):
    """Assignment of a taxonomy value to a language."""

    language = models.ForeignKey(Language, on_delete=models.CASCADE)
    taxonomy_value = models.ForeignKey(TaxonomyValue, on_delete=models.CASCADE)

    class Meta:
        db_table = 'language_taxonomies'
        constraints = [
            models.UniqueConstraint(
                fields=['language', 'taxonomy_value'], name='unique_language_taxonomy'
            ),
        ]


class Description(CityOwnedModel):
    """
    Long-form text about a language, either city-wide (no neighborhood) or
    for one neighborhood. At most one of each per language.
    """

    language = models.ForeignKey(Language, on_delete=models.CASCADE, related_name='descriptions')
    neighborhood = models.ForeignKey(
        Neighborhood,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='descriptions',
    )
    is_ai_generated = models.BooleanField(default=False)

    translated_fields = {'texts': 'text'}

    class Meta:
        db_table = 'descriptions'
        ordering = ['-created_at']
        constraints = [
            models.UniqueConstraint(
                fields=['city', 'language', 'neighborhood'],
                condition=models.Q(neighborhood__isnull=False),
                name='unique_neighborhood_description',
            ),
            models.UniqueConstraint(
                fields=['city', 'language'],
                condition=models.Q(neighborhood__isnull=True),
                name='unique_city_wide_description',
            ),
        ]

    def __str__(self):
        return f"{self.language.endonym} ({self.neighborhood or 'city-wide'})"


class DescriptionTranslation(BaseModel):
    description = models.ForeignKey(Description, on_delete=models.CASCADE, related_name='translations')
    locale_code = models.CharField(max_length=2, choices=Locale.choices)
    text = models.TextField()

    class Meta:
        db_table = 'description_translations'
        ordering = ['locale_code']
        constraints = [
            models.UniqueConstraint(
                fields=['description', 'locale_code'], name='unique_description_translation'
            ),
        ]
