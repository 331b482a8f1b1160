"""
Public map URLs, mounted under /api/{locale}/.
"""
from django.urls import path
from apps.cities.views import GeoJSONView

app_name = 'public'

urlpatterns = [
    path('<str:city>/geojson', GeoJSONView.as_view(), name='geojson'),
]
