"""URL configuration for the sports day site."""
from django.contrib import admin
from django.urls import include, path

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api-auth/', include('rest_framework.urls')),
    path('api/sportsday/', include('sportsday.urls')),
]
