"""Root URL configuration for Linear Timeline."""

from django.urls import include, path

from timeline import views

urlpatterns = [
    path("", views.index, name="index"),
    path("api/", include("timeline.urls")),
]
