"""URL routes for the timeline app."""

from django.urls import path

from . import views

app_name = "timeline"

urlpatterns = [
    path("health", views.health_check, name="health_check"),
    # OAuth
    path("auth/signin", views.signin, name="signin"),
    path("auth/callback/linear", views.oauth_callback, name="oauth_callback"),
    path("auth/signout", views.signout, name="signout"),
    path("auth/session", views.session_state, name="session_state"),
    # Linear data
    path("issues", views.issues, name="issues"),
    path("users", views.users, name="users"),
    path("timeline", views.timeline, name="timeline"),
]
