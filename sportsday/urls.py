"""URL configuration for the sportsday app."""
from django.urls import path
from rest_framework.routers import DefaultRouter

from . import api, views

app_name = "sportsday"

router = DefaultRouter()
router.register(r"houses", api.HouseViewSet, basename="house")
router.register(r"sports", api.SportViewSet, basename="sport")
router.register(r"events", api.EventViewSet, basename="event")
router.register(r"participants", api.ParticipantViewSet, basename="participant")
router.register(r"guardian/children", api.GuardianChildViewSet, basename="guardian-child")

urlpatterns = [
    path("dashboard/", api.DashboardView.as_view(), name="dashboard"),
    path("scoreboard/", api.ScoreboardView.as_view(), name="scoreboard"),
    path("public/standings/", api.PublicStandingsView.as_view(), name="public-standings"),
    path("public/schedule/", api.PublicScheduleView.as_view(), name="public-schedule"),
    path("public/results/", api.PublicResultsView.as_view(), name="public-results"),
    path("public/records/", api.PublicRecordsView.as_view(), name="public-records"),
    path("public/participants/", api.PublicParticipantsView.as_view(), name="public-participants"),
    path("public/search/", api.PublicSearchView.as_view(), name="public-search"),
    path("exports/results.csv", views.export_results_csv, name="export-results-csv"),
    path("exports/standings.csv", views.export_standings_csv, name="export-standings-csv"),
]

urlpatterns += router.urls
