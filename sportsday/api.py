"""REST API views for sports day management, public boards and guardians."""

from __future__ import annotations

import logging
from typing import Any, Dict

from django.conf import settings
from django.db import DatabaseError
from django.db.models import ProtectedError
from rest_framework import permissions, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response
from rest_framework.views import APIView

from . import models, serializers, services
from .permissions import IsGuardian, IsManager

logger = logging.getLogger(__name__)


def _flag(value: str | None) -> bool | None:
    if value is None or value == "":
        return None
    return value.lower() in ("1", "true", "yes")


class ProtectedDestroyMixin:
    """Turn ``PROTECT`` foreign key failures into a 400 response."""

    protected_message = "This record is still referenced and cannot be deleted."

    def destroy(self, request, *args, **kwargs):
        try:
            return super().destroy(request, *args, **kwargs)
        except ProtectedError:
            return Response({"detail": self.protected_message}, status=status.HTTP_400_BAD_REQUEST)


class HouseViewSet(ProtectedDestroyMixin, viewsets.ModelViewSet):
    queryset = models.House.objects.all().select_related("captain__sportsday_profile")
    serializer_class = serializers.HouseSerializer
    permission_classes = [IsManager]
    protected_message = "Houses with participants cannot be deleted."

    def retrieve(self, request, *args, **kwargs):
        house = self.get_object()
        payload = self.get_serializer(house).data
        payload["rank"] = services.house_rank(house)
        payload["recent_results"] = serializers.ResultSerializer(
            house.results.select_related("event", "event__sport", "participant", "house")
            .order_by("-created_at", "-pk")[:5],
            many=True,
        ).data
        return Response(payload)


class SportViewSet(ProtectedDestroyMixin, viewsets.ModelViewSet):
    queryset = models.Sport.objects.all()
    serializer_class = serializers.SportSerializer
    permission_classes = [IsManager]
    protected_message = "Sports with events cannot be deleted."

    def get_queryset(self):
        queryset = super().get_queryset()
        active = _flag(self.request.query_params.get("active"))
        if active is not None:
            queryset = queryset.filter(is_active=active)
        return queryset


class EventViewSet(viewsets.ModelViewSet):
    queryset = models.Event.objects.all().select_related("sport")
    serializer_class = serializers.EventSerializer
    permission_classes = [IsManager]
    lookup_value_regex = r"\d+"

    def get_queryset(self):
        queryset = super().get_queryset()
        status_filter = self.request.query_params.get("status")
        if status_filter:
            queryset = queryset.filter(status=status_filter)
        sport = self.request.query_params.get("sport")
        if sport:
            queryset = queryset.filter(sport_id=sport)
        return queryset

    def perform_destroy(self, instance):
        services.delete_event(instance)

    @action(detail=True, methods=["get", "put"])
    def participants(self, request, pk=None):
        event = self.get_object()
        if request.method == "PUT":
            serializer = serializers.EnrollmentUpdateSerializer(data=request.data)
            serializer.is_valid(raise_exception=True)
            try:
                services.set_event_participants(event, serializer.validated_data["participant_ids"])
            except services.EnrollmentError as exc:
                return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)
        enrollments = event.enrollments.select_related("participant__house")
        return Response(serializers.EnrollmentSerializer(enrollments, many=True).data)

    @action(detail=True, methods=["get"])
    def results(self, request, pk=None):
        event = self.get_object()
        results = event.results.select_related("event", "event__sport", "participant", "house")
        return Response(serializers.ResultSerializer(results, many=True).data)

    @action(detail=True, methods=["post"], url_path="record-results")
    def record_results(self, request, pk=None):
        serializer = serializers.RecordResultsSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            outcome = services.record_event_results(pk, serializer.validated_data["assignments"])
        except services.EventNotFoundError as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_404_NOT_FOUND)
        except services.ResultsValidationError as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)
        except DatabaseError:
            logger.exception("saving results for event %s failed", pk)
            return Response(
                {"detail": "Failed to save results"},
                status=status.HTTP_503_SERVICE_UNAVAILABLE,
            )

        results = (
            models.Result.objects.filter(event_id=outcome.event.pk)
            .select_related("event", "event__sport", "participant", "house")
        )
        return Response(
            {
                "event": serializers.EventSerializer(outcome.event).data,
                "results": serializers.ResultSerializer(results, many=True).data,
                "house_deltas": {str(house_id): delta for house_id, delta in outcome.house_deltas.items()},
            }
        )


class ParticipantViewSet(ProtectedDestroyMixin, viewsets.ModelViewSet):
    queryset = models.Participant.objects.all().select_related("house")
    serializer_class = serializers.ParticipantSerializer
    permission_classes = [IsManager]

    def get_queryset(self):
        queryset = super().get_queryset()
        house = self.request.query_params.get("house")
        if house:
            queryset = queryset.filter(house_id=house)
        active = _flag(self.request.query_params.get("active"))
        if active is not None:
            queryset = queryset.filter(is_active=active)
        return queryset

    def perform_destroy(self, instance):
        services.delete_participant(instance)

    @action(detail=True, methods=["get"])
    def history(self, request, pk=None):
        participant = self.get_object()
        summary = services.participant_summary(participant)
        payload = serializers.ParticipantSummarySerializer(summary).data
        payload["results"] = serializers.ResultSerializer(summary.results, many=True).data
        return Response(payload)


class DashboardView(APIView):
    permission_classes = [IsManager]

    def get(self, request):
        return Response(
            {
                "counts": services.dashboard_counts(),
                "standings": serializers.StandingSerializer(services.house_standings(), many=True).data,
                "recent_results": serializers.ResultSerializer(services.recent_results(), many=True).data,
            }
        )


class ScoreboardView(APIView):
    permission_classes = [IsManager]

    def get(self, request):
        completed = models.Event.objects.filter(status=models.Event.Status.COMPLETED).select_related("sport")
        return Response(
            {
                "standings": serializers.StandingSerializer(services.house_standings(), many=True).data,
                "recent_results": serializers.ResultSerializer(services.recent_results(), many=True).data,
                "completed_events": serializers.EventSerializer(completed, many=True).data,
            }
        )


# ---------------------------------------------------------------------------
# Public boards
# ---------------------------------------------------------------------------
class PublicStandingsView(APIView):
    permission_classes = [permissions.AllowAny]

    def get(self, request):
        return Response(serializers.StandingSerializer(services.house_standings(), many=True).data)


class PublicScheduleView(APIView):
    permission_classes = [permissions.AllowAny]

    def get(self, request):
        days = services.schedule_by_date()
        return Response(
            [
                {
                    "date": day["date"],
                    "events": serializers.ScheduledEventSerializer(day["events"], many=True).data,
                }
                for day in days
            ]
        )


class PublicResultsView(APIView):
    permission_classes = [permissions.AllowAny]

    def get(self, request):
        results = services.recent_results(settings.SPORTSDAY_PUBLIC_RESULTS_LIMIT)
        return Response(
            {
                "standings": serializers.StandingSerializer(services.house_standings(), many=True).data,
                "recent_results": serializers.ResultSerializer(results, many=True).data,
                "completed_events": models.Event.objects.filter(
                    status=models.Event.Status.COMPLETED
                ).count(),
            }
        )


class PublicRecordsView(APIView):
    permission_classes = [permissions.AllowAny]

    def get(self, request):
        grouped = services.top_performers_by_category()
        return Response(
            {
                "medal_table": serializers.StandingSerializer(services.house_standings(), many=True).data,
                "top_performers": {
                    category: serializers.ResultSerializer(results, many=True).data
                    for category, results in grouped.items()
                },
                "recent_podium": serializers.ResultSerializer(
                    services.recent_results(podium_only=True), many=True
                ).data,
            }
        )


class PublicParticipantsView(APIView):
    permission_classes = [permissions.AllowAny]

    def get(self, request):
        participants = models.Participant.objects.filter(is_active=True).select_related("house")
        houses: Dict[int, Dict[str, Any]] = {}
        for participant in participants.order_by("house__name", "full_name"):
            entry = houses.setdefault(
                participant.house_id,
                {
                    "house": participant.house_id,
                    "house_name": participant.house.name,
                    "house_color": participant.house.color,
                    "participants": [],
                },
            )
            entry["participants"].append(participant)
        payload = []
        for entry in houses.values():
            members = entry.pop("participants")
            entry["participant_count"] = len(members)
            entry["average_age"] = round(sum(member.age for member in members) / len(members), 1)
            entry["participants"] = serializers.PublicParticipantSerializer(members, many=True).data
            payload.append(entry)
        return Response(payload)


class PublicSearchView(APIView):
    permission_classes = [permissions.AllowAny]

    def get(self, request):
        term = request.query_params.get("q", "")
        kind = request.query_params.get("type", "all")
        try:
            found = services.search(term, kind)
        except ValueError as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)
        return Response(
            {
                "query": term,
                "type": kind,
                "participants": serializers.PublicParticipantSerializer(
                    found["participants"], many=True
                ).data,
                "events": serializers.EventSerializer(found["events"], many=True).data,
                "results": serializers.ResultSerializer(found["results"], many=True).data,
            }
        )


# ---------------------------------------------------------------------------
# Guardians
# ---------------------------------------------------------------------------
class GuardianChildViewSet(viewsets.ReadOnlyModelViewSet):
    serializer_class = serializers.ParticipantSerializer
    permission_classes = [IsGuardian]

    def get_queryset(self):
        return models.Participant.objects.filter(
            guardian=self.request.user, is_active=True
        ).select_related("house")

    def list(self, request, *args, **kwargs):
        summaries = [services.participant_summary(child) for child in self.get_queryset()]
        return Response(serializers.ParticipantSummarySerializer(summaries, many=True).data)

    def retrieve(self, request, *args, **kwargs):
        child = self.get_object()
        summary = services.participant_summary(child)
        payload: Dict[str, Any] = serializers.ParticipantSummarySerializer(summary).data
        payload["house_rank"] = services.house_rank(child.house)
        return Response(payload)

    @action(detail=True, methods=["get"])
    def events(self, request, pk=None):
        child = self.get_object()
        outcomes = {result.event_id: result for result in child.results.all()}
        enrollments = child.enrollments.select_related("event", "event__sport")
        rows = []
        for enrollment in enrollments:
            event = enrollment.event
            event.display_status = services.event_display_status(event)
            result = outcomes.get(event.pk)
            rows.append(
                {
                    "event": event,
                    "position": result.position if result else None,
                    "points_awarded": result.points_awarded if result else None,
                }
            )
        return Response(serializers.ChildEventSerializer(rows, many=True).data)

    @action(detail=True, methods=["get"])
    def results(self, request, pk=None):
        child = self.get_object()
        results = child.results.select_related(
            "event", "event__sport", "participant", "house"
        ).order_by("-created_at", "-pk")
        return Response(serializers.ResultSerializer(results, many=True).data)
