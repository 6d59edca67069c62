"""Serializers for the sportsday REST endpoints."""

from __future__ import annotations

from typing import Any, Dict

from django.contrib.auth import get_user_model
from rest_framework import serializers

from . import models
from .permissions import MANAGER_ROLES


class HouseSerializer(serializers.ModelSerializer):
    captain = serializers.PrimaryKeyRelatedField(
        queryset=get_user_model().objects.all(), allow_null=True, required=False
    )
    captain_name = serializers.SerializerMethodField()
    participant_count = serializers.SerializerMethodField()

    class Meta:
        model = models.House
        fields = [
            "id",
            "name",
            "color",
            "total_points",
            "captain",
            "captain_name",
            "participant_count",
            "created_at",
            "updated_at",
        ]
        read_only_fields = ["total_points", "created_at", "updated_at"]

    def validate_captain(self, user):
        if user is None or user.is_staff:
            return user
        profile = getattr(user, "sportsday_profile", None)
        if profile is None or profile.role not in MANAGER_ROLES:
            raise serializers.ValidationError("Captains must be admins or house captains.")
        return user

    def get_captain_name(self, obj: models.House) -> str | None:
        if obj.captain is None:
            return None
        profile = getattr(obj.captain, "sportsday_profile", None)
        return (profile.full_name if profile else "") or obj.captain.get_username()

    def get_participant_count(self, obj: models.House) -> int:
        annotated = getattr(obj, "participant_count", None)
        if annotated is not None:
            return annotated
        return obj.participants.filter(is_active=True).count()


class StandingSerializer(serializers.Serializer):
    id = serializers.IntegerField()
    name = serializers.CharField()
    color = serializers.CharField()
    total_points = serializers.IntegerField()
    rank = serializers.IntegerField()
    gold = serializers.IntegerField()
    silver = serializers.IntegerField()
    bronze = serializers.IntegerField()
    total_medals = serializers.IntegerField()
    participant_count = serializers.IntegerField()


class SportSerializer(serializers.ModelSerializer):
    events_count = serializers.SerializerMethodField()

    class Meta:
        model = models.Sport
        fields = [
            "id",
            "name",
            "category",
            "max_participants_per_house",
            "points_first",
            "points_second",
            "points_third",
            "is_active",
            "events_count",
            "created_at",
            "updated_at",
        ]
        read_only_fields = ["created_at", "updated_at"]

    def get_events_count(self, obj: models.Sport) -> int:
        return obj.events.count()


class EventSerializer(serializers.ModelSerializer):
    sport_name = serializers.CharField(source="sport.name", read_only=True)
    sport_category = serializers.CharField(source="sport.category", read_only=True)
    participants_count = serializers.SerializerMethodField()
    results_count = serializers.SerializerMethodField()

    class Meta:
        model = models.Event
        fields = [
            "id",
            "name",
            "sport",
            "sport_name",
            "sport_category",
            "scheduled_time",
            "location",
            "status",
            "participants_count",
            "results_count",
            "created_at",
            "updated_at",
        ]
        read_only_fields = ["created_at", "updated_at"]

    def validate_status(self, value: str) -> str:
        current = self.instance.status if self.instance else None
        if value == current:
            return value
        if value == models.Event.Status.COMPLETED:
            raise serializers.ValidationError(
                "Events are completed by recording their results."
            )
        if current is None:
            return value
        if value not in models.STATUS_TRANSITIONS.get(current, set()):
            raise serializers.ValidationError(
                f"Cannot move an event from {current} to {value}."
            )
        return value

    def get_participants_count(self, obj: models.Event) -> int:
        return obj.enrollments.count()

    def get_results_count(self, obj: models.Event) -> int:
        return obj.results.count()


class ParticipantSerializer(serializers.ModelSerializer):
    house_name = serializers.CharField(source="house.name", read_only=True)
    house_color = serializers.CharField(source="house.color", read_only=True)
    guardian = serializers.PrimaryKeyRelatedField(
        queryset=get_user_model().objects.all(), allow_null=True, required=False
    )

    class Meta:
        model = models.Participant
        fields = [
            "id",
            "full_name",
            "age",
            "house",
            "house_name",
            "house_color",
            "guardian",
            "guardian_email",
            "is_active",
            "created_at",
            "updated_at",
        ]
        read_only_fields = ["created_at", "updated_at"]


class PublicParticipantSerializer(serializers.ModelSerializer):
    house_name = serializers.CharField(source="house.name", read_only=True)

    class Meta:
        model = models.Participant
        fields = ["id", "full_name", "age", "house", "house_name"]


class ResultSerializer(serializers.ModelSerializer):
    event_name = serializers.CharField(source="event.name", read_only=True)
    sport_name = serializers.CharField(source="event.sport.name", read_only=True)
    participant_name = serializers.CharField(source="participant.full_name", read_only=True)
    house_name = serializers.CharField(source="house.name", read_only=True)
    house_color = serializers.CharField(source="house.color", read_only=True)

    class Meta:
        model = models.Result
        fields = [
            "id",
            "event",
            "event_name",
            "sport_name",
            "participant",
            "participant_name",
            "house",
            "house_name",
            "house_color",
            "position",
            "points_awarded",
            "created_at",
        ]
        read_only_fields = fields


class EnrollmentSerializer(serializers.ModelSerializer):
    participant = PublicParticipantSerializer(read_only=True)

    class Meta:
        model = models.EventParticipant
        fields = ["id", "participant", "created_at"]
        read_only_fields = fields


class EnrollmentUpdateSerializer(serializers.Serializer):
    participant_ids = serializers.ListField(child=serializers.IntegerField(min_value=1), allow_empty=True)


class RecordResultsSerializer(serializers.Serializer):
    """Accepts ``{"<participant_id>": position}`` or a list of assignment objects."""

    assignments = serializers.JSONField()

    def validate_assignments(self, value: Any) -> Dict[Any, Any]:
        if isinstance(value, dict):
            return value
        if isinstance(value, list):
            mapping: Dict[Any, Any] = {}
            for item in value:
                if not isinstance(item, dict) or "participant_id" not in item:
                    raise serializers.ValidationError(
                        "Each assignment needs a participant_id and a position."
                    )
                mapping[item["participant_id"]] = item.get("position", 0)
            return mapping
        raise serializers.ValidationError("Provide assignments as an object or a list.")


class ScheduledEventSerializer(EventSerializer):
    display_status = serializers.CharField(read_only=True)

    class Meta(EventSerializer.Meta):
        fields = EventSerializer.Meta.fields + ["display_status"]
        read_only_fields = fields


class ChildEventSerializer(serializers.Serializer):
    """One event a child is enrolled in, with the child's outcome if recorded."""

    event = ScheduledEventSerializer()
    position = serializers.IntegerField(allow_null=True)
    points_awarded = serializers.IntegerField(allow_null=True)


class ParticipantSummarySerializer(serializers.Serializer):
    participant = ParticipantSerializer()
    events_entered = serializers.IntegerField()
    events_completed = serializers.IntegerField()
    total_points = serializers.IntegerField()
    average_position = serializers.FloatField(allow_null=True)
    medals = serializers.DictField(child=serializers.IntegerField())
    recent_events = serializers.SerializerMethodField()

    def get_recent_events(self, summary) -> list[dict[str, Any]]:
        return [
            {
                "event": enrollment.event_id,
                "event_name": enrollment.event.name,
                "scheduled_time": (
                    enrollment.event.scheduled_time.isoformat()
                    if enrollment.event.scheduled_time
                    else None
                ),
                "status": enrollment.event.status,
            }
            for enrollment in summary.recent_events()
        ]
