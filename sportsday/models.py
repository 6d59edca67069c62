"""Database models for the Sports Day application."""
from __future__ import annotations

from django.conf import settings
from django.core.validators import MinValueValidator, RegexValidator
from django.db import models
from django.db.models import F


HEX_COLOR_VALIDATOR = RegexValidator(
    regex=r"^#[0-9A-Fa-f]{6}$",
    message="Use a hex colour such as #1D4ED8.",
)


class Profile(models.Model):
    """Role record for an authenticated user."""

    class Role(models.TextChoices):
        ADMIN = "admin", "Administrator"
        PARENT = "parent", "Parent / guardian"
        HOUSE_CAPTAIN = "house_captain", "House captain"

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="sportsday_profile",
    )
    full_name = models.CharField(max_length=120, blank=True)
    role = models.CharField(max_length=16, choices=Role.choices, default=Role.PARENT)

    class Meta:
        ordering = ("full_name",)

    def __str__(self) -> str:
        return self.full_name or self.user.get_username()


class House(models.Model):
    """A team that accumulates points across events."""

    name = models.CharField(max_length=80, unique=True)
    color = models.CharField(max_length=7, validators=[HEX_COLOR_VALIDATOR])
    total_points = models.IntegerField(default=0)
    captain = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        blank=True,
        null=True,
        related_name="captained_houses",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ("name",)

    def __str__(self) -> str:
        return self.name


class Sport(models.Model):
    """A sport and the podium point table shared by its events."""

    class Category(models.TextChoices):
        TRACK = "track", "Track Events"
        FIELD = "field", "Field Events"
        TEAM = "team", "Team Sports"
        INDIVIDUAL = "individual", "Individual Sports"

    name = models.CharField(max_length=120)
    category = models.CharField(max_length=16, choices=Category.choices)
    max_participants_per_house = models.PositiveIntegerField(
        default=1, validators=[MinValueValidator(1)]
    )
    points_first = models.PositiveIntegerField(default=10)
    points_second = models.PositiveIntegerField(default=7)
    points_third = models.PositiveIntegerField(default=5)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ("category", "name")

    def __str__(self) -> str:
        return self.name

    def points_for_position(self, position: int) -> int:
        """Return the points awarded for a finishing position."""

        table = {
            1: self.points_first,
            2: self.points_second,
            3: self.points_third,
        }
        return table.get(position, 0)


class Event(models.Model):
    """A single scheduled competition instance of a sport."""

    class Status(models.TextChoices):
        SCHEDULED = "scheduled", "Scheduled"
        IN_PROGRESS = "in_progress", "In Progress"
        COMPLETED = "completed", "Completed"
        CANCELLED = "cancelled", "Cancelled"

    name = models.CharField(max_length=120)
    sport = models.ForeignKey(Sport, on_delete=models.PROTECT, related_name="events")
    scheduled_time = models.DateTimeField(blank=True, null=True)
    location = models.CharField(max_length=120, blank=True)
    status = models.CharField(max_length=12, choices=Status.choices, default=Status.SCHEDULED)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = (F("scheduled_time").asc(nulls_last=True), "pk")

    def __str__(self) -> str:
        return self.name

    @property
    def participants_count(self) -> int:
        return self.enrollments.count()


# Forward moves allowed through manual edits. The scoring workflow is the only
# path into ``completed``.
STATUS_TRANSITIONS: dict[str, set[str]] = {
    Event.Status.SCHEDULED.value: {Event.Status.IN_PROGRESS.value, Event.Status.CANCELLED.value},
    Event.Status.IN_PROGRESS.value: {Event.Status.CANCELLED.value},
    Event.Status.COMPLETED.value: set(),
    Event.Status.CANCELLED.value: set(),
}


class Participant(models.Model):
    """A student competing for exactly one house."""

    full_name = models.CharField(max_length=160)
    age = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    house = models.ForeignKey(House, on_delete=models.PROTECT, related_name="participants")
    guardian = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        blank=True,
        null=True,
        related_name="children",
    )
    guardian_email = models.EmailField(blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ("full_name",)

    def __str__(self) -> str:
        return self.full_name


class EventParticipant(models.Model):
    """Enrollment of a participant into an event."""

    event = models.ForeignKey(Event, on_delete=models.CASCADE, related_name="enrollments")
    participant = models.ForeignKey(
        Participant, on_delete=models.CASCADE, related_name="enrollments"
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["event", "participant"], name="unique_enrollment_per_event"
            ),
        ]
        ordering = ("event_id", "participant__full_name")

    def __str__(self) -> str:
        return f"{self.participant} in {self.event}"


class Result(models.Model):
    """Recorded outcome for one participant in one event.

    ``house`` is copied from the participant when the row is written so that
    later house changes do not rewrite history.
    """

    event = models.ForeignKey(Event, on_delete=models.CASCADE, related_name="results")
    participant = models.ForeignKey(
        Participant, on_delete=models.CASCADE, related_name="results"
    )
    house = models.ForeignKey(House, on_delete=models.CASCADE, related_name="results")
    position = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    points_awarded = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ("event_id", "position", "pk")
        indexes = [models.Index(fields=["house", "created_at"], name="result_house_created_idx")]

    def __str__(self) -> str:
        return f"{self.participant} - {self.event} (#{self.position})"

    @property
    def is_podium(self) -> bool:
        return self.position <= 3


class AuditLog(models.Model):
    """Simple audit trail for scoring and enrollment changes."""

    ts = models.DateTimeField(auto_now_add=True)
    action = models.CharField(max_length=64)
    payload = models.JSONField(default=dict, blank=True)

    class Meta:
        ordering = ("-ts",)

    def __str__(self) -> str:
        return f"{self.action} at {self.ts:%Y-%m-%d %H:%M:%S}"
