"""Domain helpers and result processing logic for the Sports Day app."""

from __future__ import annotations

import csv
import logging
from collections import Counter, defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Iterable, Mapping, TextIO

from django.conf import settings
from django.db import transaction
from django.db.models import Count, F, Q, Sum
from django.utils import timezone

from . import broadcast, models

logger = logging.getLogger(__name__)

__all__ = [
    "ResultsValidationError",
    "EnrollmentError",
    "EventNotFoundError",
    "ScoringOutcome",
    "ParticipantSummary",
    "points_for_position",
    "record_event_results",
    "delete_event",
    "delete_participant",
    "set_event_participants",
    "house_standings",
    "house_rank",
    "recent_results",
    "dashboard_counts",
    "top_performers_by_category",
    "participant_summary",
    "search",
    "schedule_by_date",
    "event_display_status",
    "recalculate_house_totals",
    "load_participants_from_csv",
    "seed_demo_data",
]

NO_POSITIONS_MESSAGE = "Please assign positions to at least one participant"
SEARCH_KINDS = ("all", "participants", "events", "results")
MIN_SEARCH_LENGTH = 2


class ResultsValidationError(ValueError):
    """Submitted positions cannot be recorded for the event."""


class EnrollmentError(ValueError):
    """An enrollment roster breaks the event's entry rules."""


class EventNotFoundError(LookupError):
    """The referenced event does not exist."""


@dataclass(frozen=True)
class ScoringOutcome:
    """What a scoring run wrote."""

    event: models.Event
    results: list[models.Result]
    house_deltas: dict[int, int]

    @property
    def points_total(self) -> int:
        return sum(result.points_awarded for result in self.results)


@dataclass
class ParticipantSummary:
    """Per-child statistics used by the guardian views."""

    participant: models.Participant
    enrollments: list[models.EventParticipant]
    results: list[models.Result]
    total_points: int = 0
    average_position: float | None = None
    medals: dict[str, int] = field(default_factory=dict)

    @property
    def events_entered(self) -> int:
        return len(self.enrollments)

    @property
    def events_completed(self) -> int:
        return len(self.results)

    @property
    def podium_results(self) -> list[models.Result]:
        return [result for result in self.results if result.is_podium]

    def recent_events(self, limit: int = 5) -> list[models.EventParticipant]:
        def _key(enrollment: models.EventParticipant):
            scheduled = enrollment.event.scheduled_time
            return (scheduled is not None, scheduled or enrollment.created_at)

        return sorted(self.enrollments, key=_key, reverse=True)[:limit]


# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------
def points_for_position(sport: models.Sport, position: int) -> int:
    """Points from the sport's podium table; zero outside the top three."""

    if position <= 0:
        return 0
    return sport.points_for_position(position)


def _parse_position(raw: object) -> int:
    """Whole-number position; blank means unplaced. Floats and booleans are refused."""

    if raw is None or raw == "":
        return 0
    if isinstance(raw, int) and not isinstance(raw, bool):
        return raw
    if isinstance(raw, str):
        text = raw.strip()
        digits = text[1:] if text.startswith("-") else text
        if digits.isdecimal():
            return int(text)
    raise ResultsValidationError("Positions must be whole numbers.")


def _clean_assignments(assignments: Mapping[int | str, int | str | None]) -> dict[int, int]:
    placed: dict[int, int] = {}
    for raw_participant, raw_position in assignments.items():
        try:
            participant_id = int(raw_participant)
        except (TypeError, ValueError) as exc:
            raise ResultsValidationError("Participant ids must be whole numbers.") from exc
        position = _parse_position(raw_position)
        if position < 0:
            raise ResultsValidationError("Positions cannot be negative.")
        if position:
            placed[participant_id] = position
    return placed


def _points_by_house(results: Iterable[models.Result]) -> dict[int, int]:
    totals: dict[int, int] = defaultdict(int)
    for result in results:
        totals[result.house_id] += result.points_awarded
    return dict(totals)


def _house_deltas(previous: Mapping[int, int], current: Mapping[int, int]) -> dict[int, int]:
    deltas: dict[int, int] = {}
    for house_id in sorted(set(previous) | set(current)):
        delta = current.get(house_id, 0) - previous.get(house_id, 0)
        if delta:
            deltas[house_id] = delta
    return deltas


def record_event_results(
    event_id: int,
    assignments: Mapping[int | str, int | str | None],
) -> ScoringOutcome:
    """Replace an event's results and move house totals by the net change.

    ``assignments`` maps participant ids to finishing positions; a position of
    zero or ``None`` leaves the participant unplaced. The whole run commits or
    rolls back as one unit.
    """

    placed = _clean_assignments(assignments)
    if not placed:
        raise ResultsValidationError(NO_POSITIONS_MESSAGE)

    with transaction.atomic():
        try:
            event = (
                models.Event.objects.select_for_update()
                .select_related("sport")
                .get(pk=event_id)
            )
        except models.Event.DoesNotExist as exc:
            raise EventNotFoundError(f"Event {event_id} not found.") from exc

        if event.status == models.Event.Status.CANCELLED:
            raise ResultsValidationError("Cancelled events cannot be scored.")

        enrolled = {
            enrollment.participant_id: enrollment.participant
            for enrollment in event.enrollments.select_related("participant")
        }
        missing = sorted(pid for pid in placed if pid not in enrolled)
        if missing:
            raise ResultsValidationError(
                "Participants not enrolled in this event: "
                + ", ".join(str(pid) for pid in missing)
            )

        previous_points = _points_by_house(event.results.all())
        event.results.all().delete()

        ordered = sorted(placed.items(), key=lambda item: (item[1], item[0]))
        results = models.Result.objects.bulk_create(
            [
                models.Result(
                    event=event,
                    participant=enrolled[participant_id],
                    house_id=enrolled[participant_id].house_id,
                    position=position,
                    points_awarded=points_for_position(event.sport, position),
                )
                for participant_id, position in ordered
            ]
        )

        event.status = models.Event.Status.COMPLETED
        event.save(update_fields=["status", "updated_at"])

        deltas = _house_deltas(previous_points, _points_by_house(results))
        now = timezone.now()
        for house_id, delta in deltas.items():
            models.House.objects.filter(pk=house_id).update(
                total_points=F("total_points") + delta,
                updated_at=now,
            )

        models.AuditLog.objects.create(
            action="event_results_recorded",
            payload={
                "event_id": event.pk,
                "event_name": event.name,
                "positions": {str(pid): position for pid, position in ordered},
                "house_deltas": {str(house_id): delta for house_id, delta in deltas.items()},
            },
        )
        transaction.on_commit(lambda: broadcast.standings_changed(event_id=event.pk))

    logger.info(
        "recorded %d results for event %s (%s); house deltas %s",
        len(results),
        event.pk,
        event.name,
        deltas,
    )
    return ScoringOutcome(event=event, results=list(results), house_deltas=deltas)


def _withdraw_points(results: Iterable[models.Result]) -> dict[int, int]:
    """Take the points of ``results`` off their houses; return the applied deltas."""

    deltas = {house_id: -points for house_id, points in _points_by_house(results).items() if points}
    now = timezone.now()
    for house_id, delta in deltas.items():
        models.House.objects.filter(pk=house_id).update(
            total_points=F("total_points") + delta,
            updated_at=now,
        )
    return deltas


def delete_event(event: models.Event) -> dict[int, int]:
    """Delete an event and withdraw the points its results earned."""

    with transaction.atomic():
        locked = models.Event.objects.select_for_update().get(pk=event.pk)
        deltas = _withdraw_points(list(locked.results.all()))
        payload = {
            "event_id": locked.pk,
            "event_name": locked.name,
            "house_deltas": {str(house_id): delta for house_id, delta in deltas.items()},
        }
        locked.delete()
        models.AuditLog.objects.create(action="event_deleted", payload=payload)
        if deltas:
            transaction.on_commit(lambda: broadcast.standings_changed(event_id=payload["event_id"]))

    logger.info("deleted event %s (%s); house deltas %s", payload["event_id"], payload["event_name"], deltas)
    return deltas


def delete_participant(participant: models.Participant) -> dict[int, int]:
    """Delete a participant and withdraw the points of their results."""

    with transaction.atomic():
        locked = models.Participant.objects.select_for_update().get(pk=participant.pk)
        deltas = _withdraw_points(list(locked.results.all()))
        payload = {
            "participant_id": locked.pk,
            "full_name": locked.full_name,
            "house_deltas": {str(house_id): delta for house_id, delta in deltas.items()},
        }
        locked.delete()
        models.AuditLog.objects.create(action="participant_deleted", payload=payload)
        if deltas:
            transaction.on_commit(lambda: broadcast.standings_changed())

    logger.info("deleted participant %s; house deltas %s", payload["participant_id"], deltas)
    return deltas


# ---------------------------------------------------------------------------
# Enrollment
# ---------------------------------------------------------------------------
def set_event_participants(
    event: models.Event,
    participant_ids: Iterable[int],
) -> list[models.EventParticipant]:
    """Replace the enrollment roster for an event."""

    if event.status in (models.Event.Status.COMPLETED, models.Event.Status.CANCELLED):
        raise EnrollmentError("Enrollment is closed for completed or cancelled events.")

    wanted = sorted({int(pid) for pid in participant_ids})
    participants = {
        participant.pk: participant
        for participant in models.Participant.objects.filter(pk__in=wanted).select_related("house")
    }
    unknown = [pid for pid in wanted if pid not in participants]
    if unknown:
        raise EnrollmentError(
            "Unknown participants: " + ", ".join(str(pid) for pid in unknown)
        )
    inactive = [participants[pid].full_name for pid in wanted if not participants[pid].is_active]
    if inactive:
        raise EnrollmentError("Inactive participants cannot be enrolled: " + ", ".join(inactive))

    cap = event.sport.max_participants_per_house
    per_house = Counter(participant.house for participant in participants.values())
    over = sorted(house.name for house, count in per_house.items() if count > cap)
    if over:
        raise EnrollmentError(
            f"{event.sport.name} allows {cap} participant(s) per house; "
            f"too many from {', '.join(over)}."
        )

    with transaction.atomic():
        event.enrollments.all().delete()
        enrollments = models.EventParticipant.objects.bulk_create(
            [models.EventParticipant(event=event, participant_id=pid) for pid in wanted]
        )
        models.AuditLog.objects.create(
            action="event_enrollment_updated",
            payload={"event_id": event.pk, "participant_ids": wanted},
        )

    logger.info("event %s now has %d enrolled participants", event.pk, len(enrollments))
    return list(enrollments)


# ---------------------------------------------------------------------------
# Aggregations
# ---------------------------------------------------------------------------
def house_standings() -> list[models.House]:
    """Houses by points with competition ranks and medal counts attached."""

    houses = (
        models.House.objects.annotate(
            gold=Count("results", filter=Q(results__position=1), distinct=True),
            silver=Count("results", filter=Q(results__position=2), distinct=True),
            bronze=Count("results", filter=Q(results__position=3), distinct=True),
            participant_count=Count(
                "participants", filter=Q(participants__is_active=True), distinct=True
            ),
        )
        .select_related("captain")
        .order_by("-total_points", "name")
    )

    standings: list[models.House] = []
    rank = 0
    last_points: int | None = None
    for index, house in enumerate(houses, start=1):
        if house.total_points != last_points:
            rank = index
            last_points = house.total_points
        house.rank = rank
        house.total_medals = house.gold + house.silver + house.bronze
        standings.append(house)
    return standings


def house_rank(house: models.House) -> int | None:
    for candidate in house_standings():
        if candidate.pk == house.pk:
            return candidate.rank
    return None


def recent_results(limit: int | None = None, *, podium_only: bool = False):
    if limit is None:
        limit = settings.SPORTSDAY_RECENT_RESULTS_LIMIT
    queryset = models.Result.objects.select_related(
        "event", "event__sport", "participant", "house"
    )
    if podium_only:
        queryset = queryset.filter(position__lte=3)
    return list(queryset.order_by("-created_at", "-pk")[:limit])


def dashboard_counts() -> dict[str, int]:
    status_counts = Counter(models.Event.objects.values_list("status", flat=True))
    return {
        "houses": models.House.objects.count(),
        "sports": models.Sport.objects.filter(is_active=True).count(),
        "participants": models.Participant.objects.filter(is_active=True).count(),
        "events": sum(status_counts.values()),
        "upcoming_events": status_counts.get(models.Event.Status.SCHEDULED.value, 0),
        "completed_events": status_counts.get(models.Event.Status.COMPLETED.value, 0),
    }


def top_performers_by_category() -> dict[str, list[models.Result]]:
    """First-place finishes grouped by sport category label."""

    winners = (
        models.Result.objects.filter(position=1)
        .select_related("event", "event__sport", "participant", "house")
        .order_by("-points_awarded", "-created_at")
    )
    labels = dict(models.Sport.Category.choices)
    grouped: dict[str, list[models.Result]] = defaultdict(list)
    for result in winners:
        category = result.event.sport.category
        grouped[labels.get(category, "Other")].append(result)
    return dict(sorted(grouped.items()))


def participant_summary(participant: models.Participant) -> ParticipantSummary:
    enrollments = list(
        participant.enrollments.select_related("event", "event__sport").order_by(
            F("event__scheduled_time").desc(nulls_last=True), "-pk"
        )
    )
    results = list(
        participant.results.select_related("event", "event__sport", "house").order_by(
            "-created_at", "-pk"
        )
    )
    summary = ParticipantSummary(participant=participant, enrollments=enrollments, results=results)
    summary.total_points = sum(result.points_awarded for result in results)
    if results:
        mean = sum(result.position for result in results) / len(results)
        summary.average_position = round(mean, 1)
    positions = Counter(result.position for result in results)
    summary.medals = {"gold": positions[1], "silver": positions[2], "bronze": positions[3]}
    return summary


def search(term: str, kind: str = "all", limit: int | None = None) -> dict[str, list]:
    """Case-insensitive lookup across participants, events and results."""

    if kind not in SEARCH_KINDS:
        raise ValueError(f"Unknown search type '{kind}'.")
    limit = limit or settings.SPORTSDAY_SEARCH_LIMIT
    found: dict[str, list] = {"participants": [], "events": [], "results": []}
    text = (term or "").strip()
    if len(text) < MIN_SEARCH_LENGTH:
        return found

    if kind in ("all", "participants"):
        found["participants"] = list(
            models.Participant.objects.filter(is_active=True, full_name__icontains=text)
            .select_related("house")
            .order_by("full_name")[:limit]
        )
    if kind in ("all", "events"):
        found["events"] = list(
            models.Event.objects.filter(Q(name__icontains=text) | Q(sport__name__icontains=text))
            .select_related("sport")
            .order_by(F("scheduled_time").asc(nulls_last=True), "pk")[:limit]
        )
    if kind in ("all", "results"):
        found["results"] = list(
            models.Result.objects.filter(
                Q(participant__full_name__icontains=text) | Q(event__name__icontains=text)
            )
            .select_related("event", "event__sport", "participant", "house")
            .order_by("-created_at", "-pk")[:limit]
        )
    return found


def event_display_status(event: models.Event, now: datetime | None = None) -> str:
    if event.status != models.Event.Status.SCHEDULED:
        return event.status
    if event.scheduled_time is None:
        return "scheduled"
    now = now or timezone.now()
    if timezone.localdate(event.scheduled_time) == timezone.localdate(now):
        return "today"
    return "upcoming" if event.scheduled_time > now else "past"


def schedule_by_date(now: datetime | None = None) -> list[dict[str, object]]:
    """Events grouped by local calendar date; unscheduled events go last."""

    now = now or timezone.now()
    events = models.Event.objects.select_related("sport").annotate(
        participants_total=Count("enrollments")
    )
    buckets: dict[str, list[models.Event]] = defaultdict(list)
    for event in events.order_by(F("scheduled_time").asc(nulls_last=True), "pk"):
        event.display_status = event_display_status(event, now)
        if event.scheduled_time is None:
            key = "unscheduled"
        else:
            key = timezone.localdate(event.scheduled_time).isoformat()
        buckets[key].append(event)
    ordered = sorted(key for key in buckets if key != "unscheduled")
    if "unscheduled" in buckets:
        ordered.append("unscheduled")
    return [{"date": key, "events": buckets[key]} for key in ordered]


# ---------------------------------------------------------------------------
# Maintenance
# ---------------------------------------------------------------------------
@transaction.atomic
def recalculate_house_totals() -> list[models.House]:
    """Rebuild stored house totals from result rows; return the houses that moved."""

    sums = dict(
        models.Result.objects.order_by()
        .values_list("house_id")
        .annotate(total=Sum("points_awarded"))
    )
    changed: list[models.House] = []
    for house in models.House.objects.select_for_update().order_by("pk"):
        expected = sums.get(house.pk) or 0
        if house.total_points != expected:
            logger.warning(
                "house %s total drifted: stored %s, results %s",
                house.name,
                house.total_points,
                expected,
            )
            house.total_points = expected
            house.save(update_fields=["total_points", "updated_at"])
            changed.append(house)
    if changed:
        models.AuditLog.objects.create(
            action="house_points_recalculated",
            payload={str(house.pk): house.total_points for house in changed},
        )
    return changed


def load_participants_from_csv(handle: TextIO) -> dict[str, object]:
    """Import participants from CSV rows (full_name, age, house, guardian_email)."""

    created = updated = 0
    errors: list[str] = []
    houses = {house.name.lower(): house for house in models.House.objects.all()}
    reader = csv.DictReader(handle)
    required = ("full_name", "age", "house")
    for line_number, row in enumerate(reader, start=2):
        if not any((value or "").strip() for value in row.values()):
            continue
        missing = [name for name in required if not (row.get(name) or "").strip()]
        if missing:
            errors.append(f"Row {line_number}: missing fields {', '.join(missing)}")
            continue
        full_name = row["full_name"].strip()
        house = houses.get(row["house"].strip().lower())
        if house is None:
            errors.append(f"Row {line_number}: unknown house '{row['house'].strip()}'")
            continue
        try:
            age = int(row["age"].strip())
        except ValueError:
            errors.append(f"Row {line_number}: invalid age '{row['age'].strip()}'")
            continue
        if age <= 0:
            errors.append(f"Row {line_number}: invalid age '{age}'")
            continue
        guardian_email = (row.get("guardian_email") or "").strip()
        participant = models.Participant.objects.filter(
            full_name__iexact=full_name, house=house
        ).first()
        if participant:
            participant.age = age
            participant.guardian_email = guardian_email or participant.guardian_email
            participant.save(update_fields=["age", "guardian_email", "updated_at"])
            updated += 1
        else:
            models.Participant.objects.create(
                full_name=full_name,
                age=age,
                house=house,
                guardian_email=guardian_email,
            )
            created += 1
    logger.info("participant import: %d created, %d updated, %d errors", created, updated, len(errors))
    return {"created": created, "updated": updated, "errors": errors}


DEMO_HOUSES = (
    ("Red Dragons", "#DC2626"),
    ("Blue Falcons", "#2563EB"),
    ("Green Griffins", "#16A34A"),
    ("Gold Lions", "#CA8A04"),
)

DEMO_SPORTS = (
    ("100m Sprint", models.Sport.Category.TRACK, 1, 10, 7, 5),
    ("Relay", models.Sport.Category.TRACK, 4, 15, 10, 5),
    ("Long Jump", models.Sport.Category.FIELD, 2, 10, 7, 5),
    ("Tug of War", models.Sport.Category.TEAM, 8, 20, 12, 6),
    ("Sack Race", models.Sport.Category.INDIVIDUAL, 2, 5, 3, 1),
)

DEMO_FIRST_NAMES = ("Alex", "Billie", "Casey", "Devon", "Emery", "Frankie")


@transaction.atomic
def seed_demo_data() -> dict[str, int]:
    """Create a small, repeatable sports day dataset."""

    houses = []
    for name, color in DEMO_HOUSES:
        house, _ = models.House.objects.get_or_create(name=name, defaults={"color": color})
        houses.append(house)

    sports = []
    for name, category, cap, first, second, third in DEMO_SPORTS:
        sport, _ = models.Sport.objects.get_or_create(
            name=name,
            defaults={
                "category": category,
                "max_participants_per_house": cap,
                "points_first": first,
                "points_second": second,
                "points_third": third,
            },
        )
        sports.append(sport)

    participants = 0
    for house in houses:
        surname = house.name.split()[0]
        for index, first_name in enumerate(DEMO_FIRST_NAMES):
            _, created = models.Participant.objects.get_or_create(
                full_name=f"{first_name} {surname}",
                house=house,
                defaults={"age": 8 + index},
            )
            participants += int(created)

    events = 0
    start = timezone.now().replace(minute=0, second=0, microsecond=0)
    for offset, sport in enumerate(sports):
        _, created = models.Event.objects.get_or_create(
            name=f"{sport.name} Final",
            sport=sport,
            defaults={
                "scheduled_time": start + timedelta(hours=offset + 1),
                "location": "Main Oval",
            },
        )
        events += int(created)

    return {
        "houses": len(houses),
        "sports": len(sports),
        "participants_created": participants,
        "events_created": events,
    }
