"""CSV downloads for sports day staff."""
from __future__ import annotations

import csv

from django.http import HttpRequest, HttpResponse
from django.utils import timezone
from django.views.decorators.http import require_GET

from . import models, services
from .permissions import manager_required


def _csv_response(filename: str):
    response = HttpResponse(content_type="text/csv")
    response["Content-Disposition"] = f'attachment; filename="{filename}"'
    return response, csv.writer(response)


@require_GET
@manager_required
def export_results_csv(request: HttpRequest) -> HttpResponse:
    """Download every recorded result with the points it earned."""

    stamp = timezone.localdate().isoformat()
    response, writer = _csv_response(f"sportsday-results-{stamp}.csv")
    writer.writerow(
        [
            "Event",
            "Sport",
            "Category",
            "Scheduled",
            "Position",
            "Participant",
            "House",
            "Points",
        ]
    )
    results = models.Result.objects.select_related(
        "event", "event__sport", "participant", "house"
    ).order_by("event__name", "event_id", "position", "participant__full_name")
    for result in results:
        scheduled = result.event.scheduled_time
        writer.writerow(
            [
                result.event.name,
                result.event.sport.name,
                result.event.sport.get_category_display(),
                timezone.localtime(scheduled).strftime("%Y-%m-%d %H:%M") if scheduled else "",
                result.position,
                result.participant.full_name,
                result.house.name,
                result.points_awarded,
            ]
        )
    return response


@require_GET
@manager_required
def export_standings_csv(request: HttpRequest) -> HttpResponse:
    """Download the house leaderboard."""

    stamp = timezone.localdate().isoformat()
    response, writer = _csv_response(f"sportsday-standings-{stamp}.csv")
    writer.writerow(["Rank", "House", "Points", "Gold", "Silver", "Bronze", "Participants"])
    for house in services.house_standings():
        writer.writerow(
            [
                house.rank,
                house.name,
                house.total_points,
                house.gold,
                house.silver,
                house.bronze,
                house.participant_count,
            ]
        )
    return response
