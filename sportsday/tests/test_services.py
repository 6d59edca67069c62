import io
import os
from datetime import datetime, timedelta, timezone as dt_timezone
from unittest import mock

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "sportsday_site.settings")

import django

django.setup()

from django.contrib import admin
from django.db.models import Sum
from django.test import TestCase

from sportsday import models, services

from .helpers import build_sports_day


class PointsTableTests(TestCase):
    def setUp(self):
        self.sport = models.Sport.objects.create(
            name="Relay",
            category=models.Sport.Category.TRACK,
            points_first=15,
            points_second=10,
            points_third=5,
        )

    def test_podium_positions_use_sport_table(self):
        self.assertEqual(services.points_for_position(self.sport, 1), 15)
        self.assertEqual(services.points_for_position(self.sport, 2), 10)
        self.assertEqual(services.points_for_position(self.sport, 3), 5)

    def test_positions_outside_podium_score_nothing(self):
        self.assertEqual(services.points_for_position(self.sport, 4), 0)
        self.assertEqual(services.points_for_position(self.sport, 0), 0)
        self.assertEqual(services.points_for_position(self.sport, -2), 0)


class RecordEventResultsTests(TestCase):
    def setUp(self):
        self.day = build_sports_day()

    def _refresh(self):
        for house in (self.day.red, self.day.blue):
            house.refresh_from_db()
        self.day.event.refresh_from_db()

    def test_scores_podium_and_completes_event(self):
        outcome = services.record_event_results(
            self.day.event.pk,
            {self.day.ava.pk: 1, self.day.ben.pk: 2, self.day.cara.pk: 3},
        )

        self._refresh()
        self.assertEqual(self.day.red.total_points, 15)
        self.assertEqual(self.day.blue.total_points, 7)
        self.assertEqual(self.day.event.status, models.Event.Status.COMPLETED)
        self.assertEqual(outcome.points_total, 22)
        self.assertEqual(outcome.house_deltas, {self.day.red.pk: 15, self.day.blue.pk: 7})
        results = list(self.day.event.results.values_list("participant_id", "house_id", "points_awarded"))
        self.assertEqual(
            results,
            [
                (self.day.ava.pk, self.day.red.pk, 10),
                (self.day.ben.pk, self.day.blue.pk, 7),
                (self.day.cara.pk, self.day.red.pk, 5),
            ],
        )
        log = models.AuditLog.objects.get(action="event_results_recorded")
        self.assertEqual(log.payload["event_id"], self.day.event.pk)

    def test_rescoring_applies_only_the_net_change(self):
        services.record_event_results(
            self.day.event.pk,
            {self.day.ava.pk: 1, self.day.ben.pk: 2, self.day.cara.pk: 3},
        )
        outcome = services.record_event_results(
            self.day.event.pk,
            {self.day.ava.pk: 2, self.day.ben.pk: 1, self.day.cara.pk: 3},
        )

        self._refresh()
        self.assertEqual(self.day.red.total_points, 12)
        self.assertEqual(self.day.blue.total_points, 10)
        self.assertEqual(outcome.house_deltas, {self.day.red.pk: -3, self.day.blue.pk: 3})
        self.assertEqual(self.day.event.results.count(), 3)

    def test_identical_rescore_changes_nothing(self):
        positions = {self.day.ava.pk: 1, self.day.ben.pk: 2}
        services.record_event_results(self.day.event.pk, positions)
        outcome = services.record_event_results(self.day.event.pk, positions)

        self._refresh()
        self.assertEqual(outcome.house_deltas, {})
        self.assertEqual(self.day.red.total_points, 10)
        self.assertEqual(self.day.blue.total_points, 7)

    def test_tied_positions_each_earn_full_points(self):
        services.record_event_results(self.day.event.pk, {self.day.ava.pk: 1, self.day.ben.pk: 1})

        self._refresh()
        self.assertEqual(self.day.red.total_points, 10)
        self.assertEqual(self.day.blue.total_points, 10)

    def test_unplaced_and_fourth_place_entries(self):
        services.record_event_results(
            self.day.event.pk,
            {str(self.day.ava.pk): "4", str(self.day.ben.pk): "", str(self.day.cara.pk): 0},
        )

        result = self.day.event.results.get()
        self.assertEqual(result.participant, self.day.ava)
        self.assertEqual(result.points_awarded, 0)
        self._refresh()
        self.assertEqual(self.day.red.total_points, 0)
        self.assertEqual(self.day.event.status, models.Event.Status.COMPLETED)

    def test_empty_assignments_are_rejected_without_changes(self):
        with self.assertRaisesMessage(services.ResultsValidationError, services.NO_POSITIONS_MESSAGE):
            services.record_event_results(self.day.event.pk, {self.day.ava.pk: 0, self.day.ben.pk: None})

        self._refresh()
        self.assertEqual(self.day.event.status, models.Event.Status.SCHEDULED)
        self.assertFalse(models.Result.objects.exists())

    def test_non_numeric_and_negative_positions_are_rejected(self):
        with self.assertRaises(services.ResultsValidationError):
            services.record_event_results(self.day.event.pk, {self.day.ava.pk: "first"})
        with self.assertRaises(services.ResultsValidationError):
            services.record_event_results(self.day.event.pk, {self.day.ava.pk: -1})

    def test_fractional_and_boolean_positions_are_rejected(self):
        for position in (1.5, 1.9, True, "2.0"):
            with self.subTest(position=position):
                with self.assertRaisesMessage(
                    services.ResultsValidationError, "Positions must be whole numbers."
                ):
                    services.record_event_results(self.day.event.pk, {self.day.ava.pk: position})

        self._refresh()
        self.assertFalse(models.Result.objects.exists())
        self.assertEqual(self.day.red.total_points, 0)

    def test_participant_must_be_enrolled(self):
        outsider = models.Participant.objects.create(full_name="Dan Blue", age=9, house=self.day.blue)

        with self.assertRaises(services.ResultsValidationError):
            services.record_event_results(self.day.event.pk, {self.day.ava.pk: 1, outsider.pk: 2})

        self._refresh()
        self.assertEqual(self.day.red.total_points, 0)
        self.assertEqual(self.day.event.status, models.Event.Status.SCHEDULED)
        self.assertFalse(models.Result.objects.exists())

    def test_cancelled_events_cannot_be_scored(self):
        self.day.event.status = models.Event.Status.CANCELLED
        self.day.event.save()

        with self.assertRaises(services.ResultsValidationError):
            services.record_event_results(self.day.event.pk, {self.day.ava.pk: 1})

    def test_missing_event(self):
        with self.assertRaises(services.EventNotFoundError):
            services.record_event_results(999999, {self.day.ava.pk: 1})

    def test_result_house_is_frozen_at_scoring_time(self):
        services.record_event_results(self.day.event.pk, {self.day.ava.pk: 1})
        self.day.ava.house = self.day.blue
        self.day.ava.save()

        result = models.Result.objects.get()
        self.assertEqual(result.house, self.day.red)

    def test_broadcast_runs_after_commit(self):
        with mock.patch("sportsday.broadcast.standings_changed") as changed:
            with self.captureOnCommitCallbacks(execute=True) as callbacks:
                services.record_event_results(self.day.event.pk, {self.day.ava.pk: 1})

        self.assertEqual(len(callbacks), 1)
        changed.assert_called_once_with(event_id=self.day.event.pk)


class DeletionTests(TestCase):
    def setUp(self):
        self.day = build_sports_day()
        services.record_event_results(
            self.day.event.pk,
            {self.day.ava.pk: 1, self.day.ben.pk: 2, self.day.cara.pk: 3},
        )

    def assertTotalsMatchResults(self):
        for house in models.House.objects.all():
            recorded = house.results.aggregate(total=Sum("points_awarded"))["total"] or 0
            self.assertEqual(house.total_points, recorded, house.name)

    def test_deleting_event_withdraws_its_points(self):
        deltas = services.delete_event(self.day.event)

        self.assertEqual(deltas, {self.day.red.pk: -15, self.day.blue.pk: -7})
        self.assertFalse(models.Event.objects.filter(pk=self.day.event.pk).exists())
        self.assertTotalsMatchResults()
        self.day.red.refresh_from_db()
        self.assertEqual(self.day.red.total_points, 0)
        self.assertTrue(models.AuditLog.objects.filter(action="event_deleted").exists())

    def test_deleting_participant_withdraws_their_points(self):
        deltas = services.delete_participant(self.day.ava)

        self.assertEqual(deltas, {self.day.red.pk: -10})
        self.assertTotalsMatchResults()
        self.day.red.refresh_from_db()
        self.assertEqual(self.day.red.total_points, 5)
        self.assertTrue(models.AuditLog.objects.filter(action="participant_deleted").exists())

    def test_points_come_off_the_house_that_earned_them(self):
        self.day.ava.house = self.day.blue
        self.day.ava.save()

        services.delete_participant(self.day.ava)

        self.assertTotalsMatchResults()
        self.day.blue.refresh_from_db()
        self.assertEqual(self.day.blue.total_points, 7)

    def test_admin_bulk_delete_withdraws_points(self):
        event_admin = admin.site._registry[models.Event]
        event_admin.delete_queryset(None, models.Event.objects.all())

        self.assertFalse(models.Result.objects.exists())
        self.assertTotalsMatchResults()
        self.assertFalse(admin.site._registry[models.Result].has_delete_permission(None))

    def test_unscored_event_leaves_totals_alone(self):
        spare = models.Event.objects.create(name="Heat 2", sport=self.day.sport)
        self.assertEqual(services.delete_event(spare), {})
        self.assertTotalsMatchResults()


class EnrollmentTests(TestCase):
    def setUp(self):
        self.day = build_sports_day(cap=1)
        self.day.event.enrollments.all().delete()

    def test_replaces_roster(self):
        services.set_event_participants(self.day.event, [self.day.ava.pk, self.day.ben.pk])
        services.set_event_participants(self.day.event, [self.day.ben.pk, self.day.cara.pk])

        enrolled = set(self.day.event.enrollments.values_list("participant_id", flat=True))
        self.assertEqual(enrolled, {self.day.ben.pk, self.day.cara.pk})
        self.assertEqual(
            models.AuditLog.objects.filter(action="event_enrollment_updated").count(), 2
        )

    def test_per_house_cap_is_enforced(self):
        with self.assertRaisesMessage(services.EnrollmentError, "Red"):
            services.set_event_participants(self.day.event, [self.day.ava.pk, self.day.cara.pk])
        self.assertFalse(self.day.event.enrollments.exists())

    def test_unknown_and_inactive_participants(self):
        with self.assertRaises(services.EnrollmentError):
            services.set_event_participants(self.day.event, [424242])

        self.day.ben.is_active = False
        self.day.ben.save()
        with self.assertRaises(services.EnrollmentError):
            services.set_event_participants(self.day.event, [self.day.ben.pk])

    def test_closed_events_reject_changes(self):
        self.day.event.status = models.Event.Status.COMPLETED
        self.day.event.save()

        with self.assertRaises(services.EnrollmentError):
            services.set_event_participants(self.day.event, [self.day.ava.pk])

    def test_empty_roster_clears_enrollment(self):
        services.set_event_participants(self.day.event, [self.day.ava.pk])
        services.set_event_participants(self.day.event, [])
        self.assertFalse(self.day.event.enrollments.exists())


class StandingsTests(TestCase):
    def setUp(self):
        self.day = build_sports_day()
        self.green = models.House.objects.create(name="Green", color="#16A34A")

    def test_competition_ranking_and_medals(self):
        services.record_event_results(self.day.event.pk, {self.day.ava.pk: 1, self.day.ben.pk: 1})

        standings = services.house_standings()

        self.assertEqual([house.name for house in standings], ["Blue", "Red", "Green"])
        self.assertEqual([house.rank for house in standings], [1, 1, 3])
        self.assertEqual(standings[0].gold, 1)
        self.assertEqual(standings[1].total_medals, 1)
        self.assertEqual(standings[1].participant_count, 2)
        self.assertEqual(services.house_rank(self.green), 3)

    def test_recalculate_repairs_drift(self):
        services.record_event_results(self.day.event.pk, {self.day.ava.pk: 1, self.day.ben.pk: 2})
        models.House.objects.filter(pk=self.day.red.pk).update(total_points=99)

        with self.assertLogs("sportsday.services", level="WARNING"):
            changed = services.recalculate_house_totals()

        self.assertEqual([house.pk for house in changed], [self.day.red.pk])
        self.day.red.refresh_from_db()
        self.assertEqual(self.day.red.total_points, 10)
        self.assertTrue(models.AuditLog.objects.filter(action="house_points_recalculated").exists())
        self.assertEqual(services.recalculate_house_totals(), [])

    def test_dashboard_counts(self):
        services.record_event_results(self.day.event.pk, {self.day.ava.pk: 1})
        models.Event.objects.create(name="Heat 2", sport=self.day.sport)

        counts = services.dashboard_counts()

        self.assertEqual(counts["houses"], 3)
        self.assertEqual(counts["participants"], 3)
        self.assertEqual(counts["events"], 2)
        self.assertEqual(counts["upcoming_events"], 1)
        self.assertEqual(counts["completed_events"], 1)

    def test_recent_results_and_top_performers(self):
        services.record_event_results(
            self.day.event.pk, {self.day.ava.pk: 1, self.day.ben.pk: 2, self.day.cara.pk: 5}
        )

        self.assertEqual(len(services.recent_results()), 3)
        self.assertEqual(len(services.recent_results(podium_only=True)), 2)
        self.assertEqual(services.recent_results(0), [])
        self.assertEqual(len(services.recent_results(1)), 1)
        performers = services.top_performers_by_category()
        self.assertEqual(list(performers), ["Track Events"])
        self.assertEqual(performers["Track Events"][0].participant, self.day.ava)


class ParticipantSummaryTests(TestCase):
    def setUp(self):
        self.day = build_sports_day()

    def test_summary_statistics(self):
        services.record_event_results(self.day.event.pk, {self.day.ava.pk: 2, self.day.ben.pk: 1})
        second = models.Event.objects.create(name="Long Jump", sport=self.day.sport)
        models.EventParticipant.objects.create(event=second, participant=self.day.ava)
        services.record_event_results(second.pk, {self.day.ava.pk: 1})

        summary = services.participant_summary(self.day.ava)

        self.assertEqual(summary.events_entered, 2)
        self.assertEqual(summary.events_completed, 2)
        self.assertEqual(summary.total_points, 17)
        self.assertEqual(summary.average_position, 1.5)
        self.assertEqual(summary.medals, {"gold": 1, "silver": 1, "bronze": 0})

    def test_summary_without_results(self):
        summary = services.participant_summary(self.day.cara)
        self.assertIsNone(summary.average_position)
        self.assertEqual(summary.total_points, 0)
        self.assertEqual(summary.events_entered, 1)


class SearchTests(TestCase):
    def setUp(self):
        self.day = build_sports_day()
        services.record_event_results(self.day.event.pk, {self.day.ava.pk: 1})

    def test_short_terms_return_nothing(self):
        found = services.search("a")
        self.assertEqual(found, {"participants": [], "events": [], "results": []})

    def test_matches_across_kinds(self):
        found = services.search("red")
        self.assertEqual(
            [participant.full_name for participant in found["participants"]],
            ["Ava Red", "Cara Red"],
        )
        self.assertEqual(len(found["results"]), 1)

        by_sport = services.search("sprint", kind="events")
        self.assertEqual(by_sport["events"], [self.day.event])
        self.assertEqual(by_sport["participants"], [])

    def test_unknown_kind(self):
        with self.assertRaises(ValueError):
            services.search("red", kind="houses")


class ScheduleTests(TestCase):
    def setUp(self):
        self.sport = models.Sport.objects.create(name="Sack Race", category=models.Sport.Category.INDIVIDUAL)
        self.now = datetime(2025, 6, 1, 9, 0, tzinfo=dt_timezone.utc)

    def _event(self, name, when):
        return models.Event.objects.create(name=name, sport=self.sport, scheduled_time=when)

    def test_groups_by_day_with_unscheduled_last(self):
        later = self._event("Later", self.now + timedelta(days=2))
        today = self._event("Today", self.now + timedelta(hours=3))
        earlier = self._event("Earlier", self.now - timedelta(days=2))
        floating = self._event("Floating", None)

        days = services.schedule_by_date(now=self.now)

        self.assertEqual(
            [day["date"] for day in days],
            ["2025-05-30", "2025-06-01", "2025-06-03", "unscheduled"],
        )
        self.assertEqual(days[0]["events"][0].display_status, "past")
        self.assertEqual(days[1]["events"][0].display_status, "today")
        self.assertEqual(days[2]["events"][0].display_status, "upcoming")
        self.assertEqual(days[3]["events"], [floating])
        self.assertEqual([days[0]["events"][0], days[1]["events"][0], days[2]["events"][0]], [earlier, today, later])

    def test_non_scheduled_status_is_reported_as_is(self):
        event = self._event("Done", self.now)
        event.status = models.Event.Status.CANCELLED
        self.assertEqual(services.event_display_status(event, self.now), "cancelled")


class ParticipantImportTests(TestCase):
    def setUp(self):
        self.red = models.House.objects.create(name="Red", color="#DC2626")

    def test_creates_updates_and_reports_errors(self):
        models.Participant.objects.create(full_name="Ava Red", age=9, house=self.red)
        handle = io.StringIO(
            "full_name,age,house,guardian_email\n"
            "Ava Red,10,red,ava.parent@example.com\n"
            "New Kid,8,Red,\n"
            "Lost Kid,8,Purple,\n"
            "Bad Age,ten,Red,\n"
            ",,,\n"
        )

        summary = services.load_participants_from_csv(handle)

        self.assertEqual(summary["created"], 1)
        self.assertEqual(summary["updated"], 1)
        self.assertEqual(len(summary["errors"]), 2)
        ava = models.Participant.objects.get(full_name="Ava Red")
        self.assertEqual(ava.age, 10)
        self.assertEqual(ava.guardian_email, "ava.parent@example.com")


class DemoDataTests(TestCase):
    def test_seed_is_repeatable(self):
        first = services.seed_demo_data()
        second = services.seed_demo_data()

        self.assertEqual(first["houses"], 4)
        self.assertGreater(first["participants_created"], 0)
        self.assertEqual(second["participants_created"], 0)
        self.assertEqual(second["events_created"], 0)
        self.assertEqual(models.House.objects.count(), 4)
