from __future__ import annotations

from django.core.management.base import BaseCommand

from sportsday import services


class Command(BaseCommand):
    help = "Seed demo houses, sports, participants and events"

    def add_arguments(self, parser):
        parser.add_argument("--no-output", action="store_true", help="Suppress success output")

    def handle(self, *args, **options):
        counts = services.seed_demo_data()
        if not options["no_output"]:
            self.stdout.write(
                self.style.SUCCESS(
                    "Seeded {houses} houses and {sports} sports; "
                    "{participants_created} new participants, {events_created} new events.".format(**counts)
                )
            )
