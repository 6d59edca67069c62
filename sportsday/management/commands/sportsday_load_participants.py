from __future__ import annotations

import pathlib

from django.core.management.base import BaseCommand, CommandError

from sportsday import services


class Command(BaseCommand):
    help = "Load participants from a CSV file (full_name, age, house, guardian_email)"

    def add_arguments(self, parser):
        parser.add_argument("--csv", required=True, help="Path to the CSV file")

    def handle(self, *args, **options):
        csv_path = pathlib.Path(options["csv"])
        if not csv_path.exists():
            raise CommandError(f"CSV file '{csv_path}' does not exist")
        with csv_path.open("r", encoding="utf-8-sig", newline="") as handle:
            summary = services.load_participants_from_csv(handle)
        for error in summary["errors"]:
            self.stderr.write(error)
        self.stdout.write(
            self.style.SUCCESS(
                f"Participants imported: {summary['created']} created, {summary['updated']} updated."
            )
        )
