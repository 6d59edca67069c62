from __future__ import annotations

from django.core.management.base import BaseCommand

from sportsday import services


class Command(BaseCommand):
    help = "Rebuild stored house totals from recorded results"

    def handle(self, *args, **options):
        changed = services.recalculate_house_totals()
        if not changed:
            self.stdout.write(self.style.SUCCESS("House totals already match recorded results."))
            return
        for house in changed:
            self.stdout.write(f"{house.name}: {house.total_points}")
        self.stdout.write(self.style.SUCCESS(f"Corrected {len(changed)} house total(s)."))
