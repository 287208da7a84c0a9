import logging
from decimal import Decimal

import pandas as pd
from django.core.exceptions import ValidationError
from django.core.management.base import BaseCommand, CommandError
from django.db import transaction

from sites.models import Site

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = {"name", "location"}


class Command(BaseCommand):
    help = "Import sites from a CSV file (name, location, latitude, longitude, power_details, transmission_details)."

    def add_arguments(self, parser):
        parser.add_argument("csv_path")
        parser.add_argument("--update", action="store_true", help="Update sites whose name already exists instead of skipping them.")

    def handle(self, *args, **options):
        try:
            df = pd.read_csv(options["csv_path"], dtype={"name": str, "location": str})
        except (OSError, pd.errors.ParserError) as exc:
            raise CommandError(f"Cannot read {options['csv_path']}: {exc}")

        missing = REQUIRED_COLUMNS - set(df.columns)
        if missing:
            raise CommandError(f"Missing columns: {', '.join(sorted(missing))}")

        # blanks become None so optional fields fall back to their defaults
        df = df.astype(object).where(pd.notna(df), None)

        created = updated = skipped = 0
        with transaction.atomic():
            for row_number, row in enumerate(df.to_dict(orient="records"), start=2):
                if not row.get("name") or not row.get("location"):
                    self.stderr.write(f"row {row_number}: name and location are required, skipped")
                    skipped += 1
                    continue

                try:
                    latitude = _rounded(row.get("latitude"))
                    longitude = _rounded(row.get("longitude"))
                except (TypeError, ValueError):
                    self.stderr.write(f"row {row_number}: invalid coordinates, skipped")
                    skipped += 1
                    continue

                values = {
                    "location": row["location"],
                    "latitude": latitude,
                    "longitude": longitude,
                    "power_details": row.get("power_details") or "",
                    "transmission_details": row.get("transmission_details") or "",
                }

                site = Site.objects.filter(name=row["name"]).first()
                if site is not None and not options["update"]:
                    skipped += 1
                    continue
                if site is None:
                    site = Site(name=row["name"])

                for field, value in values.items():
                    setattr(site, field, value)
                try:
                    site.full_clean()
                except ValidationError as exc:
                    self.stderr.write(f"row {row_number}: {exc.messages}, skipped")
                    skipped += 1
                    continue

                is_new = site._state.adding
                site.save()
                if is_new:
                    created += 1
                else:
                    updated += 1

        logger.info("Imported sites: %d created, %d updated, %d skipped", created, updated, skipped)
        self.stdout.write(self.style.SUCCESS(f"{created} created, {updated} updated, {skipped} skipped"))


def _rounded(value):
    if value is None:
        return None
    return Decimal(str(round(float(value), 6)))
