# donors/management/commands/import_donors.py
"""
Django management command to import donor data from Excel or CSV
Usage: python manage.py import_donors path/to/donors.xlsx
"""
from pathlib import Path

import pandas as pd
from django.core.management.base import BaseCommand, CommandError
from django.db import transaction

from algorithms.blood_compatibility import BLOOD_TYPES
from algorithms.temporal import to_aware_datetime
from donors.models import Donor, GENDER_CHOICES

REQUIRED_COLUMNS = ['donor_id', 'first_name', 'last_name', 'blood_type', 'email']
VALID_GENDERS = [choice for choice, _ in GENDER_CHOICES]
VALID_STATUSES = [choice for choice, _ in Donor.STATUS_CHOICES]


def read_table(path):
    """Load a spreadsheet into a DataFrame; .csv is read as text, anything else as Excel"""
    if path.suffix.lower() == '.csv':
        return pd.read_csv(path, dtype=str)
    return pd.read_excel(path, dtype=str)


def clean(value, default=''):
    if pd.isna(value):
        return default
    return str(value).strip()


def parse_date(value):
    if pd.isna(value) or str(value).strip() == '':
        return None
    return pd.to_datetime(value).date()


class Command(BaseCommand):
    help = 'Import donors from an Excel or CSV file, keyed by donor_id'

    def add_arguments(self, parser):
        parser.add_argument('data_file', type=str, help='Path to the .xlsx or .csv file')

    def handle(self, *args, **options):
        path = Path(options['data_file'])
        if not path.exists():
            raise CommandError(f'File not found: {path}')

        self.stdout.write(self.style.WARNING(f'Starting import from {path}...'))

        df = read_table(path)
        self.stdout.write(f'Found {len(df)} rows in {path.name}')

        missing = [column for column in REQUIRED_COLUMNS if column not in df.columns]
        if missing:
            raise CommandError(f"Missing column(s): {', '.join(missing)}")

        df = df.dropna(subset=['donor_id'])

        imported_count = 0
        updated_count = 0
        skipped_count = 0

        with transaction.atomic():
            for index, row in df.iterrows():
                line = index + 2  # header row + 1-based
                donor_id = clean(row['donor_id'])
                blood_type = clean(row['blood_type']).upper()
                gender = clean(row.get('gender'), 'Other').capitalize()
                status = clean(row.get('status'), Donor.STATUS_ACTIVE).capitalize()

                if blood_type not in BLOOD_TYPES:
                    self.stdout.write(self.style.WARNING(f'Skipping row {line}: Invalid blood type {blood_type}'))
                    skipped_count += 1
                    continue

                if gender not in VALID_GENDERS:
                    self.stdout.write(self.style.WARNING(f'Skipping row {line}: Invalid gender {gender}'))
                    skipped_count += 1
                    continue

                if status not in VALID_STATUSES:
                    self.stdout.write(self.style.WARNING(f'Skipping row {line}: Invalid status {status}'))
                    skipped_count += 1
                    continue

                try:
                    date_of_birth = parse_date(row.get('date_of_birth'))
                    last_donation_date = parse_date(row.get('last_donation_date'))
                    if last_donation_date is not None:
                        last_donation_date = to_aware_datetime(last_donation_date)
                    donation_count = int(float(clean(row.get('donation_count'), '0')))
                except (ValueError, TypeError) as e:
                    self.stdout.write(self.style.WARNING(f'Skipping row {line}: {e}'))
                    skipped_count += 1
                    continue

                if date_of_birth is None:
                    self.stdout.write(self.style.WARNING(f'Skipping row {line}: Missing date of birth'))
                    skipped_count += 1
                    continue

                donor, created = Donor.objects.update_or_create(
                    donor_id=donor_id,
                    defaults={
                        'first_name': clean(row['first_name']),
                        'last_name': clean(row['last_name']),
                        'gender': gender,
                        'date_of_birth': date_of_birth,
                        'blood_type': blood_type,
                        'email': clean(row['email']).lower(),
                        'phone': clean(row.get('phone')),
                        'status': status,
                        'last_donation_date': last_donation_date,
                        'donation_count': donation_count,
                    }
                )

                if created:
                    imported_count += 1
                    self.stdout.write(f'Created: {donor.donor_id} {donor.full_name} ({donor.blood_type})')
                else:
                    updated_count += 1
                    self.stdout.write(f'Updated: {donor.donor_id} {donor.full_name} ({donor.blood_type})')

        self.stdout.write(
            self.style.SUCCESS(
                f'\nImport complete!\n'
                f'Created: {imported_count}\n'
                f'Updated: {updated_count}\n'
                f'Skipped: {skipped_count}\n'
                f'Total: {imported_count + updated_count}'
            )
        )
