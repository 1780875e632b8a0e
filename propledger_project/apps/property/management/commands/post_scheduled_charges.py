"""
Management command to post due scheduled charges.
Should be run daily via cron job or task scheduler.

Example cron entry (every day at 2 AM):
0 2 * * * cd /path/to/project && python manage.py post_scheduled_charges

Behavior:
- Posts DR receivable / CR income for every active charge on an active lease
  whose charge day has arrived and which has not been posted this month
- Charges not yet due, or already posted this month, are skipped
- A failing charge is reported and the run continues
- Every run is recorded in ChargeRunLog
"""
from datetime import date

from django.core.management.base import BaseCommand
from django.utils import timezone

from apps.core.exceptions import NotFoundError
from apps.property.charges import due_charges, post_due_charges
from apps.property.models import Lease


class Command(BaseCommand):
    help = 'Post all due scheduled charges to the ledger.'

    def add_arguments(self, parser):
        parser.add_argument(
            '--date',
            type=str,
            help='Run as if today were this date (YYYY-MM-DD). Defaults to today.'
        )
        parser.add_argument(
            '--lease',
            type=str,
            help='Lease number to post charges for. If not specified, all active leases.'
        )
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Show what would be posted without posting anything.'
        )

    def handle(self, *args, **options):
        if options['date']:
            try:
                run_date = date.fromisoformat(options['date'])
            except ValueError:
                self.stderr.write(self.style.ERROR('Invalid date format. Use YYYY-MM-DD'))
                return
        else:
            run_date = timezone.localdate()

        lease = None
        if options['lease']:
            lease = Lease.objects.filter(lease_number=options['lease']).first()
            if lease is None:
                self.stderr.write(self.style.ERROR(f"Lease {options['lease']} not found."))
                return

        self.stdout.write(self.style.NOTICE(f'Posting scheduled charges for {run_date}...'))

        if options['dry_run']:
            charges = due_charges(run_date, lease)
            if not charges:
                self.stdout.write(self.style.SUCCESS('No scheduled charges due.'))
                return
            for charge in charges:
                self.stdout.write(self.style.WARNING(
                    f'  [DRY RUN] Would post {charge.lease.lease_number}: {charge.description} '
                    f'{charge.amount} -> {charge.account.code}'
                ))
            self.stdout.write(f'{len(charges)} charge(s) due.')
            return

        try:
            result = post_due_charges(
                lease_id=lease.pk if lease else None,
                today=run_date,
                job_name='daily-charges',
            )
        except NotFoundError as e:
            self.stderr.write(self.style.ERROR(str(e)))
            return

        for item in result['results']:
            line = f"{item['lease_number']}: {item['description']} ({item['amount']}) - {item['message']}"
            if item['status'] == 'posted':
                self.stdout.write(self.style.SUCCESS(f'  POSTED: {line}'))
            elif item['status'] == 'error':
                self.stdout.write(self.style.ERROR(f'  ERROR: {line}'))
            else:
                self.stdout.write(f'  SKIP: {line}')

        # Summary
        self.stdout.write('\n' + '=' * 50)
        self.stdout.write(self.style.NOTICE('SUMMARY:'))
        self.stdout.write(f"  Total charges: {result['total']}")
        self.stdout.write(self.style.SUCCESS(f"  Posted: {result['posted']} ({result['total_amount']})"))
        self.stdout.write(self.style.WARNING(f"  Skipped: {result['skipped']}"))
        self.stdout.write(self.style.ERROR(f"  Errors: {result['errors']}"))

        if result['errors']:
            self.stdout.write(self.style.ERROR('\nSome charges failed to post. Please check the logs.'))
