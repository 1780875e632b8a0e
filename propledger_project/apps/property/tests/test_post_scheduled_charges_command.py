from datetime import date
from io import StringIO

from django.core.management import call_command

from apps.finance.models import LedgerEntry
from apps.property.models import ChargeRunLog

from .base import PropertyTestCase


class TestCase1_PostScheduledChargesCommand(PropertyTestCase):

    def run_command(self, *args):
        out, err = StringIO(), StringIO()
        call_command('post_scheduled_charges', *args, stdout=out, stderr=err)
        return out.getvalue(), err.getvalue()

    def test_posts_due_charges(self):
        out, _ = self.run_command('--date', '2026-03-10')

        self.assertIn('POSTED:', out)
        self.assertIn('Not yet due (charge day 15)', out)
        self.assertIn('Posted: 1 (1500.00)', out)
        self.rent.refresh_from_db()
        self.assertEqual(self.rent.last_charged_date, date(2026, 3, 10))
        self.assertEqual(ChargeRunLog.objects.get().job_name, 'daily-charges')

    def test_dry_run_posts_nothing(self):
        out, _ = self.run_command('--date', '2026-03-20', '--dry-run')

        self.assertIn('[DRY RUN]', out)
        self.assertIn('2 charge(s) due.', out)
        self.assertFalse(LedgerEntry.objects.exists())
        self.assertFalse(ChargeRunLog.objects.exists())

    def test_single_lease(self):
        out, _ = self.run_command('--date', '2026-03-20', '--lease', self.lease.lease_number)
        self.assertIn('Posted: 2 (1575.00)', out)

    def test_invalid_date(self):
        _, err = self.run_command('--date', '03/10/2026')
        self.assertIn('Invalid date format', err)
        self.assertFalse(ChargeRunLog.objects.exists())

    def test_unknown_lease(self):
        _, err = self.run_command('--lease', 'LEASE-1999-0001')
        self.assertIn('not found', err)
