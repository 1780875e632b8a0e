"""
Bank reconciliation workflow: ingest, auto-match, manual match/unmatch,
exclude/include and finalize.

Test Cases Covered:
- Ingest and auto-match (one-to-one, statement period, POSTED only)
- Line state machine
- Finalize gate and balances
- Finalized reconciliations are read-only

Run: python manage.py test apps.finance.tests.test_reconciliation -v 2
"""
from datetime import date
from decimal import Decimal
from unittest import mock

from apps.core.exceptions import ConflictError, NotFoundError, PreconditionError, ValidationError
from apps.core.models import AuditLog
from apps.finance import reconciliation as service
from apps.finance.ledger import post_entry
from apps.finance.models import (
    BankAccount, LedgerEntry, LineStatus, Reconciliation, ReconciliationStatus,
    next_line_status,
)

from .base import LedgerTestCase

MARCH_STATEMENT = (
    "Date,Description,Amount,Reference\n"
    "03/02/2026,Deposit rent,1500.00,DEP-1\n"
    "03/06/2026,Check 101 plumber,-200.00,101\n"
    "03/12/2026,Deposit rent,1500.00,DEP-2\n"
    "03/15/2026,Service fee,-12.50,\n"
    "03/20/2026,Deposit,99.00,\n"
)


class BaseReconciliationTestCase(LedgerTestCase):

    @classmethod
    def setUpTestData(cls):
        super().setUpTestData()
        cls.rent_unit_1 = post_entry('1000', Decimal('1500'), 'DR', 'Rent received unit 1', date(2026, 3, 2))
        cls.plumber = post_entry('1000', Decimal('200'), 'CR', 'Plumber', date(2026, 3, 5))
        cls.rent_unit_2 = post_entry('1000', Decimal('1500'), 'DR', 'Rent received unit 2', date(2026, 3, 10))
        cls.april_deposit = post_entry('1000', Decimal('99'), 'DR', 'April deposit', date(2026, 4, 15))
        cls.receivable_entry = post_entry('1200', Decimal('12.50'), 'CR', 'Not a bank entry', date(2026, 3, 15))

    def ingest(self, content=MARCH_STATEMENT, bank_account=None, balance='2886.50'):
        return service.ingest_statement(
            bank_account_id=(bank_account or self.bank_account).pk,
            period_start='2026-03-01',
            period_end='2026-03-31',
            statement_balance=balance,
            csv_content=content,
            file_name='march.csv',
        )

    def line(self, reconciliation, number):
        return reconciliation.lines.get(line_number=number)


class TestCase1_IngestAndAutoMatch(BaseReconciliationTestCase):

    def test_auto_match_links_equal_amounts_one_to_one(self):
        recon, summary, skipped = self.ingest()

        self.assertEqual(recon.status, ReconciliationStatus.IN_PROGRESS)
        self.assertEqual(skipped, [])
        self.assertEqual(self.line(recon, 1).ledger_entry_id, self.rent_unit_1.pk)
        self.assertEqual(self.line(recon, 2).ledger_entry_id, self.plumber.pk)
        self.assertEqual(self.line(recon, 3).ledger_entry_id, self.rent_unit_2.pk)
        self.assertEqual(self.line(recon, 1).match_method, 'auto')

    def test_summary_counts_and_totals(self):
        _, summary, _ = self.ingest()
        self.assertEqual(summary['total_lines'], 5)
        self.assertEqual(summary['auto_matched'], 3)
        self.assertEqual(summary['matched'], 3)
        self.assertEqual(summary['unmatched'], 2)
        self.assertEqual(summary['excluded'], 0)
        self.assertEqual(summary['total_deposits'], Decimal('3099.00'))
        self.assertEqual(summary['total_withdrawals'], Decimal('212.50'))

    def test_annotated_summary_loads_in_one_query(self):
        recon, summary, _ = self.ingest()
        service.set_line_exclusion(recon.pk, self.line(recon, 4).pk, 'exclude')
        other = BankAccount.objects.create(name='Reserve', last4='9999', gl_account=self.cash)
        self.ingest("Date,Description,Amount\n03/25/2026,Interest,4.10\n", bank_account=other)

        with self.assertNumQueries(1):
            summaries = {
                row.pk: row.summary()
                for row in Reconciliation.with_summary(Reconciliation.objects.all())
            }

        self.assertEqual(len(summaries), 2)
        self.assertEqual(summaries[recon.pk], Reconciliation.objects.get(pk=recon.pk).summary())
        self.assertEqual(summaries[recon.pk]['excluded'], 1)
        self.assertEqual(summaries[recon.pk]['total_withdrawals'], summary['total_withdrawals'])

    def test_entries_outside_period_or_on_other_accounts_are_ignored(self):
        recon, _, _ = self.ingest()
        self.assertEqual(self.line(recon, 4).status, LineStatus.UNMATCHED)
        self.assertEqual(self.line(recon, 5).status, LineStatus.UNMATCHED)

    def test_void_entries_are_not_candidates(self):
        LedgerEntry.objects.filter(pk=self.rent_unit_1.pk).update(status='VOID')
        recon, _, _ = self.ingest()
        self.assertEqual(self.line(recon, 1).ledger_entry_id, self.rent_unit_2.pk)
        self.assertEqual(self.line(recon, 3).status, LineStatus.UNMATCHED)

    def test_skipped_rows_are_reported(self):
        content = MARCH_STATEMENT + "garbage,Bad row,10.00\n"
        _, summary, skipped = self.ingest(content)
        self.assertEqual(summary['total_lines'], 5)
        self.assertEqual(skipped, [{'row': 7, 'reason': "Invalid date 'garbage'"}])

    def test_second_open_reconciliation_is_rejected(self):
        recon, _, _ = self.ingest()
        with self.assertRaises(ConflictError) as ctx:
            self.ingest()
        self.assertEqual(ctx.exception.details['reconciliation_id'], recon.pk)
        self.assertEqual(Reconciliation.objects.count(), 1)

    def test_other_bank_account_can_reconcile_in_parallel(self):
        self.ingest()
        other = BankAccount.objects.create(name='Reserve', last4='9999', gl_account=self.cash)
        recon, summary, _ = self.ingest("Date,Description,Amount\n03/25/2026,Interest,4.10\n", bank_account=other)
        self.assertEqual(summary['total_lines'], 1)
        self.assertEqual(recon.bank_account, other)

    def test_number_collision_retries_with_a_fresh_number(self):
        first, _, _ = self.ingest()
        other = BankAccount.objects.create(name='Reserve', last4='9999', gl_account=self.cash)

        with mock.patch(
            'apps.finance.models.generate_number',
            side_effect=[first.reconciliation_number, 'RECON-2026-0042'],
        ):
            recon, _, _ = self.ingest("Date,Description,Amount\n03/25/2026,Interest,4.10\n", bank_account=other)

        self.assertEqual(recon.reconciliation_number, 'RECON-2026-0042')
        self.assertEqual(Reconciliation.objects.count(), 2)

    def test_number_collision_is_not_reported_as_open_reconciliation(self):
        first, _, _ = self.ingest()
        other = BankAccount.objects.create(name='Reserve', last4='9999', gl_account=self.cash)

        with mock.patch('apps.finance.models.generate_number', return_value=first.reconciliation_number):
            with self.assertRaisesMessage(ConflictError, 'Could not allocate a reconciliation number'):
                self.ingest("Date,Description,Amount\n03/25/2026,Interest,4.10\n", bank_account=other)

        self.assertFalse(other.reconciliations.exists())

    def test_period_must_be_ordered(self):
        with self.assertRaises(ValidationError):
            service.ingest_statement(
                self.bank_account.pk, '2026-03-31', '2026-03-01', '0', MARCH_STATEMENT
            )

    def test_unknown_bank_account(self):
        with self.assertRaises(NotFoundError):
            service.ingest_statement(999999, '2026-03-01', '2026-03-31', '0', MARCH_STATEMENT)

    def test_invalid_file_creates_nothing(self):
        with self.assertRaises(ValidationError):
            self.ingest("")
        self.assertFalse(Reconciliation.objects.exists())

    def test_import_is_audited(self):
        recon, _, _ = self.ingest()
        log = AuditLog.objects.get(action='import', record_id=str(recon.pk))
        self.assertEqual(log.model, 'Finance.Reconciliation')
        self.assertEqual(log.changes['auto_matched'], 3)

    def test_reconciliation_number_is_sequential(self):
        first, _, _ = self.ingest()
        self.assertTrue(first.reconciliation_number.startswith('RECON-'))
        self.assertTrue(first.reconciliation_number.endswith('-0001'))


class TestCase2_ManualMatching(BaseReconciliationTestCase):

    def test_manual_match_ignores_amount(self):
        recon, _, _ = self.ingest()
        fee = post_entry('1000', Decimal('12.50'), 'CR', 'Bank service fee', date(2026, 3, 15))
        line = self.line(recon, 5)

        service.match_line(recon.pk, line.pk, fee.pk)

        line.refresh_from_db()
        self.assertEqual(line.status, LineStatus.MATCHED)
        self.assertEqual(line.ledger_entry_id, fee.pk)
        self.assertEqual(line.match_method, 'manual')

    def test_matching_an_already_linked_entry_conflicts(self):
        recon, _, _ = self.ingest()
        with self.assertRaises(ConflictError):
            service.match_line(recon.pk, self.line(recon, 4).pk, self.rent_unit_1.pk)

    def test_matching_a_matched_line_conflicts(self):
        recon, _, _ = self.ingest()
        fee = post_entry('1000', Decimal('12.50'), 'CR', 'Bank service fee', date(2026, 3, 15))
        with self.assertRaisesMessage(ConflictError, 'Line is already matched.'):
            service.match_line(recon.pk, self.line(recon, 1).pk, fee.pk)

    def test_matching_a_void_entry_conflicts(self):
        recon, _, _ = self.ingest()
        fee = post_entry('1000', Decimal('12.50'), 'CR', 'Bank service fee', date(2026, 3, 15))
        LedgerEntry.objects.filter(pk=fee.pk).update(status='VOID')
        with self.assertRaises(ConflictError):
            service.match_line(recon.pk, self.line(recon, 4).pk, fee.pk)

    def test_unknown_ids(self):
        recon, _, _ = self.ingest()
        with self.assertRaises(NotFoundError):
            service.match_line(recon.pk, 999999, self.plumber.pk)
        with self.assertRaises(NotFoundError):
            service.match_line(recon.pk, self.line(recon, 4).pk, 999999)
        with self.assertRaises(NotFoundError):
            service.match_line(999999, self.line(recon, 4).pk, self.plumber.pk)

    def test_line_from_another_reconciliation_is_not_found(self):
        recon, _, _ = self.ingest()
        other = BankAccount.objects.create(name='Reserve', last4='9999', gl_account=self.cash)
        other_recon, _, _ = self.ingest("Date,Description,Amount\n03/25/2026,Interest,4.10\n", bank_account=other)
        with self.assertRaises(NotFoundError):
            service.unmatch_line(recon.pk, self.line(other_recon, 1).pk)

    def test_unmatch_frees_the_entry(self):
        recon, _, _ = self.ingest()
        line = self.line(recon, 1)

        service.unmatch_line(recon.pk, line.pk)

        line.refresh_from_db()
        self.assertEqual(line.status, LineStatus.UNMATCHED)
        self.assertIsNone(line.ledger_entry_id)
        self.assertEqual(line.match_method, '')
        self.assertIn(self.rent_unit_1.pk, recon.candidate_entries().values_list('pk', flat=True))

        # Entry can now be matched to a different line.
        service.match_line(recon.pk, self.line(recon, 5).pk, self.rent_unit_1.pk)

    def test_rematching_the_same_pair_restores_the_line(self):
        recon, _, _ = self.ingest()
        line = self.line(recon, 1)
        matched_before = recon.summary()['matched']

        service.unmatch_line(recon.pk, line.pk)
        service.match_line(recon.pk, line.pk, self.rent_unit_1.pk)

        line.refresh_from_db()
        self.assertEqual(line.status, LineStatus.MATCHED)
        self.assertEqual(line.ledger_entry_id, self.rent_unit_1.pk)
        self.assertEqual(recon.summary()['matched'], matched_before)
        self.assertNotIn(self.rent_unit_1.pk, recon.candidate_entries().values_list('pk', flat=True))

    def test_unmatch_an_unmatched_line_conflicts(self):
        recon, _, _ = self.ingest()
        with self.assertRaises(ConflictError):
            service.unmatch_line(recon.pk, self.line(recon, 4).pk)

    def test_match_and_unmatch_are_audited(self):
        recon, _, _ = self.ingest()
        service.unmatch_line(recon.pk, self.line(recon, 1).pk, user=self.admin_user)
        log = AuditLog.objects.get(action='unmatch')
        self.assertEqual(log.user, self.admin_user)
        self.assertEqual(log.changes['ledger_entry_id'], self.rent_unit_1.pk)

    def test_detail_suggests_equal_amount_entries(self):
        recon, _, _ = self.ingest()
        fee = post_entry('1000', Decimal('12.50'), 'CR', 'Bank service fee', date(2026, 3, 15))

        detail = service.reconciliation_detail(recon)

        lines = {line['line_number']: line for line in detail['lines']}
        self.assertEqual(lines[4]['suggested_ledger_entry_ids'], [fee.pk])
        self.assertEqual(lines[5]['suggested_ledger_entry_ids'], [])
        self.assertNotIn('suggested_ledger_entry_ids', lines[1])
        self.assertEqual(lines[1]['ledger_entry']['id'], self.rent_unit_1.pk)
        self.assertEqual([e['id'] for e in detail['unmatched_ledger_entries']], [fee.pk])


class TestCase3_Exclusion(BaseReconciliationTestCase):

    def test_exclude_and_include(self):
        recon, _, _ = self.ingest()
        line = self.line(recon, 4)

        service.set_line_exclusion(recon.pk, line.pk, 'exclude')
        line.refresh_from_db()
        self.assertEqual(line.status, LineStatus.EXCLUDED)

        service.set_line_exclusion(recon.pk, line.pk, 'include')
        line.refresh_from_db()
        self.assertEqual(line.status, LineStatus.UNMATCHED)

    def test_matched_line_cannot_be_excluded(self):
        recon, _, _ = self.ingest()
        with self.assertRaisesMessage(ConflictError, 'Line is matched. Unmatch it before excluding.'):
            service.set_line_exclusion(recon.pk, self.line(recon, 1).pk, 'exclude')

    def test_excluded_line_cannot_be_matched(self):
        recon, _, _ = self.ingest()
        line = self.line(recon, 4)
        service.set_line_exclusion(recon.pk, line.pk, 'exclude')
        fee = post_entry('1000', Decimal('12.50'), 'CR', 'Bank service fee', date(2026, 3, 15))
        with self.assertRaisesMessage(ConflictError, 'Line is excluded. Include it before matching.'):
            service.match_line(recon.pk, line.pk, fee.pk)

    def test_unknown_action(self):
        recon, _, _ = self.ingest()
        with self.assertRaises(ValidationError):
            service.set_line_exclusion(recon.pk, self.line(recon, 4).pk, 'ignore')

    def test_transition_table(self):
        self.assertEqual(next_line_status(LineStatus.UNMATCHED, 'match'), LineStatus.MATCHED)
        self.assertEqual(next_line_status(LineStatus.MATCHED, 'unmatch'), LineStatus.UNMATCHED)
        self.assertEqual(next_line_status(LineStatus.UNMATCHED, 'exclude'), LineStatus.EXCLUDED)
        self.assertEqual(next_line_status(LineStatus.EXCLUDED, 'include'), LineStatus.UNMATCHED)
        with self.assertRaises(ConflictError):
            next_line_status(LineStatus.EXCLUDED, 'unmatch')


class TestCase4_Finalize(BaseReconciliationTestCase):

    def resolve(self, recon):
        fee = post_entry('1000', Decimal('12.50'), 'CR', 'Bank service fee', date(2026, 3, 15))
        service.match_line(recon.pk, self.line(recon, 4).pk, fee.pk)
        service.set_line_exclusion(recon.pk, self.line(recon, 5).pk, 'exclude')

    def test_unresolved_lines_block_finalize(self):
        recon, _, _ = self.ingest()
        with self.assertRaises(PreconditionError) as ctx:
            service.finalize_reconciliation(recon.pk)
        self.assertEqual(ctx.exception.details, {'unmatched': 2})
        recon.refresh_from_db()
        self.assertEqual(recon.status, ReconciliationStatus.IN_PROGRESS)

    def test_finalize_computes_balances(self):
        recon, _, _ = self.ingest()
        self.resolve(recon)

        recon = service.finalize_reconciliation(recon.pk, notes='March done', user=self.admin_user)

        self.assertEqual(recon.status, ReconciliationStatus.FINALIZED)
        self.assertEqual(recon.ledger_balance, Decimal('2787.50'))
        self.assertEqual(recon.variance, Decimal('99.00'))
        self.assertEqual(recon.notes, 'March done')
        self.assertEqual(recon.finalized_by, self.admin_user)
        self.assertIsNotNone(recon.finalized_at)
        self.assertTrue(AuditLog.objects.filter(action='reconcile', record_id=str(recon.pk)).exists())

    def test_finalized_reconciliation_is_read_only(self):
        recon, _, _ = self.ingest()
        self.resolve(recon)
        service.finalize_reconciliation(recon.pk)

        with self.assertRaises(ConflictError):
            service.unmatch_line(recon.pk, self.line(recon, 1).pk)
        with self.assertRaises(ConflictError):
            service.set_line_exclusion(recon.pk, self.line(recon, 5).pk, 'include')
        with self.assertRaises(ConflictError):
            service.finalize_reconciliation(recon.pk)

    def test_new_statement_allowed_after_finalize(self):
        recon, _, _ = self.ingest()
        self.resolve(recon)
        service.finalize_reconciliation(recon.pk)

        april, _, _ = service.ingest_statement(
            self.bank_account.pk, '2026-04-01', '2026-04-30', '99.00',
            "Date,Description,Amount\n04/15/2026,Deposit,99.00\n",
        )
        self.assertEqual(april.lines.get().ledger_entry_id, self.april_deposit.pk)

    def test_everything_excluded_finalizes_with_zero_ledger_balance(self):
        recon, _, _ = service.ingest_statement(
            self.bank_account.pk, '2026-03-01', '2026-03-31', '5.00',
            "Date,Description,Amount\n03/25/2026,Interest,5.00\n",
        )
        service.set_line_exclusion(recon.pk, recon.lines.get().pk, 'exclude')
        recon = service.finalize_reconciliation(recon.pk)
        self.assertEqual(recon.ledger_balance, Decimal('0.00'))
        self.assertEqual(recon.variance, Decimal('5.00'))


class TestCase5_BankAccounts(LedgerTestCase):

    def test_create_bank_account_defaults_to_cash(self):
        bank_account = service.create_bank_account('Payroll', '1234')
        self.assertEqual(bank_account.gl_account, self.cash)

    def test_last4_must_be_digits(self):
        with self.assertRaises(ValidationError):
            service.create_bank_account('Payroll', '12a4')

    def test_name_required(self):
        with self.assertRaises(ValidationError):
            service.create_bank_account('', '1234')
