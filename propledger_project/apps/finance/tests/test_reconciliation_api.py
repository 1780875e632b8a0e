"""
Reconciliation JSON API.

Run: python manage.py test apps.finance.tests.test_reconciliation_api -v 2
"""
import json
from datetime import date
from decimal import Decimal

from django.core.files.uploadedfile import SimpleUploadedFile
from django.test import Client
from django.urls import reverse

from apps.finance.ledger import post_entry
from apps.finance.models import LineStatus, ReconciliationLine

from .base import LedgerTestCase

STATEMENT = (
    "Date,Description,Amount\n"
    "03/02/2026,Deposit rent,1500.00\n"
    "03/15/2026,Service fee,-12.50\n"
)


class BaseApiTestCase(LedgerTestCase):

    @classmethod
    def setUpTestData(cls):
        super().setUpTestData()
        cls.rent = post_entry('1000', Decimal('1500'), 'DR', 'Rent received', date(2026, 3, 2))

    def setUp(self):
        self.client = Client()

    def upload(self, content=STATEMENT, name='march.csv', **overrides):
        data = {
            'file': SimpleUploadedFile(name, content.encode('utf-8'), content_type='text/csv'),
            'bankAccountId': str(self.bank_account.pk),
            'startDate': '2026-03-01',
            'endDate': '2026-03-31',
            'statementBalance': '1487.50',
        }
        data.update(overrides)
        return self.client.post(reverse('finance:reconciliation_collection'), data)

    def post_json(self, url, payload):
        return self.client.post(url, json.dumps(payload), content_type='application/json')


class TestCase1_Upload(BaseApiTestCase):

    def test_upload_creates_reconciliation(self):
        response = self.upload()
        self.assertEqual(response.status_code, 201)

        body = response.json()
        self.assertEqual(body['reconciliation']['status'], 'IN_PROGRESS')
        self.assertEqual(body['reconciliation']['csv_file_name'], 'march.csv')
        self.assertEqual(body['summary']['total_lines'], 2)
        self.assertEqual(body['summary']['auto_matched'], 1)
        self.assertEqual(Decimal(body['summary']['total_withdrawals']), Decimal('12.50'))
        self.assertEqual(body['skipped_rows'], [])

    def test_missing_file(self):
        response = self.client.post(reverse('finance:reconciliation_collection'), {
            'bankAccountId': str(self.bank_account.pk),
        })
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['code'], 'validation_error')

    def test_wrong_extension(self):
        response = self.upload(name='march.xlsx')
        self.assertEqual(response.status_code, 400)

    def test_missing_fields(self):
        response = self.upload(statementBalance='')
        self.assertEqual(response.status_code, 400)
        self.assertIn('statementBalance', response.json()['error'])

    def test_unknown_bank_account(self):
        response = self.upload(bankAccountId='999999')
        self.assertEqual(response.status_code, 404)

    def test_second_upload_conflicts(self):
        self.assertEqual(self.upload().status_code, 201)
        response = self.upload()
        self.assertEqual(response.status_code, 409)
        self.assertIn('reconciliation_id', response.json()['details'])

    def test_list_filters_by_status(self):
        self.upload()
        response = self.client.get(reverse('finance:reconciliation_collection'), {'status': 'IN_PROGRESS'})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(response.json()['reconciliations']), 1)

        response = self.client.get(reverse('finance:reconciliation_collection'), {'status': 'FINALIZED'})
        self.assertEqual(response.json()['reconciliations'], [])

    def test_method_not_allowed(self):
        response = self.client.delete(reverse('finance:reconciliation_collection'))
        self.assertEqual(response.status_code, 405)


class TestCase2_LineActions(BaseApiTestCase):

    def setUp(self):
        super().setUp()
        self.recon_id = self.upload().json()['reconciliation']['id']
        self.fee_line = ReconciliationLine.objects.get(reconciliation_id=self.recon_id, line_number=2)
        self.rent_line = ReconciliationLine.objects.get(reconciliation_id=self.recon_id, line_number=1)

    def url(self, name):
        return reverse(f'finance:{name}', args=[self.recon_id])

    def test_detail(self):
        response = self.client.get(self.url('reconciliation_detail'))
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(len(body['lines']), 2)
        self.assertEqual(body['summary']['unmatched'], 1)

    def test_detail_unknown(self):
        response = self.client.get(reverse('finance:reconciliation_detail', args=[999999]))
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()['code'], 'not_found')

    def test_match_and_unmatch(self):
        fee = post_entry('1000', Decimal('12.50'), 'CR', 'Bank fee', date(2026, 3, 15))

        response = self.post_json(self.url('reconciliation_match'), {
            'lineId': self.fee_line.pk, 'ledgerEntryId': fee.pk,
        })
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['summary']['matched'], 2)

        response = self.post_json(self.url('reconciliation_unmatch'), {'lineId': self.fee_line.pk})
        self.assertEqual(response.status_code, 200)
        self.fee_line.refresh_from_db()
        self.assertEqual(self.fee_line.status, LineStatus.UNMATCHED)

    def test_match_conflict(self):
        response = self.post_json(self.url('reconciliation_match'), {
            'lineId': self.fee_line.pk, 'ledgerEntryId': self.rent.pk,
        })
        self.assertEqual(response.status_code, 409)

    def test_match_requires_ids(self):
        response = self.post_json(self.url('reconciliation_match'), {'lineId': self.fee_line.pk})
        self.assertEqual(response.status_code, 400)

        response = self.post_json(self.url('reconciliation_match'), {'lineId': 'abc', 'ledgerEntryId': 1})
        self.assertEqual(response.status_code, 400)

    def test_bad_json(self):
        response = self.client.post(self.url('reconciliation_match'), 'not json', content_type='application/json')
        self.assertEqual(response.status_code, 400)

    def test_exclude_then_finalize(self):
        response = self.post_json(self.url('reconciliation_finalize'), {})
        self.assertEqual(response.status_code, 412)
        self.assertEqual(response.json()['details'], {'unmatched': 1})

        response = self.post_json(self.url('reconciliation_exclude'), {
            'lineId': self.fee_line.pk, 'action': 'exclude',
        })
        self.assertEqual(response.status_code, 200)

        response = self.post_json(self.url('reconciliation_finalize'), {'notes': 'Fee booked next month'})
        self.assertEqual(response.status_code, 200)
        recon = response.json()['reconciliation']
        self.assertEqual(recon['status'], 'FINALIZED')
        self.assertEqual(Decimal(recon['ledger_balance']), Decimal('1500.00'))
        self.assertEqual(Decimal(recon['variance']), Decimal('-12.50'))

        response = self.post_json(self.url('reconciliation_exclude'), {
            'lineId': self.fee_line.pk, 'action': 'include',
        })
        self.assertEqual(response.status_code, 409)

    def test_export(self):
        response = self.client.get(self.url('reconciliation_export'))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(
            response['Content-Type'],
            'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'
        )


class TestCase3_LedgerAndBankAccounts(BaseApiTestCase):

    def test_ledger_entries_filter(self):
        response = self.client.get(reverse('finance:ledger_entry_list'), {'accountCode': '1000'})
        self.assertEqual(response.status_code, 200)
        entries = response.json()['entries']
        self.assertEqual([e['id'] for e in entries], [self.rent.pk])
        self.assertEqual(Decimal(entries[0]['signed_amount']), Decimal('1500.00'))

    def test_ledger_entries_unmatched(self):
        self.upload()
        response = self.client.get(reverse('finance:ledger_entry_list'), {'unmatched': 'true'})
        self.assertEqual(response.json()['entries'], [])

    def test_bank_account_create_and_list(self):
        response = self.post_json(reverse('finance:bank_account_collection'), {'name': 'Reserve', 'last4': '0042'})
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()['bank_account']['account_code'], '1000')

        response = self.client.get(reverse('finance:bank_account_collection'))
        self.assertEqual(len(response.json()['bank_accounts']), 2)
