"""
Seed the accounts the back office posts to.

Creates (or reactivates) the GL accounts named in PROPLEDGER_ACCOUNTS:
- Cash / operating bank
- Accounts receivable (scheduled charges)
- Security deposits held
- Rental income (default scheduled charge account)
- Deposit forfeit income

Safe to run more than once.
"""
from django.conf import settings
from django.core.management.base import BaseCommand

from apps.finance.models import Account, AccountType

DEFAULT_ACCOUNTS = {
    'cash': ('Operating Cash', AccountType.ASSET),
    'receivable': ('Accounts Receivable', AccountType.ASSET),
    'deposits_held': ('Security Deposits Held', AccountType.LIABILITY),
    'default_income': ('Rental Income', AccountType.INCOME),
    'deposit_forfeit': ('Deposit Forfeit Income', AccountType.INCOME),
}


class Command(BaseCommand):
    help = 'Seed the default chart of accounts used by charges, deposits and reconciliation'

    def handle(self, *args, **options):
        self.stdout.write('Seeding chart of accounts...')

        created_count = 0
        for role, (name, account_type) in DEFAULT_ACCOUNTS.items():
            code = settings.PROPLEDGER_ACCOUNTS[role]
            account, created = Account.objects.get_or_create(
                code=code,
                defaults={'name': name, 'account_type': account_type},
            )
            if created:
                created_count += 1
                self.stdout.write(self.style.SUCCESS(f'  Created {account}'))
            elif not account.is_active:
                account.is_active = True
                account.save(update_fields=['is_active', 'updated_at'])
                self.stdout.write(self.style.WARNING(f'  Reactivated {account}'))
            else:
                self.stdout.write(f'  Exists: {account}')

        self.stdout.write(self.style.SUCCESS(f'Done. {created_count} account(s) created.'))
