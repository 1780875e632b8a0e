"""
Ledger posting.

All writes to LedgerEntry go through here. Each entry carries a unique
idempotency key; posting the same key twice raises DuplicatePostingError
instead of creating a second row.
"""
import hashlib
import logging
from decimal import Decimal

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import Q, Sum

from apps.core.exceptions import DuplicatePostingError, ValidationError
from apps.core.utils import quantize_money

from .models import Account, DebitCredit, LedgerEntry, LedgerEntryStatus

logger = logging.getLogger(__name__)


def account_code_for(role):
    """GL code configured for a role such as 'cash' or 'receivable'."""
    return settings.PROPLEDGER_ACCOUNTS[role]


def get_postable_account(code):
    try:
        account = Account.objects.get(code=code)
    except Account.DoesNotExist:
        raise ValidationError(f"Account {code} does not exist.")
    if not account.is_active:
        raise ValidationError(f"Account {code} ({account.name}) is inactive.")
    return account


def build_idempotency_key(account_code, debit_credit, entry_date, amount, lease_id, description):
    digest = hashlib.sha1(description.encode('utf-8')).hexdigest()[:12]
    return f"{account_code}:{debit_credit}:{entry_date.isoformat()}:{amount}:{lease_id or '-'}:{digest}"


def post_entry(account_code, amount, debit_credit, description, entry_date,
               lease=None, posted_by='system', source_type='manual', source_id=None,
               posting_period='', idempotency_key=None):
    """
    Post a single ledger entry.

    Raises ValidationError for a non-positive amount or an unknown/inactive
    account, DuplicatePostingError when the idempotency key was used before.
    """
    amount = quantize_money(amount)
    if amount <= 0:
        raise ValidationError(f"Amount must be greater than zero (got {amount}).")
    if debit_credit not in DebitCredit.values:
        raise ValidationError(f"debit_credit must be DR or CR (got {debit_credit}).")

    account = get_postable_account(account_code)
    description = description[:500]
    key = idempotency_key or build_idempotency_key(
        account.code, debit_credit, entry_date, amount, getattr(lease, 'pk', None), description
    )

    try:
        with transaction.atomic():
            entry = LedgerEntry.objects.create(
                entry_date=entry_date,
                account=account,
                amount=amount,
                debit_credit=debit_credit,
                description=description,
                lease=lease,
                posted_by=posted_by,
                idempotency_key=key,
                source_type=source_type,
                source_id=source_id,
                posting_period=posting_period,
            )
    except IntegrityError:
        if LedgerEntry.objects.filter(idempotency_key=key).exists():
            raise DuplicatePostingError(f"Ledger entry {key} has already been posted.")
        raise

    logger.debug(f"Posted {debit_credit} {amount} to {account.code}: {description}")
    return entry


def post_double_entry(debit_account_code, credit_account_code, amount, description, entry_date,
                      idempotency_key=None, **kwargs):
    """
    Post a balanced DR/CR pair atomically. With an idempotency key the two
    legs use `<key>:DR` and `<key>:CR`.
    """
    with transaction.atomic():
        debit = post_entry(
            debit_account_code, amount, DebitCredit.DEBIT, description, entry_date,
            idempotency_key=f"{idempotency_key}:DR" if idempotency_key else None,
            **kwargs
        )
        credit = post_entry(
            credit_account_code, amount, DebitCredit.CREDIT, description, entry_date,
            idempotency_key=f"{idempotency_key}:CR" if idempotency_key else None,
            **kwargs
        )
    return debit, credit


def post_compound_entry(debits, credits, description, entry_date, idempotency_key=None, **kwargs):
    """
    Post several legs as one balanced event.

    debits / credits: lists of (account_code, amount, line_description or None)
    """
    total_debit = sum((quantize_money(leg[1]) for leg in debits), Decimal('0.00'))
    total_credit = sum((quantize_money(leg[1]) for leg in credits), Decimal('0.00'))
    if total_debit != total_credit:
        raise ValidationError(f"Entry is not balanced: debits {total_debit} != credits {total_credit}.")

    entries = []
    with transaction.atomic():
        for side, legs in ((DebitCredit.DEBIT, debits), (DebitCredit.CREDIT, credits)):
            for index, (code, amount, line_description) in enumerate(legs):
                entries.append(post_entry(
                    code, amount, side, line_description or description, entry_date,
                    idempotency_key=f"{idempotency_key}:{side}:{index}" if idempotency_key else None,
                    **kwargs
                ))
    return entries


def account_balance(account_code, as_of=None, lease=None):
    """
    Balance of POSTED entries in the account's normal-balance convention
    (a debit-normal account returns debits - credits).
    """
    account = Account.objects.get(code=account_code)
    entries = LedgerEntry.objects.filter(account=account, status=LedgerEntryStatus.POSTED)
    if as_of is not None:
        entries = entries.filter(entry_date__lte=as_of)
    if lease is not None:
        entries = entries.filter(lease=lease)

    totals = entries.aggregate(
        debits=Sum('amount', filter=Q(debit_credit=DebitCredit.DEBIT)),
        credits=Sum('amount', filter=Q(debit_credit=DebitCredit.CREDIT)),
    )
    debits = totals['debits'] or Decimal('0.00')
    credits = totals['credits'] or Decimal('0.00')
    if account.debit_increases:
        return debits - credits
    return credits - debits
