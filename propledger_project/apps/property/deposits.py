"""
Security deposits.

No deposit table: a lease's deposit is whatever sits on the deposits-held
liability account for that lease.

Receive:  Dr Cash / Cr Deposits Held
Return:   Dr Deposits Held (refund + deductions)
          Cr Cash (refund)
          Cr Deposit Forfeit Income (each deduction)
"""
import logging
import uuid
from decimal import Decimal

from django.db import transaction
from django.db.models import Q, Sum
from django.utils import timezone

from apps.core.audit import log_ledger_audit
from apps.core.exceptions import ValidationError
from apps.core.utils import parse_date, parse_decimal
from apps.finance.ledger import account_code_for, post_compound_entry, post_double_entry
from apps.finance.models import DebitCredit, LedgerEntry, LedgerEntryStatus

from .charges import get_lease
from .models import Lease

logger = logging.getLogger(__name__)

SOURCE_TYPE = 'security_deposit'


def _deposit_entries(lease):
    return LedgerEntry.objects.filter(
        lease=lease,
        account__code=account_code_for('deposits_held'),
        status=LedgerEntryStatus.POSTED,
    )


def held_balance(lease):
    totals = _deposit_entries(lease).aggregate(
        received=Sum('amount', filter=Q(debit_credit=DebitCredit.CREDIT)),
        released=Sum('amount', filter=Q(debit_credit=DebitCredit.DEBIT)),
    )
    return (totals['received'] or Decimal('0.00')) - (totals['released'] or Decimal('0.00'))


def receive_deposit(lease_id, amount, entry_date=None, description=None, user=None):
    lease = get_lease(lease_id)
    amount = parse_decimal(amount, 'amount')
    if amount <= 0:
        raise ValidationError("amount must be greater than zero.")
    entry_date = parse_date(entry_date, 'date') if entry_date else timezone.localdate()
    description = description or f"Security deposit received - {lease.tenant_name} ({lease.lease_number})"

    with transaction.atomic():
        debit, credit = post_double_entry(
            account_code_for('cash'),
            account_code_for('deposits_held'),
            amount,
            description,
            entry_date,
            lease=lease,
            posted_by=user.get_username() if user is not None and user.is_authenticated else 'system',
            source_type=SOURCE_TYPE,
            source_id=lease.pk,
        )
        log_ledger_audit(
            user=user,
            action='post',
            entity_type='SecurityDeposit',
            entity_id=lease.pk,
            reference_number=lease.lease_number,
            amount=amount,
            affected_accounts=[debit.account.code, credit.account.code],
            module='Property',
            details={'event': 'received', 'date': entry_date},
        )

    logger.info(f"Deposit of {amount} received for {lease.lease_number}")
    return deposit_status(lease.pk)


def return_deposit(lease_id, refund_amount, deductions=None, entry_date=None, user=None):
    """
    Refund a held deposit, keeping any deductions as forfeit income.
    deductions: list of {'description': str, 'amount': number}
    """
    lease = get_lease(lease_id)
    refund_amount = parse_decimal(refund_amount if refund_amount not in (None, '') else '0', 'refundAmount')
    if refund_amount < 0:
        raise ValidationError("refundAmount cannot be negative.")
    entry_date = parse_date(entry_date, 'date') if entry_date else timezone.localdate()

    cleaned_deductions = []
    for index, deduction in enumerate(deductions or [], start=1):
        amount = parse_decimal(deduction.get('amount'), f'deductions[{index}].amount')
        if amount <= 0:
            raise ValidationError(f"Deduction {index} must be greater than zero.")
        reason = str(deduction.get('description') or '').strip() or 'Deposit deduction'
        cleaned_deductions.append((reason, amount))

    total_deductions = sum((amount for _, amount in cleaned_deductions), Decimal('0.00'))
    total_released = refund_amount + total_deductions
    if total_released <= 0:
        raise ValidationError("Nothing to return: refund and deductions are both zero.")

    posted_by = user.get_username() if user is not None and user.is_authenticated else 'system'
    base = f"Security deposit return - {lease.tenant_name} ({lease.lease_number})"

    with transaction.atomic():
        lease = Lease.objects.select_for_update().get(pk=lease.pk)
        held = held_balance(lease)
        if total_released > held:
            raise ValidationError(
                f"Refund plus deductions ({total_released}) exceed the deposit held ({held})."
            )

        credits = []
        if refund_amount > 0:
            credits.append((account_code_for('cash'), refund_amount, f"{base} - refund"))
        for reason, amount in cleaned_deductions:
            credits.append((account_code_for('deposit_forfeit'), amount, f"{base} - {reason}"))

        entries = post_compound_entry(
            debits=[(account_code_for('deposits_held'), total_released, base)],
            credits=credits,
            description=base,
            entry_date=entry_date,
            idempotency_key=f"deposit-return:{lease.pk}:{uuid.uuid4().hex}",
            lease=lease,
            posted_by=posted_by,
            source_type=SOURCE_TYPE,
            source_id=lease.pk,
        )
        log_ledger_audit(
            user=user,
            action='post',
            entity_type='SecurityDeposit',
            entity_id=lease.pk,
            reference_number=lease.lease_number,
            amount=total_released,
            affected_accounts=sorted({entry.account.code for entry in entries}),
            module='Property',
            details={
                'event': 'returned',
                'refund': refund_amount,
                'deductions': str(total_deductions),
                'date': entry_date,
            },
        )

    logger.info(f"Deposit return for {lease.lease_number}: refund {refund_amount}, deductions {total_deductions}")
    return deposit_status(lease.pk)


def deposit_status(lease_id):
    """
    HELD while a balance sits on the liability account, RETURNED once a
    received deposit has been fully released, NOT_RECEIVED otherwise.
    """
    lease = get_lease(lease_id)
    entries = list(_deposit_entries(lease).select_related('account').order_by('entry_date', 'id'))

    received = sum((e.amount for e in entries if e.debit_credit == DebitCredit.CREDIT), Decimal('0.00'))
    released = sum((e.amount for e in entries if e.debit_credit == DebitCredit.DEBIT), Decimal('0.00'))
    deducted = LedgerEntry.objects.filter(
        lease=lease,
        account__code=account_code_for('deposit_forfeit'),
        source_type=SOURCE_TYPE,
        status=LedgerEntryStatus.POSTED,
    ).aggregate(total=Sum('amount'))['total'] or Decimal('0.00')

    held = received - released
    if held > 0:
        status = 'HELD'
    elif received > 0:
        status = 'RETURNED'
    else:
        status = 'NOT_RECEIVED'

    return {
        'lease_id': lease.pk,
        'lease_number': lease.lease_number,
        'expected': lease.security_deposit,
        'received': received,
        'returned': released - deducted,
        'deducted': deducted,
        'held': held,
        'status': status,
        'entries': [
            {
                'id': e.pk,
                'date': e.entry_date,
                'debit_credit': e.debit_credit,
                'amount': e.amount,
                'description': e.description,
            }
            for e in entries
        ],
    }
