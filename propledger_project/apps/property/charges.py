"""
Scheduled charge poster.

A charge is due when its charge day has arrived this month and it has not
been posted this month yet. Posting writes DR receivable / CR the charge's
income account dated today and stamps last_charged_date, in one transaction
per charge. A failure on one charge is recorded and the run carries on.

Double posting is prevented three ways: the charge row is locked, the
last_charged_date update is a compare-and-swap, and the ledger idempotency
key is unique per (charge, month, reset generation).
"""
import logging
import time
from decimal import Decimal

from django.db import transaction
from django.db.models import Count, Sum
from django.utils import timezone

from apps.core.api import parse_bool
from apps.core.audit import audit_charge_reset, audit_charge_run, log_audit
from apps.core.exceptions import DuplicatePostingError, NotFoundError, ValidationError
from apps.core.utils import month_label, parse_decimal, period_key
from apps.finance.ledger import account_code_for, post_double_entry
from apps.finance.models import Account

from .models import ChargeRunLog, Lease, ScheduledCharge

logger = logging.getLogger(__name__)

SOURCE_TYPE = 'scheduled_charge'


def get_lease(lease_id):
    try:
        return Lease.objects.get(pk=lease_id)
    except (Lease.DoesNotExist, ValueError, TypeError):
        raise NotFoundError(f"Lease {lease_id} not found.")


def get_charge(charge_id):
    try:
        return ScheduledCharge.objects.select_related('lease', 'account').get(pk=charge_id)
    except (ScheduledCharge.DoesNotExist, ValueError, TypeError):
        raise NotFoundError(f"Scheduled charge {charge_id} not found.")


def chargeable(lease=None):
    """Active charges on active leases, in posting order."""
    charges = ScheduledCharge.objects.filter(
        is_active=True, lease__status='active'
    ).select_related('lease', 'account').order_by('lease_id', 'charge_day', 'id')
    if lease is not None:
        charges = charges.filter(lease=lease)
    return charges


def due_charges(today=None, lease=None):
    today = today or timezone.localdate()
    return [charge for charge in chargeable(lease) if charge.is_due(today)]


def charge_idempotency_key(charge, today):
    return f"sched:{charge.pk}:{period_key(today)}:{charge.reset_count}"


def _post_charge(charge_id, today, posted_by):
    """
    Post one charge. Returns the (debit, credit) entries, or None when the
    charge turned out not to be due once locked.
    """
    with transaction.atomic():
        charge = ScheduledCharge.objects.select_for_update(of=('self',)).select_related(
            'lease', 'account'
        ).get(pk=charge_id)
        if not charge.is_due(today):
            return None

        previous = charge.last_charged_date
        period = period_key(today)
        entries = post_double_entry(
            account_code_for('receivable'),
            charge.account.code,
            charge.amount,
            f"{charge.description} - {month_label(today)}",
            today,
            idempotency_key=charge_idempotency_key(charge, today),
            lease=charge.lease,
            posted_by=posted_by,
            source_type=SOURCE_TYPE,
            source_id=charge.pk,
            posting_period=period,
        )

        swapped = ScheduledCharge.objects.filter(
            pk=charge.pk, last_charged_date=previous
        ).update(last_charged_date=today, updated_at=timezone.now())
        if swapped != 1:
            # Rolls back the entries above.
            raise DuplicatePostingError(f"Charge {charge.pk} was posted by another run.")

    return entries


def _result(charge, outcome, message, entries=None):
    result = {
        'charge_id': charge.pk,
        'lease_id': charge.lease_id,
        'lease_number': charge.lease.lease_number,
        'description': charge.description,
        'amount': str(charge.amount),
        'account_code': charge.account.code,
        'charge_day': charge.charge_day,
        'status': outcome,
        'message': message,
    }
    if entries:
        result['ledger_entry_ids'] = [entry.pk for entry in entries]
    return result


def post_due_charges(lease_id=None, today=None, job_name='post-due', posted_by='system', user=None):
    """
    Post every due charge, for one lease or for all leases.

    Returns {'total', 'posted', 'skipped', 'errors', 'total_amount',
    'results', 'run_id'}. Per-charge failures never abort the run.
    """
    started = time.monotonic()
    today = today or timezone.localdate()
    lease = get_lease(lease_id) if lease_id is not None else None

    results = []
    posted = skipped = errors = 0
    total_amount = Decimal('0.00')

    for charge in list(chargeable(lease)):
        if charge.charge_day > today.day:
            skipped += 1
            results.append(_result(charge, 'skipped', f"Not yet due (charge day {charge.charge_day})"))
            continue
        if charge.charged_in_month_of(today):
            skipped += 1
            results.append(_result(charge, 'skipped', 'Already charged this month'))
            continue

        try:
            entries = _post_charge(charge.pk, today, posted_by)
        except DuplicatePostingError:
            skipped += 1
            results.append(_result(charge, 'skipped', 'Already posted for this period'))
            continue
        except Exception as exc:
            errors += 1
            logger.exception(f"Scheduled charge {charge.pk} ({charge.lease.lease_number}) failed to post")
            results.append(_result(charge, 'error', str(exc)))
            continue

        if entries is None:
            skipped += 1
            results.append(_result(charge, 'skipped', 'Already charged this month'))
            continue

        posted += 1
        total_amount += charge.amount
        results.append(_result(charge, 'posted', f"Posted {charge.amount} to {charge.account.code}", entries))

    if errors == 0:
        status = 'SUCCESS'
    elif posted > 0:
        status = 'PARTIAL'
    else:
        status = 'FAILED'

    error_messages = [r['message'] for r in results if r['status'] == 'error']
    run_log = ChargeRunLog.objects.create(
        job_name=job_name,
        run_date=today,
        status=status,
        charges_posted=posted,
        charges_skipped=skipped,
        charges_errored=errors,
        total_amount=total_amount,
        duration_ms=int((time.monotonic() - started) * 1000),
        error_message='\n'.join(error_messages),
        details={'lease_id': lease_id, 'results': results},
    )
    audit_charge_run(run_log, user=user)

    log = logger.warning if errors else logger.info
    log(
        f"{job_name} {today}: {posted} posted ({total_amount}), {skipped} skipped, "
        f"{errors} errors out of {len(results)} charges"
    )

    return {
        'run_id': run_log.pk,
        'date': today,
        'total': len(results),
        'posted': posted,
        'skipped': skipped,
        'errors': errors,
        'total_amount': total_amount,
        'results': results,
    }


def reset_charge(charge_id, user=None):
    """
    Clear last_charged_date so the charge can post again this month.
    Administrative override: the only check is that the charge exists.
    """
    with transaction.atomic():
        try:
            charge = ScheduledCharge.objects.select_for_update().get(pk=charge_id)
        except (ScheduledCharge.DoesNotExist, ValueError, TypeError):
            raise NotFoundError(f"Scheduled charge {charge_id} not found.")

        previous = charge.last_charged_date
        charge.last_charged_date = None
        charge.reset_count += 1
        charge.save(update_fields=['last_charged_date', 'reset_count', 'updated_at', 'updated_by'])
        audit_charge_reset(charge, previous, user=user)

    logger.info(f"Scheduled charge {charge.pk} reset (was last charged {previous})")
    return charge


def pending_summary(today=None):
    """What a run today would post: count and total amount."""
    charges = due_charges(today)
    return {
        'count': len(charges),
        'total_amount': sum((charge.amount for charge in charges), Decimal('0.00')),
        'charges': [_result(charge, 'due', 'Due') for charge in charges],
    }


def monthly_summary(lease=None):
    """Monthly billing of active charges on active leases, by income account."""
    charges = chargeable(lease)
    totals = charges.aggregate(total=Sum('amount'), count=Count('id'))
    by_account = charges.values('account__code', 'account__name').annotate(
        total=Sum('amount'), count=Count('id')
    ).order_by('account__code')
    return {
        'total_monthly': totals['total'] or Decimal('0.00'),
        'charge_count': totals['count'],
        'by_account': [
            {
                'account_code': row['account__code'],
                'account_name': row['account__name'],
                'total': row['total'],
                'count': row['count'],
            }
            for row in by_account
        ],
    }


# ============================================
# SCHEDULED CHARGE MAINTENANCE
# ============================================

def _clean_charge(data, instance=None):
    """Validate create/update input. On update only the supplied keys are checked."""
    cleaned = {}
    partial = instance is not None

    if not partial or 'description' in data:
        description = str(data.get('description') or '').strip()
        if not description:
            raise ValidationError("description is required.")
        cleaned['description'] = description[:200]

    if not partial or 'amount' in data:
        amount = parse_decimal(data.get('amount'), 'amount')
        if amount <= 0:
            raise ValidationError("amount must be greater than zero.")
        cleaned['amount'] = amount

    if not partial or 'chargeDay' in data:
        try:
            charge_day = int(data.get('chargeDay'))
        except (TypeError, ValueError):
            raise ValidationError("chargeDay must be a whole number between 1 and 28.")
        if not 1 <= charge_day <= 28:
            raise ValidationError("chargeDay must be between 1 and 28.")
        cleaned['charge_day'] = charge_day

    if not partial or 'accountCode' in data:
        code = data.get('accountCode') or account_code_for('default_income')
        try:
            cleaned['account'] = Account.objects.get(code=code, is_active=True)
        except Account.DoesNotExist:
            raise ValidationError(f"Account {code} does not exist or is inactive.")

    if 'active' in data:
        cleaned['is_active'] = parse_bool(data.get('active'), default=True)

    return cleaned


def _ensure_account_free(lease, account, exclude_pk=None):
    clash = ScheduledCharge.objects.filter(lease=lease, account=account, is_active=True)
    if exclude_pk is not None:
        clash = clash.exclude(pk=exclude_pk)
    existing = clash.first()
    if existing:
        raise ValidationError(
            f"Account {account.code} is already scheduled for this lease ({existing.description}). "
            f"Each account can only be charged once per month."
        )


def create_charges(lease_id, charges_data, user=None):
    """Create one or more charges on a lease; all or nothing."""
    lease = get_lease(lease_id)
    if not charges_data:
        raise ValidationError("At least one charge is required.")

    created = []
    seen_accounts = {}
    with transaction.atomic():
        for index, data in enumerate(charges_data, start=1):
            try:
                cleaned = _clean_charge(data)
            except ValidationError as exc:
                if len(charges_data) == 1:
                    raise
                raise ValidationError(f"Charge {index}: {exc.message}")

            code = cleaned['account'].code
            if code in seen_accounts:
                raise ValidationError(
                    f"Account {code} appears twice in this request "
                    f"({seen_accounts[code]}, {cleaned['description']}). "
                    f"Each account can only be charged once per month."
                )
            seen_accounts[code] = cleaned['description']
            if cleaned.get('is_active', True):
                _ensure_account_free(lease, cleaned['account'])

            charge = ScheduledCharge.objects.create(lease=lease, **cleaned)
            log_audit(user, 'create', 'Property.ScheduledCharge', charge.pk, {
                'lease': lease.lease_number,
                'description': charge.description,
                'amount': str(charge.amount),
                'charge_day': charge.charge_day,
                'account_code': code,
            })
            created.append(charge)

    logger.info(f"Created {len(created)} scheduled charge(s) on {lease.lease_number}")
    return created


def update_charge(charge_id, data, user=None):
    with transaction.atomic():
        charge = get_charge(charge_id)
        cleaned = _clean_charge(data, instance=charge)
        for field, value in cleaned.items():
            setattr(charge, field, value)
        if charge.is_active:
            _ensure_account_free(charge.lease, charge.account, exclude_pk=charge.pk)
        charge.save()
        log_audit(user, 'update', 'Property.ScheduledCharge', charge.pk, {
            key: str(getattr(value, 'code', value)) for key, value in cleaned.items()
        })
    return charge


def toggle_charge(charge_id, user=None):
    with transaction.atomic():
        charge = get_charge(charge_id)
        charge.is_active = not charge.is_active
        if charge.is_active:
            _ensure_account_free(charge.lease, charge.account, exclude_pk=charge.pk)
        charge.save(update_fields=['is_active', 'updated_at', 'updated_by'])
        log_audit(user, 'update', 'Property.ScheduledCharge', charge.pk, {'is_active': charge.is_active})
    return charge


def delete_charge(charge_id, user=None):
    with transaction.atomic():
        charge = get_charge(charge_id)
        log_audit(user, 'delete', 'Property.ScheduledCharge', charge.pk, {
            'lease': charge.lease.lease_number,
            'description': charge.description,
            'amount': str(charge.amount),
        })
        charge.delete()
