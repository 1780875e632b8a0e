"""
Audit logging for ledger postings, reconciliations and charge runs.
Every business action that changes money or reconciliation state leaves an
AuditLog row next to the regular application log.
"""
import json
from decimal import Decimal

from .middleware import get_current_request, get_current_user
from .utils import get_client_ip


def serialize_value(value):
    """Convert value to JSON-serializable format."""
    if value is None:
        return None
    if isinstance(value, Decimal):
        return str(value)
    if hasattr(value, 'isoformat'):
        return value.isoformat()
    if hasattr(value, 'pk'):
        return str(value)
    return value


def _resolve_user(user):
    user = user if user is not None else get_current_user()
    if user is None or not getattr(user, 'is_authenticated', False):
        return None
    return user


def log_audit(user, action, model_name, record_id=None, changes=None, request=None):
    """
    Create an audit log entry.

    Args:
        user: The user performing the action (None for cron/system runs)
        action: One of AuditLog.ACTION_CHOICES
        model_name: Label of the audited entity, e.g. 'Finance.Reconciliation'
        record_id: Primary key of the record
        changes: JSON serializable dict describing the action
        request: HTTP request object (falls back to the current request)
    """
    from apps.core.models import AuditLog

    ip_address = get_client_ip(request or get_current_request())

    if changes:
        try:
            json.dumps(changes)
        except (TypeError, ValueError):
            changes = {'message': str(changes)}

    return AuditLog.objects.create(
        user=_resolve_user(user),
        action=action,
        model=model_name,
        record_id=str(record_id) if record_id is not None else '',
        changes=changes or {},
        ip_address=ip_address,
    )


def log_ledger_audit(
    user,
    action,
    entity_type,
    entity_id,
    reference_number=None,
    amount=None,
    affected_accounts=None,
    details=None,
    module='Finance',
    request=None,
):
    """
    Log a money-related action with the metadata auditors look for:
    reference number, amount and the GL accounts touched.
    """
    changes = {
        'module': module,
        'entity_type': entity_type,
        'entity_id': str(entity_id),
        'reference_number': reference_number,
        'action_type': action,
    }
    if amount is not None:
        changes['amount'] = serialize_value(amount)
    if affected_accounts:
        changes['affected_accounts'] = (
            affected_accounts if isinstance(affected_accounts, list) else [affected_accounts]
        )
    if details:
        changes.update({key: serialize_value(val) for key, val in details.items()})

    return log_audit(
        user=user,
        action=action,
        model_name=f"{module}.{entity_type}",
        record_id=entity_id,
        changes=changes,
        request=request,
    )


# ============================================
# BANK RECONCILIATION AUDIT
# ============================================

def audit_reconciliation_import(reconciliation, summary, skipped_rows, user=None):
    """Log statement upload and the auto-match outcome."""
    log_ledger_audit(
        user=user,
        action='import',
        entity_type='Reconciliation',
        entity_id=reconciliation.pk,
        reference_number=reconciliation.reconciliation_number,
        amount=reconciliation.statement_balance,
        affected_accounts=[reconciliation.bank_account.gl_account.code],
        details={
            'bank_account': str(reconciliation.bank_account),
            'period': f"{reconciliation.period_start} to {reconciliation.period_end}",
            'file_name': reconciliation.csv_file_name,
            'total_lines': summary['total_lines'],
            'auto_matched': summary['auto_matched'],
            'skipped_rows': len(skipped_rows),
        },
    )


def audit_line_action(line, action, user=None, ledger_entry_id=None):
    """Log match/unmatch/exclude/include on a single statement line."""
    reconciliation = line.reconciliation
    log_ledger_audit(
        user=user,
        action=action,
        entity_type='Reconciliation',
        entity_id=reconciliation.pk,
        reference_number=reconciliation.reconciliation_number,
        amount=line.amount,
        details={
            'line_id': line.pk,
            'line_number': line.line_number,
            'ledger_entry_id': ledger_entry_id,
            'status': line.status,
        },
    )


def audit_reconciliation_complete(reconciliation, user=None):
    """Log reconciliation finalization."""
    log_ledger_audit(
        user=user,
        action='reconcile',
        entity_type='Reconciliation',
        entity_id=reconciliation.pk,
        reference_number=reconciliation.reconciliation_number,
        amount=reconciliation.statement_balance,
        affected_accounts=[reconciliation.bank_account.gl_account.code],
        details={
            'ledger_balance': reconciliation.ledger_balance,
            'variance': reconciliation.variance,
            'finalized_at': reconciliation.finalized_at,
        },
    )


# ============================================
# SCHEDULED CHARGE AUDIT
# ============================================

def audit_charge_run(run_log, user=None):
    """Log one PostDue invocation."""
    log_ledger_audit(
        user=user,
        action='run',
        entity_type='ChargeRunLog',
        entity_id=run_log.pk,
        reference_number=run_log.job_name,
        amount=run_log.total_amount,
        module='Property',
        details={
            'status': run_log.status,
            'posted': run_log.charges_posted,
            'skipped': run_log.charges_skipped,
            'errors': run_log.charges_errored,
        },
    )


def audit_charge_reset(charge, previous_date, user=None):
    """Log an administrative reset of a scheduled charge."""
    log_ledger_audit(
        user=user,
        action='reset',
        entity_type='ScheduledCharge',
        entity_id=charge.pk,
        reference_number=charge.lease.lease_number,
        amount=charge.amount,
        module='Property',
        details={
            'previous_last_charged_date': previous_date,
            'reset_count': charge.reset_count,
        },
    )
