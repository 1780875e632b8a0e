"""
Bank reconciliation workflow.

Ingest a statement, auto-match it against the ledger, then let a user
match/unmatch/exclude lines until nothing is UNMATCHED and finalize.
Each operation is one transaction; rows being changed are locked first.
"""
import logging
import re

from django.conf import settings
from django.db import IntegrityError, transaction

from apps.core.audit import audit_line_action, audit_reconciliation_complete, audit_reconciliation_import
from apps.core.exceptions import ConflictError, NotFoundError, ValidationError
from apps.core.utils import parse_date, parse_decimal

from .ledger import account_code_for
from .models import (
    Account, BankAccount, LedgerEntry, LineStatus, Reconciliation,
    ReconciliationLine, ReconciliationStatus,
)
from .serializers import serialize_ledger_entry, serialize_line, serialize_reconciliation
from .statement_parser import parse_statement_csv

logger = logging.getLogger(__name__)

LINE_ACTIONS = ('exclude', 'include')
NUMBER_ATTEMPTS = 3


def get_reconciliation(reconciliation_id, lock=False):
    queryset = Reconciliation.objects.select_related('bank_account__gl_account', 'finalized_by')
    if lock:
        queryset = queryset.select_for_update(of=('self',))
    try:
        return queryset.get(pk=reconciliation_id)
    except (Reconciliation.DoesNotExist, ValueError, TypeError):
        raise NotFoundError(f"Reconciliation {reconciliation_id} not found.")


def _get_line(reconciliation, line_id):
    try:
        line = ReconciliationLine.objects.select_for_update().get(pk=line_id)
    except (ReconciliationLine.DoesNotExist, ValueError, TypeError):
        raise NotFoundError(f"Statement line {line_id} not found.")
    if line.reconciliation_id != reconciliation.pk:
        raise NotFoundError(
            f"Statement line {line_id} does not belong to reconciliation {reconciliation.reconciliation_number}."
        )
    line.reconciliation = reconciliation
    return line


def _create_reconciliation(bank_account, **fields):
    """
    Insert the reconciliation row. Uploads for different bank accounts are not
    serialized, so two of them can draw the same reconciliation number; the
    loser retries with a fresh number.
    """
    for attempt in range(1, NUMBER_ATTEMPTS + 1):
        try:
            with transaction.atomic():
                return Reconciliation.objects.create(bank_account=bank_account, **fields)
        except IntegrityError:
            if Reconciliation.objects.filter(
                bank_account=bank_account, status=ReconciliationStatus.IN_PROGRESS
            ).exists():
                raise ConflictError(f"A reconciliation is already in progress for {bank_account.name}.")
            logger.warning(
                f"Reconciliation number collision for {bank_account.name} "
                f"(attempt {attempt} of {NUMBER_ATTEMPTS})"
            )
    raise ConflictError("Could not allocate a reconciliation number. Please upload the statement again.")


def ingest_statement(bank_account_id, period_start, period_end, statement_balance,
                     csv_content, file_name='', user=None):
    """
    Create a reconciliation from an uploaded statement and auto-match it.

    Returns (reconciliation, summary, skipped_rows).
    """
    period_start = parse_date(period_start, 'startDate')
    period_end = parse_date(period_end, 'endDate')
    if period_start > period_end:
        raise ValidationError("startDate must be on or before endDate.")
    statement_balance = parse_decimal(statement_balance, 'statementBalance')

    try:
        bank_account = BankAccount.objects.select_related('gl_account').get(pk=bank_account_id)
    except (BankAccount.DoesNotExist, ValueError, TypeError):
        raise NotFoundError(f"Bank account {bank_account_id} not found.")

    parsed = parse_statement_csv(csv_content)

    with transaction.atomic():
        # Serializes concurrent uploads for the same bank account.
        BankAccount.objects.select_for_update().filter(pk=bank_account.pk).first()

        open_reconciliation = Reconciliation.objects.filter(
            bank_account=bank_account, status=ReconciliationStatus.IN_PROGRESS
        ).first()
        if open_reconciliation:
            raise ConflictError(
                f"Reconciliation {open_reconciliation.reconciliation_number} is still in progress for "
                f"{bank_account.name}. Finalize it before uploading another statement.",
                details={'reconciliation_id': open_reconciliation.pk},
            )

        reconciliation = _create_reconciliation(
            bank_account=bank_account,
            period_start=period_start,
            period_end=period_end,
            statement_balance=statement_balance,
            csv_file_name=(file_name or '')[:255],
        )
        ReconciliationLine.objects.bulk_create([
            ReconciliationLine(reconciliation=reconciliation, **line) for line in parsed['lines']
        ])

        reconciliation.auto_match()
        summary = reconciliation.summary()
        audit_reconciliation_import(reconciliation, summary, parsed['skipped_rows'], user=user)

    logger.info(
        f"Ingested {reconciliation.reconciliation_number} for {bank_account.name}: "
        f"{summary['total_lines']} lines, {summary['auto_matched']} auto-matched, "
        f"{len(parsed['skipped_rows'])} rows skipped"
    )
    return reconciliation, summary, parsed['skipped_rows']


def reconciliation_detail(reconciliation):
    """
    Full record: lines, the ledger entries still available for matching, the
    summary, and per-line amount-equal suggestions for UNMATCHED lines.
    """
    tolerance = settings.RECONCILIATION_MATCH_TOLERANCE
    available = list(reconciliation.candidate_entries().select_related('account'))

    lines = []
    for line in reconciliation.lines.select_related('ledger_entry__account'):
        suggestions = None
        if line.status == LineStatus.UNMATCHED:
            suggestions = [
                entry.pk for entry in available
                if abs(entry.signed_amount - line.amount) < tolerance
            ]
        lines.append(serialize_line(line, suggestions))

    return {
        'reconciliation': serialize_reconciliation(reconciliation),
        'lines': lines,
        'unmatched_ledger_entries': [serialize_ledger_entry(entry) for entry in available],
        'summary': reconciliation.summary(),
    }


def match_line(reconciliation_id, line_id, ledger_entry_id, user=None):
    """Manually link an UNMATCHED line to a ledger entry, regardless of amount."""
    with transaction.atomic():
        reconciliation = get_reconciliation(reconciliation_id, lock=True)
        reconciliation.ensure_open()
        line = _get_line(reconciliation, line_id)
        try:
            entry = LedgerEntry.objects.select_for_update().get(pk=ledger_entry_id)
        except (LedgerEntry.DoesNotExist, ValueError, TypeError):
            raise NotFoundError(f"Ledger entry {ledger_entry_id} not found.")

        line.link(entry, method='manual', user=user)
        audit_line_action(line, 'match', user=user, ledger_entry_id=entry.pk)

    logger.info(f"{reconciliation.reconciliation_number}: line {line.line_number} matched to entry {entry.pk}")
    return reconciliation


def unmatch_line(reconciliation_id, line_id, user=None):
    with transaction.atomic():
        reconciliation = get_reconciliation(reconciliation_id, lock=True)
        reconciliation.ensure_open()
        line = _get_line(reconciliation, line_id)
        previous_entry_id = line.ledger_entry_id
        line.unlink()
        audit_line_action(line, 'unmatch', user=user, ledger_entry_id=previous_entry_id)

    logger.info(f"{reconciliation.reconciliation_number}: line {line.line_number} unmatched")
    return reconciliation


def set_line_exclusion(reconciliation_id, line_id, action, user=None):
    """Move a line UNMATCHED -> EXCLUDED (action='exclude') or back ('include')."""
    if action not in LINE_ACTIONS:
        raise ValidationError(f"action must be one of: {', '.join(LINE_ACTIONS)}.")

    with transaction.atomic():
        reconciliation = get_reconciliation(reconciliation_id, lock=True)
        reconciliation.ensure_open()
        line = _get_line(reconciliation, line_id)
        if action == 'exclude':
            line.exclude()
        else:
            line.include()
        audit_line_action(line, action, user=user)

    logger.info(f"{reconciliation.reconciliation_number}: line {line.line_number} {action}d")
    return reconciliation


def finalize_reconciliation(reconciliation_id, notes=None, user=None):
    with transaction.atomic():
        reconciliation = get_reconciliation(reconciliation_id, lock=True)
        # Lock lines so no match/exclude slips in between the gate and the totals.
        list(reconciliation.lines.select_for_update().values_list('pk', flat=True))
        reconciliation.finalize(notes=notes, user=user)
        audit_reconciliation_complete(reconciliation, user=user)

    logger.info(
        f"Finalized {reconciliation.reconciliation_number}: statement {reconciliation.statement_balance}, "
        f"ledger {reconciliation.ledger_balance}, variance {reconciliation.variance}"
    )
    return reconciliation


# ============================================
# BANK ACCOUNT SETUP
# ============================================

def create_bank_account(name, last4, account_code=None):
    name = (name or '').strip()
    if not name:
        raise ValidationError("name is required.")
    last4 = str(last4 or '').strip()
    if not re.fullmatch(r'\d{4}', last4):
        raise ValidationError("last4 must be exactly 4 digits.")

    code = account_code or account_code_for('cash')
    try:
        gl_account = Account.objects.get(code=code)
    except Account.DoesNotExist:
        raise ValidationError(f"Account {code} does not exist.")

    bank_account = BankAccount.objects.create(name=name, last4=last4, gl_account=gl_account)
    logger.info(f"Created bank account {bank_account} on GL {gl_account.code}")
    return bank_account
