"""
JSON payloads for finance records. Decimals and dates are left to
DjangoJSONEncoder, which JsonResponse uses.
"""


def serialize_account(account):
    return {
        'code': account.code,
        'name': account.name,
        'account_type': account.account_type,
        'normal_balance': account.normal_balance,
        'is_active': account.is_active,
    }


def serialize_ledger_entry(entry):
    return {
        'id': entry.pk,
        'entry_date': entry.entry_date,
        'account_code': entry.account.code,
        'amount': entry.amount,
        'debit_credit': entry.debit_credit,
        'signed_amount': entry.signed_amount,
        'description': entry.description,
        'lease_id': entry.lease_id,
        'status': entry.status,
        'source_type': entry.source_type,
        'source_id': entry.source_id,
        'posting_period': entry.posting_period,
    }


def serialize_bank_account(bank_account):
    return {
        'id': bank_account.pk,
        'name': bank_account.name,
        'last4': bank_account.last4,
        'account_code': bank_account.gl_account.code,
        'is_active': bank_account.is_active,
    }


def serialize_line(line, suggestions=None):
    data = {
        'id': line.pk,
        'line_number': line.line_number,
        'date': line.line_date,
        'description': line.description,
        'reference': line.reference,
        'amount': line.amount,
        'status': line.status,
        'ledger_entry_id': line.ledger_entry_id,
        'match_method': line.match_method or None,
        'matched_at': line.matched_at,
    }
    if line.ledger_entry_id:
        data['ledger_entry'] = serialize_ledger_entry(line.ledger_entry)
    if suggestions is not None:
        data['suggested_ledger_entry_ids'] = suggestions
    return data


def serialize_reconciliation(reconciliation, summary=None):
    data = {
        'id': reconciliation.pk,
        'reconciliation_number': reconciliation.reconciliation_number,
        'bank_account': serialize_bank_account(reconciliation.bank_account),
        'status': reconciliation.status,
        'period_start': reconciliation.period_start,
        'period_end': reconciliation.period_end,
        'statement_balance': reconciliation.statement_balance,
        'ledger_balance': reconciliation.ledger_balance,
        'variance': reconciliation.variance,
        'finalized_at': reconciliation.finalized_at,
        'finalized_by': reconciliation.finalized_by.get_username() if reconciliation.finalized_by else None,
        'notes': reconciliation.notes,
        'csv_file_name': reconciliation.csv_file_name,
        'created_at': reconciliation.created_at,
    }
    if summary is not None:
        data['summary'] = summary
    return data
