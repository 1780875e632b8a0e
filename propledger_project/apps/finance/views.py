"""
Finance JSON API - bank reconciliation and ledger lookups.
"""
from django.http import JsonResponse

from apps.core.api import api_view, error_response, parse_id, parse_json_body, require_fields
from apps.core.exceptions import ValidationError

from . import reconciliation as recon_service
from .excel_exports import export_reconciliation
from .filters import LedgerEntryFilter, ReconciliationFilter
from .models import BankAccount, LedgerEntry, Reconciliation
from .serializers import serialize_bank_account, serialize_ledger_entry, serialize_reconciliation


def _filter_errors(filterset):
    return error_response('Invalid filter parameters.', 400, 'validation_error', details=filterset.errors)


# ============ RECONCILIATION ============

@api_view(['GET', 'POST'])
def reconciliation_collection(request):
    """
    GET: list reconciliations, newest first (?bankAccountId=&status=).
    POST: upload a statement (multipart) and auto-match it.
    """
    if request.method == 'GET':
        filterset = ReconciliationFilter(
            request.GET,
            queryset=Reconciliation.with_summary(
                Reconciliation.objects.select_related('bank_account__gl_account', 'finalized_by')
            ),
        )
        if not filterset.is_valid():
            return _filter_errors(filterset)
        return JsonResponse({
            'reconciliations': [
                serialize_reconciliation(recon, recon.summary()) for recon in filterset.qs
            ]
        })

    upload = request.FILES.get('file')
    if upload is None:
        raise ValidationError("A statement CSV file is required.")
    if not upload.name.lower().endswith('.csv'):
        raise ValidationError("Please upload a .csv bank statement.")
    require_fields(request.POST, 'bankAccountId', 'startDate', 'endDate', 'statementBalance')

    reconciliation, summary, skipped_rows = recon_service.ingest_statement(
        bank_account_id=parse_id(request.POST['bankAccountId'], 'bankAccountId'),
        period_start=request.POST['startDate'],
        period_end=request.POST['endDate'],
        statement_balance=request.POST['statementBalance'],
        csv_content=upload.read(),
        file_name=upload.name,
        user=request.user,
    )
    return JsonResponse({
        'reconciliation': serialize_reconciliation(reconciliation),
        'summary': summary,
        'skipped_rows': skipped_rows,
    }, status=201)


@api_view(['GET'])
def reconciliation_detail(request, pk):
    reconciliation = recon_service.get_reconciliation(pk)
    return JsonResponse(recon_service.reconciliation_detail(reconciliation))


@api_view(['POST'])
def reconciliation_match(request, pk):
    data = parse_json_body(request)
    require_fields(data, 'lineId', 'ledgerEntryId')
    reconciliation = recon_service.match_line(
        pk,
        parse_id(data['lineId'], 'lineId'),
        parse_id(data['ledgerEntryId'], 'ledgerEntryId'),
        user=request.user,
    )
    return JsonResponse(recon_service.reconciliation_detail(reconciliation))


@api_view(['POST'])
def reconciliation_unmatch(request, pk):
    data = parse_json_body(request)
    require_fields(data, 'lineId')
    reconciliation = recon_service.unmatch_line(pk, parse_id(data['lineId'], 'lineId'), user=request.user)
    return JsonResponse(recon_service.reconciliation_detail(reconciliation))


@api_view(['POST'])
def reconciliation_exclude(request, pk):
    data = parse_json_body(request)
    require_fields(data, 'lineId', 'action')
    reconciliation = recon_service.set_line_exclusion(
        pk, parse_id(data['lineId'], 'lineId'), data['action'], user=request.user
    )
    return JsonResponse(recon_service.reconciliation_detail(reconciliation))


@api_view(['POST'])
def reconciliation_finalize(request, pk):
    data = parse_json_body(request)
    reconciliation = recon_service.finalize_reconciliation(pk, notes=data.get('notes'), user=request.user)
    return JsonResponse({
        'reconciliation': serialize_reconciliation(reconciliation, reconciliation.summary()),
    })


@api_view(['GET'])
def reconciliation_export(request, pk):
    return export_reconciliation(recon_service.get_reconciliation(pk))


# ============ BANK ACCOUNTS ============

@api_view(['GET', 'POST'])
def bank_account_collection(request):
    if request.method == 'GET':
        bank_accounts = BankAccount.objects.filter(is_active=True).select_related('gl_account')
        return JsonResponse({'bank_accounts': [serialize_bank_account(ba) for ba in bank_accounts]})

    data = parse_json_body(request)
    bank_account = recon_service.create_bank_account(
        name=data.get('name'),
        last4=data.get('last4'),
        account_code=data.get('accountCode'),
    )
    return JsonResponse({'bank_account': serialize_bank_account(bank_account)}, status=201)


# ============ LEDGER ============

@api_view(['GET'])
def ledger_entry_list(request):
    filterset = LedgerEntryFilter(request.GET, queryset=LedgerEntry.objects.select_related('account'))
    if not filterset.is_valid():
        return _filter_errors(filterset)
    return JsonResponse({'entries': [serialize_ledger_entry(entry) for entry in filterset.qs[:500]]})
