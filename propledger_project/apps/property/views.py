"""
Property JSON API - scheduled charges, the charge poster and security deposits.
"""
from django.http import HttpResponse, JsonResponse

from apps.core.api import api_view, error_response, parse_bool, parse_id, parse_json_body, require_fields
from apps.core.exceptions import ValidationError

from . import charges as charge_service
from . import deposits as deposit_service
from .filters import ChargeRunLogFilter, ScheduledChargeFilter
from .models import ChargeRunLog, ScheduledCharge
from .serializers import serialize_charge, serialize_run_log


# ============ SCHEDULED CHARGES ============

@api_view(['GET', 'POST'])
def charge_collection(request):
    """
    GET: list charges (?leaseId=&active=&accountCode=), or the monthly
    billing summary with ?summary=true.
    POST: create one charge, or several with {"leaseId": .., "charges": [..]}.
    """
    if request.method == 'GET':
        if parse_bool(request.GET.get('summary')):
            lease = None
            if request.GET.get('leaseId'):
                lease = charge_service.get_lease(parse_id(request.GET['leaseId'], 'leaseId'))
            return JsonResponse(charge_service.monthly_summary(lease))

        filterset = ScheduledChargeFilter(
            request.GET, queryset=ScheduledCharge.objects.select_related('lease', 'account')
        )
        if not filterset.is_valid():
            return error_response('Invalid filter parameters.', 400, 'validation_error', details=filterset.errors)
        return JsonResponse({'charges': [serialize_charge(charge) for charge in filterset.qs]})

    data = parse_json_body(request)
    require_fields(data, 'leaseId')
    if 'charges' in data:
        if not isinstance(data['charges'], list):
            raise ValidationError("charges must be a list.")
        charges_data = data['charges']
    else:
        charges_data = [data]

    created = charge_service.create_charges(parse_id(data['leaseId'], 'leaseId'), charges_data, user=request.user)
    return JsonResponse({'charges': [serialize_charge(charge) for charge in created]}, status=201)


@api_view(['GET', 'PATCH', 'DELETE'])
def charge_detail(request, pk):
    if request.method == 'GET':
        return JsonResponse({'charge': serialize_charge(charge_service.get_charge(pk))})

    if request.method == 'DELETE':
        charge_service.delete_charge(pk, user=request.user)
        return HttpResponse(status=204)

    charge = charge_service.update_charge(pk, parse_json_body(request), user=request.user)
    return JsonResponse({'charge': serialize_charge(charge)})


@api_view(['POST'])
def charge_toggle(request, pk):
    charge = charge_service.toggle_charge(pk, user=request.user)
    return JsonResponse({'charge': serialize_charge(charge)})


@api_view(['POST'])
def charge_reset(request, pk):
    charge = charge_service.reset_charge(pk, user=request.user)
    return JsonResponse({'charge': serialize_charge(charge)})


@api_view(['POST'])
def post_due(request):
    """Post every due charge (optionally for one lease). Always 200 with counts."""
    data = parse_json_body(request)
    lease_id = parse_id(data['leaseId'], 'leaseId') if data.get('leaseId') not in (None, '') else None
    result = charge_service.post_due_charges(lease_id=lease_id, job_name='post-due', user=request.user)
    return JsonResponse({
        'summary': {
            'total': result['total'],
            'posted': result['posted'],
            'skipped': result['skipped'],
            'errors': result['errors'],
            'total_amount': result['total_amount'],
        },
        'run_id': result['run_id'],
        'results': result['results'],
    })


@api_view(['GET'])
def pending_charges(request):
    return JsonResponse(charge_service.pending_summary())


@api_view(['GET'])
def charge_run_logs(request):
    filterset = ChargeRunLogFilter(request.GET, queryset=ChargeRunLog.objects.all())
    if not filterset.is_valid():
        return error_response('Invalid filter parameters.', 400, 'validation_error', details=filterset.errors)
    return JsonResponse({'runs': [serialize_run_log(run) for run in filterset.qs[:100]]})


# ============ SECURITY DEPOSITS ============

@api_view(['POST'])
def deposit_receive(request):
    data = parse_json_body(request)
    require_fields(data, 'leaseId', 'amount')
    status = deposit_service.receive_deposit(
        parse_id(data['leaseId'], 'leaseId'),
        data['amount'],
        entry_date=data.get('date'),
        description=data.get('description'),
        user=request.user,
    )
    return JsonResponse(status, status=201)


@api_view(['POST'])
def deposit_return(request):
    data = parse_json_body(request)
    require_fields(data, 'leaseId')
    deductions = data.get('deductions') or []
    if not isinstance(deductions, list) or not all(isinstance(d, dict) for d in deductions):
        raise ValidationError("deductions must be a list of {description, amount} objects.")
    status = deposit_service.return_deposit(
        parse_id(data['leaseId'], 'leaseId'),
        data.get('refundAmount'),
        deductions=deductions,
        entry_date=data.get('date'),
        user=request.user,
    )
    return JsonResponse(status)


@api_view(['GET'])
def deposit_status(request, lease_id):
    return JsonResponse(deposit_service.deposit_status(lease_id))
