def serialize_lease(lease):
    return {
        'id': lease.pk,
        'lease_number': lease.lease_number,
        'tenant_name': lease.tenant_name,
        'status': lease.status,
        'start_date': lease.start_date,
        'end_date': lease.end_date,
    }


def serialize_charge(charge):
    return {
        'id': charge.pk,
        'lease_id': charge.lease_id,
        'lease_number': charge.lease.lease_number,
        'description': charge.description,
        'amount': charge.amount,
        'charge_day': charge.charge_day,
        'account_code': charge.account.code,
        'account_name': charge.account.name,
        'active': charge.is_active,
        'last_charged_date': charge.last_charged_date,
        'reset_count': charge.reset_count,
    }


def serialize_run_log(run_log):
    return {
        'id': run_log.pk,
        'job_name': run_log.job_name,
        'run_date': run_log.run_date,
        'status': run_log.status,
        'posted': run_log.charges_posted,
        'skipped': run_log.charges_skipped,
        'errors': run_log.charges_errored,
        'total_amount': run_log.total_amount,
        'duration_ms': run_log.duration_ms,
        'error_message': run_log.error_message,
        'created_at': run_log.created_at,
    }
