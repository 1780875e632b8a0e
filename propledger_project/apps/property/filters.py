import django_filters

from .models import ChargeRunLog, ScheduledCharge


class ScheduledChargeFilter(django_filters.FilterSet):
    leaseId = django_filters.NumberFilter(field_name='lease_id')
    active = django_filters.BooleanFilter(field_name='is_active')
    accountCode = django_filters.CharFilter(field_name='account__code')

    class Meta:
        model = ScheduledCharge
        fields = ['leaseId', 'active', 'accountCode']


class ChargeRunLogFilter(django_filters.FilterSet):
    job = django_filters.CharFilter(field_name='job_name')
    status = django_filters.ChoiceFilter(choices=ChargeRunLog.STATUS_CHOICES)
    since = django_filters.DateFilter(field_name='run_date', lookup_expr='gte')

    class Meta:
        model = ChargeRunLog
        fields = ['job', 'status', 'since']
