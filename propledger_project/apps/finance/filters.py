import django_filters

from .models import LedgerEntry, Reconciliation, ReconciliationStatus


class ReconciliationFilter(django_filters.FilterSet):
    bankAccountId = django_filters.NumberFilter(field_name='bank_account_id')
    status = django_filters.ChoiceFilter(choices=ReconciliationStatus.choices)

    class Meta:
        model = Reconciliation
        fields = ['bankAccountId', 'status']


class LedgerEntryFilter(django_filters.FilterSet):
    accountCode = django_filters.CharFilter(field_name='account__code')
    leaseId = django_filters.NumberFilter(field_name='lease_id')
    startDate = django_filters.DateFilter(field_name='entry_date', lookup_expr='gte')
    endDate = django_filters.DateFilter(field_name='entry_date', lookup_expr='lte')
    unmatched = django_filters.BooleanFilter(field_name='reconciliation_line', lookup_expr='isnull')

    class Meta:
        model = LedgerEntry
        fields = ['accountCode', 'leaseId', 'status', 'source_type', 'posting_period']
