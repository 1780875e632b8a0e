from django.contrib import admin
from .models import Account, BankAccount, LedgerEntry, Reconciliation, ReconciliationLine


@admin.register(Account)
class AccountAdmin(admin.ModelAdmin):
    list_display = ['code', 'name', 'account_type', 'normal_balance', 'is_active']
    list_filter = ['account_type', 'is_active']
    search_fields = ['code', 'name']


@admin.register(LedgerEntry)
class LedgerEntryAdmin(admin.ModelAdmin):
    list_display = ['entry_date', 'account', 'debit_credit', 'amount', 'description', 'lease', 'status', 'source_type']
    list_filter = ['status', 'debit_credit', 'source_type', 'account']
    search_fields = ['description', 'idempotency_key', 'posting_period']
    date_hierarchy = 'entry_date'
    readonly_fields = ['idempotency_key', 'source_type', 'source_id', 'posting_period', 'posted_by']


@admin.register(BankAccount)
class BankAccountAdmin(admin.ModelAdmin):
    list_display = ['name', 'last4', 'gl_account', 'is_active']
    search_fields = ['name', 'last4']


class ReconciliationLineInline(admin.TabularInline):
    model = ReconciliationLine
    extra = 0
    can_delete = False
    fields = ['line_number', 'line_date', 'description', 'amount', 'status', 'ledger_entry', 'match_method']
    readonly_fields = fields


@admin.register(Reconciliation)
class ReconciliationAdmin(admin.ModelAdmin):
    list_display = ['reconciliation_number', 'bank_account', 'period_start', 'period_end',
                    'statement_balance', 'ledger_balance', 'variance', 'status']
    list_filter = ['status', 'bank_account']
    search_fields = ['reconciliation_number', 'notes']
    readonly_fields = ['reconciliation_number', 'status', 'ledger_balance', 'variance', 'finalized_at', 'finalized_by']
    inlines = [ReconciliationLineInline]
