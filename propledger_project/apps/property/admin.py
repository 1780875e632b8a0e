"""
Property Management Admin
"""
from django.contrib import admin
from .models import ChargeRunLog, Lease, Property, ScheduledCharge, Unit


@admin.register(Property)
class PropertyAdmin(admin.ModelAdmin):
    list_display = ['property_number', 'name', 'property_type', 'city', 'is_active']
    list_filter = ['property_type', 'city', 'is_active']
    search_fields = ['property_number', 'name', 'address']
    readonly_fields = ['property_number', 'created_at', 'updated_at']


@admin.register(Unit)
class UnitAdmin(admin.ModelAdmin):
    list_display = ['unit_number', 'property', 'bedrooms', 'monthly_rent']
    list_filter = ['property']
    search_fields = ['unit_number', 'property__name']


class ScheduledChargeInline(admin.TabularInline):
    model = ScheduledCharge
    extra = 0
    fields = ['description', 'amount', 'charge_day', 'account', 'is_active', 'last_charged_date']
    readonly_fields = ['last_charged_date']


@admin.register(Lease)
class LeaseAdmin(admin.ModelAdmin):
    list_display = ['lease_number', 'tenant_name', 'unit', 'start_date', 'end_date', 'monthly_rent', 'status']
    list_filter = ['status']
    search_fields = ['lease_number', 'tenant_name', 'tenant_email', 'unit__unit_number']
    readonly_fields = ['lease_number', 'created_at', 'updated_at']
    inlines = [ScheduledChargeInline]


@admin.register(ScheduledCharge)
class ScheduledChargeAdmin(admin.ModelAdmin):
    list_display = ['lease', 'description', 'amount', 'charge_day', 'account', 'is_active', 'last_charged_date']
    list_filter = ['is_active', 'charge_day', 'account']
    search_fields = ['description', 'lease__lease_number', 'lease__tenant_name']
    readonly_fields = ['last_charged_date', 'reset_count', 'created_at', 'updated_at']


@admin.register(ChargeRunLog)
class ChargeRunLogAdmin(admin.ModelAdmin):
    list_display = ['created_at', 'job_name', 'run_date', 'status', 'charges_posted',
                    'charges_skipped', 'charges_errored', 'total_amount', 'duration_ms']
    list_filter = ['status', 'job_name']
    readonly_fields = [field.name for field in ChargeRunLog._meta.fields]
