"""
Property Management Models - leases and recurring charges.

Rent and other recurring fees are ScheduledCharge rows on a lease. The
scheduled charge poster (apps.property.charges) turns due charges into
ledger entries once per calendar month.
"""
from decimal import Decimal

from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.db.models import Q

from apps.core.models import BaseModel
from apps.core.utils import generate_number


class Property(BaseModel):
    """
    Property/Building for rental management.
    """
    property_number = models.CharField(max_length=50, unique=True, editable=False)
    name = models.CharField(max_length=200)
    address = models.TextField(blank=True)
    city = models.CharField(max_length=100, blank=True)
    property_type = models.CharField(max_length=50, choices=[
        ('residential', 'Residential'),
        ('commercial', 'Commercial'),
        ('mixed', 'Mixed Use'),
    ], default='residential')

    class Meta:
        ordering = ['name']
        verbose_name_plural = 'Properties'

    def __str__(self):
        return f"{self.property_number} - {self.name}"

    def save(self, *args, **kwargs):
        if not self.property_number:
            self.property_number = generate_number('PROPERTY', Property, 'property_number')
        super().save(*args, **kwargs)


class Unit(BaseModel):
    """
    Individual unit within a property.
    """
    unit_number = models.CharField(max_length=50)
    property = models.ForeignKey(Property, on_delete=models.CASCADE, related_name='units')
    bedrooms = models.PositiveIntegerField(default=0)
    bathrooms = models.PositiveIntegerField(default=0)
    monthly_rent = models.DecimalField(max_digits=12, decimal_places=2, default=0)

    class Meta:
        ordering = ['property', 'unit_number']
        unique_together = ['property', 'unit_number']

    def __str__(self):
        return f"{self.property.name} - {self.unit_number}"


class Lease(BaseModel):
    """
    Lease/Tenancy contract. Only active leases are charged.
    """
    STATUS_CHOICES = [
        ('draft', 'Draft'),
        ('active', 'Active'),
        ('ended', 'Ended'),
        ('terminated', 'Terminated'),
    ]

    lease_number = models.CharField(max_length=50, unique=True, editable=False)
    unit = models.ForeignKey(Unit, on_delete=models.PROTECT, related_name='leases', null=True, blank=True)
    tenant_name = models.CharField(max_length=200)
    tenant_email = models.EmailField(blank=True)

    start_date = models.DateField()
    end_date = models.DateField(null=True, blank=True)
    monthly_rent = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    security_deposit = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))

    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='active')
    notes = models.TextField(blank=True)

    class Meta:
        ordering = ['-start_date']

    def __str__(self):
        return f"{self.lease_number} - {self.tenant_name}"

    def save(self, *args, **kwargs):
        if not self.lease_number:
            self.lease_number = generate_number('LEASE', Lease, 'lease_number')
        super().save(*args, **kwargs)


class ScheduledCharge(BaseModel):
    """
    Recurring monthly charge on a lease (rent, parking, pet fee...).

    charge_day is limited to 1-28 so every month has that day.
    last_charged_date is the only posting bookkeeping kept here; the ledger
    entries (source_type='scheduled_charge') are the history.
    reset_count is bumped by an administrative reset so the next posting in
    the same month gets a fresh idempotency key.
    """
    lease = models.ForeignKey(Lease, on_delete=models.CASCADE, related_name='scheduled_charges')
    description = models.CharField(max_length=200)
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    charge_day = models.PositiveSmallIntegerField(
        validators=[MinValueValidator(1), MaxValueValidator(28)]
    )
    account = models.ForeignKey(
        'finance.Account',
        on_delete=models.PROTECT,
        related_name='scheduled_charges',
        help_text='Income account credited when the charge posts.'
    )
    last_charged_date = models.DateField(null=True, blank=True)
    reset_count = models.PositiveIntegerField(default=0)

    class Meta:
        ordering = ['lease', 'charge_day', 'id']
        constraints = [
            models.CheckConstraint(
                condition=Q(charge_day__gte=1) & Q(charge_day__lte=28),
                name='scheduled_charge_day_1_28',
            ),
            models.CheckConstraint(condition=Q(amount__gt=0), name='scheduled_charge_amount_positive'),
        ]

    def __str__(self):
        return f"{self.lease.lease_number}: {self.description} ({self.amount} on day {self.charge_day})"

    def charged_in_month_of(self, today):
        last = self.last_charged_date
        return last is not None and last.year == today.year and last.month == today.month

    def is_due(self, today):
        """Due when the charge day has arrived and nothing was posted this month."""
        return self.is_active and self.charge_day <= today.day and not self.charged_in_month_of(today)


class ChargeRunLog(models.Model):
    """
    One row per scheduled charge run (manual trigger or daily batch).
    """
    STATUS_CHOICES = [
        ('SUCCESS', 'Success'),
        ('PARTIAL', 'Partial'),
        ('FAILED', 'Failed'),
    ]

    job_name = models.CharField(max_length=50)
    run_date = models.DateField()
    status = models.CharField(max_length=10, choices=STATUS_CHOICES)
    charges_posted = models.PositiveIntegerField(default=0)
    charges_skipped = models.PositiveIntegerField(default=0)
    charges_errored = models.PositiveIntegerField(default=0)
    total_amount = models.DecimalField(max_digits=15, decimal_places=2, default=Decimal('0.00'))
    duration_ms = models.PositiveIntegerField(default=0)
    error_message = models.TextField(blank=True)
    details = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.job_name} {self.run_date} {self.status}"
