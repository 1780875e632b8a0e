from datetime import date
from decimal import Decimal

from apps.finance.tests.base import LedgerTestCase
from apps.property.models import Lease, Property, ScheduledCharge, Unit


class PropertyTestCase(LedgerTestCase):
    """One active lease with rent due on the 1st and parking due on the 15th."""

    @classmethod
    def setUpTestData(cls):
        super().setUpTestData()
        cls.building = Property.objects.create(name='Harbor View', city='Dubai')
        cls.unit = Unit.objects.create(property=cls.building, unit_number='101', monthly_rent=Decimal('1500'))
        cls.lease = Lease.objects.create(
            unit=cls.unit,
            tenant_name='Jordan Tenant',
            tenant_email='jordan@example.com',
            start_date=date(2026, 1, 1),
            monthly_rent=Decimal('1500'),
            security_deposit=Decimal('2000'),
        )
        cls.rent = ScheduledCharge.objects.create(
            lease=cls.lease, description='Rent', amount=Decimal('1500.00'),
            charge_day=1, account=cls.rental_income,
        )
        cls.parking = ScheduledCharge.objects.create(
            lease=cls.lease, description='Parking', amount=Decimal('75.00'),
            charge_day=15, account=cls.parking_income,
        )
