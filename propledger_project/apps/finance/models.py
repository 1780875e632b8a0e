"""
Finance Models - general ledger and bank reconciliation.

The ledger is single-row-per-posting: every business event writes paired
DR/CR LedgerEntry rows through apps.finance.ledger. Bank reconciliation reads
ledger entries and links statement lines to them; it never writes the ledger.
"""
from decimal import Decimal

from django.conf import settings
from django.core.validators import RegexValidator
from django.db import models
from django.db.models import Q, Sum
from django.db.models.functions import Coalesce
from django.utils import timezone

from apps.core.exceptions import ConflictError, PreconditionError
from apps.core.models import BaseModel, TimeStampedModel
from apps.core.utils import generate_number


class AccountType(models.TextChoices):
    """Account types for Chart of Accounts."""
    ASSET = 'asset', 'Asset'
    LIABILITY = 'liability', 'Liability'
    EQUITY = 'equity', 'Equity'
    INCOME = 'income', 'Income'
    EXPENSE = 'expense', 'Expense'


class DebitCredit(models.TextChoices):
    DEBIT = 'DR', 'Debit'
    CREDIT = 'CR', 'Credit'


class Account(BaseModel):
    """
    Chart of Accounts entry, addressed by its code (e.g. 1000 Cash, 1200 AR).
    """
    code = models.CharField(max_length=20, unique=True)
    name = models.CharField(max_length=200)
    account_type = models.CharField(max_length=20, choices=AccountType.choices)
    normal_balance = models.CharField(
        max_length=2,
        choices=DebitCredit.choices,
        blank=True,
        help_text="Derived from the account type when left blank."
    )
    description = models.TextField(blank=True)

    class Meta:
        ordering = ['code']

    def __str__(self):
        return f"{self.code} - {self.name}"

    def save(self, *args, **kwargs):
        if not self.normal_balance:
            if self.account_type in [AccountType.ASSET, AccountType.EXPENSE]:
                self.normal_balance = DebitCredit.DEBIT
            else:
                self.normal_balance = DebitCredit.CREDIT
        super().save(*args, **kwargs)

    @property
    def debit_increases(self):
        """Returns True if debits increase this account."""
        return self.normal_balance == DebitCredit.DEBIT


class LedgerEntryStatus(models.TextChoices):
    POSTED = 'POSTED', 'Posted'
    VOID = 'VOID', 'Void'


class LedgerEntry(TimeStampedModel):
    """
    One debit or credit posting to a GL account.

    Provenance fields (source_type, source_id, posting_period) let scheduled
    charge history be rebuilt from the ledger alone.
    """
    SOURCE_CHOICES = [
        ('manual', 'Manual'),
        ('scheduled_charge', 'Scheduled Charge'),
        ('security_deposit', 'Security Deposit'),
        ('opening_balance', 'Opening Balance'),
    ]

    entry_date = models.DateField()
    account = models.ForeignKey(Account, on_delete=models.PROTECT, related_name='ledger_entries')
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    debit_credit = models.CharField(max_length=2, choices=DebitCredit.choices)
    description = models.CharField(max_length=500)
    lease = models.ForeignKey(
        'property.Lease',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='ledger_entries'
    )
    status = models.CharField(
        max_length=10,
        choices=LedgerEntryStatus.choices,
        default=LedgerEntryStatus.POSTED
    )
    posted_by = models.CharField(max_length=150, default='system')
    idempotency_key = models.CharField(max_length=255, unique=True, null=True, blank=True)

    source_type = models.CharField(max_length=30, choices=SOURCE_CHOICES, default='manual')
    source_id = models.PositiveBigIntegerField(null=True, blank=True)
    posting_period = models.CharField(max_length=7, blank=True, help_text="YYYY-MM")

    class Meta:
        ordering = ['entry_date', 'created_at', 'id']
        verbose_name_plural = 'Ledger entries'
        indexes = [
            models.Index(fields=['account', 'status', 'entry_date'], name='ledger_entry_account_idx'),
            models.Index(fields=['source_type', 'source_id'], name='ledger_entry_source_idx'),
        ]
        constraints = [
            models.CheckConstraint(condition=Q(amount__gt=0), name='ledger_entry_amount_positive'),
        ]

    def __str__(self):
        return f"{self.entry_date} {self.account.code} {self.debit_credit} {self.amount}"

    @property
    def account_code(self):
        return self.account.code

    @property
    def signed_amount(self):
        """
        Amount in bank convention: a debit to the bank's GL account is money
        in (+), a credit is money out (-).
        """
        if self.debit_credit == DebitCredit.DEBIT:
            return self.amount
        return -self.amount


class BankAccount(BaseModel):
    """
    Bank account reconciled against its GL account.
    Set up once; not edited through the API.
    """
    name = models.CharField(max_length=200)
    last4 = models.CharField(
        max_length=4,
        validators=[RegexValidator(r'^\d{4}$', 'Last 4 must be exactly 4 digits.')]
    )
    gl_account = models.ForeignKey(
        Account,
        on_delete=models.PROTECT,
        related_name='bank_accounts'
    )

    class Meta:
        ordering = ['name']

    def __str__(self):
        return f"{self.name} (...{self.last4})"


class ReconciliationStatus(models.TextChoices):
    IN_PROGRESS = 'IN_PROGRESS', 'In Progress'
    FINALIZED = 'FINALIZED', 'Finalized'


class LineStatus(models.TextChoices):
    UNMATCHED = 'UNMATCHED', 'Unmatched'
    MATCHED = 'MATCHED', 'Matched'
    EXCLUDED = 'EXCLUDED', 'Excluded'


# action -> (required current status, resulting status)
LINE_TRANSITIONS = {
    'match': (LineStatus.UNMATCHED, LineStatus.MATCHED),
    'unmatch': (LineStatus.MATCHED, LineStatus.UNMATCHED),
    'exclude': (LineStatus.UNMATCHED, LineStatus.EXCLUDED),
    'include': (LineStatus.EXCLUDED, LineStatus.UNMATCHED),
}

LINE_TRANSITION_ERRORS = {
    ('match', LineStatus.MATCHED): "Line is already matched.",
    ('match', LineStatus.EXCLUDED): "Line is excluded. Include it before matching.",
    ('unmatch', LineStatus.UNMATCHED): "Line is not matched.",
    ('unmatch', LineStatus.EXCLUDED): "Line is excluded, not matched.",
    ('exclude', LineStatus.MATCHED): "Line is matched. Unmatch it before excluding.",
    ('exclude', LineStatus.EXCLUDED): "Line is already excluded.",
    ('include', LineStatus.UNMATCHED): "Line is not excluded.",
    ('include', LineStatus.MATCHED): "Line is matched, not excluded.",
}


def next_line_status(current, action):
    """
    Resolve a line transition. Raises ConflictError when the action is not
    allowed from the current status.
    """
    required, target = LINE_TRANSITIONS[action]
    if current != required:
        raise ConflictError(
            LINE_TRANSITION_ERRORS.get((action, current), f"Cannot {action} a {current} line."),
            details={'status': current, 'action': action},
        )
    return target


class Reconciliation(BaseModel):
    """
    One bank statement period being reconciled against the ledger.
    IN_PROGRESS -> FINALIZED, once, when no UNMATCHED lines remain.
    """
    reconciliation_number = models.CharField(max_length=50, unique=True, editable=False)
    bank_account = models.ForeignKey(BankAccount, on_delete=models.PROTECT, related_name='reconciliations')
    status = models.CharField(
        max_length=20,
        choices=ReconciliationStatus.choices,
        default=ReconciliationStatus.IN_PROGRESS
    )
    period_start = models.DateField()
    period_end = models.DateField()

    statement_balance = models.DecimalField(max_digits=15, decimal_places=2)
    ledger_balance = models.DecimalField(max_digits=15, decimal_places=2, null=True, blank=True)
    variance = models.DecimalField(max_digits=15, decimal_places=2, null=True, blank=True)

    finalized_at = models.DateTimeField(null=True, blank=True)
    finalized_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='finalized_reconciliations'
    )
    notes = models.TextField(blank=True)
    csv_file_name = models.CharField(max_length=255, blank=True)

    class Meta:
        ordering = ['-period_end', '-created_at']
        constraints = [
            models.UniqueConstraint(
                fields=['bank_account'],
                condition=Q(status='IN_PROGRESS'),
                name='one_open_reconciliation_per_bank_account',
            ),
            models.CheckConstraint(
                condition=Q(period_start__lte=models.F('period_end')),
                name='reconciliation_period_ordered',
            ),
        ]

    def __str__(self):
        return f"{self.reconciliation_number}: {self.bank_account.name} {self.period_start} to {self.period_end}"

    def save(self, *args, **kwargs):
        if not self.reconciliation_number:
            self.reconciliation_number = generate_number('RECONCILIATION', Reconciliation, 'reconciliation_number')
        super().save(*args, **kwargs)

    @property
    def is_finalized(self):
        return self.status == ReconciliationStatus.FINALIZED

    def ensure_open(self):
        if self.is_finalized:
            raise ConflictError(
                f"Reconciliation {self.reconciliation_number} is finalized and can no longer be changed."
            )

    @property
    def unmatched_count(self):
        return self.lines.filter(status=LineStatus.UNMATCHED).count()

    def candidate_entries(self):
        """
        Ledger entries eligible for matching: POSTED, on the bank's GL account,
        dated inside the statement period and not linked to any line.
        """
        return LedgerEntry.objects.filter(
            account_id=self.bank_account.gl_account_id,
            status=LedgerEntryStatus.POSTED,
            entry_date__gte=self.period_start,
            entry_date__lte=self.period_end,
            reconciliation_line__isnull=True,
        ).order_by('entry_date', 'created_at', 'id')

    def auto_match(self, tolerance=None):
        """
        Single pass over UNMATCHED lines in statement order. Each line takes the
        first candidate, in (date, created, id) order, whose bank convention
        amount is within tolerance; a candidate is used at most once.
        Date proximity and description are deliberately ignored.
        """
        if tolerance is None:
            tolerance = settings.RECONCILIATION_MATCH_TOLERANCE

        candidates = list(self.candidate_entries())
        matched_count = 0

        for line in self.lines.filter(status=LineStatus.UNMATCHED).order_by('line_number'):
            for index, entry in enumerate(candidates):
                if abs(entry.signed_amount - line.amount) < tolerance:
                    line.link(entry, method='auto')
                    del candidates[index]
                    matched_count += 1
                    break

        return matched_count

    @staticmethod
    def with_summary(queryset):
        """Annotate the per-status line counts and totals used by summary()."""
        money = models.DecimalField(max_digits=15, decimal_places=2)
        zero = models.Value(Decimal('0.00'), output_field=money)
        return queryset.annotate(
            summary_total_lines=models.Count('lines'),
            summary_auto_matched=models.Count(
                'lines', filter=Q(lines__status=LineStatus.MATCHED, lines__match_method='auto')
            ),
            summary_matched=models.Count('lines', filter=Q(lines__status=LineStatus.MATCHED)),
            summary_unmatched=models.Count('lines', filter=Q(lines__status=LineStatus.UNMATCHED)),
            summary_excluded=models.Count('lines', filter=Q(lines__status=LineStatus.EXCLUDED)),
            summary_total_deposits=Coalesce(
                Sum('lines__amount', filter=Q(lines__amount__gt=0)), zero, output_field=money
            ),
            summary_total_withdrawals=Coalesce(
                Sum('lines__amount', filter=Q(lines__amount__lt=0)), zero, output_field=money
            ),
        )

    def summary(self):
        if hasattr(self, 'summary_total_lines'):
            return {
                'total_lines': self.summary_total_lines,
                'auto_matched': self.summary_auto_matched,
                'matched': self.summary_matched,
                'unmatched': self.summary_unmatched,
                'excluded': self.summary_excluded,
                'total_deposits': self.summary_total_deposits,
                'total_withdrawals': abs(self.summary_total_withdrawals),
            }

        lines = self.lines.all()
        counts = {
            row['status']: row['total']
            for row in lines.values('status').annotate(total=models.Count('id'))
        }
        deposits = lines.filter(amount__gt=0).aggregate(total=Sum('amount'))['total'] or Decimal('0.00')
        withdrawals = lines.filter(amount__lt=0).aggregate(total=Sum('amount'))['total'] or Decimal('0.00')
        return {
            'total_lines': sum(counts.values()),
            'auto_matched': lines.filter(status=LineStatus.MATCHED, match_method='auto').count(),
            'matched': counts.get(LineStatus.MATCHED, 0),
            'unmatched': counts.get(LineStatus.UNMATCHED, 0),
            'excluded': counts.get(LineStatus.EXCLUDED, 0),
            'total_deposits': deposits,
            'total_withdrawals': abs(withdrawals),
        }

    def finalize(self, notes=None, user=None):
        """
        Close the reconciliation.
        ledger_balance is the sum of matched line amounts; variance is
        statement_balance - ledger_balance.
        """
        if self.is_finalized:
            raise ConflictError(f"Reconciliation {self.reconciliation_number} is already finalized.")

        unresolved = self.unmatched_count
        if unresolved > 0:
            raise PreconditionError(
                f"Cannot finalize: {unresolved} unresolved lines remain. Match or exclude them first.",
                details={'unmatched': unresolved},
            )

        ledger_balance = self.lines.filter(status=LineStatus.MATCHED).aggregate(
            total=Sum('amount')
        )['total'] or Decimal('0.00')

        self.ledger_balance = ledger_balance
        self.variance = self.statement_balance - ledger_balance
        self.status = ReconciliationStatus.FINALIZED
        self.finalized_at = timezone.now()
        if user is not None and user.is_authenticated:
            self.finalized_by = user
        if notes is not None:
            self.notes = notes
        self.save()


class ReconciliationLine(models.Model):
    """
    One row of an imported bank statement.
    Amount is signed: positive deposit, negative withdrawal.
    MATCHED if and only if ledger_entry is set.
    """
    MATCH_METHOD_CHOICES = [
        ('auto', 'Auto'),
        ('manual', 'Manual'),
    ]

    reconciliation = models.ForeignKey(Reconciliation, on_delete=models.CASCADE, related_name='lines')
    line_number = models.PositiveIntegerField()
    line_date = models.DateField()
    description = models.CharField(max_length=500, blank=True)
    reference = models.CharField(max_length=200, blank=True)
    amount = models.DecimalField(max_digits=15, decimal_places=2)

    status = models.CharField(max_length=20, choices=LineStatus.choices, default=LineStatus.UNMATCHED)
    ledger_entry = models.OneToOneField(
        LedgerEntry,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='reconciliation_line'
    )
    match_method = models.CharField(max_length=10, choices=MATCH_METHOD_CHOICES, blank=True)
    matched_at = models.DateTimeField(null=True, blank=True)
    matched_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='matched_reconciliation_lines'
    )

    class Meta:
        ordering = ['line_number']
        unique_together = ['reconciliation', 'line_number']
        constraints = [
            models.CheckConstraint(
                condition=(
                    Q(status='MATCHED', ledger_entry__isnull=False)
                    | (~Q(status='MATCHED') & Q(ledger_entry__isnull=True))
                ),
                name='line_status_consistent_with_link',
            ),
        ]

    def __str__(self):
        return f"{self.line_date}: {self.description} ({self.amount})"

    def link(self, entry, method='manual', user=None):
        """
        Link this UNMATCHED line to a ledger entry.
        The entry must be POSTED and not linked to any other line.
        """
        target = next_line_status(self.status, 'match')

        if entry.status != LedgerEntryStatus.POSTED:
            raise ConflictError(f"Ledger entry {entry.pk} is {entry.status} and cannot be matched.")
        already_linked = ReconciliationLine.objects.filter(ledger_entry=entry).exclude(pk=self.pk).first()
        if already_linked:
            raise ConflictError(
                f"Ledger entry {entry.pk} is already matched to another statement line.",
                details={'line_id': already_linked.pk, 'reconciliation_id': already_linked.reconciliation_id},
            )

        self.status = target
        self.ledger_entry = entry
        self.match_method = method
        self.matched_at = timezone.now()
        self.matched_by = user if user is not None and user.is_authenticated else None
        self.save()

    def unlink(self):
        """Revert a MATCHED line to UNMATCHED."""
        self.status = next_line_status(self.status, 'unmatch')
        self.ledger_entry = None
        self.match_method = ''
        self.matched_at = None
        self.matched_by = None
        self.save()

    def exclude(self):
        self.status = next_line_status(self.status, 'exclude')
        self.save(update_fields=['status'])

    def include(self):
        self.status = next_line_status(self.status, 'include')
        self.save(update_fields=['status'])
