# Initial migration for the general ledger and bank reconciliation

import django.core.validators
import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        # Chart of Accounts
        migrations.CreateModel(
            name='Account',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('is_active', models.BooleanField(default=True)),
                ('code', models.CharField(max_length=20, unique=True)),
                ('name', models.CharField(max_length=200)),
                ('account_type', models.CharField(choices=[('asset', 'Asset'), ('liability', 'Liability'), ('equity', 'Equity'), ('income', 'Income'), ('expense', 'Expense')], max_length=20)),
                ('normal_balance', models.CharField(blank=True, choices=[('DR', 'Debit'), ('CR', 'Credit')], help_text='Derived from the account type when left blank.', max_length=2)),
                ('description', models.TextField(blank=True)),
                ('created_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='%(app_label)s_%(class)s_created', to=settings.AUTH_USER_MODEL)),
                ('updated_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='%(app_label)s_%(class)s_updated', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'ordering': ['code'],
            },
        ),

        # Ledger entries (lease FK added in 0002 once the property app exists)
        migrations.CreateModel(
            name='LedgerEntry',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('entry_date', models.DateField()),
                ('amount', models.DecimalField(decimal_places=2, max_digits=12)),
                ('debit_credit', models.CharField(choices=[('DR', 'Debit'), ('CR', 'Credit')], max_length=2)),
                ('description', models.CharField(max_length=500)),
                ('status', models.CharField(choices=[('POSTED', 'Posted'), ('VOID', 'Void')], default='POSTED', max_length=10)),
                ('posted_by', models.CharField(default='system', max_length=150)),
                ('idempotency_key', models.CharField(blank=True, max_length=255, null=True, unique=True)),
                ('source_type', models.CharField(choices=[('manual', 'Manual'), ('scheduled_charge', 'Scheduled Charge'), ('security_deposit', 'Security Deposit'), ('opening_balance', 'Opening Balance')], default='manual', max_length=30)),
                ('source_id', models.PositiveBigIntegerField(blank=True, null=True)),
                ('posting_period', models.CharField(blank=True, help_text='YYYY-MM', max_length=7)),
                ('account', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='ledger_entries', to='finance.account')),
            ],
            options={
                'verbose_name_plural': 'Ledger entries',
                'ordering': ['entry_date', 'created_at', 'id'],
                'indexes': [
                    models.Index(fields=['account', 'status', 'entry_date'], name='ledger_entry_account_idx'),
                    models.Index(fields=['source_type', 'source_id'], name='ledger_entry_source_idx'),
                ],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(('amount__gt', 0)), name='ledger_entry_amount_positive'),
                ],
            },
        ),

        # Bank accounts
        migrations.CreateModel(
            name='BankAccount',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('is_active', models.BooleanField(default=True)),
                ('name', models.CharField(max_length=200)),
                ('last4', models.CharField(max_length=4, validators=[django.core.validators.RegexValidator('^\\d{4}$', 'Last 4 must be exactly 4 digits.')])),
                ('gl_account', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='bank_accounts', to='finance.account')),
                ('created_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='%(app_label)s_%(class)s_created', to=settings.AUTH_USER_MODEL)),
                ('updated_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='%(app_label)s_%(class)s_updated', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'ordering': ['name'],
            },
        ),

        # Reconciliation header
        migrations.CreateModel(
            name='Reconciliation',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('is_active', models.BooleanField(default=True)),
                ('reconciliation_number', models.CharField(editable=False, max_length=50, unique=True)),
                ('status', models.CharField(choices=[('IN_PROGRESS', 'In Progress'), ('FINALIZED', 'Finalized')], default='IN_PROGRESS', max_length=20)),
                ('period_start', models.DateField()),
                ('period_end', models.DateField()),
                ('statement_balance', models.DecimalField(decimal_places=2, max_digits=15)),
                ('ledger_balance', models.DecimalField(blank=True, decimal_places=2, max_digits=15, null=True)),
                ('variance', models.DecimalField(blank=True, decimal_places=2, max_digits=15, null=True)),
                ('finalized_at', models.DateTimeField(blank=True, null=True)),
                ('notes', models.TextField(blank=True)),
                ('csv_file_name', models.CharField(blank=True, max_length=255)),
                ('bank_account', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='reconciliations', to='finance.bankaccount')),
                ('finalized_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='finalized_reconciliations', to=settings.AUTH_USER_MODEL)),
                ('created_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='%(app_label)s_%(class)s_created', to=settings.AUTH_USER_MODEL)),
                ('updated_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='%(app_label)s_%(class)s_updated', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'ordering': ['-period_end', '-created_at'],
                'constraints': [
                    models.UniqueConstraint(condition=models.Q(('status', 'IN_PROGRESS')), fields=('bank_account',), name='one_open_reconciliation_per_bank_account'),
                    models.CheckConstraint(condition=models.Q(('period_start__lte', models.F('period_end'))), name='reconciliation_period_ordered'),
                ],
            },
        ),

        # Statement lines
        migrations.CreateModel(
            name='ReconciliationLine',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('line_number', models.PositiveIntegerField()),
                ('line_date', models.DateField()),
                ('description', models.CharField(blank=True, max_length=500)),
                ('reference', models.CharField(blank=True, max_length=200)),
                ('amount', models.DecimalField(decimal_places=2, max_digits=15)),
                ('status', models.CharField(choices=[('UNMATCHED', 'Unmatched'), ('MATCHED', 'Matched'), ('EXCLUDED', 'Excluded')], default='UNMATCHED', max_length=20)),
                ('match_method', models.CharField(blank=True, choices=[('auto', 'Auto'), ('manual', 'Manual')], max_length=10)),
                ('matched_at', models.DateTimeField(blank=True, null=True)),
                ('ledger_entry', models.OneToOneField(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='reconciliation_line', to='finance.ledgerentry')),
                ('matched_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='matched_reconciliation_lines', to=settings.AUTH_USER_MODEL)),
                ('reconciliation', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='lines', to='finance.reconciliation')),
            ],
            options={
                'ordering': ['line_number'],
                'unique_together': {('reconciliation', 'line_number')},
                'constraints': [
                    models.CheckConstraint(condition=models.Q(models.Q(('status', 'MATCHED'), ('ledger_entry__isnull', False)), models.Q(models.Q(('status', 'MATCHED'), _negated=True), ('ledger_entry__isnull', True)), _connector='OR'), name='line_status_consistent_with_link'),
                ],
            },
        ),
    ]
