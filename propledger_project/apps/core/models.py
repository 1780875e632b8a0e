"""
Core models and mixins shared by the finance and property apps.
"""
from django.db import models
from django.conf import settings


class TimeStampedModel(models.Model):
    """
    Abstract base model with created_at and updated_at fields.
    """
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class UserTrackingModel(models.Model):
    """
    Abstract base model recording who created and last changed a row.
    """
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='%(app_label)s_%(class)s_created'
    )
    updated_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='%(app_label)s_%(class)s_updated'
    )

    class Meta:
        abstract = True


class BaseModel(TimeStampedModel, UserTrackingModel):
    """
    Base model for back-office records.

    Fields:
    - created_at / updated_at
    - created_by / updated_by (filled from the request user held by AuditMiddleware)
    - is_active
    """
    is_active = models.BooleanField(default=True)

    class Meta:
        abstract = True

    def save(self, *args, **kwargs):
        from apps.core.middleware import get_current_user
        user = get_current_user()

        if user is not None and user.is_authenticated:
            if not self.pk:
                self.created_by = user
            self.updated_by = user
            update_fields = kwargs.get('update_fields')
            if update_fields is not None:
                kwargs['update_fields'] = set(update_fields) | {'updated_by'}

        super().save(*args, **kwargs)


class AuditLog(models.Model):
    """
    Audit trail of business actions (ledger postings, reconciliation changes,
    charge runs). Written by apps.core.audit, never edited.
    """
    ACTION_CHOICES = [
        ('create', 'Create'),
        ('update', 'Update'),
        ('delete', 'Delete'),
        ('post', 'Post'),
        ('import', 'Import'),
        ('match', 'Match'),
        ('unmatch', 'Unmatch'),
        ('exclude', 'Exclude'),
        ('include', 'Include'),
        ('reconcile', 'Reconcile'),
        ('reset', 'Reset'),
        ('run', 'Run'),
    ]

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='audit_logs'
    )
    action = models.CharField(max_length=20, choices=ACTION_CHOICES)
    model = models.CharField(max_length=100)
    record_id = models.CharField(max_length=50, blank=True)
    changes = models.JSONField(default=dict, blank=True)
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    timestamp = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-timestamp']
        indexes = [
            models.Index(fields=['model', 'record_id'], name='core_auditlog_model_record_idx'),
        ]

    def __str__(self):
        return f"{self.timestamp:%Y-%m-%d %H:%M} {self.action} {self.model}#{self.record_id}"
