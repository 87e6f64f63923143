from django.conf import settings
from django.db import models
from django.utils import timezone

from apps.core.utils.managers import SoftDeleteManager


class Feedback(models.Model):
    sender_name = models.CharField(max_length=200, blank=True)
    message = models.TextField()
    created_at = models.DateTimeField(auto_now_add=True)
    deleted_at = models.DateTimeField(null=True, blank=True)
    deleted_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='deleted_feedback',
    )

    objects = SoftDeleteManager()

    class Meta:
        db_table = 'feedback'
        ordering = ['-created_at', '-id']

    @property
    def is_deleted(self):
        return self.deleted_at is not None

    def soft_delete(self, user):
        self.deleted_at = timezone.now()
        self.deleted_by = user
        self.save(update_fields=['deleted_at', 'deleted_by'])

    def __str__(self):
        return f"{self.sender_name or 'Anonim'}: {self.message[:40]}"
