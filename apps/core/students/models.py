import logging

from django.db import models

logger = logging.getLogger(__name__)


class Student(models.Model):
    nis = models.CharField(max_length=50, unique=True)
    name = models.CharField(max_length=200)
    student_class = models.CharField(max_length=50, blank=True)
    group = models.CharField(max_length=100, blank=True)
    birth_date = models.DateField(null=True, blank=True)
    address = models.TextField(blank=True)
    guardian_phone = models.CharField(max_length=30, blank=True)
    photo = models.ImageField(upload_to='students/photos/', null=True, blank=True)

    # Rupiah. Mutated only by the ledger engine.
    balance = models.BigIntegerField(default=0, editable=False)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'students'
        ordering = ['name', 'id']
        indexes = [
            models.Index(fields=['name'], name='students_name_idx'),
            models.Index(fields=['student_class', 'group'], name='students_class_group_idx'),
        ]

    def __str__(self):
        return f"{self.nis} - {self.name}"


def delete_stored_file(storage, name):
    """Remove a stored upload, logging instead of raising when it fails."""
    if not name:
        return
    try:
        storage.delete(name)
    except Exception:
        logger.warning('Could not delete stored file %s', name, exc_info=True)
