import uuid
from django.db import models


class Medication(models.Model):
    """药品目录。由 care plan 表单维护，这里只读。"""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    care_plan_id = models.CharField(max_length=64, db_index=True)
    name = models.CharField(max_length=200)
    dosage = models.CharField(max_length=100, blank=True, default='')
    instructions = models.TextField(blank=True, default='')
    # {"morning": true, "evening": true} 或 {"times": ["08:00", "20:30"]}
    schedule = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'medications'


class AppendOnlyError(Exception):
    pass


class AppendOnlyModel(models.Model):
    """写入后不可修改、不可删除。更正通过追加新记录完成。"""

    class Meta:
        abstract = True

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise AppendOnlyError(f"{type(self).__name__} {self.pk} is append-only and cannot be updated.")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise AppendOnlyError(f"{type(self).__name__} {self.pk} is append-only and cannot be deleted.")


class MedicationAdministration(AppendOnlyModel):
    STATUS_CHOICES = [
        ('administered', 'Administered'),
        ('missed', 'Missed'),
        ('refused', 'Refused'),
    ]

    RESOLUTION_CHOICES = [
        ('dual_entry', 'Dual entry'),
        ('override', 'Override'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    medication = models.ForeignKey(Medication, on_delete=models.PROTECT, related_name='administrations')
    administered_at = models.DateTimeField()
    administered_by = models.CharField(max_length=64)
    administered_by_role = models.CharField(max_length=32)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='administered')
    notes = models.TextField(blank=True, null=True)
    supersedes = models.ForeignKey(
        'self', on_delete=models.PROTECT, blank=True, null=True, related_name='successors',
    )
    resolution_method = models.CharField(max_length=20, choices=RESOLUTION_CHOICES, blank=True, null=True)
    resolution_notes = models.TextField(blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'medication_administrations'
        indexes = [
            models.Index(fields=['medication', 'administered_at'], name='medication_admin_med_at_idx'),
        ]


class AdministrationConflictLink(AppendOnlyModel):
    """
    冲突审计：一条 link 表示 record 写入时与 conflicts_with 冲突。

    双向各存一行，查询任意一侧都能拿到完整 conflict_of 列表。
    """

    id = models.BigAutoField(primary_key=True)
    record = models.ForeignKey(MedicationAdministration, on_delete=models.PROTECT, related_name='conflict_links')
    conflicts_with = models.ForeignKey(MedicationAdministration, on_delete=models.PROTECT, related_name='+')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'medication_administration_conflicts'
        constraints = [
            models.UniqueConstraint(fields=['record', 'conflicts_with'], name='uniq_administration_conflict_pair'),
        ]
