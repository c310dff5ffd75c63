from django.db import models


class CompressionRecord(models.Model):
    class Status(models.TextChoices):
        PENDING = "pending"
        PROCESSING = "processing"
        COMPLETED = "completed"
        FAILED = "failed"

    TERMINAL = (Status.COMPLETED, Status.FAILED)

    source_path = models.CharField(max_length=1024, unique=True)  # object key of the raw upload
    bucket = models.CharField(max_length=255)
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.PENDING)
    job_id = models.CharField(max_length=255, null=True, blank=True)
    output_path = models.CharField(max_length=1024, null=True, blank=True)  # set only when completed
    error_message = models.TextField(null=True, blank=True)  # set only when failed
    # bumped on every submission for this source_path; pollers bound to an older value stand down
    generation = models.PositiveIntegerField(default=0)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=["status", "updated_at"], name="compr_status_updated_idx"),
        ]

    def __str__(self):
        return f"{self.source_path} [{self.status}]"

    @property
    def is_terminal(self) -> bool:
        return self.status in self.TERMINAL
