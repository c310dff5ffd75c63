import logging
from datetime import timedelta
from typing import Optional

from django.db import transaction
from django.db.models import F
from django.utils import timezone

from .models import CompressionRecord

logger = logging.getLogger(__name__)

Status = CompressionRecord.Status


class StatusStore:
    """
    Persistence adapter for CompressionRecord rows keyed by source_path.

    Terminal rows are never modified. Terminal writes are conditional updates
    so a poller bound to a superseded generation cannot overwrite a newer job.
    """

    def get(self, source_path: str) -> Optional[CompressionRecord]:
        return CompressionRecord.objects.filter(source_path=source_path).first()

    def mark_processing(self, source_path: str, job_id: str, bucket: str = "") -> Optional[int]:
        """
        Upsert the row as processing with the new job id.

        Returns the generation the caller's poller is bound to, or None when the
        row is already terminal and was left untouched.
        """
        with transaction.atomic():
            record, created = CompressionRecord.objects.select_for_update().get_or_create(
                source_path=source_path,
                defaults={
                    "bucket": bucket,
                    "status": Status.PROCESSING,
                    "job_id": job_id,
                    "generation": 1,
                },
            )
            if created:
                logger.info(f"{source_path}: processing (job {job_id}, generation 1)")
                return record.generation

            if record.is_terminal:
                logger.warning(f"{source_path}: already {record.status}; not reopening for job {job_id}")
                return None

            CompressionRecord.objects.filter(pk=record.pk).update(
                status=Status.PROCESSING,
                job_id=job_id,
                bucket=bucket or record.bucket,
                output_path=None,
                error_message=None,
                generation=F("generation") + 1,
                updated_at=timezone.now(),
            )
            record.refresh_from_db(fields=["generation"])
            logger.info(f"{source_path}: processing (job {job_id}, generation {record.generation})")
            return record.generation

    def _terminal_update(self, source_path: str, generation: Optional[int], **fields) -> bool:
        qs = CompressionRecord.objects.filter(source_path=source_path, status=Status.PROCESSING)
        if generation is not None:
            qs = qs.filter(generation=generation)
        updated = qs.update(updated_at=timezone.now(), **fields)
        if not updated:
            logger.warning(
                f"{source_path}: terminal write to {fields['status']} skipped "
                f"(row missing, already terminal or generation {generation} superseded)"
            )
        return bool(updated)

    def mark_completed(self, source_path: str, output_path: str, generation: Optional[int] = None) -> bool:
        """Transition processing -> completed. Returns False (no-op) otherwise."""
        return self._terminal_update(
            source_path,
            generation,
            status=Status.COMPLETED,
            output_path=output_path,
            error_message=None,
        )

    def mark_failed(self, source_path: str, error_message: str, generation: Optional[int] = None) -> bool:
        """Transition processing -> failed. Returns False (no-op) otherwise."""
        return self._terminal_update(
            source_path,
            generation,
            status=Status.FAILED,
            output_path=None,
            error_message=(str(error_message) if error_message else "unknown")[:4000],
        )

    def is_current(self, source_path: str, generation: int) -> bool:
        """True while the row is still processing the given generation."""
        return CompressionRecord.objects.filter(
            source_path=source_path, status=Status.PROCESSING, generation=generation
        ).exists()

    def stale_processing(self, older_than_s: float):
        cutoff = timezone.now() - timedelta(seconds=older_than_s)
        return (
            CompressionRecord.objects.filter(status=Status.PROCESSING, updated_at__lt=cutoff)
            .exclude(job_id__isnull=True)
            .exclude(job_id="")
            .order_by("updated_at")
        )
