import logging

from celery import shared_task

from .conf import CompressionConfig
from .poller import JobRef, Poller, Reconciler
from .rendi import RendiClient
from .s3 import ObjectStore
from .store import StatusStore

logger = logging.getLogger(__name__)


@shared_task(bind=True, acks_late=True, reject_on_worker_lost=True, ignore_result=True)
def poll_compression(self, source_path: str, bucket: str, job_id: str, generation: int) -> str:
    """
    Detached poller for one submitted job.

    Runs on a Celery worker, so it keeps going after the HTTP request that
    submitted the job has returned.
    """
    config = CompressionConfig.from_settings()
    poller = Poller(
        client=RendiClient.from_settings(),
        store=StatusStore(),
        storage=ObjectStore(bucket),
        config=config,
    )
    outcome = poller.run(JobRef(source_path, bucket, job_id, generation))
    logger.info(f"{source_path}: poller for job {job_id} finished with {outcome.value}")
    return outcome.value


@shared_task(ignore_result=True)
def reconcile_stale_compressions() -> dict:
    """Periodic sweep over processing rows older than RECONCILE_STALE_AFTER_S."""
    reconciler = Reconciler(
        client=RendiClient.from_settings(),
        store=StatusStore(),
        storage_factory=ObjectStore,
        config=CompressionConfig.from_settings(),
    )
    return reconciler.sweep()


def enqueue_poller(source_path: str, bucket: str, job_id: str, generation: int) -> None:
    poll_compression.delay(source_path, bucket, job_id, generation)  # queue background polling
