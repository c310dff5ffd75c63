"""
Background side of the orchestrator: poll a submitted job until it ends,
copy the result into storage and write the terminal status.
"""

import enum
import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

from django.utils import timezone

from .conf import CompressionConfig
from .errors import CompressionError, FinalizationFailed, TransientPollError
from .rendi import Failed, RendiClient, Running, Succeeded
from .s3 import ObjectStore
from .store import StatusStore
from .utils import derived_output_path, guess_content_type

logger = logging.getLogger(__name__)

FINALIZE_FAILED_PREFIX = "transcode succeeded but finalize failed"


class PollOutcome(str, enum.Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    SUPERSEDED = "superseded"
    RUNNING = "running"  # reconciliation only: job still going, nothing written


@dataclass(frozen=True)
class JobRef:
    source_path: str
    bucket: str
    job_id: str
    generation: int


class Finalizer:
    """Download a finished artifact and write it to its derived output path."""

    def __init__(
        self,
        client: RendiClient,
        store: StatusStore,
        storage: ObjectStore,
        config: CompressionConfig,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.client = client
        self.store = store
        self.storage = storage
        self.config = config
        self.sleep = sleep

    def output_path_for(self, source_path: str) -> str:
        return derived_output_path(source_path, self.config.source_prefix, self.config.output_prefix)

    def _copy(self, result_url: str, output_path: str) -> None:
        data = self.client.download(result_url)
        try:
            self.storage.upload(output_path, data, content_type=guess_content_type(output_path))
        except CompressionError as e:
            raise FinalizationFailed(str(e))

    def finalize(self, job: JobRef, result_url: str) -> PollOutcome:
        output_path = self.output_path_for(job.source_path)
        attempts = self.config.finalize_attempts
        last_error: Optional[Exception] = None

        for attempt in range(attempts):
            try:
                self._copy(result_url, output_path)
                last_error = None
                break
            except FinalizationFailed as e:
                last_error = e
                if attempt < attempts - 1:
                    delay = self.config.finalize_backoff_s * (2**attempt)
                    logger.warning(
                        f"{job.source_path}: finalize attempt {attempt + 1}/{attempts} failed: {e}. "
                        f"Retrying in {delay}s..."
                    )
                    self.sleep(delay)

        if last_error is not None:
            logger.error(f"{job.source_path}: all {attempts} finalize attempts failed: {last_error}")
            if not self.store.mark_failed(
                job.source_path, f"{FINALIZE_FAILED_PREFIX}: {last_error}", generation=job.generation
            ):
                return PollOutcome.SUPERSEDED
            return PollOutcome.FAILED

        if not self.store.mark_completed(job.source_path, output_path, generation=job.generation):
            return PollOutcome.SUPERSEDED
        logger.info(f"{job.source_path}: completed -> {output_path}")

        if self.config.delete_source:
            try:
                self.storage.remove(job.source_path)
                logger.info(f"{job.source_path}: source removed")
            except CompressionError as e:
                logger.warning(f"{job.source_path}: source cleanup failed: {e}")
        return PollOutcome.COMPLETED


class Poller:
    """
    Poll one job until it succeeds, fails or the deadline passes.

    On timeout nothing is written: the row stays processing and is picked
    up by the reconciliation sweep.
    """

    def __init__(
        self,
        client: RendiClient,
        store: StatusStore,
        storage: ObjectStore,
        config: CompressionConfig,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.client = client
        self.store = store
        self.config = config
        self.clock = clock
        self.sleep = sleep
        self.finalizer = Finalizer(client, store, storage, config, sleep=sleep)

    def run(self, job: JobRef) -> PollOutcome:
        deadline = self.clock() + self.config.timeout_s
        polls = 0

        while self.clock() < deadline:
            self.sleep(self.config.poll_interval_s)
            polls += 1
            try:
                status = self.client.poll(job.job_id)
            except TransientPollError as e:
                logger.warning(f"{job.source_path}: poll {polls} for job {job.job_id} failed, will retry: {e}")
                continue

            if isinstance(status, Running):
                logger.info(f"{job.source_path}: poll {polls} job {job.job_id} -> {status.raw_status}")
                continue

            if not self.store.is_current(job.source_path, job.generation):
                logger.warning(
                    f"{job.source_path}: generation {job.generation} superseded, "
                    f"abandoning job {job.job_id}"
                )
                return PollOutcome.SUPERSEDED

            if isinstance(status, Succeeded):
                logger.info(f"{job.source_path}: job {job.job_id} succeeded after {polls} polls")
                return self.finalizer.finalize(job, status.result_url)

            if isinstance(status, Failed):
                logger.error(f"{job.source_path}: job {job.job_id} failed: {status.message}")
                if not self.store.mark_failed(job.source_path, status.message, generation=job.generation):
                    return PollOutcome.SUPERSEDED
                return PollOutcome.FAILED

        logger.warning(
            f"{job.source_path}: timed out after {self.config.timeout_s}s waiting for job {job.job_id}; "
            f"record left processing"
        )
        return PollOutcome.TIMED_OUT


class Reconciler:
    """Re-attach to processing rows that outlived their poller."""

    def __init__(
        self,
        client: RendiClient,
        store: StatusStore,
        storage_factory: Callable[[str], ObjectStore],
        config: CompressionConfig,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.client = client
        self.store = store
        self.storage_factory = storage_factory
        self.config = config
        self.sleep = sleep

    def reconcile_one(self, record) -> PollOutcome:
        job = JobRef(record.source_path, record.bucket, record.job_id, record.generation)
        try:
            status = self.client.poll(job.job_id)
        except TransientPollError as e:
            logger.warning(f"{job.source_path}: reconcile poll failed, leaving for next sweep: {e}")
            return PollOutcome.RUNNING

        if isinstance(status, Succeeded):
            finalizer = Finalizer(self.client, self.store, self.storage_factory(job.bucket), self.config, self.sleep)
            return finalizer.finalize(job, status.result_url)

        if isinstance(status, Failed):
            if self.store.mark_failed(job.source_path, status.message, generation=job.generation):
                return PollOutcome.FAILED
            return PollOutcome.SUPERSEDED

        age = (timezone.now() - record.updated_at).total_seconds()
        if age >= self.config.give_up_after_s:
            message = f"transcode did not finish within {int(self.config.give_up_after_s)}s"
            logger.error(f"{job.source_path}: {message}; marking failed")
            if not self.store.mark_failed(job.source_path, message, generation=job.generation):
                return PollOutcome.SUPERSEDED
            return PollOutcome.FAILED
        return PollOutcome.RUNNING

    def sweep(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for record in self.store.stale_processing(self.config.stale_after_s):
            try:
                key = self.reconcile_one(record).value
            except Exception:
                # keep sweeping past a bad row
                logger.exception(f"{record.source_path}: reconciliation failed")
                key = "error"
            counts[key] = counts.get(key, 0) + 1
        if counts:
            logger.info(f"Reconciliation sweep: {counts}")
        return counts
