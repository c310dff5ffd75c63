import enum
import logging
from dataclasses import dataclass, field
from typing import Callable, Optional

from .conf import CompressionConfig
from .rendi import RendiClient
from .s3 import ObjectStore
from .store import StatusStore
from .tasks import enqueue_poller
from .utils import is_output_path, is_source_path, is_video_path

logger = logging.getLogger(__name__)

# (source_path, bucket, job_id, generation) -> None; must not block
Dispatcher = Callable[[str, str, str, int], None]


class TriggerOutcome(str, enum.Enum):
    ACCEPTED = "accepted"
    IGNORED = "ignored"
    ALREADY_TERMINAL = "already_terminal"


@dataclass
class TriggerResult:
    outcome: TriggerOutcome
    status_code: int
    detail: str
    data: dict = field(default_factory=dict)


class TriggerHandler:
    """
    Entry point for "object created" storage events.

    Resolves the source URL, submits the job, records it as processing and
    hands the job to a background poller. ResolutionFailed and
    SubmissionFailed propagate to the caller; nothing is written before a
    job id exists.
    """

    def __init__(
        self,
        client: RendiClient,
        store: StatusStore,
        storage_factory: Callable[[str], ObjectStore],
        dispatch: Dispatcher,
        config: CompressionConfig,
    ) -> None:
        self.client = client
        self.store = store
        self.storage_factory = storage_factory
        self.dispatch = dispatch
        self.config = config

    def should_handle(self, name: str) -> bool:
        if not is_video_path(name, self.config.video_extension):
            return False
        # our own uploads land under the output prefix and fire the same trigger
        if is_output_path(name, self.config.output_prefix):
            return False
        return is_source_path(name, self.config.source_prefix)

    def handle(self, bucket: str, name: str) -> TriggerResult:
        if not self.should_handle(name):
            logger.debug(f"Ignoring storage event for {bucket}/{name}")
            return TriggerResult(TriggerOutcome.IGNORED, 200, "ignored")

        existing = self.store.get(name)
        if existing is not None and existing.is_terminal:
            logger.info(f"{name}: already {existing.status}, not resubmitting")
            return TriggerResult(
                TriggerOutcome.ALREADY_TERMINAL,
                200,
                f"already {existing.status}",
                {"source_path": name, "status": existing.status},
            )

        storage = self.storage_factory(bucket)
        source_url = storage.public_url(name)

        logger.info(f"Sending {bucket}/{name} to Rendi")
        handle = self.client.submit(source_url)

        generation = self.store.mark_processing(name, handle.job_id, bucket=bucket)
        if generation is None:
            # row went terminal between the check above and the upsert
            return TriggerResult(
                TriggerOutcome.ALREADY_TERMINAL,
                200,
                "already terminal",
                {"source_path": name, "job_id": handle.job_id},
            )

        self.dispatch(name, bucket, handle.job_id, generation)
        return TriggerResult(
            TriggerOutcome.ACCEPTED,
            202,
            "compression queued",
            {"source_path": name, "job_id": handle.job_id, "generation": generation},
        )


def build_trigger_handler(dispatch: Optional[Dispatcher] = None) -> TriggerHandler:
    """Wire the handler with the production collaborators."""
    config = CompressionConfig.from_settings()
    return TriggerHandler(
        client=RendiClient.from_settings(),
        store=StatusStore(),
        storage_factory=lambda bucket: ObjectStore(bucket, signed_urls=config.signed_source_urls),
        dispatch=dispatch or enqueue_poller,
        config=config,
    )
