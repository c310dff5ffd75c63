from dataclasses import dataclass

from django.conf import settings


@dataclass(frozen=True)
class CompressionConfig:
    poll_interval_s: float
    timeout_s: float
    delete_source: bool
    video_extension: str
    source_prefix: str
    output_prefix: str
    signed_source_urls: bool
    finalize_attempts: int
    finalize_backoff_s: float
    stale_after_s: float
    give_up_after_s: float

    @classmethod
    def from_settings(cls) -> "CompressionConfig":
        return cls(
            poll_interval_s=settings.POLL_MS / 1000.0,
            timeout_s=float(settings.TIMEOUT_S),
            delete_source=settings.DELETE_SOURCE,
            video_extension=settings.COMPRESS_VIDEO_EXTENSION,
            source_prefix=settings.COMPRESS_SOURCE_PREFIX,
            output_prefix=settings.COMPRESS_OUTPUT_PREFIX,
            signed_source_urls=settings.COMPRESS_SIGNED_SOURCE_URLS,
            finalize_attempts=max(1, settings.FINALIZE_ATTEMPTS),
            finalize_backoff_s=settings.FINALIZE_BACKOFF_S,
            stale_after_s=float(settings.RECONCILE_STALE_AFTER_S),
            give_up_after_s=float(settings.RECONCILE_GIVE_UP_AFTER_S),
        )
