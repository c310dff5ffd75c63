"""Client for the Rendi hosted FFmpeg service."""

import json
import logging
from dataclasses import dataclass
from typing import Any, Optional, Union

import requests
from django.conf import settings

from .errors import FinalizationFailed, SubmissionFailed, TransientPollError

logger = logging.getLogger(__name__)

OUTPUT_NAME = "compressed.mp4"


@dataclass(frozen=True)
class JobHandle:
    job_id: str


@dataclass(frozen=True)
class Running:
    raw_status: str = "RUNNING"


@dataclass(frozen=True)
class Succeeded:
    result_url: str


@dataclass(frozen=True)
class Failed:
    message: str


JobStatus = Union[Running, Succeeded, Failed]


def _error_text(value: Any) -> str:
    """Upstream error_message as text; structured errors are kept as JSON."""
    if value is None or value == "":
        return "unknown"
    if isinstance(value, str):
        return value
    try:
        return json.dumps(value, sort_keys=True, default=str)
    except (TypeError, ValueError):
        return str(value)


class RendiClient:
    """The only component that speaks the Rendi HTTP protocol."""

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.rendi.dev/v1",
        ffmpeg_command: str = "-i {{in_1}} -c:v libx264 -preset veryfast -crf 26 -movflags +faststart {{out_1}}",
        max_run_seconds: int = 900,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.ffmpeg_command = ffmpeg_command
        self.max_run_seconds = max_run_seconds
        self.timeout = timeout
        self.session = session or requests.Session()

    @classmethod
    def from_settings(cls) -> "RendiClient":
        return cls(
            api_key=settings.RENDI_API_KEY,
            base_url=settings.RENDI_API_URL,
            ffmpeg_command=settings.RENDI_FFMPEG_COMMAND,
            max_run_seconds=settings.RENDI_MAX_RUN_SECONDS,
            timeout=settings.RENDI_HTTP_TIMEOUT_S,
        )

    def _headers(self) -> dict[str, str]:
        return {"X-API-KEY": self.api_key, "Content-Type": "application/json"}

    def build_submit_payload(self, source_url: str) -> dict[str, Any]:
        return {
            "ffmpeg_command": self.ffmpeg_command,
            "input_files": {"in_1": source_url},
            "output_files": {"out_1": OUTPUT_NAME},
            "max_command_run_seconds": self.max_run_seconds,
        }

    def submit(self, source_url: str) -> JobHandle:
        """
        Start a compression job for a URL the service can fetch itself.

        Raises:
            SubmissionFailed: network error, non-2xx reply or a body without command_id
        """
        payload = self.build_submit_payload(source_url)
        logger.info(f"Submitting compression job for {source_url}")
        try:
            resp = self.session.post(
                f"{self.base_url}/run-ffmpeg-command",
                json=payload,
                headers=self._headers(),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise SubmissionFailed(f"request error: {e}")

        logger.info(f"Rendi replied {resp.status_code} to submit")
        if not resp.ok:
            raise SubmissionFailed("upstream rejected job", status_code=resp.status_code, body=resp.text[:4000])

        try:
            data = resp.json()
        except ValueError:
            raise SubmissionFailed("response is not JSON", status_code=resp.status_code, body=resp.text[:4000])

        command_id = data.get("command_id") if isinstance(data, dict) else None
        if not command_id:
            raise SubmissionFailed("response has no command_id", status_code=resp.status_code, body=resp.text[:4000])
        return JobHandle(job_id=str(command_id))

    def poll(self, job_id: str) -> JobStatus:
        """
        Fetch the current state of a job.

        Raises:
            TransientPollError: for anything that does not tell us the job's state
        """
        try:
            resp = self.session.get(
                f"{self.base_url}/commands/{job_id}",
                headers={"X-API-KEY": self.api_key},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise TransientPollError(f"poll request error: {e}")

        if not resp.ok:
            raise TransientPollError(f"poll failed {resp.status_code}", status_code=resp.status_code)

        try:
            data = resp.json()
        except ValueError:
            raise TransientPollError("poll response is not JSON", status_code=resp.status_code)
        if not isinstance(data, dict):
            raise TransientPollError("poll response is not an object", status_code=resp.status_code)

        status = str(data.get("status") or "").upper()
        logger.debug(f"Poll {job_id} -> {status or '<empty>'}")

        if status == "SUCCESS":
            try:
                url = data["output_files"]["out_1"]["storage_url"]
            except (KeyError, TypeError):
                url = None
            if not url:
                raise TransientPollError("SUCCESS without output storage_url")
            return Succeeded(result_url=url)
        if status == "ERROR":
            return Failed(message=_error_text(data.get("error_message")))
        return Running(raw_status=status or "RUNNING")

    def download(self, url: str) -> bytes:
        """Fetch a finished artifact into memory."""
        try:
            resp = self.session.get(url, timeout=self.timeout)
        except requests.RequestException as e:
            raise FinalizationFailed(f"download error: {e}")
        if not resp.ok:
            raise FinalizationFailed(f"download error {resp.status_code}")
        return resp.content
