"""
Tests for compression/rendi.py

Request shaping and error classification against a mocked requests session.
"""

from unittest.mock import MagicMock

import requests
from django.test import SimpleTestCase

from compression.errors import FinalizationFailed, SubmissionFailed, TransientPollError
from compression.rendi import Failed, RendiClient, Running, Succeeded


def make_response(status_code=200, json_data=None, text="", content=b""):
    resp = MagicMock()
    resp.status_code = status_code
    resp.ok = 200 <= status_code < 300
    resp.text = text
    resp.content = content
    if isinstance(json_data, Exception):
        resp.json.side_effect = json_data
    else:
        resp.json.return_value = json_data
    return resp


class RendiSubmitTest(SimpleTestCase):
    def setUp(self):
        self.session = MagicMock()
        self.client = RendiClient(api_key="secret", base_url="https://rendi.test/v1/", session=self.session)

    def test_submit_posts_job_spec_and_returns_handle(self):
        self.session.post.return_value = make_response(200, {"command_id": "job-1"})

        handle = self.client.submit("http://storage.test/media/raw/abc.mp4")

        self.assertEqual(handle.job_id, "job-1")
        args, kwargs = self.session.post.call_args
        self.assertEqual(args[0], "https://rendi.test/v1/run-ffmpeg-command")
        self.assertEqual(kwargs["headers"]["X-API-KEY"], "secret")
        payload = kwargs["json"]
        self.assertEqual(payload["input_files"], {"in_1": "http://storage.test/media/raw/abc.mp4"})
        self.assertEqual(payload["output_files"], {"out_1": "compressed.mp4"})
        self.assertEqual(payload["max_command_run_seconds"], 900)
        self.assertIn("{{in_1}}", payload["ffmpeg_command"])
        self.assertIn("{{out_1}}", payload["ffmpeg_command"])

    def test_non_2xx_carries_status_and_body(self):
        self.session.post.return_value = make_response(429, text="rate limited")

        with self.assertRaises(SubmissionFailed) as ctx:
            self.client.submit("http://x/a.mp4")

        self.assertEqual(ctx.exception.status_code, 429)
        self.assertEqual(ctx.exception.body, "rate limited")

    def test_network_error_is_submission_failure(self):
        self.session.post.side_effect = requests.ConnectionError("boom")

        with self.assertRaises(SubmissionFailed) as ctx:
            self.client.submit("http://x/a.mp4")
        self.assertIsNone(ctx.exception.status_code)

    def test_malformed_body_is_submission_failure(self):
        self.session.post.return_value = make_response(200, ValueError("bad json"), text="<html>")
        with self.assertRaises(SubmissionFailed):
            self.client.submit("http://x/a.mp4")

    def test_missing_command_id_is_submission_failure(self):
        self.session.post.return_value = make_response(200, {"status": "QUEUED"})
        with self.assertRaises(SubmissionFailed):
            self.client.submit("http://x/a.mp4")


class RendiPollTest(SimpleTestCase):
    def setUp(self):
        self.session = MagicMock()
        self.client = RendiClient(api_key="secret", base_url="https://rendi.test/v1", session=self.session)

    def test_success_returns_result_url(self):
        self.session.get.return_value = make_response(
            200, {"status": "SUCCESS", "output_files": {"out_1": {"storage_url": "https://x/out.mp4"}}}
        )

        status = self.client.poll("job-1")

        self.assertEqual(status, Succeeded(result_url="https://x/out.mp4"))
        self.assertEqual(self.session.get.call_args[0][0], "https://rendi.test/v1/commands/job-1")

    def test_error_returns_failed_with_message(self):
        self.session.get.return_value = make_response(200, {"status": "ERROR", "error_message": "unsupported codec"})
        self.assertEqual(self.client.poll("job-1"), Failed(message="unsupported codec"))

    def test_error_without_message(self):
        self.session.get.return_value = make_response(200, {"status": "ERROR"})
        self.assertEqual(self.client.poll("job-1"), Failed(message="unknown"))

    def test_structured_error_message_becomes_text(self):
        self.session.get.return_value = make_response(
            200, {"status": "ERROR", "error_message": {"code": 137, "detail": "killed"}}
        )

        status = self.client.poll("job-1")

        self.assertIsInstance(status.message, str)
        self.assertEqual(status.message, '{"code": 137, "detail": "killed"}')

    def test_other_states_are_running(self):
        for state in ("RUNNING", "QUEUED", "PROCESSING", ""):
            self.session.get.return_value = make_response(200, {"status": state})
            self.assertIsInstance(self.client.poll("job-1"), Running)

    def test_transport_problems_are_transient(self):
        self.session.get.side_effect = requests.Timeout("slow")
        with self.assertRaises(TransientPollError):
            self.client.poll("job-1")

        self.session.get.side_effect = None
        self.session.get.return_value = make_response(503)
        with self.assertRaises(TransientPollError) as ctx:
            self.client.poll("job-1")
        self.assertEqual(ctx.exception.status_code, 503)

        self.session.get.return_value = make_response(200, ValueError("bad json"))
        with self.assertRaises(TransientPollError):
            self.client.poll("job-1")

    def test_success_without_url_is_transient(self):
        self.session.get.return_value = make_response(200, {"status": "SUCCESS", "output_files": {}})
        with self.assertRaises(TransientPollError):
            self.client.poll("job-1")


class RendiDownloadTest(SimpleTestCase):
    def test_download_returns_bytes(self):
        session = MagicMock()
        session.get.return_value = make_response(200, content=b"video")
        client = RendiClient(api_key="k", session=session)

        self.assertEqual(client.download("https://x/out.mp4"), b"video")

    def test_download_failure_is_finalization_failure(self):
        session = MagicMock()
        session.get.return_value = make_response(404)
        client = RendiClient(api_key="k", session=session)

        with self.assertRaises(FinalizationFailed):
            client.download("https://x/out.mp4")
