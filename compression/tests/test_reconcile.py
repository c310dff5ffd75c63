from datetime import timedelta
from unittest.mock import MagicMock, patch

from django.test import TestCase
from django.utils import timezone

from compression.errors import TransientPollError
from compression.models import CompressionRecord
from compression.poller import PollOutcome, Reconciler
from compression.rendi import Failed, Running, Succeeded
from compression.store import StatusStore
from compression.tasks import reconcile_stale_compressions

from .fakes import FakeObjectStore, FakeRendiClient, make_config


class ReconcilerTest(TestCase):
    def setUp(self):
        self.store = StatusStore()
        self.storage = FakeObjectStore("media")

    def make_stale(self, source_path, job_id, age_s=3600):
        self.store.mark_processing(source_path, job_id, bucket="media")
        CompressionRecord.objects.filter(source_path=source_path).update(
            updated_at=timezone.now() - timedelta(seconds=age_s)
        )

    def reconciler(self, client, **config):
        return Reconciler(
            client=client,
            store=self.store,
            storage_factory=lambda bucket: self.storage,
            config=make_config(**config),
            sleep=lambda s: None,
        )

    def test_finished_job_is_finalized(self):
        self.make_stale("raw/abc.mp4", "job-1")
        client = FakeRendiClient(statuses=[Succeeded("https://x/out.mp4")])

        counts = self.reconciler(client).sweep()

        self.assertEqual(counts, {"completed": 1})
        record = CompressionRecord.objects.get(source_path="raw/abc.mp4")
        self.assertEqual(record.status, CompressionRecord.Status.COMPLETED)
        self.assertEqual(record.output_path, "compressed/abc.mp4")
        self.assertIn("compressed/abc.mp4", self.storage.objects)

    def test_failed_job_is_recorded(self):
        self.make_stale("raw/abc.mp4", "job-1")
        client = FakeRendiClient(statuses=[Failed("unsupported codec")])

        self.reconciler(client).sweep()

        record = CompressionRecord.objects.get(source_path="raw/abc.mp4")
        self.assertEqual(record.status, CompressionRecord.Status.FAILED)
        self.assertEqual(record.error_message, "unsupported codec")

    def test_running_job_left_alone_until_give_up(self):
        self.make_stale("raw/abc.mp4", "job-1", age_s=3600)
        client = FakeRendiClient(statuses=[Running()])

        counts = self.reconciler(client, give_up_after_s=7200).sweep()

        self.assertEqual(counts, {"running": 1})
        self.assertEqual(
            CompressionRecord.objects.get(source_path="raw/abc.mp4").status,
            CompressionRecord.Status.PROCESSING,
        )

    def test_running_job_past_give_up_is_failed(self):
        self.make_stale("raw/abc.mp4", "job-1", age_s=10000)
        client = FakeRendiClient(statuses=[Running()])

        self.reconciler(client, give_up_after_s=7200).sweep()

        record = CompressionRecord.objects.get(source_path="raw/abc.mp4")
        self.assertEqual(record.status, CompressionRecord.Status.FAILED)
        self.assertEqual(record.error_message, "transcode did not finish within 7200s")

    def test_give_up_on_superseded_row_writes_nothing(self):
        self.make_stale("raw/abc.mp4", "job-1", age_s=10000)
        stale = CompressionRecord.objects.get()
        self.store.mark_processing("raw/abc.mp4", "job-2", bucket="media")
        client = FakeRendiClient(statuses=[Running()])

        outcome = self.reconciler(client, give_up_after_s=7200).reconcile_one(stale)

        self.assertEqual(outcome, PollOutcome.SUPERSEDED)
        record = CompressionRecord.objects.get()
        self.assertEqual(record.status, CompressionRecord.Status.PROCESSING)
        self.assertEqual(record.job_id, "job-2")

    def test_one_broken_row_does_not_stop_the_sweep(self):
        self.make_stale("raw/first.mp4", "job-1", age_s=7200)
        self.make_stale("raw/second.mp4", "job-2", age_s=3600)
        client = MagicMock()
        client.poll.side_effect = [RuntimeError("boom"), Failed("bad input")]

        with self.assertLogs("compression.poller", level="ERROR") as logs:
            counts = self.reconciler(client).sweep()

        self.assertEqual(counts, {"error": 1, "failed": 1})
        self.assertIn("raw/first.mp4: reconciliation failed", logs.output[0])
        self.assertEqual(
            CompressionRecord.objects.get(source_path="raw/first.mp4").status,
            CompressionRecord.Status.PROCESSING,
        )
        self.assertEqual(
            CompressionRecord.objects.get(source_path="raw/second.mp4").status,
            CompressionRecord.Status.FAILED,
        )

    def test_transient_error_leaves_row_for_next_sweep(self):
        self.make_stale("raw/abc.mp4", "job-1")
        client = FakeRendiClient(statuses=[TransientPollError("down")])

        outcome = self.reconciler(client).reconcile_one(CompressionRecord.objects.get())

        self.assertEqual(outcome, PollOutcome.RUNNING)
        self.assertEqual(CompressionRecord.objects.get().status, CompressionRecord.Status.PROCESSING)

    def test_fresh_rows_are_skipped(self):
        self.store.mark_processing("raw/abc.mp4", "job-1", bucket="media")
        client = FakeRendiClient(statuses=[Succeeded("https://x/out.mp4")])

        self.assertEqual(self.reconciler(client).sweep(), {})
        self.assertEqual(client.polled, [])


class ReconcileTaskTest(TestCase):
    @patch("compression.tasks.ObjectStore")
    @patch("compression.tasks.RendiClient")
    def test_task_sweeps_with_settings_wiring(self, mock_client_cls, mock_store_cls):
        mock_client_cls.from_settings.return_value = FakeRendiClient(statuses=[Failed("bad input")])
        StatusStore().mark_processing("raw/abc.mp4", "job-1", bucket="media")
        CompressionRecord.objects.update(updated_at=timezone.now() - timedelta(hours=1))

        counts = reconcile_stale_compressions()

        self.assertEqual(counts, {"failed": 1})
        self.assertEqual(CompressionRecord.objects.get().status, CompressionRecord.Status.FAILED)
