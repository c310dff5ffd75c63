import logging

from rest_framework import status, views
from rest_framework.permissions import AllowAny
from rest_framework.response import Response

from .errors import ResolutionFailed, SubmissionFailed
from .handler import build_trigger_handler
from .models import CompressionRecord
from .serializers import CompressionRecordSerializer, StatusQuerySerializer, StorageEventSerializer
from .tasks import enqueue_poller

logger = logging.getLogger(__name__)


def _run_handler(bucket: str, name: str) -> Response:
    handler = build_trigger_handler()
    try:
        result = handler.handle(bucket, name)
    except ResolutionFailed as e:
        logger.error(f"Could not resolve source URL for {bucket}/{name}: {e}")
        return Response(
            {"detail": "could not build source URL", "error": str(e)},
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )
    except SubmissionFailed as e:
        logger.error(f"Submission failed for {bucket}/{name}: {e} body={e.body!r}")
        return Response(
            {"detail": "failed to start compression", "error": str(e), "upstream_status": e.status_code},
            status=status.HTTP_502_BAD_GATEWAY,
        )
    return Response({"detail": result.detail, "outcome": result.outcome.value, **result.data}, status=result.status_code)


class StorageEventView(views.APIView):
    """
    Storage "object created" hook. Answers 202 as soon as the job is queued;
    polling happens on a Celery worker.
    """
    permission_classes = [AllowAny]
    authentication_classes = []

    def post(self, request):
        ser = StorageEventSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        return _run_handler(ser.validated_data["bucketId"], ser.validated_data["name"])


class CompressionStatusView(views.APIView):
    permission_classes = [AllowAny]
    authentication_classes = []

    def get(self, request):
        ser = StatusQuerySerializer(data=request.query_params)
        ser.is_valid(raise_exception=True)
        record = CompressionRecord.objects.filter(source_path=ser.validated_data["source_path"]).first()
        if record is None:
            return Response({"detail": "Not found", "status": CompressionRecord.Status.PENDING}, status=404)
        return Response(CompressionRecordSerializer(record).data)


class RetriggerView(views.APIView):
    """
    Operator re-run for one object:
      - terminal row -> returned as-is
      - processing row -> a new poller is attached to the existing job
      - no row -> handled like a fresh storage event
    """
    permission_classes = [AllowAny]
    authentication_classes = []

    def post(self, request):
        ser = StorageEventSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        bucket = ser.validated_data["bucketId"]
        name = ser.validated_data["name"]

        record = CompressionRecord.objects.filter(source_path=name).first()
        if record is not None and record.is_terminal:
            return Response(CompressionRecordSerializer(record).data, status=200)

        if record is not None and record.status == CompressionRecord.Status.PROCESSING and record.job_id:
            enqueue_poller(record.source_path, record.bucket or bucket, record.job_id, record.generation)
            logger.info(f"{name}: re-attached poller to job {record.job_id}")
            return Response(
                {"detail": "poller re-attached", **CompressionRecordSerializer(record).data},
                status=status.HTTP_202_ACCEPTED,
            )

        return _run_handler(bucket, name)
