from rest_framework import serializers

from .models import CompressionRecord


class CompressionRecordSerializer(serializers.ModelSerializer):
    class Meta:
        model = CompressionRecord
        fields = [
            "source_path",
            "bucket",
            "status",
            "job_id",
            "output_path",
            "error_message",
            "generation",
            "created_at",
            "updated_at",
        ]


class StorageEventSerializer(serializers.Serializer):
    """Object-created payload: {"bucketId": ..., "name": ...}."""

    bucketId = serializers.CharField()
    name = serializers.CharField()

    def validate_name(self, value):
        value = value.strip()
        if not value or value.endswith("/"):
            raise serializers.ValidationError("name must be an object path")
        return value


class StatusQuerySerializer(serializers.Serializer):
    source_path = serializers.CharField()
