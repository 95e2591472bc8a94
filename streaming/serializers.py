from rest_framework import serializers

from .jobs import JobStatus


def _dedupe(values):
    seen = set()
    deduped = []
    for v in values:
        if v not in seen:
            seen.add(v)
            deduped.append(v)
    return deduped


class StartJobSerializer(serializers.Serializer):
    episode_id = serializers.CharField()
    source_url = serializers.CharField()
    # Unknown labels are accepted here; the orchestrator skips them.
    # Left out means the whole ladder, an explicit empty list means none.
    qualities = serializers.ListField(
        child=serializers.CharField(),
        required=False,
        allow_empty=True,
    )

    def validate_qualities(self, value):
        """De-duplicate while preserving order."""
        return _dedupe(value)


class VariantSerializer(serializers.Serializer):
    quality = serializers.CharField()
    manifestUrl = serializers.CharField()
    resolution = serializers.CharField()
    bandwidth = serializers.IntegerField()


class JobResultSerializer(serializers.Serializer):
    jobId = serializers.CharField()
    status = serializers.ChoiceField(choices=JobStatus.choices)
    hlsManifestUrl = serializers.CharField(required=False)
    variants = VariantSerializer(many=True, required=False)
    error = serializers.CharField(required=False, allow_blank=True)


class VideoUploadSerializer(serializers.Serializer):
    file = serializers.FileField()
    old_url = serializers.CharField(required=False, allow_blank=True)
    transcode = serializers.BooleanField(required=False, default=True)
    qualities = serializers.ListField(
        child=serializers.CharField(),
        required=False,
        allow_empty=True,
    )

    def validate_qualities(self, value):
        return _dedupe(value)


class ThumbnailUploadSerializer(serializers.Serializer):
    file = serializers.FileField()
    old_url = serializers.CharField(required=False, allow_blank=True)
