import logging

from django.http import HttpResponse, StreamingHttpResponse
from rest_framework import status, views
from rest_framework.parsers import FormParser, MultiPartParser
from rest_framework.permissions import AllowAny
from rest_framework.response import Response

from .assets import presign_object, replace_episode_thumbnail, replace_episode_video
from .errors import EmptyObject, InvalidRange, NotFound, StoreFailure, StreamingError
from .playback import open_segment, stored_master_manifest, stored_variant_manifest
from .ranges import stream_range
from .serializers import (
    JobResultSerializer,
    StartJobSerializer,
    ThumbnailUploadSerializer,
    VideoUploadSerializer,
)
from .services import get_object_store, get_orchestrator
from .utils import MANIFEST_CONTENT_TYPE, SEGMENT_CONTENT_TYPE

log = logging.getLogger(__name__)


def error_response(exc: StreamingError):
    """Map the streaming error taxonomy onto HTTP."""
    if isinstance(exc, (InvalidRange, EmptyObject)):
        resp = Response({"detail": "Range Not Satisfiable"}, status=status.HTTP_416_REQUESTED_RANGE_NOT_SATISFIABLE)
        if exc.total is not None:
            resp["Content-Range"] = f"bytes */{exc.total}"
        return resp
    if isinstance(exc, NotFound):
        return Response({"detail": str(exc) or "Not found"}, status=status.HTTP_404_NOT_FOUND)
    if isinstance(exc, StoreFailure):
        log.error("Object store failure: %s", exc)
        return Response({"detail": "Storage unavailable"}, status=status.HTTP_502_BAD_GATEWAY)
    log.error("Unhandled streaming error: %s", exc)
    return Response({"detail": str(exc)}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)


class PublicAPIView(views.APIView):
    permission_classes = [AllowAny]
    authentication_classes = []

    def handle_exception(self, exc):
        if isinstance(exc, StreamingError):
            return error_response(exc)
        return super().handle_exception(exc)


class MediaStreamView(PublicAPIView):
    """
    Serves an object with HTTP Range support: 200 for the whole object,
    206 for a window, 416 when the window cannot be satisfied.
    """

    def get(self, request, key):
        result = stream_range(get_object_store(), key, request.headers.get("Range"))
        resp = StreamingHttpResponse(result.stream, status=result.status_code, content_type=result.content_type)
        for name, value in result.headers().items():
            resp[name] = value
        resp["Cache-Control"] = "public, max-age=3600"
        return resp


class MediaUrlView(PublicAPIView):
    """Presigned, time-limited GET URL for an object."""

    def get(self, request, key):
        raw = request.query_params.get("expires_in")
        store = get_object_store()
        try:
            url, ttl = presign_object(store, key, int(raw) if raw else None)
        except ValueError:
            return Response({"detail": "expires_in must be a positive integer"}, status=status.HTTP_400_BAD_REQUEST)

        store.head_metadata(key)  # 404 for unknown keys
        return Response({"url": url, "expiresIn": ttl})


def _manifest_response(text: str) -> HttpResponse:
    resp = HttpResponse(text, content_type=MANIFEST_CONTENT_TYPE)
    resp["Cache-Control"] = "public, max-age=3600"
    return resp


class MasterManifestView(PublicAPIView):
    def get(self, request, episode_id):
        return _manifest_response(stored_master_manifest(get_object_store(), episode_id))


class VariantManifestView(PublicAPIView):
    def get(self, request, episode_id, quality):
        return _manifest_response(stored_variant_manifest(get_object_store(), episode_id, quality))


class SegmentView(PublicAPIView):
    def get(self, request, episode_id, quality, segment):
        stream = open_segment(get_object_store(), episode_id, quality, segment)
        resp = StreamingHttpResponse(stream, content_type=SEGMENT_CONTENT_TYPE)
        resp["Cache-Control"] = "public, max-age=86400"
        return resp


class TranscodeJobView(PublicAPIView):
    """
    Starts a transcoding job. Returns 202 immediately; poll the detail view
    for the outcome.
    """

    def post(self, request):
        ser = StartJobSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        data = ser.validated_data

        job = get_orchestrator().start_job(data["episode_id"], data["source_url"], data.get("qualities"))
        return Response(job, status=status.HTTP_202_ACCEPTED)


class TranscodeJobDetailView(PublicAPIView):
    def get(self, request, job_id):
        result = get_orchestrator().get_job_status(job_id)
        return Response(JobResultSerializer(result).data)


class EpisodeVideoUploadView(PublicAPIView):
    """
    Accepts a source video for an episode, replaces the previous object and,
    unless transcode=false, queues an HLS transcode of the new upload.
    """
    parser_classes = [MultiPartParser, FormParser]

    def post(self, request, episode_id):
        ser = VideoUploadSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        data = ser.validated_data
        upload = data["file"]

        video_url = replace_episode_video(
            get_object_store(),
            episode_id,
            upload.read(),
            upload.name,
            old_url=data.get("old_url") or None,
        )
        body = {"episodeId": episode_id, "videoUrl": video_url}

        if data["transcode"]:
            try:
                job = get_orchestrator().start_job(episode_id, video_url, data.get("qualities"))
                body["transcodingJobId"] = job["jobId"]
            except RuntimeError as e:
                # executor already shut down; the upload itself succeeded
                log.error("Failed to start HLS transcoding for episode %s: %s", episode_id, e)
        return Response(body, status=status.HTTP_201_CREATED)


class EpisodeThumbnailUploadView(PublicAPIView):
    parser_classes = [MultiPartParser, FormParser]

    def post(self, request, episode_id):
        ser = ThumbnailUploadSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        upload = ser.validated_data["file"]

        thumbnail_url = replace_episode_thumbnail(
            get_object_store(),
            episode_id,
            upload.read(),
            upload.name,
            old_url=ser.validated_data.get("old_url") or None,
        )
        return Response({"episodeId": episode_id, "thumbnailUrl": thumbnail_url}, status=status.HTTP_201_CREATED)
