from django.urls import path, re_path

from .views import (
    EpisodeThumbnailUploadView,
    EpisodeVideoUploadView,
    MasterManifestView,
    MediaStreamView,
    MediaUrlView,
    SegmentView,
    TranscodeJobDetailView,
    TranscodeJobView,
    VariantManifestView,
)

urlpatterns = [
    path("media/<path:key>", MediaStreamView.as_view(), name="media_stream"),
    path("media-url/<path:key>", MediaUrlView.as_view(), name="media_url"),
    path("episodes/<str:episode_id>/hls/master.m3u8", MasterManifestView.as_view(), name="hls_master"),
    re_path(r"^episodes/(?P<episode_id>[^/]+)/hls/(?P<quality>[^/]+)\.m3u8$", VariantManifestView.as_view(), name="hls_variant"),
    path("episodes/<str:episode_id>/hls/<str:quality>/<str:segment>", SegmentView.as_view(), name="hls_segment"),
    path("episodes/<str:episode_id>/video/", EpisodeVideoUploadView.as_view(), name="episode_video_upload"),
    path("episodes/<str:episode_id>/thumbnail/", EpisodeThumbnailUploadView.as_view(), name="episode_thumbnail_upload"),
    path("transcode/jobs/", TranscodeJobView.as_view(), name="transcode_jobs"),
    path("transcode/jobs/<str:job_id>/", TranscodeJobDetailView.as_view(), name="transcode_job_detail"),
]
