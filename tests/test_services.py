import pytest

from streaming import services
from streaming.encoder import FFmpegEncoder
from streaming.errors import UnknownQuality
from streaming.ladder import DEFAULT_QUALITIES, get_profile, is_known
from streaming.s3 import ObjectStore
from streaming.utils import sanitize_filename, video_content_type


@pytest.fixture
def s3_settings(settings, tmp_path):
    settings.S3_ENDPOINT_URL = "http://127.0.0.1:9000"
    settings.S3_PUBLIC_ENDPOINT = "http://localhost:9000"
    settings.S3_BUCKET = "vod"
    settings.S3_ACCESS_KEY = "minio"
    settings.S3_SECRET_KEY = "minio123"
    settings.S3_PRESIGN_EXPIRE_SECONDS = 600
    settings.FFMPEG_BINARY = "/opt/ffmpeg"
    settings.TRANSCODE_SCRATCH_DIR = str(tmp_path)
    return settings


def test_object_store_from_settings(s3_settings):
    store = services.get_object_store()

    assert isinstance(store, ObjectStore)
    assert store is services.get_object_store()
    assert store.public_url("a.mp4") == "http://localhost:9000/vod/a.mp4"
    assert store.presign_ttl == 600
    assert store.presigned_url("a.mp4").startswith("http://localhost:9000/vod/a.mp4?")


def test_orchestrator_from_settings(s3_settings):
    orchestrator = services.get_orchestrator()

    assert orchestrator is services.get_orchestrator()
    assert orchestrator.store is services.get_object_store()
    assert isinstance(orchestrator.encoder, FFmpegEncoder)
    assert orchestrator.encoder.binary == "/opt/ffmpeg"
    assert orchestrator.segment_seconds == 10


def test_reset_builds_fresh_instances(s3_settings):
    first = services.get_orchestrator()
    services.reset()
    assert services.get_orchestrator() is not first


def test_ladder():
    assert DEFAULT_QUALITIES == ["360p", "480p", "720p", "1080p"]
    assert get_profile("480p").resolution == "854x480"
    assert get_profile("1080p").bandwidth == 5000000
    assert is_known("720p")
    assert not is_known("4k")
    with pytest.raises(UnknownQuality):
        get_profile("4k")


def test_filenames():
    assert sanitize_filename("My Episode #1 (final).mp4") == "My_Episode__1__final_.mp4"
    assert sanitize_filename("../../etc/passwd") == "passwd"
    assert video_content_type("clip.MKV") == "video/mkv"
    assert video_content_type("clip") == "video/mp4"
