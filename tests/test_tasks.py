import logging
import os

import pytest

from streaming.errors import NotFound
from streaming.jobs import JobStatus
from streaming.manifests import parse_master_manifest
from streaming.tasks import TranscodeOrchestrator

from tests.fakes import DeferredExecutor, FakeEncoder

SOURCE_KEY = "videos/episodes/ep1/1700000000000-clip.mp4"
SOURCE_URL = f"http://minio:9000/media/{SOURCE_KEY}"


@pytest.fixture
def source(store):
    store.put(SOURCE_KEY, b"fake mp4 bytes")
    return SOURCE_URL


def test_start_returns_pending_payload(orchestrator, source):
    job = orchestrator.start_job("ep1", source, ["360p", "720p"])

    assert job["status"] == "pending"
    assert job["jobId"].startswith("transcode-ep1-")
    assert job["episodeId"] == "ep1"
    assert job["inputUrl"] == source
    assert job["outputPrefix"] == "hls/episodes/ep1/"
    assert job["qualities"] == ["360p", "720p"]


def test_default_qualities_are_the_whole_ladder(orchestrator, encoder, source):
    job = orchestrator.start_job("ep1", source)
    assert job["qualities"] == ["360p", "480p", "720p", "1080p"]
    assert [q for q, _ in encoder.calls] == ["360p", "480p", "720p", "1080p"]


def test_empty_qualities_produce_no_renditions(orchestrator, encoder, source):
    job = orchestrator.start_job("ep1", source, [])
    assert job["qualities"] == []
    assert encoder.calls == []
    assert orchestrator.get_job_status(job["jobId"])["variants"] == []


def test_job_ids_are_unique(orchestrator, source):
    ids = {orchestrator.start_job("ep1", source, ["360p"])["jobId"] for _ in range(5)}
    assert len(ids) == 5


def test_successful_job_uploads_every_rendition(orchestrator, store, source):
    job = orchestrator.start_job("ep1", source, ["360p", "720p"])

    assert orchestrator.jobs.get(job["jobId"]).status == JobStatus.COMPLETED
    for quality in ("360p", "720p"):
        assert f"hls/episodes/ep1/{quality}/{quality}.m3u8" in store.objects
        for i in range(3):
            data, content_type = store.objects[f"hls/episodes/ep1/{quality}/segment_{i:03d}.ts"]
            assert content_type == "video/mp2t"
            assert data == f"{quality}:segment_{i:03d}.ts".encode()


def test_segments_uploaded_in_name_order(orchestrator, store, source):
    orchestrator.start_job("ep1", source, ["360p"])
    segments = [k for k in store.uploads if k.endswith(".ts")]
    assert segments == sorted(segments)
    # manifest goes up before its segments
    assert store.uploads.index("hls/episodes/ep1/360p/360p.m3u8") < store.uploads.index(segments[0])


def test_unknown_quality_is_skipped(orchestrator, store, encoder, source):
    job = orchestrator.start_job("ep1", source, ["360p", "999p"])

    assert [q for q, _ in encoder.calls] == ["360p"]
    status = orchestrator.get_job_status(job["jobId"])
    assert status["status"] == "completed"
    assert [v["quality"] for v in status["variants"]] == ["360p"]
    assert not any("999p" in key for key in store.objects)


def test_only_unknown_qualities_completes_empty(orchestrator, encoder, source):
    job = orchestrator.start_job("ep1", source, ["4k"])

    status = orchestrator.get_job_status(job["jobId"])
    assert status["status"] == "completed"
    assert status["variants"] == []
    assert encoder.calls == []


def test_completed_status_publishes_master(orchestrator, store, source):
    job = orchestrator.start_job("ep1", source, ["720p", "360p"])

    status = orchestrator.get_job_status(job["jobId"])

    assert status["hlsManifestUrl"] == "http://minio:9000/media/hls/episodes/ep1/master.m3u8"
    assert status["variants"][0] == {
        "quality": "720p",
        "manifestUrl": "http://minio:9000/media/hls/episodes/ep1/720p/720p.m3u8",
        "resolution": "1280x720",
        "bandwidth": 2500000,
    }
    master, content_type = store.objects["hls/episodes/ep1/master.m3u8"]
    assert content_type == "application/vnd.apple.mpegurl"
    parsed = parse_master_manifest(master.decode())
    assert [v.bandwidth for v in parsed] == [500000, 2500000]
    assert parsed[0].codecs == "avc1.42e01e,mp4a.40.2"


def test_encoder_failure_fails_job_and_cleans_scratch(store, source, tmp_path):
    encoder = FakeEncoder(fail_on={"720p"})
    scratch_root = tmp_path / "scratch"
    scratch_root.mkdir()
    orchestrator = TranscodeOrchestrator(store, encoder, executor=DeferredExecutor(), scratch_dir=str(scratch_root))

    job = orchestrator.start_job("ep1", source, ["360p", "720p", "1080p"])
    orchestrator.executor.run_all()

    status = orchestrator.get_job_status(job["jobId"])
    assert status["status"] == "failed"
    assert "720p" in status["error"]
    # no later rung is attempted once one fails
    assert [q for q, _ in encoder.calls] == ["360p", "720p"]
    assert os.listdir(scratch_root) == []


def test_scratch_removed_after_success(store, encoder, source, tmp_path):
    orchestrator = TranscodeOrchestrator(store, encoder, executor=DeferredExecutor(), scratch_dir=str(tmp_path))
    orchestrator.start_job("ep1", source, ["360p"])
    orchestrator.executor.run_all()

    (_, output_dir), = encoder.calls
    assert not output_dir.exists()
    assert os.listdir(tmp_path) == []


def test_upload_failure_fails_job(orchestrator, store, source):
    store.fail_upload_when = lambda key: key.endswith("segment_001.ts")

    job = orchestrator.start_job("ep1", source, ["360p"])

    status = orchestrator.get_job_status(job["jobId"])
    assert status["status"] == "failed"
    assert "segment_001.ts" in status["error"]


def test_missing_source_fails_job(orchestrator):
    job = orchestrator.start_job("ep1", "http://minio:9000/media/videos/gone.mp4", ["360p"])
    status = orchestrator.get_job_status(job["jobId"])
    assert status["status"] == "failed"
    assert "gone.mp4" in status["error"]


def test_invalid_source_url_fails_job(orchestrator, encoder):
    job = orchestrator.start_job("ep1", "not-a-url", ["360p"])

    status = orchestrator.get_job_status(job["jobId"])
    assert status == {"jobId": job["jobId"], "status": "failed", "error": "Invalid video URL: not-a-url"}
    assert encoder.calls == []


def test_processing_until_the_worker_finishes(store, encoder, source, tmp_path):
    orchestrator = TranscodeOrchestrator(store, encoder, executor=DeferredExecutor(), scratch_dir=str(tmp_path))
    job = orchestrator.start_job("ep1", source, ["360p"])

    assert orchestrator.get_job_status(job["jobId"]) == {"jobId": job["jobId"], "status": "processing"}
    assert "hls/episodes/ep1/master.m3u8" not in store.objects

    orchestrator.executor.run_all()
    assert orchestrator.get_job_status(job["jobId"])["status"] == "completed"


def test_second_job_for_same_episode_is_logged(store, encoder, source, tmp_path, caplog):
    orchestrator = TranscodeOrchestrator(store, encoder, executor=DeferredExecutor(), scratch_dir=str(tmp_path))
    first = orchestrator.start_job("ep1", source, ["360p"])

    with caplog.at_level(logging.WARNING, logger="streaming.tasks"):
        second = orchestrator.start_job("ep1", source, ["360p"])

    assert first["jobId"] != second["jobId"]
    assert first["jobId"] in caplog.text


def test_unknown_job_status(orchestrator):
    with pytest.raises(NotFound):
        orchestrator.get_job_status("transcode-nope")


def test_start_after_shutdown(store, encoder, source, tmp_path):
    orchestrator = TranscodeOrchestrator(store, encoder, scratch_dir=str(tmp_path))
    orchestrator.shutdown()

    with pytest.raises(RuntimeError):
        orchestrator.start_job("ep1", source, ["360p"])

    assert len(orchestrator.jobs) == 1
    assert orchestrator.jobs.active_for_episode("ep1") == []
