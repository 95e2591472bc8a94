import logging
import shutil
import tempfile
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path

from .encoder import Encoder
from .errors import UnknownQuality
from .jobs import JobStatus, JobTable, TranscodingJob
from .ladder import DEFAULT_QUALITIES, QualityProfile, get_profile
from .manifests import MasterManifest, Variant
from .utils import extension_of, hls_prefix, variant_manifest_name

log = logging.getLogger(__name__)

_MAX_ERROR_CHARS = 4000


def _error_message(exc: BaseException) -> str:
    return (str(exc) or exc.__class__.__name__)[:_MAX_ERROR_CHARS]


class TranscodeOrchestrator:
    """
    Runs multi-quality HLS transcodes in the background and tracks each job
    from `processing` to `completed` or `failed`.

    Every job gets its own scratch directory, removed on every exit path.
    Failures are never retried; the first encoder, download or upload error
    fails the whole job.
    """

    def __init__(
        self,
        store,
        encoder: Encoder,
        *,
        jobs: JobTable | None = None,
        executor=None,
        max_workers: int = 2,
        segment_seconds: int = 10,
        scratch_dir: str | None = None,
    ):
        self.store = store
        self.encoder = encoder
        self.jobs = jobs if jobs is not None else JobTable()
        self.executor = executor or ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="transcode")
        self.segment_seconds = segment_seconds
        self.scratch_dir = scratch_dir

    # -------------------------------------------------
    # Public API
    # -------------------------------------------------
    def start_job(self, episode_id: str, source_url: str, qualities: list[str] | None = None) -> dict:
        """
        Register a job and hand the work to the executor. Returns at once;
        the reported status is `pending` since the work has not been observed
        running yet.
        """
        qualities = list(qualities) if qualities is not None else list(DEFAULT_QUALITIES)
        job_id = f"transcode-{episode_id}-{uuid.uuid4().hex[:12]}"

        running = self.jobs.active_for_episode(episode_id)
        if running:
            log.warning("Episode %s already has running job(s) %s; starting %s anyway",
                        episode_id, ", ".join(j.job_id for j in running), job_id)

        self.jobs.create(TranscodingJob(
            job_id=job_id,
            episode_id=episode_id,
            source_url=source_url,
            qualities=qualities,
            status=JobStatus.PROCESSING,
        ))
        log.info("Starting transcoding job %s for episode %s (%s)", job_id, episode_id, ", ".join(qualities))

        try:
            future: Future = self.executor.submit(self.run_job, job_id)
        except RuntimeError as e:
            self.jobs.mark_failed(job_id, f"Could not schedule job: {e}")
            raise
        future.add_done_callback(self._log_unexpected)

        return {
            "jobId": job_id,
            "status": JobStatus.PENDING.value,
            "episodeId": episode_id,
            "inputUrl": source_url,
            "outputPrefix": hls_prefix(episode_id),
            "qualities": qualities,
        }

    def get_job_status(self, job_id: str) -> dict:
        """Current status; completed jobs also get their master manifest rendered and stored."""
        job = self.jobs.get(job_id)

        if job.status == JobStatus.COMPLETED:
            result = self.generate_hls_manifests(job.episode_id, job.qualities)
            return {
                "jobId": job_id,
                "status": JobStatus.COMPLETED.value,
                "hlsManifestUrl": result["masterManifestUrl"],
                "variants": result["variants"],
            }
        if job.status == JobStatus.FAILED:
            return {
                "jobId": job_id,
                "status": JobStatus.FAILED.value,
                "error": job.error,
            }
        return {"jobId": job_id, "status": JobStatus.PROCESSING.value}

    def generate_hls_manifests(self, episode_id: str, qualities: list[str]) -> dict:
        """
        Build the master manifest from the ladder entries of `qualities` and
        upload it to hls/episodes/<id>/master.m3u8.
        """
        variants = []
        for quality in qualities:
            try:
                profile = get_profile(quality)
            except UnknownQuality:
                log.warning("Skipping unknown quality: %s", quality)
                continue
            variants.append(Variant(
                manifest_url=self.store.hls_manifest_url(episode_id, variant_manifest_name(quality)),
                resolution=profile.resolution,
                bandwidth=profile.bandwidth,
                quality=quality,
                codecs=profile.codecs,
            ))

        master = MasterManifest(variants=variants).render()
        master_url = self.store.upload_hls_manifest(master, episode_id, "master.m3u8")
        log.info("HLS master manifest for episode %s: %s", episode_id, master_url)

        return {
            "masterManifestUrl": master_url,
            "variants": [
                {
                    "quality": v.quality,
                    "manifestUrl": v.manifest_url,
                    "resolution": v.resolution,
                    "bandwidth": v.bandwidth,
                }
                for v in variants
            ],
        }

    def shutdown(self, wait: bool = True) -> None:
        self.executor.shutdown(wait=wait)

    # -------------------------------------------------
    # Background work
    # -------------------------------------------------
    def run_job(self, job_id: str) -> None:
        """Body of one background job. Never raises; the outcome lands on the job."""
        job = self.jobs.get(job_id)
        scratch = None

        try:
            scratch = Path(tempfile.mkdtemp(prefix=f"transcode-{job.episode_id}-", dir=self.scratch_dir))
            self._transcode(job, scratch)
            self.jobs.mark_completed(job_id)
            log.info("Transcoding job %s completed for episode %s", job_id, job.episode_id)
        except Exception as e:
            log.exception("Transcoding job %s failed", job_id)
            self.jobs.mark_failed(job_id, _error_message(e))
        finally:
            if scratch is not None:
                self._cleanup(scratch)

    @staticmethod
    def _cleanup(scratch: Path) -> None:
        shutil.rmtree(scratch, ignore_errors=True)
        if scratch.exists():
            log.warning("Failed to clean up scratch directory: %s", scratch)
        else:
            log.debug("Cleaned up scratch directory: %s", scratch)

    def _transcode(self, job: TranscodingJob, scratch: Path) -> None:
        key = self.store.key_from_url(job.source_url)
        if not key:
            raise ValueError(f"Invalid video URL: {job.source_url}")

        input_path = scratch / f"input.{extension_of(key, 'mp4')}"
        log.info("Downloading source %s for episode %s", key, job.episode_id)
        self.store.download_to_file(key, input_path)

        for quality in job.qualities:
            try:
                profile = get_profile(quality)
            except UnknownQuality:
                log.warning("Skipping unknown quality: %s", quality)
                continue
            self._encode_and_upload(job, profile, input_path, scratch / quality)

    def _encode_and_upload(self, job: TranscodingJob, profile: QualityProfile, input_path: Path, output_dir: Path) -> None:
        output_dir.mkdir(parents=True, exist_ok=True)
        log.info("Transcoding %s (%s @ %dbps) for episode %s",
                 profile.quality, profile.resolution, profile.bandwidth, job.episode_id)

        result = self.encoder.encode(input_path, output_dir, profile, self.segment_seconds)

        manifest = Path(result.manifest_path).read_text(encoding="utf-8")
        self.store.upload_hls_manifest(manifest, job.episode_id, variant_manifest_name(profile.quality))

        segments = sorted(Path(p) for p in result.segment_paths)
        for segment in segments:
            self.store.upload_hls_segment(segment, job.episode_id, profile.quality, segment.name)
        log.info("Uploaded %d segments for %s", len(segments), profile.quality)

    @staticmethod
    def _log_unexpected(future: Future) -> None:
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            log.error("Transcoding worker crashed: %r", exc)
