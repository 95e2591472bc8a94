import threading

from django.conf import settings

from .encoder import FFmpegEncoder
from .s3 import ObjectStore
from .tasks import TranscodeOrchestrator

_lock = threading.Lock()
_store: ObjectStore | None = None
_orchestrator: TranscodeOrchestrator | None = None


def get_object_store() -> ObjectStore:
    global _store
    with _lock:
        if _store is None:
            _store = ObjectStore.from_settings()
        return _store


def get_orchestrator() -> TranscodeOrchestrator:
    """Process-wide orchestrator; its job table lives as long as the process."""
    global _orchestrator
    store = get_object_store()
    with _lock:
        if _orchestrator is None:
            _orchestrator = TranscodeOrchestrator(
                store,
                FFmpegEncoder(settings.FFMPEG_BINARY, preset=settings.FFMPEG_PRESET),
                max_workers=settings.TRANSCODE_MAX_WORKERS,
                segment_seconds=settings.HLS_SEGMENT_SECONDS,
                scratch_dir=settings.TRANSCODE_SCRATCH_DIR,
            )
        return _orchestrator


def reset() -> None:
    """Drop the cached instances (tests, settings reloads)."""
    global _store, _orchestrator
    with _lock:
        if _orchestrator is not None:
            _orchestrator.shutdown(wait=False)
        _store = None
        _orchestrator = None
