import io
import logging

from PIL import Image, UnidentifiedImageError

from .errors import NotFound, StoreFailure
from .utils import guess_content_type

log = logging.getLogger(__name__)

_PIL_FORMAT_TYPES = {
    "JPEG": "image/jpeg",
    "PNG": "image/png",
    "WEBP": "image/webp",
    "GIF": "image/gif",
}


def thumbnail_content_type(data: bytes, filename: str) -> str:
    """Sniff the image format with Pillow; fall back to the file extension."""
    try:
        with Image.open(io.BytesIO(data)) as img:
            fmt = (img.format or "").upper()
    except (UnidentifiedImageError, OSError):
        fmt = ""
    return _PIL_FORMAT_TYPES.get(fmt) or guess_content_type(filename, default="image/jpeg")


def _discard_superseded(store, old_url: str | None, what: str) -> None:
    """Best-effort delete of the object behind old_url; never raises."""
    if not old_url:
        return
    old_key = store.key_from_url(old_url)
    if not old_key:
        log.warning("Cannot resolve previous %s URL %r; leaving it in place", what, old_url)
        return
    try:
        store.delete(old_key)
        log.info("Deleted previous %s %s", what, old_key)
    except StoreFailure as e:
        log.error("Failed to delete old %s %s: %s", what, old_key, e)


def replace_episode_video(store, episode_id: str, data: bytes, filename: str, *, old_url: str | None = None) -> str:
    """
    Store a new source video for an episode and return its URL. The previous
    object, if any, is removed first; a failed removal does not abort the upload.
    """
    _discard_superseded(store, old_url, "video")
    return store.upload_video(data, episode_id, filename)


def replace_episode_thumbnail(store, episode_id: str, data: bytes, filename: str, *, old_url: str | None = None) -> str:
    _discard_superseded(store, old_url, "thumbnail")
    return store.upload_thumbnail(data, episode_id, filename, thumbnail_content_type(data, filename))


def presign_object(store, key: str, expires_in: int | None = None) -> tuple[str, int]:
    """Presigned GET URL for key and its lifetime in seconds."""
    if expires_in is not None and expires_in <= 0:
        raise ValueError(f"expires_in must be a positive number of seconds, got {expires_in}")
    ttl = expires_in or store.presign_ttl
    return store.presigned_url(key, ttl), ttl


def presigned_video_url(store, video_url: str | None, expires_in: int | None = None) -> dict:
    key = store.key_from_url(video_url)
    if not key:
        raise NotFound("Video not found for this episode")
    url, ttl = presign_object(store, key, expires_in)
    return {"videoUrl": url, "expiresIn": ttl}
