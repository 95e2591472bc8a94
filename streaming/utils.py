import mimetypes
import os
import re
import time

HLS_PREFIX = "hls/episodes"
MANIFEST_CONTENT_TYPE = "application/vnd.apple.mpegurl"
SEGMENT_CONTENT_TYPE = "video/mp2t"
DEFAULT_VIDEO_CONTENT_TYPE = "video/mp4"

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9.-]")


def sanitize_filename(filename: str) -> str:
    """Keep [a-zA-Z0-9.-], replace everything else with '_'."""
    return _UNSAFE_CHARS.sub("_", os.path.basename(filename or ""))


def timestamp_ms() -> int:
    return int(time.time() * 1000)


def video_key(episode_id: str, filename: str, *, ts: int | None = None) -> str:
    """videos/episodes/<id>/<ts>-<sanitized name>"""
    return f"videos/episodes/{episode_id}/{ts or timestamp_ms()}-{sanitize_filename(filename)}"


def thumbnail_key(episode_id: str, filename: str, *, ts: int | None = None) -> str:
    """thumbnails/episodes/<id>/<ts>-<sanitized name>"""
    return f"thumbnails/episodes/{episode_id}/{ts or timestamp_ms()}-{sanitize_filename(filename)}"


def hls_prefix(episode_id: str) -> str:
    return f"{HLS_PREFIX}/{episode_id}/"


def hls_key(episode_id: str, filename: str) -> str:
    """hls/episodes/<id>/<filename>, where filename may carry a quality folder."""
    return f"{HLS_PREFIX}/{episode_id}/{filename.lstrip('/')}"


def variant_manifest_name(quality: str) -> str:
    return f"{quality}/{quality}.m3u8"


def extension_of(filename: str, default: str) -> str:
    _, ext = os.path.splitext(filename or "")
    return ext.lstrip(".").lower() or default


def guess_content_type(filename: str, default: str = "application/octet-stream") -> str:
    """Return a MIME type based on the filename extension."""
    suffix = extension_of(filename, "")
    if suffix == "m3u8":
        return MANIFEST_CONTENT_TYPE
    if suffix in ("ts", "m2ts"):
        return SEGMENT_CONTENT_TYPE
    mime, _ = mimetypes.guess_type(filename or "")
    return mime or default


def video_content_type(filename: str) -> str:
    """video/<ext>, mp4 when the name carries no extension."""
    return f"video/{extension_of(sanitize_filename(filename), 'mp4')}"
