import logging
import re
from dataclasses import dataclass
from typing import Iterator

from .errors import EmptyObject, InvalidRange
from .utils import DEFAULT_VIDEO_CONTENT_TYPE

log = logging.getLogger(__name__)

_LEADING_DIGITS = re.compile(r"^\s*(\d+)")


@dataclass(frozen=True)
class RangeWindow:
    start: int
    end: int  # inclusive
    total: int
    is_partial: bool

    @property
    def content_length(self) -> int:
        return self.end - self.start + 1

    @property
    def content_range(self) -> str:
        return f"bytes {self.start}-{self.end}/{self.total}"


@dataclass
class StreamResult:
    window: RangeWindow
    content_type: str
    stream: Iterator[bytes]

    @property
    def start(self) -> int:
        return self.window.start

    @property
    def end(self) -> int:
        return self.window.end

    @property
    def total(self) -> int:
        return self.window.total

    @property
    def content_length(self) -> int:
        return self.window.content_length

    @property
    def is_partial(self) -> bool:
        return self.window.is_partial

    @property
    def status_code(self) -> int:
        return 206 if self.is_partial else 200

    def headers(self) -> dict[str, str]:
        headers = {
            "Accept-Ranges": "bytes",
            "Content-Type": self.content_type,
            "Content-Length": str(self.content_length),
        }
        if self.is_partial:
            headers["Content-Range"] = self.window.content_range
        return headers

    def to_dict(self) -> dict:
        return {
            "start": self.start,
            "end": self.end,
            "total": self.total,
            "isPartial": self.is_partial,
            "contentType": self.content_type,
            "byteStream": self.stream,
        }


def _leading_int(raw: str | None) -> int | None:
    match = _LEADING_DIGITS.match(raw or "")
    return int(match.group(1)) if match else None


def parse_range(range_header: str | None, size: int) -> RangeWindow:
    """
    Resolve a Range header against an object of `size` bytes.

    Only the single-window "bytes=<start>-<end>" form is understood. A
    missing or non-numeric start means 0, a missing or non-numeric end means
    the last byte; both are clamped to the object. Multi-range values are
    read as one window built from the leading digits of each side.
    """
    if size <= 0:
        raise EmptyObject(total=0)

    if not range_header:
        return RangeWindow(start=0, end=size - 1, total=size, is_partial=False)

    value = range_header.strip()
    if value.lower().startswith("bytes="):
        value = value[len("bytes="):]
    start_raw, _, end_raw = value.partition("-")

    start = _leading_int(start_raw)
    end = _leading_int(end_raw)
    if start is None:
        start = 0
    if end is None:
        end = size - 1

    start = max(start, 0)
    end = min(end, size - 1)
    if start > end:
        raise InvalidRange(f"Invalid range {range_header!r} for {size} bytes", total=size)

    return RangeWindow(start=start, end=end, total=size, is_partial=True)


def stream_range(store, key: str, range_header: str | None = None) -> StreamResult:
    """
    Serve `key` honouring an optional Range header. The returned stream is
    lazy; bytes are pulled from the store as the caller iterates.
    """
    meta = store.head_metadata(key)
    if meta.size == 0:
        raise EmptyObject(f"Empty file: {key}", total=0)

    window = parse_range(range_header, meta.size)
    if window.is_partial:
        stream = store.open_range(key, window.start, window.end)
    else:
        stream = store.open_range(key)
    log.debug("Streaming %s bytes %d-%d/%d", key, window.start, window.end, window.total)

    return StreamResult(
        window=window,
        content_type=meta.content_type or DEFAULT_VIDEO_CONTENT_TYPE,
        stream=stream,
    )
