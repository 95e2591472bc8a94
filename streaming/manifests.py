"""
HLS manifest generation and parsing.

Pure text transformations: nothing here touches storage or the network.
Master manifests list quality variants (lowest bandwidth first), variant
manifests list the ordered segments of one quality.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, field

log = logging.getLogger(__name__)

PLAYLIST_VOD = "VOD"
PLAYLIST_EVENT = "EVENT"

_STREAM_INF = "#EXT-X-STREAM-INF:"
_EXTINF = re.compile(r"#EXTINF:([\d.]+)")
# NAME=value pairs; quoted values may contain commas (CODECS="avc1...,mp4a...")
_ATTRIBUTE = re.compile(r'([A-Z0-9-]+)=("[^"]*"|[^,]*)')
_WIDTH_HEIGHT = re.compile(r"^\s*(\d+)\s*x\s*(\d+)\s*$", re.IGNORECASE)
_HEIGHT_LABEL = re.compile(r"^\s*(\d+)\s*p?\s*$", re.IGNORECASE)


@dataclass
class Variant:
    """One quality rendition as referenced from a master manifest."""

    manifest_url: str
    resolution: str | None
    bandwidth: int | None
    quality: str | None = None
    codecs: str | None = None
    frame_rate: float | None = None

    def to_dict(self) -> dict:
        data = {
            "quality": self.quality,
            "manifestUrl": self.manifest_url,
            "resolution": self.resolution,
            "bandwidth": self.bandwidth,
        }
        if self.codecs:
            data["codecs"] = self.codecs
        if self.frame_rate:
            data["frameRate"] = self.frame_rate
        return data


@dataclass
class Segment:
    url: str
    duration: float
    sequence: int = 0


@dataclass
class MasterManifest:
    variants: list[Variant] = field(default_factory=list)

    def render(self, base_url: str | None = None) -> str:
        return generate_master_manifest(self.variants, base_url)


def resolve_url(url: str, base_url: str | None) -> str:
    """Join a relative manifest URL onto base_url; absolute URLs pass through."""
    if not base_url or url.startswith(("http://", "https://")):
        return url
    base = base_url[:-1] if base_url.endswith("/") else base_url
    path = url if url.startswith("/") else f"/{url}"
    return f"{base}{path}"


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def format_resolution(resolution: str | None) -> str | None:
    """
    "1280x720" -> "1280x720"; "720p" -> "1280x720" assuming 16:9.
    Returns None when nothing usable can be derived.
    """
    if not resolution:
        return None
    match = _WIDTH_HEIGHT.match(resolution)
    if match:
        return f"{int(match.group(1))}x{int(match.group(2))}"
    match = _HEIGHT_LABEL.match(resolution)
    if match:
        height = int(match.group(1))
        if height:
            return f"{_round_half_up(height * 16 / 9)}x{height}"
    return None


def _format_number(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return repr(float(value))


def generate_master_manifest(variants: list[Variant], base_url: str | None = None) -> str:
    """
    Render a master manifest. Variants are stably sorted by ascending
    bandwidth; entries without a bandwidth or a usable resolution are left out.
    """
    lines = [
        "#EXTM3U",
        "#EXT-X-VERSION:3",
        "#EXT-X-INDEPENDENT-SEGMENTS",
    ]

    eligible = []
    for variant in variants:
        resolution = format_resolution(variant.resolution)
        if not variant.bandwidth or not resolution:
            log.debug("Leaving variant %s out of master manifest (bandwidth=%s, resolution=%s)",
                      variant.manifest_url, variant.bandwidth, variant.resolution)
            continue
        eligible.append((variant, resolution))

    for variant, resolution in sorted(eligible, key=lambda item: item[0].bandwidth):
        attrs = [f"BANDWIDTH={int(variant.bandwidth)}", f"RESOLUTION={resolution}"]
        if variant.codecs:
            attrs.append(f'CODECS="{variant.codecs}"')
        if variant.frame_rate:
            attrs.append(f"FRAME-RATE={_format_number(variant.frame_rate)}")
        lines.append(_STREAM_INF + ",".join(attrs))
        lines.append(resolve_url(variant.manifest_url, base_url))

    return "\n".join(lines) + "\n"


def generate_variant_manifest(
    segments: list[Segment],
    target_duration: int = 10,
    media_sequence: int = 0,
    playlist_type: str = PLAYLIST_VOD,
) -> str:
    """
    Render a variant (media) manifest. VOD playlists carry the
    PLAYLIST-TYPE marker and are closed with #EXT-X-ENDLIST; EVENT
    playlists stay open.
    """
    if playlist_type not in (PLAYLIST_VOD, PLAYLIST_EVENT):
        raise ValueError(f"Unsupported playlist type: {playlist_type!r}")

    lines = [
        "#EXTM3U",
        "#EXT-X-VERSION:3",
        f"#EXT-X-TARGETDURATION:{target_duration}",
        f"#EXT-X-MEDIA-SEQUENCE:{media_sequence}",
    ]
    if playlist_type == PLAYLIST_VOD:
        lines.append("#EXT-X-PLAYLIST-TYPE:VOD")

    for segment in segments:
        lines.append(f"#EXTINF:{segment.duration:.3f},")
        lines.append(segment.url)

    if playlist_type == PLAYLIST_VOD:
        lines.append("#EXT-X-ENDLIST")

    return "\n".join(lines) + "\n"


def parse_attributes(line: str) -> dict[str, str]:
    """Attribute list of a tag line, e.g. the part after #EXT-X-STREAM-INF:."""
    _, _, content = line.partition(":")
    return {name: value.strip() for name, value in _ATTRIBUTE.findall(content) if value.strip()}


def _content_lines(text: str) -> list[str]:
    if not isinstance(text, str):
        return []
    return [line.strip() for line in text.splitlines() if line.strip()]


def parse_master_manifest(text: str) -> list[Variant]:
    """
    Extract variants from a master manifest. A variant is only kept when
    both its bandwidth and its resolution could be recovered.
    """
    variants: list[Variant] = []
    current: dict | None = None

    for line in _content_lines(text):
        if line.startswith(_STREAM_INF):
            params = parse_attributes(line)
            current = {}
            try:
                current["bandwidth"] = int(params["BANDWIDTH"])
            except (KeyError, ValueError):
                pass
            match = _WIDTH_HEIGHT.match(params.get("RESOLUTION", ""))
            if match:
                current["resolution"] = f"{int(match.group(2))}p"
            if "CODECS" in params:
                current["codecs"] = params["CODECS"].replace('"', "")
            try:
                current["frame_rate"] = float(params["FRAME-RATE"])
            except (KeyError, ValueError):
                pass
        elif current is not None and not line.startswith("#"):
            if current.get("bandwidth") and current.get("resolution"):
                variants.append(Variant(
                    manifest_url=line,
                    resolution=current["resolution"],
                    bandwidth=current["bandwidth"],
                    quality=current["resolution"],
                    codecs=current.get("codecs"),
                    frame_rate=current.get("frame_rate"),
                ))
            current = None

    return variants


def parse_variant_manifest(text: str) -> list[Segment]:
    """
    Extract segments in file order. Sequence numbers restart at 0; any
    #EXT-X-MEDIA-SEQUENCE offset in the text is not carried over.
    """
    segments: list[Segment] = []
    pending = 0.0

    for line in _content_lines(text):
        if line.startswith("#EXTINF:"):
            match = _EXTINF.match(line)
            try:
                pending = float(match.group(1)) if match else 0.0
            except ValueError:
                pending = 0.0
        elif pending > 0 and not line.startswith("#"):
            segments.append(Segment(url=line, duration=pending, sequence=len(segments)))
            pending = 0.0

    return segments
