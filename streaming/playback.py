"""
Playback-side lookups: stored manifests, regenerated masters and segments.

Episode records belong to the calling service; they are passed in as
EpisodeMedia values and never written here.
"""

import logging
from dataclasses import dataclass, field

from .errors import NotFound, StreamingError
from .manifests import Variant, generate_master_manifest
from .utils import hls_key, variant_manifest_name

log = logging.getLogger(__name__)


@dataclass
class EpisodeMedia:
    episode_id: str
    video_url: str | None = None
    hls_manifest_url: str | None = None
    hls_variants: dict[str, dict] = field(default_factory=dict)

    @classmethod
    def from_record(cls, record: dict) -> "EpisodeMedia":
        """Build from a camelCase episode document (videoUrl, hlsManifestUrl, hlsVariants)."""
        return cls(
            episode_id=str(record.get("id") or record.get("_id") or ""),
            video_url=record.get("videoUrl"),
            hls_manifest_url=record.get("hlsManifestUrl"),
            hls_variants=dict(record.get("hlsVariants") or {}),
        )


def _variants_from_record(hls_variants: dict[str, dict]) -> list[Variant]:
    return [
        Variant(
            manifest_url=v.get("manifestUrl", ""),
            resolution=v.get("resolution"),
            bandwidth=v.get("bandwidth"),
            quality=quality,
            codecs=v.get("codecs"),
            frame_rate=v.get("frameRate"),
        )
        for quality, v in hls_variants.items()
    ]


def master_manifest_for(store, episode: EpisodeMedia) -> str:
    """
    Stored master manifest text when it can be read, otherwise one rendered
    from the episode's variant metadata.
    """
    if not episode.hls_manifest_url and not episode.hls_variants:
        raise NotFound("HLS manifest not found for this episode")

    if episode.hls_manifest_url:
        key = store.key_from_url(episode.hls_manifest_url)
        if key:
            try:
                return store.read_text(key)
            except StreamingError as e:
                log.warning("Stored master manifest %s unreadable (%s); regenerating", key, e)

    if episode.hls_variants:
        base_url = None
        if episode.hls_manifest_url:
            base_url = episode.hls_manifest_url.rsplit("/", 1)[0]
        return generate_master_manifest(_variants_from_record(episode.hls_variants), base_url)

    raise NotFound("HLS manifest not found for this episode")


def variant_manifest_for(store, episode: EpisodeMedia, quality: str) -> str:
    variant = episode.hls_variants.get(quality)
    if not variant:
        raise NotFound(f"HLS variant manifest for quality {quality} not found")
    key = store.key_from_url(variant.get("manifestUrl"))
    if not key:
        raise NotFound(f"Invalid variant manifest URL for quality {quality}")
    return store.read_text(key)


def stored_master_manifest(store, episode_id: str) -> str:
    return store.read_text(hls_key(episode_id, "master.m3u8"))


def stored_variant_manifest(store, episode_id: str, quality: str) -> str:
    return store.read_text(hls_key(episode_id, variant_manifest_name(quality)))


def open_segment(store, episode_id: str, quality: str, segment: str):
    """Lazy byte stream over hls/episodes/<id>/<quality>/<segment>."""
    if "/" in segment or "/" in quality or segment.startswith("."):
        raise NotFound(f"Segment not found: {quality}/{segment}")
    return store.open_range(hls_key(episode_id, f"{quality}/{segment}"))
