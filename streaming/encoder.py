"""
External encoder capability.

The orchestrator only depends on the Encoder protocol; FFmpegEncoder is the
production implementation and shells out to ffmpeg once per quality.
"""

import logging
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from .errors import EncodeFailure
from .ladder import QualityProfile

log = logging.getLogger(__name__)

SEGMENT_PATTERN = "segment_%03d.ts"
_MAX_ERROR_CHARS = 4000


@dataclass
class EncodeResult:
    manifest_path: Path
    segment_paths: list[Path] = field(default_factory=list)


class Encoder(Protocol):
    def encode(
        self,
        input_path: Path,
        output_dir: Path,
        profile: QualityProfile,
        segment_seconds: int,
    ) -> EncodeResult:
        ...


def collect_output(output_dir: Path, manifest_path: Path) -> EncodeResult:
    """Manifest plus every .ts segment found in output_dir, in name order."""
    segments = sorted(p for p in Path(output_dir).iterdir() if p.is_file() and p.suffix == ".ts")
    return EncodeResult(manifest_path=Path(manifest_path), segment_paths=segments)


class FFmpegEncoder:
    """Encode one ladder rung to H.264/AAC HLS with fixed-length segments."""

    def __init__(self, binary: str = "ffmpeg", *, preset: str = "veryfast", audio_bitrate: str = "128k"):
        self.binary = binary
        self.preset = preset
        self.audio_bitrate = audio_bitrate

    def build_command(self, input_path: Path, output_dir: Path, profile: QualityProfile, segment_seconds: int) -> list[str]:
        manifest = Path(output_dir) / f"{profile.quality}.m3u8"
        return [
            self.binary,
            "-y",
            "-i", str(input_path),
            "-c:v", "libx264",
            "-preset", self.preset,
            "-b:v", str(profile.bandwidth),
            "-c:a", "aac",
            "-b:a", self.audio_bitrate,
            "-s", profile.resolution,
            "-hls_time", str(segment_seconds),
            "-hls_playlist_type", "vod",
            "-hls_segment_filename", str(Path(output_dir) / SEGMENT_PATTERN),
            "-f", "hls",
            str(manifest),
        ]

    def encode(self, input_path: Path, output_dir: Path, profile: QualityProfile, segment_seconds: int) -> EncodeResult:
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
        cmd = self.build_command(input_path, output_dir, profile, segment_seconds)
        log.debug("FFmpeg command: %s", " ".join(cmd))

        try:
            subprocess.run(cmd, check=True, stdout=subprocess.PIPE, stderr=subprocess.PIPE)
        except subprocess.CalledProcessError as e:
            err = e.stderr.decode("utf-8", errors="ignore") if e.stderr else str(e)
            raise EncodeFailure(f"ffmpeg failed for {profile.quality}: {err[-_MAX_ERROR_CHARS:]}") from e
        except OSError as e:
            raise EncodeFailure(f"Could not run {self.binary}: {e}") from e

        manifest = output_dir / f"{profile.quality}.m3u8"
        if not manifest.exists():
            raise EncodeFailure(f"ffmpeg produced no manifest for {profile.quality}")
        return collect_output(output_dir, manifest)
