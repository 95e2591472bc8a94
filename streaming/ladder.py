from dataclasses import dataclass

from .errors import UnknownQuality


@dataclass(frozen=True)
class QualityProfile:
    quality: str
    width: int
    height: int
    bandwidth: int  # bits per second
    codecs: str

    @property
    def resolution(self) -> str:
        return f"{self.width}x{self.height}"


# Fixed quality ladder; labels outside it are never produced.
LADDER = (
    QualityProfile("360p", 640, 360, 500 * 1000, "avc1.42e01e,mp4a.40.2"),
    QualityProfile("480p", 854, 480, 1000 * 1000, "avc1.42e01e,mp4a.40.2"),
    QualityProfile("720p", 1280, 720, 2500 * 1000, "avc1.4d001f,mp4a.40.2"),
    QualityProfile("1080p", 1920, 1080, 5000 * 1000, "avc1.640028,mp4a.40.2"),
)

_BY_QUALITY = {profile.quality: profile for profile in LADDER}

DEFAULT_QUALITIES = [profile.quality for profile in LADDER]


def get_profile(quality: str) -> QualityProfile:
    try:
        return _BY_QUALITY[quality]
    except KeyError:
        raise UnknownQuality(f"Unknown quality: {quality}") from None


def is_known(quality: str) -> bool:
    return quality in _BY_QUALITY
