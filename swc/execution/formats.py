"""
Target format catalogue for the transcoder (ffmpeg).

Each target format maps to a container extension and per-quality
codec arguments. Audio targets drop video streams.
"""

from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List


QUALITY_LEVELS = ("low", "medium", "high")
DEFAULT_QUALITY = "medium"


@dataclass(frozen=True)
class FormatSpec:
    """How to produce one target format."""

    name: str
    extension: str
    audio_only: bool
    codec_args: Dict[str, List[str]] = field(default_factory=dict)

    def args_for(self, quality: str) -> List[str]:
        """Codec arguments for a quality level (falls back to medium)."""
        return list(self.codec_args.get(quality) or self.codec_args[DEFAULT_QUALITY])


def _same(args: List[str]) -> Dict[str, List[str]]:
    return {level: list(args) for level in QUALITY_LEVELS}


FORMAT_SPECS: Dict[str, FormatSpec] = {
    "mp3": FormatSpec("mp3", "mp3", True, {
        "low": ["-c:a", "libmp3lame", "-q:a", "7"],
        "medium": ["-c:a", "libmp3lame", "-q:a", "4"],
        "high": ["-c:a", "libmp3lame", "-q:a", "0"],
    }),
    "m4a": FormatSpec("m4a", "m4a", True, {
        "low": ["-c:a", "aac", "-b:a", "96k"],
        "medium": ["-c:a", "aac", "-b:a", "160k"],
        "high": ["-c:a", "aac", "-b:a", "256k"],
    }),
    "aac": FormatSpec("aac", "aac", True, {
        "low": ["-c:a", "aac", "-b:a", "96k", "-f", "adts"],
        "medium": ["-c:a", "aac", "-b:a", "160k", "-f", "adts"],
        "high": ["-c:a", "aac", "-b:a", "256k", "-f", "adts"],
    }),
    "opus": FormatSpec("opus", "opus", True, {
        "low": ["-c:a", "libopus", "-b:a", "64k"],
        "medium": ["-c:a", "libopus", "-b:a", "128k"],
        "high": ["-c:a", "libopus", "-b:a", "192k"],
    }),
    "ogg": FormatSpec("ogg", "ogg", True, {
        "low": ["-c:a", "libvorbis", "-q:a", "3"],
        "medium": ["-c:a", "libvorbis", "-q:a", "5"],
        "high": ["-c:a", "libvorbis", "-q:a", "8"],
    }),
    "flac": FormatSpec("flac", "flac", True, _same(["-c:a", "flac"])),
    "wav": FormatSpec("wav", "wav", True, _same(["-c:a", "pcm_s16le"])),
    "mp4": FormatSpec("mp4", "mp4", False, {
        "low": ["-c:v", "libx264", "-preset", "veryfast", "-crf", "28",
                "-c:a", "aac", "-b:a", "96k", "-movflags", "+faststart"],
        "medium": ["-c:v", "libx264", "-preset", "medium", "-crf", "23",
                   "-c:a", "aac", "-b:a", "160k", "-movflags", "+faststart"],
        "high": ["-c:v", "libx264", "-preset", "slow", "-crf", "18",
                 "-c:a", "aac", "-b:a", "256k", "-movflags", "+faststart"],
    }),
    "webm": FormatSpec("webm", "webm", False, {
        "low": ["-c:v", "libvpx-vp9", "-b:v", "0", "-crf", "40", "-c:a", "libopus", "-b:a", "64k"],
        "medium": ["-c:v", "libvpx-vp9", "-b:v", "0", "-crf", "32", "-c:a", "libopus", "-b:a", "128k"],
        "high": ["-c:v", "libvpx-vp9", "-b:v", "0", "-crf", "24", "-c:a", "libopus", "-b:a", "192k"],
    }),
    # Remux only: streams are copied as-is
    "mkv": FormatSpec("mkv", "mkv", False, _same(["-c", "copy"])),
}

SUPPORTED_FORMATS: FrozenSet[str] = frozenset(FORMAT_SPECS)


def normalize_format(value: str) -> str:
    """Lower-case and strip a leading dot (".MP3" → "mp3")."""
    return value.strip().lstrip(".").lower()


def is_supported_format(value: str) -> bool:
    return normalize_format(value) in FORMAT_SPECS


def get_format_spec(value: str) -> FormatSpec:
    """
    Raises:
        ValueError: If the format is not supported
    """
    name = normalize_format(value)
    try:
        return FORMAT_SPECS[name]
    except KeyError:
        raise ValueError(
            f"Unsupported target format '{value}'. "
            f"Supported: {', '.join(sorted(SUPPORTED_FORMATS))}"
        ) from None
