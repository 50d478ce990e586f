"""Encoder profiles for the filtered-video path.

A profile pins the H.264 settings handed to FFmpeg after the filter graph:

- **fast**: ``veryfast`` preset at CRF 22, audio copied (the default)
- **quality**: ``slow`` preset at CRF 18 for archival exports
- **draft**: ``ultrafast`` preset at CRF 28 for quick review copies

Example Usage
-------------

    from capture_filters import TRANSCODE_PROFILES

    profile = TRANSCODE_PROFILES["fast"]
    profile.encoder_arguments()
    # ['-c:v', 'libx264', '-preset', 'veryfast', '-crf', '22', '-c:a', 'copy']
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List


@dataclass(frozen=True)
class TranscodeProfile:
    """Video/audio codec settings applied to every filtered video.

    Attributes:
        name: Profile identifier.
        video_codec: FFmpeg video encoder name.
        preset: Encoder speed preset.
        crf: Constant rate factor (lower is higher quality).
        audio_codec: Audio encoder; ``copy`` keeps the source stream untouched.
    """

    name: str
    video_codec: str = "libx264"
    preset: str = "veryfast"
    crf: int = 22
    audio_codec: str = "copy"

    def __post_init__(self) -> None:
        if not 0 <= self.crf <= 51:
            raise ValueError(f"crf must be between 0 and 51, got {self.crf}")

    def encoder_arguments(self) -> List[str]:
        """Return the codec arguments that follow the filter graph."""

        return [
            "-c:v",
            self.video_codec,
            "-preset",
            self.preset,
            "-crf",
            str(self.crf),
            "-c:a",
            self.audio_codec,
        ]


DEFAULT_PROFILE_NAME = "fast"

TRANSCODE_PROFILES: Dict[str, TranscodeProfile] = {
    "fast": TranscodeProfile(name="fast"),
    "quality": TranscodeProfile(name="quality", preset="slow", crf=18),
    "draft": TranscodeProfile(name="draft", preset="ultrafast", crf=28),
}


__all__ = [
    "DEFAULT_PROFILE_NAME",
    "TRANSCODE_PROFILES",
    "TranscodeProfile",
]
