"""External video encoder capability.

The export pipeline only depends on the :class:`VideoTranscoder` protocol, so
tests can substitute a fake. :class:`FFmpegTranscoder` is the production
implementation: it runs the FFmpeg binary once per filtered video and waits
for it to exit without a timeout.
"""
from __future__ import annotations

import logging
import shlex
import shutil
import subprocess
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import List, Optional, Protocol, Union

from .profiles import DEFAULT_PROFILE_NAME, TRANSCODE_PROFILES, TranscodeProfile

LOGGER = logging.getLogger("capture_filters")
WORKER_LOGGER = LOGGER.getChild("worker")

_STDERR_TAIL_LINES = 8


class VideoTranscoder(Protocol):
    """Anything able to re-encode ``source`` into ``destination`` through a filter graph."""

    def apply(self, filter_expression: str, source: Path, destination: Path) -> bool:
        ...


@lru_cache(maxsize=8)
def find_ffmpeg(binary: str = "ffmpeg") -> Optional[str]:
    """Cache binary path lookups."""
    return shutil.which(binary)


def build_command(
    binary: str,
    source: Union[str, Path],
    destination: Union[str, Path],
    filter_expression: str,
    profile: TranscodeProfile = TRANSCODE_PROFILES[DEFAULT_PROFILE_NAME],
) -> List[str]:
    """Assemble the FFmpeg argument vector for one filtered video.

    The output is always overwritten (``-y``); the audio stream handling comes
    from the profile.
    """
    cmd: List[str] = [
        binary,
        "-y",
        "-i",
        str(source),
        "-vf",
        filter_expression,
    ]
    cmd.extend(profile.encoder_arguments())
    cmd.append(str(destination))
    return cmd


def _stderr_tail(stderr: Optional[str]) -> str:
    if not stderr:
        return ""
    lines = stderr.strip().splitlines()
    return "\n".join(lines[-_STDERR_TAIL_LINES:])


@dataclass(frozen=True)
class FFmpegTranscoder:
    """Runs FFmpeg as a blocking subprocess."""

    binary: str
    profile: TranscodeProfile = field(default_factory=lambda: TRANSCODE_PROFILES[DEFAULT_PROFILE_NAME])

    @classmethod
    def discover(
        cls, binary: str = "ffmpeg", profile: Optional[TranscodeProfile] = None
    ) -> Optional["FFmpegTranscoder"]:
        """Return a transcoder for ``binary`` found on PATH, or ``None``."""

        resolved = find_ffmpeg(binary)
        if resolved is None:
            LOGGER.info("%s not found on PATH; videos will be copied unfiltered", binary)
            return None
        if profile is None:
            return cls(resolved)
        return cls(resolved, profile)

    def apply(self, filter_expression: str, source: Path, destination: Path) -> bool:
        cmd = build_command(self.binary, source, destination, filter_expression, self.profile)
        WORKER_LOGGER.debug("Running %s", shlex.join(cmd))
        try:
            proc = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                errors="replace",
                check=False,
            )
        except OSError as exc:
            WORKER_LOGGER.warning("Unable to start %s for %s: %s", self.binary, destination, exc)
            return False

        if proc.returncode != 0:
            WORKER_LOGGER.warning(
                "%s exited with status %s for %s\n%s",
                self.binary,
                proc.returncode,
                destination,
                _stderr_tail(proc.stderr),
            )
            return False

        if not Path(destination).exists():
            WORKER_LOGGER.warning("%s reported success but %s is missing", self.binary, destination)
            return False
        return True


__all__ = [
    "FFmpegTranscoder",
    "VideoTranscoder",
    "build_command",
    "find_ffmpeg",
]
