"""Filter kernels and concurrent batch export for captured stills and videos.

One captured image or video is exported once per selected filter; every
export is an independent background job and the batch reports a single
aggregate outcome (all saved, none saved, or partially saved).

Module Organization
-------------------

kernels
    Pure ``uint8`` pixel transforms (grayscale, sepia, negative, posterize,
    solarize, cold, warm, vintage) and the validated ``FilterSettings``.

dispatch
    Closed ``FilterId`` set, selection freezing and the still-image / FFmpeg
    dispatch tables.

naming
    Slugs, batch timestamps and collision-free output filenames.

io_utils
    Pillow-backed decoding, staged PNG writes and file copies.

transcoder / profiles
    FFmpeg subprocess capability and its encoder profiles.

pipeline
    Batch planning, the per-batch thread pool and outcome aggregation.

preview
    Downscaled still previews of a filter.

cli
    ``capture-filters`` command-line entry point.

Example Usage
-------------

    from capture_filters import export, load_raster

    handle = export(load_raster("capture.png"), ["grayscale", "sepia"], "exports")
    result = handle.wait()
    print(result.outcome)          # BatchOutcome.SUCCEEDED
    print([job.destination.name for job in handle.jobs])
    # ['20240611_184502_00_bw.png', '20240611_184502_01_sepia.png']
"""
from __future__ import annotations

from .cli import default_output_folder, main, parse_args, run
from .dispatch import (
    ALL_FILTERS,
    VIDEO_FILTER_EXPRESSIONS,
    FilterId,
    apply_filter,
    cycle_filter,
    freeze_selection,
    is_known_filter,
    video_filter_expression,
)
from .io_utils import StagedWrite, copy_file, load_raster, remove_existing, save_png, to_rgba
from .kernels import (
    DEFAULT_FILTER_SETTINGS,
    FilterSettings,
    cold,
    gray_level,
    grayscale,
    luma,
    negative,
    posterize,
    posterize_lut,
    sepia,
    solarize,
    vintage,
    warm,
)
from .naming import FILTER_SLUGS, batch_timestamp, filter_slug, output_filename
from .pipeline import (
    BatchHandle,
    BatchOutcome,
    BatchResult,
    CaptureFilterError,
    ExportJob,
    ExportSetupError,
    MediaKind,
    export,
    export_images,
    export_videos,
)
from .preview import PREVIEW_BOX, fit_size, render_preview
from .profiles import DEFAULT_PROFILE_NAME, TRANSCODE_PROFILES, TranscodeProfile
from .transcoder import FFmpegTranscoder, VideoTranscoder, build_command, find_ffmpeg

__all__ = [
    "ALL_FILTERS",
    "BatchHandle",
    "BatchOutcome",
    "BatchResult",
    "CaptureFilterError",
    "DEFAULT_FILTER_SETTINGS",
    "DEFAULT_PROFILE_NAME",
    "ExportJob",
    "ExportSetupError",
    "FFmpegTranscoder",
    "FILTER_SLUGS",
    "FilterId",
    "FilterSettings",
    "MediaKind",
    "PREVIEW_BOX",
    "StagedWrite",
    "TRANSCODE_PROFILES",
    "TranscodeProfile",
    "VIDEO_FILTER_EXPRESSIONS",
    "VideoTranscoder",
    "apply_filter",
    "batch_timestamp",
    "build_command",
    "cold",
    "copy_file",
    "cycle_filter",
    "default_output_folder",
    "export",
    "export_images",
    "export_videos",
    "filter_slug",
    "find_ffmpeg",
    "fit_size",
    "freeze_selection",
    "gray_level",
    "grayscale",
    "is_known_filter",
    "load_raster",
    "luma",
    "main",
    "negative",
    "output_filename",
    "parse_args",
    "posterize",
    "posterize_lut",
    "remove_existing",
    "render_preview",
    "run",
    "save_png",
    "sepia",
    "solarize",
    "to_rgba",
    "video_filter_expression",
    "vintage",
    "warm",
]
