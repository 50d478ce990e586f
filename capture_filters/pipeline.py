"""Batch export orchestration: one capture, N filters, N background jobs.

Each export call freezes the filter selection, plans one job per identifier
with a shared batch timestamp, and submits the jobs to its own thread pool.
The returned :class:`BatchHandle` joins the jobs and aggregates them into a
single :class:`BatchResult`.
"""
from __future__ import annotations

import datetime
import logging
import os
import threading
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union

import numpy as np

try:  # pragma: no cover - optional dependency
    from tqdm import tqdm as _tqdm  # type: ignore
except ImportError:  # pragma: no cover - optional dependency
    _tqdm = None

from .dispatch import FilterLike, apply_filter, freeze_selection, video_filter_expression
from .io_utils import PathLike, copy_file, is_supported_image_format, load_raster, remove_existing, save_png
from .kernels import DEFAULT_FILTER_SETTINGS, FilterSettings, is_degenerate
from .naming import batch_timestamp, filter_slug, output_filename
from .transcoder import FFmpegTranscoder, VideoTranscoder

LOGGER = logging.getLogger("capture_filters")
WORKER_LOGGER = LOGGER.getChild("worker")

_DISCOVER = object()


class CaptureFilterError(RuntimeError):
    """Base class for errors raised by the export pipeline."""


class ExportSetupError(CaptureFilterError):
    """Raised when the destination directory cannot be used."""


class MediaKind(str, Enum):
    IMAGE = "image"
    VIDEO = "video"


_EXTENSIONS = {MediaKind.IMAGE: "png", MediaKind.VIDEO: "mp4"}


class BatchOutcome(Enum):
    """Aggregate result of one export call."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    PARTIAL = "partial"
    NOTHING_SUBMITTED = "nothing_submitted"


@dataclass(frozen=True)
class ExportJob:
    """One (identifier, destination) unit of work inside a batch."""

    identifier: str
    index: int
    slug: str
    destination: Path
    kind: MediaKind


@dataclass(frozen=True)
class BatchResult:
    total: int
    failed: int

    @property
    def succeeded(self) -> int:
        return self.total - self.failed

    @property
    def outcome(self) -> BatchOutcome:
        if self.total == 0:
            return BatchOutcome.NOTHING_SUBMITTED
        if self.failed == 0:
            return BatchOutcome.SUCCEEDED
        if self.failed == self.total:
            return BatchOutcome.FAILED
        return BatchOutcome.PARTIAL


def _tqdm_progress(
    iterable: Iterable[object], *, total: Optional[int], description: Optional[str]
) -> Iterable[object]:
    """Wrap *iterable* with :mod:`tqdm` if available."""

    if _tqdm is None:  # pragma: no cover - defensive fallback
        return iterable
    return _tqdm(iterable, total=total, desc=description, unit="file")


_PROGRESS_WRAPPER = _tqdm_progress if _tqdm is not None else None


def _wrap_with_progress(
    iterable: Iterable[Future],
    *,
    total: Optional[int],
    description: str,
    enabled: bool,
) -> Iterable[Future]:
    """Return an iterable wrapped with a progress helper when available."""

    if not enabled:
        return iterable

    helper = _PROGRESS_WRAPPER
    if helper is None:
        LOGGER.debug("Progress helper not available; install tqdm for progress reporting.")
        return iterable
    return helper(iterable, total=total, description=description)


class BatchHandle:
    """Joinable view over the jobs submitted by one export call.

    Attributes:
        jobs: Planned jobs in selection order.
        futures: One future per job, in the same order; each resolves to a
            success flag.
        timestamp: Shared batch timestamp, ``None`` for empty batches.
        directory: Destination directory, ``None`` for empty batches.
    """

    def __init__(
        self,
        jobs: Sequence[ExportJob] = (),
        futures: Sequence["Future[bool]"] = (),
        *,
        timestamp: Optional[str] = None,
        directory: Optional[Path] = None,
    ) -> None:
        if len(jobs) != len(futures):
            raise ValueError("Each export job needs exactly one future")
        self.jobs: Tuple[ExportJob, ...] = tuple(jobs)
        self.futures: Tuple["Future[bool]", ...] = tuple(futures)
        self.timestamp = timestamp
        self.directory = directory
        self._job_for: Dict["Future[bool]", ExportJob] = dict(zip(self.futures, self.jobs))
        self._result: Optional[BatchResult] = None

    def __len__(self) -> int:
        return len(self.jobs)

    def done(self) -> bool:
        return all(future.done() for future in self.futures)

    def wait(self, progress: bool = False) -> BatchResult:
        """Block until every job has finished and aggregate the outcome."""

        if self._result is not None:
            return self._result

        failed = 0
        completed = _wrap_with_progress(
            as_completed(self.futures),
            total=len(self.futures),
            description="Exporting",
            enabled=progress and bool(self.futures),
        )
        for future in completed:
            job = self._job_for[future]
            try:
                ok = bool(future.result())
            except Exception:
                WORKER_LOGGER.exception("Export job for %s raised unexpectedly", job.destination)
                ok = False
            if not ok:
                failed += 1

        result = BatchResult(total=len(self.futures), failed=failed)
        self._result = result
        LOGGER.debug(
            "Batch %s finished: %s/%s succeeded", self.timestamp, result.succeeded, result.total
        )
        return result

    def on_complete(self, callback: Callable[[BatchResult], None]) -> threading.Thread:
        """Invoke ``callback`` exactly once with the aggregated result.

        The callback runs on a background daemon thread after every job has
        finished; the thread is returned so callers may join it.
        """

        def _notify() -> None:
            callback(self.wait())

        thread = threading.Thread(target=_notify, name="capture-export-notify", daemon=True)
        thread.start()
        return thread


def _prepare_destination(directory: PathLike) -> Path:
    destination = Path(directory)
    try:
        destination.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise ExportSetupError(f"Unable to create export directory {destination}: {exc}") from exc
    if not destination.is_dir():
        raise ExportSetupError(f"Export destination {destination} is not a directory")
    return destination


def _plan_jobs(
    selection: Sequence[str], directory: Path, timestamp: str, kind: MediaKind
) -> List[ExportJob]:
    extension = _EXTENSIONS[kind]
    jobs: List[ExportJob] = []
    for index, identifier in enumerate(selection):
        slug = filter_slug(identifier)
        name = output_filename(timestamp, index, slug, extension)
        jobs.append(ExportJob(identifier, index, slug, directory / name, kind))
    return jobs


def _resolve_workers(max_workers: Optional[int], job_count: int) -> int:
    if max_workers is not None:
        if max_workers < 1:
            raise ValueError("max_workers must be a positive integer")
        return max_workers
    return max(1, min(job_count, os.cpu_count() or 1))


def _write_image_job(job: ExportJob, raster: Optional[np.ndarray]) -> bool:
    if raster is None:
        WORKER_LOGGER.warning("No filtered image available for %s", job.destination)
        return False
    if not remove_existing(job.destination):
        return False
    try:
        save_png(job.destination, raster)
    except (OSError, ValueError) as exc:
        WORKER_LOGGER.warning("Could not save %s: %s", job.destination, exc)
        return False
    WORKER_LOGGER.debug("Saved %s", job.destination)
    return True


def _write_video_job(
    job: ExportJob,
    source: Path,
    expression: str,
    transcoder: Optional[VideoTranscoder],
) -> bool:
    if not remove_existing(job.destination):
        return False
    if transcoder is None or not expression:
        try:
            copy_file(source, job.destination)
        except OSError as exc:
            WORKER_LOGGER.warning("Could not copy %s to %s: %s", source, job.destination, exc)
            return False
        WORKER_LOGGER.debug("Copied %s unfiltered to %s", source, job.destination)
        return True
    return transcoder.apply(expression, source, job.destination)


def _submit(
    jobs: Sequence[ExportJob],
    work: Callable[[ExportJob], bool],
    *,
    max_workers: Optional[int],
    timestamp: str,
    directory: Path,
) -> BatchHandle:
    executor = ThreadPoolExecutor(
        max_workers=_resolve_workers(max_workers, len(jobs)),
        thread_name_prefix="capture-export",
    )
    futures = [executor.submit(work, job) for job in jobs]
    # Workers keep running; the caller joins through the handle.
    executor.shutdown(wait=False)
    return BatchHandle(jobs, futures, timestamp=timestamp, directory=directory)


def export_images(
    source: Optional[np.ndarray],
    selection: Union[FilterLike, Iterable[FilterLike], None],
    directory: PathLike,
    *,
    settings: FilterSettings = DEFAULT_FILTER_SETTINGS,
    max_workers: Optional[int] = None,
    now: Optional[datetime.datetime] = None,
) -> BatchHandle:
    """Export ``source`` once per selected filter as RGBA PNG files.

    Kernels run in the calling thread before any job is submitted; the
    background jobs only replace pre-existing files and write PNG data.

    Raises:
        ExportSetupError: ``directory`` cannot be created or is not a directory.
    """
    frozen = freeze_selection(selection)
    if is_degenerate(source):
        LOGGER.info("No image to export; nothing submitted")
        return BatchHandle()
    if not frozen:
        LOGGER.info("No filters selected; nothing submitted")
        return BatchHandle()

    destination = _prepare_destination(directory)
    timestamp = batch_timestamp(now)
    view = np.asarray(source).view()
    view.setflags(write=False)

    jobs = _plan_jobs(frozen, destination, timestamp, MediaKind.IMAGE)
    rendered: Dict[int, Optional[np.ndarray]] = {}
    for job in jobs:
        LOGGER.debug("Applying %s with %s", job.identifier, settings)
        try:
            rendered[job.index] = apply_filter(view, job.identifier, settings)
        except (ValueError, TypeError) as exc:
            LOGGER.warning("Filter %s failed: %s", job.identifier, exc)
            rendered[job.index] = None

    LOGGER.info("Exporting %d image(s) to %s", len(jobs), destination)
    return _submit(
        jobs,
        lambda job: _write_image_job(job, rendered[job.index]),
        max_workers=max_workers,
        timestamp=timestamp,
        directory=destination,
    )


def export_videos(
    source: Optional[PathLike],
    selection: Union[FilterLike, Iterable[FilterLike], None],
    directory: PathLike,
    *,
    transcoder: object = _DISCOVER,
    max_workers: Optional[int] = None,
    now: Optional[datetime.datetime] = None,
) -> BatchHandle:
    """Export the video at ``source`` once per selected filter as MP4 files.

    Args:
        transcoder: A :class:`VideoTranscoder`; ``None`` copies every video
            unfiltered. By default FFmpeg is looked up on PATH.

    Raises:
        ExportSetupError: ``directory`` cannot be created or is not a directory.
    """
    frozen = freeze_selection(selection)
    if source is None or not os.fspath(source):
        LOGGER.info("No video to export; nothing submitted")
        return BatchHandle()
    source_path = Path(source)
    if not source_path.is_file():
        LOGGER.warning("Video %s does not exist; nothing submitted", source_path)
        return BatchHandle()
    if not frozen:
        LOGGER.info("No filters selected; nothing submitted")
        return BatchHandle()

    destination = _prepare_destination(directory)
    if transcoder is _DISCOVER:
        transcoder = FFmpegTranscoder.discover()
    encoder: Optional[VideoTranscoder] = transcoder  # type: ignore[assignment]

    timestamp = batch_timestamp(now)
    jobs = _plan_jobs(frozen, destination, timestamp, MediaKind.VIDEO)
    expressions = {job.index: video_filter_expression(job.identifier) for job in jobs}

    LOGGER.info("Exporting %d video(s) to %s", len(jobs), destination)
    return _submit(
        jobs,
        lambda job: _write_video_job(job, source_path, expressions[job.index], encoder),
        max_workers=max_workers,
        timestamp=timestamp,
        directory=destination,
    )


def export(
    source: Union[np.ndarray, PathLike, None],
    selection: Union[FilterLike, Iterable[FilterLike], None],
    directory: PathLike,
    *,
    settings: FilterSettings = DEFAULT_FILTER_SETTINGS,
    transcoder: object = _DISCOVER,
    max_workers: Optional[int] = None,
    now: Optional[datetime.datetime] = None,
) -> BatchHandle:
    """Route ``source`` to :func:`export_images` or :func:`export_videos`.

    Arrays (and ``None``) are still images; paths with an image extension are
    decoded first; every other path is treated as a video. ``settings`` only
    affects images and ``transcoder`` only affects videos.
    """
    if source is None or isinstance(source, np.ndarray):
        return export_images(source, selection, directory, settings=settings, max_workers=max_workers, now=now)
    if is_supported_image_format(source):
        try:
            raster = load_raster(source)
        except OSError as exc:
            LOGGER.warning("Unable to read image %s: %s", source, exc)
            return BatchHandle()
        return export_images(raster, selection, directory, settings=settings, max_workers=max_workers, now=now)
    return export_videos(source, selection, directory, transcoder=transcoder, max_workers=max_workers, now=now)


__all__ = [
    "BatchHandle",
    "BatchOutcome",
    "BatchResult",
    "CaptureFilterError",
    "ExportJob",
    "ExportSetupError",
    "MediaKind",
    "export",
    "export_images",
    "export_videos",
]
