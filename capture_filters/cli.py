"""Command-line interface wiring for the capture filter exporter."""
from __future__ import annotations

import argparse
import dataclasses
import json
import logging
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional

try:  # pragma: no cover - optional dependency
    import yaml
except ModuleNotFoundError:  # pragma: no cover - optional dependency
    yaml = None

from .dispatch import ALL_FILTERS
from .io_utils import is_supported_image_format, is_supported_video_format, load_raster
from .kernels import DEFAULT_FILTER_SETTINGS, FilterSettings
from .pipeline import BatchHandle, BatchOutcome, BatchResult, ExportSetupError, export_images, export_videos
from .profiles import DEFAULT_PROFILE_NAME, TRANSCODE_PROFILES
from .transcoder import FFmpegTranscoder

LOGGER = logging.getLogger("capture_filters")

EXIT_CODES = {
    BatchOutcome.SUCCEEDED: 0,
    BatchOutcome.NOTHING_SUBMITTED: 0,
    BatchOutcome.FAILED: 1,
    BatchOutcome.PARTIAL: 2,
}

_TRUE_STRINGS = {"1", "true", "yes", "on"}
_FALSE_STRINGS = {"0", "false", "no", "off"}

_PARSE_ERRORS: tuple = (ValueError,) if yaml is None else (ValueError, yaml.YAMLError)


def _load_config_data(path: Path) -> Mapping[str, Any]:
    """Read an export config; ``.yaml``/``.yml`` need PyYAML, anything else is JSON.

    An empty document yields an empty mapping. A missing file raises
    :class:`FileNotFoundError`, unparsable or non-mapping content raises
    :class:`ValueError`.
    """
    if not path.is_file():
        raise FileNotFoundError(f"Export config {path} does not exist")

    is_yaml = path.suffix.lower() in {".yaml", ".yml"}
    if is_yaml and yaml is None:
        raise RuntimeError(f"Reading {path} requires PyYAML (pip install pyyaml)")
    text = path.read_text()
    try:
        data = yaml.safe_load(text) if is_yaml else json.loads(text)  # type: ignore[union-attr]
    except _PARSE_ERRORS as exc:
        raise ValueError(f"Export config {path} is not valid: {exc}") from exc

    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise ValueError(f"Export config {path} must map option names to values")
    return data


def _config_actions(parser: argparse.ArgumentParser) -> dict[str, argparse.Action]:
    """Map every spelling a config file may use for an option to its action.

    Destinations and option strings are both accepted, with dashes and
    underscores treated alike (``warm-intensity``, ``warm_intensity``).
    """
    lookup: dict[str, argparse.Action] = {}
    for action in parser._actions:
        if action.dest in {argparse.SUPPRESS, "help", "config"}:
            continue
        lookup[action.dest] = action
        for option_string in action.option_strings:
            lookup[option_string.lstrip("-").replace("-", "_")] = action
    return lookup


def _config_defaults(parser: argparse.ArgumentParser, path: Path) -> dict[str, Any]:
    """Read ``path`` and convert its entries into ``parser`` defaults keyed by destination."""

    actions = _config_actions(parser)
    defaults: dict[str, Any] = {}
    for key, value in _load_config_data(path).items():
        if not isinstance(key, str):
            raise ValueError(f"Configuration keys in {path} must be strings, got {key!r}")
        action = actions.get(key.replace("-", "_"))
        if action is None:
            raise ValueError(f"Unknown configuration option '{key}' in {path}")
        defaults[action.dest] = _coerce_config_value(action, value, source=path, key=key)
    return defaults


def _coerce_flag(value: Any, *, source: Path, key: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    raise ValueError(f"Invalid boolean for '{key}' in {source}: expected true/false value, got {value!r}")


def _coerce_scalar(action: argparse.Action, value: Any, *, source: Path, key: str) -> Any:
    if action.type is not None:
        try:
            converted = action.type(value)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"Invalid value for '{key}' in {source}: {exc}") from exc
    else:
        converted = value

    if action.choices is not None and converted not in action.choices:
        raise ValueError(
            f"Invalid value for '{key}' in {source}: {converted!r} (choose from {sorted(action.choices)})"
        )
    return converted


def _coerce_config_value(action: argparse.Action, value: Any, *, source: Path, key: str) -> Any:
    """Convert configuration values so they match argparse expectations."""

    if value is None:
        return None
    if isinstance(action, (argparse._StoreTrueAction, argparse._StoreFalseAction)):  # type: ignore[attr-defined]
        return _coerce_flag(value, source=source, key=key)
    if isinstance(action, argparse._AppendAction):  # type: ignore[attr-defined]
        items = [value] if isinstance(value, str) else list(value)
        return [_coerce_scalar(action, item, source=source, key=key) for item in items]
    return _coerce_scalar(action, value, source=source, key=key)


def default_output_folder(source: Path) -> Path:
    """Return the default export folder for a capture: ``<stem>_filtered`` beside it."""

    return source.parent / f"{source.stem}_filtered"


def parse_args(argv: Optional[Iterable[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="capture-filters",
        description="Export one captured still or video once per selected filter.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Optional configuration file (JSON by default, YAML when 'pyyaml' is installed)",
    )
    parser.add_argument("source", type=Path, help="Captured image or video to export")
    parser.add_argument(
        "output",
        type=Path,
        nargs="?",
        default=None,
        help="Folder where filtered files will be written. Defaults to '<stem>_filtered' next to the source.",
    )
    parser.add_argument(
        "--filter",
        dest="filters",
        action="append",
        default=None,
        metavar="ID",
        help=f"Filter to export (repeatable). Defaults to every filter: {', '.join(ALL_FILTERS)}",
    )
    parser.add_argument(
        "--video",
        action="store_true",
        help="Treat the source as a video regardless of its extension",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Number of export threads (defaults to one per job, capped at the CPU count)",
    )

    # Kernel overrides.
    parser.add_argument("--levels", type=int, default=None, help="Posterize levels per channel (2-256)")
    parser.add_argument("--dither", action="store_true", help="Use error diffusion when posterizing")
    parser.add_argument("--threshold", type=int, default=None, help="Solarize grey-level threshold (0-255)")
    parser.add_argument("--warm-intensity", type=float, default=None, help="Warm filter strength (0-1)")
    parser.add_argument("--cold-intensity", type=float, default=None, help="Cold filter strength (0-1)")
    parser.add_argument("--vintage-intensity", type=float, default=None, help="Vintage filter strength (0-1)")
    parser.add_argument("--seed", type=int, default=None, help="Seed for the vintage film grain")

    parser.add_argument(
        "--profile",
        default=DEFAULT_PROFILE_NAME,
        choices=sorted(TRANSCODE_PROFILES.keys()),
        help="Encoder profile for filtered videos",
    )
    parser.add_argument("--ffmpeg", default="ffmpeg", help="FFmpeg executable name or path")
    parser.add_argument(
        "--no-ffmpeg",
        action="store_true",
        help="Never invoke FFmpeg; videos are copied unfiltered",
    )
    parser.add_argument(
        "--no-progress",
        action="store_true",
        help="Disable progress reporting (useful for minimal or non-interactive environments)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging verbosity",
    )

    argv_list = list(argv) if argv is not None else None

    config_probe, _ = parser.parse_known_args(argv_list)
    if config_probe.config is not None:
        try:
            parser.set_defaults(**_config_defaults(parser, config_probe.config))
        except (OSError, ValueError, RuntimeError) as exc:
            parser.error(str(exc))

    args = parser.parse_args(argv_list)
    if args.workers is not None and args.workers < 1:
        parser.error("--workers must be a positive integer")
    try:
        args.settings = build_settings(args)
    except ValueError as exc:
        parser.error(str(exc))
    if args.output is None:
        args.output = default_output_folder(args.source)
    logging.basicConfig(level=getattr(logging, args.log_level), format="%(levelname)s: %(message)s")
    return args


def build_settings(args: argparse.Namespace) -> FilterSettings:
    """Overlay command-line kernel overrides on the default filter settings."""

    overrides = {
        "posterize_levels": args.levels,
        "solarize_threshold": args.threshold,
        "warm_intensity": args.warm_intensity,
        "cold_intensity": args.cold_intensity,
        "vintage_intensity": args.vintage_intensity,
        "vintage_seed": args.seed,
    }
    changes = {name: value for name, value in overrides.items() if value is not None}
    if args.dither:
        changes["posterize_dither"] = True
    return dataclasses.replace(DEFAULT_FILTER_SETTINGS, **changes)


def _is_video_source(args: argparse.Namespace) -> bool:
    if args.video:
        return True
    if is_supported_image_format(args.source):
        return False
    if not is_supported_video_format(args.source):
        LOGGER.warning("Unrecognised extension for %s; treating it as a video", args.source)
    return True


def _start_export(args: argparse.Namespace) -> BatchHandle:
    selection = args.filters if args.filters else list(ALL_FILTERS)
    if _is_video_source(args):
        if args.no_ffmpeg:
            transcoder = None
        else:
            transcoder = FFmpegTranscoder.discover(args.ffmpeg, TRANSCODE_PROFILES[args.profile])
        return export_videos(
            args.source,
            selection,
            args.output,
            transcoder=transcoder,
            max_workers=args.workers,
        )

    raster = load_raster(args.source)
    return export_images(
        raster,
        selection,
        args.output,
        settings=args.settings,
        max_workers=args.workers,
    )


def report(result: BatchResult, destination: Path) -> None:
    """Log the user-facing summary for a finished batch."""

    outcome = result.outcome
    if outcome is BatchOutcome.NOTHING_SUBMITTED:
        LOGGER.info("Nothing to export")
    elif outcome is BatchOutcome.SUCCEEDED:
        LOGGER.info("Saved %d file(s) to %s", result.total, destination)
    elif outcome is BatchOutcome.FAILED:
        LOGGER.error("Could not save any of the %d file(s) to %s", result.total, destination)
    else:
        LOGGER.warning(
            "Partially saved to %s: %d of %d file(s) failed", destination, result.failed, result.total
        )


def run(args: argparse.Namespace) -> int:
    """Run one export and return the process exit code."""

    try:
        handle = _start_export(args)
    except ExportSetupError as exc:
        LOGGER.error("%s", exc)
        return 1
    except OSError as exc:
        LOGGER.error("Unable to read %s: %s", args.source, exc)
        return 1

    result = handle.wait(progress=not args.no_progress)
    report(result, args.output)
    return EXIT_CODES[result.outcome]


def main(argv: Optional[Iterable[str]] = None) -> int:
    args = parse_args(argv)
    return run(args)


__all__ = [
    "EXIT_CODES",
    "build_settings",
    "default_output_folder",
    "main",
    "parse_args",
    "report",
    "run",
]
