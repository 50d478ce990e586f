from __future__ import annotations

import json
import logging
from concurrent.futures import Future
from pathlib import Path

import pytest

np = pytest.importorskip("numpy")
pytest.importorskip("PIL.Image")
from PIL import Image  # noqa: E402

from capture_filters import cli  # noqa: E402
from capture_filters.pipeline import BatchHandle, BatchResult, ExportJob, MediaKind  # noqa: E402


@pytest.fixture
def capture_path(tmp_path: Path) -> Path:
    path = tmp_path / "capture.png"
    rng = np.random.default_rng(5)
    Image.fromarray(rng.integers(0, 256, size=(10, 14, 3), dtype=np.uint8)).save(path)
    return path


def _finished_handle(tmp_path: Path, outcomes) -> BatchHandle:
    jobs = []
    futures = []
    for index, ok in enumerate(outcomes):
        jobs.append(ExportJob("sepia", index, "sepia", tmp_path / f"{index}.png", MediaKind.IMAGE))
        future: Future = Future()
        future.set_result(ok)
        futures.append(future)
    return BatchHandle(jobs, futures, timestamp="20240611_184502", directory=tmp_path)


def test_default_output_folder():
    assert cli.default_output_folder(Path("/shots/capture.png")) == Path("/shots/capture_filtered")


def test_parse_args_defaults(capture_path: Path):
    args = cli.parse_args([str(capture_path)])

    assert args.output == capture_path.parent / "capture_filtered"
    assert args.filters is None
    assert args.profile == "fast"
    assert args.settings == cli.DEFAULT_FILTER_SETTINGS


def test_parse_args_builds_filter_settings(capture_path: Path):
    args = cli.parse_args(
        [str(capture_path), "--levels", "4", "--dither", "--threshold", "90", "--seed", "3", "--warm-intensity", "0.2"]
    )

    assert args.settings.posterize_levels == 4
    assert args.settings.posterize_dither is True
    assert args.settings.solarize_threshold == 90
    assert args.settings.vintage_seed == 3
    assert args.settings.warm_intensity == pytest.approx(0.2)


@pytest.mark.parametrize(
    "extra",
    [["--workers", "0"], ["--levels", "1"], ["--threshold", "300"], ["--profile", "cinema"]],
)
def test_parse_args_rejects_invalid_values(capture_path: Path, extra):
    with pytest.raises(SystemExit):
        cli.parse_args([str(capture_path), *extra])


def test_json_config_provides_defaults(tmp_path: Path, capture_path: Path):
    config = tmp_path / "export.json"
    config.write_text(
        json.dumps({"filter": ["sepia", "warm"], "dither": "yes", "levels": 6, "no-progress": True})
    )

    args = cli.parse_args(["--config", str(config), str(capture_path)])

    assert args.filters == ["sepia", "warm"]
    assert args.settings.posterize_dither is True
    assert args.settings.posterize_levels == 6
    assert args.no_progress is True


def test_command_line_overrides_config(tmp_path: Path, capture_path: Path):
    config = tmp_path / "export.json"
    config.write_text(json.dumps({"levels": 6, "profile": "draft"}))

    args = cli.parse_args(["--config", str(config), str(capture_path), "--levels", "3"])

    assert args.settings.posterize_levels == 3
    assert args.profile == "draft"


@pytest.mark.parametrize(
    "payload",
    [{"unknown_option": 1}, {"dither": "maybe"}, {"levels": "many"}, ["not", "a", "mapping"]],
)
def test_invalid_config_is_reported(tmp_path: Path, capture_path: Path, payload):
    config = tmp_path / "export.json"
    config.write_text(json.dumps(payload))

    with pytest.raises(SystemExit):
        cli.parse_args(["--config", str(config), str(capture_path)])


def test_missing_config_is_reported(tmp_path: Path, capture_path: Path):
    with pytest.raises(SystemExit):
        cli.parse_args(["--config", str(tmp_path / "absent.json"), str(capture_path)])


def test_yaml_config(tmp_path: Path, capture_path: Path):
    pytest.importorskip("yaml")
    config = tmp_path / "export.yaml"
    config.write_text("filter: grayscale\nworkers: 2\n")

    args = cli.parse_args(["--config", str(config), str(capture_path)])

    assert args.filters == ["grayscale"]
    assert args.workers == 2


def test_config_keys_accept_dashes_underscores_and_destinations(tmp_path: Path, capture_path: Path):
    config = tmp_path / "export.json"
    config.write_text(
        json.dumps({"warm-intensity": 0.3, "cold_intensity": 0.4, "filters": "sepia", "no_ffmpeg": "on"})
    )

    args = cli.parse_args(["--config", str(config), str(capture_path)])

    assert args.settings.warm_intensity == pytest.approx(0.3)
    assert args.settings.cold_intensity == pytest.approx(0.4)
    assert args.filters == ["sepia"]
    assert args.no_ffmpeg is True


def test_empty_yaml_config_keeps_defaults(tmp_path: Path, capture_path: Path):
    pytest.importorskip("yaml")
    config = tmp_path / "export.yml"
    config.write_text("")

    args = cli.parse_args(["--config", str(config), str(capture_path)])

    assert args.settings == cli.DEFAULT_FILTER_SETTINGS


def test_yaml_config_with_non_string_keys_is_reported(tmp_path: Path, capture_path: Path):
    pytest.importorskip("yaml")
    config = tmp_path / "export.yaml"
    config.write_text("1: sepia\n")

    with pytest.raises(SystemExit):
        cli.parse_args(["--config", str(config), str(capture_path)])


def test_main_exports_selected_filters(tmp_path: Path, capture_path: Path):
    out = tmp_path / "exports"

    code = cli.main(
        [str(capture_path), str(out), "--filter", "grayscale", "--filter", "sepia", "--no-progress"]
    )

    assert code == 0
    names = sorted(p.name for p in out.iterdir())
    assert len(names) == 2
    assert names[0].endswith("_00_bw.png")
    assert names[1].endswith("_01_sepia.png")


def test_main_exports_every_filter_by_default(capture_path: Path):
    assert cli.main([str(capture_path), "--no-progress"]) == 0
    assert len(list((capture_path.parent / "capture_filtered").iterdir())) == len(cli.ALL_FILTERS)


def test_main_copies_video_without_ffmpeg(tmp_path: Path):
    clip = tmp_path / "clip.mov"
    clip.write_bytes(b"moov" * 32)
    out = tmp_path / "videos"

    code = cli.main([str(clip), str(out), "--filter", "negative", "--no-ffmpeg", "--no-progress"])

    assert code == 0
    (written,) = out.iterdir()
    assert written.name.endswith("_00_negative.mp4")
    assert written.read_bytes() == clip.read_bytes()


def test_main_with_missing_image_fails(tmp_path: Path):
    assert cli.main([str(tmp_path / "absent.png"), "--no-progress"]) == 1


def test_main_with_unusable_output_fails(tmp_path: Path, capture_path: Path):
    blocker = tmp_path / "blocker"
    blocker.write_text("occupied")

    assert cli.main([str(capture_path), str(blocker), "--no-progress"]) == 1


@pytest.mark.parametrize(
    "outcomes, expected",
    [([True, True], 0), ([False, False], 1), ([True, False], 2), ([], 0)],
)
def test_run_exit_codes(tmp_path: Path, capture_path: Path, monkeypatch, outcomes, expected):
    args = cli.parse_args([str(capture_path), str(tmp_path / "out"), "--no-progress"])
    monkeypatch.setattr(cli, "_start_export", lambda parsed: _finished_handle(tmp_path, outcomes))

    assert cli.run(args) == expected


def test_report_messages(tmp_path: Path, caplog):
    with caplog.at_level(logging.INFO, logger="capture_filters"):
        cli.report(BatchResult(2, 0), tmp_path)
        cli.report(BatchResult(2, 2), tmp_path)
        cli.report(BatchResult(3, 1), tmp_path)
        cli.report(BatchResult(0, 0), tmp_path)

    assert "Saved 2 file(s)" in caplog.text
    assert "Could not save any of the 2 file(s)" in caplog.text
    assert "Partially saved" in caplog.text
    assert "Nothing to export" in caplog.text
