from __future__ import annotations

from pathlib import Path

import pytest

np = pytest.importorskip("numpy")
pytest.importorskip("PIL.Image")
from PIL import Image  # noqa: E402

from capture_filters import io_utils  # noqa: E402


@pytest.mark.parametrize(
    "value, expected",
    [("capture.PNG", ".png"), (".MP4", ".mp4"), ("png", ".png"), (Path("a/b.TiFf"), ".tiff")],
)
def test_normalize_extension(value, expected):
    assert io_utils.normalize_extension(value) == expected


def test_format_detection():
    assert io_utils.is_supported_image_format("shot.jpg")
    assert io_utils.is_supported_video_format("clip.MOV")
    assert not io_utils.is_supported_image_format("clip.mp4")
    assert not io_utils.is_supported_video_format("notes.txt")


@pytest.mark.parametrize(
    "raster",
    [
        np.full((2, 3), 9, dtype=np.uint8),
        np.dstack([np.full((2, 3), 9, dtype=np.uint8), np.full((2, 3), 200, dtype=np.uint8)]),
        np.full((2, 3, 3), 9, dtype=np.uint8),
    ],
)
def test_to_rgba_expands_layouts(raster):
    rgba = io_utils.to_rgba(raster)

    assert rgba.shape == (2, 3, 4)
    assert np.all(rgba[..., :3] == 9)
    expected_alpha = 200 if raster.ndim == 3 and raster.shape[2] == 2 else 255
    assert np.all(rgba[..., 3] == expected_alpha)


def test_to_rgba_rejects_unknown_channel_counts():
    with pytest.raises(ValueError):
        io_utils.to_rgba(np.zeros((2, 2, 5), dtype=np.uint8))


def test_save_png_writes_rgba(tmp_path: Path):
    destination = tmp_path / "out.png"
    raster = np.array([[10, 20], [30, 40]], dtype=np.uint8)

    io_utils.save_png(destination, raster)

    with Image.open(destination) as image:
        assert image.format == "PNG"
        assert image.mode == "RGBA"
        pixels = np.array(image)
    np.testing.assert_array_equal(pixels[..., 0], raster)
    assert np.all(pixels[..., 3] == 255)
    assert [p.name for p in tmp_path.iterdir()] == ["out.png"]


def test_load_raster_keeps_native_modes(tmp_path: Path):
    path = tmp_path / "la.png"
    Image.new("LA", (3, 2), (50, 128)).save(path)

    raster = io_utils.load_raster(path)

    assert raster.shape == (2, 3, 2)
    assert raster.dtype == np.uint8


def test_load_raster_converts_palette_images(tmp_path: Path):
    path = tmp_path / "palette.png"
    Image.new("RGB", (4, 4), (255, 0, 0)).convert("P").save(path)

    raster = io_utils.load_raster(path)

    assert raster.shape == (4, 4, 3)
    np.testing.assert_array_equal(raster[0, 0], [255, 0, 0])


def test_staged_write_discards_temporary_file_on_error(tmp_path: Path):
    destination = tmp_path / "result.bin"

    with pytest.raises(RuntimeError):
        with io_utils.StagedWrite(destination) as staged:
            staged.write_bytes(b"partial")
            assert staged.name.startswith(".result.bin.tmp-")
            raise RuntimeError("boom")

    assert list(tmp_path.iterdir()) == []


def test_staged_write_replaces_destination(tmp_path: Path):
    destination = tmp_path / "result.bin"
    destination.write_bytes(b"old")

    with io_utils.StagedWrite(destination) as staged:
        staged.write_bytes(b"new")

    assert destination.read_bytes() == b"new"
    assert list(tmp_path.iterdir()) == [destination]


def test_remove_existing(tmp_path: Path):
    missing = tmp_path / "missing.png"
    present = tmp_path / "present.png"
    present.write_bytes(b"x")
    blocked = tmp_path / "blocked.png"
    blocked.mkdir()

    assert io_utils.remove_existing(missing)
    assert io_utils.remove_existing(present)
    assert not present.exists()
    assert not io_utils.remove_existing(blocked)
    assert blocked.is_dir()


def test_copy_file_is_byte_for_byte(tmp_path: Path):
    source = tmp_path / "clip.mp4"
    source.write_bytes(bytes(range(256)) * 4)
    destination = tmp_path / "copy.mp4"

    io_utils.copy_file(source, destination)

    assert destination.read_bytes() == source.read_bytes()
