"""批量缩放：适配策略、编码格式、元数据、冲突策略与进度事件。"""

from __future__ import annotations

from pathlib import Path

import pytest
from PIL import Image, ImageCms

from image_studio.core.config import ResizeConfig
from image_studio.core.exceptions import ImageStudioError
from image_studio.core.progress import ProcessingProgress
from image_studio.processing.pipeline import BatchState, batch_resize, build_resize_runner, resize


def _make_image(path: Path, size: tuple[int, int] = (400, 200), color: str = "blue") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    Image.new("RGB", size, color).save(path)
    return path


def _output_size(path: Path) -> tuple[int, int]:
    with Image.open(path) as img:
        return img.size


def test_batch_isolates_corrupt_file(tmp_path: Path) -> None:
    good = _make_image(tmp_path / "in" / "valid.png")
    bad = tmp_path / "in" / "corrupted.png"
    bad.write_text("not an image")
    events: list[ProcessingProgress] = []

    result = batch_resize(
        [bad, good],
        ResizeConfig(output_dir=tmp_path / "out", width=100),
        progress_callback=events.append,
    )

    assert result.total == 2
    assert [record.input_path for record in result.completed] == [good]
    assert [record.input_path for record in result.failed] == [bad]
    assert result.failed[0].error
    assert (tmp_path / "out" / "valid.jpeg").exists()
    assert result.total_time_ms >= 0


def test_progress_emits_one_event_per_file_plus_complete(tmp_path: Path) -> None:
    files = [_make_image(tmp_path / "in" / f"img{idx}.png", (20, 20)) for idx in range(3)]
    events: list[ProcessingProgress] = []

    batch_resize(files, ResizeConfig(output_dir=tmp_path / "out"), progress_callback=events.append)

    assert len(events) == 4
    assert [event.current_index for event in events] == [1, 2, 3, 3]
    assert [event.current_file for event in events[:3]] == ["img0.png", "img1.png", "img2.png"]
    assert events[0].percentage == pytest.approx(100 / 3)
    assert events[-1].current_file == "Complete"
    assert events[-1].percentage == 100
    assert events[-1].is_complete
    assert not events[-2].is_complete


def test_empty_batch_emits_single_complete_event(tmp_path: Path) -> None:
    events: list[ProcessingProgress] = []

    result = batch_resize([], ResizeConfig(output_dir=tmp_path / "out"), progress_callback=events.append)

    assert result.total == 0
    assert len(events) == 1
    assert events[0].is_complete
    assert events[0].total_files == 0


def test_runner_events_and_state(tmp_path: Path) -> None:
    source = _make_image(tmp_path / "a.png", (50, 50))
    runner = build_resize_runner([source], ResizeConfig(output_dir=tmp_path / "out"))

    assert runner.state is BatchState.IDLE
    labels = [event.current_file for event in runner.events()]

    assert labels == ["a.png", "Complete"]
    assert runner.state is BatchState.COMPLETE
    assert runner.result is not None and len(runner.result.completed) == 1

    with pytest.raises(ImageStudioError):
        next(runner.events())


@pytest.mark.parametrize(
    "fit,expected",
    [
        ("fill", (100, 100)),
        ("inside", (100, 50)),
        ("contain", (100, 100)),
        ("cover", (100, 100)),
        ("outside", (200, 100)),
    ],
)
def test_fit_policies(tmp_path: Path, fit: str, expected: tuple[int, int]) -> None:
    source = _make_image(tmp_path / "wide.png")
    config = ResizeConfig(output_dir=tmp_path / "out", width=100, height=100, fit=fit, format="png")

    result = batch_resize([source], config)

    assert len(result.completed) == 1
    assert _output_size(tmp_path / "out" / "wide.png") == expected


def test_contain_pads_with_background_color(tmp_path: Path) -> None:
    source = _make_image(tmp_path / "wide.png", color="blue")
    config = ResizeConfig(
        output_dir=tmp_path / "out",
        width=100,
        height=100,
        fit="contain",
        format="png",
        background_color="#ff0000",
    )

    batch_resize([source], config)

    with Image.open(tmp_path / "out" / "wide.png") as img:
        rgb = img.convert("RGB")
        assert rgb.getpixel((50, 5)) == (255, 0, 0)
        assert rgb.getpixel((50, 50)) == (0, 0, 255)
        assert rgb.getpixel((50, 94)) == (255, 0, 0)


def test_single_dimension_keeps_aspect_ratio(tmp_path: Path) -> None:
    source = _make_image(tmp_path / "wide.png")

    batch_resize([source], ResizeConfig(output_dir=tmp_path / "w", width=100, format="png"))
    batch_resize([source], ResizeConfig(output_dir=tmp_path / "h", height=50, fit="fill", format="png"))

    assert _output_size(tmp_path / "w" / "wide.png") == (100, 50)
    assert _output_size(tmp_path / "h" / "wide.png") == (100, 50)


def test_no_dimensions_keeps_size(tmp_path: Path) -> None:
    source = _make_image(tmp_path / "wide.png")

    batch_resize([source], ResizeConfig(output_dir=tmp_path / "out", kernel="nearest"))

    assert _output_size(tmp_path / "out" / "wide.jpeg") == (400, 200)


@pytest.mark.parametrize("image_format,pil_format", [("png", "PNG"), ("webp", "WEBP"), ("tiff", "TIFF")])
def test_output_formats(tmp_path: Path, image_format: str, pil_format: str) -> None:
    source = _make_image(tmp_path / "src.png", (64, 32))

    result = batch_resize([source], ResizeConfig(output_dir=tmp_path / "out", width=32, format=image_format, quality=80))

    assert len(result.completed) == 1
    output = result.completed[0].output_path
    assert output == tmp_path / "out" / f"src.{image_format}"
    with Image.open(output) as img:
        assert img.format == pil_format
        assert img.size == (32, 16)


def test_alpha_is_flattened_for_jpeg(tmp_path: Path) -> None:
    source = tmp_path / "alpha.png"
    Image.new("RGBA", (20, 20), (0, 0, 0, 0)).save(source)

    batch_resize([source], ResizeConfig(output_dir=tmp_path / "out"))

    with Image.open(tmp_path / "out" / "alpha.jpeg") as img:
        assert img.mode == "RGB"
        r, g, b = img.getpixel((10, 10))
        assert min(r, g, b) > 240


def test_exif_orientation_applied_and_metadata_preserved(tmp_path: Path) -> None:
    source = tmp_path / "rotated.jpg"
    exif = Image.Exif()
    exif[274] = 6
    exif[271] = "TestCam"
    Image.new("RGB", (80, 40), "red").save(source, exif=exif.tobytes())

    batch_resize([source], ResizeConfig(output_dir=tmp_path / "keep"))
    batch_resize([source], ResizeConfig(output_dir=tmp_path / "strip", preserve_metadata=False))

    with Image.open(tmp_path / "keep" / "rotated.jpeg") as img:
        assert img.size == (40, 80)
        kept = img.getexif()
        assert kept.get(271) == "TestCam"
        assert 274 not in kept

    with Image.open(tmp_path / "strip" / "rotated.jpeg") as img:
        assert img.size == (40, 80)
        assert 271 not in img.getexif()


def test_cmyk_source_is_written_as_rgb(tmp_path: Path) -> None:
    source = tmp_path / "cmyk.jpg"
    Image.new("CMYK", (50, 50), (0, 128, 255, 0)).save(source)

    result = batch_resize([source], ResizeConfig(output_dir=tmp_path / "out", width=25))

    assert len(result.completed) == 1
    with Image.open(tmp_path / "out" / "cmyk.jpeg") as img:
        assert img.mode == "RGB"


def test_invalid_config_fails_every_unit(tmp_path: Path) -> None:
    files = [_make_image(tmp_path / f"{name}.png", (10, 10)) for name in ("a", "b")]
    events: list[ProcessingProgress] = []

    result = batch_resize(files, ResizeConfig(output_dir=tmp_path / "out", format="gif"), events.append)

    assert len(result.failed) == 2
    assert all("gif" in (record.error or "") for record in result.failed)
    assert len(events) == 3


def test_prefix_suffix_and_nested_output_dir(tmp_path: Path) -> None:
    source = _make_image(tmp_path / "IMG_1.JPG", (30, 30))
    output_dir = tmp_path / "a" / "b" / "c"

    result = batch_resize([source], ResizeConfig(output_dir=output_dir, format="webp", prefix="web_", suffix="_sm"))

    assert result.completed[0].output_path == output_dir / "web_IMG_1_sm.webp"
    assert (output_dir / "web_IMG_1_sm.webp").exists()


def test_same_base_name_overwrites_by_default(tmp_path: Path) -> None:
    first = _make_image(tmp_path / "x" / "a.png", (10, 10))
    second = _make_image(tmp_path / "y" / "a.png", (20, 20))

    result = batch_resize([first, second], ResizeConfig(output_dir=tmp_path / "out", format="png"))

    assert len(result.completed) == 2
    assert sorted(p.name for p in (tmp_path / "out").iterdir()) == ["a.png"]
    assert _output_size(tmp_path / "out" / "a.png") == (20, 20)


def test_rename_strategy_keeps_both_outputs(tmp_path: Path) -> None:
    first = _make_image(tmp_path / "x" / "a.png", (10, 10))
    second = _make_image(tmp_path / "y" / "a.png", (20, 20))
    config = ResizeConfig(output_dir=tmp_path / "out", format="png", conflict_strategy="rename")

    result = batch_resize([first, second], config)

    assert [record.output_path.name for record in result.completed] == ["a.png", "a_1.png"]


def test_skip_strategy_reports_failure(tmp_path: Path) -> None:
    source = _make_image(tmp_path / "a.png", (10, 10))
    output_dir = tmp_path / "out"
    output_dir.mkdir()
    (output_dir / "a.png").write_bytes(b"existing")

    result = batch_resize([source], ResizeConfig(output_dir=output_dir, format="png", conflict_strategy="skip"))

    assert len(result.failed) == 1
    assert (output_dir / "a.png").read_bytes() == b"existing"


def test_single_resize_returns_result(tmp_path: Path) -> None:
    source = _make_image(tmp_path / "a.png", (40, 20))
    target = tmp_path / "nested" / "out.png"

    ok = resize(source, target, ResizeConfig(output_dir=tmp_path, width=20, format="png"))
    bad = resize(source, target, ResizeConfig(output_dir=tmp_path, quality=0))

    assert ok.success and ok.output_path == target
    assert _output_size(target) == (20, 10)
    assert not bad.success and bad.error


def _save_with_icc(path: Path) -> bytes:
    icc = ImageCms.ImageCmsProfile(ImageCms.createProfile("sRGB")).tobytes()
    Image.new("RGB", (40, 20), "blue").save(path, icc_profile=icc)
    return icc


@pytest.mark.parametrize("image_format", ["png", "tiff", "jpeg", "webp"])
def test_strip_metadata_drops_icc_profile(tmp_path: Path, image_format: str) -> None:
    source = tmp_path / "icc.png"
    _save_with_icc(source)

    result = batch_resize(
        [source],
        ResizeConfig(output_dir=tmp_path / "out", width=20, format=image_format, preserve_metadata=False),
    )

    assert len(result.completed) == 1
    with Image.open(result.completed[0].output_path) as img:
        assert "icc_profile" not in img.info


@pytest.mark.parametrize("image_format", ["png", "tiff"])
def test_preserve_metadata_keeps_icc_profile(tmp_path: Path, image_format: str) -> None:
    source = tmp_path / "icc.png"
    icc = _save_with_icc(source)

    result = batch_resize([source], ResizeConfig(output_dir=tmp_path / "out", width=20, format=image_format))

    with Image.open(result.completed[0].output_path) as img:
        assert img.info.get("icc_profile") == icc


def test_run_without_result_raises(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    runner = build_resize_runner([], ResizeConfig(output_dir=tmp_path / "out"))
    monkeypatch.setattr(runner, "events", lambda: iter(()))

    with pytest.raises(ImageStudioError):
        runner.run()
