"""输出命名、冲突策略与编码器策略表。"""

from __future__ import annotations

from pathlib import Path

import pytest

from image_studio.core.encoders import ENCODERS, get_encoder, png_compress_level
from image_studio.core.exceptions import InvalidConfigurationError
from image_studio.core.output_manager import OutputManager, crop_output_name, resize_output_name


def test_resize_name_applies_prefix_and_suffix() -> None:
    name = resize_output_name(Path("/in/IMG_1.JPG"), "webp", prefix="web_", suffix="_sm")

    assert name == "web_IMG_1_sm.webp"


def test_resize_name_with_index_and_no_affixes() -> None:
    assert resize_output_name(Path("cat.png"), "jpeg") == "cat.jpeg"
    assert resize_output_name(Path("cat.png"), "tiff", index=3) == "cat_3.tiff"


def test_crop_name_pads_index_to_two_digits() -> None:
    source = Path("/in/photo.jpg")

    assert crop_output_name("{original}_{index}", source, 1, "png") == "photo_01.png"
    assert crop_output_name("{original}_{index}", source, 2, "png") == "photo_02.png"
    assert crop_output_name("{original}_{index}", source, 123, "png") == "photo_123.png"


def test_crop_name_keeps_unknown_tokens_verbatim() -> None:
    name = crop_output_name("{date}-{original}-{index}", Path("a.tif"), 7, "webp")

    assert name == "{date}-a-07.webp"


def test_crop_name_repeated_tokens_all_replaced() -> None:
    assert crop_output_name("{original}/{original}{index}", Path("x.jpg"), 4, "jpeg") == "x/x04.jpeg"


@pytest.mark.parametrize(
    "quality,level",
    [(100, 0), (90, 0), (89, 1), (50, 4), (12, 8), (1, 9)],
)
def test_png_quality_maps_to_compress_level(quality: int, level: int) -> None:
    assert png_compress_level(quality) == level


def test_encoder_lookup_is_case_insensitive() -> None:
    assert get_encoder("PNG") is ENCODERS["png"]

    with pytest.raises(InvalidConfigurationError):
        get_encoder("gif")


def test_every_encoder_extension_matches_format_name() -> None:
    for name, encoder in ENCODERS.items():
        assert encoder.extension == name


def test_overwrite_reuses_existing_path(tmp_path: Path) -> None:
    (tmp_path / "a.jpeg").write_bytes(b"old")
    manager = OutputManager(tmp_path)

    decision = manager.decide_destination("a.jpeg")

    assert decision.action == "overwrite"
    assert decision.destination == tmp_path / "a.jpeg"


def test_overwrite_within_batch_is_last_write_wins(tmp_path: Path) -> None:
    manager = OutputManager(tmp_path)

    first = manager.decide_destination("a.jpeg")
    second = manager.decide_destination("a.jpeg")

    assert first.action == "write"
    assert second.action == "overwrite"
    assert first.destination == second.destination


def test_rename_avoids_disk_and_batch_collisions(tmp_path: Path) -> None:
    (tmp_path / "a.jpeg").write_bytes(b"old")
    (tmp_path / "a_1.jpeg").write_bytes(b"old")
    manager = OutputManager(tmp_path, conflict_strategy="rename")

    first = manager.decide_destination("a.jpeg")
    second = manager.decide_destination("a.jpeg")

    assert first.destination.name == "a_2.jpeg"
    assert second.destination.name == "a_3.jpeg"
    assert first.action == second.action == "rename"


def test_skip_reports_existing_target(tmp_path: Path) -> None:
    (tmp_path / "a.jpeg").write_bytes(b"old")
    manager = OutputManager(tmp_path, conflict_strategy="skip")

    decision = manager.decide_destination("a.jpeg")

    assert decision.action == "skip"
    assert decision.note and "a.jpeg" in decision.note


def test_prepare_creates_nested_directory(tmp_path: Path) -> None:
    target = tmp_path / "deep" / "er" / "out"
    manager = OutputManager(target)

    assert manager.prepare() == target
    assert target.is_dir()
    # 已存在时再次调用不报错
    manager.prepare()


def test_unknown_conflict_strategy_rejected(tmp_path: Path) -> None:
    with pytest.raises(InvalidConfigurationError):
        OutputManager(tmp_path, conflict_strategy="merge")
