"""处理任务的配置模型。"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Sequence, Tuple

from image_studio.core.exceptions import InvalidConfigurationError
from image_studio.core.models import CropRegion

ImageFormat = str  # jpeg | png | webp | tiff
ResizeFit = str  # fill | contain | cover | inside | outside
ResizeKernel = str  # lanczos3 | lanczos2 | bicubic | bilinear | nearest
ScaleMode = str  # pixels | percentage | max_fit

OUTPUT_FORMATS = ("jpeg", "png", "webp", "tiff")
FIT_POLICIES = ("fill", "contain", "cover", "inside", "outside")
# 按质量从高到低、速度从慢到快排列。
KERNELS = ("lanczos3", "lanczos2", "bicubic", "bilinear", "nearest")
SCALE_MODES = ("pixels", "percentage", "max_fit")
CONFLICT_STRATEGIES = ("overwrite", "rename", "skip")

DEFAULT_NAMING_TEMPLATE = "{original}_{index}"


def _validate_common(image_format: str, quality: int, conflict_strategy: str) -> None:
    if image_format not in OUTPUT_FORMATS:
        raise InvalidConfigurationError(f"不支持的输出格式: {image_format}")
    if not 1 <= quality <= 100:
        raise InvalidConfigurationError(f"质量必须在 1~100 之间: {quality}")
    if conflict_strategy not in CONFLICT_STRATEGIES:
        raise InvalidConfigurationError(f"未知的冲突策略: {conflict_strategy}")


@dataclass(slots=True)
class ResizeConfig:
    """批量缩放的处理选项。

    width/height 任一为 ``None`` 时按原图宽高比自动推导；两者均为空则不缩放。
    """

    output_dir: Path
    width: Optional[int] = None
    height: Optional[int] = None
    fit: ResizeFit = "inside"
    kernel: ResizeKernel = "lanczos3"
    format: ImageFormat = "jpeg"
    quality: int = 100
    preserve_metadata: bool = True
    prefix: str = ""
    suffix: str = ""
    background_color: str = "#000000"  # contain 模式的填充色
    conflict_strategy: str = "overwrite"  # overwrite | rename | skip

    def validate(self) -> None:
        _validate_common(self.format, self.quality, self.conflict_strategy)
        if self.fit not in FIT_POLICIES:
            raise InvalidConfigurationError(f"未知的尺寸适配模式: {self.fit}")
        if self.kernel not in KERNELS:
            raise InvalidConfigurationError(f"未知的重采样算法: {self.kernel}")
        for name, value in (("width", self.width), ("height", self.height)):
            if value is not None and value <= 0:
                raise InvalidConfigurationError(f"{name} 必须大于 0: {value}")


@dataclass(slots=True)
class CropConfig:
    """单张图片多区域裁剪的处理选项。"""

    output_dir: Path
    regions: Sequence[CropRegion] = field(default_factory=tuple)
    format: ImageFormat = "jpeg"
    quality: int = 95
    preserve_metadata: bool = True
    naming_template: str = DEFAULT_NAMING_TEMPLATE
    rotation: int = 0
    conflict_strategy: str = "overwrite"

    def validate(self) -> None:
        _validate_common(self.format, self.quality, self.conflict_strategy)
        if self.rotation % 90 != 0:
            raise InvalidConfigurationError(f"旋转角度必须为 90 的整数倍: {self.rotation}")


@dataclass(slots=True, frozen=True)
class SizePreset:
    """常用输出尺寸预设。"""

    name: str
    width: int
    height: int
    category: str  # standard | social | print

    @property
    def aspect_ratio(self) -> float:
        return self.width / self.height


SIZE_PRESETS: Tuple[SizePreset, ...] = (
    SizePreset("Full HD", 1920, 1080, "standard"),
    SizePreset("HD", 1280, 720, "standard"),
    SizePreset("4K UHD", 3840, 2160, "standard"),
    SizePreset("Web Standard", 800, 600, "standard"),
    SizePreset("Instagram Square", 1080, 1080, "social"),
    SizePreset("Instagram Portrait", 1080, 1350, "social"),
    SizePreset("Instagram Story", 1080, 1920, "social"),
    SizePreset("Facebook/OG", 1200, 630, "social"),
    SizePreset("Twitter Header", 1500, 500, "social"),
    SizePreset("LinkedIn Banner", 1584, 396, "social"),
    SizePreset("YouTube Thumbnail", 1280, 720, "social"),
)


def find_preset(name: str) -> SizePreset:
    lowered = name.strip().lower()
    for preset in SIZE_PRESETS:
        if preset.name.lower() == lowered:
            return preset
    raise InvalidConfigurationError(f"未知的尺寸预设: {name}")


def locked_dimensions(
    ratio: float,
    *,
    width: Optional[int] = None,
    height: Optional[int] = None,
) -> Tuple[Optional[int], Optional[int]]:
    """锁定宽高比时，由一条边推导另一条边。宽度优先。"""

    if ratio <= 0:
        raise InvalidConfigurationError(f"宽高比必须大于 0: {ratio}")
    if width is not None:
        return width, round(width / ratio)
    if height is not None:
        return round(height * ratio), height
    return None, None


def resolve_scale(
    mode: ScaleMode,
    *,
    width: Optional[int] = None,
    height: Optional[int] = None,
    percentage: float = 100.0,
    reference_size: Optional[Tuple[int, int]] = None,
    fit: ResizeFit = "inside",
) -> Tuple[Optional[int], Optional[int], ResizeFit]:
    """将界面上的缩放模式换算为 (width, height, fit)。

    ``percentage`` 模式以参考图片（通常是第一张）的尺寸为基准，
    ``max_fit`` 模式强制使用 inside 适配。
    """

    if mode not in SCALE_MODES:
        raise InvalidConfigurationError(f"未知的缩放模式: {mode}")

    if mode == "percentage":
        if percentage <= 0:
            raise InvalidConfigurationError(f"缩放百分比必须大于 0: {percentage}")
        if reference_size is None:
            raise InvalidConfigurationError("百分比模式需要参考图片尺寸")
        ref_w, ref_h = reference_size
        return round(ref_w * percentage / 100), round(ref_h * percentage / 100), fit

    if mode == "max_fit":
        return width, height, "inside"

    return width, height, fit
