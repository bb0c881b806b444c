"""缩放与尺寸适配策略。"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Optional, Tuple

from PIL import Image, ImageOps

from image_studio.core.exceptions import InvalidConfigurationError
from image_studio.utils.colors import parse_hex_color, parse_hex_rgba

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class KernelSpec:
    resample: Image.Resampling
    reducing_gap: Optional[float] = None


# lanczos2 使用 reducing_gap 先做整数倍缩小，速度更快、质量略低于 lanczos3。
KERNELS: dict[str, KernelSpec] = {
    "lanczos3": KernelSpec(Image.Resampling.LANCZOS),
    "lanczos2": KernelSpec(Image.Resampling.LANCZOS, reducing_gap=2.0),
    "bicubic": KernelSpec(Image.Resampling.BICUBIC),
    "bilinear": KernelSpec(Image.Resampling.BILINEAR),
    "nearest": KernelSpec(Image.Resampling.NEAREST),
}


def resolve_target_size(
    source_size: Tuple[int, int],
    width: Optional[int],
    height: Optional[int],
) -> Optional[Tuple[int, int]]:
    """补全缺失的一边（按原图宽高比），两边都缺失时返回 None 表示不缩放。"""

    src_w, src_h = source_size
    if width is None and height is None:
        return None
    if width is None:
        return max(1, round(src_w * height / src_h)), height
    if height is None:
        return width, max(1, round(src_h * width / src_w))
    return width, height


def fitted_size(source_size: Tuple[int, int], bounds: Tuple[int, int], *, outside: bool) -> Tuple[int, int]:
    """等比缩放到边界之内（inside）或刚好覆盖边界（outside）。"""

    src_w, src_h = source_size
    bound_w, bound_h = bounds
    ratio_w = bound_w / src_w
    ratio_h = bound_h / src_h
    ratio = max(ratio_w, ratio_h) if outside else min(ratio_w, ratio_h)

    if outside:
        new_w = max(bound_w, math.floor(src_w * ratio + 0.5))
        new_h = max(bound_h, math.floor(src_h * ratio + 0.5))
    else:
        new_w = min(bound_w, max(1, math.floor(src_w * ratio + 0.5)))
        new_h = min(bound_h, max(1, math.floor(src_h * ratio + 0.5)))
    return new_w, new_h


def apply_resize(
    image: Image.Image,
    width: Optional[int],
    height: Optional[int],
    fit: str = "inside",
    kernel: str = "lanczos3",
    background_color: str = "#000000",
) -> Image.Image:
    """根据适配策略缩放图像。

    - fill: 忽略宽高比，拉伸到目标尺寸
    - inside: 等比缩放到目标框之内
    - contain: 同 inside，再居中铺到目标尺寸的背景画布上
    - cover: 等比放大覆盖目标框并居中裁剪到目标尺寸
    - outside: 等比缩放使两边均不小于目标框，不裁剪
    """

    kernel_spec = KERNELS.get(kernel)
    if kernel_spec is None:
        raise InvalidConfigurationError(f"未知的重采样算法: {kernel}")

    target = resolve_target_size(image.size, width, height)
    if target is None:
        return image.copy()

    # 只给出一边时宽高比已由 resolve_target_size 保证，各策略结果一致。
    if fit == "fill" or width is None or height is None:
        return _resize(image, target, kernel_spec)
    if fit == "inside":
        return _resize(image, fitted_size(image.size, target, outside=False), kernel_spec)
    if fit == "outside":
        return _resize(image, fitted_size(image.size, target, outside=True), kernel_spec)
    if fit == "cover":
        return ImageOps.fit(image, target, kernel_spec.resample, centering=(0.5, 0.5))
    if fit == "contain":
        return _apply_contain(image, target, kernel_spec, background_color)

    raise InvalidConfigurationError(f"未知的尺寸适配模式: {fit}")


def _resize(image: Image.Image, size: Tuple[int, int], kernel_spec: KernelSpec) -> Image.Image:
    if image.size == size:
        return image.copy()
    return image.resize(size, kernel_spec.resample, reducing_gap=kernel_spec.reducing_gap)


def _apply_contain(
    image: Image.Image,
    target_size: Tuple[int, int],
    kernel_spec: KernelSpec,
    background: str,
) -> Image.Image:
    """使用 contain 模式适配尺寸，带透明通道的图像使用 RGBA 画布。"""

    resized = _resize(image, fitted_size(image.size, target_size, outside=False), kernel_spec)

    if resized.mode in {"RGBA", "LA"}:
        canvas = Image.new("RGBA", target_size, parse_hex_rgba(background))
        resized = resized.convert("RGBA")
    else:
        canvas = Image.new("RGB", target_size, parse_hex_color(background))
        if resized.mode != "RGB":
            resized = resized.convert("RGB")

    offset = (
        (target_size[0] - resized.width) // 2,
        (target_size[1] - resized.height) // 2,
    )
    canvas.paste(resized, offset)
    return canvas
