"""区域提取。"""

from __future__ import annotations

from PIL import Image

from image_studio.core.exceptions import InvalidRegionError
from image_studio.core.models import CropRegion


def validate_region(region: CropRegion, image_size: tuple[int, int]) -> tuple[int, int, int, int]:
    """取整并校验区域，返回 PIL 使用的 (left, top, right, bottom)。"""

    left, top, width, height = region.rounded_box()
    image_w, image_h = image_size

    if width <= 0 or height <= 0:
        raise InvalidRegionError(f"区域尺寸非法: {width}x{height}")
    if left < 0 or top < 0 or left + width > image_w or top + height > image_h:
        raise InvalidRegionError(
            f"区域 ({left}, {top}, {width}, {height}) 超出图像范围 {image_w}x{image_h}"
        )
    return left, top, left + width, top + height


def extract_region(image: Image.Image, region: CropRegion) -> Image.Image:
    box = validate_region(region, image.size)
    return image.crop(box)
