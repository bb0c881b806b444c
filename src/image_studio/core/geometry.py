"""屏幕坐标与图像坐标之间的换算。

所有函数均为无状态纯函数：调用方显式传入容器尺寸、视图状态与图像尺寸。
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

from image_studio.core.exceptions import InvalidConfigurationError

MIN_ZOOM = 0.1
MAX_ZOOM = 5.0
FIT_RATIO = 0.9  # 基础显示尺寸占容器的比例

Point = Tuple[float, float]


@dataclass(slots=True, frozen=True)
class DisplayTransform:
    """图像在容器中的显示位置与缩放系数。"""

    display_width: float
    display_height: float
    offset_x: float
    offset_y: float
    scale: float


IDENTITY_TRANSFORM = DisplayTransform(0.0, 0.0, 0.0, 0.0, 1.0)


def normalize_rotation(rotation: int) -> int:
    """将角度归一化到 {0, 90, 180, 270}。"""

    if rotation % 90 != 0:
        raise InvalidConfigurationError(f"旋转角度必须为 90 的整数倍: {rotation}")
    return rotation % 360


def clamp_zoom(zoom: float) -> float:
    return max(MIN_ZOOM, min(MAX_ZOOM, zoom))


def effective_dimensions(natural_width: float, natural_height: float, rotation: int) -> Tuple[float, float]:
    """90°/270° 旋转时交换宽高。"""

    if normalize_rotation(rotation) in (90, 270):
        return natural_height, natural_width
    return natural_width, natural_height


def display_transform(
    container_width: float,
    container_height: float,
    effective_width: float,
    effective_height: float,
    zoom: float,
    pan_x: float,
    pan_y: float,
) -> DisplayTransform:
    """计算图像在容器中的显示矩形。

    先按宽高比适配到容器的 90%，再乘以 zoom，居中后叠加平移量。
    """

    if container_width <= 0 or container_height <= 0 or effective_width <= 0 or effective_height <= 0:
        return IDENTITY_TRANSFORM

    container_ratio = container_width / container_height
    image_ratio = effective_width / effective_height

    if image_ratio > container_ratio:
        display_width = container_width * FIT_RATIO
        display_height = display_width / image_ratio
    else:
        display_height = container_height * FIT_RATIO
        display_width = display_height * image_ratio

    display_width *= zoom
    display_height *= zoom

    offset_x = (container_width - display_width) / 2 + pan_x
    offset_y = (container_height - display_height) / 2 + pan_y

    return DisplayTransform(
        display_width=display_width,
        display_height=display_height,
        offset_x=offset_x,
        offset_y=offset_y,
        scale=display_width / effective_width,
    )


def screen_to_image(
    screen_x: float,
    screen_y: float,
    container_origin: Point,
    transform: DisplayTransform,
    effective_width: float,
    effective_height: float,
) -> Point:
    """屏幕坐标 -> 图像坐标，结果始终夹紧到 [0, effW] × [0, effH]。"""

    origin_x, origin_y = container_origin
    x = (screen_x - origin_x - transform.offset_x) / transform.scale
    y = (screen_y - origin_y - transform.offset_y) / transform.scale
    return (
        max(0.0, min(float(effective_width), x)),
        max(0.0, min(float(effective_height), y)),
    )


def image_to_screen(x: float, y: float, container_origin: Point, transform: DisplayTransform) -> Point:
    """图像坐标 -> 屏幕坐标，用于绘制区域框。"""

    origin_x, origin_y = container_origin
    return (
        origin_x + transform.offset_x + x * transform.scale,
        origin_y + transform.offset_y + y * transform.scale,
    )


def screen_delta_to_image(delta_x: float, delta_y: float, scale: float) -> Point:
    if scale <= 0:
        return 0.0, 0.0
    return delta_x / scale, delta_y / scale
