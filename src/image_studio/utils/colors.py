"""颜色工具函数。"""

from __future__ import annotations

import re
from typing import Tuple

from image_studio.core.exceptions import InvalidConfigurationError

HEX_COLOR_RE = re.compile(r"^#?([0-9a-fA-F]{3,4}|[0-9a-fA-F]{6}|[0-9a-fA-F]{8})$")


def parse_hex_rgba(value: str) -> Tuple[int, int, int, int]:
    """解析 #RGB / #RGBA / #RRGGBB / #RRGGBBAA，未给出透明度时视为不透明。"""

    if not value:
        raise InvalidConfigurationError("颜色值不能为空")

    match = HEX_COLOR_RE.match(value.strip())
    if not match:
        raise InvalidConfigurationError(f"无法解析颜色值: {value}")

    hex_value = match.group(1)
    if len(hex_value) in (3, 4):
        hex_value = "".join(ch * 2 for ch in hex_value)
    if len(hex_value) == 6:
        hex_value += "ff"

    r, g, b, a = (int(hex_value[i : i + 2], 16) for i in range(0, 8, 2))
    return r, g, b, a


def parse_hex_color(value: str) -> Tuple[int, int, int]:
    """将 HEX 字符串解析为 RGB 三元组（忽略透明度）。"""

    r, g, b, _ = parse_hex_rgba(value)
    return r, g, b
