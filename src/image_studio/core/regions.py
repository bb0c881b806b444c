"""裁剪区域集合及其交互编辑规则。

坐标均为图像坐标（相对于当前旋转后的显示方向），
屏幕位移通过 ``scale`` 换算后再应用。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from itertools import count
from typing import Iterator, Optional

from image_studio.core.exceptions import InvalidRegionError
from image_studio.core.geometry import screen_delta_to_image
from image_studio.core.models import TEMP_REGION_ID, CropRegion, RotationChanged

LOGGER = logging.getLogger(__name__)

DRAW_PREVIEW_THRESHOLD = 5  # 小于此尺寸不显示临时框
COMMIT_THRESHOLD = 10  # 松开时超过此尺寸才保留
MIN_RESIZE_SIZE = 20

RESIZE_HANDLES = frozenset({"n", "s", "e", "w", "ne", "nw", "se", "sw"})
MOVE_ACTION = "move"


@dataclass(slots=True)
class _EditState:
    region_id: str
    action: str
    origin: CropRegion


class RegionModel:
    """管理当前图片的裁剪区域。"""

    def __init__(self, image_width: float, image_height: float) -> None:
        self.image_width = float(image_width)
        self.image_height = float(image_height)
        self.regions: list[CropRegion] = []
        self.selected_id: Optional[str] = None
        self._draw_start: Optional[tuple[float, float]] = None
        self._edit: Optional[_EditState] = None
        self._ids = count(1)

    def __iter__(self) -> Iterator[CropRegion]:
        return iter(self.regions)

    def __len__(self) -> int:
        return len(self.regions)

    @property
    def is_drawing(self) -> bool:
        return self._draw_start is not None

    def get(self, region_id: str) -> Optional[CropRegion]:
        for region in self.regions:
            if region.id == region_id:
                return region
        return None

    def permanent_regions(self) -> list[CropRegion]:
        """可导出的区域（不含临时框），保持列表顺序。"""

        return [region for region in self.regions if not region.is_temp]

    def hit_test(self, x: float, y: float) -> Optional[CropRegion]:
        for region in self.permanent_regions():
            if region.contains(x, y):
                return region
        return None

    def set_image_size(self, image_width: float, image_height: float) -> None:
        """切换图片时调用，旧区域全部作废。"""

        self.image_width = float(image_width)
        self.image_height = float(image_height)
        self.clear()

    # ------------------------------------------------------------------
    # 绘制新区域
    # ------------------------------------------------------------------

    def pointer_down(self, x: float, y: float) -> Optional[CropRegion]:
        """命中已有区域则选中它；否则开始绘制新区域。"""

        hit = self.hit_test(x, y)
        if hit is not None:
            self.selected_id = hit.id
            return hit

        self.selected_id = None
        self.begin_draw(x, y)
        return None

    def begin_draw(self, x: float, y: float) -> None:
        self._draw_start = (x, y)

    def update_draw(self, x: float, y: float) -> Optional[CropRegion]:
        if self._draw_start is None:
            return None

        x0, y0 = self._draw_start
        left = min(x0, x)
        top = min(y0, y)
        width = abs(x - x0)
        height = abs(y - y0)

        temp = self.get(TEMP_REGION_ID)
        if temp is not None:
            temp.left, temp.top, temp.width, temp.height = left, top, width, height
            return temp

        if width > DRAW_PREVIEW_THRESHOLD and height > DRAW_PREVIEW_THRESHOLD:
            temp = CropRegion(id=TEMP_REGION_ID, left=left, top=top, width=width, height=height)
            self.regions.append(temp)
            return temp
        return None

    def end_draw(self) -> Optional[CropRegion]:
        """松开指针：临时框足够大则转为正式区域，否则丢弃。"""

        if self._draw_start is None:
            return None
        self._draw_start = None

        temp = self.get(TEMP_REGION_ID)
        if temp is None:
            return None
        self.regions.remove(temp)

        if temp.width > COMMIT_THRESHOLD and temp.height > COMMIT_THRESHOLD:
            region = replace(temp, id=self._next_id())
            self.regions.append(region)
            self.selected_id = region.id
            LOGGER.debug("新增裁剪区域 %s: %s", region.id, region.rounded_box())
            return region
        return None

    # ------------------------------------------------------------------
    # 移动 / 调整大小
    # ------------------------------------------------------------------

    def move_region(
        self,
        region_id: str,
        delta_x: float,
        delta_y: float,
        scale: float,
        origin: Optional[CropRegion] = None,
    ) -> CropRegion:
        """按屏幕位移平移区域，结果不会越出图像边界。"""

        region = self._require(region_id)
        base = origin or replace(region)
        dx, dy = screen_delta_to_image(delta_x, delta_y, scale)

        region.left = max(0.0, min(self.image_width - base.width, base.left + dx))
        region.top = max(0.0, min(self.image_height - base.height, base.top + dy))
        return region

    def resize_region(
        self,
        region_id: str,
        handle: str,
        delta_x: float,
        delta_y: float,
        scale: float,
        origin: Optional[CropRegion] = None,
    ) -> CropRegion:
        """拖动八个控制点之一调整区域大小。

        受控方向上的尺寸不小于 ``MIN_RESIZE_SIZE``；越界时收缩尺寸以适配图像。
        """

        if handle not in RESIZE_HANDLES:
            raise InvalidRegionError(f"未知的控制点: {handle}")

        region = self._require(region_id)
        base = origin or replace(region)
        dx, dy = screen_delta_to_image(delta_x, delta_y, scale)

        left, top, width, height = base.left, base.top, base.width, base.height

        if "e" in handle:
            width = max(MIN_RESIZE_SIZE, base.width + dx)
        if "w" in handle:
            left = max(0.0, min(base.left + dx, base.right - MIN_RESIZE_SIZE))
            width = base.right - left
        if "s" in handle:
            height = max(MIN_RESIZE_SIZE, base.height + dy)
        if "n" in handle:
            top = max(0.0, min(base.top + dy, base.bottom - MIN_RESIZE_SIZE))
            height = base.bottom - top

        left = max(0.0, left)
        top = max(0.0, top)
        if left + width > self.image_width:
            width = self.image_width - left
        if top + height > self.image_height:
            height = self.image_height - top

        region.left, region.top, region.width, region.height = left, top, width, height
        return region

    def begin_edit(self, region_id: str, action: str) -> None:
        """记录拖动起点，之后的位移都相对该快照计算。"""

        if action != MOVE_ACTION and action not in RESIZE_HANDLES:
            raise InvalidRegionError(f"未知的编辑动作: {action}")
        region = self._require(region_id)
        self.selected_id = region_id
        self._edit = _EditState(region_id=region_id, action=action, origin=replace(region))

    def update_edit(self, delta_x: float, delta_y: float, scale: float) -> Optional[CropRegion]:
        edit = self._edit
        if edit is None:
            return None
        if edit.action == MOVE_ACTION:
            return self.move_region(edit.region_id, delta_x, delta_y, scale, origin=edit.origin)
        return self.resize_region(edit.region_id, edit.action, delta_x, delta_y, scale, origin=edit.origin)

    def end_edit(self) -> None:
        self._edit = None

    # ------------------------------------------------------------------
    # 删除 / 清空
    # ------------------------------------------------------------------

    def add_region(self, left: float, top: float, width: float, height: float) -> CropRegion:
        """直接添加区域（例如从会话文件恢复），越界部分会被裁掉。"""

        left = max(0.0, min(float(left), self.image_width))
        top = max(0.0, min(float(top), self.image_height))
        width = min(float(width), self.image_width - left)
        height = min(float(height), self.image_height - top)
        if width <= 0 or height <= 0:
            raise InvalidRegionError(f"区域尺寸非法: {width}x{height}")

        region = CropRegion(id=self._next_id(), left=left, top=top, width=width, height=height)
        self.regions.append(region)
        self.selected_id = region.id
        return region

    def delete(self, region_id: str) -> bool:
        before = len(self.regions)
        self.regions = [region for region in self.regions if region.id != region_id]
        if self.selected_id == region_id:
            self.selected_id = None
        return len(self.regions) != before

    def delete_selected(self) -> bool:
        if self.selected_id is None:
            return False
        return self.delete(self.selected_id)

    def clear(self) -> None:
        self.regions = []
        self.selected_id = None
        self._draw_start = None
        self._edit = None

    def on_rotation_changed(self, event: RotationChanged) -> None:
        """区域坐标只对单一方向有效，旋转后全部清除。"""

        if self.regions:
            LOGGER.debug("旋转 %d -> %d，清除 %d 个区域", event.previous, event.rotation, len(self.regions))
        self.image_width = float(event.effective_width)
        self.image_height = float(event.effective_height)
        self.clear()

    def _require(self, region_id: str) -> CropRegion:
        region = self.get(region_id)
        if region is None:
            raise InvalidRegionError(f"区域不存在: {region_id}")
        return region

    def _next_id(self) -> str:
        while True:
            candidate = f"region-{next(self._ids)}"
            if self.get(candidate) is None:
                return candidate
