"""裁剪会话：文件列表、视图状态与区域模型的显式状态容器。"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Iterable, Optional

from image_studio.core.config import DEFAULT_NAMING_TEMPLATE, CropConfig
from image_studio.core.exceptions import InvalidConfigurationError
from image_studio.core.geometry import (
    DisplayTransform,
    Point,
    clamp_zoom,
    display_transform,
    effective_dimensions,
    normalize_rotation,
    screen_to_image,
)
from image_studio.core.models import CropRegion, ImageFile, RotationChanged
from image_studio.core.regions import RegionModel

LOGGER = logging.getLogger(__name__)

ZOOM_STEP = 0.25
WHEEL_ZOOM_STEP = 0.1

RotationListener = Callable[[RotationChanged], None]


@dataclass(slots=True)
class ViewState:
    """单张图片的视图状态。"""

    zoom: float = 1.0
    pan_x: float = 0.0
    pan_y: float = 0.0
    rotation: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {"zoom": self.zoom, "pan_x": self.pan_x, "pan_y": self.pan_y, "rotation": self.rotation}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ViewState":
        return cls(
            zoom=clamp_zoom(float(data.get("zoom", 1.0))),
            pan_x=float(data.get("pan_x", 0.0)),
            pan_y=float(data.get("pan_y", 0.0)),
            rotation=normalize_rotation(int(data.get("rotation", 0))),
        )


class CropSession:
    """一次裁剪操作的全部界面状态。

    旋转变化以 ``RotationChanged`` 事件发布，区域模型作为订阅者自行清空。
    """

    def __init__(self, files: Iterable[ImageFile] = ()) -> None:
        self.files: list[ImageFile] = []
        self.current_index = 0
        self.view = ViewState()
        self.regions = RegionModel(0, 0)
        self._rotation_listeners: list[RotationListener] = [self.regions.on_rotation_changed]
        self.set_files(files)

    # ------------------------------------------------------------------
    # 文件列表
    # ------------------------------------------------------------------

    @property
    def current_file(self) -> Optional[ImageFile]:
        if not self.files:
            return None
        return self.files[self.current_index]

    def set_files(self, files: Iterable[ImageFile]) -> None:
        self.files = list(files)
        self.current_index = 0
        self._reset_for_current_file()

    def add_files(self, files: Iterable[ImageFile]) -> int:
        """追加文件，按路径去重，返回实际新增的数量。"""

        existing = {item.path for item in self.files}
        added = 0
        for item in files:
            if item.path in existing:
                continue
            existing.add(item.path)
            self.files.append(item)
            added += 1
        if added and len(self.files) == added:
            self._reset_for_current_file()
        return added

    def remove_file(self, path: Path) -> None:
        self.files = [item for item in self.files if item.path != path]
        self.current_index = min(self.current_index, max(0, len(self.files) - 1))
        self._reset_for_current_file()

    def clear_files(self) -> None:
        self.set_files(())

    def set_current_index(self, index: int) -> None:
        if not 0 <= index < max(1, len(self.files)):
            raise InvalidConfigurationError(f"文件索引越界: {index}")
        self.current_index = index
        self._reset_for_current_file()

    def update_file(self, updated: ImageFile) -> None:
        """用解析出尺寸的新 ImageFile 替换旧记录。"""

        for idx, item in enumerate(self.files):
            if item.path == updated.path:
                self.files[idx] = updated
                if idx == self.current_index:
                    self._reset_for_current_file()
                return

    # ------------------------------------------------------------------
    # 视图
    # ------------------------------------------------------------------

    @property
    def effective_size(self) -> tuple[float, float]:
        current = self.current_file
        if current is None or not current.width or not current.height:
            return 0.0, 0.0
        return effective_dimensions(current.width, current.height, self.view.rotation)

    def set_zoom(self, zoom: float) -> None:
        self.view.zoom = clamp_zoom(zoom)

    def zoom_in(self) -> None:
        self.set_zoom(self.view.zoom + ZOOM_STEP)

    def zoom_out(self) -> None:
        self.set_zoom(self.view.zoom - ZOOM_STEP)

    def wheel(self, delta_y: float) -> None:
        self.set_zoom(self.view.zoom + (-WHEEL_ZOOM_STEP if delta_y > 0 else WHEEL_ZOOM_STEP))

    def set_pan(self, pan_x: float, pan_y: float) -> None:
        self.view.pan_x = pan_x
        self.view.pan_y = pan_y

    def subscribe_rotation(self, listener: RotationListener) -> None:
        self._rotation_listeners.append(listener)

    def set_rotation(self, rotation: int) -> None:
        """切换旋转角度：缩放与平移复位，区域由订阅者清除。"""

        new_rotation = normalize_rotation(rotation)
        previous = self.view.rotation
        self.view = ViewState(rotation=new_rotation)
        effective_w, effective_h = self.effective_size
        event = RotationChanged(
            previous=previous,
            rotation=new_rotation,
            effective_width=effective_w,
            effective_height=effective_h,
        )
        for listener in self._rotation_listeners:
            listener(event)

    def rotate_clockwise(self) -> None:
        self.set_rotation(self.view.rotation + 90)

    def reset_view(self) -> None:
        if self.view.rotation != 0:
            self.set_rotation(0)
        else:
            self.view = ViewState()

    def transform(self, container_width: float, container_height: float) -> DisplayTransform:
        effective_w, effective_h = self.effective_size
        return display_transform(
            container_width,
            container_height,
            effective_w,
            effective_h,
            self.view.zoom,
            self.view.pan_x,
            self.view.pan_y,
        )

    # ------------------------------------------------------------------
    # 指针交互：屏幕坐标进入，区域模型只接收图像坐标
    # ------------------------------------------------------------------

    def to_image(self, screen: Point, container_origin: Point, container_size: Point) -> Point:
        effective_w, effective_h = self.effective_size
        transform = self.transform(*container_size)
        return screen_to_image(screen[0], screen[1], container_origin, transform, effective_w, effective_h)

    def pointer_down(self, screen: Point, container_origin: Point, container_size: Point) -> Optional[CropRegion]:
        return self.regions.pointer_down(*self.to_image(screen, container_origin, container_size))

    def pointer_move(self, screen: Point, container_origin: Point, container_size: Point) -> Optional[CropRegion]:
        return self.regions.update_draw(*self.to_image(screen, container_origin, container_size))

    def pointer_up(self) -> Optional[CropRegion]:
        return self.regions.end_draw()

    # ------------------------------------------------------------------
    # 导出与序列化
    # ------------------------------------------------------------------

    def build_crop_config(
        self,
        output_dir: Path,
        *,
        image_format: str = "jpeg",
        quality: int = 95,
        preserve_metadata: bool = True,
        naming_template: str = DEFAULT_NAMING_TEMPLATE,
    ) -> CropConfig:
        return CropConfig(
            output_dir=output_dir,
            regions=tuple(self.regions.permanent_regions()),
            format=image_format,
            quality=quality,
            preserve_metadata=preserve_metadata,
            naming_template=naming_template,
            rotation=self.view.rotation,
        )

    def to_dict(self) -> dict[str, Any]:
        current = self.current_file
        return {
            "source": str(current.path) if current else None,
            "view": self.view.to_dict(),
            "regions": [region.to_dict() for region in self.regions.permanent_regions()],
        }

    def restore(self, data: dict[str, Any]) -> None:
        """恢复视图与区域。区域在旋转之后载入，避免被旋转事件清除。"""

        view = ViewState.from_dict(data.get("view", {}))
        self.set_rotation(view.rotation)
        self.set_zoom(view.zoom)
        self.set_pan(view.pan_x, view.pan_y)
        for raw in data.get("regions", []):
            region = CropRegion.from_dict(raw)
            self.regions.add_region(region.left, region.top, region.width, region.height)

    def _reset_for_current_file(self) -> None:
        self.view = ViewState()
        effective_w, effective_h = self.effective_size
        self.regions.set_image_size(effective_w, effective_h)
