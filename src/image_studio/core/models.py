"""核心数据模型定义。"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Optional

TEMP_REGION_ID = "temp"


@dataclass(slots=True, frozen=True)
class ImageFile:
    """文件列表中的一张图片。

    ``width``/``height`` 为 EXIF 旋转后的自然尺寸，元数据解析前为 ``None``。
    """

    path: Path
    name: str
    extension: str
    size: int
    width: Optional[int] = None
    height: Optional[int] = None

    def with_dimensions(self, width: int, height: int) -> "ImageFile":
        return replace(self, width=width, height=height)

    @property
    def aspect_ratio(self) -> Optional[float]:
        if not self.width or not self.height:
            return None
        return self.width / self.height


@dataclass(slots=True)
class ImageMetadata:
    """图片元数据（尺寸已按 EXIF 方向校正）。"""

    width: int
    height: int
    format: str
    size: int
    has_alpha: bool


@dataclass(slots=True)
class CropRegion:
    """图像坐标系下的裁剪矩形，坐标相对于当前显示（已旋转）的方向。"""

    id: str
    left: float
    top: float
    width: float
    height: float

    @property
    def is_temp(self) -> bool:
        return self.id == TEMP_REGION_ID

    @property
    def right(self) -> float:
        return self.left + self.width

    @property
    def bottom(self) -> float:
        return self.top + self.height

    def contains(self, x: float, y: float) -> bool:
        return self.left <= x <= self.right and self.top <= y <= self.bottom

    def rounded_box(self) -> tuple[int, int, int, int]:
        """返回取整后的 (left, top, width, height)。"""

        return round(self.left), round(self.top), round(self.width), round(self.height)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "left": self.left,
            "top": self.top,
            "width": self.width,
            "height": self.height,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CropRegion":
        return cls(
            id=str(data["id"]),
            left=float(data["left"]),
            top=float(data["top"]),
            width=float(data["width"]),
            height=float(data["height"]),
        )


@dataclass(slots=True, frozen=True)
class RotationChanged:
    """视图旋转角度变化事件，区域坐标随之失效。"""

    previous: int
    rotation: int
    effective_width: float
    effective_height: float


@dataclass(slots=True)
class ProcessingResult:
    """单个处理单元（一个文件或一个区域）的结果。"""

    success: bool
    input_path: Path
    output_path: Optional[Path] = None
    error: Optional[str] = None


@dataclass(slots=True)
class BatchResult:
    """批处理的汇总结果，completed 与 failed 互不重叠且覆盖全部单元。"""

    completed: list[ProcessingResult] = field(default_factory=list)
    failed: list[ProcessingResult] = field(default_factory=list)
    total_time_ms: float = 0.0

    @property
    def total(self) -> int:
        return len(self.completed) + len(self.failed)

    def record(self, result: ProcessingResult) -> None:
        if result.success:
            self.completed.append(result)
        else:
            self.failed.append(result)

    def all_results(self) -> list[ProcessingResult]:
        """返回所有结果记录，方便生成报告。"""

        return [*self.completed, *self.failed]
