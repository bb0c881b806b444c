"""输出命名、目录准备与冲突处理模块。"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from itertools import count
from pathlib import Path
from typing import Optional, Set

from image_studio.core.config import CONFLICT_STRATEGIES
from image_studio.core.encoders import get_encoder
from image_studio.core.exceptions import ImageWriteError, InvalidConfigurationError

LOGGER = logging.getLogger(__name__)

ORIGINAL_TOKEN = "{original}"
INDEX_TOKEN = "{index}"


def resize_output_name(
    source: Path,
    image_format: str,
    *,
    prefix: str = "",
    suffix: str = "",
    index: Optional[int] = None,
) -> str:
    """缩放输出文件名：{prefix}{原文件名}{suffix}[_{index}].{ext}"""

    extension = get_encoder(image_format).extension
    index_part = f"_{index}" if index is not None else ""
    return f"{prefix or ''}{source.stem}{suffix or ''}{index_part}.{extension}"


def crop_output_name(template: str, source: Path, index: int, image_format: str) -> str:
    """按模板生成裁剪输出文件名，index 从 1 开始并补零到两位。

    仅替换 {original} 与 {index}，其他花括号内容原样保留。
    """

    extension = get_encoder(image_format).extension
    name = template.replace(ORIGINAL_TOKEN, source.stem).replace(INDEX_TOKEN, f"{index:02d}")
    return f"{name}.{extension}"


def ensure_directory(path: Path) -> Path:
    """创建输出目录；目录已存在不视为错误。"""

    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise ImageWriteError(f"无法创建输出目录: {path}") from exc
    return path


@dataclass(slots=True)
class DestinationDecision:
    """封装输出文件决策。"""

    destination: Path
    action: str  # write | overwrite | rename | skip
    note: Optional[str] = None


class OutputManager:
    """负责输出目录与同名文件冲突策略。

    overwrite 为默认策略（后写入者覆盖）；rename 会同时避开本批次内已分配的路径。
    """

    def __init__(self, output_dir: Path, conflict_strategy: str = "overwrite") -> None:
        if conflict_strategy not in CONFLICT_STRATEGIES:
            raise InvalidConfigurationError(f"未知的冲突策略: {conflict_strategy}")
        self.output_dir = Path(output_dir)
        self.conflict_strategy = conflict_strategy
        self._reserved: Set[Path] = set()

    def prepare(self) -> Path:
        ensure_directory(self.output_dir)
        return self.output_dir

    def decide_destination(self, file_name: str) -> DestinationDecision:
        """根据冲突策略确定输出路径。"""

        destination = self.output_dir / file_name
        taken = destination.exists() or destination in self._reserved

        if not taken:
            self._reserved.add(destination)
            return DestinationDecision(destination=destination, action="write")

        existing_msg = f"目标已存在: {destination.name}"
        strategy = self.conflict_strategy

        if strategy == "skip":
            return DestinationDecision(destination=destination, action="skip", note=existing_msg)
        if strategy == "rename":
            renamed = self._generate_renamed_path(destination)
            self._reserved.add(renamed)
            return DestinationDecision(
                destination=renamed,
                action="rename",
                note=f"{existing_msg} -> 重命名为 {renamed.name}",
            )

        LOGGER.debug("覆盖已有输出: %s", destination)
        self._reserved.add(destination)
        return DestinationDecision(destination=destination, action="overwrite", note=existing_msg)

    def _generate_renamed_path(self, destination: Path) -> Path:
        """在 rename 策略下生成新的文件名。"""

        stem = destination.stem
        suffix = destination.suffix

        for idx in count(1):
            candidate = destination.with_name(f"{stem}_{idx}{suffix}")
            if not candidate.exists() and candidate not in self._reserved:
                return candidate

        # 理论上不会执行到此处
        return destination
