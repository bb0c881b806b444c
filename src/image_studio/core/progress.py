"""进度更新的数据模型。"""

from __future__ import annotations

from dataclasses import dataclass

COMPLETE_SENTINEL = "Complete"


@dataclass(slots=True, frozen=True)
class ProcessingProgress:
    """批处理过程中的进度信息。"""

    current_file: str
    current_index: int
    total_files: int
    percentage: float

    @property
    def is_complete(self) -> bool:
        return self.current_file == COMPLETE_SENTINEL and self.percentage >= 100


def unit_progress(current_file: str, current_index: int, total: int) -> ProcessingProgress:
    percentage = 100.0 * current_index / total if total else 100.0
    return ProcessingProgress(
        current_file=current_file,
        current_index=current_index,
        total_files=total,
        percentage=percentage,
    )


def complete_progress(total: int) -> ProcessingProgress:
    return ProcessingProgress(
        current_file=COMPLETE_SENTINEL,
        current_index=total,
        total_files=total,
        percentage=100.0,
    )
