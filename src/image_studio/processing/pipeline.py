"""批处理编排：顺序执行处理单元、发出进度并汇总结果。"""

from __future__ import annotations

import enum
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterator, Optional, Sequence

from image_studio.core.config import CropConfig, ResizeConfig
from image_studio.core.exceptions import (
    ImageLoadingError,
    ImageStudioError,
    ImageWriteError,
    InvalidConfigurationError,
)
from image_studio.core.models import BatchResult, CropRegion, ProcessingResult
from image_studio.core.output_manager import OutputManager, crop_output_name, resize_output_name
from image_studio.core.progress import ProcessingProgress, complete_progress, unit_progress
from image_studio.processing.image_loader import LoadedImage, load_image
from image_studio.processing.worker import CropTask, ResizeTask, failed_result, run_crop_region, run_resize_task

LOGGER = logging.getLogger(__name__)


ProgressCallback = Optional[Callable[[ProcessingProgress], None]]


class BatchState(enum.Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETE = "complete"


@dataclass(slots=True)
class BatchUnit:
    """一个处理单元：进度中显示的名称与执行函数。"""

    label: str
    execute: Callable[[], ProcessingResult]


class BatchRunner:
    """顺序执行一批处理单元。

    状态只会 IDLE -> RUNNING -> COMPLETE，不支持中途取消。
    ``events()`` 每完成一个单元产出一次进度，最后产出一次 "Complete"，
    共 n + 1 次；结束后结果保存在 ``result``。
    """

    def __init__(
        self,
        units: Sequence[BatchUnit],
        output_manager: OutputManager,
        *,
        on_start: Optional[Callable[[], None]] = None,
        on_finish: Optional[Callable[[], None]] = None,
    ) -> None:
        self.units = list(units)
        self.output_manager = output_manager
        self.state = BatchState.IDLE
        self.result: Optional[BatchResult] = None
        self._on_start = on_start
        self._on_finish = on_finish

    @property
    def total(self) -> int:
        return len(self.units)

    def events(self) -> Iterator[ProcessingProgress]:
        if self.state is not BatchState.IDLE:
            raise ImageStudioError("批处理任务只能执行一次")

        self.state = BatchState.RUNNING
        started = time.perf_counter()
        result = BatchResult()
        total = self.total
        LOGGER.info("开始批处理，共 %d 个单元，输出目录 %s", total, self.output_manager.output_dir)

        try:
            self.output_manager.prepare()
        except ImageWriteError as exc:
            # 每个单元写入时会各自失败并记录
            LOGGER.error("%s", exc)

        try:
            if self._on_start is not None and total:
                self._on_start()

            for index, unit in enumerate(self.units, start=1):
                outcome = unit.execute()
                result.record(outcome)
                yield unit_progress(unit.label, index, total)
        finally:
            if self._on_finish is not None:
                self._on_finish()

        result.total_time_ms = (time.perf_counter() - started) * 1000
        self.result = result
        self.state = BatchState.COMPLETE
        LOGGER.info(
            "批处理完成：成功 %d，失败 %d，耗时 %.0f ms",
            len(result.completed),
            len(result.failed),
            result.total_time_ms,
        )
        yield complete_progress(total)

    def run(self, progress_callback: ProgressCallback = None) -> BatchResult:
        for event in self.events():
            if progress_callback is not None:
                progress_callback(event)
        if self.result is None:
            raise ImageStudioError("批处理未产生结果")
        return self.result


# ----------------------------------------------------------------------
# 缩放
# ----------------------------------------------------------------------


def resize(input_path: Path, output_path: Path, config: ResizeConfig) -> ProcessingResult:
    """单文件缩放，失败以结果返回而不抛出。"""

    try:
        config.validate()
    except ImageStudioError as exc:
        return failed_result(Path(input_path), str(exc))
    return run_resize_task(ResizeTask(source_path=Path(input_path), dest_path=Path(output_path), config=config))


def build_resize_runner(files: Sequence[Path], config: ResizeConfig) -> BatchRunner:
    """构建批量缩放任务；调用方可迭代 ``events()`` 并在结束后读取 ``result``。"""

    config_error = _validation_error(config)
    output_manager = _make_output_manager(config.output_dir, config.conflict_strategy, config_error)

    def make_unit(source: Path) -> BatchUnit:
        def execute() -> ProcessingResult:
            if config_error:
                return failed_result(source, config_error)
            name = resize_output_name(source, config.format, prefix=config.prefix, suffix=config.suffix)
            decision = output_manager.decide_destination(name)
            if decision.action == "skip":
                LOGGER.info("跳过输出（已存在）：%s", decision.destination)
                return failed_result(source, decision.note or "目标已存在")
            return run_resize_task(ResizeTask(source_path=source, dest_path=decision.destination, config=config))

        return BatchUnit(label=source.name, execute=execute)

    return BatchRunner([make_unit(Path(path)) for path in files], output_manager)


def batch_resize(
    files: Sequence[Path],
    config: ResizeConfig,
    progress_callback: ProgressCallback = None,
) -> BatchResult:
    """批量缩放入口。"""

    return build_resize_runner(files, config).run(progress_callback)


# ----------------------------------------------------------------------
# 裁剪
# ----------------------------------------------------------------------


class _CropSource:
    """批次内共享的源图像：解码一次，供所有区域使用。"""

    def __init__(self, path: Path, rotation: int) -> None:
        self.path = path
        self.rotation = rotation
        self.loaded: Optional[LoadedImage] = None
        self.error: Optional[str] = None

    def load(self) -> None:
        try:
            self.loaded = load_image(self.path, self.rotation)
        except ImageLoadingError as exc:
            LOGGER.warning("%s", exc)
            self.error = str(exc)
        else:
            LOGGER.debug("旋转后图像尺寸: %dx%d", *self.loaded.size)

    def close(self) -> None:
        if self.loaded is not None:
            self.loaded.close()
            self.loaded = None


def build_crop_runner(input_path: Path, config: CropConfig) -> BatchRunner:
    config_error = _validation_error(config)
    source_path = Path(input_path)
    output_manager = _make_output_manager(config.output_dir, config.conflict_strategy, config_error)
    source = _CropSource(source_path, config.rotation)

    def make_unit(index: int, region: CropRegion) -> BatchUnit:
        def execute() -> ProcessingResult:
            if config_error:
                return failed_result(source_path, config_error)
            if source.loaded is None:
                return failed_result(source_path, source.error or f"无法加载图像: {source_path}")
            name = crop_output_name(config.naming_template, source_path, index, config.format)
            decision = output_manager.decide_destination(name)
            if decision.action == "skip":
                return failed_result(source_path, decision.note or "目标已存在")
            LOGGER.debug("处理区域 %d: %s (rotation=%d)", index, region.rounded_box(), config.rotation)
            return run_crop_region(
                CropTask(source=source.loaded, region=region, dest_path=decision.destination, config=config)
            )

        return BatchUnit(label=f"Region {index}", execute=execute)

    regions = [region for region in config.regions if not region.is_temp]
    units = [make_unit(index, region) for index, region in enumerate(regions, start=1)]
    on_start = None if config_error else source.load
    return BatchRunner(units, output_manager, on_start=on_start, on_finish=source.close)


def crop(
    input_path: Path,
    config: CropConfig,
    progress_callback: ProgressCallback = None,
) -> BatchResult:
    """对单张图片按多个区域裁剪，每个区域独立成功或失败。"""

    return build_crop_runner(input_path, config).run(progress_callback)


def _validation_error(config: ResizeConfig | CropConfig) -> Optional[str]:
    """配置错误不向外抛出，而是让批次内每个单元以该消息失败。"""

    try:
        config.validate()
    except InvalidConfigurationError as exc:
        LOGGER.error("配置不合法: %s", exc)
        return str(exc)
    return None


def _make_output_manager(output_dir: Path, conflict_strategy: str, config_error: Optional[str]) -> OutputManager:
    if config_error:
        return OutputManager(output_dir)
    return OutputManager(output_dir, conflict_strategy)
