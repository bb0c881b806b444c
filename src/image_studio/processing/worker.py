"""单个处理单元：一张图片的缩放或一个区域的裁剪。"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from PIL import Image

from image_studio.core.config import CropConfig, ResizeConfig
from image_studio.core.encoders import encode_image
from image_studio.core.exceptions import ImageStudioError
from image_studio.core.models import CropRegion, ProcessingResult
from image_studio.core.output_manager import ensure_directory
from image_studio.processing.crop import extract_region
from image_studio.processing.image_loader import LoadedImage, load_image
from image_studio.processing.resize import apply_resize

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class ResizeTask:
    """描述单个缩放任务。"""

    source_path: Path
    dest_path: Path
    config: ResizeConfig


@dataclass(slots=True)
class CropTask:
    """描述单个区域裁剪任务，源图像已在批次开始时解码。"""

    source: LoadedImage
    region: CropRegion
    dest_path: Path
    config: CropConfig


def run_resize_task(task: ResizeTask) -> ProcessingResult:
    """解码、缩放、编码并写入，任何阶段失败都转为失败结果。"""

    loaded: Optional[LoadedImage] = None
    resized: Optional[Image.Image] = None
    config = task.config

    try:
        loaded = load_image(task.source_path)
        resized = apply_resize(
            loaded.payload,
            config.width,
            config.height,
            fit=config.fit,
            kernel=config.kernel,
            background_color=config.background_color,
        )
        ensure_directory(task.dest_path.parent)
        encode_image(
            resized,
            task.dest_path,
            config.format,
            config.quality,
            metadata=loaded.metadata if config.preserve_metadata else None,
        )
    except ImageStudioError as exc:
        LOGGER.warning("缩放失败 %s: %s", task.source_path.name, exc)
        return _failure(task.source_path, exc)
    except Exception as exc:  # noqa: BLE001
        LOGGER.exception("缩放出现未预期异常 %s", task.source_path)
        return _failure(task.source_path, exc)
    finally:
        _close_if_needed(resized, loaded.payload if loaded else None)

    return ProcessingResult(success=True, input_path=task.source_path, output_path=task.dest_path)


def run_crop_region(task: CropTask) -> ProcessingResult:
    """从已旋转的源图像中提取一个区域并写入。"""

    cropped: Optional[Image.Image] = None
    config = task.config
    source_path = task.source.path

    try:
        cropped = extract_region(task.source.payload, task.region)
        encode_image(
            cropped,
            task.dest_path,
            config.format,
            config.quality,
            metadata=task.source.metadata if config.preserve_metadata else None,
        )
    except ImageStudioError as exc:
        LOGGER.warning("裁剪区域失败 %s: %s", task.region.id, exc)
        return _failure(source_path, exc)
    except Exception as exc:  # noqa: BLE001
        LOGGER.exception("裁剪出现未预期异常 %s", source_path)
        return _failure(source_path, exc)
    finally:
        _close_if_needed(cropped)

    return ProcessingResult(success=True, input_path=source_path, output_path=task.dest_path)


def failed_result(source_path: Path, message: str) -> ProcessingResult:
    return ProcessingResult(success=False, input_path=source_path, error=message)


def _failure(source_path: Path, exc: Exception) -> ProcessingResult:
    return failed_result(source_path, str(exc) or exc.__class__.__name__)


def _close_if_needed(*images: Optional[Image.Image]) -> None:
    for img in images:
        if img is not None:
            img.close()
