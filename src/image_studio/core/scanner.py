"""文件扫描与文件信息读取。"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Optional

from image_studio.core.models import ImageFile

LOGGER = logging.getLogger(__name__)

IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".gif", ".bmp", ".tiff", ".tif", ".webp", ".heic", ".heif"}


def is_supported_image(path: Path) -> bool:
    return path.suffix.lower() in IMAGE_EXTENSIONS


def list_supported_images(folder: Path) -> list[Path]:
    """列出目录下（不递归）扩展名受支持的图片，按路径排序。

    目录无法读取时返回空列表。
    """

    try:
        entries = list(Path(folder).iterdir())
    except OSError as exc:
        LOGGER.warning("读取目录失败 %s: %s", folder, exc)
        return []

    images = [entry for entry in entries if entry.is_file() and is_supported_image(entry)]
    images.sort(key=str)
    return images


def read_file_info(path: Path) -> Optional[ImageFile]:
    """根据 stat 信息构造 ImageFile，失败时返回 None。"""

    path = Path(path)
    try:
        stats = path.stat()
    except OSError as exc:
        LOGGER.warning("读取文件信息失败 %s: %s", path, exc)
        return None

    return ImageFile(
        path=path,
        name=path.name,
        extension=path.suffix.lower(),
        size=stats.st_size,
    )


def collect_inputs(sources: Iterable[Path]) -> list[Path]:
    """展开命令行传入的文件与目录，去重并保持出现顺序。"""

    collected: list[Path] = []
    seen: set[Path] = set()

    for source in sources:
        candidates = list_supported_images(source) if source.is_dir() else [source]
        for candidate in candidates:
            resolved = candidate.resolve()
            if resolved in seen:
                continue
            seen.add(resolved)
            collected.append(candidate)

    return collected
