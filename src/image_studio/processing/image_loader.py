"""图片解码、方向校正与预览生成。"""

from __future__ import annotations

import base64
import io
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from PIL import ExifTags, Image, ImageOps, UnidentifiedImageError
from pillow_heif import register_heif_opener

from image_studio.core.encoders import EmbeddedMetadata
from image_studio.core.exceptions import ImageLoadingError
from image_studio.core.geometry import normalize_rotation
from image_studio.core.models import ImageMetadata

LOGGER = logging.getLogger(__name__)

register_heif_opener()

ORIENTATION_TAG = ExifTags.Base.Orientation
# EXIF Orientation 5~8 表示图像需要转置 90°/270°
_SWAPPING_ORIENTATIONS = {5, 6, 7, 8}

# 手动旋转为顺时针角度，PIL 的 ROTATE_* 为逆时针。
_CLOCKWISE_TRANSPOSE = {
    90: Image.Transpose.ROTATE_270,
    180: Image.Transpose.ROTATE_180,
    270: Image.Transpose.ROTATE_90,
}

DEFAULT_PREVIEW_SIZE = 2000
DEFAULT_THUMBNAIL_SIZE = 100
THUMBNAIL_QUALITY = 80


@dataclass(slots=True)
class LoadedImage:
    """已校正方向的图像及其原始元数据。"""

    path: Path
    payload: Image.Image
    source_format: str
    metadata: EmbeddedMetadata = field(default_factory=EmbeddedMetadata)

    @property
    def size(self) -> tuple[int, int]:
        return self.payload.size

    def close(self) -> None:
        self.payload.close()


def load_image(path: Path, rotation: int = 0) -> LoadedImage:
    """加载单张图片：先按 EXIF 自动旋转，再叠加顺时针手动旋转。

    返回值持有新的 Image 对象，调用者负责关闭。
    """

    rotation = normalize_rotation(rotation)
    try:
        with Image.open(path) as img:
            img.load()
            source_format = (img.format or "unknown").lower()

            # EXIF Orientation 校正，必须先于元数据提取（后者会删除方向标签）
            oriented = ImageOps.exif_transpose(img)
            metadata = _extract_metadata(img)
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        LOGGER.debug("无法识别图像文件 %s: %s", path, exc)
        raise ImageLoadingError(f"无法加载图像: {path}") from exc

    if rotation:
        rotated = oriented.transpose(_CLOCKWISE_TRANSPOSE[rotation])
        oriented.close()
        oriented = rotated

    return LoadedImage(path=Path(path), payload=oriented, source_format=source_format, metadata=metadata)


def read_metadata(path: Path) -> Optional[ImageMetadata]:
    """读取尺寸等元数据（宽高为 EXIF 旋转后的值），失败时返回 None。"""

    path = Path(path)
    try:
        with Image.open(path) as img:
            width, height = img.size
            orientation = img.getexif().get(ORIENTATION_TAG, 1)
            if orientation in _SWAPPING_ORIENTATIONS:
                width, height = height, width
            has_alpha = img.mode in {"RGBA", "LA", "PA"} or "transparency" in img.info
            image_format = (img.format or "unknown").lower()
        size = path.stat().st_size
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        LOGGER.warning("读取元数据失败 %s: %s", path, exc)
        return None

    return ImageMetadata(width=width, height=height, format=image_format, size=size, has_alpha=has_alpha)


def render_preview(path: Path, max_size: int = DEFAULT_PREVIEW_SIZE, rotation: int = 0) -> Image.Image:
    """生成画布预览图：应用旋转，超过 max_size 时等比缩小。"""

    loaded = load_image(path, rotation)
    preview = loaded.payload
    if preview.width > max_size or preview.height > max_size:
        preview.thumbnail((max_size, max_size), Image.Resampling.LANCZOS)
    return preview


def thumbnail_data_url(path: Path, size: int = DEFAULT_THUMBNAIL_SIZE) -> Optional[str]:
    """生成文件列表使用的 JPEG 缩略图 data URL，失败时返回 None。"""

    try:
        loaded = load_image(path)
    except ImageLoadingError as exc:
        LOGGER.warning("生成缩略图失败: %s", exc)
        return None

    image = loaded.payload
    try:
        image.thumbnail((size, size), Image.Resampling.LANCZOS)
        if image.mode not in {"RGB", "L"}:
            image = image.convert("RGB")
        buffer = io.BytesIO()
        image.save(buffer, format="JPEG", quality=THUMBNAIL_QUALITY)
    finally:
        loaded.close()

    encoded = base64.b64encode(buffer.getvalue()).decode("ascii")
    return f"data:image/jpeg;base64,{encoded}"


def _extract_metadata(img: Image.Image) -> EmbeddedMetadata:
    """提取 EXIF 与 ICC；像素已按方向校正，因此去掉 Orientation 标签。"""

    exif_bytes: Optional[bytes] = None
    exif = img.getexif()
    if exif:
        if ORIENTATION_TAG in exif:
            del exif[ORIENTATION_TAG]
        exif_bytes = exif.tobytes() if len(exif) else None

    return EmbeddedMetadata(exif=exif_bytes, icc_profile=img.info.get("icc_profile"))
