"""输出格式编码策略表。

新增格式只需在 ``ENCODERS`` 中注册一个 ``EncoderSpec``。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Optional

from PIL import Image

from image_studio.core.exceptions import ImageWriteError, InvalidConfigurationError

LOGGER = logging.getLogger(__name__)

PNG_MAX_COMPRESS_LEVEL = 9
STRIPPED_INFO_KEYS = ("icc_profile", "exif")


@dataclass(slots=True)
class EmbeddedMetadata:
    """随图片携带的 EXIF / ICC 数据。"""

    exif: Optional[bytes] = None
    icc_profile: Optional[bytes] = None


@dataclass(slots=True, frozen=True)
class EncoderSpec:
    """单个输出格式的编码能力描述。"""

    pil_format: str
    extension: str
    quality_params: Callable[[int], dict[str, Any]]
    allowed_modes: frozenset[str]
    supports_exif: bool = True


def png_compress_level(quality: int) -> int:
    """PNG 没有质量参数，按 floor((100 - q) / 11) 映射为压缩级别。"""

    level = (100 - quality) // 11
    return max(0, min(PNG_MAX_COMPRESS_LEVEL, level))


ENCODERS: dict[str, EncoderSpec] = {
    "jpeg": EncoderSpec(
        pil_format="JPEG",
        extension="jpeg",
        quality_params=lambda quality: {"quality": quality, "optimize": True},
        allowed_modes=frozenset({"RGB", "L"}),
    ),
    "png": EncoderSpec(
        pil_format="PNG",
        extension="png",
        quality_params=lambda quality: {"compress_level": png_compress_level(quality)},
        allowed_modes=frozenset({"RGB", "RGBA", "L", "LA", "P"}),
    ),
    "webp": EncoderSpec(
        pil_format="WEBP",
        extension="webp",
        quality_params=lambda quality: {"quality": quality},
        allowed_modes=frozenset({"RGB", "RGBA"}),
    ),
    "tiff": EncoderSpec(
        pil_format="TIFF",
        extension="tiff",
        quality_params=lambda quality: {"compression": "jpeg", "quality": quality},
        allowed_modes=frozenset({"RGB", "L"}),
        supports_exif=False,
    ),
}


def get_encoder(image_format: str) -> EncoderSpec:
    encoder = ENCODERS.get(image_format.lower())
    if encoder is None:
        raise InvalidConfigurationError(f"不支持的输出格式: {image_format}")
    return encoder


def prepare_for_encoder(image: Image.Image, encoder: EncoderSpec) -> Image.Image:
    """将图像模式转换为编码器可接受的模式。"""

    if image.mode in encoder.allowed_modes:
        return image

    has_alpha = image.mode in {"RGBA", "LA"} or (image.mode == "P" and "transparency" in image.info)
    if has_alpha and "RGBA" in encoder.allowed_modes:
        return image.convert("RGBA")
    if has_alpha:
        return _flatten_alpha(image)
    return image.convert("RGB")


def encode_image(
    image: Image.Image,
    destination: Path,
    image_format: str,
    quality: int,
    metadata: Optional[EmbeddedMetadata] = None,
) -> None:
    """按格式策略编码并写入磁盘。metadata 为 None 时剥离元数据。"""

    encoder = get_encoder(image_format)
    image_to_save = prepare_for_encoder(image, encoder)

    save_params = encoder.quality_params(quality)
    if metadata is not None:
        if metadata.exif and encoder.supports_exif:
            save_params["exif"] = metadata.exif
        if metadata.icc_profile:
            save_params["icc_profile"] = metadata.icc_profile
    else:
        # PNG/TIFF 编码器会回退到 image.info 中的 ICC/EXIF
        if image_to_save is image:
            image_to_save = image.copy()
        for key in STRIPPED_INFO_KEYS:
            image_to_save.info.pop(key, None)

    try:
        image_to_save.save(destination, format=encoder.pil_format, **save_params)
    except (OSError, ValueError) as exc:
        LOGGER.debug("编码失败 %s: %s", destination, exc)
        raise ImageWriteError(f"写入文件失败: {destination} ({exc})") from exc
    finally:
        if image_to_save is not image:
            image_to_save.close()


def _flatten_alpha(image: Image.Image) -> Image.Image:
    """通过白色背景混合去除 Alpha 通道。"""

    rgba = image.convert("RGBA")
    background = Image.new("RGB", rgba.size, (255, 255, 255))
    background.paste(rgba, mask=rgba.split()[-1])
    return background
