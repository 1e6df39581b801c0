"""图片加载与规格提取。"""

from __future__ import annotations

import logging
from pathlib import Path

from PIL import Image, ImageOps, UnidentifiedImageError

from pano_prepper.core.exceptions import ImageLoadingError
from pano_prepper.core.models import ImageSpecs, LoadedPanorama

LOGGER = logging.getLogger(__name__)


def load_panorama(path: Path) -> LoadedPanorama:
    """加载单张全景图并执行 EXIF 旋转与模式归一化。

    返回值中的 Image 对象为新的副本，调用者负责关闭。
    """

    try:
        file_size = path.stat().st_size
        with Image.open(path) as img:
            image_format = img.format or "UNKNOWN"
            img.load()

            # EXIF Orientation 校正
            transposed = ImageOps.exif_transpose(img)

            # 统一转换到 RGB
            normalized = transposed if transposed.mode == "RGB" else transposed.convert("RGB")

            try:
                payload = normalized.copy()
            finally:
                _close_intermediates(img, transposed, normalized)
    except (UnidentifiedImageError, OSError) as exc:
        LOGGER.debug("无法识别图像文件 %s: %s", path, exc)
        raise ImageLoadingError(f"无法加载图像: {path}") from exc

    return LoadedPanorama(
        source_path=path,
        image_format=image_format,
        file_size_bytes=file_size,
        payload=payload,
    )


def _close_intermediates(opened: Image.Image, *images: Image.Image) -> None:
    closed: list[Image.Image] = []
    for image in images:
        if image is opened or any(image is other for other in closed):
            continue
        image.close()
        closed.append(image)


def load_image(path: Path) -> Image.Image:
    return load_panorama(path).payload


def extract_specs(image: Image.Image, file_size_bytes: int, image_format: str = "JPEG") -> ImageSpecs:
    """从已解码的图片与文件大小得到 ImageSpecs。"""

    width, height = image.size
    if width <= 0 or height <= 0:
        raise ImageLoadingError(f"图片尺寸无效: {width}x{height}")

    return ImageSpecs(
        width=width,
        height=height,
        file_size_bytes=max(file_size_bytes, 0),
        aspect_ratio=width / height,
        format=image_format,
    )
