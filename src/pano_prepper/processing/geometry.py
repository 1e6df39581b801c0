"""尺寸缩放与宽高比校正。"""

from __future__ import annotations

import logging

from PIL import Image

from pano_prepper.core.config import ProcessingOptions

LOGGER = logging.getLogger(__name__)

TARGET_ASPECT_RATIO = 2.0
ASPECT_RATIO_TOLERANCE = 0.1


def transform(image: Image.Image, options: ProcessingOptions) -> Image.Image:
    """按配置依次执行缩放与宽高比校正，始终返回新的 Image，不修改输入。"""

    processed = image.copy()

    if options.auto_resize:
        target_size = compute_resize_target(processed.size, options.max_width, options.max_height)
        if target_size is not None:
            LOGGER.debug("缩放 %s -> %s", processed.size, target_size)
            processed = processed.resize(target_size, Image.BICUBIC)

    if options.auto_correct_aspect_ratio:
        target_size = compute_aspect_target(processed.size)
        if target_size is not None:
            # 直接拉伸到 2:1 画布，不裁剪也不填充背景色。
            LOGGER.debug("宽高比校正 %s -> %s", processed.size, target_size)
            processed = processed.resize(target_size, Image.BICUBIC)

    return processed


def compute_resize_target(size: tuple[int, int], max_width: int, max_height: int) -> tuple[int, int] | None:
    """超出上限时返回等比缩放后的尺寸，否则返回 None。"""

    width, height = size
    if width <= max_width and height <= max_height:
        return None

    ratio = min(max_width / width, max_height / height)
    return max(int(width * ratio), 1), max(int(height * ratio), 1)


def compute_aspect_target(size: tuple[int, int]) -> tuple[int, int] | None:
    """宽高比偏离 2:1 超过容差时返回校正后的尺寸，否则返回 None。"""

    width, height = size
    if width <= 0 or height <= 0:
        return None

    current = width / height
    if abs(current - TARGET_ASPECT_RATIO) <= ASPECT_RATIO_TOLERANCE:
        return None

    if current > TARGET_ASPECT_RATIO:
        return width, max(int(width / TARGET_ASPECT_RATIO), 1)
    return int(height * TARGET_ASPECT_RATIO), height
