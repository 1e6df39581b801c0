"""瓦片金字塔生成。"""

from __future__ import annotations

import logging
import math
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Iterator, Optional

from PIL import Image

from pano_prepper.core.exceptions import ImageWriteError, TileGenerationError
from pano_prepper.core.models import MultiResImage
from pano_prepper.core.output_manager import save_jpeg

LOGGER = logging.getLogger(__name__)

TILE_SIZE = 512
MIN_TILED_WIDTH = 4000
MIN_TILED_HEIGHT = 2000
# 2^8 = 256，最粗一层约为 256px
BASE_LEVEL_EXPONENT = 8


def needs_tiling(width: int, height: int) -> bool:
    """尺寸不超过 4000x2000 的全景图不做切片。"""

    return width > MIN_TILED_WIDTH or height > MIN_TILED_HEIGHT


def compute_levels(width: int, height: int) -> int:
    return max(math.ceil(math.log2(max(width, height))) - BASE_LEVEL_EXPONENT, 1)


def level_size(width: int, height: int, levels: int, level: int) -> tuple[int, int]:
    """第 ``level`` 层的画布尺寸，缩放倍数为 ``2 ** (levels - level - 1)``。"""

    scale = 2 ** (levels - level - 1)
    return max(width // scale, 1), max(height // scale, 1)


def iter_tile_boxes(level_width: int, level_height: int, tile_size: int = TILE_SIZE) -> Iterator[tuple[int, int, int, int]]:
    """按行遍历瓦片裁剪框；边缘瓦片保持实际大小，不做填充。"""

    for y in range(0, level_height, tile_size):
        for x in range(0, level_width, tile_size):
            yield x, y, min(x + tile_size, level_width), min(y + tile_size, level_height)


def tile_filename(level: int, x: int, y: int) -> str:
    return f"{level}_{x}_{y}.jpg"


def build_tile_pyramid(
    image: Image.Image,
    output_dir: Path,
    *,
    tile_size: int = TILE_SIZE,
    max_workers: int = 4,
) -> Optional[MultiResImage]:
    """为大尺寸全景图生成瓦片金字塔；无需切片时返回 None。

    任一瓦片写入失败都会抛出 TileGenerationError，由调用方决定如何处理。
    """

    width, height = image.size
    if not needs_tiling(width, height):
        LOGGER.info("图片尺寸 %dx%d 无需切片", width, height)
        return None

    levels = compute_levels(width, height)
    output_dir.mkdir(parents=True, exist_ok=True)
    LOGGER.info("生成瓦片金字塔：%dx%d，共 %d 层 -> %s", width, height, levels, output_dir)

    for level in range(levels):
        target = level_size(width, height, levels, level)
        canvas = image if target == (width, height) else image.resize(target, Image.LANCZOS)
        try:
            _write_level(canvas, level, output_dir, tile_size, max_workers)
        finally:
            if canvas is not image:
                canvas.close()

    return MultiResImage(
        base_path=output_dir,
        levels=levels,
        tile_size=tile_size,
        width=width,
        height=height,
    )


def _write_level(canvas: Image.Image, level: int, output_dir: Path, tile_size: int, max_workers: int) -> None:
    boxes = list(iter_tile_boxes(canvas.width, canvas.height, tile_size))
    with ThreadPoolExecutor(max_workers=max(max_workers, 1)) as executor:
        future_map = {
            executor.submit(_write_tile, canvas, box, output_dir / tile_filename(level, box[0], box[1])): box
            for box in boxes
        }
        for future in as_completed(future_map):
            box = future_map[future]
            try:
                future.result()
            except ImageWriteError as exc:
                LOGGER.error("瓦片写入失败：level=%d x=%d y=%d", level, box[0], box[1])
                raise TileGenerationError(f"瓦片写入失败: {level}_{box[0]}_{box[1]}") from exc
    LOGGER.debug("第 %d 层写入 %d 个瓦片", level, len(boxes))


def _write_tile(canvas: Image.Image, box: tuple[int, int, int, int], destination: Path) -> None:
    tile = canvas.crop(box)
    try:
        save_jpeg(tile, destination)
    finally:
        tile.close()
