"""渐进加载用的分辨率阶梯（low → medium → full）。"""

from __future__ import annotations

import logging
from pathlib import Path

from PIL import Image

from pano_prepper.core.models import PanoramaResolutions
from pano_prepper.core.output_manager import save_jpeg

LOGGER = logging.getLogger(__name__)

MEDIUM_WIDTH = 2048
LOW_WIDTH = 1024


def scaled_size(size: tuple[int, int], target_width: int) -> tuple[int, int]:
    width, height = size
    return target_width, max(round(height * target_width / width), 1)


def build_resolutions(image: Image.Image, output_dir: Path, full_res_path: Path, base_name: str) -> PanoramaResolutions:
    """宽度超过 2048px 时生成 medium（2048 宽）与 low（1024 宽）两个衍生文件。"""

    width, height = image.size
    if width <= MEDIUM_WIDTH:
        return PanoramaResolutions(full_res_path=full_res_path, width=width, height=height)

    output_dir.mkdir(parents=True, exist_ok=True)
    medium_path = output_dir / f"{base_name}_medium.jpg"
    low_path = output_dir / f"{base_name}_low.jpg"

    for target_width, destination in ((MEDIUM_WIDTH, medium_path), (LOW_WIDTH, low_path)):
        derived = image.resize(scaled_size(image.size, target_width), Image.LANCZOS)
        try:
            save_jpeg(derived, destination)
        finally:
            derived.close()
        LOGGER.debug("写入衍生分辨率：%s", destination)

    return PanoramaResolutions(
        full_res_path=full_res_path,
        width=width,
        height=height,
        medium_res_path=medium_path,
        low_res_path=low_path,
    )
