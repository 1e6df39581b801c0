"""批次输出目录与 JPEG 写入。"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from itertools import count
from pathlib import Path
from typing import Optional

from PIL import Image

from pano_prepper.core.exceptions import ImageWriteError

LOGGER = logging.getLogger(__name__)

BATCH_PREFIX = "Batch_"
BATCH_TIMESTAMP_FORMAT = "%Y-%m-%d_%H%M%S"

IMAGES_DIRNAME = "images"
RESOLUTIONS_DIRNAME = "resolutions"
VIEWER_FILENAME = "viewer.html"
REPORT_FILENAME = "processing_report.txt"
OUTPUT_PREFIX = "360_"


@dataclass(frozen=True, slots=True)
class BatchLayout:
    """单个批次在磁盘上的目录结构。"""

    root: Path
    images_dir: Path
    resolutions_dir: Path

    @property
    def name(self) -> str:
        return self.root.name

    @property
    def viewer_path(self) -> Path:
        return self.root / VIEWER_FILENAME

    @property
    def report_path(self) -> Path:
        return self.root / REPORT_FILENAME

    def output_path_for(self, source: Path) -> Path:
        return self.images_dir / f"{OUTPUT_PREFIX}{source.name}"


class OutputManager:
    """负责创建批次目录。"""

    def __init__(self, output_folder: Path) -> None:
        self.output_folder = output_folder.expanduser().resolve()

    def create_batch(self, now: Optional[datetime] = None) -> BatchLayout:
        """创建 ``Batch_<时间戳>`` 目录树；同一秒内重复时追加 ``_2``、``_3`` 后缀。"""

        self.output_folder.mkdir(parents=True, exist_ok=True)
        stamp = (now or datetime.now()).strftime(BATCH_TIMESTAMP_FORMAT)
        root = self._reserve_batch_dir(f"{BATCH_PREFIX}{stamp}")

        layout = BatchLayout(
            root=root,
            images_dir=root / IMAGES_DIRNAME,
            resolutions_dir=root / RESOLUTIONS_DIRNAME,
        )
        layout.images_dir.mkdir()
        layout.resolutions_dir.mkdir()
        LOGGER.info("创建批次目录：%s", root)
        return layout

    def _reserve_batch_dir(self, name: str) -> Path:
        candidate = self.output_folder / name
        for idx in count(2):
            try:
                candidate.mkdir()
                return candidate
            except FileExistsError:
                candidate = self.output_folder / f"{name}_{idx}"

        # 理论上不会执行到此处
        return candidate


def reserve_base_name(stem: str, used: set[str]) -> str:
    """为衍生文件分配批次内唯一的基础名；``a.jpg`` 与 ``a.jpeg`` 依次得到 ``a``、``a_2``。"""

    candidate = stem
    for idx in count(2):
        if candidate.casefold() not in used:
            break
        candidate = f"{stem}_{idx}"
    used.add(candidate.casefold())
    return candidate


def save_jpeg(image: Image.Image, destination: Path, quality: Optional[int] = None) -> None:
    """将 PIL Image 以 JPEG 保存；quality 为空时使用编码器默认质量。"""

    image_to_save = image if image.mode == "RGB" else image.convert("RGB")
    save_params: dict[str, object] = {}
    if quality is not None:
        save_params.update(quality=quality, optimize=True)

    try:
        image_to_save.save(destination, format="JPEG", **save_params)
    except OSError as exc:
        raise ImageWriteError(f"写入文件失败: {destination}") from exc
