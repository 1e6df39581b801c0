"""核心数据模型定义。"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional, Union

from PIL import Image


@dataclass(frozen=True, slots=True)
class ImageSpecs:
    """某一阶段（原图/处理后）图片的几何与格式信息。"""

    width: int
    height: int
    file_size_bytes: int
    aspect_ratio: float
    format: str

    @property
    def total_pixels(self) -> int:
        return self.width * self.height

    @property
    def file_size_mb(self) -> int:
        return self.file_size_bytes // 1024 // 1024


@dataclass(slots=True)
class LoadedPanorama:
    """解码完成的全景图及其来源信息。"""

    source_path: Path
    image_format: str
    file_size_bytes: int
    payload: Image.Image


@dataclass(slots=True)
class ProcessingReport:
    """记录单个文件的处理结果。"""

    file_name: str
    output_path: Path
    success: bool = False
    warnings: list[str] = field(default_factory=list)
    original_specs: Optional[ImageSpecs] = None
    processed_specs: Optional[ImageSpecs] = None
    processed_date: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(slots=True)
class BatchProcessingReport:
    """一次批处理的汇总结果。"""

    total_files: int
    successful_files: int = 0
    reports: list[ProcessingReport] = field(default_factory=list)
    start_time: datetime = field(default_factory=datetime.now)
    end_time: Optional[datetime] = None
    processing_time: timedelta = field(default_factory=timedelta)
    warnings: list[str] = field(default_factory=list)
    abort_reason: Optional[str] = None
    cancelled: bool = False
    batch_dir: Optional[Path] = None
    viewer_path: Optional[Path] = None

    @property
    def failed_files(self) -> int:
        return self.total_files - self.successful_files

    def add(self, report: ProcessingReport) -> None:
        self.reports.append(report)
        if report.success:
            self.successful_files += 1


@dataclass(frozen=True, slots=True)
class MultiResImage:
    """瓦片金字塔描述。

    第 0 层分辨率最低，``levels - 1`` 层为原始分辨率；瓦片文件命名为
    ``{level}_{x}_{y}.jpg``，其中 x/y 为该层画布中的像素偏移。
    """

    base_path: Path
    levels: int
    tile_size: int
    width: int
    height: int


@dataclass(frozen=True, slots=True)
class PanoramaResolutions:
    """渐进加载使用的分辨率阶梯；medium/low 缺省时直接使用原图。"""

    full_res_path: Path
    width: int
    height: int
    medium_res_path: Optional[Path] = None
    low_res_path: Optional[Path] = None

    @property
    def has_derivatives(self) -> bool:
        return self.medium_res_path is not None and self.low_res_path is not None


PanoramaDescriptor = Union[MultiResImage, PanoramaResolutions]


@dataclass(frozen=True, slots=True)
class ViewerEntry:
    """查看器中展示的单张全景图。"""

    processed_path: Path
    descriptor: PanoramaDescriptor
