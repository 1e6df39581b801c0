"""单张全景图的处理流程：解码、几何变换、编码、插入 XMP。"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from PIL import Image

from pano_prepper.core.config import ProcessingOptions
from pano_prepper.core.exceptions import ImageWriteError
from pano_prepper.core.models import ProcessingReport
from pano_prepper.core.output_manager import save_jpeg
from pano_prepper.core.progress import PositionCallback
from pano_prepper.processing.geometry import transform
from pano_prepper.processing.image_loader import extract_specs, load_panorama
from pano_prepper.processing.validation import check_platform_limits
from pano_prepper.processing.xmp import inject_xmp

LOGGER = logging.getLogger(__name__)

TEMP_PREFIX = "temp_"


def process_image(
    input_path: Path,
    output_path: Path,
    options: ProcessingOptions,
    progress: PositionCallback = None,
    position: int = 0,
) -> ProcessingReport:
    """处理单个文件并返回报告。

    任何步骤出错都只记录到报告的 warnings 中并标记失败，不会向外抛出，
    以保证单个文件的失败不会中断整个批次。处理结束后以 ``position``
    调用一次 ``progress``。
    """

    report = ProcessingReport(file_name=input_path.name, output_path=output_path)
    image: Optional[Image.Image] = None
    processed: Optional[Image.Image] = None

    try:
        output_path.parent.mkdir(parents=True, exist_ok=True)

        loaded = load_panorama(input_path)
        image = loaded.payload
        report.original_specs = extract_specs(image, loaded.file_size_bytes, loaded.image_format)

        processed = transform(image, options)
        encode_with_xmp(processed, output_path, options.jpeg_quality)

        report.processed_specs = extract_specs(processed, output_path.stat().st_size)
        report.warnings.extend(check_platform_limits(report.processed_specs))
        report.success = True
    except Exception as exc:  # noqa: BLE001
        LOGGER.exception("处理 %s 失败：%s", report.file_name, exc)
        report.success = False
        report.warnings.append(str(exc))
        cause = exc.__cause__
        if cause is not None:
            report.warnings.append(f"详情: {cause}")
    finally:
        _close_if_needed(image, processed)

    if progress is not None:
        progress(position)

    return report


def encode_with_xmp(image: Image.Image, output_path: Path, quality: int) -> None:
    """先编码到临时文件，再插入 XMP 段后写出最终文件；临时文件总会被删除。"""

    temp_path = output_path.with_name(TEMP_PREFIX + output_path.name)
    try:
        save_jpeg(image, temp_path, quality=quality)
        try:
            jpeg_bytes = temp_path.read_bytes()
            output_path.write_bytes(inject_xmp(jpeg_bytes, image.width, image.height))
        except OSError as exc:
            raise ImageWriteError(f"写入文件失败: {output_path}") from exc
    finally:
        temp_path.unlink(missing_ok=True)


def _close_if_needed(*images: Optional[Image.Image]) -> None:
    for img in images:
        if img is not None:
            img.close()
