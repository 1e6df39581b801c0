"""处理结果与全景平台限制的比对。"""

from __future__ import annotations

from pano_prepper.core.models import ImageSpecs
from pano_prepper.processing.geometry import ASPECT_RATIO_TOLERANCE, TARGET_ASPECT_RATIO

MAX_DIMENSION = 30000
MAX_TOTAL_PIXELS = 135_000_000
RECOMMENDED_MAX_BYTES = 30 * 1024 * 1024
ABSOLUTE_MAX_BYTES = 45 * 1024 * 1024


def check_platform_limits(specs: ImageSpecs) -> list[str]:
    """返回违反全景平台限制的警告列表，全部满足时返回空列表。"""

    warnings: list[str] = []

    if specs.width > MAX_DIMENSION or specs.height > MAX_DIMENSION:
        warnings.append(
            f"尺寸过大：单边上限 {MAX_DIMENSION}px，当前 {specs.width}x{specs.height}"
        )

    if specs.total_pixels > MAX_TOTAL_PIXELS:
        warnings.append(f"总像素数 {specs.total_pixels:,} 超过上限 {MAX_TOTAL_PIXELS:,}")

    if abs(specs.aspect_ratio - TARGET_ASPECT_RATIO) > ASPECT_RATIO_TOLERANCE:
        warnings.append(f"宽高比应为 2:1，当前为 {specs.aspect_ratio:.2f}:1")

    if specs.file_size_bytes > ABSOLUTE_MAX_BYTES:
        warnings.append(f"文件大小 {specs.file_size_mb}MB 超过绝对上限 45MB")
    elif specs.file_size_bytes > RECOMMENDED_MAX_BYTES:
        warnings.append(f"文件大小 {specs.file_size_mb}MB 超过建议上限 30MB")

    return warnings
