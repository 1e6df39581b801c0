"""测试配置加载、文件扫描与报告文本。"""

from __future__ import annotations

from datetime import datetime, timedelta
from pathlib import Path

import pytest

from pano_prepper.core.config import ProcessingOptions, load_options, options_from_mapping
from pano_prepper.core.exceptions import InvalidConfigurationError
from pano_prepper.core.models import BatchProcessingReport, ImageSpecs, ProcessingReport
from pano_prepper.core.report import format_batch_summary, format_file_summary, write_text_report
from pano_prepper.core.scanner import collect_panorama_files


def test_default_options() -> None:
    options = load_options(None)

    assert options.auto_resize and options.auto_correct_aspect_ratio
    assert (options.max_width, options.max_height) == (4096, 2048)
    assert options.jpeg_quality == 85
    assert not options.enable_multi_resolution
    assert not options.use_local_web_server
    assert options.web_server_port == 8080


def test_missing_config_file_uses_defaults(tmp_path: Path) -> None:
    assert load_options(tmp_path / "absent.toml") == ProcessingOptions()


def test_toml_config_overrides(tmp_path: Path) -> None:
    config = tmp_path / "pano.toml"
    config.write_text(
        'jpeg_quality = 70\nenable_multi_resolution = true\noutput_folder = "/srv/panos"\nunknown = 1\n',
        encoding="utf-8",
    )

    options = load_options(config)

    assert options.jpeg_quality == 70
    assert options.enable_multi_resolution
    assert options.output_folder == Path("/srv/panos")
    assert options.max_width == 4096


@pytest.mark.parametrize(
    "data",
    [
        {"jpeg_quality": 0},
        {"jpeg_quality": 101},
        {"max_width": 0},
        {"web_server_port": 80},
        {"auto_resize": "yes"},
        {"max_height": True},
    ],
)
def test_invalid_values_rejected(data: dict) -> None:
    with pytest.raises(InvalidConfigurationError):
        options_from_mapping(data)


def test_malformed_toml_rejected(tmp_path: Path) -> None:
    config = tmp_path / "broken.toml"
    config.write_text("jpeg_quality = = 3", encoding="utf-8")

    with pytest.raises(InvalidConfigurationError):
        load_options(config)


def test_scanner_is_flat_sorted_and_filters_extensions(tmp_path: Path) -> None:
    folder = tmp_path / "input"
    (folder / "nested").mkdir(parents=True)
    for name in ("b.JPG", "a.jpeg", "c.png", "notes.txt"):
        (folder / name).write_bytes(b"")
    (folder / "nested" / "d.jpg").write_bytes(b"")

    files = collect_panorama_files([folder, folder / "a.jpeg"])

    assert [path.name for path in files] == ["a.jpeg", "b.JPG"]


def _specs(width: int, height: int) -> ImageSpecs:
    return ImageSpecs(width=width, height=height, file_size_bytes=2 * 1024 * 1024, aspect_ratio=width / height, format="JPEG")


def test_file_summary_lists_specs_and_warnings() -> None:
    report = ProcessingReport(
        file_name="pano.jpg",
        output_path=Path("/out/images/360_pano.jpg"),
        success=True,
        warnings=["宽高比应为 2:1，当前为 1.50:1"],
        original_specs=_specs(6000, 4000),
        processed_specs=_specs(4096, 2048),
    )

    text = format_file_summary(report)

    assert "状态: 成功" in text
    assert "分辨率: 6000x4000" in text
    assert "分辨率: 4096x2048" in text
    assert "宽高比: 2.00:1" in text
    assert "  - 宽高比应为 2:1" in text


def test_batch_summary_and_written_report(tmp_path: Path) -> None:
    start = datetime(2024, 1, 1, 10, 0, 0)
    batch = BatchProcessingReport(total_files=4, start_time=start)
    batch.add(ProcessingReport(file_name="a.jpg", output_path=Path("a"), success=True))
    batch.add(ProcessingReport(file_name="b.jpg", output_path=Path("b"), success=False, warnings=["无法加载图像"]))
    batch.cancelled = True
    batch.end_time = start + timedelta(seconds=8)
    batch.processing_time = batch.end_time - start

    summary = format_batch_summary(batch)

    assert batch.successful_files == 1
    assert batch.failed_files == 3
    assert "处理失败: 3" in summary
    assert "文件总数: 4" in summary
    assert "耗时: 8.0 秒" in summary
    assert "平均每个文件: 2.0 秒" in summary
    assert "已取消: 仅处理了 2 个文件" in summary

    path = write_text_report(batch, tmp_path / "processing_report.txt")
    content = path.read_text(encoding="utf-8")
    assert "文件: a.jpg" in content
    assert "文件: b.jpg" in content
    assert content.endswith(summary)
