"""报告生成工具。"""

from __future__ import annotations

from pathlib import Path

from pano_prepper.core.models import BatchProcessingReport, ImageSpecs, ProcessingReport

RULE = "=" * 40


def _format_specs(title: str, specs: ImageSpecs) -> list[str]:
    return [
        f"{title}:",
        f"  分辨率: {specs.width}x{specs.height}",
        f"  大小: {specs.file_size_mb}MB",
        f"  宽高比: {specs.aspect_ratio:.2f}:1",
    ]


def format_file_summary(report: ProcessingReport) -> str:
    """生成单个文件的文字摘要。"""

    lines = [
        f"文件: {report.file_name}",
        f"状态: {'成功' if report.success else '失败'}",
    ]
    if report.success:
        lines.append(f"输出: {report.output_path}")
    if report.original_specs is not None:
        lines.extend(_format_specs("原始参数", report.original_specs))
    if report.processed_specs is not None:
        lines.extend(_format_specs("处理后参数", report.processed_specs))
    if report.warnings:
        lines.append("警告:")
        lines.extend(f"  - {warning}" for warning in report.warnings)
    return "\n".join(lines) + "\n"


def format_batch_summary(batch: BatchProcessingReport) -> str:
    """生成批次汇总信息。"""

    seconds = batch.processing_time.total_seconds()
    average = seconds / batch.total_files if batch.total_files > 0 else 0.0
    lines = [
        "批处理汇总",
        RULE,
        f"文件总数: {batch.total_files}",
        f"处理成功: {batch.successful_files}",
        f"处理失败: {batch.failed_files}",
        f"耗时: {seconds:.1f} 秒",
        f"平均每个文件: {average:.1f} 秒",
    ]
    if batch.cancelled:
        lines.append(f"已取消: 仅处理了 {len(batch.reports)} 个文件")
    if batch.abort_reason:
        lines.append(f"批处理中止: {batch.abort_reason}")
    if batch.warnings:
        lines.append("批次警告:")
        lines.extend(f"  - {warning}" for warning in batch.warnings)
    return "\n".join(lines) + "\n"


def render_text_report(batch: BatchProcessingReport) -> str:
    parts = [format_file_summary(report) for report in batch.reports]
    parts.append(format_batch_summary(batch))
    return f"\n{RULE}\n".join(parts)


def write_text_report(batch: BatchProcessingReport, report_path: Path) -> Path:
    """将批次报告写入 UTF-8 文本文件。"""

    report_path.write_text(render_text_report(batch), encoding="utf-8")
    return report_path
