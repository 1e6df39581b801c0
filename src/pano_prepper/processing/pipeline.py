"""批处理编排：逐个处理文件、生成多分辨率产物、写出查看器与报告。"""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Callable, Optional, Sequence

from pano_prepper.core.config import ProcessingOptions
from pano_prepper.core.exceptions import DeliveryServerError, PanoPrepperError
from pano_prepper.core.models import (
    BatchProcessingReport,
    PanoramaDescriptor,
    PanoramaResolutions,
    ProcessingReport,
    ViewerEntry,
)
from pano_prepper.core.output_manager import BatchLayout, OutputManager, reserve_base_name
from pano_prepper.core.progress import ProgressCallback, ProgressUpdate
from pano_prepper.core.report import write_text_report
from pano_prepper.processing.image_loader import load_image
from pano_prepper.processing.resolutions import build_resolutions
from pano_prepper.processing.tiles import build_tile_pyramid
from pano_prepper.processing.worker import process_image
from pano_prepper.server.delivery import DeliveryServer
from pano_prepper.viewer.html import write_viewer

LOGGER = logging.getLogger(__name__)

ServerFactory = Callable[[Path, int, str], DeliveryServer]


class BatchState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    CANCELLING = "cancelling"
    COMPLETED = "completed"


class BatchOrchestrator:
    """按输入顺序逐个处理文件的批处理器。

    取消是协作式的：``cancel`` 只设置标志，循环在下一个文件开始前检查，
    正在处理的文件会完整结束，不做回滚。单个文件失败只会记录在报告中；
    多分辨率阶段或目录创建等意外错误会中止剩余文件，但清理步骤
    （停止服务器、写出查看器与报告）始终执行。
    """

    def __init__(
        self,
        options: ProcessingOptions,
        progress_callback: ProgressCallback = None,
        *,
        server_factory: ServerFactory = DeliveryServer,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.options = options
        self._progress_callback = progress_callback
        self._server_factory = server_factory
        self._clock = clock
        self._cancel_event = threading.Event()
        self._state = BatchState.IDLE
        self._server: Optional[DeliveryServer] = None

    @property
    def state(self) -> BatchState:
        return self._state

    @property
    def cancel_requested(self) -> bool:
        return self._cancel_event.is_set()

    def cancel(self) -> None:
        """请求在当前文件结束后停止。"""

        if self._state is BatchState.RUNNING:
            self._state = BatchState.CANCELLING
            self._cancel_event.set()
            LOGGER.info("已请求取消，将在当前文件完成后停止")

    def run(self, files: Sequence[Path]) -> BatchProcessingReport:
        if self._state in (BatchState.RUNNING, BatchState.CANCELLING):
            raise PanoPrepperError("已有批处理正在运行")

        self._cancel_event.clear()
        self._state = BatchState.RUNNING

        total = len(files)
        batch = BatchProcessingReport(total_files=total, start_time=self._clock())
        entries: list[ViewerEntry] = []
        base_names: set[str] = set()
        layout: Optional[BatchLayout] = None
        server_active = False
        LOGGER.info("开始批处理，共 %d 个文件", total)

        try:
            layout = OutputManager(self.options.output_folder).create_batch(batch.start_time)
            batch.batch_dir = layout.root
            server_active = self._start_server(layout, batch)

            for index, source in enumerate(files):
                if self._cancel_event.is_set():
                    batch.cancelled = True
                    LOGGER.info("批处理已取消，剩余 %d 个文件未处理", total - index)
                    break

                self._emit(index, total, f"正在处理 {index + 1}/{total}: {source.name}")
                report = process_image(
                    source,
                    layout.output_path_for(source),
                    self.options,
                    progress=lambda position: self._emit(position, total),
                    position=index + 1,
                )
                batch.add(report)

                if report.success:
                    descriptor = self._build_descriptor(source, report, layout, server_active, base_names)
                    entries.append(ViewerEntry(processed_path=report.output_path, descriptor=descriptor))

                status = "完成" if report.success else "失败"
                self._emit(index + 1, total, f"{status} {source.name}")
        except Exception as exc:  # noqa: BLE001
            LOGGER.exception("批处理中止：%s", exc)
            batch.abort_reason = str(exc)
        finally:
            self._stop_server()
            if layout is not None and entries:
                batch.viewer_path = self._write_viewer(entries, layout, server_active=server_active)
            batch.end_time = self._clock()
            batch.processing_time = batch.end_time - batch.start_time
            if layout is not None:
                self._write_report(batch, layout)
            self._state = BatchState.COMPLETED

        summary = f"完成：{batch.successful_files}/{batch.total_files} 个文件处理成功"
        LOGGER.info(summary)
        self._emit(len(batch.reports), total, summary, status="completed")
        return batch

    def _build_descriptor(
        self,
        source: Path,
        report: ProcessingReport,
        layout: BatchLayout,
        server_active: bool,
        base_names: set[str],
    ) -> PanoramaDescriptor:
        assert report.processed_specs is not None
        full = PanoramaResolutions(
            full_res_path=report.output_path,
            width=report.processed_specs.width,
            height=report.processed_specs.height,
        )
        if not self.options.enable_multi_resolution:
            return full

        # 同名不同扩展名的输入共用 resolutions 目录
        base_name = reserve_base_name(source.stem, base_names)
        image = load_image(report.output_path)
        try:
            if server_active:
                multires = build_tile_pyramid(image, layout.resolutions_dir / f"{base_name}_tiles")
                return multires if multires is not None else full
            return build_resolutions(image, layout.resolutions_dir, report.output_path, base_name)
        finally:
            image.close()

    def _start_server(self, layout: BatchLayout, batch: BatchProcessingReport) -> bool:
        if not (self.options.enable_multi_resolution and self.options.use_local_web_server):
            return False

        # 同一时刻只保留一个服务器实例
        self._stop_server()
        server = self._server_factory(layout.root.parent, self.options.web_server_port, layout.name)
        try:
            server.start()
        except DeliveryServerError as exc:
            LOGGER.warning("本地服务器启动失败，改用无服务器模式：%s", exc)
            batch.warnings.append(f"本地服务器启动失败，改用无服务器模式: {exc}")
            return False

        self._server = server
        return True

    def _stop_server(self) -> None:
        server, self._server = self._server, None
        if server is None:
            return
        try:
            server.stop()
        except Exception as exc:  # noqa: BLE001
            LOGGER.exception("停止本地服务器失败：%s", exc)

    def _write_viewer(self, entries: list[ViewerEntry], layout: BatchLayout, *, server_active: bool) -> Optional[Path]:
        try:
            return write_viewer(entries, layout.viewer_path, layout.name if server_active else None)
        except OSError as exc:
            LOGGER.error("写入查看器失败：%s", exc)
            return None

    def _write_report(self, batch: BatchProcessingReport, layout: BatchLayout) -> None:
        try:
            write_text_report(batch, layout.report_path)
        except OSError as exc:
            LOGGER.error("写入报告失败：%s", exc)

    def _emit(self, completed: int, total: int, message: Optional[str] = None, status: Optional[str] = None) -> None:
        if not self._progress_callback:
            return
        self._progress_callback(
            ProgressUpdate(total=total, completed=completed, message=message, status=status or self._state.value)
        )


def process_batch(
    files: Sequence[Path],
    options: ProcessingOptions,
    progress_callback: ProgressCallback = None,
) -> BatchProcessingReport:
    """批量处理入口。"""

    return BatchOrchestrator(options, progress_callback).run(files)
