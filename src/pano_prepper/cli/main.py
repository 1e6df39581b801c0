"""命令行入口。"""

from __future__ import annotations

import dataclasses
import logging
import signal
from pathlib import Path
from typing import Any, Optional

import typer
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
    TimeRemainingColumn,
)

from pano_prepper.core.config import load_options
from pano_prepper.core.exceptions import DeliveryServerError, InvalidConfigurationError
from pano_prepper.core.progress import ProgressUpdate
from pano_prepper.core.scanner import collect_panorama_files
from pano_prepper.processing.pipeline import BatchOrchestrator
from pano_prepper.server.delivery import DeliveryServer
from pano_prepper.utils.logging import setup_logging

app = typer.Typer(help="360° 全景图批量处理与网页发布工具。")


def _build_progress_callback(progress: Progress):
    task_id: Optional[int] = None

    def callback(update: ProgressUpdate) -> None:
        nonlocal task_id
        if update.total == 0:
            return
        if task_id is None:
            task_id = progress.add_task("处理全景图", total=update.total)
        progress.update(task_id, completed=update.completed)
        if update.message:
            progress.log(update.message)

    return callback


@app.command("run")
def run_cli(  # noqa: PLR0913
    folder: Path = typer.Argument(..., help="包含 JPEG 全景图的目录（不递归）"),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="TOML 配置文件"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="输出根目录"),
    quality: Optional[int] = typer.Option(None, "--quality", "-q", help="JPEG 质量 1~100"),
    max_width: Optional[int] = typer.Option(None, "--max-width", help="缩放后的最大宽度"),
    max_height: Optional[int] = typer.Option(None, "--max-height", help="缩放后的最大高度"),
    resize: Optional[bool] = typer.Option(None, "--resize/--no-resize", help="超出尺寸上限时自动缩放"),
    fix_aspect: Optional[bool] = typer.Option(None, "--fix-aspect/--no-fix-aspect", help="自动校正为 2:1"),
    multires: Optional[bool] = typer.Option(None, "--multires/--no-multires", help="生成多分辨率产物"),
    server: Optional[bool] = typer.Option(None, "--server/--no-server", help="使用本地服务器发布瓦片"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="本地服务器端口"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="输出调试日志"),
) -> None:
    """执行一次批处理。"""

    setup_logging(logging.DEBUG if verbose else logging.INFO)

    overrides: dict[str, Any] = {
        "output_folder": output.expanduser().resolve() if output else None,
        "jpeg_quality": quality,
        "max_width": max_width,
        "max_height": max_height,
        "auto_resize": resize,
        "auto_correct_aspect_ratio": fix_aspect,
        "enable_multi_resolution": multires,
        "use_local_web_server": server,
        "web_server_port": port,
    }
    try:
        options = load_options(config)
        options = dataclasses.replace(
            options, **{key: value for key, value in overrides.items() if value is not None}
        ).validate()
    except InvalidConfigurationError as exc:
        raise typer.BadParameter(str(exc)) from exc

    files = collect_panorama_files([folder])
    if not files:
        typer.echo(f"目录中没有 JPEG 全景图：{folder}")
        raise typer.Exit(code=1)

    progress = Progress(
        SpinnerColumn(),
        TextColumn("[bold blue]{task.description}"),
        BarColumn(),
        TimeElapsedColumn(),
        TimeRemainingColumn(),
    )
    orchestrator = BatchOrchestrator(options, progress_callback=_build_progress_callback(progress))

    def _request_cancel(signum: int, frame: object) -> None:
        progress.log("收到中断信号，当前文件完成后停止……")
        orchestrator.cancel()

    previous_handler = signal.signal(signal.SIGINT, _request_cancel)
    try:
        with progress:
            result = orchestrator.run(files)
    finally:
        signal.signal(signal.SIGINT, previous_handler)

    typer.echo(f"处理完成：成功 {result.successful_files}/{result.total_files} 张。")
    if result.batch_dir is not None:
        typer.echo(f"批次目录：{result.batch_dir}")
    if result.viewer_path is not None and options.enable_multi_resolution and options.use_local_web_server:
        typer.echo(f"查看器需要本地服务器：pano-prepper serve {options.output_folder} --port {options.web_server_port}")
    if result.abort_reason:
        typer.echo(f"批处理中止：{result.abort_reason}")
        raise typer.Exit(code=1)


@app.command("serve")
def serve_cli(
    output_folder: Path = typer.Argument(..., help="包含 Batch_* 目录的输出根目录"),
    port: int = typer.Option(8080, "--port", "-p", help="监听端口"),
) -> None:
    """以独立模式启动本地服务器，按 Ctrl+C 退出。"""

    setup_logging()
    root = output_folder.expanduser().resolve()
    delivery = DeliveryServer(root, port)
    try:
        delivery.start()
    except DeliveryServerError as exc:
        typer.echo(str(exc))
        raise typer.Exit(code=1) from exc

    typer.echo(f"服务器已启动：{delivery.base_url}")
    try:
        delivery.wait()
    except KeyboardInterrupt:
        typer.echo("正在停止服务器……")
    finally:
        delivery.stop()


if __name__ == "__main__":
    app()
