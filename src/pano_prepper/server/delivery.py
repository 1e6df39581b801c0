"""本地多分辨率分发服务器：静态文件 + 批次列表接口。"""

from __future__ import annotations

import logging
import re
import socket
import threading
import time
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Optional
from urllib.parse import unquote, urlparse

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from pano_prepper import __version__
from pano_prepper.core.exceptions import DeliveryServerError
from pano_prepper.core.output_manager import BATCH_TIMESTAMP_FORMAT

LOGGER = logging.getLogger(__name__)

DEFAULT_HOST = "127.0.0.1"
BATCH_NAME_RE = re.compile(r"^Batch_(\d{4}-\d{2}-\d{2}_\d{6})(?:_(\d+))?$")
NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}


@dataclass(frozen=True, slots=True)
class BatchEntry:
    name: str
    timestamp: datetime
    sequence: int = 1

    @property
    def info(self) -> str:
        text = self.timestamp.strftime("%Y-%m-%d %H:%M:%S")
        if self.sequence > 1:
            text += f" (#{self.sequence})"
        return text


def parse_batch_name(name: str) -> Optional[BatchEntry]:
    """解析 ``Batch_<yyyy-MM-dd_HHmmss>[_N]`` 目录名，不符合约定时返回 None。"""

    match = BATCH_NAME_RE.match(name)
    if not match:
        return None
    try:
        timestamp = datetime.strptime(match.group(1), BATCH_TIMESTAMP_FORMAT)
    except ValueError:
        return None
    return BatchEntry(name=name, timestamp=timestamp, sequence=int(match.group(2) or 1))


def list_batches(root: Path, current: Optional[str] = None) -> list[dict[str, Any]]:
    """扫描根目录下的批次目录，按时间从新到旧返回。"""

    entries = [
        entry
        for entry in (parse_batch_name(child.name) for child in root.iterdir() if child.is_dir())
        if entry is not None
    ]
    entries.sort(key=lambda item: (item.timestamp, item.sequence), reverse=True)
    return [{"name": entry.name, "info": entry.info, "isCurrent": entry.name == current} for entry in entries]


def batch_from_referer(referer: Optional[str]) -> Optional[str]:
    if not referer:
        return None
    first = unquote(urlparse(referer).path).strip("/").split("/")[0]
    return first if BATCH_NAME_RE.match(first) else None


def create_app(root: Path, current_batch: Optional[str] = None) -> FastAPI:
    """构建 FastAPI 应用，根目录为各批次目录的共同父目录。"""

    app = FastAPI(title="Pano Prepper Delivery", version=__version__)
    app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])

    @app.middleware("http")
    async def _disable_cache(request: Request, call_next):
        response = await call_next(request)
        response.headers.update(NO_CACHE_HEADERS)
        return response

    @app.get("/api/batches", summary="List batches")
    def batches(request: Request, current: Optional[str] = None) -> list[dict[str, Any]]:
        selected = current or batch_from_referer(request.headers.get("referer")) or current_batch
        return list_batches(root, selected)

    app.mount("/", StaticFiles(directory=root, html=True), name="static")
    return app


class DeliveryServer:
    """在后台线程中运行 uvicorn，监听本机端口。

    端口在 ``start`` 中同步绑定，因此端口占用会立刻以 DeliveryServerError
    的形式反馈给调用方；``stop`` 无论服务器如何退出都会释放端口。
    """

    def __init__(
        self,
        root: Path,
        port: int,
        current_batch: Optional[str] = None,
        host: str = DEFAULT_HOST,
    ) -> None:
        self.root = root
        self.port = port
        self.host = host
        self.current_batch = current_batch
        self._socket: Optional[socket.socket] = None
        self._server: Optional[uvicorn.Server] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def base_url(self) -> str:
        return f"http://localhost:{self.port}"

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self, timeout: float = 5.0) -> None:
        if self._thread is not None:
            return

        try:
            app = create_app(self.root, self.current_batch)
        except RuntimeError as exc:
            raise DeliveryServerError(f"无法创建服务器应用: {exc}") from exc

        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((self.host, self.port))
            sock.listen()
        except OSError as exc:
            sock.close()
            raise DeliveryServerError(f"无法监听端口 {self.port}: {exc}") from exc

        config = uvicorn.Config(app, log_level="warning", lifespan="off")
        self._socket = sock
        self._server = uvicorn.Server(config)
        self._thread = threading.Thread(
            target=self._server.run,
            kwargs={"sockets": [sock]},
            name=f"delivery-server-{self.port}",
            daemon=True,
        )
        self._thread.start()

        deadline = time.monotonic() + timeout
        while not self._server.started:
            if not self._thread.is_alive() or time.monotonic() > deadline:
                self.stop()
                raise DeliveryServerError(f"服务器在端口 {self.port} 上启动失败")
            time.sleep(0.05)

        LOGGER.info("本地服务器已启动：%s（根目录 %s）", self.base_url, self.root)

    def wait(self) -> None:
        """阻塞直到服务器线程退出。"""

        while self._thread is not None and self._thread.is_alive():
            self._thread.join(0.5)

    def stop(self, timeout: float = 5.0) -> None:
        server, thread, sock = self._server, self._thread, self._socket
        self._server = self._thread = self._socket = None
        try:
            if server is not None:
                server.should_exit = True
            if thread is not None:
                thread.join(timeout)
                if thread.is_alive():
                    LOGGER.warning("服务器线程未在 %.1f 秒内退出", timeout)
        finally:
            if sock is not None:
                sock.close()
        if server is not None:
            LOGGER.info("本地服务器已停止：%s", self.base_url)

    def __enter__(self) -> "DeliveryServer":
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()
