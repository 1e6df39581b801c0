"""测试本地分发服务器：批次列表、静态文件与端口生命周期。"""

from __future__ import annotations

import socket
from pathlib import Path

import httpx
import pytest
from fastapi.testclient import TestClient

from pano_prepper.core.exceptions import DeliveryServerError
from pano_prepper.server.delivery import (
    DeliveryServer,
    batch_from_referer,
    create_app,
    list_batches,
    parse_batch_name,
)

OLDER = "Batch_2024-05-06_070809"
OLDER_RETRY = "Batch_2024-05-06_070809_2"
NEWER = "Batch_2024-06-01_120000"


@pytest.fixture
def output_root(tmp_path: Path) -> Path:
    root = tmp_path / "output"
    for name in (OLDER, OLDER_RETRY, NEWER, "not_a_batch"):
        (root / name).mkdir(parents=True)
    (root / "Batch_notes.txt").write_text("file, not directory")
    (root / NEWER / "viewer.html").write_text("<html>newer</html>", encoding="utf-8")
    return root


def _free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as probe:
        probe.bind(("127.0.0.1", 0))
        return probe.getsockname()[1]


def test_parse_batch_name() -> None:
    entry = parse_batch_name(OLDER_RETRY)
    assert entry is not None
    assert entry.sequence == 2
    assert entry.info == "2024-05-06 07:08:09 (#2)"

    assert parse_batch_name(NEWER).info == "2024-06-01 12:00:00"
    assert parse_batch_name("Batch_2024-13-40_999999") is None
    assert parse_batch_name("images") is None


def test_list_batches_newest_first(output_root: Path) -> None:
    batches = list_batches(output_root, OLDER)

    assert [item["name"] for item in batches] == [NEWER, OLDER_RETRY, OLDER]
    assert [item["isCurrent"] for item in batches] == [False, False, True]
    assert batches[0]["info"] == "2024-06-01 12:00:00"


def test_batch_from_referer() -> None:
    assert batch_from_referer(f"http://localhost:8080/{NEWER}/viewer.html") == NEWER
    assert batch_from_referer("http://localhost:8080/viewer.html") is None
    assert batch_from_referer(None) is None


def test_api_selects_current_batch(output_root: Path) -> None:
    client = TestClient(create_app(output_root, current_batch=OLDER))

    def current_of(response: httpx.Response) -> list[str]:
        assert response.status_code == 200
        return [item["name"] for item in response.json() if item["isCurrent"]]

    assert current_of(client.get("/api/batches")) == [OLDER]
    assert current_of(client.get("/api/batches", params={"current": NEWER})) == [NEWER]
    referer = {"referer": f"http://localhost:8080/{OLDER_RETRY}/viewer.html"}
    assert current_of(client.get("/api/batches", headers=referer)) == [OLDER_RETRY]


def test_static_files_are_served_without_caching(output_root: Path) -> None:
    client = TestClient(create_app(output_root))

    response = client.get(f"/{NEWER}/viewer.html")

    assert response.status_code == 200
    assert "newer" in response.text
    assert "no-store" in response.headers["cache-control"]
    assert response.headers["pragma"] == "no-cache"
    assert response.headers["expires"] == "0"

    missing = client.get(f"/{NEWER}/resolutions/none.jpg")
    assert missing.status_code == 404


def test_port_in_use_is_reported(output_root: Path) -> None:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as blocker:
        blocker.bind(("127.0.0.1", 0))
        blocker.listen()
        port = blocker.getsockname()[1]

        server = DeliveryServer(output_root, port)
        with pytest.raises(DeliveryServerError):
            server.start()
        assert not server.is_running


def test_start_serve_stop_releases_port(output_root: Path) -> None:
    port = _free_port()

    with DeliveryServer(output_root, port, current_batch=NEWER) as server:
        assert server.is_running
        response = httpx.get(f"http://127.0.0.1:{port}/api/batches", timeout=5.0)
        assert response.status_code == 200
        assert response.json()[0] == {"name": NEWER, "info": "2024-06-01 12:00:00", "isCurrent": True}

    assert not server.is_running

    # 端口已释放，可再次启动
    again = DeliveryServer(output_root, port)
    again.start()
    try:
        assert again.is_running
    finally:
        again.stop()
