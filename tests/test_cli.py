"""测试命令行入口。"""

from __future__ import annotations

import socket
from pathlib import Path
from typing import Callable

from typer.testing import CliRunner

from pano_prepper.cli.main import app

runner = CliRunner()


def test_run_processes_folder(tmp_path: Path, make_jpeg: Callable[..., Path]) -> None:
    make_jpeg("a.jpg")
    make_jpeg("b.jpeg", (300, 300))
    output = tmp_path / "output"

    result = runner.invoke(app, ["run", str(tmp_path / "input"), "--output", str(output), "--quality", "80"])

    assert result.exit_code == 0, result.output
    assert "处理完成：成功 2/2 张。" in result.output
    batches = list(output.glob("Batch_*"))
    assert len(batches) == 1
    assert (batches[0] / "viewer.html").exists()
    assert sorted(path.name for path in (batches[0] / "images").iterdir()) == ["360_a.jpg", "360_b.jpeg"]


def test_run_without_panoramas_exits_with_error(tmp_path: Path) -> None:
    empty = tmp_path / "empty"
    empty.mkdir()

    result = runner.invoke(app, ["run", str(empty), "--output", str(tmp_path / "output")])

    assert result.exit_code == 1
    assert not (tmp_path / "output").exists()


def test_run_rejects_invalid_quality(tmp_path: Path, make_jpeg: Callable[..., Path]) -> None:
    make_jpeg("a.jpg")

    result = runner.invoke(app, ["run", str(tmp_path / "input"), "--quality", "150"])

    assert result.exit_code == 2


def test_serve_exits_when_port_is_taken(tmp_path: Path) -> None:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as blocker:
        blocker.bind(("127.0.0.1", 0))
        blocker.listen()
        port = blocker.getsockname()[1]

        result = runner.invoke(app, ["serve", str(tmp_path), "--port", str(port)])

    assert result.exit_code == 1
    assert str(port) in result.output
