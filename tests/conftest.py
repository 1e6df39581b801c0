"""测试共用的辅助函数。"""

from __future__ import annotations

from pathlib import Path
from typing import Callable

import pytest
from PIL import Image

from pano_prepper.core.config import ProcessingOptions


def write_jpeg(path: Path, size: tuple[int, int], color: str = "gray") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    Image.new("RGB", size, color).save(path, format="JPEG", quality=90)
    return path


@pytest.fixture
def make_jpeg(tmp_path: Path) -> Callable[..., Path]:
    def factory(name: str, size: tuple[int, int] = (400, 200), color: str = "gray") -> Path:
        return write_jpeg(tmp_path / "input" / name, size, color)

    return factory


@pytest.fixture
def options(tmp_path: Path) -> ProcessingOptions:
    return ProcessingOptions(output_folder=tmp_path / "output")
