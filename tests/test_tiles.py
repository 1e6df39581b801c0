"""测试瓦片金字塔生成。"""

from __future__ import annotations

import math
from pathlib import Path

import pytest
from PIL import Image

from pano_prepper.core.exceptions import ImageWriteError, TileGenerationError
from pano_prepper.processing import tiles
from pano_prepper.processing.tiles import (
    build_tile_pyramid,
    compute_levels,
    iter_tile_boxes,
    level_size,
    needs_tiling,
)


def _tiles_at(output_dir: Path, level: int) -> dict[tuple[int, int], tuple[int, int]]:
    found: dict[tuple[int, int], tuple[int, int]] = {}
    for path in output_dir.glob(f"{level}_*.jpg"):
        _, x, y = path.stem.split("_")
        with Image.open(path) as tile:
            found[(int(x), int(y))] = tile.size
    return found


def test_level_count_formula() -> None:
    assert compute_levels(8192, 4096) == 5
    assert compute_levels(4096, 2048) == 4
    assert compute_levels(4100, 2050) == 5


def test_level_sizes_halve_towards_level_zero() -> None:
    assert level_size(8192, 4096, 5, 4) == (8192, 4096)
    assert level_size(8192, 4096, 5, 3) == (4096, 2048)
    assert level_size(8192, 4096, 5, 0) == (512, 256)


def test_small_panoramas_are_not_tiled(tmp_path: Path) -> None:
    assert not needs_tiling(4000, 2000)
    assert needs_tiling(4001, 2000)
    assert needs_tiling(4000, 2001)

    result = build_tile_pyramid(Image.new("RGB", (2000, 1000)), tmp_path / "tiles")

    assert result is None
    assert not (tmp_path / "tiles").exists()


def test_tile_boxes_cover_canvas_without_overlap() -> None:
    boxes = list(iter_tile_boxes(1300, 700, 512))

    assert len(boxes) == 3 * 2
    assert sum((right - left) * (bottom - top) for left, top, right, bottom in boxes) == 1300 * 700
    assert (1024, 512, 1300, 700) in boxes


def test_pyramid_levels_and_tile_counts(tmp_path: Path) -> None:
    output_dir = tmp_path / "pano_tiles"
    image = Image.new("RGB", (4100, 2050), "navy")

    result = build_tile_pyramid(image, output_dir)

    assert result is not None
    assert result.levels == 5
    assert result.tile_size == 512
    assert (result.width, result.height) == (4100, 2050)
    assert result.base_path == output_dir

    for level in range(result.levels):
        level_width, level_height = level_size(4100, 2050, result.levels, level)
        found = _tiles_at(output_dir, level)
        assert len(found) == math.ceil(level_width / 512) * math.ceil(level_height / 512)

    native = _tiles_at(output_dir, 4)
    expected_offsets = {(x, y) for x in range(0, 4100, 512) for y in range(0, 2050, 512)}
    assert set(native) == expected_offsets
    assert sum(w * h for w, h in native.values()) == 4100 * 2050
    # 边缘瓦片保持实际大小，不做填充。
    assert native[(4096, 2048)] == (4, 2)
    assert native[(0, 0)] == (512, 512)


def test_tile_write_failure_propagates(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    def broken_save(image, destination, quality=None):
        raise ImageWriteError(f"写入文件失败: {destination}")

    monkeypatch.setattr(tiles, "save_jpeg", broken_save)

    with pytest.raises(TileGenerationError):
        build_tile_pyramid(Image.new("RGB", (4200, 2100)), tmp_path / "tiles")
