"""文件扫描与筛选逻辑。"""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, Iterator

PANORAMA_EXTENSIONS = {".jpg", ".jpeg"}


def _iter_candidate_files(path: Path) -> Iterator[Path]:
    """遍历路径下（不递归）的所有文件。"""

    if path.is_file():
        yield path
        return

    if not path.is_dir():
        return

    for candidate in path.glob("*"):
        if candidate.is_file():
            yield candidate


def is_panorama_file(path: Path) -> bool:
    return path.suffix.lower() in PANORAMA_EXTENSIONS


def collect_panorama_files(sources: Iterable[Path]) -> list[Path]:
    """扫描给定的文件或目录，返回按名称排序、去重后的 JPEG 文件列表。"""

    collected: list[Path] = []
    seen_paths: set[Path] = set()

    for root in sources:
        resolved_root = root.expanduser().resolve()
        candidates = sorted(_iter_candidate_files(resolved_root), key=lambda x: x.name.lower())
        for candidate in candidates:
            if candidate in seen_paths:
                continue
            seen_paths.add(candidate)

            if not is_panorama_file(candidate):
                continue
            collected.append(candidate)

    return collected
