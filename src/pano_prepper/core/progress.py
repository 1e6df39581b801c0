"""进度更新的数据模型。"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional


@dataclass(slots=True)
class ProgressUpdate:
    """批处理过程中的进度信息：文字状态与数值计数。"""

    total: int
    completed: int
    message: Optional[str] = None
    status: str = "running"


ProgressCallback = Optional[Callable[[ProgressUpdate], None]]

# 单张图片流水线使用的整数进度回调，数值含义由调用方决定。
PositionCallback = Optional[Callable[[int], None]]
