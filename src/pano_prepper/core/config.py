"""处理任务的配置模型。"""

from __future__ import annotations

import tomllib
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Mapping

from pano_prepper.core.exceptions import InvalidConfigurationError

DEFAULT_OUTPUT_FOLDER = Path.home() / "Documents" / "360 Panoramas"

MIN_PORT = 1024
MAX_PORT = 65535


@dataclass(frozen=True, slots=True)
class ProcessingOptions:
    """单次批处理使用的参数，运行期间不可变。"""

    auto_resize: bool = True
    auto_correct_aspect_ratio: bool = True
    max_width: int = 4096
    max_height: int = 2048
    jpeg_quality: int = 85
    output_folder: Path = DEFAULT_OUTPUT_FOLDER
    enable_multi_resolution: bool = False
    use_local_web_server: bool = False
    web_server_port: int = 8080

    def validate(self) -> "ProcessingOptions":
        """检查取值范围，不合法时抛出 InvalidConfigurationError。"""

        if not 1 <= self.jpeg_quality <= 100:
            raise InvalidConfigurationError(f"jpeg_quality 必须位于 1~100 之间: {self.jpeg_quality}")
        if self.max_width <= 0 or self.max_height <= 0:
            raise InvalidConfigurationError("max_width / max_height 必须大于 0")
        if not MIN_PORT <= self.web_server_port <= MAX_PORT:
            raise InvalidConfigurationError(
                f"web_server_port 必须位于 {MIN_PORT}~{MAX_PORT} 之间: {self.web_server_port}"
            )
        return self


_BOOL_KEYS = {"auto_resize", "auto_correct_aspect_ratio", "enable_multi_resolution", "use_local_web_server"}
_INT_KEYS = {"max_width", "max_height", "jpeg_quality", "web_server_port"}


def _read_toml(path: Path) -> Mapping[str, Any]:
    if not path.exists():
        return {}
    try:
        with path.open("rb") as handle:
            return tomllib.load(handle)
    except tomllib.TOMLDecodeError as exc:
        raise InvalidConfigurationError(f"无法解析配置文件: {path}") from exc


def options_from_mapping(data: Mapping[str, Any]) -> ProcessingOptions:
    """根据键值映射构建配置，未知的键会被忽略。"""

    known = {item.name for item in fields(ProcessingOptions)}
    values: dict[str, Any] = {}
    for key, raw in data.items():
        if key not in known:
            continue
        if key in _BOOL_KEYS:
            if not isinstance(raw, bool):
                raise InvalidConfigurationError(f"{key} 必须为布尔值")
            values[key] = raw
        elif key in _INT_KEYS:
            if isinstance(raw, bool) or not isinstance(raw, int):
                raise InvalidConfigurationError(f"{key} 必须为整数")
            values[key] = raw
        else:
            values[key] = Path(str(raw)).expanduser()

    return ProcessingOptions(**values).validate()


def load_options(path: Path | None) -> ProcessingOptions:
    """读取 TOML 配置文件；文件不存在时返回默认配置。"""

    if path is None:
        return ProcessingOptions()
    return options_from_mapping(_read_toml(path))
