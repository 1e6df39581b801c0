"""生成批次目录中的 viewer.html。"""

from __future__ import annotations

import base64
import html
import json
import logging
import os
from pathlib import Path
from typing import Optional, Sequence
from urllib.parse import quote

from pano_prepper.core.models import MultiResImage, PanoramaResolutions, ViewerEntry

LOGGER = logging.getLogger(__name__)

PANNELLUM_VERSION = "2.5.6"

PAGE_HEAD = """<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <title>360° Panorama Viewer</title>
    <link rel="stylesheet" href="https://cdn.jsdelivr.net/npm/pannellum@{version}/build/pannellum.css"/>
    <script type="text/javascript" src="https://cdn.jsdelivr.net/npm/pannellum@{version}/build/pannellum.js"></script>
    <style>
        body {{ font-family: Arial, sans-serif; max-width: 1200px; margin: 0 auto; padding: 20px; background: #f5f5f5; }}
        .pano-container {{ background: white; padding: 15px; margin: 15px 0; border-radius: 8px; box-shadow: 0 2px 4px rgba(0,0,0,0.1); }}
        .pano-title {{ margin-bottom: 10px; color: #333; }}
        .panorama {{ width: 100%; height: 500px; }}
        .note, .image-info, .loading-indicator {{ color: #666; font-size: 0.9em; margin-top: 5px; }}
        .batch-list li.current {{ font-weight: bold; }}
    </style>
</head>
<body>
    <h1>360° Panorama Gallery</h1>
    <p class="note">Note: Internet connection required for the 360° viewer to work.</p>
"""

PAGE_TAIL = """
</body>
</html>
"""

BATCH_LIST_BLOCK = """
    <div class="pano-container">
        <h2 class="pano-title">Batches</h2>
        <ul id="batch-list" class="batch-list"></ul>
        <script>
            fetch('/api/batches?current=' + encodeURIComponent({current}))
                .then(function (response) {{ return response.json(); }})
                .then(function (batches) {{
                    var list = document.getElementById('batch-list');
                    batches.forEach(function (batch) {{
                        var item = document.createElement('li');
                        if (batch.isCurrent) {{ item.className = 'current'; }}
                        var link = document.createElement('a');
                        link.href = '/' + batch.name + '/viewer.html';
                        link.textContent = batch.info;
                        item.appendChild(link);
                        list.appendChild(item);
                    }});
                }});
        </script>
    </div>
"""

PANO_BLOCK = """
    <div class="pano-container">
        <h2 class="pano-title">{title}</h2>
        <p class="image-info">{info}</p>
        <div id="panorama{index}" class="panorama"></div>
        <div id="loading{index}" class="loading-indicator"></div>
        <script>
{script}
        </script>
    </div>
"""

VIEWER_OPTIONS = "autoLoad: true, autoRotate: -2, compass: true, showFullscreenCtrl: true, mouseZoom: true"

PROGRESSIVE_SCRIPT = """            (function () {{
                var sources = {sources};
                var viewer = null;
                var indicator = document.getElementById('loading{index}');
                function show(step) {{
                    if (viewer) {{ viewer.destroy(); }}
                    viewer = pannellum.viewer('panorama{index}', {{
                        type: 'equirectangular', panorama: sources[step], {options}
                    }});
                    if (step + 1 < sources.length) {{
                        indicator.textContent = 'Loading higher resolution...';
                        var next = new Image();
                        next.onload = function () {{ show(step + 1); }};
                        next.src = sources[step + 1];
                    }} else {{
                        indicator.textContent = '';
                    }}
                }}
                show(0);
            }})();"""

MULTIRES_SCRIPT = """            pannellum.viewer('panorama{index}', {{
                type: 'multires',
                multiRes: {{
                    basePath: {base_path},
                    path: '/%l_%x_%y',
                    extension: 'jpg',
                    tileResolution: {tile_size},
                    maxLevel: {max_level},
                    cubeResolution: {width}
                }},
                {options}
            }});"""


def to_data_url(path: Path) -> str:
    encoded = base64.b64encode(path.read_bytes()).decode("ascii")
    return f"data:image/jpeg;base64,{encoded}"


def relative_url(target: Path, viewer_dir: Path) -> str:
    """相对于查看器目录的 URL，文件名中的空格、# 和 % 等字符会被转义。"""

    return quote(Path(os.path.relpath(target, viewer_dir)).as_posix())


def _progressive_sources(resolutions: PanoramaResolutions, viewer_dir: Path, server_mode: bool) -> list[str]:
    ordered = [resolutions.low_res_path, resolutions.medium_res_path, resolutions.full_res_path]
    paths = [path for path in ordered if path is not None]
    if server_mode:
        return [relative_url(path, viewer_dir) for path in paths]
    return [to_data_url(path) for path in paths]


def _render_entry(index: int, entry: ViewerEntry, viewer_dir: Path, server_mode: bool) -> str:
    descriptor = entry.descriptor
    if isinstance(descriptor, MultiResImage):
        info = f"Original size: {descriptor.width}x{descriptor.height} pixels (Multi-resolution enabled)"
        script = MULTIRES_SCRIPT.format(
            index=index,
            base_path=json.dumps(relative_url(descriptor.base_path, viewer_dir)),
            tile_size=descriptor.tile_size,
            max_level=descriptor.levels - 1,
            width=descriptor.width,
            options=VIEWER_OPTIONS,
        )
    else:
        info = f"Original size: {descriptor.width}x{descriptor.height} pixels"
        sources = _progressive_sources(descriptor, viewer_dir, server_mode)
        script = PROGRESSIVE_SCRIPT.format(index=index, sources=json.dumps(sources), options=VIEWER_OPTIONS)

    return PANO_BLOCK.format(
        title=html.escape(entry.processed_path.name),
        info=info,
        index=index,
        script=script,
    )


def render_viewer(entries: Sequence[ViewerEntry], viewer_dir: Path, current_batch: Optional[str] = None) -> str:
    """渲染查看器页面；current_batch 非空表示服务器模式。"""

    server_mode = current_batch is not None
    parts = [PAGE_HEAD.format(version=PANNELLUM_VERSION)]
    if server_mode:
        parts.append(BATCH_LIST_BLOCK.format(current=json.dumps(current_batch)))
    parts.extend(_render_entry(index, entry, viewer_dir, server_mode) for index, entry in enumerate(entries))
    parts.append(PAGE_TAIL)
    return "".join(parts)


def write_viewer(entries: Sequence[ViewerEntry], viewer_path: Path, current_batch: Optional[str] = None) -> Path:
    content = render_viewer(entries, viewer_path.parent, current_batch)
    viewer_path.write_text(content, encoding="utf-8")
    LOGGER.info("查看器已写入：%s（%d 张全景图）", viewer_path, len(entries))
    return viewer_path
