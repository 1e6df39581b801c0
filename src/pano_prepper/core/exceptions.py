"""项目内使用的自定义异常定义。"""


class PanoPrepperError(Exception):
    """基础异常类型。"""


class InvalidConfigurationError(PanoPrepperError):
    """配置不合法时抛出。"""


class ImageLoadingError(PanoPrepperError):
    """图片解码失败。"""


class ImageWriteError(PanoPrepperError):
    """图片编码或写入磁盘失败。"""


class XmpInjectionError(PanoPrepperError):
    """无法向 JPEG 字节流插入 XMP 段。"""


class TileGenerationError(PanoPrepperError):
    """瓦片金字塔生成失败。"""


class DeliveryServerError(PanoPrepperError):
    """本地服务器无法启动（通常是端口被占用）。"""
