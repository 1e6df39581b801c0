"""360° 全景图批量处理与网页发布工具。"""

__version__ = "0.1.0"
