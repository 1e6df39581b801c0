"""在已编码的 JPEG 字节流中插入全景 XMP（APP1）段。

段结构::

    FF E1 | 长度(2 字节, 大端) | "http://ns.adobe.com/xap/1.0/" 00 | XMP 数据

长度字段包含其自身的 2 字节、标识符及 NUL 结束符和 XMP 数据，但不包含
FF E1 标记本身。插入位置紧跟在 SOI（FF D8）之后，编码器写出的其他段
（例如 Exif APP1）保持原样排在其后。
"""

from __future__ import annotations

import struct
from datetime import datetime, timezone
from typing import Optional

from pano_prepper.core.exceptions import XmpInjectionError

SOI_MARKER = b"\xff\xd8"
APP1_MARKER = b"\xff\xe1"
XMP_IDENTIFIER = b"http://ns.adobe.com/xap/1.0/\x00"
LENGTH_FIELD_SIZE = 2
MAX_SEGMENT_LENGTH = 0xFFFF

CREATOR_TOOL = "PanoPrepper"

XMP_TEMPLATE = """<?xpacket begin="\ufeff" id="W5M0MpCehiHzreSzNTczkc9d"?>
<x:xmpmeta xmlns:x="adobe:ns:meta/" x:xmptk="Adobe XMP Core 5.6-c140 79.160451, 2017/05/06-01:08:21        ">
 <rdf:RDF xmlns:rdf="http://www.w3.org/1999/02/22-rdf-syntax-ns#">
  <rdf:Description rdf:about=""
    xmlns:GPano="http://ns.google.com/photos/1.0/panorama/"
    xmlns:xmp="http://ns.adobe.com/xap/1.0/">
   <GPano:ProjectionType>equirectangular</GPano:ProjectionType>
   <GPano:FullPanoWidthPixels>{width}</GPano:FullPanoWidthPixels>
   <GPano:FullPanoHeightPixels>{height}</GPano:FullPanoHeightPixels>
   <GPano:CroppedAreaImageWidthPixels>{width}</GPano:CroppedAreaImageWidthPixels>
   <GPano:CroppedAreaImageHeightPixels>{height}</GPano:CroppedAreaImageHeightPixels>
   <GPano:CroppedAreaLeftPixels>0</GPano:CroppedAreaLeftPixels>
   <GPano:CroppedAreaTopPixels>0</GPano:CroppedAreaTopPixels>
   <GPano:InitialViewHeadingDegrees>180</GPano:InitialViewHeadingDegrees>
   <GPano:InitialHorizontalFOVDegrees>90</GPano:InitialHorizontalFOVDegrees>
   <GPano:StitchingSoftware>{tool}</GPano:StitchingSoftware>
   <xmp:CreateDate>{timestamp}</xmp:CreateDate>
   <xmp:ModifyDate>{timestamp}</xmp:ModifyDate>
   <xmp:CreatorTool>{tool}</xmp:CreatorTool>
  </rdf:Description>
 </rdf:RDF>
</x:xmpmeta>
<?xpacket end="w"?>"""


def build_xmp_packet(width: int, height: int, now: Optional[datetime] = None) -> bytes:
    """生成等距柱状投影的 XMP 数据（UTF-8）。"""

    moment = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
    text = XMP_TEMPLATE.format(
        width=width,
        height=height,
        timestamp=moment.strftime("%Y-%m-%dT%H:%M:%SZ"),
        tool=CREATOR_TOOL,
    )
    return text.encode("utf-8")


def build_app1_segment(payload: bytes) -> bytes:
    length = LENGTH_FIELD_SIZE + len(XMP_IDENTIFIER) + len(payload)
    if length > MAX_SEGMENT_LENGTH:
        raise XmpInjectionError(f"XMP 数据过大，无法放入单个 APP1 段: {length} 字节")
    return APP1_MARKER + struct.pack(">H", length) + XMP_IDENTIFIER + payload


def inject_xmp(jpeg_bytes: bytes, width: int, height: int, now: Optional[datetime] = None) -> bytes:
    """返回在 SOI 之后插入了 XMP 段的新字节串。"""

    if not jpeg_bytes.startswith(SOI_MARKER):
        raise XmpInjectionError("输入数据不是 JPEG（缺少 SOI 标记）")

    segment = build_app1_segment(build_xmp_packet(width, height, now))
    return SOI_MARKER + segment + jpeg_bytes[len(SOI_MARKER):]


def read_xmp_segment(jpeg_bytes: bytes) -> Optional[bytes]:
    """按段遍历 JPEG 头部，返回第一个 XMP 段的数据部分；不存在时返回 None。"""

    if not jpeg_bytes.startswith(SOI_MARKER):
        raise XmpInjectionError("输入数据不是 JPEG（缺少 SOI 标记）")

    offset = len(SOI_MARKER)
    while offset + 4 <= len(jpeg_bytes):
        if jpeg_bytes[offset] != 0xFF:
            return None
        marker = jpeg_bytes[offset + 1]
        # SOS 之后为熵编码数据
        if marker == 0xDA:
            return None
        (length,) = struct.unpack(">H", jpeg_bytes[offset + 2 : offset + 4])
        body = jpeg_bytes[offset + 4 : offset + 2 + length]
        if marker == 0xE1 and body.startswith(XMP_IDENTIFIER):
            return body[len(XMP_IDENTIFIER):]
        offset += 2 + length
    return None
