"""
Archive writers and formats.
"""

from .archive_reader import ArchiveReader
from .archive_writer import ArchiveWriter
from .codecs import (
    ArchiveCodec,
    JsonArchiveCodec,
    XmlArchiveCodec,
    codec_for_path,
    get_codec,
)

__all__ = [
    "ArchiveWriter",
    "ArchiveReader",
    "ArchiveCodec",
    "XmlArchiveCodec",
    "JsonArchiveCodec",
    "get_codec",
    "codec_for_path",
]
