"""
marky converts CSV, DOCX, EPUB, Excel, HTML, Jupyter notebook, PDF and PPTX
files to Markdown.

    >>> import marky
    >>> markdown = marky.convert("report.docx")  # doctest: +SKIP
"""

from .converters import Converter
from .detection import MimeTypeInfo, detect_mime_type
from .errors import (
    ArchiveError,
    DocumentIOError,
    DocumentStructureError,
    MarkyError,
    ParseError,
    UnsupportedFormatError,
)
from .markdown import to_markdown_table
from .marky import Marky, convert, default_converters, new

__version__ = "0.1.0"

__all__ = [
    "ArchiveError",
    "Converter",
    "DocumentIOError",
    "DocumentStructureError",
    "Marky",
    "MarkyError",
    "MimeTypeInfo",
    "ParseError",
    "UnsupportedFormatError",
    "convert",
    "default_converters",
    "detect_mime_type",
    "new",
    "to_markdown_table",
]
