"""
Format dispatch: detect a file's MIME type and hand it to the first converter
that accepts it.
"""

import logging
from typing import Iterable, List, Optional, Tuple

from .config import Config, get_config
from .converters import (
    Converter,
    CsvConverter,
    EpubConverter,
    ExcelConverter,
    HtmlConverter,
    IpynbConverter,
    PdfConverter,
)
from .detection import MimeTypeInfo, detect_mime_type
from .docx import DocxConverter
from .errors import MarkyError, UnsupportedFormatError, rewrap
from .pptx import PptxConverter

logger = logging.getLogger(__name__)


class Marky:
    """
    Dispatch documents to registered converters.

    The registry is fixed at construction time. Converters are tried in
    registration order and the first one whose extensions or MIME type
    prefixes match wins.

    Args:
        converters: Converters to register, in priority order

    Example:
        >>> md = Marky([CsvConverter()])
        >>> len(md)
        1
    """

    def __init__(self, converters: Iterable[Converter] = ()):
        self._converters: Tuple[Converter, ...] = tuple(converters)

    @property
    def converters(self) -> Tuple[Converter, ...]:
        return self._converters

    def __len__(self) -> int:
        return len(self._converters)

    def find_converter(self, info: MimeTypeInfo) -> Optional[Converter]:
        for converter in self._converters:
            if converter.accepts(info):
                return converter
        return None

    def convert(self, path: str) -> str:
        """
        Convert the file at ``path`` to Markdown.

        Raises:
            DocumentIOError: The file could not be read for detection
            UnsupportedFormatError: No registered converter accepts the file
            MarkyError: Whatever the selected converter raises
        """
        return self.convert_with_info(path)[0]

    def convert_with_info(self, path: str) -> Tuple[str, MimeTypeInfo]:
        """Convert ``path`` and also return the MIME type information used for dispatch."""
        try:
            info = detect_mime_type(path)
        except MarkyError as e:
            raise rewrap(e, "failed to detect MIME type") from e

        converter = self.find_converter(info)
        if converter is None:
            raise UnsupportedFormatError(f"no converter found for MIME type: {info.mime_type}")

        logger.debug(f"Converting {path} ({info.mime_type}) with {converter.name}")
        return converter.load(path), info


def default_converters(config: Optional[Config] = None) -> List[Converter]:
    """Build the standard converter list in registration order."""
    if config is None:
        config = get_config()
    return [
        CsvConverter(),
        DocxConverter(embed_images=config.docx_embed_images, image_dir=config.docx_image_dir),
        EpubConverter(),
        ExcelConverter(),
        HtmlConverter(),
        IpynbConverter(),
        PdfConverter(),
        PptxConverter(keep_data_uris=config.pptx_keep_data_uris),
    ]


def new(config: Optional[Config] = None) -> Marky:
    """Create a ``Marky`` with every built-in converter registered."""
    return Marky(default_converters(config))


def convert(path: str) -> str:
    """Convert ``path`` to Markdown with the default converters."""
    return new().convert(path)
