"""
MIME type detection from file content and extension.

The baseline type comes from puremagic's signature database applied to the
first bytes of the file. Office Open XML, EPUB, PDF and legacy OLE formats are
then pinned down from their binary signature plus the file extension, and
text-based formats trust the extension once the content already looks textual.
"""

import logging
import os
from dataclasses import dataclass
from typing import Iterable

import puremagic

from .errors import DocumentIOError

logger = logging.getLogger(__name__)

# Never inspect more than this many leading bytes
SNIFF_SIZE = 512

ZIP_SIGNATURE = b"PK\x03\x04"
PDF_SIGNATURE = b"%PDF"
OLE_SIGNATURE = b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1"

MIME_DOCX = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
MIME_XLSX = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
MIME_PPTX = "application/vnd.openxmlformats-officedocument.presentationml.presentation"
MIME_PDF = "application/pdf"
MIME_DOC = "application/msword"
MIME_XLS = "application/vnd.ms-excel"
MIME_PPT = "application/vnd.ms-powerpoint"
MIME_CSV = "text/csv"
MIME_HTML = "text/html"
MIME_XML = "application/xml"
MIME_IPYNB = "application/x-ipynb+json"
MIME_EPUB = "application/epub+zip"
MIME_ZIP = "application/zip"

MIME_TEXT = "text/plain; charset=utf-8"
MIME_OCTET_STREAM = "application/octet-stream"

ZIP_BASED_TYPES = {
    ".docx": MIME_DOCX,
    ".xlsx": MIME_XLSX,
    ".pptx": MIME_PPTX,
    ".epub": MIME_EPUB,
}

OLE_BASED_TYPES = {
    ".doc": MIME_DOC,
    ".xls": MIME_XLS,
    ".ppt": MIME_PPT,
}

TEXT_BASED_TYPES = {
    ".csv": MIME_CSV,
    ".html": MIME_HTML,
    ".htm": MIME_HTML,
    ".xml": MIME_XML,
    ".ipynb": MIME_IPYNB,
}

# Bytes that never appear in text files (everything below 0x20 except \t \n \f \r and ESC)
_BINARY_BYTES = set(range(0x00, 0x09)) | {0x0B, 0x0E, 0x0F} | set(range(0x10, 0x1B)) | set(range(0x1C, 0x20))


@dataclass(frozen=True)
class MimeTypeInfo:
    """Detected MIME type and the lower-cased extension of the inspected path."""

    mime_type: str
    extension: str


def _looks_like_text(sample: bytes) -> bool:
    if any(byte in _BINARY_BYTES for byte in sample):
        return False
    try:
        sample.decode("utf-8")
    except UnicodeDecodeError as e:
        # A multi-byte sequence cut at the sample boundary is still text
        return e.start >= len(sample) - 3 and e.reason == "unexpected end of data"
    return True


def baseline_mime_type(sample: bytes) -> str:
    """Classify ``sample`` with puremagic, falling back to a text/binary guess."""
    if sample:
        try:
            mime_type = puremagic.from_string(sample, mime=True)
        except (puremagic.PureError, ValueError):
            mime_type = ""
        if mime_type:
            return mime_type
    return MIME_TEXT if _looks_like_text(sample) else MIME_OCTET_STREAM


def sniff_mime_type(sample: bytes, extension: str) -> str:
    """Return the MIME type for a byte sample and a lower-cased dotted extension."""
    sample = sample[:SNIFF_SIZE]
    detected = baseline_mime_type(sample)

    if sample.startswith(ZIP_SIGNATURE):
        # puremagic guesses an Office type for any ZIP header
        return ZIP_BASED_TYPES.get(extension, MIME_ZIP)

    if sample.startswith(PDF_SIGNATURE):
        return MIME_PDF

    if sample.startswith(OLE_SIGNATURE) and extension in OLE_BASED_TYPES:
        return OLE_BASED_TYPES[extension]

    if extension in TEXT_BASED_TYPES and (detected.startswith("text/") or _looks_like_text(sample)):
        return TEXT_BASED_TYPES[extension]

    return detected


def detect_mime_type(file_path: str) -> MimeTypeInfo:
    """
    Detect the MIME type of a file from its first bytes and its extension.

    Args:
        file_path: Path to the file to inspect

    Returns:
        MimeTypeInfo with the detected type and the path's lower-cased extension

    Raises:
        DocumentIOError: If the file cannot be opened or read

    Example:
        >>> detect_mime_type("report.docx").mime_type  # doctest: +SKIP
        'application/vnd.openxmlformats-officedocument.wordprocessingml.document'
    """
    extension = os.path.splitext(file_path)[1].lower()
    try:
        with open(file_path, "rb") as fh:
            sample = fh.read(SNIFF_SIZE)
    except OSError as e:
        raise DocumentIOError(f"failed to read file for MIME type detection: {file_path}: {e}") from e

    mime_type = sniff_mime_type(sample, extension)
    logger.debug(f"Detected MIME type {mime_type!r} for {file_path}")
    return MimeTypeInfo(mime_type=mime_type, extension=extension)


def is_mime_type_supported(mime_type: str, supported_types: Iterable[str]) -> bool:
    """Check whether ``mime_type`` starts with any of the given prefixes."""
    return any(mime_type.startswith(prefix) for prefix in supported_types)
