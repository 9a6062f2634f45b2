"""
Exception types raised by marky converters.

Every error raised while converting a document derives from ``MarkyError`` so
callers can catch conversion failures with a single ``except`` clause, while
the subclasses keep the failing stage inspectable.
"""


class MarkyError(Exception):
    """Base class for all conversion errors."""


class DocumentIOError(MarkyError):
    """The input file could not be opened, read or stat'd."""


class ArchiveError(MarkyError):
    """The input is not a readable ZIP/OOXML container."""


class DocumentStructureError(MarkyError):
    """A required part (main document, presentation, rootfile) is missing."""


class ParseError(MarkyError):
    """Malformed XML, JSON or CSV inside an otherwise readable file."""


class UnsupportedFormatError(MarkyError):
    """No registered converter accepts the detected MIME type or extension."""


def rewrap(exc: MarkyError, context: str) -> MarkyError:
    """Return a new error of the same class with ``context`` prepended to the message."""
    return type(exc)(f"{context}: {exc}")
