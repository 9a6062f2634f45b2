################################################################################
# marky - Document Converters
# Converter interface and the table, web, notebook, PDF and e-book converters
################################################################################

import csv
import json
import logging
import posixpath
import zipfile
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import quote, unquote, urlparse, urlunparse

import markdownify
import openpyxl
import pdfminer.high_level
from bs4 import BeautifulSoup
from openpyxl.utils.exceptions import InvalidFileException

from .detection import MimeTypeInfo, is_mime_type_supported
from .errors import (
    ArchiveError,
    DocumentIOError,
    DocumentStructureError,
    MarkyError,
    ParseError,
)
from .markdown import to_markdown_table
from .ooxml import has_part, local_attrs, local_name, open_archive, read_part, read_xml_part

logger = logging.getLogger(__name__)


class Converter:
    """Base class for document converters.

    Subclasses declare the extensions and MIME type prefixes they accept and
    implement ``load``. ``partial_failure_tolerant`` records whether the format
    skips broken sub-parts (slides, chapters) instead of failing as a whole.

    Attributes:
        accepted_extensions: Dotted lower-case extensions, e.g. ``(".csv",)``
        accepted_mime_types: MIME type prefixes, e.g. ``("text/csv",)``
        partial_failure_tolerant: True when broken sub-parts are skipped
    """

    accepted_extensions: Tuple[str, ...] = ()
    accepted_mime_types: Tuple[str, ...] = ()
    partial_failure_tolerant: bool = False

    @property
    def name(self) -> str:
        return type(self).__name__

    def accepts(self, info: MimeTypeInfo) -> bool:
        """Accept on a matching extension OR a matching MIME type prefix."""
        if info.extension in self.accepted_extensions:
            return True
        return is_mime_type_supported(info.mime_type, self.accepted_mime_types)

    def load(self, path: str) -> str:
        """Convert the document at ``path`` to Markdown."""
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{self.name}(extensions={list(self.accepted_extensions)})"


class _CustomMarkdownify(markdownify.MarkdownConverter):
    """
    A custom version of markdownify's MarkdownConverter. Changes include:

    - Altering the default heading style to use '#', '##', etc.
    - Removing javascript hyperlinks.
    - Truncating images with large data:uri sources.
    - Ensuring URIs are properly escaped, and do not conflict with Markdown syntax
    """

    def __init__(self, **options: Any):
        options["heading_style"] = options.get("heading_style", markdownify.ATX)
        super().__init__(**options)

    def convert_a(self, el: Any, text: str, parent_tags: Any) -> str:
        """Same as usual converter, but removes Javascript links and escapes URIs."""
        if "_noformat" in parent_tags:
            return text
        prefix, suffix, text = markdownify.chomp(text)
        if not text:
            return ""
        href = el.get("href")
        title = el.get("title")

        # Escape URIs and skip non-http or file schemes
        if href:
            try:
                parsed_url = urlparse(href)
                if parsed_url.scheme and parsed_url.scheme.lower() not in ["http", "https", "file"]:
                    return "%s%s%s" % (prefix, text, suffix)
                href = urlunparse(parsed_url._replace(path=quote(unquote(parsed_url.path))))
            except ValueError:
                return "%s%s%s" % (prefix, text, suffix)

        # For the replacement see #29: text nodes underscores are escaped
        if (
            self.options["autolinks"]
            and text.replace(r"\_", "_") == href
            and not title
            and not self.options["default_title"]
        ):
            # Shortcut syntax
            return "<%s>" % href
        if self.options["default_title"] and not title:
            title = href
        title_part = ' "%s"' % title.replace('"', r"\"") if title else ""
        return "%s[%s](%s%s)%s" % (prefix, text, href, title_part, suffix) if href else text

    def convert_img(self, el: Any, text: str, parent_tags: Any) -> str:
        """Same as usual converter, but truncates data URIs"""
        alt = el.attrs.get("alt", None) or ""
        src = el.attrs.get("src", None) or ""
        title = el.attrs.get("title", None) or ""
        title_part = ' "%s"' % title.replace('"', r"\"") if title else ""
        if "_inline" in parent_tags and el.parent.name not in self.options["keep_inline_images_in"]:
            return alt

        if src.startswith("data:"):
            src = src.split(",")[0] + "..."

        return "![%s](%s%s)" % (alt, src, title_part)


def convert_html_to_md(html_content: str) -> str:
    """Convert HTML content to Markdown format.

    Script and style elements are dropped and only the <body> is converted
    when one is present.

    Args:
        html_content: Raw HTML content string to convert

    Returns:
        The Markdown text, stripped of surrounding whitespace

    Example:
        >>> convert_html_to_md("<html><body><h1>Hello</h1></body></html>")
        '# Hello'
    """
    soup = BeautifulSoup(html_content, "html.parser")
    for script in soup(["script", "style"]):
        script.extract()

    body_elm = soup.find("body")
    if body_elm:
        webpage_text = _CustomMarkdownify().convert_soup(body_elm)
    else:
        webpage_text = _CustomMarkdownify().convert_soup(soup)

    return webpage_text.strip()


class CsvConverter(Converter):
    accepted_extensions = (".csv",)
    accepted_mime_types = ("text/csv", "application/csv")

    def load(self, path: str) -> str:
        """Convert a CSV file to a markdown table, first record as header."""
        try:
            with open(path, "r", encoding="utf-8-sig", newline="") as f:
                rows = list(csv.reader(f))
        except OSError as e:
            raise DocumentIOError(f"failed to load CSV file: unable to open file {path}: {e}") from e
        except (csv.Error, UnicodeDecodeError) as e:
            raise ParseError(f"failed to load CSV file: unable to parse CSV file {path}: {e}") from e

        return to_markdown_table(rows)


def _trim_row(values) -> List[str]:
    row = ["" if value is None else str(value) for value in values]
    while row and row[-1] == "":
        row.pop()
    return row


class ExcelConverter(Converter):
    """Spreadsheets. Only the first worksheet is converted."""

    accepted_extensions = (".xlsx", ".xls")
    accepted_mime_types = (
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        "application/vnd.openxmlformats-officedocument.spreadsheetml",
        "application/vnd.ms-excel",
    )

    def load(self, path: str) -> str:
        return to_markdown_table(self.read_rows(path))

    def read_rows(self, path: str) -> List[List[str]]:
        """
        Read the first worksheet as rows of strings.

        Empty cells become "", trailing empty cells and trailing empty rows
        are dropped.

        Raises:
            DocumentIOError: If the file cannot be read
            ArchiveError: If the file is not a readable workbook
            DocumentStructureError: If the workbook has no sheets
        """
        try:
            wb = openpyxl.load_workbook(path, read_only=True, data_only=True)
        except OSError as e:
            raise DocumentIOError(f"failed to load Excel file: unable to open Excel file {path}: {e}") from e
        except (InvalidFileException, zipfile.BadZipFile, KeyError, ValueError) as e:
            raise ArchiveError(f"failed to load Excel file: unable to open Excel file {path}: {e}") from e

        try:
            if not wb.sheetnames:
                raise DocumentStructureError(f"failed to load Excel file: no sheets found in Excel file {path}")
            sheet = wb[wb.sheetnames[0]]
            rows = [_trim_row(values) for values in sheet.iter_rows(values_only=True)]
        finally:
            wb.close()

        while rows and not rows[-1]:
            rows.pop()
        return rows


class HtmlConverter(Converter):
    accepted_extensions = (".html", ".htm")
    accepted_mime_types = ("text/html",)

    def load(self, path: str) -> str:
        try:
            with open(path, "rt", encoding="utf-8", errors="replace") as fh:
                html_content = fh.read()
        except OSError as e:
            raise DocumentIOError(f"failed to read HTML file: {path}: {e}") from e

        return convert_html_to_md(html_content)


def _cell_source(cell: Dict[str, Any]) -> str:
    source = cell.get("source", "")
    if isinstance(source, list):
        return "".join(source)
    return source or ""


def convert_notebook_to_md(notebook: Dict[str, Any]) -> str:
    """Convert a parsed Jupyter notebook to Markdown.

    Markdown cells are kept as they are, code cells are fenced as python and
    raw cells are fenced plainly. The first ``# `` heading (or
    ``metadata.title``) becomes the document title when the output does not
    already start with one.
    """
    md_parts = []
    title = ""

    for cell in notebook.get("cells", []):
        content = _cell_source(cell)
        cell_type = cell.get("cell_type")
        if cell_type == "markdown":
            md_parts.append(content)
            if not title:
                for line in content.split("\n"):
                    stripped = line.strip()
                    if stripped.startswith("# "):
                        title = stripped[2:].strip()
                        break
        elif cell_type == "code":
            if content.strip():
                md_parts.append(f"```python\n{content}\n```")
        elif cell_type == "raw":
            if content.strip():
                md_parts.append(f"```\n{content}\n```")

    if not title:
        title = (notebook.get("metadata") or {}).get("title") or ""

    markdown = "\n\n".join(md_parts)
    if title and not markdown.strip().startswith("# "):
        markdown = f"# {title}\n\n{markdown}"
    return markdown


class IpynbConverter(Converter):
    accepted_extensions = (".ipynb",)
    accepted_mime_types = ("application/x-ipynb+json", "application/json")

    def load(self, path: str) -> str:
        try:
            with open(path, "r", encoding="utf-8") as f:
                notebook = json.load(f)
        except OSError as e:
            raise DocumentIOError(f"failed to read ipynb file: {path}: {e}") from e
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ParseError(f"failed to parse ipynb file: {path}: {e}") from e

        if not isinstance(notebook, dict):
            raise ParseError(f"failed to parse ipynb file: {path}: top-level value is not an object")
        return convert_notebook_to_md(notebook)


class PdfConverter(Converter):
    accepted_extensions = (".pdf",)
    accepted_mime_types = ("application/pdf",)

    def load(self, path: str) -> str:
        """Extract the plain text of a PDF file with pdfminer."""
        try:
            return pdfminer.high_level.extract_text(path)
        except OSError as e:
            raise DocumentIOError(f"unable to open PDF file {path}: {e}") from e
        except Exception as e:
            raise ParseError(f"unable to extract text from PDF file {path}: {e}") from e


EPUB_CONTAINER_PART = "META-INF/container.xml"

# Order of the metadata header lines
EPUB_METADATA_FIELDS = [
    ("title", "Title"),
    ("creator", "Authors"),
    ("language", "Language"),
    ("publisher", "Publisher"),
    ("date", "Date"),
    ("description", "Description"),
    ("identifier", "Identifier"),
]


def _epub_metadata(metadata) -> Dict[str, List[str]]:
    values: Dict[str, List[str]] = {}
    if metadata is None:
        return values
    for element in metadata:
        text = (element.text or "").strip()
        if text:
            values.setdefault(local_name(element.tag), []).append(text)
    return values


def format_epub_metadata(values: Dict[str, List[str]]) -> str:
    """Render the book metadata as ``**Label:** value`` lines."""
    lines = []
    for key, label in EPUB_METADATA_FIELDS:
        found = values.get(key)
        if not found:
            continue
        value = ", ".join(found) if key == "creator" else found[0]
        lines.append(f"**{label}:** {value}")
    return "\n".join(lines)


class EpubConverter(Converter):
    """E-books. Chapters that are missing or fail to convert are skipped."""

    accepted_extensions = (".epub",)
    accepted_mime_types = ("application/epub", "application/epub+zip", "application/x-epub+zip")
    partial_failure_tolerant = True

    def load(self, path: str) -> str:
        with open_archive(path, f"EPUB file {path}") as archive:
            if not has_part(archive, EPUB_CONTAINER_PART):
                raise DocumentStructureError(f"failed to find container.xml in {path}")
            container = read_xml_part(archive, EPUB_CONTAINER_PART)
            rootfiles = [
                local_attrs(element).get("full-path", "")
                for element in container.iter()
                if local_name(element.tag) == "rootfile"
            ]
            if not rootfiles or not rootfiles[0]:
                raise DocumentStructureError("no rootfiles found in container.xml")

            opf_path = rootfiles[0]
            if not has_part(archive, opf_path):
                raise DocumentStructureError(f"failed to find OPF file {opf_path}")
            package = read_xml_part(archive, opf_path)

            sections = {local_name(element.tag): element for element in package}
            markdown_parts = []

            metadata = format_epub_metadata(_epub_metadata(sections.get("metadata")))
            if metadata:
                markdown_parts.append(metadata)

            manifest = {}
            for item in sections.get("manifest", []):
                attrs = local_attrs(item)
                manifest[attrs.get("id", "")] = attrs.get("href", "")

            base_dir = posixpath.dirname(opf_path)
            for itemref in sections.get("spine", []):
                href = manifest.get(local_attrs(itemref).get("idref", ""))
                if not href:
                    continue
                chapter = self._convert_chapter(archive, posixpath.normpath(posixpath.join(base_dir, unquote(href))))
                if chapter:
                    markdown_parts.append(chapter)

        return "\n\n".join(markdown_parts)

    def _convert_chapter(self, archive, part: str) -> Optional[str]:
        if not has_part(archive, part):
            logger.warning(f"Skipping missing EPUB chapter: {part}")
            return None
        try:
            content = read_part(archive, part).decode("utf-8", errors="replace")
            return convert_html_to_md(content)
        except MarkyError as e:
            logger.warning(f"Skipping EPUB chapter {part}: {e}")
            return None
