"""
DOCX to Markdown conversion.

The main document part is parsed into a tree of ``Node`` objects tagged with
the small set of element kinds that affect rendering. ``DocxWalker`` then walks
the tree in document order and writes Markdown: paragraph styles become
headings, numbering definitions become ordered or bulleted list items, runs
carry bold/italic/strike markers, tables become pipe tables, images are
inlined or extracted and text boxes become fenced blocks.
"""

import base64
import io
import logging
import os
import posixpath
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple

from .converters import Converter
from .errors import DocumentIOError, DocumentStructureError, MarkyError, rewrap
from .markdown import escape, string_width
from .ooxml import (
    Relationship,
    has_part,
    local_attrs,
    local_name,
    open_archive,
    parse_relationships,
    read_part,
    read_xml_part,
    resolve_target,
)

logger = logging.getLogger(__name__)

NUMBERING_PART = "word/numbering.xml"
RELATIONSHIP_PARTS = ("word/_rels/document.xml.rels", "word/_rels/document2.xml.rels")

# Twentieths of a point per two-space indentation step
TWIPS_PER_INDENT = 360

ORDERED_FORMATS = {"decimal", "decimalFullWidth", "decimalFullWidth2", "aiueoFullWidth"}

_INT_RE = re.compile(r"[+-]?[0-9]+")
_OFF_VALUES = {"0", "false", "off", "none"}


class NodeKind(Enum):
    PARAGRAPH = "p"
    RUN = "r"
    HYPERLINK = "hyperlink"
    PARAGRAPH_PROPERTIES = "pPr"
    NUMBERING_PROPERTIES = "numPr"
    TABLE = "tbl"
    BLIP = "blip"
    TEXT_BOX = "txbxContent"
    TEXT = "t"
    FALLBACK = "Fallback"
    OTHER = ""


_KINDS_BY_NAME = {kind.value: kind for kind in NodeKind if kind is not NodeKind.OTHER}


@dataclass
class Node:
    """One element of the main document part, children kept in document order."""

    kind: NodeKind
    name: str
    attrs: Dict[str, str] = field(default_factory=dict)
    text: str = ""
    children: List["Node"] = field(default_factory=list)

    @classmethod
    def from_element(cls, element: ET.Element) -> "Node":
        name = local_name(element.tag)
        return cls(
            kind=_KINDS_BY_NAME.get(name, NodeKind.OTHER),
            name=name,
            attrs=local_attrs(element),
            text=element.text or "",
            children=[cls.from_element(child) for child in element],
        )

    def attr(self, name: str) -> Optional[str]:
        return self.attrs.get(name)


@dataclass(frozen=True)
class NumberingLevel:
    fmt: str = ""
    start: int = 1
    indent: int = 0


@dataclass
class NumberingDefinitions:
    """Numbering instances (numId -> abstractNumId) and their per-level formats."""

    instances: Dict[str, str] = field(default_factory=dict)
    abstracts: Dict[str, Dict[str, NumberingLevel]] = field(default_factory=dict)

    def lookup(self, num_id: str, ilvl: str) -> NumberingLevel:
        abstract_id = self.instances.get(num_id)
        if abstract_id is None:
            return NumberingLevel()
        return self.abstracts.get(abstract_id, {}).get(ilvl, NumberingLevel())

    @classmethod
    def from_xml(cls, root: ET.Element) -> "NumberingDefinitions":
        definitions = cls()
        for element in root:
            name = local_name(element.tag)
            if name == "abstractNum":
                abstract_id = local_attrs(element).get("abstractNumId", "")
                definitions.abstracts[abstract_id] = {
                    local_attrs(lvl).get("ilvl", ""): _parse_level(lvl)
                    for lvl in element
                    if local_name(lvl.tag) == "lvl"
                }
            elif name == "num":
                num_id = local_attrs(element).get("numId", "")
                abstract = _child(element, "abstractNumId")
                if abstract is not None:
                    definitions.instances[num_id] = local_attrs(abstract).get("val", "")
        return definitions


def _child(element: ET.Element, name: str) -> Optional[ET.Element]:
    for child in element:
        if local_name(child.tag) == name:
            return child
    return None


def _parse_int(value: Optional[str]) -> Optional[int]:
    if value is None or not _INT_RE.fullmatch(value):
        return None
    return int(value)


def _val(element: Optional[ET.Element]) -> Optional[str]:
    if element is None:
        return None
    return local_attrs(element).get("val")


def _parse_level(lvl: ET.Element) -> NumberingLevel:
    start = _parse_int(_val(_child(lvl, "start")))
    indent = 0
    ppr = _child(lvl, "pPr")
    ind = _child(ppr, "ind") if ppr is not None else None
    if ind is not None:
        left = _parse_int(local_attrs(ind).get("left"))
        if left is not None:
            indent = left // TWIPS_PER_INDENT
    return NumberingLevel(
        fmt=_val(_child(lvl, "numFmt")) or "",
        start=start if start is not None else 1,
        indent=indent,
    )


def heading_level(style: str) -> int:
    """Map a paragraph style id to a heading depth: ``Heading2`` and ``2`` give 2, others 0."""
    if style.startswith("Heading"):
        style = style[len("Heading"):]
    level = _parse_int(style)
    return level if level is not None and level > 0 else 0


def _flag_on(node: Node) -> bool:
    value = node.attr("val")
    return value is None or value.lower() not in _OFF_VALUES


def render_grid_table(rows: List[List[str]]) -> str:
    """Render a ragged cell matrix as an aligned pipe table, separator after the first row."""
    column_count = max(len(row) for row in rows)
    escaped = [[escape(cell, "|") for cell in row] for row in rows]
    widths = [0] * column_count
    for row in escaped:
        for i, cell in enumerate(row):
            widths[i] = max(widths[i], string_width(cell))

    lines = []
    for index, row in enumerate(escaped):
        cells = []
        for i in range(column_count):
            cell = row[i] if i < len(row) else ""
            cells.append(cell + " " * (widths[i] - string_width(cell)))
        lines.append("| " + " | ".join(cells) + " |")
        if index == 0:
            lines.append("| " + " | ".join("-" * max(3, width) for width in widths) + " |")
    return "\n".join(lines) + "\n\n"


class DocxWalker:
    """
    Render one parsed DOCX main document to Markdown.

    A walker owns the list counters of a single conversion; build a new one
    for every document.

    Args:
        archive: The open DOCX archive, used to read image parts
        relationships: Relationship table of the main document part
        numbering: Numbering definitions (empty when the document has none)
        embed_images: Inline images as data URIs instead of extracting them
        image_dir: Directory that extracted images are written under
    """

    def __init__(
        self,
        archive,
        relationships: Dict[str, Relationship],
        numbering: NumberingDefinitions,
        embed_images: bool = True,
        image_dir: str = ".",
    ):
        self.archive = archive
        self.relationships = relationships
        self.numbering = numbering
        self.embed_images = embed_images
        self.image_dir = image_dir
        self.counters: Dict[Tuple[str, str], int] = {}
        self._handlers = {
            NodeKind.PARAGRAPH: self._walk_paragraph,
            NodeKind.RUN: self._walk_run,
            NodeKind.HYPERLINK: self._walk_hyperlink,
            NodeKind.PARAGRAPH_PROPERTIES: self._walk_paragraph_properties,
            NodeKind.NUMBERING_PROPERTIES: self._write_numbering,
            NodeKind.TABLE: self._walk_table,
            NodeKind.BLIP: self._walk_blip,
            NodeKind.TEXT_BOX: self._walk_text_box,
            NodeKind.TEXT: self._walk_text,
            NodeKind.FALLBACK: self._skip,
            NodeKind.OTHER: self.walk_children,
        }

    def render(self, root: Node) -> str:
        out = io.StringIO()
        self.walk(root, out)
        return out.getvalue()

    def walk(self, node: Node, out: io.StringIO) -> None:
        self._handlers[node.kind](node, out)

    def walk_children(self, node: Node, out: io.StringIO) -> None:
        for child in node.children:
            self.walk(child, out)

    def _collect(self, node: Node) -> str:
        buf = io.StringIO()
        self.walk_children(node, buf)
        return buf.getvalue()

    def _skip(self, node: Node, out: io.StringIO) -> None:
        pass

    def _walk_text(self, node: Node, out: io.StringIO) -> None:
        out.write(node.text)

    def _walk_paragraph(self, node: Node, out: io.StringIO) -> None:
        code = False
        body = io.StringIO()
        for child in node.children:
            if child.kind is NodeKind.PARAGRAPH_PROPERTIES:
                code = self._write_paragraph_properties(child, out) or code
            else:
                self.walk(child, body)
        if code:
            out.write("`" + body.getvalue() + "`")
        else:
            out.write(body.getvalue())
        out.write("\n")

    def _walk_paragraph_properties(self, node: Node, out: io.StringIO) -> None:
        self._write_paragraph_properties(node, out)

    def _write_paragraph_properties(self, node: Node, out: io.StringIO) -> bool:
        """Write indentation, heading and list prefixes; return True for the ``Code`` style."""
        code = False
        for child in node.children:
            if child.name == "ind":
                left = _parse_int(child.attr("left") or child.attr("start"))
                if left is not None and left > 0:
                    out.write("  " * (left // TWIPS_PER_INDENT))
            elif child.name == "pStyle":
                style = child.attr("val")
                if style is None:
                    continue
                if style == "Code":
                    code = True
                    continue
                level = heading_level(style)
                if level:
                    out.write("#" * level + " ")
            elif child.kind is NodeKind.NUMBERING_PROPERTIES:
                self._write_numbering(child, out)
        return code

    def _write_numbering(self, node: Node, out: io.StringIO) -> None:
        num_id = ""
        ilvl = ""
        for child in node.children:
            if child.name == "numId":
                num_id = child.attr("val") or ""
            elif child.name == "ilvl":
                ilvl = child.attr("val") or ""

        level = self.numbering.lookup(num_id, ilvl)
        out.write("  " * level.indent)
        if level.fmt in ORDERED_FORMATS:
            key = (num_id, ilvl)
            self.counters[key] = self.counters[key] + 1 if key in self.counters else level.start
            out.write(f"{self.counters[key]}. ")
        elif level.fmt == "bullet":
            out.write("* ")

    def _walk_run(self, node: Node, out: io.StringIO) -> None:
        bold = italic = strike = False
        for child in node.children:
            if child.name != "rPr":
                continue
            for prop in child.children:
                if prop.name == "b":
                    bold = _flag_on(prop)
                elif prop.name == "i":
                    italic = _flag_on(prop)
                elif prop.name == "strike":
                    strike = _flag_on(prop)

        text = self._collect(node)
        if not text:
            return
        marks = ("~~" if strike else "") + ("**" if bold else "") + ("*" if italic else "")
        out.write(marks + escape(text, "*~\\") + marks[::-1])

    def _walk_hyperlink(self, node: Node, out: io.StringIO) -> None:
        out.write("[" + escape(self._collect(node), "[]") + "](")
        rel = self.relationships.get(node.attr("id") or "")
        if rel is not None:
            out.write(escape(rel.target, "()"))
        out.write(")")

    def _walk_table(self, node: Node, out: io.StringIO) -> None:
        rows = []
        for tr in node.children:
            if tr.name != "tr":
                continue
            cells = [self._collect(tc).replace("\n", "") for tc in tr.children if tc.name == "tc"]
            if cells:
                rows.append(cells)
        if rows:
            out.write(render_grid_table(rows))

    def _walk_text_box(self, node: Node, out: io.StringIO) -> None:
        out.write("\n```\n" + self._collect(node) + "```\n")

    def _walk_blip(self, node: Node, out: io.StringIO) -> None:
        rel = self.relationships.get(node.attr("embed") or "")
        if rel is None or rel.is_external:
            return
        part = resolve_target("word", rel.target)
        if part is None or not has_part(self.archive, part):
            logger.debug(f"Image part for relationship {rel.id} not found: {rel.target}")
            return

        data = read_part(self.archive, part)
        if self.embed_images:
            encoded = base64.b64encode(data).decode("ascii")
            out.write(f"![](data:image/png;base64,{encoded})")
            return

        link = self._extract_image(rel.target, data)
        out.write(f"![]({escape(link, '()')})")

    def _extract_image(self, target: str, data: bytes) -> str:
        """Write image bytes under ``image_dir`` at the relationship target; return the link path."""
        link = posixpath.normpath(target)
        if link.startswith("../") or link.startswith("/"):
            link = posixpath.basename(link)
        destination = os.path.join(self.image_dir, *link.split("/"))
        try:
            os.makedirs(os.path.dirname(destination) or ".", exist_ok=True)
            with open(destination, "wb") as fh:
                fh.write(data)
        except OSError as e:
            raise DocumentIOError(f"failed to write image {destination}: {e}") from e
        logger.debug(f"Extracted image to {destination}")
        return link


def find_main_document(names: List[str]) -> Optional[str]:
    """Return the first ``word/document*.xml`` member name."""
    for name in names:
        directory, base = posixpath.split(name)
        if directory == "word" and base.startswith("document") and base.endswith(".xml"):
            return name
    return None


def _relationship_parts(main_part: str) -> List[str]:
    own = f"word/_rels/{posixpath.basename(main_part)}.rels"
    return [own] + [name for name in RELATIONSHIP_PARTS if name != own]


def convert_docx_to_markdown(local_path: str, embed_images: bool = True, image_dir: str = ".") -> str:
    """
    Convert a DOCX file to Markdown.

    Args:
        local_path: Path to the DOCX file
        embed_images: Inline images as base64 data URIs. When False, image
            bytes are written under ``image_dir`` and linked by path.
        image_dir: Directory for extracted images

    Returns:
        The Markdown text

    Raises:
        DocumentIOError: The file cannot be read, or an image cannot be written
        ArchiveError: The file is not a ZIP container
        DocumentStructureError: There is no ``word/document*.xml`` part
        ParseError: A relationship, numbering or document part is malformed
    """
    with open_archive(local_path, f"DOCX file {local_path}") as archive:
        names = archive.namelist()
        main_part = find_main_document(names)
        if main_part is None:
            raise DocumentStructureError("incorrect document: word/document.xml not found")

        relationships: Dict[str, Relationship] = {}
        for rels_part in _relationship_parts(main_part):
            if rels_part in names:
                relationships = parse_relationships(read_xml_part(archive, rels_part))
                break

        numbering = NumberingDefinitions()
        if NUMBERING_PART in names:
            numbering = NumberingDefinitions.from_xml(read_xml_part(archive, NUMBERING_PART))

        root = Node.from_element(read_xml_part(archive, main_part))
        walker = DocxWalker(
            archive,
            relationships,
            numbering,
            embed_images=embed_images,
            image_dir=image_dir,
        )
        return walker.render(root)


class DocxConverter(Converter):
    """Word documents. Fails fast: any structural error aborts the conversion."""

    accepted_extensions = (".docx", ".doc")
    accepted_mime_types = (
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        "application/vnd.openxmlformats-officedocument.wordprocessingml",
        "application/msword",
    )

    def __init__(self, embed_images: bool = True, image_dir: str = "."):
        self.embed_images = embed_images
        self.image_dir = image_dir

    def load(self, path: str) -> str:
        try:
            return convert_docx_to_markdown(path, embed_images=self.embed_images, image_dir=self.image_dir)
        except MarkyError as e:
            raise rewrap(e, "failed to convert document") from e
