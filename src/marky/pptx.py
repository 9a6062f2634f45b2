"""
PPTX to Markdown conversion.

Each slide listed in ``ppt/presentation.xml`` is parsed into a small ``Slide``
model (text shapes, pictures, tables and nested groups) and rendered in a fixed
order: slide marker, shapes, pictures, tables, groups, notes. Slides or notes
that are missing or malformed are skipped so a partly broken deck still
converts.
"""

import base64
import html
import io
import logging
import re
import xml.etree.ElementTree as ET
import zipfile
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .converters import Converter
from .errors import DocumentIOError, DocumentStructureError, MarkyError, rewrap
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

PRESENTATION_PART = "ppt/presentation.xml"

NOTES_TEXT_RE = re.compile(r"<a:t>([^<]*)</a:t>")
ALT_TEXT_BREAKS_RE = re.compile(r"[\r\n\[\]]")
WHITESPACE_RE = re.compile(r"\s+")
NON_WORD_RE = re.compile(r"\W", re.ASCII)


@dataclass
class Shape:
    name: str = ""
    text: str = ""


@dataclass
class Picture:
    name: str = ""
    description: str = ""
    embed: str = ""

    @property
    def alt_text(self) -> str:
        alt = self.description or self.name
        alt = ALT_TEXT_BREAKS_RE.sub(" ", alt)
        return WHITESPACE_RE.sub(" ", alt).strip()


@dataclass
class SlideTable:
    rows: List[List[str]] = field(default_factory=list)


@dataclass
class ShapeGroup:
    """A group shape; groups nest to any depth."""

    shapes: List[Shape] = field(default_factory=list)
    pictures: List[Picture] = field(default_factory=list)
    tables: List[SlideTable] = field(default_factory=list)
    groups: List["ShapeGroup"] = field(default_factory=list)


@dataclass
class Slide:
    index: int
    shapes: List[Shape] = field(default_factory=list)
    pictures: List[Picture] = field(default_factory=list)
    tables: List[SlideTable] = field(default_factory=list)
    groups: List[ShapeGroup] = field(default_factory=list)
    notes: str = ""
    relationships: Dict[str, Relationship] = field(default_factory=dict)


def slide_part(index: int) -> str:
    return f"ppt/slides/slide{index}.xml"


def slide_relationships_part(index: int) -> str:
    return f"ppt/slides/_rels/slide{index}.xml.rels"


def notes_part(index: int) -> str:
    return f"ppt/notesSlides/notesSlide{index}.xml"


def _children(element: ET.Element, name: str) -> List[ET.Element]:
    return [child for child in element if local_name(child.tag) == name]


def _find(element: Optional[ET.Element], *path: str) -> Optional[ET.Element]:
    """Follow a chain of child local names, returning None when any step is missing."""
    for name in path:
        if element is None:
            return None
        found = _children(element, name)
        element = found[0] if found else None
    return element


def text_body_text(body: Optional[ET.Element]) -> str:
    """Join the runs of each ``a:p`` paragraph, one line per paragraph, trimmed."""
    if body is None:
        return ""
    lines = []
    for paragraph in _children(body, "p"):
        lines.append("".join(run_text.text or "" for run in _children(paragraph, "r") for run_text in _children(run, "t")))
    return "\n".join(lines).strip()


def _parse_shape(element: ET.Element) -> Optional[Shape]:
    body = _find(element, "txBody")
    if body is None:
        return None
    c_nv_pr = _find(element, "nvSpPr", "cNvPr")
    name = local_attrs(c_nv_pr).get("name", "") if c_nv_pr is not None else ""
    return Shape(name=name, text=text_body_text(body))


def _parse_picture(element: ET.Element) -> Picture:
    attrs = {}
    c_nv_pr = _find(element, "nvPicPr", "cNvPr")
    if c_nv_pr is not None:
        attrs = local_attrs(c_nv_pr)
    blip = _find(element, "blipFill", "blip")
    embed = local_attrs(blip).get("embed", "") if blip is not None else ""
    return Picture(name=attrs.get("name", ""), description=attrs.get("descr", ""), embed=embed)


def _parse_table(element: ET.Element) -> Optional[SlideTable]:
    tbl = _find(element, "graphic", "graphicData", "tbl")
    if tbl is None:
        return None
    rows = [
        [text_body_text(_find(cell, "txBody")) for cell in _children(row, "tc")]
        for row in _children(tbl, "tr")
    ]
    return SlideTable(rows=rows)


def _parse_shape_tree(tree: ET.Element, container) -> None:
    """Fill ``container`` (a Slide or ShapeGroup) from the elements of a shape tree."""
    for element in tree:
        name = local_name(element.tag)
        if name == "sp":
            shape = _parse_shape(element)
            if shape is not None:
                container.shapes.append(shape)
        elif name == "pic":
            container.pictures.append(_parse_picture(element))
        elif name == "graphicFrame":
            table = _parse_table(element)
            if table is not None:
                container.tables.append(table)
        elif name == "grpSp":
            group = ShapeGroup()
            _parse_shape_tree(element, group)
            container.groups.append(group)


def parse_slide(root: ET.Element, index: int) -> Slide:
    slide = Slide(index=index)
    tree = _find(root, "cSld", "spTree")
    if tree is not None:
        _parse_shape_tree(tree, slide)
    return slide


def parse_notes(data: bytes) -> str:
    """Extract speaker notes text: every ``<a:t>`` run, space separated."""
    text = data.decode("utf-8", errors="replace")
    runs = NOTES_TEXT_RE.findall(text)
    return html.unescape(" ".join(runs)).strip()


def parse_slide_ids(root: ET.Element) -> List[str]:
    slide_list = _find(root, "sldIdLst")
    if slide_list is None:
        return []
    return [local_attrs(slide_id).get("id", "") for slide_id in _children(slide_list, "sldId")]


def load_slides(archive: zipfile.ZipFile, count: int) -> List[Slide]:
    """Parse slides 1..count, skipping any slide whose part is missing or malformed."""
    slides = []
    for index in range(1, count + 1):
        part = slide_part(index)
        if not has_part(archive, part):
            logger.warning(f"Skipping slide {index}: {part} not found")
            continue
        try:
            slide = parse_slide(read_xml_part(archive, part), index)
        except MarkyError as e:
            logger.warning(f"Skipping slide {index}: {e}")
            continue

        rels = slide_relationships_part(index)
        if has_part(archive, rels):
            try:
                slide.relationships = parse_relationships(read_xml_part(archive, rels))
            except MarkyError as e:
                logger.warning(f"Ignoring relationships of slide {index}: {e}")

        notes = notes_part(index)
        if has_part(archive, notes):
            try:
                slide.notes = parse_notes(read_part(archive, notes))
            except MarkyError as e:
                logger.warning(f"Skipping notes of slide {index}: {e}")

        slides.append(slide)
    return slides


def sanitize_filename(name: str) -> str:
    return NON_WORD_RE.sub("", name)


class SlideRenderer:
    """Write parsed slides as Markdown, reading picture bytes from the open deck."""

    def __init__(self, archive: zipfile.ZipFile, keep_data_uris: bool = True):
        self.archive = archive
        self.keep_data_uris = keep_data_uris

    def render(self, slides: List[Slide]) -> str:
        out = io.StringIO()
        for slide in slides:
            self.write_slide(slide, out)
        return out.getvalue().strip()

    def write_slide(self, slide: Slide, out: io.StringIO) -> None:
        out.write(f"\n\n<!-- Slide number: {slide.index} -->\n")
        self.write_shapes(slide.shapes, out, title=True)
        self.write_pictures(slide.pictures, slide, out)
        self.write_tables(slide.tables, out)
        self.write_groups(slide.groups, slide, out)
        if slide.notes:
            out.write("\n\n### Notes:\n")
            out.write(slide.notes)

    def write_shapes(self, shapes: List[Shape], out: io.StringIO, title: bool = False) -> None:
        for shape in shapes:
            if not shape.text:
                continue
            if title:
                out.write("# " + shape.text.strip() + "\n")
                title = False
            else:
                out.write(shape.text + "\n")

    def write_pictures(self, pictures: List[Picture], slide: Slide, out: io.StringIO) -> None:
        for picture in pictures:
            alt = picture.alt_text
            uri = None
            if self.keep_data_uris and picture.embed:
                uri = self.data_uri(slide, picture.embed)
            if uri is None:
                uri = sanitize_filename(alt) + ".jpg"
            out.write(f"\n![{alt}]({uri})\n")

    def data_uri(self, slide: Slide, embed: str) -> Optional[str]:
        """Inline the media part that ``embed`` points at, or None when it cannot be found."""
        rel = slide.relationships.get(embed)
        if rel is None or rel.is_external:
            return None
        part = resolve_target("ppt/slides", rel.target)
        if part is None or not has_part(self.archive, part):
            logger.debug(f"Media part for {embed} on slide {slide.index} not found: {rel.target}")
            return None
        try:
            data = read_part(self.archive, part)
        except MarkyError as e:
            logger.warning(f"Skipping image {part} on slide {slide.index}: {e}")
            return None
        return f"data:image/png;base64,{base64.b64encode(data).decode('ascii')}"

    def write_tables(self, tables: List[SlideTable], out: io.StringIO) -> None:
        for table in tables:
            out.write(table_to_markdown(table))

    def write_groups(self, groups: List[ShapeGroup], slide: Slide, out: io.StringIO) -> None:
        for group in groups:
            self.write_shapes(group.shapes, out)
            self.write_pictures(group.pictures, slide, out)
            self.write_tables(group.tables, out)
            self.write_groups(group.groups, slide, out)


def _table_row(cells: List[str]) -> str:
    return "|" + "".join(f" {html.escape(cell)} |" for cell in cells) + "\n"


def table_to_markdown(table: SlideTable) -> str:
    """Render a slide table; the separator follows the first row even when it is the only one."""
    if not table.rows:
        return ""
    header = table.rows[0]
    lines = ["\n", _table_row(header), "|" + "---|" * len(header) + "\n"]
    lines.extend(_table_row(row) for row in table.rows[1:])
    return "".join(lines)


def convert_pptx_to_markdown(data: bytes, keep_data_uris: bool = True) -> str:
    """
    Convert PPTX bytes to Markdown.

    Args:
        data: Raw bytes of the PPTX file
        keep_data_uris: Inline pictures as base64 data URIs. When False, or
            when a picture's media part cannot be found, a placeholder file
            name derived from the alt text is linked instead.

    Returns:
        The Markdown text with surrounding whitespace removed

    Raises:
        ArchiveError: The bytes are not a ZIP container
        DocumentStructureError: ``ppt/presentation.xml`` is missing
        ParseError: ``ppt/presentation.xml`` is malformed
    """
    with open_archive(io.BytesIO(data), "PPTX file") as archive:
        if not has_part(archive, PRESENTATION_PART):
            raise DocumentStructureError("presentation.xml not found")
        slide_ids = parse_slide_ids(read_xml_part(archive, PRESENTATION_PART))
        slides = load_slides(archive, len(slide_ids))
        logger.debug(f"Parsed {len(slides)} of {len(slide_ids)} slides")
        return SlideRenderer(archive, keep_data_uris=keep_data_uris).render(slides)


class PptxConverter(Converter):
    """Presentations. Broken slides and notes are skipped."""

    accepted_extensions = (".pptx",)
    accepted_mime_types = (
        "application/vnd.openxmlformats-officedocument.presentationml.presentation",
        "application/vnd.openxmlformats-officedocument.presentationml",
    )
    partial_failure_tolerant = True

    def __init__(self, keep_data_uris: bool = True):
        self.keep_data_uris = keep_data_uris

    def load(self, path: str) -> str:
        try:
            with open(path, "rb") as fh:
                data = fh.read()
        except OSError as e:
            raise DocumentIOError(f"failed to read PPTX file: {path}: {e}") from e

        try:
            return convert_pptx_to_markdown(data, keep_data_uris=self.keep_data_uris)
        except MarkyError as e:
            raise rewrap(e, "failed to convert PPTX to markdown") from e
