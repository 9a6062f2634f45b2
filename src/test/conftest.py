"""
Shared fixtures: small DOCX, PPTX and EPUB files assembled with zipfile.
"""

import struct
import sys
import zipfile
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

W_NS = "http://schemas.openxmlformats.org/wordprocessingml/2006/main"
R_NS = "http://schemas.openxmlformats.org/officeDocument/2006/relationships"
A_NS = "http://schemas.openxmlformats.org/drawingml/2006/main"
P_NS = "http://schemas.openxmlformats.org/presentationml/2006/main"
MC_NS = "http://schemas.openxmlformats.org/markup-compatibility/2006"
PKG_REL_NS = "http://schemas.openxmlformats.org/package/2006/relationships"
IMAGE_REL = "http://schemas.openxmlformats.org/officeDocument/2006/relationships/image"
HYPERLINK_REL = "http://schemas.openxmlformats.org/officeDocument/2006/relationships/hyperlink"

MARKY_ENV_VARS = (
    "LOG_LEVEL",
    "MARKY_DOCX_EMBED_IMAGES",
    "MARKY_DOCX_IMAGE_DIR",
    "MARKY_PPTX_KEEP_DATA_URIS",
    "MARKY_MCP_CHUNK_SIZE",
)


def relationships_xml(rels):
    """Build a _rels part from (id, type, target[, mode]) tuples."""
    entries = []
    for rel in rels:
        rel_id, rel_type, target = rel[:3]
        mode = f' TargetMode="{rel[3]}"' if len(rel) > 3 else ""
        entries.append(f'<Relationship Id="{rel_id}" Type="{rel_type}" Target="{target}"{mode}/>')
    return f'<?xml version="1.0" encoding="UTF-8"?><Relationships xmlns="{PKG_REL_NS}">{"".join(entries)}</Relationships>'


def document_xml(body):
    return (
        f'<?xml version="1.0" encoding="UTF-8"?>'
        f'<w:document xmlns:w="{W_NS}" xmlns:r="{R_NS}" xmlns:a="{A_NS}" xmlns:mc="{MC_NS}">'
        f"<w:body>{body}</w:body></w:document>"
    )


def numbering_xml(levels):
    """Build word/numbering.xml with one abstract numbering (id 0) used by numId 1.

    ``levels`` is a list of (ilvl, numFmt, start) tuples.
    """
    lvls = "".join(
        f'<w:lvl w:ilvl="{ilvl}"><w:start w:val="{start}"/><w:numFmt w:val="{fmt}"/></w:lvl>'
        for ilvl, fmt, start in levels
    )
    return (
        f'<?xml version="1.0" encoding="UTF-8"?><w:numbering xmlns:w="{W_NS}">'
        f'<w:abstractNum w:abstractNumId="0">{lvls}</w:abstractNum>'
        f'<w:num w:numId="1"><w:abstractNumId w:val="0"/></w:num></w:numbering>'
    )


def paragraph(text="", style=None, bold=False, num=None):
    ppr = ""
    if style or num is not None:
        style_xml = f'<w:pStyle w:val="{style}"/>' if style else ""
        num_xml = ""
        if num is not None:
            num_id, ilvl = num
            num_xml = f'<w:numPr><w:ilvl w:val="{ilvl}"/><w:numId w:val="{num_id}"/></w:numPr>'
        ppr = f"<w:pPr>{style_xml}{num_xml}</w:pPr>"
    rpr = "<w:rPr><w:b/></w:rPr>" if bold else ""
    run = f"<w:r>{rpr}<w:t>{text}</w:t></w:r>" if text else ""
    return f"<w:p>{ppr}{run}</w:p>"


def table(rows):
    trs = "".join(
        "<w:tr>" + "".join(f"<w:tc>{paragraph(cell)}</w:tc>" for cell in row) + "</w:tr>"
        for row in rows
    )
    return f"<w:tbl>{trs}</w:tbl>"


def write_zip(path, parts, compression=zipfile.ZIP_STORED):
    with zipfile.ZipFile(path, "w", compression=compression) as zf:
        for name, data in parts.items():
            zf.writestr(name, data)
    return str(path)


def corrupt_member(path, name):
    """Flip payload bytes of one deflated member, leaving the central directory intact."""
    with zipfile.ZipFile(path) as zf:
        info = zf.getinfo(name)
    with open(path, "r+b") as fh:
        fh.seek(info.header_offset + 26)
        name_len, extra_len = struct.unpack("<HH", fh.read(4))
        start = info.header_offset + 30 + name_len + extra_len + info.compress_size // 3
        fh.seek(start)
        payload = fh.read(8)
        fh.seek(start)
        fh.write(bytes(byte ^ 0xFF for byte in payload))


@pytest.fixture
def make_docx(tmp_path):
    """Factory writing a DOCX with the given body XML and optional parts."""

    def _make(body, name="test.docx", rels=(), numbering=None, media=None):
        parts = {"word/document.xml": document_xml(body)}
        if rels:
            parts["word/_rels/document.xml.rels"] = relationships_xml(rels)
        if numbering is not None:
            parts["word/numbering.xml"] = numbering_xml(numbering)
        for media_name, data in (media or {}).items():
            parts[media_name] = data
        return write_zip(tmp_path / name, parts)

    return _make


def presentation_xml(slide_count):
    ids = "".join(f'<p:sldId id="{256 + i}" r:id="rId{i + 1}"/>' for i in range(slide_count))
    return (
        f'<?xml version="1.0" encoding="UTF-8"?>'
        f'<p:presentation xmlns:p="{P_NS}" xmlns:r="{R_NS}" xmlns:a="{A_NS}">'
        f"<p:sldIdLst>{ids}</p:sldIdLst></p:presentation>"
    )


def slide_xml(tree):
    return (
        f'<?xml version="1.0" encoding="UTF-8"?>'
        f'<p:sld xmlns:p="{P_NS}" xmlns:r="{R_NS}" xmlns:a="{A_NS}">'
        f"<p:cSld><p:spTree>{tree}</p:spTree></p:cSld></p:sld>"
    )


def text_shape(text, name="TextBox"):
    paragraphs = "".join(f"<a:p><a:r><a:t>{line}</a:t></a:r></a:p>" for line in text.split("\n"))
    return (
        f'<p:sp><p:nvSpPr><p:cNvPr id="2" name="{name}"/></p:nvSpPr>'
        f"<p:txBody>{paragraphs}</p:txBody></p:sp>"
    )


def picture(embed, name="Picture", descr=""):
    descr_attr = f' descr="{descr}"' if descr else ""
    return (
        f'<p:pic><p:nvPicPr><p:cNvPr id="3" name="{name}"{descr_attr}/></p:nvPicPr>'
        f'<p:blipFill><a:blip r:embed="{embed}"/></p:blipFill></p:pic>'
    )


def slide_table(rows):
    trs = "".join(
        "<a:tr>" + "".join(f"<a:tc><a:txBody><a:p><a:r><a:t>{cell}</a:t></a:r></a:p></a:txBody></a:tc>" for cell in row) + "</a:tr>"
        for row in rows
    )
    return f"<p:graphicFrame><a:graphic><a:graphicData><a:tbl>{trs}</a:tbl></a:graphicData></a:graphic></p:graphicFrame>"


def group(*children):
    return f"<p:grpSp>{''.join(children)}</p:grpSp>"


def notes_xml(*runs):
    texts = "".join(f"<a:p><a:r><a:t>{run}</a:t></a:r></a:p>" for run in runs)
    return (
        f'<?xml version="1.0" encoding="UTF-8"?>'
        f'<p:notes xmlns:p="{P_NS}" xmlns:a="{A_NS}"><p:cSld><p:spTree><p:sp><p:txBody>'
        f"{texts}</p:txBody></p:sp></p:spTree></p:cSld></p:notes>"
    )


def pptx_parts(slides, notes=None, rels=None, media=None):
    """Assemble PPTX parts; ``slides`` holds shape tree XML strings, or raw bytes used verbatim."""
    parts = {"ppt/presentation.xml": presentation_xml(len(slides))}
    for index, slide in enumerate(slides, start=1):
        parts[f"ppt/slides/slide{index}.xml"] = slide if isinstance(slide, bytes) else slide_xml(slide)
    for index, runs in (notes or {}).items():
        parts[f"ppt/notesSlides/notesSlide{index}.xml"] = notes_xml(*runs)
    for index, slide_rels in (rels or {}).items():
        parts[f"ppt/slides/_rels/slide{index}.xml.rels"] = relationships_xml(slide_rels)
    for name, data in (media or {}).items():
        parts[name] = data
    return parts


@pytest.fixture
def make_pptx(tmp_path):
    """Factory writing a PPTX from shape tree snippets."""

    def _make(slides, name="test.pptx", notes=None, rels=None, media=None):
        return write_zip(tmp_path / name, pptx_parts(slides, notes=notes, rels=rels, media=media))

    return _make


CONTAINER_XML = (
    '<?xml version="1.0"?>'
    '<container version="1.0" xmlns="urn:oasis:names:tc:opendocument:xmlns:container">'
    '<rootfiles><rootfile full-path="OEBPS/content.opf" media-type="application/oebps-package+xml"/></rootfiles>'
    "</container>"
)


def opf_xml(chapters, title="A Book", creators=("Jane Doe",), language="en"):
    creator_xml = "".join(f"<dc:creator>{creator}</dc:creator>" for creator in creators)
    manifest = "".join(
        f'<item id="ch{i}" href="{href}" media-type="application/xhtml+xml"/>' for i, href in enumerate(chapters)
    )
    spine = "".join(f'<itemref idref="ch{i}"/>' for i in range(len(chapters)))
    return (
        '<?xml version="1.0"?>'
        '<package xmlns="http://www.idpf.org/2007/opf" version="3.0">'
        '<metadata xmlns:dc="http://purl.org/dc/elements/1.1/">'
        f"<dc:title>{title}</dc:title>{creator_xml}<dc:language>{language}</dc:language>"
        f"</metadata><manifest>{manifest}</manifest><spine>{spine}</spine></package>"
    )


@pytest.fixture
def make_epub(tmp_path):
    """Factory writing an EPUB whose spine lists ``chapters`` (href -> XHTML, None = missing part)."""

    def _make(chapters, name="test.epub", compression=zipfile.ZIP_STORED, **metadata):
        parts = {
            "mimetype": "application/epub+zip",
            "META-INF/container.xml": CONTAINER_XML,
            "OEBPS/content.opf": opf_xml(list(chapters), **metadata),
        }
        for href, content in chapters.items():
            if content is not None:
                parts[f"OEBPS/{href}"] = content
        return write_zip(tmp_path / name, parts, compression=compression)

    return _make


@pytest.fixture
def clean_env(monkeypatch):
    """Remove marky settings from the environment and restore them afterwards."""
    for name in MARKY_ENV_VARS:
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    return monkeypatch
