"""
ZIP container and XML part helpers shared by the DOCX, PPTX and EPUB converters.

Every archive member is read in full inside a ``with`` block so the member
stream is closed as soon as its bytes are consumed, whatever happens next.
"""

import posixpath
import xml.etree.ElementTree as ET
import zipfile
import zlib
from dataclasses import dataclass
from typing import Dict, Optional, Union, BinaryIO

from .errors import ArchiveError, DocumentIOError, ParseError


@dataclass(frozen=True)
class Relationship:
    """One entry of an OOXML ``_rels`` part."""

    id: str
    type: str
    target: str
    target_mode: str = ""

    @property
    def is_external(self) -> bool:
        return self.target_mode == "External"


def local_name(tag: str) -> str:
    """Strip the ``{namespace}`` prefix from an ElementTree tag or attribute name."""
    if tag.startswith("{"):
        return tag.rsplit("}", 1)[1]
    return tag


def local_attrs(element: ET.Element) -> Dict[str, str]:
    """Return the element's attributes keyed by local name."""
    return {local_name(key): value for key, value in element.attrib.items()}


def open_archive(source: Union[str, BinaryIO], label: str = "archive") -> zipfile.ZipFile:
    """Open a ZIP container, mapping failures onto the marky error taxonomy."""
    try:
        return zipfile.ZipFile(source)
    except OSError as e:
        raise DocumentIOError(f"failed to open {label}: {e}") from e
    except (zipfile.BadZipFile, zipfile.LargeZipFile, ValueError) as e:
        raise ArchiveError(f"failed to open {label}: {e}") from e


def has_part(archive: zipfile.ZipFile, name: str) -> bool:
    try:
        archive.getinfo(name)
    except KeyError:
        return False
    return True


def read_part(archive: zipfile.ZipFile, name: str) -> bytes:
    """Read one archive member, raising ``ArchiveError`` if it is unreadable."""
    try:
        with archive.open(name) as member:
            return member.read()
    except KeyError as e:
        raise ArchiveError(f"part {name} not found in archive") from e
    except (zipfile.BadZipFile, zlib.error, OSError, RuntimeError, EOFError) as e:
        raise ArchiveError(f"failed to read part {name}: {e}") from e


def parse_xml(data: bytes, name: str) -> ET.Element:
    """Parse XML bytes, raising ``ParseError`` that names the offending part."""
    try:
        return ET.fromstring(data)
    except ET.ParseError as e:
        raise ParseError(f"failed to parse {name}: {e}") from e


def read_xml_part(archive: zipfile.ZipFile, name: str) -> ET.Element:
    return parse_xml(read_part(archive, name), name)


def parse_relationships(root: ET.Element) -> Dict[str, Relationship]:
    """Build the relationship table of a parsed ``_rels`` part."""
    relationships = {}
    for element in root:
        if local_name(element.tag) != "Relationship":
            continue
        attrs = local_attrs(element)
        rel_id = attrs.get("Id", "")
        relationships[rel_id] = Relationship(
            id=rel_id,
            type=attrs.get("Type", ""),
            target=attrs.get("Target", ""),
            target_mode=attrs.get("TargetMode", ""),
        )
    return relationships


def resolve_target(base_dir: str, target: str) -> Optional[str]:
    """Resolve a relationship target relative to the directory of its source part."""
    if not target:
        return None
    if target.startswith("/"):
        return target.lstrip("/")
    return posixpath.normpath(posixpath.join(base_dir, target))
