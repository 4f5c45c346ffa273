# update_metadata.py
from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import List, Optional, Tuple
from xml.sax.saxutils import escape

from lxml import etree

from archive import MIMETYPE, Archiver, Extractor, ZipfileArchiver, ZipfileExtractor, scratch_directory
from config import TRANSLATOR_LABEL, BookMetadata, PatchConfig
from errors import InputNotFoundError, PackageDocumentNotFoundError

logger = logging.getLogger(__name__)

OPF_CANDIDATES = ("content.opf", "OEBPS/content.opf", "OPS/content.opf")

METADATA_CLOSE_RE = re.compile(r"</metadata>")
DATE_TAG_RE = re.compile(r"<dc:date[\s>]")


def metadata_fields(metadata: BookMetadata) -> List[Tuple[str, str]]:
    return [
        ("title", metadata.title),
        ("creator", metadata.author),
        ("language", metadata.language),
        ("publisher", metadata.publisher),
        ("rights", metadata.rights),
        ("description", metadata.description),
        ("subject", metadata.subject),
    ]


def _insert_before_metadata_close(content: str, tag: str) -> str:
    return METADATA_CLOSE_RE.sub(lambda _: f"    {tag}\n  </metadata>", content, count=1)


def update_metadata_tag(content: str, namespace: str, tag: str, value: str, attributes: str = "") -> str:
    """
    Replaces the first <ns:tag ...>...</ns:tag> with one holding `value`,
    or appends a new tag to the metadata block when there is none.
    Later occurrences of the same tag are left alone.
    """
    full_tag = f"{namespace}:{tag}" if namespace else tag
    pattern = re.compile(
        rf"<{re.escape(full_tag)}(?:\s[^>]*)?>.*?</{re.escape(full_tag)}>",
        re.IGNORECASE | re.DOTALL,
    )
    new_tag = f"<{full_tag}{attributes}>{escape(value)}</{full_tag}>"

    if pattern.search(content):
        return pattern.sub(lambda _: new_tag, content, count=1)
    return _insert_before_metadata_close(content, new_tag)


def update_opf_metadata(content: str, metadata: BookMetadata) -> str:
    for tag, value in metadata_fields(metadata):
        content = update_metadata_tag(content, "dc", tag, value)

    if TRANSLATOR_LABEL not in content:
        content = _insert_before_metadata_close(
            content,
            f"<dc:contributor>{TRANSLATOR_LABEL} {escape(metadata.translator)}</dc:contributor>",
        )

    if not DATE_TAG_RE.search(content):
        content = _insert_before_metadata_close(content, f"<dc:date>{escape(metadata.date)}</dc:date>")

    return content


def _opf_from_container(root: Path) -> Optional[Path]:
    container = root / "META-INF" / "container.xml"
    if not container.is_file():
        return None
    try:
        tree = etree.parse(str(container))
    except etree.XMLSyntaxError as e:
        logger.warning("Unreadable container.xml: %s", e)
        return None
    ns = {"c": "urn:oasis:names:tc:opendocument:xmlns:container"}
    rootfile = tree.find(".//c:rootfile", namespaces=ns)
    if rootfile is not None and rootfile.get("full-path"):
        candidate = root / rootfile.get("full-path")
        if candidate.is_file():
            return candidate
    return None


def find_opf(root: Path) -> Path:
    """
    Locates the package document in an unpacked EPUB: the usual fixed
    locations first, then META-INF/container.xml, then any *.opf below root.
    """
    for candidate in OPF_CANDIDATES:
        path = root / candidate
        if path.is_file():
            return path

    from_container = _opf_from_container(root)
    if from_container is not None:
        return from_container

    found = sorted(p for p in root.rglob("*.opf") if p.is_file())
    if found:
        return found[0]

    raise PackageDocumentNotFoundError("Could not find OPF file in EPUB")


def update_epub_metadata(
    config: PatchConfig,
    archiver: Optional[Archiver] = None,
    extractor: Optional[Extractor] = None,
) -> Path:
    archiver = archiver or ZipfileArchiver()
    extractor = extractor or ZipfileExtractor()

    if not config.input_path.is_file():
        raise InputNotFoundError(f"Input file not found: {config.input_path}")

    logger.info("Creating temporary directory...")
    with scratch_directory(config.temp_dir) as temp_dir:
        logger.info("Extracting EPUB...")
        extractor.extract(config.input_path, temp_dir)

        logger.info("Finding OPF file...")
        opf_path = find_opf(temp_dir)
        logger.info("Found OPF at: %s", opf_path)

        logger.info("Updating metadata...")
        content = opf_path.read_text(encoding="utf-8")
        opf_path.write_text(update_opf_metadata(content, config.metadata), encoding="utf-8")
        logger.info("Metadata updated successfully")

        mimetype_path = temp_dir / "mimetype"
        if not mimetype_path.exists():
            mimetype_path.write_text(MIMETYPE, encoding="utf-8")

        logger.info("Creating updated EPUB...")
        archiver.create(temp_dir, config.output_path)
        logger.info("Cleaning up...")

    m = config.metadata
    logger.info("Original: %s (%.2f KB)", config.input_path.name, config.input_path.stat().st_size / 1024)
    logger.info("Updated: %s (%.2f KB)", config.output_path.name, config.output_path.stat().st_size / 1024)
    logger.info("Title: %s", m.title)
    logger.info("Author: %s", m.author)
    logger.info("Translator: %s", m.translator)
    logger.info("Language: %s", m.language)
    logger.info("Publisher: %s", m.publisher)
    return config.output_path
