# decompose.py
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import List, Optional

from bs4 import BeautifulSoup

from config import END_OF_BOOK_MARKER
from errors import HeadingStructureError, MissingBodyError

logger = logging.getLogger(__name__)

BODY_RE = re.compile(r"<body[^>]*>(.*?)</body\s*>", re.DOTALL | re.IGNORECASE)
HEADING_OPEN_RE = re.compile(r"<h([12])(?:\s[^>]*)?>", re.IGNORECASE)


@dataclass(frozen=True)
class ChapterRecord:
    chapter_group: str
    section_title: str
    filename: str
    content_html: str


@dataclass(frozen=True)
class _Heading:
    level: int
    text: str
    start: int          # offset of the opening tag
    content_start: int  # offset just past the closing tag


def extract_body(html: str) -> str:
    m = BODY_RE.search(html)
    if not m:
        raise MissingBodyError("Could not find body content")
    return m.group(1)


def _heading_text(inner_html: str) -> str:
    if "<" not in inner_html and "&" not in inner_html:
        return inner_html.strip()
    soup = BeautifulSoup(inner_html, "lxml")
    return soup.get_text(" ", strip=True)


def _scan_headings(body: str) -> List[_Heading]:
    """
    Finds every h1/h2 opening tag together with its closing tag.

    A heading whose closing tag is missing, or comes only after the next
    heading opens, is reported instead of being silently merged.
    """
    opens = list(HEADING_OPEN_RE.finditer(body))
    headings: List[_Heading] = []

    for i, m in enumerate(opens):
        level = int(m.group(1))
        close_re = re.compile(rf"</h{level}\s*>", re.IGNORECASE)
        close = close_re.search(body, m.end())
        next_open = opens[i + 1].start() if i + 1 < len(opens) else len(body)

        if close is None or close.start() > next_open:
            raise HeadingStructureError(
                f"<h{level}> at offset {m.start()} is not closed before the next heading"
            )

        headings.append(_Heading(
            level=level,
            text=_heading_text(body[m.end():close.start()]),
            start=m.start(),
            content_start=close.end(),
        ))

    return headings


def _section_end(body: str, start: int, next_heading: Optional[int], end_marker: str) -> int:
    end = next_heading if next_heading is not None else len(body)
    if end_marker:
        marker_at = body.find(end_marker, start, end)
        if marker_at != -1:
            end = marker_at
    return end


def decompose_body(body: str, end_marker: str = END_OF_BOOK_MARKER) -> List[ChapterRecord]:
    headings = _scan_headings(body)
    chapters: List[ChapterRecord] = []
    group: Optional[str] = None
    group_sections = 0

    def close_group():
        if group is not None and group_sections == 0:
            logger.warning("Chapter '%s' has no sections", group)

    for i, h in enumerate(headings):
        if h.level == 1:
            close_group()
            group = h.text
            group_sections = 0
            if not group:
                logger.warning("Empty chapter heading at offset %d, skipping its sections", h.start)
            continue

        if group is None:
            logger.warning("Section '%s' appears before any chapter heading, skipping", h.text)
            continue
        group_sections += 1
        if not group or not h.text:
            continue

        next_start = headings[i + 1].start if i + 1 < len(headings) else None
        end = _section_end(body, h.content_start, next_start, end_marker)
        content = body[h.content_start:end].strip()
        if not content:
            logger.debug("Skipping empty section '%s'", h.text)
            continue

        chapters.append(ChapterRecord(
            chapter_group=group,
            section_title=h.text,
            filename=f"chapter{len(chapters) + 1}.xhtml",
            content_html=content,
        ))

    close_group()
    return chapters


def decompose_html(html: str, end_marker: str = END_OF_BOOK_MARKER) -> List[ChapterRecord]:
    """
    Splits a rendered single-page book into one record per <h2> section,
    grouped under the enclosing <h1>, in document order.
    """
    return decompose_body(extract_body(html), end_marker)
