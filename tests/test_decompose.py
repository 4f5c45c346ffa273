# test_decompose.py
from __future__ import annotations

import logging

import pytest

from decompose import ChapterRecord, decompose_body, decompose_html, extract_body
from errors import HeadingStructureError, MissingBodyError


def _wrap(body: str) -> str:
    return f"<html><body>{body}</body></html>"


def test_two_groups_three_sections():
    html = _wrap(
        "<h1 >A</h1><h2 >One</h2>text1<h2 >Two</h2>text2"
        "<h1 >B</h1><h2 >Three</h2>text3"
    )
    assert decompose_html(html) == [
        ChapterRecord("A", "One", "chapter1.xhtml", "text1"),
        ChapterRecord("A", "Two", "chapter2.xhtml", "text2"),
        ChapterRecord("B", "Three", "chapter3.xhtml", "text3"),
    ]


def test_record_count_matches_sections():
    body = ""
    for g in range(3):
        body += f"<h1 >G{g}</h1>"
        for s in range(g + 1):
            body += f"<h2 >S{g}.{s}</h2><p>content {g}.{s}</p>"

    chapters = decompose_body(body)

    assert len(chapters) == 6
    assert [c.filename for c in chapters] == [f"chapter{i}.xhtml" for i in range(1, 7)]
    assert chapters[-1].chapter_group == "G2"
    assert chapters[-1].section_title == "S2.2"
    assert chapters[-1].content_html == "<p>content 2.2</p>"


def test_empty_sections_do_not_use_a_number():
    body = "<h1 >A</h1><h2 >Empty</h2>  \n <h2 >Full</h2>x<h2 >Blank</h2><h1 >B</h1><h2 >Last</h2>y"

    chapters = decompose_body(body)

    assert [(c.section_title, c.filename) for c in chapters] == [
        ("Full", "chapter1.xhtml"),
        ("Last", "chapter2.xhtml"),
    ]


def test_preamble_is_discarded():
    chapters = decompose_body("<p>intro</p><h1 >A</h1>not a section<h2 >One</h2>text")

    assert len(chapters) == 1
    assert chapters[0].content_html == "text"


def test_section_before_any_chapter_is_skipped_with_warning(caplog):
    with caplog.at_level(logging.WARNING, logger="decompose"):
        chapters = decompose_body("<h2 >Orphan</h2>lost<h1 >A</h1><h2 >One</h2>kept")

    assert [c.section_title for c in chapters] == ["One"]
    assert "Orphan" in caplog.text


def test_chapter_without_sections_is_reported(caplog):
    with caplog.at_level(logging.WARNING, logger="decompose"):
        chapters = decompose_body("<h1 >Lonely</h1><p>x</p><h1 >A</h1><h2 >One</h2>y")

    assert len(chapters) == 1
    assert "Lonely" in caplog.text


def test_end_marker_truncates_last_section(book_html):
    chapters = decompose_html(book_html)

    assert len(chapters) == 3
    assert chapters[2].content_html == "<p>متن سوم &copy;</p>"
    assert "footer" not in chapters[2].content_html


def test_custom_end_marker():
    chapters = decompose_body("<h1 >A</h1><h2 >One</h2>keep<!-- END -->drop", end_marker="<!-- END -->")

    assert chapters[0].content_html == "keep"


def test_content_keeps_inner_markup(book_html):
    chapters = decompose_html(book_html)

    assert chapters[0].chapter_group == "فصل یک"
    assert chapters[0].section_title == "بخش اول"
    assert chapters[0].content_html == "<p>متن اول&nbsp;با فاصله<br>خط دوم</p>"
    assert chapters[1].content_html == '<p>متن دوم</p><img src="a.png">'


def test_heading_text_drops_inner_tags():
    chapters = decompose_body('<h1 class="part">A</h1><h2 id="s1"><a name="x"></a>One <em>more</em></h2>text')

    assert chapters[0].section_title == "One more"
    assert chapters[0].chapter_group == "A"


def test_lower_headings_stay_in_content():
    chapters = decompose_body("<h1 >A</h1><h2 >One</h2><h3>Sub</h3><p>x</p>")

    assert chapters[0].content_html == "<h3>Sub</h3><p>x</p>"


def test_missing_body():
    with pytest.raises(MissingBodyError):
        decompose_html("<html><p>no body here</p></html>")


def test_extract_body_uses_first_match():
    assert extract_body('<body id="x">one</body><body>two</body>') == "one"


def test_unclosed_heading_is_reported():
    with pytest.raises(HeadingStructureError, match="h2"):
        decompose_body("<h1 >A</h1><h2 >One<p>text</p><h2 >Two</h2>more")


def test_no_headings_gives_no_chapters():
    assert decompose_body("<p>just text</p>") == []
