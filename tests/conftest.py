# conftest.py
from __future__ import annotations

from pathlib import Path

import pytest

from config import BookMetadata
from errors import ArchiveError


@pytest.fixture
def metadata() -> BookMetadata:
    return BookMetadata(
        title="فقط برای تفریح",
        author="لینوس توروالدز و دیوید دیاموند",
        translator="جادی میرمیرانی",
        language="fa",
        publisher="LinuxStory.ir",
        rights="CC0 1.0 Universal",
        description="داستان زندگی لینوس توروالدز",
        subject="لینوکس",
        date="2024-01-02",
        identifier="linuxstory-persian-test",
    )


BOOK_HTML = """<!DOCTYPE html>
<html>
<head><title>all</title></head>
<body class="book">
<nav>preamble</nav>
<h1 >فصل یک</h1>
<h2 >بخش اول</h2>
<p>متن اول&nbsp;با فاصله<br>خط دوم</p>
<h2 >بخش دوم</h2>
<p>متن دوم</p><img src="a.png">
<h1 >فصل دو</h1>
<h2 >بخش سوم</h2>
<p>متن سوم &copy;</p>
<hr><b>فقط برای تفریح</b> footer
</body>
</html>
"""


@pytest.fixture
def book_html() -> str:
    return BOOK_HTML


class FailingArchiver:
    """Always fails, like a zip run that ran out of disk."""

    def __init__(self):
        self.calls = []

    def create(self, source_dir: Path, output_path: Path) -> None:
        self.calls.append((source_dir, output_path))
        raise ArchiveError("zip exited with status 15: disk full")


@pytest.fixture
def failing_archiver() -> FailingArchiver:
    return FailingArchiver()
