# config.py
from __future__ import annotations

import datetime
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

TRANSLATOR_LABEL = "ترجمه:"

# Literal the upstream site generator puts after the last chapter
END_OF_BOOK_MARKER = "<hr><b>فقط برای تفریح"


def _today() -> str:
    return datetime.date.today().isoformat()


def _default_identifier() -> str:
    return f"linuxstory-persian-{int(time.time() * 1000)}"


@dataclass(frozen=True)
class BookMetadata:
    title: str
    author: str
    translator: str
    language: str
    publisher: str
    rights: str
    description: str
    subject: str
    date: str = field(default_factory=_today)
    identifier: str = field(default_factory=_default_identifier)


def default_metadata() -> BookMetadata:
    return BookMetadata(
        title="فقط برای تفریح",
        author="لینوس توروالدز و دیوید دیاموند",
        translator="جادی میرمیرانی",
        language="fa",
        publisher="LinuxStory.ir",
        rights="CC0 1.0 Universal",
        description="داستان زندگی لینوس توروالدز، خالق لینوکس",
        subject="کامپیوتر، برنامه‌نویسی، لینوکس، نرم‌افزار آزاد",
    )


@dataclass(frozen=True)
class BuildConfig:
    """
    Everything the EPUB build needs. Paths are used as given;
    the CLI resolves them against --root.
    """
    metadata: BookMetadata
    html_path: Path
    build_dir: Path
    output_dir: Path
    generate_command: Optional[str] = "npm test"
    # None runs the generator in the current directory
    generate_cwd: Optional[Path] = None
    end_marker: str = END_OF_BOOK_MARKER
    output_prefix: str = "justforfun_persian_apple"

    def output_path(self) -> Path:
        return self.output_dir / f"{self.output_prefix}_{self.metadata.date}.epub"


@dataclass(frozen=True)
class PatchConfig:
    metadata: BookMetadata
    input_path: Path
    output_path: Path
    temp_dir: Path
