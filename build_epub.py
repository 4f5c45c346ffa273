# build_epub.py
from __future__ import annotations

import logging
import re
import shlex
import subprocess
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional
from xml.sax.saxutils import escape

from archive import MIMETYPE, Archiver, ZipfileArchiver, scratch_directory
from config import TRANSLATOR_LABEL, BookMetadata, BuildConfig
from decompose import ChapterRecord, decompose_html
from errors import GenerationError, InputNotFoundError

logger = logging.getLogger(__name__)

NAV_TITLE = "فهرست"

CONTAINER_XML = """<?xml version="1.0" encoding="UTF-8"?>
<container version="1.0" xmlns="urn:oasis:names:tc:opendocument:xmlns:container">
  <rootfiles>
    <rootfile full-path="OEBPS/content.opf" media-type="application/oebps-package+xml"/>
  </rootfiles>
</container>"""

# Apple Books reads this to honour embedded fonts and RTL page turns
DISPLAY_OPTIONS_XML = """<?xml version="1.0" encoding="UTF-8"?>
<display_options>
  <platform name="*">
    <option name="specified-fonts">true</option>
    <option name="page-progression-direction">rtl</option>
  </platform>
</display_options>"""

STYLESHEET = """/* Apple Books stylesheet for Persian text */
@charset "UTF-8";

@import url('https://fonts.googleapis.com/css2?family=Vazirmatn:wght@100;200;300;400;500;600;700;800;900&display=swap');

html {
  direction: rtl;
  text-align: right;
}

body {
  font-family: 'Vazirmatn', -apple-system, "Helvetica Neue", Arial, sans-serif;
  font-size: 1em;
  line-height: 1.8;
  margin: 0;
  padding: 0;
  direction: rtl;
  text-align: right;
}

h1, h2, h3, h4, h5, h6 {
  font-family: 'Vazirmatn', -apple-system, "Helvetica Neue", Arial, sans-serif;
  font-weight: 700;
  margin-top: 1em;
  margin-bottom: 0.5em;
  page-break-after: avoid;
  direction: rtl;
  text-align: right;
}

h1 {
  font-size: 1.8em;
  text-align: center;
  margin-top: 2em;
  margin-bottom: 1em;
}

h2 { font-size: 1.4em; }
h3 { font-size: 1.2em; }

p {
  margin: 0.5em 0 1em 0;
  text-indent: 0;
  direction: rtl;
  text-align: right;
}

ul, ol {
  margin: 1em 0;
  padding-right: 2em;
  padding-left: 0;
  direction: rtl;
}

li {
  margin: 0.5em 0;
  direction: rtl;
}

a {
  color: #007AFF;
  text-decoration: none;
}

pre, code {
  font-family: "SF Mono", Monaco, Consolas, monospace;
  font-size: 0.9em;
  direction: ltr;
  text-align: left;
  background-color: #f5f5f5;
  padding: 0.2em 0.4em;
  border-radius: 3px;
}

pre {
  padding: 1em;
  overflow-x: auto;
  margin: 1em 0;
}

blockquote {
  margin: 1em 0;
  padding-right: 1em;
  padding-left: 0;
  border-right: 3px solid #ccc;
  border-left: none;
  font-style: italic;
  direction: rtl;
}

img {
  max-width: 100%;
  height: auto;
  display: block;
  margin: 1em auto;
}

.chapter {
  page-break-before: always;
}

hr {
  margin: 2em 0;
  border: none;
  border-top: 1px solid #ccc;
}

@media screen and (min-device-width: 768px) {
  body { font-size: 1.1em; }
}

@media (prefers-color-scheme: dark) {
  body {
    background-color: #1c1c1e;
    color: #ffffff;
  }

  pre, code {
    background-color: #2c2c2e;
    color: #ffffff;
  }

  a { color: #0A84FF; }
  blockquote { border-right-color: #48484a; }
  hr { border-top-color: #48484a; }
}
"""

# (pattern, replacement) pairs applied in order before wrapping a fragment
_XHTML_FIXES = [
    (re.compile(r"<!DOCTYPE[^>]*>", re.IGNORECASE), ""),
    (re.compile(r"<br\s*>", re.IGNORECASE), "<br/>"),
    (re.compile(r"<hr\s*>", re.IGNORECASE), "<hr/>"),
    (re.compile(r"<(img|meta|link)\b([^>]*?)\s*(?<!/)>", re.IGNORECASE), r"<\1\2/>"),
    (re.compile(r"&nbsp;", re.IGNORECASE), "&#160;"),
    (re.compile(r"&copy;", re.IGNORECASE), "&#169;"),
]


def normalize_fragment(html: str) -> str:
    """
    Best-effort HTML -> XHTML clean-up: drops the doctype, self-closes void
    elements and turns the two named entities the generator emits into
    numeric ones. Malformed markup is passed through as is.
    """
    for pattern, repl in _XHTML_FIXES:
        html = pattern.sub(repl, html)
    return html


def html_to_xhtml(html: str, title: str) -> str:
    return f"""<?xml version="1.0" encoding="UTF-8"?>
<!DOCTYPE html>
<html xmlns="http://www.w3.org/1999/xhtml" xml:lang="fa" dir="rtl">
<head>
  <meta charset="UTF-8"/>
  <title>{escape(title)}</title>
  <link rel="stylesheet" type="text/css" href="../css/style.css"/>
</head>
<body>
  <div class="chapter">
{normalize_fragment(html)}
  </div>
</body>
</html>"""


def chapter_to_xhtml(chapter: ChapterRecord) -> str:
    body = (
        f"<h1>{escape(chapter.chapter_group)}</h1>\n"
        f"<h2>{escape(chapter.section_title)}</h2>\n"
        f"{chapter.content_html}"
    )
    return html_to_xhtml(body, chapter.section_title)


def create_nav(chapters: List[ChapterRecord]) -> str:
    """
    EPUB 3 navigation document. Consecutive records of the same chapter
    group are nested under one entry; a group that shows up again later
    gets a second entry.
    """
    nav_items = []
    runs: List[List[ChapterRecord]] = []
    for chapter in chapters:
        if runs and runs[-1][0].chapter_group == chapter.chapter_group:
            runs[-1].append(chapter)
        else:
            runs.append([chapter])

    for run in runs:
        items = "".join(
            f'          <li><a href="chapters/{c.filename}">{escape(c.section_title)}</a></li>\n'
            for c in run
        )
        nav_items.append(
            f'      <li><a href="chapters/{run[-1].filename}">{escape(run[0].chapter_group)}</a>\n'
            f"        <ol>\n{items}        </ol>\n"
            f"      </li>\n"
        )

    return f"""<?xml version="1.0" encoding="UTF-8"?>
<!DOCTYPE html>
<html xmlns="http://www.w3.org/1999/xhtml" xmlns:epub="http://www.idpf.org/2007/ops" xml:lang="fa" dir="rtl">
<head>
  <meta charset="UTF-8"/>
  <title>{NAV_TITLE}</title>
  <link rel="stylesheet" type="text/css" href="css/style.css"/>
</head>
<body>
  <nav epub:type="toc">
    <h1>{NAV_TITLE}</h1>
    <ol>
{"".join(nav_items)}    </ol>
  </nav>
</body>
</html>"""


def create_opf(chapters: List[ChapterRecord], metadata: BookMetadata, modified: Optional[datetime] = None) -> str:
    modified = modified or datetime.now(timezone.utc)
    manifest = ['    <item id="css" href="css/style.css" media-type="text/css"/>\n']
    spine = []

    for i, chapter in enumerate(chapters, start=1):
        item_id = f"chapter{i}"
        manifest.append(
            f'    <item id="{item_id}" href="chapters/{chapter.filename}" media-type="application/xhtml+xml"/>\n'
        )
        spine.append(f'    <itemref idref="{item_id}"/>\n')

    m = metadata
    return f"""<?xml version="1.0" encoding="UTF-8"?>
<package xmlns="http://www.idpf.org/2007/opf" version="3.0" unique-identifier="uid">
  <metadata xmlns:dc="http://purl.org/dc/elements/1.1/">
    <dc:identifier id="uid">{escape(m.identifier)}</dc:identifier>
    <dc:title>{escape(m.title)}</dc:title>
    <dc:creator>{escape(m.author)}</dc:creator>
    <dc:contributor>{TRANSLATOR_LABEL} {escape(m.translator)}</dc:contributor>
    <dc:language>{escape(m.language)}</dc:language>
    <dc:publisher>{escape(m.publisher)}</dc:publisher>
    <dc:rights>{escape(m.rights)}</dc:rights>
    <dc:description>{escape(m.description)}</dc:description>
    <dc:subject>{escape(m.subject)}</dc:subject>
    <dc:date>{escape(m.date)}</dc:date>
    <meta property="dcterms:modified">{modified.strftime("%Y-%m-%dT%H:%M:%SZ")}</meta>
    <meta name="apple:specified-fonts" content="true"/>
    <meta name="ibooks:version" content="1.0"/>
  </metadata>

  <manifest>
    <item id="nav" href="nav.xhtml" media-type="application/xhtml+xml" properties="nav"/>
{"".join(manifest)}  </manifest>

  <spine page-progression-direction="rtl">
    <itemref idref="nav" linear="no"/>
{"".join(spine)}  </spine>
</package>"""


def create_directories(build_dir: Path) -> None:
    for sub in ("META-INF", "OEBPS/css", "OEBPS/chapters"):
        (build_dir / sub).mkdir(parents=True, exist_ok=True)


def write_static_files(build_dir: Path) -> None:
    (build_dir / "mimetype").write_text(MIMETYPE, encoding="utf-8")
    (build_dir / "META-INF" / "container.xml").write_text(CONTAINER_XML, encoding="utf-8")
    (build_dir / "META-INF" / "com.apple.ibooks.display-options.xml").write_text(
        DISPLAY_OPTIONS_XML, encoding="utf-8"
    )
    (build_dir / "OEBPS" / "css" / "style.css").write_text(STYLESHEET, encoding="utf-8")


def write_chapters(build_dir: Path, chapters: List[ChapterRecord]) -> None:
    chapters_dir = build_dir / "OEBPS" / "chapters"
    for chapter in chapters:
        (chapters_dir / chapter.filename).write_text(chapter_to_xhtml(chapter), encoding="utf-8")


def write_package_files(build_dir: Path, chapters: List[ChapterRecord], metadata: BookMetadata) -> None:
    oebps = build_dir / "OEBPS"
    (oebps / "content.opf").write_text(create_opf(chapters, metadata), encoding="utf-8")
    (oebps / "nav.xhtml").write_text(create_nav(chapters), encoding="utf-8")


def ensure_html(html_path: Path, generate_command: Optional[str], cwd: Optional[Path] = None) -> None:
    """
    Runs the static site generator in `cwd` when the rendered book is missing.
    """
    if html_path.exists():
        logger.info("Using existing generated site (%s)", html_path)
        return

    if not generate_command:
        raise InputNotFoundError(f"HTML input not found: {html_path}")

    logger.info("Generating static site with: %s", generate_command)
    try:
        subprocess.run(shlex.split(generate_command), cwd=cwd, check=True, capture_output=True, text=True)
    except subprocess.CalledProcessError as e:
        detail = (e.stderr or e.stdout or "").strip()
        raise GenerationError(f"Site generation failed with status {e.returncode}: {detail}") from e
    except OSError as e:
        raise GenerationError(f"Could not run site generator: {e}") from e

    if not html_path.exists():
        raise InputNotFoundError(f"Site generator did not produce {html_path}")


def build_epub(config: BuildConfig, archiver: Optional[Archiver] = None) -> Path:
    """
    Builds the Apple Books EPUB described by `config` and returns its path.
    The scratch tree under config.build_dir is removed whatever happens.
    """
    archiver = archiver or ZipfileArchiver()
    output_path = config.output_path()

    with scratch_directory(config.build_dir) as build_dir:
        logger.info("Creating directory structure...")
        create_directories(build_dir)

        ensure_html(config.html_path, config.generate_command, config.generate_cwd)

        logger.info("Creating EPUB metadata files...")
        write_static_files(build_dir)

        logger.info("Processing chapters...")
        html = config.html_path.read_text(encoding="utf-8")
        chapters = decompose_html(html, config.end_marker)
        write_chapters(build_dir, chapters)
        logger.info("Processed %d chapters", len(chapters))

        logger.info("Creating package files...")
        write_package_files(build_dir, chapters, config.metadata)

        logger.info("Creating EPUB file...")
        archiver.create(build_dir, output_path)

    logger.info("Created: %s", output_path.name)
    logger.info("Location: %s", output_path)
    logger.info("Size: %.2f KB", output_path.stat().st_size / 1024)
    return output_path
