# main.py
from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import List, Optional

from archive import get_archiver, get_extractor
from build_epub import build_epub
from config import END_OF_BOOK_MARKER, BuildConfig, PatchConfig, default_metadata
from errors import EpubToolError
from update_metadata import update_epub_metadata

logger = logging.getLogger(__name__)

formatter = logging.Formatter(
    "{asctime} - {levelname} - {name} - {message}",
    style="{",
    datefmt="%d-%m-%Y %H:%M:%S"
    )

def set_console_logger(logger):
    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.DEBUG)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

def set_file_logger(logger, log_name):
    file_handler = logging.FileHandler(f"{log_name}.log", mode="a", encoding="utf-8")
    file_handler.setLevel(logging.INFO)
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

def configure_logging(write_file: bool, log_name: str) -> None:
    logger = logging.getLogger()
    logger.setLevel(logging.DEBUG)

    if logger.handlers:
        return

    set_console_logger(logger)

    if write_file:
        set_file_logger(logger, log_name)


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="justforfun-epub", description="Build or patch the Persian 'Just for Fun' EPUB")
    ap.add_argument("--root", type=Path, help="Project root that the default paths are relative to", default=Path("."))
    ap.add_argument("--zip-tool", help="Use the external zip/unzip commands instead of the zipfile module", action="store_true")
    ap.add_argument("--logfile", help="Whether to create a logfile", action="store_true")
    sub = ap.add_subparsers(dest="command", required=True)

    b = sub.add_parser("build", help="Build an Apple Books EPUB from the rendered single-page HTML")
    b.add_argument("--html", type=Path, help="Rendered book (relative to --root)", default=Path("out/all.html"))
    b.add_argument("--build-dir", type=Path, help="Scratch directory (relative to --root)", default=Path("out/epub-build"))
    b.add_argument("--output-dir", type=Path, help="Where the EPUB is written (relative to --root)", default=Path("src/static"))
    b.add_argument("--generate-cmd", type=str, help="Command that renders the HTML when it is missing; empty to disable", default="npm test")
    b.add_argument("--end-marker", type=str, help="Literal that ends the last section", default=END_OF_BOOK_MARKER)

    u = sub.add_parser("update-metadata", help="Rewrite the metadata of an existing EPUB")
    u.add_argument("--input", type=Path, help="EPUB to patch (relative to --root)", default=Path("src/static/justforfun_persian_rtl.epub"))
    u.add_argument("--output", type=Path, help="Patched EPUB; defaults to <input>_updated.epub", default=None)
    u.add_argument("--temp-dir", type=Path, help="Scratch directory (relative to --root)", default=Path("temp-epub"))
    return ap


def _build_config(args) -> BuildConfig:
    root = args.root
    return BuildConfig(
        metadata=default_metadata(),
        html_path=root / args.html,
        build_dir=root / args.build_dir,
        output_dir=root / args.output_dir,
        generate_command=args.generate_cmd or None,
        generate_cwd=root,
        end_marker=args.end_marker,
    )


def _patch_config(args) -> PatchConfig:
    root = args.root
    input_path = root / args.input
    output = args.output
    if output is None:
        output_path = input_path.with_name(f"{input_path.stem}_updated{input_path.suffix}")
    else:
        output_path = root / output
    return PatchConfig(
        metadata=default_metadata(),
        input_path=input_path,
        output_path=output_path,
        temp_dir=root / args.temp_dir,
    )


def log_path(args) -> Path:
    """The log file is named after the input being converted and kept under --root."""
    source = args.html if args.command == "build" else args.input
    return args.root / Path(source).stem


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.logfile, str(log_path(args)))

    try:
        if args.command == "build":
            logger.info("Starting Apple Books EPUB build...")
            build_epub(_build_config(args), archiver=get_archiver(args.zip_tool))
            logger.info("Build complete! The EPUB is optimized for Apple Books.")
        else:
            logger.info("Updating EPUB metadata...")
            update_epub_metadata(
                _patch_config(args),
                archiver=get_archiver(args.zip_tool),
                extractor=get_extractor(args.zip_tool),
            )
    except EpubToolError as e:
        logger.error("%s", e)
        return 1
    except Exception:
        logger.exception("Unexpected failure")
        return 1

    return 0

if __name__ == "__main__":
    raise SystemExit(main())
