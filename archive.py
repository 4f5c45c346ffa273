# archive.py
from __future__ import annotations

import logging
import shutil
import subprocess
import zipfile
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Protocol, Tuple

from errors import ArchiveError

logger = logging.getLogger(__name__)

MIMETYPE = "application/epub+zip"


class Archiver(Protocol):
    def create(self, source_dir: Path, output_path: Path) -> None:
        ...


class Extractor(Protocol):
    def extract(self, archive_path: Path, dest_dir: Path) -> None:
        ...


def _iter_files(root: Path) -> List[Tuple[Path, str]]:
    files: List[Tuple[Path, str]] = []
    for path in root.rglob("*"):
        if not path.is_file():
            continue
        files.append((path, path.relative_to(root).as_posix()))
    files.sort(key=lambda x: x[1])
    return files


def _discard(path: Path) -> None:
    if path.exists():
        logger.debug("Removing partial archive %s", path)
        path.unlink()


class ZipfileArchiver:
    """
    Packs a directory with the zipfile module.

    When the tree has a 'mimetype' file at its root it is written first and
    stored without compression, as EPUB readers require; everything else is
    deflated. Without it the result is a plain recursive zip.
    """

    def create(self, source_dir: Path, output_path: Path) -> None:
        mimetype_path = source_dir / "mimetype"
        conformant = mimetype_path.is_file()
        if not conformant:
            logger.warning("No mimetype in %s, writing a plain zip archive", source_dir)

        output_path.parent.mkdir(parents=True, exist_ok=True)
        if output_path.exists():
            output_path.unlink()

        try:
            with zipfile.ZipFile(output_path, "w", compression=zipfile.ZIP_DEFLATED) as zf:
                if conformant:
                    zf.write(mimetype_path, arcname="mimetype", compress_type=zipfile.ZIP_STORED)
                for path, rel in _iter_files(source_dir):
                    if conformant and rel == "mimetype":
                        continue
                    zf.write(path, arcname=rel)
        except (OSError, zipfile.BadZipFile) as e:
            _discard(output_path)
            raise ArchiveError(f"Could not create {output_path}: {e}") from e


class ZipfileExtractor:
    def extract(self, archive_path: Path, dest_dir: Path) -> None:
        try:
            with zipfile.ZipFile(archive_path, "r") as zf:
                zf.extractall(dest_dir)
        except (OSError, zipfile.BadZipFile) as e:
            raise ArchiveError(f"Could not extract {archive_path}: {e}") from e


def _run(cmd: List[str], cwd: Path) -> None:
    logger.debug("Running: %s (cwd=%s)", " ".join(cmd), cwd)
    try:
        subprocess.run(cmd, cwd=cwd, check=True, capture_output=True, text=True)
    except subprocess.CalledProcessError as e:
        detail = (e.stderr or e.stdout or "").strip()
        raise ArchiveError(f"{cmd[0]} exited with status {e.returncode}: {detail}") from e
    except OSError as e:
        raise ArchiveError(f"Could not run {cmd[0]}: {e}") from e


class ZipCommandArchiver:
    """Same layout as ZipfileArchiver, built with the external zip tool."""

    def create(self, source_dir: Path, output_path: Path) -> None:
        output_path = output_path.resolve()
        output_path.parent.mkdir(parents=True, exist_ok=True)
        if output_path.exists():
            output_path.unlink()

        entries = sorted(p.name for p in source_dir.iterdir() if p.name != "mimetype")
        try:
            if (source_dir / "mimetype").is_file():
                _run(["zip", "-X0", str(output_path), "mimetype"], source_dir)
                if entries:
                    _run(["zip", "-rg", str(output_path), *entries, "-x", "mimetype"], source_dir)
            else:
                logger.warning("No mimetype in %s, writing a plain zip archive", source_dir)
                _run(["zip", "-r", str(output_path), *entries], source_dir)
        except ArchiveError:
            _discard(output_path)
            raise


class UnzipCommandExtractor:
    def extract(self, archive_path: Path, dest_dir: Path) -> None:
        dest_dir.mkdir(parents=True, exist_ok=True)
        _run(["unzip", "-q", str(archive_path.resolve()), "-d", str(dest_dir.resolve())], dest_dir)


def get_archiver(use_zip_tool: bool = False) -> Archiver:
    return ZipCommandArchiver() if use_zip_tool else ZipfileArchiver()


def get_extractor(use_zip_tool: bool = False) -> Extractor:
    return UnzipCommandExtractor() if use_zip_tool else ZipfileExtractor()


@contextmanager
def scratch_directory(path: Path) -> Iterator[Path]:
    """
    Yields a fresh, empty directory at `path` and removes it on exit,
    whether the body finished or raised.
    """
    if path.exists():
        logger.debug("Removing stale scratch directory %s", path)
        shutil.rmtree(path)
    path.mkdir(parents=True)
    try:
        yield path
    finally:
        logger.debug("Cleaning up %s", path)
        shutil.rmtree(path, ignore_errors=True)
