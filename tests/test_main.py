# test_main.py
from __future__ import annotations

import zipfile

import main
from archive import UnzipCommandExtractor, ZipCommandArchiver, ZipfileArchiver, ZipfileExtractor


def test_build_command(tmp_path, book_html):
    (tmp_path / "out").mkdir()
    (tmp_path / "out" / "all.html").write_text(book_html, encoding="utf-8")

    code = main.main(["--root", str(tmp_path), "build", "--generate-cmd", ""])

    assert code == 0
    built = list((tmp_path / "src" / "static").glob("justforfun_persian_apple_*.epub"))
    assert len(built) == 1
    assert not (tmp_path / "out" / "epub-build").exists()


def test_build_without_html_exits_1(tmp_path):
    code = main.main(["--root", str(tmp_path), "build", "--generate-cmd", "false"])

    assert code == 1
    assert not (tmp_path / "src" / "static").exists()
    assert not (tmp_path / "out" / "epub-build").exists()


def test_update_metadata_command(tmp_path):
    static = tmp_path / "src" / "static"
    static.mkdir(parents=True)
    with zipfile.ZipFile(static / "justforfun_persian_rtl.epub", "w") as zf:
        zf.writestr("mimetype", "application/epub+zip")
        zf.writestr("content.opf", "<package><metadata></metadata></package>")

    code = main.main(["--root", str(tmp_path), "update-metadata"])

    assert code == 0
    with zipfile.ZipFile(static / "justforfun_persian_rtl_updated.epub") as zf:
        assert "<dc:title>فقط برای تفریح</dc:title>" in zf.read("content.opf").decode("utf-8")
    assert not (tmp_path / "temp-epub").exists()


def test_update_metadata_missing_input_exits_1(tmp_path):
    code = main.main(["--root", str(tmp_path), "update-metadata"])

    assert code == 1
    assert not (tmp_path / "src" / "static" / "justforfun_persian_rtl_updated.epub").exists()


def test_generator_runs_in_root(tmp_path, monkeypatch, book_html):
    site = tmp_path / "site"
    site.mkdir()
    (tmp_path / "book.html").write_text(book_html, encoding="utf-8")
    elsewhere = tmp_path / "elsewhere"
    elsewhere.mkdir()
    monkeypatch.chdir(elsewhere)

    code = main.main([
        "--root", str(site), "build",
        "--generate-cmd", "sh -c 'mkdir -p out && cp ../book.html out/all.html'",
    ])

    assert code == 0
    assert (site / "out" / "all.html").exists()
    assert not (elsewhere / "out").exists()
    assert len(list((site / "src" / "static").glob("*.epub"))) == 1


def test_zip_tool_flag_selects_commands(tmp_path, monkeypatch):
    seen = {}

    def fake_update(config, archiver=None, extractor=None):
        seen["update"] = (archiver, extractor)
        return config.output_path

    def fake_build(config, archiver=None):
        seen["build"] = archiver
        return config.output_path()

    monkeypatch.setattr(main, "update_epub_metadata", fake_update)
    monkeypatch.setattr(main, "build_epub", fake_build)

    assert main.main(["--root", str(tmp_path), "--zip-tool", "update-metadata"]) == 0
    assert main.main(["--root", str(tmp_path), "--zip-tool", "build"]) == 0

    archiver, extractor = seen["update"]
    assert isinstance(archiver, ZipCommandArchiver)
    assert isinstance(extractor, UnzipCommandExtractor)
    assert isinstance(seen["build"], ZipCommandArchiver)


def test_default_uses_zipfile(tmp_path, monkeypatch):
    seen = {}

    def fake_update(config, archiver=None, extractor=None):
        seen["update"] = (archiver, extractor)
        return config.output_path

    monkeypatch.setattr(main, "update_epub_metadata", fake_update)

    assert main.main(["--root", str(tmp_path), "update-metadata"]) == 0
    archiver, extractor = seen["update"]
    assert isinstance(archiver, ZipfileArchiver)
    assert isinstance(extractor, ZipfileExtractor)


def test_log_file_named_after_input(tmp_path):
    parser = main.build_parser()

    build_args = parser.parse_args(["--root", str(tmp_path), "build"])
    patch_args = parser.parse_args(["--root", str(tmp_path), "update-metadata", "--input", "books/novel.epub"])

    assert main.log_path(build_args) == tmp_path / "all"
    assert main.log_path(patch_args) == tmp_path / "novel"
