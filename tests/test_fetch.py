from __future__ import annotations

from pathlib import Path
import io
import urllib.error
import zipfile

import pytest

from rulekit.errors import FetchError
from rulekit.fetch import check_cache_dir, download_archive_bytes, extract_archive, fetch_archive


def _zip_bytes(files: dict[str, str]) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zf:
        for name, text in files.items():
            zf.writestr(name, text)
    return buffer.getvalue()


class _Response:
    def __init__(self, payload: bytes) -> None:
        self._payload = payload

    def __enter__(self) -> "_Response":
        return self

    def __exit__(self, *_exc: object) -> None:
        return None

    def read(self) -> bytes:
        return self._payload


def test_fetch_archive_strips_wrapper_and_subdir(tmp_path: Path) -> None:
    archive = _zip_bytes(
        {
            "docs-main/README.md": "project readme",
            "docs-main/.cursor/README.md": "| C |\n",
            "docs-main/.cursor/rules/a.mdc": "A\n",
            "docs-main/.cursor/commands/b.md": "B\n",
        }
    )
    seen: list[tuple[str, int]] = []

    def _urlopen(req, timeout):
        seen.append((req.full_url, timeout))
        return _Response(archive)

    source = fetch_archive(
        "https://example.com/docs.zip",
        tmp_path / "cache",
        subdir=".cursor",
        timeout=7,
        urlopen_fn=_urlopen,
    )
    assert seen == [("https://example.com/docs.zip", 7)]
    assert source.description == "https://example.com/docs.zip"
    assert [rel for rel, _ in source.iter_files()] == ["README.md", "commands/b.md", "rules/a.mdc"]


def test_extract_keeps_unwrapped_corpus(tmp_path: Path) -> None:
    archive = _zip_bytes({"rules/a.mdc": "A\n", "rules/b.mdc": "B\n"})
    assert extract_archive(archive, tmp_path / "out") == 2
    assert (tmp_path / "out" / "rules" / "a.mdc").read_text(encoding="utf-8") == "A\n"


def test_extract_replaces_previous_cache(tmp_path: Path) -> None:
    destination = tmp_path / "out"
    (destination / "rules").mkdir(parents=True)
    (destination / "rules" / "stale.mdc").write_text("old", encoding="utf-8")
    extract_archive(_zip_bytes({"rules/a.mdc": "A\n", "README.md": "x"}), destination)
    assert not (destination / "rules" / "stale.mdc").exists()


def test_extract_rejects_escaping_members(tmp_path: Path) -> None:
    archive = _zip_bytes({"rules/a.mdc": "A\n", "rules/../../evil.md": "x"})
    with pytest.raises(FetchError):
        extract_archive(archive, tmp_path / "out")


def test_extract_missing_subdir_raises(tmp_path: Path) -> None:
    with pytest.raises(FetchError):
        extract_archive(_zip_bytes({"repo/rules/a.mdc": "A\n"}), tmp_path / "out", subdir=".cursor")


def test_extract_rejects_non_zip(tmp_path: Path) -> None:
    with pytest.raises(FetchError):
        extract_archive(b"<html>not found</html>", tmp_path / "out")


def test_download_wraps_network_errors() -> None:
    def _failing(req, timeout):
        raise urllib.error.URLError("connection refused")

    with pytest.raises(FetchError) as excinfo:
        download_archive_bytes("https://example.com/x.zip", timeout=1, urlopen_fn=_failing)
    assert "connection refused" in str(excinfo.value)


def test_download_rejects_unknown_scheme() -> None:
    with pytest.raises(FetchError):
        download_archive_bytes("ftp://example.com/x.zip", timeout=1)


def test_failed_extract_keeps_previous_cache(tmp_path: Path) -> None:
    cache = tmp_path / "cache"
    (cache / "rules").mkdir(parents=True)
    (cache / "rules" / "keep.mdc").write_text("good", encoding="utf-8")
    with pytest.raises(FetchError):
        extract_archive(_zip_bytes({"repo/rules/a.mdc": "A\n"}), cache, subdir=".cursor")
    with pytest.raises(FetchError):
        extract_archive(_zip_bytes({"rules/a.mdc": "A\n", "rules/../../evil.md": "x"}), cache)
    assert (cache / "rules" / "keep.mdc").read_text(encoding="utf-8") == "good"
    assert not (cache / "rules" / "a.mdc").exists()
    assert sorted(path.name for path in tmp_path.iterdir()) == ["cache"]


def test_cache_dir_may_not_cover_the_project(tmp_path: Path) -> None:
    protected = (tmp_path, tmp_path / ".cursor")
    for cache in (tmp_path, tmp_path / ".cursor", tmp_path.parent):
        with pytest.raises(FetchError):
            check_cache_dir(cache, protected)
    check_cache_dir(tmp_path / ".rulekit" / "cache", protected)
