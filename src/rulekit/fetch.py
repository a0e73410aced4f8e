from __future__ import annotations

from pathlib import Path, PurePosixPath
from typing import Callable, Iterable
import io
import logging
import shutil
import tempfile
import urllib.error
import urllib.request
import zipfile

from rulekit import __version__
from rulekit.bundle import AssetSource, directory_source
from rulekit.documents import DocumentKind
from rulekit.errors import FetchError

logger = logging.getLogger(__name__)

_ALLOWED_SCHEMES = ("https://", "http://", "file://")


def download_archive_bytes(
    url: str,
    *,
    timeout: int,
    urlopen_fn: Callable[..., object] = urllib.request.urlopen,
) -> bytes:
    if not url.startswith(_ALLOWED_SCHEMES):
        raise FetchError(f"unsupported archive URL: {url}")
    headers = {
        "Accept": "application/zip, application/octet-stream",
        "User-Agent": f"rulekit/{__version__}",
    }
    req = urllib.request.Request(url, headers=headers)
    try:
        with urlopen_fn(req, timeout=timeout) as response:
            return response.read()
    except urllib.error.HTTPError as exc:
        raise FetchError(f"download failed for {url}: HTTP {exc.code}") from exc
    except (urllib.error.URLError, OSError, ValueError) as exc:
        raise FetchError(f"download failed for {url}: {exc}") from exc


def _strip_prefix(name: str, top: str | None, subdir: tuple[str, ...]) -> tuple[str, ...] | None:
    parts = PurePosixPath(name).parts
    if top is not None:
        if not parts or parts[0] != top:
            return None
        parts = parts[1:]
    if subdir:
        if parts[: len(subdir)] != subdir:
            return None
        parts = parts[len(subdir) :]
    return parts or None


def _single_top_level(names: list[str]) -> str | None:
    tops = {PurePosixPath(name).parts[0] for name in names if PurePosixPath(name).parts}
    if len(tops) != 1:
        return None
    top = next(iter(tops))
    # A lone file at the top is content, not a wrapper folder.
    if any(name == top for name in names):
        return None
    if top in {kind.dirname for kind in DocumentKind}:
        return None
    return top


def _unpack_members(zf: zipfile.ZipFile, destination: Path, subdir_parts: tuple[str, ...]) -> int:
    names = [name for name in zf.namelist() if not name.endswith("/")]
    top = _single_top_level(names)
    written = 0
    for name in names:
        parts = _strip_prefix(name, top, subdir_parts)
        if parts is None:
            continue
        if PurePosixPath(name).is_absolute() or ".." in parts:
            raise FetchError(f"archive member escapes destination: {name}")
        target = destination.joinpath(*parts)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(zf.read(name))
        written += 1
    return written


def extract_archive(archive_bytes: bytes, destination: Path, *, subdir: str = "") -> int:
    """Unpack the corpus part of a zip archive into ``destination``.

    GitHub style archives wrap everything in one ``<repo>-<ref>/`` folder,
    which is dropped. ``subdir`` then selects the folder that is laid out
    like an assistant dir. Members land in a scratch directory next to
    ``destination`` first; the previous contents are only replaced once the
    whole archive unpacked. Returns the number of files written.
    """
    subdir_parts = tuple(part for part in PurePosixPath(subdir.strip("/")).parts if part not in ("", "."))
    try:
        archive = zipfile.ZipFile(io.BytesIO(archive_bytes))
    except zipfile.BadZipFile as exc:
        raise FetchError(f"downloaded payload is not a zip archive: {exc}") from exc
    destination.parent.mkdir(parents=True, exist_ok=True)
    staging = Path(tempfile.mkdtemp(prefix=f".{destination.name}-", dir=destination.parent))
    try:
        with archive as zf:
            written = _unpack_members(zf, staging, subdir_parts)
        if written == 0:
            where = f" under {subdir}" if subdir_parts else ""
            raise FetchError(f"archive contains no files{where}")
        if destination.exists():
            shutil.rmtree(destination)
        staging.rename(destination)
    finally:
        if staging.exists():
            shutil.rmtree(staging)
    return written


def check_cache_dir(cache_dir: Path, protected: Iterable[Path]) -> None:
    """Refuse a cache dir that would replace ``protected`` paths when cleared."""
    cache = cache_dir.resolve()
    for path in protected:
        resolved = path.resolve()
        if resolved == cache or cache in resolved.parents:
            raise FetchError(f"cache dir {cache_dir} would overwrite {path}; choose a dedicated directory")


def fetch_archive(
    url: str,
    cache_dir: Path,
    *,
    subdir: str = "",
    timeout: int = 30,
    urlopen_fn: Callable[..., object] = urllib.request.urlopen,
) -> AssetSource:
    archive_bytes = download_archive_bytes(url, timeout=timeout, urlopen_fn=urlopen_fn)
    logger.info("downloaded %d byte(s) from %s", len(archive_bytes), url)
    written = extract_archive(archive_bytes, cache_dir, subdir=subdir)
    logger.info("extracted %d file(s) into %s", written, cache_dir)
    source = directory_source(cache_dir)
    return AssetSource(description=url, root=source.root)
