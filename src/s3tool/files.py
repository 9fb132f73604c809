import logging
import os
import stat
from dataclasses import dataclass
from pathlib import Path, PurePath, PurePosixPath
from typing import Iterator, Union

from .transfer import UploadItem

logger = logging.getLogger(__name__)

PathLike = Union[str, os.PathLike]


@dataclass(frozen=True)
class EnumeratedFile:
    local_path: Path
    relative_key_suffix: str
    size_bytes: int


def _regular_size(path: str) -> int:
    """Return the size of a regular file, or -1 for anything else (links included)."""
    st = os.lstat(path)
    if not stat.S_ISREG(st.st_mode):
        return -1
    return st.st_size


def _skip(err: OSError) -> None:
    logger.debug("Skipping unreadable entry %s: %s", getattr(err, "filename", "?"), err)


def enumerate_files(root: PathLike) -> Iterator[EnumeratedFile]:
    """Yield every regular file under root with its size and relative key suffix.

    Symlinks are neither followed nor yielded. Entries that fail to stat
    (permissions, deleted mid-walk) are skipped. If root is a regular file,
    it is yielded alone with its file name as suffix. An empty root yields
    nothing rather than the current directory.
    """
    root = os.fspath(root)
    if not root:
        return
    try:
        size = _regular_size(root)
    except OSError as e:
        _skip(e)
        return
    if size >= 0:
        yield EnumeratedFile(Path(root), PurePath(root).name, size)
        return

    for dirpath, _dirnames, filenames in os.walk(root, onerror=_skip):
        for name in filenames:
            full = os.path.join(dirpath, name)
            try:
                size = _regular_size(full)
            except OSError as e:
                _skip(e)
                continue
            if size < 0:
                continue
            rel = PurePath(os.path.relpath(full, root))
            yield EnumeratedFile(Path(full), PurePosixPath(*rel.parts).as_posix(), size)


def total_bytes(root: PathLike) -> int:
    return sum(f.size_bytes for f in enumerate_files(root))


def map_key(base_key: str, relative_key_suffix: str) -> str:
    """Join a key prefix and a relative suffix with exactly one '/'."""
    base = base_key.rstrip("/")
    return f"{base}/{relative_key_suffix}" if base else relative_key_suffix


def files_recursive(root: PathLike, base_key: str) -> Iterator[UploadItem]:
    for f in enumerate_files(root):
        yield UploadItem(local_path=f.local_path, key=map_key(base_key, f.relative_key_suffix), size_bytes=f.size_bytes)
