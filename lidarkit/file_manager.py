"""Helpers for the on-disk lidar log directories.

Log files are written with a leading dot while they are still open and are
"revealed" (renamed without the dot) once they are complete.  File names
begin with a 19 character timestamp that is used to order them.
"""

from __future__ import annotations

import logging
import os
import stat
from pathlib import Path
from typing import List, Tuple, Union

PathLike = Union[str, "os.PathLike[str]"]

TIME_PREFIX_LENGTH = 19

log = logging.getLogger(__name__)


def dir_total_size(path: PathLike) -> int:
    """Return the total size in bytes of a file or of everything below a directory.

    Unreadable or missing paths count as zero bytes.
    """
    try:
        info = os.stat(path)
    except OSError:
        log.error("get directory stat error: %s", path)
        return 0
    if stat.S_ISREG(info.st_mode):
        return info.st_size
    if not stat.S_ISDIR(info.st_mode):
        log.warning("unknown directory type: %s", path)
        return 0
    try:
        with os.scandir(path) as entries:
            children = [entry.path for entry in entries]
    except OSError:
        log.error("opendir: %s failed", path)
        return 0
    return sum(dir_total_size(child) for child in children)


def _collect(directory: Path, found: List[Tuple[str, str]]) -> None:
    with os.scandir(directory) as entries:
        for entry in entries:
            if entry.is_symlink():
                continue
            if entry.is_file(follow_symlinks=False):
                if entry.name.startswith("."):
                    continue
                found.append((entry.name[:TIME_PREFIX_LENGTH], entry.name))
            elif entry.is_dir(follow_symlinks=False):
                try:
                    _collect(Path(entry.path), found)
                except OSError:
                    log.error("opendir: %s failed", entry.path)


def collect_file_names(path: PathLike) -> List[Tuple[str, str]]:
    """Return ``(time_prefix, file_name)`` pairs for visible files, oldest first.

    Subdirectories are searched too; hidden files and symbolic links are
    skipped.  Raises ``OSError`` if ``path`` cannot be listed.
    """
    found: List[Tuple[str, str]] = []
    _collect(Path(path), found)
    found.sort(key=lambda item: item[0])
    return found


def reveal_hidden_files(path: PathLike) -> List[Path]:
    """Rename every hidden regular file below ``path`` to drop its leading dot.

    An existing file with the target name is replaced.  Returns the new paths.
    """
    if not os.fspath(path):
        raise ValueError("directory name is empty")
    revealed: List[Path] = []
    with os.scandir(path) as entries:
        items = list(entries)
    for entry in items:
        if entry.is_symlink():
            continue
        if entry.is_file(follow_symlinks=False):
            if not entry.name.startswith("."):
                continue
            target = Path(path) / entry.name[1:]
            try:
                os.replace(entry.path, target)
            except OSError as exc:
                log.warning("Rename hidden file %s failed: %s", entry.name, exc)
                continue
            revealed.append(target)
        elif entry.is_dir(follow_symlinks=False):
            try:
                revealed.extend(reveal_hidden_files(entry.path))
            except OSError:
                log.error("opendir: %s failed", entry.path)
    return revealed


def reveal_file(directory: PathLike, file_name: str) -> Path:
    """Rename the hidden file ``directory/file_name`` to drop its leading dot.

    Returns the new path.  Raises ``ValueError`` if the name is not hidden and
    ``FileNotFoundError`` if the file does not exist.
    """
    if not file_name or not file_name.startswith("."):
        raise ValueError(f"not a hidden file name: {file_name!r}")
    source = Path(directory) / file_name
    if not os.path.exists(source):
        raise FileNotFoundError(f"the file to be renamed does not exist: {source}")
    target = Path(directory) / file_name[1:]
    os.replace(source, target)
    return target


def delete_hidden_files(path: PathLike) -> List[Path]:
    """Delete every hidden regular file below ``path``; return the removed paths."""
    removed: List[Path] = []
    with os.scandir(path) as entries:
        items = list(entries)
    for entry in items:
        if entry.is_symlink():
            continue
        if entry.is_file(follow_symlinks=False):
            if not entry.name.startswith("."):
                continue
            try:
                os.remove(entry.path)
            except OSError as exc:
                log.warning("Remove hidden file %s failed: %s", entry.name, exc)
                continue
            removed.append(Path(entry.path))
        elif entry.is_dir(follow_symlinks=False):
            try:
                removed.extend(delete_hidden_files(entry.path))
            except OSError:
                log.error("opendir: %s failed", entry.path)
    return removed


def make_directory(path: PathLike) -> None:
    """Create a single directory; raises ``OSError`` if it cannot be made."""
    os.mkdir(path, 0o777)


def directory_exists(path: PathLike) -> bool:
    """Return whether anything exists at ``path``."""
    return os.path.exists(path)