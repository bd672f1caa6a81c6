"""Recursive copy, collect and clear helpers for the staging directory.

None of these swallow errors: the first OSError aborts the operation and
propagates with the offending path in ``OSError.filename``.
"""

import logging
import os
import shutil
from pathlib import Path
from typing import List, Optional

from vbt.config.models import LOCK_FILE_NAME

logger = logging.getLogger(__name__)


def copy_tree(source: Path, destination: Path, exclude_name: Optional[str] = None) -> None:
    """Copies the contents of ``source`` into ``destination``, mirroring its structure.

    Existing files at the destination are overwritten. Symlinks are followed,
    so a broken link raises FileNotFoundError. A top-level entry named
    ``exclude_name`` is skipped with a warning; deeper entries are copied.
    """
    destination.mkdir(parents=True, exist_ok=True)

    for entry in sorted(source.iterdir(), key=lambda p: p.name):
        if exclude_name is not None and entry.name == exclude_name:
            logger.warning(f"Skipping {entry}: name is reserved for the temp folder lock")
            continue
        target = destination / entry.name
        if entry.is_dir():
            copy_tree(entry, target)
        else:
            shutil.copyfile(entry, target)


def stage_input(source: Path, destination: Path, exclude_name: Optional[str] = None) -> Path:
    """Copies a file or a directory tree into ``destination``.

    A single file lands as ``destination/<name>``; a directory has its
    contents copied (not the directory itself). Returns the staged path.
    Nothing named ``exclude_name`` is placed directly in ``destination``;
    a skipped single file returns ``destination``.
    """
    if source.is_dir():
        copy_tree(source, destination, exclude_name=exclude_name)
        return destination
    if source.is_file():
        destination.mkdir(parents=True, exist_ok=True)
        if exclude_name is not None and source.name == exclude_name:
            logger.warning(f"Skipping {source}: name is reserved for the temp folder lock")
            return destination
        target = destination / source.name
        shutil.copyfile(source, target)
        return target
    raise FileNotFoundError(2, "Input path does not exist or is not a file/directory", str(source))


def _raise_walk_error(error: OSError) -> None:
    raise error


def collect_files(root: Path, exclude_name: str = LOCK_FILE_NAME) -> List[Path]:
    """Returns every regular file under ``root`` except files named ``exclude_name``.

    Traversal is sorted at each level so the result is stable for static content.
    A non-directory root yields an empty list.
    """
    if not root.is_dir():
        return []

    files: List[Path] = []
    for current, dirs, names in os.walk(str(root), onerror=_raise_walk_error):
        current_path = Path(current)
        dirs.sort()
        for name in sorted(names):
            if name == exclude_name:
                continue
            path = current_path / name
            if path.is_file():
                files.append(path)
    return files


def clear_children(directory: Path, exclude: Optional[str] = None) -> None:
    """Deletes every entry inside ``directory`` but keeps the directory itself.

    An entry named ``exclude`` is left in place. Calling it on an empty or
    missing directory is a no-op.
    """
    if not directory.is_dir():
        return

    for entry in list(directory.iterdir()):
        if exclude is not None and entry.name == exclude:
            continue
        if entry.is_dir() and not entry.is_symlink():
            shutil.rmtree(entry)
        else:
            entry.unlink()
