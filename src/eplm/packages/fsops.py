"""Blocking filesystem helpers shared by the package components."""

import shutil
import tempfile
from pathlib import Path

from ..core.logging import get_logger

logger = get_logger(__name__)


def remove_tree(path: Path) -> bool:
    """
    Remove a directory tree if it exists.

    Returns:
        True if something was removed, False if the path was absent
    """
    if not path.exists() and not path.is_symlink():
        return False
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
    else:
        path.unlink()
    return True


def discard_tree(path: Path) -> None:
    """Remove a scratch tree, logging instead of raising."""
    try:
        remove_tree(path)
    except OSError as e:
        logger.warning(f"Failed to remove {path}: {e}")


def copy_tree(source: Path, target: Path) -> None:
    """Copy source into target, creating target and merging into it."""
    target.mkdir(parents=True, exist_ok=True)
    shutil.copytree(source, target, symlinks=True, dirs_exist_ok=True)


def scratch_path(temp_dir: Path, prefix: str) -> Path:
    """Reserve a unique, not yet existing path under temp_dir."""
    temp_dir.mkdir(parents=True, exist_ok=True)
    reserved = Path(tempfile.mkdtemp(prefix=prefix, dir=temp_dir))
    reserved.rmdir()
    return reserved
