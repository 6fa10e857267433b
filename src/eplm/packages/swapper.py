"""
Directory Swapper

Promotes a staged package into the live extension directory. Upgrades keep
user data, runtime storage and installed dependencies unless the new package
ships its own copy.
"""

import asyncio
import shutil
from pathlib import Path
from typing import List, Sequence

from ..core.exceptions import AlreadyExistsError
from ..core.logging import get_logger
from ..core.models import DownloadMode
from .fsops import copy_tree, discard_tree, remove_tree, scratch_path
from .stager import PACKAGE_MARKERS, ensure_structure

logger = get_logger(__name__)

PRESERVED_DIRECTORIES = ("data", "storage", "node_modules")


class DirectorySwapper:
    """Replaces or merges live extension directories"""

    def __init__(
        self, temp_dir: Path, preserved: Sequence[str] = PRESERVED_DIRECTORIES
    ):
        """
        Initialize directory swapper

        Args:
            temp_dir: Root for upgrade backups and set-aside trees
            preserved: Subdirectory names kept across upgrades
        """
        self.temp_dir = Path(temp_dir)
        self.preserved = tuple(preserved)

    async def promote(
        self,
        staged_root: Path,
        live_dir: Path,
        mode: DownloadMode,
        required_markers: Sequence[str] = PACKAGE_MARKERS,
    ) -> None:
        """
        Promote staged_root into live_dir.

        Install mode replaces live_dir outright. Upgrade mode restores the
        preserved directories the new package does not ship and puts the
        previous tree back if anything fails.

        Args:
            staged_root: Resolved root of the staged package
            live_dir: Live extension directory
            mode: Install or upgrade
            required_markers: Paths the promoted directory must contain

        Raises:
            InvalidPackageStructureError: If the promoted tree lacks a marker
        """
        if mode == DownloadMode.UPGRADE and live_dir.exists():
            await asyncio.to_thread(
                self._upgrade, Path(staged_root), Path(live_dir), required_markers
            )
        else:
            await asyncio.to_thread(
                self._install, Path(staged_root), Path(live_dir), required_markers
            )

    async def create(self, staged_root: Path, live_dir: Path) -> None:
        """
        Copy staged_root into a live directory that must not exist yet.

        Raises:
            AlreadyExistsError: If live_dir already exists
        """
        if live_dir.exists():
            raise AlreadyExistsError(f"Extension directory already exists: {live_dir}")
        await asyncio.to_thread(self._create, Path(staged_root), Path(live_dir))
        logger.info(f"Created extension directory: {live_dir}")

    def _create(self, staged_root: Path, live_dir: Path) -> None:
        try:
            copy_tree(staged_root, live_dir)
        except BaseException:
            discard_tree(live_dir)
            raise

    def _install(
        self, staged_root: Path, live_dir: Path, required_markers: Sequence[str]
    ) -> None:
        if remove_tree(live_dir):
            logger.info(f"Removed existing extension directory: {live_dir}")

        try:
            copy_tree(staged_root, live_dir)
            ensure_structure(live_dir, required_markers)
        except BaseException:
            discard_tree(live_dir)
            raise

        logger.info(f"Copied extension files to: {live_dir}")

    def _upgrade(
        self, staged_root: Path, live_dir: Path, required_markers: Sequence[str]
    ) -> None:
        backup_dir = scratch_path(self.temp_dir, "backup-")
        previous_dir = scratch_path(self.temp_dir, "previous-")

        try:
            backup_dir.mkdir(parents=True)
            preserved = self._backup_preserved(live_dir, backup_dir)

            shutil.move(str(live_dir), str(previous_dir))
            logger.info(f"Removed old extension directory: {live_dir}")

            try:
                copy_tree(staged_root, live_dir)
                logger.info(f"Copied new extension files to: {live_dir}")
                self._restore_preserved(backup_dir, live_dir, preserved)
                ensure_structure(live_dir, required_markers)
            except BaseException:
                logger.error(f"Upgrade of {live_dir} failed, restoring previous version")
                discard_tree(live_dir)
                shutil.move(str(previous_dir), str(live_dir))
                raise
        finally:
            discard_tree(backup_dir)
            discard_tree(previous_dir)

    def _backup_preserved(self, live_dir: Path, backup_dir: Path) -> List[str]:
        preserved = []
        for name in self.preserved:
            source = live_dir / name
            if source.is_dir():
                shutil.copytree(source, backup_dir / name, symlinks=True)
                preserved.append(name)
                logger.info(f"Backed up {name} directory")
        return preserved

    def _restore_preserved(
        self, backup_dir: Path, live_dir: Path, preserved: Sequence[str]
    ) -> None:
        for name in preserved:
            target = live_dir / name
            if target.exists():
                logger.info(f"Skipped restoring {name} (exists in new version, keeping new)")
                continue
            shutil.copytree(backup_dir / name, target, symlinks=True)
            logger.info(f"Restored {name} directory")
