"""
Archive Stager

Extracts a package archive into a disposable scratch directory and locates the
real package root inside it.
"""

import asyncio
import shutil
import tempfile
import zipfile
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Sequence

from ..core.exceptions import InvalidPackageStructureError
from ..core.logging import get_logger
from .fsops import discard_tree

logger = get_logger(__name__)

# Backend build output and frontend build output
PACKAGE_MARKERS = ("build", ".output/public")
# Starter templates ship sources, not build output
TEMPLATE_MARKERS = ("package.json",)


def has_markers(directory: Path, markers: Sequence[str]) -> bool:
    """Check whether every marker path exists under directory."""
    return all((directory / marker).exists() for marker in markers)


def ensure_structure(directory: Path, markers: Sequence[str]) -> None:
    """
    Verify a package directory carries its required markers.

    Raises:
        InvalidPackageStructureError: Naming the first missing marker
    """
    for marker in markers:
        if not (directory / marker).exists():
            raise InvalidPackageStructureError(
                f'Invalid plugin package structure: missing "{marker}"',
                {"directory": str(directory)},
            )


def extract_archive(archive_path: Path, target_dir: Path) -> None:
    """
    Extract a zip archive with path traversal protection.

    Args:
        archive_path: Path to zip file
        target_dir: Directory to extract into

    Raises:
        InvalidPackageStructureError: If the archive is unreadable or an entry
            would escape target_dir
    """
    target_resolved = target_dir.resolve()
    try:
        with zipfile.ZipFile(archive_path, "r") as zf:
            for member in zf.infolist():
                name = member.filename
                if Path(name).is_absolute() or ".." in Path(name).parts:
                    raise InvalidPackageStructureError(
                        f"Unsafe path in archive: {name}",
                        {"archive": str(archive_path)},
                    )

                destination = (target_dir / name).resolve()
                try:
                    destination.relative_to(target_resolved)
                except ValueError:
                    raise InvalidPackageStructureError(
                        f"Archive entry escapes extraction directory: {name}",
                        {"archive": str(archive_path)},
                    )

                if member.is_dir():
                    destination.mkdir(parents=True, exist_ok=True)
                    continue

                destination.parent.mkdir(parents=True, exist_ok=True)
                with zf.open(member) as source, open(destination, "wb") as target:
                    shutil.copyfileobj(source, target)
    except zipfile.BadZipFile as e:
        raise InvalidPackageStructureError(
            f"Invalid package archive: {e}",
            {"archive": str(archive_path), "corrupt_archive": True},
        )


def resolve_package_root(extracted_dir: Path, markers: Sequence[str]) -> Path:
    """
    Find the package root inside an extracted archive.

    The extraction directory itself is checked first, then each immediate
    subdirectory to handle archives with one wrapping folder.

    Raises:
        InvalidPackageStructureError: If no candidate carries the markers
    """
    if has_markers(extracted_dir, markers):
        return extracted_dir

    for entry in sorted(extracted_dir.iterdir()):
        if entry.is_dir() and has_markers(entry, markers):
            return entry

    raise InvalidPackageStructureError(
        "Invalid plugin package structure: expected " + " and ".join(markers),
        {"archive_root": extracted_dir.name},
    )


class ArchiveStager:
    """Stages archives in scratch directories under the temp root"""

    def __init__(self, temp_dir: Path):
        """
        Initialize archive stager

        Args:
            temp_dir: Root under which scratch directories are created
        """
        self.temp_dir = Path(temp_dir)

    @asynccontextmanager
    async def stage(
        self, archive_path: Path, markers: Sequence[str] = PACKAGE_MARKERS
    ) -> AsyncIterator[Path]:
        """
        Extract archive_path and yield the resolved package root.

        The scratch directory is removed when the context exits, whether the
        caller succeeded or raised.

        Args:
            archive_path: Archive to extract
            markers: Paths the package root must contain

        Yields:
            The staged package root

        Raises:
            InvalidPackageStructureError: If extraction or root resolution fails
        """
        archive_path = Path(archive_path)
        self.temp_dir.mkdir(parents=True, exist_ok=True)
        scratch_dir = Path(
            tempfile.mkdtemp(prefix=f"{archive_path.stem}-", dir=self.temp_dir)
        )
        logger.debug(f"Staging {archive_path.name} in {scratch_dir}")

        try:
            await asyncio.to_thread(extract_archive, archive_path, scratch_dir)
            staged_root = resolve_package_root(scratch_dir, markers)
            yield staged_root
        finally:
            await asyncio.to_thread(discard_tree, scratch_dir)

