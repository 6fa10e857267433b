"""
Asset Publisher

Copies an extension's public web assets into the host's shared public
directory and removes them again on uninstall.
"""

import asyncio
from pathlib import Path

from ..core.exceptions import AssetPublishError
from ..core.logging import get_logger
from ..core.naming import to_safe_name
from .fsops import copy_tree, remove_tree

logger = get_logger(__name__)

PUBLIC_OUTPUT = Path(".output") / "public"


class AssetPublisher:
    """Publishes extension web assets under ``<public_root>/<safe identifier>``"""

    def __init__(self, public_root: Path):
        self.public_root = Path(public_root)

    def target_dir(self, identifier: str) -> Path:
        return self.public_root / to_safe_name(identifier)

    async def publish(self, identifier: str, source_public_dir: Path) -> bool:
        """
        Copy source_public_dir to the extension's public directory.

        Any previously published assets are replaced. A missing source is not
        an error since some extensions have no front-end.

        Returns:
            True if assets were copied, False if there was nothing to publish

        Raises:
            AssetPublishError: If copying fails
        """
        source_public_dir = Path(source_public_dir)
        target = self.target_dir(identifier)

        if not source_public_dir.is_dir():
            logger.warning(
                f"Source web directory not found: {source_public_dir}. Skipping web assets copy."
            )
            return False

        try:
            if await asyncio.to_thread(remove_tree, target):
                logger.info(f"Removed existing web assets: {target}")
            await asyncio.to_thread(copy_tree, source_public_dir, target)
        except OSError as e:
            logger.error(f"Failed to copy web assets: {e}")
            raise AssetPublishError(
                f"Failed to copy web assets: {e}", {"identifier": identifier}
            )

        logger.info(f"Web assets copied successfully for extension: {identifier}")
        return True

    async def publish_from(self, identifier: str, live_dir: Path) -> bool:
        """Publish the ``.output/public`` directory of a live extension."""
        return await self.publish(identifier, Path(live_dir) / PUBLIC_OUTPUT)

    async def retract(self, identifier: str) -> bool:
        """
        Remove the extension's published assets.

        Absence and removal failures are logged, never raised.

        Returns:
            True if assets were removed
        """
        target = self.target_dir(identifier)
        try:
            removed = await asyncio.to_thread(remove_tree, target)
        except OSError as e:
            logger.error(f"Failed to remove web assets: {e}")
            return False

        if removed:
            logger.info(f"Web assets removed successfully for extension: {identifier}")
        else:
            logger.info(f"Web assets directory not found: {target}. Skipping removal.")
        return removed
