"""
PM2 Process Manager

Controls the host application through the PM2 command line.
"""

import shutil
from pathlib import Path
from typing import Optional

from ..core.exceptions import CommandError
from ..core.logging import get_logger
from ..core.models import ReloadResult
from ..lifecycle.commands import CommandRunner
from ..lifecycle.interfaces import ProcessManager

logger = get_logger(__name__)

DEFAULT_APP_NAME = "buildingai-api"


class Pm2ProcessManager(ProcessManager):
    """PM2 CLI wrapper; operations report failure instead of raising"""

    def __init__(
        self,
        app_name: str = DEFAULT_APP_NAME,
        binary: str = "pm2",
        runner: Optional[CommandRunner] = None,
        cwd: Optional[Path] = None,
    ):
        """
        Initialize PM2 process manager

        Args:
            app_name: Default PM2 application name
            binary: PM2 executable name or path
            runner: Command runner used to invoke PM2
            cwd: Working directory for PM2 invocations
        """
        self.app_name = app_name
        self.binary = binary
        self.runner = runner or CommandRunner(timeout=60.0)
        self.cwd = Path(cwd) if cwd else Path.cwd()

    def is_available(self) -> bool:
        """Check whether the PM2 executable can be found."""
        return shutil.which(self.binary) is not None

    async def reload(self, app_name: Optional[str] = None) -> ReloadResult:
        """Zero downtime reload of the application."""
        return await self._run("reload", app_name)

    async def _run(self, action: str, app_name: Optional[str]) -> ReloadResult:
        target = app_name or self.app_name
        logger.info(f"PM2 {action}: {target}")
        try:
            await self.runner.run(f"{self.binary} {action} {target}", self.cwd)
        except CommandError as e:
            logger.error(f"PM2 {action} failed for {target}: {e.message}")
            return ReloadResult(success=False, message=e.message)

        logger.info(f"PM2 process {action} succeeded: {target}")
        return ReloadResult(success=True, message=f"Process {target} {action} completed")
