"""
External Commands

Runs the host's dependency installer and an extension's own build tooling as
subprocesses.
"""

import asyncio
import os
import shlex
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from ..core.exceptions import BuildFailedError, CommandError, DependencyInstallError
from ..core.logging import get_logger

logger = get_logger(__name__)

# Output kept in error details
OUTPUT_TAIL = 4000


@dataclass
class CommandResult:
    """Result of a finished command"""

    command: str
    returncode: int
    stdout: str
    stderr: str


class CommandRunner:
    """Executes shell-free commands with a timeout"""

    def __init__(self, timeout: float = 600.0):
        self.timeout = timeout

    async def run(self, command: str, cwd: Path) -> CommandResult:
        """
        Run command in cwd.

        Args:
            command: Command line, split with shlex (no shell)
            cwd: Working directory

        Returns:
            CommandResult of a zero exit

        Raises:
            CommandError: On a missing executable, timeout or non-zero exit
        """
        argv = shlex.split(command)
        if not argv:
            raise CommandError("Empty command")

        logger.info(f"Running '{command}' in {cwd}")
        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                cwd=str(cwd),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=dict(os.environ),
            )
        except OSError as e:
            raise CommandError(f"Failed to start '{command}': {e}", {"cwd": str(cwd)})

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(), timeout=self.timeout
            )
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            raise CommandError(
                f"'{command}' timed out after {self.timeout}s", {"cwd": str(cwd)}
            )

        result = CommandResult(
            command=command,
            returncode=process.returncode,
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
        )
        if result.returncode != 0:
            raise CommandError(
                f"'{command}' exited with code {result.returncode}",
                {"cwd": str(cwd), "stderr": result.stderr[-OUTPUT_TAIL:]},
            )
        return result


class ExtensionTooling:
    """Dependency installation and in-place builds"""

    def __init__(
        self,
        root_dir: Path,
        install_command: str = "pnpm install",
        build_command: str = "pnpm build:publish",
        runner: Optional[CommandRunner] = None,
    ):
        """
        Initialize extension tooling

        Args:
            root_dir: Host project root where dependencies are installed
            install_command: Shared dependency install command
            build_command: Build command run inside an extension directory
            runner: Command runner
        """
        self.root_dir = Path(root_dir)
        self.install_command = install_command
        self.build_command = build_command
        self.runner = runner or CommandRunner()

    async def install_dependencies(self) -> None:
        """
        Install shared project dependencies.

        Raises:
            DependencyInstallError: If the install command fails
        """
        logger.info("Installing project dependencies...")
        try:
            await self.runner.run(self.install_command, self.root_dir)
        except CommandError as e:
            logger.error(f"Failed to install dependencies: {e.message}")
            raise DependencyInstallError(
                f"Failed to install dependencies: {e.message}", e.details
            )
        logger.info("Dependencies installed successfully")

    async def build_extension(self, extension_dir: Path) -> None:
        """
        Build an extension in place with its own tooling.

        Raises:
            BuildFailedError: If the build command fails
        """
        logger.info(f"Building extension at: {extension_dir}")
        try:
            await self.runner.run(self.build_command, Path(extension_dir))
        except CommandError as e:
            logger.error(f"Failed to build extension: {e.message}")
            raise BuildFailedError(f"Failed to build extension: {e.message}", e.details)
        logger.info(f"Extension built: {extension_dir}")
