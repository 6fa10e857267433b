"""
Tests for external command execution.
"""

import shlex
import sys
from pathlib import Path

import pytest

from eplm.core.exceptions import BuildFailedError, CommandError, DependencyInstallError
from eplm.lifecycle.commands import CommandResult, CommandRunner, ExtensionTooling


def python_command(code: str) -> str:
    return f"{shlex.quote(sys.executable)} -c {shlex.quote(code)}"


class RecordingRunner(CommandRunner):
    def __init__(self, fail: bool = False):
        super().__init__()
        self.fail = fail
        self.calls = []

    async def run(self, command: str, cwd: Path) -> CommandResult:
        self.calls.append((command, Path(cwd)))
        if self.fail:
            raise CommandError("exit 1", {"stderr": "ERR_PNPM"})
        return CommandResult(command=command, returncode=0, stdout="", stderr="")


class TestCommandRunner:
    @pytest.mark.asyncio
    async def test_successful_command(self, temp_dir: Path):
        runner = CommandRunner(timeout=30)

        result = await runner.run(
            python_command("import os; print(os.getcwd())"), temp_dir
        )

        assert result.returncode == 0
        assert Path(result.stdout.strip()).resolve() == temp_dir.resolve()

    @pytest.mark.asyncio
    async def test_non_zero_exit(self, temp_dir: Path):
        runner = CommandRunner(timeout=30)

        with pytest.raises(CommandError) as exc_info:
            await runner.run(
                python_command("import sys; sys.stderr.write('boom'); sys.exit(3)"), temp_dir
            )

        assert "code 3" in exc_info.value.message
        assert exc_info.value.details["stderr"] == "boom"

    @pytest.mark.asyncio
    async def test_timeout_kills_process(self, temp_dir: Path):
        runner = CommandRunner(timeout=0.2)

        with pytest.raises(CommandError) as exc_info:
            await runner.run(python_command("import time; time.sleep(10)"), temp_dir)

        assert "timed out" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_missing_executable(self, temp_dir: Path):
        with pytest.raises(CommandError):
            await CommandRunner().run("definitely-not-a-real-binary --flag", temp_dir)

    @pytest.mark.asyncio
    async def test_empty_command(self, temp_dir: Path):
        with pytest.raises(CommandError):
            await CommandRunner().run("   ", temp_dir)


class TestExtensionTooling:
    @pytest.mark.asyncio
    async def test_install_runs_in_root(self, temp_dir: Path):
        runner = RecordingRunner()
        tooling = ExtensionTooling(temp_dir, install_command="pnpm install", runner=runner)

        await tooling.install_dependencies()

        assert runner.calls == [("pnpm install", temp_dir)]

    @pytest.mark.asyncio
    async def test_build_runs_in_extension_directory(self, temp_dir: Path):
        runner = RecordingRunner()
        tooling = ExtensionTooling(temp_dir, build_command="pnpm build:publish", runner=runner)

        await tooling.build_extension(temp_dir / "extensions" / "blog")

        assert runner.calls == [("pnpm build:publish", temp_dir / "extensions" / "blog")]

    @pytest.mark.asyncio
    async def test_install_failure_is_typed(self, temp_dir: Path):
        tooling = ExtensionTooling(temp_dir, runner=RecordingRunner(fail=True))

        with pytest.raises(DependencyInstallError) as exc_info:
            await tooling.install_dependencies()

        assert exc_info.value.details["stderr"] == "ERR_PNPM"

    @pytest.mark.asyncio
    async def test_build_failure_is_typed(self, temp_dir: Path):
        tooling = ExtensionTooling(temp_dir, runner=RecordingRunner(fail=True))

        with pytest.raises(BuildFailedError):
            await tooling.build_extension(temp_dir)
