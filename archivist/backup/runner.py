"""Subprocess invocation for the external dump and restore utilities."""

import asyncio
import os
from contextlib import ExitStack
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional, Protocol, Sequence

from .._utils import logger
from ..exceptions import SubprocessFailure


@dataclass(frozen=True)
class CommandResult:
    """Exit status and combined stdout/stderr of a finished command."""
    returncode: int
    output: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class CommandRunner(Protocol):
    """Anything that can execute an argument list and report its outcome."""

    async def run(
        self,
        args: Sequence[str],
        *,
        stdin_path: Optional[Path] = None,
        env: Optional[Mapping[str, str]] = None,
    ) -> CommandResult:
        ...


class SubprocessRunner:
    """Run commands with asyncio, never through a shell."""

    async def run(
        self,
        args: Sequence[str],
        *,
        stdin_path: Optional[Path] = None,
        env: Optional[Mapping[str, str]] = None,
    ) -> CommandResult:
        """Execute ``args`` and capture combined stdout/stderr.

        Args:
            args: Program and its arguments
            stdin_path: File streamed to the process's standard input
            env: Extra environment variables layered over the current environment

        Returns:
            CommandResult; a missing executable yields return code 127
        """
        full_env = {**os.environ, **(env or {})}
        logger.debug(f"Running: {args[0]} ({len(args) - 1} arguments)")

        with ExitStack() as stack:
            stdin = asyncio.subprocess.DEVNULL
            if stdin_path is not None:
                stdin = stack.enter_context(open(stdin_path, "rb"))

            try:
                proc = await asyncio.create_subprocess_exec(
                    *args,
                    stdin=stdin,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.STDOUT,
                    env=full_env,
                )
            except FileNotFoundError as e:
                return CommandResult(returncode=127, output=str(e))

            stdout, _ = await proc.communicate()

        return CommandResult(
            returncode=proc.returncode,
            output=stdout.decode("utf-8", errors="replace") if stdout else "",
        )


def check_result(args: Sequence[str], result: CommandResult) -> CommandResult:
    """Raise SubprocessFailure unless the command exited with status 0."""
    if not result.ok:
        raise SubprocessFailure(args, result.returncode, result.output)
    return result
