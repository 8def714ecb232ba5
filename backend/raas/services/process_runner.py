"""
Service for running external tools.

Handles:
- Process spawning with captured output
- Per-call timeouts (the child is killed on expiry)
- Bounded retry per call site
"""
import asyncio
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Sequence, Union

from raas.core.exceptions import CommandFailedError, ProcessLaunchError, ProcessTimeoutError
from raas.core.retry import RetryPolicy, run_with_retry

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


@dataclass
class CommandResult:
    """Result of one external command."""
    command: Sequence[str]
    return_code: int
    stdout: str
    stderr: str

    @property
    def success(self) -> bool:
        return self.return_code == 0


class ProcessRunner:
    """
    Runs external commands with asyncio.create_subprocess_exec.

    Responsibilities:
    - Capture stdout/stderr as text
    - Kill the child when a timeout expires
    - Raise CommandFailedError from run_checked on non-zero exit
    """

    def __init__(self, default_timeout: Optional[float] = None):
        self.default_timeout = default_timeout

    async def run(
        self,
        command: Sequence[str],
        cwd: Optional[PathLike] = None,
        timeout: Optional[float] = None,
        env: Optional[Dict[str, str]] = None,
    ) -> CommandResult:
        """
        Run a command to completion.

        Args:
            command: Program and arguments
            cwd: Working directory
            timeout: Seconds before the child is killed; None waits forever
            env: Extra environment variables merged over os.environ

        Returns:
            CommandResult with the exit code and decoded output

        Raises:
            ProcessLaunchError: If the executable cannot be started
            ProcessTimeoutError: If the command exceeds its timeout
        """
        command = [str(part) for part in command]
        timeout = timeout if timeout is not None else self.default_timeout
        child_env = {**os.environ, **env} if env else None

        logger.debug(f"Running: {' '.join(command)} (cwd={cwd})")
        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                cwd=str(cwd) if cwd else None,
                env=child_env,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except (FileNotFoundError, PermissionError, NotADirectoryError) as e:
            raise ProcessLaunchError(command, str(e)) from e

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
        except asyncio.TimeoutError as e:
            process.kill()
            await process.wait()
            logger.error(f"Killed '{command[0]}' after {timeout} seconds")
            raise ProcessTimeoutError(" ".join(command), timeout) from e

        result = CommandResult(
            command=command,
            return_code=process.returncode,
            stdout=stdout.decode(errors="replace"),
            stderr=stderr.decode(errors="replace"),
        )
        if not result.success:
            logger.debug(f"'{command[0]}' exited with {result.return_code}")
        return result

    async def run_checked(
        self,
        command: Sequence[str],
        cwd: Optional[PathLike] = None,
        timeout: Optional[float] = None,
        env: Optional[Dict[str, str]] = None,
        retry: Optional[RetryPolicy] = None,
    ) -> CommandResult:
        """
        Run a command and fail on non-zero exit.

        Args:
            retry: Attempts and backoff; the per-attempt timeout comes from ``timeout``

        Raises:
            CommandFailedError: If the command exits non-zero on its last attempt
            ProcessLaunchError: If the executable cannot be started
            ProcessTimeoutError: If the last attempt timed out
        """
        async def attempt() -> CommandResult:
            result = await self.run(command, cwd=cwd, timeout=timeout, env=env)
            if not result.success:
                raise CommandFailedError(result.command, result.return_code, result.stderr)
            return result

        policy = retry or RetryPolicy()
        return await run_with_retry(
            policy,
            attempt,
            " ".join(str(part) for part in command),
            retry_on=(CommandFailedError, ProcessTimeoutError),
        )
