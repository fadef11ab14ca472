"""Run external commands with asyncio and return their output."""

import asyncio
import contextlib
import logging
import os
import shlex
from asyncio import subprocess
from dataclasses import dataclass
from typing import Dict, List, Optional

_LOGGER = logging.getLogger(__name__)

_CONCURRENCY = 10
_TIMEOUT = 300.0


class CommandException(Exception):
    """A command exited with a non-zero return code."""

    def __init__(self, message: str, returncode: Optional[int] = None, stderr: str = ""):
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


class CommandTimeout(CommandException):
    """A command did not finish in time and was killed."""


class CommandUnavailable(CommandException):
    """The executable could not be started."""


@dataclass
class Command:
    """An instance of a command to run."""

    cmd: List[str]
    """Array of command line arguments."""

    env: Optional[Dict[str, str]] = None
    """Extra environment variables for the subprocess."""

    timeout: float = _TIMEOUT
    """Seconds before the process is killed."""

    @property
    def string(self) -> str:
        """Render the command as a single string."""
        return " ".join([shlex.quote(arg) for arg in self.cmd])

    def __str__(self) -> str:
        return self.string

    async def run(self, stdin: Optional[bytes] = None) -> bytes:
        """Run the command, returning stdout."""
        _LOGGER.debug("Running command: %s", self)
        env = {
            **os.environ,
            **(self.env if self.env else {}),
        }
        async with _semaphore():
            try:
                proc = await asyncio.create_subprocess_exec(
                    *self.cmd,
                    stdin=subprocess.PIPE,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.PIPE,
                    env=env,
                )
            except OSError as ex:
                raise CommandUnavailable(
                    f"Command '{self}' could not be started: {ex}", None, str(ex)
                ) from ex
            try:
                out, err = await asyncio.wait_for(proc.communicate(stdin), self.timeout)
            except asyncio.TimeoutError as ex:
                await _kill(proc)
                raise CommandTimeout(
                    f"Command '{self}' timed out after {self.timeout}s"
                ) from ex
            except BaseException:
                # Cancelled by the caller: the child must not outlive the step.
                await _kill(proc)
                raise
        if proc.returncode:
            stderr = err.decode("utf-8", errors="replace") if err else ""
            errors = [f"Command '{self}' failed with return code {proc.returncode}"]
            if stderr:
                errors.append(stderr)
            _LOGGER.debug("\n".join(errors))
            raise CommandException("\n".join(errors), proc.returncode, stderr)
        return out


async def _kill(proc: subprocess.Process) -> None:
    if proc.returncode is None:
        with contextlib.suppress(ProcessLookupError):
            proc.kill()
    await asyncio.shield(proc.wait())


_SEM: Optional[asyncio.Semaphore] = None


def _semaphore() -> asyncio.Semaphore:
    """Limit concurrent subprocesses; created lazily inside the running loop."""
    global _SEM
    if _SEM is None:
        _SEM = asyncio.Semaphore(_CONCURRENCY)
    return _SEM


async def run(cmd: Command) -> str:
    """Run the specified command and return stdout."""
    out = await cmd.run()
    return out.decode("utf-8") if out else ""
