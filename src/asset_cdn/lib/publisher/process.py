"""External optimizer process execution."""

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass

# Exit status reported when the executable cannot be started
EXIT_NOT_STARTED = 127


@dataclass(frozen=True)
class ProcessResult:
    """Exit status and captured output of a finished process."""

    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


ProcessRunner = Callable[[Sequence[str]], Awaitable[ProcessResult]]


async def run_process(argv: Sequence[str]) -> ProcessResult:
    """Run a command to completion, capturing stdout and stderr.

    A missing or non-executable binary is reported as exit status 127
    rather than raised, so callers apply one failure policy to both.
    """
    try:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as exc:
        return ProcessResult(returncode=EXIT_NOT_STARTED, stderr=f"could not start {argv[0]}: {exc}")

    stdout, stderr = await proc.communicate()
    return ProcessResult(
        returncode=proc.returncode if proc.returncode is not None else EXIT_NOT_STARTED,
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
    )
