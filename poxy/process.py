"""Cancellable external process execution.

Every command poxy runs (git, pacman, makepkg, bwrap, bash) goes through
:func:`run_process`. A caller can abort the in-flight command either by
setting the ``cancel`` event or by cancelling the awaiting task; in both
cases the child is killed before control returns.
"""

import asyncio
import contextlib
import logging
from collections.abc import Sequence
from pathlib import Path

from pydantic import BaseModel, Field

from poxy.exceptions import OperationCancelledError, ProcessError

logger = logging.getLogger(__name__)


class ProcessResult(BaseModel):
    """Outcome of an external command."""

    argv: list[str] = Field(..., description="Executed command line")
    returncode: int = Field(..., description="Process exit code")
    stdout: str = Field(default="", description="Captured standard output")
    stderr: str = Field(default="", description="Captured standard error")
    duration_seconds: float = Field(default=0.0, description="Wall-clock run time")

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    def check(self) -> "ProcessResult":
        """Raise ProcessError unless the command exited zero."""
        if not self.ok:
            raise ProcessError(
                f"{self.argv[0]} exited with code {self.returncode}",
                argv=self.argv,
                returncode=self.returncode,
                stderr=self.stderr,
            )
        return self


async def _terminate(process: asyncio.subprocess.Process) -> None:
    with contextlib.suppress(ProcessLookupError):
        process.kill()
    await process.wait()


async def run_process(
    argv: Sequence[str],
    *,
    cwd: Path | str | None = None,
    capture: bool = True,
    cancel: asyncio.Event | None = None,
    timeout: float | None = None,
    pass_fds: Sequence[int] = (),
) -> ProcessResult:
    """Run a command and wait for it.

    Args:
        argv: Command and arguments
        cwd: Working directory for the child
        capture: Capture stdout/stderr; when False the child inherits the
            terminal (needed for interactive pacman/makepkg prompts)
        cancel: Event that aborts the command when set
        timeout: Seconds before the child is killed
        pass_fds: Extra file descriptors to leave open in the child

    Returns:
        ProcessResult (non-zero exit codes are not raised; see ``check``)

    Raises:
        FileNotFoundError / PermissionError: the executable could not be run
        OperationCancelledError: ``cancel`` was set while the child ran
        TimeoutError: ``timeout`` elapsed
    """
    argv = [str(a) for a in argv]
    if cancel is not None and cancel.is_set():
        raise OperationCancelledError(f"cancelled before starting {argv[0]}")

    loop = asyncio.get_running_loop()
    start_time = loop.time()
    pipe = asyncio.subprocess.PIPE if capture else None

    logger.debug("exec: %s", " ".join(argv))
    process = await asyncio.create_subprocess_exec(
        *argv,
        cwd=str(cwd) if cwd is not None else None,
        stdout=pipe,
        stderr=pipe,
        pass_fds=tuple(pass_fds),
    )

    communicate = asyncio.ensure_future(process.communicate())
    waiters: set[asyncio.Future] = {communicate}
    cancel_wait: asyncio.Future | None = None
    if cancel is not None:
        cancel_wait = asyncio.ensure_future(cancel.wait())
        waiters.add(cancel_wait)

    try:
        done, _ = await asyncio.wait(
            waiters,
            timeout=timeout,
            return_when=asyncio.FIRST_COMPLETED,
        )
    except asyncio.CancelledError:
        communicate.cancel()
        if cancel_wait is not None:
            cancel_wait.cancel()
        await _terminate(process)
        raise

    if cancel_wait is not None and not cancel_wait.done():
        cancel_wait.cancel()

    if communicate not in done:
        communicate.cancel()
        await _terminate(process)
        if cancel_wait is not None and cancel_wait in done:
            raise OperationCancelledError(f"{argv[0]} was cancelled")
        msg = f"{argv[0]} timed out after {timeout}s"
        raise TimeoutError(msg)

    stdout_bytes, stderr_bytes = communicate.result()
    return ProcessResult(
        argv=argv,
        returncode=process.returncode if process.returncode is not None else -1,
        stdout=(stdout_bytes or b"").decode("utf-8", errors="replace"),
        stderr=(stderr_bytes or b"").decode("utf-8", errors="replace"),
        duration_seconds=loop.time() - start_time,
    )


__all__ = ["ProcessResult", "run_process"]
