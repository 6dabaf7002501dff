"""Bubblewrap (bwrap) sandbox executor.

Runs a command inside a bubblewrap sandbox configured from an
:class:`~poxy.sandbox.profiles.IsolationProfile`.

Failures are split into two classes because the build pipeline treats
them differently:

- ``SandboxSetupError``: bwrap could not be executed, or it gave up
  before the wrapped command started (missing user namespaces, mount
  failures, seccomp restrictions).
- ``SandboxCommandFailed``: the sandbox came up and the wrapped command
  itself exited non-zero.

bwrap is started with ``--json-status-fd``, and the command is wrapped
in a shell that writes a start marker on a second pipe right before it
execs. bwrap reports the child pid before the child finishes its mounts,
so only both signals together mean the command actually started.
"""

import asyncio
import contextlib
import json
import logging
import os
import shutil
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from poxy.exceptions import SandboxCommandFailed, SandboxSetupError
from poxy.process import ProcessResult, run_process
from poxy.sandbox.profiles import IsolationProfile, get_profile

logger = logging.getLogger(__name__)

# Runs inside the sandbox; bash because pipe fds may be above 9
LAUNCH_SHELL = "/usr/bin/bash"
START_MARKER = b"started"


def _path_exists(path: str) -> bool:
    return os.path.exists(path)


def _drain(fd: int) -> bytes:
    chunks: list[bytes] = []
    while True:
        try:
            chunk = os.read(fd, 4096)
        except BlockingIOError:
            break
        if not chunk:
            break
        chunks.append(chunk)
    return b"".join(chunks)


def _read_status(fd: int) -> dict[str, Any]:
    """Drain bwrap's JSON status pipe without blocking.

    bwrap writes one JSON object per event (``child-pid``, ``exit-code``).
    Returns the merged events; an empty dict means bwrap never forked.
    """
    status: dict[str, Any] = {}
    for line in _drain(fd).decode("utf-8", errors="replace").splitlines():
        line = line.strip()
        if not line:
            continue
        try:
            event = json.loads(line)
        except json.JSONDecodeError:
            logger.debug("Ignoring malformed bwrap status line: %r", line)
            continue
        if isinstance(event, dict):
            status.update(event)
    return status


def _command_started(fd: int) -> bool:
    """Whether the in-sandbox launcher wrote its start marker."""
    return START_MARKER in _drain(fd)


def _wrap_command(command: Sequence[str], start_fd: int) -> list[str]:
    # Signal on start_fd once every mount is in place, then close it and exec
    script = f'printf {START_MARKER.decode()} >&{start_fd} && exec {start_fd}>&- && exec "$@"'
    return [LAUNCH_SHELL, "-c", script, LAUNCH_SHELL, *command]


class BubblewrapExecutor:
    """Executes commands in a bubblewrap sandbox.

    Usage:
        executor = BubblewrapExecutor()
        if executor.available():
            profile = get_profile("build")
            profile.allow_network()
            await executor.run(profile, Path("~/.cache/poxy/aur/foo"), ["makepkg", "-c"])
    """

    def __init__(self, bwrap_path: str = "bwrap", *, verbose: bool = False) -> None:
        """Initialize the executor.

        Args:
            bwrap_path: Name or path of the bwrap executable
            verbose: Log the full launcher command line at INFO level
        """
        self.bwrap_path = bwrap_path
        self.verbose = verbose

    def available(self) -> bool:
        """Check whether the bwrap launcher can be found on this host."""
        return shutil.which(self.bwrap_path) is not None

    def build_args(
        self,
        profile: IsolationProfile,
        workdir: Path | str | None,
        command: Sequence[str],
        *,
        status_fd: int | None = None,
    ) -> list[str]:
        """Translate a profile into bwrap arguments (without the bwrap binary).

        Bind sources that do not exist on the host are skipped, so one
        profile works across differently laid out systems.
        """
        args: list[str] = []

        if status_fd is not None:
            args.extend(["--json-status-fd", str(status_fd)])

        # Namespaces
        if profile.unshare_user:
            args.append("--unshare-user")
            if profile.uid > 0:
                args.extend(["--uid", str(profile.uid)])
            if profile.gid > 0:
                args.extend(["--gid", str(profile.gid)])
        if profile.unshare_pid:
            args.append("--unshare-pid")
        if profile.unshare_net:
            args.append("--unshare-net")
        if profile.unshare_ipc:
            args.append("--unshare-ipc")
        if profile.unshare_cgroup:
            args.append("--unshare-cgroup")

        # Process lifecycle
        if profile.die_with_parent:
            args.append("--die-with-parent")
        if profile.new_session:
            args.append("--new-session")

        # Filesystem
        for bind in profile.bind_read_only:
            if _path_exists(bind):
                args.extend(["--ro-bind", bind, bind])
        for bind in profile.bind_read_write:
            if _path_exists(bind):
                args.extend(["--bind", bind, bind])

        if workdir is not None:
            workdir = str(Path(workdir).resolve())
            args.extend(["--bind", workdir, workdir, "--chdir", workdir])

        # /proc must exist before symlinks that point into /proc/self/fd
        args.extend(["--proc", "/proc"])

        if profile.use_dev:
            args.extend(["--dev", "/dev"])
        else:
            for dev in profile.dev_binds:
                if _path_exists(dev):
                    args.extend(["--dev-bind", dev, dev])

        for mount_point in profile.tmpfs:
            args.extend(["--tmpfs", mount_point])

        for link, target in profile.symlinks.items():
            args.extend(["--symlink", target, link])

        # Environment
        if profile.clear_env:
            args.append("--clearenv")
        for name in profile.env_pass:
            value = os.environ.get(name)
            if value is not None:
                args.extend(["--setenv", name, value])
        for key, value in (profile.env or {}).items():
            args.extend(["--setenv", key, value])

        # Capabilities
        for cap in profile.drop_caps:
            args.extend(["--cap-drop", cap])

        args.append("--")
        args.extend(command)
        return args

    async def run(
        self,
        profile: IsolationProfile,
        workdir: Path | str,
        command: Sequence[str],
        *,
        cancel: asyncio.Event | None = None,
    ) -> ProcessResult:
        """Run a command in the sandbox, with stdio attached to the terminal.

        Args:
            profile: Isolation profile (a clone, never a template)
            workdir: Build directory, bound read-write and used as cwd
            command: Command and arguments to run inside the sandbox
            cancel: Event that kills the sandbox when set

        Returns:
            ProcessResult for a zero exit

        Raises:
            SandboxSetupError: bwrap could not run or failed before the command started
            SandboxCommandFailed: the command ran and exited non-zero
            OperationCancelledError: ``cancel`` was set
        """
        status_read, status_write = os.pipe()
        start_read, start_write = os.pipe()
        for fd in (status_read, start_read):
            os.set_blocking(fd, False)
        try:
            argv = [
                self.bwrap_path,
                *self.build_args(
                    profile,
                    workdir,
                    _wrap_command(command, start_write),
                    status_fd=status_write,
                ),
            ]
            if self.verbose:
                logger.info("bwrap %s", " ".join(argv[1:]))
            else:
                logger.debug("bwrap %s", " ".join(argv[1:]))

            try:
                result = await run_process(
                    argv,
                    capture=False,
                    cancel=cancel,
                    pass_fds=(status_write, start_write),
                )
            except OSError as e:
                msg = f"Failed to start sandbox launcher '{self.bwrap_path}': {e}"
                raise SandboxSetupError(msg) from e
            finally:
                for fd in (status_write, start_write):
                    with contextlib.suppress(OSError):
                        os.close(fd)

            status = _read_status(status_read)
            started = _command_started(start_read)
        finally:
            for fd in (status_read, start_read):
                with contextlib.suppress(OSError):
                    os.close(fd)

        if result.ok:
            return result

        program = command[0] if command else "command"
        # bwrap reports child-pid before the child mounts anything
        if "child-pid" not in status or not started:
            msg = f"Sandbox setup failed (bwrap exited with code {result.returncode} before starting {program})"
            raise SandboxSetupError(msg)

        exit_code = int(status.get("exit-code", result.returncode))
        msg = f"{program} exited with code {exit_code} inside the sandbox"
        raise SandboxCommandFailed(msg, exit_code=exit_code)


def build_sandbox_profile(*extra_rw_binds: str) -> IsolationProfile:
    """Clone the build template and add extra writable binds."""
    profile = get_profile("build")
    profile.add_bind_read_write(*extra_rw_binds)
    return profile


def fetch_sandbox_profile() -> IsolationProfile:
    """Clone the fetch template."""
    return get_profile("fetch")


__all__ = [
    "BubblewrapExecutor",
    "build_sandbox_profile",
    "fetch_sandbox_profile",
]
