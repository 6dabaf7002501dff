"""Git operations for AUR package repositories."""

import asyncio
import logging
from pathlib import Path

from poxy.process import run_process

logger = logging.getLogger(__name__)


class GitClient:
    """Clones and updates package repositories with the git CLI."""

    def __init__(self, git_path: str = "git") -> None:
        self.git_path = git_path

    async def clone(self, url: str, dest: Path, *, cancel: asyncio.Event | None = None) -> None:
        """Clone ``url`` into ``dest``.

        Raises:
            ProcessError: git exited non-zero
        """
        logger.debug("Cloning %s into %s", url, dest)
        result = await run_process([self.git_path, "clone", url, str(dest)], cancel=cancel)
        result.check()

    async def pull(self, repo_dir: Path, *, cancel: asyncio.Event | None = None) -> None:
        """Update a clone in place with ``git pull --rebase``.

        Raises:
            ProcessError: git exited non-zero
        """
        logger.debug("Updating %s", repo_dir)
        result = await run_process([self.git_path, "pull", "--rebase"], cwd=repo_dir, cancel=cancel)
        result.check()


__all__ = ["GitClient"]
