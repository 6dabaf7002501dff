"""Unit-test conftest: external process safety net.

Unit tests must never run git, pacman, makepkg or bwrap on the host.
An ``autouse`` fixture replaces ``asyncio.create_subprocess_exec`` with a
guard that fails loudly; tests that exercise process handling patch it
themselves.
"""

import asyncio

import pytest


async def _guarded_create_subprocess_exec(*args, **kwargs):
    raise RuntimeError(
        f"Unit test attempted to spawn a real process: {args[:2]!r}. "
        "Mock run_process or the collaborator that calls it."
    )


@pytest.fixture(autouse=True)
def _no_real_processes(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(asyncio, "create_subprocess_exec", _guarded_create_subprocess_exec)
