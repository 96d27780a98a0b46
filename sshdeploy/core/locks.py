"""
Per-target locks.

Runs against the same target are serialized: an asyncio lock orders runs
inside one process, and an exclusive flock on a lock file keeps a second
process from deploying to the same target at the same time.
"""

import asyncio
import os
import re
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Dict, Optional

from sshdeploy.constants import LOCK_FILE_PERMISSIONS
from sshdeploy.exceptions import TargetLocked

# fcntl is Unix-only, handle import gracefully
try:
    import fcntl

    HAS_FCNTL = True
except ImportError:
    HAS_FCNTL = False


def _lock_name(target: str) -> str:
    return re.sub(r"[^A-Za-z0-9_.-]", "_", target) + ".lock"


class TargetLocks:
    """Registry of per-target locks."""

    def __init__(self, lock_dir: Optional[Path] = None):
        self.lock_dir = Path(lock_dir).expanduser() if lock_dir else None
        self._locks: Dict[str, asyncio.Lock] = {}

    def _process_lock(self, target: str) -> asyncio.Lock:
        if target not in self._locks:
            self._locks[target] = asyncio.Lock()
        return self._locks[target]

    @asynccontextmanager
    async def hold(self, target: str) -> AsyncIterator[None]:
        """
        Hold the lock for a target for the duration of a run.

        Raises:
            TargetLocked: If another process holds the target's lock file
        """
        async with self._process_lock(target):
            if self.lock_dir is None or not HAS_FCNTL:
                yield
                return

            self.lock_dir.mkdir(parents=True, exist_ok=True)
            lock_path = self.lock_dir / _lock_name(target)
            fd = os.open(lock_path, os.O_RDWR | os.O_CREAT, LOCK_FILE_PERMISSIONS)
            try:
                try:
                    fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
                except BlockingIOError:
                    raise TargetLocked(target, str(lock_path))
                try:
                    os.ftruncate(fd, 0)
                    os.write(fd, f"{os.getpid()}\n".encode())
                    yield
                finally:
                    fcntl.flock(fd, fcntl.LOCK_UN)
            finally:
                os.close(fd)
