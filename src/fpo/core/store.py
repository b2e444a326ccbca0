"""Crash-safe persistence of the candidate registry."""

import asyncio
import json
import os
import shutil
import tempfile
import threading
import weakref
from contextlib import asynccontextmanager, contextmanager
from datetime import datetime
from pathlib import Path
from typing import AsyncIterator, Dict, Iterator, Optional

from loguru import logger
from pydantic import ValidationError

from ..errors import StoreCorrupt
from ..models import Population

STAGING_SUFFIX = ".tmp"
CORRUPT_SUFFIX = ".corrupt"

_PATH_LOCKS: Dict[Path, threading.RLock] = {}
_PATH_LOCKS_GUARD = threading.Lock()
_LOOP_LOCKS: "weakref.WeakKeyDictionary" = weakref.WeakKeyDictionary()


def _lock_for(path: Path) -> threading.RLock:
    """One writer lock per registry path, shared by every store in the process."""
    key = path.resolve()
    with _PATH_LOCKS_GUARD:
        if key not in _PATH_LOCKS:
            _PATH_LOCKS[key] = threading.RLock()
        return _PATH_LOCKS[key]


def _async_lock_for(path: Path) -> asyncio.Lock:
    """One asyncio writer lock per registry path and running event loop."""
    loop = asyncio.get_running_loop()
    key = path.resolve()
    with _PATH_LOCKS_GUARD:
        locks = _LOOP_LOCKS.setdefault(loop, {})
        if key not in locks:
            locks[key] = asyncio.Lock()
        return locks[key]


class PopulationStore:
    """Load and atomically commit the population registry file.

    Saves write a staging file in the registry directory and replace the
    registry with a single ``os.replace``. Writers in the same process are
    serialized by a per-path lock: ``transaction`` for threads and
    ``atransaction`` for coroutines, which also takes the thread lock.
    Concurrent writers in other processes are not coordinated.
    """

    def __init__(self, path: Path, seed: Optional[Population] = None):
        self.path = Path(path)
        self.seed = seed
        self.lock = _lock_for(self.path)

    def exists(self) -> bool:
        return self.path.exists()

    def load(self, seed: Optional[Population] = None) -> Population:
        """Read the registry, or return the seed population when none exists."""
        if not self.path.exists():
            fallback = seed or self.seed
            if fallback is None:
                raise FileNotFoundError(f"Registry not found and no seed given: {self.path}")
            logger.info(f"Registry {self.path} not found, starting from seed population")
            return fallback.model_copy(deep=True)
        return self.read(self.path)

    def load_or_recover(self, seed: Optional[Population] = None) -> Population:
        """Load the registry; on corruption set the file aside and fall back to the seed."""
        fallback = seed or self.seed
        try:
            return self.load(fallback)
        except StoreCorrupt as e:
            if fallback is None:
                raise
            backup = self._set_aside()
            logger.error(f"{e}. Recovering from seed population; corrupt file kept at {backup}")
            return fallback.model_copy(deep=True)

    @staticmethod
    def read(path: Path) -> Population:
        """Parse a registry file, raising StoreCorrupt on any structural problem."""
        try:
            data = json.loads(Path(path).read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            raise StoreCorrupt(Path(path), f"unreadable: {e}") from e
        try:
            return Population.from_registry(data)
        except (ValidationError, ValueError) as e:
            raise StoreCorrupt(Path(path), str(e)) from e

    def save(self, population: Population) -> None:
        """Atomically commit the population."""
        payload = json.dumps(population.to_registry(), indent=2, ensure_ascii=False)
        with self.lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, staging = tempfile.mkstemp(
                prefix=f".{self.path.name}.",
                suffix=STAGING_SUFFIX,
                dir=self.path.parent
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(payload)
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(staging, self.path)
            except BaseException:
                if os.path.exists(staging):
                    os.unlink(staging)
                raise
        logger.debug(f"Committed population ({population.size} candidates) to {self.path}")

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Hold the writer lock across a load -> mutate -> save sequence."""
        with self.lock:
            yield

    @asynccontextmanager
    async def atransaction(self) -> AsyncIterator[None]:
        """Async variant of :meth:`transaction`; serializes coroutines on one loop."""
        async with _async_lock_for(self.path):
            with self.lock:
                yield

    def reset(self, seed: Population) -> Population:
        """Replace the registry with the seed population."""
        with self.transaction():
            if self.path.exists():
                logger.warning(f"Resetting registry {self.path} to seed population")
            self.save(seed)
        return seed

    def _set_aside(self) -> Path:
        stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        backup = self.path.with_name(f"{self.path.name}{CORRUPT_SUFFIX}.{stamp}")
        shutil.copy2(self.path, backup)
        return backup
