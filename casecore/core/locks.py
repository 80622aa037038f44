"""
Keyed asyncio locks scoped to the running event loop
"""

import asyncio
import weakref
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List

class KeyedLocks:
    """
    One asyncio.Lock per key, created on demand and dropped once no task holds
    or waits on it. Locks are kept per event loop so a registry shared at module
    level stays usable when the loop changes between test runs.
    """

    def __init__(self):
        self._tables: "weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, Dict[Any, List]]" = weakref.WeakKeyDictionary()

    def _table(self) -> Dict[Any, List]:
        loop = asyncio.get_running_loop()
        table = self._tables.get(loop)
        if table is None:
            table = self._tables[loop] = {}
        return table

    @asynccontextmanager
    async def hold(self, key: Any) -> AsyncIterator[None]:
        table = self._table()
        entry = table.get(key)
        if entry is None:
            # [lock, number of tasks holding or waiting]
            entry = table[key] = [asyncio.Lock(), 0]
        entry[1] += 1
        try:
            async with entry[0]:
                yield
        finally:
            entry[1] -= 1
            if entry[1] == 0:
                table.pop(key, None)

