"""Per-document mutual exclusion for the check-then-create in trigger/retry."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from uuid import UUID

__all__ = ["DocumentLocks"]


class DocumentLocks:
    """Map of ``document_id -> asyncio.Lock`` that drops idle entries."""

    def __init__(self) -> None:
        self._locks: dict[UUID, asyncio.Lock] = {}
        self._users: dict[UUID, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, document_id: UUID) -> AsyncIterator[None]:
        lock = self._locks.setdefault(document_id, asyncio.Lock())
        self._users[document_id] = self._users.get(document_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            remaining = self._users[document_id] - 1
            if remaining:
                self._users[document_id] = remaining
            else:
                del self._users[document_id]
                del self._locks[document_id]
