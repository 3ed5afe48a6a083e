"""Per-account sequence belief and its resolution against the node.

The cache only ever holds what this process *believes* the next sequence is.
The node is authoritative: any sequence-related rejection clears the belief
so the next resolution goes back to the node.
"""
import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Protocol

log = logging.getLogger("ledger_submit.sequence")

# fetch(node, address) -> next sequence on ledger
FetchSequence = Callable[[str, str], Awaitable[int]]


class SequenceCache(Protocol):
    def read(self, address: str) -> int | None: ...
    def write(self, address: str, value: int) -> None: ...
    def clear(self, address: str) -> None: ...
    def snapshot(self) -> dict[str, int | None]: ...


class InMemorySequenceCache:
    """address -> next sequence, absent meaning "must fetch"."""

    def __init__(self) -> None:
        self._seqs: dict[str, int | None] = {}

    def read(self, address: str) -> int | None:
        return self._seqs.get(address)

    def write(self, address: str, value: int) -> None:
        if value < 0:
            raise ValueError(f"sequence must be non-negative, got {value}")
        self._seqs[address] = value

    def clear(self, address: str) -> None:
        self._seqs[address] = None

    def snapshot(self) -> dict[str, int | None]:
        return dict(self._seqs)


class SequenceResolver:
    def __init__(self, cache: SequenceCache | None = None) -> None:
        self.cache: SequenceCache = cache if cache is not None else InMemorySequenceCache()

    async def resolve(self, address: str, fetch: FetchSequence, node: str) -> int:
        """Return the cached sequence for ``address`` or fetch, cache and return it.

        Errors raised by ``fetch`` propagate unchanged.
        """
        seq = self.cache.read(address)
        if seq is not None:
            log.debug("resolve %s -> %s (cached)", address, seq)
            return seq

        seq = await fetch(node, address)
        self.cache.write(address, seq)
        log.debug("resolve %s -> %s (fetched from %s)", address, seq, node)
        return seq

    get = resolve

    def advance(self, address: str) -> None:
        seq = self.cache.read(address)
        if seq is None:
            # Invalidated while the submit was in flight; next resolve fetches.
            log.debug("advance %s skipped, nothing cached", address)
            return
        self.cache.write(address, seq + 1)
        log.debug("advance %s %s -> %s", address, seq, seq + 1)

    def invalidate(self, address: str) -> None:
        self.cache.clear(address)
        log.debug("invalidate %s", address)


class AccountLocks:
    """One asyncio.Lock per account, for callers that want same-account queuing."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}

    def get_lock(self, address: str) -> asyncio.Lock:
        lock = self._locks.get(address)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[address] = lock
        return lock
