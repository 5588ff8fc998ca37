# /amm_connector/core/nonce_manager.py
# Per-wallet nonce assignment. The only serialization point for submissions.

import asyncio
import fcntl
import json
import os
from typing import Awaitable, Callable, Dict, Protocol, TypeVar

import aiofiles
from web3 import AsyncWeb3

from amm_connector.core.logger import get_logger, NONCES_COMMITTED

log = get_logger(__name__)

T = TypeVar("T")


class NonceStoreLockedError(Exception):
    pass


class NonceStore(Protocol):
    async def open(self) -> None: ...

    async def load(self, address: str) -> int | None: ...

    async def save(self, address: str, next_nonce: int) -> None: ...

    async def close(self) -> None: ...


class FileNonceStore:
    """
    Durable next-nonce map in a JSON file. An exclusive lock on a sidecar
    file keeps a second process from issuing nonces for the same wallets.
    """
    def __init__(self, path: str):
        self.path = path
        self._lock_file = None
        self._nonces: Dict[str, int] = {}

    async def open(self):
        os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)
        self._lock_file = open(f"{self.path}.lock", "w")
        try:
            fcntl.flock(self._lock_file, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except OSError:
            self._lock_file.close()
            self._lock_file = None
            log.critical("NONCE_STORE_COULD_NOT_ACQUIRE_LOCK", path=self.path)
            raise NonceStoreLockedError(f"Could not lock {self.path}. Another process may be running.")

        try:
            async with aiofiles.open(self.path, "r") as f:
                self._nonces = {k: int(v) for k, v in json.loads(await f.read()).items()}
            log.info("NONCES_LOADED_FROM_FILE", path=self.path, wallets=len(self._nonces))
        except FileNotFoundError:
            self._nonces = {}
        except (ValueError, AttributeError) as e:
            # Empty, truncated or not a JSON object.
            log.critical("NONCE_FILE_UNREADABLE", path=self.path, error=str(e))
            await self.close()
            raise

    async def load(self, address: str) -> int | None:
        return self._nonces.get(address.lower())

    async def save(self, address: str, next_nonce: int) -> None:
        self._nonces[address.lower()] = next_nonce
        async with aiofiles.open(self.path, "w") as f:
            await f.write(json.dumps(self._nonces, sort_keys=True))

    async def close(self) -> None:
        if self._lock_file:
            fcntl.flock(self._lock_file, fcntl.LOCK_UN)
            self._lock_file.close()
            self._lock_file = None
            log.info("NONCE_STORE_LOCK_RELEASED", path=self.path)


class RedisNonceStore:
    """Next-nonce per wallet in Redis, for deployments sharing one store."""
    def __init__(self, client, namespace: str = "nonce"):
        self.client = client
        self.namespace = namespace

    def _key(self, address: str) -> str:
        return f"{self.namespace}:{address.lower()}"

    async def open(self) -> None:
        log.info("NONCE_STORE_REDIS", namespace=self.namespace)

    async def load(self, address: str) -> int | None:
        value = await self.client.get(self._key(address))
        return int(value) if value is not None else None

    async def save(self, address: str, next_nonce: int) -> None:
        await self.client.set(self._key(address), next_nonce)

    async def close(self) -> None:
        await self.client.aclose()


class NonceManager:
    """
    Hands out nonces per wallet address. `provide_nonce` holds an
    `asyncio.Lock` for that address while the nonce is chosen and the
    caller's submit coroutine runs, and commits the nonce once the submit
    returns (node acceptance, not confirmation).
    """
    def __init__(self, w3: AsyncWeb3, store: NonceStore, chain_id: int):
        self.w3 = w3
        self.store = store
        self.chain_id = chain_id
        self._locks: Dict[str, asyncio.Lock] = {}
        self._next: Dict[str, int] = {}

    def _lock_for(self, address: str) -> asyncio.Lock:
        return self._locks.setdefault(address.lower(), asyncio.Lock())

    async def _local_next(self, address: str) -> int | None:
        key = address.lower()
        if key not in self._next:
            stored = await self.store.load(address)
            if stored is not None:
                self._next[key] = stored
        return self._next.get(key)

    async def get_next_nonce(self, address: str) -> int:
        """The larger of our own committed counter and the node's pending count."""
        pending = await self.w3.eth.get_transaction_count(address, "pending")
        local = await self._local_next(address)
        return pending if local is None else max(local, pending)

    async def commit_nonce(self, address: str, nonce: int):
        local = await self._local_next(address)
        if local is not None and nonce + 1 <= local:
            # An explicit, older nonce was reused (replacement or cancel).
            return
        self._next[address.lower()] = nonce + 1
        await self.store.save(address, nonce + 1)
        NONCES_COMMITTED.labels(str(self.chain_id)).inc()
        log.debug("NONCE_COMMITTED", address=address, nonce=nonce)

    async def provide_nonce(self, nonce: int | None, address: str,
                            submit: Callable[[int], Awaitable[T]]) -> T:
        async with self._lock_for(address):
            next_nonce = nonce if nonce is not None else await self.get_next_nonce(address)
            log.info("NONCE_CLAIMED", address=address, nonce=next_nonce, explicit=nonce is not None)
            try:
                result = await submit(next_nonce)
            except Exception:
                log.warning("NONCE_RELEASED_UNUSED", address=address, nonce=next_nonce)
                raise
            await self.commit_nonce(address, next_nonce)
            return result

    async def close(self):
        await self.store.close()
