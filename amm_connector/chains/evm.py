# /amm_connector/chains/evm.py
# Chain gateway used by the connectors: RPC handle, token list, nonce
# coordination and stuck-transaction cancellation for one (chain, network).
import asyncio
import json
import os
from decimal import Decimal
from typing import Any, Dict, List

import aiofiles
import aiohttp
import redis.asyncio as aioredis
from eth_account.signers.local import LocalAccount
from web3 import AsyncWeb3

from amm_connector.amm.entities import Token
from amm_connector.core.config import ChainConfig, settings
from amm_connector.core.decorators import retriable_network_call
from amm_connector.core.logger import get_logger, CANCELLATIONS_SENT
from amm_connector.core.nonce_manager import FileNonceStore, NonceManager, NonceStore, RedisNonceStore
from amm_connector.core.registry import InstanceRegistry
from amm_connector.core.tx import PendingTransaction, TransactionSubmitter

log = get_logger(__name__)


def default_nonce_store(chain: str, network: str, chain_id: int) -> NonceStore:
    if settings.REDIS_URL:
        return RedisNonceStore(aioredis.from_url(settings.REDIS_URL), namespace=f"nonce:{chain_id}")
    return FileNonceStore(os.path.join(settings.SESSION_DIR, f"{chain}_{network}_nonces.json"))


class EvmChain:
    _instances: InstanceRegistry["EvmChain"] = InstanceRegistry("chain")

    def __init__(self, chain: str, network: str, config: ChainConfig,
                 w3: AsyncWeb3 | None = None, nonce_store: NonceStore | None = None):
        self.chain = chain
        self.network = network
        self.config = config
        self.chain_id = config.chain_id
        self.w3 = w3 or AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(config.node_url, request_kwargs={"timeout": 10}))
        self.nonce_manager = NonceManager(
            self.w3, nonce_store or default_nonce_store(chain, network, config.chain_id), config.chain_id
        )
        self.submitter = TransactionSubmitter(self.w3, self.chain_id)
        self._token_list: List[Token] = []
        self._ready = False
        self._init_lock = asyncio.Lock()

    @classmethod
    def get_instance(cls, chain: str, network: str, **kwargs) -> "EvmChain":
        return cls._instances.get_or_create(
            (chain, network), lambda: cls(chain, network, settings.chain_config(chain, network), **kwargs)
        )

    @property
    def native_token_symbol(self) -> str:
        return self.config.native_currency_symbol

    @property
    def stored_token_list(self) -> List[Token]:
        return list(self._token_list)

    def ready(self) -> bool:
        return self._ready

    async def init(self):
        async with self._init_lock:
            if self._ready:
                return
            await self.nonce_manager.store.open()
            entries = await self.get_token_list()
            self._token_list = [
                Token(
                    chain_id=self.chain_id,
                    address=entry["address"],
                    decimals=int(entry["decimals"]),
                    symbol=entry.get("symbol"),
                    name=entry.get("name"),
                )
                for entry in entries
            ]
            self._ready = True
            log.info("CHAIN_READY", chain=self.chain, network=self.network, tokens=len(self._token_list))

    async def get_token_list(self) -> List[Dict[str, Any]]:
        """Token list entries for this chain id only."""
        if self.config.token_list_type == "URL":
            data = await self._download_token_list(self.config.token_list_source)
        else:
            async with aiofiles.open(self.config.token_list_source, "r") as f:
                data = json.loads(await f.read())
        entries = data["tokens"] if isinstance(data, dict) else data
        return [e for e in entries if int(e.get("chainId", self.chain_id)) == self.chain_id]

    @retriable_network_call
    async def _download_token_list(self, url: str) -> Any:
        async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=10)) as session:
            async with session.get(url) as resp:
                resp.raise_for_status()
                return await resp.json(content_type=None)

    async def get_gas_price(self) -> Decimal | None:
        """Network gas price in gwei, or None when the node gives nothing usable."""
        wei = await self.w3.eth.gas_price
        if wei is None:
            return None
        return Decimal(wei) / Decimal(10**9)

    async def cancel_tx_with_gas_price(self, wallet: LocalAccount, nonce: int,
                                       gas_price: Decimal) -> PendingTransaction:
        log.info("CANCELLING_TRANSACTION", address=wallet.address, nonce=nonce, gas_price=str(gas_price))
        tx = await self.nonce_manager.provide_nonce(
            nonce,
            wallet.address,
            lambda next_nonce: self.submitter.send_self_transfer(
                wallet, gas_price, self.config.gas_limit_transaction, next_nonce
            ),
        )
        CANCELLATIONS_SENT.labels(str(self.chain_id)).inc()
        return tx

    async def close(self):
        await self.nonce_manager.close()
        self._ready = False
        self._instances.remove((self.chain, self.network), self)
