# /amm_connector/connectors/uniswapish.py
import re
from decimal import Decimal
from fractions import Fraction
from typing import Any, Dict, List

from eth_account.signers.local import LocalAccount
from eth_utils import to_checksum_address

from amm_connector.abis import UNISWAP_V2_ROUTER_ABI
from amm_connector.amm.entities import Pair, Token, TokenAmount
from amm_connector.amm.fetcher import fetch_pair_data
from amm_connector.amm.router import swap_call_parameters
from amm_connector.amm.trade import (
    ExpectedTrade,
    Trade,
    UniswapishPriceError,
    best_trade_exact_in,
    best_trade_exact_out,
)
from amm_connector.chains.evm import EvmChain
from amm_connector.connectors.spenders import SpenderDirectory, spenders
from amm_connector.core.config import ConfigurationError, ConnectorConfig, settings
from amm_connector.core.gas_price import GasPriceRefresher
from amm_connector.core.logger import get_logger, TRADES_SUBMITTED
from amm_connector.core.registry import InstanceRegistry
from amm_connector.core.tx import PendingTransaction

log = get_logger(__name__)

FRACTION_PATTERN = re.compile(r"^(\d+)/(\d+)$")


class UniswapishConnector:
    """
    Connector for one Uniswap-V2-style exchange on one (chain, network).

    Quotes come from live reserves with the pair contract's own integer math;
    swaps are submitted through the chain's nonce coordinator. Subclasses set
    `NAME`, the key of their `ConnectorConfig`.
    """
    NAME: str = ""
    _instances: InstanceRegistry["UniswapishConnector"]

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)
        # One registry per concrete exchange, keyed by (chain, network).
        cls._instances = InstanceRegistry(cls.NAME or cls.__name__)

    def __init__(self, chain: str, network: str, gateway: EvmChain | None = None,
                 config: ConnectorConfig | None = None, spender_directory: SpenderDirectory | None = None):
        self.config = config or settings.connector_config(self.NAME)
        if self.config.available_networks and network not in self.config.available_networks.get(chain, []):
            raise ConfigurationError(f"{self.NAME} is not available on {chain}/{network}.")
        if not self.config.factory_address or not self.config.init_code_hash:
            raise ConfigurationError(f"{self.NAME} needs factory_address and init_code_hash.")

        self.chain = chain
        self.network = network
        self._chain = gateway or EvmChain.get_instance(chain, network)
        self.chain_id = self._chain.chain_id

        self._router = to_checksum_address(self.config.router_address(chain, network))
        self._router_abi = UNISWAP_V2_ROUTER_ABI
        self._gas_limit_estimate = self.config.gas_limit_estimate
        self._ttl = self.config.ttl
        self._factory = to_checksum_address(self.config.factory_address)
        self._init_code_hash = self.config.init_code_hash
        self._fee = Fraction(self.config.fee_numerator, self.config.fee_denominator)

        self._token_list: Dict[str, Token] = {}
        self._ready = False
        self._spenders = spender_directory or spenders
        self._gas_price_refresher = GasPriceRefresher(
            self._chain.get_gas_price,
            self._chain.config.manual_gas_price,
            self._chain.config.gas_price_refresh_interval,
            owner=f"{self.NAME}:{chain}:{network}",
        )
        self.update_gas_price()

    @classmethod
    def get_instance(cls, chain: str, network: str, **kwargs) -> "UniswapishConnector":
        return cls._instances.get_or_create((chain, network), lambda: cls(chain, network, **kwargs))

    def get_token_by_address(self, address: str) -> Token | None:
        """
        Given a token's address, return the connector's representation of
        the token, or None if it is not in the chain's token list.
        """
        try:
            return self._token_list.get(to_checksum_address(address))
        except ValueError:
            return None

    async def init(self):
        if not self._chain.ready():
            await self._chain.init()
        if not self._ready:
            for token in self._chain.stored_token_list:
                self._token_list[token.address] = token
            self._ready = True
            log.info("CONNECTOR_READY", connector=self.NAME, chain=self.chain, network=self.network,
                     tokens=len(self._token_list))
        self.update_gas_price()

    def ready(self) -> bool:
        return self._ready

    @property
    def router(self) -> str:
        return self._router

    @property
    def router_abi(self) -> List[Dict[str, Any]]:
        return self._router_abi

    @property
    def gas_limit_estimate(self) -> int:
        """Default gas limit for swap transactions."""
        return self._gas_limit_estimate

    @property
    def ttl(self) -> int:
        """Default time-to-live for swap transactions, in seconds."""
        return self._ttl

    @property
    def gas_price(self) -> Decimal:
        """Last known gas price, in gwei."""
        return self._gas_price_refresher.gas_price

    def update_gas_price(self) -> bool:
        """Starts the background refresh if an interval is configured and a loop is running."""
        return self._gas_price_refresher.start()

    def get_spender(self, requested: str) -> str:
        return self._spenders.resolve(requested)

    def get_allowed_slippage(self, allowed_slippage: str | None = None) -> Fraction:
        """
        Slippage tolerance from the optional '<num>/<den>' argument, or the
        connector's configured default.

        Raises:
            ConfigurationError: the configured default is malformed.
        """
        if allowed_slippage is not None:
            match = FRACTION_PATTERN.match(allowed_slippage.strip())
            if match:
                if int(match.group(2)) == 0:
                    raise ValueError(f"Slippage '{allowed_slippage}' has a zero denominator.")
                return Fraction(int(match.group(1)), int(match.group(2)))
            log.warning("SLIPPAGE_ARGUMENT_IGNORED", value=allowed_slippage)

        match = FRACTION_PATTERN.match(self.config.allowed_slippage.strip())
        if match and int(match.group(2)) != 0:
            return Fraction(int(match.group(1)), int(match.group(2)))
        raise ConfigurationError(
            f"Encountered a malformed percent string in the config for {self.NAME} allowed_slippage."
        )

    async def fetch_pair_data(self, token_a: Token, token_b: Token) -> Pair:
        if token_a == token_b:
            raise UniswapishPriceError(f"Cannot trade {token_a.address} against itself.")
        return await fetch_pair_data(self._chain.w3, token_a, token_b, self._factory, self._init_code_hash, self._fee)

    async def estimate_sell_trade(self, base_token: Token, quote_token: Token, amount: int,
                                  allowed_slippage: str | None = None) -> ExpectedTrade:
        """
        Given the amount of `base_token` to put into a transaction, calculate
        the amount of `quote_token` that can be expected from it.
        """
        log.info("FETCHING_PAIR_DATA", base=base_token.address, quote=quote_token.address)
        pair = await self.fetch_pair_data(quote_token, base_token)
        trades = best_trade_exact_in([pair], TokenAmount(base_token, int(amount)), quote_token)
        if not trades:
            raise UniswapishPriceError(
                f"priceSwapIn: no trade pair found for {base_token.address} to {quote_token.address}."
            )
        trade = trades[0]
        log.info("BEST_TRADE", direction="sell", base=base_token.address, quote=quote_token.address,
                 price=trade.execution_price.to_fixed(6), amount_out=trade.output_amount.raw)
        expected = trade.minimum_amount_out(self.get_allowed_slippage(allowed_slippage))
        return ExpectedTrade(trade=trade, expected_amount=expected)

    async def estimate_buy_trade(self, quote_token: Token, base_token: Token, amount: int,
                                 allowed_slippage: str | None = None) -> ExpectedTrade:
        """
        Given the amount of `base_token` desired from a transaction, calculate
        the amount of `quote_token` needed for it.
        """
        log.info("FETCHING_PAIR_DATA", base=base_token.address, quote=quote_token.address)
        pair = await self.fetch_pair_data(quote_token, base_token)
        trades = best_trade_exact_out([pair], quote_token, TokenAmount(base_token, int(amount)))
        if not trades:
            raise UniswapishPriceError(
                f"priceSwapOut: no trade pair found for {quote_token.address} to {base_token.address}."
            )
        trade = trades[0]
        log.info("BEST_TRADE", direction="buy", base=base_token.address, quote=quote_token.address,
                 price=trade.execution_price.invert().to_fixed(6), amount_in=trade.input_amount.raw)
        expected = trade.maximum_amount_in(self.get_allowed_slippage(allowed_slippage))
        return ExpectedTrade(trade=trade, expected_amount=expected)

    async def execute_trade(self, wallet: LocalAccount, trade: Trade, gas_price: Decimal | float,
                            router: str, ttl: int, abi: List[Dict[str, Any]], gas_limit: int,
                            nonce: int | None = None, allowed_slippage: str | None = None) -> PendingTransaction:
        """
        Submits `trade` to the router. The slippage bound is recomputed from
        `allowed_slippage` here and not taken from the earlier estimate.

        Args:
            gas_price: legacy gas price in gwei
            nonce: explicit nonce, for replacing a pending transaction
        """
        params = swap_call_parameters(trade, ttl, wallet.address, self.get_allowed_slippage(allowed_slippage))

        async def submit(next_nonce: int) -> PendingTransaction:
            return await self._chain.submitter.send_contract_call(
                wallet, router, abi, params.method_name, params.args, params.value,
                Decimal(str(gas_price)), gas_limit, next_nonce,
            )

        tx = await self._chain.nonce_manager.provide_nonce(nonce, wallet.address, submit)
        TRADES_SUBMITTED.labels(self.NAME, trade.trade_type.value).inc()
        log.info("TRADE_SUBMITTED", connector=self.NAME, tx_hash=tx.hash, nonce=tx.nonce,
                 method=params.method_name, args=params.args)
        return tx

    async def cancel_tx(self, wallet: LocalAccount, nonce: int) -> PendingTransaction:
        """Best-effort replacement of `nonce` with a self-transfer at twice the current gas price."""
        log.info("CANCEL_REQUESTED", connector=self.NAME, address=wallet.address, nonce=nonce)
        return await self._chain.cancel_tx_with_gas_price(wallet, nonce, self.gas_price * 2)

    async def close(self):
        await self._gas_price_refresher.stop()
        self._ready = False
        self._instances.remove((self.chain, self.network), self)
        log.info("CONNECTOR_CLOSED", connector=self.NAME, chain=self.chain, network=self.network)
