# /test/conftest.py
# Hand-rolled stand-ins for AsyncWeb3: just enough of `eth` for the
# fetcher, the nonce manager and the submitter.
import asyncio
import json
from decimal import Decimal

import pytest
import pytest_asyncio
from eth_account import Account
from eth_utils import keccak
from hexbytes import HexBytes

from amm_connector.amm.entities import Token
from amm_connector.amm.fetcher import compute_pair_address
from amm_connector.chains.evm import EvmChain
from amm_connector.connectors.defikingdoms import DfkCrystalvale
from amm_connector.core.config import ChainConfig, ConnectorConfig
from amm_connector.core.nonce_manager import FileNonceStore

CHAIN_ID = 53935
FACTORY = "0x794C07912474351b3134E6D6B3B7b3b4A07cbAAa"
INIT_CODE_HASH = "0x4abbeda7e0705baf5222faead952156d4eb4113795d3dd837895a00ff89f5717"
ROUTER = "0x" + "ab" * 20
TOKEN_A = "0x" + "11" * 20
TOKEN_B = "0x" + "22" * 20
OTHER_CHAIN_TOKEN = "0x" + "33" * 20


class DummyFunction:
    def __init__(self, contract, name, args):
        self.contract = contract
        self.name = name
        self.args = args

    async def call(self):
        reserves = self.contract.eth.reserves.get(self.contract.address)
        if reserves is None:
            raise ValueError(f"No contract code at {self.contract.address}")
        return reserves

    async def build_transaction(self, params):
        self.contract.eth.built.append((self.name, self.args, params))
        return {**params, 'to': self.contract.address, 'data': keccak(text=self.name)[:4]}


class DummyFunctions:
    def __init__(self, contract):
        self._contract = contract

    def __getitem__(self, name):
        return lambda *args: DummyFunction(self._contract, name, args)

    def __getattr__(self, name):
        return self[name]


class DummyContract:
    def __init__(self, eth, address, abi):
        self.eth = eth
        self.address = address
        self.abi = abi
        self.functions = DummyFunctions(self)


class DummyEth:
    def __init__(self):
        self.reserves = {}
        self.built = []
        self.sent = []
        self.pending_count = 0
        self.gas_price_value = 5 * 10**9
        self.fail_next_send = False

    def contract(self, address, abi):
        return DummyContract(self, address, abi)

    @property
    def gas_price(self):
        return self._gas_price()

    async def _gas_price(self):
        if isinstance(self.gas_price_value, Exception):
            raise self.gas_price_value
        return self.gas_price_value

    async def get_transaction_count(self, address, block_identifier="latest"):
        return self.pending_count

    async def send_raw_transaction(self, raw):
        # Yield so concurrent submitters get a chance to interleave.
        await asyncio.sleep(0)
        if self.fail_next_send:
            self.fail_next_send = False
            raise ValueError("replacement transaction underpriced")
        self.sent.append(raw)
        return HexBytes(keccak(raw))

    def set_reserves(self, token_a, token_b, reserve_a, reserve_b):
        address = compute_pair_address(FACTORY, INIT_CODE_HASH, token_a, token_b)
        if token_a.sorts_before(token_b):
            self.reserves[address] = (reserve_a, reserve_b, 0)
        else:
            self.reserves[address] = (reserve_b, reserve_a, 0)


class DummyW3:
    def __init__(self):
        self.eth = DummyEth()


@pytest.fixture
def w3():
    return DummyW3()


@pytest.fixture
def wallet():
    return Account.from_key("0x" + "4c" * 32)


@pytest.fixture
def token_a():
    return Token(chain_id=CHAIN_ID, address=TOKEN_A, decimals=18, symbol="WJEWEL", name="Wrapped Jewel")


@pytest.fixture
def token_b():
    return Token(chain_id=CHAIN_ID, address=TOKEN_B, decimals=6, symbol="USDC", name="USD Coin")


@pytest.fixture
def chain_config(tmp_path):
    token_list = {
        "name": "test",
        "tokens": [
            {"chainId": CHAIN_ID, "address": TOKEN_A, "decimals": 18, "symbol": "WJEWEL", "name": "Wrapped Jewel"},
            {"chainId": CHAIN_ID, "address": TOKEN_B, "decimals": 6, "symbol": "USDC", "name": "USD Coin"},
            {"chainId": 8217, "address": OTHER_CHAIN_TOKEN, "decimals": 18, "symbol": "KLAY", "name": "Klay"},
        ],
    }
    path = tmp_path / "tokens.json"
    path.write_text(json.dumps(token_list))
    return ChainConfig(
        chain_id=CHAIN_ID,
        node_url="http://127.0.0.1:8545",
        token_list_source=str(path),
        token_list_type="FILE",
        manual_gas_price=Decimal("2"),
        gas_limit_transaction=21000,
        native_currency_symbol="JEWEL",
        network_name="mainnet",
    )


@pytest.fixture
def connector_config():
    return ConnectorConfig(
        allowed_slippage="1/100",
        gas_limit_estimate=300000,
        ttl=300,
        factory_address=FACTORY,
        init_code_hash=INIT_CODE_HASH,
        contract_addresses={"dfkchain": {"mainnet": {"router_address": ROUTER}}},
        available_networks={"dfkchain": ["mainnet"]},
    )


@pytest_asyncio.fixture
async def chain(w3, chain_config, tmp_path):
    gateway = EvmChain("dfkchain", "mainnet", chain_config, w3=w3,
                       nonce_store=FileNonceStore(str(tmp_path / "nonces.json")))
    yield gateway
    await gateway.close()


@pytest_asyncio.fixture
async def connector(chain, connector_config):
    instance = DfkCrystalvale.get_instance("dfkchain", "mainnet", gateway=chain, config=connector_config)
    await instance.init()
    yield instance
    await instance.close()
