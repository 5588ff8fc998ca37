# /amm_connector/amm/fetcher.py
from fractions import Fraction

from eth_utils import keccak, to_bytes, to_checksum_address
from web3 import AsyncWeb3

from amm_connector.abis import UNISWAP_V2_PAIR_ABI
from amm_connector.amm.entities import Pair, Token, TokenAmount
from amm_connector.core.logger import get_logger

log = get_logger(__name__)


def compute_pair_address(factory: str, init_code_hash: str, token_a: Token, token_b: Token) -> str:
    """CREATE2 address of the pair contract the factory deploys for two tokens."""
    token0, token1 = (token_a, token_b) if token_a.sorts_before(token_b) else (token_b, token_a)
    salt = keccak(to_bytes(hexstr=token0.address) + to_bytes(hexstr=token1.address))
    digest = keccak(b"\xff" + to_bytes(hexstr=factory) + salt + to_bytes(hexstr=init_code_hash))
    return to_checksum_address(digest[12:])


async def fetch_pair_data(w3: AsyncWeb3, token_a: Token, token_b: Token, factory: str, init_code_hash: str,
                          fee: Fraction = Fraction(997, 1000)) -> Pair:
    """
    Reads the pool's reserves right now. Failures propagate: a stale or
    guessed reserve is worse than no quote.
    """
    address = compute_pair_address(factory, init_code_hash, token_a, token_b)
    pair_contract = w3.eth.contract(address=address, abi=UNISWAP_V2_PAIR_ABI)
    reserve0, reserve1, _ = await pair_contract.functions.getReserves().call()
    balance_a, balance_b = (reserve0, reserve1) if token_a.sorts_before(token_b) else (reserve1, reserve0)
    log.debug("PAIR_RESERVES_FETCHED", pair=address, reserve_a=balance_a, reserve_b=balance_b)
    return Pair.from_reserves(
        TokenAmount(token_a, balance_a),
        TokenAmount(token_b, balance_b),
        factory=factory,
        init_code_hash=init_code_hash,
        fee=fee,
    )
