# /amm_connector/amm/router.py
import time
from dataclasses import dataclass
from fractions import Fraction
from typing import Any, List

from eth_utils import to_checksum_address

from amm_connector.amm.trade import Trade, TradeType


@dataclass(frozen=True)
class SwapParameters:
    method_name: str
    args: List[Any]
    value: int


def swap_call_parameters(trade: Trade, ttl: int, recipient: str, allowed_slippage: Fraction,
                         now: int | None = None) -> SwapParameters:
    """
    Translates a quote into a UniswapV2Router02 call.

    Token-to-token only: the pools served here hold wrapped native tokens,
    so the call never carries value.
    """
    deadline = (int(time.time()) if now is None else now) + ttl
    to = to_checksum_address(recipient)
    path = trade.path
    if trade.trade_type is TradeType.EXACT_INPUT:
        amount_in = trade.maximum_amount_in(allowed_slippage).raw
        amount_out_min = trade.minimum_amount_out(allowed_slippage).raw
        return SwapParameters("swapExactTokensForTokens", [amount_in, amount_out_min, path, to, deadline], 0)
    amount_out = trade.minimum_amount_out(allowed_slippage).raw
    amount_in_max = trade.maximum_amount_in(allowed_slippage).raw
    return SwapParameters("swapTokensForExactTokens", [amount_out, amount_in_max, path, to, deadline], 0)
