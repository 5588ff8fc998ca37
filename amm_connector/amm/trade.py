# /amm_connector/amm/trade.py
from dataclasses import dataclass
from enum import Enum
from fractions import Fraction
from typing import List, Sequence

from amm_connector.amm.entities import (
    InsufficientInputAmountError,
    InsufficientReservesError,
    Pair,
    Price,
    Token,
    TokenAmount,
)


class UniswapishPriceError(Exception):
    """No viable trade exists for the pair, amount and direction requested."""


class TradeType(Enum):
    EXACT_INPUT = "EXACT_INPUT"
    EXACT_OUTPUT = "EXACT_OUTPUT"


@dataclass(frozen=True)
class Trade:
    """A single-hop quote through one pair."""
    pair: Pair
    trade_type: TradeType
    input_amount: TokenAmount
    output_amount: TokenAmount

    @property
    def path(self) -> List[str]:
        return [self.input_amount.token.address, self.output_amount.token.address]

    @property
    def execution_price(self) -> Price:
        return Price(
            base=self.input_amount.token,
            quote=self.output_amount.token,
            raw=Fraction(self.output_amount.raw, self.input_amount.raw),
        )

    @property
    def price_impact(self) -> Fraction:
        mid = self.pair.price_of(self.input_amount.token).raw
        quoted_out = mid * self.input_amount.raw
        return (quoted_out - self.output_amount.raw) / quoted_out

    def minimum_amount_out(self, slippage: Fraction) -> TokenAmount:
        if slippage < 0:
            raise ValueError("Slippage tolerance cannot be negative.")
        if self.trade_type is TradeType.EXACT_OUTPUT:
            return self.output_amount
        adjusted = Fraction(self.output_amount.raw) / (1 + slippage)
        return TokenAmount(self.output_amount.token, adjusted.numerator // adjusted.denominator)

    def maximum_amount_in(self, slippage: Fraction) -> TokenAmount:
        if slippage < 0:
            raise ValueError("Slippage tolerance cannot be negative.")
        if self.trade_type is TradeType.EXACT_INPUT:
            return self.input_amount
        adjusted = self.input_amount.raw * (1 + slippage)
        return TokenAmount(self.input_amount.token, adjusted.numerator // adjusted.denominator)


@dataclass(frozen=True)
class ExpectedTrade:
    trade: Trade
    expected_amount: TokenAmount


def best_trade_exact_in(pairs: Sequence[Pair], amount_in: TokenAmount, token_out: Token) -> List[Trade]:
    """Single-hop exact-input trades from `pairs`, best output first."""
    trades = []
    for pair in pairs:
        if not (pair.involves(amount_in.token) and pair.other(amount_in.token) == token_out):
            continue
        if pair.is_empty():
            continue
        try:
            amount_out = pair.get_output_amount(amount_in)
        except InsufficientInputAmountError:
            continue
        trades.append(Trade(pair, TradeType.EXACT_INPUT, amount_in, amount_out))
    return sorted(trades, key=lambda t: t.output_amount.raw, reverse=True)


def best_trade_exact_out(pairs: Sequence[Pair], token_in: Token, amount_out: TokenAmount) -> List[Trade]:
    """Single-hop exact-output trades from `pairs`, cheapest input first."""
    trades = []
    for pair in pairs:
        if not (pair.involves(amount_out.token) and pair.other(amount_out.token) == token_in):
            continue
        if pair.is_empty():
            continue
        try:
            amount_in = pair.get_input_amount(amount_out)
        except (InsufficientReservesError, InsufficientInputAmountError):
            continue
        trades.append(Trade(pair, TradeType.EXACT_OUTPUT, amount_in, amount_out))
    return sorted(trades, key=lambda t: t.input_amount.raw)
