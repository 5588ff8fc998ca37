# /amm_connector/amm/entities.py
"""
Value types for constant-product pools.

All amounts are raw integers in the token's smallest unit. Prices and
slippage tolerances are `fractions.Fraction`, so nothing here ever goes
through floating point.
"""
from dataclasses import dataclass
from decimal import Decimal
from fractions import Fraction

from eth_utils import to_checksum_address
from pydantic import BaseModel, ConfigDict, field_validator


class InsufficientReservesError(Exception):
    """The pool cannot satisfy the requested amount (empty or too shallow)."""


class InsufficientInputAmountError(Exception):
    """The input is too small to produce any output, or no output was asked for."""


class Token(BaseModel):
    model_config = ConfigDict(frozen=True)

    chain_id: int
    address: str
    decimals: int
    symbol: str | None = None
    name: str | None = None

    @field_validator("address")
    @classmethod
    def _checksum(cls, value: str) -> str:
        return to_checksum_address(value)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Token):
            return NotImplemented
        return self.chain_id == other.chain_id and self.address == other.address

    def __hash__(self) -> int:
        return hash((self.chain_id, self.address))

    def sorts_before(self, other: "Token") -> bool:
        if self.chain_id != other.chain_id:
            raise ValueError("Tokens are on different chains.")
        if self.address == other.address:
            raise ValueError("Tokens have the same address.")
        return int(self.address, 16) < int(other.address, 16)


@dataclass(frozen=True)
class TokenAmount:
    token: Token
    raw: int

    def __post_init__(self):
        if self.raw < 0:
            raise ValueError(f"Negative amount {self.raw} for {self.token.address}.")


@dataclass(frozen=True)
class Price:
    """Quote units received per base unit, expressed in raw amounts."""
    base: Token
    quote: Token
    raw: Fraction

    def invert(self) -> "Price":
        return Price(base=self.quote, quote=self.base, raw=1 / self.raw)

    def adjusted(self) -> Fraction:
        # Raw ratio scaled to whole tokens.
        return self.raw * Fraction(10 ** self.base.decimals, 10 ** self.quote.decimals)

    def to_fixed(self, places: int = 6) -> str:
        value = self.adjusted()
        return f"{Decimal(value.numerator) / Decimal(value.denominator):.{places}f}"


@dataclass(frozen=True)
class Pair:
    """Snapshot of one pool's reserves at the moment they were read."""
    reserve0: TokenAmount
    reserve1: TokenAmount
    factory: str
    init_code_hash: str
    fee: Fraction = Fraction(997, 1000)

    @classmethod
    def from_reserves(cls, amount_a: TokenAmount, amount_b: TokenAmount, factory: str, init_code_hash: str,
                      fee: Fraction = Fraction(997, 1000)) -> "Pair":
        if amount_a.token.sorts_before(amount_b.token):
            return cls(amount_a, amount_b, factory, init_code_hash, fee)
        return cls(amount_b, amount_a, factory, init_code_hash, fee)

    @property
    def token0(self) -> Token:
        return self.reserve0.token

    @property
    def token1(self) -> Token:
        return self.reserve1.token

    def involves(self, token: Token) -> bool:
        return token == self.token0 or token == self.token1

    def other(self, token: Token) -> Token:
        return self.token1 if token == self.token0 else self.token0

    def reserve_of(self, token: Token) -> TokenAmount:
        if not self.involves(token):
            raise ValueError(f"Token {token.address} is not in this pair.")
        return self.reserve0 if token == self.token0 else self.reserve1

    def is_empty(self) -> bool:
        return self.reserve0.raw == 0 or self.reserve1.raw == 0

    def price_of(self, token: Token) -> Price:
        """Mid price of `token` in terms of the other token."""
        reserve_in = self.reserve_of(token)
        reserve_out = self.reserve_of(self.other(token))
        return Price(base=token, quote=reserve_out.token, raw=Fraction(reserve_out.raw, reserve_in.raw))

    def get_output_amount(self, amount_in: TokenAmount) -> TokenAmount:
        """Same integer math as the pair contract's swap check (getAmountOut)."""
        if self.is_empty():
            raise InsufficientReservesError("Pair has an empty reserve.")
        reserve_in = self.reserve_of(amount_in.token)
        reserve_out = self.reserve_of(self.other(amount_in.token))
        input_with_fee = amount_in.raw * self.fee.numerator
        numerator = input_with_fee * reserve_out.raw
        denominator = reserve_in.raw * self.fee.denominator + input_with_fee
        output = numerator // denominator
        if output == 0:
            raise InsufficientInputAmountError(f"Input {amount_in.raw} yields no output.")
        return TokenAmount(reserve_out.token, output)

    def get_input_amount(self, amount_out: TokenAmount) -> TokenAmount:
        """Router's getAmountIn: smallest input that yields `amount_out`, rounded up."""
        if self.is_empty():
            raise InsufficientReservesError("Pair has an empty reserve.")
        if amount_out.raw == 0:
            raise InsufficientInputAmountError("Requested output is zero.")
        reserve_out = self.reserve_of(amount_out.token)
        reserve_in = self.reserve_of(self.other(amount_out.token))
        if amount_out.raw >= reserve_out.raw:
            raise InsufficientReservesError(
                f"Requested {amount_out.raw} but the pool only holds {reserve_out.raw}."
            )
        numerator = reserve_in.raw * amount_out.raw * self.fee.denominator
        denominator = (reserve_out.raw - amount_out.raw) * self.fee.numerator
        return TokenAmount(reserve_in.token, numerator // denominator + 1)
