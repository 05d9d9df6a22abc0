"""USD pricing, ETH conversion and round display math."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_DOWN, Decimal
from typing import Any, Dict, Optional, Union

from web3 import Web3

from startale_lotto.lottery.models import Countdown, LotteryType, RoundSnapshot

USD_PRICES: Dict[LotteryType, Decimal] = {
    LotteryType.INSTANT: Decimal("0.5"),
    LotteryType.WEEKLY: Decimal("1"),
    LotteryType.BIWEEKLY: Decimal("5"),
    LotteryType.MONTHLY: Decimal("20"),
}

WINNER_COUNTS: Dict[LotteryType, int] = {
    LotteryType.WEEKLY: 6,
    LotteryType.BIWEEKLY: 3,
    LotteryType.MONTHLY: 1,
}

DEFAULT_PRICE_BUFFER = Decimal("1.01")
FALLBACK_ETH_PRICE_USD = Decimal("3000")
MAX_TICKETS_PER_PURCHASE = 100

Number = Union[int, float, str, Decimal]


def _dec(value: Number) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))


def manual_amount(value: Optional[Number]) -> Optional[Decimal]:
    """Manual ETH override as a Decimal, or None when unset or not positive."""
    if value is None or value == "":
        return None
    amount = _dec(value)
    return amount if amount > 0 else None


@dataclass(frozen=True)
class EthQuote:
    raw_eth: Decimal
    buffered_eth: Decimal

    @property
    def value_wei(self) -> int:
        """Wei actually attached to the transaction (buffered, rounded down)."""
        return int(Web3.to_wei(self.buffered_eth.quantize(Decimal("1e-18"), rounding=ROUND_DOWN), "ether"))

    @property
    def display(self) -> str:
        return f"{self.raw_eth:.6f}"


class FixedPriceFeed:
    """Read-only USD-per-ETH rate; the snapshot is read at cost computation time."""

    def __init__(self, eth_usd: Number = FALLBACK_ETH_PRICE_USD) -> None:
        self._price = FALLBACK_ETH_PRICE_USD
        self.update(eth_usd)

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "FixedPriceFeed":
        return cls(config.get("price", {}).get("eth_usd", FALLBACK_ETH_PRICE_USD))

    @property
    def eth_usd(self) -> Decimal:
        return self._price

    def update(self, eth_usd: Number) -> None:
        price = _dec(eth_usd)
        if price <= 0:
            raise ValueError("ETH price must be positive")
        self._price = price


def usd_to_eth(usd: Number, eth_price_usd: Number, buffer: Number = DEFAULT_PRICE_BUFFER) -> EthQuote:
    rate = _dec(eth_price_usd)
    if rate <= 0:
        raise ValueError("ETH price must be positive")
    raw = _dec(usd) / rate
    return EthQuote(raw_eth=raw, buffered_eth=raw * _dec(buffer))


def spin_cost(eth_price_usd: Number, buffer: Number = DEFAULT_PRICE_BUFFER) -> EthQuote:
    return usd_to_eth(USD_PRICES[LotteryType.INSTANT], eth_price_usd, buffer)


def ticket_cost(
    lottery_type: LotteryType,
    quantity: int,
    eth_price_usd: Number,
    buffer: Number = DEFAULT_PRICE_BUFFER,
    manual_eth: Optional[Number] = None,
) -> EthQuote:
    """Cost of `quantity` tickets; a positive manual ETH amount is sent as-is."""
    amount = manual_amount(manual_eth)
    if amount is not None:
        return EthQuote(raw_eth=amount, buffered_eth=amount)
    if lottery_type not in WINNER_COUNTS:
        raise ValueError(f"{lottery_type!r} is not a ticketed lottery")
    if quantity < 1:
        raise ValueError("quantity must be at least 1")
    return usd_to_eth(USD_PRICES[lottery_type] * quantity, eth_price_usd, buffer)


def tickets_for_eth(eth_amount: Number, lottery_type: LotteryType, eth_price_usd: Number) -> Optional[int]:
    """How many tickets a manual ETH amount buys, or None outside 1..100."""
    amount = _dec(eth_amount)
    if amount <= 0:
        return None
    per_ticket = USD_PRICES.get(lottery_type, Decimal("1")) / _dec(eth_price_usd)
    count = int(amount / per_ticket)
    if 0 < count <= MAX_TICKETS_PER_PURCHASE:
        return count
    return None


def potential_winnings_wei(snapshot: Optional[RoundSnapshot]) -> int:
    if snapshot is None or not snapshot.pool_wei:
        return 0
    return snapshot.pool_wei // WINNER_COUNTS.get(snapshot.lottery_type, 1)


def countdown(end_time_unix: int, now: int) -> Countdown:
    diff = int(end_time_unix) - int(now)
    if diff <= 0:
        return Countdown()
    return Countdown(
        days=diff // 86400,
        hours=(diff % 86400) // 3600,
        mins=(diff % 3600) // 60,
        secs=diff % 60,
    )
