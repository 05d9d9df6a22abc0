"""Core data models for the lotto client."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Dict, List, Optional


NO_WIN_PRIZE_TYPE = "LOSE"
TICKET_PRIZE_TYPE = "TICKET"
BONUS_TICKET_PRIZE_TYPE = "BONUS_TICKET"


class OperationKind(str, Enum):
    """Categories of state-changing requests sent to the contract."""

    SPIN = "spin"
    BUY_TICKET = "buy_ticket"
    CLAIM = "claim"


class LifecycleStatus(str, Enum):
    IDLE = "idle"
    AWAITING_SIGNATURE = "awaiting_signature"
    SUBMITTED = "submitted"
    CONFIRMING = "confirming"
    CONFIRMED = "confirmed"
    FAILED = "failed"


IN_FLIGHT_STATUSES = frozenset(
    {
        LifecycleStatus.AWAITING_SIGNATURE,
        LifecycleStatus.SUBMITTED,
        LifecycleStatus.CONFIRMING,
    }
)


class LotteryType(IntEnum):
    """Lottery categories as numbered by the contract's `uint8 _type`."""

    INSTANT = 0
    WEEKLY = 1
    BIWEEKLY = 2
    MONTHLY = 3

    @property
    def label(self) -> str:
        return self.name.capitalize()


class SupervisorState(str, Enum):
    DORMANT = "dormant"
    ARMED = "armed"
    RESOLVED = "resolved"
    TIMED_OUT = "timed_out"


@dataclass
class TransactionLifecycle:
    """Live state of the single operation allowed per kind."""

    kind: OperationKind
    status: LifecycleStatus = LifecycleStatus.IDLE
    hash: Optional[str] = None
    processed: bool = False
    account: Optional[str] = None
    chain_id: Optional[int] = None
    value_wei: int = 0

    @property
    def in_flight(self) -> bool:
        return self.status in IN_FLIGHT_STATUSES

    def mark_processed(self) -> bool:
        """Flip `processed` once; returns False if it was already set."""
        if self.processed:
            return False
        self.processed = True
        return True


@dataclass(frozen=True)
class PendingOutcome:
    """Authoritative spin result, keyed by the transaction it came from."""

    prize_type: str
    prize_amount_wei: int
    source_hash: str
    is_win: bool = False
    source: str = "event"

    def __post_init__(self) -> None:
        if self.prize_amount_wei < 0:
            raise ValueError("prize_amount_wei must be non-negative")

    @property
    def won(self) -> bool:
        return self.is_win and self.prize_type != NO_WIN_PRIZE_TYPE


@dataclass
class WheelAnimationState:
    current_rotation_degrees: float = 0.0
    is_animating: bool = False
    start_rotation_degrees: float = 0.0
    target_hash: Optional[str] = None


@dataclass
class RoundSnapshot:
    """Normalized result of `getRoundDetails(type)`."""

    lottery_type: LotteryType
    end_time_unix: int
    pool_wei: int
    participant_count: int
    ticket_price_wei: int


@dataclass
class HistoryRecord:
    """Payment history entry shown to the bound account."""

    kind: str
    amount_wei: int
    tx_hash: str
    timestamp: int


@dataclass
class WinnerRecord:
    address: str
    prize_wei: int
    lottery_type: LotteryType
    round_id: int
    timestamp: int


@dataclass
class SpinResult:
    """What the UI shows once the wheel has stopped."""

    tx_hash: str
    prize_type: str
    prize_amount_wei: int
    is_win: bool


@dataclass
class OperationResult:
    """Outcome of one submit call, returned to the initiating action."""

    kind: OperationKind
    ok: bool
    tx_hash: Optional[str] = None
    receipt: Optional[Dict[str, Any]] = None
    error: Optional[Exception] = None
    value_wei: int = 0
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def error_message(self) -> Optional[str]:
        return str(self.error) if self.error else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "ok": self.ok,
            "txHash": self.tx_hash,
            "valueWei": self.value_wei,
            "error": self.error_message,
            "errorType": type(self.error).__name__ if self.error else None,
            **self.extra,
        }


@dataclass
class ChainLog:
    """Decoded contract log, the unit both event delivery and receipts produce."""

    name: str
    args: Dict[str, Any]
    block_number: int
    transaction_hash: str
    log_index: int = 0


@dataclass
class Countdown:
    days: int = 0
    hours: int = 0
    mins: int = 0
    secs: int = 0


def lottery_type_from_value(value: Any) -> Optional[LotteryType]:
    try:
        return LotteryType(int(value))
    except (TypeError, ValueError):
        return None


def winners_from_args(args: Dict[str, Any]) -> List[str]:
    return [str(w) for w in (args.get("winners") or [])]
