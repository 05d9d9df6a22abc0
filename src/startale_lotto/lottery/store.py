"""In-memory UI-facing state: history, winners, rounds, balances."""

from __future__ import annotations

from collections import defaultdict, deque
from typing import Any, Callable, Dict, Iterable, List, Optional

from startale_lotto.lottery.models import (
    HistoryRecord,
    LotteryType,
    RoundSnapshot,
    SpinResult,
    WheelAnimationState,
    WinnerRecord,
)
from startale_lotto.utils.logger import get_logger

logger = get_logger(__name__)

Listener = Callable[[Optional[dict]], None]


class LottoStore:
    """Volatile storage the engine writes into and the web surface reads.

    Listeners are called synchronously with a serialized payload whenever the
    matching section changes: history_update, winners_update, round_update,
    winnings_update, wheel_update, spin_result, operation_error.
    """

    def __init__(self, *, history_capacity: int = 50, winners_capacity: int = 20) -> None:
        self._listeners: Dict[str, List[Listener]] = defaultdict(list)
        self._history: deque[HistoryRecord] = deque(maxlen=history_capacity)
        self._winners: deque[WinnerRecord] = deque(maxlen=winners_capacity)
        self._rounds: Dict[LotteryType, RoundSnapshot] = {}
        self._claimable_wei: int = 0
        self._last_spin_result: Optional[SpinResult] = None
        self._last_error: Optional[Dict[str, Any]] = None
        self._wheel: Optional[WheelAnimationState] = None

    # ------------------------------------------------------------------
    # Listener management
    # ------------------------------------------------------------------
    def add_listener(self, event_type: str, callback: Listener) -> None:
        self._listeners[event_type].append(callback)
        logger.debug("[LottoStore] Adding listener for event_type=%s", event_type)

    def _emit(self, event_type: str, payload: dict | None) -> None:
        for callback in list(self._listeners.get(event_type, [])):
            try:
                callback(payload)
            except Exception as exc:  # pragma: no cover
                logger.error("Listener for %s failed: %s", event_type, exc)

    # ------------------------------------------------------------------
    # History and winners (most recent first)
    # ------------------------------------------------------------------
    def add_history(self, record: HistoryRecord) -> None:
        self._history.appendleft(record)
        logger.info("[LottoStore] history += %s %s wei (%s)", record.kind, record.amount_wei, record.tx_hash)
        self._emit("history_update", self.serialize_history())

    def add_winners(self, records: Iterable[WinnerRecord]) -> None:
        # newest batch goes on top, preserving the batch's own order
        batch = list(records)
        for record in reversed(batch):
            self._winners.appendleft(record)
        logger.info("[LottoStore] winners += %d", len(batch))
        self._emit("winners_update", self.serialize_winners())

    def get_history(self, limit: Optional[int] = None) -> List[HistoryRecord]:
        items = list(self._history)
        return items[:limit] if limit is not None else items

    def get_winners(self, limit: Optional[int] = None) -> List[WinnerRecord]:
        items = list(self._winners)
        return items[:limit] if limit is not None else items

    def recent_winners(self, lottery_type: LotteryType, limit: int = 6) -> List[WinnerRecord]:
        return [w for w in self._winners if w.lottery_type == lottery_type][:limit]

    # ------------------------------------------------------------------
    # Read-model snapshots
    # ------------------------------------------------------------------
    def set_round(self, snapshot: RoundSnapshot) -> None:
        self._rounds[snapshot.lottery_type] = snapshot
        self._emit("round_update", self._serialize_round(snapshot))

    def get_round(self, lottery_type: LotteryType) -> Optional[RoundSnapshot]:
        return self._rounds.get(lottery_type)

    def get_rounds(self) -> List[RoundSnapshot]:
        return [self._rounds[t] for t in sorted(self._rounds)]

    def set_claimable(self, amount_wei: int) -> None:
        changed = amount_wei != self._claimable_wei
        self._claimable_wei = int(amount_wei)
        if changed:
            self._emit("winnings_update", {"claimableWei": self._claimable_wei})

    def get_claimable(self) -> int:
        return self._claimable_wei

    def set_spin_result(self, result: SpinResult) -> None:
        self._last_spin_result = result
        self._emit("spin_result", self._serialize_spin_result(result))

    def get_spin_result(self) -> Optional[SpinResult]:
        return self._last_spin_result

    def clear_spin_result(self) -> None:
        self._last_spin_result = None

    def publish_wheel(self, wheel: WheelAnimationState) -> None:
        self._wheel = wheel
        self._emit("wheel_update", self._serialize_wheel(wheel))

    def set_error(self, kind: str, message: str, *, recoverable: bool = True) -> None:
        self._last_error = {"kind": kind, "message": message, "recoverable": recoverable}
        self._emit("operation_error", dict(self._last_error))

    def get_error(self) -> Optional[Dict[str, Any]]:
        return dict(self._last_error) if self._last_error else None

    def clear_error(self) -> None:
        self._last_error = None

    # ------------------------------------------------------------------
    # Serialization helpers
    # ------------------------------------------------------------------
    def serialize(self) -> dict:
        return {
            "history": self.serialize_history(),
            "winners": self.serialize_winners(),
            "rounds": [self._serialize_round(r) for r in self.get_rounds()],
            "claimableWei": self._claimable_wei,
            "spinResult": self._serialize_spin_result(self._last_spin_result),
            "wheel": self._serialize_wheel(self._wheel),
            "error": self.get_error(),
        }

    def serialize_history(self) -> List[dict]:
        return [
            {"type": r.kind, "amountWei": r.amount_wei, "hash": r.tx_hash, "timestamp": r.timestamp}
            for r in self._history
        ]

    def serialize_winners(self) -> List[dict]:
        return [
            {
                "address": w.address,
                "prizeWei": w.prize_wei,
                "lotteryType": w.lottery_type.label,
                "roundId": w.round_id,
                "timestamp": w.timestamp,
            }
            for w in self._winners
        ]

    @staticmethod
    def _serialize_round(snapshot: RoundSnapshot) -> dict:
        return {
            "lotteryType": snapshot.lottery_type.label,
            "lotteryTypeId": int(snapshot.lottery_type),
            "endTime": snapshot.end_time_unix,
            "poolWei": snapshot.pool_wei,
            "participants": snapshot.participant_count,
            "ticketPriceWei": snapshot.ticket_price_wei,
        }

    @staticmethod
    def _serialize_spin_result(result: Optional[SpinResult]) -> Optional[dict]:
        if result is None:
            return None
        return {
            "hash": result.tx_hash,
            "prizeType": result.prize_type,
            "prizeAmountWei": result.prize_amount_wei,
            "isWin": result.is_win,
        }

    @staticmethod
    def _serialize_wheel(wheel: Optional[WheelAnimationState]) -> Optional[dict]:
        if wheel is None:
            return None
        return {
            "rotation": wheel.current_rotation_degrees,
            "isAnimating": wheel.is_animating,
            "startRotation": wheel.start_rotation_degrees,
        }
