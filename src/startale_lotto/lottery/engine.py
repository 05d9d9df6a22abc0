"""
Lotto Engine - wires the submitters, the outcome race and the wheel together
"""

from __future__ import annotations

import time
from typing import Any, Dict, Optional

from startale_lotto.blockchain.wallet import WalletProvider
from startale_lotto.lottery.animation import WheelAnimator, WheelGeometry
from startale_lotto.lottery.chain_guard import ChainGuard
from startale_lotto.lottery.correlator import OutcomeCorrelator
from startale_lotto.lottery.errors import (
    InvalidParametersError,
    OperationInFlightError,
    OutcomeTimeoutError,
)
from startale_lotto.lottery.event_manager import EventSubscriber
from startale_lotto.lottery.models import (
    HistoryRecord,
    LotteryType,
    OperationKind,
    OperationResult,
    PendingOutcome,
    SpinResult,
    TransactionLifecycle,
)
from startale_lotto.lottery.outcomes import OutcomeStore, ProcessedHashes
from startale_lotto.lottery.pricing import (
    DEFAULT_PRICE_BUFFER,
    MAX_TICKETS_PER_PURCHASE,
    WINNER_COUNTS,
    FixedPriceFeed,
    manual_amount,
    spin_cost,
    ticket_cost,
    tickets_for_eth,
)
from startale_lotto.lottery.recovery import RecoverySupervisor
from startale_lotto.lottery.store import LottoStore
from startale_lotto.lottery.submitter import OperationSubmitter
from startale_lotto.utils.logger import get_logger

logger = get_logger(__name__)

CONTRACT_FUNCTIONS = {
    OperationKind.SPIN: "spinWheel",
    OperationKind.BUY_TICKET: "buyTicket",
    OperationKind.CLAIM: "claimPrize",
}


class LottoEngine:
    """Client-side lifecycle engine for spins, ticket purchases and claims.

    Spin outcomes race in from two producers, the SpinResult subscription and
    the receipt correlator, both writing into one OutcomeStore. The first
    write drives the wheel; the RecoverySupervisor rolls the wheel back if
    neither producer delivers within the timeout.
    """

    def __init__(
        self,
        config: Dict[str, Any],
        client: Any,
        wallet: WalletProvider,
        *,
        price_feed: Optional[FixedPriceFeed] = None,
        store: Optional[LottoStore] = None,
        geometry: Optional[WheelGeometry] = None,
    ) -> None:
        self.config = config
        self.client = client
        self.wallet = wallet

        lotto_cfg = config.get("lotto", {})
        blockchain_cfg = config.get("blockchain", {})
        capacity = int(lotto_cfg.get("processed_hashes_max", 256))

        self.price_feed = price_feed or FixedPriceFeed.from_config(config)
        self.price_buffer = lotto_cfg.get("price_buffer", DEFAULT_PRICE_BUFFER)
        self.store = store or LottoStore(
            history_capacity=int(lotto_cfg.get("history_max", 50)),
            winners_capacity=int(lotto_cfg.get("winners_max", 20)),
        )
        self.outcomes = OutcomeStore(capacity)
        self.guard = ChainGuard(wallet, int(blockchain_cfg.get("chain_id", 1946)))

        receipt_timeout = float(lotto_cfg.get("receipt_timeout_sec", 180))
        self.submitters: Dict[OperationKind, OperationSubmitter] = {
            kind: OperationSubmitter(kind, fn, wallet, client, self.guard, receipt_timeout=receipt_timeout)
            for kind, fn in CONTRACT_FUNCTIONS.items()
        }
        self._processed: Dict[OperationKind, ProcessedHashes] = {
            kind: ProcessedHashes(capacity) for kind in OperationKind
        }

        self.correlator = OutcomeCorrelator(client.decoder, self.outcomes)
        self.subscriber = EventSubscriber(client, self.store, self.outcomes, lambda: self.wallet.account, config)

        geometry = geometry or WheelGeometry(pointer_offset=float(lotto_cfg.get("pointer_offset_degrees", 0)))
        self.animator = WheelAnimator(
            geometry,
            whole_turns=float(lotto_cfg.get("whole_turn_degrees", 3600)),
            duration=float(lotto_cfg.get("animation_duration_sec", 4.5)),
            on_change=self.store.publish_wheel,
        )
        self.supervisor = RecoverySupervisor(
            self.outcomes,
            self._on_outcome_timeout,
            timeout=float(lotto_cfg.get("outcome_timeout_sec", 30)),
        )

        spin = self.submitters[OperationKind.SPIN]
        spin.add_listener("submitted", self._on_spin_submitted)
        spin.add_listener("confirmed", self._on_spin_confirmed)
        spin.add_listener("failed", self._on_spin_failed)
        self.submitters[OperationKind.BUY_TICKET].add_listener("confirmed", self._on_ticket_confirmed)
        self.submitters[OperationKind.CLAIM].add_listener("confirmed", self._on_claim_confirmed)
        self.outcomes.add_listener(self._on_outcome)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    async def start(self) -> None:
        logger.info("Starting lotto engine for account %s", self.wallet.account)
        await self.subscriber.initialize()
        await self.subscriber.start()
        self.subscriber.request_refresh()

    async def stop(self) -> None:
        logger.info("Stopping lotto engine")
        await self.subscriber.stop()
        await self.supervisor.close()
        await self.animator.close()

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------
    async def spin(self) -> OperationResult:
        if self.animator.state.is_animating:
            return self._report(OperationResult(
                kind=OperationKind.SPIN,
                ok=False,
                error=OperationInFlightError(OperationKind.SPIN.value, "animating"),
            ))
        try:
            quote = spin_cost(self.price_feed.eth_usd, self.price_buffer)
        except (ArithmeticError, ValueError) as exc:
            return self._report(OperationResult(
                kind=OperationKind.SPIN, ok=False, error=InvalidParametersError(f"Cannot price spin: {exc}")
            ))
        result = await self.submitters[OperationKind.SPIN].submit((), quote.value_wei)
        return self._report(result)

    async def buy_ticket(
        self,
        lottery_type: LotteryType,
        quantity: int = 1,
        manual_eth: Optional[Any] = None,
    ) -> OperationResult:
        try:
            lottery_type = LotteryType(int(lottery_type))
            if lottery_type not in WINNER_COUNTS:
                raise ValueError(f"{lottery_type.label} lottery has no tickets")
            if manual_amount(manual_eth) is not None:
                quantity = tickets_for_eth(manual_eth, lottery_type, self.price_feed.eth_usd)
                if quantity is None:
                    raise ValueError(
                        f"{manual_eth} ETH does not buy between 1 and {MAX_TICKETS_PER_PURCHASE} {lottery_type.label} tickets"
                    )
            if not 1 <= int(quantity) <= MAX_TICKETS_PER_PURCHASE:
                raise ValueError(f"quantity must be between 1 and {MAX_TICKETS_PER_PURCHASE}")
            quote = ticket_cost(lottery_type, int(quantity), self.price_feed.eth_usd, self.price_buffer, manual_eth)
        except (ArithmeticError, ValueError) as exc:
            return self._report(OperationResult(
                kind=OperationKind.BUY_TICKET, ok=False, error=InvalidParametersError(str(exc))
            ))

        result = await self.submitters[OperationKind.BUY_TICKET].submit(
            (int(lottery_type), int(quantity)), quote.value_wei
        )
        return self._report(result)

    async def claim(self) -> OperationResult:
        result = await self.submitters[OperationKind.CLAIM].submit()
        return self._report(result)

    def _report(self, result: OperationResult) -> OperationResult:
        if result.ok:
            self.store.clear_error()
        elif result.error is not None:
            self.store.set_error(result.kind.value, str(result.error), recoverable=getattr(result.error, "recoverable", True))
        return result

    # ------------------------------------------------------------------
    # Spin flow
    # ------------------------------------------------------------------
    def _on_spin_submitted(self, lifecycle: TransactionLifecycle, _receipt: Optional[dict]) -> None:
        self.store.clear_spin_result()
        self.animator.begin_spin(lifecycle.hash)
        outcome = self.outcomes.get(lifecycle.hash)
        if outcome is not None:
            self._drive_wheel(outcome)

    def _on_spin_confirmed(self, lifecycle: TransactionLifecycle, receipt: Optional[dict]) -> None:
        tx_hash = lifecycle.hash
        if not tx_hash or not self._processed[OperationKind.SPIN].add(tx_hash):
            return
        lifecycle.mark_processed()
        self.store.add_history(
            HistoryRecord(kind="Spin", amount_wei=lifecycle.value_wei, tx_hash=tx_hash, timestamp=int(time.time()))
        )

        self.correlator.correlate(tx_hash, receipt or {}, lifecycle.account)
        if not self.outcomes.has(tx_hash) and self.animator.state.target_hash == tx_hash:
            self.supervisor.arm(tx_hash)

    def _on_spin_failed(self, lifecycle: TransactionLifecycle, _receipt: Optional[dict]) -> None:
        if self.animator.state.is_animating and self.animator.state.target_hash == lifecycle.hash:
            self.animator.rollback()

    def _on_outcome(self, outcome: PendingOutcome) -> None:
        self.supervisor.resolve(outcome.source_hash)
        self._drive_wheel(outcome)

    def _drive_wheel(self, outcome: PendingOutcome) -> None:
        state = self.animator.state
        if not state.is_animating or state.target_hash != outcome.source_hash:
            logger.info("Outcome for %s arrived with no matching spin on the wheel", outcome.source_hash)
            return
        self.animator.apply_outcome(outcome, on_finished=self._on_spin_finished)

    def _on_spin_finished(self, outcome: PendingOutcome) -> None:
        self.store.set_spin_result(
            SpinResult(
                tx_hash=outcome.source_hash,
                prize_type=outcome.prize_type,
                prize_amount_wei=outcome.prize_amount_wei,
                is_win=outcome.won,
            )
        )
        self.subscriber.request_refresh()

    def _on_outcome_timeout(self, tx_hash: str) -> None:
        self.animator.rollback()
        error = OutcomeTimeoutError(tx_hash, self.supervisor.timeout)
        self.store.set_error(OperationKind.SPIN.value, str(error), recoverable=True)

    # ------------------------------------------------------------------
    # Tickets and claims
    # ------------------------------------------------------------------
    def _on_ticket_confirmed(self, lifecycle: TransactionLifecycle, _receipt: Optional[dict]) -> None:
        if lifecycle.hash and self._processed[OperationKind.BUY_TICKET].add(lifecycle.hash):
            lifecycle.mark_processed()
            self.subscriber.request_refresh()

    def _on_claim_confirmed(self, lifecycle: TransactionLifecycle, _receipt: Optional[dict]) -> None:
        if lifecycle.hash and self._processed[OperationKind.CLAIM].add(lifecycle.hash):
            lifecycle.mark_processed()
            self.subscriber.request_refresh()

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------
    def get_status(self) -> Dict[str, Any]:
        return {
            "account": self.wallet.account,
            "targetChainId": self.guard.target_chain_id,
            "ethUsd": str(self.price_feed.eth_usd),
            "operations": {kind.value: s.get_status() for kind, s in self.submitters.items()},
            "recovery": {"state": self.supervisor.state.value, "hash": self.supervisor.tx_hash},
        }
