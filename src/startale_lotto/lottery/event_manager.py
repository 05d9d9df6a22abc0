"""Contract event subscriptions and read-state polling.

EventSubscriber keeps one log subscription per lottery event type, applies
each newly observed entry exactly once per transaction hash, and keeps the
round snapshots and claimable balance fresh in the LottoStore.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Callable, Dict, List, Optional

from startale_lotto.blockchain.contracts import (
    LOTTERY_DRAWN,
    SPIN_RESULT,
    SUBSCRIBED_EVENTS,
    TICKET_PURCHASED,
    WINNINGS_CLAIMED,
)
from startale_lotto.lottery.correlator import outcome_from_args
from startale_lotto.lottery.models import (
    ChainLog,
    HistoryRecord,
    LotteryType,
    WinnerRecord,
    lottery_type_from_value,
    winners_from_args,
)
from startale_lotto.lottery.outcomes import OutcomeStore, ProcessedHashes
from startale_lotto.lottery.store import LottoStore
from startale_lotto.utils.common import same_address, shorten_eth_address
from startale_lotto.utils.logger import get_logger

logger = get_logger(__name__)

ROUND_TYPES = (LotteryType.WEEKLY, LotteryType.BIWEEKLY, LotteryType.MONTHLY)


class EventSubscriber:
    """Polls chain events and read state and writes into the LottoStore.

    Responsibilities:
    - One polling subscription per event type (SpinResult, TicketPurchased,
      LotteryDrawn, WinningsClaimed), each with its own block cursor.
    - Per-user filtering for spins, tickets and claims; LotteryDrawn winner
      lists are recorded for everyone.
    - Periodic refresh of round snapshots and pending winnings, woken early
      whenever a terminal event implies the state changed.
    """

    def __init__(
        self,
        client: Any,
        store: LottoStore,
        outcomes: OutcomeStore,
        account_provider: Callable[[], Optional[str]],
        config: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.client = client
        self.store = store
        self.outcomes = outcomes
        self._account_provider = account_provider

        lotto_cfg = (config or {}).get("lotto", {})
        self._event_interval = float(lotto_cfg.get("event_poll_interval_sec", 2.0))
        self._round_interval = float(lotto_cfg.get("round_poll_interval_sec", 10.0))
        self._winnings_interval = float(lotto_cfg.get("winnings_poll_interval_sec", 5.0))
        self._start_block_offset = int(lotto_cfg.get("start_block_offset", 0))
        capacity = int(lotto_cfg.get("processed_hashes_max", 256))

        self._processed: Dict[str, ProcessedHashes] = {name: ProcessedHashes(capacity) for name in SUBSCRIBED_EVENTS}
        self._cursors: Dict[str, Optional[int]] = {name: None for name in SUBSCRIBED_EVENTS}
        self._tasks: List[asyncio.Task] = []
        self._stop_event = asyncio.Event()
        self._refresh_event = asyncio.Event()

    @property
    def account(self) -> Optional[str]:
        return self._account_provider()

    async def initialize(self) -> None:
        try:
            latest = await self.client.get_latest_block()
        except Exception as exc:
            logger.warning("Could not read latest block, subscriptions start lazily: %s", exc)
            return
        start = max(0, latest - self._start_block_offset)
        for name in SUBSCRIBED_EVENTS:
            self._cursors[name] = start

    async def start(self) -> None:
        """Create background tasks for the subscriptions and polling loops."""
        if self._tasks:
            return
        self._stop_event.clear()
        loop = asyncio.get_running_loop()
        self._tasks = [loop.create_task(self._subscription_loop(name), name=f"sub-{name}") for name in SUBSCRIBED_EVENTS]
        self._tasks.append(loop.create_task(self._read_state_loop(), name="read-state"))

    async def stop(self) -> None:
        """Stop background tasks and wait for termination."""
        self._stop_event.set()
        for t in self._tasks:
            t.cancel()
        for t in self._tasks:
            try:
                await t
            except asyncio.CancelledError:
                pass
        self._tasks = []

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------
    async def _subscription_loop(self, event_name: str) -> None:
        while not self._stop_event.is_set():
            try:
                await self.poll_once(event_name)
            except Exception as exc:
                logger.error("%s subscription poll failed: %s", event_name, exc)
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._event_interval)
                break
            except asyncio.TimeoutError:
                continue

    async def poll_once(self, event_name: str) -> int:
        """Fetch new `event_name` logs since the cursor; returns how many were applied.

        The cursor only moves once the range has been fetched, so a failed or
        timed-out fetch is retried from the same block on the next tick.
        """
        latest = await self.client.get_latest_block()
        from_block = self._cursors.get(event_name)
        if from_block is None:
            from_block = latest
        if from_block > latest:
            return 0

        logs = await self.client.get_logs(from_block, latest, [event_name])
        applied = 0
        for entry in logs:
            try:
                if self.handle_log(entry):
                    applied += 1
            except Exception as exc:
                logger.error("Failed to handle %s in %s: %s", entry.name, entry.transaction_hash, exc)
        self._cursors[event_name] = latest + 1
        return applied

    def handle_log(self, entry: ChainLog) -> bool:
        """Apply one delivered log; False if it was a duplicate or unknown."""
        processed = self._processed.get(entry.name)
        if processed is None:
            logger.debug("Ignoring unsubscribed event %s", entry.name)
            return False
        if not processed.add(entry.transaction_hash):
            logger.debug("Duplicate %s delivery for %s", entry.name, entry.transaction_hash)
            return False

        logger.info("Handling %s from %s", entry.name, entry.transaction_hash)
        handler = {
            SPIN_RESULT: self._on_spin_result,
            TICKET_PURCHASED: self._on_ticket_purchased,
            LOTTERY_DRAWN: self._on_lottery_drawn,
            WINNINGS_CLAIMED: self._on_winnings_claimed,
        }[entry.name]
        handler(entry)
        return True

    def _on_spin_result(self, entry: ChainLog) -> None:
        if not same_address(entry.args.get("player"), self.account):
            return
        self.outcomes.install(outcome_from_args(entry.args, entry.transaction_hash, source="event"))
        self.request_refresh()

    def _on_ticket_purchased(self, entry: ChainLog) -> None:
        if not same_address(entry.args.get("buyer"), self.account):
            logger.debug("Ticket purchase by %s ignored", shorten_eth_address(entry.args.get("buyer")))
            return
        lottery_type = lottery_type_from_value(entry.args.get("lotteryType"))
        self.store.add_history(
            HistoryRecord(
                kind=lottery_type.label if lottery_type else "Unknown",
                amount_wei=int(entry.args.get("costETH") or 0),
                tx_hash=entry.transaction_hash,
                timestamp=int(entry.args.get("timestamp") or time.time()),
            )
        )
        self.request_refresh()

    def _on_lottery_drawn(self, entry: ChainLog) -> None:
        lottery_type = lottery_type_from_value(entry.args.get("lotteryType")) or LotteryType.INSTANT
        winners = winners_from_args(entry.args)
        if winners:
            now = int(time.time())
            prize = int(entry.args.get("prizePerWinner") or 0)
            round_id = int(entry.args.get("roundId") or 0)
            self.store.add_winners(
                WinnerRecord(address=w, prize_wei=prize, lottery_type=lottery_type, round_id=round_id, timestamp=now)
                for w in winners
            )
        self.request_refresh()

    def _on_winnings_claimed(self, entry: ChainLog) -> None:
        if not same_address(entry.args.get("user"), self.account):
            return
        self.store.add_history(
            HistoryRecord(
                kind="Claim",
                amount_wei=int(entry.args.get("amount") or 0),
                tx_hash=entry.transaction_hash,
                timestamp=int(time.time()),
            )
        )
        self.request_refresh()

    # ------------------------------------------------------------------
    # Read state
    # ------------------------------------------------------------------
    def request_refresh(self) -> None:
        """Wake the read-state loop so it re-fetches before its next tick."""
        self._refresh_event.set()

    async def _read_state_loop(self) -> None:
        interval = min(self._round_interval, self._winnings_interval)
        last_rounds = 0.0
        while not self._stop_event.is_set():
            forced = self._refresh_event.is_set()
            self._refresh_event.clear()
            now = time.monotonic()
            if forced or now - last_rounds >= self._round_interval:
                await self.refresh_rounds()
                last_rounds = now
            await self.refresh_winnings()
            try:
                await asyncio.wait_for(self._refresh_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                continue

    async def refresh_rounds(self) -> None:
        for lottery_type in ROUND_TYPES:
            try:
                self.store.set_round(await self.client.get_round_details(lottery_type))
            except Exception as exc:
                logger.error("Round refresh for %s failed: %s", lottery_type.label, exc)

    async def refresh_winnings(self) -> None:
        account = self.account
        if not account:
            return
        try:
            self.store.set_claimable(await self.client.get_pending_winnings(account))
        except Exception as exc:
            logger.error("Pending winnings refresh failed: %s", exc)

    async def refresh_all(self) -> None:
        await self.refresh_rounds()
        await self.refresh_winnings()
