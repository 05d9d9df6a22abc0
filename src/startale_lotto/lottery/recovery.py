"""Bounded wait for a spin outcome after confirmation."""

from __future__ import annotations

import asyncio
from typing import Callable, Optional

from startale_lotto.lottery.models import SupervisorState
from startale_lotto.lottery.outcomes import OutcomeStore
from startale_lotto.utils.logger import get_logger

logger = get_logger(__name__)

OUTCOME_TIMEOUT_SEC = 30.0


class RecoverySupervisor:
    """Dormant -> Armed -> (Resolved | TimedOut).

    The timer re-reads the OutcomeStore when it fires, so an outcome that
    landed just before expiry resolves instead of timing out.
    """

    def __init__(
        self,
        store: OutcomeStore,
        on_timeout: Callable[[str], None],
        timeout: float = OUTCOME_TIMEOUT_SEC,
    ) -> None:
        self._store = store
        self._on_timeout = on_timeout
        self.timeout = float(timeout)
        self.state = SupervisorState.DORMANT
        self.tx_hash: Optional[str] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def armed(self) -> bool:
        return self.state is SupervisorState.ARMED

    def arm(self, tx_hash: str) -> None:
        self._cancel()
        self.tx_hash = tx_hash
        if self._store.has(tx_hash):
            self.state = SupervisorState.RESOLVED
            return
        self.state = SupervisorState.ARMED
        self._task = asyncio.get_running_loop().create_task(self._expire(tx_hash))
        logger.info("Recovery armed for %s (%.0fs)", tx_hash, self.timeout)

    def resolve(self, tx_hash: str) -> None:
        """Disarm because the outcome for `tx_hash` arrived."""
        if self.state is SupervisorState.ARMED and self.tx_hash == tx_hash:
            self._cancel()
            self.state = SupervisorState.RESOLVED
            logger.info("Recovery resolved for %s", tx_hash)

    async def _expire(self, tx_hash: str) -> None:
        await asyncio.sleep(self.timeout)
        if self.tx_hash != tx_hash or self.state is not SupervisorState.ARMED:
            return
        self._task = None
        if self._store.has(tx_hash):
            self.state = SupervisorState.RESOLVED
            return
        self.state = SupervisorState.TIMED_OUT
        logger.warning("No outcome for %s within %.0fs", tx_hash, self.timeout)
        self._on_timeout(tx_hash)

    def _cancel(self) -> None:
        if self._task and not self._task.done():
            self._task.cancel()
        self._task = None

    async def close(self) -> None:
        task = self._task
        self._cancel()
        self.state = SupervisorState.DORMANT
        if task:
            try:
                await task
            except asyncio.CancelledError:
                pass
