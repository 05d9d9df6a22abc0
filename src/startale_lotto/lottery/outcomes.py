"""Idempotency primitives shared by the event and receipt paths.

OutcomeStore is write-once per transaction hash: whichever producer installs
first wins, later installs observe the existing value and return False.
ProcessedHashes is a bounded set of hashes whose terminal effects have
already been applied.
"""

from __future__ import annotations

from collections import OrderedDict
from typing import Callable, Dict, List, Optional

from startale_lotto.lottery.models import PendingOutcome
from startale_lotto.utils.logger import get_logger

logger = get_logger(__name__)

OutcomeListener = Callable[[PendingOutcome], None]


class ProcessedHashes:
    """Insertion-ordered set that forgets its oldest entries past `capacity`."""

    def __init__(self, capacity: int = 256) -> None:
        if capacity < 1:
            raise ValueError("capacity must be positive")
        self._capacity = capacity
        self._items: "OrderedDict[str, None]" = OrderedDict()

    def __contains__(self, tx_hash: object) -> bool:
        return isinstance(tx_hash, str) and tx_hash.lower() in self._items

    def __len__(self) -> int:
        return len(self._items)

    def add(self, tx_hash: str) -> bool:
        """Record `tx_hash`; False if it was already present."""
        key = tx_hash.lower()
        if key in self._items:
            return False
        self._items[key] = None
        while len(self._items) > self._capacity:
            self._items.popitem(last=False)
        return True


class OutcomeStore:
    """Write-once-per-hash store of spin outcomes."""

    def __init__(self, capacity: int = 256) -> None:
        self._capacity = capacity
        self._outcomes: "OrderedDict[str, PendingOutcome]" = OrderedDict()
        self._listeners: List[OutcomeListener] = []

    def add_listener(self, callback: OutcomeListener) -> None:
        self._listeners.append(callback)

    def get(self, tx_hash: Optional[str]) -> Optional[PendingOutcome]:
        if not tx_hash:
            return None
        return self._outcomes.get(tx_hash.lower())

    def has(self, tx_hash: Optional[str]) -> bool:
        return self.get(tx_hash) is not None

    def install(self, outcome: PendingOutcome) -> bool:
        """Install `outcome` unless one already exists for its source hash."""
        key = outcome.source_hash.lower()
        existing = self._outcomes.get(key)
        if existing is not None:
            logger.debug(
                "Outcome for %s already installed from %s; dropping %s delivery",
                key, existing.source, outcome.source,
            )
            return False

        self._outcomes[key] = outcome
        while len(self._outcomes) > self._capacity:
            self._outcomes.popitem(last=False)
        logger.info("Outcome installed for %s from %s: %s", key, outcome.source, outcome.prize_type)

        for callback in list(self._listeners):
            try:
                callback(outcome)
            except Exception as exc:
                logger.error("Outcome listener failed for %s: %s", key, exc)
        return True

    def snapshot(self) -> Dict[str, PendingOutcome]:
        return dict(self._outcomes)
