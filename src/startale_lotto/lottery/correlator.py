"""Receipt-side producer of spin outcomes."""

from __future__ import annotations

from typing import Any, Dict, Optional

from startale_lotto.blockchain.contracts import SPIN_RESULT
from startale_lotto.blockchain.events import LogDecoder
from startale_lotto.lottery.models import PendingOutcome
from startale_lotto.lottery.outcomes import OutcomeStore
from startale_lotto.utils.common import normalize_tx_hash, same_address
from startale_lotto.utils.logger import get_logger

logger = get_logger(__name__)


def outcome_from_args(args: Dict[str, Any], tx_hash: str, source: str) -> PendingOutcome:
    return PendingOutcome(
        prize_type=str(args.get("prizeType", "")),
        prize_amount_wei=int(args.get("prizeAmount") or 0),
        source_hash=tx_hash,
        is_win=bool(args.get("isWin")),
        source=source,
    )


class OutcomeCorrelator:
    """Decodes SpinResult from a confirmed receipt when the event has not won."""

    def __init__(self, decoder: LogDecoder, store: OutcomeStore) -> None:
        self._decoder = decoder
        self._store = store

    def correlate(self, tx_hash: str, receipt: Dict[str, Any], account: Optional[str]) -> Optional[PendingOutcome]:
        """Install the receipt-derived outcome; returns it only if this call installed it."""
        tx_hash = normalize_tx_hash(tx_hash)
        if self._store.has(tx_hash):
            logger.debug("Receipt for %s: outcome already delivered by event", tx_hash)
            return None

        for raw in receipt.get("logs") or []:
            entry = self._decoder.decode(raw)
            if entry is None or entry.name != SPIN_RESULT:
                continue
            if not same_address(entry.args.get("player"), account):
                continue
            outcome = outcome_from_args(entry.args, tx_hash, source="receipt")
            if self._store.install(outcome):
                return outcome
            return None

        logger.info("Receipt for %s carries no SpinResult for %s", tx_hash, account)
        return None
