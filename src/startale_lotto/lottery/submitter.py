"""Per-kind operation submitter: one lifecycle, at most one in flight."""

from __future__ import annotations

from collections import defaultdict
from typing import Any, Callable, Dict, List, Optional, Sequence

from startale_lotto.blockchain.wallet import WalletProvider
from startale_lotto.lottery.chain_guard import ChainGuard
from startale_lotto.lottery.errors import (
    LottoError,
    NoAccountError,
    OperationInFlightError,
    SubmissionError,
    TransactionRevertedError,
    WrongNetworkError,
)
from startale_lotto.lottery.models import (
    LifecycleStatus,
    OperationKind,
    OperationResult,
    TransactionLifecycle,
)
from startale_lotto.utils.common import normalize_tx_hash
from startale_lotto.utils.logger import get_logger

logger = get_logger(__name__)

# Legal lifecycle edges; _transition refuses anything else.
_TRANSITIONS: Dict[LifecycleStatus, frozenset] = {
    LifecycleStatus.IDLE: frozenset({LifecycleStatus.AWAITING_SIGNATURE}),
    LifecycleStatus.AWAITING_SIGNATURE: frozenset({LifecycleStatus.SUBMITTED, LifecycleStatus.FAILED}),
    LifecycleStatus.SUBMITTED: frozenset({LifecycleStatus.CONFIRMING, LifecycleStatus.FAILED}),
    LifecycleStatus.CONFIRMING: frozenset({LifecycleStatus.CONFIRMED, LifecycleStatus.FAILED}),
    LifecycleStatus.CONFIRMED: frozenset({LifecycleStatus.AWAITING_SIGNATURE}),
    LifecycleStatus.FAILED: frozenset({LifecycleStatus.IDLE}),
}

Listener = Callable[[TransactionLifecycle, Optional[Dict[str, Any]]], None]


class OperationSubmitter:
    """Submits and tracks one kind of contract call.

    Listeners registered for "submitted", "confirmed" and "failed" receive the
    lifecycle and, for "confirmed", the raw receipt.
    """

    def __init__(
        self,
        kind: OperationKind,
        function_name: str,
        wallet: WalletProvider,
        client: Any,
        guard: ChainGuard,
        *,
        receipt_timeout: float = 180,
    ) -> None:
        self.kind = kind
        self.function_name = function_name
        self._wallet = wallet
        self._client = client
        self._guard = guard
        self._receipt_timeout = receipt_timeout
        self._reserved = False
        self._listeners: Dict[str, List[Listener]] = defaultdict(list)
        self.lifecycle = TransactionLifecycle(kind=kind)
        self.last_error: Optional[LottoError] = None

    @property
    def status(self) -> LifecycleStatus:
        return self.lifecycle.status

    @property
    def busy(self) -> bool:
        return self._reserved or self.lifecycle.in_flight

    def add_listener(self, event_type: str, callback: Listener) -> None:
        self._listeners[event_type].append(callback)

    def _emit(self, event_type: str, receipt: Optional[Dict[str, Any]] = None) -> None:
        for callback in list(self._listeners.get(event_type, [])):
            try:
                callback(self.lifecycle, receipt)
            except Exception as exc:
                logger.error("%s listener for %s failed: %s", event_type, self.kind.value, exc)

    def _transition(self, status: LifecycleStatus, **changes: Any) -> None:
        current = self.lifecycle.status
        if status not in _TRANSITIONS[current]:
            raise RuntimeError(f"Illegal {self.kind.value} transition {current.value} -> {status.value}")
        if status is LifecycleStatus.AWAITING_SIGNATURE:
            self.lifecycle = TransactionLifecycle(kind=self.kind, **changes)
        else:
            for name, value in changes.items():
                setattr(self.lifecycle, name, value)
        self.lifecycle.status = status
        logger.info("%s lifecycle %s -> %s (hash=%s)", self.kind.value, current.value, status.value, self.lifecycle.hash)

    def _fail(self, error: LottoError) -> OperationResult:
        self.last_error = error
        tx_hash = self.lifecycle.hash
        self._transition(LifecycleStatus.FAILED)
        self._emit("failed")
        self._transition(LifecycleStatus.IDLE)
        logger.warning("%s failed: %s", self.kind.value, error)
        return OperationResult(kind=self.kind, ok=False, tx_hash=tx_hash, error=error, value_wei=self.lifecycle.value_wei)

    def _reject(self, error: LottoError) -> OperationResult:
        logger.info("%s blocked before submission: %s", self.kind.value, error)
        return OperationResult(kind=self.kind, ok=False, error=error)

    async def submit(self, args: Sequence[Any] = (), value: int = 0) -> OperationResult:
        if self.busy:
            return self._reject(OperationInFlightError(self.kind.value, self.lifecycle.status.value))

        self._reserved = True
        try:
            if not await self._guard.ensure_network():
                return self._reject(WrongNetworkError(self._guard.target_chain_id))
            account = self._wallet.account
            if not account:
                return self._reject(NoAccountError())

            self.last_error = None
            self._transition(
                LifecycleStatus.AWAITING_SIGNATURE,
                account=account,
                chain_id=self._guard.target_chain_id,
                value_wei=int(value),
            )
        finally:
            self._reserved = False

        try:
            tx_hash = normalize_tx_hash(await self._wallet.send_transaction(self.function_name, list(args), int(value)))
        except LottoError as exc:
            return self._fail(exc)
        except Exception as exc:
            return self._fail(SubmissionError(f"{self.function_name} submission failed: {exc}"))

        self._transition(LifecycleStatus.SUBMITTED, hash=tx_hash)
        self._emit("submitted")
        return await self._await_confirmation(tx_hash)

    async def _await_confirmation(self, tx_hash: str) -> OperationResult:
        self._transition(LifecycleStatus.CONFIRMING)
        try:
            receipt = await self._client.wait_for_receipt(tx_hash, timeout=self._receipt_timeout)
        except Exception as exc:
            return self._fail(SubmissionError(f"Waiting for {tx_hash} failed: {exc}"))

        if int(receipt.get("status", 0)) != 1:
            return self._fail(TransactionRevertedError(tx_hash))

        self._transition(LifecycleStatus.CONFIRMED)
        self._emit("confirmed", receipt)
        return OperationResult(
            kind=self.kind,
            ok=True,
            tx_hash=tx_hash,
            receipt=receipt,
            value_wei=self.lifecycle.value_wei,
        )

    def get_status(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "status": self.lifecycle.status.value,
            "hash": self.lifecycle.hash,
            "processed": self.lifecycle.processed,
            "lastError": str(self.last_error) if self.last_error else None,
        }
