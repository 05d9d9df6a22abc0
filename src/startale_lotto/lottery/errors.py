"""Error taxonomy for lotto operations.

Every failure is scoped to the operation that produced it and is handed back
to the caller inside an OperationResult; none of these are fatal.
"""

from __future__ import annotations


class LottoError(Exception):
    """Base class for all operation-scoped failures."""

    recoverable = True


class PreSubmissionError(LottoError):
    """Operation blocked before reaching the wallet; no state was touched."""


class WrongNetworkError(PreSubmissionError):
    def __init__(self, expected: int, actual: int | None = None) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(f"Wrong network: connected to {actual}, expected chain id {expected}")


class NoAccountError(PreSubmissionError):
    def __init__(self) -> None:
        super().__init__("No wallet account connected")


class OperationInFlightError(PreSubmissionError):
    def __init__(self, kind: str, status: str) -> None:
        self.kind = kind
        self.status = status
        super().__init__(f"A {kind} operation is already {status}")


class InvalidParametersError(PreSubmissionError):
    pass


class WalletRejectedError(LottoError):
    """The wallet declined to sign."""

    def __init__(self, message: str = "Transaction rejected in wallet") -> None:
        super().__init__(message)


class NetworkSwitchError(LottoError):
    pass


class SubmissionError(LottoError):
    """RPC failure while sending or awaiting a transaction."""


class TransactionRevertedError(SubmissionError):
    def __init__(self, tx_hash: str) -> None:
        self.tx_hash = tx_hash
        super().__init__(f"Transaction {tx_hash} reverted")


class OutcomeTimeoutError(LottoError):
    """Spin confirmed but neither the event nor the receipt produced a result in time."""

    def __init__(self, tx_hash: str, timeout: float) -> None:
        self.tx_hash = tx_hash
        self.timeout = timeout
        super().__init__(
            f"No spin result for {tx_hash} after {timeout:g}s; the wheel was reset, please try again"
        )
