import asyncio

from startale_lotto.lottery.chain_guard import ChainGuard
from startale_lotto.lottery.errors import (
    NoAccountError,
    OperationInFlightError,
    SubmissionError,
    TransactionRevertedError,
    WalletRejectedError,
    WrongNetworkError,
)
from startale_lotto.lottery.models import LifecycleStatus, OperationKind
from startale_lotto.lottery.submitter import OperationSubmitter

from fakes import TARGET_CHAIN, FakeClient, FakeWallet, tx_hash


def make_submitter(wallet: FakeWallet, client: FakeClient, kind=OperationKind.SPIN) -> OperationSubmitter:
    return OperationSubmitter(kind, "spinWheel", wallet, client, ChainGuard(wallet, TARGET_CHAIN))


def test_successful_submission_walks_the_lifecycle(wallet, client) -> None:
    submitter = make_submitter(wallet, client)
    seen = []
    for event in ("submitted", "confirmed", "failed"):
        submitter.add_listener(event, lambda lc, receipt, evt=event: seen.append((evt, lc.status, receipt)))

    result = asyncio.run(submitter.submit((), 123))

    assert result.ok and result.tx_hash == tx_hash(1)
    assert wallet.sent == [("spinWheel", (), 123)]
    assert submitter.status is LifecycleStatus.CONFIRMED
    assert submitter.lifecycle.account == wallet.account
    assert submitter.lifecycle.chain_id == TARGET_CHAIN
    assert [(evt, status) for evt, status, _ in seen] == [
        ("submitted", LifecycleStatus.SUBMITTED),
        ("confirmed", LifecycleStatus.CONFIRMED),
    ]
    assert seen[1][2]["status"] == 1


def test_wrong_network_rejected_switch_sends_nothing(client) -> None:
    wallet = FakeWallet(chain_id=1, allow_switch=False)
    submitter = make_submitter(wallet, client)

    result = asyncio.run(submitter.submit())

    assert isinstance(result.error, WrongNetworkError)
    assert wallet.switch_requests == [TARGET_CHAIN]
    assert wallet.sent == []
    assert client.receipt_requests == []
    assert submitter.status is LifecycleStatus.IDLE
    assert submitter.lifecycle.hash is None


def test_wrong_network_switch_accepted_proceeds(client) -> None:
    wallet = FakeWallet(chain_id=1)
    result = asyncio.run(make_submitter(wallet, client).submit())
    assert result.ok
    assert wallet.chain_id == TARGET_CHAIN


def test_no_account_rejected_before_signature(client) -> None:
    wallet = FakeWallet(account=None)
    submitter = make_submitter(wallet, client)
    result = asyncio.run(submitter.submit())
    assert isinstance(result.error, NoAccountError)
    assert submitter.status is LifecycleStatus.IDLE
    assert wallet.sent == []


def test_second_submit_while_in_flight_is_rejected(wallet, client) -> None:
    async def scenario():
        client.hold_receipts = True
        submitter = make_submitter(wallet, client)
        first = asyncio.create_task(submitter.submit())
        await asyncio.sleep(0.01)
        assert submitter.status is LifecycleStatus.CONFIRMING

        second = await submitter.submit()
        client.release(tx_hash(1))
        return await first, second, submitter

    first, second, submitter = asyncio.run(scenario())
    assert first.ok
    assert isinstance(second.error, OperationInFlightError)
    assert len(wallet.sent) == 1
    assert submitter.status is LifecycleStatus.CONFIRMED


def test_submit_while_awaiting_signature_is_rejected(wallet, client) -> None:
    async def scenario():
        wallet.gate = asyncio.Event()
        submitter = make_submitter(wallet, client)
        first = asyncio.create_task(submitter.submit())
        await asyncio.sleep(0.01)
        assert submitter.status is LifecycleStatus.AWAITING_SIGNATURE
        second = await submitter.submit()
        wallet.gate.set()
        return await first, second

    first, second = asyncio.run(scenario())
    assert first.ok
    assert isinstance(second.error, OperationInFlightError)


def test_kinds_are_independent(wallet, client) -> None:
    async def scenario():
        client.hold_receipts = True
        spin = make_submitter(wallet, client)
        claim = OperationSubmitter(OperationKind.CLAIM, "claimPrize", wallet, client, ChainGuard(wallet, TARGET_CHAIN))
        spin_task = asyncio.create_task(spin.submit())
        await asyncio.sleep(0.01)
        claim_task = asyncio.create_task(claim.submit())
        await asyncio.sleep(0.01)
        client.release(tx_hash(1))
        client.release(tx_hash(2))
        return await spin_task, await claim_task

    spin_result, claim_result = asyncio.run(scenario())
    assert spin_result.ok and claim_result.ok


def test_wallet_rejection_fails_then_returns_to_idle(wallet, client) -> None:
    wallet.reject_next = True
    submitter = make_submitter(wallet, client)
    failed = []
    submitter.add_listener("failed", lambda lc, _r: failed.append(lc.status))

    result = asyncio.run(submitter.submit())

    assert isinstance(result.error, WalletRejectedError)
    assert failed == [LifecycleStatus.FAILED]
    assert submitter.status is LifecycleStatus.IDLE
    assert client.receipt_requests == []

    # a fresh attempt is allowed afterwards
    assert asyncio.run(submitter.submit()).ok


def test_unexpected_wallet_error_is_wrapped(wallet, client) -> None:
    wallet.fail_next = ConnectionError("rpc down")
    result = asyncio.run(make_submitter(wallet, client).submit())
    assert isinstance(result.error, SubmissionError)
    assert "rpc down" in str(result.error)


def test_reverted_receipt_fails(wallet, client) -> None:
    client.receipts[tx_hash(1)] = {"status": 0, "blockNumber": 100, "transactionHash": tx_hash(1), "logs": []}
    submitter = make_submitter(wallet, client)
    confirmed = []
    submitter.add_listener("confirmed", lambda lc, r: confirmed.append(r))

    result = asyncio.run(submitter.submit())

    assert isinstance(result.error, TransactionRevertedError)
    assert result.tx_hash == tx_hash(1)
    assert confirmed == []
    assert submitter.status is LifecycleStatus.IDLE
    assert submitter.get_status()["lastError"]


def test_chain_guard_reports_unreadable_chain() -> None:
    class BrokenWallet(FakeWallet):
        async def get_chain_id(self) -> int:
            raise RuntimeError("no provider")

    assert asyncio.run(ChainGuard(BrokenWallet(), TARGET_CHAIN).ensure_network()) is False
