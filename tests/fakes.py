from __future__ import annotations

import asyncio
from typing import Any, Callable, Dict, List, Optional, Sequence

from eth_abi import encode
from eth_utils import event_abi_to_log_topic, to_bytes

from startale_lotto.blockchain.contracts import event_abi
from startale_lotto.blockchain.events import LogDecoder
from startale_lotto.lottery.errors import WalletRejectedError
from startale_lotto.lottery.models import ChainLog, LotteryType, RoundSnapshot

PLAYER = "0x1111111111111111111111111111111111111111"
OTHER = "0x2222222222222222222222222222222222222222"
CONTRACT = "0x5799fe0F34BAeab3D1c756023E46D3019FDFE6D8"
TARGET_CHAIN = 1946


def tx_hash(n: int) -> str:
    return "0x" + f"{n:064x}"


def _address_topic(address: str) -> bytes:
    return b"\x00" * 12 + to_bytes(hexstr=address)


def _raw_log(event_name: str, topics: List[bytes], data: bytes, tx: str, log_index: int = 0) -> Dict[str, Any]:
    return {
        "address": CONTRACT,
        "blockHash": b"\x01" * 32,
        "blockNumber": 100,
        "logIndex": log_index,
        "transactionIndex": 0,
        "transactionHash": to_bytes(hexstr=tx),
        "topics": [bytes(event_abi_to_log_topic(event_abi(event_name)))] + topics,
        "data": data,
    }


def spin_result_raw(player: str, is_win: bool, amount: int, prize_type: str, tx: str) -> Dict[str, Any]:
    data = encode(["bool", "uint256", "string"], [is_win, amount, prize_type])
    return _raw_log("SpinResult", [_address_topic(player)], data, tx)


def ticket_purchased_raw(buyer: str, lottery_type: int, quantity: int, cost: int, tx: str) -> Dict[str, Any]:
    data = encode(["uint256", "uint256", "uint256"], [quantity, cost, 1_700_000_000])
    topics = [_address_topic(buyer), encode(["uint8"], [lottery_type])]
    return _raw_log("TicketPurchased", topics, data, tx)


def lottery_drawn_raw(lottery_type: int, round_id: int, winners: Sequence[str], prize: int, tx: str) -> Dict[str, Any]:
    data = encode(["uint256", "address[]", "uint256"], [round_id, list(winners), prize])
    return _raw_log("LotteryDrawn", [encode(["uint8"], [lottery_type])], data, tx)


def winnings_claimed_raw(user: str, amount: int, tx: str) -> Dict[str, Any]:
    return _raw_log("WinningsClaimed", [_address_topic(user)], encode(["uint256"], [amount]), tx)


def decode(raw: Dict[str, Any]) -> ChainLog:
    entry = LogDecoder().decode(raw)
    assert entry is not None
    return entry


class FakeWallet:
    def __init__(self, account: Optional[str] = PLAYER, chain_id: int = TARGET_CHAIN, allow_switch: bool = True):
        self._account = account
        self.chain_id = chain_id
        self.allow_switch = allow_switch
        self.switch_requests: List[int] = []
        self.sent: List[tuple] = []
        self.reject_next = False
        self.fail_next: Optional[Exception] = None
        self.gate: Optional[asyncio.Event] = None
        self._counter = 0

    @property
    def account(self) -> Optional[str]:
        return self._account

    def bind(self, account: Optional[str]) -> None:
        self._account = account

    async def get_chain_id(self) -> int:
        return self.chain_id

    async def switch_chain(self, chain_id: int) -> None:
        self.switch_requests.append(chain_id)
        if not self.allow_switch:
            raise WalletRejectedError("User rejected network switch")
        self.chain_id = chain_id

    async def send_transaction(self, function_name: str, args: Sequence[Any], value: int = 0) -> str:
        if self.gate is not None:
            await self.gate.wait()
        if self.reject_next:
            self.reject_next = False
            raise WalletRejectedError()
        if self.fail_next is not None:
            exc, self.fail_next = self.fail_next, None
            raise exc
        self._counter += 1
        self.sent.append((function_name, tuple(args), value))
        return tx_hash(self._counter)


class FakeClient:
    """Stands in for BlockchainClient; receipts are released explicitly or immediately."""

    def __init__(self) -> None:
        self.decoder = LogDecoder()
        self.receipts: Dict[str, Dict[str, Any]] = {}
        self.receipt_gates: Dict[str, asyncio.Event] = {}
        self.before_receipt: Optional[Callable[[str], None]] = None
        self.receipt_requests: List[str] = []
        self.logs: List[ChainLog] = []
        self.latest_block = 100
        self.pending_winnings = 0
        self.rounds: Dict[LotteryType, RoundSnapshot] = {}
        self.hold_receipts = False
        self.credits: Dict[LotteryType, int] = {}
        self.log_failures: List[Exception] = []

    async def wait_for_receipt(self, tx: str, timeout: float = 180) -> Dict[str, Any]:
        self.receipt_requests.append(tx)
        if self.hold_receipts:
            gate = self.receipt_gates.setdefault(tx, asyncio.Event())
            await gate.wait()
        if self.before_receipt:
            self.before_receipt(tx)
        return self.receipts.get(tx, {"status": 1, "blockNumber": 100, "transactionHash": tx, "gasUsed": 21000, "logs": []})

    def release(self, tx: str) -> None:
        self.receipt_gates.setdefault(tx, asyncio.Event()).set()

    async def get_latest_block(self) -> int:
        return self.latest_block

    async def get_logs(self, from_block: int, to_block: int, event_names: Sequence[str] = ()) -> List[ChainLog]:
        if self.log_failures:
            raise self.log_failures.pop(0)
        return [
            entry for entry in self.logs
            if from_block <= entry.block_number <= to_block and (not event_names or entry.name in event_names)
        ]

    async def get_round_details(self, lottery_type: LotteryType) -> RoundSnapshot:
        return self.rounds.get(
            lottery_type,
            RoundSnapshot(lottery_type, end_time_unix=2_000_000_000, pool_wei=6 * 10**15, participant_count=3, ticket_price_wei=10**14),
        )

    async def get_pending_winnings(self, address: str) -> int:
        return self.pending_winnings

    async def get_ticket_credits(self, address: str, lottery_type: LotteryType) -> int:
        return self.credits.get(lottery_type, 0)

    async def get_eth_cost(self, usd_amount: int) -> int:
        return usd_amount * 10**18 // 3000

    async def health_check(self) -> Dict[str, Any]:
        return {"status": "healthy", "latestBlock": self.latest_block}


def fast_config(**lotto_overrides: Any) -> Dict[str, Any]:
    lotto = {
        "outcome_timeout_sec": 0.2,
        "animation_duration_sec": 0.01,
        "event_poll_interval_sec": 0.01,
        "round_poll_interval_sec": 0.05,
        "winnings_poll_interval_sec": 0.05,
    }
    lotto.update(lotto_overrides)
    return {"blockchain": {"chain_id": TARGET_CHAIN}, "price": {"eth_usd": 3000}, "lotto": lotto}
