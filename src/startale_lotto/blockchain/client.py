"""Blockchain client for the lotto contract: reads, receipts and log polling."""

from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional, Sequence

from web3 import Web3
from web3.contract import Contract

from startale_lotto.blockchain.contracts import load_lottery_abi
from startale_lotto.blockchain.events import LogDecoder
from startale_lotto.lottery.models import ChainLog, LotteryType, RoundSnapshot
from startale_lotto.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_RPC_URL = "https://rpc.minato.soneium.org"
DEFAULT_CHAIN_ID = 1946
DEFAULT_CONTRACT_ADDRESS = "0x5799fe0F34BAeab3D1c756023E46D3019FDFE6D8"


class BlockchainClient:
    """Async-friendly wrapper around web3.py for the lotto contract.

    web3 calls are blocking, so each one runs in a worker thread via
    asyncio.to_thread and the event loop stays responsive.
    """

    def __init__(self, config: Dict[str, Any]):
        self._config = config

        blockchain_cfg = config.get("blockchain", {})
        self.rpc_url: str = blockchain_cfg.get("rpc_url", DEFAULT_RPC_URL)
        try:
            self.rpc_timeout: float = float(blockchain_cfg.get("rpc_timeout", 10.0))
        except (TypeError, ValueError):
            self.rpc_timeout = 10.0
        self.log_timeout: float = float(blockchain_cfg.get("log_timeout", max(15.0, self.rpc_timeout * 5)))
        self.chain_id: int = int(blockchain_cfg.get("chain_id", DEFAULT_CHAIN_ID))
        self.contract_address: str = Web3.to_checksum_address(
            blockchain_cfg.get("contract_address", DEFAULT_CONTRACT_ADDRESS)
        )

        self._w3: Optional[Web3] = None
        self._contract: Optional[Contract] = None
        self.contract_abi: List[Dict[str, Any]] = load_lottery_abi()
        self.decoder = LogDecoder(self.contract_abi)

        self._latest_block: Optional[int] = None

    async def initialize(self) -> None:
        """Establish the RPC connection and bind the contract."""
        self._w3 = Web3(Web3.HTTPProvider(self.rpc_url, request_kwargs={"timeout": self.rpc_timeout}))
        connected = await asyncio.to_thread(self._w3.is_connected)
        if not connected:  # pragma: no cover - depends on live RPC
            raise ConnectionError(f"Failed to connect to RPC at {self.rpc_url}")

        self.decoder = LogDecoder(self.contract_abi, codec=self._w3.codec)
        self._contract = self._w3.eth.contract(address=self.contract_address, abi=self.contract_abi)
        logger.info("Connected to RPC %s, contract bound at %s", self.rpc_url, self.contract_address)

        try:
            actual_chain_id = await self.get_chain_id()
            if actual_chain_id != self.chain_id:
                logger.warning("RPC chain id %s differs from target chain id %s", actual_chain_id, self.chain_id)
        except Exception as exc:
            logger.warning("Could not verify chain ID: %s", exc)

    async def close(self) -> None:
        """Tear down references; HTTP provider closes automatically."""
        self._contract = None
        self._w3 = None

    @property
    def web3(self) -> Web3:
        if not self._w3:
            raise RuntimeError("Web3 provider not initialised")
        return self._w3

    @property
    def contract(self) -> Contract:
        if not self._contract:
            raise RuntimeError("Contract not initialised")
        return self._contract

    async def _call_view(self, function_name: str, *args) -> Any:
        contract = self.contract

        def _call():
            return getattr(contract.functions, function_name)(*args).call()

        return await asyncio.to_thread(_call)

    async def get_chain_id(self) -> int:
        w3 = self.web3
        return int(await asyncio.to_thread(lambda: w3.eth.chain_id))

    async def get_latest_block(self) -> int:
        w3 = self.web3
        self._latest_block = int(await asyncio.to_thread(lambda: w3.eth.block_number))
        return self._latest_block

    async def get_round_details(self, lottery_type: LotteryType) -> RoundSnapshot:
        raw = await self._call_view("getRoundDetails", int(lottery_type))
        return RoundSnapshot(
            lottery_type=LotteryType(int(lottery_type)),
            end_time_unix=int(raw[0]),
            pool_wei=int(raw[1]),
            participant_count=int(raw[2]),
            ticket_price_wei=int(raw[3]),
        )

    async def get_pending_winnings(self, address: str) -> int:
        return int(await self._call_view("pendingWinnings", Web3.to_checksum_address(address)))

    async def get_ticket_credits(self, address: str, lottery_type: LotteryType) -> int:
        return int(await self._call_view("ticketCredits", Web3.to_checksum_address(address), int(lottery_type)))

    async def get_eth_cost(self, usd_amount: int) -> int:
        return int(await self._call_view("getEthCost", int(usd_amount)))

    async def get_logs(
        self,
        from_block: int,
        to_block: int,
        event_names: Sequence[str] = (),
    ) -> List[ChainLog]:
        """Fetch and decode contract logs in [from_block, to_block].

        Raises asyncio.TimeoutError when the RPC does not answer in time, so
        callers keep their cursor and fetch the same range again.
        """
        w3 = self.web3
        filter_params: Dict[str, Any] = {
            "fromBlock": from_block,
            "toBlock": to_block,
            "address": self.contract_address,
        }
        if event_names:
            # topic0 OR-list
            filter_params["topics"] = [["0x" + self.decoder.topic_for(name).hex() for name in event_names]]

        try:
            raw_logs = await asyncio.wait_for(
                asyncio.to_thread(w3.eth.get_logs, filter_params), timeout=self.log_timeout
            )
        except asyncio.TimeoutError:
            logger.warning("get_logs %s..%s timed out after %.1fs", from_block, to_block, self.log_timeout)
            raise
        logger.debug("Fetched %d logs from block %s to %s", len(raw_logs), from_block, to_block)
        return self.decoder.decode_all(raw_logs)

    async def wait_for_receipt(self, tx_hash: str, timeout: float = 180) -> Dict[str, Any]:
        """Block (in a worker thread) until the transaction is included."""
        w3 = self.web3

        def _wait() -> Dict[str, Any]:
            receipt = w3.eth.wait_for_transaction_receipt(tx_hash, timeout=timeout)
            return {
                "status": int(receipt["status"]),
                "blockNumber": int(receipt["blockNumber"]),
                "transactionHash": receipt["transactionHash"],
                "gasUsed": int(receipt["gasUsed"]),
                "logs": list(receipt.get("logs", [])),
            }

        return await asyncio.to_thread(_wait)

    async def health_check(self) -> Dict[str, Any]:
        try:
            latest_block = await self.get_latest_block()
            return {"status": "healthy", "latestBlock": latest_block}
        except Exception as exc:  # pragma: no cover - health failures are diagnostic
            logger.exception("Blockchain health check failed")
            return {"status": "error", "detail": str(exc)}
