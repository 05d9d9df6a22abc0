"""Decoding of raw lottery contract logs into ChainLog records."""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional

from eth_abi.codec import ABICodec
from eth_abi.registry import registry as default_registry
from eth_utils import event_abi_to_log_topic
from web3._utils.events import get_event_data

from startale_lotto.blockchain.contracts import load_lottery_abi
from startale_lotto.lottery.models import ChainLog
from startale_lotto.utils.common import normalize_tx_hash
from startale_lotto.utils.logger import get_logger

logger = get_logger(__name__)


class LogDecoder:
    """Maps topic0 to the lottery event ABI and decodes matching logs."""

    def __init__(self, abi: Optional[List[Dict[str, Any]]] = None, codec: Optional[ABICodec] = None) -> None:
        self._codec = codec or ABICodec(default_registry)
        self._event_abi_by_topic: Dict[bytes, Dict[str, Any]] = {}
        self._topic_by_name: Dict[str, bytes] = {}
        for item in abi if abi is not None else load_lottery_abi():
            if item.get("type") != "event":
                continue
            topic = bytes(event_abi_to_log_topic(item))
            self._event_abi_by_topic[topic] = item
            self._topic_by_name[item["name"]] = topic
        logger.debug("Prepared %d event ABI topics", len(self._event_abi_by_topic))

    def topic_for(self, event_name: str) -> bytes:
        return self._topic_by_name[event_name]

    def decode(self, raw: Dict[str, Any]) -> Optional[ChainLog]:
        """Decode a single raw log; None when it is not a known lottery event."""
        topics = raw.get("topics") or []
        if not topics:
            return None
        abi = self._event_abi_by_topic.get(bytes(topics[0]))
        if abi is None:
            return None
        try:
            decoded = get_event_data(self._codec, abi, raw)
        except Exception as exc:
            logger.info("Failed to decode %s log in tx %s: %s", abi.get("name"), raw.get("transactionHash"), exc)
            return None
        return ChainLog(
            name=abi["name"],
            args=dict(decoded["args"]),
            block_number=int(raw.get("blockNumber") or 0),
            transaction_hash=normalize_tx_hash(raw.get("transactionHash", b"")),
            log_index=int(raw.get("logIndex") or 0),
        )

    def decode_all(self, raw_logs: Iterable[Dict[str, Any]], event_name: Optional[str] = None) -> List[ChainLog]:
        collected: List[ChainLog] = []
        for raw in raw_logs:
            entry = self.decode(raw)
            if entry is None:
                continue
            if event_name and entry.name != event_name:
                continue
            collected.append(entry)
        collected.sort(key=lambda evt: (evt.block_number, evt.log_index))
        return collected
