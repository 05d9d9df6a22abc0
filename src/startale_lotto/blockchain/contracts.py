"""
Smart contract ABI loading
"""

import json
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List

from startale_lotto.utils.logger import get_logger

logger = get_logger(__name__)

CONTRACTS_DIR = Path(__file__).parent / "contracts"

SPIN_RESULT = "SpinResult"
TICKET_PURCHASED = "TicketPurchased"
LOTTERY_DRAWN = "LotteryDrawn"
WINNINGS_CLAIMED = "WinningsClaimed"

SUBSCRIBED_EVENTS = (SPIN_RESULT, TICKET_PURCHASED, LOTTERY_DRAWN, WINNINGS_CLAIMED)


@lru_cache(maxsize=None)
def _load_abi_text(contract_name: str) -> str:
    abi_file = CONTRACTS_DIR / "abi" / f"{contract_name}.abi"
    if not abi_file.is_file():
        raise FileNotFoundError(f"{contract_name} ABI file not found at {abi_file}")
    logger.info("Loading %s ABI from %s", contract_name, abi_file)
    return abi_file.read_text(encoding="utf-8")


def load_lottery_abi() -> List[Dict[str, Any]]:
    """Return a fresh copy of the lottery contract ABI."""
    return json.loads(_load_abi_text("Lottery"))


def event_abi(name: str) -> Dict[str, Any]:
    for item in load_lottery_abi():
        if item.get("type") == "event" and item.get("name") == name:
            return item
    raise KeyError(f"Event {name} not in lottery ABI")
