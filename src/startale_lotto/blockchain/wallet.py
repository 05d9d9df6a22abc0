"""Wallet/account collaborators.

The engine never holds keys: it only talks to a WalletProvider, which exposes
the bound account, the connected network, a network switch and a
sign-and-send action returning the transaction hash.
"""

from __future__ import annotations

import asyncio
from decimal import Decimal
from typing import Any, Dict, Optional, Protocol, Sequence, runtime_checkable

from eth_account import Account
from web3 import Web3

from startale_lotto.blockchain.client import BlockchainClient
from startale_lotto.lottery.errors import NetworkSwitchError, SubmissionError, WalletRejectedError
from startale_lotto.utils.common import normalize_tx_hash
from startale_lotto.utils.logger import get_logger

logger = get_logger(__name__)


@runtime_checkable
class WalletProvider(Protocol):
    @property
    def account(self) -> Optional[str]: ...

    async def get_chain_id(self) -> int: ...

    async def switch_chain(self, chain_id: int) -> None: ...

    async def send_transaction(self, function_name: str, args: Sequence[Any], value: int = 0) -> str: ...


class LocalKeyWallet:
    """WalletProvider that signs with a locally configured private key."""

    def __init__(self, client: BlockchainClient, config: Dict[str, Any]):
        self._client = client
        wallet_cfg = config.get("wallet", {})
        private_key = wallet_cfg.get("private_key")
        self._account = Account.from_key(private_key) if private_key else None
        if self._account:
            logger.info("Wallet account loaded: %s", self._account.address)

        blockchain_cfg = config.get("blockchain", {})
        self._gas_multiplier = float(blockchain_cfg.get("gas_multiplier", 1.15))
        self._gas_price_override: Optional[int] = None
        gas_price_setting = blockchain_cfg.get("gas_price")
        if gas_price_setting:
            try:
                self._gas_price_override = Web3.to_wei(Decimal(str(gas_price_setting)), "gwei")
            except (ArithmeticError, ValueError) as exc:
                logger.warning("Unable to parse gas price '%s': %s", gas_price_setting, exc)

    @property
    def account(self) -> Optional[str]:
        return self._account.address if self._account else None

    async def get_chain_id(self) -> int:
        return await self._client.get_chain_id()

    async def switch_chain(self, chain_id: int) -> None:
        # A key-only wallet cannot move its RPC; it can only confirm the
        # endpoint already serves the requested chain.
        actual = await self._client.get_chain_id()
        if actual != chain_id:
            raise NetworkSwitchError(
                f"RPC {self._client.rpc_url} serves chain {actual}; cannot switch to {chain_id}"
            )

    async def send_transaction(self, function_name: str, args: Sequence[Any], value: int = 0) -> str:
        if not self._account:
            raise WalletRejectedError("No signing key configured")

        contract = self._client.contract
        w3 = self._client.web3
        account = self._account

        def _send() -> str:
            tx_function = getattr(contract.functions, function_name)(*args)
            gas_estimate = tx_function.estimate_gas({"from": account.address, "value": value})
            gas_price = self._gas_price_override or w3.eth.gas_price
            txn = tx_function.build_transaction(
                {
                    "from": account.address,
                    "value": value,
                    "gas": int(gas_estimate * self._gas_multiplier),
                    "gasPrice": gas_price,
                    "nonce": w3.eth.get_transaction_count(account.address),
                    "chainId": self._client.chain_id,
                }
            )
            signed = account.sign_transaction(txn)
            raw = getattr(signed, "raw_transaction", None) or getattr(signed, "rawTransaction")
            return normalize_tx_hash(w3.eth.send_raw_transaction(raw))

        try:
            tx_hash = await asyncio.to_thread(_send)
        except WalletRejectedError:
            raise
        except Exception as exc:
            raise SubmissionError(f"{function_name} submission failed: {exc}") from exc
        logger.info("Sent transaction %s for %s", tx_hash, function_name)
        return tx_hash
