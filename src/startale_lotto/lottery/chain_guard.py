"""Network gate run before any operation reaches the wallet."""

from __future__ import annotations

from startale_lotto.blockchain.wallet import WalletProvider
from startale_lotto.utils.logger import get_logger

logger = get_logger(__name__)


class ChainGuard:
    """Ensures the wallet is on the target chain, requesting a switch if not."""

    def __init__(self, wallet: WalletProvider, target_chain_id: int) -> None:
        self._wallet = wallet
        self.target_chain_id = int(target_chain_id)

    async def ensure_network(self) -> bool:
        try:
            current = await self._wallet.get_chain_id()
        except Exception as exc:
            logger.warning("Could not read wallet chain id: %s", exc)
            return False

        if current == self.target_chain_id:
            return True

        logger.info("Wallet on chain %s, requesting switch to %s", current, self.target_chain_id)
        try:
            await self._wallet.switch_chain(self.target_chain_id)
        except Exception as exc:
            logger.warning("Network switch to %s failed: %s", self.target_chain_id, exc)
            return False
        return True
