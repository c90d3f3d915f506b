"""
=============================================================================
Blockchain Interaction (chain.py)
=============================================================================

Thin RPC helper around web3.py: connection readiness, nonces, EIP-1559 fee
estimation, broadcast and receipt waiting.
"""

from __future__ import annotations

import logging
import os
import time
from typing import Optional, Tuple

from web3 import Web3
from web3.exceptions import TransactionNotFound

from config import RPC_URL

logger = logging.getLogger("vote-commit.chain")


class Chain:
    """Low-level RPC helper.  Auto-selects Helios inside the enclave."""

    DEFAULT_HELIOS_RPC = "http://127.0.0.1:8545"

    def __init__(self, rpc_url: Optional[str] = None, w3: Optional[Web3] = None):
        if w3 is not None:
            self.w3 = w3
            self.endpoint = rpc_url or ""
            return
        if rpc_url:
            self.endpoint = rpc_url
        else:
            is_enclave = os.getenv("IN_ENCLAVE", "False").lower() == "true"
            self.endpoint = self.DEFAULT_HELIOS_RPC if is_enclave else RPC_URL
        self.w3 = Web3(Web3.HTTPProvider(self.endpoint))

    # ------------------------------------------------------------------
    # Readiness
    # ------------------------------------------------------------------

    def wait_for_rpc(self, timeout: int = 300) -> bool:
        """Block until the RPC node is connected and not syncing."""
        start = time.time()
        while time.time() - start < timeout:
            try:
                if self.w3.is_connected() and not self.w3.eth.syncing:
                    logger.info(f"RPC ready at block {self.w3.eth.block_number}")
                    return True
                logger.info(f"Waiting for RPC at {self.endpoint}...")
            except Exception as e:
                logger.debug(f"RPC not ready: {e}")
            time.sleep(5)
        raise TimeoutError(f"RPC {self.endpoint} failed to connect in time")

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def get_nonce(self, address: str) -> int:
        return self.w3.eth.get_transaction_count(Web3.to_checksum_address(address), "pending")

    def estimate_fees(self) -> Tuple[int, int]:
        """Return (max_priority_fee, max_fee) for an EIP-1559 transaction."""
        try:
            priority_fee = self.w3.eth.max_priority_fee
        except Exception:
            priority_fee = self.w3.to_wei(1, "gwei")
        base_fee = self.w3.eth.get_block("latest")["baseFeePerGas"]
        # Max fee = (2 * base fee) + priority fee
        return priority_fee, base_fee * 2 + priority_fee

    def send_raw_transaction(self, signed) -> str:
        tx_hash = self.w3.eth.send_raw_transaction(signed)
        return Web3.to_hex(tx_hash)

    def wait_for_receipt(self, tx_hash: str, timeout: Optional[float] = 120):
        """Wait for inclusion; raises web3.exceptions.TimeExhausted on timeout."""
        return self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=timeout or 120)

    def get_receipt(self, tx_hash: str):
        """Receipt if the transaction is mined, else None."""
        try:
            return self.w3.eth.get_transaction_receipt(tx_hash)
        except TransactionNotFound:
            return None
