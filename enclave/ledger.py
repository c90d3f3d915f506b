"""
=============================================================================
Ledger Submission (ledger.py)
=============================================================================

Sends one batchCommit transaction per batch and waits for its receipt.

Failures are classified for the batch engine:
    - network errors, receipt timeouts  → TransientSubmissionError
    - reverts, RPC rejections           → RejectedSubmissionError

A batch retried after a transient failure rebroadcasts the transaction it
signed the first time (same nonce, same hash) instead of signing a new one,
so a slow confirmation can never turn into two commits or a nonce gap.
"""

from __future__ import annotations

import logging
from typing import Dict, Optional, Sequence, Tuple

import requests
from web3 import Web3
from web3.exceptions import ContractLogicError, TimeExhausted, Web3RPCError

import config
from chain import Chain
from errors import RejectedSubmissionError, TransientSubmissionError
from models import Commitment
from voting import VotingContract

logger = logging.getLogger("vote-commit.ledger")

TRANSIENT_ERRORS = (
    requests.exceptions.ConnectionError,
    requests.exceptions.Timeout,
    ConnectionError,
    TimeoutError,
)

_DUPLICATE_MARKERS = ("already known", "nonce too low", "underpriced")


class VotingLedger:
    """Ledger submission client for the Voting contract."""

    def __init__(
        self,
        voting: VotingContract,
        signer,
        *,
        max_batch_size: int = config.MAX_BATCH_SIZE,
        chain_id: int = config.CHAIN_ID,
        gas_buffer: float = 1.2,
    ):
        self.voting = voting
        self.chain: Chain = voting.chain
        self.signer = signer
        self.max_batch_size = max_batch_size
        self.chain_id = chain_id
        self.gas_buffer = gas_buffer
        # batch key -> (signed raw tx, tx hash) of the first broadcast
        self._in_flight: Dict[Tuple[bytes, ...], Tuple[object, str]] = {}
        self._signer_address: Optional[str] = None

    @property
    def signer_address(self) -> str:
        if self._signer_address is None:
            self._signer_address = Web3.to_checksum_address(self.signer.eth_address())
        return self._signer_address

    # ------------------------------------------------------------------
    # Transaction building
    # ------------------------------------------------------------------

    def build_transaction(self, commitments: Sequence[Commitment], voter: str) -> dict:
        fn = self.voting.batch_commit_function(commitments)
        gas = int(fn.estimate_gas({"from": voter}) * self.gas_buffer)
        priority_fee, max_fee = self.chain.estimate_fees()
        return fn.build_transaction({
            "from": voter,
            "nonce": self.chain.get_nonce(voter),
            "gas": gas,
            "maxPriorityFeePerGas": priority_fee,
            "maxFeePerGas": max_fee,
            "chainId": self.chain_id,
        })

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def submit_batch(self, commitments: Sequence[Commitment], voter: str, timeout: Optional[float]) -> str:
        """Commit one batch; returns the confirmed transaction hash."""
        voter = Web3.to_checksum_address(voter)
        if voter != self.signer_address:
            raise RejectedSubmissionError(f"signer {self.signer_address} cannot commit for voter {voter}")
        if any(c.voter != voter for c in commitments):
            raise RejectedSubmissionError("batch contains commitments bound to a different voter")

        key = tuple(c.hash for c in commitments)
        tx_hash: Optional[str] = None
        try:
            tx_hash = self._broadcast(key, commitments, voter)
            receipt = self.chain.wait_for_receipt(tx_hash, timeout)
        except TimeExhausted as e:
            raise TransientSubmissionError(f"no receipt within {timeout}s", tx_hash=tx_hash) from e
        except TRANSIENT_ERRORS as e:
            raise TransientSubmissionError(f"network error: {e}", tx_hash=tx_hash) from e
        except ContractLogicError as e:
            self._in_flight.pop(key, None)
            raise RejectedSubmissionError(f"batchCommit would revert: {e}", tx_hash=tx_hash) from e
        except Web3RPCError as e:
            self._in_flight.pop(key, None)
            raise RejectedSubmissionError(f"rejected by node: {e}", tx_hash=tx_hash) from e

        return self._finalize(key, tx_hash, receipt)

    def _broadcast(self, key: Tuple[bytes, ...], commitments: Sequence[Commitment], voter: str) -> str:
        previous = self._in_flight.get(key)
        if previous is None:
            # Batches are serial: a new key means the engine gave up on any earlier one
            self._in_flight.clear()
            tx = self.build_transaction(commitments, voter)
            raw = self.signer.sign_transaction(tx)
            tx_hash = self.chain.send_raw_transaction(raw)
            self._in_flight[key] = (raw, tx_hash)
            logger.info(f"Broadcast batchCommit of {len(commitments)} vote(s): {tx_hash} (nonce {tx['nonce']})")
            return tx_hash

        raw, tx_hash = previous
        if self.chain.get_receipt(tx_hash) is not None:
            return tx_hash
        try:
            self.chain.send_raw_transaction(raw)
            logger.info(f"Rebroadcast batchCommit {tx_hash}")
        except Web3RPCError as e:
            if not any(m in str(e).lower() for m in _DUPLICATE_MARKERS):
                raise
            logger.info(f"Earlier broadcast {tx_hash} still known to the node ({e})")
        return tx_hash

    def _finalize(self, key: Tuple[bytes, ...], tx_hash: str, receipt) -> str:
        self._in_flight.pop(key, None)
        if receipt["status"] != 1:
            raise RejectedSubmissionError("batchCommit reverted", tx_hash=tx_hash)
        logger.info(f"batchCommit {tx_hash} mined in block {receipt['blockNumber']} (gas {receipt['gasUsed']})")
        return tx_hash
