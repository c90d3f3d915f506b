"""
=============================================================================
Voting Contract Wrapper (voting.py)
=============================================================================

Read-only oracle queries against the commit/reveal Voting contract, plus
calldata encoding for batchCommit.  Transaction signing and broadcast live
in ledger.py.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from web3 import Web3

from chain import Chain
from commitment import compute_topic_hash
from config import VOTING_CONTRACT_ADDRESS
from models import Commitment, PriceRequest, VotePhase

logger = logging.getLogger("vote-commit.voting")


# =============================================================================
# ABI Definition
# =============================================================================

_COMMITMENT_COMPONENTS = [
    {"internalType": "bytes32", "name": "identifier", "type": "bytes32"},
    {"internalType": "uint256", "name": "time", "type": "uint256"},
    {"internalType": "bytes32", "name": "hash", "type": "bytes32"},
    {"internalType": "bytes", "name": "encryptedVote", "type": "bytes"},
]

VOTING_ABI = [
    {
        "inputs": [],
        "name": "getPendingRequests",
        "outputs": [
            {
                "components": [
                    {"internalType": "bytes32", "name": "identifier", "type": "bytes32"},
                    {"internalType": "uint256", "name": "time", "type": "uint256"},
                ],
                "internalType": "struct PendingRequest[]",
                "name": "",
                "type": "tuple[]",
            }
        ],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "getCurrentRoundId",
        "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "getVotePhase",
        "outputs": [{"internalType": "enum VotePhase", "name": "", "type": "uint8"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [
            {"internalType": "address", "name": "recipient", "type": "address"},
            {"internalType": "bytes32", "name": "topicHash", "type": "bytes32"},
        ],
        "name": "getMessage",
        "outputs": [{"internalType": "bytes", "name": "", "type": "bytes"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [
            {
                "components": _COMMITMENT_COMPONENTS,
                "internalType": "struct Commitment[]",
                "name": "commits",
                "type": "tuple[]",
            }
        ],
        "name": "batchCommit",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
]


# =============================================================================
# Public API
# =============================================================================

class VotingContract:
    """Wrapper for the Voting contract's commit-phase surface."""

    def __init__(self, chain: Chain, address: Optional[str] = None):
        self.address = Web3.to_checksum_address(address or VOTING_CONTRACT_ADDRESS)
        self.chain = chain
        self.contract = chain.w3.eth.contract(address=self.address, abi=VOTING_ABI)

    # ------------------------------------------------------------------
    # Oracle queries
    # ------------------------------------------------------------------

    def get_current_round_id(self) -> int:
        return int(self.contract.functions.getCurrentRoundId().call())

    def get_vote_phase(self) -> VotePhase:
        return VotePhase(self.contract.functions.getVotePhase().call())

    def get_pending_requests(self, round_id: Optional[int] = None) -> List[PriceRequest]:
        """Pending requests, tagged with ``round_id`` (current round if None)."""
        if round_id is None:
            round_id = self.get_current_round_id()
        raw = self.contract.functions.getPendingRequests().call()
        return [PriceRequest(identifier=bytes(r[0]), timestamp=int(r[1]), round_id=round_id) for r in raw]

    def has_committed(self, voter: str, request: PriceRequest, round_id: int) -> bool:
        """True if the voter already persisted a vote for this request in the round."""
        topic = compute_topic_hash(request, round_id)
        message = self.contract.functions.getMessage(Web3.to_checksum_address(voter), topic).call()
        return len(message) > 0

    # ------------------------------------------------------------------
    # Encoding
    # ------------------------------------------------------------------

    def batch_commit_function(self, commitments: Sequence[Commitment]):
        return self.contract.functions.batchCommit([c.to_contract_struct() for c in commitments])
