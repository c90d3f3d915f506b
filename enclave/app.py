"""
=============================================================================
Vote Committer Service (app.py)
=============================================================================

HTTP surface over the commit pipeline.  No prompting and no console output:
callers (a UI, a bot) choose requests and prices and render the result.

    GET  /health             → liveness
    GET  /status             → voter, contract, round, phase
    GET  /requests/eligible  → requests still open for a commit this round
    POST /votes/commit       → construct + batch-commit votes
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, List, Optional

import uvicorn
from fastapi import Depends, FastAPI, HTTPException
from pydantic import BaseModel

import config
from chain import Chain
from commit_votes import commit_votes, eligible_requests
from errors import EligibilityError
from ledger import VotingLedger
from local_signer import LocalSigner
from models import PriceRequest, identifier_from_symbol, pad_identifier
from odyn import Odyn
from vote_encryption import load_public_key
from voting import VotingContract

# =============================================================================
# Logging Configuration
# =============================================================================
logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")
logger = logging.getLogger("vote-commit")

app = FastAPI(
    title="Oracle Vote Committer",
    description="Commit-phase vote construction and batched submission",
    version="1.0.0",
)


# =============================================================================
# Service wiring
# =============================================================================

class VoteCommitService:
    """Bundles the oracle, ledger and voter identity for one process."""

    def __init__(self, voting, ledger, voter: str, *, salt_source=None, encryption_key: Optional[bytes] = None):
        self.voting = voting
        self.ledger = ledger
        self.voter = voter
        self.salt_source = salt_source
        self.encryption_key = encryption_key


def build_service() -> VoteCommitService:
    chain = Chain()
    try:
        # In the TEE the RPC node starts alongside the app
        chain.wait_for_rpc(timeout=120)
    except TimeoutError as e:
        logger.error(f"RPC not ready, continuing degraded: {e}")
    voting = VotingContract(chain)
    if config.IN_ENCLAVE or not config.VOTER_PRIVATE_KEY:
        signer = Odyn()
    else:
        signer = LocalSigner(config.VOTER_PRIVATE_KEY)
    ledger = VotingLedger(voting, signer)

    encryption_key = None
    if config.VOTE_ENCRYPTION_PUBLIC_KEY:
        # Fail at startup rather than on the first commit
        load_public_key(config.VOTE_ENCRYPTION_PUBLIC_KEY)
        encryption_key = config.VOTE_ENCRYPTION_PUBLIC_KEY

    voter = ledger.signer_address
    logger.info(f"Voter {voter} on contract {voting.address}")
    return VoteCommitService(voting, ledger, voter, salt_source=signer.get_random_bytes, encryption_key=encryption_key)


_service: Optional[VoteCommitService] = None


def get_service() -> VoteCommitService:
    global _service
    if _service is None:
        _service = build_service()
    return _service


# =============================================================================
# Models
# =============================================================================

class VoteIn(BaseModel):
    identifier: str  # symbol ("BTCUSD") or 0x-prefixed bytes32
    time: int
    price: Decimal


class CommitRequest(BaseModel):
    votes: List[VoteIn]


class StatusOut(BaseModel):
    status: str
    voter: Optional[str] = None
    contract_address: Optional[str] = None
    round_id: Optional[int] = None
    phase: Optional[str] = None


def _parse_identifier(identifier: str) -> bytes:
    try:
        if identifier.startswith("0x"):
            return pad_identifier(bytes.fromhex(identifier[2:]))
        return identifier_from_symbol(identifier)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=f"Invalid identifier {identifier!r}: {e}")


def _request_out(request: PriceRequest) -> dict:
    return {
        "identifier": request.symbol,
        "identifier_hex": "0x" + request.identifier.hex(),
        "time": request.timestamp,
    }


# =============================================================================
# Endpoints
# =============================================================================

@app.get("/health")
def health_check():
    return {"status": "healthy"}


@app.get("/status", response_model=StatusOut)
def get_status(service: VoteCommitService = Depends(get_service)):
    try:
        return StatusOut(
            status="running",
            voter=service.voter,
            contract_address=service.voting.address,
            round_id=service.voting.get_current_round_id(),
            phase=service.voting.get_vote_phase().name,
        )
    except Exception as e:
        logger.warning(f"Status check degraded: {e}")
        return StatusOut(status=f"degraded: {e}", voter=service.voter)


@app.get("/requests/eligible")
def list_eligible(service: VoteCommitService = Depends(get_service)):
    result = eligible_requests(service.voting, service.voter)
    return {
        "round_id": result.round_id,
        "phase": result.phase.name,
        "accepting_commits": result.accepting_commits,
        "requests": [_request_out(r) for r in result.requests],
    }


@app.post("/votes/commit")
def commit(body: CommitRequest, service: VoteCommitService = Depends(get_service)) -> Any:
    prices = {}
    for vote in body.votes:
        identifier = _parse_identifier(vote.identifier)
        if vote.time < 0:
            raise HTTPException(status_code=422, detail=f"Invalid time {vote.time}")
        prices[PriceRequest(identifier=identifier, timestamp=vote.time)] = vote.price

    try:
        report = commit_votes(
            service.voting,
            service.ledger,
            service.voter,
            prices,
            salt_source=service.salt_source,
            encryption_key=service.encryption_key,
        )
    except EligibilityError as e:
        raise HTTPException(status_code=409, detail=str(e))

    out = report.batch_result.to_dict()
    out.update({
        "round_id": report.round_id,
        "committed": len(report.successes),
        "failed": len(report.submission_failures),
        "construction_failures": [
            {**_request_out(f.request), "price": str(f.price), "error": str(f.error)}
            for f in report.construction_failures
        ],
    })
    return out


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
