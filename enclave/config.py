"""
=============================================================================
Configuration (config.py)
=============================================================================

Centralized configuration for the vote committer.

Every value has a default suitable for local development and can be
overridden through an environment variable of the same name.  Ledger limits
(MAX_BATCH_SIZE) and the price precision (PRICE_DECIMALS) come from the
deployed Voting contract; set them to match it rather than editing code.
"""

from __future__ import annotations

import logging
import os
from typing import List

logger = logging.getLogger("vote-commit.config")

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ValueError(f"Invalid value for {name}: {raw!r}") from e


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ValueError(f"Invalid value for {name}: {raw!r}") from e


# =============================================================================
# Environment
# =============================================================================

IN_ENCLAVE = os.getenv("IN_ENCLAVE", "false").lower() == "true"

# =============================================================================
# Chain / contract config
# =============================================================================

# JSON-RPC endpoints - the first one is used unless RPC_URL is set.
RPC_URLS: List[str] = [
    u.strip()
    for u in os.getenv("RPC_URLS", "http://127.0.0.1:8545").split(",")
    if u.strip()
]
RPC_URL: str = os.getenv("RPC_URL", RPC_URLS[0] if RPC_URLS else "http://127.0.0.1:8545")

CHAIN_ID: int = _env_int("CHAIN_ID", 1)

# Deployed Voting contract (commit/reveal oracle)
VOTING_CONTRACT_ADDRESS: str = os.getenv("VOTING_CONTRACT_ADDRESS", ZERO_ADDRESS)

if VOTING_CONTRACT_ADDRESS == ZERO_ADDRESS:
    logger.warning("VOTING_CONTRACT_ADDRESS is not configured (using zero address). Contract calls will fail.")

# =============================================================================
# Commit parameters
# =============================================================================

# Ceiling on commitments per batchCommit transaction
MAX_BATCH_SIZE: int = _env_int("MAX_BATCH_SIZE", 25)

# Fixed-point decimals of prices bound into the vote hash
PRICE_DECIMALS: int = _env_int("PRICE_DECIMALS", 18)

# Width of the random salt (bytes); the contract reads it as int256
SALT_BYTES: int = 32

# =============================================================================
# Submission policy
# =============================================================================

# Seconds to wait for each batch's receipt before treating it as transient
BATCH_TIMEOUT_SECONDS: float = _env_float("BATCH_TIMEOUT_SECONDS", 120.0)

# Extra attempts after a transient failure (0 disables retries)
MAX_SUBMIT_RETRIES: int = _env_int("MAX_SUBMIT_RETRIES", 2)

# Base backoff; retry n waits RETRY_BACKOFF_SECONDS * 2**(n-1)
RETRY_BACKOFF_SECONDS: float = _env_float("RETRY_BACKOFF_SECONDS", 2.0)

# =============================================================================
# Keys
# =============================================================================

# Uncompressed secp256k1 public key (hex) used to encrypt votes for recovery.
# Empty disables vote encryption; only the hash goes on chain.
VOTE_ENCRYPTION_PUBLIC_KEY: str = os.getenv("VOTE_ENCRYPTION_PUBLIC_KEY", "")

# Development signer.  Ignored inside the enclave, where Odyn holds the key.
VOTER_PRIVATE_KEY: str = os.getenv("VOTER_PRIVATE_KEY", "")

if MAX_BATCH_SIZE <= 0:
    raise ValueError(f"MAX_BATCH_SIZE must be > 0 (got {MAX_BATCH_SIZE})")
if PRICE_DECIMALS < 0:
    raise ValueError(f"PRICE_DECIMALS must be >= 0 (got {PRICE_DECIMALS})")
if MAX_SUBMIT_RETRIES < 0:
    raise ValueError("MAX_SUBMIT_RETRIES must be >= 0")
