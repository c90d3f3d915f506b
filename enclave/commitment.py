"""
=============================================================================
Commitment Construction (commitment.py)
=============================================================================

Builds hash-committed votes for the Voting contract.

    voteHash = keccak256(abi.encodePacked(
        int256 price, int256 salt, address voter,
        uint256 time, uint256 roundId, bytes32 identifier
    ))

The encoding is fixed by the on-chain verifier: the reveal transaction
recomputes exactly this hash from (price, salt) and the sender address.

The salt is 32 bytes from a cryptographically secure source, drawn fresh on
every call.  It is read as a two's-complement int256 so its packed encoding
is the raw salt bytes.
"""

from __future__ import annotations

import logging
import math
import secrets
from decimal import Decimal, DecimalException
from typing import Any, Callable, Optional

from eth_abi.packed import encode_packed
from eth_hash.auto import keccak
from eth_utils import to_checksum_address

import config
from errors import InvalidPriceError
from models import Commitment, PriceRequest
from vote_encryption import encrypt_vote

logger = logging.getLogger("vote-commit.commitment")

INT256_MAX = 2**255 - 1
INT256_DIGITS = len(str(INT256_MAX))

VOTE_HASH_TYPES = ["int256", "int256", "address", "uint256", "uint256", "bytes32"]
TOPIC_HASH_TYPES = ["bytes32", "uint256", "uint256"]

SaltSource = Callable[[int], bytes]


def default_salt_source(count: int) -> bytes:
    return secrets.token_bytes(count)


# =============================================================================
# Price handling
# =============================================================================

def scale_price(price: Any, decimals: int = config.PRICE_DECIMALS) -> int:
    """
    Convert a human price to the contract's fixed-point integer.

    Raises:
        InvalidPriceError: negative, non-finite, bool, too precise, or too large.
    """
    value = to_decimal(price)
    # Integer arithmetic on the digits: decimal contexts round and overflow
    _, digits, exponent = value.as_tuple()
    coefficient = "".join(map(str, digits)).lstrip("0")
    if not coefficient:
        return 0
    significant = coefficient.rstrip("0")
    exponent += decimals + len(coefficient) - len(significant)
    if exponent < 0:
        raise InvalidPriceError(price, f"more than {decimals} decimal places")
    if len(significant) + exponent > INT256_DIGITS:
        raise InvalidPriceError(price, "price does not fit in int256")
    scaled = int(significant) * 10**exponent
    if scaled > INT256_MAX:
        raise InvalidPriceError(price, "price does not fit in int256")
    return scaled


def to_decimal(price: Any) -> Decimal:
    if isinstance(price, bool) or price is None:
        raise InvalidPriceError(price, "price must be a number")
    if isinstance(price, float) and not math.isfinite(price):
        raise InvalidPriceError(price, "price must be finite")
    try:
        value = Decimal(repr(price)) if isinstance(price, float) else Decimal(price)
    except (DecimalException, TypeError, ValueError) as e:
        raise InvalidPriceError(price, "price must be a number") from e

    if not value.is_finite():
        raise InvalidPriceError(price, "price must be finite")
    if value < 0:
        raise InvalidPriceError(price, "price must be >= 0")
    return value


# =============================================================================
# Hashing
# =============================================================================

def compute_vote_hash(
    *,
    scaled_price: int,
    salt: bytes,
    voter: str,
    timestamp: int,
    round_id: int,
    identifier: bytes,
) -> bytes:
    """Return the 32-byte vote hash the contract verifies at reveal time."""
    salt_int = int.from_bytes(salt, "big", signed=True)
    packed = encode_packed(
        VOTE_HASH_TYPES,
        [scaled_price, salt_int, to_checksum_address(voter), timestamp, round_id, identifier],
    )
    return keccak(packed)


def compute_topic_hash(request: PriceRequest, round_id: int) -> bytes:
    """Key under which the contract stores a voter's encrypted vote."""
    return keccak(encode_packed(TOPIC_HASH_TYPES, [request.identifier, request.timestamp, round_id]))


def verify_commitment(commitment: Commitment) -> bool:
    """Recompute the hash from the commitment's fields."""
    return compute_vote_hash(
        scaled_price=commitment.scaled_price,
        salt=commitment.salt,
        voter=commitment.voter,
        timestamp=commitment.request.timestamp,
        round_id=commitment.round_id,
        identifier=commitment.request.identifier,
    ) == commitment.hash


# =============================================================================
# Construction
# =============================================================================

def construct_commitment(
    request: PriceRequest,
    round_id: int,
    price: Any,
    voter: str,
    *,
    salt_source: Optional[SaltSource] = None,
    price_decimals: int = config.PRICE_DECIMALS,
    encryption_key: Optional[bytes] = None,
) -> Commitment:
    """
    Build a commitment for one request.

    Args:
        request: The price request being voted on.
        round_id: Current voting round.
        price: Human-readable price (int, str, Decimal or float).
        voter: Address that will send the commit transaction.
        salt_source: callable(n) -> n secure random bytes.  Called once per
            commitment; defaults to secrets.token_bytes.
        price_decimals: Fixed-point precision of the Voting contract.
        encryption_key: Voter's uncompressed secp256k1 public key.  When set,
            price and salt are also encrypted into encrypted_vote.

    Raises:
        InvalidPriceError: the price cannot be committed.
    """
    value = to_decimal(price)
    scaled_price = scale_price(value, price_decimals)
    voter = to_checksum_address(voter)

    source = salt_source or default_salt_source
    salt = bytes(source(config.SALT_BYTES))
    if len(salt) != config.SALT_BYTES:
        raise ValueError(f"salt source returned {len(salt)} bytes, expected {config.SALT_BYTES}")

    vote_hash = compute_vote_hash(
        scaled_price=scaled_price,
        salt=salt,
        voter=voter,
        timestamp=request.timestamp,
        round_id=round_id,
        identifier=request.identifier,
    )

    encrypted = b""
    if encryption_key:
        encrypted = encrypt_vote(scaled_price, salt, encryption_key)

    logger.debug(f"Committed {request!r} round={round_id} hash=0x{vote_hash.hex()}")
    return Commitment(
        request=request,
        round_id=round_id,
        voter=voter,
        price=value,
        scaled_price=scaled_price,
        salt=salt,
        hash=vote_hash,
        encrypted_vote=encrypted,
    )
