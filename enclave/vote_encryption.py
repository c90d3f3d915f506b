"""
=============================================================================
Vote Encryption (vote_encryption.py)
=============================================================================

Encrypts a vote's (price, salt) to the voter's own secp256k1 key so the
reveal can be reconstructed from chain if the local copy of the salt is lost.

Scheme (ECIES-style):
    shared  = ECDH(ephemeral_private, voter_public)
    key     = HKDF-SHA256(shared, info=b"vote encryption")
    blob    = ephemeral_public (65, uncompressed) || nonce (12) || AES-GCM(key, nonce, json)
"""

from __future__ import annotations

import json
import os
from typing import Tuple

from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

HKDF_INFO = b"vote encryption"
PUBKEY_LEN = 65
NONCE_LEN = 12


def _derive_key(shared_secret: bytes) -> bytes:
    return HKDF(algorithm=hashes.SHA256(), length=32, salt=None, info=HKDF_INFO).derive(shared_secret)


def load_public_key(public_key: bytes) -> ec.EllipticCurvePublicKey:
    """Load an uncompressed (0x04-prefixed) or compressed secp256k1 point."""
    if isinstance(public_key, str):
        clean = public_key[2:] if public_key.startswith("0x") else public_key
        public_key = bytes.fromhex(clean)
    if len(public_key) == 64:
        # Raw x||y as exported by many wallets
        public_key = b"\x04" + public_key
    return ec.EllipticCurvePublicKey.from_encoded_point(ec.SECP256K1(), public_key)


def public_key_from_private(private_key: bytes) -> bytes:
    """Return the uncompressed public key for a 32-byte private key."""
    key = ec.derive_private_key(int.from_bytes(private_key, "big"), ec.SECP256K1())
    return key.public_key().public_bytes(
        encoding=serialization.Encoding.X962,
        format=serialization.PublicFormat.UncompressedPoint,
    )


def encrypt_vote(scaled_price: int, salt: bytes, public_key: bytes) -> bytes:
    """Encrypt price and salt for the holder of ``public_key``."""
    recipient = load_public_key(public_key)
    ephemeral = ec.generate_private_key(ec.SECP256K1())
    key = _derive_key(ephemeral.exchange(ec.ECDH(), recipient))

    plaintext = json.dumps(
        {"price": str(scaled_price), "salt": "0x" + salt.hex()},
        sort_keys=True,
        separators=(",", ":"),
    ).encode("utf-8")
    nonce = os.urandom(NONCE_LEN)
    ciphertext = AESGCM(key).encrypt(nonce, plaintext, None)

    ephemeral_pub = ephemeral.public_key().public_bytes(
        encoding=serialization.Encoding.X962,
        format=serialization.PublicFormat.UncompressedPoint,
    )
    return ephemeral_pub + nonce + ciphertext


def decrypt_vote(blob: bytes, private_key: bytes) -> Tuple[int, bytes]:
    """
    Recover (scaled_price, salt) from an encrypted vote.

    Raises:
        ValueError: malformed blob.
        cryptography.exceptions.InvalidTag: wrong key or tampered ciphertext.
    """
    if len(blob) <= PUBKEY_LEN + NONCE_LEN:
        raise ValueError("encrypted vote too short")
    ephemeral_pub = load_public_key(blob[:PUBKEY_LEN])
    nonce = blob[PUBKEY_LEN:PUBKEY_LEN + NONCE_LEN]
    ciphertext = blob[PUBKEY_LEN + NONCE_LEN:]

    own = ec.derive_private_key(int.from_bytes(private_key, "big"), ec.SECP256K1())
    key = _derive_key(own.exchange(ec.ECDH(), ephemeral_pub))
    data = json.loads(AESGCM(key).decrypt(nonce, ciphertext, None))
    return int(data["price"]), bytes.fromhex(data["salt"][2:])
