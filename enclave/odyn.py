"""
=============================================================================
Odyn Signer (odyn.py)
=============================================================================

Enclave-side voter identity.  The voter's private key never leaves the TEE;
this wrapper asks the Odyn API for the address, for secure random bytes
(vote salts) and for transaction signatures.

Available Methods:
    odyn.eth_address()         → Voter address held by the TEE
    odyn.get_random_bytes(n)   → n bytes from the hardware RNG
    odyn.sign_transaction(tx)  → Signed raw transaction (web3 tx dict in)

Environment:
    IN_ENCLAVE=true   → Uses localhost:18000 (production TEE)
    IN_ENCLAVE=false  → Uses the mock API (development)
"""

from __future__ import annotations

import os
from typing import Any, Optional

import requests
from web3 import Web3


class Odyn:
    """Wrapper for enclaver's Odyn API."""

    DEFAULT_MOCK_ODYN_API = "http://odyn.sparsity.cloud:18000"

    def __init__(self, endpoint: Optional[str] = None, timeout: int = 10):
        if endpoint:
            self.endpoint = endpoint
        else:
            is_enclave = os.getenv("IN_ENCLAVE", "False").lower() == "true"
            self.endpoint = "http://localhost:18000" if is_enclave else self.DEFAULT_MOCK_ODYN_API
        self.timeout = timeout

    def _call(self, method: str, path: str, payload: Any = None) -> Any:
        url = f"{self.endpoint}{path}"
        if method.upper() == "POST":
            res = requests.post(url, json=payload, timeout=self.timeout)
        else:
            res = requests.get(url, timeout=self.timeout)
        res.raise_for_status()
        return res.json()

    # =========================================================================
    # Identity & Signing
    # =========================================================================

    def eth_address(self) -> str:
        return Web3.to_checksum_address(self._call("GET", "/v1/eth/address")["address"])

    @staticmethod
    def tx_to_payload(tx: dict) -> dict:
        """Convert a web3.py transaction dict to the enclaver payload format."""
        return {
            "kind": "structured",
            "chain_id": hex(tx["chainId"]),
            "nonce": hex(tx["nonce"]),
            "max_priority_fee_per_gas": hex(tx["maxPriorityFeePerGas"]),
            "max_fee_per_gas": hex(tx["maxFeePerGas"]),
            "gas_limit": hex(tx["gas"]),
            "to": Web3.to_checksum_address(tx["to"]),
            "value": hex(tx.get("value", 0)),
            "data": tx["data"],
        }

    def sign_transaction(self, tx: dict) -> str:
        """Sign a web3.py transaction dict; returns the raw transaction hex."""
        res = self._call(
            "POST",
            "/v1/eth/sign-tx",
            {"payload": self.tx_to_payload(tx), "include_attestation": False},
        )
        return res["raw_transaction"]

    # =========================================================================
    # Randomness
    # =========================================================================

    def get_random_bytes(self, count: int = 32) -> bytes:
        """
        Get ``count`` random bytes from the hardware RNG (Nitro NSM).

        Usable directly as the commitment salt source.
        """
        out = b""
        while len(out) < count:
            random_hex = self._call("GET", "/v1/random")["random_bytes"]
            if random_hex.startswith("0x"):
                random_hex = random_hex[2:]
            out += bytes.fromhex(random_hex)
        return out[:count]
