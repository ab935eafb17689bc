"""
EOS keys, signatures and token transfer actions.
"""
from dataclasses import dataclass
from typing import Any, Dict, Union
import hashlib
import logging

import base58
import ecdsa
from Crypto.Hash import RIPEMD160
from ecdsa.rfc6979 import generate_k
from ecdsa.util import sigdecode_string, sigencode_strings_canonize

from errors import ConfigurationError

EOS_QUANTITY_PRECISION = 4
EOS_TOKEN_CONTRACT = "eosio.token"

EOS_API_ENDPOINTS = [
    "http://api.main.alohaeos.com",
    "http://eos.eoscafeblock.com",
    "http://eos.infstones.io",
    "http://peer1.eoshuobipool.com:8181",
    "http://peer2.eoshuobipool.com:8181",
    "https://api.main.alohaeos.com",
    "https://api.redpacketeos.com",
    "https://api.zbeos.com",
    "https://bp.whaleex.com",
    "https://eos.eoscafeblock.com",
    "https://eos.infstones.io",
    "https://node.betdice.one",
    "https://node1.zbeos.com",
]


def _ripemd160(data: bytes) -> bytes:
    return RIPEMD160.new(data).digest()


def _sha256(data: bytes) -> bytes:
    return hashlib.sha256(data).digest()


class EosPrivateKey:
    """
    secp256k1 private key in EOS encodings.

    Accepts legacy WIF ("5...") and "PVT_K1_..." strings.
    """

    def __init__(self, secret: bytes):
        if len(secret) != 32:
            raise ConfigurationError("EOS private key must be 32 bytes")
        self._signing_key = ecdsa.SigningKey.from_string(secret, curve=ecdsa.SECP256k1)

    @classmethod
    def from_string(cls, key: str) -> "EosPrivateKey":
        """
        Parse a WIF or PVT_K1_ private key.

        Raises:
            ConfigurationError: If the key is malformed or its checksum is wrong
        """
        try:
            if key.startswith("PVT_K1_"):
                raw = base58.b58decode(key[len("PVT_K1_"):])
                secret, checksum = raw[:-4], raw[-4:]
                if _ripemd160(secret + b"K1")[:4] != checksum:
                    raise ConfigurationError("Invalid EOS private key checksum")
                return cls(secret)

            raw = base58.b58decode(key)
            payload, checksum = raw[:-4], raw[-4:]
            if _sha256(_sha256(payload))[:4] != checksum:
                raise ConfigurationError("Invalid EOS private key checksum")
            if payload[0] != 0x80:
                raise ConfigurationError("Invalid EOS private key version")
            return cls(payload[1:])
        except ValueError as e:
            raise ConfigurationError(f"Invalid EOS private key: {e}")

    def public_key(self) -> str:
        """Return the legacy "EOS..." public key string."""
        compressed = self._signing_key.get_verifying_key().to_string("compressed")
        return "EOS" + base58.b58encode(compressed + _ripemd160(compressed)[:4]).decode("ascii")

    def sign_hash(self, digest: bytes) -> str:
        """
        Sign a 32-byte digest and return a "SIG_K1_..." signature.

        Signatures are deterministic (RFC 6979) and canonical: when r or s
        does not encode to exactly 32 DER bytes, k is derived again from
        sha256(digest + nonce zero bytes) with an increasing nonce.

        Args:
            digest: SHA-256 digest to sign

        Returns:
            Recoverable signature in EOS string format
        """
        if len(digest) != 32:
            raise ValueError("digest must be 32 bytes")

        curve = ecdsa.SECP256k1
        secexp = self._signing_key.privkey.secret_multiplier
        verifying_key = self._signing_key.get_verifying_key()

        nonce = 0
        while True:
            k_input = digest if nonce == 0 else _sha256(digest + bytes(nonce))
            k = generate_k(curve.order, secexp, hashlib.sha256, k_input)
            r, s = self._signing_key.sign_digest(digest, sigencode=sigencode_strings_canonize, k=k)
            nonce += 1
            if 0 < r[0] < 0x80 and 0 < s[0] < 0x80:
                break

        signature = r + s
        candidates = ecdsa.VerifyingKey.from_public_key_recovery_with_digest(
            signature, digest, curve, hashfunc=hashlib.sha256, sigdecode=sigdecode_string
        )
        recovery = next(i for i, vk in enumerate(candidates) if vk.to_string() == verifying_key.to_string())

        data = bytes([recovery + 4 + 27]) + signature
        checksum = _ripemd160(data + b"K1")[:4]
        logging.debug(f"Signed digest {digest.hex()[:16]}... after {nonce} attempt(s)")
        return "SIG_K1_" + base58.b58encode(data + checksum).decode("ascii")

    def sign(self, data: Union[str, bytes]) -> str:
        """Sign sha256(data)."""
        if isinstance(data, str):
            data = data.encode("utf-8")
        return self.sign_hash(_sha256(data))


@dataclass(frozen=True)
class TransferAction:
    """
    One token transfer, the unit a DEX order is settled with.

    Attributes:
        contract: Token contract (e.g. "eosio.token")
        sender: Source account, also the signing actor
        recipient: Destination account (the venue's custodial contract)
        symbol: Token symbol (e.g. "EOS")
        quantity: Amount formatted with the token's exact precision
        memo: Trading instruction understood by the venue
    """
    contract: str
    sender: str
    recipient: str
    symbol: str
    quantity: str
    memo: str
    permission: str = "active"

    def to_action(self) -> Dict[str, Any]:
        return {
            "account": self.contract,
            "name": "transfer",
            "authorization": [{"actor": self.sender, "permission": self.permission}],
            "data": {
                "from": self.sender,
                "to": self.recipient,
                "quantity": f"{self.quantity} {self.symbol}",
                "memo": self.memo,
            },
        }


def create_transfer_action(
    sender: str,
    recipient: str,
    symbol: str,
    quantity: str,
    memo: str = "",
    contract: str = EOS_TOKEN_CONTRACT
) -> TransferAction:
    """Build a token transfer action."""
    return TransferAction(
        contract=contract,
        sender=sender,
        recipient=recipient,
        symbol=symbol,
        quantity=quantity,
        memo=memo,
    )
