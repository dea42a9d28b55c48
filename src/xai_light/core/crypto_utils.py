"""Signature and hashing capabilities for the verification core.

Validators sign with Ed25519 (the Tendermint default) or secp256k1 (the XAI
node curve, raw 64-byte x||y public keys with low-S signatures). Both the
verifier and the hasher are passed explicitly into the code that needs them.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Protocol

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)
from cryptography.hazmat.primitives.asymmetric.utils import (
    decode_dss_signature,
    encode_dss_signature,
)

from xai_light.core.serializers import base64_to_bytes, bytes_to_base64, require_field
from xai_light.core.lite_exceptions import DeserializationError

ED25519 = "ed25519"
SECP256K1 = "secp256k1"
ADDRESS_LENGTH = 20

_AMINO_KEY_TYPES = {
    "tendermint/PubKeyEd25519": ED25519,
    "tendermint/PubKeySecp256k1": SECP256K1,
}
_KEY_TYPE_NAMES = {algorithm: name for name, algorithm in _AMINO_KEY_TYPES.items()}

_CURVE = ec.SECP256K1()
_CURVE_ORDER = int("FFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141", 16)


class SignatureVerifier(Protocol):
    def verify(self, public_key: "PublicKey", message: bytes, signature: bytes) -> bool: ...


class Hasher(Protocol):
    def hash(self, data: bytes) -> bytes: ...


class Sha256Hasher:
    """SHA-256 digest, 32 bytes."""

    digest_size = 32

    def hash(self, data: bytes) -> bytes:
        return hashlib.sha256(data).digest()


@dataclass(frozen=True)
class PublicKey:
    """Validator public key tagged with its signature algorithm."""

    algorithm: str
    raw: bytes

    def __post_init__(self) -> None:
        if self.algorithm == ED25519 and len(self.raw) != 32:
            raise ValueError("Ed25519 public keys must be 32 bytes.")
        if self.algorithm == SECP256K1 and len(self.raw) != 64:
            raise ValueError("secp256k1 public keys must be 64 bytes (uncompressed without prefix).")
        if self.algorithm not in (ED25519, SECP256K1):
            raise ValueError(f"Unsupported key algorithm: {self.algorithm}")

    def to_dict(self) -> Dict[str, str]:
        return {"type": _KEY_TYPE_NAMES[self.algorithm], "value": bytes_to_base64(self.raw)}

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "PublicKey":
        key_type = require_field(payload, "type")
        algorithm = _AMINO_KEY_TYPES.get(key_type)
        if algorithm is None:
            raise DeserializationError(f"Unsupported public key type: {key_type}", field="pub_key")
        raw = base64_to_bytes(require_field(payload, "value"), "pub_key")
        try:
            return cls(algorithm, raw)
        except ValueError as exc:
            raise DeserializationError(str(exc), field="pub_key") from exc


def address_from_public_key(public_key: PublicKey, hasher: Hasher | None = None) -> bytes:
    """Fixed-width validator address: the first 20 bytes of hash(raw key)."""
    hasher = hasher or Sha256Hasher()
    return hasher.hash(public_key.raw)[:ADDRESS_LENGTH]


class DefaultSignatureVerifier:
    """Stateless, reentrant verifier dispatching on the key algorithm.

    Malformed key material or signatures verify as False instead of raising.
    """

    def verify(self, public_key: PublicKey, message: bytes, signature: bytes) -> bool:
        if public_key.algorithm == ED25519:
            return verify_ed25519(public_key.raw, message, signature)
        if public_key.algorithm == SECP256K1:
            return verify_signature_hex(public_key.raw.hex(), message, signature.hex())
        return False


# ==================== Ed25519 ====================


def generate_ed25519_keypair() -> tuple[Ed25519PrivateKey, PublicKey]:
    private_key = Ed25519PrivateKey.generate()
    raw = private_key.public_key().public_bytes(
        serialization.Encoding.Raw, serialization.PublicFormat.Raw
    )
    return private_key, PublicKey(ED25519, raw)


def ed25519_keypair_from_seed(seed: bytes) -> tuple[Ed25519PrivateKey, PublicKey]:
    private_key = Ed25519PrivateKey.from_private_bytes(seed.ljust(32, b"\x00")[:32])
    raw = private_key.public_key().public_bytes(
        serialization.Encoding.Raw, serialization.PublicFormat.Raw
    )
    return private_key, PublicKey(ED25519, raw)


def sign_ed25519(private_key: Ed25519PrivateKey, message: bytes) -> bytes:
    return private_key.sign(message)


def verify_ed25519(public_raw: bytes, message: bytes, signature: bytes) -> bool:
    if len(signature) != 64:
        return False
    try:
        Ed25519PublicKey.from_public_bytes(public_raw).verify(signature, message)
        return True
    except (InvalidSignature, ValueError):
        return False


# ==================== secp256k1 ====================


def _normalize_private_value(value: int) -> int:
    normalized = value % _CURVE_ORDER
    if normalized == 0:
        normalized = 1
    return normalized


def _private_key_to_hex(private_key: ec.EllipticCurvePrivateKey) -> str:
    return private_key.private_numbers().private_value.to_bytes(32, "big").hex()


def _public_key_to_hex(public_key: ec.EllipticCurvePublicKey) -> str:
    numbers = public_key.public_numbers()
    return (numbers.x.to_bytes(32, "big") + numbers.y.to_bytes(32, "big")).hex()


def load_private_key_from_hex(private_hex: str) -> ec.EllipticCurvePrivateKey:
    return ec.derive_private_key(_normalize_private_value(int(private_hex, 16)), _CURVE)


def load_public_key_from_hex(public_hex: str) -> ec.EllipticCurvePublicKey:
    raw = bytes.fromhex(public_hex)
    if len(raw) != 64:
        raise ValueError("Public key hex must be 64 bytes (uncompressed without prefix).")
    return ec.EllipticCurvePublicKey.from_encoded_point(_CURVE, b"\x04" + raw)


def generate_secp256k1_keypair_hex() -> tuple[str, str]:
    private_key = ec.generate_private_key(_CURVE)
    return _private_key_to_hex(private_key), _public_key_to_hex(private_key.public_key())


def is_canonical_signature(r: int, s: int) -> bool:
    """True if both components are in range and s is in low-S form."""
    if not (1 <= r < _CURVE_ORDER) or not (1 <= s < _CURVE_ORDER):
        return False
    return s <= _CURVE_ORDER // 2


def sign_message_hex(private_hex: str, message: bytes) -> str:
    private_key = load_private_key_from_hex(private_hex)
    der_signature = private_key.sign(message, ec.ECDSA(hashes.SHA256()))
    r, s = decode_dss_signature(der_signature)
    if s > _CURVE_ORDER // 2:
        s = _CURVE_ORDER - s
    return (r.to_bytes(32, "big") + s.to_bytes(32, "big")).hex()


def verify_signature_hex(public_hex: str, message: bytes, signature_hex: str) -> bool:
    try:
        public_key = load_public_key_from_hex(public_hex)
        raw_signature = bytes.fromhex(signature_hex)
    except ValueError:
        return False
    if len(raw_signature) != 64:
        return False
    r = int.from_bytes(raw_signature[:32], "big")
    s = int.from_bytes(raw_signature[32:], "big")
    if not is_canonical_signature(r, s):
        return False
    try:
        public_key.verify(encode_dss_signature(r, s), message, ec.ECDSA(hashes.SHA256()))
        return True
    except InvalidSignature:
        return False
