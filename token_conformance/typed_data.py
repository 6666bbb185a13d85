"""
typed_data.py - Permit hashing and signing, built from raw bytes

Reproduces the structured-data (EIP-712) hash a ledger recomputes inside
permit(), without going through any ledger's own signing helpers:

    structHash   = keccak(PERMIT_TYPEHASH ‖ owner ‖ spender ‖ value ‖ nonce ‖ deadline)
    envelopeHash = keccak(0x19 0x01 ‖ domainSeparator ‖ structHash)

Every field occupies one 32-byte slot: addresses are left-padded with twelve
zero bytes, integers are big-endian, 32-byte tags are copied verbatim.
A wrong order, width or prefix yields a different digest, which a ledger
reports as an invalid signature.

All functions here are pure; nothing is cached between calls.
"""

from __future__ import annotations
from typing import Union

from eth_account import Account
from eth_keys import keys
from eth_keys.exceptions import BadSignature, ValidationError
from eth_utils import decode_hex, keccak

from .core import (
    PermitMessage, Signature, InvalidSignature,
    check_uint256, normalize_address,
)


# ============================================================================
# CONSTANTS
# ============================================================================

# secp256k1 group order
SECP256K1_N = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141

DOMAIN_TYPE = "EIP712Domain(string name,string version,uint256 chainId,address verifyingContract)"
PERMIT_TYPE = "Permit(address owner,address spender,uint256 value,uint256 nonce,uint256 deadline)"

DOMAIN_TYPEHASH = keccak(text=DOMAIN_TYPE)
PERMIT_TYPEHASH = keccak(text=PERMIT_TYPE)

# EIP-191 version byte 0x01: structured data
ENVELOPE_PREFIX = b"\x19\x01"

SLOT_SIZE = 32

PrivateKeyLike = Union[bytes, str]


# ============================================================================
# SLOT ENCODERS
# ============================================================================

def encode_address(address: str) -> bytes:
    """Encode an address as 12 zero bytes followed by its 20 raw bytes."""
    raw = decode_hex(normalize_address(address))
    return raw.rjust(SLOT_SIZE, b"\x00")


def encode_uint256(value: int) -> bytes:
    """Encode an unsigned integer as a 32-byte big-endian word."""
    check_uint256(value, "value")
    return value.to_bytes(SLOT_SIZE, "big")


def encode_bytes32(tag: bytes) -> bytes:
    """Pass a 32-byte tag through unchanged."""
    if not isinstance(tag, (bytes, bytearray)) or len(tag) != SLOT_SIZE:
        raise ValueError(f"Expected 32 bytes, got {tag!r}")
    return bytes(tag)


# ============================================================================
# HASHING
# ============================================================================

def domain_separator(name: str, version: str, chain_id: int, verifying_contract: str) -> bytes:
    """
    Hash binding signatures to one ledger on one chain.

    Dynamic strings (name, version) enter the encoding as their keccak hash.
    """
    return keccak(
        encode_bytes32(DOMAIN_TYPEHASH)
        + encode_bytes32(keccak(text=name))
        + encode_bytes32(keccak(text=version))
        + encode_uint256(chain_id)
        + encode_address(verifying_contract)
    )


def encode_permit(message: PermitMessage) -> bytes:
    """
    Pack a permit into its 192-byte struct encoding.

    Layout (byte offsets):
        0   PERMIT_TYPEHASH
        32  owner
        64  spender
        96  value
        128 nonce
        160 deadline
    """
    return (
        encode_bytes32(PERMIT_TYPEHASH)
        + encode_address(message.owner)
        + encode_address(message.spender)
        + encode_uint256(message.value)
        + encode_uint256(message.nonce)
        + encode_uint256(message.deadline)
    )


def struct_hash(message: PermitMessage) -> bytes:
    return keccak(encode_permit(message))


def envelope_hash(separator: bytes, message_hash: bytes) -> bytes:
    """Return keccak(0x1901 ‖ domainSeparator ‖ structHash)."""
    return keccak(ENVELOPE_PREFIX + encode_bytes32(separator) + encode_bytes32(message_hash))


def permit_digest(message: PermitMessage, separator: bytes) -> bytes:
    """The final 32-byte digest a permit signature must cover."""
    return envelope_hash(separator, struct_hash(message))


# ============================================================================
# SIGNING AND RECOVERY
# ============================================================================

def _key_bytes(private_key: PrivateKeyLike) -> bytes:
    if isinstance(private_key, str):
        private_key = decode_hex(private_key)
    if len(private_key) != 32:
        raise ValueError("Private key must be 32 bytes")
    return bytes(private_key)


def address_of(private_key: PrivateKeyLike) -> str:
    """Checksummed address controlled by a raw private key."""
    return Account.from_key(_key_bytes(private_key)).address


def sign_hash(digest: bytes, private_key: PrivateKeyLike) -> Signature:
    """
    Sign a 32-byte digest with deterministic (RFC 6979) secp256k1 ECDSA.

    The returned s is in the lower half of the curve order and v is 27 or 28,
    so the signer's public key can be recovered from (v, r, s) alone.
    """
    signed = keys.PrivateKey(_key_bytes(private_key)).sign_msg_hash(encode_bytes32(digest))
    return Signature(v=signed.v + 27, r=signed.r, s=signed.s)


def sign_permit(message: PermitMessage, separator: bytes, private_key: PrivateKeyLike) -> Signature:
    return sign_hash(permit_digest(message, separator), private_key)


def recover_signer(digest: bytes, signature: Signature) -> str:
    """
    Recover the address that produced signature over digest.

    Raises:
        InvalidSignature: If v is not 27/28, r or s is outside (0, n),
                          or no public key can be recovered.
    """
    v, r, s = signature.as_tuple()
    if v not in (27, 28):
        raise InvalidSignature(f"invalid recovery byte v={v}")
    if not (0 < r < SECP256K1_N and 0 < s < SECP256K1_N):
        raise InvalidSignature("signature scalar out of range")
    try:
        public_key = keys.Signature(vrs=(v - 27, r, s)).recover_public_key_from_msg_hash(
            encode_bytes32(digest)
        )
    except (BadSignature, ValidationError) as e:
        raise InvalidSignature(f"unrecoverable signature: {e}") from e
    return public_key.to_checksum_address()
