"""
Hash, symmetric-cipher and key-agreement helpers shared by the key and codec layers.
"""

import hashlib
import hmac
import os

from Crypto.Cipher import AES
from coincurve import PublicKey

from .config import IV_LENGTH
from .errors import InvalidLengthError

GCM_TAG_LENGTH = 16


def hmac_sha512(key: bytes, data: bytes) -> bytes:
    return hmac.new(key, data, hashlib.sha512).digest()


def hmac_sha256(key: bytes, data: bytes) -> bytes:
    return hmac.new(key, data, hashlib.sha256).digest()


def sha256(data) -> bytes:
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.sha256(data).digest()


def double_sha256(data: bytes) -> bytes:
    return sha256(sha256(data))


def _ripemd160(data: bytes) -> bytes:
    """RIPEMD160 with multiple fallbacks for different environments."""
    try:
        return hashlib.new("ripemd160", data).digest()
    except (ValueError, TypeError):
        pass
    try:
        return hashlib.new("ripemd160", data, usedforsecurity=False).digest()
    except (ValueError, TypeError):
        pass
    from Crypto.Hash import RIPEMD160
    return RIPEMD160.new(data).digest()


def hash160(data: bytes) -> bytes:
    return _ripemd160(hashlib.sha256(data).digest())


def random_bytes(length: int) -> bytes:
    return os.urandom(length)


def aes_gcm_encrypt(key: bytes, plaintext: bytes, aad: bytes = b"") -> bytes:
    """AES-256-GCM. Returns iv(16) ‖ ciphertext ‖ tag(16)."""
    if len(key) != 32:
        raise InvalidLengthError(f"AES-256 key must be 32 bytes, got {len(key)}")
    iv = random_bytes(IV_LENGTH)
    cipher = AES.new(key, AES.MODE_GCM, nonce=iv, mac_len=GCM_TAG_LENGTH)
    if aad:
        cipher.update(aad)
    ciphertext, tag = cipher.encrypt_and_digest(plaintext)
    return iv + ciphertext + tag


def aes_gcm_decrypt(key: bytes, data: bytes, aad: bytes = b"") -> bytes:
    """Inverse of aes_gcm_encrypt. Raises ValueError when the tag does not verify."""
    if len(key) != 32:
        raise InvalidLengthError(f"AES-256 key must be 32 bytes, got {len(key)}")
    if len(data) < IV_LENGTH + GCM_TAG_LENGTH:
        raise ValueError("ciphertext too short")
    iv = data[:IV_LENGTH]
    ciphertext = data[IV_LENGTH:-GCM_TAG_LENGTH]
    tag = data[-GCM_TAG_LENGTH:]
    cipher = AES.new(key, AES.MODE_GCM, nonce=iv, mac_len=GCM_TAG_LENGTH)
    if aad:
        cipher.update(aad)
    return cipher.decrypt_and_verify(ciphertext, tag)


def normalize_public_key(pubkey: bytes) -> bytes:
    """Accept a 33-byte compressed point or a 32-byte x-only key; return compressed form."""
    if len(pubkey) == 32:
        return b"\x02" + pubkey
    if len(pubkey) == 33:
        return pubkey
    raise InvalidLengthError(f"public key must be 32 or 33 bytes, got {len(pubkey)}")


def shared_secret(private_key: bytes, public_key: bytes) -> bytes:
    """ECDH on secp256k1; returns the 32-byte x-coordinate of private·Public."""
    point = PublicKey(normalize_public_key(public_key)).multiply(bytes(private_key))
    return point.format(compressed=True)[1:]


def aes_gcm_decrypt_legacy(key: bytes, data: bytes) -> bytes:
    """Decrypt the early pointer layout: tag(16) ‖ iv(16) ‖ ciphertext."""
    if len(data) < GCM_TAG_LENGTH + IV_LENGTH:
        raise ValueError("ciphertext too short")
    tag = data[:GCM_TAG_LENGTH]
    iv = data[GCM_TAG_LENGTH : GCM_TAG_LENGTH + IV_LENGTH]
    cipher = AES.new(key[:32], AES.MODE_GCM, nonce=iv, mac_len=GCM_TAG_LENGTH)
    return cipher.decrypt_and_verify(data[GCM_TAG_LENGTH + IV_LENGTH :], tag)
