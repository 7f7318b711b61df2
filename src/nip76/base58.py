"""
Base58 / Base58Check encoding for extended keys.
Bitcoin alphabet, 4-byte double-SHA256 checksum.
"""

from .errors import InvalidChecksumError
from .utils import double_sha256

ALPHABET = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"
_INDEX = {c: i for i, c in enumerate(ALPHABET)}


def encode(data: bytes) -> str:
    n = int.from_bytes(data, "big")
    out = []
    while n > 0:
        n, rem = divmod(n, 58)
        out.append(ALPHABET[rem])
    pad = len(data) - len(data.lstrip(b"\x00"))
    return ALPHABET[0] * pad + "".join(reversed(out))


def decode(text: str) -> bytes:
    n = 0
    for c in text:
        if c not in _INDEX:
            raise ValueError(f"invalid base58 character {c!r}")
        n = n * 58 + _INDEX[c]
    body = n.to_bytes((n.bit_length() + 7) // 8, "big") if n else b""
    pad = len(text) - len(text.lstrip(ALPHABET[0]))
    return b"\x00" * pad + body


def encode_check(payload: bytes) -> str:
    return encode(payload + double_sha256(payload)[:4])


def decode_check(text: str) -> bytes:
    """Decode and strip the checksum. Raises InvalidChecksumError on mismatch."""
    raw = decode(text)
    if len(raw) < 4:
        raise InvalidChecksumError("base58check payload too short")
    payload, checksum = raw[:-4], raw[-4:]
    if double_sha256(payload)[:4] != checksum:
        raise InvalidChecksumError("invalid checksum")
    return payload
