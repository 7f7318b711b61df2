"""
Encrypted, bech32-encoded channel pointers (nip19 extension).

Canonical layout, HRP ``nprivatechan``::

    cleartext:  type[1] || sender_pubkey[33] (shared-secret mode only)
    encrypted:  iv[16] || AES-256-GCM( body ) || tag[16]     (cleartext is the AAD)
    body:       doc_index[4]? || signing_key[33]? || crypto_key[33]?
                || signing_chain[32]? || crypto_chain[32]? || TLV(relays)

The type byte's low bits flag which body fields are present; the high bit
selects shared-secret (ECDH) keying over password keying. A key field is a
compressed public point, or 0x00 || scalar when the pointer grants write access.

HRP ``nprivatethread1`` is the earlier fixed layout and is decoded only.
"""

import logging
import struct
from dataclasses import dataclass, field
from enum import IntFlag
from typing import Dict, List, Optional, Tuple

from coincurve import PrivateKey

from . import bech32
from .config import HARDENED_OFFSET, POINTER_PASSWORD_LABEL
from .errors import InvalidLengthError, PointerDecryptionError, PointerFormatError
from .utils import (
    aes_gcm_decrypt,
    aes_gcm_decrypt_legacy,
    aes_gcm_encrypt,
    hmac_sha256,
    shared_secret,
)

logger = logging.getLogger(__name__)

HRP_PRIVATE_CHANNEL = "nprivatechan"
HRP_LEGACY_THREAD = "nprivatethread1"

KEY_LENGTH = 33
CHAIN_LENGTH = 32
TLV_RELAY = 0


class PointerType(IntFlag):
    SIGNING_KEY = 0x01
    CRYPTO_KEY = 0x02
    SIGNING_CHAIN = 0x04
    CRYPTO_CHAIN = 0x08
    DOC_INDEX = 0x10
    SHARED_SECRET = 0x80

    FULL_KEY_SET = SIGNING_KEY | CRYPTO_KEY | SIGNING_CHAIN | CRYPTO_CHAIN


# body fields in wire order: (flag, attribute, width)
_FIELDS = (
    (PointerType.SIGNING_KEY, "signing_key", KEY_LENGTH),
    (PointerType.CRYPTO_KEY, "crypto_key", KEY_LENGTH),
    (PointerType.SIGNING_CHAIN, "signing_chain", CHAIN_LENGTH),
    (PointerType.CRYPTO_CHAIN, "crypto_chain", CHAIN_LENGTH),
)


@dataclass
class PrivateChannelPointer:
    signing_key: Optional[bytes] = None
    crypto_key: Optional[bytes] = None
    signing_chain: Optional[bytes] = None
    crypto_chain: Optional[bytes] = None
    doc_index: Optional[int] = None
    relays: List[str] = field(default_factory=list)
    # filled in by decode
    sender_pubkey: Optional[bytes] = None
    owner_pubkey: Optional[str] = None

    @property
    def type(self) -> PointerType:
        flags = PointerType(0)
        for flag, attr, _ in _FIELDS:
            if getattr(self, attr) is not None:
                flags |= flag
        if self.doc_index is not None:
            flags |= PointerType.DOC_INDEX
        return flags

    @property
    def grants_write(self) -> bool:
        return bool(self.signing_key) and self.signing_key[0] == 0


# ---------- TLV ----------

def encode_tlv(tlv: Dict[int, List[bytes]]) -> bytes:
    out = bytearray()
    for t, values in tlv.items():
        for v in values:
            if len(v) > 255:
                raise InvalidLengthError("TLV value longer than 255 bytes")
            out += bytes([t, len(v)]) + v
    return bytes(out)


def parse_tlv(data: bytes) -> Dict[int, List[bytes]]:
    result: Dict[int, List[bytes]] = {}
    rest = data
    while len(rest) >= 2:
        t, length = rest[0], rest[1]
        v = rest[2 : 2 + length]
        rest = rest[2 + length :]
        if len(v) < length:
            continue
        result.setdefault(t, []).append(v)
    return result


# ---------- keying ----------

def key_from_password(password: str) -> bytes:
    return hmac_sha256(POINTER_PASSWORD_LABEL, password.encode("utf-8"))


def _check_field(name: str, value: bytes, width: int) -> None:
    if len(value) != width:
        raise InvalidLengthError(f"{name} must be {width} bytes, got {len(value)}")


# ---------- encode ----------

def nprivatechan_encode(
    pointer: PrivateChannelPointer,
    password: Optional[str] = None,
    sender_private_key: Optional[bytes] = None,
    receiver_public_key: Optional[bytes] = None,
) -> str:
    """Encrypt and encode a pointer, keyed by a password or by ECDH."""
    shared_mode = sender_private_key is not None or receiver_public_key is not None
    if shared_mode == (password is not None):
        raise ValueError("supply either a password or a sender private key and receiver public key")

    flags = pointer.type
    prefix = bytearray()
    if shared_mode:
        if sender_private_key is None or receiver_public_key is None:
            raise ValueError("shared-secret pointers need both sender private key and receiver public key")
        key = shared_secret(sender_private_key, receiver_public_key)
        prefix.append(flags | PointerType.SHARED_SECRET)
        prefix += PrivateKey(bytes(sender_private_key)).public_key.format(compressed=True)
    else:
        key = key_from_password(password)
        prefix.append(flags)

    body = bytearray()
    if pointer.doc_index is not None:
        if not 0 <= pointer.doc_index < HARDENED_OFFSET:
            raise ValueError("doc_index must be in 0..2^31-1")
        body += struct.pack(">I", pointer.doc_index)
    for _, attr, width in _FIELDS:
        value = getattr(pointer, attr)
        if value is not None:
            _check_field(attr, value, width)
            body += value
    body += encode_tlv({TLV_RELAY: [r.encode("utf-8") for r in pointer.relays]})

    encrypted = aes_gcm_encrypt(key, bytes(body), aad=bytes(prefix))
    return bech32.encode(HRP_PRIVATE_CHANNEL, bytes(prefix) + encrypted)


# ---------- decode ----------

def decode(
    token: str,
    password: Optional[str] = None,
    private_key: Optional[bytes] = None,
    sender_public_key: Optional[bytes] = None,
) -> Tuple[str, PrivateChannelPointer]:
    """Decode a pointer token. Returns (hrp, pointer).

    Shared-secret pointers need the receiver's ``private_key``; the sender's
    public key travels in the clear. Legacy tokens need ``sender_public_key``
    supplied out of band instead.
    """
    hrp, payload = bech32.decode(token)
    if hrp is None:
        raise PointerFormatError("invalid bech32 pointer")
    if hrp == HRP_PRIVATE_CHANNEL:
        return hrp, _decode_private_channel(payload, password, private_key)
    if hrp == HRP_LEGACY_THREAD:
        return hrp, _decode_legacy_thread(payload, password, private_key, sender_public_key)
    raise PointerFormatError(f"The prefix {hrp} cannot be decoded in this nip19 extension.")


def _decode_private_channel(
    payload: bytes, password: Optional[str], private_key: Optional[bytes]
) -> PrivateChannelPointer:
    if not payload:
        raise PointerFormatError("empty pointer")
    flags = PointerType(payload[0])
    o = 1
    sender_pubkey = None
    if flags & PointerType.SHARED_SECRET:
        if private_key is None:
            raise ValueError("a private key is required to decode a shared-secret pointer")
        sender_pubkey = payload[o : o + KEY_LENGTH]
        if len(sender_pubkey) != KEY_LENGTH:
            raise PointerFormatError("truncated sender public key")
        o += KEY_LENGTH
        key = shared_secret(private_key, sender_pubkey)
    else:
        if password is None:
            raise ValueError("a password is required to decode this pointer")
        key = key_from_password(password)

    try:
        body = aes_gcm_decrypt(key, payload[o:], aad=payload[:o])
    except ValueError as e:
        raise PointerDecryptionError(f"invalid decryption for {HRP_PRIVATE_CHANNEL}") from e

    pointer = PrivateChannelPointer(sender_pubkey=sender_pubkey)
    p = 0
    if flags & PointerType.DOC_INDEX:
        if len(body) < 4:
            raise PointerFormatError("truncated doc index")
        pointer.doc_index = struct.unpack(">I", body[:4])[0]
        p = 4
    for flag, attr, width in _FIELDS:
        if flags & flag:
            value = body[p : p + width]
            if len(value) != width:
                raise PointerFormatError(f"truncated {attr}")
            setattr(pointer, attr, value)
            p += width
    tlv = parse_tlv(body[p:])
    pointer.relays = [v.decode("utf-8") for v in tlv.get(TLV_RELAY, [])]
    return pointer


def _decode_legacy_thread(
    payload: bytes,
    password: Optional[str],
    private_key: Optional[bytes],
    sender_public_key: Optional[bytes],
) -> PrivateChannelPointer:
    if password is not None:
        key = key_from_password(password)
    elif private_key is not None and sender_public_key is not None:
        key = shared_secret(private_key, sender_public_key)
    else:
        raise ValueError("legacy pointers need a password or a private key and the sender public key")
    try:
        data = aes_gcm_decrypt_legacy(key, payload)
    except ValueError as e:
        raise PointerDecryptionError(f"invalid decryption for {HRP_LEGACY_THREAD}") from e
    if len(data) < 162:
        raise PointerFormatError("truncated legacy pointer")
    logger.debug("decoded legacy %s pointer", HRP_LEGACY_THREAD)
    tlv = parse_tlv(data[162:])
    return PrivateChannelPointer(
        owner_pubkey=data[0:32].hex(),
        signing_key=data[32:65],
        signing_chain=data[65:97],
        crypto_key=data[97:130],
        crypto_chain=data[130:162],
        relays=[v.decode("utf-8") for v in tlv.get(TLV_RELAY, [])],
    )
