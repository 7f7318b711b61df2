"""
BIP32 HD Key Derivation using coincurve (libsecp256k1).

Nodes are either private (scalar + derived compressed point) or public-only.
Serialization follows BIP32, with the compact profiles dropping depth,
parent fingerprint and child index from the payload.
"""

import logging
import struct
from typing import List, Optional

from coincurve import PrivateKey, PublicKey, PublicKeyXOnly

from . import base58
from .config import HARDENED_OFFSET
from .errors import (
    InvalidIndexError,
    InvalidLengthError,
    InvalidPathError,
    InvalidVersionError,
    MissingChainCodeError,
    MissingPrivateKeyError,
)
from .utils import hash160, hmac_sha512, random_bytes, sha256
from .versions import (
    BITCOIN_MAIN,
    COMPACT_PAYLOAD_LENGTH,
    DEFAULT_VERSION,
    STANDARD_PAYLOAD_LENGTH,
    Version,
    find_version,
)

logger = logging.getLogger(__name__)

SECP256K1_ORDER = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141
_ZERO_CHAIN = b"\x00" * 32


def _get_pubkey(privkey_bytes: bytes) -> bytes:
    pk = PublicKey.from_valid_secret(privkey_bytes)
    return pk.format(compressed=True)


class HDKey:
    """BIP32 Hierarchical Deterministic Key."""

    __slots__ = (
        "_private_key",
        "_public_key",
        "_chain_code",
        "_depth",
        "_index",
        "_parent_fingerprint",
        "_version",
        "_identifier",
    )

    def __init__(
        self,
        private_key: Optional[bytes] = None,
        public_key: Optional[bytes] = None,
        chain_code: Optional[bytes] = None,
        depth: int = 0,
        index: int = 0,
        parent_fingerprint: Optional[bytes] = None,
        version: Version = BITCOIN_MAIN,
    ):
        if private_key is None and public_key is None:
            raise MissingPrivateKeyError("either private key or public key must be provided")
        if private_key is not None:
            if len(private_key) != 32:
                raise InvalidLengthError(f"private key must be 32 bytes, got {len(private_key)}")
            if not 0 < int.from_bytes(private_key, "big") < SECP256K1_ORDER:
                raise ValueError("private key out of range")
            self._private_key = bytearray(private_key)
            self._public_key = _get_pubkey(bytes(private_key))
        else:
            if len(public_key) != 33:
                raise InvalidLengthError(f"public key must be 33 bytes, got {len(public_key)}")
            PublicKey(bytes(public_key))
            self._private_key = None
            self._public_key = bytes(public_key)
        if chain_code is not None and len(chain_code) != 32:
            raise InvalidLengthError(f"chain code must be 32 bytes, got {len(chain_code)}")
        self._chain_code = bytes(chain_code) if chain_code is not None else None
        self._depth = depth
        self._index = index
        self._parent_fingerprint = bytes(parent_fingerprint) if parent_fingerprint and depth else None
        self._version = version
        self._identifier = hash160(self._public_key)

    @classmethod
    def from_seed(cls, seed: bytes, version: Version = DEFAULT_VERSION) -> "HDKey":
        I = hmac_sha512(b"Bitcoin seed", seed)
        return cls(private_key=I[:32], chain_code=I[32:], version=version)

    @classmethod
    def parse_extended_key(cls, key: str) -> "HDKey":
        # version[4] || depth[1] || parent_fingerprint[4] || index[4] || chain_code[32] || key_data[33]
        # compact profiles: version[4] || chain_code[32] || key_data[33]
        buf = base58.decode_check(key)
        if len(buf) == STANDARD_PAYLOAD_LENGTH:
            compact = False
        elif len(buf) == COMPACT_PAYLOAD_LENGTH:
            compact = True
        else:
            raise InvalidLengthError(f"invalid extended key length {len(buf)}")
        prefix = struct.unpack(">I", buf[:4])[0]
        version = find_version(prefix, compact)
        if version is None:
            raise InvalidVersionError(f"unknown version bytes {prefix:#010x}")

        depth, index, fingerprint = 0, 0, None
        o = 4
        if not compact:
            depth = buf[4]
            fingerprint = buf[5:9]
            index = struct.unpack(">I", buf[9:13])[0]
            o = 13
            if fingerprint == b"\x00\x00\x00\x00":
                fingerprint = None
            if depth == 0 and (fingerprint is not None or index != 0):
                raise InvalidVersionError("zero depth with non-zero parent fingerprint or index")
        chain_code = buf[o : o + 32]
        key_data = buf[o + 32 :]
        if chain_code == _ZERO_CHAIN:
            chain_code = None

        if key_data[0] == 0:
            if prefix != version.private:
                raise InvalidVersionError("invalid version bytes")
            return cls(
                private_key=key_data[1:],
                chain_code=chain_code,
                depth=depth,
                index=index,
                parent_fingerprint=fingerprint,
                version=version,
            )
        if prefix != version.public:
            raise InvalidVersionError("invalid version bytes")
        return cls(
            public_key=key_data,
            chain_code=chain_code,
            depth=depth,
            index=index,
            parent_fingerprint=fingerprint,
            version=version,
        )

    @staticmethod
    def concat_public_keys(*keys: "HDKey") -> bytes:
        return b"".join((k.chain_code or _ZERO_CHAIN) + k.public_key for k in keys)

    @staticmethod
    def deconcat_public_keys(buf: bytes, version: Version = DEFAULT_VERSION) -> List["HDKey"]:
        if len(buf) % 65:
            raise InvalidLengthError("concatenated keys must be a multiple of 65 bytes")
        return [
            HDKey(public_key=buf[o + 32 : o + 65], chain_code=buf[o : o + 32], version=version)
            for o in range(0, len(buf), 65)
        ]

    # ---------- attributes ----------

    @property
    def private_key(self) -> Optional[bytes]:
        return bytes(self._private_key) if self._private_key is not None else None

    @property
    def public_key(self) -> bytes:
        return self._public_key

    @property
    def chain_code(self) -> Optional[bytes]:
        return self._chain_code

    @property
    def depth(self) -> int:
        return self._depth

    @property
    def index(self) -> int:
        return self._index

    @property
    def parent_fingerprint(self) -> Optional[bytes]:
        return self._parent_fingerprint

    @property
    def version(self) -> Version:
        return self._version

    @property
    def is_private(self) -> bool:
        return self._private_key is not None

    @property
    def key_identifier(self) -> bytes:
        return self._identifier

    @property
    def fingerprint(self) -> bytes:
        return self._identifier[:4]

    @property
    def nostr_pubkey(self) -> str:
        """x-only public key, hex, as carried in wire events."""
        return self._public_key[1:].hex()

    @property
    def pub_key_hash(self) -> str:
        return sha256(self._public_key).hex()

    @property
    def extended_private_key(self) -> Optional[str]:
        if self._private_key is None:
            return None
        return self._serialize(self._version.private, b"\x00" + bytes(self._private_key))

    @property
    def extended_public_key(self) -> str:
        return self._serialize(self._version.public, self._public_key)

    @property
    def extended_public_key_hash(self) -> str:
        return base58.encode(sha256(self.extended_public_key))

    def _serialize(self, prefix: int, key_data: bytes) -> str:
        buf = struct.pack(">I", prefix)
        if not self._version.compact:
            buf += struct.pack(">B", self._depth)
            buf += self._parent_fingerprint or b"\x00\x00\x00\x00"
            buf += struct.pack(">I", self._index)
        buf += (self._chain_code or _ZERO_CHAIN) + key_data
        return base58.encode_check(buf)

    # ---------- derivation ----------

    def derive_child(self, index: int, hardened: bool = False) -> "HDKey":
        if self._chain_code is None:
            raise MissingChainCodeError("cannot derive a child key without a chain code")
        if hardened and self._private_key is None:
            raise MissingPrivateKeyError("cannot derive a hardened child key from a public key")
        while True:
            if index < 0 or index >= HARDENED_OFFSET:
                raise InvalidIndexError(f"invalid index {index}")
            if hardened:
                child_index = index + HARDENED_OFFSET
                data = b"\x00" + bytes(self._private_key) + struct.pack(">I", child_index)
            else:
                child_index = index
                data = self._public_key + struct.pack(">I", child_index)
            I = hmac_sha512(self._chain_code, data)
            child = self._child_from(I[:32], I[32:], child_index)
            if child is not None:
                return child
            # if parse256(IL) >= n or the child is invalid, proceed with the next index
            logger.debug("invalid child key at index %d, retrying with %d", index, index + 1)
            index += 1

    def _child_from(self, il: bytes, ir: bytes, child_index: int) -> Optional["HDKey"]:
        il_int = int.from_bytes(il, "big")
        if il_int >= SECP256K1_ORDER:
            return None
        if self._private_key is not None:
            child_int = (il_int + int.from_bytes(self._private_key, "big")) % SECP256K1_ORDER
            if child_int == 0:
                return None
            return HDKey(
                private_key=child_int.to_bytes(32, "big"),
                chain_code=ir,
                depth=self._depth + 1,
                index=child_index,
                parent_fingerprint=self.fingerprint,
                version=self._version,
            )
        try:
            point = PublicKey(self._public_key).add(il)
        except ValueError:
            return None
        return HDKey(
            public_key=point.format(compressed=True),
            chain_code=ir,
            depth=self._depth + 1,
            index=child_index,
            parent_fingerprint=self.fingerprint,
            version=self._version,
        )

    def derive_path(self, path: str) -> "HDKey":
        """Derive from path like m/44'/1237'/0'/0"""
        p = path.strip().lower()
        if not p:
            return self
        parts = p.split("/")
        if parts[0] not in ("m", "m'"):
            raise InvalidPathError(f"invalid child key derivation chain {path!r}")
        key = self
        for part in parts[1:]:
            part = part.strip()
            if not part:
                continue
            hardened = part.endswith(("'", "h"))
            digits = part[:-1] if hardened else part
            if not (digits.isascii() and digits.isdigit()):
                raise InvalidPathError(f"invalid child key derivation chain {path!r}")
            key = key.derive_child(int(digits), hardened)
        return key

    def derive_new_master_key(self) -> "HDKey":
        """Independent master key seeded from public material only."""
        if self._chain_code is None:
            raise MissingChainCodeError("cannot derive a new master key without a chain code")
        I = hmac_sha512(self._public_key, self._chain_code)
        return HDKey(private_key=I[:32], chain_code=I[32:], version=self._version)

    def create_indexes_from_word(self, word: str, length: int = 16) -> List[int]:
        """20 indexes below 2^31 keyed by this key's secret and a memorable word.

        The first `length` (at most 16) come from two HMAC-SHA512 rounds, the
        last four from a SHA-256 of the second round. Unfilled slots are 0.
        """
        if self._private_key is None:
            raise MissingPrivateKeyError("createIndexesFromWord requires a private key")
        if self._chain_code is None:
            raise MissingChainCodeError("createIndexesFromWord requires a chain code")
        if not 0 <= length <= 16:
            raise ValueError("length must be between 0 and 16")
        h = hmac_sha512(self._chain_code, sha256(word))
        h1 = hmac_sha512(bytes(self._private_key), h)
        h2 = sha256(h1)

        def read(buf: bytes, offset: int) -> int:
            # -2^31 folds to 0 here, where a signed 32-bit array would keep it
            return abs(int.from_bytes(buf[offset : offset + 4], "big", signed=True)) % HARDENED_OFFSET

        out = [0] * 20
        for i in range(length):
            out[i] = read(h, i * 8) if i < 8 else read(h1, (i - 8) * 8)
        for j in range(4):
            out[16 + j] = read(h2, j * 8)
        return out

    # ---------- signatures ----------

    def sign(self, message: bytes) -> bytes:
        """BIP340 Schnorr signature over a 32-byte digest."""
        if len(message) != 32:
            raise InvalidLengthError("message must be a 32-byte hash")
        if self._private_key is None:
            raise MissingPrivateKeyError("signing requires a private key")
        return PrivateKey(bytes(self._private_key)).sign_schnorr(message, random_bytes(32))

    def verify(self, message: bytes, signature: bytes) -> bool:
        if len(message) != 32:
            raise InvalidLengthError("message must be a 32-byte hash")
        if len(signature) != 64:
            raise InvalidLengthError("signature must be 64 bytes")
        return PublicKeyXOnly(self._public_key[1:]).verify(signature, message)

    def wipe_private_data(self) -> "HDKey":
        """Zero the private scalar in place. Irreversible."""
        if self._private_key is not None:
            for i in range(len(self._private_key)):
                self._private_key[i] = 0
            self._private_key = None
        return self

    def __repr__(self) -> str:
        return (
            f"HDKey(fingerprint={self.fingerprint.hex()}, depth={self._depth}, "
            f"index={self._index}, private={self.is_private}, version={self._version.name})"
        )
