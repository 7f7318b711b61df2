"""
Wallet: one BIP39 root, a lockword, and the indexes derived from them.

The lockword is folded into the root with create_indexes_from_word, so a leaked
master key alone does not reveal the channel roots or the wordset. Backups go
through an injected key/value store.
"""

import base64
import hashlib
import json
import logging
from typing import Dict, List, Optional, Protocol, Tuple

from mnemonic import Mnemonic

from .config import WALLET_KDF_ITERATIONS
from .documents import PrivateChannel
from .errors import MissingPrivateKeyError
from .event import NostrEvent
from .hd_key import HDKey
from .hdk_index import HDKIndex, HDKIndexType
from .pointer import nprivatechan_encode
from .utils import aes_gcm_decrypt, aes_gcm_encrypt, random_bytes
from .versions import DEFAULT_VERSION, Version, get_version

logger = logging.getLogger(__name__)

SALT_LENGTH = 64


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


class MemoryStore:
    """Dict-backed KeyValueStore."""

    def __init__(self):
        self._data: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


def _backup_key(password: str, salt: bytes) -> bytes:
    return hashlib.pbkdf2_hmac("sha512", password.encode("utf-8"), salt, WALLET_KDF_ITERATIONS, dklen=32)


class Wallet:
    BACKUP_KEY = "nip76-wallet"
    # NIP-06 account path
    ROOT_PATH = "m/44'/1237'/0'"

    def __init__(self, master: HDKey, lockword: str = "", store: Optional[KeyValueStore] = None):
        if not master.is_private:
            raise MissingPrivateKeyError("a wallet needs a private master key")
        self.master = master
        self.store = store if store is not None else MemoryStore()
        self.nostr_key = master.derive_path(self.ROOT_PATH + "/0/0")
        self._channels: Dict[int, HDKIndex] = {}
        self.set_lockword(lockword)

    @classmethod
    def from_mnemonic(
        cls,
        words: str,
        passphrase: str = "",
        lockword: str = "",
        store: Optional[KeyValueStore] = None,
        version: Version = DEFAULT_VERSION,
    ) -> "Wallet":
        if not Mnemonic("english").check(words):
            raise ValueError("invalid BIP39 mnemonic")
        seed = Mnemonic.to_seed(words, passphrase)
        return cls(HDKey.from_seed(seed, version), lockword, store)

    @classmethod
    def generate(cls, strength: int = 128, **kwargs) -> Tuple["Wallet", str]:
        words = Mnemonic("english").generate(strength)
        return cls.from_mnemonic(words, **kwargs), words

    def set_lockword(self, lockword: str) -> None:
        root = self.master.derive_path(self.ROOT_PATH)
        nums = root.create_indexes_from_word(lockword)
        self._lockword = lockword
        self.wordset: List[int] = nums[8:16]
        self._signing_root = root.derive_child(nums[16], True).derive_child(nums[17], True)
        self._crypto_root = root.derive_child(nums[18], True).derive_child(nums[19], True)
        self.documents_index = HDKIndex(
            HDKIndexType.PRIVATE | HDKIndexType.SEQUENTIAL,
            self._signing_root,
            self._crypto_root,
            wordset=self.wordset,
        )
        self._channels.clear()

    # ---------- channels ----------

    def channel_index(self, doc_index: int) -> HDKIndex:
        """TimeBased index of the wallet's channel number doc_index."""
        if doc_index not in self._channels:
            self._channels[doc_index] = HDKIndex(
                HDKIndexType.TIME_BASED,
                self._signing_root.derive_child(doc_index, True),
                self._crypto_root.derive_child(doc_index, True),
            )
        return self._channels[doc_index]

    def create_channel(self, name: str, about: str = "", picture: str = "",
                       now: Optional[int] = None) -> Tuple[PrivateChannel, NostrEvent]:
        known = [d.doc_index for d in self.documents_index.documents if isinstance(d, PrivateChannel)]
        doc_index = max(known) + 1 if known else 0
        channel = PrivateChannel(name=name, about=about, picture=picture, doc_index=doc_index)
        event = self.documents_index.create_event(channel, now=now)
        return channel, event

    def channel_pointer(
        self,
        doc_index: int,
        password: Optional[str] = None,
        receiver_public_key: Optional[bytes] = None,
        relays: Optional[List[str]] = None,
    ) -> str:
        pointer = self.channel_index(doc_index).channel_pointer(relays=relays)
        if receiver_public_key is not None:
            return nprivatechan_encode(
                pointer,
                sender_private_key=self.nostr_key.private_key,
                receiver_public_key=receiver_public_key,
            )
        return nprivatechan_encode(pointer, password=password)

    # ---------- backup ----------

    def save(self, password: str) -> str:
        salt = random_bytes(SALT_LENGTH)
        payload = self.master.chain_code + self.master.private_key + self._lockword.encode("utf-8")
        blob = base64.b64encode(salt + aes_gcm_encrypt(_backup_key(password, salt), payload, aad=salt)).decode("ascii")
        self.store.set(self.BACKUP_KEY, json.dumps({"v": 1, "version": self.master.version.name, "data": blob}))
        return blob

    @classmethod
    def load(cls, store: KeyValueStore, password: str) -> Optional["Wallet"]:
        stored = store.get(cls.BACKUP_KEY)
        if stored is None:
            return None
        try:
            record = json.loads(stored)
            raw = base64.b64decode(record["data"], validate=True)
            salt, encrypted = raw[:SALT_LENGTH], raw[SALT_LENGTH:]
            payload = aes_gcm_decrypt(_backup_key(password, salt), encrypted, aad=salt)
            master = HDKey(private_key=payload[32:64], chain_code=payload[:32], version=get_version(record["version"]))
            lockword = payload[64:].decode("utf-8")
        except (ValueError, KeyError, TypeError) as e:
            logger.warning("Wallet.load() failed: %s", e)
            return None
        return cls(master, lockword, store)

    def clear(self) -> None:
        self.store.delete(self.BACKUP_KEY)
