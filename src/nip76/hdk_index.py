"""
Per-document keysets, the private event envelope and the local document cache.

An HDKIndex owns a signing parent, an encryption ("crypto") parent and an
addressing mode, and maps a document index to the keypair pair used for one
document:

    SINGLETON           the parents themselves
    PRIVATE             wordset folds of the parents (hardened, owner only)
    SEQUENTIAL/TIME     guest key re-anchored on the signing parent's chain code,
                        crypto parent's non-hardened child

Event content is iv || AES-256-GCM(payload) || tag, base64, keyed by the x
coordinate of the document's crypto public key.
"""

import base64
import logging
import threading
import time
from enum import IntFlag
from typing import Any, Dict, List, NamedTuple, Optional, Tuple, Union

from .config import HARDENED_OFFSET, PRIVATE_EVENT_KIND, SEQUENTIAL_PAGE_SIZE
from .documents import ContentDocument, Kind, decode_document
from .errors import (
    InvalidIndexTypeError,
    MissingPrivateKeyError,
    Nip76Error,
    PointerFormatError,
)
from .event import NostrEvent
from .hd_key import HDKey
from .key_reduction import fold, validate_wordset
from .pointer import PrivateChannelPointer
from .utils import aes_gcm_decrypt, aes_gcm_encrypt
from .versions import DEFAULT_VERSION, Version

logger = logging.getLogger(__name__)

PrivateKeyLike = Union[bytes, str, HDKey]


class HDKIndexType(IntFlag):
    PRIVATE = 1
    SEQUENTIAL = 1 << 1
    TIME_BASED = 1 << 2
    SINGLETON = 1 << 3


class Keyset(NamedTuple):
    signing_key: Optional[HDKey]
    crypto_key: HDKey

    @property
    def crypto_secret(self) -> bytes:
        return self.crypto_key.public_key[1:]


def time_based_index(created_at: int) -> int:
    """Document index of a TimeBased event.

    The quotient created_at // 2^31 is discarded, so timestamps 2^31 seconds
    apart share a keyset.
    """
    return int(created_at) % HARDENED_OFFSET


def _private_bytes(key: PrivateKeyLike) -> bytes:
    if isinstance(key, HDKey):
        if not key.is_private:
            raise MissingPrivateKeyError("external key has no private scalar")
        return key.private_key
    if isinstance(key, str):
        return bytes.fromhex(key)
    return bytes(key)


def _extended(key: HDKey) -> str:
    return key.extended_private_key or key.extended_public_key


class HDKIndex:

    def __init__(
        self,
        index_type: int,
        signing_parent: HDKey,
        crypto_parent: HDKey,
        wordset: Optional[List[int]] = None,
        keyset_pages: Optional[Dict[Tuple[int, int], List[Keyset]]] = None,
    ):
        self.type = HDKIndexType(index_type)
        primary = [f for f in (HDKIndexType.SEQUENTIAL, HDKIndexType.TIME_BASED, HDKIndexType.SINGLETON) if self.type & f]
        if not primary:
            raise InvalidIndexTypeError("HDKIndex must be Sequential, TimeBased or Singleton.")
        if len(primary) > 1:
            raise InvalidIndexTypeError(f"HDKIndex cannot combine {self.type!r}.")
        self.signing_parent = signing_parent
        self.crypto_parent = crypto_parent
        self.wordset = validate_wordset(wordset) if wordset is not None else None
        self._pages: Dict[Tuple[int, int], List[Keyset]] = dict(keyset_pages or {})
        if self.is_private and not self._pages:
            if not crypto_parent.is_private:
                raise MissingPrivateKeyError("privateKey is required on the cryptoParent when the type is Private.")
            if self.wordset is None:
                raise InvalidIndexTypeError("a wordset is required when the type is Private.")
        self._lock = threading.RLock()
        self._documents: List[ContentDocument] = []
        self.event_tag = self._conventional_tag(signing_parent)

    # ---------- mode ----------

    @property
    def is_private(self) -> bool:
        return bool(self.type & HDKIndexType.PRIVATE)

    @property
    def is_sequential(self) -> bool:
        return bool(self.type & HDKIndexType.SEQUENTIAL)

    @property
    def is_time_based(self) -> bool:
        return bool(self.type & HDKIndexType.TIME_BASED)

    @property
    def is_singleton(self) -> bool:
        return bool(self.type & HDKIndexType.SINGLETON)

    @property
    def documents(self) -> List[ContentDocument]:
        with self._lock:
            return list(self._documents)

    def _conventional_tag(self, key: HDKey) -> str:
        # singleton pointers may travel without chain codes
        if self.is_singleton or key.chain_code is None:
            return key.pub_key_hash
        return key.derive_child(0).derive_child(0).pub_key_hash

    # ---------- keysets ----------

    def _guest_root(self, external_private_key: PrivateKeyLike) -> HDKey:
        return HDKey(
            private_key=_private_bytes(external_private_key),
            chain_code=self.signing_parent.chain_code,
            version=self.signing_parent.version,
        )

    def get_document_keyset(self, doc_index: int, external_private_key: Optional[PrivateKeyLike] = None) -> Keyset:
        if self.is_singleton:
            return Keyset(self.signing_parent, self.crypto_parent)
        if self.is_private:
            cached = self._find_cached_keyset(doc_index)
            if cached is not None:
                return cached
            if self.wordset is None or not self.crypto_parent.is_private:
                raise MissingPrivateKeyError(f"no keyset available for document {doc_index}")
            signing = None
            if self.signing_parent.is_private:
                signing = fold(self.signing_parent, self.wordset, doc_index)
            return Keyset(signing, fold(self.crypto_parent, self.wordset, doc_index, reverse=True))
        signing = None
        if external_private_key is not None:
            signing = self._guest_root(external_private_key).derive_child(doc_index)
        return Keyset(signing, self.crypto_parent.derive_child(doc_index))

    def get_sequential_keyset(self, offset: int, page: int) -> List[Keyset]:
        """Twenty folded keysets starting at offset + page * 20, memoized."""
        with self._lock:
            cached = self._pages.get((offset, page))
            if cached is not None:
                return cached
            if not self.signing_parent.is_private or not self.crypto_parent.is_private or self.wordset is None:
                raise MissingPrivateKeyError("sequential keysets need private parents and a wordset")
            start = offset + page * SEQUENTIAL_PAGE_SIZE
            keysets = [
                Keyset(
                    fold(self.signing_parent, self.wordset, i),
                    fold(self.crypto_parent, self.wordset, i, reverse=True),
                )
                for i in range(start, start + SEQUENTIAL_PAGE_SIZE)
            ]
            self._pages[(offset, page)] = keysets
            return keysets

    def _find_cached_keyset(self, doc_index: int) -> Optional[Keyset]:
        with self._lock:
            for (offset, page), keysets in self._pages.items():
                start = offset + page * SEQUENTIAL_PAGE_SIZE
                if start <= doc_index < start + len(keysets):
                    return keysets[doc_index - start]
        return None

    # ---------- events ----------

    def create_event(
        self,
        doc: ContentDocument,
        external_private_key: Optional[PrivateKeyLike] = None,
        now: Optional[int] = None,
    ) -> NostrEvent:
        created_at = int(now if now is not None else time.time())
        if self.is_time_based:
            doc.doc_index = time_based_index(created_at)
        elif self.is_singleton and doc.doc_index is None:
            doc.doc_index = 0
        if self.is_sequential and doc.doc_index is None:
            raise ValueError("docIndex is required to create events on sequential HDKIndexType.")
        guest = not self.is_private and not self.is_singleton
        if guest and external_private_key is None:
            raise MissingPrivateKeyError("privateKey is required to create non-private events.")

        keyset = self.get_document_keyset(doc.doc_index, external_private_key)
        if keyset.signing_key is None or not keyset.signing_key.is_private:
            raise MissingPrivateKeyError(f"no private signing key for document {doc.doc_index}")
        if guest:
            doc.pubkey = self._guest_root(external_private_key).public_key.hex()
        else:
            doc.pubkey = self.signing_parent.public_key.hex()

        encrypted = aes_gcm_encrypt(keyset.crypto_secret, doc.serialize().encode("utf-8"))
        if self.is_sequential:
            tag = keyset.signing_key.derive_child(0).pub_key_hash
        else:
            tag = self.event_tag
        event = NostrEvent(
            kind=PRIVATE_EVENT_KIND,
            content=base64.b64encode(encrypted).decode("ascii"),
            tags=[["e", tag]],
            created_at=created_at,
        ).sign(keyset.signing_key)

        doc.index = self
        doc.event = event
        doc.owner_pubkey = doc.pubkey
        doc.verified = True
        self._upsert(doc)
        return event

    def create_delete_event(
        self,
        doc: ContentDocument,
        external_private_key: Optional[PrivateKeyLike] = None,
        now: Optional[int] = None,
    ) -> NostrEvent:
        if doc.event is None or doc.doc_index is None:
            raise ValueError("document has no event to delete")
        keyset = self.get_document_keyset(doc.doc_index, external_private_key)
        if keyset.signing_key is None or not keyset.signing_key.is_private:
            raise MissingPrivateKeyError(f"no private signing key for document {doc.doc_index}")
        return NostrEvent(
            kind=int(Kind.DELETE),
            tags=[["e", doc.event.id]],
            created_at=int(now if now is not None else time.time()),
        ).sign(keyset.signing_key)

    def read_event(self, event: NostrEvent, sequential_index: Optional[int] = None) -> Optional[ContentDocument]:
        """Decrypt one event of this index. Returns None for anything unreadable."""
        try:
            if self.is_time_based:
                doc_index = time_based_index(event.created_at)
            elif self.is_singleton:
                doc_index = sequential_index or 0
            elif sequential_index is None:
                raise ValueError("docIndex is required to read events on sequential HDKIndexType.")
            else:
                doc_index = sequential_index
            keyset = self.get_document_keyset(doc_index)
            encrypted = base64.b64decode(event.content, validate=True)
            plaintext = aes_gcm_decrypt(keyset.crypto_secret, encrypted)
            doc = decode_document(plaintext.decode("utf-8"))
        except (Nip76Error, ValueError, KeyError, TypeError) as e:
            logger.debug("HDKIndex.read_event skipped %s: %s", event.id, e)
            return None

        doc.index = self
        doc.event = event
        doc.doc_index = doc_index
        doc.owner_pubkey = doc.pubkey
        expected = self._expected_signer(doc, keyset)
        doc.verified = (
            expected is not None
            and expected.nostr_pubkey == event.pubkey
            and event.verify_signature()
        )
        self._upsert(doc)
        return doc

    def _expected_signer(self, doc: ContentDocument, keyset: Keyset) -> Optional[HDKey]:
        if self.is_singleton:
            return self.signing_parent
        if self.is_private:
            return keyset.signing_key
        try:
            claimed = HDKey(
                public_key=bytes.fromhex(doc.pubkey),
                chain_code=self.signing_parent.chain_code,
                version=self.signing_parent.version,
            )
            return claimed.derive_child(doc.doc_index)
        except (Nip76Error, ValueError, TypeError) as e:
            logger.debug("cannot reconstruct signer for %s: %s", doc.event.id, e)
            return None

    def _upsert(self, doc: ContentDocument) -> None:
        if self.is_sequential:
            def same(d):
                return d.doc_index == doc.doc_index
        else:
            def same(d):
                return d.pubkey == doc.pubkey
        with self._lock:
            existing = next((d for d in self._documents if same(d)), None)
            if existing is not None and existing.created_at > doc.created_at:
                return
            self._documents = [d for d in self._documents if not same(d)]
            self._documents.append(doc)
            self._documents.sort(key=lambda d: d.created_at, reverse=True)

    def filter(self, limit: int = 20) -> Dict[str, Any]:
        """Relay subscription filter for this index's events."""
        return {"#e": [self.event_tag], "kinds": [PRIVATE_EVENT_KIND], "limit": limit}

    # ---------- pointers ----------

    @classmethod
    def from_channel_pointer(cls, pointer: PrivateChannelPointer, version: Version = DEFAULT_VERSION) -> "HDKIndex":
        if pointer.signing_key is None or pointer.crypto_key is None:
            raise PointerFormatError("pointer carries no channel keys")

        def key(data: bytes, chain: Optional[bytes]) -> HDKey:
            if data[0] == 0:
                return HDKey(private_key=data[1:], chain_code=chain, version=version)
            return HDKey(public_key=data, chain_code=chain, version=version)

        if pointer.signing_chain is not None and pointer.crypto_chain is not None:
            index_type = HDKIndexType.TIME_BASED
        else:
            index_type = HDKIndexType.SINGLETON
        return cls(
            index_type,
            key(pointer.signing_key, pointer.signing_chain),
            key(pointer.crypto_key, pointer.crypto_chain),
        )

    def channel_pointer(self, include_chains: bool = True, grant_write: bool = False,
                        relays: Optional[List[str]] = None) -> PrivateChannelPointer:
        if grant_write:
            if not self.signing_parent.is_private:
                raise MissingPrivateKeyError("write access needs the signing parent's private key")
            signing_key = b"\x00" + self.signing_parent.private_key
        else:
            signing_key = self.signing_parent.public_key
        return PrivateChannelPointer(
            signing_key=signing_key,
            crypto_key=self.crypto_parent.public_key,
            signing_chain=self.signing_parent.chain_code if include_chains else None,
            crypto_chain=self.crypto_parent.chain_code if include_chains else None,
            relays=list(relays or []),
        )

    # ---------- export / import ----------

    def export_keyset_page(self, offset: int, page: int, delegate: bool = False) -> Dict[str, Any]:
        keysets = self.get_sequential_keyset(offset, page)
        crypto = (lambda k: k.extended_public_key) if delegate else _extended
        return {
            "offset": offset,
            "page": page,
            "keys": [
                [k.signing_key.extended_private_key if k.signing_key else None, crypto(k.crypto_key)]
                for k in keysets
            ],
        }

    def delegate_dict(self, offset: int, page: int) -> Dict[str, Any]:
        """State for a delegate that may post only within one keyset page."""
        return {
            "type": int(self.type),
            "signing_parent": self.signing_parent.extended_public_key,
            "crypto_parent": self.crypto_parent.extended_public_key,
            "wordset": None,
            "pages": [self.export_keyset_page(offset, page, delegate=True)],
        }

    def to_dict(self) -> Dict[str, Any]:
        with self._lock:
            pages = [self.export_keyset_page(offset, page) for offset, page in self._pages]
        return {
            "type": int(self.type),
            "signing_parent": _extended(self.signing_parent),
            "crypto_parent": _extended(self.crypto_parent),
            "wordset": list(self.wordset) if self.wordset is not None else None,
            "pages": pages,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "HDKIndex":
        pages = {}
        for p in d.get("pages") or []:
            pages[(int(p["offset"]), int(p["page"]))] = [
                Keyset(HDKey.parse_extended_key(s) if s else None, HDKey.parse_extended_key(c))
                for s, c in p["keys"]
            ]
        return cls(
            d["type"],
            HDKey.parse_extended_key(d["signing_parent"]),
            HDKey.parse_extended_key(d["crypto_parent"]),
            wordset=d.get("wordset"),
            keyset_pages=pages,
        )

    def __repr__(self) -> str:
        return f"HDKIndex(type={self.type!r}, event_tag={self.event_tag[:16]}..., documents={len(self._documents)})"
