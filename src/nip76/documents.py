"""
Document payloads carried inside private events.

A payload is the compact JSON array ``[kind, author_pubkey_hex, body]``. The
explicit leading kind selects the concrete class through ``DOCUMENT_TYPES``.
"""

import json
from dataclasses import dataclass, field
from enum import IntEnum
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Type

from .errors import DocumentFormatError, MissingPrivateKeyError, UnsupportedKindError
from .event import NostrEvent
from .hd_key import HDKey
from .pointer import PrivateChannelPointer, nprivatechan_encode

if TYPE_CHECKING:
    from .hdk_index import HDKIndex


class Kind(IntEnum):
    TEXT = 1
    CONTACTS = 3
    DELETE = 5
    REACTION = 7
    CHANNEL_METADATA = 41
    INVITATION = 1776
    RSVP = 1777


@dataclass
class ContentDocument:
    kind: int = Kind.TEXT
    pubkey: str = ""
    doc_index: Optional[int] = None

    # client-side state, never serialized
    index: Optional["HDKIndex"] = field(default=None, repr=False, compare=False)
    event: Optional[NostrEvent] = field(default=None, repr=False, compare=False)
    owner_pubkey: str = field(default="", compare=False)
    verified: bool = field(default=False, compare=False)

    def body(self) -> List[Any]:
        return []

    def load_body(self, body: List[Any]) -> None:
        pass

    def serialize(self) -> str:
        return json.dumps([int(self.kind), self.pubkey, self.body()], separators=(",", ":"))

    @property
    def created_at(self) -> int:
        return self.event.created_at if self.event else 0


@dataclass
class PostDocument(ContentDocument):
    text: str = ""
    reply_to: Optional[str] = None

    def body(self):
        return [self.text, self.reply_to]

    def load_body(self, body):
        self.text, self.reply_to = body[0], body[1]


@dataclass
class FollowDocument(ContentDocument):
    kind: int = Kind.CONTACTS
    name: str = ""
    pointer: str = ""

    def body(self):
        return [self.name, self.pointer]

    def load_body(self, body):
        self.name, self.pointer = body[0], body[1]


@dataclass
class PrivateChannel(ContentDocument):
    kind: int = Kind.CHANNEL_METADATA
    name: str = ""
    about: str = ""
    picture: str = ""
    last_known_index: int = 0

    def body(self):
        return [self.name, self.about, self.picture, self.last_known_index]

    def load_body(self, body):
        self.name, self.about, self.picture, self.last_known_index = body[:4]


@dataclass
class Invitation(ContentDocument):
    """Grants access to one document of the owning index.

    Addressed either to a public key (shared-secret pointer) or protected by a
    password.
    """

    kind: int = Kind.INVITATION
    for_pubkey: Optional[str] = None
    password: Optional[str] = None
    pointer_doc_index: int = 0
    signing_parent: Optional[str] = None
    crypto_parent: Optional[str] = None

    def body(self):
        return [self.for_pubkey, self.password, self.pointer_doc_index, self.signing_parent, self.crypto_parent]

    def load_body(self, body):
        (self.for_pubkey, self.password, self.pointer_doc_index,
         self.signing_parent, self.crypto_parent) = body[:5]

    def get_pointer(self, sender_key: Optional[HDKey] = None, relays: Optional[List[str]] = None) -> str:
        if self.index is None:
            raise ValueError("invitation is not attached to an index")
        keyset = self.index.get_document_keyset(self.pointer_doc_index)
        pointer = PrivateChannelPointer(
            doc_index=self.pointer_doc_index,
            signing_key=keyset.signing_key.public_key if keyset.signing_key else None,
            crypto_key=keyset.crypto_key.public_key,
            relays=list(relays or []),
        )
        if self.for_pubkey:
            sender = sender_key or self.index.signing_parent
            if not sender.is_private:
                raise MissingPrivateKeyError("a private sender key is needed for addressed invitations")
            return nprivatechan_encode(
                pointer,
                sender_private_key=sender.private_key,
                receiver_public_key=bytes.fromhex(self.for_pubkey),
            )
        if self.password is None:
            raise ValueError("invitation needs a recipient public key or a password")
        return nprivatechan_encode(pointer, password=self.password)


@dataclass
class Rsvp(ContentDocument):
    kind: int = Kind.RSVP
    pointer_type: int = 0
    pointer_doc_index: int = 0
    signing_key: str = ""
    crypto_key: str = ""

    def body(self):
        return [self.pointer_type, self.pointer_doc_index, self.signing_key, self.crypto_key]

    def load_body(self, body):
        self.pointer_type, self.pointer_doc_index, self.signing_key, self.crypto_key = body[:4]


DOCUMENT_TYPES: Dict[int, Type[ContentDocument]] = {
    Kind.TEXT: PostDocument,
    Kind.REACTION: PostDocument,
    Kind.CONTACTS: FollowDocument,
    Kind.CHANNEL_METADATA: PrivateChannel,
    Kind.INVITATION: Invitation,
    Kind.RSVP: Rsvp,
}


def register_document_type(kind: int, cls: Type[ContentDocument]) -> None:
    DOCUMENT_TYPES[kind] = cls


def decode_document(payload: str) -> ContentDocument:
    try:
        raw = json.loads(payload)
    except ValueError as e:
        raise DocumentFormatError("payload is not JSON") from e
    if not isinstance(raw, list) or len(raw) != 3 or not isinstance(raw[0], int) or not isinstance(raw[2], list):
        raise DocumentFormatError("payload must be [kind, pubkey, body]")
    kind, pubkey, body = raw
    if not isinstance(pubkey, str):
        raise DocumentFormatError("author pubkey must be a hex string")
    cls = DOCUMENT_TYPES.get(kind)
    if cls is None:
        raise UnsupportedKindError(kind)
    doc = cls(kind=kind, pubkey=pubkey)
    try:
        doc.load_body(body)
    except (IndexError, ValueError) as e:
        raise DocumentFormatError(f"malformed body for kind {kind}") from e
    return doc
