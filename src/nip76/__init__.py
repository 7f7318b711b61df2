"""
nip76: private, hierarchically keyed Nostr documents.

HD keys, wordset-reduced keysets, the HDKIndex document index and the
nprivatechan pointer codec.
"""

import logging

from .config import configure_logging
from .documents import (
    ContentDocument,
    FollowDocument,
    Invitation,
    Kind,
    PostDocument,
    PrivateChannel,
    Rsvp,
    decode_document,
    register_document_type,
)
from .errors import (
    DocumentFormatError,
    InvalidChecksumError,
    InvalidIndexError,
    InvalidIndexTypeError,
    InvalidLengthError,
    InvalidPathError,
    InvalidVersionError,
    MissingChainCodeError,
    MissingPrivateKeyError,
    Nip76Error,
    PointerDecryptionError,
    PointerFormatError,
    UnsupportedKindError,
)
from .event import NostrEvent
from .hd_key import HDKey
from .hdk_index import HDKIndex, HDKIndexType, Keyset
from .key_reduction import fold
from .pointer import PointerType, PrivateChannelPointer, decode, nprivatechan_encode
from .versions import VERSIONS, Version, get_version
from .wallet import MemoryStore, Wallet

logging.getLogger(__name__).addHandler(logging.NullHandler())

__version__ = "0.1.0"
