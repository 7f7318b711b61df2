"""
Extended-key version profiles.

A profile fixes the base58 serialization prefixes and whether the compact
("cloaked") layout is used. Compact keys omit depth, parent fingerprint and
child index from the wire format.
"""

from typing import Dict, NamedTuple, Optional

from .config import DEFAULT_KEY_VERSION
from .errors import InvalidVersionError


class Version(NamedTuple):
    name: str
    public: int
    private: int
    network_id: int
    compact: bool = False


BITCOIN_MAIN = Version("bitcoinMain", 0x0488B21E, 0x0488ADE4, 0x00)
BITCOIN_TEST = Version("bitcoinTest", 0x043587CF, 0x04358394, 0x6F)
ANIMIQ_API3 = Version("animiqAPI3", 0x08F3B11B, 0x08F3A350, 0x00, compact=True)
NIP76_API1 = Version("nip76API1", 0x0A39F2C6, 0x0A39E68C, 0x00, compact=True)

VERSIONS: Dict[str, Version] = {v.name: v for v in (BITCOIN_MAIN, BITCOIN_TEST, ANIMIQ_API3, NIP76_API1)}

# serialized length without checksum
STANDARD_PAYLOAD_LENGTH = 78
COMPACT_PAYLOAD_LENGTH = 69


def get_version(name: str) -> Version:
    try:
        return VERSIONS[name]
    except KeyError:
        raise InvalidVersionError(f"unknown version profile {name!r}") from None


def find_version(prefix: int, compact: bool) -> Optional[Version]:
    """Profile whose public or private prefix matches, restricted to one layout."""
    for v in VERSIONS.values():
        if v.compact == compact and prefix in (v.public, v.private):
            return v
    return None


DEFAULT_VERSION = get_version(DEFAULT_KEY_VERSION)
