"""
Wordset folding ("reduced keys") behind Private addressing.

fold(root, wordset, offset) walks one hardened child per word, each index being
word * (offset + 1) mod 2^31. Without the wordset and the root's scalar the
result can be neither derived nor enumerated.
"""

from typing import Sequence

from .config import HARDENED_OFFSET
from .errors import InvalidLengthError, MissingPrivateKeyError
from .hd_key import HDKey

WORDSET_LENGTH = 8


def validate_wordset(wordset: Sequence[int]) -> list:
    words = [int(w) for w in wordset]
    if len(words) != WORDSET_LENGTH:
        raise InvalidLengthError(f"wordset must hold {WORDSET_LENGTH} words, got {len(words)}")
    if any(w < 0 or w >= HARDENED_OFFSET for w in words):
        raise ValueError("wordset entries must be in 0..2^31-1")
    return words


def fold(root: HDKey, wordset: Sequence[int], offset: int, reverse: bool = False) -> HDKey:
    if not root.is_private:
        raise MissingPrivateKeyError("wordset folding requires a private root")
    words = list(reversed(wordset)) if reverse else list(wordset)
    acc = root
    for w in words:
        acc = acc.derive_child((w * (offset + 1)) % HARDENED_OFFSET, hardened=True)
    return acc
