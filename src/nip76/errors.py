"""Exception hierarchy for nip76."""


class Nip76Error(Exception):
    """Base exception for nip76."""


class InvalidIndexTypeError(Nip76Error, ValueError):
    """Addressing-mode flags are contradictory or incomplete."""


class MissingPrivateKeyError(Nip76Error):
    """An operation needs a private scalar the key does not hold."""


class InvalidIndexError(Nip76Error, ValueError):
    """Child index outside 0..2^31-1."""


class InvalidPathError(Nip76Error, ValueError):
    """Malformed derivation path string."""


class InvalidChecksumError(Nip76Error, ValueError):
    """Base58check checksum mismatch."""


class InvalidVersionError(Nip76Error, ValueError):
    """Extended key version bytes unknown or inconsistent with the key data."""


class InvalidLengthError(Nip76Error, ValueError):
    """Input has the wrong byte length."""


class PointerFormatError(Nip76Error, ValueError):
    """Pointer token has an unknown prefix or a truncated body."""


class PointerDecryptionError(Nip76Error):
    """Pointer ciphertext failed its integrity check."""


class UnsupportedKindError(Nip76Error):
    """Decrypted payload carries a kind with no registered document type."""

    def __init__(self, kind):
        super().__init__(f"Kind {kind} not supported.")
        self.kind = kind


class DocumentFormatError(Nip76Error, ValueError):
    """Decrypted payload is not a well-formed document array."""


class MissingChainCodeError(Nip76Error):
    """Derivation requested on a key rehydrated without a chain code."""
