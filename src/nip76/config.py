"""
Runtime configuration for nip76.

Protocol constants are fixed; the rest is overridable via environment variables.
"""

import logging
import os

# ============================================================
# Configuration (overridable via environment variables)
# ============================================================
DEFAULT_KEY_VERSION = os.getenv("NIP76_KEY_VERSION", "nip76API1")
BECH32_MAX_LENGTH = int(os.getenv("NIP76_BECH32_MAX_LENGTH", "5000"))
WALLET_KDF_ITERATIONS = int(os.getenv("NIP76_WALLET_KDF_ITERATIONS", "2145"))
LOG_LEVEL = os.getenv("NIP76_LOG_LEVEL", "WARNING").upper()

# ============================================================
# Protocol constants
# ============================================================
HARDENED_OFFSET = 0x80000000
PRIVATE_EVENT_KIND = 17761
SEQUENTIAL_PAGE_SIZE = 20
POINTER_PASSWORD_LABEL = b"nip76"
IV_LENGTH = 16


def configure_logging(level=None) -> logging.Logger:
    """Attach a stream handler to the package logger (applications only)."""
    logger = logging.getLogger("nip76")
    logger.setLevel(level or LOG_LEVEL)
    if not any(isinstance(h, logging.StreamHandler) for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(asctime)s %(name)s %(levelname)s %(message)s"))
        logger.addHandler(handler)
    return logger
