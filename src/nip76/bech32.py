"""
Bech32 encoding for nip76 pointer tokens.
Reference implementation from BIP173, generalized to arbitrary byte payloads
with a configurable length limit (pointer tokens exceed the 90-character guidance).
"""

from .config import BECH32_MAX_LENGTH

CHARSET = "qpzry9x8gf2tvdw0s3jn54khce6mua7l"
BECH32_CONST = 1


def _polymod(values):
    GEN = [0x3b6a57b2, 0x26508e6d, 0x1ea119fa, 0x3d4233dd, 0x2a1462b3]
    chk = 1
    for v in values:
        b = chk >> 25
        chk = (chk & 0x1FFFFFF) << 5 ^ v
        for i in range(5):
            chk ^= GEN[i] if ((b >> i) & 1) else 0
    return chk


def _hrp_expand(hrp):
    return [ord(x) >> 5 for x in hrp] + [0] + [ord(x) & 31 for x in hrp]


def _create_checksum(hrp, data):
    values = _hrp_expand(hrp) + data
    polymod = _polymod(values + [0, 0, 0, 0, 0, 0]) ^ BECH32_CONST
    return [(polymod >> 5 * (5 - i)) & 31 for i in range(6)]


def convertbits(data, frombits, tobits, pad=True):
    acc = 0
    bits = 0
    ret = []
    maxv = (1 << tobits) - 1
    for value in data:
        acc = (acc << frombits) | value
        bits += frombits
        while bits >= tobits:
            bits -= tobits
            ret.append((acc >> bits) & maxv)
    if pad:
        if bits:
            ret.append((acc << (tobits - bits)) & maxv)
    elif bits >= frombits or ((acc << (tobits - bits)) & maxv):
        return None
    return ret


def encode(hrp: str, payload: bytes, max_length: int = BECH32_MAX_LENGTH) -> str:
    """Encode bytes under a human-readable prefix."""
    data = convertbits(payload, 8, 5)
    checksum = _create_checksum(hrp, data)
    out = hrp + "1" + "".join([CHARSET[d] for d in data + checksum])
    if len(out) > max_length:
        raise ValueError(f"bech32 string exceeds {max_length} characters")
    return out


def decode(bech: str, max_length: int = BECH32_MAX_LENGTH):
    """Decode a bech32 string. Returns (hrp, payload) or (None, None)."""
    if any(ord(x) < 33 or ord(x) > 126 for x in bech):
        return None, None
    if bech.lower() != bech and bech.upper() != bech:
        return None, None
    bech = bech.lower()
    pos = bech.rfind("1")
    if pos < 1 or pos + 7 > len(bech) or len(bech) > max_length:
        return None, None
    if not all(x in CHARSET for x in bech[pos + 1 :]):
        return None, None
    hrp = bech[:pos]
    data = [CHARSET.find(x) for x in bech[pos + 1 :]]
    if _polymod(_hrp_expand(hrp) + data) != BECH32_CONST:
        return None, None
    payload = convertbits(data[:-6], 5, 8, False)
    if payload is None:
        return None, None
    return hrp, bytes(payload)
