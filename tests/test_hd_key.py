import struct

import pytest

from nip76 import HDKey, base58, hd_key
from nip76.errors import (
    InvalidChecksumError,
    InvalidIndexError,
    InvalidLengthError,
    InvalidPathError,
    InvalidVersionError,
    MissingChainCodeError,
    MissingPrivateKeyError,
)
from nip76.utils import sha256
from nip76.versions import ANIMIQ_API3, BITCOIN_MAIN

HARDENED = 0x80000000

# BIP32 test vector 1
BIP32_SEED = bytes.fromhex("000102030405060708090a0b0c0d0e0f")
BIP32_M_XPRV = "xprv9s21ZrQH143K3QTDL4LXw2F7HEK3wJUD2nW2nRk4stbPy6cq3jPPqjiChkVvvNKmPGJxWUtg6LnF5kejMRNNU3TGtRBeJgk33yuGBxrMPHi"
BIP32_M_XPUB = "xpub661MyMwAqRbcFtXgS5sYJABqqG9YLmC4Q1Rdap9gSE8NqtwybGhePY2gZ29ESFjqJoCu1Rupje8YtGqsefD265TMg7usUDFdp6W1EGMcet8"
BIP32_M0H_XPRV = "xprv9uHRZZhk6KAJC1avXpDAp4MDc3sQKNxDiPvvkX8Br5ngLNv1TxvUxt4cV1rGL5hj6KCesnDYUhd7oWgT11eZG7XnxHrnYeSvkzY7d2bhkJ7"
BIP32_M0H_XPUB = "xpub68Gmy5EdvgibQVfPdqkBBCHxA5htiqg55crXYuXoQRKfDBFA1WEjWgP6LHhwBZeNK1VTsfTFUHCdrfp1bgwQ9xv5ski8PX9rL2dZXvgGDnw"


def test_bip32_vector_master():
    k = HDKey.from_seed(BIP32_SEED, BITCOIN_MAIN)
    assert k.extended_private_key == BIP32_M_XPRV
    assert k.extended_public_key == BIP32_M_XPUB


def test_bip32_vector_hardened_child():
    k = HDKey.from_seed(BIP32_SEED, BITCOIN_MAIN).derive_path("m/0'")
    assert k.extended_private_key == BIP32_M0H_XPRV
    assert k.extended_public_key == BIP32_M0H_XPUB
    assert k.depth == 1
    assert k.index == HARDENED


def test_fixed_seed_standard_and_compact(fixed_seed):
    k = HDKey.from_seed(fixed_seed, BITCOIN_MAIN)
    assert k.extended_private_key == (
        "xprv9s21ZrQH143K4KWc5QaZvLAkfPygYaYauNNgaGy3YdTitrrMY15iYQ9pX1ozJhgrE5hLTqqDbaP5chw6opeXw89iMom7sBHu5xbJj8gyNo7"
    )
    k = HDKey.from_seed(fixed_seed, ANIMIQ_API3)
    assert k.extended_private_key == (
        "aprvQ8ZyfbqpKrY9phnmSsSLU2B4NTmrr1dQTgECiyuik3uqnXM8K3janGZeQafcNsFL8mZMw53QarXmaneGuNPm2HK88bwb9Lf"
    )


def test_compact_child_serialization(fixed_seed):
    c = HDKey.from_seed(fixed_seed, ANIMIQ_API3).derive_child(0)
    assert c.extended_private_key == (
        "aprvNyoGiFUM17j2xcss1Q4fez1r4XBmCTj2QgbS5TG8g2Qwe4G7K5jxXNKCbB6XkCLmwtLLkYzA1vXZimdFJpnytf5zXXQUNtj"
    )
    assert c.extended_public_key == (
        "apubYbU1ctRJcY5sAaHGMPHxwsNe1hqzFn8Fjk5rrWDwAiJfFb8ei1yhXFgq9EhNgBiiY4zLu1ug9YZy62ENjBezFTdJndF7YQt"
    )
    assert c.extended_public_key_hash == "G7cyxvzqDYAtRpDqUBfb8dM76FafirMWVgb8qKpwdQVT"


def test_public_derivation_matches_private(master):
    public = HDKey(public_key=master.public_key, chain_code=master.chain_code, version=master.version)
    assert public.extended_public_key == master.extended_public_key
    assert public.extended_private_key is None
    for i in (0, 1, 1000):
        assert public.derive_child(i).public_key == master.derive_child(i).public_key


def test_hardened_from_public_key_fails(master):
    public = HDKey(public_key=master.public_key, chain_code=master.chain_code)
    with pytest.raises(MissingPrivateKeyError):
        public.derive_child(0, hardened=True)


def test_derive_without_chain_code_fails(master):
    bare = HDKey(private_key=master.private_key)
    with pytest.raises(MissingChainCodeError):
        bare.derive_child(0)


def test_invalid_child_index(master):
    with pytest.raises(InvalidIndexError):
        master.derive_child(HARDENED)
    with pytest.raises(InvalidIndexError):
        master.derive_child(-1)


def test_parse_extended_key_roundtrip():
    k = HDKey.parse_extended_key(BIP32_M0H_XPRV)
    assert k.is_private
    assert k.depth == 1
    assert k.index == HARDENED
    assert k.extended_private_key == BIP32_M0H_XPRV

    pub = HDKey.parse_extended_key(BIP32_M0H_XPUB)
    assert not pub.is_private
    assert pub.public_key == k.public_key


def test_parse_compact_extended_key(fixed_seed):
    k = HDKey.from_seed(fixed_seed, ANIMIQ_API3)
    parsed = HDKey.parse_extended_key(k.extended_private_key)
    assert parsed.version == ANIMIQ_API3
    assert parsed.private_key == k.private_key
    assert parsed.chain_code == k.chain_code


def test_checksum_mutation_rejected():
    last = BIP32_M_XPUB[-1]
    mutated = BIP32_M_XPUB[:-1] + ("2" if last == "1" else "1")
    with pytest.raises(InvalidChecksumError):
        HDKey.parse_extended_key(mutated)


def test_derive_path_forms(master):
    expected = master.derive_child(44, True).derive_child(1237, True).derive_child(0, True).derive_child(5)
    assert master.derive_path("m/44'/1237'/0'/5").public_key == expected.public_key
    assert master.derive_path("M/44H/1237h/0'/5").public_key == expected.public_key
    assert master.derive_path("m") is master


@pytest.mark.parametrize("path", ["x/0", "m/abc", "m/1''", "0/1"])
def test_derive_path_rejects_malformed(master, path):
    with pytest.raises(InvalidPathError):
        master.derive_path(path)


def test_wipe_private_data(master):
    k = master.derive_child(3)
    k.wipe_private_data()
    assert not k.is_private
    assert k.private_key is None
    assert k.extended_private_key is None
    assert k.extended_public_key


def test_sign_and_verify(master):
    msg = sha256(b"hello nostr")
    sig = master.sign(msg)
    assert len(sig) == 64
    assert master.verify(msg, sig)

    public = HDKey(public_key=master.public_key, chain_code=master.chain_code)
    assert public.verify(msg, sig)
    assert not public.verify(sha256(b"other"), sig)
    with pytest.raises(MissingPrivateKeyError):
        public.sign(msg)


def test_sign_and_verify_length_checks(master):
    with pytest.raises(InvalidLengthError):
        master.sign(b"short")
    with pytest.raises(InvalidLengthError):
        master.verify(sha256(b"x"), b"\x00" * 63)


def test_create_indexes_from_word(master):
    nums = master.create_indexes_from_word("lockword")
    assert len(nums) == 20
    assert all(0 <= n < HARDENED for n in nums)
    assert nums == master.create_indexes_from_word("lockword")
    assert nums != master.create_indexes_from_word("other")

    short = master.create_indexes_from_word("lockword", length=8)
    assert short[:8] == nums[:8]
    assert short[8:16] == [0] * 8
    assert short[16:] == nums[16:]


def test_create_indexes_requires_private_key(master):
    public = HDKey(public_key=master.public_key, chain_code=master.chain_code)
    with pytest.raises(MissingPrivateKeyError):
        public.create_indexes_from_word("lockword")


def test_concat_public_keys(master):
    a, b = master.derive_child(1), master.derive_child(2)
    buf = HDKey.concat_public_keys(a, b)
    assert len(buf) == 130
    keys = HDKey.deconcat_public_keys(buf)
    assert [k.public_key for k in keys] == [a.public_key, b.public_key]
    assert [k.chain_code for k in keys] == [a.chain_code, b.chain_code]
    with pytest.raises(InvalidLengthError):
        HDKey.deconcat_public_keys(buf[:-1])


def test_derive_new_master_key_from_public_material(master):
    public = HDKey(public_key=master.public_key, chain_code=master.chain_code, version=master.version)
    assert public.derive_new_master_key().private_key == master.derive_new_master_key().private_key
    assert master.derive_new_master_key().private_key != master.private_key


def test_nostr_pubkey_is_x_only(master):
    assert master.nostr_pubkey == master.public_key[1:].hex()
    assert len(master.nostr_pubkey) == 64


def _replace_first_il(monkeypatch, il):
    real = hd_key.hmac_sha512
    calls = []

    def first_il_replaced(key, data):
        out = real(key, data)
        calls.append(data)
        return il + out[32:] if len(calls) == 1 else out

    monkeypatch.setattr(hd_key, "hmac_sha512", first_il_replaced)
    return calls


@pytest.mark.parametrize("hardened", [False, True])
def test_il_above_order_retries_next_index(master, monkeypatch, hardened):
    expected = master.derive_child(6, hardened)
    calls = _replace_first_il(monkeypatch, b"\xff" * 32)
    child = master.derive_child(5, hardened)
    assert len(calls) == 2
    assert calls[1].endswith(struct.pack(">I", expected.index))
    assert child.index == expected.index
    assert child.private_key == expected.private_key
    assert child.chain_code == expected.chain_code


def test_il_above_order_retries_next_index_public(master, monkeypatch):
    public = HDKey(public_key=master.public_key, chain_code=master.chain_code)
    expected = public.derive_child(6)
    _replace_first_il(monkeypatch, b"\xff" * 32)
    child = public.derive_child(5)
    assert child.index == 6
    assert child.public_key == expected.public_key
    assert child.chain_code == expected.chain_code


def test_zero_child_scalar_retries_next_index(master, monkeypatch):
    expected = master.derive_child(6)
    il = (hd_key.SECP256K1_ORDER - int.from_bytes(master.private_key, "big")).to_bytes(32, "big")
    _replace_first_il(monkeypatch, il)
    child = master.derive_child(5)
    assert child.index == 6
    assert child.private_key == expected.private_key


def test_identity_child_point_retries_next_index(master, monkeypatch):
    public = HDKey(public_key=master.public_key, chain_code=master.chain_code)
    expected = public.derive_child(6)
    # IL = n - k puts the child point at infinity
    il = (hd_key.SECP256K1_ORDER - int.from_bytes(master.private_key, "big")).to_bytes(32, "big")
    _replace_first_il(monkeypatch, il)
    child = public.derive_child(5)
    assert child.index == 6
    assert child.public_key == expected.public_key


@pytest.mark.parametrize(
    "start,end,replacement",
    [(5, 9, b"\x01\x02\x03\x04"), (9, 13, struct.pack(">I", 1))],
)
def test_zero_depth_rejects_parent_fields(start, end, replacement):
    payload = base58.decode_check(BIP32_M_XPRV)
    assert payload[4] == 0
    tampered = base58.encode_check(payload[:start] + replacement + payload[end:])
    with pytest.raises(InvalidVersionError):
        HDKey.parse_extended_key(tampered)
