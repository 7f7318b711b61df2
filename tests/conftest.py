"""Shared fixtures for the nip76 test suite."""

import pytest

from nip76 import HDKey
from nip76.hdk_index import HDKIndex, HDKIndexType
from nip76.versions import BITCOIN_MAIN

# 32 words of a fixed seed; each contributes its low byte
FIXED_SEED_WORDS = [
    3123626959, 3154208545, 3994305465, 1472568558,
    3618158349, 3439014541, 3076634082, 633804803,
    4263442355, 3170210389, 505229381, 2560623682,
    686940108, 2059047636, 928116089, 412977049,
    2174918852, 2494639319, 4195938927, 3120642578,
    3035152170, 2248083361, 1431437554, 27719868,
    2664534681, 2934908797, 3366745739, 3643461863,
    439150876, 2772462065, 3041920294, 2184494669,
]

WORDSET = [11, 22, 333, 4444, 55555, 666666, 7777777, 88888888]


@pytest.fixture
def fixed_seed():
    return bytes(w & 0xFF for w in FIXED_SEED_WORDS)


@pytest.fixture
def master(fixed_seed):
    return HDKey.from_seed(fixed_seed, BITCOIN_MAIN)


@pytest.fixture
def wordset():
    return list(WORDSET)


@pytest.fixture
def parents(master):
    return master.derive_path("m/76'/0'"), master.derive_path("m/76'/1'")


@pytest.fixture
def channel(parents):
    signing, crypto = parents
    return HDKIndex(HDKIndexType.TIME_BASED, signing, crypto)


@pytest.fixture
def private_index(parents, wordset):
    signing, crypto = parents
    return HDKIndex(HDKIndexType.PRIVATE | HDKIndexType.SEQUENTIAL, signing, crypto, wordset=wordset)


@pytest.fixture
def guest_key(master):
    return master.derive_path("m/44'/1237'/7'/0/0")
