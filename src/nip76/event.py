"""
Wire event contract (NIP-01 shape) produced and consumed by the index layer.
"""

import json
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List

from coincurve import PublicKeyXOnly

from .hd_key import HDKey
from .utils import sha256


@dataclass
class NostrEvent:
    kind: int
    content: str = ""
    tags: List[List[str]] = field(default_factory=list)
    created_at: int = 0
    pubkey: str = ""
    id: str = ""
    sig: str = ""

    def serialize(self) -> str:
        return json.dumps(
            [0, self.pubkey, self.created_at, self.kind, self.tags, self.content],
            separators=(",", ":"),
            ensure_ascii=False,
        )

    def compute_id(self) -> str:
        return sha256(self.serialize()).hex()

    def sign(self, key: HDKey) -> "NostrEvent":
        self.pubkey = key.nostr_pubkey
        self.id = self.compute_id()
        self.sig = key.sign(bytes.fromhex(self.id)).hex()
        return self

    def verify_signature(self) -> bool:
        try:
            if self.id != self.compute_id():
                return False
            return PublicKeyXOnly(bytes.fromhex(self.pubkey)).verify(
                bytes.fromhex(self.sig), bytes.fromhex(self.id)
            )
        except (ValueError, TypeError):
            return False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "NostrEvent":
        return cls(
            kind=int(d["kind"]),
            content=d.get("content", ""),
            tags=[list(t) for t in d.get("tags", [])],
            created_at=int(d.get("created_at", 0)),
            pubkey=d.get("pubkey", ""),
            id=d.get("id", ""),
            sig=d.get("sig", ""),
        )
