"""
Payload Model

A Payload is the fact sheet handed to the rule evaluator for one in-flight
operation: an insertion-ordered mapping from a fixed vocabulary of fact
names to typed values.

    Amount     -> Number(u64)
    Target     -> Pubkey       destination owner of a transfer
    Authority  -> Pubkey       signer initiating the operation
    Holder     -> Pubkey       current owner of the token
    ...

Payloads are built fresh per operation and sealed when dispatched; a sealed
payload rejects further mutation.

Copyright (c) 2026 Metaguard. All rights reserved.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Dict, Iterator, List, Optional, Tuple, Union

from metaguard.codec import Reader, Writer
from metaguard.errors import InvariantViolation
from metaguard.pubkey import Pubkey


class PayloadKey(Enum):
    """Fact names understood by the rule evaluator."""
    Amount = "Amount"
    Authority = "Authority"
    Delegate = "Delegate"
    Holder = "Holder"
    Source = "Source"
    Target = "Target"

    def __str__(self) -> str:
        return self.value


class PayloadTypeTag(IntEnum):
    Pubkey = 0
    Seeds = 1
    MerkleProof = 2
    Number = 3


@dataclass(frozen=True)
class PayloadType:
    """
    Typed fact value.

    Exactly one representation is populated, selected by ``tag``:
    Pubkey -> ``pubkey``; Seeds -> ``seeds``; MerkleProof -> ``leaf`` and
    ``proof``; Number -> ``number``.
    """
    tag: PayloadTypeTag
    pubkey: Optional[Pubkey] = None
    seeds: Tuple[bytes, ...] = ()
    leaf: Optional[bytes] = None
    proof: Tuple[bytes, ...] = ()
    number: Optional[int] = None

    @classmethod
    def of_pubkey(cls, key: Pubkey) -> 'PayloadType':
        return cls(tag=PayloadTypeTag.Pubkey, pubkey=key)

    @classmethod
    def of_seeds(cls, seeds: List[bytes]) -> 'PayloadType':
        return cls(tag=PayloadTypeTag.Seeds, seeds=tuple(bytes(s) for s in seeds))

    @classmethod
    def of_merkle_proof(cls, leaf: bytes, proof: List[bytes]) -> 'PayloadType':
        if len(leaf) != 32 or any(len(p) != 32 for p in proof):
            raise ValueError("merkle leaf and proof nodes must be 32 bytes")
        return cls(tag=PayloadTypeTag.MerkleProof, leaf=bytes(leaf), proof=tuple(bytes(p) for p in proof))

    @classmethod
    def of_number(cls, value: int) -> 'PayloadType':
        if not 0 <= value < (1 << 64):
            raise ValueError(f"payload number out of u64 range: {value}")
        return cls(tag=PayloadTypeTag.Number, number=value)

    def write(self, w: Writer) -> None:
        w.enum(self.tag)
        if self.tag == PayloadTypeTag.Pubkey:
            w.pubkey(self.pubkey)
        elif self.tag == PayloadTypeTag.Seeds:
            w.vec(list(self.seeds), w.bytes)
        elif self.tag == PayloadTypeTag.MerkleProof:
            w.fixed(self.leaf)
            w.vec(list(self.proof), w.fixed)
        else:
            w.u64(self.number)

    @classmethod
    def read(cls, r: Reader) -> 'PayloadType':
        tag = r.enum(PayloadTypeTag)
        if tag == PayloadTypeTag.Pubkey:
            return cls.of_pubkey(r.pubkey())
        if tag == PayloadTypeTag.Seeds:
            return cls.of_seeds(r.vec(r.bytes))
        if tag == PayloadTypeTag.MerkleProof:
            leaf = r.fixed(32)
            return cls.of_merkle_proof(leaf, r.vec(lambda: r.fixed(32)))
        return cls.of_number(r.u64())

    def to_json(self) -> Dict[str, object]:
        if self.tag == PayloadTypeTag.Pubkey:
            return {"Pubkey": str(self.pubkey)}
        if self.tag == PayloadTypeTag.Seeds:
            return {"Seeds": [s.hex() for s in self.seeds]}
        if self.tag == PayloadTypeTag.MerkleProof:
            return {"MerkleProof": {"leaf": self.leaf.hex(), "proof": [p.hex() for p in self.proof]}}
        return {"Number": self.number}


class PayloadSealed(InvariantViolation):
    """Mutation attempted on a payload already handed to the oracle."""
    pass


class Payload:
    """Insertion-ordered fact sheet."""

    def __init__(self, entries: Optional[Dict[str, PayloadType]] = None):
        self._map: Dict[str, PayloadType] = dict(entries or {})
        self._sealed = False

    @property
    def sealed(self) -> bool:
        return self._sealed

    def seal(self) -> 'Payload':
        self._sealed = True
        return self

    def copy(self) -> 'Payload':
        """Unsealed copy with the same entries."""
        return Payload(self._map)

    def insert(self, key: Union[PayloadKey, str], value: PayloadType) -> Optional[PayloadType]:
        """Insert or override a fact; returns the previous value."""
        if self._sealed:
            raise PayloadSealed(f"cannot insert {key} into a sealed payload")
        name = str(key)
        previous = self._map.get(name)
        # an override keeps the key in its original position
        self._map[name] = value
        return previous

    def get(self, key: Union[PayloadKey, str]) -> Optional[PayloadType]:
        return self._map.get(str(key))

    def get_pubkey(self, key: Union[PayloadKey, str]) -> Optional[Pubkey]:
        v = self.get(key)
        if v is None or v.tag != PayloadTypeTag.Pubkey:
            return None
        return v.pubkey

    def get_amount(self, key: Union[PayloadKey, str] = PayloadKey.Amount) -> Optional[int]:
        v = self.get(key)
        if v is None or v.tag != PayloadTypeTag.Number:
            return None
        return v.number

    def keys(self) -> List[str]:
        return list(self._map.keys())

    def items(self) -> List[Tuple[str, PayloadType]]:
        return list(self._map.items())

    def __contains__(self, key: object) -> bool:
        return str(key) in self._map

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._map))

    def __len__(self) -> int:
        return len(self._map)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Payload):
            return NotImplemented
        return self._map == other._map

    def __repr__(self) -> str:
        return f"Payload({self.to_json()})"

    def to_json(self) -> Dict[str, object]:
        return {k: v.to_json() for k, v in self._map.items()}

    def write(self, w: Writer) -> None:
        w.u32(len(self._map))
        for name, value in self._map.items():
            w.string(name)
            value.write(w)

    @classmethod
    def read(cls, r: Reader) -> 'Payload':
        n = r.u32()
        if n > r.remaining():
            r.fixed(n)  # raises with the reader's error type
        entries: Dict[str, PayloadType] = {}
        for _ in range(n):
            name = r.string()
            entries[name] = PayloadType.read(r)
        return cls(entries)


@dataclass
class AuthorizationData:
    """Caller-supplied facts attached to an instruction."""
    payload: Payload

    @classmethod
    def new_empty(cls) -> 'AuthorizationData':
        return cls(payload=Payload())

    def copy(self) -> 'AuthorizationData':
        return AuthorizationData(payload=self.payload.copy())

    def write(self, w: Writer) -> None:
        self.payload.write(w)

    @classmethod
    def read(cls, r: Reader) -> 'AuthorizationData':
        return cls(payload=Payload.read(r))
