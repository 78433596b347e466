"""
Public keys and program-derived addresses.

A Pubkey is a 32-byte Ed25519 public key or a program-derived address
(PDA). PDAs are sha256 digests that deliberately fall *off* the Ed25519
curve, so no private key can ever sign for them; only the deriving program
can authorise with them by presenting the seeds.

    address = sha256(seed_0 || ... || seed_n || program_id || "ProgramDerivedAddress")

find_program_address appends a single bump byte (255 down to 0) and returns
the first off-curve result, which is the canonical address for the seeds.

Copyright (c) 2026 Metaguard. All rights reserved.
"""

from __future__ import annotations

import hashlib
import hmac
import itertools
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple, Union

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from metaguard.errors import DerivationMismatch


PUBKEY_BYTES = 32
MAX_SEED_LEN = 32
MAX_SEEDS = 16
PDA_MARKER = b"ProgramDerivedAddress"

B58_ALPHABET = b"123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"
B58_MAP = {c: i for i, c in enumerate(B58_ALPHABET)}

# Curve25519 field parameters (RFC 8032 section 5.1)
_P = 2 ** 255 - 19
_D = (-121665 * pow(121666, _P - 2, _P)) % _P

_unique_counter = itertools.count(1)


class AddressOnCurve(ValueError):
    """Derived digest is a valid curve point and cannot serve as a PDA."""
    pass


def b58decode(s: Union[str, bytes]) -> bytes:
    if isinstance(s, str):
        s_bytes = s.encode("ascii")
    else:
        s_bytes = s
    num = 0
    for c in s_bytes:
        if c not in B58_MAP:
            raise ValueError("Invalid base58 character")
        num = num * 58 + B58_MAP[c]
    n_pad = 0
    for c in s_bytes:
        if c == B58_ALPHABET[0]:
            n_pad += 1
        else:
            break
    full = num.to_bytes((num.bit_length() + 7) // 8, "big") if num else b""
    return b"\x00" * n_pad + full


def b58encode(b: bytes) -> str:
    n_pad = 0
    for c in b:
        if c == 0:
            n_pad += 1
        else:
            break
    num = int.from_bytes(b, "big")
    out = bytearray()
    while num > 0:
        num, rem = divmod(num, 58)
        out.append(B58_ALPHABET[rem])
    out.extend(B58_ALPHABET[0] for _ in range(n_pad))
    out.reverse()
    return out.decode("ascii")


def is_on_curve(data: bytes) -> bool:
    """Return True if the 32 bytes decompress to an Ed25519 point.

    The y coordinate is the low 255 bits (little endian); the point exists
    iff (y^2 - 1) / (d*y^2 + 1) is a square modulo p.
    """
    if len(data) != PUBKEY_BYTES:
        return False
    y = int.from_bytes(data, "little") & ((1 << 255) - 1)
    y2 = (y * y) % _P
    u = (y2 - 1) % _P
    v = (_D * y2 + 1) % _P
    x2 = (u * pow(v, _P - 2, _P)) % _P
    if x2 == 0:
        return True
    # Euler's criterion
    return pow(x2, (_P - 1) // 2, _P) == 1


@dataclass(frozen=True)
class Pubkey:
    """
    32-byte account address.

    Rendered in base58, the way addresses are shown by wallets and explorers.
    """
    data: bytes

    def __post_init__(self):
        if not isinstance(self.data, (bytes, bytearray)):
            raise TypeError(f"Pubkey data must be bytes, got {type(self.data).__name__}")
        if len(self.data) != PUBKEY_BYTES:
            raise ValueError(f"Pubkey must be exactly 32 bytes, got {len(self.data)}")
        if isinstance(self.data, bytearray):
            object.__setattr__(self, "data", bytes(self.data))

    @classmethod
    def from_string(cls, value: str) -> 'Pubkey':
        """Parse a base58 address."""
        return cls(b58decode(value))

    @classmethod
    def default(cls) -> 'Pubkey':
        """The all-zero address."""
        return cls(b"\x00" * PUBKEY_BYTES)

    @classmethod
    def new_unique(cls) -> 'Pubkey':
        """Deterministic, process-unique address for tests and fixtures."""
        n = next(_unique_counter)
        return cls(hashlib.sha256(b"metaguard-unique" + n.to_bytes(8, "little")).digest())

    def __bytes__(self) -> bytes:
        return self.data

    def __str__(self) -> str:
        return b58encode(self.data)

    def __repr__(self) -> str:
        return f"Pubkey({b58encode(self.data)})"

    def is_on_curve(self) -> bool:
        return is_on_curve(self.data)


class Keypair:
    """Ed25519 signing keypair for wallet-style (on-curve) addresses."""

    def __init__(self, private_key: Optional[Ed25519PrivateKey] = None):
        self._private_key = private_key or Ed25519PrivateKey.generate()
        raw = self._private_key.public_key().public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw,
        )
        self.pubkey = Pubkey(raw)

    @classmethod
    def generate(cls) -> 'Keypair':
        return cls()

    def sign(self, message: bytes) -> bytes:
        return self._private_key.sign(message)

    def __repr__(self) -> str:
        return f"Keypair({self.pubkey})"


def cmp_pubkeys(a: Pubkey, b: Pubkey) -> bool:
    """Constant-time address comparison."""
    return hmac.compare_digest(a.data, b.data)


Seed = Union[bytes, str, Pubkey]


def _seed_bytes(seed: Seed) -> bytes:
    if isinstance(seed, Pubkey):
        return seed.data
    if isinstance(seed, str):
        return seed.encode("utf-8")
    return bytes(seed)


def create_program_address(seeds: Sequence[Seed], program_id: Pubkey) -> Pubkey:
    """Derive the address for the exact seeds given (bump included).

    Raises ValueError when a seed is too long or the digest lands on the
    curve, in which case the seeds are not a valid PDA.
    """
    raw = [_seed_bytes(s) for s in seeds]
    if len(raw) > MAX_SEEDS:
        raise ValueError(f"Too many seeds (max {MAX_SEEDS})")
    for s in raw:
        if len(s) > MAX_SEED_LEN:
            raise ValueError(f"Seed too long (max {MAX_SEED_LEN} bytes)")

    h = hashlib.sha256()
    for s in raw:
        h.update(s)
    h.update(program_id.data)
    h.update(PDA_MARKER)
    digest = h.digest()

    if is_on_curve(digest):
        raise AddressOnCurve("Derived address lies on the ed25519 curve")
    return Pubkey(digest)


def find_program_address(seeds: Sequence[Seed], program_id: Pubkey) -> Tuple[Pubkey, int]:
    """Find the canonical (address, bump) pair for the seeds."""
    for bump in range(255, -1, -1):
        try:
            address = create_program_address(list(seeds) + [bytes([bump])], program_id)
        except AddressOnCurve:
            continue
        return address, bump
    raise ValueError("Unable to find a viable program address bump seed")


def assert_derivation(program_id: Pubkey, account_key: Pubkey, seeds: Sequence[Seed]) -> int:
    """Check that account_key is the canonical PDA for seeds; return the bump."""
    expected, bump = find_program_address(seeds, program_id)
    if not cmp_pubkeys(expected, account_key):
        raise DerivationMismatch(
            "account does not match derived address",
            expected=expected,
            actual=account_key,
        )
    return bump


def seed_list(seeds: Sequence[Seed]) -> List[bytes]:
    """Normalise mixed seeds into raw bytes."""
    return [_seed_bytes(s) for s in seeds]
