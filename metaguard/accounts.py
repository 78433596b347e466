"""
Account containers handed to the engine with every instruction.

Instructions address accounts positionally. Optional positions are
represented by ``None`` in the account list: absence is a first-class value
rather than a reserved address, while the positional contract of each
instruction stays unchanged.

Copyright (c) 2026 Metaguard. All rights reserved.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Sequence

from metaguard.errors import (
    IncorrectOwner,
    MissingRequiredSignature,
    NotEnoughAccountKeys,
)
from metaguard.pubkey import Pubkey, cmp_pubkeys


@dataclass(eq=False)
class AccountInfo:
    """A borrowed view of one ledger account for the duration of a request."""
    key: Pubkey
    owner: Pubkey
    data: bytearray = field(default_factory=bytearray)
    lamports: int = 0
    is_signer: bool = False
    is_writable: bool = True

    def __post_init__(self):
        if not isinstance(self.data, bytearray):
            self.data = bytearray(self.data)

    def data_is_empty(self) -> bool:
        return len(self.data) == 0

    def data_len(self) -> int:
        return len(self.data)

    def write(self, payload: bytes) -> None:
        """Replace the account contents, keeping any existing padding.

        Existing accounts keep their allocated size; a record shorter than the
        allocation is zero padded.
        """
        if len(payload) >= len(self.data):
            self.data[:] = payload
        else:
            self.data[:] = payload + b"\x00" * (len(self.data) - len(payload))

    def clear(self) -> None:
        """Zero the account contents (discriminator becomes Uninitialized)."""
        self.data[:] = b"\x00" * len(self.data)

    def to_account_meta(self) -> 'AccountMeta':
        return AccountMeta(self.key, self.is_signer, self.is_writable)


@dataclass(frozen=True)
class AccountMeta:
    """Account reference forwarded to another engine (no data)."""
    pubkey: Pubkey
    is_signer: bool
    is_writable: bool


class AccountSlots:
    """
    Positional account list with explicit optional slots.

    ``required(i)`` fails when the slot is past the end or empty;
    ``optional(i)`` fails only when the slot is past the end.
    """

    def __init__(self, accounts: Sequence[Optional[AccountInfo]]):
        self._accounts: List[Optional[AccountInfo]] = list(accounts)

    def __len__(self) -> int:
        return len(self._accounts)

    def __iter__(self) -> Iterator[Optional[AccountInfo]]:
        return iter(self._accounts)

    def present(self) -> Iterator[AccountInfo]:
        """Iterate over the supplied (non-absent) accounts."""
        return (a for a in self._accounts if a is not None)

    def optional(self, index: int) -> Optional[AccountInfo]:
        if index < 0 or index >= len(self._accounts):
            raise NotEnoughAccountKeys(f"account index {index} out of range", index=index)
        return self._accounts[index]

    def required(self, index: int, name: str = "") -> AccountInfo:
        account = self.optional(index)
        if account is None:
            raise NotEnoughAccountKeys(
                f"required account {name or index} not supplied",
                index=index,
            )
        return account


def assert_signer(account: AccountInfo) -> None:
    if not account.is_signer:
        raise MissingRequiredSignature(account=account.key)


def assert_owned_by(account: AccountInfo, owner: Pubkey) -> None:
    if not cmp_pubkeys(account.owner, owner):
        raise IncorrectOwner(account=account.key, owner=account.owner)
