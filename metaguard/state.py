"""
Persisted record layouts owned by the engine.

Two record kinds matter to the guard logic:

    Metadata (Asset Record)   key=MetadataV1, one per mint
    TokenRecord (State)       key=TokenRecord, one per (mint, token account),
                              programmable assets only

Byte 0 of every engine-owned account is the Key discriminator. For token
records the lock state lives at TOKEN_STATE_INDEX; the lock guard reads that
byte directly instead of decoding the whole record. Both offsets are a stable
contract with the layouts below and must not move between versions.

Copyright (c) 2026 Metaguard. All rights reserved.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import IntEnum
from typing import List, Optional

from metaguard.accounts import AccountInfo
from metaguard.codec import Reader, Writer
from metaguard.errors import DataTypeMismatch, DeserializationError, InvalidAssetData
from metaguard.pubkey import Pubkey, find_program_address


# Seeds for derived addresses
PREFIX = "metadata"
EDITION = "edition"
TOKEN_RECORD_SEED = "token_record"

DISCRIMINATOR_INDEX = 0
TOKEN_STATE_INDEX = 2

MAX_NAME_LENGTH = 32
MAX_SYMBOL_LENGTH = 10
MAX_URI_LENGTH = 200
MAX_CREATOR_LIMIT = 5
MAX_SELLER_FEE_BASIS_POINTS = 10000

# Allocated sizes; records are zero padded up to these lengths.
MAX_METADATA_LEN = 1 + 32 + 32 + (4 + MAX_NAME_LENGTH) + (4 + MAX_SYMBOL_LENGTH) \
    + (4 + MAX_URI_LENGTH) + 2 + (1 + 4 + MAX_CREATOR_LIMIT * 34) + 1 + 1 + 2 + 2 \
    + 34 + 33
TOKEN_RECORD_LEN = 1 + 1 + 1 + 9 + 33 + 2
MAX_MASTER_EDITION_LEN = 1 + 8 + 9


class Key(IntEnum):
    """Account discriminator stored at DISCRIMINATOR_INDEX."""
    Uninitialized = 0
    EditionV1 = 1
    MasterEditionV1 = 2
    ReservationListV1 = 3
    MetadataV1 = 4
    ReservationListV2 = 5
    MasterEditionV2 = 6
    EditionMarker = 7
    UseAuthorityRecord = 8
    CollectionAuthorityRecord = 9
    TokenOwnedEscrow = 10
    TokenRecord = 11


class TokenStandard(IntEnum):
    NonFungible = 0
    FungibleAsset = 1
    Fungible = 2
    NonFungibleEdition = 3
    ProgrammableNonFungible = 4

    def is_non_fungible(self) -> bool:
        return self in (
            TokenStandard.NonFungible,
            TokenStandard.NonFungibleEdition,
            TokenStandard.ProgrammableNonFungible,
        )


class TokenState(IntEnum):
    """Lock state of a token record."""
    Unlocked = 0
    Locked = 1


class TokenDelegateRole(IntEnum):
    Sale = 0
    Transfer = 1
    Utility = 2
    Staking = 3
    Standard = 4
    LockedTransfer = 5
    Migration = 6


# Roles permitted to move the token on the owner's behalf
TRANSFER_ROLES = frozenset({
    TokenDelegateRole.Sale,
    TokenDelegateRole.Transfer,
    TokenDelegateRole.LockedTransfer,
    TokenDelegateRole.Migration,
})

# Roles permitted to lock and unlock
LOCK_ROLES = frozenset({
    TokenDelegateRole.Utility,
    TokenDelegateRole.Staking,
    TokenDelegateRole.LockedTransfer,
})


# =============================================================================
# DERIVED ADDRESSES
# =============================================================================

def metadata_seeds(program_id: Pubkey, mint: Pubkey) -> List[bytes]:
    return [PREFIX.encode(), program_id.data, mint.data]


def edition_seeds(program_id: Pubkey, mint: Pubkey) -> List[bytes]:
    return [PREFIX.encode(), program_id.data, mint.data, EDITION.encode()]


def token_record_seeds(program_id: Pubkey, mint: Pubkey, token: Pubkey) -> List[bytes]:
    return [PREFIX.encode(), program_id.data, mint.data, TOKEN_RECORD_SEED.encode(), token.data]


def find_metadata_address(program_id: Pubkey, mint: Pubkey) -> Pubkey:
    return find_program_address(metadata_seeds(program_id, mint), program_id)[0]


def find_edition_address(program_id: Pubkey, mint: Pubkey) -> Pubkey:
    return find_program_address(edition_seeds(program_id, mint), program_id)[0]


def find_token_record_address(program_id: Pubkey, mint: Pubkey, token: Pubkey) -> Pubkey:
    return find_program_address(token_record_seeds(program_id, mint, token), program_id)[0]


# =============================================================================
# ASSET RECORD
# =============================================================================

@dataclass(frozen=True)
class Creator:
    address: Pubkey
    verified: bool = False
    share: int = 100


@dataclass(frozen=True)
class Collection:
    verified: bool
    key: Pubkey


@dataclass(frozen=True)
class ProgrammableConfig:
    """Pointer to an externally stored rule set."""
    rule_set: Pubkey


@dataclass
class Data:
    """Mutable descriptive fields of an asset."""
    name: str
    symbol: str = ""
    uri: str = ""
    seller_fee_basis_points: int = 0
    creators: Optional[List[Creator]] = None

    def validate(self) -> None:
        if len(self.name.encode("utf-8")) > MAX_NAME_LENGTH:
            raise InvalidAssetData(f"name longer than {MAX_NAME_LENGTH} bytes")
        if len(self.symbol.encode("utf-8")) > MAX_SYMBOL_LENGTH:
            raise InvalidAssetData(f"symbol longer than {MAX_SYMBOL_LENGTH} bytes")
        if len(self.uri.encode("utf-8")) > MAX_URI_LENGTH:
            raise InvalidAssetData(f"uri longer than {MAX_URI_LENGTH} bytes")
        if not 0 <= self.seller_fee_basis_points <= MAX_SELLER_FEE_BASIS_POINTS:
            raise InvalidAssetData("seller fee basis points out of range")
        if self.creators is not None:
            if len(self.creators) > MAX_CREATOR_LIMIT:
                raise InvalidAssetData(f"more than {MAX_CREATOR_LIMIT} creators")
            if sum(c.share for c in self.creators) != 100:
                raise InvalidAssetData("creator shares must sum to 100")
            if len({c.address for c in self.creators}) != len(self.creators):
                raise InvalidAssetData("duplicate creator address")

    def write(self, w: Writer) -> None:
        w.string(self.name).string(self.symbol).string(self.uri)
        w.u16(self.seller_fee_basis_points)
        w.option(self.creators, lambda cs: w.vec(cs, lambda c: _write_creator(w, c)))

    @classmethod
    def read(cls, r: Reader) -> 'Data':
        return cls(
            name=r.string(),
            symbol=r.string(),
            uri=r.string(),
            seller_fee_basis_points=r.u16(),
            creators=r.option(lambda: r.vec(lambda: _read_creator(r))),
        )


def _write_creator(w: Writer, c: Creator) -> None:
    w.pubkey(c.address).bool(c.verified).u8(c.share)


def _read_creator(r: Reader) -> Creator:
    return Creator(address=r.pubkey(), verified=r.bool(), share=r.u8())


@dataclass
class Metadata:
    """
    Asset Record.

    The discriminator is checked before any other byte is trusted; records
    carrying any other key are opaque to this type.
    """
    update_authority: Pubkey
    mint: Pubkey
    data: Data
    primary_sale_happened: bool = False
    is_mutable: bool = True
    edition_nonce: Optional[int] = None
    token_standard: Optional[TokenStandard] = None
    collection: Optional[Collection] = None
    programmable_config: Optional[ProgrammableConfig] = None
    key: Key = Key.MetadataV1

    def is_programmable(self) -> bool:
        return self.token_standard == TokenStandard.ProgrammableNonFungible

    def to_bytes(self) -> bytes:
        w = Writer()
        w.enum(self.key)
        w.pubkey(self.update_authority).pubkey(self.mint)
        self.data.write(w)
        w.bool(self.primary_sale_happened).bool(self.is_mutable)
        w.option(self.edition_nonce, w.u8)
        w.option(self.token_standard, w.enum)
        w.option(self.collection, lambda c: w.bool(c.verified).pubkey(c.key))
        w.option(self.programmable_config, lambda p: w.pubkey(p.rule_set))
        return w.getvalue()

    @classmethod
    def from_bytes(cls, data: bytes) -> 'Metadata':
        if not data or data[DISCRIMINATOR_INDEX] != Key.MetadataV1:
            raise DataTypeMismatch("account is not a metadata record")
        r = Reader(data)
        r.u8()
        return cls(
            update_authority=r.pubkey(),
            mint=r.pubkey(),
            data=Data.read(r),
            primary_sale_happened=r.bool(),
            is_mutable=r.bool(),
            edition_nonce=r.option(r.u8),
            token_standard=r.option(lambda: r.enum(TokenStandard)),
            collection=r.option(lambda: Collection(verified=r.bool(), key=r.pubkey())),
            programmable_config=r.option(lambda: ProgrammableConfig(rule_set=r.pubkey())),
        )

    @classmethod
    def from_account_info(cls, account: AccountInfo) -> 'Metadata':
        return cls.from_bytes(bytes(account.data))

    def save(self, account: AccountInfo) -> None:
        if account.data_len() < MAX_METADATA_LEN:
            account.data[:] = bytes(MAX_METADATA_LEN)
        account.write(self.to_bytes())


# =============================================================================
# STATE RECORD
# =============================================================================

@dataclass(frozen=True)
class TokenRecordPrefix:
    """
    Fixed three-byte prefix of a token record.

    Fast path for the lock guard, which runs on every instruction. Reading
    through this view is only correct while DISCRIMINATOR_INDEX and
    TOKEN_STATE_INDEX match the TokenRecord layout below.
    """
    key: int
    bump: int
    state: int

    SIZE = TOKEN_STATE_INDEX + 1

    @classmethod
    def from_bytes(cls, data: bytes) -> 'TokenRecordPrefix':
        if len(data) < cls.SIZE:
            raise DeserializationError(f"token record prefix needs {cls.SIZE} bytes, got {len(data)}")
        return cls(key=data[DISCRIMINATOR_INDEX], bump=data[1], state=data[TOKEN_STATE_INDEX])

    def is_token_record(self) -> bool:
        return self.key == Key.TokenRecord

    def is_locked(self) -> bool:
        return self.is_token_record() and self.state == TokenState.Locked


@dataclass
class TokenRecord:
    """Per-holder auxiliary state for a programmable asset."""
    bump: int
    state: TokenState = TokenState.Unlocked
    rule_set_revision: Optional[int] = None
    delegate: Optional[Pubkey] = None
    delegate_role: Optional[TokenDelegateRole] = None
    key: Key = Key.TokenRecord

    def is_locked(self) -> bool:
        return self.state == TokenState.Locked

    def to_bytes(self) -> bytes:
        w = Writer()
        w.enum(self.key).u8(self.bump).enum(self.state)
        w.option(self.rule_set_revision, w.u64)
        w.option(self.delegate, w.pubkey)
        w.option(self.delegate_role, w.enum)
        return w.getvalue()

    @classmethod
    def from_bytes(cls, data: bytes) -> 'TokenRecord':
        if not data or data[DISCRIMINATOR_INDEX] != Key.TokenRecord:
            raise DataTypeMismatch("account is not a token record")
        r = Reader(data)
        r.u8()
        return cls(
            bump=r.u8(),
            state=r.enum(TokenState),
            rule_set_revision=r.option(r.u64),
            delegate=r.option(r.pubkey),
            delegate_role=r.option(lambda: r.enum(TokenDelegateRole)),
        )

    @classmethod
    def from_account_info(cls, account: AccountInfo) -> 'TokenRecord':
        return cls.from_bytes(bytes(account.data))

    def save(self, account: AccountInfo) -> None:
        if account.data_len() < TOKEN_RECORD_LEN:
            account.data[:] = bytes(TOKEN_RECORD_LEN)
        account.write(self.to_bytes())

    def with_delegate(self, delegate: Optional[Pubkey], role: Optional[TokenDelegateRole]) -> 'TokenRecord':
        return replace(self, delegate=delegate, delegate_role=role)


# =============================================================================
# MASTER EDITION
# =============================================================================

@dataclass
class MasterEdition:
    supply: int = 0
    max_supply: Optional[int] = 0
    key: Key = Key.MasterEditionV2

    def to_bytes(self) -> bytes:
        w = Writer()
        w.enum(self.key).u64(self.supply)
        w.option(self.max_supply, w.u64)
        return w.getvalue()

    @classmethod
    def from_bytes(cls, data: bytes) -> 'MasterEdition':
        if not data or data[DISCRIMINATOR_INDEX] != Key.MasterEditionV2:
            raise DataTypeMismatch("account is not a master edition")
        r = Reader(data)
        r.u8()
        return cls(supply=r.u64(), max_supply=r.option(r.u64))

    def save(self, account: AccountInfo) -> None:
        if account.data_len() < MAX_MASTER_EDITION_LEN:
            account.data[:] = bytes(MAX_MASTER_EDITION_LEN)
        account.write(self.to_bytes())
