"""
Instruction decoding.

Wire form: a u8 variant tag followed by the variant's arguments. Tags 0-40
are the legacy (pre-programmable) instruction set; their arguments are kept
as opaque bytes and handed to the legacy processor untouched. Tags 41-51 are
the modern set, each opening with a u8 args version (only version 0 exists).

    tag  variant          tag  variant
    41   Burn             47   Unlock
    42   Create           48   Migrate
    43   Mint             49   Transfer
    44   Delegate         50   Update
    45   Revoke           51   Verify
    46   Lock

Unknown tags, truncated arguments and trailing bytes after a modern variant
all fail with MalformedInstruction.

Copyright (c) 2026 Metaguard. All rights reserved.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import ClassVar, Dict, Optional, Type, Union

from metaguard.codec import Reader, Writer
from metaguard.errors import MalformedInstruction
from metaguard.payload import AuthorizationData
from metaguard.pubkey import Pubkey
from metaguard.state import Collection, Data, TokenDelegateRole, TokenStandard


ARGS_VERSION = 0


class LegacyKind(IntEnum):
    CreateMetadataAccount = 0
    UpdateMetadataAccount = 1
    DeprecatedCreateMasterEdition = 2
    DeprecatedMintNewEditionFromMasterEditionViaPrintingToken = 3
    UpdatePrimarySaleHappenedViaToken = 4
    DeprecatedSetReservationList = 5
    DeprecatedCreateReservationList = 6
    SignMetadata = 7
    DeprecatedMintPrintingTokensViaToken = 8
    DeprecatedMintPrintingTokens = 9
    CreateMasterEdition = 10
    MintNewEditionFromMasterEditionViaToken = 11
    ConvertMasterEditionV1ToV2 = 12
    MintNewEditionFromMasterEditionViaVaultProxy = 13
    PuffMetadata = 14
    UpdateMetadataAccountV2 = 15
    CreateMetadataAccountV2 = 16
    CreateMasterEditionV3 = 17
    VerifyCollection = 18
    Utilize = 19
    ApproveUseAuthority = 20
    RevokeUseAuthority = 21
    UnverifyCollection = 22
    ApproveCollectionAuthority = 23
    RevokeCollectionAuthority = 24
    SetAndVerifyCollection = 25
    FreezeDelegatedAccount = 26
    ThawDelegatedAccount = 27
    RemoveCreatorVerification = 28
    BurnNft = 29
    VerifySizedCollectionItem = 30
    UnverifySizedCollectionItem = 31
    SetAndVerifySizedCollectionItem = 32
    CreateMetadataAccountV3 = 33
    SetCollectionSize = 34
    SetTokenStandard = 35
    BubblegumSetCollectionSize = 36
    BurnEditionNft = 37
    CreateEscrowAccount = 38
    CloseEscrowAccount = 39
    TransferOutOfEscrow = 40


# Variants kept only so that old clients receive a definite error
REMOVED_KINDS = frozenset({
    LegacyKind.DeprecatedCreateMasterEdition,
    LegacyKind.DeprecatedMintNewEditionFromMasterEditionViaPrintingToken,
    LegacyKind.DeprecatedSetReservationList,
    LegacyKind.DeprecatedCreateReservationList,
    LegacyKind.DeprecatedMintPrintingTokensViaToken,
    LegacyKind.DeprecatedMintPrintingTokens,
    LegacyKind.MintNewEditionFromMasterEditionViaVaultProxy,
})


@dataclass
class LegacyInstruction:
    """A pre-programmable instruction; its body is opaque to the router."""
    kind: LegacyKind
    data: bytes = b""

    @property
    def name(self) -> str:
        return self.kind.name

    def to_bytes(self) -> bytes:
        return bytes([self.kind]) + bytes(self.data)


# =============================================================================
# MODERN INSTRUCTIONS
# =============================================================================

def _write_auth(w: Writer, auth: Optional[AuthorizationData]) -> None:
    w.option(auth, lambda a: a.write(w))


def _read_auth(r: Reader) -> Optional[AuthorizationData]:
    return r.option(lambda: AuthorizationData.read(r))


class ModernInstruction:
    """Base for the modern instruction set."""

    TAG: ClassVar[int] = -1

    @property
    def name(self) -> str:
        return type(self).__name__

    def write_args(self, w: Writer) -> None:
        pass

    @classmethod
    def read_args(cls, r: Reader) -> 'ModernInstruction':
        return cls()

    def to_bytes(self) -> bytes:
        w = Writer().u8(self.TAG).u8(ARGS_VERSION)
        self.write_args(w)
        return w.getvalue()


@dataclass
class Burn(ModernInstruction):
    TAG: ClassVar[int] = 41
    amount: int = 1
    authorization_data: Optional[AuthorizationData] = None

    def write_args(self, w: Writer) -> None:
        w.u64(self.amount)
        _write_auth(w, self.authorization_data)

    @classmethod
    def read_args(cls, r: Reader) -> 'Burn':
        return cls(amount=r.u64(), authorization_data=_read_auth(r))


@dataclass
class Create(ModernInstruction):
    TAG: ClassVar[int] = 42
    data: Data = field(default_factory=lambda: Data(name=""))
    token_standard: TokenStandard = TokenStandard.NonFungible
    is_mutable: bool = True
    primary_sale_happened: bool = False
    decimals: Optional[int] = None
    collection: Optional[Collection] = None
    rule_set: Optional[Pubkey] = None

    def write_args(self, w: Writer) -> None:
        self.data.write(w)
        w.enum(self.token_standard).bool(self.is_mutable).bool(self.primary_sale_happened)
        w.option(self.decimals, w.u8)
        w.option(self.collection, lambda c: w.bool(c.verified).pubkey(c.key))
        w.option(self.rule_set, w.pubkey)

    @classmethod
    def read_args(cls, r: Reader) -> 'Create':
        return cls(
            data=Data.read(r),
            token_standard=r.enum(TokenStandard),
            is_mutable=r.bool(),
            primary_sale_happened=r.bool(),
            decimals=r.option(r.u8),
            collection=r.option(lambda: Collection(verified=r.bool(), key=r.pubkey())),
            rule_set=r.option(r.pubkey),
        )


@dataclass
class Mint(ModernInstruction):
    TAG: ClassVar[int] = 43
    amount: int = 1
    authorization_data: Optional[AuthorizationData] = None

    def write_args(self, w: Writer) -> None:
        w.u64(self.amount)
        _write_auth(w, self.authorization_data)

    @classmethod
    def read_args(cls, r: Reader) -> 'Mint':
        return cls(amount=r.u64(), authorization_data=_read_auth(r))


@dataclass
class Delegate(ModernInstruction):
    TAG: ClassVar[int] = 44
    role: TokenDelegateRole = TokenDelegateRole.Standard
    amount: int = 1
    authorization_data: Optional[AuthorizationData] = None

    def write_args(self, w: Writer) -> None:
        w.enum(self.role).u64(self.amount)
        _write_auth(w, self.authorization_data)

    @classmethod
    def read_args(cls, r: Reader) -> 'Delegate':
        return cls(role=r.enum(TokenDelegateRole), amount=r.u64(), authorization_data=_read_auth(r))


@dataclass
class Revoke(ModernInstruction):
    TAG: ClassVar[int] = 45
    role: TokenDelegateRole = TokenDelegateRole.Standard

    def write_args(self, w: Writer) -> None:
        w.enum(self.role)

    @classmethod
    def read_args(cls, r: Reader) -> 'Revoke':
        return cls(role=r.enum(TokenDelegateRole))


@dataclass
class Lock(ModernInstruction):
    TAG: ClassVar[int] = 46
    authorization_data: Optional[AuthorizationData] = None

    def write_args(self, w: Writer) -> None:
        _write_auth(w, self.authorization_data)

    @classmethod
    def read_args(cls, r: Reader) -> 'Lock':
        return cls(authorization_data=_read_auth(r))


@dataclass
class Unlock(ModernInstruction):
    TAG: ClassVar[int] = 47
    authorization_data: Optional[AuthorizationData] = None

    def write_args(self, w: Writer) -> None:
        _write_auth(w, self.authorization_data)

    @classmethod
    def read_args(cls, r: Reader) -> 'Unlock':
        return cls(authorization_data=_read_auth(r))


@dataclass
class Migrate(ModernInstruction):
    TAG: ClassVar[int] = 48
    rule_set: Optional[Pubkey] = None

    def write_args(self, w: Writer) -> None:
        w.option(self.rule_set, w.pubkey)

    @classmethod
    def read_args(cls, r: Reader) -> 'Migrate':
        return cls(rule_set=r.option(r.pubkey))


@dataclass
class Transfer(ModernInstruction):
    TAG: ClassVar[int] = 49
    amount: int = 1
    authorization_data: Optional[AuthorizationData] = None

    def write_args(self, w: Writer) -> None:
        w.u64(self.amount)
        _write_auth(w, self.authorization_data)

    @classmethod
    def read_args(cls, r: Reader) -> 'Transfer':
        return cls(amount=r.u64(), authorization_data=_read_auth(r))


class RuleSetToggle(IntEnum):
    """How an Update treats the asset's rule set."""
    Keep = 0
    Clear = 1
    Set = 2


@dataclass
class Update(ModernInstruction):
    TAG: ClassVar[int] = 50
    new_update_authority: Optional[Pubkey] = None
    data: Optional[Data] = None
    primary_sale_happened: Optional[bool] = None
    is_mutable: Optional[bool] = None
    rule_set_toggle: RuleSetToggle = RuleSetToggle.Keep
    rule_set: Optional[Pubkey] = None
    authorization_data: Optional[AuthorizationData] = None

    def __post_init__(self):
        if (self.rule_set_toggle == RuleSetToggle.Set) != (self.rule_set is not None):
            raise ValueError("rule_set must be given exactly when rule_set_toggle is Set")

    def write_args(self, w: Writer) -> None:
        w.option(self.new_update_authority, w.pubkey)
        w.option(self.data, lambda d: d.write(w))
        w.option(self.primary_sale_happened, w.bool)
        w.option(self.is_mutable, w.bool)
        w.enum(self.rule_set_toggle)
        if self.rule_set_toggle == RuleSetToggle.Set:
            w.pubkey(self.rule_set)
        _write_auth(w, self.authorization_data)

    @classmethod
    def read_args(cls, r: Reader) -> 'Update':
        new_update_authority = r.option(r.pubkey)
        data = r.option(lambda: Data.read(r))
        primary_sale_happened = r.option(r.bool)
        is_mutable = r.option(r.bool)
        toggle = r.enum(RuleSetToggle)
        rule_set = r.pubkey() if toggle == RuleSetToggle.Set else None
        return cls(
            new_update_authority=new_update_authority,
            data=data,
            primary_sale_happened=primary_sale_happened,
            is_mutable=is_mutable,
            rule_set_toggle=toggle,
            rule_set=rule_set,
            authorization_data=_read_auth(r),
        )


@dataclass
class Verify(ModernInstruction):
    TAG: ClassVar[int] = 51


MODERN_INSTRUCTIONS: Dict[int, Type[ModernInstruction]] = {
    cls.TAG: cls
    for cls in (Burn, Create, Mint, Delegate, Revoke, Lock, Unlock, Migrate, Transfer, Update, Verify)
}

Instruction = Union[ModernInstruction, LegacyInstruction]


def decode_instruction(data: bytes) -> Instruction:
    """Decode raw instruction bytes; any failure is MalformedInstruction."""
    if not data:
        raise MalformedInstruction("empty instruction data")
    r = Reader(data, error=MalformedInstruction)
    tag = r.u8()

    cls = MODERN_INSTRUCTIONS.get(tag)
    if cls is not None:
        version = r.u8()
        if version != ARGS_VERSION:
            raise MalformedInstruction(f"unsupported {cls.__name__} args version {version}")
        instruction = cls.read_args(r)
        r.expect_end()
        return instruction

    try:
        kind = LegacyKind(tag)
    except ValueError:
        raise MalformedInstruction(f"unknown instruction tag {tag}") from None
    return LegacyInstruction(kind=kind, data=r.fixed(r.remaining()))
