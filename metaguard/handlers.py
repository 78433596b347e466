"""
Modern instruction handlers.

Each handler receives the engine context, the positional account slots and
the decoded instruction, and either mutates state or raises a MetadataError.
Handlers run only after the router's lock guard; rollback on failure is the
router's job.

Account layouts (``?`` marks an optional slot):

    Create    metadata, master_edition?, mint, mint_authority*, update_authority, payer*
    Mint      token, token_owner?, metadata, master_edition?, token_record?, mint, authority*
    Transfer  token, token_owner, destination, destination_owner, mint, metadata,
              edition?, owner_token_record?, destination_token_record?, authority*,
              authorization_rules?
    Delegate  delegate, metadata, master_edition?, token_record?, mint, token, authority*,
              authorization_rules?
    Revoke    delegate, metadata, master_edition?, token_record?, mint, token, authority*
    Lock      authority*, token_owner?, token, mint, metadata, edition?, token_record?
    Unlock    (same as Lock)
    Burn      authority*, metadata, mint, token, edition?, token_record?, authorization_rules?
    Update    authority*, metadata, mint, edition?, token_record?, authorization_rules?
    Verify    authority*, metadata
    Migrate   metadata, edition, token, token_owner, mint, authority*, token_record,
              authorization_rules?

(* = must sign)

Copyright (c) 2026 Metaguard. All rights reserved.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Optional

from metaguard.accounts import AccountInfo, AccountSlots, assert_owned_by, assert_signer
from metaguard.auth_rules import (
    AuthRulesValidateParams,
    Operation,
    PolicyOracle,
    assert_valid_authorization,
    auth_rules_validate,
)
from metaguard.errors import (
    AlreadyInitialized,
    CreatorNotFound,
    DataIsImmutable,
    IncorrectOwner,
    InvalidAuthorityType,
    InvalidDelegateRole,
    InvalidOperation,
    InvalidTokenStandard,
    LockedToken,
    MintMismatch,
    MissingEditionAccount,
    MissingTokenRecord,
    UnlockedToken,
)
from metaguard.freeze import (
    TokenTransferParams,
    edition_authorization,
    freeze,
    frozen_transfer,
    thaw,
    token_transfer,
)
from metaguard.instruction import (
    Burn,
    Create,
    Delegate,
    Lock,
    Migrate,
    Mint,
    Revoke,
    RuleSetToggle,
    Transfer,
    Unlock,
    Update,
    Verify,
)
from metaguard.observability import EngineLayer, get_logger
from metaguard.payload import AuthorizationData
from metaguard.pubkey import Pubkey, assert_derivation, cmp_pubkeys
from metaguard.state import (
    LOCK_ROLES,
    TRANSFER_ROLES,
    Collection,
    Creator,
    MasterEdition,
    Metadata,
    ProgrammableConfig,
    TokenDelegateRole,
    TokenRecord,
    TokenStandard,
    TokenState,
    edition_seeds,
    metadata_seeds,
    token_record_seeds,
)
from metaguard.token_ledger import Authorization, TokenAccountState, TokenLedger


logger = get_logger("handlers", EngineLayer.HANDLERS)


@dataclass
class EngineContext:
    """Collaborators a handler may call."""
    program_id: Pubkey
    ledger: TokenLedger
    oracle: PolicyOracle


# =============================================================================
# SHARED CHECKS
# =============================================================================

def _load_metadata(ctx: EngineContext, metadata_info: AccountInfo, mint: Optional[Pubkey] = None) -> Metadata:
    assert_owned_by(metadata_info, ctx.program_id)
    metadata = Metadata.from_account_info(metadata_info)
    if mint is not None and not cmp_pubkeys(metadata.mint, mint):
        raise MintMismatch(metadata=metadata_info.key, mint=mint)
    assert_derivation(ctx.program_id, metadata_info.key, metadata_seeds(ctx.program_id, metadata.mint))
    return metadata


def _load_token_record(
    ctx: EngineContext,
    record_info: Optional[AccountInfo],
    mint: Pubkey,
    token: Pubkey,
) -> TokenRecord:
    if record_info is None:
        raise MissingTokenRecord()
    assert_owned_by(record_info, ctx.program_id)
    assert_derivation(ctx.program_id, record_info.key, token_record_seeds(ctx.program_id, mint, token))
    return TokenRecord.from_account_info(record_info)


def _init_token_record(ctx: EngineContext, record_info: AccountInfo, mint: Pubkey, token: Pubkey) -> TokenRecord:
    if not record_info.data_is_empty():
        raise AlreadyInitialized(account=record_info.key)
    bump = assert_derivation(ctx.program_id, record_info.key, token_record_seeds(ctx.program_id, mint, token))
    record = TokenRecord(bump=bump)
    record_info.owner = ctx.program_id
    record.save(record_info)
    return record


def _token_account(
    ctx: EngineContext,
    token_info: AccountInfo,
    mint: Pubkey,
    owner: Optional[AccountInfo] = None,
) -> TokenAccountState:
    account = ctx.ledger.get_account(token_info.key)
    if not cmp_pubkeys(account.mint, mint):
        raise MintMismatch(token=token_info.key, mint=mint)
    if owner is not None and not cmp_pubkeys(account.owner, owner.key):
        raise IncorrectOwner(token=token_info.key, owner=owner.key)
    return account


def _require_edition(edition_info: Optional[AccountInfo]) -> AccountInfo:
    if edition_info is None:
        raise MissingEditionAccount()
    return edition_info


def _require_whole_token(amount: int, operation: str) -> None:
    """A non-fungible asset only ever moves as its single token."""
    if amount != 1:
        raise InvalidOperation(f"{operation} of a non-fungible asset must move exactly one token", amount=amount)


def _signed(authority: AccountInfo) -> Authorization:
    assert_signer(authority)
    return Authorization.signed_by(authority.key)


def _record_auth_rules(
    ctx: EngineContext,
    operation: Operation,
    metadata: Metadata,
    mint_info: AccountInfo,
    authority_info: AccountInfo,
    auth_rules_info: Optional[AccountInfo],
    auth_data: Optional[AuthorizationData],
    amount: int = 1,
    target_info: Optional[AccountInfo] = None,
    owner_info: Optional[AccountInfo] = None,
) -> None:
    auth_rules_validate(ctx.oracle, AuthRulesValidateParams(
        mint_info=mint_info,
        operation=operation,
        target_info=target_info,
        authority_info=authority_info,
        owner_info=owner_info,
        programmable_config=metadata.programmable_config,
        amount=amount,
        auth_data=auth_data,
        auth_rules_info=auth_rules_info,
    ))


# =============================================================================
# CREATE / MINT
# =============================================================================

def create(ctx: EngineContext, slots: AccountSlots, ix: Create) -> None:
    metadata_info = slots.required(0, "metadata")
    edition_info = slots.optional(1)
    mint_info = slots.required(2, "mint")
    mint_authority = slots.required(3, "mint_authority")
    update_authority = slots.required(4, "update_authority")
    payer = slots.required(5, "payer")

    auth = _signed(mint_authority)
    assert_signer(payer)

    if not metadata_info.data_is_empty():
        raise AlreadyInitialized(account=metadata_info.key)
    assert_derivation(ctx.program_id, metadata_info.key, metadata_seeds(ctx.program_id, mint_info.key))

    ix.data.validate()
    if ix.rule_set is not None and ix.token_standard != TokenStandard.ProgrammableNonFungible:
        raise InvalidTokenStandard("only programmable assets carry a rule set")

    mint_state = ctx.ledger.get_mint(mint_info.key)
    if mint_state.mint_authority is None or not cmp_pubkeys(mint_state.mint_authority, mint_authority.key):
        raise InvalidAuthorityType("signer is not the mint authority", mint=mint_info.key)
    if ix.decimals is not None and ix.decimals != mint_state.decimals:
        raise InvalidOperation("decimals do not match the mint", expected=mint_state.decimals)
    if ix.token_standard.is_non_fungible() and mint_state.decimals != 0:
        raise InvalidTokenStandard("non-fungible assets require a zero-decimal mint")

    # creators cannot be verified at creation except by a signing creator
    signer_keys = {a.key for a in slots.present() if a.is_signer}
    creators = None
    if ix.data.creators is not None:
        creators = [replace(c, verified=c.verified and c.address in signer_keys) for c in ix.data.creators]

    metadata = Metadata(
        update_authority=update_authority.key,
        mint=mint_info.key,
        data=replace(ix.data, creators=creators),
        primary_sale_happened=ix.primary_sale_happened,
        is_mutable=ix.is_mutable,
        token_standard=ix.token_standard,
        collection=Collection(verified=False, key=ix.collection.key) if ix.collection else None,
        programmable_config=ProgrammableConfig(ix.rule_set) if ix.rule_set is not None else None,
    )

    if ix.token_standard.is_non_fungible():
        edition = _require_edition(edition_info)
        if not edition.data_is_empty():
            raise AlreadyInitialized(account=edition.key)
        metadata.edition_nonce = assert_derivation(
            ctx.program_id, edition.key, edition_seeds(ctx.program_id, mint_info.key),
        )
        edition.owner = ctx.program_id
        MasterEdition(supply=0, max_supply=0).save(edition)
        ctx.ledger.set_authority(
            mint_info.key,
            mint_authority.key,
            auth,
            mint_authority=edition.key,
            freeze_authority=edition.key,
        )

    metadata_info.owner = ctx.program_id
    metadata.save(metadata_info)
    logger.info(
        "Asset created",
        operation="create",
        mint=str(mint_info.key),
        token_standard=ix.token_standard.name,
    )


def mint(ctx: EngineContext, slots: AccountSlots, ix: Mint) -> None:
    token_info = slots.required(0, "token")
    token_owner = slots.optional(1)
    metadata_info = slots.required(2, "metadata")
    edition_info = slots.optional(3)
    record_info = slots.optional(4)
    mint_info = slots.required(5, "mint")
    authority = slots.required(6, "authority")

    auth = _signed(authority)
    metadata = _load_metadata(ctx, metadata_info, mint_info.key)
    if not cmp_pubkeys(authority.key, metadata.update_authority):
        raise InvalidAuthorityType("only the update authority may mint")
    _token_account(ctx, token_info, mint_info.key, token_owner)

    standard = metadata.token_standard
    if standard is not None and standard.is_non_fungible():
        if ix.amount != 1 or ctx.ledger.get_mint(mint_info.key).supply != 0:
            raise InvalidOperation("non-fungible assets have a supply of exactly one")
        edition = _require_edition(edition_info)
        ctx.ledger.mint_to(
            mint_info.key,
            token_info.key,
            ix.amount,
            edition.key,
            edition_authorization(ctx.program_id, mint_info.key, edition.key),
        )
    else:
        ctx.ledger.mint_to(mint_info.key, token_info.key, ix.amount, authority.key, auth)

    if metadata.is_programmable():
        if record_info is None:
            raise MissingTokenRecord()
        _init_token_record(ctx, record_info, mint_info.key, token_info.key)
        freeze(ctx.ledger, ctx.program_id, mint_info, token_info, edition_info)

    logger.info("Asset minted", operation="mint", mint=str(mint_info.key), amount=ix.amount)


# =============================================================================
# TRANSFER
# =============================================================================

def transfer(ctx: EngineContext, slots: AccountSlots, ix: Transfer) -> None:
    token_info = slots.required(0, "token")
    token_owner = slots.required(1, "token_owner")
    destination = slots.required(2, "destination")
    destination_owner = slots.required(3, "destination_owner")
    mint_info = slots.required(4, "mint")
    metadata_info = slots.required(5, "metadata")
    edition_info = slots.optional(6)
    owner_record_info = slots.optional(7)
    destination_record_info = slots.optional(8)
    authority = slots.required(9, "authority")
    auth_rules_info = slots.optional(10) if len(slots) > 10 else None

    assert_signer(authority)
    metadata = _load_metadata(ctx, metadata_info, mint_info.key)
    _token_account(ctx, token_info, mint_info.key, token_owner)
    destination_account = _token_account(ctx, destination, mint_info.key, destination_owner)

    params = TokenTransferParams(
        mint=mint_info,
        source=token_info,
        destination=destination,
        amount=ix.amount,
        authority=authority,
    )

    if not metadata.is_programmable():
        token_transfer(ctx.ledger, ctx.program_id, params)
        logger.info("Asset transferred", operation="transfer", mint=str(mint_info.key))
        return

    _require_whole_token(ix.amount, "transfer")
    owner_record = _load_token_record(ctx, owner_record_info, mint_info.key, token_info.key)
    if not cmp_pubkeys(authority.key, token_owner.key):
        is_delegate = (
            owner_record.delegate is not None
            and cmp_pubkeys(owner_record.delegate, authority.key)
            and owner_record.delegate_role in TRANSFER_ROLES
        )
        if not is_delegate:
            raise InvalidAuthorityType("signer is neither the owner nor a transfer delegate")

    if destination_record_info is None:
        raise MissingTokenRecord("destination token record is required")
    assert_derivation(
        ctx.program_id,
        destination_record_info.key,
        token_record_seeds(ctx.program_id, mint_info.key, destination.key),
    )

    _record_auth_rules(
        ctx, Operation.Transfer, metadata, mint_info, authority, auth_rules_info,
        ix.authorization_data,
        amount=ix.amount,
        target_info=destination_owner,
        owner_info=token_owner,
    )

    edition = _require_edition(edition_info)
    if destination_account.frozen:
        thaw(ctx.ledger, ctx.program_id, mint_info, destination, edition)
    frozen_transfer(ctx.ledger, ctx.program_id, params, edition)

    if destination_record_info.data_is_empty():
        _init_token_record(ctx, destination_record_info, mint_info.key, destination.key)
    freeze(ctx.ledger, ctx.program_id, mint_info, destination, edition)

    if owner_record.delegate is not None:
        owner_record.with_delegate(None, None).save(owner_record_info)

    logger.info("Programmable asset transferred", operation="transfer", mint=str(mint_info.key))


# =============================================================================
# DELEGATE / REVOKE
# =============================================================================

def delegate(ctx: EngineContext, slots: AccountSlots, ix: Delegate) -> None:
    delegate_info = slots.required(0, "delegate")
    metadata_info = slots.required(1, "metadata")
    edition_info = slots.optional(2)
    record_info = slots.optional(3)
    mint_info = slots.required(4, "mint")
    token_info = slots.required(5, "token")
    authority = slots.required(6, "authority")
    auth_rules_info = slots.optional(7) if len(slots) > 7 else None

    auth = _signed(authority)
    metadata = _load_metadata(ctx, metadata_info, mint_info.key)
    account = _token_account(ctx, token_info, mint_info.key)
    if not cmp_pubkeys(account.owner, authority.key):
        raise InvalidAuthorityType("only the token owner may delegate")

    if not metadata.is_programmable():
        if ix.role != TokenDelegateRole.Standard:
            raise InvalidDelegateRole(role=ix.role.name)
        ctx.ledger.approve(token_info.key, delegate_info.key, ix.amount, authority.key, auth)
        return

    if ix.role == TokenDelegateRole.Standard:
        raise InvalidDelegateRole("programmable assets do not take a standard delegate")
    record = _load_token_record(ctx, record_info, mint_info.key, token_info.key)
    _record_auth_rules(
        ctx, Operation.Delegate, metadata, mint_info, authority, auth_rules_info,
        ix.authorization_data, amount=ix.amount,
    )

    edition = _require_edition(edition_info)
    thaw(ctx.ledger, ctx.program_id, mint_info, token_info, edition)
    ctx.ledger.approve(token_info.key, delegate_info.key, ix.amount, authority.key, auth)
    freeze(ctx.ledger, ctx.program_id, mint_info, token_info, edition)

    record.with_delegate(delegate_info.key, ix.role).save(record_info)
    logger.info("Delegate set", operation="delegate", role=ix.role.name, mint=str(mint_info.key))


def revoke(ctx: EngineContext, slots: AccountSlots, ix: Revoke) -> None:
    delegate_info = slots.required(0, "delegate")
    metadata_info = slots.required(1, "metadata")
    edition_info = slots.optional(2)
    record_info = slots.optional(3)
    mint_info = slots.required(4, "mint")
    token_info = slots.required(5, "token")
    authority = slots.required(6, "authority")

    auth = _signed(authority)
    metadata = _load_metadata(ctx, metadata_info, mint_info.key)
    account = _token_account(ctx, token_info, mint_info.key)
    if not cmp_pubkeys(account.owner, authority.key):
        raise InvalidAuthorityType("only the token owner may revoke")

    if not metadata.is_programmable():
        if ix.role != TokenDelegateRole.Standard:
            raise InvalidDelegateRole(role=ix.role.name)
        ctx.ledger.revoke(token_info.key, authority.key, auth)
        return

    record = _load_token_record(ctx, record_info, mint_info.key, token_info.key)
    if (
        record.delegate is None
        or not cmp_pubkeys(record.delegate, delegate_info.key)
        or record.delegate_role != ix.role
    ):
        raise InvalidDelegateRole("no such delegate on this token record", role=ix.role.name)

    edition = _require_edition(edition_info)
    thaw(ctx.ledger, ctx.program_id, mint_info, token_info, edition)
    ctx.ledger.revoke(token_info.key, authority.key, auth)
    freeze(ctx.ledger, ctx.program_id, mint_info, token_info, edition)

    record.with_delegate(None, None).save(record_info)
    logger.info("Delegate revoked", operation="revoke", role=ix.role.name, mint=str(mint_info.key))


# =============================================================================
# LOCK / UNLOCK
# =============================================================================

def _set_lock(ctx: EngineContext, slots: AccountSlots, locked: bool) -> None:
    authority = slots.required(0, "authority")
    token_owner = slots.optional(1)
    token_info = slots.required(2, "token")
    mint_info = slots.required(3, "mint")
    metadata_info = slots.required(4, "metadata")
    edition_info = slots.optional(5)
    record_info = slots.optional(6) if len(slots) > 6 else None

    assert_signer(authority)
    metadata = _load_metadata(ctx, metadata_info, mint_info.key)
    account = _token_account(ctx, token_info, mint_info.key, token_owner)

    if metadata.is_programmable():
        record = _load_token_record(ctx, record_info, mint_info.key, token_info.key)
        is_lock_delegate = (
            record.delegate is not None
            and cmp_pubkeys(record.delegate, authority.key)
            and record.delegate_role in LOCK_ROLES
        )
        if not is_lock_delegate:
            raise InvalidAuthorityType("signer is not a lock delegate")
        if locked and record.is_locked():
            raise LockedToken()
        if not locked and not record.is_locked():
            raise UnlockedToken()
        record.state = TokenState.Locked if locked else TokenState.Unlocked
        record.save(record_info)
        return

    if account.delegate is None or not cmp_pubkeys(account.delegate, authority.key):
        raise InvalidAuthorityType("signer is not the token delegate")
    edition = _require_edition(edition_info)
    if locked:
        if account.frozen:
            raise LockedToken()
        freeze(ctx.ledger, ctx.program_id, mint_info, token_info, edition)
    else:
        if not account.frozen:
            raise UnlockedToken()
        thaw(ctx.ledger, ctx.program_id, mint_info, token_info, edition)


def lock(ctx: EngineContext, slots: AccountSlots, ix: Lock) -> None:
    _set_lock(ctx, slots, locked=True)
    logger.info("Asset locked", operation="lock")


def unlock(ctx: EngineContext, slots: AccountSlots, ix: Unlock) -> None:
    _set_lock(ctx, slots, locked=False)
    logger.info("Asset unlocked", operation="unlock")


# =============================================================================
# BURN
# =============================================================================

def burn(ctx: EngineContext, slots: AccountSlots, ix: Burn) -> None:
    authority = slots.required(0, "authority")
    metadata_info = slots.required(1, "metadata")
    mint_info = slots.required(2, "mint")
    token_info = slots.required(3, "token")
    edition_info = slots.optional(4)
    record_info = slots.optional(5)
    auth_rules_info = slots.optional(6) if len(slots) > 6 else None

    auth = _signed(authority)
    metadata = _load_metadata(ctx, metadata_info, mint_info.key)
    account = _token_account(ctx, token_info, mint_info.key)
    if not cmp_pubkeys(account.owner, authority.key):
        raise InvalidAuthorityType("only the token owner may burn")
    non_fungible = metadata.token_standard is not None and metadata.token_standard.is_non_fungible()
    if non_fungible:
        _require_whole_token(ix.amount, "burn")

    if metadata.is_programmable():
        _load_token_record(ctx, record_info, mint_info.key, token_info.key)
        _record_auth_rules(
            ctx, Operation.Burn, metadata, mint_info, authority, auth_rules_info,
            ix.authorization_data, amount=ix.amount,
        )
        thaw(ctx.ledger, ctx.program_id, mint_info, token_info, _require_edition(edition_info))

    ctx.ledger.burn(token_info.key, mint_info.key, ix.amount, authority.key, auth)

    if record_info is not None and metadata.is_programmable():
        record_info.clear()
    if non_fungible:
        metadata_info.clear()
        if edition_info is not None:
            edition_info.clear()

    logger.info("Asset burned", operation="burn", mint=str(mint_info.key), amount=ix.amount)


# =============================================================================
# UPDATE / VERIFY / MIGRATE
# =============================================================================

def update(ctx: EngineContext, slots: AccountSlots, ix: Update) -> None:
    authority = slots.required(0, "authority")
    metadata_info = slots.required(1, "metadata")
    mint_info = slots.required(2, "mint")

    assert_signer(authority)
    metadata = _load_metadata(ctx, metadata_info, mint_info.key)
    if not cmp_pubkeys(authority.key, metadata.update_authority):
        raise InvalidAuthorityType("only the update authority may update")

    if ix.data is not None:
        if not metadata.is_mutable:
            raise DataIsImmutable()
        ix.data.validate()
        # verification flags are carried over, never granted by an update
        verified = {c.address for c in metadata.data.creators or [] if c.verified}
        creators = None
        if ix.data.creators is not None:
            creators = [replace(c, verified=c.address in verified) for c in ix.data.creators]
        metadata.data = replace(ix.data, creators=creators)

    if ix.primary_sale_happened is not None:
        if metadata.primary_sale_happened and not ix.primary_sale_happened:
            raise InvalidOperation("primary sale cannot be reset")
        metadata.primary_sale_happened = ix.primary_sale_happened

    if ix.is_mutable is not None:
        if ix.is_mutable and not metadata.is_mutable:
            raise DataIsImmutable("an immutable asset cannot be made mutable")
        metadata.is_mutable = ix.is_mutable

    if ix.rule_set_toggle != RuleSetToggle.Keep:
        if not metadata.is_programmable():
            raise InvalidTokenStandard("only programmable assets carry a rule set")
        if ix.rule_set_toggle == RuleSetToggle.Clear:
            metadata.programmable_config = None
        else:
            metadata.programmable_config = ProgrammableConfig(ix.rule_set)

    if ix.new_update_authority is not None:
        metadata.update_authority = ix.new_update_authority

    metadata.save(metadata_info)
    logger.info("Asset updated", operation="update", mint=str(mint_info.key))


def verify(ctx: EngineContext, slots: AccountSlots, ix: Verify) -> None:
    authority = slots.required(0, "authority")
    metadata_info = slots.required(1, "metadata")

    assert_signer(authority)
    metadata = _load_metadata(ctx, metadata_info)

    creators = metadata.data.creators or []
    for i, creator in enumerate(creators):
        if cmp_pubkeys(creator.address, authority.key):
            creators[i] = Creator(creator.address, True, creator.share)
            break
    else:
        raise CreatorNotFound(creator=authority.key)

    metadata.save(metadata_info)
    logger.info("Creator verified", operation="verify", creator=str(authority.key))


def migrate(ctx: EngineContext, slots: AccountSlots, ix: Migrate) -> None:
    metadata_info = slots.required(0, "metadata")
    edition = slots.required(1, "edition")
    token_info = slots.required(2, "token")
    token_owner = slots.required(3, "token_owner")
    mint_info = slots.required(4, "mint")
    authority = slots.required(5, "authority")
    record_info = slots.required(6, "token_record")
    auth_rules_info = slots.optional(7) if len(slots) > 7 else None

    assert_signer(authority)
    metadata = _load_metadata(ctx, metadata_info, mint_info.key)
    if not cmp_pubkeys(authority.key, metadata.update_authority):
        raise InvalidAuthorityType("only the update authority may migrate")
    if metadata.token_standard != TokenStandard.NonFungible:
        raise InvalidTokenStandard("only non-fungible assets can be migrated")

    assert_owned_by(edition, ctx.program_id)
    assert_derivation(ctx.program_id, edition.key, edition_seeds(ctx.program_id, mint_info.key))
    MasterEdition.from_bytes(bytes(edition.data))
    account = _token_account(ctx, token_info, mint_info.key, token_owner)

    if ix.rule_set is not None:
        config = ProgrammableConfig(ix.rule_set)
        assert_valid_authorization(auth_rules_info, config)
        metadata.programmable_config = config
    metadata.token_standard = TokenStandard.ProgrammableNonFungible

    _init_token_record(ctx, record_info, mint_info.key, token_info.key)
    if not account.frozen:
        freeze(ctx.ledger, ctx.program_id, mint_info, token_info, edition)

    metadata.save(metadata_info)
    logger.info("Asset migrated to programmable", operation="migrate", mint=str(mint_info.key))
