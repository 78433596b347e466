"""
Freeze/Thaw Transitioner

Programmable assets sit in frozen token accounts between operations. The
engine is the freeze authority through the asset's edition address, so every
freeze and thaw is signed with the edition seeds after checking that the
supplied edition account really is that address.

    frozen_transfer:   thaw(source) ─► transfer ─► freeze(source)

Each step is a separate ledger call; a failure part way through is undone by
the router's rollback, not here.

Copyright (c) 2026 Metaguard. All rights reserved.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from metaguard.accounts import AccountInfo
from metaguard.errors import MissingEditionAccount
from metaguard.observability import EngineLayer, get_logger
from metaguard.pubkey import Pubkey, assert_derivation
from metaguard.state import edition_seeds
from metaguard.token_ledger import Authorization, TokenLedger


logger = get_logger("freeze", EngineLayer.FREEZE)


def edition_signer_seeds(program_id: Pubkey, mint: Pubkey, edition: Pubkey) -> List[bytes]:
    """Edition seeds plus bump; raises DerivationMismatch for a wrong edition."""
    path = edition_seeds(program_id, mint)
    bump = assert_derivation(program_id, edition, path)
    return path + [bytes([bump])]


def edition_authorization(program_id: Pubkey, mint: Pubkey, edition: Pubkey) -> Authorization:
    return Authorization.derived(program_id, edition_signer_seeds(program_id, mint, edition))


def freeze(
    ledger: TokenLedger,
    program_id: Pubkey,
    mint: AccountInfo,
    token: AccountInfo,
    edition: AccountInfo,
) -> None:
    auth = edition_authorization(program_id, mint.key, edition.key)
    ledger.freeze_account(token.key, mint.key, edition.key, auth)


def thaw(
    ledger: TokenLedger,
    program_id: Pubkey,
    mint: AccountInfo,
    token: AccountInfo,
    edition: AccountInfo,
) -> None:
    auth = edition_authorization(program_id, mint.key, edition.key)
    ledger.thaw_account(token.key, mint.key, edition.key, auth)


@dataclass
class TokenTransferParams:
    mint: AccountInfo
    source: AccountInfo
    destination: AccountInfo
    amount: int
    authority: AccountInfo
    authority_signer_seeds: Optional[List[bytes]] = None


def token_transfer(ledger: TokenLedger, program_id: Pubkey, params: TokenTransferParams) -> None:
    """Plain ledger transfer signed by the authority (or its seeds)."""
    if params.authority_signer_seeds is not None:
        auth = Authorization.derived(program_id, params.authority_signer_seeds)
    else:
        auth = Authorization.signed_by(params.authority.key) if params.authority.is_signer else Authorization()
    ledger.transfer(
        params.source.key,
        params.destination.key,
        params.amount,
        params.authority.key,
        auth,
    )


def frozen_transfer(
    ledger: TokenLedger,
    program_id: Pubkey,
    params: TokenTransferParams,
    edition: Optional[AccountInfo],
) -> None:
    if edition is None:
        raise MissingEditionAccount()

    thaw(ledger, program_id, params.mint, params.source, edition)
    token_transfer(ledger, program_id, params)
    freeze(ledger, program_id, params.mint, params.source, edition)

    logger.debug(
        "Frozen transfer complete",
        operation="frozen_transfer",
        mint=str(params.mint.key),
        amount=params.amount,
    )
