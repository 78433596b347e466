"""
Account scans run by the router before any handler.

    is_locked                 any engine-owned token record in Locked state?
    has_programmable_metadata any engine-owned asset record that is a pNFT?

Both scan every supplied account, skip absent slots, and fail closed: an
account that claims to be one of these records but cannot be read raises
instead of being ignored.

Copyright (c) 2026 Metaguard. All rights reserved.
"""

from __future__ import annotations

from typing import Iterable, Optional

from metaguard.accounts import AccountInfo
from metaguard.observability import EngineLayer, get_logger
from metaguard.pubkey import Pubkey, cmp_pubkeys
from metaguard.state import (
    DISCRIMINATOR_INDEX,
    Key,
    Metadata,
    TokenRecordPrefix,
    TokenStandard,
)


logger = get_logger("guards", EngineLayer.GUARD)


def _engine_records(program_id: Pubkey, accounts: Iterable[Optional[AccountInfo]], key: Key):
    for account in accounts:
        if account is None or account.data_is_empty():
            continue
        if not cmp_pubkeys(account.owner, program_id):
            continue
        if account.data[DISCRIMINATOR_INDEX] == key:
            yield account


def is_locked(program_id: Pubkey, accounts: Iterable[Optional[AccountInfo]]) -> bool:
    """True if any supplied token record is Locked.

    Reads the lock byte in place rather than decoding the record.
    """
    for account in _engine_records(program_id, accounts, Key.TokenRecord):
        if TokenRecordPrefix.from_bytes(bytes(account.data[:TokenRecordPrefix.SIZE])).is_locked():
            logger.debug("Locked token record found", account=str(account.key))
            return True
    return False


def has_programmable_metadata(program_id: Pubkey, accounts: Iterable[Optional[AccountInfo]]) -> bool:
    """True if any supplied asset record has the ProgrammableNonFungible standard."""
    for account in _engine_records(program_id, accounts, Key.MetadataV1):
        metadata = Metadata.from_account_info(account)
        if metadata.token_standard == TokenStandard.ProgrammableNonFungible:
            return True
    return False
