"""
Lock guard and programmable classifier tests.
"""

import itertools

import pytest

from metaguard.accounts import AccountInfo
from metaguard.errors import DeserializationError
from metaguard.guards import has_programmable_metadata, is_locked
from metaguard.pubkey import Pubkey
from metaguard.state import Key, TokenDelegateRole, TokenRecord, TokenStandard, TokenState

from conftest import TOKEN_PROGRAM


def _record(program_id, state, owner=None) -> AccountInfo:
    acct = AccountInfo(Pubkey.new_unique(), owner or program_id)
    TokenRecord(bump=254, state=state).save(acct)
    return acct


class TestLockGuard:

    def test_no_records(self, program_id):
        assert not is_locked(program_id, [])
        assert not is_locked(program_id, [None, AccountInfo(Pubkey.new_unique(), TOKEN_PROGRAM)])

    def test_unlocked_record(self, program_id):
        assert not is_locked(program_id, [_record(program_id, TokenState.Unlocked)])

    def test_any_locked_record(self, program_id):
        """One locked record anywhere in the list is enough."""
        accounts = [
            _record(program_id, TokenState.Unlocked),
            None,
            _record(program_id, TokenState.Locked),
        ]
        assert is_locked(program_id, accounts)

    def test_foreign_owner_ignored(self, program_id):
        """A record-shaped account not owned by the engine is not a record."""
        foreign = _record(program_id, TokenState.Locked, owner=Pubkey.new_unique())
        assert not is_locked(program_id, [foreign])

    def test_empty_account_ignored(self, program_id):
        assert not is_locked(program_id, [AccountInfo(Pubkey.new_unique(), program_id)])

    def test_cleared_record_ignored(self, program_id):
        acct = _record(program_id, TokenState.Locked)
        acct.clear()
        assert not is_locked(program_id, [acct])

    def test_truncated_record_fails_closed(self, program_id):
        acct = AccountInfo(Pubkey.new_unique(), program_id, data=bytes([Key.TokenRecord, 1]))
        with pytest.raises(DeserializationError):
            is_locked(program_id, [acct])

    @pytest.mark.parametrize("state", [TokenState.Unlocked, TokenState.Locked])
    def test_fast_path_matches_full_decode(self, program_id, state):
        """Reading the lock byte in place agrees with decoding the record."""
        acct = _record(program_id, state)
        assert is_locked(program_id, [acct]) == TokenRecord.from_account_info(acct).is_locked()

    @pytest.mark.slow
    def test_fast_path_matches_full_decode_all_layouts(self, program_id):
        """Optional fields after the prefix never shift the lock byte."""
        roles = [None] + list(TokenDelegateRole)
        for state, role, revision in itertools.product(TokenState, roles, [None, 0, 2**64 - 1]):
            acct = AccountInfo(Pubkey.new_unique(), program_id)
            TokenRecord(
                bump=255,
                state=state,
                rule_set_revision=revision,
                delegate=Pubkey.new_unique() if role is not None else None,
                delegate_role=role,
            ).save(acct)
            assert is_locked(program_id, [acct]) == TokenRecord.from_account_info(acct).is_locked()


class TestClassifier:

    def test_programmable_asset(self, make_asset, program_id):
        asset = make_asset(standard=TokenStandard.ProgrammableNonFungible)
        assert has_programmable_metadata(program_id, [asset.mint, None, asset.metadata])

    @pytest.mark.parametrize("standard", [
        TokenStandard.NonFungible,
        TokenStandard.Fungible,
    ])
    def test_non_programmable_asset(self, make_asset, program_id, standard):
        asset = make_asset(standard=standard)
        assert not has_programmable_metadata(program_id, [asset.metadata, asset.token])

    def test_foreign_metadata_ignored(self, make_asset, program_id):
        asset = make_asset()
        asset.metadata.owner = Pubkey.new_unique()
        assert not has_programmable_metadata(program_id, [asset.metadata])

    def test_corrupt_metadata_fails_closed(self, program_id):
        acct = AccountInfo(Pubkey.new_unique(), program_id, data=bytes([Key.MetadataV1]) + b"\x01" * 10)
        with pytest.raises(DeserializationError):
            has_programmable_metadata(program_id, [acct])

    def test_token_record_is_not_metadata(self, program_id):
        assert not has_programmable_metadata(program_id, [_record(program_id, TokenState.Locked)])
