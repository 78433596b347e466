"""
Freeze/thaw transitioner tests.
"""

import pytest

from metaguard.accounts import AccountInfo
from metaguard.errors import DerivationMismatch, MissingEditionAccount, TokenLedgerError
from metaguard.freeze import (
    TokenTransferParams,
    edition_signer_seeds,
    freeze,
    frozen_transfer,
    thaw,
    token_transfer,
)
from metaguard.pubkey import Pubkey, create_program_address
from metaguard.state import TokenStandard


def _params(asset, holder, amount=1):
    return TokenTransferParams(
        mint=asset.mint,
        source=asset.token,
        destination=holder.token,
        amount=amount,
        authority=asset.owner,
    )


class TestEditionSeeds:

    def test_seeds_derive_edition(self, make_asset, program_id):
        asset = make_asset()
        seeds = edition_signer_seeds(program_id, asset.mint.key, asset.edition.key)
        assert create_program_address(seeds, program_id) == asset.edition.key

    def test_wrong_edition(self, make_asset, program_id):
        asset = make_asset()
        with pytest.raises(DerivationMismatch):
            edition_signer_seeds(program_id, asset.mint.key, Pubkey.new_unique())


class TestFreezeThaw:

    def test_thaw_then_freeze(self, make_asset, program_id, ledger):
        asset = make_asset()
        assert asset.is_frozen()
        thaw(ledger, program_id, asset.mint, asset.token, asset.edition)
        assert not asset.is_frozen()
        freeze(ledger, program_id, asset.mint, asset.token, asset.edition)
        assert asset.is_frozen()

    def test_wrong_edition_leaves_ledger_untouched(self, make_asset, program_id, ledger):
        asset = make_asset()
        bogus = AccountInfo(Pubkey.new_unique(), program_id)
        with pytest.raises(DerivationMismatch):
            thaw(ledger, program_id, asset.mint, asset.token, bogus)
        assert asset.is_frozen()

    def test_other_program_cannot_sign(self, make_asset, ledger):
        """Seeds only prove the edition for the program that derived it."""
        asset = make_asset()
        with pytest.raises(DerivationMismatch):
            thaw(ledger, Pubkey.new_unique(), asset.mint, asset.token, asset.edition)


class TestFrozenTransfer:

    def test_moves_token_and_refreezes_source(self, make_asset, program_id, ledger):
        asset = make_asset()
        dest = asset.new_holder()

        frozen_transfer(ledger, program_id, _params(asset, dest), asset.edition)

        assert asset.balance() == 0
        assert asset.balance(dest) == 1
        assert asset.is_frozen()

    def test_missing_edition(self, make_asset, program_id, ledger):
        asset = make_asset()
        dest = asset.new_holder()
        with pytest.raises(MissingEditionAccount):
            frozen_transfer(ledger, program_id, _params(asset, dest), None)
        assert asset.balance() == 1
        assert asset.is_frozen()

    def test_source_frozen_after_repeated_transfers(self, make_asset, program_id, ledger):
        """Zero-amount moves still leave the source frozen each time."""
        asset = make_asset()
        dest = asset.new_holder()
        for _ in range(2):
            frozen_transfer(ledger, program_id, _params(asset, dest, amount=0), asset.edition)
            assert asset.is_frozen()
        assert asset.balance() == 1


class TestTokenTransfer:

    def test_plain_transfer(self, make_asset, program_id, ledger):
        asset = make_asset(standard=TokenStandard.NonFungible)
        dest = asset.new_holder()
        token_transfer(ledger, program_id, _params(asset, dest))
        assert asset.balance(dest) == 1

    def test_unsigned_authority_rejected(self, make_asset, program_id, ledger):
        asset = make_asset(standard=TokenStandard.NonFungible)
        dest = asset.new_holder()
        asset.owner.is_signer = False
        with pytest.raises(TokenLedgerError):
            token_transfer(ledger, program_id, _params(asset, dest))
