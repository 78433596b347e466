"""
Record codec tests: binary reader/writer, asset records, token records and
the payload fact sheet.
"""

import pytest

from metaguard.accounts import AccountInfo, AccountSlots, assert_owned_by, assert_signer
from metaguard.codec import U64_MAX, Reader, Writer
from metaguard.errors import (
    DataTypeMismatch,
    DeserializationError,
    IncorrectOwner,
    InvalidAssetData,
    MissingRequiredSignature,
    NotEnoughAccountKeys,
)
from metaguard.payload import (
    AuthorizationData,
    Payload,
    PayloadKey,
    PayloadSealed,
    PayloadType,
    PayloadTypeTag,
)
from metaguard.pubkey import Pubkey
from metaguard.state import (
    MAX_METADATA_LEN,
    TOKEN_RECORD_LEN,
    TOKEN_STATE_INDEX,
    Collection,
    Creator,
    Data,
    Key,
    MasterEdition,
    Metadata,
    ProgrammableConfig,
    TokenDelegateRole,
    TokenRecord,
    TokenRecordPrefix,
    TokenStandard,
    TokenState,
)


def _metadata(**overrides) -> Metadata:
    fields = dict(
        update_authority=Pubkey.new_unique(),
        mint=Pubkey.new_unique(),
        data=Data(name="Asset", symbol="AST", uri="https://example.com/a.json"),
        token_standard=TokenStandard.ProgrammableNonFungible,
    )
    fields.update(overrides)
    return Metadata(**fields)


class TestCodec:

    def test_reader_primitives(self):
        key = Pubkey.new_unique()
        data = (
            Writer().u8(7).u16(513).u32(70000).u64(U64_MAX).bool(True)
            .pubkey(key).string("héllo").option(None, lambda v: None).getvalue()
        )
        r = Reader(data)
        assert r.u8() == 7
        assert r.u16() == 513
        assert r.u32() == 70000
        assert r.u64() == U64_MAX
        assert r.bool() is True
        assert r.pubkey() == key
        assert r.string() == "héllo"
        assert r.option(r.u8) is None
        r.expect_end()

    def test_truncated_input(self):
        with pytest.raises(DeserializationError):
            Reader(b"\x01\x02").u32()

    def test_invalid_bool_byte(self):
        with pytest.raises(DeserializationError):
            Reader(b"\x02").bool()

    def test_invalid_option_tag(self):
        with pytest.raises(DeserializationError):
            Reader(b"\x05\x00").option(Reader(b"").u8)

    def test_absurd_vector_length(self):
        """A length prefix larger than the buffer fails before allocating."""
        data = Writer().u32(1_000_000).getvalue()
        r = Reader(data)
        with pytest.raises(DeserializationError):
            r.vec(r.u8)

    def test_trailing_bytes(self):
        r = Reader(b"\x01\x02")
        r.u8()
        with pytest.raises(DeserializationError):
            r.expect_end()

    def test_custom_error_type(self):
        with pytest.raises(KeyError):
            Reader(b"", error=KeyError).u8()

    def test_writer_range_checks(self):
        with pytest.raises(ValueError):
            Writer().u8(256)
        with pytest.raises(ValueError):
            Writer().u64(-1)


class TestAccounts:
    """Positional account slots with explicit absence."""

    def test_optional_slot_may_be_absent(self):
        slots = AccountSlots([None])
        assert slots.optional(0) is None

    def test_required_slot_absent(self):
        with pytest.raises(NotEnoughAccountKeys):
            AccountSlots([None]).required(0, "metadata")

    def test_slot_past_end(self):
        with pytest.raises(NotEnoughAccountKeys):
            AccountSlots([]).optional(0)

    def test_present_skips_absent(self):
        a = AccountInfo(Pubkey.new_unique(), Pubkey.default())
        assert list(AccountSlots([None, a, None]).present()) == [a]

    def test_write_keeps_allocation(self):
        acct = AccountInfo(Pubkey.new_unique(), Pubkey.default(), data=b"\xff" * 8)
        acct.write(b"\x01\x02")
        assert bytes(acct.data) == b"\x01\x02" + b"\x00" * 6

    def test_clear_zeroes(self):
        acct = AccountInfo(Pubkey.new_unique(), Pubkey.default(), data=b"\x04\x01")
        acct.clear()
        assert bytes(acct.data) == b"\x00\x00"

    def test_signer_and_owner_checks(self):
        owner = Pubkey.new_unique()
        acct = AccountInfo(Pubkey.new_unique(), owner)
        with pytest.raises(MissingRequiredSignature):
            assert_signer(acct)
        assert_owned_by(acct, owner)
        with pytest.raises(IncorrectOwner):
            assert_owned_by(acct, Pubkey.new_unique())


class TestMetadata:

    def test_save_and_load(self):
        creator = Creator(Pubkey.new_unique(), True, 100)
        rule_set = Pubkey.new_unique()
        metadata = _metadata(
            data=Data(name="Asset", creators=[creator], seller_fee_basis_points=500),
            collection=Collection(verified=False, key=Pubkey.new_unique()),
            programmable_config=ProgrammableConfig(rule_set),
            edition_nonce=254,
        )
        acct = AccountInfo(Pubkey.new_unique(), Pubkey.default())
        metadata.save(acct)

        assert acct.data_len() == MAX_METADATA_LEN
        assert acct.data[0] == Key.MetadataV1
        loaded = Metadata.from_account_info(acct)
        assert loaded == metadata
        assert loaded.is_programmable()
        assert loaded.programmable_config.rule_set == rule_set

    def test_other_record_kind_rejected(self):
        record = TokenRecord(bump=255).to_bytes()
        with pytest.raises(DataTypeMismatch):
            Metadata.from_bytes(record)

    def test_truncated_record(self):
        data = _metadata().to_bytes()[:40]
        with pytest.raises(DeserializationError):
            Metadata.from_bytes(data)

    def test_non_programmable_standards(self):
        for standard in (TokenStandard.NonFungible, TokenStandard.Fungible, None):
            assert not _metadata(token_standard=standard).is_programmable()

    def test_is_non_fungible(self):
        assert TokenStandard.ProgrammableNonFungible.is_non_fungible()
        assert TokenStandard.NonFungibleEdition.is_non_fungible()
        assert not TokenStandard.FungibleAsset.is_non_fungible()


class TestAssetData:

    def test_name_too_long(self):
        with pytest.raises(InvalidAssetData):
            Data(name="x" * 33).validate()

    def test_fee_out_of_range(self):
        with pytest.raises(InvalidAssetData):
            Data(name="a", seller_fee_basis_points=10001).validate()

    def test_creator_shares_must_sum(self):
        creators = [Creator(Pubkey.new_unique(), share=60), Creator(Pubkey.new_unique(), share=30)]
        with pytest.raises(InvalidAssetData):
            Data(name="a", creators=creators).validate()

    def test_duplicate_creator(self):
        key = Pubkey.new_unique()
        with pytest.raises(InvalidAssetData):
            Data(name="a", creators=[Creator(key, share=50), Creator(key, share=50)]).validate()


class TestTokenRecord:

    def test_lock_byte_position(self):
        """The lock state lives at a fixed offset the lock guard relies on."""
        delegate = Pubkey.new_unique()
        record = TokenRecord(
            bump=200,
            state=TokenState.Locked,
            rule_set_revision=3,
            delegate=delegate,
            delegate_role=TokenDelegateRole.Utility,
        )
        data = record.to_bytes()
        assert data[TOKEN_STATE_INDEX] == TokenState.Locked
        prefix = TokenRecordPrefix.from_bytes(data)
        assert prefix.is_token_record()
        assert prefix.is_locked()
        assert prefix.bump == 200
        assert TokenRecord.from_bytes(data) == record

    def test_save_pads(self):
        acct = AccountInfo(Pubkey.new_unique(), Pubkey.default())
        TokenRecord(bump=1).save(acct)
        assert acct.data_len() == TOKEN_RECORD_LEN

    def test_prefix_too_short(self):
        with pytest.raises(DeserializationError):
            TokenRecordPrefix.from_bytes(bytes([Key.TokenRecord, 1]))

    def test_prefix_of_other_kind_is_not_locked(self):
        prefix = TokenRecordPrefix.from_bytes(bytes([Key.MetadataV1, 0, 1]))
        assert not prefix.is_locked()

    def test_invalid_state_byte(self):
        with pytest.raises(DeserializationError):
            TokenRecord.from_bytes(bytes([Key.TokenRecord, 1, 9, 0, 0, 0]))

    def test_with_delegate(self):
        record = TokenRecord(bump=1)
        delegate = Pubkey.new_unique()
        updated = record.with_delegate(delegate, TokenDelegateRole.Sale)
        assert updated.delegate == delegate
        assert record.delegate is None


class TestMasterEdition:

    def test_round_trip(self):
        acct = AccountInfo(Pubkey.new_unique(), Pubkey.default())
        MasterEdition(supply=1, max_supply=None).save(acct)
        assert MasterEdition.from_bytes(bytes(acct.data)) == MasterEdition(supply=1, max_supply=None)

    def test_wrong_kind(self):
        with pytest.raises(DataTypeMismatch):
            MasterEdition.from_bytes(bytes([Key.MetadataV1]))


class TestPayload:
    """Fact sheet handed to the policy oracle."""

    def test_insertion_order(self):
        p = Payload()
        p.insert(PayloadKey.Target, PayloadType.of_pubkey(Pubkey.new_unique()))
        p.insert(PayloadKey.Amount, PayloadType.of_number(1))
        p.insert("Custom", PayloadType.of_seeds([b"a"]))
        assert p.keys() == ["Target", "Amount", "Custom"]

    def test_override_keeps_position(self):
        p = Payload()
        p.insert(PayloadKey.Amount, PayloadType.of_number(1))
        p.insert(PayloadKey.Target, PayloadType.of_pubkey(Pubkey.new_unique()))
        previous = p.insert(PayloadKey.Amount, PayloadType.of_number(5))
        assert previous.number == 1
        assert p.keys() == ["Amount", "Target"]
        assert p.get_amount() == 5

    def test_sealed_payload_rejects_insert(self):
        p = Payload().seal()
        with pytest.raises(PayloadSealed):
            p.insert(PayloadKey.Amount, PayloadType.of_number(1))

    def test_copy_is_independent_and_unsealed(self):
        p = Payload()
        p.insert(PayloadKey.Amount, PayloadType.of_number(1))
        p.seal()
        c = p.copy()
        assert not c.sealed
        c.insert(PayloadKey.Holder, PayloadType.of_pubkey(Pubkey.new_unique()))
        assert PayloadKey.Holder not in p
        assert len(p) == 1

    def test_typed_getters(self):
        key = Pubkey.new_unique()
        p = Payload()
        p.insert(PayloadKey.Authority, PayloadType.of_pubkey(key))
        p.insert(PayloadKey.Amount, PayloadType.of_number(3))
        assert p.get_pubkey(PayloadKey.Authority) == key
        assert p.get_pubkey(PayloadKey.Amount) is None
        assert p.get_amount(PayloadKey.Authority) is None

    def test_number_range(self):
        with pytest.raises(ValueError):
            PayloadType.of_number(1 << 64)

    def test_merkle_proof_node_size(self):
        with pytest.raises(ValueError):
            PayloadType.of_merkle_proof(b"\x00" * 31, [])

    def test_authorization_data_wire_form(self):
        p = Payload()
        p.insert(PayloadKey.Amount, PayloadType.of_number(9))
        p.insert("Proof", PayloadType.of_merkle_proof(b"\x01" * 32, [b"\x02" * 32]))
        w = Writer()
        AuthorizationData(p).write(w)
        decoded = AuthorizationData.read(Reader(w.getvalue()))
        assert decoded.payload == p
        assert decoded.payload.get("Proof").tag == PayloadTypeTag.MerkleProof

    def test_to_json(self):
        key = Pubkey.new_unique()
        p = Payload()
        p.insert(PayloadKey.Target, PayloadType.of_pubkey(key))
        assert p.to_json() == {"Target": {"Pubkey": str(key)}}
