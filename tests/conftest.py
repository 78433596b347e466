import logging
import os
import pathlib
import sys
from dataclasses import dataclass, field
from typing import List, Optional

import pytest


# Ensure repo root is on PYTHONPATH for direct package imports (e.g. `import metaguard`).
_REPO_ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))

from metaguard.accounts import AccountInfo  # noqa: E402
from metaguard.auth_rules import PolicyOracle, ValidateRequest  # noqa: E402
from metaguard.config import ConfigManager  # noqa: E402
from metaguard.freeze import edition_authorization, freeze  # noqa: E402
from metaguard.observability import ROOT_LOGGER  # noqa: E402
from metaguard.processor import Processor  # noqa: E402
from metaguard.pubkey import Pubkey, find_program_address  # noqa: E402
from metaguard.state import (  # noqa: E402
    Creator,
    Data,
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
from metaguard.token_ledger import Authorization, InMemoryTokenLedger  # noqa: E402


# Owner of plain token accounts; the engine only ever reads them through the ledger.
TOKEN_PROGRAM = Pubkey.new_unique()


def _env_flag(name: str) -> bool:
    v = (os.environ.get(name) or '').strip().lower()
    return v in {'1', 'true', 'yes', 'y', 'on'}


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers",
        "slow: slow correctness tests (skipped unless METAGUARD_RUN_SLOW=1)",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: List[pytest.Item]) -> None:
    run_slow = _env_flag('METAGUARD_RUN_SLOW')

    for item in items:
        if 'slow' in item.keywords and not run_slow:
            item.add_marker(pytest.mark.skip(reason='slow tests skipped; set METAGUARD_RUN_SLOW=1 to enable'))


# =============================================================================
# SHARED FIXTURES
# =============================================================================

class RecordingOracle(PolicyOracle):
    """Policy oracle that records every request and optionally rejects."""

    def __init__(self):
        self.requests: List[ValidateRequest] = []
        self.reject: Optional[Exception] = None

    def validate(self, request: ValidateRequest) -> None:
        self.requests.append(request)
        if self.reject is not None:
            raise self.reject


@dataclass
class Holder:
    """A wallet holding one token account of an asset."""
    owner: AccountInfo
    token: AccountInfo
    record: AccountInfo


@dataclass
class Asset:
    """Accounts making up one asset, as the engine expects to receive them."""
    program_id: Pubkey
    ledger: InMemoryTokenLedger
    standard: TokenStandard
    mint: AccountInfo
    metadata: AccountInfo
    edition: AccountInfo
    update_authority: AccountInfo
    holder: Holder
    rule_set: Optional[AccountInfo] = None
    others: List[Holder] = field(default_factory=list)

    @property
    def owner(self) -> AccountInfo:
        return self.holder.owner

    @property
    def token(self) -> AccountInfo:
        return self.holder.token

    @property
    def token_record(self) -> AccountInfo:
        return self.holder.record

    def load_metadata(self) -> Metadata:
        return Metadata.from_account_info(self.metadata)

    def load_record(self, holder: Optional[Holder] = None) -> TokenRecord:
        return TokenRecord.from_account_info((holder or self.holder).record)

    def balance(self, holder: Optional[Holder] = None) -> int:
        return self.ledger.get_account((holder or self.holder).token.key).amount

    def is_frozen(self, holder: Optional[Holder] = None) -> bool:
        return self.ledger.get_account((holder or self.holder).token.key).frozen

    def new_holder(self) -> Holder:
        """Empty token account plus its (uninitialized) token record slot."""
        owner = signer()
        token = AccountInfo(Pubkey.new_unique(), TOKEN_PROGRAM)
        self.ledger.create_account(token.key, self.mint.key, owner.key)
        record_key, _ = find_program_address(
            token_record_seeds(self.program_id, self.mint.key, token.key), self.program_id,
        )
        holder = Holder(owner, token, AccountInfo(record_key, self.program_id))
        self.others.append(holder)
        return holder


def signer(key: Optional[Pubkey] = None) -> AccountInfo:
    return AccountInfo(key or Pubkey.new_unique(), Pubkey.default(), is_signer=True)


def build_asset(
    program_id: Pubkey,
    ledger: InMemoryTokenLedger,
    standard: TokenStandard = TokenStandard.ProgrammableNonFungible,
    rule_set: Optional[Pubkey] = None,
    locked: bool = False,
    delegate: Optional[Pubkey] = None,
    delegate_role: Optional[TokenDelegateRole] = None,
    creators: Optional[List[Creator]] = None,
    is_mutable: bool = True,
) -> Asset:
    """Set up a minted asset directly in ledger and account state."""
    update_authority = signer()
    mint_key = Pubkey.new_unique()
    edition_key, edition_bump = find_program_address(edition_seeds(program_id, mint_key), program_id)
    metadata_key, _ = find_program_address(metadata_seeds(program_id, mint_key), program_id)

    mint = AccountInfo(mint_key, TOKEN_PROGRAM)
    edition = AccountInfo(edition_key, program_id)
    metadata = AccountInfo(metadata_key, program_id)

    non_fungible = standard.is_non_fungible()
    if non_fungible:
        ledger.create_mint(mint_key, edition_key, edition_key)
        MasterEdition(supply=1, max_supply=0).save(edition)
    else:
        ledger.create_mint(mint_key, update_authority.key, None)

    Metadata(
        update_authority=update_authority.key,
        mint=mint_key,
        data=Data(name="Test Asset", symbol="TEST", uri="https://example.com/asset.json", creators=creators),
        is_mutable=is_mutable,
        edition_nonce=edition_bump if non_fungible else None,
        token_standard=standard,
        programmable_config=ProgrammableConfig(rule_set) if rule_set is not None else None,
    ).save(metadata)

    owner = signer()
    token = AccountInfo(Pubkey.new_unique(), TOKEN_PROGRAM)
    ledger.create_account(token.key, mint_key, owner.key)
    if non_fungible:
        ledger.mint_to(mint_key, token.key, 1, edition_key, edition_authorization(program_id, mint_key, edition_key))
    else:
        ledger.mint_to(mint_key, token.key, 100, update_authority.key, Authorization.signed_by(update_authority.key))

    record_key, record_bump = find_program_address(
        token_record_seeds(program_id, mint_key, token.key), program_id,
    )
    record = AccountInfo(record_key, program_id)

    if delegate is not None:
        ledger.approve(token.key, delegate, 1, owner.key, Authorization.signed_by(owner.key))

    if standard == TokenStandard.ProgrammableNonFungible:
        TokenRecord(
            bump=record_bump,
            state=TokenState.Locked if locked else TokenState.Unlocked,
            delegate=delegate,
            delegate_role=delegate_role,
        ).save(record)
        freeze(ledger, program_id, mint, token, edition)

    return Asset(
        program_id=program_id,
        ledger=ledger,
        standard=standard,
        mint=mint,
        metadata=metadata,
        edition=edition,
        update_authority=update_authority,
        holder=Holder(owner, token, record),
        rule_set=AccountInfo(rule_set, Pubkey.new_unique()) if rule_set is not None else None,
    )


@pytest.fixture(autouse=True)
def fresh_config(monkeypatch):
    """Every test starts from default configuration."""
    for name in list(os.environ):
        if name.startswith("METAGUARD_") and not name.startswith("METAGUARD_RUN_"):
            monkeypatch.delenv(name)
    ConfigManager.reset()
    yield
    ConfigManager.reset()


@pytest.fixture(autouse=True)
def detach_log_handlers():
    """Handlers installed by configure_logging must not outlive the test's streams."""
    yield
    root = logging.getLogger(ROOT_LOGGER)
    for handler in list(root.handlers):
        root.removeHandler(handler)
    root.propagate = True
    root.setLevel(logging.NOTSET)


@pytest.fixture
def program_id() -> Pubkey:
    return Pubkey.new_unique()


@pytest.fixture
def ledger() -> InMemoryTokenLedger:
    return InMemoryTokenLedger()


@pytest.fixture
def oracle() -> RecordingOracle:
    return RecordingOracle()


@pytest.fixture
def processor(program_id, ledger, oracle) -> Processor:
    return Processor(ledger, oracle, program_id=program_id)


@pytest.fixture
def make_asset(program_id, ledger):
    """Factory fixture: make_asset(standard=..., rule_set=..., locked=...)."""
    def factory(**kwargs) -> Asset:
        return build_asset(program_id, ledger, **kwargs)
    return factory
