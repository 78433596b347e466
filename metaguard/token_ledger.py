"""
Token Ledger Primitive

The engine never moves balances itself: freeze, thaw, transfer, mint, burn
and delegation are calls into a TokenLedger, each independently atomic.
Calls made on behalf of a program-derived authority carry the signer seeds;
the ledger accepts them only if the seeds re-derive that authority under the
calling program.

InMemoryTokenLedger is a complete, self-contained implementation used by
tests, the CLI and any host that keeps balances in process.

Copyright (c) 2026 Metaguard. All rights reserved.
"""

from __future__ import annotations

import copy
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterable, Optional, Sequence, Tuple

from metaguard.errors import TokenLedgerError
from metaguard.observability import EngineLayer, get_logger
from metaguard.pubkey import AddressOnCurve, Pubkey, cmp_pubkeys, create_program_address


logger = get_logger("token_ledger", EngineLayer.LEDGER)


@dataclass(frozen=True)
class SignerSeeds:
    """Seeds (bump included) proving a PDA authority for program_id."""
    program_id: Pubkey
    seeds: Tuple[bytes, ...]

    def derive(self) -> Optional[Pubkey]:
        try:
            return create_program_address(list(self.seeds), self.program_id)
        except AddressOnCurve:
            return None


@dataclass(frozen=True)
class Authorization:
    """Everything a ledger call may use to prove an authority."""
    signers: FrozenSet[Pubkey] = frozenset()
    signer_seeds: Tuple[SignerSeeds, ...] = ()

    @classmethod
    def signed_by(cls, *keys: Pubkey) -> 'Authorization':
        return cls(signers=frozenset(keys))

    @classmethod
    def derived(cls, program_id: Pubkey, seeds: Sequence[bytes]) -> 'Authorization':
        return cls(signer_seeds=(SignerSeeds(program_id, tuple(bytes(s) for s in seeds)),))

    def authorizes(self, authority: Pubkey) -> bool:
        if authority in self.signers:
            return True
        for s in self.signer_seeds:
            derived = s.derive()
            if derived is not None and cmp_pubkeys(derived, authority):
                return True
        return False


@dataclass
class MintState:
    address: Pubkey
    decimals: int = 0
    supply: int = 0
    mint_authority: Optional[Pubkey] = None
    freeze_authority: Optional[Pubkey] = None


@dataclass
class TokenAccountState:
    address: Pubkey
    mint: Pubkey
    owner: Pubkey
    amount: int = 0
    delegate: Optional[Pubkey] = None
    delegated_amount: int = 0
    frozen: bool = False


class TokenLedger(ABC):
    """Balance-keeping primitive consumed by the engine."""

    @abstractmethod
    def get_mint(self, mint: Pubkey) -> MintState:
        ...

    @abstractmethod
    def get_account(self, token: Pubkey) -> TokenAccountState:
        ...

    @abstractmethod
    def freeze_account(self, token: Pubkey, mint: Pubkey, authority: Pubkey, auth: Authorization) -> None:
        ...

    @abstractmethod
    def thaw_account(self, token: Pubkey, mint: Pubkey, authority: Pubkey, auth: Authorization) -> None:
        ...

    @abstractmethod
    def transfer(self, source: Pubkey, destination: Pubkey, amount: int,
                 authority: Pubkey, auth: Authorization) -> None:
        ...

    @abstractmethod
    def mint_to(self, mint: Pubkey, destination: Pubkey, amount: int,
                authority: Pubkey, auth: Authorization) -> None:
        ...

    @abstractmethod
    def burn(self, token: Pubkey, mint: Pubkey, amount: int,
             authority: Pubkey, auth: Authorization) -> None:
        ...

    @abstractmethod
    def approve(self, token: Pubkey, delegate: Pubkey, amount: int,
                owner: Pubkey, auth: Authorization) -> None:
        ...

    @abstractmethod
    def revoke(self, token: Pubkey, owner: Pubkey, auth: Authorization) -> None:
        ...

    @abstractmethod
    def set_authority(self, mint: Pubkey, current: Pubkey, auth: Authorization, *,
                      mint_authority: Optional[Pubkey], freeze_authority: Optional[Pubkey]) -> None:
        ...

    @abstractmethod
    def snapshot(self) -> object:
        """Opaque copy of the ledger state for rollback."""

    @abstractmethod
    def restore(self, snapshot: object) -> None:
        ...


class InMemoryTokenLedger(TokenLedger):
    """Process-local ledger of mints and token accounts."""

    def __init__(self):
        self._mints: Dict[Pubkey, MintState] = {}
        self._accounts: Dict[Pubkey, TokenAccountState] = {}

    # -- setup ---------------------------------------------------------------

    def create_mint(
        self,
        address: Pubkey,
        mint_authority: Optional[Pubkey],
        freeze_authority: Optional[Pubkey] = None,
        decimals: int = 0,
    ) -> MintState:
        if address in self._mints:
            raise TokenLedgerError("mint already exists", mint=address)
        state = MintState(address, decimals, 0, mint_authority, freeze_authority)
        self._mints[address] = state
        return state

    def create_account(self, address: Pubkey, mint: Pubkey, owner: Pubkey) -> TokenAccountState:
        if address in self._accounts:
            raise TokenLedgerError("token account already exists", token=address)
        self.get_mint(mint)
        state = TokenAccountState(address, mint, owner)
        self._accounts[address] = state
        return state

    def accounts(self) -> Iterable[TokenAccountState]:
        return list(self._accounts.values())

    # -- queries -------------------------------------------------------------

    def get_mint(self, mint: Pubkey) -> MintState:
        state = self._mints.get(mint)
        if state is None:
            raise TokenLedgerError("unknown mint", mint=mint)
        return state

    def get_account(self, token: Pubkey) -> TokenAccountState:
        state = self._accounts.get(token)
        if state is None:
            raise TokenLedgerError("unknown token account", token=token)
        return state

    # -- helpers -------------------------------------------------------------

    @staticmethod
    def _require(auth: Authorization, authority: Optional[Pubkey], expected: Optional[Pubkey], what: str) -> None:
        if expected is None or authority is None or not cmp_pubkeys(authority, expected):
            raise TokenLedgerError(f"{what} mismatch", authority=authority, expected=expected)
        if not auth.authorizes(authority):
            raise TokenLedgerError(f"{what} did not authorize the call", authority=authority)

    def _account_for_mint(self, token: Pubkey, mint: Pubkey) -> TokenAccountState:
        acct = self.get_account(token)
        if not cmp_pubkeys(acct.mint, mint):
            raise TokenLedgerError("account mint mismatch", token=token, mint=mint)
        return acct

    # -- state transitions ---------------------------------------------------

    def freeze_account(self, token: Pubkey, mint: Pubkey, authority: Pubkey, auth: Authorization) -> None:
        acct = self._account_for_mint(token, mint)
        self._require(auth, authority, self.get_mint(mint).freeze_authority, "freeze authority")
        if acct.frozen:
            raise TokenLedgerError("account is already frozen", token=token)
        acct.frozen = True
        logger.debug("Token account frozen", operation="freeze", token=str(token))

    def thaw_account(self, token: Pubkey, mint: Pubkey, authority: Pubkey, auth: Authorization) -> None:
        acct = self._account_for_mint(token, mint)
        self._require(auth, authority, self.get_mint(mint).freeze_authority, "freeze authority")
        if not acct.frozen:
            raise TokenLedgerError("account is not frozen", token=token)
        acct.frozen = False
        logger.debug("Token account thawed", operation="thaw", token=str(token))

    def transfer(self, source: Pubkey, destination: Pubkey, amount: int,
                 authority: Pubkey, auth: Authorization) -> None:
        src = self.get_account(source)
        dst = self.get_account(destination)
        if not cmp_pubkeys(src.mint, dst.mint):
            raise TokenLedgerError("source and destination mints differ")
        if src.frozen or dst.frozen:
            raise TokenLedgerError("account is frozen", source=source, destination=destination)
        if amount > src.amount:
            raise TokenLedgerError("insufficient funds", available=src.amount, requested=amount)

        if cmp_pubkeys(authority, src.owner):
            self._require(auth, authority, src.owner, "owner")
        else:
            self._require(auth, authority, src.delegate, "delegate")
            if amount > src.delegated_amount:
                raise TokenLedgerError("insufficient delegated amount")
            src.delegated_amount -= amount
            if src.delegated_amount == 0:
                src.delegate = None

        if source == destination:
            return
        src.amount -= amount
        dst.amount += amount
        logger.debug(
            "Tokens transferred",
            operation="transfer",
            source=str(source),
            destination=str(destination),
            amount=amount,
        )

    def mint_to(self, mint: Pubkey, destination: Pubkey, amount: int,
                authority: Pubkey, auth: Authorization) -> None:
        state = self.get_mint(mint)
        dst = self._account_for_mint(destination, mint)
        self._require(auth, authority, state.mint_authority, "mint authority")
        if dst.frozen:
            raise TokenLedgerError("account is frozen", token=destination)
        state.supply += amount
        dst.amount += amount

    def burn(self, token: Pubkey, mint: Pubkey, amount: int,
             authority: Pubkey, auth: Authorization) -> None:
        state = self.get_mint(mint)
        acct = self._account_for_mint(token, mint)
        self._require(auth, authority, acct.owner, "owner")
        if acct.frozen:
            raise TokenLedgerError("account is frozen", token=token)
        if amount > acct.amount:
            raise TokenLedgerError("insufficient funds", available=acct.amount, requested=amount)
        acct.amount -= amount
        state.supply -= amount

    def approve(self, token: Pubkey, delegate: Pubkey, amount: int,
                owner: Pubkey, auth: Authorization) -> None:
        acct = self.get_account(token)
        self._require(auth, owner, acct.owner, "owner")
        if acct.frozen:
            raise TokenLedgerError("account is frozen", token=token)
        acct.delegate = delegate
        acct.delegated_amount = amount

    def revoke(self, token: Pubkey, owner: Pubkey, auth: Authorization) -> None:
        acct = self.get_account(token)
        self._require(auth, owner, acct.owner, "owner")
        if acct.frozen:
            raise TokenLedgerError("account is frozen", token=token)
        acct.delegate = None
        acct.delegated_amount = 0

    def set_authority(self, mint: Pubkey, current: Pubkey, auth: Authorization, *,
                      mint_authority: Optional[Pubkey], freeze_authority: Optional[Pubkey]) -> None:
        state = self.get_mint(mint)
        self._require(auth, current, state.mint_authority, "mint authority")
        state.mint_authority = mint_authority
        state.freeze_authority = freeze_authority

    # -- rollback ------------------------------------------------------------

    def snapshot(self) -> object:
        return (copy.deepcopy(self._mints), copy.deepcopy(self._accounts))

    def restore(self, snapshot: object) -> None:
        mints, accounts = snapshot  # type: ignore[misc]
        self._mints = copy.deepcopy(mints)
        self._accounts = copy.deepcopy(accounts)
