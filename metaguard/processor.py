"""
Instruction Router

Single entry point of the engine. Every instruction passes the same gates in
the same order:

    raw bytes
        │ decode_instruction ──────────────► MalformedInstruction
        ▼
    is_locked(accounts) and not Unlock ────► LockedToken
        │                                     (legacy and unknown kinds too)
        ├── modern instruction ─► handler table
        │
        └── legacy instruction
                │ has_programmable_metadata ─► InstructionNotSupported
                ▼
            LegacyProcessor

A rejected instruction leaves no trace: account data, owners, lamports and
the token ledger are snapshotted before routing and restored on any error.

Copyright (c) 2026 Metaguard. All rights reserved.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Type

from metaguard import handlers
from metaguard.accounts import AccountInfo, AccountSlots
from metaguard.auth_rules import PolicyOracle
from metaguard.config import get_config
from metaguard.errors import (
    InstructionNotSupported,
    LockedToken,
    MalformedInstruction,
    MetadataError,
    Removed,
)
from metaguard.guards import has_programmable_metadata, is_locked
from metaguard.handlers import EngineContext
from metaguard.instruction import (
    REMOVED_KINDS,
    Burn,
    Create,
    Delegate,
    Instruction,
    LegacyInstruction,
    LegacyKind,
    Lock,
    Migrate,
    Mint,
    ModernInstruction,
    Revoke,
    Transfer,
    Unlock,
    Update,
    Verify,
    decode_instruction,
)
from metaguard.observability import (
    EngineLayer,
    Tracer,
    correlation_id_var,
    generate_correlation_id,
    get_logger,
    get_tracer,
    set_correlation_id,
)
from metaguard.pubkey import Pubkey
from metaguard.token_ledger import TokenLedger


logger = get_logger("processor", EngineLayer.ROUTER)


MODERN_HANDLERS: Dict[Type[ModernInstruction], Callable[[EngineContext, AccountSlots, ModernInstruction], None]] = {
    Burn: handlers.burn,
    Create: handlers.create,
    Mint: handlers.mint,
    Delegate: handlers.delegate,
    Revoke: handlers.revoke,
    Lock: handlers.lock,
    Unlock: handlers.unlock,
    Migrate: handlers.migrate,
    Transfer: handlers.transfer,
    Update: handlers.update,
    Verify: handlers.verify,
}


# =============================================================================
# LEGACY INSTRUCTIONS
# =============================================================================

LegacyHandler = Callable[[Pubkey, AccountSlots, LegacyInstruction], None]


class LegacyProcessor(ABC):
    """Handles the pre-programmable instruction set on the router's behalf."""

    @abstractmethod
    def process(self, program_id: Pubkey, slots: AccountSlots, instruction: LegacyInstruction) -> None:
        ...


class RegistryLegacyProcessor(LegacyProcessor):
    """Legacy processor backed by a table of per-kind handlers."""

    def __init__(self, legacy_handlers: Optional[Dict[LegacyKind, LegacyHandler]] = None):
        self._handlers: Dict[LegacyKind, LegacyHandler] = dict(legacy_handlers or {})

    def register(self, kind: LegacyKind, handler: LegacyHandler) -> None:
        if kind in REMOVED_KINDS:
            raise ValueError(f"{kind.name} has been removed and cannot be registered")
        self._handlers[kind] = handler

    def process(self, program_id: Pubkey, slots: AccountSlots, instruction: LegacyInstruction) -> None:
        if instruction.kind in REMOVED_KINDS:
            raise Removed(instruction=instruction.name)
        handler = self._handlers.get(instruction.kind)
        if handler is None:
            raise MalformedInstruction(
                f"legacy instruction {instruction.name} is not handled by this host",
            )
        handler(program_id, slots, instruction)


# =============================================================================
# ROUTER
# =============================================================================

_AccountSnapshot = List[Tuple[AccountInfo, bytes, Pubkey, int]]


class Processor:
    """
    Instruction router bound to its collaborators.

    ``ledger`` and ``oracle`` are required capabilities; ``legacy`` defaults
    to an empty registry, which rejects every legacy instruction.
    """

    def __init__(
        self,
        ledger: TokenLedger,
        oracle: PolicyOracle,
        legacy: Optional[LegacyProcessor] = None,
        program_id: Optional[Pubkey] = None,
        max_accounts: Optional[int] = None,
        tracer: Optional[Tracer] = None,
    ):
        config = get_config()
        self.program_id = program_id or config.program_id
        self.max_accounts = config.engine.max_accounts.get() if max_accounts is None else max_accounts
        self.ledger = ledger
        self.oracle = oracle
        self.legacy = legacy or RegistryLegacyProcessor()
        self.tracer = tracer or get_tracer()

    def process_instruction(
        self,
        accounts: Sequence[Optional[AccountInfo]],
        data: bytes,
    ) -> Instruction:
        """Route one instruction; returns the decoded instruction on success."""
        token = None
        if not correlation_id_var.get():
            token = set_correlation_id(generate_correlation_id())
        try:
            with self.tracer.span("process_instruction", EngineLayer.ROUTER) as span:
                slots = AccountSlots(accounts)
                span.set_attribute("accounts", len(slots))
                account_snapshot = self._snapshot_accounts(slots)
                ledger_snapshot = self.ledger.snapshot()
                try:
                    instruction = self._route(slots, data)
                except Exception as e:
                    self._restore_accounts(account_snapshot)
                    self.ledger.restore(ledger_snapshot)
                    if isinstance(e, MetadataError):
                        span.set_attribute("error_code", e.code.name)
                        logger.warning(
                            "Instruction rejected",
                            error_code=e.code.name,
                            reason=e.message,
                        )
                    else:
                        logger.error("Instruction failed unexpectedly", exc_info=True)
                    raise
                span.set_attribute("instruction", instruction.name)
                logger.info("Instruction processed", operation=instruction.name)
                return instruction
        finally:
            if token is not None:
                correlation_id_var.reset(token)

    def _route(self, slots: AccountSlots, data: bytes) -> Instruction:
        if len(slots) > self.max_accounts:
            raise MalformedInstruction(
                f"{len(slots)} accounts supplied, at most {self.max_accounts} accepted",
            )

        instruction = decode_instruction(data)

        # global precondition, ahead of any handler
        if is_locked(self.program_id, slots) and not isinstance(instruction, Unlock):
            raise LockedToken(instruction=instruction.name)

        if isinstance(instruction, ModernInstruction):
            handler = MODERN_HANDLERS.get(type(instruction))
            if handler is None:
                raise MalformedInstruction(f"no handler for {instruction.name}")
            handler(EngineContext(self.program_id, self.ledger, self.oracle), slots, instruction)
            return instruction

        if has_programmable_metadata(self.program_id, slots):
            raise InstructionNotSupported(instruction=instruction.name)
        self.legacy.process(self.program_id, slots, instruction)
        return instruction

    @staticmethod
    def _snapshot_accounts(slots: AccountSlots) -> _AccountSnapshot:
        return [(a, bytes(a.data), a.owner, a.lamports) for a in slots.present()]

    @staticmethod
    def _restore_accounts(snapshot: _AccountSnapshot) -> None:
        for account, data, owner, lamports in snapshot:
            account.data[:] = data
            account.owner = owner
            account.lamports = lamports


def process_instruction(
    program_id: Pubkey,
    accounts: Sequence[Optional[AccountInfo]],
    data: bytes,
    *,
    ledger: TokenLedger,
    oracle: PolicyOracle,
    legacy: Optional[LegacyProcessor] = None,
) -> Instruction:
    """One-shot routing without keeping a Processor around."""
    return Processor(ledger, oracle, legacy, program_id=program_id).process_instruction(accounts, data)
