"""
Metaguard: governance engine for programmable digital-asset records.

Every mutation of an asset record (transfer, delegate, burn, update, mint,
lock, unlock, migrate, verify, create, revoke) passes through one router that
decides whether the operation may proceed, and a lock state keeps held assets
from moving through any path but the sanctioned one.

Architecture
────────────

    ┌─────────────────────────────────────────────────────────────────────────┐
    │                           INSTRUCTION ENGINE                             │
    │                                                                          │
    │  ROUTING                                                                 │
    │    processor.py    decode, global lock veto, dispatch, rollback          │
    │    guards.py       lock guard and programmable classifier                │
    │    handlers.py     modern instruction handlers                           │
    │                                                                          │
    │  POLICY AND STATE TRANSITIONS                                            │
    │    auth_rules.py   fact payload assembly and policy oracle dispatch      │
    │    rule_engine.py  in-process rule sets usable as a policy oracle        │
    │    freeze.py       edition-signed freeze, thaw and frozen transfer       │
    │    token_ledger.py token balance primitive and in-memory ledger          │
    │                                                                          │
    │  RECORDS                                                                 │
    │    state.py        asset record, token record, master edition            │
    │    payload.py      typed fact sheet and authorization data               │
    │    instruction.py  instruction wire format                               │
    │    codec.py        little-endian record codec                            │
    │    pubkey.py       addresses and derived addresses                       │
    │    accounts.py     account views with explicit optional slots            │
    │                                                                          │
    └─────────────────────────────────────────────────────────────────────────┘

Design Principles
─────────────────

    Fail closed: an account that claims to be a record but cannot be decoded
    aborts the instruction. Unknown instructions are rejected.

    All or nothing: a rejected instruction leaves accounts and ledger exactly
    as they were.

    Injected capabilities: the token ledger, the policy oracle and the legacy
    instruction set are supplied by the host.

Copyright (c) 2026 Metaguard. All rights reserved.
"""

__version__ = "0.3.0"


def __getattr__(name: str):
    """Lazy exports so that importing the package stays cheap."""
    if name in ("Processor", "process_instruction", "LegacyProcessor", "RegistryLegacyProcessor"):
        from metaguard import processor
        return getattr(processor, name)

    if name in ("PolicyOracle", "ValidateRequest", "Operation", "AuthRulesValidateParams",
                "auth_rules_validate"):
        from metaguard import auth_rules
        return getattr(auth_rules, name)

    if name in ("TokenLedger", "InMemoryTokenLedger", "Authorization"):
        from metaguard import token_ledger
        return getattr(token_ledger, name)

    if name in ("RuleSet", "RuleSetOracle", "load_rule_sets"):
        from metaguard import rule_engine
        return getattr(rule_engine, name)

    if name in ("AccountInfo", "AccountSlots"):
        from metaguard import accounts
        return getattr(accounts, name)

    if name in ("Pubkey", "Keypair", "find_program_address"):
        from metaguard import pubkey
        return getattr(pubkey, name)

    if name in ("MetadataError", "ErrorCode"):
        from metaguard import errors
        return getattr(errors, name)

    raise AttributeError(f"module 'metaguard' has no attribute '{name}'")


__all__ = [
    "__version__",
    # Router
    "Processor",
    "process_instruction",
    "LegacyProcessor",
    "RegistryLegacyProcessor",
    # Policy
    "PolicyOracle",
    "ValidateRequest",
    "Operation",
    "AuthRulesValidateParams",
    "auth_rules_validate",
    "RuleSet",
    "RuleSetOracle",
    "load_rule_sets",
    # Ledger
    "TokenLedger",
    "InMemoryTokenLedger",
    "Authorization",
    # Accounts
    "AccountInfo",
    "AccountSlots",
    "Pubkey",
    "Keypair",
    "find_program_address",
    # Errors
    "MetadataError",
    "ErrorCode",
]
