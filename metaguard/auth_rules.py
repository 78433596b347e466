"""
Policy Oracle Client

Before a programmable asset moves, the engine asks an external policy oracle
whether the operation satisfies the asset's rule set. This module builds the
fact payload for the operation and dispatches one validation call.

Flow:
    AuthRulesValidateParams
        │ no programmable_config ──────────────► return (oracle not called)
        ▼
    assert_valid_authorization   rules account present and == config.rule_set
        ▼
    payload = copy(caller auth data) + operation facts
        ▼
    seal payload ──► PolicyOracle.validate(ValidateRequest)
                         │ raises ─► InvalidAuthorizationRules

The oracle is injected; the engine never evaluates rules itself and never
asks the oracle to update rule state.

Copyright (c) 2026 Metaguard. All rights reserved.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from metaguard.accounts import AccountInfo, AccountMeta
from metaguard.errors import InvalidAuthorizationRules, InvalidOperation
from metaguard.observability import EngineLayer, get_logger
from metaguard.payload import AuthorizationData, Payload, PayloadKey, PayloadType
from metaguard.pubkey import Pubkey, cmp_pubkeys
from metaguard.state import ProgrammableConfig


logger = get_logger("auth_rules", EngineLayer.AUTH)


class Operation(Enum):
    """Operation tags understood by the policy oracle."""
    Transfer = "Transfer"
    Delegate = "Delegate"
    Burn = "Burn"
    Update = "Update"
    Mint = "Mint"
    Migrate = "Migrate"
    Lock = "Lock"
    Unlock = "Unlock"

    def __str__(self) -> str:
        return self.value


@dataclass
class ValidateRequest:
    """One validation call to the policy oracle."""
    rule_set: Pubkey
    mint: Pubkey
    operation: str
    payload: Payload
    additional_rule_accounts: List[AccountMeta] = field(default_factory=list)
    update_rule_state: bool = False


class PolicyOracle(ABC):
    """External rule evaluator. Rejection is signalled by raising."""

    @abstractmethod
    def validate(self, request: ValidateRequest) -> None:
        ...


def assert_valid_authorization(
    auth_rules_info: Optional[AccountInfo],
    config: ProgrammableConfig,
) -> None:
    if auth_rules_info is None:
        raise InvalidAuthorizationRules("authorization rules account is required")
    if not cmp_pubkeys(auth_rules_info.key, config.rule_set):
        raise InvalidAuthorizationRules(
            "authorization rules account does not match the asset rule set",
            expected=config.rule_set,
            actual=auth_rules_info.key,
        )


def validate(
    oracle: PolicyOracle,
    ruleset: AccountInfo,
    operation: Operation,
    mint_info: AccountInfo,
    additional_rule_accounts: List[AccountInfo],
    auth_data: AuthorizationData,
) -> None:
    """Dispatch one validation call; oracle failures are not retried."""
    request = ValidateRequest(
        rule_set=ruleset.key,
        mint=mint_info.key,
        operation=str(operation),
        payload=auth_data.payload,
        additional_rule_accounts=[a.to_account_meta() for a in additional_rule_accounts],
        update_rule_state=False,
    )
    try:
        oracle.validate(request)
    except InvalidAuthorizationRules:
        raise
    except Exception as e:
        logger.warning(
            "Policy oracle rejected operation",
            operation=str(operation),
            mint=str(mint_info.key),
            reason=str(e),
        )
        raise InvalidAuthorizationRules(
            f"policy oracle rejected {operation}: {e}",
            rule_set=ruleset.key,
        ) from e


@dataclass
class AuthRulesValidateParams:
    mint_info: AccountInfo
    operation: Operation
    target_info: Optional[AccountInfo] = None
    authority_info: Optional[AccountInfo] = None
    owner_info: Optional[AccountInfo] = None
    programmable_config: Optional[ProgrammableConfig] = None
    amount: int = 0
    auth_data: Optional[AuthorizationData] = None
    auth_rules_info: Optional[AccountInfo] = None


def auth_rules_validate(oracle: PolicyOracle, params: AuthRulesValidateParams) -> None:
    config = params.programmable_config
    if config is None:
        return

    logger.debug("Programmable config exists", operation=str(params.operation))
    assert_valid_authorization(params.auth_rules_info, config)
    logger.debug("Authorization rules account valid, adding facts", operation=str(params.operation))

    # the caller's auth data is left untouched
    auth_data = params.auth_data.copy() if params.auth_data is not None else AuthorizationData.new_empty()

    additional_rule_accounts = [
        a for a in (params.target_info, params.authority_info, params.owner_info)
        if a is not None
    ]

    if params.operation == Operation.Transfer:
        if params.target_info is None or params.authority_info is None:
            raise InvalidOperation("transfer validation requires target and authority accounts")
        payload = auth_data.payload
        payload.insert(PayloadKey.Amount, PayloadType.of_number(params.amount))
        payload.insert(PayloadKey.Target, PayloadType.of_pubkey(params.target_info.key))
        payload.insert(PayloadKey.Authority, PayloadType.of_pubkey(params.authority_info.key))
    else:
        raise InvalidOperation(f"no authorization facts defined for {params.operation}")

    auth_data.payload.seal()
    validate(
        oracle,
        params.auth_rules_info,
        params.operation,
        params.mint_info,
        additional_rule_accounts,
        auth_data,
    )
