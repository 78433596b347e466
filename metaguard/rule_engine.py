"""
Local rule-set evaluator.

A PolicyOracle that evaluates rule sets held in process, for hosts that do
not run a separate rules engine and for tests. Rule sets are written in YAML
and checked against RULE_SET_SCHEMA before use.

    rule_sets:
      - name: royalty-enforced
        address: <base58 rule set address>
        operations:
          Transfer:
            All:
              - AmountLessThan: {field: Amount, amount: 2}
              - Not:
                  PubkeyListMatch: {field: Target, pubkeys: [<base58>, ...]}

Rules:
    Pass                              always passes
    PubkeyMatch {field, pubkey}       payload[field] == pubkey
    PubkeyListMatch {field, pubkeys}  payload[field] in pubkeys
    AmountLessThan {field, amount}    payload[field] < amount
    All [rules] / Any [rules]         conjunction / disjunction
    Not rule                          negation

Copyright (c) 2026 Metaguard. All rights reserved.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from jsonschema import Draft202012Validator

from metaguard.auth_rules import PolicyOracle, ValidateRequest
from metaguard.config import get_config
from metaguard.observability import EngineLayer, get_logger, timed_operation
from metaguard.payload import Payload
from metaguard.pubkey import Pubkey


logger = get_logger("rule_engine", EngineLayer.RULES)


RULE_SET_SCHEMA: Dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "required": ["rule_sets"],
    "additionalProperties": False,
    "properties": {
        "rule_sets": {
            "type": "array",
            "items": {"$ref": "#/$defs/rule_set"},
        },
    },
    "$defs": {
        "pubkey": {"type": "string", "pattern": "^[1-9A-HJ-NP-Za-km-z]{32,44}$"},
        "rule_set": {
            "type": "object",
            "required": ["name", "address", "operations"],
            "additionalProperties": False,
            "properties": {
                "name": {"type": "string", "minLength": 1},
                "address": {"$ref": "#/$defs/pubkey"},
                "operations": {
                    "type": "object",
                    "additionalProperties": {"$ref": "#/$defs/rule"},
                },
            },
        },
        "rule": {
            "oneOf": [
                {"const": "Pass"},
                {
                    "type": "object",
                    "required": ["PubkeyMatch"],
                    "additionalProperties": False,
                    "properties": {"PubkeyMatch": {
                        "type": "object",
                        "required": ["field", "pubkey"],
                        "additionalProperties": False,
                        "properties": {
                            "field": {"type": "string"},
                            "pubkey": {"$ref": "#/$defs/pubkey"},
                        },
                    }},
                },
                {
                    "type": "object",
                    "required": ["PubkeyListMatch"],
                    "additionalProperties": False,
                    "properties": {"PubkeyListMatch": {
                        "type": "object",
                        "required": ["field", "pubkeys"],
                        "additionalProperties": False,
                        "properties": {
                            "field": {"type": "string"},
                            "pubkeys": {"type": "array", "items": {"$ref": "#/$defs/pubkey"}},
                        },
                    }},
                },
                {
                    "type": "object",
                    "required": ["AmountLessThan"],
                    "additionalProperties": False,
                    "properties": {"AmountLessThan": {
                        "type": "object",
                        "required": ["field", "amount"],
                        "additionalProperties": False,
                        "properties": {
                            "field": {"type": "string"},
                            "amount": {"type": "integer", "minimum": 0},
                        },
                    }},
                },
                {
                    "type": "object",
                    "required": ["All"],
                    "additionalProperties": False,
                    "properties": {"All": {"type": "array", "items": {"$ref": "#/$defs/rule"}}},
                },
                {
                    "type": "object",
                    "required": ["Any"],
                    "additionalProperties": False,
                    "properties": {"Any": {"type": "array", "items": {"$ref": "#/$defs/rule"}}},
                },
                {
                    "type": "object",
                    "required": ["Not"],
                    "additionalProperties": False,
                    "properties": {"Not": {"$ref": "#/$defs/rule"}},
                },
            ],
        },
    },
}


class RuleSetError(ValueError):
    """Rule set document failed schema validation."""

    def __init__(self, errors: List[str]):
        self.errors = errors
        super().__init__("; ".join(errors))


class RuleViolation(Exception):
    """Payload did not satisfy a rule."""
    pass


# =============================================================================
# RULES
# =============================================================================

class Rule(ABC):

    @abstractmethod
    def evaluate(self, payload: Payload) -> None:
        """Raise RuleViolation when the payload does not satisfy the rule."""


class Pass(Rule):
    def evaluate(self, payload: Payload) -> None:
        return None


@dataclass
class PubkeyMatch(Rule):
    field: str
    pubkey: Pubkey

    def evaluate(self, payload: Payload) -> None:
        value = payload.get_pubkey(self.field)
        if value is None:
            raise RuleViolation(f"missing pubkey field {self.field}")
        if value != self.pubkey:
            raise RuleViolation(f"{self.field} {value} does not match {self.pubkey}")


@dataclass
class PubkeyListMatch(Rule):
    field: str
    pubkeys: List[Pubkey]

    def evaluate(self, payload: Payload) -> None:
        value = payload.get_pubkey(self.field)
        if value is None:
            raise RuleViolation(f"missing pubkey field {self.field}")
        if value not in self.pubkeys:
            raise RuleViolation(f"{self.field} {value} not in allowed list")


@dataclass
class AmountLessThan(Rule):
    field: str
    amount: int

    def evaluate(self, payload: Payload) -> None:
        value = payload.get_amount(self.field)
        if value is None:
            raise RuleViolation(f"missing amount field {self.field}")
        if not value < self.amount:
            raise RuleViolation(f"{self.field} {value} is not less than {self.amount}")


@dataclass
class AllOf(Rule):
    rules: List[Rule] = field(default_factory=list)

    def evaluate(self, payload: Payload) -> None:
        for rule in self.rules:
            rule.evaluate(payload)


@dataclass
class AnyOf(Rule):
    rules: List[Rule] = field(default_factory=list)

    def evaluate(self, payload: Payload) -> None:
        reasons = []
        for rule in self.rules:
            try:
                rule.evaluate(payload)
                return
            except RuleViolation as e:
                reasons.append(str(e))
        raise RuleViolation("no alternative satisfied: " + "; ".join(reasons))


@dataclass
class Not(Rule):
    rule: Rule

    def evaluate(self, payload: Payload) -> None:
        try:
            self.rule.evaluate(payload)
        except RuleViolation:
            return
        raise RuleViolation("negated rule was satisfied")


def parse_rule(node: Union[str, Dict[str, Any]]) -> Rule:
    """Build a rule tree from its schema-valid document form."""
    if node == "Pass":
        return Pass()
    (name, body), = node.items()
    if name == "PubkeyMatch":
        return PubkeyMatch(body["field"], Pubkey.from_string(body["pubkey"]))
    if name == "PubkeyListMatch":
        return PubkeyListMatch(body["field"], [Pubkey.from_string(p) for p in body["pubkeys"]])
    if name == "AmountLessThan":
        return AmountLessThan(body["field"], int(body["amount"]))
    if name == "All":
        return AllOf([parse_rule(r) for r in body])
    if name == "Any":
        return AnyOf([parse_rule(r) for r in body])
    if name == "Not":
        return Not(parse_rule(body))
    raise RuleSetError([f"unknown rule {name}"])


# =============================================================================
# RULE SETS
# =============================================================================

@dataclass
class RuleSet:
    name: str
    address: Pubkey
    operations: Dict[str, Rule] = field(default_factory=dict)

    def evaluate(self, operation: str, payload: Payload) -> None:
        rule = self.operations.get(operation)
        if rule is None:
            raise RuleViolation(f"rule set {self.name} has no rule for {operation}")
        rule.evaluate(payload)


def validate_rule_document(doc: Any) -> List[str]:
    """Schema errors for a rule set document (empty if valid)."""
    validator = Draft202012Validator(RULE_SET_SCHEMA)
    return [
        f"{error.json_path}: {error.message}"
        for error in validator.iter_errors(doc)
    ]


def rule_sets_from_dict(doc: Any) -> List[RuleSet]:
    errors = validate_rule_document(doc)
    if errors:
        raise RuleSetError(errors)
    result = []
    for rs in doc["rule_sets"]:
        result.append(RuleSet(
            name=rs["name"],
            address=Pubkey.from_string(rs["address"]),
            operations={op: parse_rule(rule) for op, rule in rs["operations"].items()},
        ))
    return result


def load_rule_sets(path: Union[str, Path]) -> List[RuleSet]:
    """Load and validate rule sets from a YAML file."""
    with open(path, "r", encoding="utf-8") as f:
        doc = yaml.safe_load(f)
    return rule_sets_from_dict(doc)


class RuleSetOracle(PolicyOracle):
    """PolicyOracle backed by in-process rule sets, keyed by address."""

    def __init__(self, rule_sets: Optional[List[RuleSet]] = None):
        self._rule_sets: Dict[Pubkey, RuleSet] = {}
        for rs in rule_sets or []:
            self.register(rs)

    def register(self, rule_set: RuleSet) -> None:
        self._rule_sets[rule_set.address] = rule_set

    @timed_operation(logger, "rule_set_validate")
    def validate(self, request: ValidateRequest) -> None:
        if request.update_rule_state:
            raise RuleViolation("rule state updates are not supported")
        rule_set = self._rule_sets.get(request.rule_set)
        if rule_set is None:
            raise RuleViolation(f"unknown rule set {request.rule_set}")
        rule_set.evaluate(request.operation, request.payload)
        logger.debug(
            "Rule set passed",
            operation=request.operation,
            rule_set=rule_set.name,
        )


def oracle_from_config() -> RuleSetOracle:
    """RuleSetOracle loaded from ``engine.rule_sets_path`` (empty if unset)."""
    path = get_config().engine.rule_sets_path.get()
    if not path:
        return RuleSetOracle()
    rule_sets = load_rule_sets(path)
    logger.info("Rule sets loaded", path=path, count=len(rule_sets))
    return RuleSetOracle(rule_sets)
