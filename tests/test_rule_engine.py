"""
Local rule evaluator tests.
"""

import pytest
import yaml

from metaguard.auth_rules import ValidateRequest
from metaguard.config import ConfigManager
from metaguard.payload import Payload, PayloadKey, PayloadType
from metaguard.pubkey import Pubkey
from metaguard.rule_engine import (
    AllOf,
    AmountLessThan,
    AnyOf,
    Not,
    Pass,
    PubkeyListMatch,
    PubkeyMatch,
    RuleSet,
    RuleSetError,
    RuleSetOracle,
    RuleViolation,
    load_rule_sets,
    oracle_from_config,
    parse_rule,
    rule_sets_from_dict,
    validate_rule_document,
)


def _payload(amount=1, target=None) -> Payload:
    p = Payload()
    p.insert(PayloadKey.Amount, PayloadType.of_number(amount))
    p.insert(PayloadKey.Target, PayloadType.of_pubkey(target or Pubkey.new_unique()))
    return p.seal()


def _document(address: Pubkey, blocked: Pubkey) -> dict:
    return {
        "rule_sets": [{
            "name": "royalty-enforced",
            "address": str(address),
            "operations": {
                "Transfer": {"All": [
                    {"AmountLessThan": {"field": "Amount", "amount": 2}},
                    {"Not": {"PubkeyListMatch": {"field": "Target", "pubkeys": [str(blocked)]}}},
                ]},
                "Delegate": "Pass",
            },
        }],
    }


class TestRules:

    def test_pass(self):
        Pass().evaluate(Payload())

    def test_pubkey_match(self):
        target = Pubkey.new_unique()
        PubkeyMatch("Target", target).evaluate(_payload(target=target))
        with pytest.raises(RuleViolation):
            PubkeyMatch("Target", Pubkey.new_unique()).evaluate(_payload(target=target))

    def test_missing_field_is_violation(self):
        with pytest.raises(RuleViolation):
            PubkeyMatch("Holder", Pubkey.new_unique()).evaluate(_payload())

    def test_amount_strictly_less(self):
        AmountLessThan("Amount", 2).evaluate(_payload(amount=1))
        with pytest.raises(RuleViolation):
            AmountLessThan("Amount", 2).evaluate(_payload(amount=2))

    def test_combinators(self):
        target = Pubkey.new_unique()
        payload = _payload(target=target)
        AnyOf([PubkeyMatch("Target", Pubkey.new_unique()), Pass()]).evaluate(payload)
        Not(PubkeyListMatch("Target", [Pubkey.new_unique()])).evaluate(payload)
        with pytest.raises(RuleViolation):
            AllOf([Pass(), Not(Pass())]).evaluate(payload)
        with pytest.raises(RuleViolation):
            AnyOf([]).evaluate(payload)

    def test_parse_rule(self):
        rule = parse_rule({"Any": ["Pass", {"Not": "Pass"}]})
        assert isinstance(rule, AnyOf)
        assert isinstance(rule.rules[1], Not)


class TestRuleSetDocuments:

    def test_valid_document(self):
        doc = _document(Pubkey.new_unique(), Pubkey.new_unique())
        assert validate_rule_document(doc) == []
        (rule_set,) = rule_sets_from_dict(doc)
        assert rule_set.name == "royalty-enforced"
        assert set(rule_set.operations) == {"Transfer", "Delegate"}

    def test_unknown_rule_rejected(self):
        doc = _document(Pubkey.new_unique(), Pubkey.new_unique())
        doc["rule_sets"][0]["operations"]["Burn"] = {"Always": {}}
        with pytest.raises(RuleSetError) as exc:
            rule_sets_from_dict(doc)
        assert exc.value.errors

    def test_bad_address_rejected(self):
        doc = _document(Pubkey.new_unique(), Pubkey.new_unique())
        doc["rule_sets"][0]["address"] = "not-an-address!"
        assert validate_rule_document(doc)

    def test_load_from_yaml(self, tmp_path):
        path = tmp_path / "rules.yaml"
        path.write_text(yaml.safe_dump(_document(Pubkey.new_unique(), Pubkey.new_unique())))
        assert len(load_rule_sets(path)) == 1


class TestRuleSetOracle:

    @pytest.fixture
    def setup(self):
        address = Pubkey.new_unique()
        blocked = Pubkey.new_unique()
        oracle = RuleSetOracle(rule_sets_from_dict(_document(address, blocked)))
        return oracle, address, blocked

    def _request(self, rule_set, operation="Transfer", **payload_args):
        return ValidateRequest(
            rule_set=rule_set,
            mint=Pubkey.new_unique(),
            operation=operation,
            payload=_payload(**payload_args),
        )

    def test_allowed(self, setup):
        oracle, address, _ = setup
        oracle.validate(self._request(address))

    def test_blocked_target(self, setup):
        oracle, address, blocked = setup
        with pytest.raises(RuleViolation):
            oracle.validate(self._request(address, target=blocked))

    def test_amount_limit(self, setup):
        oracle, address, _ = setup
        with pytest.raises(RuleViolation):
            oracle.validate(self._request(address, amount=5))

    def test_unknown_rule_set(self, setup):
        oracle, _, _ = setup
        with pytest.raises(RuleViolation):
            oracle.validate(self._request(Pubkey.new_unique()))

    def test_unknown_operation(self, setup):
        oracle, address, _ = setup
        with pytest.raises(RuleViolation):
            oracle.validate(self._request(address, operation="Burn"))

    def test_rule_state_updates_refused(self, setup):
        oracle, address, _ = setup
        request = self._request(address)
        request.update_rule_state = True
        with pytest.raises(RuleViolation):
            oracle.validate(request)

    def test_register(self):
        oracle = RuleSetOracle()
        address = Pubkey.new_unique()
        oracle.register(RuleSet("open", address, {"Transfer": Pass()}))
        oracle.validate(self._request(address))


class TestOracleFromConfig:

    def test_empty_when_unset(self):
        oracle = oracle_from_config()
        with pytest.raises(RuleViolation):
            oracle.validate(ValidateRequest(Pubkey.new_unique(), Pubkey.new_unique(), "Transfer", _payload()))

    def test_loads_configured_path(self, tmp_path):
        address = Pubkey.new_unique()
        path = tmp_path / "rules.yaml"
        path.write_text(yaml.safe_dump(_document(address, Pubkey.new_unique())))
        ConfigManager().set("engine.rule_sets_path", str(path))

        oracle = oracle_from_config()
        oracle.validate(ValidateRequest(address, Pubkey.new_unique(), "Transfer", _payload()))
