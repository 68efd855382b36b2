"""
Declarative alert rules.

Rules are data (``rule`` entities or TOML/JSON files); evaluation is code.
"""

from .dispatch import AlertDispatcher
from .engine import RulesEngine, build_alert, evaluate_condition, evaluate_rule, get_value
from .load import load_rules, load_rules_file, rule_from_dict
from .schema import AlertRecord, EvaluationResult, RuleAction, RuleCondition, RuleDefinition

__all__ = [
    "AlertDispatcher",
    "AlertRecord",
    "EvaluationResult",
    "RuleAction",
    "RuleCondition",
    "RuleDefinition",
    "RulesEngine",
    "build_alert",
    "evaluate_condition",
    "evaluate_rule",
    "get_value",
    "load_rules",
    "load_rules_file",
    "rule_from_dict",
]
