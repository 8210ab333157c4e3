from reconciler.rules.evaluator import Evaluation, RuleEvaluator
from reconciler.rules.scope import ScopeResolver
from reconciler.rules.sql_store import SqlRuleStore
from reconciler.rules.store import CachingRuleStore, InMemoryRuleStore, NullRuleStore, RuleStore, ScopeFilter

__all__ = [
    "CachingRuleStore",
    "Evaluation",
    "InMemoryRuleStore",
    "NullRuleStore",
    "RuleEvaluator",
    "RuleStore",
    "ScopeFilter",
    "ScopeResolver",
    "SqlRuleStore",
]
