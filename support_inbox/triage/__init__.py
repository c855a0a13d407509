"""Keyword triage: rule tables, the message classifier and merge rules."""

from .classifier import MessageClassifier, analyze_message
from .merge import build_override, merge_triage
from .rules import DEFAULT_RULES, TriageRules, load_rules

__all__ = [
    "DEFAULT_RULES",
    "MessageClassifier",
    "TriageRules",
    "analyze_message",
    "build_override",
    "load_rules",
    "merge_triage",
]
