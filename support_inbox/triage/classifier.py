"""Rule-based classification of inbound message text."""

from __future__ import annotations

from collections.abc import Iterable

from ..conversations.models import (
    ClassificationResult,
    ComplaintType,
    Priority,
    Urgency,
)
from .rules import DEFAULT_RULES, TriageRules


class MessageClassifier:
    """Classify message text into priority, urgency and complaint signals.

    Matching is case-insensitive substring containment over the whole text.
    Every keyword found while evaluating a rule is recorded in
    ``matched_keywords``; the confidence score is derived from that count, so
    a keyword listed in several rules is counted once per rule.
    """

    def __init__(self, rules: TriageRules | None = None) -> None:
        self._rules = rules or DEFAULT_RULES

    @property
    def rules(self) -> TriageRules:
        return self._rules

    def classify(self, text: str) -> ClassificationResult:
        lowered = (text or "").lower()
        matched: list[str] = []

        complaint_matches = [
            keyword
            for keyword in self._rules.complaint_keywords
            if keyword.lower() in lowered
        ]
        matched.extend(complaint_matches)
        is_complaint = bool(complaint_matches)

        complaint_type: ComplaintType | None = None
        if is_complaint:
            complaint_type = self._complaint_type(lowered)

        if self._first_match(lowered, self._rules.urgency_now_keywords, matched):
            urgency = Urgency.NOW
        elif self._first_match(lowered, self._rules.urgency_today_keywords, matched):
            urgency = Urgency.TODAY
        elif self._first_match(lowered, self._rules.urgency_this_week_keywords, matched):
            urgency = Urgency.THIS_WEEK
        else:
            urgency = Urgency.ANYTIME

        if self._first_match(lowered, self._rules.priority_high_keywords, matched):
            priority = Priority.HIGH
        elif is_complaint:
            priority = Priority.HIGH
        else:
            priority = Priority.MEDIUM

        return ClassificationResult(
            priority=priority,
            urgency=urgency,
            is_complaint=is_complaint,
            complaint_type=complaint_type,
            confidence=_confidence(len(matched), is_complaint, priority),
            matched_keywords=tuple(matched),
        )

    def _complaint_type(self, lowered: str) -> ComplaintType:
        for complaint_type, keywords in self._rules.complaint_type_keywords.items():
            if any(keyword.lower() in lowered for keyword in keywords):
                return complaint_type
        return ComplaintType.OTHER

    @staticmethod
    def _first_match(lowered: str, keywords: Iterable[str], matched: list[str]) -> bool:
        for keyword in keywords:
            if keyword.lower() in lowered:
                matched.append(keyword)
                return True
        return False


def _confidence(match_count: int, is_complaint: bool, priority: Priority) -> float:
    if match_count >= 3:
        confidence = 0.9
    elif match_count >= 2:
        confidence = 0.8
    elif match_count >= 1:
        confidence = 0.7
    else:
        confidence = 0.5
    if is_complaint or priority is Priority.HIGH:
        confidence = max(confidence, 0.8)
    return confidence


_default_classifier = MessageClassifier()


def analyze_message(text: str, rules: TriageRules | None = None) -> ClassificationResult:
    """Classify ``text`` with ``rules`` (or the default rule table)."""

    if rules is None:
        return _default_classifier.classify(text)
    return MessageClassifier(rules).classify(text)


__all__ = ["MessageClassifier", "analyze_message"]
