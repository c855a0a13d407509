"""Keyword rule tables consulted by the message classifier.

A :class:`TriageRules` value is immutable and is handed to the classifier at
construction time, so tests and deployments can swap rule sets without
touching process-wide state. :data:`DEFAULT_RULES` holds the Japanese keyword
sets the inbox ships with.
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any

from ..conversations.models import ComplaintType


def _as_keywords(name: str, values: Iterable[str]) -> tuple[str, ...]:
    keywords = tuple(values)
    for keyword in keywords:
        if not isinstance(keyword, str):
            raise TypeError(f"{name} keywords must be strings, got {keyword!r}")
        if not keyword:
            raise ValueError(f"{name} contains an empty keyword")
    return keywords


@dataclass(frozen=True)
class TriageRules:
    """Immutable keyword configuration for triage classification."""

    complaint_keywords: tuple[str, ...]
    urgency_now_keywords: tuple[str, ...]
    urgency_today_keywords: tuple[str, ...]
    urgency_this_week_keywords: tuple[str, ...]
    priority_high_keywords: tuple[str, ...]
    complaint_type_keywords: Mapping[ComplaintType, tuple[str, ...]] = field(
        default_factory=dict
    )

    def __post_init__(self) -> None:
        for name in (
            "complaint_keywords",
            "urgency_now_keywords",
            "urgency_today_keywords",
            "urgency_this_week_keywords",
            "priority_high_keywords",
        ):
            object.__setattr__(self, name, _as_keywords(name, getattr(self, name)))

        by_type = {
            ComplaintType(key): _as_keywords(f"complaint_type_keywords[{key}]", values)
            for key, values in dict(self.complaint_type_keywords).items()
        }
        missing = [member.value for member in ComplaintType if member not in by_type]
        if missing:
            raise ValueError(
                f"complaint_type_keywords is missing entries for: {', '.join(missing)}"
            )
        # Keep declaration order; the classifier returns the first match.
        ordered = {member: by_type[member] for member in ComplaintType}
        object.__setattr__(self, "complaint_type_keywords", MappingProxyType(ordered))

    def as_dict(self) -> dict[str, Any]:
        """Return the rule table in the shape served by the admin API."""

        return {
            "complaintKeywords": list(self.complaint_keywords),
            "urgencyKeywords": {
                "now": list(self.urgency_now_keywords),
                "today": list(self.urgency_today_keywords),
                "thisWeek": list(self.urgency_this_week_keywords),
            },
            "priorityKeywords": list(self.priority_high_keywords),
            "complaintTypeKeywords": {
                member.value: list(keywords)
                for member, keywords in self.complaint_type_keywords.items()
            },
        }

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "TriageRules":
        """Build a rule table from the :meth:`as_dict` shape."""

        try:
            urgency = data["urgencyKeywords"]
            return cls(
                complaint_keywords=data["complaintKeywords"],
                urgency_now_keywords=urgency["now"],
                urgency_today_keywords=urgency["today"],
                urgency_this_week_keywords=urgency["thisWeek"],
                priority_high_keywords=data["priorityKeywords"],
                complaint_type_keywords=data["complaintTypeKeywords"],
            )
        except KeyError as exc:
            raise ValueError(f"Triage rules are missing key {exc.args[0]!r}") from exc


DEFAULT_RULES = TriageRules(
    complaint_keywords=(
        "最悪",
        "返金",
        "詐欺",
        "対応が悪い",
        "ひどい",
        "許せない",
        "クレーム",
        "謝罪",
        "責任者",
        "訴える",
        "消費者センター",
        "二度と",
        "不快",
        "失望",
        "がっかり",
    ),
    urgency_now_keywords=(
        "今すぐ",
        "至急",
        "緊急",
        "今日中",
        "当日",
        "すぐに",
        "急いで",
        "急ぎ",
    ),
    urgency_today_keywords=(
        "今日",
        "本日",
        "できるだけ早く",
        "早めに",
        "なるべく早く",
    ),
    urgency_this_week_keywords=(
        "今週",
        "今週中",
        "週内",
    ),
    priority_high_keywords=(
        "解約",
        "退会",
        "返金",
        "個人情報",
        "漏洩",
        "法的",
        "弁護士",
        "警察",
        "重要",
        "至急",
        "緊急",
    ),
    complaint_type_keywords={
        ComplaintType.BILLING: ("料金", "請求", "支払い", "金額", "値段", "高い", "課金", "返金"),
        ComplaintType.QUALITY: ("品質", "不良", "壊れ", "動かない", "使えない", "機能しない"),
        ComplaintType.DELAY: ("遅い", "遅れ", "届かない", "来ない", "待たされ"),
        ComplaintType.ATTITUDE: ("対応", "態度", "失礼", "無視", "返信", "連絡"),
        ComplaintType.OTHER: (),
    },
)


def load_rules(path: str | Path | None = None) -> TriageRules:
    """Return the rule table stored at ``path`` or :data:`DEFAULT_RULES`."""

    if path is None:
        return DEFAULT_RULES
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    return TriageRules.from_mapping(data)


__all__ = ["DEFAULT_RULES", "TriageRules", "load_rules"]
