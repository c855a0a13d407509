import pytest

from support_inbox.conversations.models import ComplaintType, Priority, Urgency
from support_inbox.triage import DEFAULT_RULES, MessageClassifier, TriageRules, analyze_message


def test_refund_complaint_with_urgent_request():
    result = analyze_message("返金してください。対応が悪いです。至急お願いします。")

    assert result.is_complaint is True
    assert result.complaint_type is ComplaintType.BILLING
    assert result.urgency is Urgency.NOW
    assert result.priority is Priority.HIGH
    assert result.confidence == 0.9
    assert "返金" in result.matched_keywords
    assert "至急" in result.matched_keywords


def test_thank_you_message_is_neutral():
    result = analyze_message("ありがとうございます")

    assert result.priority is Priority.MEDIUM
    assert result.urgency is Urgency.ANYTIME
    assert result.is_complaint is False
    assert result.complaint_type is None
    assert result.confidence == 0.5
    assert result.matched_keywords == ()


def test_empty_text_is_neutral():
    result = analyze_message("")

    assert result.priority is Priority.MEDIUM
    assert result.urgency is Urgency.ANYTIME
    assert result.is_complaint is False
    assert result.confidence == 0.5


def test_complaint_alone_raises_priority_and_confidence():
    result = analyze_message("ひどい品質で壊れていました")

    assert result.is_complaint is True
    assert result.complaint_type is ComplaintType.QUALITY
    assert result.priority is Priority.HIGH
    assert result.confidence == 0.8


def test_complaint_without_type_keyword_is_other():
    result = analyze_message("本当にがっかりです")

    assert result.complaint_type is ComplaintType.OTHER


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("今日中に返事をください", Urgency.NOW),
        ("本日中に確認お願いします", Urgency.TODAY),
        ("今週中に届けてほしい", Urgency.THIS_WEEK),
        ("いつでも大丈夫です", Urgency.ANYTIME),
    ],
)
def test_urgency_takes_highest_tier(text, expected):
    assert analyze_message(text).urgency is expected


def test_only_first_keyword_per_urgency_tier_is_recorded():
    result = analyze_message("今すぐ、至急、緊急でお願いします")

    assert result.urgency is Urgency.NOW
    assert result.matched_keywords == ("今すぐ", "至急")


def test_matching_ignores_case():
    rules = TriageRules(
        complaint_keywords=("Refund",),
        urgency_now_keywords=("ASAP",),
        urgency_today_keywords=(),
        urgency_this_week_keywords=(),
        priority_high_keywords=(),
        complaint_type_keywords={member: () for member in ComplaintType},
    )
    result = MessageClassifier(rules).classify("refund asap please")

    assert result.is_complaint is True
    assert result.urgency is Urgency.NOW
    assert result.matched_keywords == ("Refund", "ASAP")


def test_shared_keyword_counts_once_per_rule():
    result = analyze_message("返金")

    # complaint list and high-priority list both contain the keyword
    assert result.matched_keywords == ("返金", "返金")
    assert result.confidence == 0.8


def test_default_classifier_uses_default_rules():
    assert MessageClassifier().rules is DEFAULT_RULES


@pytest.mark.parametrize(
    "text",
    [
        "x" * 100_000,
        "\ud800 壊れた \udfff",
        "🙂" * 50 + "\x00\n\t",
    ],
)
def test_classify_never_raises_on_odd_input(text):
    result = analyze_message(text)

    assert 0.5 <= result.confidence <= 0.9


def test_every_keyword_at_once():
    rules = DEFAULT_RULES
    keywords = (
        rules.complaint_keywords
        + rules.urgency_now_keywords
        + rules.urgency_today_keywords
        + rules.urgency_this_week_keywords
        + rules.priority_high_keywords
        + tuple(k for group in rules.complaint_type_keywords.values() for k in group)
    )

    result = analyze_message("、".join(keywords) + "\ud800")

    assert result.priority is Priority.HIGH
    assert result.urgency is Urgency.NOW
    assert result.is_complaint is True
    assert result.complaint_type is ComplaintType.BILLING
    assert result.confidence == 0.9
