"""
Deterministic triage summary for a chat transcript.

Turns alternate by position: even indices are the assistant, odd indices the customer.
Everything here is keyword matching; no model calls.
"""

import math
from collections.abc import Sequence

from escalation_desk.schemas.chat import ChatMessage, ChatSummary, Sentiment

ISSUE_KEYWORDS: dict[str, tuple[str, ...]] = {
    "fiber": ("fiber", "internet", "connection", "slow", "speed", "wifi"),
    "mobile": ("mobile", "phone", "data", "network", "signal", "coverage"),
    "billing": ("bill", "payment", "charge", "account", "invoice", "cost"),
    "technical": ("not working", "broken", "error", "problem", "issue", "fault"),
    "service": ("service", "support", "help", "assistance", "complaint"),
}
FALLBACK_ISSUE = "general inquiry"

NEGATIVE_WORDS = ("frustrated", "angry", "terrible", "awful", "hate", "worst", "useless", "disappointed")
POSITIVE_WORDS = ("great", "good", "excellent", "thanks", "helpful", "appreciate", "perfect")
UNHELPFUL_WEIGHT = 2
SENTIMENT_THRESHOLD = 2

TRIGGER_EXCERPT_CHARS = 100
MAIN_ISSUE_CHARS = 150
MIN_INFORMATIVE_CHARS = 10

EMPTY_SUMMARY = ChatSummary(
    summary="No conversation history available",
    key_issues=[],
    customer_sentiment="neutral",
    escalation_triggers=[],
    message_count=0,
    duration="0 minutes",
)


def summarize_chat_history(messages: Sequence[ChatMessage]) -> ChatSummary:
    if not messages:
        return EMPTY_SUMMARY

    customer_messages = [message for index, message in enumerate(messages) if index % 2 == 1]
    key_issues = extract_key_issues(customer_messages)
    triggers = [_truncate(message.text, TRIGGER_EXCERPT_CHARS) for message in messages if message.is_unhelpful]

    return ChatSummary(
        summary=_narrative(customer_messages, key_issues, len(triggers)),
        key_issues=key_issues,
        customer_sentiment=analyze_sentiment(messages),
        escalation_triggers=triggers,
        message_count=len(messages),
        duration=_duration(messages),
    )


def extract_key_issues(customer_messages: Sequence[ChatMessage]) -> list[str]:
    issues: list[str] = []
    for message in customer_messages:
        text = message.text.lower()
        for category, words in ISSUE_KEYWORDS.items():
            if category not in issues and any(word in text for word in words):
                issues.append(category)
    return issues or [FALLBACK_ISSUE]


def sentiment_score(messages: Sequence[ChatMessage]) -> int:
    score = -UNHELPFUL_WEIGHT * sum(1 for message in messages if message.is_unhelpful)
    for message in messages:
        text = message.text.lower()
        score -= sum(1 for word in NEGATIVE_WORDS if word in text)
        score += sum(1 for word in POSITIVE_WORDS if word in text)
    return score


def analyze_sentiment(messages: Sequence[ChatMessage]) -> Sentiment:
    score = sentiment_score(messages)
    if score <= -SENTIMENT_THRESHOLD:
        return "negative"
    if score >= SENTIMENT_THRESHOLD:
        return "positive"
    return "neutral"


def _duration(messages: Sequence[ChatMessage]) -> str:
    elapsed = messages[-1].timestamp - messages[0].timestamp
    # Half-up rounding, so 90 seconds reads as 2 minutes.
    minutes = math.floor(elapsed.total_seconds() / 60 + 0.5)
    return f"{minutes} minute{'' if minutes == 1 else 's'}"


def _narrative(customer_messages: Sequence[ChatMessage], key_issues: list[str], trigger_count: int) -> str:
    if not customer_messages:
        return "Customer initiated chat but did not provide specific details."

    first_text = customer_messages[0].text
    if len(first_text) > MIN_INFORMATIVE_CHARS:
        main_issue = _truncate(first_text, MAIN_ISSUE_CHARS)
    else:
        main_issue = f"Customer contacted regarding {', '.join(key_issues)}"

    unsatisfied = ""
    if trigger_count:
        unsatisfied = f" Customer was unsatisfied with {trigger_count} response{'s' if trigger_count > 1 else ''}."

    count = len(customer_messages)
    return f"{main_issue}{unsatisfied} Conversation involved {count} customer message{'s' if count > 1 else ''}."


def _truncate(text: str, limit: int) -> str:
    if len(text) > limit:
        return f"{text[:limit]}..."
    return text
