"""Conversation context: running Q/A history and the recent-signal summary."""

from collections import deque
from typing import Iterable, Optional

from models import Message
from signals import (
    detect_emotions,
    extract_examples,
    extract_questions,
    extract_technical_terms,
    extract_topics,
)

SUMMARY_WINDOW = 5
HISTORY_TURNS = 10


def _unique(items: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(items))


def summarize_context(messages: list[Message], current_query: Optional[str] = None) -> str:
    """Describe the last few messages as one short paragraph for the prompt.

    ``current_query`` is accepted for call-site symmetry with the prompt
    builder and does not influence the result.
    """
    window = messages[-SUMMARY_WINDOW:]
    if not window:
        return ""

    topics, questions, terms, emotions, examples = [], [], [], [], []
    for msg in window:
        topics.extend(extract_topics(msg.content))
        questions.extend(extract_questions(msg.content))
        terms.extend(extract_technical_terms(msg.content))
        emotions.extend(detect_emotions(msg.content))
        examples.extend(extract_examples(msg.content))

    sections = [
        ("Recent topics", ", ", _unique(topics)[-5:]),
        ("Recent questions", "; ", questions[-2:]),
        ("Technical context", ", ", _unique(terms)[-3:]),
        ("Emotional context", ", ", _unique(emotions)[-3:]),
        ("Previous examples", "; ", examples[-3:]),
    ]
    return "".join(
        f"{label}: {sep.join(items)}. " for label, sep, items in sections if items
    )


class ConversationContext:
    """Last question/answer plus a bounded log of earlier turns."""

    def __init__(self, max_turns: int = HISTORY_TURNS):
        self._turns: deque[tuple[str, str]] = deque(maxlen=max_turns)
        self.lastQuery = ""
        self.lastResponse = ""

    @property
    def history(self) -> str:
        return "".join(
            f"\nPrevious Question: {q}\nPrevious Answer: {a}\n" for q, a in self._turns
        )

    def record(self, query: str, response: str) -> None:
        self._turns.append((query, response))
        self.lastQuery = query
        self.lastResponse = response

    def reset(self) -> None:
        self._turns.clear()
        self.lastQuery = ""
        self.lastResponse = ""

    def __len__(self) -> int:
        return len(self._turns)
