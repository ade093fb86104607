"""Heuristic text signals: topics, questions, technical terms, emotions, examples."""

import re
from collections import Counter


# ── Lookup tables ────────────────────────────────────────────────────────────

TOPIC_INDICATORS = [
    "about", "regarding", "concerning", "related to", "topic of",
    "discussing", "talking about", "focus on", "interested in",
]

STOP_WORDS = {"the", "and", "that", "this", "with", "for", "you", "your", "have", "has", "had"}

TECHNICAL_TERMS = [
    "javascript", "typescript", "react", "vue", "angular", "node", "python", "java", "c++", "c#",
    "php", "ruby", "go", "rust", "swift", "kotlin", "html", "css", "sql", "nosql", "mongodb",
    "postgresql", "mysql", "api", "rest", "graphql", "docker", "kubernetes", "aws", "azure",
    "gcp", "ci/cd", "git", "github", "gitlab", "bitbucket", "npm", "yarn", "webpack", "babel",
    "jest", "testing", "unit test", "integration test", "frontend", "backend", "fullstack",
    "database", "server", "client", "browser", "dom", "state management", "redux", "mobx",
    "hooks", "component", "function", "class", "object", "array", "promise", "async", "await",
]

EMOTION_KEYWORDS = {
    "happy": ["happy", "joy", "excited", "thrilled", "delighted", "pleased", "grateful", "blessed", "wonderful", "amazing", "great"],
    "sad": ["sad", "unhappy", "depressed", "down", "disappointed", "upset", "hurt", "heartbroken", "lonely", "missing"],
    "angry": ["angry", "mad", "frustrated", "annoyed", "irritated", "furious", "outraged", "offended"],
    "anxious": ["anxious", "worried", "nervous", "stressed", "concerned", "afraid", "scared", "fearful", "uneasy"],
    "confused": ["confused", "unsure", "uncertain", "puzzled", "perplexed", "doubtful", "questioning"],
    "love": ["love", "adore", "care", "affection", "romantic", "crush", "feelings", "attracted", "interested"],
    "gratitude": ["thankful", "appreciate", "grateful", "blessed", "fortunate", "lucky"],
    "pride": ["proud", "accomplished", "achieved", "success", "confident", "capable"],
    "regret": ["regret", "sorry", "apologize", "mistake", "wrong", "should have", "could have"],
    "hope": ["hope", "wish", "dream", "future", "looking forward", "anticipate", "expect"],
}

INTENSITY_KEYWORDS = {
    "high": ["very", "extremely", "incredibly", "absolutely", "totally", "completely", "so much", "so many"],
    "low": ["slightly", "a little", "somewhat", "kind of", "sort of", "maybe", "possibly"],
}

EMOTIONAL_CONTEXT_KEYWORDS = {
    "personal": ["I feel", "I am", "I'm", "my", "me", "mine"],
    "relationship": ["friend", "family", "partner", "boyfriend", "girlfriend", "spouse", "parent", "child", "sibling"],
    "lifeEvents": ["graduation", "wedding", "birthday", "anniversary", "breakup", "divorce", "loss", "death", "illness", "recovery"],
}

EXAMPLE_INDICATORS = [
    "for example", "such as", "like", "instance", "example", "illustration", "case in point",
]

_QUESTION_RE = re.compile(r"[^.!?]+\?")
_CODE_BLOCK_RE = re.compile(r"```[\s\S]*?```")


def _contains_any(text: str, keywords: list[str]) -> bool:
    return any(keyword.lower() in text for keyword in keywords)


def _last_matching_label(text: str, table: dict[str, list[str]], default: str) -> str:
    """Scan the table in order; every label with a hit replaces the previous one."""
    label = default
    for name, keywords in table.items():
        if _contains_any(text, keywords):
            label = name
    return label


# ── Extractors ───────────────────────────────────────────────────────────────

def extract_topics(text: str) -> list[str]:
    """Indicator-phrase captures followed by the three most frequent content words."""
    topics = []
    for indicator in TOPIC_INDICATORS:
        match = re.search(rf"{re.escape(indicator)}\s+([\w\s]+)", text, re.IGNORECASE)
        if match and match.group(1).strip():
            topics.append(match.group(1).strip())

    words = [w for w in text.lower().split() if len(w) > 3 and w not in STOP_WORDS]
    counts = Counter(words)
    top_words = [word for word, _ in sorted(counts.items(), key=lambda kv: kv[1], reverse=True)[:3]]

    return list(dict.fromkeys(topics + top_words))


def extract_questions(text: str) -> list[str]:
    return [q.strip() for q in _QUESTION_RE.findall(text)]


def extract_technical_terms(text: str) -> list[str]:
    lowered = text.lower()
    return [term for term in TECHNICAL_TERMS if term in lowered]


def detect_emotions(text: str) -> list[str]:
    """Emotion categories present in the text, tagged with intensity and context.

    Intensity and context tags are only appended when at least one emotion
    category matched.
    """
    lowered = text.lower()
    emotions = [name for name, keywords in EMOTION_KEYWORDS.items() if _contains_any(lowered, keywords)]
    if not emotions:
        return []

    intensity = _last_matching_label(lowered, INTENSITY_KEYWORDS, default="moderate")
    if intensity != "moderate":
        emotions.append(f"{intensity} intensity")

    context = _last_matching_label(lowered, EMOTIONAL_CONTEXT_KEYWORDS, default="")
    if context:
        emotions.append(f"{context} context")
    return emotions


def extract_examples(text: str) -> list[str]:
    """Sentences introduced by an example phrase, then fenced code blocks verbatim."""
    examples = []
    for indicator in EXAMPLE_INDICATORS:
        pattern = rf"{re.escape(indicator)}[^.!?]+[.!?]"
        examples.extend(m.strip() for m in re.findall(pattern, text, re.IGNORECASE))
    examples.extend(block.strip() for block in _CODE_BLOCK_RE.findall(text))
    return examples
