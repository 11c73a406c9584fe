"""
Local intent classifier.

Zero-dependency first pass over free text: fuzzy vocabulary matching decides
whether a turn is small talk, a product search, or something the reasoning
service has to handle. Never does I/O, so it always answers within bounded time.
"""

import re
from dataclasses import dataclass, field
from typing import FrozenSet, List, Optional

CHAT = "chat"
SEARCH = "search"
UNKNOWN = "unknown"

TOKEN_SPLIT = re.compile(r"[\s,!.?;:\"()]+")

VOCAB = {
    "greetings": ["hi", "hello", "hey", "hay", "helo", "sup", "yo", "bro", "bhai", "dude", "kaise", "greetings", "namaste", "hola"],
    "gratitude": ["thanks", "thank", "thx", "shukriya", "dhanaywad", "cool"],
}

CONCEPTS = {
    "rooms": ["living", "bedroom", "office", "kitchen", "dining", "hall", "study"],
    "colors": ["blue", "red", "green", "yellow", "black", "white", "beige", "gold", "teal", "pink"],
    "styles": ["modern", "abstract", "classic", "minimalist", "boho", "vintage", "nature", "landscape"],
}

COMMERCE_KEYWORDS = {
    "buy", "price", "cost", "shipping", "canvas", "poster", "art", "painting", "paintings",
    "print", "prints", "decor", "frame", "wall",
}

GREETING_SCORE = 3
GRATITUDE_SCORE = 2
KEYWORD_SCORE = 2
ENTITY_SCORE = 2

REPLY_TEMPLATES = {
    "brotherly": "Hey Brother! 👋 How can I help you decorate your space today?",
    "grateful": "You're most welcome! 🎨 Anything else I can help you find for your walls?",
    "default": "Hello! 👋 I'm your Intelligent Art Assistant. Looking for anything specific?",
}


@dataclass(frozen=True)
class Entities:
    rooms: FrozenSet[str] = frozenset()
    colors: FrozenSet[str] = frozenset()
    styles: FrozenSet[str] = frozenset()

    def any(self) -> bool:
        return bool(self.rooms or self.colors or self.styles)

    def as_terms(self) -> List[str]:
        return sorted(self.styles) + sorted(self.colors) + sorted(self.rooms)


@dataclass(frozen=True)
class IntentResult:
    intent: str
    confidence: float
    entities: Entities = field(default_factory=Entities)
    reply: Optional[str] = None


def edit_distance(a: str, b: str) -> int:
    """Levenshtein distance between two strings."""
    if not a:
        return len(b)
    if not b:
        return len(a)
    previous = list(range(len(a) + 1))
    for i, b_char in enumerate(b, start=1):
        current = [i]
        for j, a_char in enumerate(a, start=1):
            if a_char == b_char:
                current.append(previous[j - 1])
            else:
                current.append(min(previous[j - 1], current[j - 1], previous[j]) + 1)
        previous = current
    return previous[-1]


def is_fuzzy_match(input_word: str, target_word: str) -> bool:
    """True when input_word is target_word with at most one typo (two for long targets)."""
    # Short words must match exactly, otherwise "i" would pass for "hi"
    if len(target_word) < 3 or len(input_word) < 3:
        return input_word == target_word

    if abs(len(input_word) - len(target_word)) > 2:
        return False
    distance = edit_distance(input_word, target_word)
    return distance <= 1 or (len(target_word) > 5 and distance <= 2)


def tokenize(text: str) -> List[str]:
    return [t for t in TOKEN_SPLIT.split((text or "").lower().strip()) if t]


class FuzzyIntentMatcher:
    """Scores a turn as chat-like or search-like from vocabulary hits."""

    def extract_entities(self, tokens: List[str]) -> Entities:
        return Entities(
            rooms=frozenset(t for t in tokens if t in CONCEPTS["rooms"]),
            colors=frozenset(t for t in tokens if t in CONCEPTS["colors"]),
            styles=frozenset(t for t in tokens if t in CONCEPTS["styles"]),
        )

    def classify(self, text: str) -> IntentResult:
        tokens = tokenize(text)
        entities = self.extract_entities(tokens)

        chat_score = 0
        search_score = 0
        grateful = False
        for word in tokens:
            for greeting in VOCAB["greetings"]:
                if is_fuzzy_match(word, greeting):
                    chat_score += GREETING_SCORE
            for thanks in VOCAB["gratitude"]:
                if is_fuzzy_match(word, thanks):
                    chat_score += GRATITUDE_SCORE
                    grateful = True
            if word in COMMERCE_KEYWORDS:
                search_score += KEYWORD_SCORE

        if entities.rooms:
            search_score += ENTITY_SCORE
        if entities.colors:
            search_score += ENTITY_SCORE
        if entities.styles:
            search_score += ENTITY_SCORE

        if search_score > chat_score:
            return IntentResult(intent=SEARCH, confidence=0.8, entities=entities)
        if chat_score >= 2:
            return IntentResult(intent=CHAT, confidence=0.9, entities=entities, reply=self._reply_for(tokens, grateful))
        # Ambiguous, the reasoning service decides
        return IntentResult(intent=UNKNOWN, confidence=0.0, entities=entities)

    def _reply_for(self, tokens: List[str], grateful: bool) -> str:
        if any(t == "bro" or is_fuzzy_match(t, "bhai") for t in tokens):
            return REPLY_TEMPLATES["brotherly"]
        if grateful:
            return REPLY_TEMPLATES["grateful"]
        return REPLY_TEMPLATES["default"]


# Initialize the intent classifier
intent_classifier = FuzzyIntentMatcher()


def classify(text: str) -> IntentResult:
    return intent_classifier.classify(text)
