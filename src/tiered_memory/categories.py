"""
Life categories used for summaries and tier 1 retrieval.

Records are filed into a category by keyword counts over their text, and
queries are matched against a shorter relevance vocabulary to pick which
category summaries to load.
"""

import re
from functools import lru_cache
from typing import Dict, Iterable, List, Optional

from tiered_memory.models import MemoryRecord

GENERAL_CATEGORY = "general"

CATEGORY_KEYWORDS: Dict[str, List[str]] = {
    "work_life": [
        "work", "job", "office", "meeting", "project", "deadline", "boss", "colleague",
        "salary", "promotion", "career", "company", "startup", "client", "presentation",
        "email", "slack", "zoom", "conference", "coworker", "manager", "team",
    ],
    "personal_life": [
        "home", "apartment", "house", "weekend", "hobby", "free time", "relax", "vacation",
        "birthday", "celebration", "party", "movie", "book", "music", "game", "fun",
    ],
    "health_wellness": [
        "health", "doctor", "exercise", "workout", "gym", "run", "sleep", "diet",
        "meditation", "stress", "anxiety", "therapy", "mental health", "illness",
        "medicine", "hospital", "wellness", "fitness", "yoga", "nutrition",
    ],
    "relationships": [
        "friend", "family", "partner", "spouse", "dating", "marriage", "boyfriend",
        "girlfriend", "husband", "wife", "parent", "child", "sibling", "mom", "dad",
        "brother", "sister", "cousin", "relationship", "love", "breakup",
    ],
    "goals_aspirations": [
        "goal", "dream", "aspiration", "plan", "future", "want", "wish", "hope",
        "ambition", "target", "milestone", "achieve", "success", "resolution",
    ],
    "preferences": [
        "like", "love", "prefer", "favorite", "enjoy", "hate", "dislike", "want",
        "need", "taste", "style", "choice", "opinion",
    ],
    "beliefs_values": [
        "believe", "think", "value", "important", "principle", "moral", "ethics",
        "religion", "spiritual", "philosophy", "meaning", "purpose",
    ],
    "skills_expertise": [
        "skill", "expert", "learn", "know", "experience", "talent", "ability",
        "proficient", "master", "certification", "training", "education",
    ],
    "projects": [
        "project", "build", "create", "develop", "launch", "ship", "product",
        "feature", "app", "website", "startup", "side project", "mvp",
    ],
    "challenges": [
        "challenge", "problem", "struggle", "difficulty", "obstacle", "issue",
        "concern", "worry", "fear", "anxiety", "stress", "conflict", "stuck",
    ],
}

# Shorter vocabulary for matching queries to categories
CATEGORY_RELEVANCE: Dict[str, List[str]] = {
    "work_life": [
        "work", "job", "office", "meeting", "project", "boss", "colleague", "career",
        "company", "startup",
    ],
    "personal_life": ["home", "weekend", "hobby", "vacation", "relax", "fun", "house", "apartment"],
    "health_wellness": [
        "health", "exercise", "workout", "gym", "sleep", "diet", "stress", "therapy", "doctor",
    ],
    "relationships": [
        "friend", "family", "partner", "spouse", "dating", "marriage", "parent", "child",
        "relationship",
    ],
    "goals_aspirations": ["goal", "dream", "aspiration", "plan", "future", "ambition", "want", "achieve"],
    "preferences": ["like", "love", "prefer", "favorite", "enjoy", "hate", "dislike"],
    "beliefs_values": ["believe", "think", "value", "important", "principle", "moral"],
    "skills_expertise": ["skill", "expert", "learn", "know", "experience", "talent"],
    "projects": ["project", "build", "create", "develop", "launch", "ship", "product", "app"],
    "challenges": ["challenge", "problem", "struggle", "difficulty", "obstacle", "worry", "stuck"],
}


@lru_cache(maxsize=None)
def _keyword_pattern(keyword: str) -> re.Pattern:
    # Whole words, allowing a plural "s"
    return re.compile(rf"\b{re.escape(keyword)}s?\b")


def count_keywords(text: str, keywords: Iterable[str]) -> int:
    """Number of distinct keywords present in text (case-insensitive, whole words)."""
    lowered = text.lower()
    return sum(1 for keyword in keywords if _keyword_pattern(keyword).search(lowered))


def identify_relevant_categories(query: str, limit: int = 3) -> List[str]:
    """
    Pick the categories a query is about.

    Args:
        query: The user query
        limit: Maximum number of categories

    Returns:
        Category names with at least one keyword hit, best first
    """
    scored = []
    for category, keywords in CATEGORY_RELEVANCE.items():
        score = count_keywords(query, keywords)
        if score > 0:
            scored.append((category, score))

    # Stable sort keeps declaration order among equal scores
    scored.sort(key=lambda item: item[1], reverse=True)
    return [category for category, _ in scored[:limit]]


def classify_text(text: str) -> str:
    """Best category for a piece of text, or "general" when no keyword matches."""
    best_category: Optional[str] = None
    best_score = 0
    for category, keywords in CATEGORY_KEYWORDS.items():
        score = count_keywords(text, keywords)
        if score > best_score:
            best_category, best_score = category, score
    return best_category or GENERAL_CATEGORY


def classify_record(record: MemoryRecord) -> str:
    """File a record into a category using its name, summary and context notes."""
    text = " ".join([record.name, record.summary, *record.context_notes])
    return classify_text(text)
