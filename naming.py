#!/usr/bin/env python3
"""
Smart file naming for new code snippets.

Names look like `{language}-{keyword}-{keyword}-{keyword}`, e.g.
`python-fetch-user-profile`. Several candidates are generated and ranked by
uniqueness (against existing names) and relevance (to the source text).
"""

import re
from datetime import datetime
from typing import Iterable, Optional

from classifier import UNKNOWN_LANGUAGE, GENERAL_TOPIC, classify_topic, strip_language_prefix
from models import NameSuggestion
from similarity import keyword_set, top_keywords

MAX_NAME_LENGTH = 50
MIN_NAME_LENGTH = 3
MAX_SUGGESTIONS = 5

# Code idioms worth naming a file after
PATTERN_INDICATORS = (
    (re.compile(r"useState|useEffect|useCallback"), "react-hooks"),
    (re.compile(r"router\.|app\.(?:get|post)"), "api-routes"),
    (re.compile(r"describe\(|it\(|test\("), "testing"),
    (re.compile(r"async|await|Promise"), "async-patterns"),
)

MAIN_FUNCTION_PATTERN = re.compile(r"(?:def|function|func|fun|fn|const|let)\s+(\w+)")


def sanitize_name(name: str, max_length: int = MAX_NAME_LENGTH) -> str:
    """Restrict a name to [a-zA-Z0-9-_], collapse dashes and cap the length."""
    cleaned = re.sub(r"[^a-zA-Z0-9\-_]", "-", name or "")
    cleaned = re.sub(r"-+", "-", cleaned).strip("-")
    return cleaned[:max_length].strip("-")


def fallback_name(now: Optional[datetime] = None) -> str:
    now = now or datetime.now()
    return f"code-snippet-{now.strftime('%Y%m%d%H%M%S')}"


def _with_prefix(language: Optional[str], body: str) -> str:
    if language and language != UNKNOWN_LANGUAGE:
        return f"{language}-{body}"
    return body


def _split_camel(identifier: str) -> str:
    """'fetchUserProfile' -> 'fetch-user-profile'"""
    spaced = re.sub(r"(?<=[a-z0-9])(?=[A-Z])", "-", identifier)
    return spaced.replace("_", "-").lower()


def with_sequence_number(name: str, existing_names: Iterable[str]) -> str:
    """Append -2, -3, ... until the name no longer collides with an existing one."""
    taken = {n.lower() for n in existing_names}
    if name.lower() not in taken:
        return name

    number = 2
    while True:
        suffix = f"-{number}"
        candidate = name[:MAX_NAME_LENGTH - len(suffix)].rstrip("-") + suffix
        if candidate.lower() not in taken:
            return candidate
        number += 1


# ==============================================================================
# CANDIDATES & RANKING
# ==============================================================================

def _candidates(text: str, language: Optional[str]) -> list[tuple[str, str]]:
    """Raw (name, reason) candidates, primary keyword candidate first."""
    candidates = []

    keywords = top_keywords(text, 5)
    if keywords:
        candidates.append((_with_prefix(language, "-".join(keywords[:3])), "most frequent keywords"))

    match = MAIN_FUNCTION_PATTERN.search(text or "")
    if match:
        candidates.append((_with_prefix(language, _split_camel(match.group(1))), "main function name"))

    topic = classify_topic(text).primary_topic
    if topic != GENERAL_TOPIC:
        candidates.append((_with_prefix(language, topic), "primary topic"))

    for pattern, name in PATTERN_INDICATORS:
        if pattern.search(text or ""):
            candidates.append((_with_prefix(language, name), "detected code pattern"))
            break

    return candidates


def _uniqueness(name: str, existing_names: list[str]) -> float:
    if not existing_names:
        return 1.0
    core = strip_language_prefix(name)
    sharing = sum(1 for existing in existing_names if strip_language_prefix(existing) == core)
    return 1.0 - sharing / len(existing_names)


def _relevance(name: str, language: Optional[str], text_keywords: set[str]) -> float:
    core = name.lower()
    if language and core.startswith(language.lower() + "-"):
        core = core[len(language) + 1:]
    tokens = [t for t in re.split(r"[-_]", core) if t and not t.isdigit()]
    if not tokens:
        return 0.0
    return sum(1 for t in tokens if t in text_keywords) / len(tokens)


def suggest_names(text: str, language: Optional[str] = None,
                  existing_names: Optional[Iterable[str]] = None) -> list[NameSuggestion]:
    """Generate ranked name candidates for a piece of code.

    Args:
        text: Extracted source text
        language: Detected language, or None/'unknown' to omit the prefix
        existing_names: Names already used by the owner's files

    Returns:
        NameSuggestion list, best first. Never empty.
    """
    existing = list(existing_names or [])
    text_keywords = keyword_set(text)

    suggestions = []
    seen = set()
    for raw, reason in _candidates(text, language):
        name = sanitize_name(raw)
        if len(name) < MIN_NAME_LENGTH:
            continue
        name = with_sequence_number(name, existing)
        if name in seen:
            continue
        seen.add(name)
        score = (_uniqueness(name, existing) + _relevance(name, language, text_keywords)) / 2
        suggestions.append(NameSuggestion(name=name, score=round(score, 4), reason=reason))

    if not suggestions:
        name = with_sequence_number(fallback_name(), existing)
        return [NameSuggestion(name=name, score=0.0, reason="fallback")]

    suggestions.sort(key=lambda s: -s.score)
    return suggestions[:MAX_SUGGESTIONS]


def propose_name(text: str, language: Optional[str] = None,
                 existing_names: Optional[Iterable[str]] = None) -> str:
    """Best file name for the text, guaranteed to match ^[a-zA-Z0-9\\-_]+$ and be <= 50 chars."""
    return suggest_names(text, language, existing_names)[0].name
