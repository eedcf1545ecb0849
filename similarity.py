#!/usr/bin/env python3
"""
Keyword-set similarity between pieces of text.

Similarity is the Jaccard index of the two keyword sets. The matcher is
threshold-agnostic: callers decide what counts as "similar enough".
"""

import logging
import re
from collections import Counter
from typing import Iterable, Optional

from models import SimilarFile

logger = logging.getLogger("code_organizer")

STOP_WORDS = frozenset({
    "the", "and", "or", "but", "in", "on", "at", "to", "for", "of", "with", "by",
    "a", "an", "is", "are", "was", "were", "be", "been", "being",
    "have", "has", "had", "do", "does", "did", "will", "would", "could", "should",
    "may", "might", "can", "this", "that", "these", "those",
    "i", "you", "he", "she", "it", "we", "they", "me", "him", "her", "us", "them",
    "my", "your", "his", "our", "their",
})

MIN_KEYWORD_LENGTH = 3
DEFAULT_MATCH_LIMIT = 10


# ==============================================================================
# KEYWORDS
# ==============================================================================

def extract_keywords(text: str) -> list[str]:
    """Split text into keyword tokens, keeping duplicates and original order."""
    if not text:
        return []
    words = re.sub(r"[^\w\s]", " ", text.lower()).split()
    return [w for w in words if len(w) >= MIN_KEYWORD_LENGTH and w not in STOP_WORDS]


def keyword_set(text: str) -> set[str]:
    return set(extract_keywords(text))


def top_keywords(text: str, limit: int = 5) -> list[str]:
    """Most frequent non-numeric keywords. Ties keep first-seen order."""
    counts = Counter(w for w in extract_keywords(text) if not w.isdigit())
    return [word for word, _ in counts.most_common(limit)]


# ==============================================================================
# SIMILARITY
# ==============================================================================

def jaccard(set_a: set, set_b: set) -> float:
    union = set_a | set_b
    if not union:
        return 0.0
    return len(set_a & set_b) / len(union)


def keyword_similarity(text_a: str, text_b: str) -> float:
    """Jaccard similarity of two texts' keyword sets, in [0, 1].

    Identical texts score exactly 1.0 as long as they contain a keyword.
    Texts without any keywords score 0, even when identical.
    """
    keywords_a = keyword_set(text_a or "")
    if keywords_a and text_a == text_b:
        return 1.0
    return jaccard(keywords_a, keyword_set(text_b or ""))


def find_similar(text: str, candidate_pool: Iterable, threshold: float = 0.0) -> list[SimilarFile]:
    """Compare text against a pool of content items.

    Args:
        text: Text to compare
        candidate_pool: Items exposing id, display_title and content_text
        threshold: Only similarities strictly above this are returned

    Returns:
        SimilarFile list sorted by similarity, highest first
    """
    matches = []
    for item in candidate_pool:
        score = keyword_similarity(text, item.content_text)
        if score > threshold:
            matches.append(SimilarFile(id=item.id, title=item.display_title, similarity=score))
    # sorted() is stable, so equal scores keep pool order
    return sorted(matches, key=lambda match: -match.similarity)


# ==============================================================================
# STORE-BACKED MATCHER
# ==============================================================================

class SimilarityMatcher:
    """Finds existing files similar to new text using an item store.

    The store's own search is tried first. If it fails, the owner's items are
    fetched and compared locally. Only the owner's files are returned, at
    most `limit` of them (no cap when limit is None). Lookup is advisory:
    when the store cannot be reached at all an empty list is returned.
    """

    def __init__(self, store):
        self.store = store

    def find_similar_files(self, text: str, owner_id: str, threshold: float = 0.3,
                           limit: Optional[int] = DEFAULT_MATCH_LIMIT) -> list[SimilarFile]:
        try:
            results = self._search(text, owner_id, threshold)
        except Exception as e:
            logger.warning(f"Store search failed, falling back to keyword matching: {e}")
            try:
                results = self._fallback(text, owner_id, threshold)
            except Exception as e:
                logger.warning(f"Similarity lookup failed: {e}")
                return []
        return results[:limit] if limit else results

    def _search(self, text: str, owner_id: str, threshold: float) -> list[SimilarFile]:
        matches = [
            SimilarFile(id=match.item_id, title=match.title, similarity=match.score)
            for match in self.store.search(text, owner_id)
            if match.score > threshold
        ]
        return sorted(matches, key=lambda match: -match.similarity)

    def _fallback(self, text: str, owner_id: str, threshold: float) -> list[SimilarFile]:
        files = [
            item for item in self.store.get_items_by_owner(owner_id)
            if item.kind == "file" and not item.archived
        ]
        return find_similar(text, files, threshold)
