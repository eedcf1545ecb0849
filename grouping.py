#!/usr/bin/env python3
"""
Content grouping - derive groups and project structures from a collection.

Groups are rebuilt from scratch on every call and carry no identity across
runs. Five strategies each propose candidate groups; a group's confidence is
scaled by its strategy's weight relative to the strongest strategy:

    semantic    0.30  near-identical keyword sets
    temporal    0.20  items created within an hour of each other
    project     0.25  shared import / package indicators
    dependency  0.15  items that use symbols defined by each other
    topic       0.10  items sharing a classifier topic

Overlapping candidates are merged, weak or singleton groups are dropped and
the strongest groups are kept.
"""

import itertools
import re
from datetime import timedelta
from typing import Optional

from classifier import UNKNOWN_LANGUAGE, get_classifier
from models import (
    ContentGroup,
    GroupMember,
    GroupRelationship,
    ProjectStructure,
    SuggestedAction,
)
from similarity import keyword_similarity, top_keywords

SEMANTIC_THRESHOLD = 0.6
SESSION_WINDOW = timedelta(hours=1)
OVERLAP_THRESHOLD = 0.3
MIN_GROUP_CONFIDENCE = 0.3
MAX_GROUPS = 20
MAX_RELATIONSHIPS = 5
MIN_PROJECT_CONFIDENCE = 0.6
RELATED_GROUP_SIMILARITY = 0.5

GROUPING_STRATEGIES = (
    ("semantic", 0.30),
    ("temporal", 0.20),
    ("project", 0.25),
    ("dependency", 0.15),
    ("topic", 0.10),
)

# Import sources and package names that tie code to a project
PROJECT_INDICATOR_PATTERNS = (
    re.compile(r"""\bfrom\s+['"]([^'"]+)['"]"""),
    re.compile(r"""\brequire\(\s*['"]([^'"]+)['"]\s*\)"""),
    re.compile(r"""^\s*from\s+([\w.]+)\s+import\s""", re.MULTILINE),
    re.compile(r"""^\s*import\s+([\w.]+)(?:\s+as\s+\w+)?\s*$""", re.MULTILINE),
    re.compile(r'''"name"\s*:\s*"([^"]+)"'''),
)

DEFINITION_PATTERN = re.compile(
    r"(?:def|function|class|func|fun|fn|interface|struct)\s+([A-Za-z_]\w{2,})"
    r"|(?:const|let|var)\s+([A-Za-z_]\w{2,})\s*="
)
IDENTIFIER_PATTERN = re.compile(r"[A-Za-z_]\w{2,}")

TOPIC_GROUP_TYPES = {
    "ui-components": "component",
    "testing": "utility",
    "data-processing": "utility",
    "algorithms": "utility",
}

# Checked in order; the first match decides where an item sits in a project
STRUCTURE_BUCKETS = (
    ("tests", re.compile(r"\btest\w*|\bdescribe\(|\bexpect\(|\bassert\b", re.IGNORECASE)),
    ("configuration", re.compile(r"\bconfig\w*|\bsettings?\b|process\.env|\.env\b", re.IGNORECASE)),
    ("services", re.compile(r"\bservice\w*|\bapi\b|\bfetch\(|\bclient\b|\bserver\b|\baxios\b", re.IGNORECASE)),
    ("components", re.compile(r"\bcomponent\w*|<[A-Z]\w*|\bprops\b|\brender\b")),
)

WEB_TOPICS = {
    "web-development", "ui-components", "backend-development",
    "api-integration", "authentication", "database",
}


def extract_project_indicators(text: str) -> list[str]:
    """Package or module names a piece of code imports or declares."""
    indicators = []
    for pattern in PROJECT_INDICATOR_PATTERNS:
        for raw in pattern.findall(text or ""):
            name = raw.strip().lower()
            if not name or name.startswith("."):
                continue
            if name.startswith("@"):
                name = "/".join(name.split("/")[:2])
            else:
                name = name.split("/")[0].split(".")[0]
            if name and name not in indicators:
                indicators.append(name)
    return indicators


def extract_definitions(text: str) -> set[str]:
    return {a or b for a, b in DEFINITION_PATTERN.findall(text or "")}


def overlap_ratio(group_a: ContentGroup, group_b: ContentGroup) -> float:
    ids_a, ids_b = set(group_a.item_ids), set(group_b.item_ids)
    union = ids_a | ids_b
    return len(ids_a & ids_b) / len(union) if union else 0.0


# ==============================================================================
# SEQUENCE ORDERING
# ==============================================================================

# Last lines that leave a statement open
HANGING_ENDINGS = (",", "(", "[", "{", "=", "=>", "&&", "||", "\\", ":")
CONTINUATION_COMMENT = re.compile(
    r"(?://|#|/\*).*\b(?:continued?|continues|todo|more below)\b", re.IGNORECASE
)
CONTINUATION_START = re.compile(r"^(?:[})\].]|&&|\|\||(?:else|elif|except|finally|catch)\b)")


def brace_balance(text: str) -> int:
    """Opening minus closing braces, brackets and parentheses."""
    text = text or ""
    return sum(text.count(c) for c in "{([") - sum(text.count(c) for c in "})]")


def is_incomplete(text: str) -> bool:
    """Whether code stops part way and expects more to follow."""
    if brace_balance(text) > 0:
        return True
    lines = [line.strip() for line in (text or "").splitlines() if line.strip()]
    if not lines:
        return False
    return lines[-1].endswith(HANGING_ENDINGS) or bool(CONTINUATION_COMMENT.search(lines[-1]))


def is_continuation(text: str) -> bool:
    """Whether code picks up in the middle of something started elsewhere."""
    if brace_balance(text) < 0:
        return True
    first = next((line.strip() for line in (text or "").splitlines() if line.strip()), "")
    return bool(CONTINUATION_START.match(first))


def sequence_order(snippets) -> list:
    """Order snippets so their code reads top to bottom.

    Capture order (created_at, then current position) is the starting point.
    Two signals then move snippets:
    - continuation: a snippet that picks up cut-off code goes after the
      incomplete snippet it completes (the nearest earlier one if any)
    - dependency: a snippet defining a name goes before snippets using it,
      unless the two use each other

    Conflicting constraints fall back to capture order.
    """
    base = sorted(snippets, key=lambda s: (s.created_at, s.position_in_file))
    before: dict[str, set[str]] = {s.id: set() for s in base}

    open_ids = [s.id for s in base if is_incomplete(s.content_text)]
    for index, snippet in enumerate(base):
        if not is_continuation(snippet.content_text):
            continue
        earlier = {s.id for s in base[:index]}
        candidates = [i for i in open_ids if i != snippet.id]
        previous = [i for i in candidates if i in earlier]
        head = previous[-1] if previous else next(iter(candidates), None)
        if head is not None:
            before[snippet.id].add(head)
            open_ids.remove(head)

    definitions = {s.id: extract_definitions(s.content_text) for s in base}
    used = {s.id: set(IDENTIFIER_PATTERN.findall(s.content_text)) - definitions[s.id] for s in base}
    for user in base:
        for provider in base:
            if provider.id == user.id or not definitions[provider.id] & used[user.id]:
                continue
            if definitions[user.id] & used[provider.id]:
                continue
            before[user.id].add(provider.id)

    ordered, placed = [], set()
    remaining = list(base)
    while remaining:
        index = next((i for i, s in enumerate(remaining) if before[s.id] <= placed), 0)
        snippet = remaining.pop(index)
        ordered.append(snippet)
        placed.add(snippet.id)
    return ordered


# ==============================================================================
# GROUPER
# ==============================================================================

class ContentGrouper:
    """Builds ContentGroups and ProjectStructures over a list of content items."""

    def __init__(self, classifier=None):
        self.classifier = classifier or get_classifier()
        self._ids = itertools.count(1)

    def _next_id(self, prefix: str) -> str:
        return f"{prefix}_{next(self._ids)}"

    def _members(self, items, relevance=1.0) -> list[GroupMember]:
        return [GroupMember(item.id, item.kind, relevance, index) for index, item in enumerate(items)]

    # -- strategies ----------------------------------------------------------

    def group_by_semantic(self, items) -> list[ContentGroup]:
        groups = []
        processed = set()
        for item in items:
            if item.id in processed:
                continue
            similar = [
                other for other in items
                if other.id != item.id and other.id not in processed
                and keyword_similarity(item.content_text, other.content_text) > SEMANTIC_THRESHOLD
            ]
            if not similar:
                continue

            group_items = [item, *similar]
            processed.update(i.id for i in group_items)
            members = [
                GroupMember(i.id, i.kind, max(0.5, round(1 - index * 0.1, 2)), index)
                for index, i in enumerate(group_items)
            ]
            groups.append(ContentGroup(
                id=self._next_id("semantic"),
                title=f"Similar to {item.display_title}",
                description="Content with similar functionality and structure",
                type="component",
                confidence=0.8,
                members=members,
                tags=top_keywords(" ".join(i.content_text for i in group_items), 5),
                suggested_actions=[SuggestedAction("merge", "Items cover nearly the same code", 0.8)],
                strategy="semantic",
            ))
        return groups

    def group_by_temporal(self, items) -> list[ContentGroup]:
        ordered = sorted(items, key=lambda i: i.created_at)
        windows = []
        for item in ordered:
            if windows and item.created_at - windows[-1][-1].created_at <= SESSION_WINDOW:
                windows[-1].append(item)
            else:
                windows.append([item])

        groups = []
        for window in windows:
            if len(window) < 2:
                continue
            start, end = window[0].created_at, window[-1].created_at
            is_session = end - start < SESSION_WINDOW
            label = "Coding Session" if is_session else "Development Period"
            minutes = int((end - start).total_seconds() // 60)
            groups.append(ContentGroup(
                id=self._next_id("temporal"),
                title=f"{label} - {start.strftime('%Y-%m-%d')}",
                description=f"Content created during {minutes} minutes",
                type="experiment" if is_session else "feature",
                confidence=0.6,
                members=self._members(window, 0.8),
                tags=[start.strftime("%Y-%m-%d")],
                suggested_actions=[SuggestedAction("reorder", "Keep snippets in the order they were captured", 0.6)],
                strategy="temporal",
            ))
        return groups

    def group_by_project(self, items) -> list[ContentGroup]:
        projects: dict[str, list] = {}
        for item in items:
            for indicator in extract_project_indicators(item.content_text):
                projects.setdefault(indicator, []).append(item)

        groups = []
        for name, project_items in projects.items():
            if len(project_items) < 2:
                continue
            groups.append(ContentGroup(
                id=self._next_id("project"),
                title=f"Project: {name}",
                description=f"Components and code related to the {name} project",
                type="project",
                confidence=0.9,
                members=self._members(project_items, 0.9),
                tags=[name],
                suggested_actions=[SuggestedAction("reorder", "Arrange project files by role", 0.7)],
                strategy="project",
            ))
        return groups

    def group_by_dependency(self, items) -> list[ContentGroup]:
        definitions = {item.id: extract_definitions(item.content_text) for item in items}
        edges = self._dependency_edges(items, definitions)

        # Union-find over undirected dependency edges
        parent = {item.id: item.id for item in items}

        def find(node):
            while parent[node] != node:
                parent[node] = parent[parent[node]]
                node = parent[node]
            return node

        for source, targets in edges.items():
            for target in targets:
                parent[find(source)] = find(target)

        components: dict[str, list] = {}
        for item in items:
            components.setdefault(find(item.id), []).append(item)

        groups = []
        for component in components.values():
            if len(component) < 2:
                continue
            # Items that depend on fewer others come first
            ordered = sorted(component, key=lambda i: len(edges.get(i.id, ())))
            groups.append(ContentGroup(
                id=self._next_id("dependency"),
                title="Related Components",
                description="Code components with interdependencies",
                type="component",
                confidence=0.7,
                members=self._members(ordered, 0.8),
                tags=sorted(set().union(*(definitions[i.id] for i in component)))[:5],
                suggested_actions=[SuggestedAction("reorder", "Order components so definitions come before use", 0.7)],
                strategy="dependency",
            ))
        return groups

    def _dependency_edges(self, items, definitions) -> dict[str, set[str]]:
        defined_by: dict[str, set[str]] = {}
        for item_id, names in definitions.items():
            for name in names:
                defined_by.setdefault(name, set()).add(item_id)

        edges = {}
        for item in items:
            used = set(IDENTIFIER_PATTERN.findall(item.content_text)) - definitions[item.id]
            targets = set()
            for name in used:
                targets.update(defined_by.get(name, ()))
            targets.discard(item.id)
            if targets:
                edges[item.id] = targets
        return edges

    def group_by_topic(self, items) -> list[ContentGroup]:
        topics: dict[str, list] = {}
        for item in items:
            for topic in self.classifier.classify_topic(item.content_text).suggested_tags:
                topics.setdefault(topic, []).append(item)

        groups = []
        for topic, topic_items in topics.items():
            if len(topic_items) < 2:
                continue
            groups.append(ContentGroup(
                id=self._next_id("topic"),
                title=f"{topic.replace('-', ' ').title()} Code",
                description=f"Code snippets and files related to {topic}",
                type=TOPIC_GROUP_TYPES.get(topic, "feature"),
                confidence=0.6,
                members=self._members(topic_items, 0.7),
                tags=[topic],
                strategy="topic",
            ))
        return groups

    # -- combining -----------------------------------------------------------

    def _weighted_groups(self, items, strategies=GROUPING_STRATEGIES) -> list[ContentGroup]:
        strongest = max(weight for _, weight in GROUPING_STRATEGIES)
        groups = []
        for name, weight in strategies:
            for group in getattr(self, f"group_by_{name}")(items):
                group.confidence = round(group.confidence * weight / strongest, 4)
                groups.append(group)
        return groups

    def merge_overlapping(self, groups: list[ContentGroup]) -> list[ContentGroup]:
        merged = []
        processed = set()
        for group in groups:
            if group.id in processed:
                continue
            overlapping = [group] + [
                other for other in groups
                if other.id != group.id and other.id not in processed
                and overlap_ratio(group, other) > OVERLAP_THRESHOLD
            ]
            processed.update(g.id for g in overlapping)
            merged.append(self._merge_groups(overlapping) if len(overlapping) > 1 else group)
        return merged

    def _merge_groups(self, groups: list[ContentGroup]) -> ContentGroup:
        primary = max(groups, key=lambda g: g.confidence)
        members = {}
        tags = []
        for group in groups:
            for member in group.members:
                members.setdefault(member.item_id, member)
            tags.extend(t for t in group.tags if t not in tags)

        return ContentGroup(
            id=self._next_id("merged"),
            title=f"{primary.title} (Merged)",
            description=primary.description,
            type=primary.type,
            confidence=round(sum(g.confidence for g in groups) / len(groups), 4),
            members=[
                GroupMember(m.item_id, m.kind, m.relevance, position)
                for position, m in enumerate(members.values())
            ],
            tags=tags[:8],
            suggested_actions=[
                *primary.suggested_actions,
                SuggestedAction("merge", f"Merged {len(groups)} related groups", 0.8),
            ],
            strategy=primary.strategy,
        )

    def optimize(self, groups: list[ContentGroup]) -> list[ContentGroup]:
        kept = [g for g in groups if g.confidence > MIN_GROUP_CONFIDENCE and len(g.members) > 1]
        kept.sort(key=lambda g: -(g.confidence * len(g.members)))
        return kept[:MAX_GROUPS]

    def add_relationships(self, groups: list[ContentGroup], items) -> list[ContentGroup]:
        by_id = {item.id: item for item in items}
        texts = {g.id: " ".join(by_id[i].content_text for i in g.item_ids if i in by_id) for g in groups}
        defined = {g.id: set().union(*(extract_definitions(by_id[i].content_text) for i in g.item_ids if i in by_id))
                   for g in groups}

        for group in groups:
            used = set(IDENTIFIER_PATTERN.findall(texts[group.id])) - defined[group.id]
            relationships = []
            for other in groups:
                if other.id == group.id:
                    continue
                shared = used & defined[other.id]
                if shared:
                    relationships.append(GroupRelationship(other.id, "depends_on", min(1.0, len(shared) / 5)))
                    continue
                similarity = keyword_similarity(texts[group.id], texts[other.id])
                if similarity > RELATED_GROUP_SIMILARITY:
                    relationships.append(GroupRelationship(other.id, "similar_to", round(similarity, 4)))
            relationships.sort(key=lambda r: -r.strength)
            group.relationships = relationships[:MAX_RELATIONSHIPS]
        return groups

    def group_content(self, items) -> list[ContentGroup]:
        """Run every strategy and return the merged, optimized groups."""
        items = [item for item in items if not item.archived]
        groups = self.optimize(self.merge_overlapping(self._weighted_groups(items)))
        return self.add_relationships(groups, items)

    # -- projects ------------------------------------------------------------

    def detect_project_structures(self, items, groups: Optional[list[ContentGroup]] = None) -> list[ProjectStructure]:
        """Turn project-like groups into ProjectStructures.

        Candidates are project-indicator groups plus any large, confident
        group from the full grouping pass.
        """
        items = [item for item in items if not item.archived]
        by_id = {item.id: item for item in items}

        candidates = self._weighted_groups(items, [s for s in GROUPING_STRATEGIES if s[0] == "project"])
        if groups is None:
            groups = self.group_content(items)
        seen = {frozenset(g.item_ids) for g in candidates}
        for group in groups:
            if len(group.members) > 3 and group.confidence > 0.7 and frozenset(group.item_ids) not in seen:
                candidates.append(group)

        structures = []
        for group in candidates:
            if group.confidence <= MIN_PROJECT_CONFIDENCE:
                continue
            structures.append(self._analyze_project(group, [by_id[i] for i in group.item_ids if i in by_id]))
        return structures

    def _analyze_project(self, group: ContentGroup, items) -> ProjectStructure:
        name = group.title.replace("Project: ", "").replace(" (Merged)", "")
        structure = ProjectStructure(id=group.id, name=name, type="library", confidence=group.confidence)

        for item in items:
            bucket = next((b for b, pattern in STRUCTURE_BUCKETS if pattern.search(item.content_text)), "utilities")
            getattr(structure, bucket).append(item.id)

        combined = "\n".join(item.content_text for item in items)
        structure.type = self._project_type(combined)

        technologies = []
        for item in items:
            language = item.language or self.classifier.detect_language(item.content_text).language
            if language and language != UNKNOWN_LANGUAGE and language not in technologies:
                technologies.append(language)
        for framework in self.classifier.detect_language(combined).frameworks:
            if framework not in technologies:
                technologies.append(framework)
        structure.technologies = technologies
        return structure

    def _project_type(self, text: str) -> str:
        if re.search(r"\btutorial\b|\bexample\b|\bstep \d", text, re.IGNORECASE):
            return "tutorial"
        topic = self.classifier.classify_topic(text).primary_topic
        if topic == "mobile-development":
            return "mobile_app"
        if topic in WEB_TOPICS:
            return "web_app"
        if topic in ("data-processing", "algorithms"):
            return "utility"
        return "library"
