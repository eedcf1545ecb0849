#!/usr/bin/env python3
"""
Language and topic classification for extracted code text.

Scoring is driven by ordered rule records rather than hard-wired tables, so
callers (and tests) can pass their own rule sets:

    from classifier import TopicClassifier, LanguageRule

    classifier = TopicClassifier(language_rules=[LanguageRule("sql", (r"SELECT",), ("select",))])
    result = classifier.classify("SELECT * FROM users")

Language score = weight * (3 * pattern matches + 2 * keyword tokens).
Topic score    = weight * pattern matches.
Ties are broken by rule order: the first declared rule wins.
"""

import re
from dataclasses import dataclass, field

from models import ClassificationResult, LanguageResult, TopicResult

UNKNOWN_LANGUAGE = "unknown"
GENERAL_TOPIC = "general"

PATTERN_POINTS = 3
KEYWORD_POINTS = 2
MAX_SUGGESTED_TAGS = 3


# ==============================================================================
# RULE RECORDS
# ==============================================================================

@dataclass(frozen=True)
class LanguageRule:
    """Scoring rule for one programming language."""

    id: str
    patterns: tuple[str, ...]
    keywords: tuple[str, ...] = ()
    frameworks: tuple[str, ...] = ()
    weight: float = 1.0
    compiled: tuple = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "compiled", tuple(re.compile(p, re.IGNORECASE) for p in self.patterns))


@dataclass(frozen=True)
class TopicRule:
    """Scoring rule for one topic, with a per-topic weight multiplier."""

    id: str
    patterns: tuple[str, ...]
    weight: float = 1.0
    related: tuple[str, ...] = ()
    compiled: tuple = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "compiled", tuple(re.compile(p, re.IGNORECASE) for p in self.patterns))


# ==============================================================================
# DEFAULT RULE SETS
# ==============================================================================

DEFAULT_LANGUAGE_RULES = (
    LanguageRule(
        "javascript",
        (r"(?:function|const|let|var|=>)", r"(?:console\.log|document\.|window\.)",
         r"(?:npm|yarn|package\.json)", r"(?:import.*from|export.*)"),
        ("function", "const", "let", "var", "console", "document", "window", "import", "export"),
        ("react", "vue", "angular", "node", "express"),
    ),
    LanguageRule(
        "typescript",
        (r"(?:interface|type|enum)", r"(?::\s*\w+|as\s+\w+)",
         r"(?:import.*from.*['\"].*\.ts)", r"(?:public|private|protected)\s+"),
        ("interface", "type", "enum", "implements", "extends", "public", "private"),
        ("angular", "nest", "typeorm"),
    ),
    LanguageRule(
        "python",
        (r"(?:def|import|from|print)", r"(?:if __name__|\.py)",
         r"(?:class\s+\w+.*:)", r"(?:pip install|requirements\.txt)"),
        ("def", "import", "from", "print", "class", "if", "elif", "else"),
        ("django", "flask", "fastapi", "pandas", "numpy"),
    ),
    LanguageRule(
        "swift",
        (r"(?:func|var|let|import UIKit)", r"(?:@IBOutlet|@IBAction)",
         r"(?:override|extension)", r"(?:class\s+\w+:\s*UIViewController)"),
        ("func", "var", "let", "override", "extension", "class", "struct"),
        ("uikit", "swiftui", "combine", "core data"),
    ),
    LanguageRule(
        "java",
        (r"(?:public class|public static void)", r"(?:System\.out|import java)",
         r"(?:@Override|extends|implements)", r"(?:ArrayList|HashMap)"),
        ("public", "class", "static", "void", "extends", "implements"),
        ("spring", "hibernate", "android"),
    ),
    LanguageRule(
        "kotlin",
        (r"(?:fun|val|var|class)", r"(?:import.*kotlin)",
         r"(?:override|companion object)", r"(?:data class)"),
        ("fun", "val", "var", "class", "override", "companion"),
        ("android", "spring boot"),
    ),
    LanguageRule(
        "go",
        (r"(?:func|package|import)", r"(?:fmt\.Print|go mod)",
         r"(?:interface\{\}|struct\{)", r"(?:goroutine|channel)"),
        ("func", "package", "import", "var", "const", "type"),
        ("gin", "echo", "fiber"),
    ),
    LanguageRule(
        "rust",
        (r"(?:fn|let|mut|struct)", r"(?:cargo|Cargo\.toml)",
         r"(?:impl|trait|enum)", r"(?:println!|vec!)"),
        ("fn", "let", "mut", "struct", "impl", "trait", "enum"),
        ("actix", "tokio", "serde"),
    ),
    LanguageRule(
        "cpp",
        (r"(?:#include|using namespace)", r"(?:int main|cout|cin)",
         r"(?:class|public:|private:)", r"(?:std::|vector<)"),
        ("include", "using", "namespace", "class", "public", "private"),
        ("qt", "boost"),
    ),
    LanguageRule(
        "csharp",
        (r"(?:using System|namespace)", r"(?:public class|static void Main)",
         r"(?:Console\.WriteLine)", r"(?:var|string|int|bool)"),
        ("using", "namespace", "public", "class", "static", "void"),
        (".net", "asp.net", "blazor"),
    ),
)

DEFAULT_TOPIC_RULES = (
    TopicRule(
        "mobile-development",
        (r"(?:React Native|Expo|iOS|Android)", r"(?:UIKit|SwiftUI|Kotlin|Flutter)",
         r"(?:@react-navigation|expo-|react-native-)"),
        5, ("ui-components", "navigation"),
    ),
    TopicRule(
        "web-development",
        (r"(?:HTML|CSS|DOM|fetch|axios)", r"(?:addEventListener|querySelector|getElementById)",
         r"(?:http|api|endpoint|rest)"),
        4, ("api-integration", "frontend"),
    ),
    TopicRule(
        "backend-development",
        (r"(?:server|express|api|route)", r"(?:database|sql|mongodb|postgres)",
         r"(?:middleware|auth|jwt)"),
        4, ("database", "api-integration", "authentication"),
    ),
    TopicRule(
        "database",
        (r"(?:SELECT|INSERT|UPDATE|DELETE|CREATE TABLE)", r"(?:database|table|query|schema|migration)",
         r"(?:supabase|postgres|mysql|mongodb)"),
        4, ("backend-development",),
    ),
    TopicRule(
        "authentication",
        (r"(?:auth|login|signup|password|token)", r"(?:JWT|session|cookie|oauth)",
         r"(?:signIn|signUp|signOut|authenticate)"),
        4, ("security", "backend-development"),
    ),
    TopicRule(
        "ui-components",
        (r"(?:component|props|useState|useEffect)", r"(?:button|input|form|modal|card)",
         r"(?:styling|css|tailwind|styled)"),
        3, ("frontend", "mobile-development"),
    ),
    TopicRule(
        "data-processing",
        (r"(?:map|filter|reduce|forEach|sort)", r"(?:JSON|parse|stringify|transform)",
         r"(?:array|object|data|algorithm)"),
        3, ("algorithms",),
    ),
    TopicRule(
        "api-integration",
        (r"(?:fetch|axios|api|endpoint|rest)", r"(?:GET|POST|PUT|DELETE|PATCH)",
         r"(?:async|await|promise|response)"),
        4, ("web-development", "backend-development"),
    ),
    TopicRule(
        "testing",
        (r"(?:test|spec|jest|mocha|cypress)", r"(?:expect|describe|it|should|mock)",
         r"(?:unit test|integration test|e2e)"),
        3, ("quality-assurance",),
    ),
    TopicRule(
        "algorithms",
        (r"(?:sort|search|binary|recursion)", r"(?:big o|complexity|optimize)",
         r"(?:data structure|linked list|tree|graph)"),
        3, ("data-processing",),
    ),
)

LANGUAGE_IDS = tuple(rule.id for rule in DEFAULT_LANGUAGE_RULES)


# ==============================================================================
# CLASSIFIER
# ==============================================================================

def _count_matches(compiled_patterns: tuple, text: str) -> int:
    return sum(len(pattern.findall(text)) for pattern in compiled_patterns)


def _ranked(scores: dict[str, float]) -> list[tuple[str, float]]:
    """Sort scores descending, keeping declaration order for ties, dropping zeros."""
    return [(key, score) for key, score in sorted(scores.items(), key=lambda kv: -kv[1]) if score > 0]


class TopicClassifier:
    """Scores text against ordered language and topic rule lists."""

    def __init__(self, language_rules=DEFAULT_LANGUAGE_RULES, topic_rules=DEFAULT_TOPIC_RULES):
        self.language_rules = tuple(language_rules)
        self.topic_rules = tuple(topic_rules)

    def detect_language(self, text: str) -> LanguageResult:
        text = text if isinstance(text, str) else ""
        tokens = re.split(r"\W+", text.lower())
        scores = {}
        frameworks = []

        for rule in self.language_rules:
            keyword_hits = sum(1 for token in tokens if token in rule.keywords)
            score = rule.weight * (PATTERN_POINTS * _count_matches(rule.compiled, text) + KEYWORD_POINTS * keyword_hits)
            scores[rule.id] = score

            for framework in rule.frameworks:
                if framework not in frameworks and re.search(re.escape(framework), text, re.IGNORECASE):
                    frameworks.append(framework)

        ranking = _ranked(scores)
        if not ranking:
            return LanguageResult(UNKNOWN_LANGUAGE, 0.0, scores, frameworks)

        language, best = ranking[0]
        total = sum(score for _, score in ranking)
        return LanguageResult(language, round(best / total, 4), scores, frameworks)

    def classify_topic(self, text: str) -> TopicResult:
        text = text if isinstance(text, str) else ""
        scores = {rule.id: rule.weight * _count_matches(rule.compiled, text) for rule in self.topic_rules}

        ranking = _ranked(scores)
        if not ranking:
            return TopicResult(GENERAL_TOPIC, 0.0, scores, [], [])

        primary, best = ranking[0]
        total = sum(score for _, score in ranking)
        related = next((list(rule.related) for rule in self.topic_rules if rule.id == primary), [])
        return TopicResult(
            primary_topic=primary,
            confidence=round(best / total, 4),
            all_topics=scores,
            suggested_tags=[topic for topic, _ in ranking[:MAX_SUGGESTED_TAGS]],
            related_topics=related,
        )

    def classify(self, text: str) -> ClassificationResult:
        return ClassificationResult(language=self.detect_language(text), topic=self.classify_topic(text))


# Module-level default instance
_default_classifier = TopicClassifier()


def get_classifier() -> TopicClassifier:
    return _default_classifier


def detect_language(text: str) -> LanguageResult:
    return _default_classifier.detect_language(text)


def classify_topic(text: str) -> TopicResult:
    return _default_classifier.classify_topic(text)


def classify(text: str) -> ClassificationResult:
    """Classify text into a language and topic. Never raises."""
    return _default_classifier.classify(text)


def strip_language_prefix(name: str) -> str:
    """Remove a known language prefix and a trailing sequence number from a name.

    'javascript-ui-components-3' -> 'ui-components'
    """
    core = name.lower().strip()
    for language in LANGUAGE_IDS:
        if core.startswith(language + "-"):
            core = core[len(language) + 1:]
            break
    return re.sub(r"-\d+$", "", core).strip("-")
