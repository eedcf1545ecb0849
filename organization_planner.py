#!/usr/bin/env python3
"""
Organization planner - propose ways to restructure a code library.

Five strategies run independently over the same snapshot of the collection
and each produces one OrganizationPlan:

1. project     group items by detected project, merge duplicates inside them
2. topic       group files that share a topic
3. time        group items created in the same period
4. similarity  merge near-duplicate items
5. hybrid      projects first, then merges, then topic groups that wait for
               the merges touching their items

A strategy that raises is logged and left out. Plans at or below the minimum
confidence are dropped, so an empty list simply means "nothing to do".

Expected outcomes are rough estimates derived from item counts, not
guarantees about what execution will achieve.
"""

import copy
import logging
from datetime import datetime

from classifier import GENERAL_TOPIC, get_classifier
from grouping import ContentGrouper
from models import (
    ITEM_FILE,
    ITEM_SNIPPET,
    ExpectedOutcome,
    OrganizationAction,
    OrganizationPlan,
)
from similarity import keyword_similarity

logger = logging.getLogger("code_organizer")

PLAN_STRATEGIES = ("project", "topic", "time", "similarity", "hybrid")
SELECTION_STRATEGIES = ("aggressive", "conservative", "balanced")
TIME_BUCKETS = ("day", "week", "month")

DEFAULT_MERGE_FLOOR = 0.6
DEFAULT_AUTO_MERGE_THRESHOLD = 0.8
DEFAULT_MIN_PLAN_CONFIDENCE = 0.4

# Estimated milliseconds per action, by strategy
ACTION_TIME_MS = {
    "project": 1000,
    "topic": 800,
    "time": 600,
    "similarity": 1200,
    "hybrid": 1000,
}


def time_bucket_key(moment: datetime, bucket: str = "week") -> str:
    """Label for the period a timestamp falls in, e.g. '2024-W07'."""
    if bucket == "day":
        return moment.strftime("%Y-%m-%d")
    if bucket == "month":
        return moment.strftime("%Y-%m")
    if bucket == "week":
        year, week, _ = moment.isocalendar()
        return f"{year}-W{week:02d}"
    raise ValueError(f"Unknown time bucket '{bucket}'. Available: {', '.join(TIME_BUCKETS)}")


# ==============================================================================
# PLANNER
# ==============================================================================

class OrganizationPlanner:
    """Generates competing organization plans for a collection of items."""

    def __init__(
        self,
        classifier=None,
        merge_floor: float = DEFAULT_MERGE_FLOOR,
        auto_merge_threshold: float = DEFAULT_AUTO_MERGE_THRESHOLD,
        min_confidence: float = DEFAULT_MIN_PLAN_CONFIDENCE,
        time_bucket: str = "week",
    ):
        self.classifier = classifier or get_classifier()
        self.merge_floor = merge_floor
        self.auto_merge_threshold = auto_merge_threshold
        self.min_confidence = min_confidence
        self.time_bucket = time_bucket

    def analyze(self, items) -> list[OrganizationPlan]:
        """Run every strategy and return the plans above the confidence floor."""
        snapshot = [item for item in copy.deepcopy(list(items)) if not item.archived]

        plans = []
        for strategy in PLAN_STRATEGIES:
            try:
                plan = getattr(self, f"{strategy}_plan")(snapshot)
            except Exception as e:
                logger.warning(f"Could not generate {strategy} plan: {e}")
                continue
            if plan.confidence > self.min_confidence:
                plans.append(plan)
            else:
                logger.debug(f"Dropping {strategy} plan (confidence {plan.confidence:.2f})")

        logger.info(f"Generated {len(plans)} organization plans for {len(snapshot)} items")
        return plans

    # -- shared helpers ------------------------------------------------------

    @staticmethod
    def _counts(items) -> tuple[int, int]:
        files = sum(1 for item in items if item.kind == ITEM_FILE)
        return files, len(items) - files

    def similar_pairs(self, items) -> list[tuple]:
        """(first, second, similarity) for same-kind pairs at or above the merge floor."""
        pairs = []
        for index, first in enumerate(items):
            for second in items[index + 1:]:
                if first.kind != second.kind:
                    continue
                score = keyword_similarity(first.content_text, second.content_text)
                if score >= self.merge_floor:
                    pairs.append((first, second, score))
        return pairs

    def merge_clusters(self, items) -> list[tuple]:
        """(members, similarity) for each set of items linked by similar pairs.

        Pairs are joined transitively, so three near-duplicates become a single
        cluster and a single merge. A cluster's similarity is its weakest pair.
        """
        pairs = self.similar_pairs(items)
        parent = {item.id: item.id for item in items}

        def find(node):
            while parent[node] != node:
                parent[node] = parent[parent[node]]
                node = parent[node]
            return node

        for first, second, _ in pairs:
            parent[find(second.id)] = find(first.id)

        weakest: dict[str, float] = {}
        for first, _, score in pairs:
            root = find(first.id)
            weakest[root] = min(weakest.get(root, 1.0), score)

        clusters: dict[str, list] = {}
        for item in items:
            root = find(item.id)
            if root in weakest:
                clusters.setdefault(root, []).append(item)
        return [(members, weakest[root]) for root, members in clusters.items()]

    def _merge_action(self, action_id: str, cluster: tuple, priority: str = "medium") -> OrganizationAction:
        members, score = cluster
        return OrganizationAction(
            id=action_id,
            type="merge",
            priority=priority,
            description=f"Merge similar content: {score:.2f} similarity",
            affected_item_ids=tuple(m.id for m in members),
            estimated_impact=0.7,
            auto_executable=score > self.auto_merge_threshold,
        )

    def topic_groups(self, items) -> dict[str, list]:
        """Files keyed by the primary topic of their description (or title)."""
        groups: dict[str, list] = {}
        for item in items:
            if item.kind != ITEM_FILE:
                continue
            topic = self.classifier.classify_topic(item.description or item.title).primary_topic
            if topic != GENERAL_TOPIC:
                groups.setdefault(topic, []).append(item)
        return {topic: files for topic, files in groups.items() if len(files) > 1}

    def _plan(self, strategy, name, description, confidence, actions, outcome) -> OrganizationPlan:
        return OrganizationPlan(
            id=f"{strategy}-plan",
            strategy=strategy,
            name=name,
            description=description,
            confidence=confidence,
            actions=tuple(actions),
            expected_outcome=outcome,
            estimated_time_ms=len(actions) * ACTION_TIME_MS[strategy],
        )

    # -- strategies ----------------------------------------------------------

    def project_plan(self, items) -> OrganizationPlan:
        projects = ContentGrouper(self.classifier).detect_project_structures(items)
        by_id = {item.id: item for item in items}

        actions = []
        claimed = set()
        merge_count = 0
        for index, project in enumerate(projects, 1):
            actions.append(OrganizationAction(
                id=f"project-group-{index}",
                type="group",
                priority="high",
                description=f"Organize {project.name} project structure",
                affected_item_ids=tuple(project.item_ids),
                estimated_impact=0.8,
                auto_executable=project.confidence > 0.8,
                label=project.name,
            ))
            # An item is merged at most once, even if it sits in several projects
            members = [by_id[i] for i in project.item_ids if i in by_id and i not in claimed]
            for cluster in self.merge_clusters(members):
                claimed.update(m.id for m in cluster[0])
                merge_count += 1
                actions.append(self._merge_action(f"project-merge-{merge_count}", cluster))

        files, snippets = self._counts(items)
        return self._plan(
            "project",
            "Project-Based Organization",
            "Organize files and snippets by detected project structures",
            0.8 if projects else 0.3,
            actions,
            ExpectedOutcome(
                files_reduced=int(files * 0.2),
                snippets_consolidated=int(snippets * 0.3),
                new_groups=len(projects),
                improved_accuracy=0.4,
            ),
        )

    def topic_plan(self, items) -> OrganizationPlan:
        actions = [
            OrganizationAction(
                id=f"topic-group-{index}",
                type="group",
                priority="medium",
                description=f"Group {topic} related items",
                affected_item_ids=tuple(f.id for f in files),
                estimated_impact=0.6,
                auto_executable=False,
                label=topic,
            )
            for index, (topic, files) in enumerate(self.topic_groups(items).items(), 1)
        ]

        files, snippets = self._counts(items)
        return self._plan(
            "topic",
            "Topic-Based Organization",
            "Organize files and snippets by programming topics and domains",
            0.7 if actions else 0.3,
            actions,
            ExpectedOutcome(
                files_reduced=int(files * 0.1),
                snippets_consolidated=int(snippets * 0.2),
                new_groups=len(actions),
                improved_accuracy=0.3,
            ),
        )

    def time_plan(self, items) -> OrganizationPlan:
        buckets: dict[str, list] = {}
        for item in sorted(items, key=lambda i: i.created_at):
            buckets.setdefault(time_bucket_key(item.created_at, self.time_bucket), []).append(item)

        actions = []
        for period, period_items in buckets.items():
            if len(period_items) <= 2:
                continue
            actions.append(OrganizationAction(
                id=f"time-group-{len(actions) + 1}",
                type="group",
                priority="low",
                description=f"Group items from {period}",
                affected_item_ids=tuple(i.id for i in period_items),
                estimated_impact=0.4,
                auto_executable=False,
                label=period,
            ))

        _, snippets = self._counts(items)
        return self._plan(
            "time",
            "Time-Based Organization",
            "Organize files and snippets by creation time periods",
            0.5 if actions else 0.2,
            actions,
            ExpectedOutcome(
                files_reduced=0,
                snippets_consolidated=int(snippets * 0.1),
                new_groups=len(actions),
                improved_accuracy=0.2,
            ),
        )

    def similarity_plan(self, items) -> OrganizationPlan:
        actions = [
            self._merge_action(f"similarity-merge-{index}", cluster)
            for index, cluster in enumerate(self.merge_clusters(items), 1)
        ]
        return self._plan(
            "similarity",
            "Similarity-Based Organization",
            "Merge and organize content based on similarity analysis",
            0.8 if actions else 0.3,
            actions,
            ExpectedOutcome(
                files_reduced=int(len(actions) * 0.5),
                snippets_consolidated=int(len(actions) * 0.7),
                new_groups=0,
                improved_accuracy=0.5,
            ),
        )

    def hybrid_plan(self, items) -> OrganizationPlan:
        projects = ContentGrouper(self.classifier).detect_project_structures(items)

        actions = [
            OrganizationAction(
                id=f"hybrid-project-{index}",
                type="group",
                priority="high",
                description=f"Organize {project.name} project",
                affected_item_ids=tuple(project.item_ids),
                estimated_impact=0.9,
                auto_executable=project.confidence > 0.8,
                label=project.name,
            )
            for index, project in enumerate(projects, 1)
        ]

        merges = [
            self._merge_action(f"hybrid-merge-{index}", cluster)
            for index, cluster in enumerate(self.merge_clusters(items), 1)
        ]
        actions.extend(merges)

        topic_actions = []
        for index, (topic, files) in enumerate(self.topic_groups(items).items(), 1):
            member_ids = {f.id for f in files}
            topic_actions.append(OrganizationAction(
                id=f"hybrid-topic-{index}",
                type="group",
                priority="low",
                description=f"Group {topic} related items",
                affected_item_ids=tuple(f.id for f in files),
                estimated_impact=0.6,
                auto_executable=False,
                # Merge first so groups are not built around items about to disappear
                depends_on=tuple(m.id for m in merges if m.affected_item_ids[0] in member_ids),
                label=topic,
            ))
        actions.extend(topic_actions)

        files, snippets = self._counts(items)
        return self._plan(
            "hybrid",
            "Intelligent Hybrid Organization",
            "Optimal combination of project, similarity, and topic-based organization",
            0.9 if actions else 0.3,
            actions,
            ExpectedOutcome(
                files_reduced=int(files * 0.3),
                snippets_consolidated=int(snippets * 0.4),
                new_groups=len(projects) + int(len(topic_actions) * 0.7),
                improved_accuracy=0.6,
            ),
        )


# ==============================================================================
# PLAN SELECTION
# ==============================================================================

def balanced_score(plan: OrganizationPlan) -> float:
    auto_ratio = plan.auto_executable_count / len(plan.actions) if plan.actions else 0.0
    return 0.4 * plan.confidence + 0.3 * plan.expected_outcome.improved_accuracy + 0.3 * auto_ratio


def select_plan(plans, strategy: str = "balanced") -> OrganizationPlan:
    """Pick one plan according to a selection strategy.

    Args:
        plans: Candidate plans
        strategy: 'aggressive' (most accuracy gain), 'conservative'
            (highest confidence, then most auto-executable actions) or
            'balanced' (weighted mix of both)

    Returns:
        The winning plan. On ties the earliest candidate wins.
    """
    plans = list(plans)
    if not plans:
        raise ValueError("No organization plans to select from")

    if strategy == "aggressive":
        key = lambda p: p.expected_outcome.improved_accuracy
    elif strategy == "conservative":
        key = lambda p: (p.confidence, p.auto_executable_count)
    elif strategy == "balanced":
        key = balanced_score
    else:
        raise ValueError(f"Unknown selection strategy '{strategy}'. Available: {', '.join(SELECTION_STRATEGIES)}")

    return max(plans, key=key)
