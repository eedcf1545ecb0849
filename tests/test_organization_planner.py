"""
Tests for organization plan generation and selection.
"""

from datetime import datetime, timedelta
from unittest.mock import patch

import pytest

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from models import ExpectedOutcome, OrganizationAction, OrganizationPlan
from organization_planner import (
    OrganizationPlanner,
    balanced_score,
    select_plan,
    time_bucket_key,
)


def make_plan(plan_id, confidence=0.5, accuracy=0.5, auto_flags=()):
    actions = [
        OrganizationAction(f"{plan_id}-{i}", "group", "medium", "test", ("a", "b"), 0.5, auto_executable=flag)
        for i, flag in enumerate(auto_flags)
    ]
    return OrganizationPlan(
        id=plan_id,
        strategy="topic",
        name=plan_id,
        description="",
        confidence=confidence,
        actions=actions,
        expected_outcome=ExpectedOutcome(improved_accuracy=accuracy),
    )


class TestTimeBuckets:

    def test_day(self):
        assert time_bucket_key(datetime(2024, 2, 14, 9), "day") == "2024-02-14"

    def test_week(self):
        assert time_bucket_key(datetime(2024, 2, 14, 9), "week") == "2024-W07"

    def test_month(self):
        assert time_bucket_key(datetime(2024, 2, 14, 9), "month") == "2024-02"

    def test_unknown_bucket(self):
        with pytest.raises(ValueError):
            time_bucket_key(datetime(2024, 2, 14), "fortnight")


class TestAnalyze:
    """Tests for plan generation."""

    def test_duplicate_files(self, duplicate_files):
        """Test that duplicate files produce similarity, topic and hybrid plans."""
        plans = OrganizationPlanner().analyze(duplicate_files)

        assert [p.strategy for p in plans] == ["topic", "similarity", "hybrid"]
        assert all(0.4 < p.confidence <= 1.0 for p in plans)

    def test_similarity_plan_merge(self, duplicate_files):
        plan = OrganizationPlanner().similarity_plan(duplicate_files)

        assert plan.confidence == 0.8
        assert len(plan.actions) == 1
        merge = plan.actions[0]
        assert merge.type == "merge"
        assert merge.affected_item_ids == ("f1", "f2")
        assert merge.description == "Merge similar content: 1.00 similarity"
        assert merge.auto_executable is True
        assert plan.estimated_time_ms == 1200

    def test_auto_executable_threshold(self, make_file):
        """Test that merges at or below the auto-merge threshold need review."""
        items = [make_file("a", "alpha beta gamma delta"), make_file("b", "alpha beta gamma epsilon")]

        plan = OrganizationPlanner(merge_floor=0.5).similarity_plan(items)

        # 3 shared keywords out of 5
        assert len(plan.actions) == 1
        assert plan.actions[0].auto_executable is False

    def test_files_and_snippets_not_merged_together(self, make_file, make_snippet):
        items = [make_file("f1", "alpha beta gamma"), make_snippet("s1", "f9", "alpha beta gamma")]

        plan = OrganizationPlanner().similarity_plan(items)

        assert plan.actions == ()
        assert plan.confidence == 0.3

    def test_hybrid_topic_waits_for_merge(self, duplicate_files):
        """Test that a topic group depends on merges touching its items."""
        plan = OrganizationPlanner().hybrid_plan(duplicate_files)

        merge = next(a for a in plan.actions if a.type == "merge")
        group = next(a for a in plan.actions if a.type == "group")
        assert merge.id == "hybrid-merge-1"
        assert group.depends_on == ("hybrid-merge-1",)
        assert group.priority == "low"
        assert group.label == "mobile-development"
        assert plan.confidence == 0.9

    def test_time_plan(self, make_file):
        """Test that periods with more than two items become low-priority groups."""
        start = datetime(2024, 2, 12, 9)
        items = [make_file(f"f{i}", f"note {i}", created_at=start + timedelta(days=i)) for i in range(3)]
        items.append(make_file("late", "later note", created_at=start + timedelta(days=30)))

        plan = OrganizationPlanner(time_bucket="week").time_plan(items)

        assert len(plan.actions) == 1
        action = plan.actions[0]
        assert action.priority == "low"
        assert action.affected_item_ids == ("f0", "f1", "f2")
        assert action.label == "2024-W07"
        assert plan.confidence == 0.5

    def test_project_plan(self, make_snippet):
        items = [
            make_snippet("card", "f1", "import React from 'react';\nexport const Card = () => <View />;"),
            make_snippet("list", "f1", "import { useState } from 'react';\nexport const List = () => <View />;"),
        ]

        plan = OrganizationPlanner().project_plan(items)

        assert plan.confidence == 0.8
        group = plan.actions[0]
        assert group.type == "group"
        assert group.priority == "high"
        assert group.label == "react"
        assert set(group.affected_item_ids) == {"card", "list"}

    def test_nothing_to_do(self, spread_out_items):
        """Test that unrelated items produce no viable plans."""
        assert OrganizationPlanner().analyze(spread_out_items) == []

    def test_empty_collection(self):
        assert OrganizationPlanner().analyze([]) == []

    def test_archived_items_ignored(self, duplicate_files):
        duplicate_files[1].archived = True

        assert OrganizationPlanner().analyze(duplicate_files) == []

    def test_input_not_modified(self, duplicate_files):
        OrganizationPlanner().analyze(duplicate_files)

        assert [f.id for f in duplicate_files] == ["f1", "f2"]
        assert duplicate_files[1].archived is False

    def test_failing_strategy_is_skipped(self, duplicate_files):
        """Test that one strategy raising does not stop the others."""
        with patch.object(OrganizationPlanner, "topic_plan", side_effect=RuntimeError("boom")):
            plans = OrganizationPlanner().analyze(duplicate_files)

        assert [p.strategy for p in plans] == ["similarity", "hybrid"]

    def test_duplicate_cluster_is_one_merge(self, triplicate_files):
        """Test that three near-duplicates produce a single merge covering all of them."""
        plan = OrganizationPlanner().similarity_plan(triplicate_files)

        assert len(plan.actions) == 1
        assert plan.actions[0].affected_item_ids == ("f1", "f2", "f3")
        assert plan.actions[0].auto_executable is True

    def test_cluster_similarity_is_weakest_link(self, make_file):
        """Test that a chained cluster reports its weakest pair and needs review."""
        items = [
            make_file("a", "alpha beta gamma delta"),
            make_file("b", "alpha beta gamma delta epsilon"),
            make_file("c", "beta gamma delta epsilon"),
        ]

        plan = OrganizationPlanner().similarity_plan(items)

        # a~b 0.8, b~c 0.8, a~c 0.6
        assert len(plan.actions) == 1
        assert plan.actions[0].affected_item_ids == ("a", "b", "c")
        assert plan.actions[0].description == "Merge similar content: 0.60 similarity"
        assert plan.actions[0].auto_executable is False

    def test_hybrid_topic_waits_for_cluster_merge(self, triplicate_files):
        plan = OrganizationPlanner().hybrid_plan(triplicate_files)

        merges = [a for a in plan.actions if a.type == "merge"]
        group = next(a for a in plan.actions if a.type == "group")
        assert [m.id for m in merges] == ["hybrid-merge-1"]
        assert group.depends_on == ("hybrid-merge-1",)


class TestSelectPlan:
    """Tests for plan selection strategies."""

    def test_aggressive(self):
        plans = [make_plan("a", accuracy=0.3), make_plan("b", accuracy=0.6)]

        assert select_plan(plans, "aggressive").id == "b"

    def test_conservative(self):
        """Test that confidence wins, then the number of auto-executable actions."""
        plans = [
            make_plan("low", confidence=0.5, auto_flags=(True, True)),
            make_plan("high-few", confidence=0.9, auto_flags=(True, False)),
            make_plan("high-many", confidence=0.9, auto_flags=(True, True)),
        ]

        assert select_plan(plans, "conservative").id == "high-many"

    def test_balanced_score(self):
        plan = make_plan("p", confidence=0.8, accuracy=0.5, auto_flags=(True, False))

        assert balanced_score(plan) == pytest.approx(0.4 * 0.8 + 0.3 * 0.5 + 0.3 * 0.5)

    def test_balanced_plan_without_actions(self):
        plan = make_plan("p", confidence=0.5, accuracy=0.5)

        assert balanced_score(plan) == pytest.approx(0.35)

    def test_ties_go_to_first_plan(self):
        plans = [make_plan("first"), make_plan("second")]

        for strategy in ("aggressive", "conservative", "balanced"):
            assert select_plan(plans, strategy).id == "first"

    def test_duplicate_files(self, duplicate_files):
        """Test selection over real plans for the duplicate-files case."""
        plans = OrganizationPlanner().analyze(duplicate_files)

        assert select_plan(plans, "balanced").strategy == "similarity"
        assert select_plan(plans, "conservative").strategy == "hybrid"
        assert select_plan(plans, "aggressive").strategy == "hybrid"

    def test_empty_plans(self):
        with pytest.raises(ValueError):
            select_plan([], "balanced")

    def test_unknown_strategy(self):
        with pytest.raises(ValueError, match="Unknown selection strategy"):
            select_plan([make_plan("a")], "reckless")
