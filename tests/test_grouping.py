"""
Tests for content grouping and project detection.
"""

from datetime import datetime, timedelta

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from grouping import (
    ContentGrouper,
    extract_definitions,
    extract_project_indicators,
    is_continuation,
    is_incomplete,
    overlap_ratio,
    sequence_order,
)
from models import PROJECT_TYPES, ContentGroup, GroupMember


REACT_CARD = "import React from 'react';\nexport const Card = (props) => <View>{props.title}</View>;"
REACT_FETCH = "import { useState } from 'react';\nexport function fetchUsers() { return fetch('/api/users'); }"


def make_group(group_id, item_ids, confidence=0.8):
    return ContentGroup(
        id=group_id,
        title=group_id,
        description="",
        type="feature",
        confidence=confidence,
        members=[GroupMember(i, "file") for i in item_ids],
    )


class TestIndicators:
    """Tests for text helpers used by the strategies."""

    def test_js_imports(self):
        assert extract_project_indicators(REACT_CARD) == ["react"]

    def test_scoped_and_relative_imports(self):
        """Test that scoped packages keep their scope and relative imports are ignored."""
        text = "import { Button } from '@mui/material/Button';\nimport x from './local';"

        assert extract_project_indicators(text) == ["@mui/material"]

    def test_python_imports(self):
        text = "from flask import Flask\nimport numpy as np\n"

        assert extract_project_indicators(text) == ["flask", "numpy"]

    def test_definitions(self):
        text = "def parse_config(path):\n    pass\nconst loader = () => 1"

        assert extract_definitions(text) == {"parse_config", "loader"}

    def test_overlap_ratio(self):
        assert overlap_ratio(make_group("a", ["1", "2"]), make_group("b", ["2", "3"])) == 1 / 3


class TestSequenceOrder:
    """Tests for ordering snippets so their code reads top to bottom."""

    def test_incomplete_code(self):
        assert is_incomplete("function load(url) {\n  const items = [")
        assert is_incomplete("const ok = ready &&")
        assert is_incomplete("render(items);\n// continued in next screenshot")
        assert not is_incomplete("const total = sum(items);")
        assert not is_incomplete("")

    def test_continuation_code(self):
        assert is_continuation("  return total;\n}")
        assert is_continuation(".then(res => res.json())")
        assert is_continuation("else:\n    retry()")
        assert not is_continuation("elsewhere = 1")
        assert not is_continuation("const total = sum(items);")

    def test_capture_order_without_signals(self, make_snippet):
        snippets = [
            make_snippet("second", "f1", "const b = 2;", created_at=datetime(2024, 1, 2)),
            make_snippet("first", "f1", "const a = 1;", created_at=datetime(2024, 1, 1)),
        ]

        assert [s.id for s in sequence_order(snippets)] == ["first", "second"]

    def test_definition_before_use(self, make_snippet):
        """Test that a snippet defining a function moves ahead of its callers."""
        snippets = [
            make_snippet("use", "f1", "result = formatPrice(total)", created_at=datetime(2024, 1, 1)),
            make_snippet("define", "f1", "function formatPrice(value) { return value; }",
                         created_at=datetime(2024, 1, 2)),
        ]

        assert [s.id for s in sequence_order(snippets)] == ["define", "use"]

    def test_continuation_follows_cut_off_code(self, make_snippet):
        """Test that the tail of a block goes after the snippet that opened it."""
        snippets = [
            make_snippet("tail", "f1", "} else {\n  stop();\n}", created_at=datetime(2024, 1, 1)),
            make_snippet("head", "f1", "if (ready) {\n  start();", created_at=datetime(2024, 1, 2)),
        ]

        assert [s.id for s in sequence_order(snippets)] == ["head", "tail"]

    def test_continuations_pair_with_nearest_head(self, make_snippet):
        snippets = [
            make_snippet("head-1", "f1", "if (ready) {", created_at=datetime(2024, 1, 1)),
            make_snippet("tail-1", "f1", "}", created_at=datetime(2024, 1, 2)),
            make_snippet("head-2", "f1", "while (busy) {", created_at=datetime(2024, 1, 3)),
            make_snippet("tail-2", "f1", "}", created_at=datetime(2024, 1, 4)),
        ]

        assert [s.id for s in sequence_order(snippets)] == ["head-1", "tail-1", "head-2", "tail-2"]

    def test_mutual_use_keeps_capture_order(self, make_snippet):
        snippets = [
            make_snippet("alpha", "f1", "function alpha() { return beta(); }", created_at=datetime(2024, 1, 1)),
            make_snippet("beta", "f1", "function beta() { return alpha(); }", created_at=datetime(2024, 1, 2)),
        ]

        assert [s.id for s in sequence_order(snippets)] == ["alpha", "beta"]


class TestStrategies:
    """Tests for the individual grouping strategies."""

    def test_semantic(self, duplicate_files):
        groups = ContentGrouper().group_by_semantic(duplicate_files)

        assert len(groups) == 1
        assert groups[0].item_ids == ["f1", "f2"]
        assert groups[0].confidence == 0.8
        assert groups[0].suggested_actions[0].action == "merge"

    def test_temporal_session(self, make_file):
        """Test that items captured within an hour form one coding session."""
        start = datetime(2024, 3, 4, 10, 0)
        items = [
            make_file("a", created_at=start),
            make_file("b", created_at=start + timedelta(minutes=20)),
            make_file("c", created_at=start + timedelta(days=2)),
        ]

        groups = ContentGrouper().group_by_temporal(items)

        assert len(groups) == 1
        assert groups[0].item_ids == ["a", "b"]
        assert groups[0].type == "experiment"
        assert groups[0].title == "Coding Session - 2024-03-04"

    def test_project(self, make_snippet):
        items = [make_snippet("s1", "f1", REACT_CARD), make_snippet("s2", "f1", REACT_FETCH)]

        groups = ContentGrouper().group_by_project(items)

        assert len(groups) == 1
        assert groups[0].title == "Project: react"
        assert groups[0].type == "project"
        assert set(groups[0].item_ids) == {"s1", "s2"}

    def test_dependency(self, make_snippet):
        """Test that an item using a symbol defined by another is grouped with it."""
        items = [
            make_snippet("user", "f1", "settings = parse_config('app.yaml')"),
            make_snippet("definer", "f1", "def parse_config(path):\n    return load(path)"),
            make_snippet("other", "f1", "print('unrelated')"),
        ]

        groups = ContentGrouper().group_by_dependency(items)

        assert len(groups) == 1
        # The definition comes before its user
        assert groups[0].item_ids == ["definer", "user"]

    def test_topic(self, make_snippet, sample_javascript_code):
        items = [
            make_snippet("s1", "f1", sample_javascript_code),
            make_snippet("s2", "f1", sample_javascript_code.replace("Login", "Signup")),
        ]

        groups = ContentGrouper().group_by_topic(items)

        titles = [g.title for g in groups]
        assert "Ui Components Code" in titles
        ui = next(g for g in groups if g.title == "Ui Components Code")
        assert ui.type == "component"


class TestGroupContent:
    """Tests for the combined grouping pass."""

    def test_overlapping_groups_merged(self):
        grouper = ContentGrouper()
        groups = [make_group("a", ["1", "2", "3"], 0.8), make_group("b", ["2", "3", "4"], 0.4)]

        merged = grouper.merge_overlapping(groups)

        assert len(merged) == 1
        assert merged[0].item_ids == ["1", "2", "3", "4"]
        assert merged[0].confidence == 0.6
        assert merged[0].title == "a (Merged)"

    def test_optimize_drops_weak_and_singleton_groups(self):
        groups = [
            make_group("weak", ["1", "2"], 0.2),
            make_group("single", ["3"], 0.9),
            make_group("small", ["4", "5"], 0.9),
            make_group("large", ["6", "7", "8"], 0.9),
        ]

        kept = ContentGrouper().optimize(groups)

        assert [g.id for g in kept] == ["large", "small"]

    def test_duplicates_grouped(self, duplicate_files):
        groups = ContentGrouper().group_content(duplicate_files)

        assert len(groups) == 1
        assert set(groups[0].item_ids) == {"f1", "f2"}
        assert 0.3 < groups[0].confidence <= 1.0

    def test_archived_items_ignored(self, duplicate_files):
        duplicate_files[1].archived = True

        assert ContentGrouper().group_content(duplicate_files) == []

    def test_empty_collection(self):
        assert ContentGrouper().group_content([]) == []


class TestProjectStructures:
    """Tests for project structure detection."""

    def test_detects_react_project(self, make_snippet):
        items = [
            make_snippet("card", "f1", REACT_CARD, language="javascript"),
            make_snippet("api", "f1", REACT_FETCH, language="javascript"),
        ]

        projects = ContentGrouper().detect_project_structures(items)

        assert len(projects) == 1
        project = projects[0]
        assert project.name == "react"
        assert project.components == ["card"]
        assert project.services == ["api"]
        assert project.technologies[0] == "javascript"
        assert "react" in project.technologies
        assert project.type in PROJECT_TYPES
        assert project.confidence > 0.6

    def test_no_projects_in_unrelated_items(self, spread_out_items):
        assert ContentGrouper().detect_project_structures(spread_out_items) == []
