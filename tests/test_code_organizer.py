"""
End-to-end tests for the caller-facing organizer functions.
"""

import re
from unittest.mock import MagicMock

import pytest

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from code_organizer import (
    analyze_organization,
    auto_organize,
    execute_organization_plan,
    load_config,
    plan_placement,
    process_image,
    should_append,
)
from item_store import InMemoryItemStore
from models import OUTCOME_SKIPPED, OUTCOME_SUCCESS, STATUS_COMPLETED, FileItem, SimilarFile
from text_extraction import ExtractionError, ExtractionResult


class TestConfig:
    """Tests for configuration loading."""

    def test_defaults(self):
        config = load_config()

        assert config["thresholds"]["auto_merge"] == 0.8
        assert config["planner"]["time_bucket"] == "week"

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("AUTO_APPEND_THRESHOLD", "0.75")
        monkeypatch.setenv("TIME_BUCKET", "day")

        config = load_config()

        assert config["thresholds"]["auto_append"] == 0.75
        assert config["planner"]["time_bucket"] == "day"


class TestShouldAppend:
    """Tests for the append-or-create decision."""

    def test_no_similar_files(self):
        assert should_append("python-api-client", []) is False

    def test_core_topic_match(self):
        """Test that matching core topics append even at low similarity."""
        similar = [SimilarFile("f1", "javascript-ui-components-2", 0.31)]

        assert should_append("javascript-ui-components", similar) is True

    def test_high_similarity(self):
        similar = [SimilarFile("f1", "python-helpers", 0.9)]

        assert should_append("python-api-client", similar) is True

    def test_low_similarity_different_topic(self):
        similar = [SimilarFile("f1", "python-helpers", 0.35)]

        assert should_append("python-api-client", similar) is False


class TestPlanPlacement:
    """Tests for placing a single new piece of code."""

    def test_append_to_similar_file(self):
        store = InMemoryItemStore([
            FileItem("f1", "me", "javascript-ui-components", "React button component with props useState"),
        ])

        decision = plan_placement("React button component with props useState", owner_id="me", store=store)

        assert decision.similar_files[0].id == "f1"
        assert decision.should_append is True
        assert decision.target_file_id == "f1"

    def test_never_appends_to_another_owners_file(self):
        """Test that a matching file owned by someone else is not a placement target."""
        store = InMemoryItemStore([
            FileItem("theirs", "bob", "javascript-ui-components", "React button component with props useState"),
        ])

        decision = plan_placement("React button component with props useState", owner_id="alice", store=store)

        assert decision.similar_files == []
        assert decision.should_append is False
        assert decision.target_file_id is None

    def test_new_file(self, sample_python_code: str):
        store = InMemoryItemStore()

        decision = plan_placement(sample_python_code, owner_id="me", store=store)

        assert decision.classification.language.language == "python"
        assert decision.similar_files == []
        assert decision.should_append is False
        assert decision.target_file_id is None
        assert decision.suggested_name.startswith("python-")
        assert re.match(r"^[a-zA-Z0-9\-_]+$", decision.suggested_name)
        assert decision.tags[0] == "python"

    def test_name_avoids_existing_titles(self, sample_python_code: str):
        first = plan_placement(sample_python_code, owner_id="me", store=InMemoryItemStore()).suggested_name
        store = InMemoryItemStore([FileItem("f1", "me", first, "unrelated notes about gardening")])

        decision = plan_placement(sample_python_code, owner_id="me", store=store)

        assert decision.suggested_name != first

    def test_store_failure_is_not_fatal(self, sample_python_code: str):
        """Test that an unreachable store still yields a placement decision."""
        store = MagicMock()
        store.search.side_effect = ConnectionError("down")
        store.get_items_by_owner.side_effect = ConnectionError("down")

        decision = plan_placement(sample_python_code, owner_id="me", store=store)

        assert decision.similar_files == []
        assert decision.should_append is False


class TestProcessImage:
    """Tests for the screenshot entry point."""

    def test_extraction_error_propagates(self, sample_image_path: Path):
        extractor = MagicMock()
        extractor.extract.side_effect = ExtractionError("No readable text found in screenshot.png")

        with pytest.raises(ExtractionError):
            process_image(sample_image_path, owner_id="me", store=InMemoryItemStore(), extractor=extractor)

    def test_placement_from_screenshot(self, sample_image_path: Path, sample_javascript_code: str):
        extractor = MagicMock()
        extractor.extract.return_value = ExtractionResult(text=sample_javascript_code, confidence=91.5)

        decision = process_image(sample_image_path, owner_id="me", store=InMemoryItemStore(), extractor=extractor)

        assert decision.ocr_confidence == 91.5
        assert decision.classification.language.language == "javascript"
        assert decision.suggested_name.startswith("javascript-")


class TestOrganizeCollection:
    """Tests for analyzing and organizing whole collections."""

    def test_duplicate_files_are_merged(self, duplicate_files):
        """Test the full analyze, select and execute flow on two duplicate files."""
        store = InMemoryItemStore(duplicate_files)

        result = auto_organize(duplicate_files, "balanced", store=store)

        assert result.success is True
        assert result.status == STATUS_COMPLETED
        assert result.metrics.merges_performed == 1
        assert list(store.files) == ["f1"]
        assert "Consolidated 1 duplicate items" in result.recommendations

    def test_hybrid_plan_execution(self, duplicate_files):
        """Test that the hybrid plan merges first and then skips the emptied group."""
        plans = analyze_organization(duplicate_files)
        hybrid = next(p for p in plans if p.strategy == "hybrid")

        result = execute_organization_plan(hybrid, duplicate_files)

        assert [e.action.type for e in result.executed_actions] == ["merge", "group"]
        assert result.outcomes() == [OUTCOME_SUCCESS, OUTCOME_SKIPPED]
        assert result.metrics.organization_score == 0.6

    def test_nothing_to_organize(self, spread_out_items):
        result = auto_organize(spread_out_items, "balanced")

        assert result.success is True
        assert result.status == STATUS_COMPLETED
        assert result.executed_actions == []
        assert result.recommendations == ["No viable organization plans found"]

    def test_default_strategy_from_settings(self, duplicate_files):
        """Test that the saved default strategy is used when none is given."""
        from settings import get_settings

        get_settings().set("default_strategy", "conservative")

        result = auto_organize(duplicate_files)

        # Conservative picks the hybrid plan, whose topic group is skipped after the merge
        assert result.outcomes() == [OUTCOME_SUCCESS, OUTCOME_SKIPPED]

    def test_unknown_strategy(self, duplicate_files):
        with pytest.raises(ValueError):
            auto_organize(duplicate_files, "reckless")
