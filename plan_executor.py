#!/usr/bin/env python3
"""
Plan executor - apply an OrganizationPlan to a collection of items.

Execution model:
- The plan is validated first (unique ids, known dependencies, no cycles).
- Actions run in priority order (high, medium, low), keeping declaration
  order within a priority. An action never runs before the actions it
  depends on; if one of them did not succeed, the action is skipped.
- Each action succeeds, fails or is skipped on its own. One failing action
  never stops the rest of the plan.
- Changes are written through the item store when one is given. Without a
  store the executor only records the mutations it would have made.
- Afterwards the grouped structure is rebuilt from scratch. If that fails
  the whole result is marked unsuccessful.
"""

import copy
import logging
from typing import Callable, Optional

from classifier import UNKNOWN_LANGUAGE, get_classifier
from grouping import ContentGrouper, sequence_order
from item_store import merge_snippet_text
from models import (
    ITEM_FILE,
    ITEM_SNIPPET,
    OUTCOME_FAILED,
    OUTCOME_SKIPPED,
    OUTCOME_SUCCESS,
    STATUS_ABORTED,
    STATUS_COMPLETED,
    ContentGroup,
    ExecutedAction,
    ExecutionMetrics,
    FileItem,
    GroupMember,
    OrganizationAction,
    OrganizationPlan,
    OrganizationResult,
    OrganizedStructure,
)

logger = logging.getLogger("code_organizer")

PRIORITY_ORDER = {"high": 0, "medium": 1, "low": 2}
REVIEW_SCORE_THRESHOLD = 0.6


class PlanValidationError(ValueError):
    """The plan cannot be executed as declared."""


class ActionError(Exception):
    """An action could not be applied. The message becomes the outcome details."""


# ==============================================================================
# VALIDATION & ORDERING
# ==============================================================================

def validate_plan(plan: OrganizationPlan):
    """Reject duplicate action ids, unknown dependencies and dependency cycles."""
    ids = [action.id for action in plan.actions]
    duplicates = sorted({i for i in ids if ids.count(i) > 1})
    if duplicates:
        raise PlanValidationError(f"Duplicate action ids: {', '.join(duplicates)}")

    known = set(ids)
    for action in plan.actions:
        missing = [dep for dep in action.depends_on if dep not in known]
        if missing:
            raise PlanValidationError(f"Action '{action.id}' depends on unknown actions: {', '.join(missing)}")

    deps = {action.id: action.depends_on for action in plan.actions}
    visiting, done = set(), set()

    def visit(action_id, path):
        if action_id in done:
            return
        if action_id in visiting:
            cycle = " -> ".join(path[path.index(action_id):] + [action_id])
            raise PlanValidationError(f"Dependency cycle: {cycle}")
        visiting.add(action_id)
        for dep in deps[action_id]:
            visit(dep, path + [action_id])
        visiting.discard(action_id)
        done.add(action_id)

    for action_id in ids:
        visit(action_id, [])


def execution_order(plan: OrganizationPlan) -> list[OrganizationAction]:
    """Priority order (stable), adjusted so dependencies always come first."""
    remaining = sorted(plan.actions, key=lambda a: PRIORITY_ORDER[a.priority])
    ordered, placed = [], set()
    while remaining:
        index = next(
            (i for i, action in enumerate(remaining) if all(d in placed for d in action.depends_on)),
            None,
        )
        if index is None:
            raise PlanValidationError("Dependency cycle between remaining actions")
        action = remaining.pop(index)
        ordered.append(action)
        placed.add(action.id)
    return ordered


# ==============================================================================
# EXECUTION STATE
# ==============================================================================

class ExecutionState:
    """Working copy of the collection while a plan runs."""

    def __init__(self, items):
        self.items = {item.id: item for item in items}
        self.removed: set[str] = set()
        self.groups: list[ContentGroup] = []
        self.metrics = ExecutionMetrics(items_total=len(self.live_items()))
        self.mutations: list[dict] = []
        self.processed: set[str] = set()

    def is_live(self, item_id: str) -> bool:
        item = self.items.get(item_id)
        return item is not None and item_id not in self.removed and not item.archived

    def live(self, item_ids) -> list:
        return [self.items[i] for i in item_ids if self.is_live(i)]

    def live_items(self) -> list:
        return self.live(list(self.items))

    def snippets_of(self, file_id: str) -> list:
        return sorted(
            (i for i in self.live_items() if i.kind == ITEM_SNIPPET and i.file_id == file_id),
            key=lambda s: s.position_in_file,
        )

    def count_processed(self, items):
        """Count each item once, however many actions touch it."""
        for item in items:
            if item.id in self.processed:
                continue
            self.processed.add(item.id)
            if item.kind == ITEM_FILE:
                self.metrics.files_processed += 1
            else:
                self.metrics.snippets_processed += 1


# ==============================================================================
# EXECUTOR
# ==============================================================================

class PlanExecutor:
    """Runs organization plans.

    Args:
        store: Optional ItemStore to write changes through
        classifier: Classifier used by classify/split actions and regrouping
        handlers: Overrides for action handlers, keyed by action type. A
            handler takes (action, state) and returns (outcome, details).
        should_continue: Called before each action; returning False stops
            the run and skips everything left
    """

    def __init__(self, store=None, classifier=None, handlers: Optional[dict] = None,
                 should_continue: Optional[Callable[[], bool]] = None):
        self.store = store
        self.classifier = classifier or get_classifier()
        self.grouper = ContentGrouper(self.classifier)
        self.should_continue = should_continue
        self.handlers = {
            "merge": self.handle_merge,
            "group": self.handle_group,
            "reorder": self.handle_reorder,
            "classify": self.handle_classify,
            "archive": self.handle_archive,
            "split": self.handle_split,
        }
        self.handlers.update(handlers or {})

    def execute(self, plan: OrganizationPlan, items) -> OrganizationResult:
        validate_plan(plan)
        state = ExecutionState(copy.deepcopy(list(items)))
        logger.info(f"Executing plan '{plan.name}' with {len(plan.actions)} actions")

        executed = []
        outcomes = {}
        cancelled = False

        for action in execution_order(plan):
            if not cancelled and self.should_continue is not None and not self.should_continue():
                logger.info("Plan execution cancelled")
                cancelled = True

            if cancelled:
                outcome, details = OUTCOME_SKIPPED, "Execution cancelled"
            else:
                blocked = [d for d in action.depends_on if outcomes.get(d) != OUTCOME_SUCCESS]
                if blocked:
                    outcome, details = OUTCOME_SKIPPED, f"Dependency did not succeed: {', '.join(blocked)}"
                else:
                    outcome, details = self._run_action(action, state)

            outcomes[action.id] = outcome
            executed.append(ExecutedAction(action=action, outcome=outcome, details=details))
            if outcome == OUTCOME_SUCCESS:
                state.metrics.actions_succeeded += 1
            elif outcome == OUTCOME_FAILED:
                state.metrics.actions_failed += 1
            else:
                state.metrics.actions_skipped += 1

        state.metrics.organization_score = organization_score(state.metrics)

        try:
            structure = self.build_structure(state)
        except Exception as e:
            logger.error(f"Could not rebuild organized structure: {e}")
            return OrganizationResult(
                success=False,
                status=STATUS_ABORTED,
                executed_actions=executed,
                new_structure=OrganizedStructure(ungrouped_item_ids=[i.id for i in state.live_items()]),
                metrics=state.metrics,
                recommendations=[f"Organization failed: {e}"],
                planned_mutations=state.mutations,
            )

        return OrganizationResult(
            success=not cancelled,
            status=STATUS_ABORTED if cancelled else STATUS_COMPLETED,
            executed_actions=executed,
            new_structure=structure,
            metrics=state.metrics,
            recommendations=build_recommendations(state.metrics),
            planned_mutations=state.mutations,
        )

    def _run_action(self, action: OrganizationAction, state: ExecutionState) -> tuple[str, str]:
        handler = self.handlers.get(action.type)
        if handler is None:
            return OUTCOME_FAILED, f"Unknown action type: {action.type}"
        try:
            return handler(action, state)
        except ActionError as e:
            return OUTCOME_FAILED, str(e)
        except Exception as e:
            logger.warning(f"Action {action.id} ({action.type}) failed: {e}")
            return OUTCOME_FAILED, f"Execution failed: {e}"

    def _write(self, state: ExecutionState, operation: str, *args):
        """Record a mutation and apply it through the store, if there is one."""
        state.mutations.append({"operation": operation, "args": list(args)})
        if self.store is None:
            return None
        result = getattr(self.store, operation)(*args)
        if not result:
            raise ActionError(f"Store rejected {operation}")
        return result

    # -- handlers ------------------------------------------------------------

    def handle_merge(self, action, state):
        live = state.live(action.affected_item_ids)
        if len(live) < 2:
            raise ActionError("Insufficient items for merge")

        target, sources = live[0], live[1:]
        self._write(state, "apply_merge", target.id, [s.id for s in sources])

        source_ids = {s.id for s in sources}
        if target.kind == ITEM_FILE:
            # Snippets merged into a file move there; merged files disappear
            for source in sources:
                if source.kind == ITEM_FILE:
                    target.tags.extend(t for t in source.tags if t not in target.tags)
                    if source.description and source.description not in target.description:
                        target.description = f"{target.description}\n{source.description}".strip()
                    state.removed.add(source.id)
            for item in state.items.values():
                if item.kind == ITEM_SNIPPET and (item.file_id in source_ids or item.id in source_ids):
                    item.file_id = target.id
        else:
            ordered = sorted(live, key=lambda s: s.created_at)
            target.extracted_text = merge_snippet_text([s.content_text for s in ordered])
            state.removed.update(source_ids)

        state.metrics.merges_performed += 1
        state.count_processed(live)
        return OUTCOME_SUCCESS, f"Merged {len(sources)} item(s) into {target.display_title}"

    def handle_group(self, action, state):
        live = state.live(action.affected_item_ids)
        if len(live) < 2:
            return OUTCOME_SKIPPED, f"Only {len(live)} item(s) left to group"

        name = action.label or action.description
        self._write(state, "apply_group", name, [i.id for i in live])
        state.groups.append(ContentGroup(
            id=action.id,
            title=name,
            description=action.description,
            type="project" if action.priority == "high" else "feature",
            confidence=action.estimated_impact,
            members=[GroupMember(i.id, i.kind, 1.0, position) for position, i in enumerate(live)],
            tags=[name],
            strategy="executed",
        ))

        state.metrics.groups_created += 1
        state.metrics.items_grouped += len(live)
        state.count_processed(live)
        return OUTCOME_SUCCESS, f"Grouped {len(live)} items as '{name}'"

    def handle_reorder(self, action, state):
        snippets = {}
        for item in state.live(action.affected_item_ids):
            if item.kind == ITEM_FILE:
                snippets.update((s.id, s) for s in state.snippets_of(item.id))
            else:
                snippets[item.id] = item
        snippets = list(snippets.values())
        if not snippets:
            raise ActionError("No snippets to reorder")

        by_file: dict[str, list] = {}
        for snippet in snippets:
            by_file.setdefault(snippet.file_id, []).append(snippet)

        for file_id, file_snippets in by_file.items():
            ordered = sequence_order(file_snippets)
            self._write(state, "apply_reorder", file_id, [s.id for s in ordered])
            for position, snippet in enumerate(ordered):
                snippet.position_in_file = position

        state.metrics.items_reordered += len(snippets)
        state.count_processed(snippets)
        return OUTCOME_SUCCESS, f"Reordered {len(snippets)} snippets in {len(by_file)} file(s)"

    def handle_classify(self, action, state):
        live = state.live(action.affected_item_ids)
        if not live:
            raise ActionError("No items to classify")

        for item in live:
            result = self.classifier.classify(item.content_text)
            language = result.language.language
            tags = [language] if language != UNKNOWN_LANGUAGE else []
            tags.extend(t for t in result.topic.suggested_tags if t not in tags)
            self._write(state, "apply_classification", item.id, language, tags)
            item.language = language
            if item.kind == ITEM_FILE:
                item.tags = tags

        state.metrics.items_reclassified += len(live)
        state.count_processed(live)
        return OUTCOME_SUCCESS, f"Classified {len(live)} items"

    def handle_archive(self, action, state):
        live = state.live(action.affected_item_ids)
        if not live:
            raise ActionError("No items to archive")

        self._write(state, "apply_archive", [i.id for i in live])
        for item in live:
            item.archived = True

        state.metrics.items_archived += len(live)
        state.count_processed(live)
        return OUTCOME_SUCCESS, f"Archived {len(live)} items"

    def handle_split(self, action, state):
        files = [i for i in state.live(action.affected_item_ids) if i.kind == ITEM_FILE]
        split_count = 0

        for file in files:
            partitions: dict[str, list] = {}
            for snippet in state.snippets_of(file.id):
                language = snippet.language or self.classifier.detect_language(snippet.content_text).language
                partitions.setdefault(language, []).append(snippet)
            if len(partitions) < 2:
                continue

            languages = list(partitions)
            titles = [file.title] + [f"{file.title}-{language}" for language in languages[1:]]
            groups = [[s.id for s in partitions[language]] for language in languages]
            new_ids = self._write(state, "apply_split", file.id, groups, titles)

            for new_id, language, title in zip(new_ids or [], languages[1:], titles[1:]):
                state.items[new_id] = FileItem(
                    id=new_id, owner_id=file.owner_id, title=title,
                    description=file.description, language=language, tags=list(file.tags),
                )
                for position, snippet in enumerate(partitions[language]):
                    snippet.file_id = new_id
                    snippet.position_in_file = position
            split_count += 1
            state.count_processed([file])

        if not split_count:
            raise ActionError("Nothing to split: no file mixes languages")

        state.metrics.splits_performed += split_count
        return OUTCOME_SUCCESS, f"Split {split_count} file(s) by language"

    # -- results -------------------------------------------------------------

    def build_structure(self, state: ExecutionState) -> OrganizedStructure:
        """Rebuild groups over the post-execution collection."""
        live = state.live_items()
        groups = []
        for group in state.groups:
            members = [m for m in group.members if state.is_live(m.item_id)]
            if len(members) > 1:
                group.members = members
                groups.append(group)

        explicit = {frozenset(g.item_ids) for g in groups}
        groups.extend(g for g in self.grouper.group_content(live) if frozenset(g.item_ids) not in explicit)

        grouped = {item_id for g in groups for item_id in g.item_ids}
        return OrganizedStructure(groups=groups, ungrouped_item_ids=[i.id for i in live if i.id not in grouped])


def organization_score(metrics: ExecutionMetrics) -> float:
    """0.6 * action success rate + 0.4 * share of items placed in groups."""
    attempted = metrics.actions_succeeded + metrics.actions_failed
    success_rate = metrics.actions_succeeded / attempted if attempted else 0.0
    coverage = min(1.0, metrics.items_grouped / metrics.items_total) if metrics.items_total else 0.0
    return round(0.6 * success_rate + 0.4 * coverage, 4)


def build_recommendations(metrics: ExecutionMetrics) -> list[str]:
    recommendations = []
    if metrics.groups_created:
        recommendations.append(f"Created {metrics.groups_created} organized groups")
    if metrics.merges_performed:
        recommendations.append(f"Consolidated {metrics.merges_performed} duplicate items")
    if metrics.items_archived:
        recommendations.append(f"Archived {metrics.items_archived} items")
    if metrics.splits_performed:
        recommendations.append(f"Split {metrics.splits_performed} files by language")
    if metrics.actions_failed:
        recommendations.append(f"{metrics.actions_failed} actions failed; review their details")
    if metrics.actions_skipped:
        recommendations.append(f"{metrics.actions_skipped} actions were skipped")
    if metrics.organization_score < REVIEW_SCORE_THRESHOLD:
        recommendations.append("Consider manual review of organization results")
    return recommendations
