#!/usr/bin/env python3
"""
Data model for the code library organizer.

Content items (files and snippets) are inputs owned by the surrounding
application. Everything else here is derived data produced by the
classifier, the planner and the executor.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Union


# ==============================================================================
# CONSTANTS
# ==============================================================================

ITEM_FILE = "file"
ITEM_SNIPPET = "snippet"

ACTION_TYPES = ("merge", "group", "reorder", "classify", "archive", "split")
PRIORITIES = ("high", "medium", "low")

OUTCOME_SUCCESS = "success"
OUTCOME_FAILED = "failed"
OUTCOME_SKIPPED = "skipped"

STATUS_COMPLETED = "completed"
STATUS_ABORTED = "aborted"

GROUP_TYPES = ("project", "feature", "component", "utility", "tutorial", "experiment")
PROJECT_TYPES = ("mobile_app", "web_app", "library", "utility", "tutorial")


# ==============================================================================
# CONTENT ITEMS
# ==============================================================================

@dataclass
class FileItem:
    """A named, tagged container that owns zero or more snippets."""

    id: str
    owner_id: str
    title: str
    description: str = ""
    language: Optional[str] = None
    tags: list[str] = field(default_factory=list)
    snippet_count: int = 0
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: Optional[datetime] = None
    archived: bool = False

    @property
    def kind(self) -> str:
        return ITEM_FILE

    @property
    def display_title(self) -> str:
        return self.title

    @property
    def content_text(self) -> str:
        return f"{self.title} {self.description or ''} {' '.join(self.tags)}".strip()


@dataclass
class SnippetItem:
    """One OCR-derived text block attached to exactly one file."""

    id: str
    file_id: str
    owner_id: str
    extracted_text: str
    position_in_file: int = 0
    ocr_confidence: Optional[float] = None
    language: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.now)
    archived: bool = False

    @property
    def kind(self) -> str:
        return ITEM_SNIPPET

    @property
    def display_title(self) -> str:
        return f"Snippet from {self.file_id}"

    @property
    def content_text(self) -> str:
        return self.extracted_text or ""


ContentItem = Union[FileItem, SnippetItem]


# ==============================================================================
# CLASSIFICATION & SIMILARITY
# ==============================================================================

@dataclass
class LanguageResult:
    language: str
    confidence: float
    all_scores: dict[str, float]
    frameworks: list[str] = field(default_factory=list)


@dataclass
class TopicResult:
    primary_topic: str
    confidence: float
    all_topics: dict[str, float]
    suggested_tags: list[str] = field(default_factory=list)
    related_topics: list[str] = field(default_factory=list)


@dataclass
class ClassificationResult:
    language: LanguageResult
    topic: TopicResult


@dataclass
class SimilarFile:
    id: str
    title: str
    similarity: float


@dataclass
class NameSuggestion:
    name: str
    score: float
    reason: str


@dataclass
class PlacementDecision:
    """Where a freshly extracted piece of text should go."""

    text: str
    classification: ClassificationResult
    similar_files: list[SimilarFile]
    suggested_name: str
    name_suggestions: list[NameSuggestion] = field(default_factory=list)
    should_append: bool = False
    target_file_id: Optional[str] = None
    ocr_confidence: Optional[float] = None

    @property
    def tags(self) -> list[str]:
        """Tags to store on the item: language first, then topic tags (max 5)."""
        tags = []
        if self.classification.language.language != "unknown":
            tags.append(self.classification.language.language)
        for tag in [self.classification.topic.primary_topic, *self.classification.topic.suggested_tags]:
            if tag != "general" and tag not in tags:
                tags.append(tag)
        return tags[:5]


# ==============================================================================
# ORGANIZATION PLANS
# ==============================================================================

@dataclass(frozen=True)
class OrganizationAction:
    """One atomic reorganization step.

    `label` carries the group name for `group` actions and is empty otherwise.
    The action type is not validated here: an unknown type is reported as a
    failed outcome at execution time.
    """

    id: str
    type: str
    priority: str
    description: str
    affected_item_ids: tuple[str, ...]
    estimated_impact: float
    auto_executable: bool = False
    depends_on: tuple[str, ...] = ()
    label: str = ""

    def __post_init__(self):
        if self.priority not in PRIORITIES:
            raise ValueError(f"Unknown priority '{self.priority}'. Available: {', '.join(PRIORITIES)}")
        if not 0.0 <= self.estimated_impact <= 1.0:
            raise ValueError(f"estimated_impact must be within [0, 1], got {self.estimated_impact}")
        # Accept lists from callers but store tuples
        object.__setattr__(self, "affected_item_ids", tuple(self.affected_item_ids))
        object.__setattr__(self, "depends_on", tuple(self.depends_on))


@dataclass(frozen=True)
class ExpectedOutcome:
    """Estimated effect of a plan. These are estimates, not guarantees."""

    files_reduced: int = 0
    snippets_consolidated: int = 0
    new_groups: int = 0
    improved_accuracy: float = 0.0


@dataclass(frozen=True)
class OrganizationPlan:
    id: str
    strategy: str
    name: str
    description: str
    confidence: float
    actions: tuple[OrganizationAction, ...]
    expected_outcome: ExpectedOutcome
    estimated_time_ms: int = 0

    def __post_init__(self):
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"confidence must be within [0, 1], got {self.confidence}")
        object.__setattr__(self, "actions", tuple(self.actions))

    @property
    def auto_executable_count(self) -> int:
        return sum(1 for action in self.actions if action.auto_executable)

    def get_action(self, action_id: str) -> Optional[OrganizationAction]:
        for action in self.actions:
            if action.id == action_id:
                return action
        return None


# ==============================================================================
# GROUPS & PROJECTS
# ==============================================================================

@dataclass
class GroupMember:
    item_id: str
    kind: str
    relevance: float = 1.0
    position: int = 0


@dataclass
class GroupRelationship:
    target_group_id: str
    type: str
    strength: float


@dataclass
class SuggestedAction:
    action: str
    reason: str
    confidence: float


@dataclass
class ContentGroup:
    id: str
    title: str
    description: str
    type: str
    confidence: float
    members: list[GroupMember] = field(default_factory=list)
    relationships: list[GroupRelationship] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    suggested_actions: list[SuggestedAction] = field(default_factory=list)
    strategy: str = ""

    @property
    def item_ids(self) -> list[str]:
        return [member.item_id for member in self.members]


@dataclass
class ProjectStructure:
    id: str
    name: str
    type: str
    confidence: float
    components: list[str] = field(default_factory=list)
    services: list[str] = field(default_factory=list)
    utilities: list[str] = field(default_factory=list)
    configuration: list[str] = field(default_factory=list)
    tests: list[str] = field(default_factory=list)
    technologies: list[str] = field(default_factory=list)

    @property
    def item_ids(self) -> list[str]:
        return self.components + self.services + self.utilities + self.configuration + self.tests


# ==============================================================================
# EXECUTION RESULTS
# ==============================================================================

@dataclass
class ExecutedAction:
    action: OrganizationAction
    outcome: str
    details: str = ""


@dataclass
class ExecutionMetrics:
    items_total: int = 0
    items_grouped: int = 0
    files_processed: int = 0
    snippets_processed: int = 0
    merges_performed: int = 0
    groups_created: int = 0
    items_archived: int = 0
    items_reclassified: int = 0
    items_reordered: int = 0
    splits_performed: int = 0
    actions_succeeded: int = 0
    actions_failed: int = 0
    actions_skipped: int = 0
    organization_score: float = 0.0


@dataclass
class OrganizedStructure:
    groups: list[ContentGroup] = field(default_factory=list)
    ungrouped_item_ids: list[str] = field(default_factory=list)


@dataclass
class OrganizationResult:
    success: bool
    status: str
    executed_actions: list[ExecutedAction] = field(default_factory=list)
    new_structure: OrganizedStructure = field(default_factory=OrganizedStructure)
    metrics: ExecutionMetrics = field(default_factory=ExecutionMetrics)
    recommendations: list[str] = field(default_factory=list)
    planned_mutations: list[dict] = field(default_factory=list)

    def outcomes(self) -> list[str]:
        return [executed.outcome for executed in self.executed_actions]
