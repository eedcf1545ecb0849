#!/usr/bin/env python3
"""
Item store - where files and snippets live.

The organizer never writes content directly. It reads items through an
ItemStore and asks the store to apply merges, groups, splits and so on.
Each call is independent; nothing here is transactional across calls.

Two implementations are provided:
- InMemoryItemStore: dictionaries, for tests and embedding
- JsonItemStore: the same data persisted to a .code_library.json file
"""

import json
import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional

from models import ITEM_FILE, ContentItem, FileItem, SnippetItem
from similarity import keyword_similarity

logger = logging.getLogger("code_organizer")


class StoreError(Exception):
    """The item store could not be reached or could not apply a change."""


@dataclass
class RankedMatch:
    item_id: str
    title: str
    score: float


# ==============================================================================
# BASE STORE CLASS
# ==============================================================================

class ItemStore(ABC):
    """Abstract base class for item stores."""

    name: str = "base"

    @abstractmethod
    def get_items_by_owner(self, owner_id: str) -> list[ContentItem]:
        """Return all files and snippets belonging to an owner."""
        pass

    @abstractmethod
    def search(self, text: str, owner_id: str) -> list[RankedMatch]:
        """Return the owner's files ranked by similarity to text, best first."""
        pass

    @abstractmethod
    def apply_merge(self, target_id: str, source_ids: list[str]) -> bool:
        """Fold source items into the target item and remove the sources."""
        pass

    @abstractmethod
    def apply_group(self, group_name: str, item_ids: list[str]) -> bool:
        pass

    @abstractmethod
    def apply_reorder(self, file_id: str, snippet_ids: list[str]) -> bool:
        pass

    @abstractmethod
    def apply_classification(self, item_id: str, language: str, tags: list[str]) -> bool:
        pass

    @abstractmethod
    def apply_archive(self, item_ids: list[str]) -> bool:
        pass

    @abstractmethod
    def apply_split(self, file_id: str, partitions: list[list[str]], titles: list[str]) -> list[str]:
        """Move each partition after the first into a new file.

        Returns:
            IDs of the newly created files (empty on failure)
        """
        pass


# ==============================================================================
# IN-MEMORY STORE
# ==============================================================================

def merge_snippet_text(texts: list[str]) -> str:
    """Concatenate snippet texts, dropping lines already present.

    Lines are compared with whitespace collapsed and trailing punctuation removed.
    """
    seen = set()
    merged = []
    for text in texts:
        for line in (text or "").splitlines():
            key = " ".join(line.split()).rstrip(";,").lower()
            if key and key in seen:
                continue
            if key:
                seen.add(key)
            merged.append(line)
    return "\n".join(merged).strip()


class InMemoryItemStore(ItemStore):
    """Item store backed by plain dictionaries."""

    name = "memory"

    def __init__(self, items: Optional[list[ContentItem]] = None):
        self.files: dict[str, FileItem] = {}
        self.snippets: dict[str, SnippetItem] = {}
        self.groups: dict[str, list[str]] = {}
        for item in items or []:
            self.add_item(item)

    def add_item(self, item: ContentItem):
        if item.kind == ITEM_FILE:
            self.files[item.id] = item
        else:
            self.snippets[item.id] = item
            self._refresh_count(item.file_id)

    def get_item(self, item_id: str) -> Optional[ContentItem]:
        return self.files.get(item_id) or self.snippets.get(item_id)

    def all_items(self) -> list[ContentItem]:
        return [*self.files.values(), *self.snippets.values()]

    def snippets_of(self, file_id: str) -> list[SnippetItem]:
        return sorted(
            (s for s in self.snippets.values() if s.file_id == file_id),
            key=lambda s: s.position_in_file,
        )

    def _refresh_count(self, file_id: str):
        if file_id in self.files:
            self.files[file_id].snippet_count = sum(
                1 for s in self.snippets.values() if s.file_id == file_id and not s.archived
            )

    def _touch(self, file_id: str):
        if file_id in self.files:
            self.files[file_id].updated_at = datetime.now()

    # -- reads ---------------------------------------------------------------

    def get_items_by_owner(self, owner_id: str) -> list[ContentItem]:
        return [item for item in self.all_items() if item.owner_id == owner_id]

    def search(self, text: str, owner_id: str) -> list[RankedMatch]:
        matches = []
        for item in self.files.values():
            if item.archived or item.owner_id != owner_id:
                continue
            score = keyword_similarity(text, item.content_text)
            if score > 0:
                matches.append(RankedMatch(item.id, item.title, score))
        return sorted(matches, key=lambda m: -m.score)

    # -- writes --------------------------------------------------------------

    def apply_merge(self, target_id: str, source_ids: list[str]) -> bool:
        target = self.get_item(target_id)
        sources = [self.get_item(i) for i in source_ids if i != target_id]
        if target is None or not sources or any(s is None for s in sources):
            return False

        if target.kind == ITEM_FILE:
            self._merge_into_file(target, sources)
        else:
            self._merge_into_snippet(target, sources)
        return True

    def _merge_into_file(self, target: FileItem, sources: list[ContentItem]):
        next_position = len(self.snippets_of(target.id))
        for source in sources:
            if source.kind == ITEM_FILE:
                for snippet in self.snippets_of(source.id):
                    snippet.file_id = target.id
                    snippet.position_in_file = next_position
                    next_position += 1
                for tag in source.tags:
                    if tag not in target.tags:
                        target.tags.append(tag)
                if source.description and source.description not in target.description:
                    target.description = f"{target.description}\n{source.description}".strip()
                del self.files[source.id]
            else:
                old_file = source.file_id
                source.file_id = target.id
                source.position_in_file = next_position
                next_position += 1
                self._refresh_count(old_file)
        self._refresh_count(target.id)
        self._touch(target.id)

    def _merge_into_snippet(self, target: SnippetItem, sources: list[ContentItem]):
        ordered = sorted([target, *sources], key=lambda s: s.created_at)
        target.extracted_text = merge_snippet_text([s.content_text for s in ordered])
        for source in sources:
            if source.kind == ITEM_FILE:
                del self.files[source.id]
            else:
                del self.snippets[source.id]
                self._refresh_count(source.file_id)
        self._refresh_count(target.file_id)
        self._touch(target.file_id)

    def apply_group(self, group_name: str, item_ids: list[str]) -> bool:
        known = [i for i in item_ids if self.get_item(i) is not None]
        if not known:
            return False
        members = self.groups.setdefault(group_name, [])
        members.extend(i for i in known if i not in members)
        return True

    def apply_reorder(self, file_id: str, snippet_ids: list[str]) -> bool:
        if file_id not in self.files:
            return False
        for position, snippet_id in enumerate(snippet_ids):
            snippet = self.snippets.get(snippet_id)
            if snippet is None or snippet.file_id != file_id:
                return False
            snippet.position_in_file = position
        self._touch(file_id)
        return True

    def apply_classification(self, item_id: str, language: str, tags: list[str]) -> bool:
        item = self.get_item(item_id)
        if item is None:
            return False
        item.language = language
        if item.kind == ITEM_FILE:
            item.tags = list(tags)
        return True

    def apply_archive(self, item_ids: list[str]) -> bool:
        items = [self.get_item(i) for i in item_ids]
        if not items or any(item is None for item in items):
            return False
        for item in items:
            item.archived = True
            if item.kind != ITEM_FILE:
                self._refresh_count(item.file_id)
        return True

    def apply_split(self, file_id: str, partitions: list[list[str]], titles: list[str]) -> list[str]:
        original = self.files.get(file_id)
        if original is None or len(partitions) < 2:
            return []
        for snippet_ids in partitions:
            if any(self.snippets.get(i) is None or self.snippets[i].file_id != file_id for i in snippet_ids):
                return []

        new_ids = []
        for snippet_ids, title in zip(partitions[1:], titles[1:]):
            new_file = FileItem(
                id=uuid.uuid4().hex[:12],
                owner_id=original.owner_id,
                title=title,
                description=original.description,
                tags=list(original.tags),
            )
            self.files[new_file.id] = new_file
            for position, snippet_id in enumerate(snippet_ids):
                snippet = self.snippets[snippet_id]
                snippet.file_id = new_file.id
                snippet.position_in_file = position
                if snippet.language:
                    new_file.language = snippet.language
            self._refresh_count(new_file.id)
            new_ids.append(new_file.id)

        self._refresh_count(file_id)
        self._touch(file_id)
        return new_ids


# ==============================================================================
# JSON FILE STORE
# ==============================================================================

def get_library_path(library_dir: str | Path) -> Path:
    """Get path to the library database file."""
    return Path(library_dir) / ".code_library.json"


def item_to_dict(item: ContentItem) -> dict:
    data = asdict(item)
    data["kind"] = item.kind
    for key in ("created_at", "updated_at"):
        if isinstance(data.get(key), datetime):
            data[key] = data[key].isoformat()
    return data


def item_from_dict(data: dict) -> ContentItem:
    data = dict(data)
    kind = data.pop("kind", ITEM_FILE)
    for key in ("created_at", "updated_at"):
        if data.get(key):
            data[key] = datetime.fromisoformat(data[key])
        elif key in data:
            data.pop(key)
    return FileItem(**data) if kind == ITEM_FILE else SnippetItem(**data)


def load_library(library_path: Path) -> dict:
    """Load the library database from JSON."""
    if library_path.exists():
        try:
            with open(library_path, 'r') as f:
                return json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            logger.warning(f"Could not load library {library_path}: {e}")
            return {}
    return {}


def save_library(library_path: Path, library: dict):
    """Save the library database to JSON."""
    library_path.parent.mkdir(parents=True, exist_ok=True)
    with open(library_path, 'w') as f:
        json.dump(library, f, indent=2, ensure_ascii=False)


class JsonItemStore(InMemoryItemStore):
    """In-memory store that is loaded from and saved to a JSON file.

    Every successful write is flushed to disk immediately.
    """

    name = "json"

    def __init__(self, library_dir: str | Path):
        super().__init__()
        self.path = get_library_path(library_dir)
        library = load_library(self.path)
        for data in library.get("items", []):
            super().add_item(item_from_dict(data))
        self.groups = {name: list(ids) for name, ids in library.get("groups", {}).items()}

    def save(self):
        library = {
            "items": [item_to_dict(item) for item in self.all_items()],
            "groups": self.groups,
            "saved_at": datetime.now().isoformat(),
        }
        try:
            save_library(self.path, library)
        except (IOError, OSError) as e:
            raise StoreError(f"Could not save library {self.path}: {e}") from e

    def add_item(self, item: ContentItem):
        super().add_item(item)
        self.save()

    def _saved(self, result):
        if result:
            self.save()
        return result

    def apply_merge(self, target_id, source_ids):
        return self._saved(super().apply_merge(target_id, source_ids))

    def apply_group(self, group_name, item_ids):
        return self._saved(super().apply_group(group_name, item_ids))

    def apply_reorder(self, file_id, snippet_ids):
        return self._saved(super().apply_reorder(file_id, snippet_ids))

    def apply_classification(self, item_id, language, tags):
        return self._saved(super().apply_classification(item_id, language, tags))

    def apply_archive(self, item_ids):
        return self._saved(super().apply_archive(item_ids))

    def apply_split(self, file_id, partitions, titles):
        return self._saved(super().apply_split(file_id, partitions, titles))
