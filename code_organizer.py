#!/usr/bin/env python3
"""
Code Organizer - classify, name and organize code captured from screenshots.

Single items:
1. Text comes in from a screenshot (see text_extraction.py)
2. It is classified by language and topic
3. Similar existing files are looked up to decide between appending and
   creating a new file
4. A file name is proposed

Whole collections:
1. Several organization plans are generated (project, topic, time,
   similarity, hybrid)
2. One is selected (aggressive, conservative or balanced)
3. Its actions are executed against the item store

Usage:
    from code_organizer import plan_placement, auto_organize

    decision = plan_placement(text, owner_id="me", store=store)
    result = auto_organize(store.get_items_by_owner("me"), "balanced", store=store)
"""

import os
import logging
from pathlib import Path
from typing import Callable, Optional

import yaml
from dotenv import load_dotenv

from classifier import classify as classify_text, strip_language_prefix
from item_store import ItemStore, JsonItemStore
from models import (
    ITEM_FILE,
    STATUS_COMPLETED,
    ClassificationResult,
    NameSuggestion,
    OrganizationPlan,
    OrganizationResult,
    PlacementDecision,
    SimilarFile,
)
from naming import suggest_names as suggest_file_names
from organization_planner import OrganizationPlanner, select_plan
from plan_executor import PlanExecutor
from settings import get_settings
from similarity import SimilarityMatcher
from text_extraction import TextExtractor, get_extractor

# Load environment variables from .env file (if it exists and is accessible)
try:
    load_dotenv()
except (PermissionError, OSError):
    pass  # .env not accessible


# ==============================================================================
# CONFIGURATION LOADING
# ==============================================================================

def load_config() -> dict:
    """Load configuration from config.yaml, with fallbacks to environment variables."""
    config = {
        "thresholds": {
            "suggest": float(os.getenv("SUGGEST_THRESHOLD", "0.3")),
            "auto_append": float(os.getenv("AUTO_APPEND_THRESHOLD", "0.5")),
            "merge_floor": 0.6,
            "auto_merge": 0.8,
            "min_plan_confidence": 0.4,
        },
        "planner": {
            "time_bucket": os.getenv("TIME_BUCKET", "week"),
        },
        "logging": {
            "level": "INFO",
            "file": "",
        },
    }

    # Try to load from config.yaml
    config_paths = [
        Path(__file__).parent / "config.local.yaml",  # Local overrides first
        Path(__file__).parent / "config.yaml",
    ]

    for config_path in config_paths:
        if config_path.exists():
            try:
                with open(config_path, 'r') as f:
                    yaml_config = yaml.safe_load(f) or {}

                for section in ("thresholds", "planner", "logging"):
                    if isinstance(yaml_config.get(section), dict):
                        config[section].update(yaml_config[section])

                break  # Use first found config
            except Exception as e:
                print(f"Warning: Could not load {config_path}: {e}")

    return config


# Load global config
CONFIG = load_config()

# ==============================================================================
# LOGGING CONFIGURATION
# ==============================================================================

def setup_logging() -> logging.Logger:
    """Configure logging based on environment variables and config."""
    log_level = os.getenv("LOG_LEVEL", CONFIG["logging"]["level"]).upper()
    log_file = os.getenv("LOG_FILE", CONFIG["logging"]["file"])

    # Create logger
    logger = logging.getLogger("code_organizer")
    logger.setLevel(getattr(logging, log_level, logging.INFO))

    # Prevent duplicate handlers on reimport
    if logger.handlers:
        return logger

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.DEBUG)
    console_format = logging.Formatter(
        "%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )
    console_handler.setFormatter(console_format)
    logger.addHandler(console_handler)

    # File handler (if LOG_FILE is set)
    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG)
        file_format = logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s:%(funcName)s:%(lineno)d - %(message)s"
        )
        file_handler.setFormatter(file_format)
        logger.addHandler(file_handler)

    return logger

# Initialize logger
logger = setup_logging()


def get_default_store() -> JsonItemStore:
    """The JSON library in the configured library directory."""
    return JsonItemStore(get_settings().library_dir)


def make_planner() -> OrganizationPlanner:
    thresholds = CONFIG["thresholds"]
    return OrganizationPlanner(
        merge_floor=thresholds["merge_floor"],
        auto_merge_threshold=thresholds["auto_merge"],
        min_confidence=thresholds["min_plan_confidence"],
        time_bucket=CONFIG["planner"]["time_bucket"],
    )


# ==============================================================================
# SINGLE ITEM PLACEMENT
# ==============================================================================

def classify(text: str) -> ClassificationResult:
    """Detect language and topic. Never raises."""
    return classify_text(text)


def propose_name(text: str, language: Optional[str] = None, existing_names: Optional[list[str]] = None) -> str:
    return suggest_file_names(text, language, existing_names)[0].name


def suggest_names(text: str, language: Optional[str] = None,
                  existing_names: Optional[list[str]] = None) -> list[NameSuggestion]:
    return suggest_file_names(text, language, existing_names)


def find_similar(text: str, owner_id: Optional[str] = None, threshold: Optional[float] = None,
                 store: Optional[ItemStore] = None) -> list[SimilarFile]:
    """Files similar to text, best first. Returns [] if the store is unavailable."""
    store = store or get_default_store()
    owner_id = owner_id or get_settings().owner_id
    if threshold is None:
        threshold = CONFIG["thresholds"]["suggest"]
    return SimilarityMatcher(store).find_similar_files(text, owner_id, threshold)


def should_append(suggested_name: str, similar_files: list[SimilarFile]) -> bool:
    """Decide whether new content belongs in the most similar existing file.

    Append when the new name and the file's title share the same core topic
    (e.g. both 'ui-components'), or when similarity clears the auto-append
    threshold.
    """
    if not similar_files:
        return False

    top = similar_files[0]
    core = strip_language_prefix(suggested_name)
    if core and core == strip_language_prefix(top.title):
        logger.debug(f"Core topic match '{core}' with {top.title}")
        return True

    return top.similarity > CONFIG["thresholds"]["auto_append"]


def _existing_names(store: ItemStore, owner_id: str) -> list[str]:
    try:
        return [item.title for item in store.get_items_by_owner(owner_id) if item.kind == ITEM_FILE]
    except Exception as e:
        logger.warning(f"Could not load existing file names: {e}")
        return []


def plan_placement(text: str, owner_id: Optional[str] = None, store: Optional[ItemStore] = None,
                   ocr_confidence: Optional[float] = None) -> PlacementDecision:
    """Work out where a new piece of code should be saved and what to call it."""
    store = store or get_default_store()
    owner_id = owner_id or get_settings().owner_id

    classification = classify(text)
    language = classification.language.language
    similar = find_similar(text, owner_id, store=store)
    suggestions = suggest_file_names(text, language, _existing_names(store, owner_id))
    suggested_name = suggestions[0].name
    append = should_append(suggested_name, similar)

    logger.info(
        f"Classified as {language}/{classification.topic.primary_topic}; "
        f"{'append to ' + similar[0].title if append else 'new file ' + suggested_name}"
    )
    return PlacementDecision(
        text=text,
        classification=classification,
        similar_files=similar,
        suggested_name=suggested_name,
        name_suggestions=suggestions,
        should_append=append,
        target_file_id=similar[0].id if append else None,
        ocr_confidence=ocr_confidence,
    )


def process_image(image_path: str | Path, owner_id: Optional[str] = None, store: Optional[ItemStore] = None,
                  extractor: Optional[TextExtractor] = None) -> PlacementDecision:
    """Extract text from a screenshot and plan its placement.

    Raises:
        ExtractionError: if no text could be read from the image
    """
    if extractor is None:
        settings = get_settings()
        kwargs = {"lang": settings.get("ocr_language", "eng")} if settings.extractor == "tesseract" else {}
        extractor = get_extractor(settings.extractor, **kwargs)

    result = extractor.extract(image_path)
    logger.info(f"Extracted {len(result.text)} chars from {Path(image_path).name} ({result.confidence:.0f}% confidence)")
    return plan_placement(result.text, owner_id, store, ocr_confidence=result.confidence)


# ==============================================================================
# COLLECTION ORGANIZATION
# ==============================================================================

def analyze_organization(items) -> list[OrganizationPlan]:
    """Candidate organization plans. An empty list means there is nothing worth doing."""
    return make_planner().analyze(items)


def execute_organization_plan(plan: OrganizationPlan, items, store: Optional[ItemStore] = None,
                              should_continue: Optional[Callable[[], bool]] = None) -> OrganizationResult:
    return PlanExecutor(store=store, should_continue=should_continue).execute(plan, items)


def auto_organize(items, strategy: Optional[str] = None, store: Optional[ItemStore] = None) -> OrganizationResult:
    """Analyze, pick a plan with the given selection strategy and execute it."""
    items = list(items)
    strategy = strategy or get_settings().default_strategy

    plans = analyze_organization(items)
    if not plans:
        logger.info("No viable organization plans found")
        return OrganizationResult(
            success=True,
            status=STATUS_COMPLETED,
            recommendations=["No viable organization plans found"],
        )

    plan = select_plan(plans, strategy)
    logger.info(f"Selected '{plan.name}' ({strategy}) from {len(plans)} plans")
    return execute_organization_plan(plan, items, store)
