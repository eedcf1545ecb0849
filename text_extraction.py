#!/usr/bin/env python3
"""
Text extraction - turn code screenshots into text.

Extractors are pluggable:
- tesseract: OCR via pytesseract (requires the tesseract binary)
- text: plain .txt transcripts, e.g. text copied from an editor

Usage:
    from text_extraction import get_extractor

    extractor = get_extractor("tesseract")
    result = extractor.extract("screenshot.png")
    print(result.text, result.confidence)

Failures raise ExtractionError so callers can tell them apart from
classification problems.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path

from PIL import Image

IMAGE_FORMATS = {'.png', '.jpg', '.jpeg', '.tiff', '.bmp', '.gif', '.webp'}

# Screenshots larger than this are scaled down before OCR
MAX_IMAGE_DIMENSION = 10000

# Keep PIL decompression bomb protection, but allow very tall scrolling screenshots
Image.MAX_IMAGE_PIXELS = 200_000_000


class ExtractionError(Exception):
    """Text could not be extracted from the given source."""


@dataclass
class ExtractionResult:
    text: str
    confidence: float  # 0-100


# ==============================================================================
# BASE EXTRACTOR CLASS
# ==============================================================================

class TextExtractor(ABC):
    """Abstract base class for text extractors."""

    name: str = "base"
    display_name: str = "Base Extractor"

    @abstractmethod
    def extract(self, source: str | Path) -> ExtractionResult:
        """
        Extract text from a file.

        Args:
            source: Path to the screenshot or transcript

        Returns:
            ExtractionResult with the text and a 0-100 confidence

        Raises:
            ExtractionError: if nothing readable could be extracted
        """
        pass

    @abstractmethod
    def is_available(self) -> bool:
        """Check if this extractor can run in the current environment."""
        pass


# ==============================================================================
# TESSERACT OCR
# ==============================================================================

class TesseractExtractor(TextExtractor):
    """OCR for code screenshots using Tesseract."""

    name = "tesseract"
    display_name = "Tesseract OCR"

    def __init__(self, lang: str = "eng", config: str = "--psm 6"):
        # psm 6 treats the image as one uniform block, which keeps code indentation together
        self.lang = lang
        self.config = config

    def is_available(self) -> bool:
        try:
            import pytesseract
            pytesseract.get_tesseract_version()
            return True
        except Exception:
            return False

    def _load_image(self, path: Path) -> Image.Image:
        img = Image.open(path)
        if max(img.size) > MAX_IMAGE_DIMENSION:
            ratio = MAX_IMAGE_DIMENSION / max(img.size)
            new_size = (int(img.size[0] * ratio), int(img.size[1] * ratio))
            img = img.resize(new_size, Image.Resampling.LANCZOS)
        return img

    def extract(self, source: str | Path) -> ExtractionResult:
        path = Path(source)
        if path.suffix.lower() not in IMAGE_FORMATS:
            raise ExtractionError(f"Unsupported format: {path.suffix}")
        if not path.exists():
            raise ExtractionError(f"File not found: {path}")

        try:
            import pytesseract
            img = self._load_image(path)
            text = pytesseract.image_to_string(img, lang=self.lang, config=self.config)
            data = pytesseract.image_to_data(
                img, lang=self.lang, config=self.config, output_type=pytesseract.Output.DICT
            )
        except Exception as e:
            raise ExtractionError(f"OCR failed for {path.name}: {e}") from e

        if not text or not text.strip():
            raise ExtractionError(f"No readable text found in {path.name}")

        # Tesseract reports -1 for non-word boxes
        scores = [float(c) for c in data.get("conf", []) if float(c) >= 0]
        confidence = sum(scores) / len(scores) if scores else 0.0
        return ExtractionResult(text=text.strip(), confidence=round(min(100.0, confidence), 2))


# ==============================================================================
# PLAIN TEXT
# ==============================================================================

class PlainTextExtractor(TextExtractor):
    """Reads already-transcribed code from text files."""

    name = "text"
    display_name = "Plain Text"

    def is_available(self) -> bool:
        return True

    def extract(self, source: str | Path) -> ExtractionResult:
        path = Path(source)
        try:
            with open(path, 'r', encoding='utf-8', errors='ignore') as f:
                text = f.read()
        except (IOError, OSError) as e:
            raise ExtractionError(f"Could not read {path}: {e}") from e

        if not text.strip():
            raise ExtractionError(f"No text found in {path.name}")
        return ExtractionResult(text=text.strip(), confidence=100.0)


# ==============================================================================
# EXTRACTOR REGISTRY
# ==============================================================================

EXTRACTORS = {
    "tesseract": TesseractExtractor,
    "text": PlainTextExtractor,
}


def list_extractors() -> dict:
    """List all extractors and whether they can run here."""
    return {
        name: {"display_name": cls.display_name, "available": cls().is_available()}
        for name, cls in EXTRACTORS.items()
    }


def get_extractor(name: str = "tesseract", **kwargs) -> TextExtractor:
    """Get an extractor instance by name."""
    if name not in EXTRACTORS:
        available = ", ".join(EXTRACTORS.keys())
        raise ValueError(f"Unknown extractor '{name}'. Available: {available}")
    return EXTRACTORS[name](**kwargs)


def extractor_for(path: str | Path) -> TextExtractor:
    """Pick an extractor based on the file extension."""
    if Path(path).suffix.lower() in IMAGE_FORMATS:
        return TesseractExtractor()
    return PlainTextExtractor()
