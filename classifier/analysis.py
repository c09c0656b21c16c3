"""
User-facing narrative for a classification result.

A confidence-banded lookup table, kept apart from ``decide`` so wording
can change without touching the safety policy.  Bands are checked in
order; the first whose verdict matches and whose ``min_confidence`` is
met (strictly exceeded when ``exclusive``) wins.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from .spoilage import UNCERTAIN_CONFIDENCE, ClassificationResult, Verdict


@dataclass(frozen=True)
class Analysis:
    message: str
    indicators: Tuple[str, ...]
    food_type: str
    recommendations: Tuple[str, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message": self.message,
            "indicators": list(self.indicators),
            "food_type": self.food_type,
            "recommendations": list(self.recommendations),
        }


@dataclass(frozen=True)
class AnalysisBand:
    verdict: Verdict
    min_confidence: float
    analysis: Analysis
    exclusive: bool = True
    max_confidence: Optional[float] = None

    def matches(self, result: ClassificationResult) -> bool:
        if result.verdict is not self.verdict:
            return False
        if self.max_confidence is not None and result.confidence > self.max_confidence:
            return False
        if self.exclusive:
            return result.confidence > self.min_confidence
        return result.confidence >= self.min_confidence


FRESH = Analysis(
    message="Food appears fresh and safe for consumption. No visible signs of spoilage detected.",
    indicators=(),
    food_type="Fresh produce",
    recommendations=("Store in cool, dry place", "Consume within recommended timeframe"),
)

MOSTLY_FRESH = Analysis(
    message="Food appears mostly fresh. Minor discoloration detected but likely safe.",
    indicators=("slight discoloration",),
    food_type="Vegetables/Fruits",
    recommendations=("Consume soon", "Check for any unusual odors"),
)

UNCERTAIN = Analysis(
    message=(
        "Unable to tell reliably whether this food is safe. "
        "Treat it as spoiled unless a person can inspect it."
    ),
    indicators=("low_confidence",),
    food_type="unknown",
    recommendations=("Check for visible signs of spoilage", "Use your senses to assess freshness"),
)

LIKELY_SPOILED = Analysis(
    message=(
        "Signs of spoilage detected: discoloration and potential mold growth. "
        "Not recommended for consumption."
    ),
    indicators=("discoloration", "potential mold"),
    food_type="Bread/Dairy",
    recommendations=("Do not consume", "Dispose safely"),
)

CLEARLY_SPOILED = Analysis(
    message=(
        "Clear signs of spoilage: mold, discoloration, and texture changes detected. "
        "Do not consume."
    ),
    indicators=("mold", "discoloration", "texture changes"),
    food_type="Meat/Seafood",
    recommendations=("Do not consume", "Dispose immediately", "Clean storage area"),
)

MODEL_UNAVAILABLE = Analysis(
    message=(
        "Automatic analysis is unavailable. Please check for visible signs of "
        "spoilage and use your judgment."
    ),
    indicators=("ai_model_unavailable",),
    food_type="unknown",
    recommendations=(
        "Check for visible signs of spoilage",
        "Use your senses to assess freshness",
        "Contact support if issue persists",
    ),
)

BANDS: Tuple[AnalysisBand, ...] = (
    AnalysisBand(Verdict.SAFE, 0.8, FRESH),
    AnalysisBand(Verdict.SAFE, 0.0, MOSTLY_FRESH, exclusive=False),
    AnalysisBand(Verdict.SPOILED, 0.8, CLEARLY_SPOILED),
    AnalysisBand(
        Verdict.SPOILED, 0.0, UNCERTAIN,
        exclusive=False, max_confidence=UNCERTAIN_CONFIDENCE,
    ),
    AnalysisBand(Verdict.SPOILED, 0.0, LIKELY_SPOILED, exclusive=False),
)


def describe(result: ClassificationResult) -> Analysis:
    """Return the narrative for *result* from the first matching band."""
    for band in BANDS:
        if band.matches(result):
            return band.analysis
    raise LookupError(f"No analysis band covers {result!r}")
