"""
Contract: Quality Gate

Scores the visual quality of a document image. The score is recorded in
the document's processing metadata and reported to manual reviewers; it
never blocks an upload on its own.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass
class QualityResult:
    """Outcome of a quality evaluation."""
    quality_ok: bool
    quality_score: float          # 0.0 (unusable) to 1.0 (perfect)
    reasons: list[str]            # e.g. ["BLUR_HIGH", "LOW_RESOLUTION"]
    details: dict | None = None   # individual metrics (blur_score, brightness, ...)


class IQualityGate(ABC):
    """Port: Quality Gate"""

    @abstractmethod
    def evaluate(self, image_bytes: bytes) -> QualityResult:
        """
        Evaluate image quality.

        Args:
            image_bytes: encoded image (JPEG/PNG).

        Returns:
            QualityResult with score and flags.
        """
        ...
